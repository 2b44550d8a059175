"""
Markdown to HTML with the element classes the notes preview styles.

Parsing is CommonMark plus GitHub tables and strikethrough, with soft
line breaks kept as ``<br>``. Raw HTML in the source is escaped rather
than passed through, and markdown-it refuses ``javascript:``-style
links, so the output is safe to embed.
"""
import re

from markdown_it import MarkdownIt
from markdown_it.common.utils import escapeHtml

EXTERNAL_LINK = re.compile(r"^https?://", re.IGNORECASE)


def slugify(text: str) -> str:
    """GitHub-ish heading anchors: "Root Cause (v2)" -> "root-cause-v2"."""
    slug = text.lower().strip()
    slug = re.sub(r"[`*_~]", "", slug)
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    return re.sub(r"-+", "-", slug)


def _heading_open(self, tokens, idx, options, env):
    token = tokens[idx]
    inline = tokens[idx + 1] if idx + 1 < len(tokens) else None
    anchor = slugify(inline.content if inline is not None else "")
    level = token.tag[1:]
    return (
        f'<{token.tag} id="{anchor}" class="md-heading md-h{level}">'
        f'<a href="#{anchor}" class="md-anchor" aria-hidden="true">#</a>'
    )


def _code_block(self, tokens, idx, options, env):
    token = tokens[idx]
    lang = token.info.strip().split()[0] if token.info and token.info.strip() else ""
    css = f"language-{escapeHtml(lang)}" if lang else "no-lang"
    code = token.content[:-1] if token.content.endswith("\n") else token.content
    return f'<pre class="md-code-block"><code class="{css}">{escapeHtml(code)}\n</code></pre>\n'


def _table_open(self, tokens, idx, options, env):
    return '<div class="md-table-wrapper"><table>\n'


def _table_close(self, tokens, idx, options, env):
    return "</table></div>\n"


def _blockquote_open(self, tokens, idx, options, env):
    return '<blockquote class="md-blockquote">\n'


def _bullet_list_open(self, tokens, idx, options, env):
    return '<ul class="md-list">\n'


def _ordered_list_open(self, tokens, idx, options, env):
    start = tokens[idx].attrGet("start")
    start_attr = f' start="{int(start)}"' if start is not None and int(start) > 1 else ""
    return f'<ol class="md-list"{start_attr}>\n'


def _list_item_open(self, tokens, idx, options, env):
    return '<li class="md-li">'


def _code_inline(self, tokens, idx, options, env):
    return f'<code class="md-inline-code">{escapeHtml(tokens[idx].content)}</code>'


def _hr(self, tokens, idx, options, env):
    return '<hr class="md-hr" />\n'


def _link_open(self, tokens, idx, options, env):
    token = tokens[idx]
    href = token.attrGet("href") or "#"
    token.attrSet("href", href)
    token.attrSet("class", "md-link")
    if EXTERNAL_LINK.match(str(href)):
        token.attrSet("rel", "noopener noreferrer")
        token.attrSet("target", "_blank")
    return self.renderToken(tokens, idx, options, env)


def _image(self, tokens, idx, options, env):
    token = tokens[idx]
    src = escapeHtml(str(token.attrGet("src") or ""))
    alt = escapeHtml(self.renderInlineAsText(token.children or [], options, env))
    title = token.attrGet("title")
    title_attr = f' title="{escapeHtml(str(title))}"' if title else ""
    return (
        f'<figure class="md-image-wrapper"><img src="{src}" alt="{alt}"{title_attr} />'
        f'<figcaption class="md-image-caption">{alt}</figcaption></figure>'
    )


RENDER_RULES = {
    "heading_open": _heading_open,
    "fence": _code_block,
    "code_block": _code_block,
    "table_open": _table_open,
    "table_close": _table_close,
    "blockquote_open": _blockquote_open,
    "bullet_list_open": _bullet_list_open,
    "ordered_list_open": _ordered_list_open,
    "list_item_open": _list_item_open,
    "code_inline": _code_inline,
    "hr": _hr,
    "link_open": _link_open,
    "image": _image,
}


def create_parser() -> MarkdownIt:
    md = MarkdownIt("commonmark", {"breaks": True, "html": False}).enable(["table", "strikethrough"])
    for name, rule in RENDER_RULES.items():
        md.add_render_rule(name, rule)
    return md


_parser = create_parser()


def render_markdown(markdown: str) -> str:
    """Renders Markdown to sanitized, styled HTML."""
    return _parser.render(markdown or "")
