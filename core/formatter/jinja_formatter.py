import datetime
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, TemplateError

from core.contracts.formatter import Formatter
from core.contracts.models import NoteBody
from utils.errors import FormatterError


def utc_timestamp() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Jinja2Formatter(Formatter):
    """Renders issue and comment bodies, adding the attribution footer."""

    def __init__(
        self,
        template_dir: Optional[str] = None,
        issue_template: str = "issue.md.j2",
        comment_template: str = "comment.md.j2",
    ):
        if template_dir is None:
            template_dir = str(Path(__file__).parent / "templates")

        self.template_dir = template_dir
        self.issue_template = issue_template
        self.comment_template = comment_template
        self.env = Environment(
            loader=FileSystemLoader(self.template_dir),
            trim_blocks=True,
            lstrip_blocks=True,
            autoescape=False,
        )

    def _render(self, template_name: str, note: NoteBody) -> str:
        try:
            template = self.env.get_template(template_name)
            return template.render(note=note)
        except TemplateError as e:
            raise FormatterError(f"Failed to render template {template_name}: {e}") from e

    def format_issue(self, note: NoteBody) -> str:
        return self._render(self.issue_template, note)

    def format_comment(self, note: NoteBody) -> str:
        return self._render(self.comment_template, note)
