"""
Decoding of chat-completion stream payloads into plain text.

Upstreams and relays disagree on the shape of a chunk, so a payload is
tried against a fixed list of shapes, in this order:

1. a JSON string: the string itself is the text;
2. a JSON array: each element is either an object with a ``delta`` key
   (its delta is read), a wrapper with a ``choices`` array (each choice's
   ``delta``, else ``message``, is read) or a delta on its own;
3. a JSON object: a ``choices`` array wins, then a ``delta`` key, then a
   ``message`` key, and finally the object is read as a delta itself.

Reading a delta means: a string is text; an object contributes its
``content`` (a string, or a list of parts that are strings or objects
with a string ``text``) or else its string ``text``.
"""
import json
from typing import Any, Iterable, List, Optional


def _is_empty(value: Any) -> bool:
    # Mirrors `a || b` on the wire: empty objects and arrays still count as present.
    return value is None or value is False or value == "" or (
        isinstance(value, (int, float)) and not isinstance(value, bool) and value == 0
    )


def _content_parts(parts: Iterable[Any]) -> str:
    texts: List[str] = []
    for part in parts:
        if isinstance(part, str):
            texts.append(part)
        elif isinstance(part, dict) and isinstance(part.get("text"), str):
            texts.append(part["text"])
    return "".join(texts)


def read_delta(delta: Any) -> str:
    """Returns the text carried by a single delta, or "" if it carries none."""
    if _is_empty(delta):
        return ""
    if isinstance(delta, str):
        return delta
    if isinstance(delta, dict):
        content = delta.get("content")
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            return _content_parts(content)
        if isinstance(delta.get("text"), str):
            return delta["text"]
    return ""


def _read_choice(choice: Any) -> str:
    if not isinstance(choice, dict):
        return ""
    delta = choice.get("delta")
    if _is_empty(delta):
        delta = choice.get("message")
    return read_delta(delta)


def _read_choices(choices: List[Any]) -> str:
    return "".join(_read_choice(choice) for choice in choices)


def _read_array(items: List[Any]) -> str:
    texts: List[str] = []
    for item in items:
        if isinstance(item, dict) and "delta" in item:
            texts.append(read_delta(item["delta"]))
        elif isinstance(item, dict) and "choices" in item:
            choices = item["choices"]
            if isinstance(choices, list):
                texts.append(_read_choices(choices))
        else:
            texts.append(read_delta(item))
    return "".join(texts)


def _read_object(obj: dict) -> str:
    if isinstance(obj.get("choices"), list):
        return _read_choices(obj["choices"])
    if "delta" in obj:
        return read_delta(obj["delta"])
    if "message" in obj:
        return read_delta(obj["message"])
    return read_delta(obj)


def extract_text(value: Any) -> str:
    """Extracts the text fragment from an already-parsed JSON value."""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return _read_array(value)
    if isinstance(value, dict):
        return _read_object(value)
    return ""


def decode_delta(payload: str) -> Optional[str]:
    """
    Decodes one unwrapped ``data:`` payload.

    Returns:
        The extracted text ("" when the payload is valid JSON without text),
        or None when the payload is not JSON at all.
    """
    try:
        value = json.loads(payload)
    except (ValueError, RecursionError):
        return None
    return extract_text(value)
