from typing import Optional

from core.contracts.models import EventKind, ProtocolEvent

DATA_PREFIX = "data:"
END_MARKER = "event: end"
ERROR_MARKER = "event: error"
DONE_SENTINEL = "[DONE]"

# SSE fields other than data that carry nothing for the accumulator.
IGNORED_PREFIXES = ("event:", "id:", "retry:", ":")


def unwrap_data(line: str) -> Optional[str]:
    """
    Strips the ``data:`` prefix from a line, and once more if a relay
    wrapped an already-prefixed upstream line. Returns None for lines
    without the prefix.
    """
    if not line.startswith(DATA_PREFIX):
        return None
    payload = line[len(DATA_PREFIX):].strip()
    if payload.startswith(DATA_PREFIX):
        payload = payload[len(DATA_PREFIX):].strip()
    return payload


def parse_line(line: str) -> Optional[ProtocolEvent]:
    """
    Classifies one trimmed, non-empty line of the stream.

    Returns:
        An END event for the end marker or the done sentinel, an ERROR event
        (without payload) for the error marker, a DATA event for data lines,
        or None for lines that carry no protocol meaning.
    """
    if line.startswith(END_MARKER):
        return ProtocolEvent(kind=EventKind.END)
    if line.startswith(ERROR_MARKER):
        return ProtocolEvent(kind=EventKind.ERROR)

    payload = unwrap_data(line)
    if payload is None:
        return None
    if payload == DONE_SENTINEL:
        return ProtocolEvent(kind=EventKind.END)
    return ProtocolEvent(kind=EventKind.DATA, payload=payload)


def is_ignored_field(line: str) -> bool:
    return line.startswith(IGNORED_PREFIXES)
