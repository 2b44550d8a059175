import codecs
import re
from typing import Callable, Optional, Union

from core.contracts.models import EventKind, SessionStatus
from core.stream.deltas import decode_delta
from core.stream.events import is_ignored_field, parse_line
from utils.logger import logger

LINE_SEPARATOR = re.compile(r"\r?\n")
DEFAULT_UPSTREAM_ERROR = "Upstream error"


class StreamAggregator:
    """
    Folds a chunked text/event-stream body into one growing string.

    An aggregator belongs to a single formatting session. Chunks are fed in
    arrival order; every decoded fragment is appended to ``text`` and
    published through ``on_update`` right away. Once a terminal state is
    reached further input is ignored.
    """

    def __init__(self, on_update: Optional[Callable[[str], None]] = None):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._awaiting_error = False
        self._on_update = on_update
        self.text = ""
        self.status: Optional[SessionStatus] = None
        self.error: Optional[str] = None

    @property
    def done(self) -> bool:
        return self.status is not None

    def feed(self, chunk: Union[bytes, str]) -> bool:
        """
        Adds one raw chunk to the stream.

        Returns:
            False once the stream has reached a terminal state and no more
            chunks should be read.
        """
        if self.done:
            return False

        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk

        lines = LINE_SEPARATOR.split(self._buffer)
        self._buffer = lines.pop()
        for line in lines:
            self._process_line(line)
            if self.done:
                break
        return not self.done

    def close(self) -> None:
        """Flushes the trailing partial line and settles the outcome."""
        if self.done:
            return

        self._buffer += self._decoder.decode(b"", final=True)
        remainder, self._buffer = self._buffer, ""
        self._process_line(remainder)

        if not self.done:
            if self._awaiting_error:
                self._finish(SessionStatus.FAILED, DEFAULT_UPSTREAM_ERROR)
            else:
                self._finish(SessionStatus.COMPLETED)

    def _process_line(self, raw_line: str) -> None:
        line = raw_line.strip()
        if not line:
            return

        event = parse_line(line)

        if self._awaiting_error:
            if event is None:
                return
            if event.kind is EventKind.DATA:
                self._finish(SessionStatus.FAILED, event.payload or DEFAULT_UPSTREAM_ERROR)
            elif event.kind is EventKind.END:
                self._finish(SessionStatus.FAILED, DEFAULT_UPSTREAM_ERROR)
            return

        if event is None:
            if is_ignored_field(line) or self.text:
                return
            # Unprefixed first line: let the decoder and its raw fallback decide.
            self._append(self._decode(line))
            return

        if event.kind is EventKind.END:
            self._finish(SessionStatus.COMPLETED)
        elif event.kind is EventKind.ERROR:
            self._awaiting_error = True
        else:
            self._append(self._decode(event.payload))

    def _decode(self, payload: str) -> Optional[str]:
        fragment = decode_delta(payload)
        if fragment is not None:
            return fragment
        if not self.text:
            return payload
        logger.debug(f"Discarding undecodable stream line: {payload[:80]!r}")
        return None

    def _append(self, fragment: Optional[str]) -> None:
        if not fragment:
            return
        self.text += fragment
        if self._on_update is not None:
            self._on_update(self.text)

    def _finish(self, status: SessionStatus, error: Optional[str] = None) -> None:
        self.status = status
        self.error = error
        logger.debug(f"Stream finished with status {status.value}")
