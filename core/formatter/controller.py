import asyncio
from contextlib import aclosing
from dataclasses import dataclass
from typing import Callable, Optional

from core.contracts.models import FormattingSession, SessionStatus
from core.contracts.provider import LLMProvider
from core.llm.prompts import build_messages
from core.stream.aggregator import StreamAggregator
from utils.errors import (
    EmptyInputError,
    FormattingError,
    InputTooLongError,
    MissingCredentialError,
    NetworkOrHttpError,
    ProviderError,
    UpstreamError,
)
from utils.logger import logger

SessionListener = Callable[[FormattingSession], None]


def validate_request(token: Optional[str], raw_input: str, max_input_chars: Optional[int] = None) -> None:
    """Rejects a formatting request that must not reach the network."""
    if not token:
        raise MissingCredentialError()
    if not raw_input or not raw_input.strip():
        raise EmptyInputError()
    if max_input_chars and len(raw_input) > max_input_chars:
        raise InputTooLongError(max_input_chars)


@dataclass
class _Run:
    """Bookkeeping for one session: its latest snapshot and its task."""
    session: FormattingSession
    task: Optional["asyncio.Task[None]"] = None


class FormatterController:
    """
    Owns the lifecycle of formatting sessions.

    At most one session is in flight. Starting a new one aborts the
    previous one first; aborting keeps whatever text already arrived.
    All session writes go through ``_apply``, which only accepts writes
    from the active run and none after it reached a terminal state.
    """

    def __init__(
        self,
        provider: Optional[LLMProvider],
        token: Optional[str],
        *,
        system_prompt: Optional[str] = None,
        max_input_chars: Optional[int] = 8000,
        on_update: Optional[SessionListener] = None,
    ):
        self._provider = provider
        self._token = token
        self._system_prompt = system_prompt
        self._max_input_chars = max_input_chars
        self.on_update = on_update
        self._active: Optional[_Run] = None
        self._idle = FormattingSession()
        self.last_failure: Optional[FormattingError] = None

    @property
    def session(self) -> FormattingSession:
        return self._active.session if self._active else self._idle

    @property
    def in_flight(self) -> bool:
        return self.session.status is SessionStatus.IN_FLIGHT

    async def start(self, raw_input: str) -> FormattingSession:
        """
        Formats ``raw_input`` through a streaming request.

        Returns:
            The terminal snapshot of this session (completed, failed or aborted).

        Raises:
            MissingCredentialError, EmptyInputError, InputTooLongError: before
                any network call; an in-flight session is left untouched.
        """
        validate_request(self._token, raw_input, self._max_input_chars)

        if self._active and self._active.task and not self._active.task.done():
            logger.info("Aborting in-flight formatting session before starting a new one.")
        self.abort()

        run = _Run(session=FormattingSession(raw_input=raw_input, status=SessionStatus.IN_FLIGHT))
        self._active = run
        self.last_failure = None
        self._publish(run.session)

        run.task = asyncio.create_task(self._stream(run))
        try:
            await asyncio.wait({run.task})
        except asyncio.CancelledError:
            self._abort_run(run)
            raise
        return run.session

    def abort(self) -> None:
        """Cancels the in-flight session, if any. Safe to call at any time."""
        if self._active is not None:
            self._abort_run(self._active)

    def reset(self) -> None:
        """Aborts anything in flight and returns to an empty idle session."""
        self.abort()
        self._active = None
        self.last_failure = None
        self._publish(self._idle)

    def _abort_run(self, run: _Run) -> None:
        if run.session.is_terminal:
            return
        self._apply(run, status=SessionStatus.ABORTED)
        if run.task is not None and not run.task.done():
            run.task.cancel()
        logger.info("Formatting session aborted.")

    async def _stream(self, run: _Run) -> None:
        aggregator = StreamAggregator(on_update=lambda text: self._apply(run, output=text))
        messages = build_messages(run.session.raw_input, self._system_prompt)

        try:
            async with aclosing(self._provider.stream(messages)) as chunks:
                async for chunk in chunks:
                    if not aggregator.feed(chunk):
                        break
            aggregator.close()
        except ProviderError as e:
            self._fail(run, NetworkOrHttpError(self._transport_message(e), status=e.status_code))
            return
        except Exception as e:
            logger.exception("Unexpected error while streaming")
            self._fail(run, NetworkOrHttpError(str(e) or "Formatting failed"))
            return

        if aggregator.status is SessionStatus.FAILED:
            self._fail(run, UpstreamError(aggregator.error))
        else:
            self._apply(run, status=SessionStatus.COMPLETED)
            logger.info(f"Formatting completed ({len(run.session.output)} chars).")

    @staticmethod
    def _transport_message(error: ProviderError) -> str:
        if error.status_code is not None:
            return f"Streaming failed ({error.status_code})"
        return str(error) or "Formatting failed"

    def _fail(self, run: _Run, error: FormattingError) -> None:
        if run is not self._active or run.session.is_terminal:
            return
        logger.error(f"Formatting failed: {error}")
        self.last_failure = error
        self._apply(run, status=SessionStatus.FAILED, error=str(error))

    def _apply(self, run: _Run, **changes) -> None:
        if run is not self._active or run.session.is_terminal:
            return
        run.session = run.session.model_copy(update=changes)
        self._publish(run.session)

    def _publish(self, session: FormattingSession) -> None:
        if self.on_update is None:
            return
        try:
            self.on_update(session)
        except Exception:
            # A broken listener is not a formatting failure; the session carries on.
            logger.exception("Session listener raised")
