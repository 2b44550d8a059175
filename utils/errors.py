"""
Defines custom exception classes for the application.
"""
from typing import Optional


class QuickNotesException(Exception):
    """Base exception class for quicknotes application."""
    pass

class ProviderError(QuickNotesException):
    """Raised when an error occurs with an LLM provider."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

class FormatterError(QuickNotesException):
    """Raised when an error occurs while rendering a note body."""
    pass

class ConfigError(QuickNotesException):
    """Raised when there is a configuration error."""
    pass

class TrackerError(QuickNotesException):
    """Raised when a GitHub API call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FormattingError(QuickNotesException):
    """Base class for failures of a formatting session."""
    pass

class MissingCredentialError(FormattingError):
    """No token is available to call the model endpoint."""

    def __init__(self, message: str = "Missing token"):
        super().__init__(message)

class EmptyInputError(FormattingError):
    """The submitted notes are empty or whitespace only."""

    def __init__(self, message: str = "Nothing to format"):
        super().__init__(message)

class InputTooLongError(FormattingError):
    """The submitted notes exceed the configured size limit."""

    def __init__(self, limit: int):
        super().__init__(f"Notes too long (limit ~{limit} chars before formatting).")
        self.limit = limit

class NetworkOrHttpError(FormattingError):
    """The streaming request failed at the transport level."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status

class UpstreamError(FormattingError):
    """The stream carried an explicit error event."""
    pass
