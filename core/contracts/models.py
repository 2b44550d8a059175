from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class SessionStatus(str, Enum):
    IDLE = "idle"
    IN_FLIGHT = "in_flight"
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"


TERMINAL_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.FAILED, SessionStatus.ABORTED})


class FormattingSession(BaseModel):
    """
    One run of the formatter. Snapshots are immutable; the controller
    publishes a new copy on every change.
    """
    model_config = ConfigDict(frozen=True)

    raw_input: str = ""
    output: str = ""
    status: SessionStatus = SessionStatus.IDLE
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class EventKind(str, Enum):
    DATA = "data"
    END = "end"
    ERROR = "error"


class ProtocolEvent(BaseModel):
    kind: EventKind
    payload: str = ""


class UserInfo(BaseModel):
    login: str
    name: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.login


class Label(BaseModel):
    name: str
    color: str
    description: Optional[str] = None


class IssueLite(BaseModel):
    number: int
    title: str
    url: str
    state: Optional[str] = None
    updated_at: Optional[str] = None


class ProjectInfo(BaseModel):
    id: str
    name: str
    body: Optional[str] = None
    number: Optional[int] = None


class CreatedIssue(BaseModel):
    number: int
    url: str
    title: str


class CreatedComment(BaseModel):
    id: int
    url: str
    created_at: str


class ModelInfo(BaseModel):
    id: str
    label: str


class ProjectStatus(str, Enum):
    IN_PROGRESS = "in-progress"
    NO_STATUS = "no-status"
    DONE = "done"

    @property
    def option_name(self) -> str:
        return {
            ProjectStatus.IN_PROGRESS: "In Progress",
            ProjectStatus.NO_STATUS: "No Status",
            ProjectStatus.DONE: "Done",
        }[self]


class NoteBody(BaseModel):
    """Inputs for rendering an issue or comment body."""
    body: str
    author: str = "Unknown User"
    timestamp: str
    labels: List[str] = []
