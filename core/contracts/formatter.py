from typing import Protocol
from .models import NoteBody

class Formatter(Protocol):
    def format_issue(self, note: NoteBody) -> str:
        ...

    def format_comment(self, note: NoteBody) -> str:
        ...
