"""
Transcript Log

Ordered, append-only list of the messages exchanged in the active flow.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Tuple


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class TranscriptEntry:
    role: Role
    text: str

    def to_dict(self) -> dict:
        return {"role": self.role.value, "text": self.text}


class TranscriptLog:
    """Append-only transcript. Past entries are never edited."""

    def __init__(self):
        self._entries: List[TranscriptEntry] = []

    def append(self, entry: TranscriptEntry) -> None:
        self._entries.append(entry)

    def add_user(self, text: str) -> None:
        self.append(TranscriptEntry(Role.USER, text))

    def add_assistant(self, text: str) -> None:
        self.append(TranscriptEntry(Role.ASSISTANT, text))

    def all(self) -> Tuple[TranscriptEntry, ...]:
        return tuple(self._entries)

    def clear(self) -> None:
        self._entries = []

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[TranscriptEntry]:
        return iter(self.all())
