"""
Data model shared by the search, workbench and chat layers.

Field names on the wire follow the Fireflies GraphQL schema
(organizer_email, meeting_attendees, speaker_name) so that the HTTP
layer can pass transcripts through unchanged.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

logger = logging.getLogger(__name__)


def parse_date(value: Any) -> Optional[datetime]:
    """
    Parse a Fireflies date value.

    Fireflies returns epoch milliseconds; ISO strings are accepted too.

    Returns:
        Aware UTC datetime, or None if the value is missing or unparseable.
    """
    if value is None or value == "":
        return None

    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)

    if isinstance(value, str):
        try:
            return datetime.fromtimestamp(float(value) / 1000, tz=timezone.utc)
        except ValueError:
            pass
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Unparseable transcript date: {value!r}")
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    logger.warning(f"Unexpected transcript date type: {type(value).__name__}")
    return None


def _format_date(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class Attendee:
    """A meeting attendee as reported by the transcript index."""
    email: Optional[str] = None
    display_name: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict) -> "Attendee":
        return cls(email=data.get("email"), display_name=data.get("displayName"))

    def to_dict(self) -> dict:
        return {"email": self.email, "displayName": self.display_name}


@dataclass(frozen=True)
class TranscriptSummary:
    """Search result row. Immutable once fetched."""
    id: str
    title: Optional[str] = None
    date: Optional[datetime] = None
    organizer_email: Optional[str] = None
    attendees: tuple[Attendee, ...] = ()

    @classmethod
    def from_api(cls, data: dict) -> "TranscriptSummary":
        return cls(
            id=str(data["id"]),
            title=data.get("title"),
            date=parse_date(data.get("date")),
            organizer_email=data.get("organizer_email"),
            attendees=tuple(
                Attendee.from_api(a) for a in (data.get("meeting_attendees") or [])
            ),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "date": _format_date(self.date),
            "organizer_email": self.organizer_email,
            "meeting_attendees": [a.to_dict() for a in self.attendees],
        }


@dataclass(frozen=True)
class Sentence:
    """One spoken sentence. Indices follow speaking order but may have gaps."""
    index: int
    text: str
    speaker_name: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict) -> "Sentence":
        return cls(
            index=int(data.get("index", 0)),
            text=data.get("text") or "",
            speaker_name=data.get("speaker_name"),
        )

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "speaker_name": self.speaker_name,
            "text": self.text,
        }


@dataclass(frozen=True)
class TranscriptDetail:
    """Full transcript with sentence-level content, fetched on demand per id."""
    id: str
    title: Optional[str] = None
    date: Optional[datetime] = None
    organizer_email: Optional[str] = None
    attendees: tuple[Attendee, ...] = ()
    sentences: tuple[Sentence, ...] = ()

    @classmethod
    def from_api(cls, data: dict) -> "TranscriptDetail":
        sentences = sorted(
            (Sentence.from_api(s) for s in (data.get("sentences") or [])),
            key=lambda s: s.index,
        )
        return cls(
            id=str(data["id"]),
            title=data.get("title"),
            date=parse_date(data.get("date")),
            organizer_email=data.get("organizer_email"),
            attendees=tuple(
                Attendee.from_api(a) for a in (data.get("meeting_attendees") or [])
            ),
            sentences=tuple(sentences),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "date": _format_date(self.date),
            "organizer_email": self.organizer_email,
            "meeting_attendees": [a.to_dict() for a in self.attendees],
            "sentences": [s.to_dict() for s in self.sentences],
        }


@dataclass
class SearchPage:
    """One page of search results, after any client-side email filtering."""
    items: list[TranscriptSummary]
    page_was_full: bool
    raw_count: int = 0


@dataclass
class BatchFetchResult:
    """Result of a batch fetch. Failed ids are omitted from transcripts."""
    transcripts: list[TranscriptDetail] = field(default_factory=list)
    failed_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "transcripts": [t.to_dict() for t in self.transcripts],
            "failedIds": self.failed_ids,
        }


@dataclass(frozen=True)
class ConversationTurn:
    """A single chat message."""
    role: Literal["user", "assistant"]
    content: str

    @classmethod
    def from_dict(cls, data: dict) -> "ConversationTurn":
        role = data.get("role")
        if role not in ("user", "assistant"):
            raise ValueError(f"Invalid message role: {role!r}")
        content = data.get("content")
        if not isinstance(content, str):
            raise ValueError("Message content must be a string")
        return cls(role=role, content=content)

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


class ProviderChoice(str, Enum):
    """LLM vendor a conversation is routed to."""
    GEMINI = "gemini"
    OPENAI = "openai"

    @classmethod
    def parse(cls, value: str) -> "ProviderChoice":
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown model provider: {value!r}") from None
