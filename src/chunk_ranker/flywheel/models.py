"""Data models for feedback events."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

# Source path used when feedback is given against a search query
QUERY_SOURCE_PATH = "__query__"


class FeedbackEventType(str, Enum):
    """Kinds of user interaction the flywheel records."""

    PIN = "pin"
    UNPIN = "unpin"
    DISMISS_INFERRED = "dismiss_inferred"
    CLICK_RELATED = "click_related"


@dataclass(frozen=True)
class ChunkRef:
    """
    Reference to a chunk.

    The fingerprint, when present, identifies the chunk by content and
    survives path renames; otherwise file_path:chunk_index is used.
    """

    file_path: str
    chunk_index: int
    fingerprint: Optional[str] = None

    @property
    def key(self) -> str:
        return chunk_key(self)

    @classmethod
    def for_query(cls, query: str) -> "ChunkRef":
        """Source reference for feedback given on a search query."""
        return cls(file_path=QUERY_SOURCE_PATH, chunk_index=0, fingerprint=query)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"filePath": self.file_path, "chunkIndex": self.chunk_index}
        if self.fingerprint:
            data["fingerprint"] = self.fingerprint
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "ChunkRef":
        """
        Build a ChunkRef from its serialized form.

        Raises:
            ValueError: If required fields are missing or mistyped
        """
        if not isinstance(data, dict):
            raise ValueError(f"chunk reference must be an object, got {type(data).__name__}")

        file_path = data.get("filePath")
        chunk_index = data.get("chunkIndex")
        fingerprint = data.get("fingerprint")

        if not isinstance(file_path, str):
            raise ValueError("chunk reference filePath must be a string")
        if isinstance(chunk_index, bool) or not isinstance(chunk_index, int) or chunk_index < 0:
            raise ValueError("chunk reference chunkIndex must be a non-negative integer")
        if fingerprint is not None and not isinstance(fingerprint, str):
            raise ValueError("chunk reference fingerprint must be a string")

        return cls(file_path=file_path, chunk_index=chunk_index, fingerprint=fingerprint or None)


def chunk_key(ref: ChunkRef) -> str:
    """Index key for a chunk reference, preferring the fingerprint."""
    if ref.fingerprint:
        return f"fp:{ref.fingerprint}"
    return f"{ref.file_path}:{ref.chunk_index}"


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive values are taken to be UTC.

    Raises:
        ValueError: If value is not a parseable timestamp
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"timestamp must be an ISO-8601 string, got {value!r}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except OverflowError:
        raise ValueError(f"timestamp out of range: {value!r}")


@dataclass(frozen=True)
class FeedbackEvent:
    """
    A single user interaction.

    Events are append-only; an unpin negates an earlier pin in the indices
    without rewriting the log.
    """

    type: FeedbackEventType
    source: ChunkRef
    target: ChunkRef
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        # Stored timestamps are always aware UTC
        object.__setattr__(self, "timestamp", parse_timestamp(self.timestamp))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "type": self.type.value,
            "source": self.source.to_dict(),
            "target": self.target.to_dict(),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "FeedbackEvent":
        """
        Build an event from its serialized form.

        Raises:
            ValueError: If the entry is malformed or its timestamp is unparseable
        """
        if not isinstance(data, dict):
            raise ValueError(f"event must be an object, got {type(data).__name__}")

        try:
            event_type = FeedbackEventType(data.get("type"))
        except ValueError:
            raise ValueError(f"unknown event type {data.get('type')!r}")

        return cls(
            type=event_type,
            source=ChunkRef.from_dict(data.get("source")),
            target=ChunkRef.from_dict(data.get("target")),
            timestamp=parse_timestamp(data.get("timestamp")),
        )
