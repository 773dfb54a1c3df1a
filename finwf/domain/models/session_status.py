"""Signing session statuses as reported by a signature collection service."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class SessionStatus(str, Enum):
    PENDING = "PENDING"
    GENERATING_PDF = "GENERATING_PDF"
    SENT_TO_TABLET = "SENT_TO_TABLET"
    VIEWING_DOCUMENT = "VIEWING_DOCUMENT"
    SIGNING_IN_PROGRESS = "SIGNING_IN_PROGRESS"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @classmethod
    def parse(cls, raw: str | None) -> "SessionStatus":
        """Map a wire status to an enum member; unknown values count as PENDING."""
        if not raw or not isinstance(raw, str):
            return cls.PENDING
        try:
            return cls(raw.strip().upper())
        except ValueError:
            return cls.PENDING


TERMINAL_STATUSES = frozenset(
    {
        SessionStatus.COMPLETED,
        SessionStatus.EXPIRED,
        SessionStatus.CANCELLED,
        SessionStatus.ERROR,
    }
)


class SessionStatusUpdate(BaseModel):
    """One entry of a session's status stream."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    status: SessionStatus
    signed_document_url: str | None = None
    signed_at: datetime | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
