from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

MS_PER_HOUR = 3_600_000
DEFAULT_RATE = 350.0


class EntrySource(str, Enum):
    EMAIL = "email"
    MANUAL = "manual"
    CALL = "call"
    MEETING = "meeting"


class EntryStatus(str, Enum):
    DRAFT = "draft"
    LOGGED = "logged"
    BILLED = "billed"


@dataclass
class DraftContext:
    """Latest recipient/subject/body seen on a compose surface."""

    recipient: str = ""
    subject: str = ""
    content: str = ""

    def snapshot(self) -> DraftSnapshot:
        return DraftSnapshot(
            recipient=self.recipient or "",
            subject=self.subject or "",
            content=self.content or "",
        )


@dataclass(frozen=True)
class DraftSnapshot:
    recipient: str
    subject: str
    content: str


@dataclass(frozen=True)
class BillableEntry:
    id: str
    recipient: str
    subject: str
    content: str
    summary: str
    hours: float
    rate: float
    timestamp: str
    source: EntrySource = EntrySource.EMAIL
    status: EntryStatus = EntryStatus.DRAFT
    synced: bool = False
    duration_ms: int = 0
    remote_id: str = ""

    def __post_init__(self) -> None:
        if self.hours < 0:
            raise ValueError(f"hours must be >= 0, got {self.hours}")
        if self.rate < 0:
            raise ValueError(f"rate must be >= 0, got {self.rate}")

    @property
    def total(self) -> float:
        return self.hours * self.rate

    @property
    def time_spent_ms(self) -> int:
        return int(round(self.hours * MS_PER_HOUR))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "recipient": self.recipient,
            "subject": self.subject,
            "content": self.content,
            "summary": self.summary,
            "hours": self.hours,
            "rate": self.rate,
            "timestamp": self.timestamp,
            "source": self.source.value,
            "status": self.status.value,
            "synced": self.synced,
            "durationMs": self.duration_ms,
            "remoteId": self.remote_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BillableEntry:
        return cls(
            id=str(data.get("id") or new_entry_id()),
            recipient=str(data.get("recipient") or ""),
            subject=str(data.get("subject") or ""),
            content=str(data.get("content") or ""),
            summary=str(data.get("summary") or ""),
            hours=max(0.0, float(data.get("hours") or 0.0)),
            rate=max(0.0, float(data.get("rate", DEFAULT_RATE) or 0.0)),
            timestamp=str(data.get("timestamp") or ""),
            source=EntrySource(data.get("source") or EntrySource.EMAIL.value),
            status=EntryStatus(data.get("status") or EntryStatus.DRAFT.value),
            synced=bool(data.get("synced", False)),
            duration_ms=int(data.get("durationMs") or 0),
            remote_id=str(data.get("remoteId") or ""),
        )

    def log_payload(self) -> dict[str, Any]:
        status = self.status if self.status is not EntryStatus.DRAFT else EntryStatus.LOGGED
        return {
            "recipient": self.recipient,
            "subject": self.subject,
            "content": self.content,
            "summary": self.summary,
            "timeSpent": self.time_spent_ms,
            "source": self.source.value,
            "status": status.value,
            "rate": self.rate,
        }


@dataclass(frozen=True)
class RemoteEntry:
    id: str
    recipient: str
    subject: str
    content: str
    summary: str
    time_spent_ms: int
    created_at: str

    @property
    def hours(self) -> float:
        return self.time_spent_ms / MS_PER_HOUR


@dataclass(frozen=True)
class Settings:
    auto_tracking: bool = True
    ai_summaries: bool = True
    default_rate: float = DEFAULT_RATE
    backend_url: str = "http://localhost:3001"
    inactivity_threshold_seconds: float = 30.0
    activity_check_seconds: float = 5.0
    recipient_poll_seconds: float = 1.0
    blur_grace_ms: float = 100.0
    notification_seconds: float = 3.0
    request_timeout_seconds: float = 30.0


def new_entry_id() -> str:
    return uuid.uuid4().hex


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()
