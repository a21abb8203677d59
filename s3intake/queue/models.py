"""Queue input data models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


@dataclass(slots=True)
class RawMessage:
    """Raw message returned by a queue adapter."""

    message_id: str
    body: bytes
    headers: dict[str, str]
    timestamp: datetime
    metadata: dict[str, Any]

    def __post_init__(self) -> None:
        if self.timestamp.tzinfo is None:
            self.timestamp = self.timestamp.replace(tzinfo=timezone.utc)

    def text(self) -> str:
        """Decode the body as UTF-8."""
        return self.body.decode("utf-8")


@dataclass(slots=True)
class ProcessResult:
    """Outcome of processing one queue message."""

    message_id: str
    status: str
    path: str | None = None
    detail: str | None = None
