"""In-memory queue adapter for local testing and CI."""

from __future__ import annotations

import asyncio
import itertools
from collections import deque
from collections.abc import AsyncIterator
from datetime import datetime, timezone

from s3intake.queue.models import RawMessage


class MockQueueAdapter:
    """In-memory adapter mimicking SQS receive/delete/redrive for tests.

    ``consume()`` drains what is currently queued and returns, so workers
    finish once the queue is empty. Requeued messages come back with an
    incremented ``receive_count`` in their metadata.
    """

    def __init__(self, queue_name: str = "mock-queue") -> None:
        self.queue_name = queue_name
        self._pending: deque[RawMessage] = deque()
        self._ids = itertools.count(1)
        self._deleted: list[str] = []
        self._nacked: list[tuple[str, bool]] = []
        self._dead_letters: list[tuple[str, str]] = []
        self._connected = False
        self._closed = False

    def put(
        self,
        body: str | bytes,
        *,
        message_id: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> RawMessage:
        """Queue a message body and return the RawMessage that will be delivered."""
        message_id = message_id or f"{self.queue_name}-{next(self._ids)}"
        message = RawMessage(
            message_id=message_id,
            body=body.encode("utf-8") if isinstance(body, str) else body,
            headers=dict(headers or {}),
            timestamp=datetime.now(timezone.utc),
            metadata={"queue_url": f"mock://{self.queue_name}", "receipt_handle": message_id, "receive_count": 0},
        )
        self._pending.append(message)
        return message

    async def connect(self) -> None:
        self._connected = True
        self._closed = False

    async def consume(self) -> AsyncIterator[RawMessage]:
        while self._connected and not self._closed and self._pending:
            message = self._pending.popleft()
            message.metadata["receive_count"] = int(message.metadata.get("receive_count", 0)) + 1
            yield message
        await asyncio.sleep(0)

    async def ack(self, message: RawMessage) -> None:
        self._deleted.append(message.message_id)

    async def nack(self, message: RawMessage, requeue: bool = False) -> None:
        self._nacked.append((message.message_id, requeue))
        if requeue:
            self._pending.append(message)

    async def send_to_dlq(self, message: RawMessage, reason: str) -> None:
        self._dead_letters.append((message.message_id, reason))

    async def close(self) -> None:
        self._closed = True
        self._connected = False

    async def health_check(self) -> bool:
        return self._connected and not self._closed

    def get_acked(self) -> list[str]:
        return list(self._deleted)

    def get_nacked(self) -> list[tuple[str, bool]]:
        return list(self._nacked)

    def get_dlq(self) -> list[tuple[str, str]]:
        return list(self._dead_letters)

    def pending_count(self) -> int:
        return len(self._pending)
