"""SQS queue adapter implementation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import AsyncExitStack
from datetime import datetime, timezone
from typing import Any

from s3intake.adapters.dependencies import ensure_adapter_dependency
from s3intake.queue.models import RawMessage
from s3intake.queue.security import SensitiveDataLogFilter

logger = logging.getLogger(__name__)
logger.addFilter(SensitiveDataLogFilter())

DLQ_REASON_ATTRIBUTE = "x-dlq-reason"


def _import_aioboto3() -> Any:
    """Import aioboto3 lazily so the optional dependency is only needed at runtime."""
    ensure_adapter_dependency("sqs")
    import aioboto3  # type: ignore[import-not-found]

    return aioboto3


class SQSQueueAdapter:
    """Queue adapter polling every SQS queue whose name starts with a configured prefix."""

    def __init__(
        self,
        *,
        queue_prefixes: Sequence[str],
        region: str = "us-west-2",
        max_messages: int = 10,
        wait_time_seconds: int = 20,
        dlq_queue_url: str | None = None,
        session: Any | None = None,
        client: Any | None = None,
    ) -> None:
        self.queue_prefixes = tuple(queue_prefixes)
        self.region = region
        self.max_messages = max_messages
        self.wait_time_seconds = wait_time_seconds
        self.dlq_queue_url = dlq_queue_url

        self._session = session
        self._client = client
        self._exit_stack: AsyncExitStack | None = None
        self._queue_urls: list[str] = []
        self._connected = False
        self._closed = False

    @classmethod
    def from_config(cls, config: Any, **kwargs: Any) -> SQSQueueAdapter:
        """Build an adapter from an SQSInputConfig."""
        return cls(
            queue_prefixes=config.queue_prefixes,
            region=config.aws_region,
            max_messages=config.max_messages,
            wait_time_seconds=config.wait_time_seconds,
            dlq_queue_url=config.dlq_queue_url,
            **kwargs,
        )

    @property
    def queue_urls(self) -> list[str]:
        return list(self._queue_urls)

    async def connect(self) -> None:
        """Open the SQS client and discover queue URLs by prefix."""
        if self._client is None:
            session = self._session or _import_aioboto3().Session()
            self._exit_stack = AsyncExitStack()
            self._client = await self._exit_stack.enter_async_context(
                session.client("sqs", region_name=self.region)
            )

        urls: list[str] = []
        for prefix in self.queue_prefixes:
            response = await self._client.list_queues(QueueNamePrefix=prefix)
            for url in response.get("QueueUrls", []):
                if url not in urls:
                    urls.append(url)
        if not urls:
            raise RuntimeError(f"No SQS queue matches prefixes {list(self.queue_prefixes)} in {self.region}")
        self._queue_urls = urls
        self._connected = True
        self._closed = False
        logger.info("Polling %s SQS queue(s): %s", len(urls), ", ".join(urls))

    async def consume(self) -> AsyncIterator[RawMessage]:
        """Long-poll the discovered queues and yield received messages."""
        if self._client is None:
            return
        while self._connected and not self._closed:
            received = 0
            for queue_url in self._queue_urls:
                response = await self._client.receive_message(
                    QueueUrl=queue_url,
                    MaxNumberOfMessages=self.max_messages,
                    WaitTimeSeconds=self.wait_time_seconds,
                    AttributeNames=["All"],
                    MessageAttributeNames=["All"],
                )
                for item in response.get("Messages", []):
                    received += 1
                    yield self._to_raw_message(queue_url, item)
                if not self._connected or self._closed:
                    return
            if received == 0:
                await asyncio.sleep(0)

    async def ack(self, message: RawMessage) -> None:
        """Delete a processed message from its queue."""
        if self._client is None:
            return
        await self._client.delete_message(
            QueueUrl=message.metadata["queue_url"],
            ReceiptHandle=message.metadata["receipt_handle"],
        )

    async def nack(self, message: RawMessage, requeue: bool = False) -> None:
        """Make the message visible again when requeue is set; otherwise leave it to the redrive policy."""
        if self._client is None or not requeue:
            return
        await self._client.change_message_visibility(
            QueueUrl=message.metadata["queue_url"],
            ReceiptHandle=message.metadata["receipt_handle"],
            VisibilityTimeout=0,
        )

    async def send_to_dlq(self, message: RawMessage, reason: str) -> None:
        """Forward a failed message to the configured DLQ and delete the original."""
        if self._client is None:
            return
        if not self.dlq_queue_url:
            logger.warning(
                "No DLQ configured; message %s left for the queue redrive policy: %s",
                message.message_id,
                reason,
            )
            return
        attributes = {
            key: {"DataType": "String", "StringValue": value} for key, value in message.headers.items() if value
        }
        attributes[DLQ_REASON_ATTRIBUTE] = {"DataType": "String", "StringValue": reason or "unknown"}
        await self._client.send_message(
            QueueUrl=self.dlq_queue_url,
            MessageBody=message.body.decode("utf-8", errors="replace"),
            MessageAttributes=attributes,
        )
        await self.ack(message)

    async def close(self) -> None:
        """Close the SQS client when this adapter opened it."""
        self._connected = False
        self._closed = True
        if self._exit_stack is not None:
            await self._exit_stack.aclose()
            self._exit_stack = None
            self._client = None

    async def health_check(self) -> bool:
        """Return adapter connection health."""
        return self._connected and not self._closed and self._client is not None

    @staticmethod
    def _decode_attributes(attributes: dict[str, Any] | None) -> dict[str, str]:
        if not attributes:
            return {}
        decoded: dict[str, str] = {}
        for key, value in attributes.items():
            if isinstance(value, dict) and isinstance(value.get("StringValue"), str):
                decoded[key] = value["StringValue"]
        return decoded

    def _to_raw_message(self, queue_url: str, item: dict[str, Any]) -> RawMessage:
        attributes = item.get("Attributes") or {}
        sent_ms = attributes.get("SentTimestamp")
        if sent_ms is not None:
            timestamp = datetime.fromtimestamp(int(sent_ms) / 1000, tz=timezone.utc)
        else:
            timestamp = datetime.now(timezone.utc)
        body = item.get("Body") or ""
        return RawMessage(
            message_id=item["MessageId"],
            body=body.encode("utf-8"),
            headers=self._decode_attributes(item.get("MessageAttributes")),
            timestamp=timestamp,
            metadata={
                "queue_url": queue_url,
                "receipt_handle": item["ReceiptHandle"],
                "receive_count": int(attributes.get("ApproximateReceiveCount", 1)),
            },
        )
