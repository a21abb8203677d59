"""SQS input runtime: resolves queue messages to S3 paths and hands them downstream."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

from s3intake.queue.config import SQSInputConfig, validate_config
from s3intake.queue.formats import CompiledFormat, ConfigError
from s3intake.queue.models import ProcessResult, RawMessage
from s3intake.queue.parsers import MessageParser, ParseError, create_parser
from s3intake.queue.protocols import PathHandler, QueueAdapter
from s3intake.queue.security import SensitiveDataLogFilter, preview_payload, redact_error_message

logger = logging.getLogger(__name__)
logger.addFilter(SensitiveDataLogFilter())


class SQSInput:
    """Consume queue messages, resolve each one to an S3 path and dispatch it."""

    def __init__(
        self,
        *,
        config: SQSInputConfig,
        adapter: QueueAdapter,
        path_handler: PathHandler | None = None,
    ) -> None:
        config_errors = validate_config(config, include_format=False)
        try:
            compiled = config.compile_format()
        except ConfigError as exc:
            config_errors.append(str(exc))
        if config_errors:
            raise ConfigError(f"Invalid SQSInputConfig: {'; '.join(config_errors)}")

        self.config = config
        self.adapter = adapter
        self.path_handler = path_handler
        self.compiled: CompiledFormat = compiled
        self.parser: MessageParser = create_parser(compiled)
        self._path_filter = re.compile(config.file_path_filter) if config.file_path_filter else None

        self._running = False
        self._paused = False
        self._tasks: list[asyncio.Task[Any]] = []
        self._busy_workers: set[int] = set()
        self._processed_count = 0
        self._failed_count = 0
        self._parse_error_count = 0
        self._filtered_count = 0

    def extract(self, payload: str) -> str:
        """Resolve one payload to its S3 path with the configured format."""
        return self.parser.parse(payload)

    def resolve(self, message: RawMessage) -> str:
        """Decode a raw queue message and resolve it to a non-empty path."""
        try:
            payload = message.text()
        except UnicodeDecodeError as exc:
            raise ParseError(f"Message body is not valid UTF-8: {exc}") from exc
        path = self.extract(payload)
        if not path:
            raise ParseError("Resolved path is empty")
        return path

    async def start(self) -> None:
        """Start queue consumption workers."""
        if self._running:
            raise RuntimeError("SQSInput already running")
        self._running = True
        self._paused = False
        await self.adapter.connect()
        self._tasks = [
            asyncio.create_task(self._consume_loop(worker_id=i), name=f"sqs-input-worker-{i}")
            for i in range(self.config.concurrency)
        ]

    async def stop(self) -> None:
        """Stop workers and close the adapter connection.

        Workers idle in a receive poll are cancelled. A worker in the middle of
        a message finishes it (ack, DLQ or ack policy) before exiting.
        """
        self._running = False
        self._paused = False
        for worker_id, task in enumerate(self._tasks):
            if worker_id not in self._busy_workers:
                task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks = []
        await self.adapter.close()

    async def pause(self) -> None:
        """Pause message processing without disconnecting adapter."""
        self._paused = True

    async def resume(self) -> None:
        """Resume message processing."""
        self._paused = False

    async def health_check(self) -> dict[str, Any]:
        """Return runtime health and basic counters."""
        adapter_healthy = await self.adapter.health_check()
        active_workers = len([task for task in self._tasks if not task.done()])
        return {
            "status": "healthy" if self._running and adapter_healthy else "unhealthy",
            "running": self._running,
            "paused": self._paused,
            "adapter_healthy": adapter_healthy,
            "active_workers": active_workers,
            "message_format": self.compiled.message_format.value,
            "processed_count": self._processed_count,
            "failed_count": self._failed_count,
            "parse_error_count": self._parse_error_count,
            "filtered_count": self._filtered_count,
        }

    async def _consume_loop(self, worker_id: int) -> None:
        """Consume queue messages until stopped."""
        logger.debug("SQS input worker %s started", worker_id)
        try:
            async for raw_message in self.adapter.consume():
                if not self._running:
                    break
                while self._paused and self._running:
                    await asyncio.sleep(0.01)
                if not self._running:
                    break
                self._busy_workers.add(worker_id)
                try:
                    await self.process_message(raw_message)
                except Exception:
                    self._failed_count += 1
                    logger.exception("SQS input worker %s failed to process message", worker_id)
                finally:
                    self._busy_workers.discard(worker_id)
                if not self._running:
                    break
                await asyncio.sleep(0)
        except Exception:
            self._failed_count += 1
            logger.exception("SQS input worker %s consume loop crashed", worker_id)
        finally:
            logger.debug("SQS input worker %s stopped", worker_id)

    async def process_message(self, raw_message: RawMessage) -> ProcessResult:
        """Resolve and dispatch one message; parse errors are routed to the DLQ."""
        try:
            path = self.resolve(raw_message)
        except ParseError as exc:
            self._parse_error_count += 1
            reason = redact_error_message(exc)
            logger.warning(
                "Queue message %s could not be resolved to a path: %s (payload: %s)",
                raw_message.message_id,
                reason,
                preview_payload(raw_message.body),
            )
            await self.adapter.send_to_dlq(raw_message, reason=reason)
            return ProcessResult(message_id=raw_message.message_id, status="parse_error", detail=reason)

        if self._path_filter is not None and not self._path_filter.search(path):
            self._filtered_count += 1
            logger.debug("Skipping %s from message %s: filtered out", path, raw_message.message_id)
            await self.adapter.ack(raw_message)
            return ProcessResult(message_id=raw_message.message_id, status="filtered", path=path)

        try:
            await self._dispatch(path, raw_message)
        except Exception as exc:
            self._failed_count += 1
            await self._handle_processing_error(raw_message, exc)
            return ProcessResult(
                message_id=raw_message.message_id,
                status="failed",
                path=path,
                detail=redact_error_message(exc),
            )

        await self.adapter.ack(raw_message)
        self._processed_count += 1
        return ProcessResult(message_id=raw_message.message_id, status="processed", path=path)

    async def _dispatch(self, path: str, raw_message: RawMessage) -> None:
        """Hand the path to the downstream handler, retrying with exponential backoff."""
        if self.path_handler is None:
            return
        attempt = 0
        while True:
            try:
                await self.path_handler(path, raw_message)
                return
            except Exception as exc:
                if attempt >= self.config.max_retries:
                    raise
                delay = self.config.retry_backoff_base * (self.config.retry_backoff_multiplier**attempt)
                attempt += 1
                logger.warning(
                    "Path handler failed for message %s (retry %s/%s in %.3fs): %s",
                    raw_message.message_id,
                    attempt,
                    self.config.max_retries,
                    delay,
                    redact_error_message(exc),
                )
                await asyncio.sleep(delay)

    async def _handle_processing_error(self, raw_message: RawMessage, error: Exception) -> None:
        """Handle downstream failures by configured ack policy."""
        reason = redact_error_message(error)
        logger.warning("Queue message %s failed: %s", raw_message.message_id, reason)
        policy = self.config.ack_policy
        if policy == "ack":
            await self.adapter.ack(raw_message)
            return
        if policy == "nack":
            await self.adapter.nack(raw_message, requeue=False)
            return
        if policy == "requeue":
            await self.adapter.nack(raw_message, requeue=True)
            return
        await self.adapter.send_to_dlq(raw_message, reason=reason)
