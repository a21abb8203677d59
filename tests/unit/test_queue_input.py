from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator

import pytest

from s3intake.adapters import MockQueueAdapter
from s3intake.queue import ConfigError, ParseError, RawMessage, SQSInput, SQSInputConfig


class _RecordingHandler:
    def __init__(self, *, fail_times: int = 0, error: str = "downstream unavailable") -> None:
        self.paths: list[str] = []
        self.calls = 0
        self.fail_times = fail_times
        self.error = error

    async def __call__(self, path: str, message: RawMessage) -> None:
        self.calls += 1
        if self.fail_times > 0:
            self.fail_times -= 1
            raise RuntimeError(self.error)
        self.paths.append(path)


def _sns(path: str) -> str:
    return json.dumps({"Type": "Notification", "Message": path})


async def _flush_queue(adapter: MockQueueAdapter) -> None:
    for _ in range(50):
        if adapter.pending_count() == 0:
            break
        await asyncio.sleep(0.01)
    await asyncio.sleep(0.02)


def test_sqs_input_rejects_invalid_format_config() -> None:
    with pytest.raises(ConfigError, match="requires a non-empty expression"):
        SQSInput(config=SQSInputConfig(message_format="json"), adapter=MockQueueAdapter())


def test_sqs_input_reports_every_config_problem() -> None:
    config = SQSInputConfig(message_format="xml", concurrency=0)

    with pytest.raises(ConfigError) as exc_info:
        SQSInput(config=config, adapter=MockQueueAdapter())

    message = str(exc_info.value)
    assert "concurrency must be positive" in message
    assert "Unsupported message format" in message


def test_sqs_input_extract_uses_precompiled_format() -> None:
    sqs_input = SQSInput(
        config=SQSInputConfig(message_format="json", message_expression="Foo.Bar"),
        adapter=MockQueueAdapter(),
    )

    assert sqs_input.compiled.expression == "Foo.Bar"
    assert sqs_input.extract('{"Foo": {"Bar": "s3://b/p"}}') == "s3://b/p"
    with pytest.raises(ParseError):
        sqs_input.extract('{"Foo": {"Bar": 123456}}')


@pytest.mark.asyncio
async def test_sqs_input_lifecycle_health() -> None:
    adapter = MockQueueAdapter()
    sqs_input = SQSInput(config=SQSInputConfig(), adapter=adapter)

    await sqs_input.start()
    status = await sqs_input.health_check()
    assert status["running"] is True
    assert status["paused"] is False
    assert status["message_format"] == "sns"

    with pytest.raises(RuntimeError, match="already running"):
        await sqs_input.start()

    await sqs_input.pause()
    assert (await sqs_input.health_check())["paused"] is True
    await sqs_input.resume()
    assert (await sqs_input.health_check())["paused"] is False

    await sqs_input.stop()
    status = await sqs_input.health_check()
    assert status["running"] is False
    assert status["status"] == "unhealthy"


@pytest.mark.asyncio
async def test_sqs_input_dispatches_resolved_paths_and_acks() -> None:
    adapter = MockQueueAdapter()
    handler = _RecordingHandler()
    sqs_input = SQSInput(config=SQSInputConfig(), adapter=adapter, path_handler=handler)

    first = adapter.put(_sns("s3://bucket/a.log"))
    second = adapter.put(_sns("s3://bucket/b.log"))
    await sqs_input.start()
    await _flush_queue(adapter)
    await sqs_input.stop()

    assert handler.paths == ["s3://bucket/a.log", "s3://bucket/b.log"]
    assert adapter.get_acked() == [first.message_id, second.message_id]
    status = await sqs_input.health_check()
    assert status["processed_count"] == 2
    assert status["failed_count"] == 0


@pytest.mark.asyncio
async def test_sqs_input_parse_failure_routes_to_dlq(caplog: pytest.LogCaptureFixture) -> None:
    adapter = MockQueueAdapter()
    handler = _RecordingHandler()
    sqs_input = SQSInput(config=SQSInputConfig(), adapter=adapter, path_handler=handler)
    adapter.put("not-json", message_id="bad-1")

    caplog.set_level(logging.WARNING, logger="s3intake.queue.input")
    await sqs_input.start()
    await _flush_queue(adapter)
    await sqs_input.stop()

    assert handler.calls == 0
    assert adapter.get_acked() == []
    dlq = adapter.get_dlq()
    assert dlq[0][0] == "bad-1"
    assert "Failed to parse JSON payload" in dlq[0][1]
    assert "bad-1" in caplog.text
    assert (await sqs_input.health_check())["parse_error_count"] == 1


@pytest.mark.asyncio
async def test_sqs_input_bad_message_does_not_block_queue() -> None:
    adapter = MockQueueAdapter()
    handler = _RecordingHandler()
    sqs_input = SQSInput(
        config=SQSInputConfig(message_format="json", message_expression="Foo.Bar"),
        adapter=adapter,
        path_handler=handler,
    )
    adapter.put('{"Foo": {}}', message_id="missing")
    adapter.put('{"Foo": {"Bar": 123456}}', message_id="wrong-type")
    adapter.put('{"Foo": {"Bar": "s3://b/p"}}', message_id="good")

    await sqs_input.start()
    await _flush_queue(adapter)
    await sqs_input.stop()

    assert [item[0] for item in adapter.get_dlq()] == ["missing", "wrong-type"]
    assert adapter.get_acked() == ["good"]
    assert handler.paths == ["s3://b/p"]


@pytest.mark.asyncio
async def test_process_message_rejects_invalid_utf8_and_empty_paths() -> None:
    adapter = MockQueueAdapter()
    sqs_input = SQSInput(config=SQSInputConfig(message_format="plain"), adapter=adapter)

    undecodable = await sqs_input.process_message(adapter.put(b"\xff\xfe", message_id="bin"))
    empty = await sqs_input.process_message(adapter.put("", message_id="empty"))

    assert undecodable.status == "parse_error"
    assert "UTF-8" in (undecodable.detail or "")
    assert empty.status == "parse_error"
    assert empty.detail == "Resolved path is empty"
    assert [item[0] for item in adapter.get_dlq()] == ["bin", "empty"]


@pytest.mark.asyncio
async def test_process_message_applies_file_path_filter() -> None:
    adapter = MockQueueAdapter()
    handler = _RecordingHandler()
    sqs_input = SQSInput(
        config=SQSInputConfig(message_format="plain", file_path_filter=r"\.log\.zst$"),
        adapter=adapter,
        path_handler=handler,
    )

    kept = await sqs_input.process_message(adapter.put("s3://bucket/day=1/file.log.zst", message_id="kept"))
    skipped = await sqs_input.process_message(adapter.put("s3://bucket/day=1/_SUCCESS", message_id="skipped"))

    assert kept.status == "processed"
    assert kept.path == "s3://bucket/day=1/file.log.zst"
    assert skipped.status == "filtered"
    assert skipped.path == "s3://bucket/day=1/_SUCCESS"
    assert handler.paths == ["s3://bucket/day=1/file.log.zst"]
    assert adapter.get_acked() == ["kept", "skipped"]
    assert (await sqs_input.health_check())["filtered_count"] == 1


@pytest.mark.asyncio
async def test_process_message_s3_event_notification(s3_event_body: str) -> None:
    adapter = MockQueueAdapter()
    handler = _RecordingHandler()
    sqs_input = SQSInput(
        config=SQSInputConfig(message_format="s3::ObjectCreated"),
        adapter=adapter,
        path_handler=handler,
    )

    result = await sqs_input.process_message(adapter.put(s3_event_body, message_id="event"))

    assert result.status == "processed"
    assert handler.paths == ["s3://mybucket/path/to/a/csv/file/in/a/bucket/file.csv.log.zst"]


@pytest.mark.asyncio
async def test_process_message_retries_then_succeeds(caplog: pytest.LogCaptureFixture) -> None:
    adapter = MockQueueAdapter()
    handler = _RecordingHandler(fail_times=2)
    sqs_input = SQSInput(
        config=SQSInputConfig(message_format="plain", max_retries=2, retry_backoff_base=0.001),
        adapter=adapter,
        path_handler=handler,
    )

    caplog.set_level(logging.WARNING, logger="s3intake.queue.input")
    result = await sqs_input.process_message(adapter.put("s3://b/k", message_id="m-retry"))

    assert result.status == "processed"
    assert handler.calls == 3
    assert adapter.get_acked() == ["m-retry"]
    assert caplog.text.count("(retry ") == 2


@pytest.mark.asyncio
async def test_process_message_retry_exhausted_routes_by_ack_policy() -> None:
    adapter = MockQueueAdapter()
    handler = _RecordingHandler(fail_times=10, error="upload failed token=abc123")
    sqs_input = SQSInput(
        config=SQSInputConfig(message_format="plain", max_retries=1, retry_backoff_base=0.001, ack_policy="dlq"),
        adapter=adapter,
        path_handler=handler,
    )

    result = await sqs_input.process_message(adapter.put("s3://b/k", message_id="m-dlq"))

    assert result.status == "failed"
    assert result.path == "s3://b/k"
    assert handler.calls == 2
    assert adapter.get_acked() == []
    assert adapter.get_dlq() == [("m-dlq", "upload failed token=***")]


@pytest.mark.parametrize(
    ("ack_policy", "expected_acked", "expected_nacked"),
    [
        ("ack", ["m-1"], []),
        ("nack", [], [("m-1", False)]),
    ],
)
@pytest.mark.asyncio
async def test_process_message_failure_ack_policies(
    ack_policy: str,
    expected_acked: list[str],
    expected_nacked: list[tuple[str, bool]],
) -> None:
    adapter = MockQueueAdapter()
    sqs_input = SQSInput(
        config=SQSInputConfig(message_format="plain", ack_policy=ack_policy),  # type: ignore[arg-type]
        adapter=adapter,
        path_handler=_RecordingHandler(fail_times=1),
    )

    result = await sqs_input.process_message(adapter.put("s3://b/k", message_id="m-1"))

    assert result.status == "failed"
    assert adapter.get_acked() == expected_acked
    assert adapter.get_nacked() == expected_nacked
    assert adapter.get_dlq() == []


@pytest.mark.asyncio
async def test_sqs_input_requeue_policy_redelivers_message() -> None:
    adapter = MockQueueAdapter()
    handler = _RecordingHandler(fail_times=1)
    sqs_input = SQSInput(
        config=SQSInputConfig(message_format="plain", ack_policy="requeue"),
        adapter=adapter,
        path_handler=handler,
    )
    adapter.put("s3://b/k", message_id="m-requeue")

    await sqs_input.start()
    await _flush_queue(adapter)
    await sqs_input.stop()

    assert adapter.get_nacked() == [("m-requeue", True)]
    assert adapter.get_acked() == ["m-requeue"]
    assert handler.paths == ["s3://b/k"]


@pytest.mark.asyncio
async def test_sqs_input_concurrent_workers_share_parser() -> None:
    adapter = MockQueueAdapter()
    handler = _RecordingHandler()
    sqs_input = SQSInput(
        config=SQSInputConfig(message_format="json", message_expression="detail.path", concurrency=4),
        adapter=adapter,
        path_handler=handler,
    )
    expected = {f"s3://bucket/part-{i:03d}.json" for i in range(40)}
    for path in sorted(expected):
        adapter.put(json.dumps({"detail": {"path": path}}))

    await sqs_input.start()
    assert (await sqs_input.health_check())["active_workers"] <= 4
    await _flush_queue(adapter)
    await sqs_input.stop()

    assert sorted(handler.paths) == sorted(expected)
    assert len(adapter.get_acked()) == 40


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("message_format", "expression"),
    [("sns", ""), ("json", "Foo.Bar"), ("s3::ObjectCreated", "")],
)
async def test_process_message_deeply_nested_payload_is_parse_error(message_format: str, expression: str) -> None:
    adapter = MockQueueAdapter()
    sqs_input = SQSInput(
        config=SQSInputConfig(message_format=message_format, message_expression=expression),
        adapter=adapter,
        path_handler=_RecordingHandler(),
    )

    result = await sqs_input.process_message(adapter.put("[" * 100_000 + "]" * 100_000, message_id="deep"))

    assert result.status == "parse_error"
    assert adapter.get_dlq() == [("deep", result.detail)]
    assert adapter.get_acked() == []
    status = await sqs_input.health_check()
    assert status["parse_error_count"] == 1
    assert status["failed_count"] == 0


@pytest.mark.asyncio
async def test_sqs_input_logs_are_redacted(caplog: pytest.LogCaptureFixture) -> None:
    adapter = MockQueueAdapter()
    sqs_input = SQSInput(config=SQSInputConfig(message_format="plain"), adapter=adapter)

    caplog.set_level(logging.WARNING, logger="s3intake.queue.input")
    await sqs_input.process_message(adapter.put("", message_id="token=leaked-id"))

    assert "leaked-id" not in caplog.text
    assert "token=***" in caplog.text


class _LongPollAdapter(MockQueueAdapter):
    """Adapter whose receive call blocks like an SQS long poll and ignores close()."""

    async def consume(self) -> AsyncIterator[RawMessage]:
        while self._pending:
            yield self._pending.popleft()
        await asyncio.Event().wait()


@pytest.mark.asyncio
async def test_sqs_input_stop_cancels_workers_waiting_on_receive(caplog: pytest.LogCaptureFixture) -> None:
    adapter = _LongPollAdapter()
    sqs_input = SQSInput(config=SQSInputConfig(message_format="plain", concurrency=2), adapter=adapter)

    caplog.set_level(logging.WARNING, logger="s3intake.queue.input")
    await sqs_input.start()
    await asyncio.sleep(0.01)
    await asyncio.wait_for(sqs_input.stop(), timeout=1)

    status = await sqs_input.health_check()
    assert status["active_workers"] == 0
    assert status["failed_count"] == 0
    assert "crashed" not in caplog.text


@pytest.mark.asyncio
async def test_sqs_input_stop_lets_in_flight_message_finish() -> None:
    adapter = _LongPollAdapter()
    started = asyncio.Event()
    handled: list[str] = []

    async def slow_handler(path: str, message: RawMessage) -> None:
        started.set()
        await asyncio.sleep(0.05)
        handled.append(path)

    sqs_input = SQSInput(config=SQSInputConfig(message_format="plain"), adapter=adapter, path_handler=slow_handler)
    adapter.put("s3://b/in-flight", message_id="m-1")

    await sqs_input.start()
    await asyncio.wait_for(started.wait(), timeout=1)
    await asyncio.wait_for(sqs_input.stop(), timeout=1)

    assert handled == ["s3://b/in-flight"]
    assert adapter.get_acked() == ["m-1"]
