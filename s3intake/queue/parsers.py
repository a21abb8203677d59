"""Message parsers that resolve a queue payload to an S3 path."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any

from jmespath.exceptions import JMESPathError

from s3intake.queue.formats import CompiledFormat, MessageFormat, resolve_format

SNS_MESSAGE_FIELD = "Message"


class ParseError(ValueError):
    """Raised when a queue message cannot be resolved to a path."""


def _load_json(payload: str) -> Any:
    try:
        return json.loads(payload)
    except ValueError as exc:
        raise ParseError(f"Failed to parse JSON payload: {exc}") from exc
    except RecursionError as exc:
        raise ParseError("JSON payload is nested too deeply") from exc


class MessageParser(ABC):
    """Base parser contract for queue message payloads."""

    message_format: MessageFormat

    @abstractmethod
    def parse(self, payload: str) -> str:
        """Return the S3 path referenced by the payload."""


class PlainMessageParser(MessageParser):
    """The payload is the path."""

    message_format = MessageFormat.PLAIN

    def parse(self, payload: str) -> str:
        return payload


class SNSMessageParser(MessageParser):
    """Read the path from the ``Message`` field of an SNS notification."""

    message_format = MessageFormat.SNS

    def parse(self, payload: str) -> str:
        parsed = _load_json(payload)
        if not isinstance(parsed, dict):
            raise ParseError("SNS payload must decode to an object")
        if SNS_MESSAGE_FIELD not in parsed:
            raise ParseError(f"SNS payload has no {SNS_MESSAGE_FIELD!r} field")
        message = parsed[SNS_MESSAGE_FIELD]
        if not isinstance(message, str):
            raise ParseError(
                f"SNS {SNS_MESSAGE_FIELD!r} field must be a string, got {type(message).__name__}"
            )
        return message


class ExpressionMessageParser(MessageParser):
    """Evaluate a precompiled JMESPath expression against a JSON payload."""

    def __init__(self, compiled: CompiledFormat) -> None:
        if compiled.compiled is None or compiled.expression is None:
            raise ValueError(f"Message format {compiled.message_format.value!r} has no compiled expression")
        self.message_format = compiled.message_format
        self.expression = compiled.expression
        self._compiled = compiled.compiled

    def parse(self, payload: str) -> str:
        data = _load_json(payload)
        try:
            result = self._compiled.search(data)
        except JMESPathError as exc:
            raise ParseError(f"Expression {self.expression!r} failed: {exc}") from exc
        except RecursionError as exc:
            raise ParseError(f"Expression {self.expression!r} exceeded the nesting limit") from exc
        if result is None:
            raise ParseError(f"Expression {self.expression!r} matched nothing")
        if not isinstance(result, str):
            raise ParseError(
                f"Expression {self.expression!r} must yield a string, got {type(result).__name__}"
            )
        return result


def create_parser(compiled: CompiledFormat) -> MessageParser:
    """Build the parser for an already resolved message format."""
    if compiled.message_format is MessageFormat.PLAIN:
        return PlainMessageParser()
    if compiled.message_format is MessageFormat.SNS:
        return SNSMessageParser()
    return ExpressionMessageParser(compiled)


def build_parser(message_format: str, expression: str | None = None) -> MessageParser:
    """Resolve the format configuration and build its parser in one step."""
    return create_parser(resolve_format(message_format, expression))
