"""Message format resolution: validate the configured format and compile its expression once."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

import jmespath
from jmespath.exceptions import JMESPathError
from jmespath.functions import Functions

logger = logging.getLogger(__name__)

DEFAULT_S3_OBJECT_CREATED_EXPRESSION = "Records[*].join('/',['s3:/', s3.bucket.name, s3.object.key]) | [0]"

_KNOWN_FUNCTIONS = frozenset(Functions.FUNCTION_TABLE)


class MessageFormat(str, Enum):
    """Supported queue message formats."""

    PLAIN = "plain"
    SNS = "sns"
    JSON = "json"
    S3_OBJECT_CREATED = "s3::ObjectCreated"

    @property
    def uses_expression(self) -> bool:
        return self in (MessageFormat.JSON, MessageFormat.S3_OBJECT_CREATED)


VALID_MESSAGE_FORMATS: set[str] = {item.value for item in MessageFormat}


class ConfigError(ValueError):
    """Raised when the message format configuration is invalid."""

    def __init__(
        self,
        message: str,
        *,
        message_format: str | None = None,
        expression: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message_format = message_format
        self.expression = expression
        self.cause = cause


@dataclass(frozen=True, slots=True)
class CompiledFormat:
    """Validated message format with its precompiled extraction expression."""

    message_format: MessageFormat
    expression: str | None = None
    compiled: Any | None = None


def _normalize_format(message_format: str) -> MessageFormat:
    normalized = (message_format or "").strip()
    try:
        return MessageFormat(normalized)
    except ValueError as exc:
        raise ConfigError(
            f"Unsupported message format {message_format!r}; expected one of {sorted(VALID_MESSAGE_FORMATS)}",
            message_format=message_format,
            cause=exc,
        ) from exc


def _function_names(node: Any) -> Iterator[str]:
    if not isinstance(node, dict):
        return
    if node.get("type") == "function_expression":
        yield node["value"]
    for child in node.get("children", ()):
        yield from _function_names(child)


def compile_expression(expression: str, *, message_format: str = MessageFormat.JSON.value) -> Any:
    """Compile a JMESPath expression, raising ConfigError on syntax errors and unknown functions."""
    try:
        compiled = jmespath.compile(expression)
    except JMESPathError as exc:
        raise ConfigError(
            f"Invalid expression {expression!r} for message format {message_format!r}: {exc}",
            message_format=message_format,
            expression=expression,
            cause=exc,
        ) from exc
    unknown = sorted({name for name in _function_names(compiled.parsed) if name not in _KNOWN_FUNCTIONS})
    if unknown:
        raise ConfigError(
            f"Invalid expression {expression!r} for message format {message_format!r}: "
            f"unknown function(s) {', '.join(unknown)}",
            message_format=message_format,
            expression=expression,
        )
    return compiled


def resolve_format(message_format: str, expression: str | None = None) -> CompiledFormat:
    """Validate a message format and compile its expression when the format needs one."""
    resolved = _normalize_format(message_format)
    text = (expression or "").strip()

    if not resolved.uses_expression:
        if text:
            logger.warning("Message format %s ignores expression %r", resolved.value, text)
        return CompiledFormat(message_format=resolved)

    if not text:
        if resolved is MessageFormat.S3_OBJECT_CREATED:
            text = DEFAULT_S3_OBJECT_CREATED_EXPRESSION
        else:
            raise ConfigError(
                f"Message format {resolved.value!r} requires a non-empty expression",
                message_format=resolved.value,
                expression=expression,
            )

    compiled = compile_expression(text, message_format=resolved.value)
    return CompiledFormat(message_format=resolved, expression=text, compiled=compiled)
