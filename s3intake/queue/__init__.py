"""Queue message format resolution, parsers, and the SQS input runtime."""

from s3intake.queue.config import SQSInputConfig, load_sqs_input_config, validate_config
from s3intake.queue.formats import (
    DEFAULT_S3_OBJECT_CREATED_EXPRESSION,
    CompiledFormat,
    ConfigError,
    MessageFormat,
    resolve_format,
)
from s3intake.queue.input import SQSInput
from s3intake.queue.models import ProcessResult, RawMessage
from s3intake.queue.parsers import (
    ExpressionMessageParser,
    MessageParser,
    ParseError,
    PlainMessageParser,
    SNSMessageParser,
    build_parser,
    create_parser,
)
from s3intake.queue.protocols import PathHandler, QueueAdapter
from s3intake.queue.security import (
    SensitiveDataLogFilter,
    preview_payload,
    redact_error_message,
    redact_sensitive_data,
)

__all__ = [
    "DEFAULT_S3_OBJECT_CREATED_EXPRESSION",
    "CompiledFormat",
    "ConfigError",
    "ExpressionMessageParser",
    "MessageFormat",
    "MessageParser",
    "ParseError",
    "PathHandler",
    "PlainMessageParser",
    "ProcessResult",
    "QueueAdapter",
    "RawMessage",
    "SNSMessageParser",
    "SQSInput",
    "SQSInputConfig",
    "SensitiveDataLogFilter",
    "build_parser",
    "create_parser",
    "load_sqs_input_config",
    "preview_payload",
    "redact_error_message",
    "redact_sensitive_data",
    "resolve_format",
    "validate_config",
]
