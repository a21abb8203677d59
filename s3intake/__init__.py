"""s3intake: resolve queue messages to the S3 objects they announce."""

from s3intake.queue import (
    ConfigError,
    MessageFormat,
    ParseError,
    SQSInput,
    SQSInputConfig,
    build_parser,
    resolve_format,
)

__all__ = [
    "ConfigError",
    "MessageFormat",
    "ParseError",
    "SQSInput",
    "SQSInputConfig",
    "build_parser",
    "resolve_format",
]
