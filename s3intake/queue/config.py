"""SQS input configuration and validation helpers."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, cast

import yaml  # type: ignore[import-untyped]

from s3intake.queue.formats import CompiledFormat, ConfigError, MessageFormat, resolve_format

AckPolicy = Literal["ack", "nack", "requeue", "dlq"]
VALID_ACK_POLICIES: set[str] = {"ack", "nack", "requeue", "dlq"}
MAX_RECEIVE_MESSAGES = 10
MAX_WAIT_TIME_SECONDS = 20


@dataclass(frozen=True, slots=True)
class SQSInputConfig:
    """SQS input runtime configuration."""

    queue_prefixes: tuple[str, ...] = ()
    aws_region: str = "us-west-2"
    message_format: str = MessageFormat.SNS.value
    message_expression: str = ""
    file_path_filter: str | None = None
    concurrency: int = 1
    ack_policy: AckPolicy = "ack"
    max_retries: int = 0
    retry_backoff_base: float = 1.0
    retry_backoff_multiplier: float = 2.0
    max_messages: int = MAX_RECEIVE_MESSAGES
    wait_time_seconds: int = MAX_WAIT_TIME_SECONDS
    dlq_queue_url: str | None = None

    def compile_format(self) -> CompiledFormat:
        """Resolve message_format/message_expression into parser state."""
        return resolve_format(self.message_format, self.message_expression)


def validate_config(
    config: SQSInputConfig,
    *,
    require_queues: bool = False,
    include_format: bool = True,
) -> list[str]:
    """Validate SQS input configuration and return error messages."""
    errors: list[str] = []

    if require_queues and not any(prefix.strip() for prefix in config.queue_prefixes):
        errors.append("queue_prefixes must list at least one prefix")
    if not config.aws_region.strip():
        errors.append("aws_region is required")
    if config.concurrency <= 0:
        errors.append("concurrency must be positive")
    if config.max_retries < 0:
        errors.append("max_retries must be non-negative")
    if config.retry_backoff_base <= 0:
        errors.append("retry_backoff_base must be positive")
    if config.retry_backoff_multiplier < 1.0:
        errors.append("retry_backoff_multiplier must be >= 1")
    if not 1 <= config.max_messages <= MAX_RECEIVE_MESSAGES:
        errors.append(f"max_messages must be between 1 and {MAX_RECEIVE_MESSAGES}")
    if not 0 <= config.wait_time_seconds <= MAX_WAIT_TIME_SECONDS:
        errors.append(f"wait_time_seconds must be between 0 and {MAX_WAIT_TIME_SECONDS}")
    if config.ack_policy not in VALID_ACK_POLICIES:
        errors.append(f"ack_policy must be one of {sorted(VALID_ACK_POLICIES)}")
    if config.file_path_filter:
        try:
            re.compile(config.file_path_filter)
        except re.error as exc:
            errors.append(f"file_path_filter is not a valid regular expression: {exc}")
    if include_format:
        try:
            config.compile_format()
        except ConfigError as exc:
            errors.append(str(exc))

    return errors


_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def _replace_env_vars(value: Any) -> Any:
    """Recursively replace ${ENV_VAR} placeholders using process env."""
    if isinstance(value, dict):
        return {k: _replace_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_replace_env_vars(v) for v in value]
    if not isinstance(value, str):
        return value

    def _lookup(match: re.Match[str]) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_PATTERN.sub(_lookup, value)


def _require_str(config_map: dict[str, Any], key: str, default: str) -> str:
    value = config_map.get(key, default)
    if value is None:
        return default
    return str(value)


def _optional_str(config_map: dict[str, Any], key: str) -> str | None:
    value = config_map.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _require_int(config_map: dict[str, Any], key: str, default: int) -> int:
    value = config_map.get(key, default)
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer") from exc


def _require_float(config_map: dict[str, Any], key: str, default: float) -> float:
    value = config_map.get(key, default)
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be a number") from exc


def _coerce_prefixes(config_map: dict[str, Any]) -> tuple[str, ...]:
    value = config_map.get("queue_prefixes")
    if value is None:
        return ()
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, list):
        items = [str(item) for item in value]
    else:
        raise ConfigError("queue_prefixes must be a list or a comma-separated string")
    return tuple(item.strip() for item in items if item.strip())


def load_sqs_input_config(config_path: str | Path) -> SQSInputConfig:
    """Load SQS input config from a YAML file and validate it."""
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML at {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError("SQS input config root must be a mapping")

    config_map = raw.get("sqs_input", raw)
    if not isinstance(config_map, dict):
        raise ConfigError("sqs_input section must be a mapping")
    config_dict = cast(dict[str, Any], _replace_env_vars(config_map))

    config = SQSInputConfig(
        queue_prefixes=_coerce_prefixes(config_dict),
        aws_region=_require_str(config_dict, "aws_region", "us-west-2"),
        message_format=_require_str(config_dict, "message_format", MessageFormat.SNS.value),
        message_expression=_require_str(config_dict, "message_expression", ""),
        file_path_filter=_optional_str(config_dict, "file_path_filter"),
        concurrency=_require_int(config_dict, "concurrency", 1),
        ack_policy=cast(AckPolicy, _require_str(config_dict, "ack_policy", "ack")),
        max_retries=_require_int(config_dict, "max_retries", 0),
        retry_backoff_base=_require_float(config_dict, "retry_backoff_base", 1.0),
        retry_backoff_multiplier=_require_float(config_dict, "retry_backoff_multiplier", 2.0),
        max_messages=_require_int(config_dict, "max_messages", MAX_RECEIVE_MESSAGES),
        wait_time_seconds=_require_int(config_dict, "wait_time_seconds", MAX_WAIT_TIME_SECONDS),
        dlq_queue_url=_optional_str(config_dict, "dlq_queue_url"),
    )

    errors = validate_config(config)
    if errors:
        raise ConfigError(f"Invalid SQS input config: {'; '.join(errors)}")
    return config
