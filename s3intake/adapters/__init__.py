"""Queue adapter implementations."""

from s3intake.adapters.dependencies import ensure_adapter_dependency
from s3intake.adapters.mock import MockQueueAdapter
from s3intake.adapters.sqs import SQSQueueAdapter

__all__ = ["MockQueueAdapter", "SQSQueueAdapter", "ensure_adapter_dependency"]
