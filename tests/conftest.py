"""Shared fixtures for s3intake tests."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import pytest


def s3_event_notification(bucket: str = "mybucket", key: str = "path/to/file.csv") -> dict[str, Any]:
    """Build an S3 ObjectCreated event notification envelope with one record."""
    return {
        "Records": [
            {
                "eventVersion": "2.1",
                "eventSource": "aws:s3",
                "awsRegion": "us-west-2",
                "eventTime": "2021-08-29T11:52:17.371Z",
                "eventName": "ObjectCreated:Put",
                "userIdentity": {"principalId": "REDACTED"},
                "requestParameters": {"sourceIPAddress": "172.18.206.6"},
                "responseElements": {
                    "x-amz-request-id": "REDACTED",
                    "x-amz-id-2": "REDACTEDREDACTEDREDACTEDREDACTEDREDACTED",
                },
                "s3": {
                    "s3SchemaVersion": "1.0",
                    "configurationId": "tf-s3-topic-20210825REDACTED",
                    "bucket": {
                        "name": bucket,
                        "ownerIdentity": {"principalId": "A3SX25GZ0Y2AT2"},
                        "arn": f"arn:aws:s3:::{bucket}",
                    },
                    "object": {
                        "key": key,
                        "size": 88190,
                        "eTag": "9103b07ce4308641b8b7dd6491155eae",
                        "sequencer": "00612B74F551DAD52A",
                    },
                },
            }
        ]
    }


@pytest.fixture
def make_s3_event() -> Callable[..., dict[str, Any]]:
    return s3_event_notification


@pytest.fixture
def s3_event_body() -> str:
    return json.dumps(s3_event_notification(key="path/to/a/csv/file/in/a/bucket/file.csv.log.zst"), indent=2)
