"""
AWS SQS helper: send order status change messages. Used when SQS_STATUS_QUEUE_URL is set.
"""
import asyncio
import json
from typing import Any

import boto3

from juicebar.config import settings

_sqs_client: Any = None


def _get_client():
    global _sqs_client
    if _sqs_client is None:
        _sqs_client = boto3.client("sqs", region_name=settings.aws_region)
    return _sqs_client


async def send_message(body: dict) -> None:
    """Send message to the status queue (run boto3 in thread to not block)."""
    client = _get_client()
    await asyncio.to_thread(
        client.send_message,
        QueueUrl=settings.sqs_status_queue_url,
        MessageBody=json.dumps(body),
        MessageAttributes={
            "event_type": {"DataType": "String", "StringValue": body["event_type"]},
        },
    )
