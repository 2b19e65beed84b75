"""Queues delivering worker tile results back to the backend.

Delivery is at-least-once: a received message stays in flight until it is
acknowledged, and ``release`` hands it back for redelivery.
"""
from __future__ import annotations

import itertools
import json
import threading
from collections import deque
from dataclasses import dataclass, replace
from typing import Any, Protocol

from analysis_backend.core.schema import TileResult

SQS_MAX_MESSAGES = 10
SQS_MAX_WAIT_SECONDS = 20


@dataclass(frozen=True, slots=True)
class QueueMessage:
    message_id: str
    body: str
    receipt: str | None = None


class ResultQueue(Protocol):
    """Contract for result queue integrations."""

    @property
    def address(self) -> str:
        """Locator workers use to post results (embedded in every tile request)."""

    def receive(self, max_messages: int = 10, wait_seconds: float = 0.0) -> list[QueueMessage]: ...

    def acknowledge(self, message: QueueMessage) -> None: ...

    def release(self, message: QueueMessage) -> None: ...


class InMemoryResultQueue:
    """Process-local queue for offline mode, local workers and tests."""

    def __init__(self, address: str = "memory://analysis-results") -> None:
        self._address = address
        self._ready: deque[QueueMessage] = deque()
        self._in_flight: dict[str, QueueMessage] = {}
        self._condition = threading.Condition()
        self._ids = itertools.count(1)
        self._receipts = itertools.count(1)

    @property
    def address(self) -> str:
        return self._address

    def publish(self, result: TileResult | str) -> str:
        body = result if isinstance(result, str) else json.dumps(result.to_wire())
        with self._condition:
            message = QueueMessage(message_id=f"msg-{next(self._ids):08d}", body=body)
            self._ready.append(message)
            self._condition.notify_all()
        return message.message_id

    def receive(self, max_messages: int = 10, wait_seconds: float = 0.0) -> list[QueueMessage]:
        with self._condition:
            if not self._ready and wait_seconds > 0:
                self._condition.wait_for(lambda: bool(self._ready), timeout=wait_seconds)
            batch: list[QueueMessage] = []
            while self._ready and len(batch) < max_messages:
                message = replace(self._ready.popleft(), receipt=f"rcpt-{next(self._receipts):08d}")
                self._in_flight[message.receipt] = message
                batch.append(message)
            return batch

    def acknowledge(self, message: QueueMessage) -> None:
        with self._condition:
            self._in_flight.pop(message.receipt or "", None)

    def release(self, message: QueueMessage) -> None:
        with self._condition:
            if self._in_flight.pop(message.receipt or "", None) is None:
                return
            self._ready.appendleft(replace(message, receipt=None))
            self._condition.notify_all()

    @property
    def pending(self) -> int:
        with self._condition:
            return len(self._ready)

    @property
    def in_flight(self) -> int:
        with self._condition:
            return len(self._in_flight)


class SqsResultQueue:
    """Result queue backed by Amazon SQS."""

    def __init__(self, queue: str, *, region: str | None = None, client: Any | None = None) -> None:
        if client is None:
            import boto3

            client = boto3.client("sqs", region_name=region)
        self._client = client
        if queue.startswith(("http://", "https://")):
            self._url = queue
        else:
            self._url = client.get_queue_url(QueueName=queue)["QueueUrl"]

    @property
    def address(self) -> str:
        return self._url

    def receive(self, max_messages: int = 10, wait_seconds: float = 0.0) -> list[QueueMessage]:
        response = self._client.receive_message(
            QueueUrl=self._url,
            MaxNumberOfMessages=max(1, min(max_messages, SQS_MAX_MESSAGES)),
            WaitTimeSeconds=int(min(wait_seconds, SQS_MAX_WAIT_SECONDS)),
        )
        return [
            QueueMessage(
                message_id=item["MessageId"],
                body=item["Body"],
                receipt=item["ReceiptHandle"],
            )
            for item in response.get("Messages", [])
        ]

    def acknowledge(self, message: QueueMessage) -> None:
        self._client.delete_message(QueueUrl=self._url, ReceiptHandle=message.receipt)

    def release(self, message: QueueMessage) -> None:
        self._client.change_message_visibility(
            QueueUrl=self._url,
            ReceiptHandle=message.receipt,
            VisibilityTimeout=0,
        )


__all__ = ["InMemoryResultQueue", "QueueMessage", "ResultQueue", "SqsResultQueue"]
