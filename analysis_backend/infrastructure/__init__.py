"""Infrastructure layer exports."""

from .broker import BrokerClient, BrokerError, HttpBrokerClient
from .documents import Bundle, DocumentStore, InMemoryDocumentStore, Project, YamlDocumentStore
from .registry import JobRegistry
from .result_queue import InMemoryResultQueue, QueueMessage, ResultQueue, SqsResultQueue
from .storage import LocalFileStorage, ObjectStorage, S3Storage

__all__ = [
    "BrokerClient",
    "BrokerError",
    "Bundle",
    "DocumentStore",
    "HttpBrokerClient",
    "InMemoryDocumentStore",
    "InMemoryResultQueue",
    "JobRegistry",
    "LocalFileStorage",
    "ObjectStorage",
    "Project",
    "QueueMessage",
    "ResultQueue",
    "S3Storage",
    "SqsResultQueue",
    "YamlDocumentStore",
]
