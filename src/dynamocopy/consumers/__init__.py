"""
Page consumers: where scanned pages go.

- PageConsumer: the submit/shutdown contract
- TableWriteConsumer: rate-limited batch writes into a destination table
- BoundedQueueConsumer: bounded hand-off to an external reader
"""

from dynamocopy.consumers.dynamodb import TableWriteConsumer
from dynamocopy.consumers.interface import PageConsumer, completed_future
from dynamocopy.consumers.queue import BoundedQueueConsumer, PageQueue

__all__ = [
    "PageConsumer",
    "completed_future",
    "TableWriteConsumer",
    "BoundedQueueConsumer",
    "PageQueue",
]
