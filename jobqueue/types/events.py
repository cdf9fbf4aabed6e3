"""
Event type definitions for the change broadcast.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from jobqueue.constants import WS_MESSAGE_SNAPSHOT
from jobqueue.db.models import utcnow
from jobqueue.types.api import JobResponse
from jobqueue.types.job import QueueMetrics


class SnapshotMessage(BaseModel):
    """
    Full queue state pushed to subscribers after every change.

    Subscribers that miss a push can fetch the same document on demand.
    """

    type: str = WS_MESSAGE_SNAPSHOT
    jobs: list[JobResponse]
    metrics: QueueMetrics
    timestamp: datetime = Field(default_factory=utcnow)
