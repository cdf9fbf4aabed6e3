"""
Database module.
Contains database connection, models, and the job store.
"""

from jobqueue.db.connection import (
    close_db,
    create_schema,
    create_session_factory,
    get_engine,
    init_db,
)
from jobqueue.db.models import Base, Job, utcnow
from jobqueue.db.store import JobStore

__all__ = [
    "get_engine",
    "create_session_factory",
    "create_schema",
    "init_db",
    "close_db",
    "Job",
    "Base",
    "JobStore",
    "utcnow",
]
