"""
Worker module.
Contains the task executors and the polling worker pool.
"""

from jobqueue.worker.main import Worker, WorkerPool, run

__all__ = ["Worker", "WorkerPool", "run"]
