"""
API module.
Contains the FastAPI application, routes, and the WebSocket change broadcast.
"""

from jobqueue.api.main import create_app, run

__all__ = ["create_app", "run"]
