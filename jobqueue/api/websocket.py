"""
WebSocket change broadcast.

After every submission and state transition the queue engine calls
``notify()``; connected clients then receive a snapshot of the job list and
aggregate metrics. Delivery is best-effort: a client that cannot be written
to is dropped, and nothing waits for acknowledgement.
"""

import asyncio
import json
import logging

from fastapi import WebSocket, WebSocketDisconnect

from jobqueue.constants import DEFAULT_LIST_LIMIT, WS_MESSAGE_PONG
from jobqueue.db.store import JobStore
from jobqueue.errors import StoreError
from jobqueue.observability.metrics import get_metrics
from jobqueue.types.api import JobResponse
from jobqueue.types.events import SnapshotMessage

logger = logging.getLogger(__name__)


class ChangeBroadcaster:
    """
    Manager for WebSocket subscribers.

    Notifications arriving while a broadcast is in flight are coalesced
    into one follow-up broadcast, so a burst of transitions produces at
    most two snapshots.
    """

    def __init__(self, store: JobStore, snapshot_limit: int = DEFAULT_LIST_LIMIT):
        self._store = store
        self._snapshot_limit = snapshot_limit
        self._clients: set[WebSocket] = set()
        self._lock = asyncio.Lock()
        self._dirty = False
        self._task: asyncio.Task | None = None

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def connect(self, websocket: WebSocket) -> None:
        """Accept a client and send it the current snapshot."""
        await websocket.accept()
        async with self._lock:
            self._clients.add(websocket)

        logger.info("WebSocket connected", extra={"clients": self.client_count})
        await self.send_snapshot(websocket)

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._clients.discard(websocket)
        logger.info("WebSocket disconnected", extra={"clients": self.client_count})

    def notify(self) -> None:
        """Schedule a broadcast without waiting for it."""
        if not self._clients:
            return
        self._dirty = True
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        while self._dirty:
            self._dirty = False
            await self.broadcast()

    async def snapshot(self) -> SnapshotMessage:
        """Build the current job list and metrics document."""
        jobs = await self._store.list(limit=self._snapshot_limit)
        metrics = await self._store.get_metrics()
        get_metrics().update_job_counts(metrics)
        return SnapshotMessage(
            jobs=[JobResponse.from_job(job) for job in jobs],
            metrics=metrics,
        )

    async def broadcast(self) -> None:
        """Send a fresh snapshot to every connected client."""
        async with self._lock:
            clients = list(self._clients)

        if not clients:
            return

        try:
            message = (await self.snapshot()).model_dump_json()
        except StoreError as e:
            logger.warning(f"Failed to build snapshot for broadcast: {e}")
            return

        disconnected = []
        for websocket in clients:
            try:
                await websocket.send_text(message)
            except Exception as e:
                logger.warning(f"Failed to send WebSocket update: {e}")
                disconnected.append(websocket)

        for websocket in disconnected:
            await self.disconnect(websocket)

    async def send_snapshot(self, websocket: WebSocket) -> bool:
        """
        Send the current snapshot to one client.

        Returns:
            True if sent successfully, False otherwise.
        """
        try:
            message = await self.snapshot()
            await websocket.send_text(message.model_dump_json())
            return True
        except Exception as e:
            logger.warning(f"Failed to send WebSocket snapshot: {e}")
            return False

    async def close(self) -> None:
        """Cancel any pending broadcast and close all client connections."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        async with self._lock:
            clients = list(self._clients)
            self._clients.clear()

        for websocket in clients:
            try:
                await websocket.close()
            except Exception:
                logger.debug("WebSocket already closed")


async def websocket_handler(websocket: WebSocket, broadcaster: ChangeBroadcaster) -> None:
    """
    Serve one WebSocket client.

    Clients may send ``{"action": "ping"}`` or ``{"action": "snapshot"}``;
    everything else they receive is pushed by the broadcaster.
    """
    await broadcaster.connect(websocket)

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
                action = message.get("action")

                if action == "ping":
                    await websocket.send_json({"type": WS_MESSAGE_PONG})
                elif action == "snapshot":
                    await broadcaster.send_snapshot(websocket)
                else:
                    await websocket.send_json({
                        "type": "error",
                        "message": f"Unknown action: {action}",
                    })

            except (json.JSONDecodeError, AttributeError) as e:
                await websocket.send_json({
                    "type": "error",
                    "message": f"Invalid message: {e}",
                })

    except WebSocketDisconnect:
        await broadcaster.disconnect(websocket)
