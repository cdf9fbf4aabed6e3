"""
Unit tests for the WebSocket change broadcast.
"""

import asyncio
import json

import pytest
from fastapi import WebSocketDisconnect

from jobqueue.api.websocket import ChangeBroadcaster, websocket_handler


class FakeWebSocket:
    """In-memory stand-in for a Starlette WebSocket."""

    def __init__(self, incoming: list[str] | None = None, fail_sends: bool = False):
        self.incoming = list(incoming or [])
        self.sent: list[dict] = []
        self.accepted = False
        self.closed = False
        self.fail_sends = fail_sends

    async def accept(self) -> None:
        self.accepted = True

    async def send_text(self, data: str) -> None:
        if self.fail_sends:
            raise RuntimeError("connection reset")
        self.sent.append(json.loads(data))

    async def send_json(self, data: dict) -> None:
        await self.send_text(json.dumps(data))

    async def receive_text(self) -> str:
        if not self.incoming:
            raise WebSocketDisconnect()
        return self.incoming.pop(0)

    async def close(self) -> None:
        self.closed = True


class TestChangeBroadcaster:
    """Tests for ChangeBroadcaster."""

    @pytest.fixture
    def broadcaster(self, store) -> ChangeBroadcaster:
        return ChangeBroadcaster(store, snapshot_limit=10)

    async def test_connect_sends_snapshot(self, broadcaster: ChangeBroadcaster, make_job):
        job = await make_job()
        websocket = FakeWebSocket()

        await broadcaster.connect(websocket)

        assert websocket.accepted is True
        assert broadcaster.client_count == 1
        assert len(websocket.sent) == 1
        snapshot = websocket.sent[0]
        assert snapshot["type"] == "snapshot"
        assert [j["id"] for j in snapshot["jobs"]] == [str(job.id)]
        assert snapshot["metrics"]["pending_jobs"] == 1

    async def test_broadcast_reaches_all_clients(self, broadcaster: ChangeBroadcaster):
        clients = [FakeWebSocket(), FakeWebSocket()]
        for websocket in clients:
            await broadcaster.connect(websocket)

        await broadcaster.broadcast()

        assert [len(ws.sent) for ws in clients] == [2, 2]

    async def test_failing_client_is_dropped(self, broadcaster: ChangeBroadcaster):
        healthy = FakeWebSocket()
        await broadcaster.connect(healthy)
        broken = FakeWebSocket()
        await broadcaster.connect(broken)
        broken.fail_sends = True

        await broadcaster.broadcast()

        assert broadcaster.client_count == 1
        assert len(healthy.sent) == 2

    async def test_notify_schedules_broadcast(self, broadcaster: ChangeBroadcaster, make_job):
        websocket = FakeWebSocket()
        await broadcaster.connect(websocket)
        await make_job()

        broadcaster.notify()
        broadcaster.notify()
        await asyncio.wait_for(broadcaster._task, timeout=5)

        assert 2 <= len(websocket.sent) <= 3
        assert websocket.sent[-1]["metrics"]["total_jobs"] == 1

    async def test_notify_without_clients_is_noop(self, broadcaster: ChangeBroadcaster):
        broadcaster.notify()

        assert broadcaster._task is None

    async def test_close(self, broadcaster: ChangeBroadcaster):
        websocket = FakeWebSocket()
        await broadcaster.connect(websocket)

        await broadcaster.close()

        assert websocket.closed is True
        assert broadcaster.client_count == 0


class TestWebSocketHandler:
    """Tests for websocket_handler."""

    async def test_actions(self, store):
        broadcaster = ChangeBroadcaster(store)
        websocket = FakeWebSocket(
            incoming=[
                json.dumps({"action": "ping"}),
                json.dumps({"action": "snapshot"}),
                json.dumps({"action": "explode"}),
                "not json",
            ]
        )

        await websocket_handler(websocket, broadcaster)

        types = [message["type"] for message in websocket.sent]
        assert types == ["snapshot", "pong", "snapshot", "error", "error"]
        assert broadcaster.client_count == 0
