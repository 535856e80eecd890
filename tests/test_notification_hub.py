import pytest

from app.core.websocket_manager import NotificationHub
from app.schemas.event_schema import JobDeletedEvent, JobStatusChangedEvent
from app.services.notification_service import NotificationService


class FakeSocket:
    def __init__(self, fail=False):
        self.accepted = False
        self.closed = False
        self.fail = fail
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_json(self, message):
        if self.fail:
            raise RuntimeError("connection reset")
        self.sent.append(message)

    async def close(self):
        self.closed = True


@pytest.mark.asyncio
async def test_notify_user_reaches_every_socket_of_that_user():
    hub = NotificationHub()
    tab_a, tab_b, other = FakeSocket(), FakeSocket(), FakeSocket()
    await hub.connect("u1", tab_a)
    await hub.connect("u1", tab_b)
    await hub.connect("u2", other)

    await hub.notify_user("u1", "new-proposal", {"jobId": "j1"})

    assert tab_a.accepted and tab_b.accepted
    assert tab_a.sent == [{"event": "new-proposal", "data": {"jobId": "j1"}}]
    assert tab_b.sent == tab_a.sent
    assert other.sent == []


@pytest.mark.asyncio
async def test_notify_offline_user_is_a_no_op():
    hub = NotificationHub()
    await hub.notify_user("nobody", "new-proposal", {})
    assert hub.connection_count == 0


@pytest.mark.asyncio
async def test_broadcast_drops_broken_sockets():
    hub = NotificationHub()
    healthy, broken = FakeSocket(), FakeSocket(fail=True)
    await hub.connect("u1", healthy)
    await hub.connect("u2", broken)

    await hub.broadcast("job-deleted", {"jobId": "j1"})

    assert healthy.sent == [{"event": "job-deleted", "data": {"jobId": "j1"}}]
    assert hub.connection_count == 1
    assert "u2" not in hub.active_connections


@pytest.mark.asyncio
async def test_disconnect_and_close():
    hub = NotificationHub()
    first, second = FakeSocket(), FakeSocket()
    await hub.connect("u1", first)
    await hub.connect("u2", second)

    hub.disconnect("u1", first)
    hub.disconnect("u1", first)
    assert hub.connection_count == 1

    await hub.close()
    assert second.closed
    assert hub.active_connections == {}


@pytest.mark.asyncio
async def test_notification_service_sends_camel_case_payload():
    hub = NotificationHub()
    socket = FakeSocket()
    await hub.connect("u1", socket)
    service = NotificationService(hub)

    await service.notify_user("u1", JobStatusChangedEvent(
        job_id="j1", job_title="Fix roof", old_status="PENDING", new_status="IN_PROGRESS", message="assigned",
    ))

    assert socket.sent == [{
        "event": "job-status-changed",
        "data": {
            "jobId": "j1",
            "jobTitle": "Fix roof",
            "oldStatus": "PENDING",
            "newStatus": "IN_PROGRESS",
            "message": "assigned",
        },
    }]


@pytest.mark.asyncio
async def test_notification_service_swallows_fanout_errors():
    class ExplodingFanout:
        async def notify_user(self, user_id, event_name, payload):
            raise RuntimeError("boom")

        async def broadcast(self, event_name, payload):
            raise RuntimeError("boom")

    service = NotificationService(ExplodingFanout())
    await service.notify_user("u1", JobDeletedEvent(job_id="j1"))
    await service.broadcast(JobDeletedEvent(job_id="j1"))
