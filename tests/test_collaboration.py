import asyncio

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from formbuilder.core import security
from formbuilder.main import app
from formbuilder.services.collaboration import CollaborationHub


class FakeMember:
    """Stands in for a websocket connection"""

    def __init__(self, fail=False):
        self.received = []
        self.fail = fail

    async def send_json(self, data):
        if self.fail:
            raise ConnectionError("socket gone")
        self.received.append(data)

    def events(self):
        return [m["event"] for m in self.received]


async def wait_for(condition, timeout=1.0):
    for _ in range(int(timeout / 0.01)):
        if condition():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not reached in time")


@pytest.mark.asyncio
async def test_join_receives_stored_draft(hub: CollaborationHub, drafts):
    drafts.saved[1] = {"title": "Draft"}
    member = FakeMember()

    hub.join(1, member)

    await wait_for(lambda: member.received)
    assert member.received[0] == {"event": "initialContent", "document": {"title": "Draft"}}
    await hub.close()


@pytest.mark.asyncio
async def test_edits_reach_other_members_only(hub: CollaborationHub):
    alice, bob = FakeMember(), FakeMember()
    hub.join(1, alice)
    hub.join(1, bob)

    hub.edit(1, alice, {"title": "Edited by Alice"})

    await wait_for(lambda: "documentUpdate" in bob.events())
    assert bob.received[-1]["document"] == {"title": "Edited by Alice"}
    assert alice.events() == ["initialContent"]
    await hub.close()


@pytest.mark.asyncio
async def test_edits_are_saved_after_a_quiet_period(hub: CollaborationHub, drafts):
    member = FakeMember()
    hub.join(1, member)

    hub.edit(1, member, {"v": 1})
    hub.edit(1, member, {"v": 2})
    assert 1 not in drafts.saved

    await wait_for(lambda: drafts.saved.get(1) == {"v": 2})
    assert 1 in hub.rooms
    await hub.close()


@pytest.mark.asyncio
async def test_last_member_leaving_saves_and_closes_room(drafts):
    # Ohne Ruhephase würde nie gespeichert
    hub = CollaborationHub(drafts.load, drafts.persist, save_delay=60)
    member = FakeMember()
    hub.join(7, member)
    hub.edit(7, member, {"title": "Unsaved"})

    hub.leave(7, member)

    await wait_for(lambda: 7 not in hub.rooms)
    assert drafts.saved[7] == {"title": "Unsaved"}


@pytest.mark.asyncio
async def test_broadcast_delivers_server_events(hub: CollaborationHub):
    member = FakeMember()
    hub.join(3, member)

    hub.broadcast(3, "formUpdated", {"revision_id": "v1.1"})

    await wait_for(lambda: "formUpdated" in member.events())
    assert member.received[-1]["data"] == {"revision_id": "v1.1"}
    await hub.close()


@pytest.mark.asyncio
async def test_broadcast_to_empty_room_is_ignored(hub: CollaborationHub):
    hub.broadcast(3, "formUpdated", {})
    assert hub.rooms == {}


@pytest.mark.asyncio
async def test_failing_member_is_dropped(hub: CollaborationHub):
    healthy, broken = FakeMember(), FakeMember(fail=True)
    hub.join(2, healthy)
    hub.join(2, broken)

    hub.edit(2, healthy, {"title": "x"})
    hub.broadcast(2, "formUpdated", {})

    await wait_for(lambda: "formUpdated" in healthy.events())
    assert hub.rooms[2].members == {healthy}
    await hub.close()


@pytest.mark.asyncio
async def test_close_flushes_pending_edits(hub: CollaborationHub, drafts):
    member = FakeMember()
    hub.join(5, member)
    await wait_for(lambda: member.received)
    hub.edit(5, member, {"title": "Pending"})
    await wait_for(lambda: hub.rooms[5].document == {"title": "Pending"})

    await hub.close()

    assert drafts.saved[5] == {"title": "Pending"}
    assert hub.rooms == {}


def test_websocket_requires_token():
    with TestClient(app) as client:
        with client.websocket_connect("/api/v1/forms/1/collaborate") as websocket:
            with pytest.raises(WebSocketDisconnect) as exc_info:
                websocket.receive_json()
    assert exc_info.value.code == 4401


def test_websocket_requires_edit_role():
    token = security.create_access_token(424242)
    with TestClient(app) as client:
        with client.websocket_connect(f"/api/v1/forms/1/collaborate?token={token}") as websocket:
            with pytest.raises(WebSocketDisconnect) as exc_info:
                websocket.receive_json()
    assert exc_info.value.code == 4403
