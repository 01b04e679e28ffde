import json
import random

import pytest

from roomdrop.core.config import ServerConfig
from roomdrop.signaling.relay import SignalingRelay
from tests.fakes import RelaySink, candidate, offer_sdp


def frame(event, data):
    return json.dumps({"event": event, "data": data})


@pytest.fixture
def relay():
    return SignalingRelay(ServerConfig(scope_relay_to_room=False))


async def connect(relay, *peer_ids):
    sinks = {}
    for peer_id in peer_ids:
        sinks[peer_id] = RelaySink()
        await relay.register(peer_id, sinks[peer_id].send)
    return sinks


async def test_register_announces_peer_id(relay):
    sinks = await connect(relay, "a")

    assert sinks["a"].events("connected") == [{"event": "connected", "data": {"peerId": "a"}}]


async def test_first_join_creates_room_without_negotiation(relay):
    sinks = await connect(relay, "a")

    await relay.join("lobby", "a")

    assert relay.registry.get("lobby").members == ["a"]
    assert sinks["a"].events("room_joined") == [
        {"event": "room_joined", "data": {"peerId": "a", "roomId": "lobby", "totalMembers": 1}}
    ]
    assert sinks["a"].events("ready_to_connect") == []
    assert sinks["a"].events("offer_needed") == []


async def test_second_join_makes_existing_member_initiator(relay):
    sinks = await connect(relay, "a", "b")
    await relay.join("lobby", "a")

    await relay.join("lobby", "b")

    assert sinks["a"].events("offer_needed") == [{"event": "offer_needed", "data": {"newPeerId": "b"}}]
    assert sinks["b"].events("ready_to_connect") == [{"event": "ready_to_connect", "data": "lobby"}]
    assert sinks["b"].events("offer_needed") == []
    assert sinks["a"].events("ready_to_connect") == []

    joined = {"event": "room_joined", "data": {"peerId": "b", "roomId": "lobby", "totalMembers": 2}}
    assert joined in sinks["a"].events("room_joined")
    assert joined in sinks["b"].events("room_joined")


async def test_third_join_asks_every_existing_member_to_offer(relay):
    sinks = await connect(relay, "a", "b", "c")
    await relay.join("lobby", "a")
    await relay.join("lobby", "b")

    await relay.join("lobby", "c")

    assert sinks["a"].events("offer_needed")[-1]["data"] == {"newPeerId": "c"}
    assert sinks["b"].events("offer_needed") == [{"event": "offer_needed", "data": {"newPeerId": "c"}}]
    assert sinks["c"].events("offer_needed") == []


async def test_join_twice_is_a_no_op(relay):
    sinks = await connect(relay, "a", "b")
    await relay.join("lobby", "a")
    await relay.join("lobby", "b")
    before = len(sinks["a"].frames)

    await relay.join("lobby", "b")

    assert relay.registry.get("lobby").members == ["a", "b"]
    assert len(sinks["a"].frames) == before
    assert len(sinks["a"].events("offer_needed")) == 1


async def test_join_into_second_room_is_ignored(relay):
    await connect(relay, "a")
    await relay.join("one", "a")

    await relay.join("two", "a")

    assert "two" not in relay.registry
    assert relay.registry.get("one").members == ["a"]


async def test_relay_forwards_payload_unmodified(relay):
    sinks = await connect(relay, "a", "b")
    sdp = offer_sdp()

    delivered = await relay.relay("offer", "b", sdp, "a")

    assert delivered is True
    assert sinks["b"].events("offer") == [{"event": "offer", "data": {"senderId": "a", "sdp": sdp}}]
    assert sinks["a"].events("offer") == []


async def test_relay_to_unknown_target_is_dropped(relay):
    sinks = await connect(relay, "a")

    delivered = await relay.relay("answer", "ghost", {"type": "answer", "sdp": "x"}, "a")

    assert delivered is False
    assert sinks["a"].events("answer") == []


async def test_permissive_relay_ignores_room_membership(relay):
    sinks = await connect(relay, "a", "b")
    await relay.join("one", "a")
    await relay.join("two", "b")

    assert await relay.relay("ice_candidate", "b", candidate(5000), "a") is True
    assert sinks["b"].events("ice_candidate")[0]["data"]["senderId"] == "a"


async def test_scoped_relay_drops_cross_room_messages():
    relay = SignalingRelay(ServerConfig(scope_relay_to_room=True))
    sinks = await connect(relay, "a", "b", "c")
    await relay.join("one", "a")
    await relay.join("one", "b")
    await relay.join("two", "c")

    assert await relay.relay("offer", "c", offer_sdp(), "a") is False
    assert await relay.relay("offer", "b", offer_sdp(), "a") is True
    assert sinks["c"].events("offer") == []
    assert len(sinks["b"].events("offer")) == 1


async def test_handle_message_dispatches_join_and_signals(relay):
    sinks = await connect(relay, "a", "b")

    await relay.handle_message("a", frame("create_or_join_room", "lobby"))
    await relay.handle_message("b", frame("create_or_join_room", "lobby"))
    await relay.handle_message("a", frame("offer", {"roomId": "lobby", "targetId": "b", "sdp": offer_sdp()}))

    assert relay.registry.get("lobby").members == ["a", "b"]
    assert sinks["b"].events("offer")[0]["data"] == {"senderId": "a", "sdp": offer_sdp()}


async def test_malformed_messages_are_dropped(relay):
    sinks = await connect(relay, "a")

    await relay.handle_message("a", "not json")
    await relay.handle_message("a", frame("teleport", {}))
    await relay.handle_message("a", frame("offer", {"sdp": offer_sdp()}))
    await relay.handle_message("a", frame("create_or_join_room", ""))

    assert len(relay.registry) == 0
    assert sinks["a"].events() == sinks["a"].events("connected")


async def test_disconnect_last_member_deletes_room(relay):
    await connect(relay, "a")
    await relay.join("lobby", "a")

    await relay.disconnect("a")

    assert "lobby" not in relay.registry
    assert "a" not in relay.connections


async def test_disconnect_notifies_remaining_members(relay):
    sinks = await connect(relay, "a", "b", "c")
    for peer_id in ("a", "b", "c"):
        await relay.join("lobby", peer_id)

    await relay.disconnect("b")

    assert relay.registry.get("lobby").members == ["a", "c"]
    update = {"event": "room_updated", "data": ["a", "c"]}
    assert sinks["a"].events("room_updated") == [update]
    assert sinks["c"].events("room_updated") == [update]
    assert sinks["b"].events("room_updated") == []


async def test_disconnect_runs_once(relay):
    sinks = await connect(relay, "a", "b")
    await relay.join("lobby", "a")
    await relay.join("lobby", "b")

    await relay.disconnect("b")
    await relay.disconnect("b")

    assert len(sinks["a"].events("room_updated")) == 1


async def test_rooms_exist_only_while_non_empty(relay):
    rng = random.Random(7)
    peers = [f"p{i}" for i in range(8)]
    rooms = ["r1", "r2", "r3"]
    connected = set()

    for _ in range(300):
        peer_id = rng.choice(peers)
        if peer_id in connected and rng.random() < 0.4:
            await relay.disconnect(peer_id)
            connected.discard(peer_id)
        else:
            if peer_id not in connected:
                await relay.register(peer_id, RelaySink().send)
                connected.add(peer_id)
            await relay.join(rng.choice(rooms), peer_id)

        for room in relay.registry:
            assert len(room.members) > 0
            assert len(set(room.members)) == len(room.members)
            assert set(room.members) <= connected
        for peer in connected:
            assert len(relay.registry.rooms_containing(peer)) <= 1


async def test_status_reports_rooms(relay):
    await connect(relay, "a", "b")
    await relay.join("lobby", "a")
    await relay.join("lobby", "b")

    status = relay.get_status()

    assert status["connections"] == 2
    assert status["rooms"] == {"lobby": 2}
    assert status["total_rooms"] == 1
