import pytest

from roomdrop.core.config import ServerConfig
from roomdrop.signaling.relay import SignalingRelay
from roomdrop.signaling.server import create_app


@pytest.fixture
async def client(aiohttp_client):
    app = create_app(ServerConfig(relay_path="/ws", scope_relay_to_room=False))
    return await aiohttp_client(app)


async def receive_event(ws, name):
    while True:
        frame = await ws.receive_json(timeout=2)
        if frame["event"] == name:
            return frame["data"]


async def test_two_clients_negotiate_through_relay(client):
    ws_a = await client.ws_connect("/ws")
    peer_a = (await receive_event(ws_a, "connected"))["peerId"]
    await ws_a.send_json({"event": "create_or_join_room", "data": "lobby"})
    assert (await receive_event(ws_a, "room_joined"))["totalMembers"] == 1

    ws_b = await client.ws_connect("/ws")
    peer_b = (await receive_event(ws_b, "connected"))["peerId"]
    await ws_b.send_json({"event": "create_or_join_room", "data": "lobby"})

    assert await receive_event(ws_b, "ready_to_connect") == "lobby"
    assert await receive_event(ws_a, "offer_needed") == {"newPeerId": peer_b}

    sdp = {"type": "offer", "sdp": "v=0 offer"}
    await ws_a.send_json({"event": "offer", "data": {"roomId": "lobby", "targetId": peer_b, "sdp": sdp}})
    assert await receive_event(ws_b, "offer") == {"senderId": peer_a, "sdp": sdp}

    await ws_b.close()
    assert await receive_event(ws_a, "room_updated") == [peer_a]

    await ws_a.close()


async def test_status_route_and_cors(client):
    ws = await client.ws_connect("/ws")
    await receive_event(ws, "connected")
    await ws.send_json({"event": "create_or_join_room", "data": "lobby"})
    await receive_event(ws, "room_joined")

    response = await client.get("/status")

    assert response.status == 200
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    body = await response.json()
    assert body["rooms"] == {"lobby": 1}
    await ws.close()


async def test_preflight_is_answered(client):
    response = await client.options("/status", headers={"Origin": "http://example.com"})

    assert response.status == 204
    assert response.headers["Access-Control-Allow-Origin"] == "*"


async def test_room_is_deleted_when_last_client_leaves(client):
    ws = await client.ws_connect("/ws")
    await receive_event(ws, "connected")
    await ws.send_json({"event": "create_or_join_room", "data": "solo"})
    await receive_event(ws, "room_joined")

    await ws.close()

    relay = client.server.app["relay"]
    for _ in range(50):
        if not relay.connections:
            break
        await client.get("/status")
    assert "solo" not in relay.registry


class InterruptedRelay(SignalingRelay):
    async def register(self, peer_id, send):
        await super().register(peer_id, send)
        raise RuntimeError("connection lost while announcing peer id")


async def test_connection_is_released_when_registration_is_interrupted(aiohttp_client):
    config = ServerConfig(relay_path="/ws")
    relay = InterruptedRelay(config)
    client = await aiohttp_client(create_app(config, relay))

    ws = await client.ws_connect("/ws")
    await ws.receive(timeout=2)

    for _ in range(50):
        if not relay.connections:
            break
        await client.get("/status")
    assert relay.connections == {}
    await ws.close()
