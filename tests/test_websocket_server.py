import asyncio
import json

import pytest
import websockets
from websockets.asyncio.client import connect

from game_manager import GameManager
from server_data import ServerData
from websocket_server import WebsocketServer, parse_handshake


async def receive(websocket, message_type: str) -> dict:
    """Reads frames until one of `message_type` arrives."""
    while True:
        message = json.loads(await asyncio.wait_for(websocket.recv(), timeout=2))
        if message["type"] == message_type:
            return message


@pytest.fixture
async def server():
    data = ServerData()
    websocket_server = WebsocketServer({"server": {"host": "127.0.0.1", "port": 0}}, data, GameManager(data))
    async with websocket_server:
        yield websocket_server


def url(server, query: str) -> str:
    return f"ws://127.0.0.1:{server.port}/?{query}"


def test_parse_handshake():
    handshake = parse_handshake("/?id=abc&name=Alice&lobby=true")
    assert (handshake.player_id, handshake.player_name, handshake.lobby) == ("abc", "Alice", True)

    handshake = parse_handshake("/ws?id=abc&lobby=1")
    assert (handshake.player_name, handshake.lobby) == (None, False)

    assert parse_handshake("/").player_id == ""


async def test_missing_player_id_closes_connection(server):
    async with connect(url(server, "name=Alice")) as websocket:
        with pytest.raises(websockets.exceptions.ConnectionClosed) as info:
            await asyncio.wait_for(websocket.recv(), timeout=2)

    assert info.value.rcvd.code == 4000
    assert info.value.rcvd.reason == "Player ID is required"


async def test_game_over_websockets(server):
    async with connect(url(server, "id=alice&name=Alice")) as alice, \
            connect(url(server, "id=bob&name=Bob")) as bob:
        connected = await receive(alice, "CONNECTED")
        assert connected["payload"] == {"playerId": "alice", "playerName": "Alice"}

        await alice.send(json.dumps({"type": "JOIN_GAME", "payload": {"gameId": "g1"}}))
        await receive(alice, "GAME_UPDATE")
        await bob.send(json.dumps({"type": "JOIN_GAME", "payload": {"gameId": "g1"}}))

        assert (await receive(alice, "GAME_START"))["payload"]["playerRole"] == "X"
        assert (await receive(bob, "GAME_START"))["payload"]["playerRole"] == "O"

        await bob.send(json.dumps({"type": "MAKE_MOVE", "payload": {"index": 0}}))
        assert (await receive(bob, "ERROR"))["payload"]["message"] == "Not your turn"

        await alice.send(json.dumps({"type": "MAKE_MOVE", "payload": {"index": 4}}))
        move = await receive(bob, "MOVE_MADE")
        assert move["payload"]["game"]["board"][4] == "X"
        assert move["payload"]["game"]["status"] == "PLAYER_O_TURN"

        await alice.close()
        disconnected = await receive(bob, "PLAYER_DISCONNECTED")
        assert disconnected["payload"] == {"playerRole": "X", "playerName": "Alice"}


async def test_malformed_frame_keeps_connection_open(server):
    async with connect(url(server, "id=alice&lobby=true")) as alice:
        await receive(alice, "LOBBY_UPDATE")

        await alice.send("{{{")
        assert (await receive(alice, "ERROR"))["payload"]["message"] == "Invalid message format"

        await alice.send(json.dumps({"type": "LIST_GAMES"}))
        assert (await receive(alice, "LOBBY_UPDATE"))["payload"]["games"] == []


async def test_shutdown_closes_clients():
    data = ServerData()
    websocket_server = WebsocketServer({"server": {"host": "127.0.0.1", "port": 0}}, data, GameManager(data))
    async with websocket_server:
        client = await connect(url(websocket_server, "id=alice"))
        await receive(client, "CONNECTED")

    with pytest.raises(websockets.exceptions.ConnectionClosed) as info:
        await asyncio.wait_for(client.recv(), timeout=2)
    assert info.value.rcvd.code == 1001
    assert "alice" not in data.connections


async def test_newer_connection_closes_the_older_one(server):
    async with connect(url(server, "id=alice")) as first:
        await receive(first, "CONNECTED")
        async with connect(url(server, "id=alice&lobby=true")) as second:
            await receive(second, "CONNECTED")

            with pytest.raises(websockets.exceptions.ConnectionClosed) as info:
                while True:
                    await asyncio.wait_for(first.recv(), timeout=2)
            assert info.value.rcvd.code == 4002

            await second.send(json.dumps({"type": "LIST_GAMES"}))
            assert (await receive(second, "LOBBY_UPDATE"))["payload"]["games"] == []


async def test_setup_failure_closes_with_internal_error(monkeypatch):
    data = ServerData()
    manager = GameManager(data)
    player_connected = manager.player_connected

    def fail_after_registering(player_id, player_name, lobby, channel):
        player_connected(player_id, player_name, lobby, channel)
        raise RuntimeError("setup failed")

    monkeypatch.setattr(manager, "player_connected", fail_after_registering)
    websocket_server = WebsocketServer({"server": {"host": "127.0.0.1", "port": 0}}, data, manager)
    async with websocket_server:
        async with connect(url(websocket_server, "id=alice&lobby=true")) as websocket:
            with pytest.raises(websockets.exceptions.ConnectionClosed) as info:
                while True:
                    await asyncio.wait_for(websocket.recv(), timeout=2)

        assert info.value.rcvd.code == 4001
        assert info.value.rcvd.reason == "Internal server error"
        assert "alice" not in data.connections
        assert data.modes.get("alice") is None
