import json

import pytest

from game_manager import GameManager
from mocks import FakeClock, MockChannel
from server_data import ServerData


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def data(clock):
    return ServerData(clock=clock)


@pytest.fixture
def manager(data):
    counter = iter(range(1, 10_000))
    return GameManager(data, id_generator=lambda: f"game-{next(counter)}")


@pytest.fixture
def connect(manager):
    def _connect(player_id: str, name: str = None, lobby: bool = False) -> MockChannel:
        channel = MockChannel()
        manager.player_connected(player_id, name, lobby, channel)
        return channel
    return _connect


@pytest.fixture
def send(manager):
    def _send(player_id: str, message_type: str, payload: dict = None) -> None:
        packet = {"type": message_type}
        if payload is not None:
            packet["payload"] = payload
        manager.handle_message(player_id, json.dumps(packet))
    return _send
