import json

import pytest

import messages
from messages import CreateGame, JoinGame, JoinLobbyGame, ListGames, MakeMove, MessageFormatError, UnknownMessageType


def frame(message_type, payload=None, **extra):
    packet = {"type": message_type, **extra}
    if payload is not None:
        packet["payload"] = payload
    return json.dumps(packet)


@pytest.mark.parametrize("raw, expected", [
    (frame("JOIN_GAME", {"gameId": "g1", "playerName": "Alice"}), JoinGame(game_id="g1", player_name="Alice")),
    (frame("JOIN_GAME", {"gameId": "g1"}), JoinGame(game_id="g1")),
    (frame("MAKE_MOVE", {"index": 4}), MakeMove(index=4)),
    (frame("MAKE_MOVE", {"index": 42}), MakeMove(index=42)),
    (frame("CREATE_GAME", {"gameName": "Foo"}), CreateGame(game_name="Foo")),
    (frame("CREATE_GAME"), CreateGame()),
    (frame("LIST_GAMES"), ListGames()),
    (json.dumps({"type": "LIST_GAMES", "payload": None}), ListGames()),
    (frame("JOIN_LOBBY_GAME", {"gameId": "g1", "playerName": "Bob", "extra": 1}),
     JoinLobbyGame(game_id="g1", player_name="Bob")),
])
def test_decode(raw, expected):
    assert messages.decode(raw) == expected


def test_decode_accepts_bytes():
    assert messages.decode(frame("LIST_GAMES").encode()) == ListGames()


@pytest.mark.parametrize("raw", [
    "not json",
    "[1, 2]",
    json.dumps({"payload": {}}),
    json.dumps({"type": 7}),
    frame("JOIN_GAME", {}),
    frame("JOIN_GAME", {"gameId": ""}),
    frame("MAKE_MOVE", {}),
    frame("MAKE_MOVE", {"index": "4"}),
    frame("MAKE_MOVE", {"index": True}),
    frame("CREATE_GAME", {"gameName": 12}),
    json.dumps({"type": "LIST_GAMES", "payload": "nope"}),
    b"\xff\xfe",
])
def test_decode_rejects_malformed(raw):
    with pytest.raises(MessageFormatError):
        messages.decode(raw)


def test_decode_unknown_type():
    with pytest.raises(UnknownMessageType) as info:
        messages.decode(frame("RESIGN", {}))

    assert info.value.message_type == "RESIGN"


def test_move_made_shape():
    message = messages.move_made(2, "X", ["X", "X", "X"] + [None] * 6, "X", "PLAYER_X_WON", "X", (0, 1, 2))

    assert message["type"] == "MOVE_MADE"
    assert message["payload"]["index"] == 2
    assert message["payload"]["game"]["winningCombination"] == [0, 1, 2]


def test_error_shape():
    assert messages.error("Invalid move") == {"type": "ERROR", "payload": {"message": "Invalid move"}}
