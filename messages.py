"""
TicTacToeServer
Copyright (C) 2024 thiccaxe

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU Affero General Public License as published
by the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU Affero General Public License for more details.

You should have received a copy of the GNU Affero General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

import dataclasses
import json
from typing import Optional, Union

import voluptuous.error
from voluptuous import ALLOW_EXTRA, All, Any, Length, Optional as VOptional, Required, Schema


class MessageFormatError(Exception): pass


class UnknownMessageType(Exception):

    def __init__(self, message_type: str):
        super().__init__(message_type)
        self.message_type = message_type


# inbound

@dataclasses.dataclass(frozen=True)
class JoinGame:
    game_id: str
    player_name: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class MakeMove:
    index: int


@dataclasses.dataclass(frozen=True)
class CreateGame:
    game_name: Optional[str] = None
    player_name: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class ListGames:
    pass


@dataclasses.dataclass(frozen=True)
class JoinLobbyGame:
    game_id: str
    player_name: Optional[str] = None


InboundMessage = Union[JoinGame, MakeMove, CreateGame, ListGames, JoinLobbyGame]


def _strict_int(value):
    # json true/false would otherwise pass as 1/0
    if isinstance(value, bool) or not isinstance(value, int):
        raise voluptuous.error.Invalid("expected int")
    return value


_optional_name = Any(None, str)

envelope_schema = Schema({
    Required('type'): str,
    VOptional('payload', default=dict): Any(None, dict),
}, extra=ALLOW_EXTRA)

_payload_schemas = {
    "JOIN_GAME": (JoinGame, Schema({
        Required('gameId'): All(str, Length(min=1)),
        VOptional('playerName'): _optional_name,
    }, extra=ALLOW_EXTRA)),
    "MAKE_MOVE": (MakeMove, Schema({
        Required('index'): _strict_int,
    }, extra=ALLOW_EXTRA)),
    "CREATE_GAME": (CreateGame, Schema({
        VOptional('gameName'): _optional_name,
        VOptional('playerName'): _optional_name,
    }, extra=ALLOW_EXTRA)),
    "LIST_GAMES": (ListGames, Schema({}, extra=ALLOW_EXTRA)),
    "JOIN_LOBBY_GAME": (JoinLobbyGame, Schema({
        Required('gameId'): All(str, Length(min=1)),
        VOptional('playerName'): _optional_name,
    }, extra=ALLOW_EXTRA)),
}

_payload_fields = {
    'gameId': 'game_id',
    'playerName': 'player_name',
    'gameName': 'game_name',
    'index': 'index',
}


def decode(raw: Union[str, bytes]) -> InboundMessage:
    """
    Parses one inbound frame into its message type.

    Raises MessageFormatError when the frame is not a valid envelope or the payload does not
    fit its type, and UnknownMessageType when the envelope names a type we do not handle.
    """
    try:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        packet = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MessageFormatError("not json") from e

    try:
        packet = envelope_schema(packet)
    except voluptuous.error.Invalid as e:
        raise MessageFormatError(f"bad envelope: {e}") from e

    message_type = packet["type"]
    if message_type not in _payload_schemas:
        raise UnknownMessageType(message_type)

    message_class, payload_schema = _payload_schemas[message_type]
    try:
        payload = payload_schema(packet["payload"] or {})
    except voluptuous.error.Invalid as e:
        raise MessageFormatError(f"bad {message_type} payload: {e}") from e

    return message_class(**{
        _payload_fields[key]: value for key, value in payload.items() if key in _payload_fields
    })


# outbound

def connected(player_id: str, player_name: str) -> dict:
    return {"type": "CONNECTED", "payload": {"playerId": player_id, "playerName": player_name}}


def error(message: str) -> dict:
    return {"type": "ERROR", "payload": {"message": message}}


def game_update(game_view: dict) -> dict:
    return {"type": "GAME_UPDATE", "payload": {"game": game_view}}


def game_start(game_id: str, player_role, game_view: dict) -> dict:
    return {"type": "GAME_START", "payload": {"gameId": game_id, "playerRole": player_role, "game": game_view}}


def game_created(game_id: str, player_role, game_view: dict) -> dict:
    return {"type": "GAME_CREATED", "payload": {"gameId": game_id, "playerRole": player_role, "game": game_view}}


def move_made(index: int, player, board, current_player, status, winner, winning_combination) -> dict:
    return {
        "type": "MOVE_MADE",
        "payload": {
            "index": index,
            "player": player,
            "game": {
                "board": list(board),
                "currentPlayer": current_player,
                "status": status,
                "winner": winner,
                "winningCombination": list(winning_combination) if winning_combination is not None else None,
            },
        },
    }


def player_disconnected(player_role, player_name: str) -> dict:
    return {"type": "PLAYER_DISCONNECTED", "payload": {"playerRole": player_role, "playerName": player_name}}


def lobby_update(games: list[dict]) -> dict:
    return {"type": "LOBBY_UPDATE", "payload": {"games": games}}
