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

import asyncio
import dataclasses
import datetime
import enum
import logging
from typing import Callable, Optional

from connection_registry import ConnectionRegistry
from game_logic import Board, GameStatus, Mark, initialize_board
from lobby_directory import LOBBY_TTL, LobbyDirectory, utc_now


class PlayerMode(str, enum.Enum):
    LOBBY = "lobby"
    GAME = "game"


@dataclasses.dataclass
class Seat:
    player_id: str
    display_name: str

    def view(self) -> dict:
        # never expose the raw player id to the other seat
        return {"name": self.display_name}


@dataclasses.dataclass
class Game:
    id: str
    name: Optional[str] = None
    board: Board = dataclasses.field(default_factory=initialize_board)
    current_player: Mark = Mark.X
    players: dict[Mark, Optional[Seat]] = dataclasses.field(
        default_factory=lambda: {Mark.X: None, Mark.O: None}
    )
    status: GameStatus = GameStatus.WAITING_FOR_OPPONENT
    winner: Optional[Mark] = None

    def seat(self, mark: Mark) -> Optional[Seat]:
        return self.players[mark]

    def role_of(self, player_id: str) -> Optional[Mark]:
        for mark in (Mark.X, Mark.O):
            seat = self.players[mark]
            if seat is not None and seat.player_id == player_id:
                return mark
        return None

    def seated_player_ids(self) -> list[str]:
        return [seat.player_id for seat in self.players.values() if seat is not None]

    def occupied_count(self) -> int:
        return sum(1 for seat in self.players.values() if seat is not None)

    def is_full(self) -> bool:
        return self.occupied_count() == 2

    def is_empty(self) -> bool:
        return self.occupied_count() == 0

    def open_role(self) -> Optional[Mark]:
        for mark in (Mark.X, Mark.O):
            if self.players[mark] is None:
                return mark
        return None

    def assign(self, mark: Mark, player_id: str, display_name: str) -> None:
        self.players[mark] = Seat(player_id=player_id, display_name=display_name)

    def vacate(self, player_id: str) -> list[tuple[Mark, Seat]]:
        """Clears every seat held by `player_id`. Returns the cleared (mark, seat) pairs."""
        cleared = []
        for mark in (Mark.X, Mark.O):
            seat = self.players[mark]
            if seat is not None and seat.player_id == player_id:
                self.players[mark] = None
                cleared.append((mark, seat))
        return cleared

    def reset(self) -> None:
        self.board = initialize_board()
        self.current_player = Mark.X
        self.status = GameStatus.WAITING_FOR_OPPONENT
        self.winner = None

    def players_view(self) -> dict:
        return {
            mark.value: seat.view() if seat is not None else None
            for mark, seat in self.players.items()
        }

    def view(self) -> dict:
        view = {
            "id": self.id,
            "board": list(self.board),
            "currentPlayer": self.current_player,
            "players": self.players_view(),
            "status": self.status,
            "winner": self.winner,
        }
        if self.name is not None:
            view["name"] = self.name
        return view


class GameStore:

    def __init__(self):
        self._games: dict[str, Game] = dict()

    def __contains__(self, game_id: str) -> bool:
        return game_id in self._games

    def __len__(self) -> int:
        return len(self._games)

    def get(self, game_id: str) -> Optional[Game]:
        return self._games.get(game_id)

    def get_or_create(self, game_id: str) -> Game:
        game = self._games.get(game_id)
        if game is None:
            game = Game(id=game_id)
            self._games[game_id] = game
            logging.debug(f"Created game {game_id=}")
        return game

    def add(self, game: Game) -> Game:
        self._games[game.id] = game
        return game

    def delete(self, game_id: str) -> None:
        if self._games.pop(game_id, None) is not None:
            logging.debug(f"Deleted game {game_id=}")


class PlayerModeTracker:

    def __init__(self):
        self._modes: dict[str, PlayerMode] = dict()

    def set(self, player_id: str, mode: PlayerMode) -> None:
        self._modes[player_id] = mode

    def get(self, player_id: str) -> Optional[PlayerMode]:
        return self._modes.get(player_id)

    def pop(self, player_id: str) -> Optional[PlayerMode]:
        return self._modes.pop(player_id, None)

    def is_lobby(self, player_id: str) -> bool:
        return self._modes.get(player_id) == PlayerMode.LOBBY


class PlayerGameMap:
    """player id -> id of the game that player is seated in"""

    def __init__(self):
        self._games: dict[str, str] = dict()

    def associate(self, player_id: str, game_id: str) -> None:
        self._games[player_id] = game_id

    def get(self, player_id: str) -> Optional[str]:
        return self._games.get(player_id)

    def remove(self, player_id: str) -> Optional[str]:
        return self._games.pop(player_id, None)

    def players_in(self, game_id: str) -> list[str]:
        return [player_id for player_id, associated in self._games.items() if associated == game_id]

    def forget_game(self, game_id: str) -> None:
        for player_id in self.players_in(game_id):
            del self._games[player_id]


class ServerData:
    """Every store the coordinator works on. Created once per process, or once per test."""

    def __init__(self, lobby_ttl: datetime.timedelta = LOBBY_TTL, clock: Callable[[], datetime.datetime] = utc_now):
        self.games = GameStore()
        self.modes = PlayerModeTracker()
        self.player_games = PlayerGameMap()
        self.connections = ConnectionRegistry(self.modes)
        self.lobby = LobbyDirectory(self.games, self.connections.is_connected, ttl=lobby_ttl, clock=clock,
                                   on_game_deleted=self.player_games.forget_game)

        self.shutdown_event = asyncio.Event()
