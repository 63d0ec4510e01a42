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
import datetime
import logging
from typing import Callable, Optional

from game_logic import GameStatus

"""
The lobby only lists games. The Game records themselves live in the GameStore,
the lobby reads them to decide whether an entry is still worth showing.

An entry is dropped when:
 - its game is gone
 - both seats are taken
 - the creator has gone away and nobody else holds a seat (the game goes too if it never started)
 - it is older than the ttl (the game goes too)
"""

LOBBY_TTL = datetime.timedelta(minutes=10)
MAX_PLAYERS = 2


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclasses.dataclass
class LobbyEntry:
    id: str  # same as the Game id
    name: str
    created_at: datetime.datetime
    created_by: str  # display name
    creator_id: str
    max_players: int = MAX_PLAYERS

    def view(self, game) -> dict:
        # player count and status always come from the game, never stored here
        return {
            "id": self.id,
            "name": self.name,
            "playerCount": game.occupied_count() if game is not None else 0,
            "maxPlayers": self.max_players,
            "status": game.status if game is not None else GameStatus.WAITING_FOR_OPPONENT,
            "createdAt": self.created_at.isoformat(),
            "createdBy": self.created_by,
        }


@dataclasses.dataclass
class SweepResult:
    removed_entries: list[str] = dataclasses.field(default_factory=list)
    deleted_games: list[str] = dataclasses.field(default_factory=list)

    def __bool__(self):
        return bool(self.removed_entries)


class LobbyDirectory:

    def __init__(self, games, is_connected: Callable[[str], bool],
                 ttl: datetime.timedelta = LOBBY_TTL,
                 clock: Callable[[], datetime.datetime] = utc_now,
                 on_game_deleted: Optional[Callable[[str], None]] = None):
        self.games = games
        self._is_connected = is_connected
        self._ttl = ttl
        self._clock = clock
        self._on_game_deleted = on_game_deleted
        self._entries: dict[str, LobbyEntry] = dict()

    def __contains__(self, game_id: str) -> bool:
        return game_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def create(self, game, name: str, creator_display_name: str, creator_id: str) -> LobbyEntry:
        entry = LobbyEntry(
            id=game.id,
            name=name,
            created_at=self._clock(),
            created_by=creator_display_name,
            creator_id=creator_id,
        )
        self._entries[game.id] = entry
        logging.debug(f"Lobby entry {game.id=} {name=} created by {creator_display_name}")
        return entry

    def get(self, game_id: str) -> Optional[LobbyEntry]:
        return self._entries.get(game_id)

    def remove(self, game_id: str) -> bool:
        if self._entries.pop(game_id, None) is None:
            return False
        logging.debug(f"Lobby entry {game_id=} removed")
        return True

    def remove_with_game(self, game_id: str) -> None:
        self.remove(game_id)
        self._delete_game(game_id)

    def _delete_game(self, game_id: str) -> None:
        if game_id not in self.games:
            return
        self.games.delete(game_id)
        if self._on_game_deleted is not None:
            self._on_game_deleted(game_id)

    def sweep(self) -> SweepResult:
        result = SweepResult()
        now = self._clock()
        for game_id, entry in list(self._entries.items()):
            game = self.games.get(game_id)
            if game is None:
                logging.debug(f"Removing lobby entry {game_id=}: game no longer exists")
                self.remove(game_id)
                result.removed_entries.append(game_id)
                continue

            if game.is_full():
                logging.debug(f"Removing lobby entry {game_id=}: game is full")
                self.remove(game_id)
                result.removed_entries.append(game_id)
                continue

            if not self._is_connected(entry.creator_id) and self._only_creator_seated(entry, game):
                self.remove(game_id)
                result.removed_entries.append(game_id)
                if game.status == GameStatus.WAITING_FOR_OPPONENT:
                    logging.debug(f"Removing lobby entry {game_id=} and its game: creator left before anyone joined")
                    self._delete_game(game_id)
                    result.deleted_games.append(game_id)
                else:
                    logging.debug(f"Removing lobby entry {game_id=}: creator left")
                continue

            if now - entry.created_at > self._ttl:
                logging.info(f"Removing lobby entry {game_id=} and its game: older than {self._ttl}")
                self.remove(game_id)
                self._delete_game(game_id)
                result.removed_entries.append(game_id)
                result.deleted_games.append(game_id)
        return result

    @staticmethod
    def _only_creator_seated(entry: LobbyEntry, game) -> bool:
        return all(player_id == entry.creator_id for player_id in game.seated_player_ids())

    def list_active(self) -> list[LobbyEntry]:
        self.sweep()
        return list(self._entries.values())

    def listing(self) -> list[dict]:
        return [entry.view(self.games.get(entry.id)) for entry in self.list_active()]
