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

import logging
import uuid
from typing import Callable, Optional, Union

import messages
from connection_registry import CLOSE_REPLACED, OutboundChannel
from game_logic import GameStatus, Mark, evaluate_board, get_next_player, is_board_full, make_move, turn_status, \
    won_status
from messages import CreateGame, JoinGame, JoinLobbyGame, ListGames, MakeMove, MessageFormatError, \
    UnknownMessageType
from server_data import Game, PlayerMode, ServerData

"""
Every inbound message goes through here. Handlers are plain functions run on the event loop and
never await: reading a game, deciding, mutating it and queueing the notifications happens in one go,
so two messages for the same game cannot interleave.
"""


def generate_game_id() -> str:
    return uuid.uuid4().hex[:8]


class GameManager:

    def __init__(self, data: ServerData, default_player_name: str = "Anonymous",
                 id_generator: Callable[[], str] = generate_game_id):
        self._data = data
        self._default_player_name = default_player_name
        self._generate_id = id_generator
        self._player_names: dict[str, str] = dict()

    # connection lifecycle

    def player_connected(self, player_id: str, player_name: Optional[str], lobby: bool,
                         channel: OutboundChannel) -> None:
        player_name = player_name or self._default_player_name
        replaced = self._data.connections.register(player_id, channel)
        if replaced is not None:
            # only one live socket per player id
            replaced.close(CLOSE_REPLACED, "Replaced by a newer connection")
        self._data.modes.set(player_id, PlayerMode.LOBBY if lobby else PlayerMode.GAME)
        self._player_names[player_id] = player_name
        logging.info(f"Player {player_name} ({player_id=}) connected {'(lobby)' if lobby else '(game)'}")

        self._send(player_id, messages.connected(player_id, player_name))
        if lobby:
            self._send_lobby_update(player_id)

    def player_disconnected(self, player_id: str, channel: Optional[OutboundChannel] = None) -> None:
        if not self._data.connections.unregister(player_id, channel):
            # a newer connection owns this id now, leave its state alone
            logging.debug(f"Ignoring close of superseded connection for {player_id=}")
            return

        mode = self._data.modes.pop(player_id) or PlayerMode.GAME
        self._player_names.pop(player_id, None)
        logging.info(f"Player {player_id=} disconnected from {mode.value}")

        self._leave_game(player_id, mode)
        self._broadcast_lobby_update()

    # messages

    def handle_message(self, player_id: str, raw: Union[str, bytes]) -> None:
        try:
            message = messages.decode(raw)
        except MessageFormatError as e:
            logging.warning(f"Malformed message from {player_id=}: {e}")
            self._send_error(player_id, "Invalid message format")
            return
        except UnknownMessageType as e:
            logging.warning(f"Unknown message type {e.message_type!r} from {player_id=}")
            self._send_error(player_id, "Unknown message type")
            return

        logging.debug(f"Received {message} from {player_id=}")
        try:
            self.dispatch(player_id, message)
        except Exception as e:
            logging.exception(e)
            self._send_error(player_id, "Internal server error")

    def dispatch(self, player_id: str, message: messages.InboundMessage) -> None:
        if isinstance(message, JoinGame):
            self.join_game(player_id, message)
        elif isinstance(message, MakeMove):
            self.make_move(player_id, message)
        elif isinstance(message, CreateGame):
            self.create_game(player_id, message)
        elif isinstance(message, ListGames):
            self.list_games(player_id)
        elif isinstance(message, JoinLobbyGame):
            self.join_lobby_game(player_id, message)
        else:
            raise TypeError(f"Unhandled message {message!r}")

    def create_game(self, player_id: str, message: CreateGame) -> None:
        player_name = self._name_for(player_id, message.player_name)
        self._leave_game(player_id, self._data.modes.get(player_id) or PlayerMode.GAME)

        game_id = self._unique_game_id()
        game_name = message.game_name or f"Game {game_id}"
        game = self._data.games.add(Game(id=game_id, name=game_name))
        game.assign(Mark.X, player_id, player_name)
        self._data.lobby.create(game, game_name, player_name, player_id)
        self._data.player_games.associate(player_id, game_id)
        # the creator keeps browsing the lobby until someone takes the O seat
        self._data.modes.set(player_id, PlayerMode.LOBBY)
        logging.info(f"Player {player_name} ({player_id=}) created game {game_id=} {game_name=}")

        self._send(player_id, messages.game_created(game_id, Mark.X, game.view()))
        self._broadcast_lobby_update()

    def list_games(self, player_id: str) -> None:
        self._send_lobby_update(player_id)

    def join_game(self, player_id: str, message: JoinGame) -> None:
        game_id = message.game_id
        game = self._data.games.get_or_create(game_id)

        # nobody left in it, start over
        if game.is_empty():
            game.reset()

        role = game.role_of(player_id)
        is_new_player = role is None
        left_lobby_game = False
        if is_new_player:
            role = game.open_role()
            if role is None:
                self._send_error(player_id, "Game is full")
                return
            left_lobby_game = self._leave_game(player_id, self._data.modes.get(player_id) or PlayerMode.GAME,
                                               keep=game_id)
            game.assign(role, player_id, self._name_for(player_id, message.player_name))
            if game.is_full():
                game.current_player = Mark.X
                game.status = GameStatus.PLAYER_X_TURN
                self._mark_seated_players_in_game(game)
            self._data.player_games.associate(player_id, game_id)
            logging.info(f"Player {player_id=} took seat {role.value} in game {game_id=}")
        else:
            logging.debug(f"Player {player_id=} rejoined game {game_id=} as {role.value}")

        self._data.modes.set(player_id, PlayerMode.GAME)

        lobby_changed = (game.is_full() and self._data.lobby.remove(game_id)) or left_lobby_game

        if is_new_player:
            self._notify_players(game, messages.game_update(game.view()))
            if game.is_full():
                self._notify_game_start(game)
        else:
            self._send(player_id, messages.game_start(game_id, role, game.view()))
        if lobby_changed:
            self._broadcast_lobby_update()

    def join_lobby_game(self, player_id: str, message: JoinLobbyGame) -> None:
        game_id = message.game_id
        logging.debug(f"Player {player_id=} attempting to join lobby game {game_id=}")

        game = self._data.games.get(game_id)
        if game is None:
            self._send_error(player_id, "Game not found")
            return

        if game.is_empty():
            game.reset()

        if game.role_of(player_id) == Mark.X:
            self._send_error(player_id, "Cannot join your own game")
            return

        if game.seat(Mark.O) is not None:
            self._send_error(player_id, "Game is no longer available")
            if self._data.lobby.remove(game_id):
                self._broadcast_lobby_update()
            return

        self._leave_game(player_id, self._data.modes.get(player_id) or PlayerMode.GAME, keep=game_id)
        game.assign(Mark.O, player_id, self._name_for(player_id, message.player_name))
        self._data.player_games.associate(player_id, game_id)
        self._data.modes.set(player_id, PlayerMode.GAME)
        self._data.lobby.remove(game_id)
        logging.info(f"Player {player_id=} took seat O in lobby game {game_id=}")

        if game.is_full():
            game.current_player = Mark.X
            game.status = GameStatus.PLAYER_X_TURN
            self._mark_seated_players_in_game(game)
            self._notify_game_start(game)
        else:
            self._notify_players(game, messages.game_update(game.view()))
        self._broadcast_lobby_update()

    def make_move(self, player_id: str, message: MakeMove) -> None:
        game_id = self._data.player_games.get(player_id)
        if game_id is None:
            logging.debug(f"Ignoring move from {player_id=}, not in a game")
            return
        game = self._data.games.get(game_id)
        if game is None:
            logging.debug(f"Ignoring move from {player_id=}, game {game_id=} is gone")
            return

        if not game.status.is_turn:
            self._send_error(player_id, "Game is not in progress")
            return

        seat = game.seat(game.current_player)
        if seat is None or seat.player_id != player_id:
            self._send_error(player_id, "Not your turn")
            return

        mark = game.current_player
        board = make_move(game.board, message.index, mark)
        if board is None:
            self._send_error(player_id, "Invalid move")
            return

        game.board = board
        evaluation = evaluate_board(board)
        if evaluation.winner is not None:
            game.winner = evaluation.winner
            game.status = won_status(evaluation.winner)
        elif is_board_full(board):
            game.status = GameStatus.DRAW
        else:
            game.current_player = get_next_player(mark)
            game.status = turn_status(game.current_player)

        self._notify_players(game, messages.move_made(
            message.index, mark, game.board, game.current_player, game.status, game.winner,
            evaluation.winning_combination,
        ))

        if game.status.is_finished:
            logging.info(f"Game {game_id=} finished with {game.status.value}")
            if self._data.lobby.remove(game_id):
                self._broadcast_lobby_update()

    def sweep_lobby(self) -> None:
        if self._data.lobby.sweep():
            self._broadcast_lobby_update()

    # helpers

    def _leave_game(self, player_id: str, mode: PlayerMode, keep: Optional[str] = None) -> bool:
        """
        Takes `player_id` out of whatever game it is seated in, tells the other seat, and tidies the lobby.
        Nothing happens if the player is already seated in `keep`.
        Returns True if the game left was listed in the lobby.
        """
        game_id = self._data.player_games.get(player_id)
        if game_id is None or game_id == keep:
            return False
        self._data.player_games.remove(player_id)

        game = self._data.games.get(game_id)
        if game is None:
            return False

        cleared = game.vacate(player_id)
        if cleared:
            game.reset()
            for mark, seat in cleared:
                logging.debug(f"Player {player_id=} removed from {mark.value} position in game {game_id=}")
                self._notify_players(game, messages.player_disconnected(mark, seat.display_name))

        is_lobby_game = game_id in self._data.lobby
        if game.is_empty():
            # nobody is seated, so nothing may stay listed or stored
            if is_lobby_game:
                self._data.lobby.remove_with_game(game_id)
            else:
                self._data.games.delete(game_id)
        elif is_lobby_game and mode == PlayerMode.LOBBY:
            self._data.lobby.remove(game_id)

        return is_lobby_game

    def _mark_seated_players_in_game(self, game: Game) -> None:
        # a lobby creator stops browsing once its opponent arrives
        for seated_id in game.seated_player_ids():
            if seated_id in self._data.connections:
                self._data.modes.set(seated_id, PlayerMode.GAME)

    def _unique_game_id(self) -> str:
        game_id = self._generate_id()
        while game_id in self._data.games:
            game_id = self._generate_id()
        return game_id

    def _name_for(self, player_id: str, requested: Optional[str]) -> str:
        return requested or self._player_names.get(player_id) or self._default_player_name

    def _send(self, player_id: str, message: dict) -> None:
        self._data.connections.send(player_id, message)

    def _send_error(self, player_id: str, text: str) -> None:
        self._send(player_id, messages.error(text))

    def _notify_players(self, game: Game, message: dict) -> None:
        self._data.connections.send_many(game.seated_player_ids(), message)

    def _notify_game_start(self, game: Game) -> None:
        view = game.view()
        for mark in (Mark.X, Mark.O):
            seat = game.seat(mark)
            if seat is not None:
                self._send(seat.player_id, messages.game_start(game.id, mark, view))

    def _send_lobby_update(self, player_id: str) -> None:
        self._send(player_id, messages.lobby_update(self._data.lobby.listing()))

    def _broadcast_lobby_update(self) -> None:
        self._data.connections.broadcast_to_lobby_browsers(messages.lobby_update(self._data.lobby.listing()))
