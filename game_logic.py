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
import enum
from typing import Optional, Sequence

"""
Stateless board rules. Nothing in here touches a Game, only boards.
"""


class Mark(str, enum.Enum):
    X = "X"
    O = "O"


class GameStatus(str, enum.Enum):
    WAITING_FOR_OPPONENT = "WAITING_FOR_OPPONENT"
    PLAYER_X_TURN = "PLAYER_X_TURN"
    PLAYER_O_TURN = "PLAYER_O_TURN"
    PLAYER_X_WON = "PLAYER_X_WON"
    PLAYER_O_WON = "PLAYER_O_WON"
    DRAW = "DRAW"

    @property
    def is_turn(self) -> bool:
        return self in (GameStatus.PLAYER_X_TURN, GameStatus.PLAYER_O_TURN)

    @property
    def is_finished(self) -> bool:
        return self in (GameStatus.PLAYER_X_WON, GameStatus.PLAYER_O_WON, GameStatus.DRAW)


Board = list[Optional[Mark]]

BOARD_SIZE = 9

# rows top-to-bottom, columns left-to-right, then both diagonals
WIN_COMBINATIONS: tuple[tuple[int, int, int], ...] = (
    (0, 1, 2),
    (3, 4, 5),
    (6, 7, 8),
    (0, 3, 6),
    (1, 4, 7),
    (2, 5, 8),
    (0, 4, 8),
    (2, 4, 6),
)


@dataclasses.dataclass(frozen=True)
class BoardEvaluation:
    winner: Optional[Mark]
    winning_combination: Optional[tuple[int, int, int]]


def initialize_board() -> Board:
    return [None] * BOARD_SIZE


def get_winning_combination(board: Sequence[Optional[Mark]]) -> Optional[tuple[int, int, int]]:
    for combination in WIN_COMBINATIONS:
        a, b, c = combination
        if board[a] is not None and board[a] == board[b] == board[c]:
            return combination
    return None


def check_winner(board: Sequence[Optional[Mark]]) -> Optional[Mark]:
    combination = get_winning_combination(board)
    if combination is None:
        return None
    return board[combination[0]]


def evaluate_board(board: Sequence[Optional[Mark]]) -> BoardEvaluation:
    combination = get_winning_combination(board)
    if combination is None:
        return BoardEvaluation(winner=None, winning_combination=None)
    return BoardEvaluation(winner=board[combination[0]], winning_combination=combination)


def is_board_full(board: Sequence[Optional[Mark]]) -> bool:
    return all(cell is not None for cell in board)


def is_valid_move(board: Sequence[Optional[Mark]], index) -> bool:
    # bool is an int subclass, True must not address slot 1
    if not isinstance(index, int) or isinstance(index, bool):
        return False
    return 0 <= index < BOARD_SIZE and board[index] is None


def get_next_player(current_player: Mark) -> Mark:
    return Mark.O if current_player == Mark.X else Mark.X


def turn_status(mark: Mark) -> GameStatus:
    return GameStatus.PLAYER_X_TURN if mark == Mark.X else GameStatus.PLAYER_O_TURN


def won_status(mark: Mark) -> GameStatus:
    return GameStatus.PLAYER_X_WON if mark == Mark.X else GameStatus.PLAYER_O_WON


def calculate_game_status(board: Sequence[Optional[Mark]], current_player: Mark) -> GameStatus:
    """
    Status of a board where `current_player` is the mark due to move next.
    A win is reported before a full board, so a winning final move is never a draw.
    """
    winner = check_winner(board)
    if winner is not None:
        return won_status(winner)
    if is_board_full(board):
        return GameStatus.DRAW
    return turn_status(current_player)


def make_move(board: Sequence[Optional[Mark]], index, mark: Mark) -> Optional[Board]:
    """Returns a new board with `mark` at `index`, or None if the move is not allowed."""
    if not is_valid_move(board, index):
        return None
    new_board = list(board)
    new_board[index] = mark
    return new_board
