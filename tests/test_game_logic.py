import pytest

from game_logic import (
    WIN_COMBINATIONS, GameStatus, Mark, calculate_game_status, check_winner, evaluate_board,
    get_next_player, get_winning_combination, initialize_board, is_board_full, is_valid_move, make_move,
)

X, O, _ = Mark.X, Mark.O, None


def board_with(cells: dict) -> list:
    board = initialize_board()
    for index, mark in cells.items():
        board[index] = mark
    return board


def test_initialize_board_is_nine_empty_slots():
    assert initialize_board() == [None] * 9


@pytest.mark.parametrize("combination", WIN_COMBINATIONS)
@pytest.mark.parametrize("mark", [X, O])
def test_single_winning_triple_is_reported(combination, mark):
    board = board_with({index: mark for index in combination})

    evaluation = evaluate_board(board)

    assert evaluation.winner == mark
    assert evaluation.winning_combination == combination
    assert check_winner(board) == mark
    assert get_winning_combination(board) == combination


@pytest.mark.parametrize("board", [
    initialize_board(),
    [X, O, X, _, _, _, _, _, _],
    [X, O, X,
     X, O, O,
     O, X, X],
    [X, X, O,
     O, O, X,
     X, O, X],
])
def test_no_winner_without_a_full_triple(board):
    assert check_winner(board) is None
    assert get_winning_combination(board) is None
    assert evaluate_board(board).winner is None


def test_scan_order_prefers_rows_then_columns_then_diagonals():
    board = [X, X, X,
             X, O, O,
             X, O, O]

    assert get_winning_combination(board) == (0, 1, 2)


def test_is_board_full():
    full = [X, O, X, X, O, O, O, X, X]
    assert is_board_full(full) is True
    assert is_board_full(full) is True
    assert is_board_full(board_with({0: X})) is False
    assert is_board_full(initialize_board()) is False


@pytest.mark.parametrize("index, expected", [
    (0, True), (8, True), (4, False), (-1, False), (9, False), (True, False), ("1", False), (1.0, False),
])
def test_is_valid_move(index, expected):
    board = board_with({4: O})
    assert is_valid_move(board, index) is expected


def test_make_move_returns_new_board():
    board = board_with({0: X})
    snapshot = list(board)

    result = make_move(board, 4, O)

    assert result[4] == O
    assert result[0] == X
    assert board == snapshot


@pytest.mark.parametrize("index", [0, -1, 9])
def test_make_move_rejects_occupied_or_out_of_range(index):
    board = board_with({0: X})
    snapshot = list(board)

    assert make_move(board, index, O) is None
    assert board == snapshot


def test_get_next_player():
    assert get_next_player(X) == O
    assert get_next_player(O) == X


def test_calculate_game_status():
    assert calculate_game_status(initialize_board(), X) == GameStatus.PLAYER_X_TURN
    assert calculate_game_status(board_with({0: X}), O) == GameStatus.PLAYER_O_TURN
    assert calculate_game_status(board_with({2: O, 4: O, 6: O}), X) == GameStatus.PLAYER_O_WON
    assert calculate_game_status([X, O, X, X, O, O, O, X, X], O) == GameStatus.DRAW
    # last move fills the board and wins
    assert calculate_game_status([X, X, X, O, O, X, O, X, O], O) == GameStatus.PLAYER_X_WON


def test_status_flags():
    assert GameStatus.PLAYER_X_TURN.is_turn
    assert not GameStatus.WAITING_FOR_OPPONENT.is_turn
    assert GameStatus.DRAW.is_finished
    assert not GameStatus.PLAYER_O_TURN.is_finished
