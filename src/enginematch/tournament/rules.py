"""Rules collaborator: legality and natural game termination.

Board representation and move generation come from python-chess; the
game only uses the two pure functions below.
"""

import chess

from enginematch.tournament.results import GameResult, GameTermination


def apply_move(board: chess.Board, move: chess.Move) -> chess.Board | None:
    """Return the position after ``move``, or None if the move is illegal."""
    if move not in board.legal_moves:
        return None
    new_board = board.copy()
    new_board.push(move)
    return new_board


def natural_termination(
    board: chess.Board,
) -> tuple[GameTermination, GameResult, str] | None:
    """Determine whether the position ends the game by the rules of chess.

    Args:
        board: Current position (with move stack for repetition detection).

    Returns:
        Tuple of (termination, result, reason), or None if play continues.
    """
    if board.is_checkmate():
        # The side to move is checkmated
        if board.turn == chess.WHITE:
            return GameTermination.CHECKMATE, GameResult.BLACK_WINS, "Black mates"
        return GameTermination.CHECKMATE, GameResult.WHITE_WINS, "White mates"

    if board.is_stalemate():
        return GameTermination.STALEMATE, GameResult.DRAW, "Draw by stalemate"

    if board.is_insufficient_material():
        return GameTermination.INSUFFICIENT, GameResult.DRAW, "Draw by insufficient mating material"

    if board.is_fifty_moves():
        return GameTermination.FIFTY_MOVE, GameResult.DRAW, "Draw by fifty moves rule"

    if board.is_repetition(3):
        return GameTermination.THREEFOLD, GameResult.DRAW, "Draw by 3-fold repetition"

    return None
