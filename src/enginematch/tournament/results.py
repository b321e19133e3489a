"""Game outcomes and finished-game records."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

import chess

from enginematch.tournament.player import Player


class GameResult(Enum):
    """Final result of a game."""

    WHITE_WINS = "1-0"
    BLACK_WINS = "0-1"
    DRAW = "1/2-1/2"
    UNTERMINATED = "*"


class GameTermination(Enum):
    """How a game ended."""

    CHECKMATE = "checkmate"
    STALEMATE = "stalemate"
    INSUFFICIENT = "insufficient_material"
    FIFTY_MOVE = "fifty_move_rule"
    THREEFOLD = "threefold_repetition"
    DRAW_ADJUDICATED = "draw_adjudicated"
    RESIGN_ADJUDICATED = "resign_adjudicated"
    MAX_MOVES = "max_moves"
    RESIGNATION = "resignation"
    ILLEGAL_MOVE = "illegal_move"
    TIMEOUT = "timeout"
    PROTOCOL_ERROR = "protocol_error"
    ENGINE_CRASH = "engine_crash"
    UNTERMINATED = "unterminated"


@dataclass(frozen=True)
class GameRecord:
    """A finalized game. Immutable; each record is counted at most once."""

    white: Player
    black: Player
    result: GameResult
    reason: str
    termination: GameTermination
    opening_fen: str = chess.STARTING_FEN
    moves: tuple[str, ...] = ()
    number: int = 0
    game_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def winner(self) -> Player | None:
        if self.result is GameResult.WHITE_WINS:
            return self.white
        if self.result is GameResult.BLACK_WINS:
            return self.black
        return None

    @property
    def loser(self) -> Player | None:
        if self.result is GameResult.WHITE_WINS:
            return self.black
        if self.result is GameResult.BLACK_WINS:
            return self.white
        return None

    @property
    def is_decided(self) -> bool:
        """Whether the game counts towards the score (i.e. not unterminated)."""
        return self.result is not GameResult.UNTERMINATED

    def involves(self, player: Player) -> bool:
        return player is self.white or player is self.black

    def verbose_result(self) -> str:
        """Result with its reason, e.g. ``1-0 {White mates}``."""
        return f"{self.result.value} {{{self.reason}}}"

    def to_pgn(self, event: str = "Engine Match") -> str:
        """Generate PGN string for this game."""
        lines = [
            f'[Event "{event}"]',
            '[Site "Local"]',
            f'[Date "{self.timestamp[:10].replace("-", ".")}"]',
            f'[Round "{self.number}"]',
            f'[White "{self.white.name}"]',
            f'[Black "{self.black.name}"]',
            f'[Result "{self.result.value}"]',
        ]
        if self.opening_fen != chess.STARTING_FEN:
            lines += [f'[FEN "{self.opening_fen}"]', '[SetUp "1"]']
        lines += [f'[Termination "{self.termination.value}"]', ""]

        # Build move text
        board = chess.Board(self.opening_fen)
        move_text_parts = []

        for i, uci in enumerate(self.moves):
            move = chess.Move.from_uci(uci)

            if board.turn == chess.WHITE:
                move_text_parts.append(f"{board.fullmove_number}.")
            elif i == 0:
                move_text_parts.append(f"{board.fullmove_number}...")

            # Use SAN notation
            move_text_parts.append(board.san(move))
            board.push(move)

        move_text = " ".join(move_text_parts)
        if move_text:
            move_text += " "
        move_text += f"{{{self.reason}}} {self.result.value}"

        lines.append(move_text)
        lines.append("")

        return "\n".join(lines)
