"""Playing a single game between two engine sessions.

The game alternates search requests between the two sessions, checks every
move with the rules collaborator, and finalizes a ``GameRecord`` when the
rules, an adjudication, or an engine failure ends it. This is the only
place where engine failures become game results.
"""

from typing import Protocol

import chess
from loguru import logger

from enginematch.configs.schema import GameConfig
from enginematch.engine.events import Score
from enginematch.engine.protocol import SearchLimit
from enginematch.engine.session import Adjudication, AdjudicationKind, EngineSession
from enginematch.tournament.player import Player
from enginematch.tournament.results import GameRecord, GameResult, GameTermination
from enginematch.tournament.rules import apply_move, natural_termination

_ADJUDICATION_TERMINATION = {
    AdjudicationKind.RESIGNATION: GameTermination.RESIGNATION,
    AdjudicationKind.PROTOCOL: GameTermination.PROTOCOL_ERROR,
    AdjudicationKind.TIMEOUT: GameTermination.TIMEOUT,
    AdjudicationKind.CRASH: GameTermination.ENGINE_CRASH,
}


class OpeningBook(Protocol):
    """Keyed book service: returns a move for a position, or None."""

    def lookup(self, board: chess.Board) -> chess.Move | None: ...


def _side_name(color: chess.Color) -> str:
    return "White" if color == chess.WHITE else "Black"


class Game:
    """One game between two players, each served by its own session."""

    def __init__(
        self,
        white: Player,
        black: Player,
        white_session: EngineSession,
        black_session: EngineSession,
        *,
        config: GameConfig | None = None,
        opening_fen: str = chess.STARTING_FEN,
        book: OpeningBook | None = None,
        book_depth: int = 0,
        number: int = 0,
    ) -> None:
        """Initialize the game.

        Args:
            white: Player with the white pieces.
            black: Player with the black pieces.
            white_session: Session serving White; owned exclusively by this game.
            black_session: Session serving Black; owned exclusively by this game.
            config: Move limit, search limit and adjudication settings.
            opening_fen: Starting position.
            book: Optional opening book consulted for the first plies.
            book_depth: Maximum number of book plies.
            number: Game number within the tournament.
        """
        self.white = white
        self.black = black
        self.config = config or GameConfig()
        self.opening_fen = opening_fen
        self.book = book
        self.book_depth = book_depth
        self.number = number

        self._players = {chess.WHITE: white, chess.BLACK: black}
        self._sessions = {chess.WHITE: white_session, chess.BLACK: black_session}
        self._board = chess.Board(opening_fen)
        self._moves: list[str] = []
        self._record: GameRecord | None = None

        # Adjudication counters
        self._draw_plies = 0
        self._resign_counts = {chess.WHITE: 0, chess.BLACK: 0}

    @property
    def record(self) -> GameRecord | None:
        """The finalized record, once the game is over."""
        return self._record

    def play(self) -> GameRecord:
        """Play the game to completion.

        Returns:
            The finalized record.
        """
        if self._record is not None:
            return self._record

        for color in (chess.WHITE, chess.BLACK):
            failure = self._sessions[color].new_game(color, self._board)
            if failure is not None:
                return self._forfeit(color, failure)

        failure = self._play_book_moves()
        if failure is not None:
            return failure

        search = SearchLimit(**vars(self.config.search))
        while True:
            ended = natural_termination(self._board)
            if ended is not None:
                termination, result, reason = ended
                return self._finalize(result, reason, termination)

            if self.config.max_moves and len(self._board.move_stack) >= self.config.max_moves:
                return self._finalize(
                    GameResult.DRAW, "Draw by move limit", GameTermination.MAX_MOVES
                )

            color = self._board.turn
            reply = self._sessions[color].go(self._board, search)
            if isinstance(reply, Adjudication):
                return self._forfeit(color, reply)

            new_board = apply_move(self._board, reply.move)
            if new_board is None:
                return self._finalize(
                    self._loss_for(color),
                    f"{_side_name(color)} makes an illegal move: {reply.move.uci()}",
                    GameTermination.ILLEGAL_MOVE,
                )

            failure = self._sessions[not color].play(reply.move, self._board)
            self._board = new_board
            self._moves.append(reply.move.uci())
            if failure is not None:
                return self._forfeit(not color, failure)

            adjudicated = self._adjudicate(color, reply.score)
            if adjudicated is not None:
                return adjudicated

    def _play_book_moves(self) -> GameRecord | None:
        if self.book is None:
            return None
        for _ in range(self.book_depth):
            move = self.book.lookup(self._board)
            if move is None:
                break
            new_board = apply_move(self._board, move)
            if new_board is None:
                logger.warning(f"Game {self.number}: book move {move.uci()} is illegal, leaving book")
                break
            for color in (chess.WHITE, chess.BLACK):
                failure = self._sessions[color].play(move, self._board)
                if failure is not None:
                    return self._forfeit(color, failure)
            self._board = new_board
            self._moves.append(move.uci())
        return None

    def _adjudicate(self, color: chess.Color, score: Score | None) -> GameRecord | None:
        """Score-based draw and resign adjudication after ``color`` moved."""
        cp = score.centipawns() if score is not None else None
        config = self.config

        if config.resign_count > 0:
            if cp is not None and cp <= -config.resign_score:
                self._resign_counts[color] += 1
            else:
                self._resign_counts[color] = 0
            if self._resign_counts[color] >= config.resign_count:
                return self._finalize(
                    self._loss_for(color),
                    f"{_side_name(color)} resigns (adjudicated)",
                    GameTermination.RESIGN_ADJUDICATED,
                )

        if config.draw_count > 0:
            if (
                cp is not None
                and abs(cp) <= config.draw_score
                and self._board.fullmove_number >= config.draw_move_number
            ):
                self._draw_plies += 1
            else:
                self._draw_plies = 0
            if self._draw_plies >= 2 * config.draw_count:
                return self._finalize(
                    GameResult.DRAW, "Draw (adjudicated)", GameTermination.DRAW_ADJUDICATED
                )

        return None

    def _forfeit(self, color: chess.Color, adjudication: Adjudication) -> GameRecord:
        """The engine playing ``color`` failed or resigned: its opponent wins."""
        name = self._players[color].name
        if adjudication.kind is AdjudicationKind.RESIGNATION:
            reason = f"{_side_name(color)} resigns"
        else:
            reason = f"{name}: {adjudication.reason}"
        return self._finalize(
            self._loss_for(color), reason, _ADJUDICATION_TERMINATION[adjudication.kind]
        )

    def unterminated(self, reason: str) -> GameRecord:
        """Finalize the game without a result (internal failure)."""
        return self._finalize(GameResult.UNTERMINATED, reason, GameTermination.UNTERMINATED)

    @staticmethod
    def _loss_for(color: chess.Color) -> GameResult:
        return GameResult.BLACK_WINS if color == chess.WHITE else GameResult.WHITE_WINS

    def _finalize(
        self, result: GameResult, reason: str, termination: GameTermination
    ) -> GameRecord:
        if self._record is None:
            self._record = GameRecord(
                white=self.white,
                black=self.black,
                result=result,
                reason=reason,
                termination=termination,
                opening_fen=self.opening_fen,
                moves=tuple(self._moves),
                number=self.number,
            )
            logger.debug(
                f"Game {self.number} ({self.white.name} vs {self.black.name}): "
                f"{self._record.verbose_result()}"
            )
        return self._record
