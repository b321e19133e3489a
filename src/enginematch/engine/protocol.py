"""Protocol adapter contract shared by the UCI and Xboard dialects.

An adapter is a pure translator: game commands go in and come out as
wire lines in the adapter's outbox, and engine lines go in and come out as
typed events. It never touches the byte stream itself; the owning
``EngineSession`` writes the outbox and feeds it lines.

Moves cross the adapter boundary as ``chess.Move`` objects. Conversion to
and from the engine's notation (coordinate or SAN) happens here, at the
wire edge, so the game never branches on dialect.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar

import chess

from enginematch.engine.events import (
    EngineEvent,
    MoveEvent,
    ReadyEvent,
    ResignEvent,
    Score,
    ScoreEvent,
)
from enginematch.errors import ProtocolViolation


class Dialect(Enum):
    """Engine communication protocol."""

    UCI = "uci"
    XBOARD = "xboard"


class MoveNotation(Enum):
    """Move notation an engine uses on the wire."""

    LONG = "long"  # Coordinate notation, e.g. e2e4 / e7e8q
    STANDARD = "standard"  # SAN, e.g. Nf3 / exd5 / O-O


class Awaiting(Enum):
    """Reply class the adapter is currently waiting for."""

    NOTHING = "nothing"
    HANDSHAKE = "handshake"
    READY = "ready"
    MOVE = "move"


@dataclass(frozen=True)
class SearchLimit:
    """Limits for a single search request.

    Only ``remaining_ms`` is time-control related; it is passed through to
    the engine as-is, the harness does no clock bookkeeping.
    """

    movetime_ms: int | None = 1000
    depth: int | None = None
    nodes: int | None = None
    remaining_ms: int | None = None

    def timeout(self, default: float = 60.0) -> float:
        """Best guess at how long the engine may legitimately think, in seconds."""
        if self.movetime_ms is not None:
            return self.movetime_ms / 1000.0
        if self.remaining_ms is not None:
            return self.remaining_ms / 1000.0
        return default


def encode_move(move: chess.Move, board: chess.Board, notation: MoveNotation) -> str:
    """Encode a move for the wire.

    Args:
        move: The move to encode.
        board: Position *before* the move (needed for SAN).
        notation: Notation the engine expects.

    Returns:
        Move text.
    """
    if notation is MoveNotation.STANDARD:
        return board.san(move)
    return move.uci()


def decode_move(text: str, board: chess.Board, notation: MoveNotation) -> chess.Move:
    """Decode move text received from an engine.

    Coordinate notation is only checked for syntax here; legality belongs
    to the rules collaborator. SAN cannot be resolved without legality, so
    SAN that does not match a legal move is a protocol violation. Engines in
    SAN mode that answer in coordinate notation are tolerated.

    Raises:
        ProtocolViolation: If the text cannot be decoded.
    """
    if notation is MoveNotation.STANDARD:
        try:
            return board.parse_san(text)
        except ValueError:
            pass
    try:
        return chess.Move.from_uci(text)
    except ValueError:
        raise ProtocolViolation(f"Unparsable move: {text!r}") from None


class ProtocolAdapter(ABC):
    """Per-engine state machine translating between wire text and events.

    Subclasses provide ``PATTERNS``, an ordered tuple of
    ``(compiled regex, handler method name)``. Each inbound line is matched
    against them in order; the first match wins and unmatched lines are
    ignored.
    """

    dialect: ClassVar[Dialect]
    score_required: ClassVar[bool] = False
    PATTERNS: ClassVar[tuple[tuple[re.Pattern[str], str], ...]] = ()

    def __init__(self, name: str = "engine", options: dict[str, str] | None = None) -> None:
        self.name = name
        self.engine_name: str | None = None
        self.options = dict(options or {})
        self.notation = MoveNotation.LONG

        # Per-engine state
        self.side: chess.Color | None = None
        self.ready = False
        self.awaiting = Awaiting.NOTHING
        self.pending_moves: list[chess.Move] = []
        # Set when the engine asks for more time to finish the handshake
        self.handshake_extended = False

        self._position: chess.Board | None = None
        self._last_score: Score | None = None
        self._outbox: list[str] = []

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Queue the dialect handshake and wait for the engine to be ready."""
        self.ready = False
        self.awaiting = Awaiting.HANDSHAKE
        self.handshake_extended = False
        self._send(*self._handshake_lines())

    def begin_game(self, side: chess.Color, board: chess.Board) -> None:
        """Reset per-game state and queue a new-game command.

        Args:
            side: The side this engine plays.
            board: Starting position of the game.
        """
        self._require(Awaiting.NOTHING, "begin a game")
        self.side = side
        self.pending_moves = []
        self._position = None
        self._last_score = None
        self._new_game(board)

    def submit_opponent_move(self, move: chess.Move, board: chess.Board) -> None:
        """Queue the opponent's move.

        Args:
            move: Move played by the opponent.
            board: Position before the move.
        """
        self._require(Awaiting.NOTHING, "send a move")
        self.pending_moves.append(move)
        self._opponent_move(move, board)

    def request_move(self, board: chess.Board, limit: SearchLimit) -> None:
        """Queue a search request; the adapter then waits for a move."""
        self._require(Awaiting.NOTHING, "start a search")
        self._position = board.copy(stack=False)
        self._last_score = None
        self.awaiting = Awaiting.MOVE
        self._go(board, limit)

    def quit(self) -> None:
        """Queue the quit command."""
        self.awaiting = Awaiting.NOTHING
        self._send("quit")

    def take_output(self) -> list[str]:
        """Return and clear the lines waiting to be written to the engine."""
        lines, self._outbox = self._outbox, []
        return lines

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def parse_line(self, line: str) -> EngineEvent | None:
        """Translate one line of engine output into an event.

        Returns:
            The parsed event, or None for lines that carry nothing of interest.

        Raises:
            ProtocolViolation: For malformed or out-of-turn replies.
        """
        line = line.strip()
        if not line:
            return None

        event = None
        for pattern, handler in self.PATTERNS:
            match = pattern.match(line)
            if match:
                event = getattr(self, handler)(match)
                break

        if isinstance(event, ReadyEvent):
            if self.awaiting not in (Awaiting.HANDSHAKE, Awaiting.READY):
                return None
            self.ready = True
            self.awaiting = Awaiting.NOTHING
        elif isinstance(event, ScoreEvent):
            if self.awaiting is Awaiting.MOVE:
                self._last_score = event.score
        elif isinstance(event, MoveEvent):
            event = self._accept_move(event)
        elif isinstance(event, ResignEvent):
            # A result line left over from the previous game is not a resignation
            if self.awaiting is not Awaiting.MOVE:
                return None
            self.awaiting = Awaiting.NOTHING
            self._position = None
        return event

    def _accept_move(self, event: MoveEvent) -> MoveEvent:
        if self.awaiting is not Awaiting.MOVE:
            raise ProtocolViolation(f"Unexpected move {event.move.uci()} while not thinking")
        if self.score_required and self._last_score is None:
            raise ProtocolViolation("Move received without an evaluation score")
        self.awaiting = Awaiting.NOTHING
        self.pending_moves.append(event.move)
        self._position = None
        return MoveEvent(event.move, self._last_score)

    def _decode(self, text: str) -> chess.Move:
        if self._position is None:
            raise ProtocolViolation(f"Unexpected move {text!r} while not thinking")
        return decode_move(text, self._position, self.notation)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _send(self, *lines: str) -> None:
        self._outbox.extend(lines)

    def _require(self, awaiting: Awaiting, action: str) -> None:
        if self.awaiting is not awaiting:
            raise ProtocolViolation(
                f"Cannot {action} while waiting for {self.awaiting.value}"
            )

    # ------------------------------------------------------------------
    # Dialect hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _handshake_lines(self) -> list[str]:
        """Lines that open the conversation."""

    @abstractmethod
    def _new_game(self, board: chess.Board) -> None:
        """Queue the new-game command(s) and set readiness."""

    @abstractmethod
    def _opponent_move(self, move: chess.Move, board: chess.Board) -> None:
        """Queue wire text for the opponent's move (may be deferred)."""

    @abstractmethod
    def _go(self, board: chess.Board, limit: SearchLimit) -> None:
        """Queue the search command(s)."""
