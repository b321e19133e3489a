"""Typed events produced by protocol adapters from engine output."""

from dataclasses import dataclass, field

import chess


@dataclass(frozen=True)
class Score:
    """An evaluation reported by an engine, from the engine's point of view."""

    cp: int | None = None  # Centipawns
    mate: int | None = None  # Moves to mate (negative = getting mated)
    depth: int | None = None

    def centipawns(self, mate_value: int = 100_000) -> int | None:
        """Return the score in centipawns, mapping mate scores to +/- mate_value."""
        if self.mate is not None:
            return mate_value if self.mate > 0 else -mate_value
        return self.cp


@dataclass(frozen=True)
class EngineEvent:
    """Base class for everything an adapter can parse from a line."""


@dataclass(frozen=True)
class ReadyEvent(EngineEvent):
    """The engine finished its handshake or answered a readiness ping."""


@dataclass(frozen=True)
class MoveEvent(EngineEvent):
    """The engine played a move."""

    move: chess.Move
    score: Score | None = None


@dataclass(frozen=True)
class ScoreEvent(EngineEvent):
    """Search information carrying an evaluation."""

    score: Score


@dataclass(frozen=True)
class IllegalMoveEvent(EngineEvent):
    """The engine rejected a move we sent it."""

    move_text: str
    reason: str = ""


@dataclass(frozen=True)
class ResignEvent(EngineEvent):
    """The engine resigned or claimed its own loss."""

    reason: str = "resignation"


@dataclass(frozen=True)
class ErrorReportEvent(EngineEvent):
    """The engine reported an error about one of our commands."""

    message: str


@dataclass(frozen=True)
class EngineInfoEvent(EngineEvent):
    """Identification or feature data received during the handshake."""

    values: dict[str, str] = field(default_factory=dict)
