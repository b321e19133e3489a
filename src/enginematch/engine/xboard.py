"""Xboard / Winboard (CECP version 2) adapter.

Xboard is the legacy dialect: the engine keeps its own copy of the game.
The adapter keeps the engine in force mode between searches so that it
only thinks when explicitly told to ``go``, which lets the game drive both
dialects the same way.
"""

import math
import re

import chess

from enginematch.engine.events import (
    EngineInfoEvent,
    ErrorReportEvent,
    IllegalMoveEvent,
    MoveEvent,
    ReadyEvent,
    ResignEvent,
    Score,
    ScoreEvent,
)
from enginematch.engine.protocol import (
    Awaiting,
    Dialect,
    MoveNotation,
    ProtocolAdapter,
    SearchLimit,
    encode_move,
)

_FEATURE_RE = re.compile(r'(\w+)=("[^"]*"|\S+)')

# xboard reports mate scores as +/-(100000 + distance)
_MATE_SCORE = 100_000


class XboardAdapter(ProtocolAdapter):
    """Adapter for engines speaking the Xboard protocol."""

    dialect = Dialect.XBOARD
    score_required = False

    PATTERNS = (
        (re.compile(r"^(?:move|My move is\s*:)\s*(\S+)"), "_on_move"),
        (re.compile(r"^Illegal move\s*(?:\(([^)]*)\))?\s*:\s*(\S+)"), "_on_illegal_move"),
        (re.compile(r"^resign\b"), "_on_resign"),
        (re.compile(r"^(1-0|0-1|1/2-1/2)\s*(?:\{([^}]*)\})?"), "_on_result_claim"),
        (re.compile(r"^pong\s+(\d+)"), "_on_pong"),
        (re.compile(r"^feature\s+(.*)$"), "_on_feature"),
        (re.compile(r"^(?:Error|Illegal command)\s*(?:\(([^)]*)\))?\s*:\s*(.*)$"), "_on_error"),
        (re.compile(r"^(\d+)\s+(-?\d+)\s+(\d+)\s+(\d+)\b"), "_on_thinking"),
    )

    def __init__(self, name: str = "engine", options: dict[str, str] | None = None) -> None:
        super().__init__(name, options)
        self.features: dict[str, str] = {}
        self._ping_counter = 0

    def _handshake_lines(self) -> list[str]:
        return ["xboard", "protover 2"]

    def _new_game(self, board: chess.Board) -> None:
        self._send("new", "force")
        if board.fen() != chess.STARTING_FEN:
            self._send(f"setboard {board.fen()}")
        self._send("post")

        if self.features.get("ping") == "1":
            self._ping_counter += 1
            self.ready = False
            self.awaiting = Awaiting.READY
            self._send(f"ping {self._ping_counter}")
        else:
            self.ready = True

    def _opponent_move(self, move: chess.Move, board: chess.Board) -> None:
        # The engine leaves force mode after its own move; put it back so it
        # does not start thinking on the opponent's move by itself.
        text = encode_move(move, board, self.notation)
        if self.features.get("usermove") == "1":
            text = f"usermove {text}"
        self._send("force", text)

    def _go(self, board: chess.Board, limit: SearchLimit) -> None:
        if limit.movetime_ms is not None:
            self._send(f"st {max(1, math.ceil(limit.movetime_ms / 1000))}")
        if limit.depth is not None:
            self._send(f"sd {limit.depth}")
        if limit.remaining_ms is not None:
            # Centiseconds
            self._send(f"time {limit.remaining_ms // 10}")
        self._send("go")

    # Line handlers

    def _on_move(self, match: re.Match[str]) -> MoveEvent:
        return MoveEvent(self._decode(match.group(1)))

    def _on_illegal_move(self, match: re.Match[str]) -> IllegalMoveEvent:
        return IllegalMoveEvent(match.group(2), match.group(1) or "")

    def _on_resign(self, match: re.Match[str]) -> ResignEvent:
        return ResignEvent()

    def _on_result_claim(self, match: re.Match[str]) -> ResignEvent | None:
        # Only a claim of our own loss ends the game; everything else is the
        # harness' call.
        result, comment = match.group(1), (match.group(2) or "").strip()
        if self.side is None or result == "1/2-1/2":
            return None
        own_loss = "0-1" if self.side == chess.WHITE else "1-0"
        if result == own_loss:
            return ResignEvent(comment or "resignation")
        return None

    def _on_pong(self, match: re.Match[str]) -> ReadyEvent | None:
        if int(match.group(1)) != self._ping_counter:
            return None
        return ReadyEvent()

    def _on_feature(self, match: re.Match[str]) -> EngineInfoEvent | ReadyEvent:
        values: dict[str, str] = {}
        for key, raw in _FEATURE_RE.findall(match.group(1)):
            value = raw.strip('"')
            values[key] = value
            self._send(f"accepted {key}")
        self.features.update(values)

        if "myname" in values:
            self.engine_name = values["myname"]
        if values.get("san") == "1":
            self.notation = MoveNotation.STANDARD

        if values.get("done") == "0" and self.awaiting is Awaiting.HANDSHAKE:
            self.handshake_extended = True
        if values.get("done") == "1" and self.awaiting is Awaiting.HANDSHAKE:
            for name, value in self.options.items():
                self._send(f"option {name}={value}")
            return ReadyEvent()
        return EngineInfoEvent(values)

    def _on_error(self, match: re.Match[str]) -> ErrorReportEvent:
        reason, command = match.group(1) or "", match.group(2)
        return ErrorReportEvent(f"{reason}: {command}" if reason else command)

    def _on_thinking(self, match: re.Match[str]) -> ScoreEvent:
        ply, value = int(match.group(1)), int(match.group(2))
        if abs(value) >= _MATE_SCORE:
            distance = max(abs(value) - _MATE_SCORE, 1)
            return ScoreEvent(Score(mate=distance if value > 0 else -distance, depth=ply))
        return ScoreEvent(Score(cp=value, depth=ply))

