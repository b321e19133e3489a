"""Universal Chess Interface (UCI) adapter.

UCI is the stateful dialect: the engine holds no game of its own between
searches, so every search request carries the full position and the moves
played since the start of the game. Opponent moves are only buffered until
the next ``go``.
"""

import re

import chess

from enginematch.engine.events import (
    EngineInfoEvent,
    MoveEvent,
    ReadyEvent,
    Score,
    ScoreEvent,
)
from enginematch.engine.protocol import (
    Awaiting,
    Dialect,
    ProtocolAdapter,
    SearchLimit,
)
from enginematch.errors import ProtocolViolation

_SCORE_RE = re.compile(r"\bscore\s+(cp|mate)\s+(-?\d+)")
_DEPTH_RE = re.compile(r"\bdepth\s+(\d+)")


class UciAdapter(ProtocolAdapter):
    """Adapter for engines speaking UCI."""

    dialect = Dialect.UCI
    score_required = True

    PATTERNS = (
        (re.compile(r"^bestmove\s+(\S+)"), "_on_bestmove"),
        (re.compile(r"^info\s+string\b"), "_on_ignored"),
        (re.compile(r"^info\s+(.*)$"), "_on_info"),
        (re.compile(r"^readyok\b"), "_on_readyok"),
        (re.compile(r"^uciok\b"), "_on_uciok"),
        (re.compile(r"^id\s+(name|author)\s+(.*)$"), "_on_id"),
    )

    def __init__(self, name: str = "engine", options: dict[str, str] | None = None) -> None:
        super().__init__(name, options)
        self._start_fen = chess.STARTING_FEN

    def _handshake_lines(self) -> list[str]:
        return ["uci"]

    def _new_game(self, board: chess.Board) -> None:
        self._start_fen = board.fen()
        self.ready = False
        self.awaiting = Awaiting.READY
        self._send("ucinewgame", "isready")

    def _opponent_move(self, move: chess.Move, board: chess.Board) -> None:
        # Sent with the next position command
        pass

    def _go(self, board: chess.Board, limit: SearchLimit) -> None:
        if self._start_fen == chess.STARTING_FEN:
            position = "position startpos"
        else:
            position = f"position fen {self._start_fen}"
        if self.pending_moves:
            position += " moves " + " ".join(m.uci() for m in self.pending_moves)

        go_parts = ["go"]
        if limit.remaining_ms is not None:
            go_parts.append("wtime" if board.turn == chess.WHITE else "btime")
            go_parts.append(str(limit.remaining_ms))
        if limit.movetime_ms is not None:
            go_parts += ["movetime", str(limit.movetime_ms)]
        if limit.depth is not None:
            go_parts += ["depth", str(limit.depth)]
        if limit.nodes is not None:
            go_parts += ["nodes", str(limit.nodes)]
        if len(go_parts) == 1:
            go_parts.append("infinite")

        self._send(position, " ".join(go_parts))

    # Line handlers

    def _on_bestmove(self, match: re.Match[str]) -> MoveEvent:
        text = match.group(1)
        if text in ("(none)", "0000"):
            raise ProtocolViolation("Engine returned no move")
        return MoveEvent(self._decode(text))

    def _on_ignored(self, match: re.Match[str]) -> None:
        return None

    def _on_info(self, match: re.Match[str]) -> ScoreEvent | None:
        info = match.group(1)
        score = _SCORE_RE.search(info)
        if score is None:
            return None
        depth = _DEPTH_RE.search(info)
        value = int(score.group(2))
        return ScoreEvent(
            Score(
                cp=value if score.group(1) == "cp" else None,
                mate=value if score.group(1) == "mate" else None,
                depth=int(depth.group(1)) if depth else None,
            )
        )

    def _on_readyok(self, match: re.Match[str]) -> ReadyEvent | None:
        # A readyok before uciok does not end the handshake
        if self.awaiting is not Awaiting.READY:
            return None
        return ReadyEvent()

    def _on_uciok(self, match: re.Match[str]) -> None:
        if self.awaiting is not Awaiting.HANDSHAKE:
            return None
        for name, value in self.options.items():
            self._send(f"setoption name {name} value {value}")
        self.awaiting = Awaiting.READY
        self._send("isready")
        return None

    def _on_id(self, match: re.Match[str]) -> EngineInfoEvent:
        key, value = match.group(1), match.group(2).strip()
        if key == "name":
            self.engine_name = value
        return EngineInfoEvent({key: value})
