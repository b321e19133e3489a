"""Engine sessions: one protocol adapter bound to one engine process.

A session performs blocking request/reply exchanges with its own engine
and never blocks other sessions. Every wait carries a deadline; a missed
deadline, malformed output or a broken stream puts the session into
``SessionState.ERROR`` and is reported as an ``Adjudication`` instead of
an exception, so the game can turn it into a result.
"""

import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum

import chess
from loguru import logger

from enginematch.configs.schema import EngineConfig
from enginematch.engine.events import (
    EngineEvent,
    ErrorReportEvent,
    IllegalMoveEvent,
    MoveEvent,
    ReadyEvent,
    ResignEvent,
    Score,
)
from enginematch.engine.process import EngineFactory, LineHandle
from enginematch.engine.protocol import Dialect, ProtocolAdapter, SearchLimit
from enginematch.engine.uci import UciAdapter
from enginematch.engine.xboard import XboardAdapter
from enginematch.errors import (
    EngineResourceError,
    EngineTimeout,
    MatchError,
    ProtocolViolation,
    SessionBusyError,
)

# Seconds an Xboard engine may take to finish its features after "done=0"
EXTENDED_HANDSHAKE_TIMEOUT = 3600.0


class SessionState(Enum):
    """Lifecycle of an engine session."""

    STARTING = "starting"  # Handshake in progress
    READY = "ready"  # Handshake done, not in a game
    IDLE = "idle"  # In a game, waiting for its turn
    THINKING = "thinking"  # Search in flight
    FINISHED = "finished"  # Terminated
    ERROR = "error"  # Failed; must not be reused


class AdjudicationKind(Enum):
    """Why a session ended a game."""

    RESIGNATION = "resignation"
    PROTOCOL = "protocol violation"
    TIMEOUT = "timeout"
    CRASH = "engine crashed"


@dataclass(frozen=True)
class Adjudication:
    """A game-ending outcome caused by the session's engine."""

    kind: AdjudicationKind
    reason: str


@dataclass(frozen=True)
class MoveReply:
    """A move played by the engine."""

    move: chess.Move
    score: Score | None = None


TraceCallback = Callable[[str, str, str], None]  # (engine name, direction, line)


def make_adapter(dialect: Dialect, name: str, options: dict[str, str] | None = None) -> ProtocolAdapter:
    """Create the protocol adapter for a dialect."""
    if dialect is Dialect.UCI:
        return UciAdapter(name, options)
    return XboardAdapter(name, options)


class EngineSession:
    """Live binding between one engine process and one protocol adapter.

    At most one exchange may be in flight per session. Each session serves
    exactly one game at a time, so a concurrent second call is a caller bug
    and raises ``SessionBusyError``.
    """

    def __init__(
        self,
        handle: LineHandle | None,
        adapter: ProtocolAdapter,
        *,
        startup_timeout: float = 10.0,
        move_timeout_margin: float = 5.0,
        quit_timeout: float = 2.0,
        trace: TraceCallback | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            handle: Exclusive byte stream to the engine (None if it never started).
            adapter: Protocol adapter for the engine's dialect.
            startup_timeout: Seconds to wait for handshake/new-game readiness.
            move_timeout_margin: Seconds added to the search limit when waiting for a move.
            quit_timeout: Seconds to wait for the process to exit on terminate.
            trace: Optional callback receiving every line sent and received.
        """
        self.name = adapter.name
        self._handle = handle
        self._adapter = adapter
        self.startup_timeout = startup_timeout
        self.move_timeout_margin = move_timeout_margin
        self.quit_timeout = quit_timeout
        self._trace = trace

        self._state = SessionState.STARTING
        self._lock = threading.Lock()
        self.failure: Adjudication | None = None
        self.games_played = 0

    @classmethod
    def open(
        cls,
        factory: EngineFactory,
        config: EngineConfig,
        *,
        trace: TraceCallback | None = None,
    ) -> "EngineSession":
        """Start an engine process and complete the handshake.

        Never raises for engine faults: a session that failed to start is
        returned in the ERROR state with ``failure`` set.
        """
        options = {name: str(value) for name, value in config.options.items()}
        timeouts = {
            "startup_timeout": config.startup_timeout,
            "move_timeout_margin": config.move_timeout_margin,
            "quit_timeout": config.quit_timeout,
        }
        try:
            process = factory.create(config)
        except EngineResourceError as e:
            adapter = make_adapter(Dialect(config.protocol), config.name, options)
            session = cls(None, adapter, trace=trace, **timeouts)
            session._fail(AdjudicationKind.CRASH, str(e))
            return session

        adapter = make_adapter(process.dialect, config.name, options)
        session = cls(process.handle, adapter, trace=trace, **timeouts)
        session.start()
        return session

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def adapter(self) -> ProtocolAdapter:
        return self._adapter

    @property
    def reusable(self) -> bool:
        """Whether the session can serve another game."""
        return self._state in (SessionState.READY, SessionState.IDLE)

    def is_ready(self) -> bool:
        """Is the engine ready to play?"""
        return self.reusable and self._adapter.ready

    # ------------------------------------------------------------------
    # Session operations
    # ------------------------------------------------------------------

    def start(self) -> Adjudication | None:
        """Perform the handshake, blocking until ready or timed out."""
        with self._exchange():
            self._state = SessionState.STARTING
            try:
                self._adapter.start()
                self._flush()
                self._wait_for_handshake()
            except MatchError as e:
                return self._fail_from(e)

            self._state = SessionState.READY
            logger.debug(f"{self.name}: ready ({self._adapter.engine_name or 'unnamed engine'})")
            return None

    def new_game(self, side: chess.Color, board: chess.Board) -> Adjudication | None:
        """Prepare the engine for a new game played as ``side``."""
        with self._exchange():
            if self.failure is not None:
                return self.failure
            try:
                self._discard_output()
                self._adapter.begin_game(side, board)
                self._flush()
                if not self._adapter.ready:
                    self._wait_for(ReadyEvent, self.startup_timeout, "new game")
            except MatchError as e:
                return self._fail_from(e)

            self._state = SessionState.IDLE
            return None

    def play(self, move: chess.Move, board: chess.Board) -> Adjudication | None:
        """Tell the engine about its opponent's move.

        Args:
            move: The opponent's move.
            board: Position before the move.
        """
        with self._exchange():
            if self.failure is not None:
                return self.failure
            try:
                self._adapter.submit_opponent_move(move, board)
                self._flush()
            except MatchError as e:
                return self._fail_from(e)
            return None

    def go(self, board: chess.Board, limit: SearchLimit) -> MoveReply | Adjudication:
        """Ask the engine for a move in ``board``.

        Returns:
            The engine's move, or the adjudication that ends the game for it.
        """
        with self._exchange():
            if self.failure is not None:
                return self.failure
            self._state = SessionState.THINKING
            deadline = time.monotonic() + limit.timeout() + self.move_timeout_margin
            try:
                self._adapter.request_move(board, limit)
                self._flush()
                while True:
                    event = self._next_event(deadline, "move")
                    if isinstance(event, MoveEvent):
                        self._state = SessionState.IDLE
                        return MoveReply(event.move, event.score)
                    if isinstance(event, ResignEvent):
                        self._state = SessionState.IDLE
                        return Adjudication(AdjudicationKind.RESIGNATION, event.reason)
                    if isinstance(event, IllegalMoveEvent):
                        raise ProtocolViolation(
                            f"engine rejected move {event.move_text}"
                            + (f" ({event.reason})" if event.reason else "")
                        )
            except MatchError as e:
                return self._fail_from(e)

    def finish_game(self) -> None:
        """Mark the end of a game; the session stays usable unless it failed."""
        if self._state is SessionState.IDLE:
            self._state = SessionState.READY
            self.games_played += 1

    def terminate(self) -> None:
        """Quit the engine and wait (bounded) for the process to exit."""
        if self._state is SessionState.FINISHED:
            return
        if self._handle is not None:
            try:
                self._adapter.quit()
                self._flush()
            except EngineResourceError:
                pass
            if not self._handle.close(self.quit_timeout):
                logger.warning(f"{self.name}: did not exit within {self.quit_timeout}s, killed")
            self._handle = None
        self._state = SessionState.FINISHED
        logger.debug(f"{self.name}: terminated")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _exchange(self) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            raise SessionBusyError(f"{self.name}: exchange already in progress")
        try:
            yield
        finally:
            self._lock.release()

    def _flush(self) -> None:
        if self._handle is None:
            raise EngineResourceError("engine is not running")
        for line in self._adapter.take_output():
            if self._trace is not None:
                self._trace(self.name, "<", line)
            logger.trace(f"{self.name} <- {line}")
            self._handle.write_line(line)

    def _next_event(self, deadline: float, what: str) -> EngineEvent:
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise EngineTimeout(f"timed out waiting for {what}")
            if self._handle is None:
                raise EngineResourceError("engine is not running")

            line = self._handle.read_line(remaining)
            if line is None:
                continue
            if self._trace is not None:
                self._trace(self.name, ">", line)
            logger.trace(f"{self.name} -> {line}")

            event = self._adapter.parse_line(line)
            self._flush()
            if event is None:
                continue
            if isinstance(event, ErrorReportEvent):
                logger.warning(f"{self.name}: engine reported error: {event.message}")
                continue
            return event

    def _discard_output(self) -> None:
        """Drop output already buffered from the previous game, e.g. a result claim."""
        while self._handle is not None:
            line = self._handle.read_line(0.0)
            if line is None:
                return
            if self._trace is not None:
                self._trace(self.name, ">", line)
            logger.debug(f"{self.name}: discarding stale output: {line}")

    def _wait_for_handshake(self) -> None:
        deadline = time.monotonic() + self.startup_timeout
        extended = False
        while True:
            event = self._next_event(deadline, "handshake")
            if isinstance(event, ReadyEvent):
                return
            if self._adapter.handshake_extended and not extended:
                # Xboard "feature done=0": the engine may take up to an hour
                extended = True
                deadline = time.monotonic() + max(EXTENDED_HANDSHAKE_TIMEOUT, self.startup_timeout)
                logger.debug(f"{self.name}: handshake extended")

    def _wait_for(self, event_type: type[EngineEvent], timeout: float, what: str) -> EngineEvent:
        deadline = time.monotonic() + timeout
        while True:
            event = self._next_event(deadline, what)
            if isinstance(event, event_type):
                return event

    def _fail_from(self, error: MatchError) -> Adjudication:
        if isinstance(error, EngineTimeout):
            return self._fail(AdjudicationKind.TIMEOUT, str(error))
        if isinstance(error, EngineResourceError):
            return self._fail(AdjudicationKind.CRASH, str(error))
        return self._fail(AdjudicationKind.PROTOCOL, str(error))

    def _fail(self, kind: AdjudicationKind, reason: str) -> Adjudication:
        self._state = SessionState.ERROR
        self.failure = Adjudication(kind, reason)
        logger.warning(f"{self.name}: {kind.value}: {reason}")
        return self.failure

