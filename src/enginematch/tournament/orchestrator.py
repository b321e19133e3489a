"""Scheduling games across a pool of engine sessions.

The tournament runs a single scheduling loop that owns all bookkeeping.
Everything else talks to it through its control channel: ``start`` and
``stop`` are commands, and worker threads report finished games as
messages. Games run on a thread pool bounded by the concurrency limit; each
game owns its two sessions exclusively while it runs.
"""

import itertools
import queue
import threading
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum

import chess
from loguru import logger

from enginematch.configs.schema import GameConfig, TournamentConfig
from enginematch.engine.process import EngineFactory
from enginematch.engine.session import EngineSession, TraceCallback
from enginematch.errors import ConfigurationError
from enginematch.tournament.events import EventBus, GameFinished, GameStarted, TournamentFinished
from enginematch.tournament.game import Game, OpeningBook
from enginematch.tournament.player import Player
from enginematch.tournament.results import GameRecord, GameResult, GameTermination


@dataclass(frozen=True)
class Pairing:
    """One scheduled game."""

    number: int  # 1-based, in dispatch order
    white: Player
    black: Player
    encounter: int  # Games of the same encounter share an opening


def generate_pairings(
    players: list[Player], rounds: int = 1, games_per_encounter: int = 2
) -> list[Pairing]:
    """Round-robin schedule.

    Every pair of players meets ``games_per_encounter`` times per round, with
    colors alternating from game to game. With two players this is a plain
    match of ``rounds * games_per_encounter`` games; with N players it is
    ``rounds * games_per_encounter * N * (N - 1) / 2`` games.

    Raises:
        ConfigurationError: If fewer than two players are given.
    """
    if len(players) < 2:
        raise ConfigurationError(f"At least two players are required, got {len(players)}")

    pairings = []
    number = 0
    encounter = 0
    for round_index in range(rounds):
        for first, second in itertools.combinations(players, 2):
            for game_index in range(games_per_encounter):
                swap = (round_index * games_per_encounter + game_index) % 2 == 1
                white, black = (second, first) if swap else (first, second)
                number += 1
                pairings.append(Pairing(number, white, black, encounter))
            encounter += 1
    return pairings


class SessionPool:
    """Engine sessions per player, optionally reused between games.

    A session is handed to one game at a time. On release a healthy session
    goes back to the idle pool (when reuse is enabled); a failed one is
    always terminated and a fresh session is started for the next game.
    """

    def __init__(
        self,
        factory: EngineFactory,
        *,
        reuse: bool = True,
        trace: TraceCallback | None = None,
    ) -> None:
        self._factory = factory
        self.reuse = reuse
        self._trace = trace
        self._idle: dict[str, list[EngineSession]] = defaultdict(list)
        self._lock = threading.Lock()
        self.created = 0

    def acquire(self, player: Player) -> EngineSession:
        """Get an idle session for ``player`` or start a new one."""
        with self._lock:
            idle = self._idle[player.name]
            if idle:
                return idle.pop()
            self.created += 1
        return EngineSession.open(self._factory, player.engine, trace=self._trace)

    def release(self, player: Player, session: EngineSession) -> None:
        """Return a session after its game ended."""
        session.finish_game()
        if self.reuse and session.reusable:
            with self._lock:
                self._idle[player.name].append(session)
            return
        session.terminate()

    def close_all(self) -> None:
        """Terminate every idle session."""
        with self._lock:
            sessions = [s for idle in self._idle.values() for s in idle]
            self._idle.clear()
        for session in sessions:
            session.terminate()


class _Command(Enum):
    START = "start"
    STOP = "stop"


@dataclass(frozen=True)
class _GameDone:
    number: int
    record: GameRecord


class Tournament:
    """Runs the scheduled games, up to ``concurrency`` at a time.

    Example:
        tournament = Tournament(players, ProcessEngineFactory(), bus=bus)
        tournament.start()
        tournament.wait()
    """

    def __init__(
        self,
        players: list[Player],
        factory: EngineFactory,
        *,
        bus: EventBus | None = None,
        config: TournamentConfig | None = None,
        game_config: GameConfig | None = None,
        openings: list[str] | None = None,
        book: OpeningBook | None = None,
        book_depth: int = 0,
        trace: TraceCallback | None = None,
    ) -> None:
        """Initialize the tournament.

        Args:
            players: Participants, in seeding order.
            factory: Starts engine processes.
            bus: Event bus for game/tournament notifications.
            config: Rounds, games per encounter, concurrency, session reuse.
            game_config: Settings passed to every game.
            openings: Start positions (FEN); one per encounter, cycled.
            book: Optional opening book.
            book_depth: Maximum book plies per game.
            trace: Protocol trace callback passed to every session.

        Raises:
            ConfigurationError: If fewer than two players are given.
        """
        self.config = config or TournamentConfig()
        self.game_config = game_config or GameConfig()
        self.bus = bus or EventBus()
        self._players = list(players)
        self._pairings = generate_pairings(
            self._players, self.config.rounds, self.config.games_per_encounter
        )
        self._openings = list(openings or [])
        self._book = book
        self._book_depth = book_depth
        self.sessions = SessionPool(factory, reuse=self.config.reuse_sessions, trace=trace)

        self._control: queue.Queue = queue.Queue()
        self._thread: threading.Thread | None = None
        self._done = threading.Event()
        self._lock = threading.Lock()
        self._next_index = 0
        self._finished_games = 0
        self._errors: list[str] = []

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    @property
    def players(self) -> list[Player]:
        return list(self._players)

    @property
    def pairings(self) -> list[Pairing]:
        return list(self._pairings)

    @property
    def final_game_count(self) -> int:
        return len(self._pairings)

    @property
    def finished_game_count(self) -> int:
        with self._lock:
            return self._finished_games

    @property
    def error_string(self) -> str:
        """The first error collected while running, or an empty string."""
        with self._lock:
            return self._errors[0] if self._errors else ""

    def start(self) -> None:
        """Begin dispatching games."""
        if self._thread is None:
            self._thread = threading.Thread(
                target=self._loop, name="tournament", daemon=True
            )
            self._thread.start()
        self._control.put(_Command.START)

    def stop(self) -> None:
        """Stop dispatching new games; games in flight run to completion."""
        self._control.put(_Command.STOP)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the tournament has finished. Returns False on timeout."""
        return self._done.wait(timeout)

    # ------------------------------------------------------------------
    # Scheduling loop
    # ------------------------------------------------------------------

    def _loop(self) -> None:
        state = {"running": False, "stopping": False, "in_flight": 0}
        concurrency = self.config.concurrency

        with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="game") as executor:
            while True:
                self._handle(self._control.get(), state)
                # Drain whatever else is queued (e.g. a stop issued by a
                # GameFinished handler) before dispatching.
                while True:
                    try:
                        message = self._control.get_nowait()
                    except queue.Empty:
                        break
                    self._handle(message, state)

                while (
                    state["running"]
                    and not state["stopping"]
                    and state["in_flight"] < concurrency
                    and self._next_index < len(self._pairings)
                ):
                    pairing = self._pairings[self._next_index]
                    self._next_index += 1
                    state["in_flight"] += 1
                    executor.submit(self._run_game, pairing)

                exhausted = state["stopping"] or self._next_index >= len(self._pairings)
                if state["running"] and state["in_flight"] == 0 and exhausted:
                    break

        self.sessions.close_all()
        logger.info(f"Tournament finished after {self._finished_games} games")
        self.bus.publish(TournamentFinished(self._finished_games, self.error_string))
        self._done.set()

    def _handle(self, message: object, state: dict) -> None:
        if message is _Command.START:
            if not state["running"]:
                logger.info(f"Starting tournament: {self.final_game_count} games")
            state["running"] = True
        elif message is _Command.STOP:
            if not state["stopping"]:
                logger.info("Stop requested: no new games will be started")
            state["stopping"] = True
        elif isinstance(message, _GameDone):
            state["in_flight"] -= 1
            with self._lock:
                self._finished_games += 1
            self.bus.publish(GameFinished(message.record, message.number))

    def _run_game(self, pairing: Pairing) -> None:
        """Worker: play one game and report it to the scheduling loop."""
        acquired: list[tuple[Player, EngineSession]] = []
        game: Game | None = None
        try:
            for player in (pairing.white, pairing.black):
                acquired.append((player, self.sessions.acquire(player)))

            game = Game(
                pairing.white,
                pairing.black,
                acquired[0][1],
                acquired[1][1],
                config=self.game_config,
                opening_fen=self._opening_for(pairing),
                book=self._book,
                book_depth=self._book_depth,
                number=pairing.number,
            )
            self.bus.publish(GameStarted(game, pairing.number))
            record = game.play()
        except Exception as e:
            logger.exception(f"Game {pairing.number} failed")
            self._add_error(f"Game {pairing.number}: {e}")
            if game is not None:
                record = game.unterminated(f"internal error: {e}")
            else:
                record = GameRecord(
                    white=pairing.white,
                    black=pairing.black,
                    result=GameResult.UNTERMINATED,
                    reason=f"internal error: {e}",
                    termination=GameTermination.UNTERMINATED,
                    number=pairing.number,
                )

        for player, session in acquired:
            if session.failure is not None:
                self._add_error(f"{player.name}: {session.failure.reason}")
            self.sessions.release(player, session)
        self._control.put(_GameDone(pairing.number, record))

    def _opening_for(self, pairing: Pairing) -> str:
        if not self._openings:
            return chess.STARTING_FEN
        return self._openings[pairing.encounter % len(self._openings)]

    def _add_error(self, message: str) -> None:
        with self._lock:
            self._errors.append(message)
