"""The match controller: wires tournament, statistics and reporting together.

``EngineMatch`` builds the players and the tournament from a
``MatchConfig``, subscribes the result aggregator, the SPRT tester and its
own reporting handlers to the tournament's event bus, prints interim
rankings every ``rating_interval`` games, stops dispatching once the SPRT
reaches a verdict, and signals ``finished`` after everything has drained.

Example:
    config = load_match_config("configs/match.yaml")
    match = EngineMatch(config)
    match.start()
    match.wait()
"""

import threading
import time

from loguru import logger

from enginematch.configs.schema import MatchConfig
from enginematch.engine.process import EngineFactory, ProcessEngineFactory
from enginematch.errors import ConfigurationError
from enginematch.tournament.events import (
    DebugMessage,
    EventBus,
    GameFinished,
    GameStarted,
    TournamentFinished,
)
from enginematch.tournament.openings import BookCache, PolyglotBook, load_openings
from enginematch.tournament.orchestrator import Tournament
from enginematch.tournament.player import Player
from enginematch.tournament.ranking import ResultAggregator, RankingRow, elo_difference, elo_error
from enginematch.tournament.reporting import ConsoleSink, PGNWriter, ReportSink
from enginematch.tournament.sprt import SequentialTester


class EngineMatch:
    """One configured match, from start to the ``finished`` notification."""

    def __init__(
        self,
        config: MatchConfig,
        factory: EngineFactory | None = None,
        sink: ReportSink | None = None,
    ) -> None:
        """Initialize the match.

        Args:
            config: Complete match configuration.
            factory: Starts engine processes. Defaults to local processes.
            sink: Destination of report lines. Defaults to the console.
        """
        self.config = config
        self.factory = factory or ProcessEngineFactory()
        self.sink = sink or ConsoleSink()
        self.bus = EventBus()
        self.books = BookCache()
        self.finished = threading.Event()

        self.players: list[Player] = []
        self.tournament: Tournament | None = None
        self.aggregator: ResultAggregator | None = None
        self.tester: SequentialTester | None = None
        self._pgn: PGNWriter | None = None
        self._started_at = time.monotonic()

    def add_opening_book(self, path: str) -> PolyglotBook | None:
        """Open (or fetch the already opened) book at ``path``.

        Returns None if the file can't be read; the failure is logged once
        and not retried.
        """
        return self.books.get(path)

    def start(self) -> None:
        """Set up the tournament and begin dispatching games.

        Raises:
            ConfigurationError: If the match can't be set up. Nothing is
                started in that case.
        """
        if self.tournament is not None:
            raise RuntimeError("Match already started")

        try:
            self._setup()
        except ConfigurationError:
            self.books.close()
            raise

        self.bus.subscribe(GameStarted, self._on_game_started)
        self.bus.subscribe(GameFinished, self.aggregator.on_game_finished)
        if self.tester is not None:
            self.bus.subscribe(GameFinished, self.tester.on_game_finished)
        self.bus.subscribe(GameFinished, self._on_game_finished)
        self.bus.subscribe(TournamentFinished, self._on_tournament_finished)
        if self.config.debug:
            self.bus.subscribe(DebugMessage, self._on_debug_message)

        if self.config.output.pgn_path:
            self._pgn = PGNWriter(self.config.output.pgn_path)
            self._pgn.open()

        self.tournament.start()

    def stop(self) -> None:
        """Stop starting new games. Running games are played to the end."""
        if self.tournament is not None:
            self.tournament.stop()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the match has finished. Returns False on timeout."""
        return self.finished.wait(timeout)

    def run(self) -> list[RankingRow]:
        """Start the match, wait for it and return the final ranking."""
        self.start()
        self.wait()
        return self.aggregator.compute_ranking()

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def _setup(self) -> None:
        config = self.config
        players = [Player.from_config(engine) for engine in config.engines]
        if len(players) < 2:
            raise ConfigurationError(f"At least two engines are required, got {len(players)}")

        openings = None
        if config.openings.path:
            openings = load_openings(
                config.openings.path,
                shuffle=config.openings.shuffle,
                seed=config.openings.seed,
            )

        book = None
        if config.openings.book:
            book = self.add_opening_book(config.openings.book)
            if book is None:
                raise ConfigurationError(f"Can't read opening book file {config.openings.book}")

        tester = None
        if config.sprt.enabled:
            if len(players) != 2:
                raise ConfigurationError("SPRT requires exactly two engines")
            tester = SequentialTester(
                elo0=config.sprt.elo0,
                elo1=config.sprt.elo1,
                alpha=config.sprt.alpha,
                beta=config.sprt.beta,
                player=players[0],
            )

        self.tournament = Tournament(
            players,
            self.factory,
            bus=self.bus,
            config=config.tournament,
            game_config=config.game,
            openings=openings,
            book=book,
            book_depth=config.openings.book_depth,
            trace=self._trace if config.debug else None,
        )
        self.players = players
        self.aggregator = ResultAggregator(players)
        self.tester = tester

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def _trace(self, name: str, direction: str, line: str) -> None:
        arrow = "<-" if direction == "<" else "->"
        self.bus.publish(DebugMessage(f"{name} {arrow} {line}"))

    def _on_debug_message(self, event: DebugMessage) -> None:
        elapsed_ms = int((time.monotonic() - self._started_at) * 1000)
        self.sink.write(f"{elapsed_ms} {event.text}")

    def _on_game_started(self, event: GameStarted) -> None:
        game = event.game
        self.sink.write(
            f"Started game {event.number} of {self.tournament.final_game_count} "
            f"({game.white.name} vs {game.black.name})"
        )

    def _on_game_finished(self, event: GameFinished) -> None:
        record = event.record
        # Both are idempotent per game, so this does not depend on the order
        # in which the bus runs the subscribers.
        self.aggregator.add_record(record)
        if self.tester is not None:
            self.tester.add_record(record)

        if self._pgn is not None and record.is_decided:
            self._pgn.write_game(record)

        self.sink.write(
            f"Finished game {event.number} ({record.white.name} vs {record.black.name}): "
            f"{record.verbose_result()}"
        )

        if len(self.players) == 2:
            first, second = self.players
            ratio = (2 * first.wins + first.draws) / (2 * first.games) if first.games else 0.0
            self.sink.write(
                f"Score of {first.name} vs {second.name}: "
                f"{first.wins} - {first.losses} - {first.draws}  [{ratio:.3f}] {first.games}"
            )

        interval = self.config.rating_interval
        if interval > 0 and self.tournament.finished_game_count % interval == 0:
            self.print_ranking()

        if self.tester is not None and self.tester.status().finished:
            logger.info(f"SPRT finished: {self.tester.summary_line()}")
            self.stop()

    def _on_tournament_finished(self, event: TournamentFinished) -> None:
        interval = self.config.rating_interval
        if interval == 0 or event.finished_games % interval != 0:
            self.print_ranking()

        if event.error:
            self.sink.write(f"Warning: {event.error}")

        self.sink.write("Finished match")
        if self._pgn is not None:
            self._pgn.close()
        self.books.close()
        self.finished.set()

    # ------------------------------------------------------------------
    # Ranking output
    # ------------------------------------------------------------------

    def print_ranking(self) -> None:
        """Write the current ranking (and SPRT status) to the sink."""
        if len(self.players) == 2:
            # Nothing to rate before the first counted game
            player = self.players[0]
            if player.games > 0:
                self.sink.write(self._elo_line(player))
        else:
            self.sink.write(f"{'Rank':>4} {'Name':<25} {'ELO':>7} {'Games':>7} {'Score':>7} {'Draws':>7}")
            for rank, row in enumerate(self.aggregator.compute_ranking(), 1):
                elo = f"{row.elo:.0f}" if row.elo is not None else "-"
                self.sink.write(
                    f"{rank:>4} {row.name:<25} {elo:>7} {row.games:>7} "
                    f"{row.score:>7.1%} {row.draws:>7.1%}"
                )

        if self.tester is not None:
            self.sink.write(self.tester.summary_line())

    @staticmethod
    def _elo_line(player: Player) -> str:
        elo = elo_difference(player.wins, player.losses, player.draws)
        if elo is None:
            return "ELO difference: undefined"
        line = f"ELO difference: {elo:.0f}"
        error = elo_error(player.wins, player.losses, player.draws)
        if error is not None:
            line += f" +/- {error:.0f}"
        return line
