"""Tests for pairing generation and the tournament scheduler."""

import threading

import pytest
from fakes import STRONG, WEAK, Behaviour, FakeEngineFactory, engine_config

from enginematch.configs.schema import GameConfig, TournamentConfig
from enginematch.engine.session import SessionState
from enginematch.errors import ConfigurationError
from enginematch.tournament.events import EventBus, GameFinished, GameStarted, TournamentFinished
from enginematch.tournament.game import Game
from enginematch.tournament.orchestrator import SessionPool, Tournament, generate_pairings
from enginematch.tournament.player import Player
from enginematch.tournament.ranking import ResultAggregator
from enginematch.tournament.results import GameRecord, GameResult, GameTermination


def make_players(*names: str) -> list[Player]:
    return [Player.from_config(engine_config(name)) for name in names]


def three_player_factory() -> FakeEngineFactory:
    return FakeEngineFactory(
        behaviours={
            "strong": Behaviour(preferences=STRONG),
            "weak": Behaviour(preferences=WEAK),
            "weaker": Behaviour(preferences=WEAK),
        }
    )


def run_tournament(
    players: list[Player],
    factory: FakeEngineFactory,
    game_config: GameConfig,
    **config,
) -> tuple[Tournament, list]:
    bus = EventBus()
    events = []
    lock = threading.Lock()

    def record(event) -> None:
        with lock:
            events.append(event)

    for event_type in (GameStarted, GameFinished, TournamentFinished):
        bus.subscribe(event_type, record)

    tournament = Tournament(
        players, factory, bus=bus, config=TournamentConfig(**config), game_config=game_config
    )
    tournament.start()
    assert tournament.wait(timeout=60)
    return tournament, events


class TestPairings:
    """Tests for generate_pairings."""

    def test_two_player_match(self) -> None:
        """Two players: rounds x games per encounter, colors alternating."""
        a, b = make_players("a", "b")
        pairings = generate_pairings([a, b], rounds=5, games_per_encounter=2)
        assert len(pairings) == 10
        assert [p.number for p in pairings] == list(range(1, 11))
        assert [p.white for p in pairings[:4]] == [a, b, a, b]

    @pytest.mark.parametrize(("count", "rounds", "per_encounter"), [(3, 1, 2), (4, 2, 2), (5, 3, 1)])
    def test_round_robin_count(self, count: int, rounds: int, per_encounter: int) -> None:
        """N players: rounds x games per encounter x N(N-1)/2 games."""
        players = make_players(*(f"p{i}" for i in range(count)))
        pairings = generate_pairings(players, rounds, per_encounter)
        assert len(pairings) == rounds * per_encounter * count * (count - 1) // 2

    def test_every_pair_meets(self) -> None:
        players = make_players("a", "b", "c")
        pairings = generate_pairings(players, rounds=1, games_per_encounter=2)
        meetings = {frozenset((p.white.name, p.black.name)) for p in pairings}
        assert meetings == {frozenset("ab"), frozenset("ac"), frozenset("bc")}
        assert all(p.white is not p.black for p in pairings)

    def test_too_few_players(self) -> None:
        with pytest.raises(ConfigurationError):
            generate_pairings(make_players("solo"))


class TestSessionPool:
    """Tests for session reuse."""

    def test_acquired_sessions_are_exclusive(self) -> None:
        """A session handed out is not handed out again until released."""
        (player,) = make_players("a")
        pool = SessionPool(FakeEngineFactory())
        first = pool.acquire(player)
        second = pool.acquire(player)
        assert first is not second

        pool.release(player, first)
        assert pool.acquire(player) is first
        assert pool.created == 2

    def test_failed_session_is_terminated(self) -> None:
        factory = FakeEngineFactory(behaviours={"a": Behaviour(never_ready=True)})
        player = Player.from_config(engine_config("a", startup_timeout=0.1))
        pool = SessionPool(factory)
        session = pool.acquire(player)
        pool.release(player, session)
        assert session.state is SessionState.FINISHED
        assert pool.acquire(player) is not session

    def test_no_reuse(self) -> None:
        (player,) = make_players("a")
        pool = SessionPool(FakeEngineFactory(), reuse=False)
        session = pool.acquire(player)
        pool.release(player, session)
        assert session.state is SessionState.FINISHED


class TestTournament:
    """Tests for running tournaments."""

    def test_all_games_are_played(self, fast_game: GameConfig) -> None:
        players = make_players("strong", "weak")
        tournament, events = run_tournament(players, three_player_factory(), fast_game, rounds=3)

        started = [e for e in events if isinstance(e, GameStarted)]
        finished = [e for e in events if isinstance(e, GameFinished)]
        assert len(started) == len(finished) == 6
        assert sorted(e.number for e in finished) == [1, 2, 3, 4, 5, 6]
        assert isinstance(events[-1], TournamentFinished)
        assert events[-1].finished_games == 6
        assert tournament.finished_game_count == tournament.final_game_count == 6
        assert tournament.players == players
        assert [p.number for p in tournament.pairings] == [1, 2, 3, 4, 5, 6]
        assert all(e.record.winner.name == "strong" for e in finished)

    def test_concurrency_does_not_change_results(self, fast_game: GameConfig) -> None:
        """Aggregate W/L/D is the same whatever the concurrency limit."""
        totals = []
        for concurrency in (1, 4):
            players = make_players("strong", "weak", "weaker")
            aggregator = ResultAggregator(players)
            _, events = run_tournament(
                players, three_player_factory(), fast_game, rounds=2, concurrency=concurrency
            )
            for event in events:
                if isinstance(event, GameFinished):
                    aggregator.add_record(event.record)
            totals.append([(p.name, p.wins, p.losses, p.draws) for p in players])

        assert totals[0] == totals[1]
        # weak vs weaker never gets past the move limit
        assert totals[0][1][3] == 4

    def test_sessions_are_reused(self, fast_game: GameConfig) -> None:
        """With reuse and one game at a time, each engine is started once."""
        factory = three_player_factory()
        run_tournament(make_players("strong", "weak"), factory, fast_game, rounds=4)
        assert factory.created == {"strong": 1, "weak": 1}
        assert all(handle.closed for handle in factory.handles)

    def test_sessions_are_recreated_without_reuse(self, fast_game: GameConfig) -> None:
        factory = three_player_factory()
        run_tournament(
            make_players("strong", "weak"), factory, fast_game, rounds=2, reuse_sessions=False
        )
        assert factory.created == {"strong": 4, "weak": 4}

    def test_crashed_engine_is_restarted_for_next_game(self, fast_game: GameConfig) -> None:
        """A crash costs one game; the next game gets a fresh process."""
        factory = FakeEngineFactory(
            behaviours={
                "strong": Behaviour(preferences=STRONG),
                "weak": Behaviour(preferences=WEAK, crash_at_ply=2),
            }
        )
        tournament, events = run_tournament(make_players("strong", "weak"), factory, fast_game, rounds=1)
        finished = [e.record for e in events if isinstance(e, GameFinished)]
        assert all(r.result is not GameResult.UNTERMINATED for r in finished)
        assert factory.created["weak"] == 2
        assert "engine terminated unexpectedly" in tournament.error_string

    def test_stop_drains_running_games(self, fast_game: GameConfig) -> None:
        """After stop() no new game starts, and the tournament still finishes."""
        bus = EventBus()
        players = make_players("strong", "weak")
        tournament = Tournament(
            players,
            three_player_factory(),
            bus=bus,
            config=TournamentConfig(rounds=50, concurrency=2),
            game_config=fast_game,
        )
        bus.subscribe(GameFinished, lambda event: tournament.stop())
        finished = []
        bus.subscribe(TournamentFinished, finished.append)

        tournament.start()
        assert tournament.wait(timeout=60)
        assert len(finished) == 1
        assert tournament.finished_game_count <= 2 + 1
        assert tournament.finished_game_count < tournament.final_game_count

    @pytest.mark.parametrize("ping", [True, False])
    def test_reused_xboard_sessions_after_result_claims(self, fast_game: GameConfig, ping: bool) -> None:
        """Engines that announce the result after mating keep playing in later games."""
        factory = FakeEngineFactory(
            behaviours={
                "strong": Behaviour(preferences=STRONG, claim_result=True, ping=ping),
                "weak": Behaviour(preferences=WEAK, claim_result=True, ping=ping),
            }
        )
        players = [Player.from_config(engine_config(name, "xboard")) for name in ("strong", "weak")]
        tournament, events = run_tournament(players, factory, fast_game, rounds=2)

        finished = [e.record for e in events if isinstance(e, GameFinished)]
        assert len(finished) == 4
        assert all(r.winner.name == "strong" for r in finished)
        assert all(r.termination is GameTermination.CHECKMATE for r in finished)
        assert factory.created == {"strong": 1, "weak": 1}
        assert tournament.error_string == ""

    def test_internal_error_leaves_game_unterminated(
        self, fast_game: GameConfig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A failure inside the harness ends the game without a result; games still drain."""

        def broken_play(game: Game) -> GameRecord:
            raise RuntimeError("board exploded")

        monkeypatch.setattr(Game, "play", broken_play)
        tournament, events = run_tournament(
            make_players("strong", "weak"), three_player_factory(), fast_game, rounds=1
        )

        finished = [e.record for e in events if isinstance(e, GameFinished)]
        assert len(finished) == 2
        assert all(r.result is GameResult.UNTERMINATED for r in finished)
        assert all(r.reason == "internal error: board exploded" for r in finished)
        assert sorted(r.number for r in finished) == [1, 2]
        assert tournament.error_string == "Game 1: board exploded"
        assert isinstance(events[-1], TournamentFinished)

    def test_failed_engine_start_is_reported(self, fast_game: GameConfig) -> None:
        factory = three_player_factory()
        factory.fail_start.add("weak")
        tournament, events = run_tournament(make_players("strong", "weak"), factory, fast_game, rounds=1)
        finished = [e.record for e in events if isinstance(e, GameFinished)]
        assert len(finished) == 2
        assert all(r.winner.name == "strong" for r in finished)
        assert "Cannot start engine" in tournament.error_string
