"""Tests for the match controller."""

import re
from pathlib import Path

import pytest
from fakes import STRONG, WEAK, Behaviour, FakeEngineFactory, engine_config

from enginematch.configs.schema import (
    GameConfig,
    MatchConfig,
    OpeningsConfig,
    OutputConfig,
    SprtConfig,
    TournamentConfig,
)
from enginematch.errors import ConfigurationError
from enginematch.tournament.game import Game
from enginematch.tournament.match import EngineMatch
from enginematch.tournament.player import Player
from enginematch.tournament.reporting import MemorySink
from enginematch.tournament.results import GameRecord
from enginematch.tournament.sprt import Outcome, Verdict


def make_match(
    factory: FakeEngineFactory,
    game: GameConfig,
    engines: tuple[str, ...] = ("strong", "weak"),
    **kwargs,
) -> tuple[EngineMatch, MemorySink]:
    kwargs.setdefault("tournament", TournamentConfig(rounds=1))
    config = MatchConfig(engines=[engine_config(name) for name in engines], game=game, **kwargs)
    sink = MemorySink()
    return EngineMatch(config, factory=factory, sink=sink), sink


def run(match: EngineMatch) -> None:
    match.start()
    assert match.wait(timeout=60)


class TestMatchOutput:
    """Tests for the lines a match reports."""

    def test_game_status_lines(self, factory: FakeEngineFactory, fast_game: GameConfig) -> None:
        match, sink = make_match(factory, fast_game)
        run(match)

        assert "Started game 1 of 2 (strong vs weak)" in sink.lines
        assert "Finished game 1 (strong vs weak): 1-0 {White mates}" in sink.lines
        assert "Finished game 2 (weak vs strong): 0-1 {Black mates}" in sink.lines
        assert "Score of strong vs weak: 2 - 0 - 0  [1.000] 2" in sink.lines
        assert sink.lines[-1] == "Finished match"

    def test_ranking_interval(self, factory: FakeEngineFactory, fast_game: GameConfig) -> None:
        """12 games with interval 5: ranking after games 5 and 10, and at the end."""
        match, sink = make_match(
            factory, fast_game, tournament=TournamentConfig(rounds=6), rating_interval=5
        )
        run(match)

        ranking_positions = [i for i, line in enumerate(sink.lines) if line.startswith("ELO difference")]
        assert len(ranking_positions) == 3

        finished = [line for line in sink.lines if line.startswith("Finished game")]
        assert len(finished) == 12
        # The interim rankings follow the 5th and 10th finished games
        before = [
            sum(1 for line in sink.lines[:pos] if line.startswith("Finished game"))
            for pos in ranking_positions
        ]
        assert before == [5, 10, 12]

    def test_no_final_ranking_on_interval_boundary(
        self, factory: FakeEngineFactory, fast_game: GameConfig
    ) -> None:
        match, sink = make_match(
            factory, fast_game, tournament=TournamentConfig(rounds=5), rating_interval=5
        )
        run(match)
        assert sum(1 for line in sink.lines if line.startswith("ELO difference")) == 2

    def test_elo_undefined_for_clean_sweep(self, factory: FakeEngineFactory, fast_game: GameConfig) -> None:
        match, sink = make_match(factory, fast_game)
        run(match)
        assert "ELO difference: undefined" in sink.lines

    def test_elo_difference_is_rounded(self, factory: FakeEngineFactory, fast_game: GameConfig) -> None:
        """+6 =2 -2 is 147 Elo, printed as a whole number with its margin."""
        match, sink = make_match(factory, fast_game)
        match.players = [Player("strong", wins=6, losses=2, draws=2), Player("weak", wins=2, losses=6, draws=2)]

        match.print_ranking()
        assert len(sink.lines) == 1
        assert re.fullmatch(r"ELO difference: 147 \+/- \d+", sink.lines[0])

    def test_no_elo_line_without_counted_games(
        self, factory: FakeEngineFactory, fast_game: GameConfig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """When no game produced a result the final ranking is empty."""

        def broken_play(game: Game) -> GameRecord:
            raise RuntimeError("board exploded")

        monkeypatch.setattr(Game, "play", broken_play)
        match, sink = make_match(factory, fast_game)
        run(match)

        assert not any(line.startswith("ELO difference") for line in sink.lines)
        assert "Warning: Game 1: board exploded" in sink.lines
        assert sink.lines[-1] == "Finished match"

    def test_ranking_table_for_more_players(self, fast_game: GameConfig) -> None:
        factory = FakeEngineFactory(
            behaviours={
                "strong": Behaviour(preferences=STRONG),
                "weak": Behaviour(preferences=WEAK),
                "weaker": Behaviour(preferences=WEAK),
            }
        )
        match, sink = make_match(factory, fast_game, engines=("strong", "weak", "weaker"))
        run(match)

        header = next(i for i, line in enumerate(sink.lines) if line.split()[:2] == ["Rank", "Name"])
        rows = sink.lines[header + 1 : header + 4]
        assert rows[0].split()[:2] == ["1", "strong"]
        assert not any(line.startswith("Score of") for line in sink.lines)

    def test_debug_trace(self, factory: FakeEngineFactory, fast_game: GameConfig) -> None:
        """Debug mode prints protocol traffic with elapsed milliseconds."""
        match, sink = make_match(factory, fast_game, debug=True)
        run(match)
        assert any(re.fullmatch(r"\d+ strong <- uci", line) for line in sink.lines)
        assert any(re.fullmatch(r"\d+ weak -> bestmove \S+", line) for line in sink.lines)

    def test_pgn_output(self, factory: FakeEngineFactory, fast_game: GameConfig, tmp_path: Path) -> None:
        pgn_path = tmp_path / "out" / "games.pgn"
        match, _ = make_match(factory, fast_game, output=OutputConfig(pgn_path=str(pgn_path)))
        run(match)

        text = pgn_path.read_text()
        assert text.count("[Event ") == 2
        assert '[White "strong"]' in text
        assert "3. Qh5# {White mates} 1-0" in text


class TestMatchFailures:
    """Tests for engine failures and configuration errors."""

    def test_engine_crash_counts_once(self, fast_game: GameConfig) -> None:
        factory = FakeEngineFactory(
            behaviours={
                "strong": Behaviour(preferences=STRONG),
                "weak": Behaviour(preferences=WEAK, crash_at_ply=2),
            }
        )
        match, sink = make_match(factory, fast_game)
        run(match)

        strong, weak = match.players
        assert (strong.wins, strong.losses, strong.draws) == (2, 0, 0)
        assert (weak.wins, weak.losses, weak.draws) == (0, 2, 0)
        assert any("weak: engine terminated unexpectedly" in line for line in sink.lines if line.startswith("Finished game"))
        assert "Warning: weak: engine terminated unexpectedly" in sink.lines

    def test_too_few_engines(self, factory: FakeEngineFactory, fast_game: GameConfig) -> None:
        match, _ = make_match(factory, fast_game, engines=("strong",))
        with pytest.raises(ConfigurationError):
            match.start()
        assert match.tournament is None
        assert not match.finished.is_set()

    def test_sprt_needs_two_engines(self, factory: FakeEngineFactory, fast_game: GameConfig) -> None:
        match, _ = make_match(
            factory, fast_game, engines=("strong", "weak", "weaker"), sprt=SprtConfig(enabled=True)
        )
        with pytest.raises(ConfigurationError, match="SPRT"):
            match.start()

    def test_unreadable_book(self, factory: FakeEngineFactory, fast_game: GameConfig, tmp_path: Path) -> None:
        book = tmp_path / "missing.bin"
        match, _ = make_match(factory, fast_game, openings=OpeningsConfig(book=str(book)))
        with pytest.raises(ConfigurationError, match="Can't read opening book file"):
            match.start()
        assert factory.total_created == 0


class TestMatchSprt:
    """Tests for SPRT-driven termination."""

    def test_summary_line_is_reported(self, factory: FakeEngineFactory, fast_game: GameConfig) -> None:
        match, sink = make_match(factory, fast_game, sprt=SprtConfig(enabled=True))
        run(match)
        assert "SPRT: llr 0, lbound -2.94, ubound 2.94" in sink.lines

    def test_verdict_stops_the_match(self, factory: FakeEngineFactory, fast_game: GameConfig) -> None:
        """Once H1 is accepted no new games start; the match still finishes cleanly."""
        match, sink = make_match(
            factory,
            fast_game,
            tournament=TournamentConfig(rounds=1000),
            sprt=SprtConfig(enabled=True, elo0=0, elo1=10),
        )
        match.start()
        match.tester.add_outcome(Outcome.LOSS)
        match.tester.add_outcome(Outcome.DRAW)
        assert match.wait(timeout=120)

        assert match.tester.status().verdict is Verdict.ACCEPT_H1
        assert match.tournament.finished_game_count < match.tournament.final_game_count
        assert any(line.endswith(" - H1 was accepted") for line in sink.lines)
        assert sink.lines[-1] == "Finished match"

    def test_run_returns_ranking(self, factory: FakeEngineFactory, fast_game: GameConfig) -> None:
        match, _ = make_match(factory, fast_game)
        rows = match.run()
        assert [row.name for row in rows] == ["strong", "weak"]
        assert rows[0].games == 2
