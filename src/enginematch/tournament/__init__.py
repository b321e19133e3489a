"""Tournament module for engine-vs-engine matches with SPRT testing."""

from enginematch.tournament.events import (
    DebugMessage,
    EventBus,
    GameFinished,
    GameStarted,
    TournamentFinished,
)
from enginematch.tournament.game import Game, OpeningBook
from enginematch.tournament.match import EngineMatch
from enginematch.tournament.openings import BookCache, PolyglotBook, load_openings
from enginematch.tournament.orchestrator import Pairing, SessionPool, Tournament, generate_pairings
from enginematch.tournament.player import Player
from enginematch.tournament.ranking import (
    RankingRow,
    ResultAggregator,
    elo_difference,
    elo_error,
    score_ratio,
)
from enginematch.tournament.reporting import (
    ConsoleSink,
    LoggerSink,
    MemorySink,
    PGNWriter,
    ReportSink,
)
from enginematch.tournament.results import GameRecord, GameResult, GameTermination
from enginematch.tournament.sprt import Outcome, SequentialTester, SprtStatus, Verdict

__all__ = [
    "BookCache",
    "ConsoleSink",
    "DebugMessage",
    "EngineMatch",
    "EventBus",
    "Game",
    "GameFinished",
    "GameRecord",
    "GameResult",
    "GameStarted",
    "GameTermination",
    "LoggerSink",
    "MemorySink",
    "OpeningBook",
    "Outcome",
    "PGNWriter",
    "Pairing",
    "PolyglotBook",
    "Player",
    "RankingRow",
    "ReportSink",
    "ResultAggregator",
    "SequentialTester",
    "SessionPool",
    "SprtStatus",
    "Tournament",
    "TournamentFinished",
    "Verdict",
    "elo_difference",
    "elo_error",
    "generate_pairings",
    "load_openings",
    "score_ratio",
]
