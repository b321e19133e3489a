"""Per-player result tallies and Elo ranking."""

import math
import threading
from dataclasses import dataclass

from enginematch.tournament.events import GameFinished
from enginematch.tournament.player import Player
from enginematch.tournament.results import GameRecord, GameResult


def score_ratio(wins: int, losses: int, draws: int) -> float | None:
    """Points scored divided by points available, or None with no games."""
    total = wins + losses + draws
    if total <= 0:
        return None
    return (2 * wins + draws) / (2 * total)


def elo_difference(wins: int, losses: int, draws: int) -> float | None:
    """Elo difference implied by a W/L/D record, using the logistic model.

    ``elo = -400 * log10(1 / ratio - 1)`` with ``ratio = (2W + D) / 2N``.

    Returns:
        The estimate, or None when it is undefined (no games, or a ratio of
        exactly 0 or 1).
    """
    ratio = score_ratio(wins, losses, draws)
    if ratio is None or ratio <= 0.0 or ratio >= 1.0:
        return None
    return -400.0 * math.log10(1.0 / ratio - 1.0)


def elo_error(wins: int, losses: int, draws: int) -> float | None:
    """Calculate the 95% confidence interval half-width of the Elo estimate.

    Uses the normal approximation of the per-game score distribution.

    Returns:
        Half-width in Elo, or None where it is undefined.
    """
    total = wins + losses + draws
    if total < 2:
        return None

    score = (wins + draws / 2.0) / total
    if not 0.0 < score < 1.0:
        return None

    # Per-game score variance (W=1, D=0.5, L=0)
    variance = (
        wins * (1.0 - score) ** 2
        + draws * (0.5 - score) ** 2
        + losses * (0.0 - score) ** 2
    ) / total
    se = math.sqrt(variance / total)

    # d(elo)/d(score) = 400 / (score * (1-score) * ln(10))
    deriv = 400.0 / (score * (1.0 - score) * math.log(10))
    return 1.96 * se * deriv


@dataclass(frozen=True)
class RankingRow:
    """One line of the ranking table. Derived on demand, never stored."""

    name: str
    games: int
    elo: float | None  # None = undefined (score ratio 0 or 1)
    score: float  # Score ratio in [0, 1]
    draws: float  # Draw ratio in [0, 1]


class ResultAggregator:
    """Maintains W/L/D counters per player from finished games.

    Every record is folded in at most once (keyed by its ``game_id``), so
    the same record may safely be delivered by several handlers. Each
    record's contribution is applied atomically.
    """

    def __init__(self, players: list[Player]) -> None:
        self._players = list(players)
        self._lock = threading.Lock()
        self._seen: set[str] = set()

    @property
    def players(self) -> list[Player]:
        return list(self._players)

    @property
    def games_counted(self) -> int:
        with self._lock:
            return len(self._seen)

    def on_game_finished(self, event: GameFinished) -> None:
        """Event handler for ``GameFinished``."""
        self.add_record(event.record)

    def add_record(self, record: GameRecord) -> bool:
        """Fold one finished game into the counters.

        Returns:
            True if the record was counted, False if it had been counted
            already or has no result.
        """
        if not record.is_decided:
            return False

        with self._lock:
            if record.game_id in self._seen:
                return False
            self._seen.add(record.game_id)

            if record.result is GameResult.DRAW:
                record.white.draws += 1
                record.black.draws += 1
            else:
                record.winner.wins += 1
                record.loser.losses += 1
        return True

    def compute_ranking(self) -> list[RankingRow]:
        """Rank players by Elo estimate, best first.

        Players without games are left out. Sorting is by score ratio, which
        orders exactly like the Elo estimate while also placing the
        undefined extremes (0% and 100%) correctly. Ties keep the players'
        seeding order.
        """
        rows = []
        with self._lock:
            for player in self._players:
                ratio = score_ratio(player.wins, player.losses, player.draws)
                if ratio is None:
                    continue
                rows.append(
                    RankingRow(
                        name=player.name,
                        games=player.games,
                        elo=elo_difference(player.wins, player.losses, player.draws),
                        score=ratio,
                        draws=player.draws / player.games,
                    )
                )
        return sorted(rows, key=lambda row: row.score, reverse=True)
