"""Sequential Probability Ratio Test (SPRT) for engine matches.

SPRT is the standard method for determining if an engine change provides
a statistically significant strength improvement. It tests two hypotheses:

- H0: The Elo difference is elo0 (typically 0, meaning no improvement)
- H1: The Elo difference is elo1 (typically 5-10, meaning meaningful improvement)

The test continues until the Log Likelihood Ratio (LLR) crosses either the
upper bound (accept H1) or lower bound (accept H0). Once a bound is crossed
the verdict stays fixed, even if games that were already running finish
afterwards.

References:
- https://www.chessprogramming.org/Sequential_Probability_Ratio_Test
- https://www.remi-coulom.fr/Bayesian-Elo/
"""

import math
import threading
from dataclasses import dataclass
from enum import Enum

from enginematch.errors import ConfigurationError
from enginematch.tournament.events import GameFinished
from enginematch.tournament.player import Player
from enginematch.tournament.results import GameRecord, GameResult


class Verdict(Enum):
    """Status of an SPRT test."""

    CONTINUING = "continuing"  # Test not yet conclusive
    ACCEPT_H0 = "H0"  # Null hypothesis accepted (no improvement)
    ACCEPT_H1 = "H1"  # Alt hypothesis accepted (improvement confirmed)


class Outcome(Enum):
    """A single game from the tested player's point of view."""

    WIN = "win"
    LOSS = "loss"
    DRAW = "draw"


@dataclass(frozen=True)
class SprtStatus:
    """Snapshot of the test after the games folded in so far."""

    llr: float
    lower_bound: float  # Cross this -> accept H0
    upper_bound: float  # Cross this -> accept H1
    verdict: Verdict

    @property
    def finished(self) -> bool:
        return self.verdict is not Verdict.CONTINUING


@dataclass(frozen=True)
class _Probabilities:
    win: float
    loss: float
    draw: float


def _bayes_probabilities(bayes_elo: float, draw_elo: float) -> _Probabilities:
    """Win/loss/draw probabilities in the BayesElo model."""
    win = 1.0 / (1.0 + math.pow(10.0, (draw_elo - bayes_elo) / 400.0))
    loss = 1.0 / (1.0 + math.pow(10.0, (draw_elo + bayes_elo) / 400.0))
    return _Probabilities(win, loss, 1.0 - win - loss)


class SequentialTester:
    """Wald's SPRT over per-game outcomes, using the BayesElo trinomial model.

    The draw Elo is estimated from the observed outcomes; both hypotheses
    are converted from logistic Elo to BayesElo with the scale implied by
    it. The LLR stays at zero until at least one win, one loss and one draw
    have been seen.

    Example:
        tester = SequentialTester(elo0=0, elo1=10, player=engine_a)
        bus.subscribe(GameFinished, tester.on_game_finished)
        ...
        if tester.status().verdict is Verdict.ACCEPT_H1:
            print("Engine A is stronger!")
    """

    def __init__(
        self,
        elo0: float = 0.0,
        elo1: float = 10.0,
        alpha: float = 0.05,
        beta: float = 0.05,
        player: Player | None = None,
    ) -> None:
        """Initialize the test.

        Args:
            elo0: Null hypothesis Elo difference (typically 0).
            elo1: Alternative hypothesis Elo difference (typically 5-10).
            alpha: Type I error rate (false positive). Default 0.05 = 5%.
            beta: Type II error rate (false negative). Default 0.05 = 5%.
            player: Player whose results are tested (needed by
                ``add_record``; ``add_outcome`` works without it).

        Raises:
            ConfigurationError: If the hypotheses or error rates are invalid.
        """
        if elo0 >= elo1:
            raise ConfigurationError(f"elo0 ({elo0}) must be less than elo1 ({elo1})")
        if not (0 < alpha < 1):
            raise ConfigurationError(f"alpha must be in (0, 1), got {alpha}")
        if not (0 < beta < 1):
            raise ConfigurationError(f"beta must be in (0, 1), got {beta}")

        self.elo0 = elo0
        self.elo1 = elo1
        self.alpha = alpha
        self.beta = beta
        self.player = player

        # Wald's bounds
        self.lower_bound = math.log(beta / (1 - alpha))
        self.upper_bound = math.log((1 - beta) / alpha)

        self._lock = threading.Lock()
        self._seen: set[str] = set()
        self._wins = 0
        self._losses = 0
        self._draws = 0
        self._llr = 0.0
        self._verdict = Verdict.CONTINUING

    @property
    def games(self) -> int:
        with self._lock:
            return self._wins + self._losses + self._draws

    def on_game_finished(self, event: GameFinished) -> None:
        """Event handler for ``GameFinished``."""
        self.add_record(event.record)

    def add_record(self, record: GameRecord) -> bool:
        """Fold a finished game in, at most once per ``game_id``.

        Games the tested player did not take part in, and games without a
        result, are ignored.

        Returns:
            True if the game was counted.
        """
        if self.player is None or not record.involves(self.player) or not record.is_decided:
            return False

        if record.result is GameResult.DRAW:
            outcome = Outcome.DRAW
        elif record.winner is self.player:
            outcome = Outcome.WIN
        else:
            outcome = Outcome.LOSS

        with self._lock:
            if record.game_id in self._seen:
                return False
            self._seen.add(record.game_id)
            self._apply(outcome)
        return True

    def add_outcome(self, outcome: Outcome) -> SprtStatus:
        """Fold in one game result and return the updated status."""
        with self._lock:
            self._apply(outcome)
            return self._status()

    def status(self) -> SprtStatus:
        with self._lock:
            return self._status()

    def summary_line(self) -> str:
        """``SPRT: llr X, lbound Y, ubound Z`` plus the verdict once reached."""
        status = self.status()
        line = (
            f"SPRT: llr {status.llr:.3g}, lbound {status.lower_bound:.3g}, "
            f"ubound {status.upper_bound:.3g}"
        )
        if status.verdict is Verdict.ACCEPT_H0:
            line += " - H0 was accepted"
        elif status.verdict is Verdict.ACCEPT_H1:
            line += " - H1 was accepted"
        return line

    def _apply(self, outcome: Outcome) -> None:
        if outcome is Outcome.WIN:
            self._wins += 1
        elif outcome is Outcome.LOSS:
            self._losses += 1
        else:
            self._draws += 1

        self._llr = self._calculate_llr(self._wins, self._losses, self._draws)

        if self._verdict is not Verdict.CONTINUING:
            return
        if self._llr >= self.upper_bound:
            self._verdict = Verdict.ACCEPT_H1
        elif self._llr <= self.lower_bound:
            self._verdict = Verdict.ACCEPT_H0

    def _status(self) -> SprtStatus:
        return SprtStatus(self._llr, self.lower_bound, self.upper_bound, self._verdict)

    def _calculate_llr(self, wins: int, losses: int, draws: int) -> float:
        """Calculate the Log Likelihood Ratio for the given results.

        Uses the trinomial model (wins, draws, losses) with BayesElo:
        ``LLR = W*log(p1w/p0w) + L*log(p1l/p0l) + D*log(p1d/p0d)``.
        """
        if wins <= 0 or losses <= 0 or draws <= 0:
            return 0.0

        total = wins + losses + draws
        p_win = wins / total
        p_loss = losses / total
        draw_elo = 200.0 * math.log10((1.0 - p_loss) / p_loss * (1.0 - p_win) / p_win)

        # Logistic Elo -> BayesElo
        x = math.pow(10.0, -draw_elo / 400.0)
        scale = 4.0 * x / ((1.0 + x) * (1.0 + x))
        p0 = _bayes_probabilities(self.elo0 / scale, draw_elo)
        p1 = _bayes_probabilities(self.elo1 / scale, draw_elo)

        return (
            wins * math.log(p1.win / p0.win)
            + losses * math.log(p1.loss / p0.loss)
            + draws * math.log(p1.draw / p0.draw)
        )
