"""Tournament notifications and the bus that delivers them.

Consumers register a handler per event type. Handlers for one event are
independent of each other; an exception in one is logged and does not
keep the others from running.
"""

import threading
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from loguru import logger

from enginematch.tournament.results import GameRecord


@dataclass(frozen=True)
class GameStarted:
    """A game was dispatched."""

    game: Any  # enginematch.tournament.game.Game
    number: int


@dataclass(frozen=True)
class GameFinished:
    """A game was finalized."""

    record: GameRecord
    number: int


@dataclass(frozen=True)
class TournamentFinished:
    """Every dispatched game and every owned session has drained."""

    finished_games: int
    error: str = ""


@dataclass(frozen=True)
class DebugMessage:
    """One line of protocol traffic (debug mode)."""

    text: str


Handler = Callable[[Any], None]


class EventBus:
    """Synchronous publish/subscribe keyed by event type."""

    def __init__(self) -> None:
        self._handlers: dict[type, list[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event_type: type, handler: Handler) -> None:
        """Register ``handler`` to be called with every ``event_type`` event."""
        with self._lock:
            self._handlers[event_type].append(handler)

    def publish(self, event: Any) -> None:
        """Deliver ``event`` to its handlers on the calling thread."""
        with self._lock:
            handlers = list(self._handlers[type(event)])
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(f"Handler {handler!r} failed for {type(event).__name__}")
