"""Match participants."""

from dataclasses import dataclass, field

from enginematch.configs.schema import EngineConfig


@dataclass(eq=False)
class Player:
    """One engine taking part in the match.

    A Player lives for the whole match. Its counters are only ever touched
    by ``ResultAggregator``, exactly once per finished game it played.
    """

    name: str
    engine: EngineConfig = field(default_factory=EngineConfig)
    wins: int = 0
    losses: int = 0
    draws: int = 0

    @property
    def games(self) -> int:
        return self.wins + self.losses + self.draws

    @classmethod
    def from_config(cls, config: EngineConfig) -> "Player":
        return cls(name=config.name, engine=config)
