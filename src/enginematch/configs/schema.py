"""Strongly-typed configuration schemas for engine matches.

These dataclasses provide validation, IDE support, and serve as the
single source of truth for all configuration options.
"""

from dataclasses import asdict, dataclass, field
from typing import Any

from enginematch.errors import ConfigurationError


@dataclass
class EngineConfig:
    """How to launch and talk to one engine."""

    name: str = "engine"
    command: str = ""
    args: list[str] = field(default_factory=list)
    cwd: str | None = None
    protocol: str = "uci"  # "uci" | "xboard"
    options: dict[str, Any] = field(default_factory=dict)

    # Timeouts (seconds)
    startup_timeout: float = 10.0
    move_timeout_margin: float = 5.0  # Added to the search limit
    quit_timeout: float = 2.0

    def __post_init__(self) -> None:
        """Validate."""
        if self.protocol not in ("uci", "xboard"):
            raise ConfigurationError(
                f"Engine {self.name!r}: unknown protocol {self.protocol!r} (expected uci or xboard)"
            )
        for key in ("startup_timeout", "move_timeout_margin", "quit_timeout"):
            if getattr(self, key) <= 0:
                raise ConfigurationError(f"Engine {self.name!r}: {key} must be positive")


@dataclass
class SearchConfig:
    """Search limit sent with every move request."""

    movetime_ms: int | None = 1000
    depth: int | None = None
    nodes: int | None = None
    remaining_ms: int | None = None


@dataclass
class GameConfig:
    """Configuration for playing and adjudicating a game."""

    # Maximum plies before a forced draw (0 = no limit)
    max_moves: int = 400

    search: SearchConfig = field(default_factory=SearchConfig)

    # Draw adjudication: |score| <= draw_score for draw_count consecutive
    # moves of each side, starting at draw_move_number (0 count = disabled)
    draw_move_number: int = 40
    draw_score: int = 10  # Centipawns
    draw_count: int = 0

    # Resignation: score <= -resign_score for resign_count consecutive moves
    resign_score: int = 1000  # Centipawns
    resign_count: int = 0

    def __post_init__(self) -> None:
        """Validate."""
        if isinstance(self.search, dict):
            self.search = SearchConfig(**self.search)
        if self.max_moves < 0:
            raise ConfigurationError("game.max_moves must be >= 0")
        if self.draw_count < 0 or self.resign_count < 0:
            raise ConfigurationError("adjudication counts must be >= 0")


@dataclass
class TournamentConfig:
    """Scheduling of games."""

    rounds: int = 1
    games_per_encounter: int = 2  # Colors alternate within an encounter
    concurrency: int = 1
    reuse_sessions: bool = True

    def __post_init__(self) -> None:
        """Validate."""
        if self.rounds < 1 or self.games_per_encounter < 1:
            raise ConfigurationError("rounds and games_per_encounter must be >= 1")
        if self.concurrency < 1:
            raise ConfigurationError("concurrency must be >= 1")


@dataclass
class OpeningsConfig:
    """Start positions and opening book."""

    path: str | None = None  # .epd / .pgn / .fen start positions
    shuffle: bool = False
    seed: int | None = None
    book: str | None = None  # Polyglot .bin
    book_depth: int = 8  # Plies


@dataclass
class SprtConfig:
    """Sequential probability ratio test settings."""

    enabled: bool = False
    elo0: float = 0.0
    elo1: float = 10.0
    alpha: float = 0.05
    beta: float = 0.05


@dataclass
class OutputConfig:
    """Where results and logs go."""

    pgn_path: str | None = None
    log_file: str | None = None
    log_level: str = "INFO"


@dataclass
class MatchConfig:
    """Complete match configuration."""

    engines: list[EngineConfig] = field(default_factory=list)
    game: GameConfig = field(default_factory=GameConfig)
    tournament: TournamentConfig = field(default_factory=TournamentConfig)
    openings: OpeningsConfig = field(default_factory=OpeningsConfig)
    sprt: SprtConfig = field(default_factory=SprtConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    rating_interval: int = 0  # Print ranking every N finished games (0 = end only)
    debug: bool = False  # Echo protocol traffic

    def __post_init__(self) -> None:
        """Validate."""
        if self.rating_interval < 0:
            raise ConfigurationError("rating_interval must be >= 0")
        names = [engine.name for engine in self.engines]
        if len(set(names)) != len(names):
            raise ConfigurationError(f"Engine names must be unique: {names}")


def config_from_dict(data: dict[str, Any]) -> MatchConfig:
    """Create MatchConfig from a dictionary (e.g., from OmegaConf).

    Args:
        data: Dictionary with configuration values.

    Returns:
        MatchConfig instance.

    Raises:
        ConfigurationError: If a section has unknown keys or invalid values.
    """
    try:
        return MatchConfig(
            engines=[EngineConfig(**engine) for engine in data.get("engines", [])],
            game=GameConfig(**data.get("game", {})),
            tournament=TournamentConfig(**data.get("tournament", {})),
            openings=OpeningsConfig(**data.get("openings", {})),
            sprt=SprtConfig(**data.get("sprt", {})),
            output=OutputConfig(**data.get("output", {})),
            rating_interval=data.get("rating_interval", 0),
            debug=data.get("debug", False),
        )
    except TypeError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def config_to_dict(config: MatchConfig) -> dict[str, Any]:
    """Convert MatchConfig to a dictionary for serialization."""
    return asdict(config)
