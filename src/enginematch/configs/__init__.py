"""Configuration management utilities."""

from enginematch.configs.loader import load_config, load_match_config, save_config
from enginematch.configs.schema import (
    EngineConfig,
    GameConfig,
    MatchConfig,
    OpeningsConfig,
    OutputConfig,
    SearchConfig,
    SprtConfig,
    TournamentConfig,
    config_from_dict,
    config_to_dict,
)

__all__ = [
    "EngineConfig",
    "GameConfig",
    "MatchConfig",
    "OpeningsConfig",
    "OutputConfig",
    "SearchConfig",
    "SprtConfig",
    "TournamentConfig",
    "config_from_dict",
    "config_to_dict",
    "load_config",
    "load_match_config",
    "save_config",
]
