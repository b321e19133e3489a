"""Loading and saving match configurations.

Match files are YAML read through OmegaConf, so ``${...}`` interpolations
(including ``${oc.env:VAR}``) and CLI-style dotlist overrides work:

    enginematch match configs/match.yaml sprt.elo1=5 tournament.concurrency=4
"""

from pathlib import Path
from typing import Any

from omegaconf import DictConfig, OmegaConf
from omegaconf.errors import OmegaConfBaseException

from enginematch.configs.schema import MatchConfig, config_from_dict, config_to_dict
from enginematch.errors import ConfigurationError


def load_config(config_path: str | Path, overrides: list[str] | None = None) -> DictConfig:
    """Load a match file and apply overrides, without validating it.

    Args:
        config_path: Path to the YAML configuration file.
        overrides: Optional dotlist overrides (e.g., ["sprt.elo1=5"]).

    Returns:
        Merged configuration as a DictConfig.

    Raises:
        ConfigurationError: If the file does not exist or is not a mapping.
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    config = OmegaConf.load(config_path)
    if not isinstance(config, DictConfig):
        raise ConfigurationError(f"{config_path}: expected a mapping at the top level")

    if overrides:
        config = OmegaConf.merge(config, OmegaConf.from_dotlist(overrides))

    return config


def load_match_config(
    config_path: str | Path, overrides: list[str] | None = None
) -> MatchConfig:
    """Load, resolve and validate a match configuration."""
    config = load_config(config_path, overrides)
    try:
        data = OmegaConf.to_container(config, resolve=True)
    except OmegaConfBaseException as e:
        raise ConfigurationError(f"{config_path}: {e}") from e
    return config_from_dict(data)


def save_config(config: MatchConfig | DictConfig | dict[str, Any], path: str | Path) -> None:
    """Write a configuration as YAML, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if isinstance(config, MatchConfig):
        config = config_to_dict(config)
    OmegaConf.save(OmegaConf.create(config) if isinstance(config, dict) else config, path)
