"""Pytest configuration and shared fixtures."""

import pytest
from fakes import STRONG, WEAK, Behaviour, FakeEngineFactory, engine_config

from enginematch.configs.schema import EngineConfig, GameConfig, SearchConfig
from enginematch.tournament.player import Player


@pytest.fixture
def factory() -> FakeEngineFactory:
    """Factory with a strong and a weak engine."""
    return FakeEngineFactory(
        behaviours={
            "strong": Behaviour(preferences=STRONG),
            "weak": Behaviour(preferences=WEAK),
        }
    )


@pytest.fixture
def strong_config() -> EngineConfig:
    return engine_config("strong")


@pytest.fixture
def weak_config() -> EngineConfig:
    return engine_config("weak")


@pytest.fixture
def strong(strong_config: EngineConfig) -> Player:
    return Player.from_config(strong_config)


@pytest.fixture
def weak(weak_config: EngineConfig) -> Player:
    return Player.from_config(weak_config)


@pytest.fixture
def fast_game() -> GameConfig:
    """Short searches and a low move limit."""
    return GameConfig(max_moves=20, search=SearchConfig(movetime_ms=50))
