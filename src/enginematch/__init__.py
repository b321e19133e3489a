"""enginematch: automated engine-vs-engine chess matches with SPRT.

- `from enginematch.engine import EngineSession, UciAdapter, XboardAdapter`
- `from enginematch.tournament import EngineMatch, Tournament, SequentialTester`
- `from enginematch.configs import load_match_config`
"""

__version__ = "0.1.0"

# Re-export common utilities for convenience
from enginematch.configs import load_config, load_match_config, save_config
from enginematch.utils import setup_logging

__all__ = [
    "__version__",
    "load_config",
    "load_match_config",
    "save_config",
    "setup_logging",
]
