"""Exception hierarchy for engine matches.

Session- and game-scoped errors (protocol violations, timeouts, resource
failures) are absorbed by the game and turned into an adjudicated result.
Configuration errors abort the match before any game is dispatched.
"""


class MatchError(Exception):
    """Base class for all enginematch errors."""


class ProtocolViolation(MatchError):
    """Raised when an engine sends malformed or out-of-turn wire text."""


class EngineTimeout(MatchError):
    """Raised when an engine misses a handshake, move or quit deadline."""


class EngineResourceError(MatchError):
    """Raised when the engine's byte stream cannot be opened, read or written."""


class ConfigurationError(MatchError, ValueError):
    """Raised for invalid match setup (bad config, too few players, ...)."""


class SessionBusyError(MatchError, RuntimeError):
    """Raised when a session is asked for a second exchange while one is in flight."""
