"""Engine protocol adapters, processes and sessions."""

from enginematch.engine.events import (
    EngineEvent,
    ErrorReportEvent,
    IllegalMoveEvent,
    MoveEvent,
    ReadyEvent,
    ResignEvent,
    Score,
    ScoreEvent,
)
from enginematch.engine.process import (
    EngineFactory,
    EngineProcess,
    LineHandle,
    PexpectHandle,
    ProcessEngineFactory,
)
from enginematch.engine.protocol import (
    Dialect,
    MoveNotation,
    ProtocolAdapter,
    SearchLimit,
    decode_move,
    encode_move,
)
from enginematch.engine.session import (
    Adjudication,
    AdjudicationKind,
    EngineSession,
    MoveReply,
    SessionState,
    make_adapter,
)
from enginematch.engine.uci import UciAdapter
from enginematch.engine.xboard import XboardAdapter

__all__ = [
    "Adjudication",
    "AdjudicationKind",
    "Dialect",
    "EngineEvent",
    "EngineFactory",
    "EngineProcess",
    "EngineSession",
    "ErrorReportEvent",
    "IllegalMoveEvent",
    "LineHandle",
    "MoveEvent",
    "MoveNotation",
    "MoveReply",
    "PexpectHandle",
    "ProcessEngineFactory",
    "ProtocolAdapter",
    "ReadyEvent",
    "ResignEvent",
    "Score",
    "ScoreEvent",
    "SearchLimit",
    "SessionState",
    "UciAdapter",
    "XboardAdapter",
    "decode_move",
    "encode_move",
    "make_adapter",
]
