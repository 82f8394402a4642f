"""Scoped state mutation engine for model-driven interactive fiction."""

from chara_engine.errors import HistoryIndexError, UsageError  # noqa: F401
from chara_engine.models import (  # noqa: F401
    CardConfig,
    CastConfig,
    Checkpoint,
    EngineState,
    EntityDefinition,
    ParameterDefinition,
    Turn,
)
from chara_engine.parser import parse_block, parse_mutations  # noqa: F401
from chara_engine.replay import (  # noqa: F401
    ListHistory,
    MemoryCheckpointStore,
    ReplayEngine,
    apply_block,
    initial_state,
    parameter_value,
)
from chara_engine.schema import Schema  # noqa: F401
from chara_engine.storage import Storage  # noqa: F401
