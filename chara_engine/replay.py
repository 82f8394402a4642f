"""Replay & checkpointing.

The state after history index ``i`` is the initial state with every turn's
command source (``parse_output`` when present, else ``text``) applied in
order, from turn 0 through turn ``i``:

    state_at(i) = apply_block(turn_i, ... apply_block(turn_0, initial_state))

A checkpoint caches one ``(index, state)`` pair so replay can start part-way.
It is purely an optimisation: a checkpoint ahead of the requested index, or
one whose digest no longer matches the history, is ignored, and the engine
gives the same answer with or without one.

Collaborators are injected, never global:

    HistoryProvider.turns() -> Sequence[Turn]
    CheckpointStore.get() -> Checkpoint | None
    CheckpointStore.set(index, state, digest=None)
"""

from __future__ import annotations

import copy
import hashlib
import json
import logging
from collections.abc import Iterable, Sequence
from typing import Any, Protocol

from chara_engine.cast import apply_cast_intents, apply_location_intents
from chara_engine.errors import HistoryIndexError, UsageError
from chara_engine.models import CardConfig, Checkpoint, EngineState, ParsedBlock, Role, Turn
from chara_engine.mutations import MutationRejected, apply_operator
from chara_engine.parser import parse_block
from chara_engine.schema import Schema
from chara_engine.store import VariableStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Collaborator protocols and in-memory implementations
# ---------------------------------------------------------------------------

class HistoryProvider(Protocol):
    def turns(self) -> Sequence[Turn]: ...


class CheckpointStore(Protocol):
    def get(self) -> Checkpoint | None: ...

    def set(self, index: int, state: EngineState, digest: str | None = None) -> None: ...


class ListHistory:
    """History kept in a plain list."""

    def __init__(self, turns: Iterable[Turn] = ()) -> None:
        self._turns = list(turns)

    def turns(self) -> Sequence[Turn]:
        return self._turns

    def append(self, role: Role, text: str, parse_output: str | None = None) -> Turn:
        turn = Turn(index=len(self._turns), role=role, text=text, parse_output=parse_output)
        self._turns.append(turn)
        return turn


class MemoryCheckpointStore:
    """Single-slot checkpoint held in memory. Stores and hands out copies."""

    def __init__(self) -> None:
        self._checkpoint: Checkpoint | None = None

    def get(self) -> Checkpoint | None:
        if self._checkpoint is None:
            return None
        return self._checkpoint.model_copy(deep=True)

    def set(self, index: int, state: EngineState, digest: str | None = None) -> None:
        self._checkpoint = Checkpoint(index=index, state=state.model_copy(deep=True), digest=digest)

    def clear(self) -> None:
        self._checkpoint = None


# ---------------------------------------------------------------------------
# Single-step transitions
# ---------------------------------------------------------------------------

def initial_state(schema: Schema | CardConfig) -> EngineState:
    """State before any history: parameter defaults only.

    Global and scene defaults are set directly, character defaults for every
    entity bound to the parameter. Relationship parameters start empty.
    """
    schema = Schema.coerce(schema)
    store = VariableStore()
    for param in schema.parameters:
        if param.default is None:
            continue
        if param.scope in ("global", "scene"):
            store.write(param.scope, param.name, copy.deepcopy(param.default))
        elif param.scope == "character":
            for entity in schema.bound_entities(param.name):
                store.write("character", param.name, copy.deepcopy(param.default), subject=entity.name)
    return EngineState(variables=store.snapshot())


def apply_parsed(parsed: ParsedBlock, base_state: EngineState, schema: Schema) -> EngineState:
    """Apply already-parsed intents to a copy of ``base_state``."""
    state = base_state.model_copy(deep=True)

    store = VariableStore(state.variables)
    for intent in parsed.mutations:
        definition = schema.parameter(intent.parameter).definition
        current = store.read(intent.scope, intent.parameter, intent.subject, intent.target)
        try:
            value = apply_operator(definition, current, intent.operator, intent.value_literal)
        except MutationRejected as e:
            logger.debug("dropping %s %r: %s", intent.path, intent.operator, e)
            continue
        store.write(intent.scope, intent.parameter, value, intent.subject, intent.target)

    apply_location_intents(state, parsed.locations, schema.cast_config)
    apply_cast_intents(state, parsed.cast, schema.cast_config)

    if parsed.scene is not None:
        if parsed.scene.location_hint is not None:
            state.scene.location_hint = parsed.scene.location_hint
        if parsed.scene.scene_tags is not None:
            state.scene.scene_tags = list(parsed.scene.scene_tags)
    return state


def apply_block(raw_text: str, base_state: EngineState, schema: Schema | CardConfig) -> EngineState:
    """Parse one block of model output and apply it. ``base_state`` is untouched."""
    schema = Schema.coerce(schema)
    return apply_parsed(parse_block(raw_text, schema), base_state, schema)


def parameter_value(
    state: EngineState,
    schema: Schema | CardConfig,
    name: str,
    subject: str | None = None,
    target: str | None = None,
) -> Any:
    """Value of a parameter (by name or id) in ``state``, or None when unset.

    Raises UsageError for an unknown parameter or a missing subject/target.
    """
    schema = Schema.coerce(schema)
    found = schema.parameter(name)
    if not found:
        raise UsageError(f"unknown parameter {name!r}")
    definition = found.definition
    if subject:
        subject = schema.entity(subject).definition.name if schema.entity(subject) else subject
    if target:
        target = schema.entity(target).definition.name if schema.entity(target) else target
    store = VariableStore(dict(state.variables))
    return copy.deepcopy(store.read(definition.scope, definition.name, subject, target))


def history_digests(turns: Sequence[Turn]) -> list[str]:
    """Rolling fingerprints: ``digests[i]`` covers turns ``0..i``."""
    digest = hashlib.sha256()
    out = []
    for turn in turns:
        digest.update(json.dumps([turn.role, turn.command_source]).encode("utf-8"))
        out.append(digest.hexdigest())
    return out


# ---------------------------------------------------------------------------
# ReplayEngine
# ---------------------------------------------------------------------------

class ReplayEngine:
    """Derives the EngineState at any history index for one conversation.

    Not safe for concurrent use against the same checkpoint store; every
    state it returns is a private copy.
    """

    def __init__(
        self,
        card: CardConfig | Schema,
        history: HistoryProvider,
        checkpoints: CheckpointStore | None = None,
    ) -> None:
        self.schema = Schema.coerce(card)
        self._history = history
        self._checkpoints = checkpoints
        self._initial = initial_state(self.schema)

    def initial_state(self) -> EngineState:
        return self._initial.model_copy(deep=True)

    def state_at(self, index: int) -> EngineState:
        turns = list(self._history.turns())
        if not 0 <= index < len(turns):
            raise HistoryIndexError(f"history index {index} outside [0, {len(turns) - 1}]")
        digests = history_digests(turns)

        start, state = -1, self._initial
        ahead = False
        checkpoint = self._checkpoints.get() if self._checkpoints is not None else None
        if checkpoint is not None:
            if checkpoint.index >= len(turns) or (
                checkpoint.digest is not None and checkpoint.digest != digests[checkpoint.index]
            ):
                logger.info("ignoring stale checkpoint at index %d", checkpoint.index)
            elif checkpoint.index > index:
                ahead = True
            else:
                start, state = checkpoint.index, checkpoint.state

        logger.debug("replaying turns %d..%d", start + 1, index)
        for turn in turns[start + 1: index + 1]:
            state = apply_block(turn.command_source, state, self.schema)

        if self._checkpoints is not None and index > start and not ahead:
            self._checkpoints.set(index, state, digests[index])
        return state.model_copy(deep=True)

    def latest_state(self) -> EngineState:
        """State after the last turn, or the initial state for an empty history."""
        count = len(self._history.turns())
        if count == 0:
            return self.initial_state()
        return self.state_at(count - 1)

    def apply_block(self, raw_text: str, base_state: EngineState) -> EngineState:
        return apply_block(raw_text, base_state, self.schema)

    def parameter_value(
        self,
        name: str,
        subject: str | None = None,
        target: str | None = None,
        index: int | None = None,
    ) -> Any:
        state = self.latest_state() if index is None else self.state_at(index)
        return parameter_value(state, self.schema, name, subject, target)
