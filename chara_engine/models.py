"""Core domain models.

Static card configuration (parameters, entities, cast ceilings), parsed
intents, and the EngineState snapshot. Pydantic is used for validation and
serialisation at every data boundary.

Attributes are snake_case in Python; the JSON form uses camelCase aliases
(``parameterNames``, ``enumValues``, ``presentSupporting`` ...) and either
spelling is accepted on input.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

Scope = Literal["global", "scene", "character", "relationship"]
ValueType = Literal["number", "enum", "boolean", "text", "array"]
ItemType = Literal["string", "number", "boolean", "object"]
EntityType = Literal["character", "location"]
CastTier = Literal["focus", "present_supporting", "offstage_related"]
Role = Literal["user", "assistant", "system"]

SCOPES: tuple[str, ...] = ("global", "scene", "character", "relationship")
CAST_TIERS: tuple[str, ...] = ("focus", "present_supporting", "offstage_related")


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Card configuration (static, authored once per card)
# ---------------------------------------------------------------------------

class PhaseBand(_Model):
    """Descriptive value band for number parameters. Never enforced."""

    name: str
    range: tuple[float, float]


class ArrayConfig(_Model):
    item_type: ItemType = "string"
    max_length: int | None = Field(default=None, ge=0)
    item_fields: dict[str, ItemType] | None = None  # object items only


class ParameterDefinition(_Model):
    name: str
    id: str | None = None
    scope: Scope = "character"
    type: ValueType
    description: str = ""
    default: Any = None
    phases: list[PhaseBand] = Field(default_factory=list)
    enum_values: list[str] = Field(default_factory=list)
    array_config: ArrayConfig = Field(default_factory=ArrayConfig)
    min: float | None = None
    max: float | None = None

    @model_validator(mode="after")
    def _check_type_config(self) -> ParameterDefinition:
        if self.type == "enum" and not self.enum_values:
            raise ValueError(f"enum parameter {self.name!r} declares no enumValues")
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"parameter {self.name!r} has min > max")
        return self


class EntityDefinition(_Model):
    name: str
    type: EntityType = "character"
    parameter_names: list[str] = Field(default_factory=list)
    parent_location: str | None = None  # locations only


class CharacterCastLimits(_Model):
    max_focus: int = Field(default=3, ge=0)
    max_present_supporting: int = Field(default=5, ge=0)
    max_offstage_related: int = Field(default=10, ge=0)

    def limit_for(self, tier: str) -> int:
        return getattr(self, f"max_{tier}")


class LocationCastLimits(_Model):
    max_candidate: int = Field(default=10, ge=0)


class CastConfig(_Model):
    character_cast: CharacterCastLimits = Field(default_factory=CharacterCastLimits)
    location_cast: LocationCastLimits = Field(default_factory=LocationCastLimits)


class CardConfig(_Model):
    """Everything a conversation needs to build its schema."""

    parameters: list[ParameterDefinition] = Field(default_factory=list)
    entities: list[EntityDefinition] = Field(default_factory=list)
    cast_config: CastConfig = Field(default_factory=CastConfig)

    @model_validator(mode="after")
    def _check_uniqueness(self) -> CardConfig:
        keys: set[str] = set()
        for param in self.parameters:
            for key in {param.name, param.id} - {None}:
                if key in keys:
                    raise ValueError(f"duplicate parameter name or id: {key!r}")
                keys.add(key)

        by_name: dict[str, EntityDefinition] = {}
        for entity in self.entities:
            if entity.name in by_name:
                raise ValueError(f"duplicate entity name: {entity.name!r}")
            by_name[entity.name] = entity

        # Location hierarchy must be acyclic and fully declared
        for entity in self.entities:
            seen = {entity.name}
            parent = entity.parent_location
            while parent:
                owner = by_name.get(parent)
                if owner is None or owner.type != "location":
                    raise ValueError(
                        f"location {entity.name!r} has unknown parent {parent!r}"
                    )
                if parent in seen:
                    raise ValueError(f"location cycle through {parent!r}")
                seen.add(parent)
                parent = owner.parent_location
        return self


# ---------------------------------------------------------------------------
# Parsed intents
# ---------------------------------------------------------------------------

class MutationIntent(_Model):
    """A parsed, not-yet-applied request to change one value at one coordinate."""

    model_config = ConfigDict(frozen=True)

    path: str
    operator: str
    value_literal: str | None = None
    note: str | None = None
    scope: Scope
    parameter: str  # canonical parameter name
    subject: str | None = None
    target: str | None = None


class CastIntent(_Model):
    model_config = ConfigDict(frozen=True)

    action: Literal["enter", "leave"]
    entity: str
    tier: CastTier | None = None
    note: str | None = None


class LocationIntent(_Model):
    model_config = ConfigDict(frozen=True)

    action: Literal["set_current", "add_candidate", "remove_candidate"]
    location: str


class SceneUpdate(_Model):
    location_hint: str | None = None
    scene_tags: list[str] | None = None


class ParsedBlock(_Model):
    """Everything one block of model output asks for, in written order."""

    mutations: list[MutationIntent] = Field(default_factory=list)
    cast: list[CastIntent] = Field(default_factory=list)
    locations: list[LocationIntent] = Field(default_factory=list)
    scene: SceneUpdate | None = None


# ---------------------------------------------------------------------------
# Dynamic state
# ---------------------------------------------------------------------------

def empty_variables() -> dict[str, dict[str, Any]]:
    return {scope: {} for scope in SCOPES}


class CastState(_Model):
    """Three disjoint tiers, each ordered oldest-affirmed first."""

    focus: list[str] = Field(default_factory=list)
    present_supporting: list[str] = Field(default_factory=list)
    offstage_related: list[str] = Field(default_factory=list)


class LocationCastState(_Model):
    current: str | None = None
    candidate: list[str] = Field(default_factory=list)


class SceneState(_Model):
    location_hint: str = ""
    scene_tags: list[str] = Field(default_factory=list)


class EngineState(_Model):
    """World state after some prefix of the history.

    Treated as an immutable value: transitions deep-copy and never touch the
    state they started from.
    """

    variables: dict[str, dict[str, Any]] = Field(default_factory=empty_variables)
    cast: CastState = Field(default_factory=CastState)
    location_cast: LocationCastState = Field(default_factory=LocationCastState)
    scene: SceneState = Field(default_factory=SceneState)
    entities_runtime: dict[str, dict[str, Any]] = Field(default_factory=dict)


class Checkpoint(_Model):
    index: int = Field(ge=0)
    state: EngineState
    digest: str | None = None  # fingerprint of turns 0..index


class Turn(_Model):
    """One entry of the conversation history."""

    index: int = Field(ge=0)
    role: Role
    text: str
    parse_output: str | None = None  # parsing model output for this turn

    @property
    def command_source(self) -> str:
        return self.parse_output if self.parse_output is not None else self.text
