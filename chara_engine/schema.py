"""Schema index over a card configuration.

Every component looks parameters and entities up through the resolvers here,
so name/id/path fallbacks live in one place:

  parameter(key)  by name, then by id
  entity(key)     by name; locations also by full path (``Parent.Child``)

Resolvers return a ``Resolution`` that is truthy when something was found.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from chara_engine.models import (
    CardConfig,
    CastConfig,
    EntityDefinition,
    EntityType,
    ParameterDefinition,
)

T = TypeVar("T")

# Path segments a parameter of each scope needs
SCOPE_SEGMENTS = {"global": 1, "scene": 1, "character": 2, "relationship": 3}


@dataclass(frozen=True)
class Resolution(Generic[T]):
    key: str
    definition: T | None = None

    @property
    def found(self) -> bool:
        return self.definition is not None

    def __bool__(self) -> bool:
        return self.found


class Schema:
    """Read-only lookup tables built once per card configuration."""

    def __init__(self, card: CardConfig) -> None:
        self.card = card
        self._params: dict[str, ParameterDefinition] = {}
        for param in card.parameters:
            self._params[param.name] = param
        for param in card.parameters:
            if param.id:
                self._params.setdefault(param.id, param)

        self._entities: dict[str, EntityDefinition] = {e.name: e for e in card.entities}
        self._paths: dict[str, str] = {}
        for entity in card.entities:
            if entity.type == "location":
                self._paths[entity.name] = self._walk_path(entity)
        self._by_path = {path: self._entities[name] for name, path in self._paths.items()}

    @classmethod
    def coerce(cls, card_or_schema: CardConfig | Schema) -> Schema:
        if isinstance(card_or_schema, Schema):
            return card_or_schema
        return cls(card_or_schema)

    @property
    def parameters(self) -> list[ParameterDefinition]:
        return self.card.parameters

    @property
    def entities(self) -> list[EntityDefinition]:
        return self.card.entities

    @property
    def cast_config(self) -> CastConfig:
        return self.card.cast_config

    def _walk_path(self, entity: EntityDefinition) -> str:
        parts = [entity.name]
        parent = entity.parent_location
        while parent:
            parts.append(parent)
            parent = self._entities[parent].parent_location
        return ".".join(reversed(parts))

    # ------------------------------------------------------------------
    # Resolvers
    # ------------------------------------------------------------------

    def parameter(self, key: str) -> Resolution[ParameterDefinition]:
        return Resolution(key, self._params.get(key))

    def entity(self, key: str, type: EntityType | None = None) -> Resolution[EntityDefinition]:
        found = self._entities.get(key) or self._by_path.get(key)
        if found is not None and type is not None and found.type != type:
            found = None
        return Resolution(key, found)

    def location_path(self, name: str) -> str:
        """Full ``Parent.Child`` path of a declared location."""
        return self._paths[name]

    def canonical_location(self, key: str) -> Resolution[str]:
        """Resolve a location by short name or full path to its full path."""
        found = self.entity(key, "location")
        if not found:
            return Resolution(key)
        return Resolution(key, self.location_path(found.definition.name))

    def bound_entities(self, param_name: str) -> list[EntityDefinition]:
        return [e for e in self.card.entities if param_name in e.parameter_names]
