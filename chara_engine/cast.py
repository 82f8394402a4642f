"""Cast & location layering.

Characters sit in at most one of three tiers:
  focus               full detail downstream (default tier on enter)
  present_supporting  in the scene, summarised
  offstage_related    absent but relevant, one line

Each tier is ordered oldest-affirmed first. Entering a tier that is already
at its ceiling evicts the least-recently-affirmed member, which leaves the
cast entirely; re-entering the same tier re-affirms (moves to the end).
A ceiling of 0 rejects the entrant.

Locations: one ``current`` plus a bounded ``candidate`` list. Setting a new
current never demotes the old one to candidate; the new current is removed
from the candidates, and the current location is never added as one.

These functions update the state objects they are given. ``apply_block``
only ever hands them a fresh copy.
"""

from __future__ import annotations

import logging

from chara_engine.models import (
    CAST_TIERS,
    CastConfig,
    CastIntent,
    CastState,
    CharacterCastLimits,
    EngineState,
    LocationCastState,
    LocationIntent,
)

logger = logging.getLogger(__name__)


def tier_of(cast: CastState, name: str) -> str | None:
    for tier in CAST_TIERS:
        if name in getattr(cast, tier):
            return tier
    return None


def enter(
    cast: CastState,
    name: str,
    tier: str | None = None,
    limits: CharacterCastLimits | None = None,
) -> str | None:
    """Place ``name`` in ``tier`` (focus by default). Returns the evicted name, if any."""
    tier = tier or "focus"
    limits = limits or CharacterCastLimits()
    limit = limits.limit_for(tier)
    members: list[str] = getattr(cast, tier)

    if limit <= 0:
        logger.debug("tier %s has no room; %r stays where it was", tier, name)
        return None

    previous = tier_of(cast, name)
    if previous is not None:
        getattr(cast, previous).remove(name)

    evicted = None
    if previous != tier and len(members) >= limit:
        evicted = members.pop(0)
        logger.info("cast tier %s full (%d); evicting %r for %r", tier, limit, evicted, name)
    members.append(name)
    return evicted


def leave(cast: CastState, name: str) -> bool:
    tier = tier_of(cast, name)
    if tier is None:
        return False
    getattr(cast, tier).remove(name)
    return True


def set_current(locations: LocationCastState, name: str) -> None:
    locations.current = name
    if name in locations.candidate:
        locations.candidate.remove(name)


def add_candidate(locations: LocationCastState, name: str, limit: int = 10) -> str | None:
    """Append a candidate location. Returns the evicted name, if any."""
    if name == locations.current or name in locations.candidate:
        return None
    if limit <= 0:
        logger.debug("no room for candidate location %r", name)
        return None
    evicted = None
    if len(locations.candidate) >= limit:
        evicted = locations.candidate.pop(0)
        logger.info("candidate locations full (%d); evicting %r for %r", limit, evicted, name)
    locations.candidate.append(name)
    return evicted


def remove_candidate(locations: LocationCastState, name: str) -> bool:
    if name not in locations.candidate:
        return False
    locations.candidate.remove(name)
    return True


def apply_cast_intents(state: EngineState, intents: list[CastIntent], config: CastConfig) -> None:
    for intent in intents:
        if intent.action == "enter":
            enter(state.cast, intent.entity, intent.tier, config.character_cast)
        else:
            leave(state.cast, intent.entity)
        if intent.note:
            state.entities_runtime.setdefault(intent.entity, {})["note"] = intent.note


def apply_location_intents(state: EngineState, intents: list[LocationIntent], config: CastConfig) -> None:
    for intent in intents:
        if intent.action == "set_current":
            set_current(state.location_cast, intent.location)
        elif intent.action == "add_candidate":
            add_candidate(state.location_cast, intent.location, config.location_cast.max_candidate)
        else:
            remove_candidate(state.location_cast, intent.location)
