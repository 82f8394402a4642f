"""Tests for chara_engine.models."""

import pytest
from pydantic import ValidationError

from chara_engine.models import (
    CardConfig,
    CastConfig,
    EngineState,
    MutationIntent,
    ParameterDefinition,
    Turn,
)


class TestParameterDefinition:
    def test_defaults(self) -> None:
        p = ParameterDefinition(name="favor", type="number")
        assert p.scope == "character"
        assert p.default is None
        assert p.array_config.item_type == "string"
        assert p.array_config.max_length is None

    def test_camel_case_aliases_accepted(self) -> None:
        p = ParameterDefinition.model_validate(
            {"name": "mood", "type": "enum", "enumValues": ["calm", "angry"]}
        )
        assert p.enum_values == ["calm", "angry"]

    def test_snake_case_accepted(self) -> None:
        p = ParameterDefinition(name="mood", type="enum", enum_values=["calm"])
        assert p.enum_values == ["calm"]

    def test_enum_without_values_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ParameterDefinition(name="mood", type="enum")

    def test_min_above_max_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ParameterDefinition(name="favor", type="number", min=10, max=0)

    def test_unknown_scope_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ParameterDefinition(name="favor", type="number", scope="party")

    def test_negative_max_length_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ParameterDefinition.model_validate(
                {"name": "bag", "type": "array", "arrayConfig": {"maxLength": -1}}
            )


class TestCardConfig:
    def test_sample_card_loads(self, card) -> None:
        assert [p.name for p in card.parameters][:2] == ["favor", "mood"]
        library = next(e for e in card.entities if e.name == "Library")
        assert library.parent_location == "Campus"

    def test_duplicate_parameter_name_rejected(self) -> None:
        with pytest.raises(ValidationError, match="duplicate parameter"):
            CardConfig.model_validate({"parameters": [
                {"name": "favor", "type": "number"},
                {"name": "favor", "type": "text"},
            ]})

    def test_id_colliding_with_name_rejected(self) -> None:
        with pytest.raises(ValidationError, match="duplicate parameter"):
            CardConfig.model_validate({"parameters": [
                {"name": "favor", "type": "number"},
                {"name": "affection", "id": "favor", "type": "number"},
            ]})

    def test_duplicate_entity_rejected(self) -> None:
        with pytest.raises(ValidationError, match="duplicate entity"):
            CardConfig.model_validate({"entities": [{"name": "Alice"}, {"name": "Alice"}]})

    def test_unknown_parent_location_rejected(self) -> None:
        with pytest.raises(ValidationError, match="unknown parent"):
            CardConfig.model_validate({"entities": [
                {"name": "Library", "type": "location", "parentLocation": "Campus"},
            ]})

    def test_character_as_parent_rejected(self) -> None:
        with pytest.raises(ValidationError, match="unknown parent"):
            CardConfig.model_validate({"entities": [
                {"name": "Alice"},
                {"name": "Library", "type": "location", "parentLocation": "Alice"},
            ]})

    def test_location_cycle_rejected(self) -> None:
        with pytest.raises(ValidationError, match="cycle"):
            CardConfig.model_validate({"entities": [
                {"name": "A", "type": "location", "parentLocation": "B"},
                {"name": "B", "type": "location", "parentLocation": "A"},
            ]})

    def test_cast_defaults(self) -> None:
        config = CastConfig()
        assert config.character_cast.max_focus == 3
        assert config.character_cast.max_present_supporting == 5
        assert config.character_cast.max_offstage_related == 10
        assert config.location_cast.max_candidate == 10

    def test_cast_config_from_json(self) -> None:
        card = CardConfig.model_validate(
            {"castConfig": {"characterCast": {"maxFocus": 1}, "locationCast": {"maxCandidate": 2}}}
        )
        assert card.cast_config.character_cast.limit_for("focus") == 1
        assert card.cast_config.character_cast.limit_for("present_supporting") == 5
        assert card.cast_config.location_cast.max_candidate == 2


class TestIntents:
    def test_mutation_intent_is_frozen(self) -> None:
        intent = MutationIntent(path="weather", operator="rain", scope="global", parameter="weather")
        with pytest.raises(ValidationError):
            intent.operator = "sun"


class TestEngineState:
    def test_empty_state(self) -> None:
        state = EngineState()
        assert state.variables == {"global": {}, "scene": {}, "character": {}, "relationship": {}}
        assert state.cast.focus == []
        assert state.location_cast.current is None
        assert state.scene.location_hint == ""

    def test_dump_uses_camel_case(self) -> None:
        data = EngineState().model_dump(by_alias=True)
        assert "locationCast" in data
        assert "entitiesRuntime" in data
        assert "presentSupporting" in data["cast"]
        assert "sceneTags" in data["scene"]

    def test_serialise_roundtrip(self) -> None:
        state = EngineState()
        state.cast.focus.append("Alice")
        state.variables["character"]["Alice"] = {"favor": 12}
        restored = EngineState.model_validate_json(state.model_dump_json(by_alias=True))
        assert restored == state


class TestTurn:
    def test_command_source_defaults_to_text(self) -> None:
        turn = Turn(index=0, role="assistant", text="hello")
        assert turn.command_source == "hello"

    def test_command_source_prefers_parse_output(self) -> None:
        turn = Turn(index=0, role="assistant", text="hello", parse_output="ce.set('weather', 'rain')")
        assert turn.command_source == "ce.set('weather', 'rain')"

    def test_empty_parse_output_still_wins(self) -> None:
        turn = Turn(index=0, role="assistant", text="ce.set('weather', 'rain')", parse_output="")
        assert turn.command_source == ""

    def test_negative_index_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Turn(index=-1, role="user", text="x")
