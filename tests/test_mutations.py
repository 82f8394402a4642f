"""Tests for the typed mutation interpreter."""

import pytest

from chara_engine.models import ParameterDefinition
from chara_engine.mutations import (
    MutationRejected,
    apply_operator,
    describe_phase,
    matches_condition,
    takes_value,
)


@pytest.fixture
def params(schema):
    return {p.name: p for p in schema.parameters}


# ── number ─────────────────────────────────────────────────


class TestNumber:
    def test_symbolic_deltas(self, params) -> None:
        favor = params["favor"]
        assert apply_operator(favor, 50, "up_small") == 52
        assert apply_operator(favor, 50, "up_medium") == 55
        assert apply_operator(favor, 50, "up_large") == 60
        assert apply_operator(favor, 50, "down_small") == 48
        assert apply_operator(favor, 50, "down_medium") == 45
        assert apply_operator(favor, 50, "down_large") == 40

    def test_ladder_is_monotonic(self, params) -> None:
        ladder = ["down_large", "down_medium", "down_small", "up_small", "up_medium", "up_large"]
        values = [apply_operator(params["favor"], 50, op) for op in ladder]
        assert values == sorted(values)
        assert len(set(values)) == len(values)

    def test_operator_case_insensitive(self, params) -> None:
        assert apply_operator(params["favor"], 10, "UP_SMALL") == 12

    def test_clamped_to_bounds(self, params) -> None:
        favor = params["favor"]
        assert apply_operator(favor, 95, "up_large") == 100
        assert apply_operator(favor, 5, "down_large") == 0
        assert apply_operator(favor, 50, "150") == 100
        assert apply_operator(favor, 50, "-3") == 0

    def test_literals(self, params) -> None:
        assert apply_operator(params["favor"], 10, "42") == 42
        assert apply_operator(params["favor"], 10, " 42.5 ") == 42.5

    def test_missing_value_starts_from_default(self, params) -> None:
        assert apply_operator(params["favor"], None, "up_medium") == 15

    def test_missing_value_without_default_starts_from_zero(self) -> None:
        score = ParameterDefinition(name="score", type="number")
        assert apply_operator(score, None, "up_small") == 2
        assert apply_operator(score, None, "down_small") == -2

    def test_unbounded(self) -> None:
        score = ParameterDefinition(name="score", type="number")
        assert apply_operator(score, 1000, "up_large") == 1010

    def test_garbage_rejected(self, params) -> None:
        with pytest.raises(MutationRejected):
            apply_operator(params["favor"], 10, "lots")
        with pytest.raises(MutationRejected):
            apply_operator(params["favor"], 10, "nan")

    def test_describe_phase(self, params) -> None:
        favor = params["favor"]
        assert describe_phase(favor, 10) == "wary"
        assert describe_phase(favor, 50) == "friendly"
        assert describe_phase(favor, 100) == "devoted"
        assert describe_phase(favor, 30.5) is None
        assert describe_phase(favor, "x") is None


# ── enum / boolean / text ──────────────────────────────────


class TestEnum:
    def test_next_and_prev(self, params) -> None:
        mood = params["mood"]
        assert apply_operator(mood, "calm", "next") == "tense"
        assert apply_operator(mood, "angry", "prev") == "tense"

    def test_stepping_clamps_at_ends(self, params) -> None:
        mood = params["mood"]
        assert apply_operator(mood, "angry", "next") == "angry"
        assert apply_operator(mood, "calm", "prev") == "calm"

    def test_stepping_from_unset_starts_at_first_value(self, params) -> None:
        assert apply_operator(params["mood"], None, "next") == "calm"
        assert apply_operator(params["mood"], "bogus", "prev") == "calm"

    def test_literal_values(self, params) -> None:
        assert apply_operator(params["mood"], "calm", "angry") == "angry"
        assert apply_operator(params["mood"], "calm", "ANGRY") == "angry"
        assert apply_operator(params["mood"], "calm", "Next") == "tense"

    def test_unknown_value_rejected(self, params) -> None:
        with pytest.raises(MutationRejected):
            apply_operator(params["mood"], "calm", "happy")


class TestBooleanAndText:
    def test_boolean(self, params) -> None:
        alarm = params["alarm"]
        assert apply_operator(alarm, False, "true") is True
        assert apply_operator(alarm, True, "FALSE") is False

    def test_boolean_rejects_other_words(self, params) -> None:
        with pytest.raises(MutationRejected):
            apply_operator(params["alarm"], False, "yes")

    def test_text_replaced_wholesale(self, params) -> None:
        assert apply_operator(params["weather"], "clear", "  heavy rain ") == "  heavy rain "


# ── array ──────────────────────────────────────────────────

POTION = '{"name": "potion", "qty": 1}'


class TestArray:
    def test_add_item(self, params) -> None:
        result = apply_operator(params["backpack"], [], "add_item", POTION)
        assert result == [{"name": "potion", "qty": 1}]

    def test_add_item_to_unset_uses_default(self, params) -> None:
        assert apply_operator(params["backpack"], None, "add_item", POTION) == [
            {"name": "potion", "qty": 1}
        ]
        assert apply_operator(params["tags"], None, "add_item", '"brave"') == ["brave"]

    def test_add_item_type_checked(self, params) -> None:
        backpack = params["backpack"]
        with pytest.raises(MutationRejected):
            apply_operator(backpack, [], "add_item", '"potion"')
        with pytest.raises(MutationRejected):
            apply_operator(backpack, [], "add_item", '{"name": 5}')
        with pytest.raises(MutationRejected):
            apply_operator(params["tags"], [], "add_item", "5")

    def test_add_item_extra_fields_allowed(self, params) -> None:
        result = apply_operator(params["backpack"], [], "add_item", '{"name": "rope", "color": "red"}')
        assert result == [{"name": "rope", "color": "red"}]

    def test_add_item_needs_valid_json(self, params) -> None:
        with pytest.raises(MutationRejected):
            apply_operator(params["backpack"], [], "add_item")
        with pytest.raises(MutationRejected):
            apply_operator(params["backpack"], [], "add_item", "{name: potion}")

    def test_max_length_drops_oldest(self, params) -> None:
        current = [{"name": "a"}, {"name": "b"}, {"name": "c"}]
        result = apply_operator(params["backpack"], current, "add_item", '{"name": "d"}')
        assert [i["name"] for i in result] == ["b", "c", "d"]

    def test_remove_at(self, params) -> None:
        tags = params["tags"]
        assert apply_operator(tags, ["a", "b", "c"], "remove_at:1") == ["a", "c"]
        assert apply_operator(tags, ["a", "b", "c"], "remove_at: 0") == ["b", "c"]

    def test_remove_at_out_of_range_is_noop(self, params) -> None:
        assert apply_operator(params["tags"], ["a"], "remove_at:9") == ["a"]
        assert apply_operator(params["tags"], ["a"], "remove_at:-1") == ["a"]

    def test_remove_at_needs_index(self, params) -> None:
        with pytest.raises(MutationRejected):
            apply_operator(params["tags"], ["a"], "remove_at:first")

    def test_update_at(self, params) -> None:
        current = [{"name": "potion", "qty": 1}]
        result = apply_operator(params["backpack"], current, "update_at:0", '{"name": "potion", "qty": 2}')
        assert result == [{"name": "potion", "qty": 2}]
        assert apply_operator(params["backpack"], current, "update_at:3", POTION) == current

    def test_remove_where_field(self, params) -> None:
        current = [{"name": "potion", "qty": 1}, {"name": "rope", "qty": 5}, {"name": "map"}]
        result = apply_operator(
            params["backpack"], current, "remove_where", '{"field": "qty", "op": "<", "value": 2}'
        )
        assert result == [{"name": "rope", "qty": 5}, {"name": "map"}]

    def test_remove_where_equals(self, params) -> None:
        current = [{"name": "potion", "qty": 1}, {"name": "rope", "qty": 5}]
        result = apply_operator(
            params["backpack"], current, "remove_where",
            '{"field": "name", "op": "equals", "value": "potion"}',
        )
        assert result == [{"name": "rope", "qty": 5}]

    def test_remove_where_plain_items(self, params) -> None:
        result = apply_operator(
            params["tags"], ["brave", "kind", "rash"], "remove_where", '{"op": "contains", "value": "ra"}'
        )
        assert result == ["kind"]

    def test_remove_where_bad_condition(self, params) -> None:
        with pytest.raises(MutationRejected):
            apply_operator(params["tags"], ["a"], "remove_where", '{"op": "like", "value": "a"}')
        with pytest.raises(MutationRejected):
            apply_operator(params["tags"], ["a"], "remove_where", '{"op": "equals"}')
        with pytest.raises(MutationRejected):
            apply_operator(params["tags"], ["a"], "remove_where", '["a"]')

    def test_clear_and_set(self, params) -> None:
        backpack = params["backpack"]
        assert apply_operator(backpack, [{"name": "a"}], "clear") == []
        result = apply_operator(backpack, [], "set", '[{"name": "a"}, {"name": "b"}]')
        assert result == [{"name": "a"}, {"name": "b"}]

    def test_set_fits_max_length(self, params) -> None:
        result = apply_operator(
            params["backpack"], [], "set", '[{"name": "a"}, {"name": "b"}, {"name": "c"}, {"name": "d"}]'
        )
        assert [i["name"] for i in result] == ["b", "c", "d"]

    def test_set_needs_array(self, params) -> None:
        with pytest.raises(MutationRejected):
            apply_operator(params["backpack"], [], "set", '{"name": "a"}')

    def test_unknown_operator_rejected(self, params) -> None:
        with pytest.raises(MutationRejected):
            apply_operator(params["tags"], [], "shuffle")

    def test_current_not_mutated(self, params) -> None:
        current = ["a", "b"]
        apply_operator(params["tags"], current, "add_item", '"c"')
        apply_operator(params["tags"], current, "remove_at:0")
        assert current == ["a", "b"]

    def test_max_length_zero(self) -> None:
        log = ParameterDefinition.model_validate(
            {"name": "log", "type": "array", "arrayConfig": {"maxLength": 0}}
        )
        assert apply_operator(log, [], "add_item", '"x"') == []


class TestConditions:
    def test_loose_equality(self) -> None:
        assert matches_condition("5", None, "equals", 5)
        assert matches_condition(5, None, "equals", "5")
        assert matches_condition(True, None, "equals", "true")
        assert not matches_condition("a", None, "equals", "b")

    def test_numeric_comparisons_coerce_strings(self) -> None:
        assert matches_condition({"qty": "10"}, "qty", "gt", 2)
        assert matches_condition({"qty": 2}, "qty", "lte", "2")
        assert not matches_condition({"qty": "many"}, "qty", "gt", 2)

    def test_missing_field_never_matches(self) -> None:
        assert not matches_condition({"name": "a"}, "qty", "not_equals", 1)
        assert not matches_condition("plain", "qty", "equals", "plain")

    def test_not_contains(self) -> None:
        assert matches_condition({"tags": ["x"]}, "tags", "not_contains", "y")
        assert not matches_condition({"tags": ["x"]}, "tags", "not_contains", "x")


def test_takes_value(params):
    assert takes_value(params["backpack"], "add_item")
    assert takes_value(params["backpack"], "update_at:1")
    assert takes_value(params["backpack"], "remove_where")
    assert takes_value(params["backpack"], "set")
    assert not takes_value(params["backpack"], "remove_at:1")
    assert not takes_value(params["backpack"], "clear")
    assert not takes_value(params["favor"], "add_item")
