"""Typed mutation interpreter: one operator applied to one value.

Operators per parameter type:
  number   up_small/up_medium/up_large (+2/+5/+10), down_* (negated), or a
           numeric literal. Clamped only to declared min/max.
  enum     next / prev (clamped at the ends, no wrap), or a declared value.
  boolean  true / false, case-insensitive.
  text     the operator argument replaces the value wholesale.
  array    add_item, remove_at:<i>, remove_where, update_at:<i>, clear, set.
           Values are JSON literals checked against the declared item type.

``apply_operator`` returns the new value or raises ``MutationRejected``; the
caller keeps the old value in that case. Out-of-range array indices are a
no-op, not a rejection.
"""

from __future__ import annotations

import json
import math
from collections.abc import Callable
from typing import Any

from chara_engine.models import ArrayConfig, ParameterDefinition

SYMBOLIC_DELTAS: dict[str, int] = {
    "up_small": 2,
    "up_medium": 5,
    "up_large": 10,
    "down_small": -2,
    "down_medium": -5,
    "down_large": -10,
}

_VALUE_OPERATORS = {"add_item", "update_at", "remove_where", "set"}

# remove_where operator names and their symbolic aliases
CONDITION_OPS = {
    "equals": "equals", "==": "equals",
    "not_equals": "not_equals", "!=": "not_equals",
    "contains": "contains",
    "not_contains": "not_contains",
    "gt": "gt", ">": "gt",
    "gte": "gte", ">=": "gte",
    "lt": "lt", "<": "lt",
    "lte": "lte", "<=": "lte",
}


class MutationRejected(ValueError):
    """The command cannot apply to this parameter; the old value stands."""


def _split_array_operator(operator: str) -> tuple[str, str]:
    name, _, arg = operator.strip().partition(":")
    return name.strip().lower(), arg.strip()


def takes_value(definition: ParameterDefinition, operator: str) -> bool:
    """True when ``operator`` reads a value literal after itself."""
    if definition.type != "array":
        return False
    return _split_array_operator(operator)[0] in _VALUE_OPERATORS


# ---------------------------------------------------------------------------
# number
# ---------------------------------------------------------------------------

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_number(literal: str) -> int | float | None:
    text = literal.strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        value = float(text)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def _bound(value: float) -> int | float:
    return int(value) if float(value).is_integer() else value


def _clamp(definition: ParameterDefinition, value: int | float) -> int | float:
    if definition.min is not None and value < definition.min:
        value = _bound(definition.min)
    if definition.max is not None and value > definition.max:
        value = _bound(definition.max)
    return value


def _apply_number(definition: ParameterDefinition, current: Any, operator: str, value_literal: str | None) -> Any:
    key = operator.strip().lower()
    if key in SYMBOLIC_DELTAS:
        base = current if _is_number(current) else definition.default
        if not _is_number(base):
            base = 0
        return _clamp(definition, base + SYMBOLIC_DELTAS[key])
    value = parse_number(operator)
    if value is None:
        raise MutationRejected(f"{operator!r} is neither a number nor a symbolic delta")
    return _clamp(definition, value)


def describe_phase(definition: ParameterDefinition, value: Any) -> str | None:
    """Name of the first phase band covering ``value``, or None."""
    if not _is_number(value):
        return None
    for phase in definition.phases:
        low, high = phase.range
        if low <= value <= high:
            return phase.name
    return None


# ---------------------------------------------------------------------------
# enum / boolean / text
# ---------------------------------------------------------------------------

def _apply_enum(definition: ParameterDefinition, current: Any, operator: str, value_literal: str | None) -> Any:
    values = definition.enum_values
    key = operator.strip()
    if key.lower() in ("next", "prev"):
        if current not in values:
            return values[0]
        step = 1 if key.lower() == "next" else -1
        index = min(max(values.index(current) + step, 0), len(values) - 1)
        return values[index]
    if key in values:
        return key
    for value in values:
        if value.lower() == key.lower():
            return value
    raise MutationRejected(f"{operator!r} is not one of {values}")


def _apply_boolean(definition: ParameterDefinition, current: Any, operator: str, value_literal: str | None) -> Any:
    key = operator.strip().lower()
    if key == "true":
        return True
    if key == "false":
        return False
    raise MutationRejected(f"{operator!r} is not a boolean")


def _apply_text(definition: ParameterDefinition, current: Any, operator: str, value_literal: str | None) -> Any:
    return operator


# ---------------------------------------------------------------------------
# array
# ---------------------------------------------------------------------------

_ITEM_CHECKS: dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "number": _is_number,
    "boolean": lambda v: isinstance(v, bool),
    "object": lambda v: isinstance(v, dict),
}


def _decode(literal: str | None) -> Any:
    if literal is None:
        raise MutationRejected("operator needs a value")
    try:
        return json.loads(literal)
    except json.JSONDecodeError as e:
        raise MutationRejected(f"value is not valid JSON: {e}") from e


def _check_item(config: ArrayConfig, value: Any) -> Any:
    if not _ITEM_CHECKS[config.item_type](value):
        raise MutationRejected(f"{value!r} is not a {config.item_type}")
    if config.item_type == "object" and config.item_fields:
        for field, field_type in config.item_fields.items():
            if field in value and not _ITEM_CHECKS[field_type](value[field]):
                raise MutationRejected(f"field {field!r} of {value!r} is not a {field_type}")
    return value


def _parse_index(arg: str) -> int:
    try:
        return int(arg)
    except ValueError:
        raise MutationRejected(f"{arg!r} is not an index") from None


def _to_float(value: Any) -> float | None:
    if _is_number(value):
        return float(value)
    if isinstance(value, str):
        number = parse_number(value)
        return float(number) if number is not None else None
    return None


def _to_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None


def _as_text(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)


def _loose_equal(actual: Any, expected: Any) -> bool:
    if isinstance(actual, bool):
        return _to_bool(expected) is actual
    if _is_number(actual):
        return _to_float(expected) == float(actual)
    if isinstance(actual, str):
        return actual == _as_text(expected)
    return actual == expected


def _compare(actual: Any, op: str, expected: Any) -> bool:
    if op == "equals":
        return _loose_equal(actual, expected)
    if op == "not_equals":
        return not _loose_equal(actual, expected)
    if op in ("contains", "not_contains"):
        if isinstance(actual, str):
            hit = _as_text(expected) in actual
        elif isinstance(actual, list):
            hit = any(_loose_equal(a, expected) for a in actual)
        else:
            return False
        return hit if op == "contains" else not hit
    left, right = _to_float(actual), _to_float(expected)
    if left is None or right is None:
        return False
    if op == "gt":
        return left > right
    if op == "gte":
        return left >= right
    if op == "lt":
        return left < right
    return left <= right


def _decode_condition(literal: str | None) -> tuple[str | None, str, Any]:
    data = _decode(literal)
    if not isinstance(data, dict) or "value" not in data:
        raise MutationRejected(f"condition must be an object with a value: {data!r}")
    op = CONDITION_OPS.get(str(data.get("op", "")).strip().lower())
    if op is None:
        raise MutationRejected(f"unknown condition op {data.get('op')!r}")
    field = data.get("field")
    if field is not None and not isinstance(field, str):
        raise MutationRejected(f"condition field must be a string: {field!r}")
    return field or None, op, data["value"]


def matches_condition(item: Any, field: str | None, op: str, expected: Any) -> bool:
    if field:
        if not isinstance(item, dict) or field not in item:
            return False
        return _compare(item[field], op, expected)
    return _compare(item, op, expected)


def _fit(config: ArrayConfig, items: list) -> list:
    """Drop the oldest items beyond max_length."""
    if config.max_length is None or len(items) <= config.max_length:
        return items
    if config.max_length == 0:
        return []
    return items[-config.max_length:]


def _apply_array(definition: ParameterDefinition, current: Any, operator: str, value_literal: str | None) -> Any:
    config = definition.array_config
    if isinstance(current, list):
        items = list(current)
    elif isinstance(definition.default, list):
        items = list(definition.default)
    else:
        items = []

    name, arg = _split_array_operator(operator)
    if name == "add_item":
        items.append(_check_item(config, _decode(value_literal)))
    elif name == "remove_at":
        index = _parse_index(arg)
        if 0 <= index < len(items):
            del items[index]
    elif name == "update_at":
        index = _parse_index(arg)
        value = _check_item(config, _decode(value_literal))
        if 0 <= index < len(items):
            items[index] = value
    elif name == "remove_where":
        field, op, expected = _decode_condition(value_literal)
        items = [i for i in items if not matches_condition(i, field, op, expected)]
    elif name == "clear":
        items = []
    elif name == "set":
        decoded = _decode(value_literal)
        if not isinstance(decoded, list):
            raise MutationRejected(f"set needs a JSON array, got {type(decoded).__name__}")
        items = [_check_item(config, v) for v in decoded]
    else:
        raise MutationRejected(f"unknown array operator {operator!r}")
    return _fit(config, items)


_HANDLERS = {
    "number": _apply_number,
    "enum": _apply_enum,
    "boolean": _apply_boolean,
    "text": _apply_text,
    "array": _apply_array,
}


def apply_operator(
    definition: ParameterDefinition,
    current: Any,
    operator: str,
    value_literal: str | None = None,
) -> Any:
    """Compute the new value of one parameter. Never mutates ``current``."""
    return _HANDLERS[definition.type](definition, current, operator, value_literal)
