import pytest

from chara_engine.models import CardConfig
from chara_engine.schema import Schema
from chara_engine.storage import Storage

SAMPLE_CARD = {
    "parameters": [
        {
            "name": "favor",
            "id": "p_favor",
            "type": "number",
            "default": 10,
            "min": 0,
            "max": 100,
            "phases": [
                {"name": "wary", "range": [0, 30]},
                {"name": "friendly", "range": [31, 70]},
                {"name": "devoted", "range": [71, 100]},
            ],
        },
        {"name": "mood", "type": "enum", "enumValues": ["calm", "tense", "angry"], "default": "calm"},
        {
            "name": "backpack",
            "type": "array",
            "default": [],
            "arrayConfig": {
                "itemType": "object",
                "maxLength": 3,
                "itemFields": {"name": "string", "qty": "number"},
            },
        },
        {"name": "tags", "type": "array", "arrayConfig": {"itemType": "string"}},
        {"name": "trust", "scope": "relationship", "type": "number", "default": 0},
        {"name": "weather", "scope": "global", "type": "text", "default": "clear"},
        {"name": "alarm", "scope": "global", "type": "boolean", "default": False},
        {
            "name": "time_of_day",
            "scope": "scene",
            "type": "enum",
            "enumValues": ["morning", "afternoon", "evening", "night"],
            "default": "evening",
        },
    ],
    "entities": [
        {"name": "Alice", "parameterNames": ["favor", "mood", "backpack", "tags", "trust"]},
        {"name": "Bob", "parameterNames": ["favor", "mood", "trust"]},
        {"name": "Carol", "parameterNames": ["favor"]},
        {"name": "Dave"},
        {"name": "Eve"},
        {"name": "Campus", "type": "location"},
        {"name": "Library", "type": "location", "parentLocation": "Campus"},
        {"name": "Cafe", "type": "location", "parentLocation": "Campus"},
    ],
}


@pytest.fixture
def card() -> CardConfig:
    return CardConfig.model_validate(SAMPLE_CARD)


@pytest.fixture
def schema(card: CardConfig) -> Schema:
    return Schema(card)


@pytest.fixture
def storage(tmp_path) -> Storage:
    """Fresh JSON storage under a temporary directory."""
    return Storage(tmp_path / "data")
