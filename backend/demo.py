"""Create a demo conversation for development/testing."""

from chara_engine.models import CardConfig
from chara_engine.storage import Storage, slugify

DEMO_NAME = "Library After Hours"

DEMO_CARD = {
    "parameters": [
        {
            "name": "favor",
            "id": "p_favor",
            "type": "number",
            "description": "How warmly the character regards the player",
            "default": 10,
            "min": 0,
            "max": 100,
            "phases": [
                {"name": "wary", "range": [0, 30]},
                {"name": "friendly", "range": [31, 70]},
                {"name": "devoted", "range": [71, 100]},
            ],
        },
        {
            "name": "mood",
            "type": "enum",
            "enumValues": ["calm", "tense", "angry"],
            "default": "calm",
        },
        {
            "name": "backpack",
            "type": "array",
            "default": [],
            "arrayConfig": {
                "itemType": "object",
                "maxLength": 5,
                "itemFields": {"name": "string", "qty": "number"},
            },
        },
        {"name": "trust", "scope": "relationship", "type": "number", "default": 0},
        {"name": "weather", "scope": "global", "type": "text", "default": "clear"},
        {"name": "alarm_raised", "scope": "global", "type": "boolean", "default": False},
        {
            "name": "time_of_day",
            "scope": "scene",
            "type": "enum",
            "enumValues": ["morning", "afternoon", "evening", "night"],
            "default": "evening",
        },
    ],
    "entities": [
        {"name": "Alice", "parameterNames": ["favor", "mood", "backpack", "trust"]},
        {"name": "Bob", "parameterNames": ["favor", "mood", "trust"]},
        {"name": "Campus", "type": "location"},
        {"name": "Library", "type": "location", "parentLocation": "Campus"},
        {"name": "Cafe", "type": "location", "parentLocation": "Campus"},
    ],
    "castConfig": {"characterCast": {"maxFocus": 2}},
}

DEMO_TURNS = [
    ("user", "We slip into the library after closing.", None),
    (
        "assistant",
        "Alice laughs under her breath and hands you a lantern.",
        """ce.set('Alice.favor', 'up_small', 'shared the secret')
ce.set('Alice.backpack', 'add_item', '{"name": "lantern", "qty": 1}')
ce.set('time_of_day', 'next')
<CastIntent>
  <enter>- character: Alice (holding a lantern)</enter>
</CastIntent>
<LocationCastIntent>
  <setCurrent>- location: Library</setCurrent>
  <addCandidate>- location: Cafe</addCandidate>
</LocationCastIntent>
<SceneMeta>
  - location_hint: "The library after hours"
  - scene_tags: ["quiet", "trespassing"]
</SceneMeta>""",
    ),
    ("user", "Footsteps. Someone else is here.", None),
    (
        "assistant",
        "Bob steps out from behind the stacks, arms folded.",
        """ce.set('Bob.mood', 'tense')
ce.set('Alice.trust.Bob', 'down_medium', 'caught us')
ce.set('alarm_raised', 'true')
<CastIntent>
  <enter>
    - character: Bob
      preferredLayer: presentSupporting
  </enter>
</CastIntent>""",
    ),
]


def create_demo_data(storage: Storage) -> str:
    """Replace the demo conversation with a fresh copy. Returns its slug."""
    card = CardConfig.model_validate(DEMO_CARD)
    storage.delete_conversation(slugify(DEMO_NAME))
    slug = storage.create_conversation(DEMO_NAME, card)
    for role, text, parse_output in DEMO_TURNS:
        storage.append_turn(slug, role, text, parse_output)
    return slug
