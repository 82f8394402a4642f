"""Parsing of state updates embedded in model output.

Two kinds of instructions are recognised inside otherwise free text.

Variable commands, one call each:

    call   := ["ce" "."] "set" "(" arg ("," arg)* [","] ")"
    arg    := STRING | BARE
    STRING := '...' | "..."    no raw newline; \\<quote> escapes the quote
    BARE   := run of characters other than whitespace , ( ) ' "

    ce.set('Alice.favor', 'up_small', 'she liked the joke')
    ce.set('Alice.backpack', 'add_item', '{"name":"potion","qty":1}')

XML-like intent blocks for cast, locations and scene metadata:

    <CastIntent>
      <enter>
        - character: Alice (walks in)
          preferredLayer: presentSupporting
      </enter>
      <leave>- character: Bob</leave>
    </CastIntent>
    <LocationCastIntent>
      <setCurrent>- location: Campus.Library</setCurrent>
      <addCandidate>- location: Cafe</addCandidate>
    </LocationCastIntent>
    <SceneMeta>
      - location_hint: "The library after hours"
      - scene_tags: ["quiet", "first meeting"]
    </SceneMeta>

A malformed call or item is dropped on its own; the rest of the block still
parses. Nothing here raises on bad input.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass

from chara_engine.models import (
    CastIntent,
    LocationIntent,
    MutationIntent,
    ParsedBlock,
    SceneUpdate,
)
from chara_engine.mutations import takes_value
from chara_engine.schema import SCOPE_SEGMENTS, Schema

logger = logging.getLogger(__name__)

_CALL_HEAD = re.compile(r"(?<![A-Za-z0-9_.])(?:ce\s*\.\s*)?set\s*\(")
_BARE = re.compile(r"[^\s,()'\"]+")


class CommandSyntaxError(ValueError):
    """A single call could not be tokenized or parsed."""


@dataclass(frozen=True)
class RawCall:
    args: list[str]
    start: int
    end: int


@dataclass(frozen=True)
class _Token:
    kind: str  # STRING | BARE | COMMA | RPAREN
    value: str
    end: int


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

def _read_string(text: str, pos: int) -> tuple[str, int]:
    quote = text[pos]
    out: list[str] = []
    i = pos + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\" and i + 1 < len(text) and text[i + 1] == quote:
            out.append(quote)
            i += 2
            continue
        if ch == quote:
            return "".join(out), i + 1
        if ch == "\n":
            break
        out.append(ch)
        i += 1
    raise CommandSyntaxError(f"unterminated string starting at {pos}")


def _tokenize_args(text: str, pos: int) -> Iterator[_Token]:
    """Yield argument tokens from just after ``set(`` up to the closing paren."""
    while pos < len(text):
        ch = text[pos]
        if ch.isspace():
            pos += 1
        elif ch == ",":
            pos += 1
            yield _Token("COMMA", ch, pos)
        elif ch == ")":
            yield _Token("RPAREN", ch, pos + 1)
            return
        elif ch in "'\"":
            value, pos = _read_string(text, pos)
            yield _Token("STRING", value, pos)
        elif ch == "(":
            raise CommandSyntaxError(f"unexpected '(' at {pos}")
        else:
            match = _BARE.match(text, pos)
            pos = match.end()
            yield _Token("BARE", match.group(), pos)
    raise CommandSyntaxError("call is missing its closing parenthesis")


# ---------------------------------------------------------------------------
# Recursive descent over one argument list
# ---------------------------------------------------------------------------

class _CallParser:
    def __init__(self, tokens: Iterator[_Token]) -> None:
        self._tokens = tokens
        self._current = self._next()

    def _next(self) -> _Token | None:
        return next(self._tokens, None)

    def _peek(self, kind: str) -> bool:
        return self._current is not None and self._current.kind == kind

    def _advance(self) -> _Token:
        token = self._current
        if token is None:
            raise CommandSyntaxError("unexpected end of call")
        self._current = self._next()
        return token

    def _expect(self, kind: str) -> _Token:
        if not self._peek(kind):
            found = self._current.kind if self._current else "end of text"
            raise CommandSyntaxError(f"expected {kind}, found {found}")
        return self._advance()

    def _arg(self) -> str:
        if self._peek("STRING") or self._peek("BARE"):
            return self._advance().value
        found = self._current.kind if self._current else "end of text"
        raise CommandSyntaxError(f"expected an argument, found {found}")

    def parse(self) -> tuple[list[str], int]:
        args = [self._arg()]
        while self._peek("COMMA"):
            self._advance()
            if self._peek("RPAREN"):
                break
            args.append(self._arg())
        return args, self._expect("RPAREN").end


def extract_calls(text: str) -> list[RawCall]:
    """Find every well-formed ``set(...)`` call in ``text``, in order."""
    calls: list[RawCall] = []
    pos = 0
    while True:
        head = _CALL_HEAD.search(text, pos)
        if head is None:
            return calls
        try:
            args, end = _CallParser(_tokenize_args(text, head.end())).parse()
        except CommandSyntaxError as e:
            logger.debug("skipping malformed call at %d: %s", head.start(), e)
            pos = head.end()
            continue
        calls.append(RawCall(args=args, start=head.start(), end=end))
        pos = end


# ---------------------------------------------------------------------------
# Call -> MutationIntent
# ---------------------------------------------------------------------------

def _resolve_call(call: RawCall, schema: Schema) -> MutationIntent | None:
    if len(call.args) < 2:
        logger.debug("dropping call with %d argument(s): %r", len(call.args), call.args)
        return None

    path = call.args[0].strip()
    segments = [s.strip() for s in path.split(".")]
    if not path or any(not s for s in segments) or len(segments) > 3:
        logger.debug("dropping call with bad path %r", path)
        return None

    if len(segments) == 1:
        subject, param_key, target = None, segments[0], None
    elif len(segments) == 2:
        subject, param_key, target = segments[0], segments[1], None
    else:
        subject, param_key, target = segments

    param = schema.parameter(param_key)
    if not param:
        logger.debug("dropping call for unknown parameter %r", param_key)
        return None
    definition = param.definition

    if SCOPE_SEGMENTS[definition.scope] != len(segments):
        logger.debug(
            "dropping %r: %s-scope parameter needs %d segment(s)",
            path, definition.scope, SCOPE_SEGMENTS[definition.scope],
        )
        return None

    if subject is not None:
        found = schema.entity(subject)
        if not found:
            logger.debug("dropping %r: unknown subject %r", path, subject)
            return None
        subject = found.definition.name
    if target is not None:
        found = schema.entity(target)
        if not found:
            logger.debug("dropping %r: unknown target %r", path, target)
            return None
        target = found.definition.name

    operator = call.args[1]
    if definition.type != "text":
        operator = operator.strip()

    extra = call.args[2:]
    value_literal = note = None
    if takes_value(definition, operator):
        value_literal = extra[0] if extra else None
        note = extra[1] if len(extra) > 1 else None
    elif extra:
        note = extra[0]

    return MutationIntent(
        path=path,
        operator=operator,
        value_literal=value_literal,
        note=note,
        scope=definition.scope,
        parameter=definition.name,
        subject=subject,
        target=target,
    )


def parse_mutations(text: str, schema: Schema) -> list[MutationIntent]:
    """Variable commands in ``text`` that resolve against ``schema``, in order."""
    intents = []
    for call in extract_calls(text):
        intent = _resolve_call(call, schema)
        if intent is not None:
            intents.append(intent)
    return intents


# ---------------------------------------------------------------------------
# Intent blocks
# ---------------------------------------------------------------------------

_ITEM_LABELS = {"character", "location", "entity", "name", "角色", "地点", "实体"}
_LABEL = re.compile(r"^([^:：]{1,32}?)\s*[:：]\s*(.*)$")
_TRAILING_NOTE = re.compile(r"\s*[(（]([^()（）]*)[)）]\s*$")
_QUOTES = "\"'“”‘’「」"

_TIER_ALIASES = {
    "focus": "focus",
    "presentsupporting": "present_supporting",
    "supporting": "present_supporting",
    "offstagerelated": "offstage_related",
    "offstage": "offstage_related",
}
_LAYER_KEYS = {"preferredlayer", "layer", "tier"}

_CAST_ACTIONS = {"enter": "enter", "leave": "leave"}
_LOCATION_ACTIONS = {
    "setcurrent": "set_current",
    "addcandidate": "add_candidate",
    "removecandidate": "remove_candidate",
}


def _squash(key: str) -> str:
    return re.sub(r"[^a-z]", "", key.lower())


def _blocks(text: str, tag: str) -> list[str]:
    pattern = rf"<{tag}\b[^>]*>(.*?)</{tag}\s*>"
    return [m.group(1) for m in re.finditer(pattern, text, re.S | re.I)]


def _sub_blocks(body: str, tags: dict[str, str]) -> list[tuple[str, str]]:
    """(action, body) pairs for the given child tags, in document order."""
    pattern = r"<(\w+)\b[^>]*>(.*?)</\1\s*>"
    found = []
    for m in re.finditer(pattern, body, re.S | re.I):
        action = tags.get(_squash(m.group(1)))
        if action:
            found.append((action, m.group(2)))
    return found


def _split_label(text: str) -> tuple[str, str] | None:
    m = _LABEL.match(text)
    if not m:
        return None
    return m.group(1).strip(), m.group(2).strip()


def _list_items(body: str) -> list[tuple[str, dict[str, str]]]:
    """Dash-led items with their indented ``key: value`` continuation lines."""
    items: list[tuple[str, dict[str, str]]] = []
    for line in body.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if stripped[0] in "-*•" or not items:
            items.append((stripped.lstrip("-*•").strip(), {}))
            continue
        pair = _split_label(stripped)
        if pair:
            items[-1][1][_squash(pair[0])] = pair[1]
    return items


def _entity_ref(head: str) -> tuple[str, str | None]:
    pair = _split_label(head)
    if pair and pair[0].lower() in _ITEM_LABELS:
        head = pair[1]
    note = None
    m = _TRAILING_NOTE.search(head)
    if m:
        note = m.group(1).strip() or None
        head = head[: m.start()]
    return head.strip().strip(_QUOTES).strip(), note


def _parse_cast(text: str, schema: Schema) -> list[CastIntent]:
    intents: list[CastIntent] = []
    for block in _blocks(text, "CastIntent"):
        for action, body in _sub_blocks(block, _CAST_ACTIONS):
            for head, attrs in _list_items(body):
                name, note = _entity_ref(head)
                found = schema.entity(name, "character") if name else None
                if not found:
                    logger.debug("dropping %s intent for unknown character %r", action, name)
                    continue
                tier = None
                layer = next((v for k, v in attrs.items() if k in _LAYER_KEYS), None)
                if layer is not None:
                    tier = _TIER_ALIASES.get(_squash(layer))
                    if tier is None:
                        logger.debug("dropping %s intent for %r: unknown layer %r", action, name, layer)
                        continue
                intents.append(CastIntent(
                    action=action, entity=found.definition.name, tier=tier, note=note,
                ))
    return intents


def _parse_locations(text: str, schema: Schema) -> list[LocationIntent]:
    intents: list[LocationIntent] = []
    for block in _blocks(text, "LocationCastIntent"):
        for action, body in _sub_blocks(block, _LOCATION_ACTIONS):
            for head, _ in _list_items(body):
                name, _note = _entity_ref(head)
                path = schema.canonical_location(name) if name else None
                if not path:
                    logger.debug("dropping %s intent for unknown location %r", action, name)
                    continue
                intents.append(LocationIntent(action=action, location=path.definition))
    return intents


def _parse_tags(raw: str) -> list[str]:
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        decoded = None
    if isinstance(decoded, list):
        return [str(t) for t in decoded]
    parts = raw.strip().strip("[]").split(",")
    return [p.strip().strip(_QUOTES).strip() for p in parts if p.strip().strip(_QUOTES).strip()]


def _parse_scene(text: str) -> SceneUpdate | None:
    update: SceneUpdate | None = None
    for block in _blocks(text, "SceneMeta"):
        fields: list[tuple[str, str]] = []
        for head, attrs in _list_items(block):
            pair = _split_label(head)
            if pair:
                fields.append((_squash(pair[0]), pair[1]))
            fields.extend(attrs.items())
        for key, value in fields:
            if key == "locationhint":
                update = update or SceneUpdate()
                update.location_hint = value.strip().strip(_QUOTES).strip()
            elif key == "scenetags":
                update = update or SceneUpdate()
                update.scene_tags = _parse_tags(value)
    return update


def parse_block(text: str, schema: Schema) -> ParsedBlock:
    """Parse one block of model output into every intent it carries."""
    return ParsedBlock(
        mutations=parse_mutations(text, schema),
        cast=_parse_cast(text, schema),
        locations=_parse_locations(text, schema),
        scene=_parse_scene(text),
    )
