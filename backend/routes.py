"""FastAPI API endpoints under /api.

Conversations hold a card configuration and an append-mostly turn history.
State is never stored directly: every state endpoint replays the history
through the conversation's ReplayEngine (using its checkpoint when valid).
"""

from fastapi import APIRouter, Depends, HTTPException, Request

from chara_engine.errors import UsageError
from chara_engine.mutations import describe_phase
from chara_engine.parser import parse_block
from chara_engine.replay import ReplayEngine, apply_parsed
from chara_engine.storage import Storage

from backend.models import AppendTurn, CreateConversation, PreviewBody, UpdateTurn

router = APIRouter()


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def _engine(storage: Storage, slug: str) -> ReplayEngine:
    engine = storage.engine(slug)
    if engine is None:
        raise HTTPException(404, "Conversation not found")
    return engine


# ── Conversations ─────────────────────────────────────────────


@router.get("/conversations")
async def list_conversations(storage: Storage = Depends(get_storage)):
    """List conversation slugs."""
    return storage.list_conversations()


@router.post("/conversations", status_code=201)
async def create_conversation(body: CreateConversation, storage: Storage = Depends(get_storage)):
    """Create a conversation from a card configuration."""
    try:
        slug = storage.create_conversation(body.name, body.card)
    except FileExistsError:
        raise HTTPException(409, "Conversation already exists")
    return {"slug": slug, "card": body.card.model_dump(mode="json", by_alias=True)}


@router.get("/conversations/{slug}")
async def get_conversation(slug: str, storage: Storage = Depends(get_storage)):
    """Get a conversation's card configuration."""
    card = storage.get_card(slug)
    if card is None:
        raise HTTPException(404, "Conversation not found")
    return card.model_dump(mode="json", by_alias=True)


@router.delete("/conversations/{slug}")
async def delete_conversation(slug: str, storage: Storage = Depends(get_storage)):
    """Delete a conversation and all its data."""
    if not storage.delete_conversation(slug):
        raise HTTPException(404, "Conversation not found")
    return {"ok": True}


# ── Turns ─────────────────────────────────────────────────────


@router.get("/conversations/{slug}/turns")
async def get_turns(slug: str, storage: Storage = Depends(get_storage)):
    """Get the turn history."""
    _engine(storage, slug)
    return [t.model_dump(mode="json", by_alias=True) for t in storage.get_turns(slug)]


@router.post("/conversations/{slug}/turns", status_code=201)
async def append_turn(slug: str, body: AppendTurn, storage: Storage = Depends(get_storage)):
    """Append a turn to the history."""
    _engine(storage, slug)
    turn = storage.append_turn(slug, body.role, body.text, body.parse_output)
    return turn.model_dump(mode="json", by_alias=True)


@router.patch("/conversations/{slug}/turns/{index}")
async def update_turn(slug: str, index: int, body: UpdateTurn, storage: Storage = Depends(get_storage)):
    """Edit a turn's text or parse output. An explicit null parse output clears it."""
    _engine(storage, slug)
    changes = body.model_dump(exclude_unset=True)
    if changes.get("text", "") is None:
        del changes["text"]
    try:
        turn = storage.update_turn(slug, index, **changes)
    except IndexError:
        raise HTTPException(404, "Turn not found")
    return turn.model_dump(mode="json", by_alias=True)


@router.delete("/conversations/{slug}/turns/{index}")
async def truncate_turns(slug: str, index: int, storage: Storage = Depends(get_storage)):
    """Drop turn ``index`` and every turn after it."""
    _engine(storage, slug)
    if not 0 <= index < len(storage.get_turns(slug)):
        raise HTTPException(404, "Turn not found")
    turns = storage.truncate_turns(slug, index)
    return [t.model_dump(mode="json", by_alias=True) for t in turns]


# ── State ─────────────────────────────────────────────────────


@router.get("/conversations/{slug}/state")
async def get_state(slug: str, index: int | None = None, storage: Storage = Depends(get_storage)):
    """State after turn ``index`` (latest by default)."""
    engine = _engine(storage, slug)
    try:
        state = engine.latest_state() if index is None else engine.state_at(index)
    except UsageError as e:
        raise HTTPException(400, str(e))
    return state.model_dump(mode="json", by_alias=True)


@router.get("/conversations/{slug}/parameters/{name}")
async def get_parameter(
    slug: str,
    name: str,
    subject: str | None = None,
    target: str | None = None,
    index: int | None = None,
    storage: Storage = Depends(get_storage),
):
    """Current value of one parameter at one coordinate."""
    engine = _engine(storage, slug)
    try:
        value = engine.parameter_value(name, subject=subject, target=target, index=index)
    except UsageError as e:
        raise HTTPException(400, str(e))
    definition = engine.schema.parameter(name).definition
    return {
        "name": name,
        "subject": subject,
        "target": target,
        "value": value,
        "phase": describe_phase(definition, value),
    }


@router.post("/conversations/{slug}/preview")
async def preview_block(slug: str, body: PreviewBody, storage: Storage = Depends(get_storage)):
    """Apply a block of text to the state at ``index`` without saving it."""
    engine = _engine(storage, slug)
    try:
        base = engine.latest_state() if body.index is None else engine.state_at(body.index)
    except UsageError as e:
        raise HTTPException(400, str(e))
    parsed = parse_block(body.text, engine.schema)
    state = apply_parsed(parsed, base, engine.schema)
    return {
        "parsed": parsed.model_dump(mode="json", by_alias=True),
        "state": state.model_dump(mode="json", by_alias=True),
    }
