"""Pydantic request models for API endpoints."""

from pydantic import BaseModel

from chara_engine.models import CardConfig, Role


class CreateConversation(BaseModel):
    name: str
    card: CardConfig


class AppendTurn(BaseModel):
    role: Role = "assistant"
    text: str
    parse_output: str | None = None


class UpdateTurn(BaseModel):
    text: str | None = None
    parse_output: str | None = None


class PreviewBody(BaseModel):
    text: str
    index: int | None = None
