"""JSON file storage.

Each conversation is a card configuration plus its turn history and at most
one replay checkpoint, kept in flat JSON files under a base directory.
There is no database; reads and writes go through small helper methods that
load and dump JSON.

Directory layout:

    {base}/
      conversations/
        {slug}.json           ← CardConfig
        {slug}/
          history.json        ← list of Turn objects, in order
          checkpoint.json     ← Checkpoint (optional)

Editing or truncating history drops any checkpoint that could cover the
changed turns.
"""

from __future__ import annotations

import json
import re
import shutil
import unicodedata
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from chara_engine.models import CardConfig, Checkpoint, EngineState, Role, Turn
from chara_engine.replay import ReplayEngine


def slugify(name: str) -> str:
    """Convert a conversation name to a filesystem-safe slug.

    "Library After Hours" → "library-after-hours"
    """
    text = unicodedata.normalize("NFKD", name)
    text = text.encode("ascii", "ignore").decode("ascii")
    text = text.lower()
    text = re.sub(r"['\"]", "", text)
    text = re.sub(r"[^a-z0-9]+", "-", text)
    text = text.strip("-")
    return text or "untitled"


class Storage:
    def __init__(self, base_path: Path) -> None:
        self._base = base_path
        self._conv_root = base_path / "conversations"
        self._conv_root.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    def _card_file(self, slug: str) -> Path:
        return self._conv_root / f"{slug}.json"

    def _conv_dir(self, slug: str) -> Path:
        return self._conv_root / slug

    def _read_json(self, path: Path) -> Any:
        return json.loads(path.read_text(encoding="utf-8"))

    def _write_json(self, path: Path, data: Any) -> None:
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")

    def _write_turns(self, slug: str, turns: Sequence[Turn]) -> None:
        self._write_json(
            self._conv_dir(slug) / "history.json",
            [t.model_dump(by_alias=True) for t in turns],
        )

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def create_conversation(self, name: str, card: CardConfig) -> str:
        """Store ``card`` under a slug derived from ``name``. Returns the slug."""
        slug = slugify(name)
        if self._card_file(slug).exists():
            raise FileExistsError(f"conversation {slug!r} already exists")
        self._card_file(slug).write_text(
            card.model_dump_json(indent=2, by_alias=True), encoding="utf-8"
        )
        self._conv_dir(slug).mkdir(exist_ok=True)
        return slug

    def list_conversations(self) -> list[str]:
        return sorted(p.stem for p in self._conv_root.glob("*.json"))

    def get_card(self, slug: str) -> CardConfig | None:
        path = self._card_file(slug)
        if not path.exists():
            return None
        return CardConfig.model_validate_json(path.read_text(encoding="utf-8"))

    def delete_conversation(self, slug: str) -> bool:
        """Delete a conversation and its history. Returns False if missing."""
        card_file = self._card_file(slug)
        if not card_file.is_file():
            return False
        card_file.unlink()
        if self._conv_dir(slug).is_dir():
            shutil.rmtree(self._conv_dir(slug))
        return True

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def get_turns(self, slug: str) -> list[Turn]:
        path = self._conv_dir(slug) / "history.json"
        if not path.exists():
            return []
        return [Turn.model_validate(t) for t in self._read_json(path)]

    def append_turn(
        self, slug: str, role: Role, text: str, parse_output: str | None = None
    ) -> Turn:
        turns = self.get_turns(slug)
        turn = Turn(index=len(turns), role=role, text=text, parse_output=parse_output)
        turns.append(turn)
        self._write_turns(slug, turns)
        return turn

    def update_turn(self, slug: str, index: int, **changes: Any) -> Turn:
        """Edit one turn in place. Raises IndexError for an unknown index.

        Only the fields passed are changed; ``parse_output=None`` clears the
        parse output so the turn's text is its command source again.
        """
        turns = self.get_turns(slug)
        if not 0 <= index < len(turns):
            raise IndexError(f"turn {index} out of range")
        data = turns[index].model_dump()
        data.update({k: v for k, v in changes.items() if k in ("text", "parse_output")})
        turns[index] = Turn.model_validate(data)
        self._write_turns(slug, turns)

        checkpoint = self.get_checkpoint(slug)
        if checkpoint is not None and checkpoint.index >= index:
            self.clear_checkpoint(slug)
        return turns[index]

    def truncate_turns(self, slug: str, length: int) -> list[Turn]:
        """Keep only the first ``length`` turns."""
        turns = self.get_turns(slug)[: max(length, 0)]
        self._write_turns(slug, turns)

        checkpoint = self.get_checkpoint(slug)
        if checkpoint is not None and checkpoint.index >= len(turns):
            self.clear_checkpoint(slug)
        return turns

    # ------------------------------------------------------------------
    # Checkpoint
    # ------------------------------------------------------------------

    def get_checkpoint(self, slug: str) -> Checkpoint | None:
        path = self._conv_dir(slug) / "checkpoint.json"
        if not path.exists():
            return None
        return Checkpoint.model_validate_json(path.read_text(encoding="utf-8"))

    def save_checkpoint(
        self, slug: str, index: int, state: EngineState, digest: str | None = None
    ) -> None:
        checkpoint = Checkpoint(index=index, state=state, digest=digest)
        (self._conv_dir(slug) / "checkpoint.json").write_text(
            checkpoint.model_dump_json(indent=2, by_alias=True), encoding="utf-8"
        )

    def clear_checkpoint(self, slug: str) -> None:
        (self._conv_dir(slug) / "checkpoint.json").unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    def engine(self, slug: str) -> ReplayEngine | None:
        """ReplayEngine over this conversation's history and checkpoint."""
        card = self.get_card(slug)
        if card is None:
            return None
        adapter = ConversationStore(self, slug)
        return ReplayEngine(card, history=adapter, checkpoints=adapter)


class ConversationStore:
    """History and checkpoint collaborators for one stored conversation."""

    def __init__(self, storage: Storage, slug: str) -> None:
        self._storage = storage
        self._slug = slug

    def turns(self) -> list[Turn]:
        return self._storage.get_turns(self._slug)

    def get(self) -> Checkpoint | None:
        return self._storage.get_checkpoint(self._slug)

    def set(self, index: int, state: EngineState, digest: str | None = None) -> None:
        self._storage.save_checkpoint(self._slug, index, state, digest)
