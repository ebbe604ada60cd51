"""In-memory conversation items assembled from streamed model events."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

LOGGER = logging.getLogger(__name__)

Role = Literal["user", "assistant", "system"]
Status = Literal["in_progress", "completed"]


@dataclass
class ContentPart:
    type: Literal["text", "audio_transcript"]
    text: str


@dataclass
class ConversationItem:
    item_id: str
    role: Role
    content: list[ContentPart] = field(default_factory=list)
    status: Status = "in_progress"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def completed(self) -> bool:
        return self.status == "completed"

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.content)

    def append(self, part: ContentPart) -> None:
        if self.completed:
            raise ValueError(f"Conversation item {self.item_id} is already completed.")
        self.content.append(part)

    def complete(self) -> None:
        self.status = "completed"


def _role(value: Any) -> Role:
    if value in ("user", "assistant", "system"):
        return value
    return "assistant"


def _parts_from_item(item: dict[str, Any]) -> list[ContentPart]:
    parts: list[ContentPart] = []
    for entry in item.get("content") or []:
        if not isinstance(entry, dict):
            continue
        if entry.get("transcript"):
            parts.append(ContentPart("audio_transcript", str(entry["transcript"])))
        elif entry.get("text"):
            parts.append(ContentPart("text", str(entry["text"])))
    return parts


class Conversation:
    """Items of one Session keyed by the model's item id, in creation order."""

    def __init__(self) -> None:
        self._items: dict[str, ConversationItem] = {}

    def __len__(self) -> int:
        return len(self._items)

    def get(self, item_id: str) -> ConversationItem | None:
        return self._items.get(item_id)

    def items(self) -> list[ConversationItem]:
        return list(self._items.values())

    def start(self, item: dict[str, Any]) -> ConversationItem | None:
        item_id = str(item.get("id") or "")
        if not item_id:
            return None
        existing = self._items.get(item_id)
        if existing is not None:
            return existing

        created = ConversationItem(
            item_id=item_id,
            role=_role(item.get("role")),
            content=_parts_from_item(item),
            status="completed" if item.get("status") == "completed" else "in_progress",
        )
        self._items[item_id] = created
        return created

    def append_delta(
        self,
        item_id: str,
        delta: str,
        *,
        kind: Literal["text", "audio_transcript"] = "audio_transcript",
        role: Role = "assistant",
    ) -> ConversationItem | None:
        item = self._items.get(item_id)
        if item is None:
            # Deltas may arrive before the matching item-created event.
            item = ConversationItem(item_id=item_id, role=role)
            self._items[item_id] = item
        try:
            item.append(ContentPart(kind, delta))
        except ValueError:
            LOGGER.warning("Ignoring delta for completed item %s", item_id)
            return None
        return item

    def complete(self, item_id: str) -> ConversationItem | None:
        item = self._items.get(item_id)
        if item is not None:
            item.complete()
        return item
