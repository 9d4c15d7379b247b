"""Shared fakes for the data source, text backend and display."""

import asyncio
import time
from typing import AsyncIterator, Dict, Iterable, List, Optional

from core.entities import CommentNode, GenerationKind, Item
from core.schemas import ChatMessage
from display.base import Display, GenerationUpdate
from ingestion.base import ItemSource, SourceError
from services.llm import ModelTier, TextBackend

NOW = 1_700_000_000.0

DEFAULT_SUMMARY = "The article explains the idea.\n---DISCUSSION---\nCommenters debate it."


def make_item(
    item_id: int,
    *,
    title: Optional[str] = None,
    points: float = 100,
    comments_count: int = 30,
    age_hours: float = 1.0,
    now: float = NOW,
    type: str = "link",
    comments: Iterable[CommentNode] = (),
) -> Item:
    return Item(
        id=item_id,
        title=title or f"Story {item_id}",
        points=points,
        user="author",
        time=now - age_hours * 3600,
        type=type,
        url=f"https://example.com/{item_id}",
        domain="example.com",
        comments_count=comments_count,
        comments=list(comments),
    )


def make_comment(comment_id: int, level: int = 0, children: Iterable[CommentNode] = ()) -> CommentNode:
    return CommentNode(
        id=comment_id,
        user=f"user{comment_id}",
        content=f"<p>Comment {comment_id}</p>",
        level=level,
        comments=list(children),
    )


class FakeSource(ItemSource):
    def __init__(self, items: Iterable[Item] = (), failing_ids: Iterable[int] = ()):
        self.items: Dict[int, Item] = {item.id: item for item in items}
        self.extra_ids: List[int] = []
        self.failing_ids = set(failing_ids)
        self.list_error: Optional[Exception] = None
        self.gates: Dict[int, asyncio.Event] = {}
        self.requested: List[int] = []

    async def list_candidate_ids(self) -> List[int]:
        if self.list_error is not None:
            raise SourceError(str(self.list_error))
        ids = list(self.items) + list(self.failing_ids) + self.extra_ids
        return sorted(ids, reverse=True)

    async def get_item(self, item_id: int) -> Optional[Item]:
        self.requested.append(item_id)
        if item_id in self.gates:
            await self.gates[item_id].wait()
        if item_id in self.failing_ids:
            raise RuntimeError(f"item {item_id} failed")
        return self.items.get(item_id)


class FakeBackend(TextBackend):
    """
    Replies are picked by the first key found in the request text.
    Requests matching a key in gates wait for that event first.
    """

    def __init__(self):
        self.replies: Dict[str, str] = {}
        self.default_reply = DEFAULT_SUMMARY
        self.gates: Dict[str, asyncio.Event] = {}
        self.error: Optional[Exception] = None
        self.calls: List[str] = []

        self.stream_chunks: List[str] = ["Hello", " there"]
        self.stream_gate: Optional[asyncio.Event] = None
        self.stream_error: Optional[Exception] = None
        self.stream_calls: List[str] = []

    async def complete(
        self,
        system_prompt: str,
        prior_messages: List[ChatMessage],
        new_message: str,
        tier: ModelTier = ModelTier.PRIMARY,
    ) -> str:
        self.calls.append(new_message)
        for key, gate in self.gates.items():
            if key in new_message:
                await gate.wait()
        if self.error is not None:
            raise self.error
        for key, reply in self.replies.items():
            if key in new_message:
                return reply
        return self.default_reply

    async def stream_text(
        self,
        system_prompt: str,
        prior_messages: List[ChatMessage],
        new_message: str,
        tier: ModelTier = ModelTier.PRIMARY,
    ) -> AsyncIterator[str]:
        self.stream_calls.append(new_message)
        for index, chunk in enumerate(self.stream_chunks):
            if index == 1 and self.stream_gate is not None:
                await self.stream_gate.wait()
            if self.stream_error is not None:
                raise self.stream_error
            yield chunk


class FakeDisplay(Display):
    def __init__(self):
        self.closed = False
        self.loading: List[tuple] = []
        self.cleared: List[tuple] = []
        self.updates: List[GenerationUpdate] = []
        self.chats: List[tuple] = []

    @property
    def is_closed(self) -> bool:
        return self.closed

    def render_loading(self, item_id: int, kind: GenerationKind, frame: str) -> None:
        self.loading.append((item_id, kind, frame))

    def clear_loading(self, item_id: int, kind: GenerationKind) -> None:
        self.cleared.append((item_id, kind))

    def render_update(self, update: GenerationUpdate) -> None:
        self.updates.append(update)

    def render_chat(self, item_id: int, text: str, done: bool) -> None:
        self.chats.append((item_id, text, done))

    def updates_for(self, item_id: int) -> List[GenerationUpdate]:
        return [u for u in self.updates if u.item_id == item_id]


def recent_item(item_id: int, **kwargs) -> Item:
    """An item created an hour before the real current time."""
    return make_item(item_id, now=time.time(), **kwargs)
