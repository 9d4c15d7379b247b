from __future__ import annotations

import time
from enum import Enum
from typing import List, Optional, Dict, Any

from pydantic import BaseModel, ConfigDict, Field

LINK_TYPE = "link"
HN_ITEM_URL = "https://news.ycombinator.com/item?id="


class GenerationKind(str, Enum):
    """
    Kinds of AI-derived artifacts produced per item.
    """
    SUMMARY = "summary"
    INITIAL_SUGGESTIONS = "initial-suggestions"
    FOLLOW_UP_SUGGESTIONS = "follow-up-suggestions"


class CommentNode(BaseModel):
    """
    One comment in a discussion thread. Level 0 is a root comment.
    """
    model_config = ConfigDict(frozen=True)

    id: int | str
    user: Optional[str] = None
    content: Optional[str] = None
    level: int = 0
    comments: List[CommentNode] = Field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> CommentNode:
        return cls(
            id=data.get("id", 0),
            user=data.get("user"),
            content=data.get("content"),
            level=int(data.get("level", 0) or 0),
            comments=[cls.from_api(child) for child in data.get("comments") or [] if child],
        )


class Item(BaseModel):
    """
    Canonical representation of a feed story.
    Identifiers are ordered: a larger id is a newer item.
    """
    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    points: Optional[float] = None
    user: Optional[str] = None
    time: float
    type: str = LINK_TYPE
    content: Optional[str] = None
    url: str = ""
    domain: Optional[str] = None
    comments_count: int = 0
    comments: List[CommentNode] = Field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> Item:
        return cls(
            id=int(data["id"]),
            title=data.get("title", "") or "",
            points=data.get("points"),
            user=data.get("user"),
            time=float(data.get("time", 0) or 0),
            type=data.get("type", LINK_TYPE) or LINK_TYPE,
            content=data.get("content"),
            url=data.get("url", "") or "",
            domain=data.get("domain"),
            comments_count=int(data.get("comments_count", 0) or 0),
            comments=[CommentNode.from_api(c) for c in data.get("comments") or [] if c],
        )

    @property
    def discussion_url(self) -> str:
        return f"{HN_ITEM_URL}{self.id}"

    def age_hours(self, now: Optional[float] = None) -> float:
        now = time.time() if now is None else now
        return (now - self.time) / 3600

    def without_comments(self) -> Item:
        return self.model_copy(update={"comments": []})
