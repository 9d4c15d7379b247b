"""
Pydantic schemas for generated artifacts and the on-disk cache files
"""
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from core.entities import Item

ViewMode = Literal["discussion", "chat"]


class CamelModel(BaseModel):
    """
    Base for shapes persisted as camelCase JSON.
    """
    model_config = ConfigDict(populate_by_name=True)


class SummaryResult(CamelModel):
    """
    Two-part brief generated for an item
    """
    subject_summary: str = Field("", alias="subjectSummary")
    discussion_summary: str = Field("", alias="discussionSummary")


class ChatMessage(CamelModel):
    role: Literal["user", "assistant"]
    content: str


class ChatSession(CamelModel):
    """
    Saved conversation for an item, restorable across runs.
    """
    messages: List[ChatMessage] = []
    suggestions: List[str] = []
    original_suggestions: List[str] = Field(default_factory=list, alias="originalSuggestions")
    follow_up_count: int = Field(0, alias="followUpCount")


class SessionSnapshot(CamelModel):
    """
    Full restorable UI state, written on every state-affecting transition.
    """
    items: List[Item] = []
    selected_index: int = Field(-1, alias="selectedIndex")
    selected_item: Optional[Item] = Field(None, alias="selectedItem")
    root_comment_index: int = Field(0, alias="rootCommentIndex")
    chat_mode: bool = Field(False, alias="chatMode")
    settings_mode: bool = Field(False, alias="settingsMode")
    chat_sessions: Dict[str, ChatSession] = Field(default_factory=dict, alias="chatSessions")
    view_modes: Dict[str, ViewMode] = Field(default_factory=dict, alias="viewModes")
    fetched_at: float = Field(0.0, alias="fetchedAt")
    saved_at: float = Field(0.0, alias="savedAt")


class SummaryCacheEntry(CamelModel):
    result: SummaryResult
    cached_at: float = Field(..., alias="cachedAt")


class SummaryCacheFile(CamelModel):
    entries: Dict[str, SummaryCacheEntry] = {}


class ChatCacheEntry(ChatSession):
    cached_at: float = Field(..., alias="cachedAt")


class ChatCacheFile(CamelModel):
    sessions: Dict[str, ChatCacheEntry] = {}
