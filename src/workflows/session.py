"""
Reader session.

Holds every piece of mutable reader state as explicit fields and drives the
generation coordinator with the currently selected item.
"""
import logging
import time
from pathlib import Path
from typing import Dict, List, Optional

from core.entities import Item
from core.schemas import ChatSession, SessionSnapshot, ViewMode
from display.base import Display
from ingestion.base import ItemSource
from processing.ranking import load_item_detail, rank_items, trim_item
from services.cache import ChatCache, SessionCache, SummaryCache, merge_chat_sessions
from services.config import FilterConfig, load_settings
from services.llm import TextBackend
from workflows.generation import GenerationCoordinator

logger = logging.getLogger(__name__)


class ReaderSession:
    """
    State of one reader run: the ranked list, the selection and the
    per-item view modes. Chat sessions and summaries live on the coordinator.
    """

    def __init__(
        self,
        source: ItemSource,
        backend: TextBackend,
        display: Display,
        session_cache: Optional[SessionCache] = None,
        summary_cache: Optional[SummaryCache] = None,
        chat_cache: Optional[ChatCache] = None,
        config_dir: Optional[Path] = None,
    ):
        self.source = source
        self.display = display
        self.session_cache = session_cache or SessionCache()
        self.summary_cache = summary_cache or SummaryCache()
        self.chat_cache = chat_cache or ChatCache()
        self.config_dir = config_dir

        self.items: List[Item] = []
        self.selected_index = -1
        self.selected_item: Optional[Item] = None
        self.root_comment_index = 0
        self.chat_mode = False
        self.settings_mode = False
        self.view_modes: Dict[int, ViewMode] = {}
        self.fetched_at = 0.0

        # Untrimmed discussions, used as AI context
        self.full_items: Dict[int, Item] = {}

        self.coordinator = GenerationCoordinator(
            backend,
            display,
            current_item_id=lambda: self.selected_item_id,
            summary_cache=self.summary_cache,
            chat_cache=self.chat_cache,
        )

    @property
    def selected_item_id(self) -> Optional[int]:
        if self.selected_item is not None:
            return self.selected_item.id
        if 0 <= self.selected_index < len(self.items):
            return self.items[self.selected_index].id
        return None

    @property
    def chat_sessions(self) -> Dict[int, ChatSession]:
        return self.coordinator.chat_sessions

    @property
    def context_item(self) -> Optional[Item]:
        """The selected item with its full discussion, for prompts."""
        if self.selected_item is None:
            return None
        return self.full_items.get(self.selected_item.id, self.selected_item)

    async def load_context_item(self) -> Optional[Item]:
        """
        Like context_item, but fetches the full discussion when only the
        trimmed copy is known, as after restoring a saved selection.
        """
        if self.selected_item is None:
            return None
        item_id = self.selected_item.id
        if item_id not in self.full_items:
            detail = await load_item_detail(self.source, item_id)
            if detail is not None:
                self.full_items[item_id] = detail
        return self.context_item

    def settings(self) -> FilterConfig:
        return load_settings(self.config_dir)

    # ----------------------------
    # Restore / refresh
    # ----------------------------
    async def _restore_artifacts(self, snapshot: Optional[SessionSnapshot]) -> None:
        summaries = await self.summary_cache.load()
        durable_chats = await self.chat_cache.load()

        session_chats: Dict[int, ChatSession] = {}
        if snapshot is not None:
            for key, chat in snapshot.chat_sessions.items():
                try:
                    session_chats[int(key)] = chat
                except ValueError:
                    logger.debug(f"Skipping chat session with non-numeric key {key!r}")
            for key, mode in snapshot.view_modes.items():
                try:
                    self.view_modes[int(key)] = mode
                except ValueError:
                    logger.debug(f"Skipping view mode with non-numeric key {key!r}")

        self.coordinator.summaries.update(summaries)
        self.coordinator.chat_sessions.update(merge_chat_sessions(session_chats, durable_chats))
        logger.info(
            f"Restored {len(summaries)} summaries and {len(self.coordinator.chat_sessions)} chat sessions"
        )

    async def restore(self) -> bool:
        """
        Load the session snapshot and durable caches.
        Returns True when a usable item list was restored.
        """
        snapshot = await self.session_cache.load(self.settings().stories_ttl_minutes)
        await self._restore_artifacts(snapshot)

        if snapshot is None or not snapshot.items:
            return False

        self.items = list(snapshot.items)
        self.fetched_at = snapshot.fetched_at
        self.selected_index = snapshot.selected_index if snapshot.selected_index < len(self.items) else -1
        self.selected_item = snapshot.selected_item
        self.root_comment_index = snapshot.root_comment_index
        self.chat_mode = snapshot.chat_mode
        self.settings_mode = snapshot.settings_mode
        logger.info(f"Restored {len(self.items)} items from session cache")
        return True

    async def refresh(self) -> List[Item]:
        """
        Rank a fresh item list with the current settings.

        Raises:
            SourceError: If the candidate list cannot be fetched
        """
        items = await rank_items(self.source, self.settings())

        self.items = items
        self.fetched_at = time.time()
        self.selected_index = -1
        self.selected_item = None
        self.root_comment_index = 0
        self.chat_mode = False

        await self.save()
        return items

    async def start(self, requested_item_id: Optional[int] = None) -> bool:
        """
        Bring the session up. With a requested id, rank a fresh list and
        select that item, fetching it and placing it first when it is not
        ranked. Returns False when the requested item could not be found.
        """
        if requested_item_id is None:
            if not await self.restore():
                await self.refresh()
            return True

        await self._restore_artifacts(await self.session_cache.load(self.settings().stories_ttl_minutes))
        await self.refresh()

        for index, item in enumerate(self.items):
            if item.id == requested_item_id:
                await self.select(index)
                return True

        item = await load_item_detail(self.source, requested_item_id)
        if item is None:
            logger.warning(f"Requested item {requested_item_id} not found")
            if self.items:
                await self.select(0)
            return False

        self.items.insert(0, item.without_comments())
        self._apply_detail(0, item)
        await self.save()
        return True

    # ----------------------------
    # Selection
    # ----------------------------
    def _apply_detail(self, index: int, item: Item) -> None:
        self.selected_index = index
        self.full_items[item.id] = item
        self.selected_item = trim_item(item, self.settings())
        self.root_comment_index = 0

    async def select(self, index: int) -> Optional[Item]:
        """
        Select the item at index and load its discussion. A detail that
        arrives after the selection moved on is dropped.
        """
        if not 0 <= index < len(self.items):
            return None

        if self.chat_mode and self.selected_item_id is not None:
            self.coordinator.cancel_chat(self.selected_item_id)
            self.chat_mode = False

        item_id = self.items[index].id
        self.selected_index = index
        self.selected_item = None

        detail = await load_item_detail(self.source, item_id)
        if self.selected_index != index or self.selected_item_id != item_id:
            logger.debug(f"Discarded stale detail for item {item_id}")
            return None
        if detail is None:
            return None

        self._apply_detail(index, detail)
        await self.save()
        return self.selected_item

    async def navigate(self, delta: int) -> Optional[Item]:
        if not self.items:
            return None
        if self.selected_index < 0:
            target = 0 if delta > 0 else len(self.items) - 1
        else:
            target = max(0, min(len(self.items) - 1, self.selected_index + delta))
        if target == self.selected_index:
            return self.selected_item
        return await self.select(target)

    async def set_view_mode(self, item_id: int, mode: ViewMode) -> None:
        self.view_modes[item_id] = mode
        await self.save()

    # ----------------------------
    # Chat
    # ----------------------------
    async def open_chat(self) -> Optional[ChatSession]:
        item = await self.load_context_item()
        if item is None:
            return None
        self.chat_mode = True
        self.view_modes[item.id] = "chat"
        session = self.coordinator.open_chat(item)
        await self.save()
        return session

    async def close_chat(self) -> None:
        if self.selected_item_id is not None:
            self.coordinator.cancel_chat(self.selected_item_id)
            self.view_modes[self.selected_item_id] = "discussion"
        self.chat_mode = False
        await self.save()

    # ----------------------------
    # Persistence
    # ----------------------------
    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            items=self.items,
            selected_index=self.selected_index,
            selected_item=self.selected_item,
            root_comment_index=self.root_comment_index,
            chat_mode=self.chat_mode,
            settings_mode=self.settings_mode,
            chat_sessions={str(k): v for k, v in self.coordinator.chat_sessions.items()},
            view_modes={str(k): v for k, v in self.view_modes.items()},
            fetched_at=self.fetched_at,
        )

    async def save(self) -> None:
        await self.session_cache.save(self.snapshot())

    async def clear_caches(self) -> None:
        """Remove every cache file and forget generated artifacts."""
        await self.session_cache.clear()
        await self.summary_cache.clear()
        await self.chat_cache.clear()
        self.coordinator.summaries.clear()
        self.coordinator.chat_sessions.clear()
        self.coordinator.errors.clear()
        self.view_modes.clear()
        logger.info("Cleared all caches")
