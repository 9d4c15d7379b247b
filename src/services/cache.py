"""
Tiered cache layer.

Session snapshot (short TTL, temp directory) holds the full UI state.
Summary and chat caches (long TTL, user cache directory) hold generated
artifacts across restarts. Caching is best effort: every read, parse and
write error is logged and swallowed.
"""
import asyncio
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Dict, Generic, Optional, Tuple, TypeVar

import aiofiles
from pydantic import BaseModel

from core.schemas import (
    ChatCacheEntry,
    ChatCacheFile,
    ChatSession,
    SessionSnapshot,
    SummaryCacheEntry,
    SummaryCacheFile,
    SummaryResult,
)

logger = logging.getLogger(__name__)

SESSION_CACHE_DIR = Path(tempfile.gettempdir()) / "hn-brief-cache"
PERSISTENT_CACHE_DIR = Path.home() / ".cache" / "hn-brief"

DEFAULT_SESSION_TTL_MINUTES = 5
AI_CACHE_TTL_SECONDS = 7 * 24 * 60 * 60

T = TypeVar("T", bound=BaseModel)


async def _read_text(path: Path) -> Optional[str]:
    if not path.exists():
        return None
    async with aiofiles.open(path, "r", encoding="utf-8") as f:
        return await f.read()


async def _write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    os.close(fd)
    try:
        async with aiofiles.open(tmp_name, "w", encoding="utf-8") as f:
            await f.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        _remove(Path(tmp_name))
        raise


def _remove(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Failed to remove cache {path}: {e}")


class SessionCache:
    """
    Ephemeral snapshot of the reader's UI state.
    """

    FILE_NAME = "state.json"

    def __init__(self, base_dir: Optional[Path] = None):
        self.path = Path(base_dir or SESSION_CACHE_DIR) / self.FILE_NAME
        self._lock = asyncio.Lock()

    async def load(
        self,
        ttl_minutes: float = DEFAULT_SESSION_TTL_MINUTES,
        now: Optional[float] = None,
    ) -> Optional[SessionSnapshot]:
        """
        Returns None when there is no usable snapshot. Once the item list
        is older than the TTL it is dropped together with the selection,
        while chat sessions and view modes are kept.
        """
        try:
            content = await _read_text(self.path)
            if content is None:
                return None
            snapshot = SessionSnapshot.model_validate_json(content)
        except Exception as e:
            logger.warning(f"Ignoring unreadable session cache {self.path}: {e}")
            return None

        now = time.time() if now is None else now
        if now - snapshot.fetched_at > ttl_minutes * 60:
            logger.info("Session items are stale, keeping chat sessions and view modes only")
            return snapshot.model_copy(update={
                "items": [],
                "selected_index": -1,
                "selected_item": None,
                "root_comment_index": 0,
                "chat_mode": False,
                "settings_mode": False,
            })

        return snapshot

    async def save(self, snapshot: SessionSnapshot) -> None:
        async with self._lock:
            try:
                snapshot.saved_at = time.time()
                await _write_text(self.path, snapshot.model_dump_json(by_alias=True, indent=2))
            except Exception as e:
                logger.warning(f"Skipped saving session cache {self.path}: {e}")

    async def clear(self) -> None:
        _remove(self.path)


class ArtifactCache(Generic[T]):
    """
    Durable per-item cache with a fixed TTL.

    The TTL does not slide: when a key is already on disk its stored
    cachedAt is kept even if the value changed, so regenerating content
    never extends its lifetime. Only new keys are stamped with now.
    """

    FILE_NAME: str
    ttl_seconds: float = AI_CACHE_TTL_SECONDS

    def __init__(self, base_dir: Optional[Path] = None):
        self.path = Path(base_dir or PERSISTENT_CACHE_DIR) / self.FILE_NAME
        # Serializes read, merge and write of the file
        self._lock = asyncio.Lock()

    def _parse_values(self, content: str) -> Dict[str, Tuple[T, float]]:
        """Return {key: (value, cachedAt)} for every entry in the file."""
        raise NotImplementedError

    def _render(self, records: Dict[str, Tuple[T, float]]) -> str:
        raise NotImplementedError

    def _is_expired(self, cached_at: float, now: float) -> bool:
        return now - cached_at > self.ttl_seconds

    async def _read_records(self) -> Dict[str, Tuple[T, float]]:
        try:
            content = await _read_text(self.path)
            if content is None:
                return {}
            return self._parse_values(content)
        except Exception as e:
            logger.warning(f"Ignoring unreadable cache {self.path}: {e}")
            return {}

    async def load(self, now: Optional[float] = None) -> Dict[int, T]:
        now = time.time() if now is None else now
        records = await self._read_records()

        result: Dict[int, T] = {}
        for key, (value, cached_at) in records.items():
            if self._is_expired(cached_at, now):
                continue
            try:
                result[int(key)] = value
            except ValueError:
                logger.debug(f"Skipping cache entry with non-numeric key {key!r}")

        expired = len(records) - len(result)
        if expired:
            logger.debug(f"Excluded {expired} expired entries from {self.path.name}")
        return result

    async def save(self, values: Dict[int, T], now: Optional[float] = None) -> None:
        now = time.time() if now is None else now
        values = dict(values)

        async with self._lock:
            existing = await self._read_records()

            records: Dict[str, Tuple[T, float]] = {}
            for item_id, value in values.items():
                key = str(item_id)
                cached_at = existing[key][1] if key in existing else now
                if self._is_expired(cached_at, now):
                    continue
                records[key] = (value, cached_at)

            try:
                await _write_text(self.path, self._render(records))
            except Exception as e:
                logger.warning(f"Skipped saving cache {self.path}: {e}")

    async def clear(self) -> None:
        _remove(self.path)


class SummaryCache(ArtifactCache[SummaryResult]):
    FILE_NAME = "summary-cache.json"

    def _parse_values(self, content: str) -> Dict[str, Tuple[SummaryResult, float]]:
        data = SummaryCacheFile.model_validate_json(content)
        return {key: (entry.result, entry.cached_at) for key, entry in data.entries.items()}

    def _render(self, records: Dict[str, Tuple[SummaryResult, float]]) -> str:
        data = SummaryCacheFile(entries={
            key: SummaryCacheEntry(result=value, cached_at=cached_at)
            for key, (value, cached_at) in records.items()
        })
        return data.model_dump_json(by_alias=True, indent=2)


class ChatCache(ArtifactCache[ChatSession]):
    FILE_NAME = "chat-cache.json"

    def _parse_values(self, content: str) -> Dict[str, Tuple[ChatSession, float]]:
        data = ChatCacheFile.model_validate_json(content)
        return {
            key: (ChatSession.model_validate(entry.model_dump(exclude={"cached_at"})), entry.cached_at)
            for key, entry in data.sessions.items()
        }

    def _render(self, records: Dict[str, Tuple[ChatSession, float]]) -> str:
        data = ChatCacheFile(sessions={
            key: ChatCacheEntry(**value.model_dump(), cached_at=cached_at)
            for key, (value, cached_at) in records.items()
        })
        return data.model_dump_json(by_alias=True, indent=2)


def merge_chat_sessions(
    session_sessions: Dict[int, ChatSession],
    durable_sessions: Dict[int, ChatSession],
) -> Dict[int, ChatSession]:
    """
    Union of both maps. The durable cache wins on collisions because the
    session cache does not survive a reboot.
    """
    merged = dict(session_sessions)
    merged.update(durable_sessions)
    return merged
