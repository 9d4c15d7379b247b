"""Tests for the session snapshot and durable artifact caches."""

import asyncio
import json
import tempfile
import unittest
from pathlib import Path

from core.schemas import ChatMessage, ChatSession, SessionSnapshot, SummaryResult
from services.cache import (
    AI_CACHE_TTL_SECONDS,
    ChatCache,
    SessionCache,
    SummaryCache,
    merge_chat_sessions,
)
from tests.fakes import NOW, make_item


def summary(text: str) -> SummaryResult:
    return SummaryResult(subject_summary=text, discussion_summary=f"{text} discussion")


def chat(text: str) -> ChatSession:
    return ChatSession(messages=[ChatMessage(role="user", content=text)])


class CacheTestCase(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.base_dir = Path(self.temp_dir.name)

    def tearDown(self):
        self.temp_dir.cleanup()


class TestSummaryCache(CacheTestCase):

    async def test_overwrite_keeps_original_timestamp(self):
        cache = SummaryCache(self.base_dir)

        await cache.save({1: summary("first")}, now=NOW)
        await cache.save({1: summary("second")}, now=NOW + 60)

        loaded = await cache.load(now=NOW + 60)
        self.assertEqual(loaded[1].subject_summary, "second")

        data = json.loads(cache.path.read_text())
        self.assertEqual(data["entries"]["1"]["cachedAt"], NOW)
        self.assertEqual(data["entries"]["1"]["result"]["subjectSummary"], "second")

    async def test_new_keys_are_stamped_with_now(self):
        cache = SummaryCache(self.base_dir)

        await cache.save({1: summary("a")}, now=NOW)
        await cache.save({1: summary("a"), 2: summary("b")}, now=NOW + 60)

        data = json.loads(cache.path.read_text())
        self.assertEqual(data["entries"]["2"]["cachedAt"], NOW + 60)

    async def test_expired_entry_excluded_fresh_sibling_loads(self):
        cache = SummaryCache(self.base_dir)
        cache.path.write_text(json.dumps({
            "entries": {
                "1": {"result": {"subjectSummary": "old", "discussionSummary": ""},
                      "cachedAt": NOW - AI_CACHE_TTL_SECONDS - 1},
                "2": {"result": {"subjectSummary": "fresh", "discussionSummary": ""},
                      "cachedAt": NOW},
            }
        }))

        loaded = await cache.load(now=NOW)

        self.assertEqual(list(loaded), [2])
        self.assertEqual(loaded[2].subject_summary, "fresh")

    async def test_expired_preserved_entry_is_dropped_on_save(self):
        cache = SummaryCache(self.base_dir)
        later = NOW + AI_CACHE_TTL_SECONDS + 1

        await cache.save({1: summary("a")}, now=NOW)
        await cache.save({1: summary("b"), 2: summary("c")}, now=later)

        data = json.loads(cache.path.read_text())
        self.assertEqual(list(data["entries"]), ["2"])

    async def test_overlapping_saves_leave_a_valid_file(self):
        cache = SummaryCache(self.base_dir)
        big = {i: summary("x" * 200) for i in range(50)}
        small = {1: summary("small")}

        for _ in range(20):
            await asyncio.gather(cache.save(big, now=NOW), cache.save(small, now=NOW))

            loaded = await cache.load(now=NOW)
            self.assertEqual(list(loaded), [1])
            self.assertEqual(loaded[1].subject_summary, "small")

        self.assertEqual([p.name for p in self.base_dir.iterdir()], [SummaryCache.FILE_NAME])

    async def test_overlapping_saves_keep_original_timestamps(self):
        cache = SummaryCache(self.base_dir)
        await cache.save({1: summary("a")}, now=NOW)

        await asyncio.gather(
            cache.save({1: summary("b"), 2: summary("c")}, now=NOW + 60),
            cache.save({1: summary("d"), 2: summary("e")}, now=NOW + 120),
        )

        data = json.loads(cache.path.read_text())
        self.assertEqual(data["entries"]["1"]["cachedAt"], NOW)
        self.assertEqual(data["entries"]["2"]["cachedAt"], NOW + 60)

    async def test_malformed_file_loads_empty(self):
        cache = SummaryCache(self.base_dir)
        cache.path.write_text("{not json")

        self.assertEqual(await cache.load(now=NOW), {})

    async def test_missing_file_loads_empty(self):
        self.assertEqual(await SummaryCache(self.base_dir / "absent").load(now=NOW), {})

    async def test_clear_removes_file(self):
        cache = SummaryCache(self.base_dir)
        await cache.save({1: summary("a")}, now=NOW)

        await cache.clear()

        self.assertFalse(cache.path.exists())


class TestChatCache(CacheTestCase):

    async def test_round_trip_uses_camel_case(self):
        cache = ChatCache(self.base_dir)
        session = ChatSession(
            messages=[ChatMessage(role="user", content="why?")],
            suggestions=["How?"],
            original_suggestions=["How?"],
            follow_up_count=2,
        )

        await cache.save({5: session}, now=NOW)
        loaded = await cache.load(now=NOW)

        self.assertEqual(loaded[5], session)
        data = json.loads(cache.path.read_text())
        self.assertEqual(data["sessions"]["5"]["followUpCount"], 2)
        self.assertEqual(data["sessions"]["5"]["cachedAt"], NOW)

    async def test_malformed_file_loads_empty(self):
        cache = ChatCache(self.base_dir)
        cache.path.write_text("[]")

        self.assertEqual(await cache.load(now=NOW), {})


class TestSessionCache(CacheTestCase):

    async def test_fresh_snapshot_round_trip(self):
        cache = SessionCache(self.base_dir)
        snapshot = SessionSnapshot(items=[make_item(1)], selected_index=0, fetched_at=NOW)

        await cache.save(snapshot)
        loaded = await cache.load(ttl_minutes=5, now=NOW + 60)

        self.assertEqual([item.id for item in loaded.items], [1])
        self.assertEqual(loaded.selected_index, 0)
        self.assertGreater(loaded.saved_at, 0)

    async def test_stale_items_dropped_chats_kept(self):
        cache = SessionCache(self.base_dir)
        snapshot = SessionSnapshot(
            items=[make_item(1)],
            selected_index=0,
            selected_item=make_item(1),
            chat_mode=True,
            chat_sessions={"1": chat("hi")},
            view_modes={"1": "chat"},
            fetched_at=NOW,
        )

        await cache.save(snapshot)
        loaded = await cache.load(ttl_minutes=5, now=NOW + 6 * 60)

        self.assertEqual(loaded.items, [])
        self.assertEqual(loaded.selected_index, -1)
        self.assertIsNone(loaded.selected_item)
        self.assertFalse(loaded.chat_mode)
        self.assertEqual(loaded.chat_sessions["1"].messages[0].content, "hi")
        self.assertEqual(loaded.view_modes, {"1": "chat"})

    async def test_malformed_file_loads_none(self):
        cache = SessionCache(self.base_dir)
        cache.path.write_text("{\"items\": 3")

        self.assertIsNone(await cache.load(now=NOW))

    async def test_snapshot_file_uses_camel_case(self):
        cache = SessionCache(self.base_dir)

        await cache.save(SessionSnapshot(fetched_at=NOW))

        data = json.loads(cache.path.read_text())
        self.assertIn("fetchedAt", data)
        self.assertIn("selectedIndex", data)


class TestMergeChatSessions(unittest.TestCase):

    def test_durable_wins_on_collision(self):
        merged = merge_chat_sessions({1: chat("session"), 2: chat("only session")}, {1: chat("durable")})

        self.assertEqual(merged[1].messages[0].content, "durable")
        self.assertEqual(merged[2].messages[0].content, "only session")


if __name__ == '__main__':
    unittest.main()
