"""
Generation coordinator.

Runs AI-derived artifact generation per item: summaries, initial
suggestions, follow-up suggestions and streamed chat replies.

- At most one request is in flight per (item, kind).
- Every completion re-checks a GenerationToken against the current
  selection; results for an item the user navigated away from are stored
  and cached but never rendered.
- Errors are sticky per (item, kind) until the user regenerates.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from core.entities import GenerationKind, Item
from core.schemas import ChatMessage, ChatSession, SummaryResult
from display.base import Display, GenerationUpdate
from processing.context import build_chat_system_prompt
from processing.suggestions import generate_follow_up_questions, generate_suggestions
from processing.summarizer import generate_summary
from services.cache import ChatCache, SummaryCache
from services.llm import ModelTier, StreamCallbacks, StreamHandle, TextBackend

logger = logging.getLogger(__name__)

MAX_FOLLOW_UP_ROUNDS = 3
LOADING_INTERVAL_SECONDS = 0.08
LOADING_FRAMES = ["⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏"]

TaskKey = Tuple[int, Optional[GenerationKind]]


@dataclass(frozen=True)
class GenerationToken:
    """
    Identifies the context a request was made in.
    """
    item_id: int
    kind: Optional[GenerationKind] = None  # None for chat replies

    @property
    def key(self) -> TaskKey:
        return (self.item_id, self.kind)


class LoadingAnimator:
    """
    Advances a spinner frame on a fixed period while a request is pending.
    Frames are only rendered while the token is current.
    """

    def __init__(
        self,
        token: GenerationToken,
        is_current: Callable[[GenerationToken], bool],
        render: Callable[[GenerationToken, str], None],
        interval: float = LOADING_INTERVAL_SECONDS,
    ):
        self.token = token
        self.is_current = is_current
        self.render = render
        self.interval = interval
        self.frame = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while True:
            if self.is_current(self.token):
                self.render(self.token, LOADING_FRAMES[self.frame])
            self.frame = (self.frame + 1) % len(LOADING_FRAMES)
            await asyncio.sleep(self.interval)

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None


class GenerationCoordinator:
    """
    Owns every per-item generated artifact and the pending-request set.
    """

    def __init__(
        self,
        backend: TextBackend,
        display: Display,
        current_item_id: Callable[[], Optional[int]],
        summary_cache: Optional[SummaryCache] = None,
        chat_cache: Optional[ChatCache] = None,
        loading_interval: float = LOADING_INTERVAL_SECONDS,
    ):
        self.backend = backend
        self.display = display
        self.current_item_id = current_item_id
        self.summary_cache = summary_cache
        self.chat_cache = chat_cache
        self.loading_interval = loading_interval

        self.summaries: Dict[int, SummaryResult] = {}
        self.chat_sessions: Dict[int, ChatSession] = {}
        self.errors: Dict[TaskKey, str] = {}
        self.streaming_text: Dict[int, str] = {}

        self._pending: Dict[TaskKey, asyncio.Task] = {}
        self._animators: Dict[TaskKey, LoadingAnimator] = {}
        self._streams: Dict[int, StreamHandle] = {}
        self._background: Set[asyncio.Task] = set()

    # ----------------------------
    # State queries
    # ----------------------------
    def is_current(self, token: GenerationToken) -> bool:
        """
        Staleness guard: the display is alive and still showing the item
        the request was made for.
        """
        if self.display.is_closed:
            return False
        return self.current_item_id() == token.item_id

    def is_pending(self, item_id: int, kind: GenerationKind) -> bool:
        return (item_id, kind) in self._pending

    def pending_task(self, item_id: int, kind: GenerationKind) -> Optional[asyncio.Task]:
        return self._pending.get((item_id, kind))

    def error_for(self, item_id: int, kind: GenerationKind) -> Optional[str]:
        return self.errors.get((item_id, kind))

    def is_streaming(self, item_id: int) -> bool:
        handle = self._streams.get(item_id)
        return handle is not None and not handle.done

    def session_for(self, item_id: int) -> ChatSession:
        return self.chat_sessions.setdefault(item_id, ChatSession())

    # ----------------------------
    # Task lifecycle
    # ----------------------------
    def _render_loading(self, token: GenerationToken, frame: str) -> None:
        self.display.render_loading(token.item_id, token.kind, frame)

    def _start(
        self,
        item_id: int,
        kind: GenerationKind,
        produce: Callable[[], Awaitable[Any]],
        store: Callable[[Any], Awaitable[None]],
    ) -> Optional[asyncio.Task]:
        token = GenerationToken(item_id, kind)
        if token.key in self._pending:
            logger.debug(f"Rejected duplicate {kind.value} request for item {item_id}")
            return None

        animator = LoadingAnimator(token, self.is_current, self._render_loading, self.loading_interval)
        self._animators[token.key] = animator
        animator.start()

        task = asyncio.create_task(self._run(token, produce, store))
        self._pending[token.key] = task
        logger.info(f"Started {kind.value} generation for item {item_id}")
        return task

    def _finish(self, token: GenerationToken) -> None:
        self._pending.pop(token.key, None)
        animator = self._animators.pop(token.key, None)
        if animator is not None:
            animator.stop()
        if self.is_current(token):
            self.display.clear_loading(token.item_id, token.kind)

    async def _run(
        self,
        token: GenerationToken,
        produce: Callable[[], Awaitable[Any]],
        store: Callable[[Any], Awaitable[None]],
    ) -> Any:
        try:
            result = await produce()
        except asyncio.CancelledError:
            self._finish(token)
            raise
        except Exception as e:
            self._finish(token)
            self.errors[token.key] = str(e) or e.__class__.__name__
            logger.error(f"{token.kind.value} generation failed for item {token.item_id}: {e}")
            if self.is_current(token):
                self.display.render_update(
                    GenerationUpdate(token.item_id, token.kind, error=self.errors[token.key])
                )
            return None

        self._finish(token)
        await store(result)

        if self.is_current(token):
            self.display.render_update(GenerationUpdate(token.item_id, token.kind, result=result))
        else:
            logger.debug(f"Discarded stale {token.kind.value} result for item {token.item_id}")
        return result

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # ----------------------------
    # Persistence
    # ----------------------------
    async def persist_summaries(self) -> None:
        if self.summary_cache is not None:
            await self.summary_cache.save(self.summaries)

    async def persist_chat_sessions(self) -> None:
        if self.chat_cache is not None:
            await self.chat_cache.save(self.chat_sessions)

    # ----------------------------
    # Summary
    # ----------------------------
    def request_summary(self, item: Item) -> Optional[asyncio.Task]:
        """
        Start a summary request unless one is cached, pending or failed.
        """
        if item.id in self.summaries:
            return None
        if (item.id, GenerationKind.SUMMARY) in self.errors:
            return None

        async def store(result: SummaryResult) -> None:
            self.summaries[item.id] = result
            await self.persist_summaries()

        return self._start(item.id, GenerationKind.SUMMARY, lambda: generate_summary(self.backend, item), store)

    def regenerate_summary(self, item: Item) -> Optional[asyncio.Task]:
        """
        Drop the cached summary and any error for the item, then request again.
        The on-disk entry is overwritten when the new result lands, keeping
        its original cachedAt.
        """
        self.summaries.pop(item.id, None)
        self.errors.pop((item.id, GenerationKind.SUMMARY), None)
        return self.request_summary(item)

    # ----------------------------
    # Suggestions
    # ----------------------------
    def request_initial_suggestions(self, item: Item) -> Optional[asyncio.Task]:
        session = self.session_for(item.id)
        if session.original_suggestions:
            return None
        if (item.id, GenerationKind.INITIAL_SUGGESTIONS) in self.errors:
            return None

        async def store(questions: List[str]) -> None:
            session.suggestions = list(questions)
            session.original_suggestions = list(questions)
            await self.persist_chat_sessions()

        return self._start(
            item.id,
            GenerationKind.INITIAL_SUGGESTIONS,
            lambda: generate_suggestions(self.backend, item),
            store,
        )

    def request_follow_ups(self, item: Item) -> Optional[asyncio.Task]:
        session = self.session_for(item.id)
        if session.follow_up_count >= MAX_FOLLOW_UP_ROUNDS:
            logger.debug(f"Follow-up limit reached for item {item.id}")
            return None
        if (item.id, GenerationKind.FOLLOW_UP_SUGGESTIONS) in self.errors:
            return None

        messages = list(session.messages)

        async def store(questions: List[str]) -> None:
            session.suggestions = list(questions)
            session.original_suggestions = list(questions)
            session.follow_up_count += 1
            await self.persist_chat_sessions()

        return self._start(
            item.id,
            GenerationKind.FOLLOW_UP_SUGGESTIONS,
            lambda: generate_follow_up_questions(self.backend, item, messages),
            store,
        )

    # ----------------------------
    # Chat
    # ----------------------------
    def open_chat(self, item: Item) -> ChatSession:
        """
        Start or resume the chat session for an item.
        """
        session = self.session_for(item.id)
        if not session.messages:
            session.messages.append(ChatMessage(
                role="assistant",
                content=f'I have the full context of "{item.title}" and all {item.comments_count} comments. Ask me anything!',
            ))
        self.request_initial_suggestions(item)
        return session

    def send_chat_message(self, item: Item, text: str) -> Optional[StreamHandle]:
        """
        Stream an assistant reply to the user's message.
        Returns None when the message is empty or a reply is already streaming.
        """
        text = text.strip()
        if not text or self.is_streaming(item.id):
            return None

        session = self.session_for(item.id)
        prior = list(session.messages)
        session.messages.append(ChatMessage(role="user", content=text))
        session.suggestions = []
        token = GenerationToken(item.id)

        def on_text(partial: str) -> None:
            self.streaming_text[item.id] = partial
            if self.is_current(token):
                self.display.render_chat(item.id, partial, done=False)

        def on_complete(full: str) -> None:
            self.streaming_text.pop(item.id, None)
            self._streams.pop(item.id, None)
            session.messages.append(ChatMessage(role="assistant", content=full))
            if self.is_current(token):
                self.display.render_chat(item.id, full, done=True)
            self._spawn(self._after_reply(item))

        def on_error(error: Exception) -> None:
            self.streaming_text.pop(item.id, None)
            self._streams.pop(item.id, None)
            message = f"Error: {error}\n\nCheck that the Ollama server is running and the model is pulled."
            session.messages.append(ChatMessage(role="assistant", content=message))
            if self.is_current(token):
                self.display.render_chat(item.id, message, done=True)
            self._spawn(self.persist_chat_sessions())

        handle = self.backend.stream(
            build_chat_system_prompt(item),
            prior,
            text,
            StreamCallbacks(on_text=on_text, on_complete=on_complete, on_error=on_error),
            ModelTier.PRIMARY,
        )
        self._streams[item.id] = handle
        return handle

    async def _after_reply(self, item: Item) -> None:
        await self.persist_chat_sessions()
        task = self.request_follow_ups(item)
        if task is not None:
            await task

    def cancel_chat(self, item_id: int) -> None:
        """
        Silence the in-flight reply for an item. The partial text is dropped.
        """
        handle = self._streams.pop(item_id, None)
        if handle is not None:
            handle.cancel()
            self.streaming_text.pop(item_id, None)
            logger.info(f"Cancelled chat stream for item {item_id}")

    # ----------------------------
    # Shutdown
    # ----------------------------
    async def wait_idle(self) -> None:
        """Wait until no request, stream or background write is outstanding."""
        while self._pending or self._background or any(not h.done for h in self._streams.values()):
            waiters: List[Awaitable[Any]] = [*self._pending.values(), *self._background]
            waiters.extend(h.wait() for h in self._streams.values())
            await asyncio.gather(*waiters, return_exceptions=True)

    async def shutdown(self) -> None:
        for item_id in list(self._streams):
            self.cancel_chat(item_id)
        for animator in self._animators.values():
            animator.stop()
        tasks = [*self._pending.values(), *self._background]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._animators.clear()
        self._pending.clear()
