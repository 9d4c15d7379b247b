import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Callable, List, Optional

import httpx
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_ollama import ChatOllama

from core.schemas import ChatMessage

logger = logging.getLogger(__name__)


class ModelTier(str, Enum):
    """
    PRIMARY answers the user; CHEAP serves auxiliary generation
    (summaries, suggestions, follow-ups).
    """
    PRIMARY = "primary"
    CHEAP = "cheap"


@dataclass
class StreamCallbacks:
    on_text: Callable[[str], None]  # receives the accumulated text so far
    on_complete: Callable[[str], None]
    on_error: Callable[[Exception], None]


class StreamHandle:
    """
    Handle to a running stream. Cancelling it silences every later
    callback; it does not promise the remote generation stopped.
    """

    def __init__(self):
        self._cancelled = False
        self._task: Optional[asyncio.Task] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self._task is None or self._task.done()

    def cancel(self) -> None:
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait(self) -> None:
        """Wait for the stream to finish or be cancelled."""
        if self._task is not None:
            await asyncio.wait([self._task])


def to_langchain_messages(
    system_prompt: str,
    prior_messages: List[ChatMessage],
    new_message: str,
) -> List[BaseMessage]:
    messages: List[BaseMessage] = []
    if system_prompt:
        messages.append(SystemMessage(content=system_prompt))
    for message in prior_messages:
        if message.role == "user":
            messages.append(HumanMessage(content=message.content))
        else:
            messages.append(AIMessage(content=message.content))
    messages.append(HumanMessage(content=new_message))
    return messages


class TextBackend(ABC):
    """
    Base interface for text generation.
    """

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        prior_messages: List[ChatMessage],
        new_message: str,
        tier: ModelTier = ModelTier.PRIMARY,
    ) -> str:
        raise NotImplementedError

    @abstractmethod
    def stream_text(
        self,
        system_prompt: str,
        prior_messages: List[ChatMessage],
        new_message: str,
        tier: ModelTier = ModelTier.PRIMARY,
    ) -> AsyncIterator[str]:
        """Yield incremental text deltas."""
        raise NotImplementedError

    def stream(
        self,
        system_prompt: str,
        prior_messages: List[ChatMessage],
        new_message: str,
        callbacks: StreamCallbacks,
        tier: ModelTier = ModelTier.PRIMARY,
    ) -> StreamHandle:
        """
        Start streaming in the background and return a cancellation handle.
        Must be called from a running event loop.
        """
        handle = StreamHandle()

        async def pump() -> None:
            text = ""
            try:
                async for delta in self.stream_text(system_prompt, prior_messages, new_message, tier):
                    if handle.cancelled:
                        return
                    text += delta
                    callbacks.on_text(text)
            except Exception as e:
                if not handle.cancelled:
                    logger.error(f"Stream failed: {e}")
                    callbacks.on_error(e)
                return

            if not handle.cancelled:
                callbacks.on_complete(text)

        handle._task = asyncio.create_task(pump())
        return handle


class OllamaClient(TextBackend):
    """
    LangChain-based Ollama client with retry logic and proper connection handling.
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        cheap_model: Optional[str] = None,
        temperature: float = 0.3,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        timeout: float = 120.0,
    ):
        # ChatOllama uses Ollama's native API, not OpenAI-compatible /v1 endpoint
        if base_url.endswith("/v1"):
            base_url = base_url[:-3]
        elif base_url.endswith("/v1/"):
            base_url = base_url[:-4]

        self.base_url = base_url.rstrip('/')
        self.model = model
        self.cheap_model = cheap_model or model
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout

        self.llm = ChatOllama(
            base_url=self.base_url,
            model=self.model,
            temperature=temperature,
            num_ctx=8192,  # Discussions are long
        )
        self.cheap_llm = ChatOllama(
            base_url=self.base_url,
            model=self.cheap_model,
            temperature=temperature,
            num_ctx=8192,
        )

    def _model_for(self, tier: ModelTier) -> ChatOllama:
        return self.cheap_llm if tier == ModelTier.CHEAP else self.llm

    async def _invoke_with_retry(self, llm: ChatOllama, messages: List[BaseMessage]) -> Any:
        """
        Invoke LLM with retry logic for connection failures.
        """
        last_exception = None

        for attempt in range(1, self.max_retries + 1):
            try:
                return await asyncio.wait_for(llm.ainvoke(messages), timeout=self.timeout)

            except asyncio.TimeoutError:
                last_exception = TimeoutError(f"Request timed out after {self.timeout}s")
                logger.warning(f"Attempt {attempt}/{self.max_retries}: Timeout, retrying...")

            except Exception as e:
                last_exception = e
                error_msg = str(e)

                if "connection" in error_msg.lower() or "connect" in error_msg.lower():
                    logger.warning(
                        f"Attempt {attempt}/{self.max_retries}: Connection error - {error_msg} (base_url={self.base_url}, model={llm.model})"
                    )
                else:
                    # For non-connection errors, don't retry
                    raise

            if attempt < self.max_retries:
                await asyncio.sleep(self.retry_delay * attempt)

        raise last_exception or Exception("All connection attempts failed")

    async def complete(
        self,
        system_prompt: str,
        prior_messages: List[ChatMessage],
        new_message: str,
        tier: ModelTier = ModelTier.PRIMARY,
    ) -> str:
        start = time.time()
        llm = self._model_for(tier)

        response = await self._invoke_with_retry(
            llm, to_langchain_messages(system_prompt, prior_messages, new_message)
        )

        latency_ms = int((time.time() - start) * 1000)
        logger.info(f"Completion from {llm.model} in {latency_ms}ms")
        return str(response.content).strip()

    async def stream_text(
        self,
        system_prompt: str,
        prior_messages: List[ChatMessage],
        new_message: str,
        tier: ModelTier = ModelTier.PRIMARY,
    ) -> AsyncIterator[str]:
        llm = self._model_for(tier)
        messages = to_langchain_messages(system_prompt, prior_messages, new_message)

        async for chunk in llm.astream(messages):
            if chunk.content:
                yield str(chunk.content)

    async def health_check(self) -> bool:
        """
        Check if the Ollama server is reachable by calling /api/tags.
        """
        url = f"{self.base_url}/api/tags"
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                resp = await client.get(url)
                if resp.status_code == 200:
                    return True
                logger.error(f"Ollama health check failed: {resp.status_code} {resp.text}")
                return False
        except Exception as e:
            logger.error(f"Ollama health check error: {e} (url={url})")
            return False
