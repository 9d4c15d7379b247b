"""
Module to contain base class for Displays
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from core.entities import GenerationKind


@dataclass(frozen=True)
class GenerationUpdate:
    """
    A generation result or error for one (item, kind).
    """
    item_id: int
    kind: GenerationKind
    result: Any = None
    error: Optional[str] = None


class Display(ABC):
    """
    Base interface for whatever renders the reader.
    The generation coordinator only touches the display through these hooks.
    """

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        """True once the display has been torn down."""
        raise NotImplementedError

    @abstractmethod
    def render_loading(self, item_id: int, kind: GenerationKind, frame: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def clear_loading(self, item_id: int, kind: GenerationKind) -> None:
        raise NotImplementedError

    @abstractmethod
    def render_update(self, update: GenerationUpdate) -> None:
        raise NotImplementedError

    @abstractmethod
    def render_chat(self, item_id: int, text: str, done: bool) -> None:
        """Render the assistant reply streamed so far."""
        raise NotImplementedError
