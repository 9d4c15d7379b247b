"""
Base classes for Ingestion
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from core.entities import Item


class SourceError(Exception):
    """
    Raised when the candidate list cannot be fetched.
    Fatal to a refresh.
    """


class ItemSource(ABC):
    """
    Base interface for the feed the reader ranks.
    """

    @abstractmethod
    async def list_candidate_ids(self) -> List[int]:
        """
        Return candidate identifiers ordered newest first.
        Raises SourceError on failure.
        """
        raise NotImplementedError

    @abstractmethod
    async def get_item(self, item_id: int) -> Optional[Item]:
        """
        Return full item detail, or None when the item does not exist.
        May raise on transient failures; callers decide how fatal that is.
        """
        raise NotImplementedError
