"""
Ingest data from Hacker News
"""
import logging
from typing import List, Optional

import httpx

from core.entities import Item
from ingestion.base import ItemSource, SourceError

logger = logging.getLogger(__name__)


class HackerNewsSource(ItemSource):
    TOP_BASE_URL = "https://hacker-news.firebaseio.com/v0"
    ITEM_BASE_URL = "https://api.hnpwa.com/v0"

    def __init__(self, client: httpx.AsyncClient):
        """
        The client is owned by the caller and shared by every request.
        """
        self.client = client

    async def _get(self, url: str) -> httpx.Response:
        return await self.client.get(url)

    async def list_candidate_ids(self) -> List[int]:
        try:
            resp = await self._get(f"{self.TOP_BASE_URL}/topstories.json")
            resp.raise_for_status()
            ids = [int(i) for i in resp.json()]
        except Exception as e:
            raise SourceError(f"Failed to fetch top stories: {e}") from e

        logger.debug(f"Fetched {len(ids)} candidate ids")
        # Higher id = newer
        return sorted(ids, reverse=True)

    async def get_item(self, item_id: int) -> Optional[Item]:
        resp = await self._get(f"{self.ITEM_BASE_URL}/item/{item_id}.json")
        if resp.status_code == 404:
            return None
        resp.raise_for_status()

        data = resp.json()
        if not data:
            return None
        return Item.from_api(data)
