import asyncio
import logging
import time
from typing import List, Optional

from core.entities import CommentNode, Item
from core.scoring import is_eligible_type, is_within_window, passes_threshold, ranking_score
from ingestion.base import ItemSource
from services.config import FilterConfig

logger = logging.getLogger(__name__)


def trim_comment(comment: CommentNode, settings: FilterConfig) -> Optional[CommentNode]:
    """
    Returns a trimmed copy of the comment, or None when it sits
    deeper than the allowed nesting level.
    """
    if comment.level > settings.max_comment_level:
        return None

    children = [
        trimmed
        for trimmed in (
            trim_comment(child, settings)
            for child in comment.comments[:settings.max_child_comments]
        )
        if trimmed is not None
    ]

    return CommentNode(
        id=comment.id,
        user=comment.user,
        content=comment.content,
        level=comment.level,
        comments=children,
    )


def trim_comments(comments: List[CommentNode], settings: FilterConfig) -> List[CommentNode]:
    """
    Keep the first max_root_comments roots, each trimmed recursively.
    """
    roots = (trim_comment(c, settings) for c in comments[:settings.max_root_comments])
    return [c for c in roots if c is not None]


def trim_item(item: Item, settings: FilterConfig) -> Item:
    return item.model_copy(update={"comments": trim_comments(item.comments, settings)})


async def _fetch_all(source: ItemSource, ids: List[int]) -> List[Item]:
    results = await asyncio.gather(
        *(source.get_item(item_id) for item_id in ids),
        return_exceptions=True,
    )

    items: List[Item] = []
    for item_id, result in zip(ids, results):
        if isinstance(result, BaseException):
            logger.debug(f"Dropping item {item_id}: {result}")
            continue
        if result is None:
            logger.debug(f"Dropping item {item_id}: not found")
            continue
        items.append(result)
    return items


async def rank_items(
    source: ItemSource,
    settings: FilterConfig,
    now: Optional[float] = None,
) -> List[Item]:
    """
    Fetch candidates and return the scored, filtered and capped result set.

    Args:
        source: Feed to rank
        settings: Filter knobs, read fresh by the caller for every pass
        now: Reference time in epoch seconds (defaults to the current time)

    Returns:
        Items sorted by descending ranking score, comments stripped

    Raises:
        SourceError: If the candidate list cannot be fetched
    """
    candidate_ids = (await source.list_candidate_ids())[:settings.fetch_limit]
    fetched = await _fetch_all(source, candidate_ids)
    now = time.time() if now is None else now

    links = [item for item in fetched if is_eligible_type(item)]
    recent = [item for item in links if is_within_window(item, now=now, window_hours=settings.hours_window)]
    engaged = [
        item for item in recent
        if passes_threshold(item, min_points=settings.min_points, min_comments=settings.min_comments)
    ]

    def sort_key(item: Item):
        score = ranking_score(
            item,
            now=now,
            comment_weight=settings.comment_weight,
            max_bonus=settings.recency_bonus_max,
            window_hours=settings.hours_window,
        )
        # Ties go to the newer item
        return (-score, -item.id)

    ranked = sorted(engaged, key=sort_key)[:settings.max_posts]

    logger.info(
        f"Ranked {len(candidate_ids)} candidates: fetched={len(fetched)}, links={len(links)}, "
        f"recent={len(recent)}, engaged={len(engaged)}, shown={len(ranked)}"
    )
    return [item.without_comments() for item in ranked]


async def load_item_detail(source: ItemSource, item_id: int) -> Optional[Item]:
    """
    Fetch one item with its full discussion.
    Returns None when the item is missing or the fetch fails.
    """
    try:
        return await source.get_item(item_id)
    except Exception as e:
        logger.error(f"Error loading item {item_id}: {e}")
        return None
