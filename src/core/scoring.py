"""
Module to score and gate every ranked item
"""

from core.entities import Item, LINK_TYPE


def recency_bonus(age_hours: float, *, max_bonus: float, window_hours: float) -> float:
    """
    Linear bonus that decays from max_bonus at age 0 to zero at the
    edge of the window, never negative beyond it.
    """
    if window_hours <= 0:
        return 0.0
    return max(0.0, max_bonus * (1 - age_hours / window_hours))


def ranking_score(
    item: Item,
    *,
    now: float,
    comment_weight: float,
    max_bonus: float,
    window_hours: float,
) -> float:
    """
    points + comments * weight + recency bonus
    """
    bonus = recency_bonus(item.age_hours(now), max_bonus=max_bonus, window_hours=window_hours)
    return (item.points or 0) + item.comments_count * comment_weight + bonus


def is_eligible_type(item: Item) -> bool:
    return item.type == LINK_TYPE


def is_within_window(item: Item, *, now: float, window_hours: float) -> bool:
    return item.age_hours(now) < window_hours


def passes_threshold(item: Item, *, min_points: float, min_comments: float) -> bool:
    """
    Either enough points OR enough comments qualifies an item.
    """
    return (item.points or 0) >= min_points or item.comments_count >= min_comments
