"""
Popularity-style rankings: rating order, trending score, and category filters.
"""

from typing import List, Optional, Sequence, Tuple

import numpy as np

from common.constants import PATHS, RECOMMEND, TRENDING
from common.helpers import argsort_desc, category_matches
from common.utils import setup_logging

from .data_models import CategoryRecommendations, Item

logger = setup_logging(__name__, PATHS["app_log_file"])


def get_popularity_based_recommendations(candidates: Sequence[Item]) -> Tuple[List[Item], np.ndarray]:
    """Candidates by rating, highest first (stable on ties)."""
    if len(candidates) == 0:
        return [], np.array([], dtype=np.float64)
    ratings = np.array([c.rating for c in candidates], dtype=np.float64)
    order = argsort_desc(ratings)
    return [candidates[i] for i in order], ratings[order]


def top_rated(items: Sequence[Item], limit: int, exclude_ids: Optional[Sequence[int]] = None) -> List[Item]:
    exclude = set(exclude_ids or ())
    pool = [i for i in items if i.id not in exclude]
    ranked, _ = get_popularity_based_recommendations(pool)
    return ranked[: max(limit, 0)]


def trending_scores(items: Sequence[Item], rng: np.random.Generator) -> np.ndarray:
    """
    rating/5 + U(0, 0.2) + category boost + mid-price bonus.
    The random term stands in for view counts, so repeated calls may reorder near-ties.
    """
    n = len(items)
    ratings = np.array([i.rating for i in items], dtype=np.float64)
    prices = np.array([i.price for i in items], dtype=np.float64) / TRENDING["price_scale"]
    low, high = TRENDING["price_band"]

    category_boost = np.array(
        [TRENDING["category_boost"] if i.category in TRENDING["boost_categories"] else 0.0 for i in items]
    )
    price_bonus = np.where((prices > low) & (prices < high), TRENDING["price_band_bonus"], 0.0)
    noise = rng.uniform(0.0, TRENDING["random_max"], size=n)

    return ratings / 5.0 + noise + category_boost + price_bonus


def get_trending_recommendations(items: Sequence[Item], limit: int, rng: np.random.Generator) -> List[Item]:
    if len(items) == 0 or limit <= 0:
        return []
    scores = trending_scores(items, rng)
    return [items[i] for i in argsort_desc(scores)[:limit]]


def random_sample(items: Sequence[Item], limit: int, rng: np.random.Generator) -> List[Item]:
    if len(items) == 0 or limit <= 0:
        return []
    order = rng.permutation(len(items))[:limit]
    return [items[i] for i in order]


def get_category_recommendations(items: Sequence[Item], category: str, limit: int) -> List[Item]:
    """Items whose category equals, contains, or is contained by `category`, by rating."""
    matching = [i for i in items if i.category == category or category_matches(i.category, category)]
    return top_rated(matching, limit)


def get_personalized_category_recommendations(
    items: Sequence[Item], preferences: Sequence[str], limit: int
) -> List[CategoryRecommendations]:
    """Top items per preferred category, for the first few preferences that match anything."""
    results: List[CategoryRecommendations] = []
    for preference in preferences:
        matched = get_category_recommendations(items, preference, limit)
        if matched:
            results.append({"category": preference, "items": matched})
        if len(results) >= RECOMMEND["max_personalized_categories"]:
            break
    return results
