"""
Recommendation orchestrator that runs the model, content and popularity strategies
and merges their ranked lists by weighted rank position.
"""

from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from common.constants import FUSION, PATHS
from common.helpers import argsort_desc, rank_position_scores
from common.utils import setup_logging

from .content_based import get_content_based_recommendations
from .data_models import FusionConfig, Item, RecommendationContext
from .model_based import get_model_based_recommendations
from .popularity import get_popularity_based_recommendations

logger = setup_logging(__name__, PATHS["app_log_file"])


def fuse_rankings(rankings: Sequence[Tuple[str, List[Item], float]]) -> Tuple[List[Item], np.ndarray]:
    """
    Rank fusion. Each (name, ordered items, weight) list of length N gives the item at
    1-based position p a contribution of (N - p + 1) / N * weight; contributions add up.
    Ties keep accumulation order (first strategy to mention an item wins).
    """
    totals: Dict[int, float] = {}
    by_id: Dict[int, Item] = {}

    for name, items, weight in rankings:
        contributions = rank_position_scores(len(items), weight)
        for item, score in zip(items, contributions):
            if item.id not in totals:
                totals[item.id] = 0.0
                by_id[item.id] = item
            totals[item.id] += float(score)
        logger.debug(f"[FUSION] {name}: {len(items)} items, weight={weight}")

    ids = list(totals)
    scores = np.array([totals[i] for i in ids], dtype=np.float64)
    order = argsort_desc(scores)
    return [by_id[ids[i]] for i in order], scores[order]


def recommend(
    context: RecommendationContext,
    preferred_categories: Sequence[str],
    acquired_ids: Sequence[int],
    k: int,
    config: Optional[FusionConfig] = None,
) -> Tuple[List[Item], np.ndarray]:
    """
    Generate fused recommendations for one request.
    - Candidates: snapshot items minus acquired ones
    - Model-based (0.6), content-based (0.3, empty without acquisitions), popularity (0.1)

    Callers handle the fallback cases (no model, empty pool); this assumes a trained model.
    """
    config = {**FUSION, **(config or {})}
    weights = config["weights"]

    acquired = set(acquired_ids)
    candidates = [item for item in context["items"] if item.id not in acquired]
    logger.info(f"preferences={list(preferred_categories)}, acquired={len(acquired)}, candidates={len(candidates)}, k={k}")

    if not candidates or k <= 0:
        return [], np.array([], dtype=np.float64)

    model_items, model_scores = get_model_based_recommendations(context, candidates, preferred_categories, config)
    logger.info(f"Model recommender returned {len(model_items)} items")
    if len(model_items) > 0:
        logger.info(f"  → model_scores: {model_scores[:min(3, len(model_scores))]}")

    content_items, content_scores = get_content_based_recommendations(context, candidates, list(acquired_ids))
    logger.info(f"Content recommender returned {len(content_items)} items")
    if len(content_items) > 0:
        logger.info(f"  → content_scores: {content_scores[:min(3, len(content_scores))]}")

    popular_items, _ = get_popularity_based_recommendations(candidates)

    final_items, final_scores = fuse_rankings(
        [
            ("model", model_items, weights["model"]),
            ("content", content_items, weights["content"]),
            ("popularity", popular_items, weights["popularity"]),
        ]
    )

    # Trim to k
    final_items = final_items[:k]
    final_scores = final_scores[:k]

    logger.info(f"Final results: {len(final_items)} items")
    logger.info(f"Scores: {final_scores[:min(3, len(final_scores))]}")

    return final_items, final_scores
