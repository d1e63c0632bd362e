"""
Model-based recommendations: trained scorer output plus preference and recency bonuses.
"""

from typing import List, Optional, Sequence, Tuple

import numpy as np

from common.constants import FUSION, PATHS
from common.helpers import argsort_desc, matches_any_category
from common.utils import setup_logging

from .data_models import FusionConfig, Item, RecommendationContext
from .features import build_feature_matrix

logger = setup_logging(__name__, PATHS["app_log_file"])


def get_model_based_recommendations(
    context: RecommendationContext,
    candidates: Sequence[Item],
    preferred_categories: Sequence[str],
    config: Optional[FusionConfig] = None,
) -> Tuple[List[Item], np.ndarray]:
    """
    Score every candidate with the generation's model and sort best-first.

    Returns:
        items: candidates ordered by score (descending, stable)
        scores: model score + preference bonus + recency bonus, aligned with items
    """
    config = {**FUSION, **(config or {})}
    model = context["model"]

    if model is None or not model.trained or len(candidates) == 0:
        return [], np.array([], dtype=np.float64)

    try:
        features = _candidate_features(context, candidates)
        predictions = np.asarray(model.predict(features), dtype=np.float64)
    except Exception as e:
        logger.error(f"Error making predictions: {e}")
        return [], np.array([], dtype=np.float64)

    bonuses = np.array(
        [config["preference_bonus"] if matches_any_category(c.category, preferred_categories) else 0.0 for c in candidates]
    )
    scores = predictions + bonuses + config["recency_bonus"]

    order = argsort_desc(scores)
    logger.debug(f"[MODEL] scores: min={scores.min():.4f}, max={scores.max():.4f}")
    return [candidates[i] for i in order], scores[order]


def _candidate_features(context: RecommendationContext, candidates: Sequence[Item]) -> np.ndarray:
    """Rows from the cached feature matrix; items outside the index are encoded on the fly."""
    cached = context["features"]
    index = context["item_index"]
    if cached is not None and all(c.id in index for c in candidates):
        return cached[[index[c.id] for c in candidates]]
    return build_feature_matrix(candidates, context["categories"])
