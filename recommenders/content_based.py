"""
Content-based recommendations: average similarity of each candidate to the user's acquired items.
Returns nothing for users without acquisitions.
"""

from typing import List, Sequence, Tuple

import numpy as np

from common.constants import PATHS
from common.helpers import argsort_desc
from common.utils import setup_logging

from .data_models import Item, RecommendationContext

logger = setup_logging(__name__, PATHS["app_log_file"])


def get_content_based_recommendations(
    context: RecommendationContext,
    candidates: Sequence[Item],
    acquired_ids: Sequence[int],
) -> Tuple[List[Item], np.ndarray]:
    """
    Generate content-based recommendations.

    Acquired ids missing from the similarity table are skipped when averaging,
    not counted as zero.

    Returns:
        items: candidates ordered by average similarity (descending, stable)
        scores: (n,) average similarities aligned with items
    """
    index = context["similarity"]
    if not acquired_ids or index is None or len(candidates) == 0:
        return [], np.array([], dtype=np.float64)

    acquired_rows = [index.row(item_id) for item_id in dict.fromkeys(acquired_ids)]
    acquired_rows = [row for row in acquired_rows if row is not None]

    if not acquired_rows:
        logger.debug("[CB] None of the acquired items are indexed, all scores 0")
        scores = np.zeros(len(candidates), dtype=np.float64)
    else:
        profile = np.vstack(acquired_rows).mean(axis=0)  # mean similarity to acquired, per indexed item
        scores = np.array(
            [profile[index.id_to_row[c.id]] if c.id in index else _on_demand(context, c, acquired_ids) for c in candidates],
            dtype=np.float64,
        )

    logger.debug(f"[CB] {len(acquired_rows)}/{len(acquired_ids)} acquired items indexed, {len(candidates)} candidates")

    order = argsort_desc(scores)
    return [candidates[i] for i in order], scores[order]


def _on_demand(context: RecommendationContext, candidate: Item, acquired_ids: Sequence[int]) -> float:
    """Average similarity for a candidate that is not in the table (lookup miss)."""
    index = context["similarity"]
    acquired = [index.items[index.id_to_row[i]] for i in dict.fromkeys(acquired_ids) if i in index]
    if not acquired:
        return 0.0
    return float(np.mean([index.similarity(a, candidate) for a in acquired]))
