from typing import Sequence

import numpy as np


# region Matching
def category_matches(category: str, label: str) -> bool:
    """Substring match in either direction, so "men's clothing" matches "clothing"."""
    return label in category or category in label


def matches_any_category(category: str, labels: Sequence[str]) -> bool:
    return any(category_matches(category, label) for label in labels)


# endregion


# region Ranking
def rank_position_scores(n: int, weight: float) -> np.ndarray:
    """
    Position-based scores for an ordered list of length n.
    The item at 1-based position p earns (n - p + 1) / n * weight.
    """
    if n <= 0:
        return np.array([], dtype=np.float64)
    positions = np.arange(1, n + 1, dtype=np.float64)
    return (n - positions + 1) / n * weight


def argsort_desc(scores: np.ndarray) -> np.ndarray:
    """Indices that sort scores descending; equal scores keep their input order."""
    scores = np.asarray(scores, dtype=np.float64)
    return np.argsort(-scores, kind="stable")


# endregion
