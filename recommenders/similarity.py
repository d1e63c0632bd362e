"""
Content similarity between catalog items.
Weighted blend of category match, price/rating closeness and Jaccard text overlap,
precomputed for every pair in a snapshot and cached as a dense matrix.
"""

import re
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

import numpy as np

from common.constants import PATHS, SIMILARITY
from common.helpers import argsort_desc
from common.utils import setup_logging

from .data_models import Item

logger = setup_logging(__name__, PATHS["app_log_file"])

_TOKEN_SPLIT = re.compile(r"\W+")


def tokenize(text: str) -> FrozenSet[str]:
    if not text:
        return frozenset()
    return frozenset(w for w in _TOKEN_SPLIT.split(text.lower()) if len(w) >= SIMILARITY["min_token_length"])


def jaccard(tokens_a: FrozenSet[str], tokens_b: FrozenSet[str]) -> float:
    union = tokens_a | tokens_b
    if not union:
        return 0.0
    return len(tokens_a & tokens_b) / len(union)


def text_similarity(text_a: str, text_b: str) -> float:
    """Jaccard similarity of lowercase word sets (words of length <= 2 dropped)."""
    if not text_a or not text_b:
        return 0.0
    return jaccard(tokenize(text_a), tokenize(text_b))


def _price_closeness(price_a: float, price_b: float) -> float:
    return 1.0 - abs(price_a - price_b) / max(price_a, price_b, SIMILARITY["price_epsilon"])


def _rating_closeness(rating_a: float, rating_b: float) -> float:
    return 1.0 - abs(rating_a - rating_b) / SIMILARITY["max_rating"]


def _combine(item_a: Item, item_b: Item, desc_sim: float, feat_sim: float) -> float:
    w = SIMILARITY["weights"]
    score = (
        w["category"] * (1.0 if item_a.category == item_b.category else 0.0)
        + w["price"] * _price_closeness(item_a.price, item_b.price)
        + w["rating"] * _rating_closeness(item_a.rating, item_b.rating)
        + w["description"] * desc_sim
        + w["features"] * feat_sim
    )
    return float(min(max(score, 0.0), 1.0))


def pairwise_similarity(item_a: Item, item_b: Item) -> float:
    """Similarity of two items in [0, 1]; an item is always fully similar to itself."""
    if item_a.id == item_b.id:
        return 1.0
    return _combine(
        item_a,
        item_b,
        text_similarity(item_a.description, item_b.description),
        text_similarity(" ".join(item_a.features), " ".join(item_b.features)),
    )


class SimilarityIndex:
    """
    Precomputed symmetric similarity table for one snapshot generation.
    Lookups for items outside the table are computed on demand.
    """

    def __init__(self, items: Sequence[Item]):
        self.items: Tuple[Item, ...] = tuple(items)
        self.id_to_row: Dict[int, int] = {item.id: i for i, item in enumerate(self.items)}
        self.matrix: np.ndarray = self._compute_matrix()

    def _compute_matrix(self) -> np.ndarray:
        n = len(self.items)
        matrix = np.eye(n, dtype=np.float64)

        # Tokenize once per item, not once per pair
        desc_tokens = [tokenize(item.description) for item in self.items]
        feat_tokens = [tokenize(" ".join(item.features)) for item in self.items]

        for i in range(n):
            for j in range(i + 1, n):
                a, b = self.items[i], self.items[j]
                if a.id == b.id:
                    score = 1.0
                else:
                    desc_sim = jaccard(desc_tokens[i], desc_tokens[j]) if a.description and b.description else 0.0
                    feat_sim = jaccard(feat_tokens[i], feat_tokens[j]) if a.features and b.features else 0.0
                    score = _combine(a, b, desc_sim, feat_sim)
                matrix[i, j] = score
                matrix[j, i] = score

        return matrix

    def __contains__(self, item_id: int) -> bool:
        return item_id in self.id_to_row

    def __len__(self) -> int:
        return len(self.items)

    def similarity(self, item_a: Item, item_b: Item) -> float:
        row_a = self.id_to_row.get(item_a.id)
        row_b = self.id_to_row.get(item_b.id)
        if row_a is None or row_b is None:
            logger.debug(f"Similarity miss for ({item_a.id}, {item_b.id}), computing on demand")
            return pairwise_similarity(item_a, item_b)
        return float(self.matrix[row_a, row_b])

    def row(self, item_id: int) -> Optional[np.ndarray]:
        """Similarities of item_id to every indexed item (in self.items order), or None on a miss."""
        idx = self.id_to_row.get(item_id)
        if idx is None:
            return None
        return self.matrix[idx]

    def scores_against(self, item: Item, candidates: Sequence[Item]) -> np.ndarray:
        """Similarity of item to each candidate, using the table where possible."""
        row = self.row(item.id)
        scores = np.empty(len(candidates), dtype=np.float64)
        for i, candidate in enumerate(candidates):
            col = self.id_to_row.get(candidate.id)
            if row is not None and col is not None:
                scores[i] = row[col]
            else:
                scores[i] = pairwise_similarity(item, candidate)
        return scores

    def stats(self) -> Dict[str, float]:
        n = len(self.items)
        if n < 2:
            return {"n_items": n, "n_pairs": 0, "min": 1.0, "max": 1.0, "mean": 1.0}
        off_diag = self.matrix[~np.eye(n, dtype=bool)]
        return {
            "n_items": n,
            "n_pairs": n * (n - 1) // 2,
            "min": float(off_diag.min()),
            "max": float(off_diag.max()),
            "mean": float(off_diag.mean()),
        }


def build_similarity_index(items: Sequence[Item]) -> SimilarityIndex:
    return SimilarityIndex(items)


def rank_similar(index: SimilarityIndex, item: Item, pool: Sequence[Item]) -> List[Tuple[Item, float]]:
    """All pool items except item itself, most similar first (stable on ties)."""
    others = [p for p in pool if p.id != item.id]
    if not others:
        return []
    scores = index.scores_against(item, others)
    order = argsort_desc(scores)
    return [(others[i], float(scores[i])) for i in order]
