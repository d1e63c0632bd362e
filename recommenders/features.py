"""
Feature extraction: one catalog item -> fixed-length numeric vector.
Layout: [price, rating, description length, name length, feature richness, *category slots].
"""

import math
from typing import List, Sequence

import numpy as np

from common.constants import FEATURES, PATHS
from common.helpers import category_matches
from common.utils import setup_logging

from .data_models import Item

logger = setup_logging(__name__, PATHS["app_log_file"])


def feature_size(categories: Sequence[str]) -> int:
    return FEATURES["n_numeric"] + len(categories)


def extract_features(item: Item, categories: Sequence[str]) -> np.ndarray:
    """
    Encode one item against the snapshot's ordered category list.
    Never raises: on any failure returns an all-zero vector of the correct length.
    """
    try:
        price = min(math.log(item.price + 1) / math.log(FEATURES["price_log_base"]), 1.0)
        rating = min(item.rating / FEATURES["max_rating"], 1.0)
        description = min(len(item.description.split()) / FEATURES["description_word_cap"], 1.0)
        name = min(len(item.name) / FEATURES["name_char_cap"], 1.0)
        richness = min(len(item.features) / FEATURES["feature_tag_cap"], 1.0)

        # Hierarchical labels: "men's clothing" lights up the "clothing" slot too
        category_slots = [1.0 if category_matches(item.category, cat) else 0.0 for cat in categories]

        return np.array([price, rating, description, name, richness, *category_slots], dtype=np.float32)
    except Exception as e:
        logger.error(f"Feature extraction failed for item {getattr(item, 'id', None)}: {e}")
        return np.zeros(feature_size(categories), dtype=np.float32)


def build_feature_matrix(items: Sequence[Item], categories: Sequence[str]) -> np.ndarray:
    """Stack feature vectors for all items. Shape: (n_items, n_numeric + n_categories)."""
    if len(items) == 0:
        return np.zeros((0, feature_size(categories)), dtype=np.float32)
    return np.vstack([extract_features(item, categories) for item in items])


def derive_categories(items: Sequence[Item]) -> List[str]:
    """Distinct categories in first-seen order."""
    return list(dict.fromkeys(item.category for item in items))
