"""
Type definitions for the recommendation engine.
Items are validated pydantic models; engine state and configs are TypedDicts.
"""

from typing import Any, Dict, List, Optional, Tuple, TypedDict

import numpy as np
from pydantic import BaseModel, ConfigDict, Field


class Item(BaseModel):
    """One catalog entry. Immutable once loaded into a snapshot."""

    model_config = ConfigDict(frozen=True, allow_inf_nan=False, str_strip_whitespace=True)

    id: int
    name: str
    description: str = ""
    price: float = Field(ge=0)
    category: str
    rating: float = Field(ge=0, le=5)
    features: Tuple[str, ...] = ()
    image: Optional[str] = None


class RecommendationContext(TypedDict):
    """
    World state for one snapshot generation.
    Built once by the pipeline, swapped in as a whole, never mutated afterwards.
    """
    generation: int
    items: Tuple[Item, ...]
    categories: List[str]  # ordered, de-duplicated; part of the feature schema
    item_index: Dict[int, int]  # item id -> row in items / features
    features: Optional[np.ndarray]  # Shape: (n_items, n_numeric + n_categories)
    similarity: Optional[Any]  # SimilarityIndex
    model: Optional[Any]  # ScoringModel


class ModelConfig(TypedDict, total=False):
    """
    Hyperparameters for the scoring network and its training loop.
    """
    hidden_units: List[int]
    regularized_layers: int  # first N dense layers get the L2 penalty
    dropout: float
    l2: float
    optimizer: str  # "adam" or "sgd"
    learning_rate: float
    epochs: int
    max_batch_size: int
    validation_split: float
    log_every: int
    seed: int


class FusionConfig(TypedDict, total=False):
    """
    Weights used to merge the three ranked lists.
    """
    weights: Dict[str, float]  # "model", "content", "popularity"
    preference_bonus: float
    recency_bonus: float


class CategoryRecommendations(TypedDict):
    category: str
    items: List[Item]


class BuildReport(TypedDict):
    """Outcome of initialize/refresh."""
    status: str  # "done", "failed", "queued"
    generation: int
    error: Optional[str]


class CatalogValidationError(ValueError):
    """A raw catalog record could not be turned into a well-formed Item."""

    def __init__(self, index: int, item_id: Any, errors: List[Dict[str, Any]]):
        self.index = index
        self.item_id = item_id
        self.errors = errors
        fields = ", ".join(".".join(str(p) for p in e.get("loc", ())) for e in errors)
        super().__init__(f"Invalid catalog record #{index} (id={item_id}): {fields}")


class TrainingDataError(ValueError):
    """Generated features or labels contain non-finite values."""


class ModelConstructionError(RuntimeError):
    """The scoring network cannot be built for the given input width."""
