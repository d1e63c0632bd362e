"""
Recommendation engine core.
Feature extraction, similarity index, scoring model, ranking strategies and rank fusion.
"""

from .data_models import (
    BuildReport,
    CatalogValidationError,
    CategoryRecommendations,
    FusionConfig,
    Item,
    ModelConfig,
    ModelConstructionError,
    RecommendationContext,
    TrainingDataError,
)
from .features import build_feature_matrix, derive_categories, extract_features
from .similarity import SimilarityIndex, build_similarity_index, pairwise_similarity, text_similarity
from .scoring_model import ScoringModel, check_training_data, create_scoring_model, make_labels
from .model_based import get_model_based_recommendations
from .content_based import get_content_based_recommendations
from .popularity import (
    get_category_recommendations,
    get_personalized_category_recommendations,
    get_popularity_based_recommendations,
    get_trending_recommendations,
)
from .orchestrator import fuse_rankings, recommend

__all__ = [
    "BuildReport",
    "CatalogValidationError",
    "CategoryRecommendations",
    "FusionConfig",
    "Item",
    "ModelConfig",
    "ModelConstructionError",
    "RecommendationContext",
    "TrainingDataError",
    "build_feature_matrix",
    "derive_categories",
    "extract_features",
    "SimilarityIndex",
    "build_similarity_index",
    "pairwise_similarity",
    "text_similarity",
    "ScoringModel",
    "create_scoring_model",
    "check_training_data",
    "make_labels",
    "get_model_based_recommendations",
    "get_content_based_recommendations",
    "get_category_recommendations",
    "get_personalized_category_recommendations",
    "get_popularity_based_recommendations",
    "get_trending_recommendations",
    "fuse_rankings",
    "recommend",
]
