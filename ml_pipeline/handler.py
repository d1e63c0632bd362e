from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union

import numpy as np

from ml_pipeline.stages import stage_1_catalog as stage_1
from ml_pipeline.stages import stage_4_training as stage_4

from common.constants import FEATURES, PATHS
from common.logging import log_feature_summary, log_similarity_summary, log_snapshot_summary, log_training_summary
from common.utils import setup_logging
from recommenders.data_models import CatalogValidationError, Item, ModelConfig, RecommendationContext
from recommenders.features import build_feature_matrix, derive_categories
from recommenders.scoring_model import ScoringModel, make_labels
from recommenders.similarity import SimilarityIndex, build_similarity_index

logger = setup_logging(__name__, PATHS["app_log_file"])

CatalogInput = Iterable[Union[Item, Mapping[str, Any]]]


def run_stage_1_snapshot(catalog: CatalogInput) -> Tuple[List[Item], List[str], List[CatalogValidationError]]:
    logger.info("Cleaning and validating catalog...")
    records = [c.model_dump() if isinstance(c, Item) else c for c in catalog]
    items, errors = stage_1.build_items(records)
    categories = derive_categories(items)
    logger.info(f"✓ Stage 1 completed - {len(items)} items, {len(categories)} categories")
    return items, categories, errors


def run_stage_2_features(items: List[Item], categories: List[str]) -> np.ndarray:
    logger.info("Extracting features...")
    features = build_feature_matrix(items, categories)
    log_feature_summary(logger, features)
    logger.info(f"✓ Stage 2 completed - features shape: {features.shape}")
    return features


def run_stage_3_similarity(items: List[Item]) -> SimilarityIndex:
    logger.info("Computing similarity table...")
    index = build_similarity_index(items)
    log_similarity_summary(logger, index.stats())
    logger.info("✓ Stage 3 completed")
    return index


def run_stage_4_training(
    items: List[Item], features: np.ndarray, config: Optional[ModelConfig] = None
) -> Optional[ScoringModel]:
    if len(items) == 0:
        logger.warning("Empty snapshot, skipping model training")
        return None

    logger.info("Initializing scoring model...")
    model = stage_4.model_initialization(features.shape[1], config)
    if model is None:
        return None

    labels = make_labels(np.array([i.rating for i in items]), FEATURES["max_rating"])

    logger.info("Model training...")
    history = stage_4.model_training(model, features, labels)
    log_training_summary(logger, model, history)

    logger.info("✓ Stage 4 completed")
    return model


def build_context(
    catalog: CatalogInput,
    generation: int,
    model_config: Optional[ModelConfig] = None,
    state=None,
) -> Tuple[RecommendationContext, List[CatalogValidationError]]:
    """
    Run all stages and return one complete snapshot generation.
    `state` (optional) receives start/complete/fail notifications per stage.
    Any stage failure propagates; nothing is published from here.
    """

    def _run(stage_name, fn, *args):
        if state is not None:
            state.start_stage(stage_name)
        try:
            result = fn(*args)
        except Exception as e:
            if state is not None:
                state.fail_stage(stage_name, str(e))
            raise
        if state is not None:
            state.complete_stage(stage_name)
        return result

    items, categories, errors = _run("stage_1_snapshot", run_stage_1_snapshot, catalog)
    log_snapshot_summary(logger, generation, items, categories, n_rejected=len(errors))

    features = _run("stage_2_features", run_stage_2_features, items, categories)
    similarity = _run("stage_3_similarity", run_stage_3_similarity, items)
    model = _run("stage_4_training", run_stage_4_training, items, features, model_config)

    context: RecommendationContext = {
        "generation": generation,
        "items": tuple(items),
        "categories": categories,
        "item_index": {item.id: i for i, item in enumerate(items)},
        "features": features,
        "similarity": similarity,
        "model": model,
    }
    return context, errors


def raw_context(catalog: CatalogInput, generation: int) -> RecommendationContext:
    """Snapshot with items only (no derived structures); queries on it use rating fallbacks."""
    items, categories, _ = run_stage_1_snapshot(catalog)
    return {
        "generation": generation,
        "items": tuple(items),
        "categories": categories,
        "item_index": {item.id: i for i, item in enumerate(items)},
        "features": None,
        "similarity": None,
        "model": None,
    }


# Stage registry - order and dependencies
STAGES = [
    ("stage_1_snapshot", run_stage_1_snapshot, []),
    ("stage_2_features", run_stage_2_features, ["stage_1_snapshot"]),
    ("stage_3_similarity", run_stage_3_similarity, ["stage_1_snapshot"]),
    ("stage_4_training", run_stage_4_training, ["stage_2_features"]),
]
