import time
from typing import Dict, List, Optional

import numpy as np

from common.constants import PATHS
from common.utils import setup_logging
from recommenders.data_models import ModelConfig
from recommenders.scoring_model import ScoringModel, check_training_data, create_scoring_model

logger = setup_logging(__name__, PATHS["app_log_file"])


def model_initialization(n_features: int, config: Optional[ModelConfig] = None) -> Optional[ScoringModel]:
    """
    Build a fresh scoring network for the current feature width.

    :param n_features: Feature vector length (numeric slots + one per category)
    :param config: Overrides merged over SCORING_MODEL
    """
    model = create_scoring_model(n_features, config)

    if model is None:
        logger.warning("No scoring model could be built, model-based ranking disabled for this snapshot")
        return None

    logger.info(f"Scoring Model Initialized ({model.kind}):")
    logger.info(f"  Inputs: {n_features}")
    logger.info(f"  Hidden units: {model.config['hidden_units']}")
    logger.info(f"  Optimizer: {model.config['optimizer']} (lr={model.config['learning_rate']})")
    logger.info(f"  L2: {model.config['l2']}, dropout: {model.config['dropout']}")

    return model


def model_training(model: ScoringModel, features: np.ndarray, labels: np.ndarray) -> Dict[str, List[float]]:
    # features = (item x feature) matrix, labels = rating / 5
    check_training_data(features, labels)

    logger.info(f"Training matrix shape (item x feature): {features.shape}")
    logger.info("Starting training...")
    start_time = time.time()

    history = model.fit(features, labels)

    training_time = time.time() - start_time
    logger.info(f"Training completed in {training_time:.2f} seconds")

    return history
