"""
Trainable relevance scorer: feature vector -> score in [0, 1].
Small feed-forward network (PyTorch), retrained from scratch for every snapshot.
"""

from typing import Dict, List, Optional

import numpy as np
import torch
import torch.nn as nn
from sklearn.model_selection import train_test_split
from torch.utils.data import DataLoader, TensorDataset

from common.constants import FALLBACK_MODEL, PATHS, SCORING_MODEL
from common.utils import setup_logging

from .data_models import ModelConfig, ModelConstructionError, TrainingDataError

logger = setup_logging(__name__, PATHS["app_log_file"])


def build_network(n_features: int, config: ModelConfig) -> nn.Sequential:
    """
    dense(relu) blocks, dropout after each L2-regularized block, sigmoid head.
    With the default config: 32 -> dropout -> 16 -> dropout -> 8 -> 1.
    """
    if n_features < 1:
        raise ModelConstructionError(f"Cannot build scoring network for {n_features} input features")

    layers: List[nn.Module] = []
    in_dim = n_features
    for i, units in enumerate(config["hidden_units"]):
        if units < 1:
            raise ModelConstructionError(f"Hidden layer {i} has {units} units")
        layers.append(nn.Linear(in_dim, units))
        layers.append(nn.ReLU())
        if i < config["regularized_layers"] and config["dropout"] > 0:
            layers.append(nn.Dropout(config["dropout"]))
        in_dim = units

    layers.append(nn.Linear(in_dim, 1))
    layers.append(nn.Sigmoid())
    return nn.Sequential(*layers)


class ScoringModel:
    """A network plus its optimizer settings; `trained` flips once fit() completes."""

    def __init__(self, network: nn.Sequential, config: ModelConfig, kind: str):
        self.network = network
        self.config = config
        self.kind = kind  # "primary" or "fallback"
        self.n_features = network[0].in_features
        self.trained = False
        self.history: Dict[str, List[float]] = {"loss": [], "val_loss": []}

        dense = [m for m in network if isinstance(m, nn.Linear)]
        self._regularized = dense[: config["regularized_layers"]]

    def _make_optimizer(self) -> torch.optim.Optimizer:
        if self.config["optimizer"] == "sgd":
            return torch.optim.SGD(self.network.parameters(), lr=self.config["learning_rate"])
        return torch.optim.Adam(self.network.parameters(), lr=self.config["learning_rate"])

    def _l2_penalty(self) -> torch.Tensor:
        penalty = torch.zeros(())
        if self.config["l2"] <= 0:
            return penalty
        for layer in self._regularized:
            penalty = penalty + layer.weight.pow(2).sum()
        return self.config["l2"] * penalty

    def fit(self, features: np.ndarray, labels: np.ndarray) -> Dict[str, List[float]]:
        """Train for the fixed epoch budget with a shuffled validation hold-out."""
        if features.ndim != 2 or features.shape[1] != self.n_features:
            raise ValueError(f"Expected features of width {self.n_features}, got shape {features.shape}")
        if len(features) != len(labels):
            raise ValueError(f"{len(features)} feature rows but {len(labels)} labels")

        n_items = len(features)
        n_val = int(n_items * self.config["validation_split"])
        if n_val > 0:
            x_train, x_val, y_train, y_val = train_test_split(
                features, labels, test_size=n_val, shuffle=True, random_state=self.config["seed"]
            )
        else:
            x_train, y_train = features, labels
            x_val, y_val = None, None

        batch_size = max(1, min(self.config["max_batch_size"], n_items))
        generator = torch.Generator().manual_seed(self.config["seed"])
        loader = DataLoader(
            TensorDataset(
                torch.as_tensor(x_train, dtype=torch.float32),
                torch.as_tensor(y_train, dtype=torch.float32).reshape(-1, 1),
            ),
            batch_size=batch_size,
            shuffle=True,
            generator=generator,
        )

        optimizer = self._make_optimizer()
        loss_fn = nn.BCELoss()

        for epoch in range(self.config["epochs"]):
            self.network.train()
            epoch_loss = 0.0
            for xb, yb in loader:
                optimizer.zero_grad()
                loss = loss_fn(self.network(xb), yb) + self._l2_penalty()
                loss.backward()
                optimizer.step()
                epoch_loss += loss.item() * len(xb)
            epoch_loss /= len(x_train)
            self.history["loss"].append(epoch_loss)

            if x_val is not None:
                self.network.eval()
                with torch.no_grad():
                    val_pred = self.network(torch.as_tensor(x_val, dtype=torch.float32))
                    val_loss = loss_fn(val_pred, torch.as_tensor(y_val, dtype=torch.float32).reshape(-1, 1)).item()
                self.history["val_loss"].append(val_loss)

            if epoch % self.config["log_every"] == 0:
                val_msg = f", val_loss = {self.history['val_loss'][-1]:.4f}" if x_val is not None else ""
                logger.info(f"Epoch {epoch}: loss = {epoch_loss:.4f}{val_msg}")

        self.network.eval()
        self.trained = True
        return self.history

    def predict(self, features: np.ndarray) -> np.ndarray:
        """Scores in [0, 1], one per feature row. Deterministic (dropout off)."""
        if len(features) == 0:
            return np.array([], dtype=np.float32)
        self.network.eval()
        with torch.no_grad():
            scores = self.network(torch.as_tensor(features, dtype=torch.float32))
        return scores.reshape(-1).numpy()


def create_scoring_model(n_features: int, config: Optional[ModelConfig] = None) -> Optional[ScoringModel]:
    """
    Build the primary network; on failure build the smaller SGD network;
    if that fails too, return None (model-based ranking is then skipped).
    """
    config = {**SCORING_MODEL, **(config or {})}
    torch.manual_seed(config["seed"])

    try:
        model = ScoringModel(build_network(n_features, config), config, kind="primary")
        logger.info(f"Scoring network built: {n_features} inputs, hidden={config['hidden_units']}")
        return model
    except Exception as e:
        logger.error(f"Error creating scoring network: {e}")

    fallback_config = {**config, **FALLBACK_MODEL}
    try:
        model = ScoringModel(build_network(n_features, fallback_config), fallback_config, kind="fallback")
        logger.warning(f"Using fallback scoring network: hidden={fallback_config['hidden_units']}, optimizer=sgd")
        return model
    except Exception as e:
        logger.error(f"Error creating fallback scoring network: {e}")
        return None


def make_labels(ratings: np.ndarray, max_rating: float = 5.0) -> np.ndarray:
    """Rating is the only relevance proxy available: label = rating / 5."""
    return np.minimum(np.asarray(ratings, dtype=np.float32) / max_rating, 1.0)


def check_training_data(features: np.ndarray, labels: np.ndarray) -> None:
    if not np.isfinite(features).all():
        raise TrainingDataError("Invalid feature data contains non-finite values")
    if not np.isfinite(labels).all():
        raise TrainingDataError("Invalid label data contains non-finite values")

