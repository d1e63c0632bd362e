import numpy as np
import pytest

from recommenders import TrainingDataError, check_training_data, create_scoring_model, make_labels
from recommenders.data_models import ModelConstructionError
from recommenders.scoring_model import build_network
from common.constants import SCORING_MODEL


def _training_data(n=12, width=7, seed=0):
    rng = np.random.default_rng(seed)
    features = rng.uniform(0, 1, size=(n, width)).astype(np.float32)
    labels = make_labels(rng.uniform(1, 5, size=n))
    return features, labels


def test_primary_model_trains_and_scores_in_unit_interval(fast_model_config):
    features, labels = _training_data()
    model = create_scoring_model(features.shape[1], fast_model_config)

    assert model.kind == "primary"
    assert not model.trained

    history = model.fit(features, labels)
    assert model.trained
    assert len(history["loss"]) == 3
    assert len(history["val_loss"]) == 3  # 12 items -> 2 held out

    scores = model.predict(features)
    assert scores.shape == (12,)
    assert ((scores >= 0) & (scores <= 1)).all()


def test_predictions_are_deterministic(fast_model_config):
    features, labels = _training_data()
    model = create_scoring_model(features.shape[1], fast_model_config)
    model.fit(features, labels)
    assert np.array_equal(model.predict(features), model.predict(features))


def test_tiny_catalog_trains_without_validation(fast_model_config):
    features, labels = _training_data(n=3)
    model = create_scoring_model(features.shape[1], fast_model_config)
    history = model.fit(features, labels)
    assert history["val_loss"] == []


def test_degenerate_primary_falls_back_to_sgd_network():
    model = create_scoring_model(6, {"hidden_units": [0, 4]})
    assert model is not None
    assert model.kind == "fallback"
    assert model.config["optimizer"] == "sgd"


def test_no_model_for_zero_width_input():
    assert create_scoring_model(0) is None


def test_build_network_rejects_zero_width():
    with pytest.raises(ModelConstructionError):
        build_network(0, SCORING_MODEL)


def test_labels_are_ratings_over_five():
    assert make_labels(np.array([5.0, 2.5, 0.0])).tolist() == pytest.approx([1.0, 0.5, 0.0])


def test_non_finite_training_data_is_rejected():
    features, labels = _training_data(n=4)
    features[1, 2] = np.nan
    with pytest.raises(TrainingDataError):
        check_training_data(features, labels)

    features, labels = _training_data(n=4)
    labels[0] = np.inf
    with pytest.raises(TrainingDataError):
        check_training_data(features, labels)
