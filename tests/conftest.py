import json

import numpy as np
import pytest

from common.constants import PATHS
from recommenders import Item


@pytest.fixture
def fast_model_config():
    return {"epochs": 3, "log_every": 1}


@pytest.fixture
def rng():
    return np.random.default_rng(7)


@pytest.fixture
def abc_items():
    """A: electronics 4.8, B: electronics 4.2, C: home 4.9."""
    return [
        Item(id=1, name="A", description="wireless noise cancelling headphones", price=199.0, category="electronics", rating=4.8),
        Item(id=2, name="B", description="wireless charging pad for phones", price=39.0, category="electronics", rating=4.2),
        Item(id=3, name="C", description="ceramic coffee mug set", price=49.0, category="home", rating=4.9),
    ]


@pytest.fixture
def catalog_records():
    with open(PATHS["fallback_catalog"], encoding="utf-8") as f:
        return json.load(f)


@pytest.fixture
def catalog_items(catalog_records):
    return [Item.model_validate(r) for r in catalog_records]
