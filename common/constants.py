"""
Centralized configuration for the product recommendation engine.
Defines paths, feature/similarity weights, model hyperparameters and ranking constants.
"""

from datetime import datetime
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent.absolute()
DATA_DIR = PROJECT_ROOT / "data"
LOGS_DIR = PROJECT_ROOT / "logs"
APP_LOGS_DIR = PROJECT_ROOT / "logs" / "app_logs"

date_str = datetime.now().strftime("%m%d%Y")
APP_LOG_FILE = str(APP_LOGS_DIR / f"{date_str}_1.log")

FEATURES = {
    # price_component = min(ln(price + 1) / ln(price_log_base), 1)
    "price_log_base": 1001,
    "max_rating": 5.0,
    "description_word_cap": 100,
    "name_char_cap": 50,
    "feature_tag_cap": 10,
    "n_numeric": 5,
}

SIMILARITY = {
    "weights": {
        "category": 0.4,
        "price": 0.1,
        "rating": 0.1,
        "description": 0.2,
        "features": 0.2,
    },
    "min_token_length": 3,  # tokens of length <= 2 are dropped
    "price_epsilon": 1e-9,
    "max_rating": 5.0,
}

SCORING_MODEL = {
    "hidden_units": [32, 16, 8],
    "regularized_layers": 2,  # first N dense layers carry the L2 penalty
    "dropout": 0.2,
    "l2": 0.001,
    "optimizer": "adam",
    "learning_rate": 0.001,
    "epochs": 50,
    "max_batch_size": 8,
    "validation_split": 0.2,
    "log_every": 10,
    "seed": 42,
}

FALLBACK_MODEL = {
    "hidden_units": [8, 4],
    "regularized_layers": 0,
    "dropout": 0.0,
    "l2": 0.0,
    "optimizer": "sgd",
    "learning_rate": 0.01,
}

FUSION = {
    "weights": {
        "model": 0.6,
        "content": 0.3,
        "popularity": 0.1,
    },
    "preference_bonus": 0.2,
    "recency_bonus": 0.1,  # constant, no item age data available
}

TRENDING = {
    "random_max": 0.2,
    "boost_categories": ["electronics", "clothing"],
    "category_boost": 0.1,
    "price_scale": 1000.0,
    "price_band": (0.2, 0.6),  # exclusive bounds
    "price_band_bonus": 0.1,
}

RECOMMEND = {
    "k": 4,
    "max_personalized_categories": 3,
}

CATALOG = {
    "api_base_url": "https://fakestoreapi.com",
    "timeout_s": 10,
    "default_name": "Product",
    "default_description": "No description available",
    "default_category": "uncategorized",
    "default_rating": 4.0,
    "default_image": "https://via.placeholder.com/400",
    "phrase_min_words": 10,
    "phrase_length": 5,
    "category_features": {
        "electronics": ["High quality components", "Energy efficient", "1-year warranty"],
        "jewelery": ["Premium materials", "Handcrafted", "Elegant design"],
        "men's clothing": ["Comfortable fit", "Durable fabric", "Machine washable"],
        "women's clothing": ["Comfortable fit", "Durable fabric", "Machine washable"],
    },
    "default_features": ["High quality", "Great value"],
}

PATHS = {
    "app_log_file": APP_LOG_FILE,
    "fallback_catalog": str(DATA_DIR / "products.json"),
}
