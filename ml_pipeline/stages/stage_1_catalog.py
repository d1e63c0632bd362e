import html
import re
from typing import Any, Dict, Iterable, List, Mapping, Tuple

import numpy as np
import pandas as pd
from pydantic import ValidationError

from common.constants import CATALOG, PATHS
from common.utils import setup_logging
from recommenders.data_models import CatalogValidationError, Item

logger = setup_logging(__name__, PATHS["app_log_file"])

ITEM_COLUMNS = ["id", "name", "description", "price", "category", "rating", "features", "image"]


def clean_catalog(records: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    """
    Normalize raw catalog records before validation.
    Args: records: Raw item records (already in Item field names).
    Returns: pd.DataFrame: One row per distinct id, text fields cleaned.
    """
    catalog_df = pd.DataFrame(list(records))
    if catalog_df.empty:
        return pd.DataFrame(columns=ITEM_COLUMNS)

    for col in ITEM_COLUMNS:
        if col not in catalog_df.columns:
            catalog_df[col] = None

    catalog_df["name"] = _normalize_text_field(catalog_df["name"])
    catalog_df["description"] = _normalize_text_field(catalog_df["description"])
    catalog_df["category"] = _normalize_text_field(catalog_df["category"])
    catalog_df["features"] = catalog_df["features"].apply(_normalize_feature_tags)

    # Ids must be unique within a snapshot; first occurrence wins
    n_before = len(catalog_df)
    catalog_df = catalog_df.drop_duplicates(subset=["id"], keep="first").reset_index(drop=True)
    if len(catalog_df) < n_before:
        logger.warning(f"Deduplication removed {n_before - len(catalog_df)} records with repeated ids")

    return catalog_df[ITEM_COLUMNS]


def parse_item(record: Mapping[str, Any], index: int = 0) -> Item:
    """
    Map one cleaned record to an Item.
    Raises: CatalogValidationError with the pydantic error list when the record is malformed.
    """
    # Missing values are dropped so optional fields take their defaults and required ones are reported
    payload = {k: v for k, v in record.items() if not _is_missing(v)}
    try:
        return Item.model_validate(payload)
    except ValidationError as e:
        raise CatalogValidationError(index, payload.get("id"), e.errors(include_url=False)) from e


def build_items(records: Iterable[Mapping[str, Any]]) -> Tuple[List[Item], List[CatalogValidationError]]:
    """Clean and validate a raw catalog. Invalid records are reported, not raised."""
    catalog_df = clean_catalog(records)

    items: List[Item] = []
    errors: List[CatalogValidationError] = []
    for i, record in enumerate(catalog_df.to_dict(orient="records")):
        try:
            items.append(parse_item(record, index=i))
        except CatalogValidationError as e:
            logger.warning(str(e))
            errors.append(e)

    if len(catalog_df) > 0:
        logger.info(f"Usable items: {len(items) / len(catalog_df):.2%} ({len(items)}/{len(catalog_df)})")
    return items, errors


def transform_api_product(raw: Mapping[str, Any], rng: np.random.Generator) -> Dict[str, Any]:
    """
    Map a remote store product ({id, title, price, description, category, image, rating: {rate}})
    to Item field names, filling defaults. Validation happens later in parse_item.
    """
    category = raw.get("category") or CATALOG["default_category"]
    description = raw.get("description") or CATALOG["default_description"]
    rating = raw.get("rating")
    if isinstance(rating, Mapping):
        rating = rating.get("rate")

    return {
        "id": raw.get("id"),
        "name": raw.get("title") or CATALOG["default_name"],
        "description": description,
        "price": raw.get("price") or 0,
        "category": category,
        "image": raw.get("image") or CATALOG["default_image"],
        "rating": rating or CATALOG["default_rating"],
        "features": generate_features(category, raw.get("description") or "", rng),
    }


def generate_features(category: str, description: str, rng: np.random.Generator) -> List[str]:
    """Category-specific tags plus one short phrase sampled from a long enough description."""
    features = list(CATALOG["category_features"].get(category, CATALOG["default_features"]))

    words = description.split(" ")
    if len(words) > CATALOG["phrase_min_words"]:
        length = CATALOG["phrase_length"]
        start = int(rng.integers(0, len(words) - length))
        features.append(" ".join(words[start : start + length]))

    return features


def _normalize_text_field(cleaned_col: pd.Series) -> pd.Series:
    """
    Clean a text column by removing HTML tags, unescaping HTML entities, removing control characters, and collapsing whitespace.
    Args: cleaned_col (pd.Series): Column of raw values.
    Returns: pd.Series: Strings cleaned; missing and non-string values are passed through untouched for validation to reject.
    """
    return cleaned_col.apply(lambda v: _clean_text(v) if isinstance(v, str) else v)


def _clean_text(text: str) -> str:
    text = re.sub(r"<[^>]+>", "", text)
    text = html.unescape(text)
    text = re.sub(r"[\n\t\r]", " ", text)
    text = re.sub(r"\s+", " ", text.strip())
    return "".join(ch for ch in text if ch.isprintable())


def _normalize_feature_tags(val: Any) -> Any:
    if isinstance(val, str):
        val = [val]
    if not isinstance(val, (list, tuple)):
        return val
    # Non-string tags are kept as is so the Item check reports them
    return [" ".join(tag.split()) if isinstance(tag, str) else tag for tag in val if not isinstance(tag, str) or tag.strip()]


def _is_missing(val: Any) -> bool:
    if val is None:
        return True
    if isinstance(val, float) and np.isnan(val):
        return True
    return False
