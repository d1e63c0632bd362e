"""
Catalog collaborators: where the engine's raw items come from.
Every record crosses into the engine through stage 1's parse_item, so malformed
external data is reported and skipped rather than trusted.
"""

from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

import numpy as np
import requests

from common.constants import CATALOG, PATHS
from common.utils import safe_read_json, setup_logging
from ml_pipeline.stages.stage_1_catalog import ITEM_COLUMNS, build_items, transform_api_product
from recommenders.data_models import Item
from recommenders.features import derive_categories

logger = setup_logging(__name__, PATHS["app_log_file"])


class CatalogSource(Protocol):
    def get_catalog(self) -> List[Item]: ...

    def get_categories(self) -> List[str]: ...


class StaticCatalogSource:
    """Items from a JSON file (the bundled fallback catalog by default) or from an explicit list."""

    def __init__(self, items: Optional[Sequence[Any]] = None, path: Optional[str] = None):
        self.path = path or PATHS["fallback_catalog"]
        self._records = list(items) if items is not None else None
        self._items: Optional[List[Item]] = None

    def _load(self) -> List[Item]:
        if self._items is None:
            if self._records is None:
                catalog_df = safe_read_json(self.path)
                records = catalog_df.reindex(columns=ITEM_COLUMNS).to_dict(orient="records")
                logger.info(f"Loaded {len(records)} records from {self.path}")
            else:
                records = [r.model_dump() if isinstance(r, Item) else r for r in self._records]
            self._items, _ = build_items(records)
        return self._items

    def get_catalog(self) -> List[Item]:
        return list(self._load())

    def get_categories(self) -> List[str]:
        return derive_categories(self._load())

    def get_product_by_id(self, item_id: int) -> Optional[Item]:
        return next((item for item in self._load() if item.id == item_id), None)

    def get_products_by_category(self, category: str) -> List[Item]:
        return [item for item in self._load() if item.category == category]


class FakeStoreCatalogSource:
    """
    Remote store API client (`/products`, `/products/{id}`, `/products/category/{c}`,
    `/products/categories`). Any request failure falls back to the static catalog.
    """

    def __init__(
        self,
        base_url: str = CATALOG["api_base_url"],
        timeout: float = CATALOG["timeout_s"],
        fallback: Optional[StaticCatalogSource] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.fallback = fallback or StaticCatalogSource()
        self.rng = rng if rng is not None else np.random.default_rng()

    def _get(self, path: str) -> Any:
        response = requests.get(f"{self.base_url}{path}", timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def _to_items(self, raw_products: Any) -> List[Item]:
        if not isinstance(raw_products, list):
            raise ValueError(f"Expected a list of products, got {type(raw_products).__name__}")
        records: List[Dict[str, Any]] = [
            transform_api_product(raw, self.rng) for raw in raw_products if isinstance(raw, Mapping)
        ]
        items, errors = build_items(records)
        if errors:
            logger.warning(f"Skipped {len(errors)} invalid products from {self.base_url}")
        return items

    def get_catalog(self) -> List[Item]:
        try:
            return self._to_items(self._get("/products"))
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error fetching products: {e}")
            return self.fallback.get_catalog()

    def get_product_by_id(self, item_id: int) -> Optional[Item]:
        try:
            raw = self._get(f"/products/{item_id}")
            if not isinstance(raw, Mapping):
                return None
            items = self._to_items([raw])
            return items[0] if items else None
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error fetching product {item_id}: {e}")
            return self.fallback.get_product_by_id(item_id)

    def get_products_by_category(self, category: str) -> List[Item]:
        try:
            return self._to_items(self._get(f"/products/category/{category}"))
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error fetching products in category {category}: {e}")
            return self.fallback.get_products_by_category(category)

    def get_categories(self) -> List[str]:
        try:
            return [str(c) for c in self._get("/products/categories")]
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error fetching categories: {e}")
            return self.fallback.get_categories()
