import asyncio
import threading
import traceback
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from common.constants import PATHS, RECOMMEND
from common.utils import setup_logging
from ml_pipeline import build_context, raw_context
from ml_pipeline.handler import CatalogInput
from recommenders import (
    BuildReport,
    CatalogValidationError,
    CategoryRecommendations,
    Item,
    ModelConfig,
    RecommendationContext,
    SimilarityIndex,
    TrainingDataError,
    get_category_recommendations,
    get_personalized_category_recommendations,
    get_trending_recommendations,
    recommend,
)
from recommenders.popularity import random_sample, top_rated
from recommenders.similarity import rank_similar
from server.pipeline_state import BuildStateManager, EngineStatus

logger = setup_logging(__name__, PATHS["app_log_file"])


class RecommendationService:
    """
    Recommendation engine for one catalog.

    Owns the live snapshot (items, features, similarity table, scoring model) and its
    build lifecycle. Builds run in a worker thread, one at a time; a finished build
    replaces the snapshot in one assignment, so a query sees either the old or the new
    generation, never a mix. Query methods never raise.
    """

    def __init__(
        self,
        catalog_source=None,
        model_config: Optional[ModelConfig] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        logger.info("Initializing RecommendationService...")

        self.catalog_source = catalog_source
        self.model_config = model_config
        self.rng = rng if rng is not None else np.random.default_rng()

        self.state = BuildStateManager()
        self._build_lock = threading.Lock()
        self._context: Optional[RecommendationContext] = None
        self.validation_errors: List[CatalogValidationError] = []

    # ===================================================================
    # Lifecycle
    # ===================================================================

    @property
    def context(self) -> Optional[RecommendationContext]:
        return self._context

    @property
    def ready(self) -> bool:
        return self.state.status == EngineStatus.READY

    def prime(self, catalog: CatalogInput) -> bool:
        """
        Install a raw snapshot (items only) while the engine is still uninitialized,
        so fallback answers are available before the first build finishes.
        """
        if self.state.status != EngineStatus.UNINITIALIZED or self._context is not None:
            return False
        try:
            self._context = raw_context(catalog, generation=0)
        except Exception as e:
            logger.error(f"Failed to prime catalog: {e}")
            return False
        logger.info(f"Primed raw snapshot with {len(self._context['items'])} items")
        return True

    async def initialize(self, catalog: Optional[CatalogInput] = None) -> BuildReport:
        """First build. Without a catalog, one is fetched from the catalog source."""
        if catalog is None:
            try:
                catalog = await asyncio.to_thread(self.fetch_catalog)
            except Exception as e:
                error_msg = f"Catalog fetch failed: {e}"
                logger.error(error_msg)
                self.state.record_error(error_msg)
                catalog = []

        catalog = list(catalog)
        self.prime(catalog)
        return await self._submit(catalog)

    async def refresh(self, catalog: CatalogInput) -> BuildReport:
        """
        Rebuild from a new catalog. If a build is already running the catalog is queued
        (latest wins) and applied as soon as that build finishes.
        """
        return await self._submit(list(catalog))

    def fetch_catalog(self) -> List[Item]:
        if self.catalog_source is None:
            logger.warning("No catalog source configured, starting with an empty catalog")
            return []
        return list(self.catalog_source.get_catalog())

    async def _submit(self, catalog: List[Any]) -> BuildReport:
        generation = self.state.try_begin_build(catalog)
        if generation is None:
            return {"status": "queued", "generation": self.state.generation, "error": None}
        return await asyncio.to_thread(self._run_builds, generation, catalog)

    def _run_builds(self, generation: int, catalog: List[Any]) -> BuildReport:
        """Run one build, then drain refreshes queued while it ran."""
        with self._build_lock:
            report = self._build(generation, catalog)
            while True:
                pending = self.state.take_pending()
                if pending is None:
                    break
                queued_generation, queued_catalog = pending
                logger.info(f"Applying queued refresh as generation {queued_generation}")
                self._build(queued_generation, queued_catalog)
        return report

    def _build(self, generation: int, catalog: List[Any]) -> BuildReport:
        try:
            context, errors = build_context(catalog, generation, self.model_config, state=self.state)

        except TrainingDataError as e:
            # Keep the previous snapshot; only a missing one is replaced by the raw catalog
            error_msg = f"Training data rejected: {e}"
            if self._context is None:
                self._install_raw(catalog, generation)
            self.state.fail_build(generation, error_msg)
            return {"status": "failed", "generation": generation, "error": error_msg}

        except Exception as e:
            error_msg = f"{type(e).__name__}: {e}"
            logger.error(f"Build {generation} crashed:\n{traceback.format_exc()}")
            self._install_raw(catalog, generation)
            self.state.fail_build(generation, error_msg)
            return {"status": "failed", "generation": generation, "error": error_msg}

        self.validation_errors = errors
        current = self._context

        if not context["items"] and current is not None and current["items"]:
            error_msg = f"Catalog for generation {generation} has no usable items, keeping generation {current['generation']}"
            self.state.fail_build(generation, error_msg)
            return {"status": "failed", "generation": generation, "error": error_msg}

        self._context = context
        self.state.complete_build(generation)
        return {"status": "done", "generation": generation, "error": None}

    def _install_raw(self, catalog: List[Any], generation: int) -> None:
        """Degraded snapshot: new items, no derived structures."""
        try:
            context = raw_context(catalog, generation)
        except Exception as e:
            logger.error(f"Could not build a raw snapshot either, keeping the current one: {e}")
            return
        if context["items"] or self._context is None:
            self._context = context
            logger.warning(f"Installed raw snapshot for generation {generation} ({len(context['items'])} items)")

    # ===================================================================
    # Queries
    # ===================================================================

    def _model_usable(self, context: RecommendationContext) -> bool:
        model = context["model"]
        return model is not None and model.trained and not self.state.is_building()

    def get_recommendations(
        self,
        preferred_categories: Optional[Sequence[str]] = None,
        acquired_ids: Optional[Sequence[int]] = None,
        limit: int = RECOMMEND["k"],
    ) -> List[Item]:
        context = self._context
        if context is None or limit <= 0:
            return []

        preferred = list(preferred_categories or [])
        acquired = list(acquired_ids or [])

        try:
            if not self._model_usable(context):
                logger.info(f"Model unavailable (generation {context['generation']}), using rating fallback")
                return top_rated(context["items"], limit, acquired)

            items, _ = recommend(context, preferred, acquired, limit)
            return items

        except Exception as e:
            logger.error(f"Recommendation failed, using rating fallback: {e}\n{traceback.format_exc()}")
            try:
                return top_rated(context["items"], limit, acquired)
            except Exception as e2:
                logger.error(f"Rating fallback failed: {e2}")
                return []

    def get_similar_products(self, item: Item, limit: int = RECOMMEND["k"]) -> List[Item]:
        """Most similar items to `item`, never `item` itself. Items outside the table are scored on the fly."""
        context = self._context
        if context is None or limit <= 0:
            return []

        try:
            index = context["similarity"]
            if index is None:
                index = SimilarityIndex(())  # every lookup misses and is computed on demand
            ranked = rank_similar(index, item, context["items"])
            return [similar for similar, _ in ranked[:limit]]

        except Exception as e:
            logger.error(f"Similar products failed for item {getattr(item, 'id', None)}: {e}")
            return self._random_fallback(context, limit, exclude_id=getattr(item, "id", None))

    def get_trending_products(self, limit: int = RECOMMEND["k"]) -> List[Item]:
        context = self._context
        if context is None or limit <= 0:
            return []
        try:
            return get_trending_recommendations(context["items"], limit, self.rng)
        except Exception as e:
            logger.error(f"Trending products failed: {e}")
            return self._random_fallback(context, limit)

    def get_recommendations_by_category(self, category: str, limit: int = RECOMMEND["k"]) -> List[Item]:
        context = self._context
        if context is None or limit <= 0 or not category:
            return []
        try:
            return get_category_recommendations(context["items"], category, limit)
        except Exception as e:
            logger.error(f"Category recommendations failed for '{category}': {e}")
            return []

    def get_personalized_category_recommendations(
        self, preferences: Sequence[str], limit: int = RECOMMEND["k"]
    ) -> List[CategoryRecommendations]:
        context = self._context
        if context is None or limit <= 0:
            return []
        try:
            return get_personalized_category_recommendations(context["items"], list(preferences or []), limit)
        except Exception as e:
            logger.error(f"Personalized category recommendations failed: {e}")
            return []

    def get_item(self, item_id: int) -> Optional[Item]:
        context = self._context
        if context is None:
            return None
        row = context["item_index"].get(item_id)
        if row is None:
            return None
        return context["items"][row]

    def get_categories(self) -> List[str]:
        """Categories from the catalog source, or the live snapshot's own when the source has none."""
        if self.catalog_source is not None:
            try:
                categories = list(self.catalog_source.get_categories())
                if categories:
                    return categories
            except Exception as e:
                logger.warning(f"Catalog source categories unavailable: {e}")
        context = self._context
        return list(context["categories"]) if context is not None else []

    def _random_fallback(self, context: RecommendationContext, limit: int, exclude_id: Optional[int] = None) -> List[Item]:
        try:
            pool = [i for i in context["items"] if i.id != exclude_id]
            return random_sample(pool, limit, self.rng)
        except Exception as e:
            logger.error(f"Random fallback failed: {e}")
            return []

    def status(self) -> Dict[str, Any]:
        """Engine state plus a description of the live snapshot."""
        build = self.state.get_status()
        context = self._context
        model = context["model"] if context is not None else None

        return {
            **build,
            "ready": build["status"] == EngineStatus.READY.value,
            "live_generation": context["generation"] if context is not None else None,
            "n_items": len(context["items"]) if context is not None else 0,
            "n_categories": len(context["categories"]) if context is not None else 0,
            "has_similarity": context is not None and context["similarity"] is not None,
            "model_kind": model.kind if model is not None else None,
            "model_trained": bool(model is not None and model.trained),
            "rejected_records": len(self.validation_errors),
        }
