import asyncio
import traceback
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from common.constants import PATHS, RECOMMEND
from common.utils import setup_logging
from recommenders import Item
from server.catalog_source import FakeStoreCatalogSource
from server.pipeline_state import EngineStatus
from server.recommendation_service import RecommendationService
from server.schemas import (
    CategoryRecommendationsOut,
    PersonalizedCategoriesResponse,
    ProductListResponse,
    ProductOut,
    RecommendationRequest,
    RecommendResponse,
    RefreshResponse,
    StatusResponse,
)

logger = setup_logging(__name__, PATHS["app_log_file"])

router = APIRouter()


def create_app(service: Optional[RecommendationService] = None) -> FastAPI:
    """
    Build the API around one engine instance.
    Without `service`, an engine backed by the remote store catalog is created at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = service or RecommendationService(catalog_source=FakeStoreCatalogSource())
        app.state.service = engine

        # --- Startup ---
        # The first build runs in the background; queries get fallbacks until it finishes
        app.state.init_task = None
        if engine.state.status == EngineStatus.UNINITIALIZED:
            app.state.init_task = asyncio.create_task(engine.initialize())
            logger.info("Engine initialization scheduled")

        yield

        # --- Shutdown ---
        task = app.state.init_task
        if task is not None and not task.done():
            task.cancel()
            logger.info("Engine initialization cancelled on shutdown")

    app = FastAPI(title="Product Recommender API", version="0.1.0", lifespan=lifespan)

    # Add CORS for local dev
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    return app


def _service(request: Request) -> RecommendationService:
    return request.app.state.service


def _to_out(items: List[Item]) -> List[ProductOut]:
    return [ProductOut(**item.model_dump()) for item in items]


def _split_ints(raw: Optional[str]) -> List[int]:
    if not raw:
        return []
    try:
        return [int(s) for s in raw.split(",") if s.strip()]
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Expected comma-separated integer ids, got '{raw}'")


def _split_labels(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [s.strip() for s in raw.split(",") if s.strip()]


@router.get("/health")
def health(request: Request):
    service = _service(request)
    status = service.status()
    return {
        "status": "ok",
        "recommendations_ready": status["ready"],
        "error": status["last_error"],
    }


@router.get("/recommendation/status", response_model=StatusResponse)
def recommendation_status(request: Request):
    """Engine state, live generation, and the last build error (if any)."""
    return _service(request).status()


def _recommend(service: RecommendationService, payload: RecommendationRequest) -> RecommendResponse:
    items = service.get_recommendations(payload.preferred_categories, payload.acquired_ids, payload.limit)
    context = service.context
    logger.info(f"/recommend: {len(items)} items for preferences={payload.preferred_categories}")
    return RecommendResponse(
        recommendations=_to_out(items),
        generation=context["generation"] if context is not None else 0,
        ready=service.ready,
    )


@router.get("/recommend", response_model=RecommendResponse)
def recommend(
    request: Request,
    preferred_categories: Optional[str] = None,
    acquired_ids: Optional[str] = None,
    limit: int = Query(RECOMMEND["k"], ge=1, le=100),
):
    """Query-string form: comma-separated categories and ids. Same limit bounds as the JSON body."""
    payload = RecommendationRequest(
        preferred_categories=_split_labels(preferred_categories),
        acquired_ids=_split_ints(acquired_ids),
        limit=limit,
    )
    return _recommend(_service(request), payload)


@router.post("/recommend", response_model=RecommendResponse)
def recommend_post(request: Request, payload: RecommendationRequest):
    return _recommend(_service(request), payload)


@router.get("/products/{item_id}", response_model=ProductOut)
def get_product(request: Request, item_id: int):
    """
    Retrieve full details for a specific product in the live snapshot.
    """
    try:
        item = _service(request).get_item(item_id)
        if item is None:
            raise HTTPException(status_code=404, detail=f"Product with ID {item_id} not found")
        return ProductOut(**item.model_dump())
    except HTTPException:
        raise
    except Exception as e:
        error_msg = f"{str(e)}\n{traceback.format_exc()}"
        logger.error(f"ERROR in /products/{item_id}: {error_msg}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/products/{item_id}/similar", response_model=ProductListResponse)
def get_similar_products(request: Request, item_id: int, limit: int = RECOMMEND["k"]):
    service = _service(request)
    item = service.get_item(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Product with ID {item_id} not found")
    return ProductListResponse(products=_to_out(service.get_similar_products(item, limit)))


@router.get("/trending", response_model=ProductListResponse)
def get_trending(request: Request, limit: int = RECOMMEND["k"]):
    return ProductListResponse(products=_to_out(_service(request).get_trending_products(limit)))


@router.get("/category/{category}", response_model=ProductListResponse)
def get_category(request: Request, category: str, limit: int = RECOMMEND["k"]):
    return ProductListResponse(products=_to_out(_service(request).get_recommendations_by_category(category, limit)))


@router.get("/categories")
def get_categories(request: Request):
    return {"categories": _service(request).get_categories()}


@router.get("/categories/personalized", response_model=PersonalizedCategoriesResponse)
def get_personalized_categories(request: Request, preferences: Optional[str] = None, limit: int = RECOMMEND["k"]):
    """Top products for each of the first few preferred categories that match anything."""
    groups = _service(request).get_personalized_category_recommendations(_split_labels(preferences), limit)
    return PersonalizedCategoriesResponse(
        categories=[CategoryRecommendationsOut(category=g["category"], products=_to_out(g["items"])) for g in groups]
    )


# ===================================================================
# CATALOG ENDPOINTS
# ===================================================================


async def _refresh_from_source(service: RecommendationService):
    """Fetch the catalog from the source and rebuild in the background."""
    try:
        catalog = await asyncio.to_thread(service.fetch_catalog)
        report = await service.refresh(catalog)
        logger.info(f"Catalog refresh finished: {report}")
    except Exception as e:
        logger.error(f"Catalog refresh failed: {str(e)}\n{traceback.format_exc()}")
        service.state.record_error(f"Catalog refresh failed: {e}")


@router.post("/catalog/refresh", response_model=RefreshResponse)
def refresh_catalog(request: Request, background_tasks: BackgroundTasks):
    """Start a rebuild from the catalog source; a refresh during a running build is queued."""
    service = _service(request)
    background_tasks.add_task(_refresh_from_source, service)
    logger.info("Catalog refresh scheduled")
    return RefreshResponse(status="accepted", generation=service.state.generation)


app = create_app()
