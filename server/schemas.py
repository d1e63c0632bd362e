from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

class ProductOut(BaseModel):
    id: int
    name: str
    description: str
    price: float
    category: str
    rating: float
    features: list[str]
    image: Optional[str] = None

class RecommendationRequest(BaseModel):
    """
    Recommendation request from the storefront.

    preferred_categories: category labels the user likes (substring match either way)
    acquired_ids: ids already bought or in the cart; excluded from results
    limit: maximum number of items to return
    """
    preferred_categories: list[str] = Field(default_factory=list)
    acquired_ids: list[int] = Field(default_factory=list)
    limit: int = Field(default=4, ge=1, le=100)

class RecommendResponse(BaseModel):
    recommendations: list[ProductOut]
    generation: int
    ready: bool

class ProductListResponse(BaseModel):
    products: list[ProductOut]

class CategoryRecommendationsOut(BaseModel):
    category: str
    products: list[ProductOut]

class PersonalizedCategoriesResponse(BaseModel):
    categories: list[CategoryRecommendationsOut]

class RefreshResponse(BaseModel):
    """
    Response to a catalog refresh request.

    status: "accepted" once the rebuild is scheduled (it runs in the background)
    generation: last generation handed out when the request was accepted
    """
    status: str
    generation: int

class StatusResponse(BaseModel):
    status: str
    ready: bool
    generation: int
    live_generation: Optional[int] = None
    current_stage: Optional[str] = None
    stages: Dict[str, Dict[str, Any]]
    last_error: Optional[str] = None
    pending_refresh: bool
    n_items: int
    n_categories: int
    model_kind: Optional[str] = None
    model_trained: bool
