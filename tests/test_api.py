import asyncio

import numpy as np
import pytest
from fastapi.testclient import TestClient

from server.catalog_source import StaticCatalogSource
from server.main import create_app
from server.recommendation_service import RecommendationService


@pytest.fixture
def client(fast_model_config):
    service = RecommendationService(StaticCatalogSource(), model_config=fast_model_config, rng=np.random.default_rng(0))
    asyncio.run(service.initialize())
    with TestClient(create_app(service)) as test_client:
        yield test_client


def _ids(payload, key="products"):
    return [p["id"] for p in payload[key]]


def test_health(client):
    body = client.get("/health").json()
    assert body == {"status": "ok", "recommendations_ready": True, "error": None}


def test_status(client):
    body = client.get("/recommendation/status").json()
    assert body["status"] == "ready"
    assert body["generation"] == 1
    assert body["n_items"] == 12
    assert body["model_kind"] == "primary"
    assert set(body["stages"]) == {"stage_1_snapshot", "stage_2_features", "stage_3_similarity", "stage_4_training"}


def test_recommend_get(client):
    response = client.get("/recommend", params={"preferred_categories": "electronics", "acquired_ids": "1,2", "limit": 3})
    assert response.status_code == 200

    ids = _ids(response.json(), "recommendations")
    assert len(ids) == 3
    assert not {1, 2} & set(ids)


def test_recommend_post(client):
    response = client.post("/recommend", json={"preferred_categories": ["home"], "acquired_ids": [7], "limit": 4})
    assert response.status_code == 200
    body = response.json()
    assert body["ready"] is True
    assert body["generation"] == 1
    assert 7 not in _ids(body, "recommendations")


def test_recommend_rejects_bad_input(client):
    assert client.post("/recommend", json={"limit": 0}).status_code == 422
    assert client.get("/recommend", params={"acquired_ids": "1,abc"}).status_code == 422
    assert client.get("/recommend", params={"limit": 0}).status_code == 422


def test_recommend_limit_bounds_match_between_get_and_post(client):
    assert client.get("/recommend", params={"limit": 101}).status_code == 422
    assert client.post("/recommend", json={"limit": 101}).status_code == 422
    assert client.get("/recommend", params={"limit": 100}).status_code == 200
    assert client.post("/recommend", json={"limit": 100}).status_code == 200


def test_product_details(client):
    body = client.get("/products/4").json()
    assert body["name"] == "Professional DSLR Camera"
    assert body["features"][0] == "24.1 MP sensor"
    assert client.get("/products/999").status_code == 404


def test_similar_products(client):
    body = client.get("/products/1/similar", params={"limit": 20}).json()
    ids = _ids(body)
    assert len(ids) == 11
    assert 1 not in ids
    assert client.get("/products/999/similar").status_code == 404


def test_trending(client):
    ids = _ids(client.get("/trending", params={"limit": 5}).json())
    assert len(ids) == 5
    assert len(set(ids)) == 5


def test_category(client):
    assert _ids(client.get("/category/home").json()) == [7, 5, 11]
    assert _ids(client.get("/category/garden").json()) == []


def test_categories(client):
    assert client.get("/categories").json()["categories"] == ["electronics", "furniture", "home", "clothing", "accessories"]

    body = client.get("/categories/personalized", params={"preferences": "clothing,home", "limit": 1}).json()
    assert [(g["category"], [p["id"] for p in g["products"]]) for g in body["categories"]] == [("clothing", [6]), ("home", [7])]


def test_catalog_refresh(client):
    response = client.post("/catalog/refresh")
    assert response.status_code == 200
    assert response.json()["status"] == "accepted"

    # Background tasks finish before the test client returns
    status = client.get("/recommendation/status").json()
    assert status["status"] == "ready"
    assert status["live_generation"] == 2
