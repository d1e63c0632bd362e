import asyncio
import threading

import numpy as np
import pytest

import ml_pipeline.handler as pipeline_handler
import ml_pipeline.stages.stage_4_training as stage_4
import recommenders.scoring_model as scoring_model
import server.recommendation_service as recommendation_service
from recommenders import Item, TrainingDataError
from recommenders.popularity import top_rated
from server.catalog_source import StaticCatalogSource
from server.recommendation_service import RecommendationService


@pytest.fixture
def service(catalog_items, fast_model_config):
    engine = RecommendationService(model_config=fast_model_config, rng=np.random.default_rng(5))
    report = asyncio.run(engine.initialize(catalog_items))
    assert report["status"] == "done"
    return engine


def _ids(items):
    return [i.id for i in items]


def test_untrained_engine_falls_back_to_rating_order(abc_items):
    engine = RecommendationService()
    assert engine.prime(abc_items)

    result = engine.get_recommendations(["electronics"], [], 2)
    assert _ids(result) == [3, 1]


def test_queries_before_anything_is_loaded_are_empty(abc_items):
    engine = RecommendationService()
    assert engine.get_recommendations(["electronics"], [], 4) == []
    assert engine.get_similar_products(abc_items[0], 4) == []
    assert engine.get_trending_products(4) == []
    assert engine.get_recommendations_by_category("home", 4) == []
    assert engine.get_item(1) is None


def test_initialize_builds_ready_generation(service):
    status = service.status()
    assert status["status"] == "ready"
    assert status["ready"]
    assert status["generation"] == 1
    assert status["live_generation"] == 1
    assert status["n_items"] == 12
    assert status["model_kind"] == "primary"
    assert status["model_trained"]
    assert status["last_error"] is None


def test_initialize_fetches_from_catalog_source(abc_items, fast_model_config):
    engine = RecommendationService(StaticCatalogSource(items=abc_items), model_config=fast_model_config)
    asyncio.run(engine.initialize())
    assert engine.status()["n_items"] == 3
    assert engine.get_categories() == ["electronics", "home"]


def test_recommendations_respect_limit_exclusions_and_uniqueness(service):
    result = service.get_recommendations(["electronics"], [1, 4, 10], 6)
    ids = _ids(result)

    assert len(ids) == 6
    assert len(set(ids)) == 6
    assert not {1, 4, 10} & set(ids)


def test_recommendations_are_deterministic(service):
    first = service.get_recommendations(["home"], [5], 5)
    second = service.get_recommendations(["home"], [5], 5)
    assert _ids(first) == _ids(second)


def test_non_positive_limit_returns_nothing(service):
    assert service.get_recommendations(["home"], [], 0) == []
    assert service.get_similar_products(service.get_item(1), -1) == []
    assert service.get_trending_products(0) == []


def test_recommendations_with_everything_acquired(service):
    assert service.get_recommendations([], list(range(1, 13)), 4) == []


def test_similar_products_never_include_item(abc_items, fast_model_config):
    engine = RecommendationService(model_config=fast_model_config)
    asyncio.run(engine.initialize(abc_items))

    similar = engine.get_similar_products(abc_items[0], 10)
    assert _ids(similar) == [2, 3]


def test_similar_products_for_unknown_item_computed_on_the_fly(service):
    outsider = Item(id=500, name="Travel Speaker", description="portable bluetooth speaker", price=70, category="electronics", rating=4.0)
    similar = service.get_similar_products(outsider, 3)

    assert len(similar) == 3
    assert 500 not in _ids(similar)
    assert similar[0].category == "electronics"


def test_trending_and_category_queries(service):
    trending = service.get_trending_products(5)
    assert len(trending) == 5
    assert len(set(_ids(trending))) == 5

    home = service.get_recommendations_by_category("home", 10)
    assert _ids(home) == [7, 5, 11]

    groups = service.get_personalized_category_recommendations(["home", "toys"], 2)
    assert [g["category"] for g in groups] == ["home"]
    assert _ids(groups[0]["items"]) == [7, 5]


def test_trending_reproducible_with_injected_rng(catalog_items, fast_model_config):
    results = []
    for _ in range(2):
        engine = RecommendationService(model_config=fast_model_config, rng=np.random.default_rng(42))
        engine.prime(catalog_items)
        results.append(_ids(engine.get_trending_products(6)))
    assert results[0] == results[1]


def test_refresh_replaces_snapshot(service, abc_items):
    report = asyncio.run(service.refresh(abc_items))

    assert report == {"status": "done", "generation": 2, "error": None}
    assert service.status()["n_items"] == 3
    assert service.get_item(12) is None
    assert service.get_item(3).name == "C"


def test_refresh_during_build_is_queued_and_applied(service, catalog_items, abc_items, monkeypatch):
    gate = threading.Event()
    real_build_context = recommendation_service.build_context
    built = []

    def gated_build_context(catalog, generation, *args, **kwargs):
        built.append(generation)
        if generation == 2:
            gate.wait(timeout=10)
        return real_build_context(catalog, generation, *args, **kwargs)

    monkeypatch.setattr(recommendation_service, "build_context", gated_build_context)
    expected_fallback = _ids(top_rated(service.context["items"], 4, [1]))

    async def scenario():
        first = asyncio.create_task(service.refresh(catalog_items[:6]))
        while not service.state.is_building():
            await asyncio.sleep(0.01)

        # While building: rating fallback over the old snapshot
        during = service.get_recommendations(["home"], [1], 4)

        queued = await service.refresh(catalog_items[:8])
        latest = await service.refresh(abc_items)
        gate.set()
        return during, queued, latest, await first

    during, queued, latest, first = asyncio.run(scenario())

    assert _ids(during) == expected_fallback
    assert queued["status"] == "queued"
    assert latest["status"] == "queued"
    assert first["status"] == "done"
    assert built == [2, 3]  # the earlier queued catalog was superseded

    status = service.status()
    assert status["status"] == "ready"
    assert status["live_generation"] == 3
    assert status["n_items"] == 3
    assert not status["pending_refresh"]


def test_training_error_keeps_previous_snapshot(service, abc_items, monkeypatch):
    def corrupt(features, labels):
        raise TrainingDataError("Invalid feature data contains non-finite values")

    monkeypatch.setattr(stage_4, "check_training_data", corrupt)
    report = asyncio.run(service.refresh(abc_items))

    assert report["status"] == "failed"
    status = service.status()
    assert status["status"] == "ready"
    assert "non-finite" in status["last_error"]
    assert status["live_generation"] == 1
    assert status["n_items"] == 12
    assert status["stages"]["stage_4_training"]["status"] == "failed"


def test_training_error_on_first_build_leaves_raw_snapshot(abc_items, monkeypatch):
    def corrupt(features, labels):
        raise TrainingDataError("Invalid label data contains non-finite values")

    monkeypatch.setattr(stage_4, "check_training_data", corrupt)
    engine = RecommendationService(model_config={"epochs": 1})
    asyncio.run(engine.initialize(abc_items))

    assert engine.status()["last_error"] is not None
    assert engine.ready
    assert _ids(engine.get_recommendations(["electronics"], [], 2)) == [3, 1]


def test_crashed_build_degrades_to_raw_snapshot(service, abc_items, monkeypatch):
    def explode(items):
        raise RuntimeError("similarity table exploded")

    monkeypatch.setattr(pipeline_handler, "build_similarity_index", explode)
    report = asyncio.run(service.refresh(abc_items))

    assert report["status"] == "failed"
    status = service.status()
    assert status["ready"]
    assert "exploded" in status["last_error"]
    assert status["n_items"] == 3
    assert not status["has_similarity"]

    # Still answers: rating fallback and on-the-fly similarity
    assert _ids(service.get_recommendations([], [], 2)) == [3, 1]
    assert _ids(service.get_similar_products(abc_items[0], 5)) == [2, 3]


def test_model_construction_failure_uses_rating_fallback(abc_items, monkeypatch):
    # Both the primary and the fallback network get a zero-width hidden layer
    monkeypatch.setattr(scoring_model, "FALLBACK_MODEL", {**scoring_model.FALLBACK_MODEL, "hidden_units": [0]})
    engine = RecommendationService(model_config={"hidden_units": [0], "epochs": 1})
    asyncio.run(engine.initialize(abc_items))

    status = engine.status()
    assert status["model_kind"] is None
    assert status["ready"]
    assert _ids(engine.get_recommendations(["electronics"], [3], 2)) == [1, 2]


def test_empty_catalog_initializes_to_no_results():
    engine = RecommendationService()
    report = asyncio.run(engine.initialize([]))

    assert report["status"] == "done"
    assert engine.ready
    assert engine.get_recommendations(["home"], [], 4) == []
    assert engine.get_trending_products(4) == []


def test_empty_refresh_keeps_previous_snapshot(service):
    report = asyncio.run(service.refresh([]))

    assert report["status"] == "failed"
    assert service.status()["n_items"] == 12
    assert "no usable items" in service.status()["last_error"]


def test_queries_never_raise_on_internal_errors(service, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(recommendation_service, "recommend", broken)
    monkeypatch.setattr(recommendation_service, "rank_similar", broken)
    monkeypatch.setattr(recommendation_service, "get_trending_recommendations", broken)

    assert _ids(service.get_recommendations([], [4], 3)) == _ids(top_rated(service.context["items"], 3, [4]))

    similar = service.get_similar_products(service.get_item(1), 4)
    assert len(similar) == 4 and 1 not in _ids(similar)

    assert len(service.get_trending_products(4)) == 4
