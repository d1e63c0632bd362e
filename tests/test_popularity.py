import numpy as np

from recommenders import (
    Item,
    get_category_recommendations,
    get_personalized_category_recommendations,
    get_trending_recommendations,
)
from recommenders.popularity import random_sample, top_rated, trending_scores


def test_top_rated_excludes_ids(abc_items):
    assert [i.id for i in top_rated(abc_items, 2)] == [3, 1]
    assert [i.id for i in top_rated(abc_items, 5, exclude_ids=[3])] == [1, 2]
    assert top_rated(abc_items, 0) == []


def test_trending_score_components():
    items = [
        Item(id=1, name="Boosted", price=300, category="electronics", rating=5),  # boost + price band
        Item(id=2, name="Plain", price=5, category="home", rating=5),
    ]
    scores = trending_scores(items, np.random.default_rng(0))
    assert 1.2 <= scores[0] <= 1.4
    assert 1.0 <= scores[1] <= 1.2


def test_price_band_is_exclusive():
    items = [Item(id=1, name="Edge", price=200, category="home", rating=0)]
    scores = trending_scores(items, np.random.default_rng(0))
    assert scores[0] <= 0.2


def test_trending_is_rating_dominant():
    items = [
        Item(id=1, name="Low", price=10, category="home", rating=1.0),
        Item(id=2, name="High", price=10, category="home", rating=5.0),
    ]
    rng = np.random.default_rng(1)
    for _ in range(20):
        assert [i.id for i in get_trending_recommendations(items, 2, rng)] == [2, 1]


def test_trending_is_reproducible_with_seeded_rng(catalog_items):
    first = get_trending_recommendations(catalog_items, 5, np.random.default_rng(3))
    second = get_trending_recommendations(catalog_items, 5, np.random.default_rng(3))
    assert [i.id for i in first] == [i.id for i in second]
    assert len(first) == 5


def test_random_sample_has_no_duplicates(catalog_items, rng):
    sample = random_sample(catalog_items, 5, rng)
    assert len({i.id for i in sample}) == 5
    assert random_sample([], 5, rng) == []


def test_category_recommendations_use_substring_match():
    items = [
        Item(id=1, name="Shirt", price=20, category="men's clothing", rating=4.1),
        Item(id=2, name="Dress", price=40, category="women's clothing", rating=4.7),
        Item(id=3, name="Lamp", price=30, category="home", rating=5.0),
    ]
    assert [i.id for i in get_category_recommendations(items, "clothing", 10)] == [2, 1]
    assert get_category_recommendations(items, "garden", 10) == []


def test_personalized_categories_capped_at_three(catalog_items):
    groups = get_personalized_category_recommendations(
        catalog_items, ["electronics", "toys", "home", "clothing", "furniture"], 2
    )
    assert [g["category"] for g in groups] == ["electronics", "home", "clothing"]
    assert all(len(g["items"]) <= 2 for g in groups)
    assert [i.id for i in groups[0]["items"]] == [4, 1]
