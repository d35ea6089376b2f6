import random

import pytest

from mealplanner.errors import NoCandidatesError
from mealplanner.services.embedding_store import EmbeddingStore
from mealplanner.services.recipe_store import RecipeRepository
from mealplanner.services.retriever import RecipeRetriever


def _retriever(db, embedder, **kwargs):
    return RecipeRetriever(
        RecipeRepository(db),
        EmbeddingStore(db),
        embedder,
        rng=random.Random(1),
        **kwargs,
    )


def test_small_pool_returns_every_recipe_without_embedding(db_session, add_recipe, embedder):
    for i in range(5):
        add_recipe(f"r{i}", f"Recipe {i}")

    candidates = _retriever(db_session, embedder, small_pool_threshold=20).select_candidates("anything")

    assert sorted(r.id for r in candidates) == [f"r{i}" for i in range(5)]
    assert embedder.texts == []


def test_large_pool_uses_similarity(db_session, add_recipe, embedder):
    add_recipe("soup", "Tomato Soup", ["tomato", "basil"], ["soup"], embed_with=embedder)
    add_recipe("curry", "Chicken Curry", ["chicken", "curry paste"], ["spicy"], embed_with=embedder)
    add_recipe("cake", "Chocolate Cake", ["chocolate", "flour"], ["dessert"], embed_with=embedder)
    embedder.texts.clear()

    retriever = _retriever(db_session, embedder, small_pool_threshold=2, top_k=2)
    candidates = retriever.select_candidates("spicy chicken curry")

    assert len(candidates) == 2
    assert candidates[0].id == "curry"
    assert embedder.texts == ["spicy chicken curry"]


def test_top_k_override(db_session, add_recipe, embedder):
    for i in range(4):
        add_recipe(f"r{i}", f"Dish {i}", [f"ingredient{i}"], embed_with=embedder)

    retriever = _retriever(db_session, embedder, small_pool_threshold=1, top_k=1)
    assert len(retriever.select_candidates("dish", top_k=3)) == 3


def test_empty_corpus_raises(db_session, embedder):
    with pytest.raises(NoCandidatesError):
        _retriever(db_session, embedder).select_candidates("pasta")


def test_large_pool_without_embeddings_raises(db_session, add_recipe, embedder):
    for i in range(3):
        add_recipe(f"r{i}", f"Dish {i}")
    with pytest.raises(NoCandidatesError):
        _retriever(db_session, embedder, small_pool_threshold=1).select_candidates("dish")
