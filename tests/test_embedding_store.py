import math

import pytest

from mealplanner.core.vectors import cosine_similarity, decode_vector, encode_vector
from mealplanner.errors import VectorCorruptionError
from mealplanner.models import RecipeEmbedding
from mealplanner.services.embedding_store import EmbeddingStore
from mealplanner.services.recipe_store import RecipeRepository


def test_encode_is_little_endian_float32():
    data = encode_vector([1.0, -2.5])
    assert len(data) == 8
    assert data[:4] == b"\x00\x00\x80\x3f"
    assert decode_vector(data).tolist() == [1.0, -2.5]


def test_decode_rejects_partial_floats():
    with pytest.raises(VectorCorruptionError) as exc:
        decode_vector(b"\x00\x00\x80")
    assert exc.value.byte_length == 3


def test_cosine_similarity():
    assert math.isclose(cosine_similarity([1, 2, 3], [1, 2, 3]), 1.0)
    assert cosine_similarity([1, 0], [0, 1]) == 0.0
    assert math.isclose(cosine_similarity([1, 0], [-1, 0]), -1.0)


def test_cosine_similarity_degenerate_inputs_score_zero():
    assert cosine_similarity([], []) == 0.0
    assert cosine_similarity([0, 0], [1, 1]) == 0.0
    assert cosine_similarity([1, 2], [1, 2, 3]) == 0.0


def test_save_upserts_vector_and_hash(db_session, add_recipe):
    add_recipe("r1", "Soup")
    store = EmbeddingStore(db_session)

    store.save("r1", [0.1, 0.2], "hash-a")
    store.save("r1", [0.3, 0.4], "hash-b")

    record = store.get("r1")
    assert record.text_hash == "hash-b"
    assert record.embedding == pytest.approx([0.3, 0.4], rel=1e-6)
    assert db_session.query(RecipeEmbedding).count() == 1


def test_get_unknown_returns_none(db_session):
    assert EmbeddingStore(db_session).get("missing") is None


def test_find_similar_ranks_by_cosine(db_session, add_recipe):
    for rid in ("a", "b", "c"):
        add_recipe(rid, rid.upper())
    store = EmbeddingStore(db_session)
    store.save("a", [1.0, 0.0], "h")
    store.save("b", [0.7, 0.7], "h")
    store.save("c", [0.0, 1.0], "h")

    assert store.find_similar([1.0, 0.1], limit=3) == ["a", "b", "c"]
    assert store.find_similar([1.0, 0.1], limit=2) == ["a", "b"]
    assert store.find_similar([1.0, 0.1], limit=3, exclude_ids=["a"]) == ["b", "c"]
    assert store.find_similar([1.0, 0.1], limit=0) == []


def test_find_similar_skips_corrupt_rows(db_session, add_recipe):
    add_recipe("good", "Good")
    add_recipe("bad", "Bad")
    store = EmbeddingStore(db_session)
    store.save("good", [1.0, 0.0], "h")
    db_session.add(RecipeEmbedding(recipe_id="bad", embedding=b"\x01\x02\x03", text_hash="h"))
    db_session.commit()

    assert store.find_similar([1.0, 0.0], limit=5) == ["good"]


def test_deleting_recipe_removes_embedding(db_session, add_recipe):
    add_recipe("r1", "Soup")
    EmbeddingStore(db_session).save("r1", [1.0], "h")

    assert RecipeRepository(db_session).delete("r1") is True
    db_session.expire_all()
    assert EmbeddingStore(db_session).get("r1") is None
