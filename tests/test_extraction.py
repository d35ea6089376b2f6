import pytest

from mealplanner.errors import ModelOutputError
from mealplanner.models import Recipe
from mealplanner.services.embedding_store import EmbeddingStore
from mealplanner.services.extraction import (
    RecipeExtractor,
    content_hash,
    embedding_source_text,
    merge_tags,
)


def _recipe(**overrides):
    fields = dict(
        id="r1",
        title="Chili",
        ingredients=["beans", "beef"],
        instructions=["Simmer."],
        tags=["spicy", "winter"],
        prep_time="45 mins",
        servings="4",
    )
    fields.update(overrides)
    return Recipe(**fields)


def test_embedding_source_text_is_canonical():
    text = embedding_source_text(_recipe())
    assert text == "Title: Chili\nTags: spicy, winter\nIngredients: beans, beef\nPrep Time: 45 mins"


def test_merge_tags_lowercases_and_dedupes():
    assert merge_tags(["Vegan", "quick"], ["vegan", " Soup "], []) == ["vegan", "quick", "soup"]


def test_extract_recipe_builds_recipe(scripted, embedder):
    gen = scripted({
        "title": "Chili con Carne",
        "ingredients": "500g beef\n1 can beans",
        "instructions": ["Brown the beef.", "Simmer."],
        "tags": ["Spicy"],
        "prep_time": 45,
        "servings": None,
    })
    extractor = RecipeExtractor(gen, embedder)

    recipe, meta = extractor.extract_recipe("post-1", "Chili", "<p>...</p>", updated_at="2026-02-01", tags=["Dinner"])

    assert recipe.id == "post-1"
    assert recipe.title == "Chili con Carne"
    assert recipe.ingredients == ["500g beef", "1 can beans"]
    assert recipe.tags == ["spicy", "dinner"]
    assert recipe.prep_time == "45"
    assert recipe.servings == ""
    assert recipe.source_updated_at == "2026-02-01"
    assert meta.agent_name == "Extractor"
    assert meta.usage.prompt_tokens == 100
    assert 'HTML content for "Chili"' in gen.prompts[0]


def test_extract_recipe_falls_back_to_post_title(scripted, embedder):
    extractor = RecipeExtractor(scripted({"ingredients": ["x"]}), embedder)
    recipe, _ = extractor.extract_recipe("post-1", "Post Title", "")
    assert recipe.title == "Post Title"


def test_extract_recipe_rejects_non_json(scripted, embedder):
    extractor = RecipeExtractor(scripted("Sorry, I can't help with that."), embedder)
    with pytest.raises(ModelOutputError) as exc:
        extractor.extract_recipe("post-1", "Chili", "")
    assert exc.value.stage == "Extractor"
    assert "Sorry" in exc.value.raw_text


def test_embedding_cache_hit_skips_provider(db_session, add_recipe, scripted, embedder):
    recipe = add_recipe("r1", "Chili", ["beans"], ["spicy"])
    store = EmbeddingStore(db_session)
    extractor = RecipeExtractor(scripted(), embedder)

    first, meta1 = extractor.process_and_save_embedding(recipe, store)
    second, meta2 = extractor.process_and_save_embedding(recipe, store)

    assert len(embedder.texts) == 1
    assert meta1.usage.prompt_tokens > 0
    assert meta1.usage.model == "mock-embedding"
    assert meta2.usage.prompt_tokens == 0
    assert meta2.latency_ms == 0
    assert second == pytest.approx(first)


def test_changed_text_is_embedded_again(db_session, add_recipe, scripted, embedder):
    recipe = add_recipe("r1", "Chili", ["beans"], ["spicy"])
    store = EmbeddingStore(db_session)
    extractor = RecipeExtractor(scripted(), embedder)
    extractor.process_and_save_embedding(recipe, store)

    recipe.ingredients = ["beans", "corn"]
    extractor.process_and_save_embedding(recipe, store)

    assert len(embedder.texts) == 2
    assert store.get("r1").text_hash == content_hash(embedding_source_text(recipe))
