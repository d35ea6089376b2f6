import pytest

from mealplanner.core.mock_ai import MockTextGenerator
from mealplanner.errors import MealPlannerError, ProviderError
from mealplanner.infra.ghost_client import GhostPost, GhostTag
from mealplanner.models import ExecutionMetric, Recipe, RecipeEmbedding
from mealplanner.services.extraction import RecipeExtractor
from mealplanner.services.ingestion import IngestionService

CHILI_HTML = "<h2>Ingredients</h2><ul><li>500g beef</li><li>1 can beans</li></ul><ol><li>Brown.</li><li>Simmer.</li></ol>"
SOUP_HTML = "<ul><li>tomatoes</li><li>basil</li></ul><ol><li>Blend.</li></ol>"


class FakeGhost:
    def __init__(self, posts):
        self.posts = posts

    def fetch_recipes(self):
        return list(self.posts)


class BrokenPostGenerator(MockTextGenerator):
    def generate(self, prompt, deadline=None):
        if "BROKEN" in prompt:
            raise ProviderError("extractor down", status_code=400)
        return super().generate(prompt, deadline)


def _post(post_id, title, html, updated_at="2026-10-01T10:00:00.000Z", tags=()):
    return GhostPost(
        id=post_id,
        title=title,
        html=html,
        updated_at=updated_at,
        tags=[GhostTag(name=t) for t in tags],
    )


@pytest.fixture
def text_gen():
    return MockTextGenerator("mock-normalizer")


def _service(db, text_gen, embedder, posts):
    return IngestionService(db, RecipeExtractor(text_gen, embedder), ghost=FakeGhost(posts))


def test_ingest_all_stores_recipes_and_embeddings(db_session, text_gen, embedder):
    posts = [_post("a", "Chili", CHILI_HTML, tags=["Dinner"]), _post("b", "Soup", SOUP_HTML)]

    report = _service(db_session, text_gen, embedder, posts).ingest_all()

    assert (report.processed, report.skipped, report.failed, report.removed) == (2, 0, 0, 0)
    chili = db_session.get(Recipe, "a")
    assert chili.ingredients == ["500g beef", "1 can beans"]
    assert chili.instructions == ["Brown.", "Simmer."]
    assert chili.tags == ["dinner"]
    assert chili.source_updated_at == "2026-10-01T10:00:00.000Z"
    assert db_session.query(RecipeEmbedding).count() == 2
    agents = sorted(m.agent_name for m in db_session.query(ExecutionMetric).all())
    assert agents == ["Embedding", "Embedding", "Extractor", "Extractor"]


def test_second_run_skips_unchanged_posts(db_session, text_gen, embedder):
    posts = [_post("a", "Chili", CHILI_HTML), _post("b", "Soup", SOUP_HTML)]
    _service(db_session, text_gen, embedder, posts).ingest_all()
    extractor_calls = len(text_gen.calls)
    embed_calls = len(embedder.texts)

    report = _service(db_session, text_gen, embedder, posts).ingest_all()

    assert (report.processed, report.skipped) == (0, 2)
    assert len(text_gen.calls) == extractor_calls
    assert len(embedder.texts) == embed_calls
    # Cache hits spend no tokens and are not recorded
    assert db_session.query(ExecutionMetric).count() == 4


def test_updated_post_is_extracted_again(db_session, text_gen, embedder):
    _service(db_session, text_gen, embedder, [_post("a", "Chili", CHILI_HTML)]).ingest_all()

    changed = _post("a", "Chili", CHILI_HTML.replace("beans", "kidney beans"), updated_at="2026-10-05T10:00:00.000Z")
    report = _service(db_session, text_gen, embedder, [changed]).ingest_all()

    assert report.processed == 1
    db_session.expire_all()
    assert db_session.get(Recipe, "a").ingredients == ["500g beef", "1 can kidney beans"]
    assert len(embedder.texts) == 2


def test_force_reextracts_but_reuses_embedding(db_session, text_gen, embedder):
    posts = [_post("a", "Chili", CHILI_HTML)]
    _service(db_session, text_gen, embedder, posts).ingest_all()

    report = _service(db_session, text_gen, embedder, posts).ingest_all(skip_if_unchanged=False)

    assert report.processed == 1
    assert len(text_gen.calls) == 2
    assert len(embedder.texts) == 1


def test_failed_post_does_not_stop_batch(db_session, embedder):
    posts = [_post("a", "BROKEN", "<p>?</p>"), _post("b", "Soup", SOUP_HTML)]

    report = _service(db_session, BrokenPostGenerator(), embedder, posts).ingest_all()

    assert (report.processed, report.failed) == (1, 1)
    assert db_session.get(Recipe, "a") is None
    assert db_session.get(RecipeEmbedding, "a") is None
    assert db_session.get(Recipe, "b") is not None


def test_embedding_failure_leaves_no_recipe_behind(db_session, text_gen):
    class DownEmbedder:
        embedding_model = "down"

        def embed(self, text, deadline=None):
            raise ProviderError("embedding down", status_code=400)

    service = _service(db_session, text_gen, DownEmbedder(), [])
    with pytest.raises(ProviderError):
        service.ingest_post(_post("a", "Chili", CHILI_HTML))

    db_session.expire_all()
    assert db_session.get(Recipe, "a") is None
    # The extractor still spent tokens
    assert [m.agent_name for m in db_session.query(ExecutionMetric).all()] == ["Extractor"]


def test_deleted_posts_are_removed(db_session, text_gen, embedder):
    posts = [_post("a", "Chili", CHILI_HTML), _post("b", "Soup", SOUP_HTML)]
    _service(db_session, text_gen, embedder, posts).ingest_all()

    report = _service(db_session, text_gen, embedder, posts[:1]).ingest_all()

    assert report.removed == 1
    db_session.expire_all()
    assert db_session.get(Recipe, "b") is None
    assert db_session.get(RecipeEmbedding, "b") is None


def test_ingest_all_needs_ghost(db_session, text_gen, embedder):
    service = IngestionService(db_session, RecipeExtractor(text_gen, embedder))
    with pytest.raises(MealPlannerError):
        service.ingest_all()
