import os

# Settings are read at import time; keep the app off disk and off the network
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["AI_MODE"] = "mock"
os.environ["TELEGRAM_BOT_TOKEN"] = ""
os.environ["GHOST_API_URL"] = ""

import json
import random

import fakeredis
import fakeredis.aioredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from mealplanner import db as db_module
from mealplanner.core.mock_ai import MockEmbeddingGenerator, MockTextGenerator
from mealplanner.db import Base, get_db
from mealplanner.infra import redis_client
from mealplanner.main import app
from mealplanner.models import Recipe
from mealplanner.schemas import ContentResponse, TokenUsage
from mealplanner.services.embedding_store import EmbeddingStore
from mealplanner.services.extraction import content_hash, embedding_source_text
from mealplanner.settings import Settings
from mealplanner.wiring import Services

# --- Test Database Setup ---

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

# StaticPool keeps one in-memory database visible to every session and thread
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Background work (chat handlers, lifespan) uses the module-level factory
db_module._engine = engine
db_module._SessionLocal = TestingSessionLocal


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def mock_redis():
    server = fakeredis.FakeServer()
    # Create fake clients sharing the same server
    redis_client._redis_async = fakeredis.aioredis.FakeRedis(server=server, decode_responses=True)
    redis_client._redis_sync = fakeredis.FakeRedis(server=server, decode_responses=True)
    yield
    redis_client._redis_async = None
    redis_client._redis_sync = None


@pytest.fixture
def client():
    """Test client with DB override."""
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def db_session():
    """Direct database session for setup."""
    session = TestingSessionLocal()
    yield session
    session.close()


# --- Fake providers ---

class ScriptedTextGenerator:
    """Answers with queued responses in order; queued exceptions are raised."""

    def __init__(self, *responses, prompt_tokens=100, completion_tokens=50, model="scripted"):
        self.responses = list(responses)
        self.prompts = []
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.model = model

    def generate(self, prompt, deadline=None):
        self.prompts.append(prompt)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        if not isinstance(item, str):
            item = json.dumps(item)
        return ContentResponse(
            content=item,
            usage=TokenUsage(
                prompt_tokens=self.prompt_tokens,
                completion_tokens=self.completion_tokens,
                total_tokens=self.prompt_tokens + self.completion_tokens,
                model=self.model,
            ),
        )


class CountingEmbeddingGenerator(MockEmbeddingGenerator):
    def __init__(self, dim=64):
        super().__init__(dim)
        self.texts = []

    def embed(self, text, deadline=None):
        self.texts.append(text)
        return super().embed(text, deadline)


@pytest.fixture
def scripted():
    return ScriptedTextGenerator


@pytest.fixture
def embedder():
    return CountingEmbeddingGenerator()


@pytest.fixture
def test_settings():
    return Settings(
        telegram_allowed_user_ids="1001,42",
        admin_telegram_id=42,
        default_adults=2,
        default_children=1,
        default_children_ages="6",
    )


@pytest.fixture
def services(test_settings, embedder):
    return Services(
        test_settings,
        MockTextGenerator(),
        MockTextGenerator("mock-normalizer"),
        embedder,
        rng=random.Random(7),
    )


@pytest.fixture
def add_recipe(db_session):
    """Insert a recipe (optionally with its embedding) and return it."""
    def _add(recipe_id, title, ingredients=(), tags=(), prep_time="30 mins", servings="4", embed_with=None):
        recipe = Recipe(
            id=recipe_id,
            title=title,
            ingredients=list(ingredients),
            instructions=["Cook it."],
            tags=list(tags),
            prep_time=prep_time,
            servings=servings,
            source_updated_at="2026-01-01T00:00:00.000Z",
        )
        db_session.add(recipe)
        db_session.commit()
        if embed_with is not None:
            text = embedding_source_text(recipe)
            EmbeddingStore(db_session).save(recipe_id, embed_with.embed(text), content_hash(text))
        return recipe
    return _add


@pytest.fixture
def pasta_and_salad(add_recipe):
    return [
        add_recipe("p1", "Pasta", ["200g pasta", "tomato sauce"], ["italian"]),
        add_recipe("s1", "Salad", ["lettuce", "tomato"], ["light"]),
    ]
