"""Process wiring: builds every collaborator once from Settings.

Long-lived pieces (provider clients, Ghost / Telegram clients, the user lock
registry) live on the Services object; anything that needs a database
session is built per session through the factory methods.
"""

import logging
import random
from typing import Optional

from sqlalchemy.orm import Session

from .agents.planner_agent import Planner
from .core.ai_client import EmbeddingGenerator, GeminiClient, GroqClient, RetryPolicy, TextGenerator
from .core.deadline import Deadline
from .core.mock_ai import MockEmbeddingGenerator, MockTextGenerator
from .infra.ghost_client import GhostClient
from .infra.telegram_client import TelegramClient
from .schemas import HouseholdContext
from .services.clipper import RecipeClipper
from .services.embedding_store import EmbeddingStore
from .services.extraction import RecipeExtractor
from .services.ingestion import IngestionService
from .services.lifecycle import PlanLifecycle
from .services.locks import UserLocks
from .services.metrics import MetricsStore
from .services.plan_store import PlanRepository
from .services.recipe_store import RecipeRepository
from .services.retriever import RecipeRetriever
from .services.sessions import SessionManager
from .services.shopping_store import ShoppingListRepository
from .settings import Settings

logger = logging.getLogger("mealplanner")


class Services:
    def __init__(
        self,
        settings: Settings,
        analyst_gen: TextGenerator,
        normalizer_gen: TextGenerator,
        embed_gen: EmbeddingGenerator,
        ghost: Optional[GhostClient] = None,
        telegram: Optional[TelegramClient] = None,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings
        self.analyst_gen = analyst_gen
        self.normalizer_gen = normalizer_gen
        self.embed_gen = embed_gen
        self.ghost = ghost
        self.telegram = telegram
        self.rng = rng
        self.locks = UserLocks()

    @classmethod
    def from_settings(cls, settings: Settings) -> "Services":
        analyst_gen, normalizer_gen, embed_gen = build_generators(settings)
        ghost = None
        if settings.ghost_api_url:
            ghost = GhostClient(settings.ghost_api_url, settings.ghost_content_api_key, settings.admin_api_key)
        telegram = TelegramClient(settings.telegram_bot_token) if settings.telegram_bot_token else None
        return cls(settings, analyst_gen, normalizer_gen, embed_gen, ghost=ghost, telegram=telegram)

    def household(self) -> HouseholdContext:
        return HouseholdContext(
            adults=self.settings.default_adults,
            children=self.settings.default_children,
            children_ages=self.settings.children_ages,
            cooking_frequency=self.settings.default_cooking_frequency,
        )

    def deadline(self) -> Deadline:
        return Deadline.after(self.settings.planning_timeout_seconds)

    def retriever(self, db: Session, top_k: Optional[int] = None) -> RecipeRetriever:
        return RecipeRetriever(
            RecipeRepository(db),
            EmbeddingStore(db),
            self.embed_gen,
            small_pool_threshold=self.settings.small_pool_threshold,
            top_k=top_k or self.settings.retrieval_top_k,
            rng=self.rng,
        )

    def planner(self, db: Session) -> Planner:
        return Planner(
            self.retriever(db),
            RecipeRepository(db),
            analyst_gen=self.analyst_gen,
            chef_gen=self.analyst_gen,
            reviewer_gen=self.analyst_gen,
            reviewer_top_k=self.settings.reviewer_top_k,
            strict_cadence=self.settings.strict_cadence,
        )

    def metrics(self, db: Session) -> MetricsStore:
        return MetricsStore(db)

    def plans(self, db: Session) -> PlanRepository:
        return PlanRepository(db)

    def lifecycle(self, db: Session) -> PlanLifecycle:
        return PlanLifecycle(self.planner(db), PlanRepository(db), ShoppingListRepository(db), self.metrics(db))

    def sessions(self, db: Session) -> SessionManager:
        return SessionManager(db)

    def extractor(self) -> RecipeExtractor:
        return RecipeExtractor(self.normalizer_gen, self.embed_gen)

    def ingestion(self, db: Session) -> IngestionService:
        return IngestionService(
            db,
            self.extractor(),
            ghost=self.ghost,
            metrics=self.metrics(db),
            delay_seconds=self.settings.ingest_delay_seconds,
        )

    def clipper(self) -> Optional[RecipeClipper]:
        if self.ghost is None:
            return None
        return RecipeClipper(self.ghost, self.normalizer_gen)


def build_generators(settings: Settings) -> tuple[TextGenerator, TextGenerator, EmbeddingGenerator]:
    """(analyst, normalizer, embedder) for the configured AI mode."""
    if settings.ai_mode.lower() != "live":
        logger.info("AI mode is '%s': using mock generators", settings.ai_mode)
        return MockTextGenerator(), MockTextGenerator("mock-normalizer"), MockEmbeddingGenerator()

    retry = RetryPolicy(
        max_attempts=settings.llm_max_attempts,
        default_wait=settings.rate_limit_default_wait_seconds,
        buffer=settings.rate_limit_buffer_seconds,
    )
    gemini = GeminiClient(
        settings.gemini_api_key,
        text_model=settings.gemini_text_model,
        embedding_model=settings.gemini_embedding_model,
        retry=retry,
    )
    if settings.groq_api_key:
        analyst = GroqClient(settings.groq_api_key, settings.groq_analyst_model, retry=retry, timeout=settings.llm_timeout_seconds)
        normalizer = GroqClient(settings.groq_api_key, settings.groq_normalizer_model, retry=retry, timeout=settings.llm_timeout_seconds)
        return analyst, normalizer, gemini
    logger.warning("GROQ_API_KEY not set: using Gemini for text generation")
    return gemini, gemini, gemini
