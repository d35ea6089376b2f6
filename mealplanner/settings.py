from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./data/mealplanner.db"
    redis_url: str = "redis://localhost:6379/0"

    # AI
    ai_mode: str = "mock"  # "mock" or "live"
    gemini_api_key: Optional[str] = None
    gemini_text_model: str = "gemini-2.5-flash"
    gemini_embedding_model: str = "text-embedding-004"
    groq_api_key: Optional[str] = None
    groq_analyst_model: str = "llama-3.3-70b-versatile"
    groq_normalizer_model: str = "llama-3.1-8b-instant"
    llm_timeout_seconds: float = 30.0
    llm_max_attempts: int = 3
    rate_limit_default_wait_seconds: float = 5.0
    rate_limit_buffer_seconds: float = 0.5

    # Ghost CMS
    ghost_api_url: str = ""
    ghost_content_api_key: str = ""
    ghost_admin_api_key: Optional[str] = None
    ingest_delay_seconds: float = 0.0

    # Telegram
    telegram_bot_token: str = ""
    telegram_webhook_url: str = ""
    telegram_allowed_user_ids: str = ""
    telegram_allow_user_id: Optional[str] = None  # legacy single-user variable
    admin_telegram_id: int = 0

    # Household defaults
    default_adults: int = 2
    default_children: int = 1
    default_children_ages: str = ""
    default_cooking_frequency: int = 5

    # Planner
    small_pool_threshold: int = 20
    retrieval_top_k: int = 20
    reviewer_top_k: int = 40
    session_ttl_seconds: int = 900
    context_bloat_threshold: int = 4000
    planning_timeout_seconds: float = 120.0
    strict_cadence: bool = False

    @property
    def admin_api_key(self) -> str:
        return self.ghost_admin_api_key or self.ghost_content_api_key

    @property
    def allowed_user_ids(self) -> set[str]:
        raw = [self.telegram_allowed_user_ids, self.telegram_allow_user_id or ""]
        ids = set()
        for chunk in raw:
            for part in chunk.split(","):
                if part.strip():
                    ids.add(part.strip())
        return ids

    @property
    def children_ages(self) -> list[int]:
        ages = [int(a) for a in self.default_children_ages.split(",") if a.strip()]
        if not ages:
            # Age 5 for every child when nothing is configured
            ages = [5] * self.default_children
        return ages


settings = Settings()
