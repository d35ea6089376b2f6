# Meal Planner API Main Entry Point
import logging
import os
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from .db import Base, get_engine
from .errors import ExternalServiceError
from .routers.metrics import router as metrics_router
from .routers.plan import router as plan_router
from .routers.ready import router as ready_router
from .routers.recipes import router as recipes_router
from .routers.telegram import router as telegram_router
from .services.chat_bot import ChatBot
from .settings import settings
from .wiring import Services

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger("mealplanner")


def _prepare_database():
    url = settings.database_url
    if url.startswith("sqlite:///") and ":memory:" not in url:
        directory = os.path.dirname(url[len("sqlite:///"):])
        if directory:
            os.makedirs(directory, exist_ok=True)
    # Deployed databases are migrated with alembic; this only fills in missing tables
    Base.metadata.create_all(bind=get_engine())


@asynccontextmanager
async def lifespan(app: FastAPI):
    _prepare_database()
    bot = app.state.chat_bot
    if bot is not None and settings.telegram_webhook_url:
        try:
            bot.telegram.set_webhook(settings.telegram_webhook_url)
        except ExternalServiceError as e:
            logger.error("Failed to set Telegram webhook: %s", e)
    logger.info("Meal planner started (ai_mode=%s)", settings.ai_mode)
    yield


# Rate limiter (per-IP)
limiter = Limiter(key_func=get_remote_address, default_limits=["100/minute"])

app = FastAPI(title="Meal Planner API", version="0.1.0", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

services = Services.from_settings(settings)
app.state.services = services
app.state.chat_bot = ChatBot(services, services.telegram) if services.telegram else None

app.include_router(ready_router, prefix="/api", tags=["ready"])
app.include_router(plan_router, prefix="/api", tags=["plans"])
app.include_router(recipes_router, prefix="/api", tags=["recipes"])
app.include_router(metrics_router, prefix="/api", tags=["metrics"])
app.include_router(telegram_router, prefix="/api", tags=["telegram"])
