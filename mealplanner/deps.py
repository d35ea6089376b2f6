"""FastAPI dependencies for the meal planner API.

Provides:
- Database session dependency (re-exported from db)
- The process-wide Services container and the chat bot
"""

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from .db import get_db
from .schemas import HouseholdContext
from .wiring import Services


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return services


def get_household(services: Services = Depends(get_services)) -> HouseholdContext:
    return services.household()


def get_chat_bot(request: Request):
    bot = getattr(request.app.state, "chat_bot", None)
    if bot is None:
        raise HTTPException(status_code=503, detail="Telegram bot is not configured")
    return bot


__all__ = ["get_db", "get_services", "get_household", "get_chat_bot", "Session"]
