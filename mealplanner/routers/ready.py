import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from ..db import get_db
from ..infra.redis_client import get_redis

router = APIRouter()
logger = logging.getLogger("mealplanner")


@router.get("/ready")
async def ready(db: Session = Depends(get_db)):
    db_ok = False
    try:
        db.execute(text("SELECT 1"))
        db_ok = True
    except Exception:
        logger.warning("Readiness: database check failed", exc_info=True)

    redis_ok = False
    try:
        r = await get_redis()
        redis_ok = bool(await r.ping())
    except Exception:
        logger.warning("Readiness: redis check failed", exc_info=True)
    return {"ok": db_ok, "db_ok": db_ok, "redis_ok": redis_ok}
