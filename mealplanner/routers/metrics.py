from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas import DailyUsage
from ..services.metrics import MetricsStore

router = APIRouter()


@router.get("/metrics/daily", response_model=list[DailyUsage])
def daily_usage(days: int = Query(7, ge=1, le=90), db: Session = Depends(get_db)):
    """Token usage per day, newest first."""
    return MetricsStore(db).get_daily_usage(days)
