from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from ..agents.planner_agent import get_next_monday
from ..db import get_db
from ..deps import get_household, get_services
from ..errors import MealPlannerError, status_for, user_message
from ..models import utcnow
from ..schemas import DayPlan, HouseholdContext, WeeklyPlan
from ..wiring import Services

router = APIRouter()

# --- Schemas ---

class PlanGenerateRequest(BaseModel):
    user_id: str
    request: str = Field(min_length=1)
    week_start: Optional[date] = None
    replace: bool = False

    @field_validator("week_start")
    @classmethod
    def _must_be_monday(cls, v):
        if v is not None and v.weekday() != 0:
            raise ValueError("week_start must be a Monday")
        return v


class PlanAdjustRequest(BaseModel):
    feedback: str = Field(min_length=1)


class MealPlanOut(BaseModel):
    id: int
    user_id: str
    week_start: date
    status: str
    plan: List[DayPlan]
    shopping_list: Optional[List[str]] = None
    request: str = ""
    cadence_warnings: List[str] = []
    created_at: Optional[datetime] = None


def _out(plan: WeeklyPlan) -> MealPlanOut:
    return MealPlanOut(**plan.model_dump())


def _http_error(e: MealPlannerError) -> HTTPException:
    return HTTPException(status_code=status_for(e), detail=user_message(e))


# --- Endpoints ---

@router.post("/plans/generate", response_model=MealPlanOut)
def generate_plan(
    payload: PlanGenerateRequest,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    household: HouseholdContext = Depends(get_household),
):
    """Generate a Draft plan (409 when the week already has one, unless replace)."""
    week_start = payload.week_start or get_next_monday(utcnow().date())
    try:
        plan = services.lifecycle(db).start_plan(
            payload.user_id,
            payload.request,
            week_start,
            household,
            replace=payload.replace,
            deadline=services.deadline(),
        )
    except MealPlannerError as e:
        raise _http_error(e)
    return _out(plan)


@router.get("/plans", response_model=List[MealPlanOut])
def list_plans(
    user_id: str,
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    return [_out(p) for p in services.plans(db).list_recent_by_user_id(user_id, limit=limit)]


@router.get("/plans/{plan_id}", response_model=MealPlanOut)
def get_plan(plan_id: int, db: Session = Depends(get_db), services: Services = Depends(get_services)):
    try:
        return _out(services.plans(db).get_by_id(plan_id))
    except MealPlannerError as e:
        raise _http_error(e)


@router.post("/plans/{plan_id}/confirm", response_model=MealPlanOut)
def confirm_plan(
    plan_id: int,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    household: HouseholdContext = Depends(get_household),
):
    try:
        plan = services.lifecycle(db).confirm(plan_id, household, deadline=services.deadline())
    except MealPlannerError as e:
        raise _http_error(e)
    return _out(plan)


@router.post("/plans/{plan_id}/adjust", response_model=MealPlanOut)
def adjust_plan(
    plan_id: int,
    payload: PlanAdjustRequest,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    household: HouseholdContext = Depends(get_household),
):
    try:
        plan = services.lifecycle(db).adjust(plan_id, payload.feedback, household, deadline=services.deadline())
    except MealPlannerError as e:
        raise _http_error(e)
    return _out(plan)
