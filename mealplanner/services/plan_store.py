from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import InvalidPlanTransition, PersistenceError, PlanNotFoundError
from ..models import MealPlan, PlanStatus
from ..schemas import WeeklyPlan

logger = logging.getLogger("mealplanner.planner")

ACTIVE_STATUSES = (PlanStatus.DRAFT, PlanStatus.FINAL)


class PlanRepository:
    """Weekly plans. Rows are append-only apart from their status."""

    def __init__(self, db: Session):
        self.db = db

    def exists_for_week(self, user_id: str, week_start: date) -> bool:
        stmt = (
            select(MealPlan.id)
            .where(
                MealPlan.user_id == user_id,
                MealPlan.week_start == week_start,
                MealPlan.status.in_(ACTIVE_STATUSES),
            )
            .limit(1)
        )
        return self.db.scalar(stmt) is not None

    def save(self, user_id: str, plan: WeeklyPlan) -> int:
        """Insert the plan as a new row and return its ID."""
        row = self._new_row(user_id, plan)
        try:
            self.db.add(row)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"failed to save plan for user {user_id}: {e}") from e
        return self._saved(row, plan)

    def save_replacing(self, user_id: str, plan: WeeklyPlan) -> int:
        """Insert the plan and move the week's other active plans to Adjusting.

        Both writes share one commit, so a failure leaves the week as it was.
        """
        row = self._new_row(user_id, plan)
        try:
            self.db.add(row)
            self.db.flush()
            result = self.db.execute(self._supersede_stmt(user_id, plan.week_start, keep_id=row.id))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"failed to save replacement plan for {user_id}/{plan.week_start}: {e}") from e
        if result.rowcount:
            logger.info("Superseded %d plan(s) for user %s week %s", result.rowcount, user_id, plan.week_start)
        return self._saved(row, plan)

    def update_status(self, plan_id: int, status: str, shopping_list: Optional[list[str]] = None) -> None:
        """Draft -> Final. Any other transition is refused."""
        row = self._get_row(plan_id)
        if row.status != PlanStatus.DRAFT or status != PlanStatus.FINAL:
            raise InvalidPlanTransition(plan_id, row.status, status)
        row.status = status
        if shopping_list is not None:
            row.shopping_list_json = list(shopping_list)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"failed to update plan {plan_id}: {e}") from e

    def get_by_id(self, plan_id: int) -> WeeklyPlan:
        return WeeklyPlan.from_row(self._get_row(plan_id))

    def list_recent_by_user_id(self, user_id: str, limit: int = 10) -> list[WeeklyPlan]:
        stmt = (
            select(MealPlan)
            .where(MealPlan.user_id == user_id)
            .order_by(MealPlan.created_at.desc(), MealPlan.id.desc())
            .limit(limit)
        )
        return [WeeklyPlan.from_row(r) for r in self.db.scalars(stmt)]

    def _new_row(self, user_id: str, plan: WeeklyPlan) -> MealPlan:
        return MealPlan(
            user_id=user_id,
            week_start=plan.week_start,
            status=plan.status or PlanStatus.DRAFT,
            plan_json=[d.model_dump() for d in plan.plan],
            shopping_list_json=plan.shopping_list,
            request_text=plan.request or "",
        )

    def _saved(self, row: MealPlan, plan: WeeklyPlan) -> int:
        self.db.refresh(row)
        plan.id = row.id
        plan.user_id = row.user_id
        plan.created_at = row.created_at
        return row.id

    @staticmethod
    def _supersede_stmt(user_id: str, week_start: date, keep_id: Optional[int] = None):
        stmt = (
            update(MealPlan)
            .where(
                MealPlan.user_id == user_id,
                MealPlan.week_start == week_start,
                MealPlan.status.in_(ACTIVE_STATUSES),
            )
            .values(status=PlanStatus.ADJUSTING)
        )
        if keep_id is not None:
            stmt = stmt.where(MealPlan.id != keep_id)
        return stmt

    def _get_row(self, plan_id: int) -> MealPlan:
        row = self.db.get(MealPlan, plan_id)
        if row is None:
            raise PlanNotFoundError(plan_id)
        return row
