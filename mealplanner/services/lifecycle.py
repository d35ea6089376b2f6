"""Plan lifecycle: Draft -> Final on confirm, Draft -> new Draft on adjust / start over."""

import logging
from datetime import date
from typing import Optional

from ..agents.planner_agent import Planner
from ..core.deadline import Deadline
from ..errors import InvalidPlanTransition, MealPlannerError, WeekOccupiedError
from ..models import PlanStatus, ShoppingList
from ..schemas import AgentMeta, HouseholdContext, WeeklyPlan
from .metrics import MetricsStore
from .plan_store import PlanRepository
from .shopping_store import ShoppingListRepository

logger = logging.getLogger("mealplanner.planner")


class PlanLifecycle:
    def __init__(
        self,
        planner: Planner,
        plans: PlanRepository,
        shopping: ShoppingListRepository,
        metrics: Optional[MetricsStore] = None,
    ):
        self.planner = planner
        self.plans = plans
        self.shopping = shopping
        self.metrics = metrics
        # Metas of the last operation, newest last
        self.last_metas: list[AgentMeta] = []

    def start_plan(
        self,
        user_id: str,
        request: str,
        week_start: date,
        household: HouseholdContext,
        replace: bool = False,
        deadline: Optional[Deadline] = None,
    ) -> WeeklyPlan:
        """Plan a new week. An occupied week is refused unless `replace`."""
        if not replace and self.plans.exists_for_week(user_id, week_start):
            raise WeekOccupiedError(user_id, week_start)

        plan, metas = self._run(lambda: self.planner.generate_plan(request, household, week_start, deadline))
        # Drafts carry no shopping list; it is built on confirm
        plan.shopping_list = None
        plan.status = PlanStatus.DRAFT
        self._save_replacement(user_id, plan)
        logger.info("Draft plan %s saved for user %s week %s", plan.id, user_id, week_start)
        return plan

    def confirm(self, plan_id: int, household: HouseholdContext, deadline: Optional[Deadline] = None) -> WeeklyPlan:
        plan = self.plans.get_by_id(plan_id)
        if plan.status != PlanStatus.DRAFT:
            raise InvalidPlanTransition(plan_id, plan.status, PlanStatus.FINAL)

        # A failure here leaves the plan in Draft
        items, _ = self._run(lambda: self._shopping_list(plan, household, deadline))
        plan.shopping_list = items

        self.plans.update_status(plan_id, PlanStatus.FINAL, shopping_list=items)
        plan.status = PlanStatus.FINAL
        self.shopping.save(
            ShoppingList(
                user_id=plan.user_id,
                meal_plan_id=plan_id,
                week_start=plan.week_start,
                items=items,
            )
        )
        logger.info("Plan %s confirmed with %d shopping items", plan_id, len(items))
        return plan

    def adjust(
        self,
        plan_id: int,
        feedback: str,
        household: HouseholdContext,
        deadline: Optional[Deadline] = None,
    ) -> WeeklyPlan:
        """Revise a draft from feedback; the revision is saved as a new Draft."""
        current = self.plans.get_by_id(plan_id)
        if current.status != PlanStatus.DRAFT:
            raise InvalidPlanTransition(plan_id, current.status, PlanStatus.DRAFT)

        revised, metas = self._run(lambda: self.planner.revise_plan(current, feedback, household, deadline))
        revised.status = PlanStatus.DRAFT
        revised.request = current.request
        self._save_replacement(current.user_id, revised)
        logger.info("Plan %s revised into %s", plan_id, revised.id)
        return revised

    def start_over(self, plan_id: int, household: HouseholdContext, deadline: Optional[Deadline] = None) -> WeeklyPlan:
        """Re-run planning for the same week and request."""
        current = self.plans.get_by_id(plan_id)
        if current.status != PlanStatus.DRAFT:
            raise InvalidPlanTransition(plan_id, current.status, PlanStatus.DRAFT)
        return self.start_plan(
            current.user_id,
            current.request,
            current.week_start,
            household,
            replace=True,
            deadline=deadline,
        )

    def _shopping_list(self, plan: WeeklyPlan, household: HouseholdContext, deadline: Optional[Deadline]):
        items, meta = self.planner.generate_shopping_list(plan, household, deadline)
        return items, [meta]

    def _run(self, step):
        """Run a planner step, recording its metas whether it succeeds or not."""
        self.last_metas = []
        try:
            value, metas = step()
        except MealPlannerError as e:
            self.last_metas = list(e.metas) or ([e.meta] if e.meta is not None else [])
            self._record(self.last_metas)
            raise
        self.last_metas = list(metas)
        self._record(self.last_metas)
        return value, metas

    def _record(self, metas: list[AgentMeta]):
        if self.metrics is not None:
            self.metrics.record_all(metas)

    def _save_replacement(self, user_id: str, plan: WeeklyPlan) -> int:
        return self.plans.save_replacing(user_id, plan)
