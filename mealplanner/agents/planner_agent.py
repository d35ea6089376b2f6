import logging
from datetime import date, datetime, timedelta
from typing import Optional

from ..core.ai_client import TextGenerator
from ..core.deadline import Deadline
from ..errors import CadenceViolation, MealPlannerError
from ..schemas import AgentMeta, HouseholdContext, WeeklyPlan
from ..services.recipe_store import RecipeRepository
from ..services.retriever import RecipeRetriever
from .analyst import run_analyst
from .cadence import strip_title_prefix, validate_cadence
from .chef import run_chef
from .grocery_agent import generate_shopping_list
from .reviewer import run_reviewer

logger = logging.getLogger("mealplanner.planner")


def get_next_monday(now: date | datetime) -> date:
    """The Monday after `now` (a Monday maps to the following week)."""
    today = now.date() if isinstance(now, datetime) else now
    return today + timedelta(days=7 - today.weekday())


class Planner:
    """Runs the planning stages in order: retrieve -> Analyst -> Chef.

    Revisions (Reviewer) and the confirm-time shopping list are separate
    entry points. Stage usage is collected in call order and attached to any
    error raised (`exc.metas`) so callers can still record it.
    """

    def __init__(
        self,
        retriever: RecipeRetriever,
        recipes: RecipeRepository,
        analyst_gen: TextGenerator,
        chef_gen: TextGenerator,
        reviewer_gen: Optional[TextGenerator] = None,
        reviewer_top_k: int = 40,
        strict_cadence: bool = False,
    ):
        self.retriever = retriever
        self.recipes = recipes
        self.analyst_gen = analyst_gen
        self.chef_gen = chef_gen
        self.reviewer_gen = reviewer_gen or chef_gen
        self.reviewer_top_k = reviewer_top_k
        self.strict_cadence = strict_cadence

    def generate_plan(
        self,
        request: str,
        household: HouseholdContext,
        week_start: date,
        deadline: Optional[Deadline] = None,
    ) -> tuple[WeeklyPlan, list[AgentMeta]]:
        metas: list[AgentMeta] = []
        try:
            # 1. Candidates
            candidates = self.retriever.select_candidates(request, deadline=deadline)

            # 2. Analyst
            proposal, meta = run_analyst(self.analyst_gen, request, household, candidates, deadline)
            metas.append(meta)
            warnings = validate_cadence(proposal.planned_meals)
            if warnings:
                logger.warning("Analyst schedule breaks cadence: %s", "; ".join(warnings))
                if self.strict_cadence:
                    raise CadenceViolation(warnings)

            # 3. Chef
            plan, meta = run_chef(self.chef_gen, proposal, week_start, deadline)
            metas.append(meta)
        except MealPlannerError as e:
            _attach_metas(e, metas)
            raise

        plan.request = request
        plan.cadence_warnings = warnings
        return plan, metas

    def revise_plan(
        self,
        current: WeeklyPlan,
        feedback: str,
        household: HouseholdContext,
        deadline: Optional[Deadline] = None,
    ) -> tuple[WeeklyPlan, list[AgentMeta]]:
        metas: list[AgentMeta] = []
        try:
            # Candidates are picked by the feedback, not the original request
            candidates = self.retriever.select_candidates(
                feedback, top_k=self.reviewer_top_k, deadline=deadline
            )
            current_recipes = self.recipes.get_by_ids(
                [d.recipe_id for d in current.plan if d.recipe_id]
            )
            revised, meta = run_reviewer(
                self.reviewer_gen,
                current,
                current.request,
                feedback,
                household,
                candidates,
                current_recipes=current_recipes,
                deadline=deadline,
            )
            metas.append(meta)
        except MealPlannerError as e:
            _attach_metas(e, metas)
            raise
        return revised, metas

    def generate_shopping_list(
        self,
        plan: WeeklyPlan,
        household: HouseholdContext,
        deadline: Optional[Deadline] = None,
    ) -> tuple[list[str], AgentMeta]:
        recipes_by_id = {r.id: r for r in self.recipes.get_by_ids([d.recipe_id for d in plan.plan if d.recipe_id])}
        for day in plan.plan:
            # Plans saved before IDs were attached still resolve by title
            if not day.recipe_id:
                recipe = self.recipes.get_by_title(strip_title_prefix(day.recipe_title))
                if recipe is not None:
                    day.recipe_id = recipe.id
                    recipes_by_id[recipe.id] = recipe
        return generate_shopping_list(self.chef_gen, plan, recipes_by_id, household, deadline)


def _attach_metas(error: MealPlannerError, metas: list[AgentMeta]):
    if error.meta is not None:
        metas.append(error.meta)
    error.metas = tuple(metas)
