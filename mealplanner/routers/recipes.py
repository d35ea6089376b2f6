"""Recipe corpus API router.

Endpoints:
- GET /api/recipes - List recipes (optional title search)
- GET /api/recipes/{id} - Get one recipe
- POST /api/recipes/ingest - Pull every post from Ghost and index it
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import get_services
from ..errors import MealPlannerError, status_for, user_message
from ..models import Recipe, RecipeEmbedding
from ..schemas import IngestionReport
from ..wiring import Services

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)
logger = logging.getLogger("mealplanner.recipes")


class RecipeOut(BaseModel):
    id: str
    title: str
    ingredients: list[str]
    instructions: list[str]
    tags: list[str]
    prep_time: str
    servings: str
    source_updated_at: str
    has_embedding: bool = False
    updated_at: Optional[datetime] = None


class IngestRequest(BaseModel):
    skip_if_unchanged: bool = True


def _out(recipe: Recipe, embedded: set[str]) -> RecipeOut:
    return RecipeOut(
        id=recipe.id,
        title=recipe.title,
        ingredients=recipe.ingredients or [],
        instructions=recipe.instructions or [],
        tags=recipe.tags or [],
        prep_time=recipe.prep_time or "",
        servings=recipe.servings or "",
        source_updated_at=recipe.source_updated_at or "",
        has_embedding=recipe.id in embedded,
        updated_at=recipe.updated_at,
    )


@router.get("/recipes", response_model=list[RecipeOut])
def list_recipes(
    q: Optional[str] = Query(None, description="Case-insensitive title search"),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    stmt = select(Recipe).order_by(Recipe.title).limit(limit)
    if q:
        stmt = stmt.where(Recipe.title.ilike(f"%{q}%"))
    recipes = list(db.scalars(stmt))
    embedded = set(db.scalars(select(RecipeEmbedding.recipe_id)))
    return [_out(r, embedded) for r in recipes]


@router.get("/recipes/{recipe_id}", response_model=RecipeOut)
def get_recipe(recipe_id: str, db: Session = Depends(get_db)):
    recipe = db.get(Recipe, recipe_id)
    if not recipe:
        raise HTTPException(status_code=404, detail="Recipe not found")
    embedded = {recipe_id} if db.get(RecipeEmbedding, recipe_id) else set()
    return _out(recipe, embedded)


@router.post("/recipes/ingest", response_model=IngestionReport)
@limiter.limit("10/minute")
def ingest_recipes(
    request: Request,
    payload: IngestRequest,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    """Fetch every Ghost post and (re)index recipes and embeddings."""
    if services.ghost is None:
        raise HTTPException(status_code=503, detail="Ghost is not configured")
    try:
        report = services.ingestion(db).ingest_all(skip_if_unchanged=payload.skip_if_unchanged)
    except MealPlannerError as e:
        logger.error("Ingestion failed: %s", e)
        raise HTTPException(status_code=status_for(e), detail=user_message(e))
    return report
