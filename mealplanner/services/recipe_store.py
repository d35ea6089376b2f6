from __future__ import annotations

from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import PersistenceError
from ..models import Recipe


class RecipeRepository:
    """Recipe corpus: read paths for retrieval, write paths for ingestion."""

    def __init__(self, db: Session):
        self.db = db

    def count(self) -> int:
        return self.db.scalar(select(func.count()).select_from(Recipe)) or 0

    def list(self, exclude_ids: Optional[Iterable[str]] = None) -> list[Recipe]:
        stmt = select(Recipe).order_by(Recipe.title)
        excluded = list(exclude_ids or [])
        if excluded:
            stmt = stmt.where(Recipe.id.not_in(excluded))
        return list(self.db.scalars(stmt))

    def list_ids(self) -> list[str]:
        return list(self.db.scalars(select(Recipe.id)))

    def get(self, recipe_id: str) -> Optional[Recipe]:
        return self.db.get(Recipe, recipe_id)

    def get_by_ids(self, ids: list[str]) -> list[Recipe]:
        """Recipes in the order of `ids`; unknown IDs are skipped."""
        if not ids:
            return []
        rows = {r.id: r for r in self.db.scalars(select(Recipe).where(Recipe.id.in_(ids)))}
        return [rows[i] for i in ids if i in rows]

    def get_by_title(self, title: str) -> Optional[Recipe]:
        return self.db.scalars(select(Recipe).where(Recipe.title == title)).first()

    def save(self, recipe: Recipe, commit: bool = True) -> Recipe:
        """Insert or update by ID."""
        try:
            merged = self.db.merge(recipe)
            if commit:
                self.db.commit()
            else:
                self.db.flush()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"failed to save recipe {recipe.id}: {e}") from e
        return merged

    def delete(self, recipe_id: str) -> bool:
        row = self.db.get(Recipe, recipe_id)
        if row is None:
            return False
        self.db.delete(row)
        self.db.commit()
        return True
