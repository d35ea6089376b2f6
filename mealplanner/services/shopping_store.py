from datetime import date
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import PersistenceError
from ..models import ShoppingList


class ShoppingListRepository:
    def __init__(self, db: Session):
        self.db = db

    def save(self, shopping_list: ShoppingList, commit: bool = True) -> int:
        try:
            self.db.add(shopping_list)
            if commit:
                self.db.commit()
            else:
                self.db.flush()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"failed to save shopping list: {e}") from e
        return shopping_list.id

    def get_by_meal_plan_id(self, plan_id: int) -> Optional[ShoppingList]:
        stmt = (
            select(ShoppingList)
            .where(ShoppingList.meal_plan_id == plan_id)
            .order_by(ShoppingList.id.desc())
        )
        return self.db.scalars(stmt).first()

    def get_by_user_and_week(self, user_id: str, week_start: date) -> Optional[ShoppingList]:
        stmt = (
            select(ShoppingList)
            .where(ShoppingList.user_id == user_id, ShoppingList.week_start == week_start)
            .order_by(ShoppingList.id.desc())
        )
        return self.db.scalars(stmt).first()

    def delete_by_meal_plan_id(self, plan_id: int) -> int:
        result = self.db.execute(delete(ShoppingList).where(ShoppingList.meal_plan_id == plan_id))
        self.db.commit()
        return result.rowcount or 0
