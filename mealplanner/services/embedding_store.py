import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.vectors import cosine_similarity, decode_vector, encode_vector
from ..errors import VectorCorruptionError
from ..models import RecipeEmbedding

logger = logging.getLogger("mealplanner.store")


@dataclass
class EmbeddingRecord:
    recipe_id: str
    embedding: list[float]
    text_hash: str


class EmbeddingStore:
    """One vector per recipe with exact cosine search.

    FindSimilar is a full scan; fine for a corpus in the low thousands.
    """

    def __init__(self, db: Session):
        self.db = db

    def save(self, recipe_id: str, vector: Sequence[float], text_hash: str, commit: bool = True):
        """Upsert the vector and hash for a recipe."""
        row = self.db.get(RecipeEmbedding, recipe_id)
        if row is None:
            row = RecipeEmbedding(recipe_id=recipe_id)
            self.db.add(row)
        row.embedding = encode_vector(vector)
        row.text_hash = text_hash
        if commit:
            self.db.commit()
        else:
            self.db.flush()

    def get(self, recipe_id: str) -> Optional[EmbeddingRecord]:
        row = self.db.get(RecipeEmbedding, recipe_id)
        if row is None:
            return None
        return EmbeddingRecord(
            recipe_id=row.recipe_id,
            embedding=decode_vector(row.embedding).tolist(),
            text_hash=row.text_hash,
        )

    def find_similar(
        self,
        query: Sequence[float],
        limit: int,
        exclude_ids: Optional[Iterable[str]] = None,
    ) -> list[str]:
        """Recipe IDs ranked by descending cosine similarity to `query`."""
        if limit <= 0:
            return []
        excluded = set(exclude_ids or [])

        stmt = select(RecipeEmbedding.recipe_id, RecipeEmbedding.embedding)
        if excluded:
            stmt = stmt.where(RecipeEmbedding.recipe_id.not_in(excluded))

        scored: list[tuple[float, str]] = []
        for recipe_id, raw in self.db.execute(stmt):
            try:
                vector = decode_vector(raw)
            except VectorCorruptionError as e:
                logger.warning("Skipping corrupt embedding for recipe %s: %s", recipe_id, e)
                continue
            scored.append((cosine_similarity(query, vector), recipe_id))

        # Stable sort on the raw score; ties keep scan order
        scored.sort(key=lambda item: item[0], reverse=True)
        return [recipe_id for _, recipe_id in scored[:limit]]
