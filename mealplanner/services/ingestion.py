"""Ghost posts -> recipes + embeddings.

A recipe row and its embedding row are committed together; a post that
fails anywhere leaves neither behind.
"""

import logging
import time
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.deadline import Deadline
from ..errors import MealPlannerError, PersistenceError
from ..infra.ghost_client import GhostClient, GhostPost
from ..schemas import AgentMeta, IngestionReport
from .embedding_store import EmbeddingStore
from .extraction import RecipeExtractor
from .metrics import MetricsStore
from .recipe_store import RecipeRepository

logger = logging.getLogger("mealplanner.ingest")


class IngestionService:
    def __init__(
        self,
        db: Session,
        extractor: RecipeExtractor,
        ghost: Optional[GhostClient] = None,
        metrics: Optional[MetricsStore] = None,
        delay_seconds: float = 0.0,
    ):
        self.db = db
        self.extractor = extractor
        self.ghost = ghost
        self.recipes = RecipeRepository(db)
        self.embeddings = EmbeddingStore(db)
        self.metrics = metrics or MetricsStore(db)
        self.delay_seconds = delay_seconds

    def ingest_post(
        self,
        post: GhostPost,
        skip_if_unchanged: bool = True,
        deadline: Optional[Deadline] = None,
    ) -> bool:
        """Ingest one post. Returns True when the extractor ran."""
        metas: list[AgentMeta] = []
        existing = self.recipes.get(post.id)
        extracted = False
        try:
            if (
                skip_if_unchanged
                and existing is not None
                and post.updated_at
                and existing.source_updated_at == post.updated_at
            ):
                recipe = existing
            else:
                recipe, meta = self.extractor.extract_recipe(
                    post.id,
                    post.title,
                    post.html or "",
                    updated_at=post.updated_at or "",
                    tags=post.tag_names,
                    deadline=deadline,
                )
                metas.append(meta)
                recipe = self.recipes.save(recipe, commit=False)
                extracted = True

            _, meta = self.extractor.process_and_save_embedding(
                recipe, self.embeddings, deadline=deadline, commit=False
            )
            metas.append(meta)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"failed to ingest post {post.id}: {e}") from e
        except MealPlannerError:
            self.db.rollback()
            raise
        finally:
            self.metrics.record_all(metas)

        logger.info("Ingested '%s' (%s)", post.title, "extracted" if extracted else "unchanged")
        return extracted

    def ingest_all(self, skip_if_unchanged: bool = True) -> IngestionReport:
        if self.ghost is None:
            raise MealPlannerError("ingestion needs a Ghost client")
        posts = self.ghost.fetch_recipes()
        report = IngestionReport()

        for i, post in enumerate(posts):
            if i and self.delay_seconds:
                time.sleep(self.delay_seconds)
            try:
                if self.ingest_post(post, skip_if_unchanged=skip_if_unchanged):
                    report.processed += 1
                else:
                    report.skipped += 1
            except MealPlannerError as e:
                # One bad post must not stop the batch
                logger.error("Failed to ingest post %s ('%s'): %s", post.id, post.title, e)
                report.failed += 1

        report.removed = self.remove_orphans({p.id for p in posts})
        logger.info(
            "Ingestion finished: %d processed, %d skipped, %d failed, %d removed",
            report.processed, report.skipped, report.failed, report.removed,
        )
        return report

    def remove_orphans(self, live_ids: set[str]) -> int:
        """Delete recipes whose post no longer exists; embeddings cascade."""
        removed = 0
        for recipe_id in self.recipes.list_ids():
            if recipe_id not in live_ids and self.recipes.delete(recipe_id):
                logger.info("Removed recipe %s (post deleted)", recipe_id)
                removed += 1
        return removed
