import logging
import random
from typing import Optional

from ..core.ai_client import EmbeddingGenerator
from ..core.deadline import Deadline
from ..errors import NoCandidatesError
from ..models import Recipe
from .embedding_store import EmbeddingStore
from .recipe_store import RecipeRepository

logger = logging.getLogger("mealplanner.planner")


class RecipeRetriever:
    """Chooses the candidate recipes shown to the planning stages.

    Small corpora go in whole (shuffled so no recipe is favoured by position);
    larger ones are narrowed to the top-K most similar to the query text.
    """

    def __init__(
        self,
        recipes: RecipeRepository,
        embeddings: EmbeddingStore,
        embed_gen: EmbeddingGenerator,
        small_pool_threshold: int = 20,
        top_k: int = 20,
        rng: Optional[random.Random] = None,
    ):
        self.recipes = recipes
        self.embeddings = embeddings
        self.embed_gen = embed_gen
        self.small_pool_threshold = small_pool_threshold
        self.top_k = top_k
        self.rng = rng or random.Random()

    def select_candidates(
        self,
        query: str,
        top_k: Optional[int] = None,
        deadline: Optional[Deadline] = None,
    ) -> list[Recipe]:
        total = self.recipes.count()
        if total <= self.small_pool_threshold:
            candidates = self.recipes.list()
            self.rng.shuffle(candidates)
            logger.info("Small recipe pool (%d): using every recipe", total)
        else:
            query_vector = self.embed_gen.embed(query, deadline=deadline)
            ids = self.embeddings.find_similar(query_vector, top_k or self.top_k)
            candidates = self.recipes.get_by_ids(ids)
            logger.info("Retrieved %d of %d recipes by similarity", len(candidates), total)

        if not candidates:
            raise NoCandidatesError("no recipes found to create a plan")
        return candidates
