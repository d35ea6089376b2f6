import hashlib
import logging
from typing import Iterable, Optional

from ..agents.output import parse_model_output
from ..agents.prompts import EXTRACTOR_PROMPT
from ..core.ai_client import EmbeddingGenerator, TextGenerator, TimedCall
from ..core.deadline import Deadline
from ..core.vectors import as_float32
from ..models import Recipe
from ..schemas import AgentMeta, ExtractedRecipe, TokenUsage
from .embedding_store import EmbeddingStore

logger = logging.getLogger("mealplanner.ingest")


def embedding_source_text(recipe: Recipe) -> str:
    """Canonical semantic projection of a recipe (order preserving)."""
    return (
        f"Title: {recipe.title}\n"
        f"Tags: {', '.join(recipe.tags or [])}\n"
        f"Ingredients: {', '.join(recipe.ingredients or [])}\n"
        f"Prep Time: {recipe.prep_time or ''}"
    )


def content_hash(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def merge_tags(*groups: Iterable[str]) -> list[str]:
    """Lower-cased union of tag groups, first occurrence wins."""
    seen: dict[str, None] = {}
    for group in groups:
        for tag in group or []:
            key = tag.strip().lower()
            if key:
                seen.setdefault(key, None)
    return list(seen)


class RecipeExtractor:
    """Raw CMS content -> structured Recipe, plus cached embeddings."""

    def __init__(self, text_gen: TextGenerator, embed_gen: EmbeddingGenerator):
        self.text_gen = text_gen
        self.embed_gen = embed_gen

    def extract_recipe(
        self,
        post_id: str,
        title: str,
        html: str,
        updated_at: str = "",
        tags: Optional[list[str]] = None,
        deadline: Optional[Deadline] = None,
    ) -> tuple[Recipe, AgentMeta]:
        timer = TimedCall()
        prompt = EXTRACTOR_PROMPT.format(title=title, html=html)
        resp = self.text_gen.generate(prompt, deadline=deadline)
        parsed = parse_model_output("Extractor", resp.content, ExtractedRecipe)

        recipe = Recipe(
            id=post_id,
            title=parsed.title or title,
            ingredients=parsed.ingredients,
            instructions=parsed.instructions,
            tags=merge_tags(parsed.tags, tags or []),
            prep_time=parsed.prep_time,
            servings=parsed.servings,
            source_updated_at=updated_at,
        )
        meta = AgentMeta(agent_name="Extractor", usage=resp.usage, latency_ms=timer.elapsed_ms)
        return recipe, meta

    def process_and_save_embedding(
        self,
        recipe: Recipe,
        store: EmbeddingStore,
        deadline: Optional[Deadline] = None,
        commit: bool = True,
    ) -> tuple[list[float], AgentMeta]:
        """Embed the recipe unless its semantic text is unchanged.

        The stored hash is refreshed on every call, hit or miss.
        """
        source_text = embedding_source_text(recipe)
        current_hash = content_hash(source_text)
        meta = AgentMeta(agent_name="Embedding")

        existing = store.get(recipe.id)
        if existing is not None and existing.text_hash == current_hash:
            # Cache hit: zero tokens, zero latency
            vector = existing.embedding
            logger.info("Embedding cache hit for '%s'", recipe.title)
        else:
            timer = TimedCall()
            vector = as_float32(self.embed_gen.embed(source_text, deadline=deadline))
            meta.latency_ms = timer.elapsed_ms
            # Embedding endpoints report no token counts; ~4 characters per token
            meta.usage = TokenUsage(
                prompt_tokens=max(1, len(source_text) // 4),
                model=getattr(self.embed_gen, "embedding_model", ""),
            )
            meta.usage.total_tokens = meta.usage.prompt_tokens

        store.save(recipe.id, vector, current_hash, commit=commit)
        return list(vector), meta
