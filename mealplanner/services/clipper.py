import html
import logging
import re
from typing import Optional

import requests
from bs4 import BeautifulSoup

from ..agents.output import parse_model_output
from ..agents.prompts import CLIPPER_PROMPT
from ..core.ai_client import TextGenerator, TimedCall
from ..core.deadline import Deadline
from ..errors import ExternalServiceError, ModelOutputError
from ..infra.ghost_client import GhostClient, GhostPost
from ..schemas import AgentMeta, ClippedRecipe

logger = logging.getLogger("mealplanner.ingest")

NOISE_SELECTORS = "script, style, nav, footer, iframe, noscript, .ads, #ads"
MAX_PAGE_CHARS = 20000
_TAGS_RE = re.compile(r"\s+tags?:\s*(.*)$", re.IGNORECASE)


def parse_clip_message(text: str) -> tuple[str, list[str]]:
    """Split `https://url tag: a, b` into the URL and its tags."""
    text = text.strip()
    tags: list[str] = []
    match = _TAGS_RE.search(text)
    if match:
        tags = [t.strip() for t in re.split(r"[,\s]+", match.group(1)) if t.strip()]
        text = text[: match.start()]
    url = text.split()[0] if text.split() else ""
    return url, tags


def page_text(raw_html: str) -> str:
    soup = BeautifulSoup(raw_html, "html.parser")
    for node in soup.select(NOISE_SELECTORS):
        node.decompose()
    root = soup.body or soup
    text = root.get_text(separator="\n")
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    return "\n".join(lines)[:MAX_PAGE_CHARS]


def render_post_html(recipe: ClippedRecipe, source_url: str) -> str:
    url = html.escape(source_url, quote=True)
    parts = [f'<p><i>Imported from: <a href="{url}">{url}</a></i></p>']
    parts.append("<h2>Ingredients</h2><ul>")
    parts.extend(f"<li>{html.escape(i)}</li>" for i in recipe.ingredients)
    parts.append("</ul><h2>Instructions</h2><ol>")
    parts.extend(f"<li>{html.escape(s)}</li>" for s in recipe.steps)
    parts.append("</ol><hr>")
    parts.append(
        f"<p><strong>Prep Time:</strong> {html.escape(recipe.prep_time)} | "
        f"<strong>Servings:</strong> {html.escape(recipe.servings)}</p>"
    )
    return "".join(parts)


class RecipeClipper:
    """Web page -> structured recipe -> published Ghost post."""

    def __init__(
        self,
        ghost: GhostClient,
        text_gen: TextGenerator,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ):
        self.ghost = ghost
        self.text_gen = text_gen
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch_page(self, url: str) -> str:
        try:
            resp = self.session.get(url, timeout=self.timeout, headers={"User-Agent": "Mozilla/5.0"})
        except requests.RequestException as e:
            raise ExternalServiceError("clipper", f"failed to fetch {url}: {e}") from e
        if resp.status_code != 200:
            raise ExternalServiceError("clipper", f"failed to fetch URL: status {resp.status_code}", resp.status_code)
        return page_text(resp.text)

    def clip_url(
        self,
        url: str,
        tags: Optional[list[str]] = None,
        deadline: Optional[Deadline] = None,
    ) -> tuple[GhostPost, AgentMeta]:
        content = self.fetch_page(url)

        timer = TimedCall()
        resp = self.text_gen.generate(CLIPPER_PROMPT.format(content=content), deadline=deadline)
        meta = AgentMeta(agent_name="Clipper", usage=resp.usage, latency_ms=timer.elapsed_ms)
        try:
            recipe = parse_model_output("Clipper", resp.content, ClippedRecipe)
        except ModelOutputError as e:
            e.meta = meta
            raise

        body = render_post_html(recipe, url)
        post = self.ghost.create_post(recipe.title, body, tags or [], publish=True)
        if not post.html:
            # Admin API omits html unless formats=html is requested
            post = post.model_copy(update={"html": body})
        logger.info("Clipped '%s' from %s into post %s", recipe.title, url, post.id)
        return post, meta
