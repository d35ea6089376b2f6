"""Deterministic stand-ins for the text and embedding providers.

Used when AI_MODE=mock so the bot and the API run without any keys. The
text generator recognises which stage a prompt belongs to and answers with
well-formed JSON built from the prompt itself.
"""

import hashlib
import json
import re
from typing import Optional

import numpy as np
from bs4 import BeautifulSoup

from ..schemas import ContentResponse, TokenUsage, WEEK_SLOTS
from .deadline import Deadline

MOCK_MODEL = "mock"
MOCK_EMBEDDING_DIM = 64

_RECIPE_BLOCK_RE = re.compile(r"- recipe_id: (.*)\n  Title: (.*)")
_INGREDIENTS_RE = re.compile(r"^\s*Ingredients: (.*)$", re.MULTILINE)
_WORD_RE = re.compile(r"[a-z0-9]+")

# Cook / Reuse pattern that satisfies the weekly cadence
_MOCK_ACTIONS = ["Cook", "Reuse", "Cook", "Reuse", "Cook", "Reuse", "Cook", "Reuse", "Cook"]


def _between(text: str, start: str, end: str) -> str:
    match = re.search(re.escape(start) + r"(.*?)" + re.escape(end), text, re.DOTALL)
    return match.group(1).strip() if match else ""


class MockTextGenerator:
    def __init__(self, model_id: str = MOCK_MODEL):
        self.model_id = model_id
        self.calls: list[str] = []

    def generate(self, prompt: str, deadline: Optional[Deadline] = None) -> ContentResponse:
        if deadline is not None:
            deadline.check("mock generation")
        self.calls.append(prompt)

        if "Strategic Meal Planning Analyst" in prompt:
            payload = self._analyst(prompt)
        elif "practical home Chef" in prompt:
            payload = self._chef(prompt)
        elif "Meal Plan Reviewer" in prompt:
            payload = self._reviewer(prompt)
        elif "weekly shopping list" in prompt:
            payload = self._shopping(prompt)
        elif "HTML content for" in prompt:
            payload = self._extract(prompt)
        elif "Page text:" in prompt:
            payload = self._clip(prompt)
        else:
            payload = {}

        content = json.dumps(payload)
        usage = TokenUsage(
            prompt_tokens=max(1, len(prompt) // 4),
            completion_tokens=max(1, len(content) // 4),
            model=self.model_id,
        )
        usage.total_tokens = usage.prompt_tokens + usage.completion_tokens
        return ContentResponse(content=content, usage=usage)

    def _analyst(self, prompt: str) -> dict:
        recipes = sorted(
            ((rid.strip(), title.strip()) for rid, title in _RECIPE_BLOCK_RE.findall(prompt)),
            key=lambda r: r[1],
        )
        meals = []
        cooked = 0
        current = ("", "")
        for day, action in zip(WEEK_SLOTS, _MOCK_ACTIONS):
            if action == "Cook" and recipes:
                current = recipes[cooked % len(recipes)]
                cooked += 1
            meals.append({
                "day": day,
                "action": action,
                "recipe_id": current[0],
                "recipe_title": current[1],
                "note": "Fresh batch" if action == "Cook" else "Leftovers",
            })
        return {"planned_meals": meals}

    def _chef(self, prompt: str) -> dict:
        schedule = json.loads(_between(prompt, "Schedule (one entry per slot, in order):", "For every slot") or "[]")
        plan, shopping = [], []
        for slot in schedule:
            cook = slot.get("action") == "Cook"
            plan.append({
                "day": slot.get("day", ""),
                "recipe_id": slot.get("recipe_id", ""),
                "recipe_title": ("Cook: " if cook else "Leftovers: ") + slot.get("recipe_title", ""),
                "prep_time": (slot.get("prep_time") or "30 mins") if cook else "10 mins",
                "note": slot.get("note", ""),
            })
            if cook:
                shopping.extend(slot.get("ingredients") or [])
        return {"plan": plan, "shopping_list": list(dict.fromkeys(shopping))}

    def _reviewer(self, prompt: str) -> dict:
        current = json.loads(_between(prompt, "Current plan:", "User feedback:") or "[]")
        feedback = _between(prompt, 'User feedback: "', '"\n')
        if current and feedback:
            current[0]["note"] = f"Adjusted: {feedback}"
        return {"plan": current}

    def _shopping(self, prompt: str) -> dict:
        items = []
        for line in _INGREDIENTS_RE.findall(prompt):
            if line.startswith("("):
                continue
            items.extend(i.strip() for i in line.split(",") if i.strip())
        return {"shopping_list": list(dict.fromkeys(items))}

    def _extract(self, prompt: str) -> dict:
        title = _between(prompt, 'HTML content for "', '":')
        html = prompt.split('":\n', 1)[-1]
        soup = BeautifulSoup(html, "html.parser")
        ingredients = [li.get_text(" ", strip=True) for li in soup.select("ul li")]
        steps = [li.get_text(" ", strip=True) for li in soup.select("ol li")]
        return {
            "title": title,
            "ingredients": ingredients,
            "instructions": steps,
            "tags": [],
            "prep_time": "30 mins",
            "servings": "4 people",
        }

    def _clip(self, prompt: str) -> dict:
        text = prompt.split("Page text:", 1)[-1].strip()
        lines = [line for line in text.splitlines() if line.strip()]
        return {
            "title": lines[0] if lines else "Clipped Recipe",
            "ingredients": lines[1:6],
            "steps": lines[6:10],
            "prep_time": "30 mins",
            "servings": "4 people",
        }


class MockEmbeddingGenerator:
    """Hashed bag-of-words vectors: similar texts land close together."""

    embedding_model = "mock-embedding"

    def __init__(self, dim: int = MOCK_EMBEDDING_DIM):
        self.dim = dim

    def embed(self, text: str, deadline: Optional[Deadline] = None) -> list[float]:
        if deadline is not None:
            deadline.check("mock embedding")
        vector = np.zeros(self.dim, dtype=np.float32)
        for word in _WORD_RE.findall((text or "").lower()):
            bucket = int(hashlib.md5(word.encode("utf-8")).hexdigest(), 16) % self.dim
            vector[bucket] += 1.0
        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector.tolist()
