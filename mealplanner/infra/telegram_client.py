"""Thin Telegram Bot API client (the subset the bot uses)."""

import logging
from typing import Any, Optional

import requests

from ..errors import ExternalServiceError

logger = logging.getLogger("mealplanner.bot")

API_BASE = "https://api.telegram.org"


def inline_keyboard(*rows: list[tuple[str, str]]) -> dict:
    """[(label, callback_data), ...] rows -> reply_markup payload."""
    return {
        "inline_keyboard": [
            [{"text": label, "callback_data": data} for label, data in row] for row in rows
        ]
    }


class TelegramClient:
    def __init__(self, token: str, timeout: float = 15.0, session: Optional[requests.Session] = None):
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    def _call(self, method: str, payload: dict) -> Any:
        url = f"{API_BASE}/bot{self.token}/{method}"
        try:
            resp = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise ExternalServiceError("telegram", f"{method} failed: {e}") from e
        data = resp.json() if resp.content else {}
        if resp.status_code != 200 or not data.get("ok", False):
            raise ExternalServiceError(
                "telegram", f"{method} error: status {resp.status_code} {data.get('description', '')}",
                resp.status_code,
            )
        return data.get("result")

    def send_message(
        self,
        chat_id: int | str,
        text: str,
        reply_markup: Optional[dict] = None,
        parse_mode: Optional[str] = "Markdown",
    ) -> int:
        """Send a message and return its message_id."""
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        if reply_markup:
            payload["reply_markup"] = reply_markup
        result = self._call("sendMessage", payload)
        return int((result or {}).get("message_id", 0))

    def edit_message_text(
        self,
        chat_id: int | str,
        message_id: int,
        text: str,
        reply_markup: Optional[dict] = None,
        parse_mode: Optional[str] = "Markdown",
    ) -> None:
        payload: dict[str, Any] = {"chat_id": chat_id, "message_id": message_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        if reply_markup:
            payload["reply_markup"] = reply_markup
        self._call("editMessageText", payload)

    def answer_callback_query(self, callback_query_id: str, text: str = "") -> None:
        self._call("answerCallbackQuery", {"callback_query_id": callback_query_id, "text": text})

    def set_webhook(self, url: str) -> None:
        self._call("setWebhook", {"url": url})
        logger.info("Telegram webhook set to %s", url)
