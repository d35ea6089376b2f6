import logging
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel, ConfigDict, Field

from ..deps import get_chat_bot

router = APIRouter()
logger = logging.getLogger("mealplanner.bot")


class TelegramUser(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: int
    username: Optional[str] = None


class TelegramChat(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: int


class TelegramMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")
    message_id: int
    chat: TelegramChat
    from_user: Optional[TelegramUser] = Field(None, alias="from")
    text: Optional[str] = None


class TelegramCallbackQuery(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str
    from_user: TelegramUser = Field(alias="from")
    message: Optional[TelegramMessage] = None
    data: Optional[str] = None


class TelegramUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")
    update_id: int
    message: Optional[TelegramMessage] = None
    callback_query: Optional[TelegramCallbackQuery] = None


@router.post("/telegram/webhook")
def telegram_webhook(update: TelegramUpdate, background: BackgroundTasks, bot: Any = Depends(get_chat_bot)):
    """Acknowledge at once; the work runs after the response is sent."""
    query = update.callback_query
    if query is not None:
        user_id = str(query.from_user.id)
        if not bot.is_allowed(user_id):
            logger.warning("Unauthorized callback from user %s", user_id)
            return {"ok": True}
        if query.message is None or not query.data:
            return {"ok": True}
        background.add_task(
            bot.handle_action,
            user_id,
            query.message.chat.id,
            query.message.message_id,
            query.data,
            query.id,
        )
        return {"ok": True}

    msg = update.message
    if msg is None or msg.from_user is None or not msg.text:
        return {"ok": True}
    user_id = str(msg.from_user.id)
    if not bot.is_allowed(user_id):
        logger.warning("Unauthorized access attempt from user %s (@%s)", user_id, msg.from_user.username)
        return {"ok": True}
    background.add_task(bot.handle_message, user_id, msg.chat.id, msg.text)
    return {"ok": True}
