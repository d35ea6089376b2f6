import json
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ..models import ChatSession, utcnow

SESSION_ADJUST_PLAN = "adjust_plan"
STATE_AWAITING_FEEDBACK = "awaiting_feedback"


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone=True columns
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class SessionManager:
    """Short-lived per-user conversational state.

    Lookups always target the most recent unexpired session, so a newer
    Adjust tap supersedes an older one without touching it.
    """

    def __init__(self, db: Session):
        self.db = db

    def create(self, user_id: str, session_type: str, state: str, context_json: str, ttl_seconds: int) -> int:
        now = utcnow()
        row = ChatSession(
            user_id=user_id,
            session_type=session_type,
            state=state,
            context_json=context_json,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row.id

    def get_active(self, user_id: str, now: Optional[datetime] = None) -> Optional[ChatSession]:
        now = now or utcnow()
        stmt = (
            select(ChatSession)
            .where(ChatSession.user_id == user_id)
            .order_by(ChatSession.created_at.desc(), ChatSession.id.desc())
            .limit(1)
        )
        row = self.db.scalars(stmt).first()
        if row is None or _aware(row.expires_at) <= _aware(now):
            return None
        return row

    def delete(self, session_id: int) -> None:
        self.db.execute(delete(ChatSession).where(ChatSession.id == session_id))
        self.db.commit()

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        result = self.db.execute(delete(ChatSession).where(ChatSession.expires_at <= now))
        self.db.commit()
        return result.rowcount or 0


def load_context(row: ChatSession) -> dict:
    try:
        data = json.loads(row.context_json or "{}")
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}
