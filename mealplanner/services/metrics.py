import logging
from datetime import timedelta
from typing import Iterable

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import ExecutionMetric, utcnow
from ..schemas import AgentMeta, DailyUsage

logger = logging.getLogger("mealplanner.metrics")


class MetricsStore:
    """Sink for per-stage token usage and latency."""

    def __init__(self, db: Session):
        self.db = db

    def record(self, metric: ExecutionMetric) -> None:
        # Metrics must never break the flow that produced them
        try:
            self.db.add(metric)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to record metric for %s", metric.agent_name)

    def record_meta(self, meta: AgentMeta) -> bool:
        """Persist a stage meta. Cache hits (no tokens spent) are not recorded."""
        usage = meta.usage
        if usage.prompt_tokens == 0 and usage.completion_tokens == 0:
            return False
        self.record(
            ExecutionMetric(
                agent_name=meta.agent_name,
                model=usage.model,
                prompt_tokens=usage.prompt_tokens,
                completion_tokens=usage.completion_tokens,
                latency_ms=meta.latency_ms,
            )
        )
        return True

    def record_all(self, metas: Iterable[AgentMeta]) -> int:
        return sum(1 for m in metas if self.record_meta(m))

    def get_daily_usage(self, days: int = 7) -> list[DailyUsage]:
        since = utcnow() - timedelta(days=days)
        day = func.date(ExecutionMetric.timestamp)
        stmt = (
            select(
                day.label("day"),
                func.sum(ExecutionMetric.prompt_tokens),
                func.sum(ExecutionMetric.completion_tokens),
                func.count(ExecutionMetric.id),
            )
            .where(ExecutionMetric.timestamp >= since)
            .group_by(day)
            .order_by(day.desc())
        )
        return [
            DailyUsage(
                date=str(d),
                total_prompt=int(p or 0),
                total_completion=int(c or 0),
                total_executions=int(n or 0),
            )
            for d, p, c, n in self.db.execute(stmt)
        ]

    def cleanup(self, older_than_days: int) -> int:
        cutoff = utcnow() - timedelta(days=older_than_days)
        result = self.db.execute(delete(ExecutionMetric).where(ExecutionMetric.timestamp < cutoff))
        self.db.commit()
        deleted = result.rowcount or 0
        logger.info("Deleted %d execution metrics older than %d days", deleted, older_than_days)
        return deleted


def format_usage_report(rows: list[DailyUsage]) -> str:
    if not rows:
        return "No usage recorded in this period."
    lines = ["*Token usage*"]
    for r in rows:
        lines.append(
            f"{r.date}: {r.total_prompt} prompt / {r.total_completion} completion "
            f"({r.total_executions} calls)"
        )
    return "\n".join(lines)
