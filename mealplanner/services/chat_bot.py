"""Telegram conversation flow: plan, clip, adjust, confirm.

Each inbound message or button press is handled under the sender's lock, in
its own database session. An active adjustment session turns the next
message into feedback for a draft; the session is removed afterwards whether
the revision worked or not.
"""

import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ..agents.planner_agent import get_next_monday
from ..core.text import escape_md, format_draft_plan, format_error, format_final_plan, format_shopping_list
from ..db import session_scope
from ..errors import ExternalServiceError, MealPlannerError, PlanNotFoundError, user_message
from ..infra.redis_cache import drop_request, load_request, stash_request
from ..infra.telegram_client import TelegramClient, inline_keyboard
from ..models import PlanStatus, utcnow
from ..schemas import AgentMeta, SessionContext, WeeklyPlan
from ..wiring import Services
from .clipper import parse_clip_message
from .metrics import format_usage_report
from .sessions import SESSION_ADJUST_PLAN, STATE_AWAITING_FEEDBACK, load_context

logger = logging.getLogger("mealplanner.bot")

ADJUST_PROMPT = """✏️ *Plan Adjustment Mode*

Describe what you'd like to change about your plan. Be specific about:

• *Which days* (e.g. "Monday", "Tuesday and Wednesday", "midweek")
• *What changes* (e.g. "make it vegetarian", "something faster", "no pasta")

Type your feedback below:"""


def draft_keyboard(plan_id: int) -> dict:
    return inline_keyboard([
        ("✅ Confirm", f"confirm|{plan_id}"),
        ("✏️ Adjust", f"adjust|{plan_id}"),
        ("🔄 Start Over", f"startover|{plan_id}"),
    ])


class ChatBot:
    def __init__(self, services: Services, telegram: TelegramClient, session_factory=None):
        self.services = services
        self.settings = services.settings
        self.telegram = telegram
        self.session_factory = session_factory

    def is_allowed(self, user_id: str) -> bool:
        return user_id in self.settings.allowed_user_ids

    # --- Inbound messages ---

    def handle_message(self, user_id: str, chat_id: int, text: str, today: Optional[date] = None) -> None:
        text = (text or "").strip()
        if not text:
            return
        with self.services.locks.hold(user_id), session_scope(self.session_factory) as db:
            try:
                self._dispatch_message(db, user_id, chat_id, text, today or utcnow().date())
            except ExternalServiceError:
                logger.exception("Telegram delivery failed for user %s", user_id)

    def _dispatch_message(self, db: Session, user_id: str, chat_id: int, text: str, today: date) -> None:
        sessions = self.services.sessions(db)
        active = sessions.get_active(user_id)
        if active and active.session_type == SESSION_ADJUST_PLAN and active.state == STATE_AWAITING_FEEDBACK:
            try:
                self._handle_feedback(db, user_id, chat_id, text, load_context(active))
            finally:
                sessions.delete(active.id)
            return

        if text == "/metrics":
            self._handle_metrics(db, user_id, chat_id)
        elif text.startswith(("http://", "https://")):
            self._handle_clip(db, chat_id, text)
        else:
            self._handle_plan_request(db, user_id, chat_id, text, today)

    def _handle_plan_request(self, db: Session, user_id: str, chat_id: int, request: str, today: date) -> None:
        message_id = self.telegram.send_message(
            chat_id, "🧑‍🍳 *Thinking...*\n(Analyzing recipes and generating your plan)"
        )
        week = get_next_monday(today)
        if self.services.plans(db).exists_for_week(user_id, week):
            # Callback data is capped at 64 bytes; the request lives in redis
            token = stash_request(user_id, request)
            keyboard = inline_keyboard([
                ("🔄 Redo Next Week", f"redo|{token}"),
                ("⏭️ Plan Following Week", f"next|{token}"),
            ])
            self.telegram.edit_message_text(
                chat_id, message_id,
                f"🗓️ A plan already exists for next week (starting *{week.isoformat()}*).\n"
                "What would you like to do?",
                reply_markup=keyboard,
            )
            return
        self._generate(db, user_id, chat_id, message_id, request, week, replace=False)

    def _generate(
        self, db: Session, user_id: str, chat_id: int, message_id: int, request: str, week: date, replace: bool
    ) -> None:
        logger.info("Generating plan for user %s week %s: %s", user_id, week, request)
        lifecycle = self.services.lifecycle(db)
        try:
            plan = lifecycle.start_plan(
                user_id, request, week, self.services.household(), replace=replace, deadline=self.services.deadline()
            )
        except MealPlannerError as e:
            logger.error("Plan generation failed for user %s: %s", user_id, e)
            self.telegram.edit_message_text(chat_id, message_id, format_error("Error generating plan", user_message(e)))
            return
        finally:
            self._alert_on_bloat(lifecycle.last_metas)
        self._send_draft(chat_id, message_id, plan)

    def _send_draft(self, chat_id: int, message_id: int, plan: WeeklyPlan) -> None:
        self.telegram.edit_message_text(
            chat_id, message_id, format_draft_plan(plan), reply_markup=draft_keyboard(plan.id)
        )

    def _handle_feedback(self, db: Session, user_id: str, chat_id: int, feedback: str, context: dict) -> None:
        message_id = self.telegram.send_message(chat_id, "✏️ *Revising plan...*\n(Analyzing your feedback)")
        try:
            ctx = SessionContext.model_validate(context)
        except ValueError:
            logger.error("Invalid adjustment session data for user %s: %s", user_id, context)
            self.telegram.edit_message_text(chat_id, message_id, format_error("Error", "Invalid session data."))
            return

        lifecycle = self.services.lifecycle(db)
        try:
            self._owned_plan(db, ctx.plan_id, user_id)
            revised = lifecycle.adjust(ctx.plan_id, feedback, self.services.household(), deadline=self.services.deadline())
        except MealPlannerError as e:
            logger.error("Plan revision failed for user %s: %s", user_id, e)
            self.telegram.edit_message_text(chat_id, message_id, format_error("Error revising plan", user_message(e)))
            return
        finally:
            self._alert_on_bloat(lifecycle.last_metas)
        self._send_draft(chat_id, message_id, revised)

    def _handle_metrics(self, db: Session, user_id: str, chat_id: int) -> None:
        if not self.settings.admin_telegram_id or user_id != str(self.settings.admin_telegram_id):
            self.telegram.send_message(chat_id, "⛔ *Access Denied*: Admin only.")
            return
        report = format_usage_report(self.services.metrics(db).get_daily_usage(7))
        self.telegram.send_message(chat_id, "📊 *Usage Report*\n\n" + report)

    def _handle_clip(self, db: Session, chat_id: int, text: str) -> None:
        message_id = self.telegram.send_message(chat_id, "✂️ *Clipping recipe...*\n(Extracting and saving to your blog)")
        clipper = self.services.clipper()
        if clipper is None:
            self.telegram.edit_message_text(chat_id, message_id, format_error("Error clipping recipe", "Ghost is not configured."))
            return

        url, tags = parse_clip_message(text)
        try:
            post, meta = clipper.clip_url(url, tags, deadline=self.services.deadline())
        except MealPlannerError as e:
            logger.error("Clipping %s failed: %s", url, e)
            if e.meta is not None:
                self.services.metrics(db).record_meta(e.meta)
            self.telegram.edit_message_text(chat_id, message_id, format_error("Error clipping recipe", user_message(e)))
            return
        self.services.metrics(db).record_meta(meta)

        summary = f"✅ *Recipe Saved!*\n\n*Title:* {escape_md(post.title)}"
        if post.tags:
            summary += "\n*Tags:* " + escape_md(", ".join(post.tag_names))
        self.telegram.edit_message_text(chat_id, message_id, summary)

        # Index the new post so it can be planned with right away
        try:
            self.services.ingestion(db).ingest_post(post, skip_if_unchanged=False)
        except MealPlannerError as e:
            logger.error("Failed to ingest clipped post '%s': %s", post.title, e)

    # --- Button presses ---

    def handle_action(
        self,
        user_id: str,
        chat_id: int,
        message_id: int,
        data: str,
        callback_query_id: Optional[str] = None,
        today: Optional[date] = None,
    ) -> None:
        if callback_query_id:
            try:
                self.telegram.answer_callback_query(callback_query_id)
            except ExternalServiceError:
                logger.warning("Could not answer callback %s", callback_query_id)

        action, _, arg = (data or "").partition("|")
        if not arg:
            return
        with self.services.locks.hold(user_id), session_scope(self.session_factory) as db:
            try:
                self._dispatch_action(db, user_id, chat_id, message_id, action, arg, today or utcnow().date())
            except ExternalServiceError:
                logger.exception("Telegram delivery failed for user %s", user_id)

    def _dispatch_action(
        self, db: Session, user_id: str, chat_id: int, message_id: int, action: str, arg: str, today: date
    ) -> None:
        if action in ("redo", "next"):
            request = load_request(arg, user_id)
            if request is None:
                self.telegram.edit_message_text(
                    chat_id, message_id, format_error("Error", "This request has expired. Please send it again.")
                )
                return
            # One use per token; a second tap finds it gone
            drop_request(arg)
            week = get_next_monday(today)
            if action == "next":
                week += timedelta(days=7)
            self.telegram.edit_message_text(chat_id, message_id, "🧑‍🍳 *Thinking...*")
            self._generate(db, user_id, chat_id, message_id, request, week, replace=action == "redo")
            return

        try:
            plan_id = int(arg)
        except ValueError:
            logger.warning("Ignoring malformed callback data %s|%s", action, arg)
            return

        handlers = {
            "confirm": self._confirm,
            "adjust": self._adjust,
            "startover": self._start_over,
        }
        handler = handlers.get(action)
        if handler is None:
            logger.warning("Unknown callback action '%s'", action)
            return
        handler(db, user_id, chat_id, message_id, plan_id)

    def _confirm(self, db: Session, user_id: str, chat_id: int, message_id: int, plan_id: int) -> None:
        lifecycle = self.services.lifecycle(db)
        try:
            self._owned_plan(db, plan_id, user_id)
            plan = lifecycle.confirm(plan_id, self.services.household(), deadline=self.services.deadline())
        except MealPlannerError as e:
            logger.error("Confirming plan %s failed: %s", plan_id, e)
            self.telegram.edit_message_text(chat_id, message_id, format_error("Error", user_message(e)))
            return
        finally:
            self._alert_on_bloat(lifecycle.last_metas)
        self.telegram.edit_message_text(chat_id, message_id, format_final_plan(plan))
        self.telegram.send_message(chat_id, format_shopping_list(plan.shopping_list or []))

    def _adjust(self, db: Session, user_id: str, chat_id: int, message_id: int, plan_id: int) -> None:
        try:
            plan = self._owned_plan(db, plan_id, user_id)
        except MealPlannerError as e:
            self.telegram.edit_message_text(chat_id, message_id, format_error("Error", user_message(e)))
            return
        if plan.status == PlanStatus.FINAL:
            self.telegram.edit_message_text(chat_id, message_id, format_error("Error", "That plan is already confirmed."))
            return
        if plan.status != PlanStatus.DRAFT:
            self.telegram.edit_message_text(
                chat_id, message_id, format_error("Error", "That plan was replaced by a newer draft.")
            )
            return

        context = SessionContext(plan_id=plan_id, original_request=plan.request)
        session_id = self.services.sessions(db).create(
            user_id,
            SESSION_ADJUST_PLAN,
            STATE_AWAITING_FEEDBACK,
            context.model_dump_json(),
            self.settings.session_ttl_seconds,
        )
        logger.info("Created adjustment session %s for user %s, plan %s", session_id, user_id, plan_id)
        self.telegram.edit_message_text(chat_id, message_id, ADJUST_PROMPT)

    def _start_over(self, db: Session, user_id: str, chat_id: int, message_id: int, plan_id: int) -> None:
        self.telegram.edit_message_text(chat_id, message_id, "🔄 *Starting over...*\n🧑‍🍳 *Thinking...*")
        lifecycle = self.services.lifecycle(db)
        try:
            self._owned_plan(db, plan_id, user_id)
            plan = lifecycle.start_over(plan_id, self.services.household(), deadline=self.services.deadline())
        except MealPlannerError as e:
            logger.error("Start over for plan %s failed: %s", plan_id, e)
            self.telegram.edit_message_text(chat_id, message_id, format_error("Error generating plan", user_message(e)))
            return
        finally:
            self._alert_on_bloat(lifecycle.last_metas)
        self._send_draft(chat_id, message_id, plan)

    # --- Helpers ---

    def _owned_plan(self, db: Session, plan_id: int, user_id: str) -> WeeklyPlan:
        plan = self.services.plans(db).get_by_id(plan_id)
        if plan.user_id != user_id:
            raise PlanNotFoundError(plan_id)
        return plan

    def _alert_on_bloat(self, metas: list[AgentMeta]) -> None:
        admin = self.settings.admin_telegram_id
        if not admin:
            return
        for meta in metas:
            if meta.usage.prompt_tokens > self.settings.context_bloat_threshold:
                alert = (
                    "⚠️ *Context Bloat Alert*\n"
                    f"Agent: {meta.agent_name}\nModel: {meta.usage.model}\n"
                    f"Prompt Tokens: {meta.usage.prompt_tokens}"
                )
                try:
                    self.telegram.send_message(admin, alert)
                except ExternalServiceError:
                    logger.warning("Could not deliver context bloat alert")
