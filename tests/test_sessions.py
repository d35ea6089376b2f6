import threading
from datetime import timedelta

from mealplanner.models import ChatSession, utcnow
from mealplanner.services.locks import UserLocks
from mealplanner.services.sessions import (
    SESSION_ADJUST_PLAN,
    STATE_AWAITING_FEEDBACK,
    SessionManager,
    load_context,
)


def _create(manager, user_id="u1", context='{"plan_id": 7}', ttl=900):
    return manager.create(user_id, SESSION_ADJUST_PLAN, STATE_AWAITING_FEEDBACK, context, ttl)


def test_active_session_roundtrip(db_session):
    manager = SessionManager(db_session)
    session_id = _create(manager)

    active = manager.get_active("u1")
    assert active.id == session_id
    assert active.session_type == SESSION_ADJUST_PLAN
    assert load_context(active) == {"plan_id": 7}
    assert manager.get_active("someone-else") is None


def test_expired_session_is_not_active(db_session):
    manager = SessionManager(db_session)
    _create(manager, ttl=60)

    assert manager.get_active("u1", now=utcnow() + timedelta(seconds=61)) is None


def test_newest_session_wins(db_session):
    manager = SessionManager(db_session)
    _create(manager, context='{"plan_id": 1}')
    newest = _create(manager, context='{"plan_id": 2}')

    active = manager.get_active("u1")
    assert active.id == newest
    assert load_context(active)["plan_id"] == 2


def test_delete_and_purge(db_session):
    manager = SessionManager(db_session)
    kept = _create(manager, ttl=900)
    _create(manager, user_id="u2", ttl=1)
    _create(manager, user_id="u3", ttl=1)

    assert manager.purge_expired(now=utcnow() + timedelta(seconds=5)) == 2
    manager.delete(kept)
    assert db_session.query(ChatSession).count() == 0


def test_load_context_tolerates_bad_json():
    assert load_context(ChatSession(context_json="{not json")) == {}
    assert load_context(ChatSession(context_json="[1, 2]")) == {}


def test_user_locks_are_per_user():
    locks = UserLocks()
    assert locks.lock_for("a") is locks.lock_for("a")
    assert locks.lock_for("a") is not locks.lock_for("b")

    with locks.hold("a"):
        assert locks.lock_for("a").locked()
        acquired = []
        worker = threading.Thread(target=lambda: acquired.append(locks.lock_for("b").acquire(timeout=1)))
        worker.start()
        worker.join()
        assert acquired == [True]
    assert not locks.lock_for("a").locked()
