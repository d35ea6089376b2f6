from unittest.mock import MagicMock

import pytest

from mealplanner.main import app

WEEK = "2026-10-19"


def _generate(client, **overrides):
    payload = {"user_id": "u1", "request": "quick dinners", "week_start": WEEK}
    payload.update(overrides)
    return client.post("/api/plans/generate", json=payload)


@pytest.fixture
def fake_bot():
    bot = MagicMock()
    bot.is_allowed.side_effect = lambda user_id: user_id == "1001"
    app.state.chat_bot = bot
    yield bot
    app.state.chat_bot = None


def test_ready(client):
    resp = client.get("/api/ready")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "db_ok": True, "redis_ok": True}


def test_generate_plan(client, pasta_and_salad):
    resp = _generate(client)

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "Draft"
    assert data["week_start"] == WEEK
    assert data["shopping_list"] is None
    assert data["request"] == "quick dinners"
    assert len(data["plan"]) == 9
    assert data["plan"][0]["recipe_title"] == "Cook: Pasta"


def test_generate_for_occupied_week(client, pasta_and_salad):
    first = _generate(client).json()

    resp = _generate(client)
    assert resp.status_code == 409
    assert resp.json()["detail"] == "A plan already exists for that week."

    replaced = _generate(client, replace=True)
    assert replaced.status_code == 200
    assert replaced.json()["id"] != first["id"]
    assert client.get(f"/api/plans/{first['id']}").json()["status"] == "Adjusting"
    assert client.post(f"/api/plans/{first['id']}/adjust", json={"feedback": "x"}).status_code == 409


def test_week_start_must_be_monday(client, pasta_and_salad):
    assert _generate(client, week_start="2026-10-20").status_code == 422


def test_generate_without_recipes(client):
    resp = _generate(client)
    assert resp.status_code == 422
    assert resp.json()["detail"] == "No recipes are available yet. Add some recipes first."


def test_get_and_list_plans(client, pasta_and_salad):
    plan = _generate(client).json()
    _generate(client, week_start="2026-10-26")

    assert client.get(f"/api/plans/{plan['id']}").json()["id"] == plan["id"]
    assert client.get("/api/plans/999").status_code == 404
    listed = client.get("/api/plans", params={"user_id": "u1"}).json()
    assert [p["week_start"] for p in listed] == ["2026-10-26", WEEK]
    assert client.get("/api/plans", params={"user_id": "nobody"}).json() == []


def test_confirm_and_adjust(client, pasta_and_salad):
    draft = _generate(client).json()

    revised = client.post(f"/api/plans/{draft['id']}/adjust", json={"feedback": "more salad"})
    assert revised.status_code == 200
    revised = revised.json()
    assert revised["id"] != draft["id"]
    assert revised["plan"][0]["note"] == "Adjusted: more salad"

    confirmed = client.post(f"/api/plans/{revised['id']}/confirm")
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "Final"
    assert confirmed.json()["shopping_list"] == ["200g pasta", "tomato sauce", "lettuce", "tomato"]

    assert client.post(f"/api/plans/{revised['id']}/confirm").status_code == 409
    assert client.post(f"/api/plans/{revised['id']}/adjust", json={"feedback": "x"}).status_code == 409
    assert client.post(f"/api/plans/{revised['id']}/adjust", json={"feedback": ""}).status_code == 422


def test_recipes(client, add_recipe, embedder):
    add_recipe("c1", "Chicken Curry", ["chicken"], ["spicy"], embed_with=embedder)
    add_recipe("s1", "Tomato Soup", ["tomato"])

    listed = client.get("/api/recipes").json()
    assert [(r["id"], r["has_embedding"]) for r in listed] == [("c1", True), ("s1", False)]
    assert [r["id"] for r in client.get("/api/recipes", params={"q": "soup"}).json()] == ["s1"]
    assert client.get("/api/recipes/c1").json()["tags"] == ["spicy"]
    assert client.get("/api/recipes/nope").status_code == 404


def test_ingest_needs_ghost(client):
    resp = client.post("/api/recipes/ingest", json={})
    assert resp.status_code == 503


def test_daily_metrics(client, pasta_and_salad):
    _generate(client)

    rows = client.get("/api/metrics/daily", params={"days": 1}).json()
    assert len(rows) == 1
    assert rows[0]["total_executions"] == 2
    assert rows[0]["total_prompt"] > 0


def test_webhook_without_bot(client):
    resp = client.post("/api/telegram/webhook", json={"update_id": 1})
    assert resp.status_code == 503


def test_webhook_dispatches_message(client, fake_bot):
    update = {
        "update_id": 10,
        "message": {
            "message_id": 3,
            "chat": {"id": 1001, "type": "private"},
            "from": {"id": 1001, "is_bot": False, "username": "cook"},
            "text": "quick dinners",
        },
    }
    resp = client.post("/api/telegram/webhook", json=update)

    assert resp.json() == {"ok": True}
    fake_bot.handle_message.assert_called_once_with("1001", 1001, "quick dinners")


def test_webhook_dispatches_button_press(client, fake_bot):
    update = {
        "update_id": 11,
        "callback_query": {
            "id": "cb-9",
            "from": {"id": 1001, "is_bot": False},
            "message": {"message_id": 9, "chat": {"id": 1001}},
            "data": "confirm|5",
        },
    }
    client.post("/api/telegram/webhook", json=update)

    fake_bot.handle_action.assert_called_once_with("1001", 1001, 9, "confirm|5", "cb-9")


def test_webhook_ignores_strangers(client, fake_bot):
    update = {
        "update_id": 12,
        "message": {"message_id": 1, "chat": {"id": 7}, "from": {"id": 7}, "text": "hello"},
    }
    assert client.post("/api/telegram/webhook", json=update).json() == {"ok": True}
    fake_bot.handle_message.assert_not_called()
