"""
Tests for the HTTP command gateway.
"""
import pytest
from fastapi.testclient import TestClient

from coinbot.api import create_app
from coinbot.services.security import create_token, create_transport_token
from conftest import ADMIN_ID, PLAYER_ID, make_settings


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def client(settings):
    app = create_app(settings)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def auth(settings):
    return {"Authorization": f"Bearer {create_transport_token(settings, 'whatsapp')}"}


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy", "service": "coinbot"}


def test_commands_require_token(client):
    resp = client.post("/api/v1/commands", json={"sender": PLAYER_ID, "text": ".balance"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "not_authenticated"


def test_rejects_foreign_token(client, settings):
    token = create_token(settings, {"type": "user", "sub": "someone"})
    resp = client.post(
        "/api/v1/commands",
        json={"sender": PLAYER_ID, "text": ".balance"},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert resp.status_code == 401
    assert resp.json()["detail"] == "invalid_token"


def test_rejects_token_signed_with_other_secret(client, tmp_path):
    other = make_settings(tmp_path, JWT_SECRET="another-secret")
    headers = {"Authorization": f"Bearer {create_transport_token(other, 'whatsapp')}"}
    resp = client.get(f"/api/v1/users/{PLAYER_ID}/balance", headers=headers)
    assert resp.status_code == 401


def test_balance_command(client, auth):
    resp = client.post("/api/v1/commands", json={"sender": f"{PLAYER_ID}@c.us", "text": ".balance"}, headers=auth)
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "kind": None, "reply": "💰 Your balance: 1000 coins"}


def test_plain_chat_gets_no_reply(client, auth):
    resp = client.post("/api/v1/commands", json={"sender": PLAYER_ID, "text": "hi all"}, headers=auth)
    assert resp.json() == {"ok": True, "kind": None, "reply": None}


def test_failure_kind_is_reported(client, auth):
    resp = client.post("/api/v1/commands", json={"sender": PLAYER_ID, "text": ".claim MISSING"}, headers=auth)
    body = resp.json()
    assert body["ok"] is False
    assert body["kind"] == "not_found"


def test_roulette_then_balance(client, auth):
    resp = client.post("/api/v1/commands", json={"sender": PLAYER_ID, "text": ".roulette 100 red"}, headers=auth)
    assert resp.json()["ok"] is True

    balance = client.get(f"/api/v1/users/{PLAYER_ID}/balance", headers=auth).json()
    assert balance["user_id"] == PLAYER_ID
    assert balance["balance"] in (900, 1100)


def test_issue_and_claim_over_http(client, auth):
    created = client.post(
        "/api/v1/commands",
        json={"sender": ADMIN_ID, "text": ".createcode HTTP1 75 2"},
        headers=auth,
    ).json()
    assert created["ok"] is True

    claimed = client.post("/api/v1/commands", json={"sender": PLAYER_ID, "text": ".claim HTTP1"}, headers=auth).json()
    assert claimed["ok"] is True
    assert client.get(f"/api/v1/users/{PLAYER_ID}/balance", headers=auth).json()["balance"] == 1075


def test_games_history_endpoint(client, auth):
    resp = client.get(f"/api/v1/users/{PLAYER_ID}/games?limit=5", headers=auth)
    assert resp.status_code == 200
    assert resp.json() == []
