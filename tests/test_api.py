"""Tests for the HTTP endpoints."""

import base64
import json
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_app_settings
from app.api.v1.endpoints import auth
from app.config import Settings
from app.models.account import OAuthCredentials
from main import app

from conftest import MAILBOX, FakeGmail


@pytest.fixture
def settings():
    settings = Settings()
    settings.google_client_id = "client-id"
    settings.google_client_secret = "client-secret"
    settings.google_redirect_uri = "https://tracker.example.com/api/v1/auth/callback"
    settings.gcp_project_id = "demo-project"
    settings.gmail_pubsub_topic = "gmail-events"
    return settings


@pytest.fixture
def scheduler():
    scheduler = MagicMock()
    scheduler.enqueue.return_value = True
    scheduler.is_busy.return_value = False
    return scheduler


@pytest.fixture
def gmail():
    return FakeGmail()


@pytest.fixture
def client(store, scheduler, gmail, settings):
    # Startup hooks are not run: services are wired by hand
    app.state.checkpoint_store = store
    app.state.sync_scheduler = scheduler
    app.state.gmail_factory = lambda account: gmail
    app.dependency_overrides[get_app_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


def pubsub_body(payload) -> dict:
    data = base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")
    return {"message": {"data": data, "messageId": "1"}, "subscription": "projects/demo/subscriptions/gmail"}


def test_health_check(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


class TestSyncTrigger:

    def test_missing_email(self, client, scheduler):
        response = client.post("/api/v1/gmail/sync")

        assert response.status_code == 400
        assert response.json()["detail"] == "Missing email"
        scheduler.enqueue.assert_not_called()

    def test_unknown_mailbox(self, client, scheduler):
        response = client.post("/api/v1/gmail/sync", params={"email": "nobody@example.com"})

        assert response.status_code == 404
        assert response.json()["detail"] == "User not found"
        scheduler.enqueue.assert_not_called()

    def test_accepted(self, client, scheduler, account):
        response = client.post("/api/v1/gmail/sync", params={"email": MAILBOX})

        assert response.status_code == 202
        assert response.json() == {"status": "accepted", "email": MAILBOX}
        scheduler.enqueue.assert_called_once_with(MAILBOX)

    def test_busy_mailbox_is_skipped(self, client, scheduler, account):
        scheduler.enqueue.return_value = False

        response = client.post("/api/v1/gmail/sync", params={"email": MAILBOX})

        assert response.status_code == 202
        assert response.json()["status"] == "skipped"


class TestPushEvents:

    def test_notification_enqueues_pass(self, client, scheduler, account):
        body = pubsub_body({"emailAddress": MAILBOX, "historyId": "9876"})

        response = client.post("/api/v1/gmail/events", json=body)

        assert response.status_code == 200
        assert response.json()["status"] == "accepted"
        scheduler.enqueue.assert_called_once_with(MAILBOX)

    @pytest.mark.parametrize("body", [
        {},
        {"message": {}},
        {"message": {"data": "%%% not base64 %%%"}},
        {"message": "not-an-object"},
        {"message": {"data": 12345}},
        pubsub_body([1, 2]),
        pubsub_body({"emailAddress": ["me@example.com"]}),
        [1, 2],
    ])
    def test_malformed_notification_is_ignored(self, client, scheduler, body):
        response = client.post("/api/v1/gmail/events", json=body)

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
        scheduler.enqueue.assert_not_called()

    def test_body_that_is_not_utf8_is_ignored(self, client, scheduler):
        response = client.post(
            "/api/v1/gmail/events",
            content=b'{"message": "\xff"}',
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
        scheduler.enqueue.assert_not_called()

    def test_unknown_mailbox_is_ignored(self, client, scheduler):
        body = pubsub_body({"emailAddress": "nobody@example.com", "historyId": "1"})

        response = client.post("/api/v1/gmail/events", json=body)

        assert response.json()["status"] == "ignored"
        scheduler.enqueue.assert_not_called()


def test_sync_status(client, store, scheduler, account):
    store.advance_cursor(MAILBOX, "4242")
    scheduler.is_busy.return_value = True

    response = client.get("/api/v1/gmail/status", params={"email": MAILBOX})

    assert response.status_code == 200
    data = response.json()
    assert data["last_history_id"] == "4242"
    assert data["has_refresh_token"] is True
    assert data["busy"] is True


class TestAuthCallback:

    def test_denied_consent(self, client):
        response = client.get("/api/v1/auth/callback", params={"error": "access_denied"})

        assert response.status_code == 400
        assert response.json()["error"] == "access_denied"

    def test_missing_code(self, client):
        response = client.get("/api/v1/auth/callback")

        assert response.status_code == 400
        assert response.json()["error"] == "missing_code"

    def test_stores_account(self, client, store, monkeypatch):
        flow = MagicMock()
        flow.credentials.token = "access-9"
        flow.credentials.refresh_token = "refresh-9"
        flow.credentials.expiry = None
        monkeypatch.setattr(auth, "get_oauth_flow", lambda settings, redirect_uri: flow)

        class ProfileClient:
            def __init__(self, credentials, timeout=30):
                pass

            async def get_profile(self):
                return {"emailAddress": "new@example.com"}

        monkeypatch.setattr(auth, "GmailClient", ProfileClient)

        response = client.get("/api/v1/auth/callback", params={"code": "auth-code"})

        assert response.status_code == 200
        assert response.json()["email"] == "new@example.com"
        flow.fetch_token.assert_called_once_with(code="auth-code")
        stored = store.load("new@example.com")
        assert stored.access_token == "access-9"
        assert stored.refresh_token == "refresh-9"
        assert stored.last_history_id is None

    def test_token_exchange_failure_stores_nothing(self, client, store, monkeypatch):
        flow = MagicMock()
        flow.fetch_token.side_effect = RuntimeError("invalid_grant")
        monkeypatch.setattr(auth, "get_oauth_flow", lambda settings, redirect_uri: flow)

        response = client.get("/api/v1/auth/callback", params={"code": "bad-code"})

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert store.load("new@example.com") is None

    def test_login_redirects_to_google(self, client):
        response = client.get("/api/v1/auth/login", follow_redirects=False)

        assert response.status_code == 307
        assert response.headers["location"].startswith("https://accounts.google.com/")
        assert "access_type=offline" in response.headers["location"]


class TestWatch:

    def test_requires_project_id(self, client, settings, account):
        settings.gcp_project_id = None

        response = client.post("/api/v1/gmail/watch/start", params={"email": MAILBOX})

        assert response.status_code == 500

    def test_start_stores_baseline_cursor(self, client, store, gmail, account):
        gmail.watch_response = {"historyId": "500", "expiration": "1700000000000"}

        response = client.post("/api/v1/gmail/watch/start", params={"email": MAILBOX})

        assert response.status_code == 200
        assert response.json()["expiration_date"] == "2023-11-14T22:13:20+00:00"
        assert ("watch", "projects/demo-project/topics/gmail-events") in gmail.calls
        assert store.load(MAILBOX).last_history_id == "500"

    def test_start_keeps_existing_cursor(self, client, store, gmail, account):
        store.advance_cursor(MAILBOX, "100")
        gmail.watch_response = {"historyId": "500"}

        client.post("/api/v1/gmail/watch/start", params={"email": MAILBOX})

        assert store.load(MAILBOX).last_history_id == "100"

    def test_stop(self, client, gmail, account):
        response = client.post("/api/v1/gmail/watch/stop", params={"email": MAILBOX})

        assert response.status_code == 200
        assert ("stop",) in gmail.calls

    def test_stop_stores_rotated_token(self, client, store, gmail, account):
        gmail.rotated_credentials = OAuthCredentials(access_token="rotated", token_type="Bearer")

        response = client.post("/api/v1/gmail/watch/stop", params={"email": MAILBOX})

        assert response.status_code == 200
        stored = store.load(MAILBOX)
        assert stored.access_token == "rotated"
        assert stored.refresh_token == "refresh-1"

    def test_stop_unknown_mailbox(self, client):
        response = client.post("/api/v1/gmail/watch/stop", params={"email": "nobody@example.com"})

        assert response.status_code == 404
