"""
Pytest configuration and shared fixtures for the application tracker tests.
"""

import os

# Must be set before app.database creates its engine
os.environ["DATABASE_URL"] = "sqlite://"

from typing import Dict, List, Optional  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.database import Base  # noqa: E402
from app.models.account import OAuthCredentials  # noqa: E402
from app.services.checkpoint_store import CheckpointStore  # noqa: E402
from app.services.gemini_extractor import CompanyExtraction  # noqa: E402
from app.services.gmail_service import GmailServiceError  # noqa: E402

MAILBOX = "me@example.com"


def gmail_message(
    message_id: str,
    subject: str = "",
    snippet: str = "",
    sender: str = "jobs@example.com",
    internal_date: str = "1700000000000",
    history_id: str = "105",
) -> Dict:
    """Gmail users.messages.get response in "full" format."""
    return {
        "id": message_id,
        "threadId": f"t-{message_id}",
        "historyId": history_id,
        "internalDate": internal_date,
        "snippet": snippet,
        "payload": {
            "headers": [
                {"name": "Subject", "value": subject},
                {"name": "From", "value": sender},
            ]
        },
    }


def history_record(history_id: str, *message_ids: str) -> Dict:
    """One users.history.list record with messagesAdded entries."""
    return {
        "id": history_id,
        "messages": [{"id": m} for m in message_ids],
        "messagesAdded": [{"message": {"id": m, "labelIds": ["INBOX"]}} for m in message_ids],
    }


class FakeGmail:
    """In-memory stand-in for GmailClient that records every call."""

    def __init__(
        self,
        recent: Optional[List[Dict]] = None,
        messages: Optional[Dict[str, Dict]] = None,
        history: Optional[List[Dict]] = None,
        history_error: Optional[Exception] = None,
        fail_ids=(),
    ):
        self.recent = recent or []
        self.messages = messages or {}
        self.history = history or []
        self.history_error = history_error
        self.fail_ids = set(fail_ids)
        self.rotated_credentials: Optional[OAuthCredentials] = None
        self.watch_response: Dict = {}
        self.profile_history_id = "1"
        self.calls: List[tuple] = []
        self._handlers = []

    def on_credentials_rotated(self, handler):
        self._handlers.append(handler)

    def _rotate(self):
        if self.rotated_credentials:
            for handler in self._handlers:
                handler(self.rotated_credentials)

    async def ensure_fresh(self):
        self.calls.append(("ensure_fresh",))
        self._rotate()

    async def get_profile(self):
        self.calls.append(("get_profile",))
        return {"emailAddress": MAILBOX, "historyId": self.profile_history_id}

    async def list_recent_messages(self, query=None, max_results=1, exclude_self=True, label_ids=("INBOX",)):
        self.calls.append(("list_recent_messages", query, max_results, exclude_self))
        return self.recent[:max_results]

    async def get_message(self, message_id, format="full"):
        self.calls.append(("get_message", message_id, format))
        if message_id in self.fail_ids:
            raise GmailServiceError(f"message fetch {message_id} failed", status=500)
        return self.messages[message_id]

    async def list_history(self, start_history_id, label_id="INBOX", history_types=("messageAdded",)):
        self.calls.append(("list_history", start_history_id))
        if self.history_error:
            raise self.history_error
        return self.history

    async def watch(self, topic_name, label_ids=("INBOX",)):
        self.calls.append(("watch", topic_name))
        return self.watch_response

    async def stop(self):
        self.calls.append(("stop",))
        self._rotate()


class FakeExtractor:
    """Extractor returning a fixed company, or raising."""

    def __init__(self, company: Optional[str] = None, error: Optional[Exception] = None):
        self.company = company
        self.error = error
        self.calls: List[tuple] = []

    async def extract_company(self, body, subject, sender):
        self.calls.append((body, subject, sender))
        if self.error:
            raise self.error
        return CompanyExtraction(company=self.company)


class FakeNotionClient:
    """Minimal notion_client.AsyncClient with an in-memory database."""

    class _Databases:
        def __init__(self, outer):
            self._outer = outer

        async def query(self, database_id, filter):
            wanted = filter["rich_text"]["equals"]
            return {"results": [p for p in self._outer.pages_created if p["_message_id"] == wanted]}

    class _Pages:
        def __init__(self, outer):
            self._outer = outer

        async def create(self, parent, properties):
            if self._outer.create_error:
                raise self._outer.create_error
            message_id = properties["Gmail Message ID"]["rich_text"][0]["text"]["content"]
            page = {"parent": parent, "properties": properties, "_message_id": message_id}
            self._outer.pages_created.append(page)
            return page

    def __init__(self):
        self.pages_created: List[Dict] = []
        self.create_error: Optional[Exception] = None
        self.databases = self._Databases(self)
        self.pages = self._Pages(self)


@pytest.fixture
def session_factory():
    """Sessions bound to a fresh in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    engine.dispose()


@pytest.fixture
def store(session_factory) -> CheckpointStore:
    return CheckpointStore(session_factory)


@pytest.fixture
def account(store):
    """Authorized mailbox without a history cursor."""
    return store.upsert_account(
        MAILBOX,
        OAuthCredentials(access_token="access-1", refresh_token="refresh-1", token_type="Bearer"),
    )


@pytest.fixture
def notion_client() -> FakeNotionClient:
    return FakeNotionClient()
