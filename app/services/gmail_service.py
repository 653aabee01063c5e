"""
Gmail API adapter.

Wraps the blocking google-api-python-client calls the sync pass needs:
- list_recent_messages: Latest inbox messages (bootstrap)
- get_message: Metadata-only or full message
- list_history: Incremental changes since a historyId (all pages)
- watch / stop: Cloud Pub/Sub push notifications

Blocking calls run in a worker thread and are bounded by a timeout.
When Google rotates the access token during a call, handlers registered
with on_credentials_rotated() receive the new credentials.
"""

import asyncio
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from app.config import Settings
from app.logging_config import get_logger
from app.models.account import Account, OAuthCredentials
from app.models.application_record import EmailMessage

logger = get_logger(__name__)

SCOPES = ["https://www.googleapis.com/auth/gmail.readonly"]
TOKEN_URI = "https://oauth2.googleapis.com/token"

CredentialsHandler = Callable[[OAuthCredentials], None]


class GmailServiceError(Exception):
    """A Gmail call failed or timed out. ``status`` is the HTTP status, if any."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


# ============ HELPERS ============

def build_credentials(
    stored: OAuthCredentials,
    client_id: Optional[str],
    client_secret: Optional[str],
) -> Credentials:
    """Build google-auth credentials able to refresh themselves."""
    return Credentials(
        token=stored.access_token,
        refresh_token=stored.refresh_token,
        token_uri=TOKEN_URI,
        client_id=client_id,
        client_secret=client_secret,
        scopes=SCOPES,
        expiry=stored.expiry,
    )


def get_header(payload: dict, name: str) -> str:
    """Case-insensitive header lookup; empty string when missing."""
    for header in (payload or {}).get("headers", []):
        if header.get("name", "").lower() == name.lower():
            return header.get("value") or ""
    return ""


def parse_message(msg: dict) -> EmailMessage:
    """
    Extract the fields used by the pipeline from a Gmail message resource.

    Args:
        msg: Response of users.messages.get (format "full" or "metadata")

    Returns:
        EmailMessage with subject, sender, snippet and receipt time
    """
    payload = msg.get("payload", {})
    internal_date = msg.get("internalDate")

    return EmailMessage(
        message_id=msg["id"],
        subject=get_header(payload, "Subject"),
        sender=get_header(payload, "From"),
        snippet=msg.get("snippet") or "",
        internal_date=int(internal_date) if internal_date else None,
        history_id=msg.get("historyId"),
    )


def collect_history(history: Iterable[dict], start_history_id: str) -> Tuple[List[str], str]:
    """
    Collect added message ids and the highest historyId from history records.

    Args:
        history: Records from users.history.list (all pages)
        start_history_id: Cursor the listing started from

    Returns:
        Tuple of (message_ids in listed order, new cursor as decimal string).
        The cursor is the start value when no record carries a higher one.
    """
    max_history_id = int(start_history_id)
    message_ids: List[str] = []
    seen = set()

    for record in history:
        record_id = record.get("id") or record.get("historyId")
        if record_id:
            max_history_id = max(max_history_id, int(record_id))
        for added in record.get("messagesAdded", []):
            message_id = (added.get("message") or {}).get("id")
            if message_id and message_id not in seen:
                seen.add(message_id)
                message_ids.append(message_id)

    return message_ids, str(max_history_id)


# ============ CLIENT ============

class GmailClient:
    """Async facade over an authenticated Gmail API service for one mailbox."""

    def __init__(self, credentials: Credentials, service=None, timeout: float = 30.0):
        self._credentials = credentials
        self._service = service or build(
            "gmail", "v1", credentials=credentials, cache_discovery=False
        )
        self._timeout = timeout
        self._handlers: List[CredentialsHandler] = []
        self._last_token = credentials.token

    def on_credentials_rotated(self, handler: CredentialsHandler) -> None:
        """Register a callback invoked with the new credentials after a token refresh."""
        self._handlers.append(handler)

    def _notify_if_rotated(self) -> None:
        token = self._credentials.token
        if not token or token == self._last_token:
            return
        self._last_token = token

        rotated = OAuthCredentials(
            access_token=token,
            refresh_token=self._credentials.refresh_token,
            expiry=self._credentials.expiry,
            token_type="Bearer",
        )
        for handler in self._handlers:
            try:
                handler(rotated)
            except Exception:
                logger.exception("❌ Credentials rotation handler failed")

    async def _run(self, func, description: str):
        try:
            return await asyncio.wait_for(asyncio.to_thread(func), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise GmailServiceError(f"{description} timed out after {self._timeout}s") from e
        except HttpError as e:
            raise GmailServiceError(f"{description} failed: {e}", status=e.resp.status) from e
        finally:
            self._notify_if_rotated()

    async def ensure_fresh(self) -> None:
        """Refresh an expired access token before the first call of a pass."""
        if self._credentials.expired and self._credentials.refresh_token:
            await self._run(lambda: self._credentials.refresh(Request()), "token refresh")

    async def get_profile(self) -> Dict:
        request = self._service.users().getProfile(userId="me")
        return await self._run(request.execute, "profile fetch")

    async def list_recent_messages(
        self,
        query: Optional[str] = None,
        max_results: int = 1,
        exclude_self: bool = True,
        label_ids: Tuple[str, ...] = ("INBOX",),
    ) -> List[Dict]:
        """
        List the most recent messages, newest first.

        Args:
            query: Optional Gmail search query
            max_results: Maximum number of messages
            exclude_self: Skip messages sent by the mailbox owner
            label_ids: Labels to scope the listing to

        Returns:
            List of {"id", "threadId"} stubs (may be empty)
        """
        terms = []
        if exclude_self:
            terms.append("-from:me")
        if query:
            terms.append(query)

        request = self._service.users().messages().list(
            userId="me",
            labelIds=list(label_ids),
            q=" ".join(terms) or None,
            maxResults=max_results,
        )
        response = await self._run(request.execute, "message listing")
        return response.get("messages", [])

    async def get_message(self, message_id: str, format: str = "full") -> Dict:
        request = self._service.users().messages().get(
            userId="me", id=message_id, format=format
        )
        return await self._run(request.execute, f"message fetch {message_id}")

    async def list_history(
        self,
        start_history_id: str,
        label_id: str = "INBOX",
        history_types: Tuple[str, ...] = ("messageAdded",),
    ) -> List[Dict]:
        """
        Fetch every history record since a historyId, following page tokens.

        Raises:
            GmailServiceError: status 404 when the start historyId is too old
        """
        history: List[Dict] = []
        page_token = None

        while True:
            request = self._service.users().history().list(
                userId="me",
                startHistoryId=start_history_id,
                labelId=label_id,
                historyTypes=list(history_types),
                pageToken=page_token,
            )
            response = await self._run(request.execute, "history listing")
            history.extend(response.get("history", []))

            page_token = response.get("nextPageToken")
            if not page_token:
                return history

    async def watch(self, topic_name: str, label_ids: Tuple[str, ...] = ("INBOX",)) -> Dict:
        """
        Register Gmail push notifications via Cloud Pub/Sub.

        Watch expires after ~7 days and must be renewed.

        Returns:
            Dictionary with 'historyId' (baseline) and 'expiration' (timestamp in ms)
        """
        request = self._service.users().watch(
            userId="me",
            body={"topicName": topic_name, "labelIds": list(label_ids)},
        )
        return await self._run(request.execute, "watch registration")

    async def stop(self) -> None:
        request = self._service.users().stop(userId="me")
        await self._run(request.execute, "watch stop")


def create_gmail_client(account: Account, settings: Settings) -> GmailClient:
    """Build a GmailClient from a stored account and the OAuth app settings."""
    credentials = build_credentials(
        account.credentials(),
        settings.google_client_id,
        settings.google_client_secret,
    )
    return GmailClient(credentials, timeout=settings.gmail_timeout_seconds)
