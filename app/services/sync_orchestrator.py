"""
Gmail → Notion sync pass.

One pass for one mailbox:
1. Acquire the per-account guard (drop the pass if busy)
2. Load the account and its history cursor
3. No cursor → bootstrap: remember the latest inbox historyId, process nothing
4. Cursor → list history since it, run the pipeline for every added message
   (expired cursor → re-check the newest inbox messages instead)
5. Advance the cursor exactly once, even if nothing was recorded

The cursor is computed from the history listing before any message is
fetched, so a failure on one message never blocks the advance.
"""

import enum
from dataclasses import dataclass
from typing import Callable, List, Optional

from app.logging_config import get_logger
from app.models.account import Account
from app.services.application_pipeline import ApplicationPipeline
from app.services.checkpoint_store import CheckpointStore
from app.services.gmail_service import (
    GmailClient,
    GmailServiceError,
    collect_history,
    parse_message,
)
from app.services.sync_guard import SyncGuard

logger = get_logger(__name__)

GmailClientFactory = Callable[[Account], GmailClient]

# Newest inbox messages re-checked after the history cursor expired
CATCH_UP_LIMIT = 25


class PassOutcome(str, enum.Enum):
    """How a sync pass ended."""
    SKIPPED = "skipped"  # Another pass holds the guard
    NOT_FOUND = "not_found"  # Mailbox was never authorized
    EMPTY_MAILBOX = "empty_mailbox"  # Bootstrap found no message
    BOOTSTRAPPED = "bootstrapped"
    SYNCED = "synced"
    RECOVERED = "recovered"  # Cursor expired, recent inbox re-checked
    FAILED = "failed"


@dataclass
class SyncReport:
    """Aggregate counts for one pass."""
    email: str
    outcome: PassOutcome
    start_cursor: Optional[str] = None
    cursor: Optional[str] = None
    messages_seen: int = 0
    confirmations: int = 0
    recorded: int = 0
    duplicates: int = 0
    failed: int = 0
    error_message: Optional[str] = None


class SyncOrchestrator:
    """Runs guarded sync passes against Gmail for stored accounts."""

    def __init__(
        self,
        store: CheckpointStore,
        gmail_factory: GmailClientFactory,
        pipeline: ApplicationPipeline,
        guard: Optional[SyncGuard] = None,
    ):
        self._store = store
        self._gmail_factory = gmail_factory
        self._pipeline = pipeline
        self.guard = guard or SyncGuard()

    async def run(self, email: str) -> SyncReport:
        """
        Run one sync pass for a mailbox.

        Never raises; unexpected errors are logged and reported as FAILED
        with the cursor left at its last stored value.
        """
        if not self.guard.try_acquire(email):
            logger.info(f"⏳ Sync already running for {email}, skipping")
            return SyncReport(email=email, outcome=PassOutcome.SKIPPED)

        try:
            return await self._run_pass(email)
        except Exception as e:
            logger.exception(f"❌ Sync pass failed for {email}")
            return SyncReport(email=email, outcome=PassOutcome.FAILED, error_message=str(e))
        finally:
            self.guard.release(email)

    async def _run_pass(self, email: str) -> SyncReport:
        account = self._store.load(email)
        if account is None:
            logger.warning(f"❓ No account for {email}")
            return SyncReport(email=email, outcome=PassOutcome.NOT_FOUND)

        gmail = self._gmail_factory(account)
        gmail.on_credentials_rotated(
            lambda credentials: self._store.refresh_credentials(email, credentials)
        )
        await gmail.ensure_fresh()

        if not account.last_history_id:
            return await self._bootstrap(email, gmail)
        return await self._sync(email, gmail, account.last_history_id)

    # ============ BOOTSTRAP ============

    async def _bootstrap(self, email: str, gmail: GmailClient) -> SyncReport:
        """Start tracking from the newest inbox message without importing history."""
        logger.info(f"🆕 Bootstrapping history cursor for {email}")

        latest = await gmail.list_recent_messages(max_results=1, exclude_self=True)
        if not latest:
            logger.info(f"📭 Inbox empty for {email}, nothing to bootstrap from")
            return SyncReport(email=email, outcome=PassOutcome.EMPTY_MAILBOX)

        metadata = await gmail.get_message(latest[0]["id"], format="metadata")
        cursor = self._store.advance_cursor(email, metadata["historyId"])

        logger.info(f"✅ History tracking initialized for {email} at {cursor}")
        return SyncReport(email=email, outcome=PassOutcome.BOOTSTRAPPED, cursor=cursor)

    # ============ INCREMENTAL SYNC ============

    async def _sync(self, email: str, gmail: GmailClient, start_cursor: str) -> SyncReport:
        logger.info(f"📊 Incremental sync for {email} from historyId: {start_cursor}")

        try:
            history = await gmail.list_history(start_cursor)
        except GmailServiceError as e:
            if e.status == 404:
                # Gmail only keeps history for about a week
                logger.warning(f"⚠️ historyId {start_cursor} expired for {email}, catching up from inbox")
                return await self._catch_up(email, gmail, start_cursor)
            raise

        message_ids, new_cursor = collect_history(history, start_cursor)
        logger.info(f"📬 Found {len(message_ids)} new messages for {email}")

        report = SyncReport(email=email, outcome=PassOutcome.SYNCED, start_cursor=start_cursor)
        await self._process_messages(gmail, message_ids, report)
        report.cursor = self._store.advance_cursor(email, new_cursor)

        self._log_summary(report)
        return report

    async def _catch_up(self, email: str, gmail: GmailClient, start_cursor: str) -> SyncReport:
        """
        Recover from an expired cursor.

        The mailbox's current historyId is read first, then the newest inbox
        messages are run through the pipeline (oldest first). Messages already
        in the sink come back as duplicates.
        """
        profile = await gmail.get_profile()
        new_cursor = str(profile["historyId"])

        recent = await gmail.list_recent_messages(max_results=CATCH_UP_LIMIT, exclude_self=True)
        message_ids = [stub["id"] for stub in reversed(recent)]
        logger.info(f"📬 Re-checking {len(message_ids)} recent messages for {email}")

        report = SyncReport(email=email, outcome=PassOutcome.RECOVERED, start_cursor=start_cursor)
        await self._process_messages(gmail, message_ids, report)
        report.cursor = self._store.advance_cursor(email, new_cursor)

        self._log_summary(report)
        return report

    async def _process_messages(self, gmail: GmailClient, message_ids: List[str], report: SyncReport) -> None:
        """Fetch each message and run the pipeline, updating the report counts."""
        for message_id in message_ids:
            try:
                raw = await gmail.get_message(message_id, format="full")
            except GmailServiceError as e:
                logger.error(f"❌ Could not fetch {message_id}: {e}")
                report.failed += 1
                continue

            message = parse_message(raw)
            report.messages_seen += 1

            try:
                state = await self._pipeline.process(message)
            except Exception:
                logger.exception(f"❌ Pipeline failed for {message_id}")
                report.failed += 1
                continue

            if not state.get("is_confirmation"):
                logger.debug(f"⏭️ Not a confirmation: {message.subject[:50]}")
                continue

            report.confirmations += 1
            status = state.get("status")
            if status == "added":
                report.recorded += 1
            elif status == "duplicate":
                report.duplicates += 1
            else:
                report.failed += 1

    @staticmethod
    def _log_summary(report: SyncReport) -> None:
        logger.info(
            f"📝 Sync done for {report.email}: {report.messages_seen} processed, "
            f"{report.confirmations} confirmations, {report.recorded} recorded, "
            f"{report.duplicates} duplicates, {report.failed} failed; "
            f"historyId {report.start_cursor} -> {report.cursor}"
        )
