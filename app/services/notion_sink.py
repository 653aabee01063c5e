"""
Notion sink for tracked applications.

add_record() inserts one page per Gmail message into the tracking database:
- Skips messages already present (lookup by "Gmail Message ID")
- Truncates long text to Notion's 2000-character rich text limit
- Never raises: failures are logged and reported as SinkResult.FAILED
"""

import enum
from typing import Optional

from notion_client import AsyncClient

from app.logging_config import get_logger
from app.models.application_record import ApplicationRecord

logger = get_logger(__name__)

# Notion rejects rich text content longer than this
MAX_TEXT_LENGTH = 2000

# Database property names
COMPANY_PROPERTY = "Company Name"
SUBJECT_PROPERTY = "Email Subject"
DATE_PROPERTY = "Date received"
REFERRAL_PROPERTY = "Referral?"
BODY_PROPERTY = "Email Body"
STATUS_PROPERTY = "Status"
MESSAGE_ID_PROPERTY = "Gmail Message ID"


class SinkResult(str, enum.Enum):
    """Outcome of a single add_record call."""
    ADDED = "added"
    DUPLICATE = "duplicate"
    FAILED = "failed"


def _rich_text(content: Optional[str]) -> list:
    return [{"text": {"content": (content or "")[:MAX_TEXT_LENGTH]}}]


def build_properties(record: ApplicationRecord) -> dict:
    """Map an ApplicationRecord onto the tracking database's schema."""
    return {
        COMPANY_PROPERTY: {"title": _rich_text(record.company)},
        SUBJECT_PROPERTY: {"rich_text": _rich_text(record.subject)},
        DATE_PROPERTY: {"date": {"start": record.received_at.isoformat()}},
        REFERRAL_PROPERTY: {"rich_text": _rich_text(record.referral)},
        BODY_PROPERTY: {"rich_text": _rich_text(record.body)},
        STATUS_PROPERTY: {"status": {"name": record.status}},
        MESSAGE_ID_PROPERTY: {"rich_text": _rich_text(record.gmail_message_id)},
    }


class NotionSink:
    """Idempotent writer into one Notion database."""

    def __init__(self, client: AsyncClient, database_id: str):
        self._client = client
        self._database_id = database_id

    async def exists(self, gmail_message_id: str) -> bool:
        """Check whether a page for this Gmail message is already in the database."""
        response = await self._client.databases.query(
            database_id=self._database_id,
            filter={
                "property": MESSAGE_ID_PROPERTY,
                "rich_text": {"equals": gmail_message_id},
            },
        )
        return len(response.get("results", [])) > 0

    async def add_record(self, record: ApplicationRecord) -> SinkResult:
        """
        Insert a record unless one with the same Gmail message id exists.

        Args:
            record: Application to track

        Returns:
            SinkResult.ADDED, DUPLICATE, or FAILED
        """
        try:
            if await self.exists(record.gmail_message_id):
                logger.info(f"📭 Skipping duplicate: {record.gmail_message_id}")
                return SinkResult.DUPLICATE

            await self._client.pages.create(
                parent={"database_id": self._database_id},
                properties=build_properties(record),
            )
        except Exception as e:
            logger.error(f"❌ Notion insert failed for {record.gmail_message_id}: {e}")
            return SinkResult.FAILED

        logger.info(f"✅ Added to Notion: {record.company}")
        return SinkResult.ADDED


def create_notion_sink(secret: Optional[str], database_id: Optional[str]) -> NotionSink:
    return NotionSink(AsyncClient(auth=secret), database_id or "")
