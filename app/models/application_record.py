"""
Plain data carried through a sync pass.

EmailMessage is fetched per pass and never persisted here.
ApplicationRecord is what ends up in the Notion tracking database.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

UNKNOWN_COMPANY = "Unknown Company"
DEFAULT_STATUS = "Applied"
DEFAULT_REFERRAL = "No"


@dataclass
class EmailMessage:
    """Subset of a Gmail message used for classification and extraction."""
    message_id: str
    subject: str = ""
    sender: str = ""
    snippet: str = ""
    internal_date: Optional[int] = None  # Epoch milliseconds
    history_id: Optional[str] = None


@dataclass
class ApplicationRecord:
    """One tracked job application, deduplicated by gmail_message_id."""
    gmail_message_id: str
    company: str = UNKNOWN_COMPANY
    subject: str = ""
    received_at_ms: Optional[int] = None
    referral: str = DEFAULT_REFERRAL
    body: str = ""
    status: str = DEFAULT_STATUS

    @classmethod
    def from_message(cls, message: EmailMessage, company: Optional[str]) -> "ApplicationRecord":
        return cls(
            gmail_message_id=message.message_id,
            company=company or UNKNOWN_COMPANY,
            subject=message.subject or "",
            received_at_ms=message.internal_date,
            body=message.snippet or "",
        )

    @property
    def received_at(self) -> datetime:
        """Receipt time as an aware UTC datetime (now, if Gmail gave none)."""
        if self.received_at_ms is None:
            return datetime.now(timezone.utc)
        return datetime.fromtimestamp(self.received_at_ms / 1000, tz=timezone.utc)
