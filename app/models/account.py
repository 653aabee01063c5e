"""
Account model for the watched Gmail mailbox.

One row per mailbox, keyed by the mailbox address. Stores:
- OAuth credentials used to call the Gmail API
- last_history_id: Last considered Gmail historyId for incremental sync
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.sql import func
from app.database import Base


class Account(Base):
    """
    Watched mailbox with its credentials and sync checkpoint.

    Persists across server restarts, unlike in-memory variables.
    """
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True)

    # Mailbox identity (unique - one row per mailbox)
    email = Column(String(255), unique=True, nullable=False, index=True)

    # ============ OAUTH CREDENTIALS ============
    access_token = Column(Text)
    refresh_token = Column(Text)
    expiry = Column(DateTime)  # Naive UTC, as google-auth reports it
    token_type = Column(String(50))

    # ============ SYNC CHECKPOINT ============
    # Gmail historyIds can exceed 64-bit ranges; kept as a decimal string
    last_history_id = Column(String(64), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Account(email={self.email}, last_history_id={self.last_history_id})>"

    def credentials(self) -> "OAuthCredentials":
        """Return the stored credential fields as an OAuthCredentials payload."""
        return OAuthCredentials(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            expiry=self.expiry,
            token_type=self.token_type,
        )


@dataclass
class OAuthCredentials:
    """Credential payload exchanged between the auth flow, Gmail and the store."""
    access_token: Optional[str]
    refresh_token: Optional[str] = None
    expiry: Optional[datetime] = None
    token_type: Optional[str] = None
