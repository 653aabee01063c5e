"""
Models for the application tracker.

This package contains:
- Account: Watched mailbox with OAuth credentials and history cursor (SQLAlchemy)
- EmailMessage / ApplicationRecord: Per-pass data, not stored locally

Note: Application records live in Notion, not in this database.
"""

from app.models.account import Account, OAuthCredentials
from app.models.application_record import (
    ApplicationRecord,
    EmailMessage,
    UNKNOWN_COMPANY,
)

__all__ = [
    "Account",
    "OAuthCredentials",
    "ApplicationRecord",
    "EmailMessage",
    "UNKNOWN_COMPANY",
]
