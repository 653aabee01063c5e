"""
Checkpoint store for the watched mailbox.

This module owns the `accounts` table:
- upsert_account: Insert or update an account after OAuth authorization
- refresh_credentials: Partial update when Google rotates the access token
- advance_cursor: Move the Gmail history cursor forward (never backward)
"""

from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models.account import Account, OAuthCredentials

logger = get_logger(__name__)


class AccountNotFoundError(LookupError):
    """Raised when an operation targets a mailbox that was never authorized."""

    def __init__(self, email: str):
        super().__init__(f"No account for {email}")
        self.email = email


def cursor_value(cursor: Optional[str]) -> Optional[int]:
    """Gmail historyIds are unbounded integers; compare them as Python ints."""
    if cursor is None or cursor == "":
        return None
    return int(cursor)


class CheckpointStore:
    """
    Persists per-mailbox credentials and history cursor.

    Each operation opens its own session from the factory and commits
    before returning, so callers never hold a session across network I/O.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def _find(self, db: Session, email: str) -> Optional[Account]:
        return db.query(Account).filter(Account.email == email).first()

    def load(self, email: str) -> Optional[Account]:
        """Return the account for a mailbox, or None if it was never authorized."""
        with self._session_factory() as db:
            return self._find(db, email)

    # ============ CREDENTIALS ============

    def upsert_account(self, email: str, credentials: OAuthCredentials) -> Account:
        """
        Save credentials after authorization with upsert logic.

        If the mailbox exists, its credentials are replaced but a missing
        refresh token in the new payload keeps the stored one. The history
        cursor is never touched here.

        Args:
            email: Mailbox address from the Gmail profile
            credentials: Tokens returned by the OAuth code exchange

        Returns:
            Account: Existing (updated) or newly created account
        """
        with self._session_factory() as db:
            account = self._find(db, email)

            if account is None:
                account = Account(
                    email=email,
                    access_token=credentials.access_token,
                    refresh_token=credentials.refresh_token,
                    expiry=credentials.expiry,
                    token_type=credentials.token_type,
                )
                db.add(account)
                try:
                    db.commit()
                    db.refresh(account)
                    logger.info(f"🆕 Account created for {email}")
                    return account
                except IntegrityError:
                    # Race condition - another request created it
                    db.rollback()
                    account = self._find(db, email)

            account.access_token = credentials.access_token
            account.refresh_token = credentials.refresh_token or account.refresh_token
            account.expiry = credentials.expiry
            account.token_type = credentials.token_type
            db.commit()
            db.refresh(account)
            logger.info(f"🔑 Credentials updated for {email}")
            return account

    def refresh_credentials(self, email: str, credentials: OAuthCredentials) -> None:
        """
        Store a rotated access token.

        The refresh token is only replaced when the payload carries one.

        Raises:
            AccountNotFoundError: If the mailbox has no account row
        """
        with self._session_factory() as db:
            account = self._find(db, email)
            if account is None:
                raise AccountNotFoundError(email)

            if credentials.access_token:
                account.access_token = credentials.access_token
            if credentials.refresh_token:
                account.refresh_token = credentials.refresh_token
            account.expiry = credentials.expiry or account.expiry
            account.token_type = credentials.token_type or account.token_type
            db.commit()
            logger.debug(f"🔄 Access token refreshed for {email}")

    # ============ HISTORY CURSOR ============

    def advance_cursor(self, email: str, new_cursor: str) -> str:
        """
        Persist the history cursor for a mailbox.

        A value behind the stored cursor is ignored so the cursor never moves
        backward. Writing the same value again is allowed.

        Args:
            email: Mailbox address
            new_cursor: Decimal historyId string

        Returns:
            The cursor value stored after the call

        Raises:
            AccountNotFoundError: If the mailbox has no account row
        """
        new_value = cursor_value(str(new_cursor))

        with self._session_factory() as db:
            account = self._find(db, email)
            if account is None:
                raise AccountNotFoundError(email)

            current_value = cursor_value(account.last_history_id)
            if current_value is not None and new_value < current_value:
                logger.warning(
                    f"⚠️ Refusing to move cursor backward for {email}: "
                    f"{current_value} -> {new_value}"
                )
                return account.last_history_id

            account.last_history_id = str(new_value)
            db.commit()
            return account.last_history_id
