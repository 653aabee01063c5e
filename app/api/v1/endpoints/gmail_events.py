"""
Sync triggers for the watched mailbox.

Both endpoints only enqueue a pass and answer immediately; the pass itself
runs on the background worker:
- POST /gmail/sync?email=...   Manual / cron trigger
- POST /gmail/events           Gmail push notification via Cloud Pub/Sub
"""

import base64
import json
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel

from app.api.deps import get_checkpoint_store, get_sync_scheduler
from app.logging_config import get_logger
from app.services.checkpoint_store import CheckpointStore
from app.services.sync_scheduler import SyncScheduler

logger = get_logger(__name__)

router = APIRouter(prefix="/gmail", tags=["Gmail Sync"])


# Response Models
class TriggerResponse(BaseModel):
    """Result of a sync trigger."""
    status: str  # accepted, skipped
    email: str


class SyncStatusResponse(BaseModel):
    """Checkpoint and scheduling state for one mailbox."""
    email: str
    last_history_id: Optional[str]
    token_expiry: Optional[datetime]
    has_refresh_token: bool
    busy: bool


@router.post("/sync", response_model=TriggerResponse, status_code=status.HTTP_202_ACCEPTED)
async def trigger_sync(
    email: Optional[str] = None,
    store: CheckpointStore = Depends(get_checkpoint_store),
    scheduler: SyncScheduler = Depends(get_sync_scheduler),
):
    """
    Schedule a sync pass for a mailbox and return immediately.

    A trigger for a mailbox whose pass is already queued or running is
    dropped and reported as "skipped".
    """
    if not email:
        raise HTTPException(status_code=400, detail="Missing email")

    if store.load(email) is None:
        raise HTTPException(status_code=404, detail="User not found")

    accepted = scheduler.enqueue(email)
    return TriggerResponse(status="accepted" if accepted else "skipped", email=email)


@router.post("/events")
async def gmail_events(
    request: Request,
    store: CheckpointStore = Depends(get_checkpoint_store),
    scheduler: SyncScheduler = Depends(get_sync_scheduler),
):
    """
    Webhook endpoint for Gmail push notifications via Pub/Sub.

    When Gmail detects mailbox changes, it publishes to Pub/Sub, which pushes
    here. The notification's historyId is not used: the pass always works
    from the stored cursor.

    Malformed payloads are acknowledged as "ignored" so Pub/Sub does not
    redeliver them forever.
    """
    try:
        body = await request.json()
    except ValueError:
        return {"status": "ignored", "reason": "body is not JSON"}

    # Pub/Sub wraps the notification in a 'message' object
    message = body.get("message") if isinstance(body, dict) else None
    if not message or not isinstance(message, dict):
        return {"status": "ignored", "reason": "no message object"}

    data = message.get("data")
    if not data or not isinstance(data, str):
        return {"status": "ignored", "reason": "no data string"}

    # Decode base64-encoded JSON payload
    try:
        payload = json.loads(base64.b64decode(data).decode("utf-8"))
    except ValueError as e:  # binascii.Error, UnicodeDecodeError, JSONDecodeError
        logger.warning(f"⚠️ Undecodable Pub/Sub payload: {e}")
        return {"status": "ignored", "reason": f"decode failed: {e}"}

    if not isinstance(payload, dict):
        return {"status": "ignored", "reason": "payload is not a JSON object"}

    email_address = payload.get("emailAddress")
    logger.info(f"📧 Gmail notification for {email_address} (historyId {payload.get('historyId')})")

    if not isinstance(email_address, str) or store.load(email_address) is None:
        return {"status": "ignored", "reason": "unknown mailbox"}

    accepted = scheduler.enqueue(email_address)
    return {"status": "accepted" if accepted else "skipped", "email": email_address}


@router.get("/status", response_model=SyncStatusResponse)
def sync_status(
    email: str,
    store: CheckpointStore = Depends(get_checkpoint_store),
    scheduler: SyncScheduler = Depends(get_sync_scheduler),
):
    """Show the stored cursor and whether a pass is queued or running."""
    account = store.load(email)
    if account is None:
        raise HTTPException(status_code=404, detail="User not found")

    return SyncStatusResponse(
        email=account.email,
        last_history_id=account.last_history_id,
        token_expiry=account.expiry,
        has_refresh_token=bool(account.refresh_token),
        busy=scheduler.is_busy(email),
    )
