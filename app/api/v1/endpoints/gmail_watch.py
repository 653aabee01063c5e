"""
Gmail Watch Management

Endpoints to register and manage Gmail push notification watches for a
stored mailbox. Notifications land on POST /gmail/events.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import get_app_settings, get_checkpoint_store, get_gmail_factory
from app.config import Settings
from app.logging_config import get_logger
from app.services.checkpoint_store import CheckpointStore
from app.services.gmail_service import GmailServiceError
from app.services.sync_orchestrator import GmailClientFactory

logger = get_logger(__name__)

router = APIRouter(prefix="/gmail", tags=["Gmail Watch"])


@router.post("/watch/start")
async def start_gmail_watch(
    email: str,
    store: CheckpointStore = Depends(get_checkpoint_store),
    gmail_factory: GmailClientFactory = Depends(get_gmail_factory),
    settings: Settings = Depends(get_app_settings),
):
    """
    Register Gmail push notifications (watch).

    Prerequisites:
    1. Pub/Sub topic created (GMAIL_PUBSUB_TOPIC)
    2. Gmail publisher permission granted on the topic
    3. Push subscription pointing at /api/v1/gmail/events
    4. GCP_PROJECT_ID set in .env

    Important:
    - Watch expires in ~7 days and must be renewed
    - If the mailbox has no history cursor yet, the returned historyId
      becomes its baseline
    """
    topic_name = settings.pubsub_topic_name
    if not topic_name:
        raise HTTPException(
            status_code=500,
            detail="GCP_PROJECT_ID not configured in .env file"
        )

    account = store.load(email)
    if account is None:
        raise HTTPException(status_code=404, detail="User not found")

    gmail = gmail_factory(account)
    gmail.on_credentials_rotated(lambda credentials: store.refresh_credentials(email, credentials))

    try:
        response = await gmail.watch(topic_name)
    except GmailServiceError as e:
        raise HTTPException(status_code=502, detail=f"Failed to register Gmail watch: {e}")

    history_id = response.get("historyId")
    expiration = response.get("expiration")

    if history_id and not account.last_history_id:
        store.advance_cursor(email, history_id)
        logger.info(f"📌 Baseline historyId {history_id} stored for {email}")

    expiration_date = None
    if expiration:
        expiration_date = datetime.fromtimestamp(int(expiration) / 1000, tz=timezone.utc).isoformat()

    return {
        "status": "success",
        "message": "Gmail watch registered successfully",
        "historyId": history_id,
        "expiration": expiration,
        "expiration_date": expiration_date,
    }


@router.post("/watch/stop")
async def stop_gmail_watch(
    email: str,
    store: CheckpointStore = Depends(get_checkpoint_store),
    gmail_factory: GmailClientFactory = Depends(get_gmail_factory),
):
    """Stop Gmail push notifications for a mailbox."""
    account = store.load(email)
    if account is None:
        raise HTTPException(status_code=404, detail="User not found")

    gmail = gmail_factory(account)
    gmail.on_credentials_rotated(lambda credentials: store.refresh_credentials(email, credentials))

    try:
        await gmail.stop()
    except GmailServiceError as e:
        raise HTTPException(status_code=502, detail=f"Failed to stop Gmail watch: {e}")

    return {
        "status": "success",
        "message": "Gmail watch stopped successfully"
    }
