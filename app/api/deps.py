"""
FastAPI dependencies for objects built at startup.

Services live on ``app.state`` so tests can swap them without patching.
"""

from fastapi import Request

from app.config import Settings, get_settings
from app.services.checkpoint_store import CheckpointStore
from app.services.sync_orchestrator import GmailClientFactory
from app.services.sync_scheduler import SyncScheduler


def get_checkpoint_store(request: Request) -> CheckpointStore:
    return request.app.state.checkpoint_store


def get_sync_scheduler(request: Request) -> SyncScheduler:
    return request.app.state.sync_scheduler


def get_gmail_factory(request: Request) -> GmailClientFactory:
    return request.app.state.gmail_factory


def get_app_settings() -> Settings:
    return get_settings()
