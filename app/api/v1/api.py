from fastapi import APIRouter
from app.api.v1.endpoints import auth, gmail_events, gmail_watch

api_router = APIRouter(prefix="/api/v1")

# Include all endpoint routers
api_router.include_router(auth.router)
api_router.include_router(gmail_events.router)
api_router.include_router(gmail_watch.router)
