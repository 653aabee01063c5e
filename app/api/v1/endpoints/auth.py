"""
Google OAuth authorization for the watched mailbox.

Flow:
1. GET /auth/login -> Redirects to Google OAuth consent screen
2. Google redirects back to /auth/callback with code
3. /auth/callback exchanges code for tokens, reads the Gmail address,
   and stores the account (insert or update)
"""

import asyncio
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse
from google_auth_oauthlib.flow import Flow
from pydantic import BaseModel

from app.api.deps import get_app_settings, get_checkpoint_store
from app.config import Settings
from app.logging_config import get_logger
from app.models.account import OAuthCredentials
from app.services.checkpoint_store import CheckpointStore
from app.services.gmail_service import SCOPES, TOKEN_URI, GmailClient

logger = get_logger(__name__)


# Response Models
class AuthSuccessResponse(BaseModel):
    """Successful authentication response."""
    success: bool
    message: str
    email: str
    has_refresh_token: bool = False


router = APIRouter(prefix="/auth", tags=["Authentication"])


def get_redirect_uri(request: Request, settings: Settings) -> str:
    """Configured callback URL, or one built from the incoming request."""
    if settings.google_redirect_uri:
        return settings.google_redirect_uri
    base_url = str(request.base_url).rstrip("/")
    return f"{base_url}/api/v1/auth/callback"


def get_oauth_flow(settings: Settings, redirect_uri: str) -> Flow:
    """Create OAuth flow from the configured client id and secret."""
    if not settings.google_client_id or not settings.google_client_secret:
        raise HTTPException(
            status_code=500,
            detail="GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET not configured."
        )

    client_config = {
        "web": {
            "client_id": settings.google_client_id,
            "client_secret": settings.google_client_secret,
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": TOKEN_URI,
            "redirect_uris": [redirect_uri],
        }
    }
    # No PKCE: login and callback build separate Flow objects
    return Flow.from_client_config(
        client_config,
        scopes=SCOPES,
        redirect_uri=redirect_uri,
        autogenerate_code_verifier=False,
    )


@router.get("/login")
def login(request: Request, settings: Settings = Depends(get_app_settings)):
    """
    Start OAuth flow - redirects to Google consent screen.

    After user grants permission, Google redirects to /auth/callback.
    """
    flow = get_oauth_flow(settings, get_redirect_uri(request, settings))

    auth_url, _state = flow.authorization_url(
        access_type="offline",  # Get refresh token
        include_granted_scopes="true",
        prompt="consent"  # Force consent to get refresh token
    )

    return RedirectResponse(url=auth_url)


@router.get("/callback", response_model=AuthSuccessResponse)
async def callback(
    request: Request,
    code: Optional[str] = None,
    error: Optional[str] = None,
    store: CheckpointStore = Depends(get_checkpoint_store),
    settings: Settings = Depends(get_app_settings),
):
    """
    OAuth callback - exchanges authorization code for tokens.

    Nothing is stored unless both the token exchange and the profile
    lookup succeed.
    """
    if error:
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": error,
                "message": "Authentication was denied or failed."
            }
        )

    if not code:
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "missing_code",
                "message": "No authorization code received."
            }
        )

    flow = get_oauth_flow(settings, get_redirect_uri(request, settings))

    try:
        # Exchange code for tokens
        await asyncio.to_thread(flow.fetch_token, code=code)
        credentials = flow.credentials

        # Get user's Gmail address
        gmail = GmailClient(credentials, timeout=settings.gmail_timeout_seconds)
        profile = await gmail.get_profile()
        email = profile["emailAddress"]
    except Exception as e:
        logger.exception("❌ OAuth callback error")
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": str(e),
                "message": "Authentication failed."
            }
        )

    store.upsert_account(
        email,
        OAuthCredentials(
            access_token=credentials.token,
            refresh_token=credentials.refresh_token,
            expiry=credentials.expiry,
            token_type="Bearer",
        ),
    )

    return AuthSuccessResponse(
        success=True,
        message=f"✅ Gmail access granted for {email}",
        email=email,
        has_refresh_token=bool(credentials.refresh_token),
    )
