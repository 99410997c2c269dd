import logging
from datetime import timedelta
from urllib.parse import urlparse

from fastapi import APIRouter, Request, Response
from firebase_admin import auth
from pydantic import BaseModel

from config import settings
from dependencies import OptionalUser, Verifier
from services.errors import AuthRequired

logger = logging.getLogger(__name__)

router = APIRouter()


class TokenRequest(BaseModel):
    id_token: str


@router.post("/login")
def login(token: TokenRequest, request: Request, response: Response, verifier: Verifier):
    """Exchange a Firebase ID token for a session cookie"""
    expires_in = timedelta(days=settings.SESSION_EXPIRES_DAYS)
    try:
        decoded_token = verifier.verify_id_token(token.id_token)
        session_cookie = verifier.create_session_cookie(token.id_token, expires_in)
    except (ValueError, auth.InvalidIdTokenError, auth.CertificateFetchError, auth.UserDisabledError) as e:
        logger.info("Login rejected: %s", e)
        raise AuthRequired("Authentication failed")

    origin = request.headers.get("origin", "")
    domain = None

    # If in production, extract domain from origin
    if origin and "localhost" not in origin:
        domain = urlparse(origin).hostname

    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=session_cookie,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        max_age=int(expires_in.total_seconds()),
        path="/",
        samesite="lax",
        domain=domain
    )

    return {"success": True, "user_id": decoded_token["uid"]}


@router.post("/logout")
async def logout(response: Response):
    # Clear the session cookie
    response.delete_cookie(
        key=settings.SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
    )
    return {"success": True}


@router.get("/verify")
async def verify_session(principal: OptionalUser):
    if principal is None:
        raise AuthRequired("Invalid session")

    return {
        "valid": True,
        "user": {
            "uid": principal.user_id,
            "email": principal.email,
            "isAdmin": principal.is_admin,
        }
    }
