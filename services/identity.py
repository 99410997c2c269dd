import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from fastapi import Request
from firebase_admin import auth

from config import settings
from models.user import Principal

logger = logging.getLogger(__name__)


class FirebaseVerifier:
    """Checks Firebase session cookies and ID tokens; raises on anything invalid"""

    def __init__(self, app=None):
        self.app = app

    def verify_session_cookie(self, session_cookie: str) -> Dict[str, Any]:
        return auth.verify_session_cookie(
            session_cookie=session_cookie,
            check_revoked=True,
            app=self.app,
            clock_skew_seconds=10,
        )

    def verify_id_token(self, id_token: str) -> Dict[str, Any]:
        return auth.verify_id_token(
            id_token,
            app=self.app,
            check_revoked=True,
            clock_skew_seconds=10,
        )

    def create_session_cookie(self, id_token: str, expires_in: timedelta) -> str:
        cookie = auth.create_session_cookie(id_token, expires_in=expires_in, app=self.app)
        return cookie.decode() if isinstance(cookie, bytes) else cookie


def principal_from_claims(claims: Dict[str, Any]) -> Principal:
    return Principal(
        user_id=claims["uid"],
        email=claims.get("email"),
        is_admin=claims.get("role") == "admin" or claims.get("admin") is True,
    )


REJECTED_CREDENTIAL_ERRORS = (
    ValueError, KeyError,
    auth.InvalidIdTokenError, auth.InvalidSessionCookieError,
    auth.RevokedIdTokenError, auth.RevokedSessionCookieError,
    auth.ExpiredIdTokenError, auth.ExpiredSessionCookieError,
    auth.UserDisabledError, auth.UserNotFoundError, auth.CertificateFetchError,
)


def resolve_principal(request: Request, verifier: FirebaseVerifier) -> Optional[Principal]:
    """
    Session cookie first, then an Authorization bearer token.
    A rejected cookie falls through to the bearer token. Returns None for a
    missing or rejected credential; callers decide what unauthenticated
    means for them.
    """
    session_cookie = request.cookies.get(settings.SESSION_COOKIE_NAME)
    authorization = request.headers.get("Authorization", "")

    if session_cookie:
        try:
            return principal_from_claims(verifier.verify_session_cookie(session_cookie))
        except REJECTED_CREDENTIAL_ERRORS as e:
            logger.info("Rejected session cookie: %s", e)

    if authorization.startswith("Bearer "):
        token = authorization.split("Bearer ", 1)[1].strip()
        if token:
            try:
                return principal_from_claims(verifier.verify_id_token(token))
            except REJECTED_CREDENTIAL_ERRORS as e:
                logger.info("Rejected bearer token: %s", e)
    return None
