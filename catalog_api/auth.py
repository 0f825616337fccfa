"""
Session tokens and the authentication gate for the FastAPI API.

Tokens are signed JWTs carried in an HTTP-only cookie. Nothing is stored
server side; a token is valid while its signature and expiry check out.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import structlog
from fastapi import Depends, HTTPException, Request, Response, status
from jose import JWTError, jwt

from catalog_api.config import config

logger = structlog.get_logger(__name__)

TOKEN_COOKIE = "token"

# Only the signature and our own expiry are checked. Other registered claim
# names may appear in the caller payload with any value.
DECODE_OPTIONS = {
    "verify_signature": True,
    "verify_exp": True,
    "verify_aud": False,
    "verify_iat": False,
    "verify_nbf": False,
    "verify_iss": False,
    "verify_sub": False,
    "verify_jti": False,
    "verify_at_hash": False,
}


class SessionTokenService:
    """Issues and verifies signed, time-limited session tokens."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        expires_minutes: int = 60,
        secure_cookie: bool = False,
        samesite: str = "strict",
    ):
        self.secret = secret
        self.algorithm = algorithm
        self.expires_minutes = expires_minutes
        self.secure_cookie = secure_cookie
        self.samesite = samesite

    def issue(self, payload: Dict[str, Any]) -> str:
        """
        Sign a payload into a token.

        Args:
            payload: Caller-supplied claims, typically the user's email

        Returns:
            Encoded token expiring after the configured lifetime
        """
        claims = dict(payload)
        claims["exp"] = datetime.now(timezone.utc) + timedelta(minutes=self.expires_minutes)
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)

    def verify(self, token: Optional[str]) -> Optional[Dict[str, Any]]:
        """
        Validate a token.

        Returns:
            The decoded claims, or None when the token is missing, malformed,
            signed with another key or expired
        """
        if not token:
            return None
        try:
            return jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options=DECODE_OPTIONS,
            )
        except JWTError as e:
            logger.info("Session token rejected", reason=str(e))
            return None

    def set_session_cookie(self, response: Response, token: str) -> None:
        response.set_cookie(
            key=TOKEN_COOKIE,
            value=token,
            httponly=True,
            secure=self.secure_cookie,
            samesite=self.samesite,
        )

    def clear_session_cookie(self, response: Response) -> None:
        response.set_cookie(
            key=TOKEN_COOKIE,
            value="",
            max_age=0,
            httponly=True,
            secure=self.secure_cookie,
            samesite=self.samesite,
        )


def build_token_service() -> SessionTokenService:
    """Create the token service from the global configuration."""
    cookie = config.cookie_options()
    return SessionTokenService(
        secret=config.access_token_secret,
        algorithm=config.token_algorithm,
        expires_minutes=config.token_expire_minutes,
        secure_cookie=cookie["secure"],
        samesite=cookie["samesite"],
    )


token_service = build_token_service()


def get_token_service() -> SessionTokenService:
    return token_service


async def require_session(
    request: Request,
    tokens: SessionTokenService = Depends(get_token_service),
) -> Dict[str, Any]:
    """
    Verify the session cookie of a request.

    Returns:
        The decoded token payload, also stored on request.state.user

    Raises:
        HTTPException: 401 if the cookie is missing or invalid
    """
    token = request.cookies.get(TOKEN_COOKIE)
    if not token:
        logger.warning("Missing session token", path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized access",
        )

    payload = tokens.verify(token)
    if payload is None:
        logger.warning("Invalid session token", path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized access",
        )

    request.state.user = payload
    return payload


async def require_email_owner(
    email: str,
    user: Dict[str, Any] = Depends(require_session),
) -> Dict[str, Any]:
    """Only let a session read the records of its own email."""
    token_email = user.get("email")
    if token_email is not None and token_email != email:
        logger.warning("Session email mismatch", requested=email)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden access",
        )
    return user
