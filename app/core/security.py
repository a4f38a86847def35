"""
Authentication for the marketplace API.

Buyers and sellers authenticate with a bearer JWT issued by the hosted auth
provider; admin and debug routes use HTTP Basic credentials from settings.
"""

import logging
import secrets
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials, HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from pydantic import BaseModel

from app.core.config import get_settings

logger = logging.getLogger(__name__)

basic_security = HTTPBasic()
bearer_security = HTTPBearer(auto_error=False)


class AuthenticatedUser(BaseModel):
    """The caller identified by a verified access token"""
    id: str
    email: Optional[str] = None


def _unauthorised() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorised",
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_access_token(token: str) -> AuthenticatedUser:
    """
    Verify an access token and return the user it was issued to.

    Raises:
        JWTError: if the signature, expiry or audience check fails or the
            token carries no subject.
    """
    settings = get_settings()
    options = {"verify_aud": bool(settings.AUTH_JWT_AUDIENCE)}
    payload = jwt.decode(
        token,
        settings.AUTH_JWT_SECRET,
        algorithms=[settings.AUTH_JWT_ALGORITHM],
        audience=settings.AUTH_JWT_AUDIENCE or None,
        options=options,
    )
    user_id = payload.get("sub")
    if not user_id:
        raise JWTError("Token has no subject")
    return AuthenticatedUser(id=user_id, email=payload.get("email"))


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_security),
) -> AuthenticatedUser:
    """Resolve the bearer token on the request to an AuthenticatedUser"""
    if credentials is None or not credentials.credentials:
        raise _unauthorised()
    try:
        return decode_access_token(credentials.credentials)
    except JWTError as e:
        logger.info(f"Rejected access token: {e}")
        raise _unauthorised()


def get_current_username(credentials: HTTPBasicCredentials = Depends(basic_security)) -> str:
    """
    Simple HTTP Basic Auth - checks username/password from settings
    """
    settings = get_settings()
    correct_username = settings.BASIC_AUTH_USERNAME or "admin"
    correct_password = settings.BASIC_AUTH_PASSWORD

    # If no password is set in production, refuse rather than fall back
    if not correct_password and settings.ENVIRONMENT == "production":
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Basic auth password not configured"
        )

    # In development, allow a default password
    if not correct_password:
        correct_password = "changeme"

    is_correct_username = secrets.compare_digest(
        credentials.username.encode("utf8"),
        correct_username.encode("utf8")
    )
    is_correct_password = secrets.compare_digest(
        credentials.password.encode("utf8"),
        correct_password.encode("utf8")
    )

    if not (is_correct_username and is_correct_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Basic"},
        )

    return credentials.username
