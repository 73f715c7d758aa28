"""
Authentication utilities - caller identity, JWT handling and anonymous token hashing.
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Optional, Union

import bcrypt
from fastapi import Depends, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from ..config import settings
from ..errors import Forbidden, Unauthorized
from ..models import Session

logger = logging.getLogger(__name__)

# Bearer is optional: anonymous callers send none
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Authenticated:
    """Caller holding a valid bearer credential."""
    user_id: str
    access_token: str


@dataclass(frozen=True)
class Anonymous:
    """Caller without a (valid) bearer credential."""


Identity = Union[Authenticated, Anonymous]


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token shaped like the identity provider's.

    Args:
        data: Claims to encode (must include "sub")
        expires_delta: Optional expiration time delta

    Returns:
        str: Encoded JWT token
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode.update({"exp": expire})
    if settings.jwt_audience:
        to_encode.setdefault("aud", settings.jwt_audience)
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Optional[str]:
    """
    Decode and verify a JWT access token.

    Args:
        token: JWT token string

    Returns:
        Optional[str]: The subject (user id) if valid, None otherwise
    """
    try:
        if settings.jwt_audience:
            payload = jwt.decode(
                token,
                settings.jwt_secret,
                algorithms=[settings.jwt_algorithm],
                audience=settings.jwt_audience,
            )
        else:
            payload = jwt.decode(
                token,
                settings.jwt_secret,
                algorithms=[settings.jwt_algorithm],
                options={"verify_aud": False},
            )
    except JWTError as e:
        logger.warning(f"Rejected bearer credential: {e}")
        return None

    return payload.get("sub")


async def resolve_identity(bearer_token: Optional[str]) -> Identity:
    """
    Determine the caller's identity class.

    An absent, invalid or expired bearer yields ``Anonymous``.
    """
    if not bearer_token:
        return Anonymous()

    user_id = decode_access_token(bearer_token)
    if user_id is None:
        return Anonymous()

    return Authenticated(user_id=user_id, access_token=bearer_token)


async def get_caller_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Identity:
    """Dependency resolving the optional ``Authorization: Bearer`` header."""
    return await resolve_identity(credentials.credentials if credentials else None)


async def require_authenticated(identity: Identity = Depends(get_caller_identity)) -> Authenticated:
    """Dependency for endpoints that only authenticated users may call."""
    if not isinstance(identity, Authenticated):
        raise Unauthorized("Authentication required")
    return identity


async def get_anonymous_token(
    x_anonymous_token: Optional[str] = Header(None, alias="X-Anonymous-Token")
) -> Optional[str]:
    return x_anonymous_token or None


def mint_token() -> str:
    """Generate a raw anonymous session token."""
    return secrets.token_urlsafe(32)


def _prepare(raw_token: str) -> bytes:
    # bcrypt only reads 72 bytes; digest first so long client tokens stay distinct
    return hashlib.sha256(raw_token.encode('utf-8')).hexdigest().encode('ascii')


def hash_token(raw_token: str) -> str:
    """Salted one-way hash of a raw anonymous token."""
    salt = bcrypt.gensalt(rounds=settings.anonymous_token_hash_rounds)
    return bcrypt.hashpw(_prepare(raw_token), salt).decode('utf-8')


def verify_token(raw_token: str, token_hash: str) -> bool:
    """Check a raw anonymous token against a stored hash."""
    try:
        return bcrypt.checkpw(_prepare(raw_token), token_hash.encode('utf-8'))
    except ValueError:
        # Malformed stored hash
        return False


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def find_matching_token(
    token_rows: Iterable[Dict[str, Any]],
    session_id: str,
    raw_token: str,
    now: Optional[datetime] = None,
) -> Optional[Dict[str, Any]]:
    """
    Return the stored token row that authorizes ``raw_token`` for ``session_id``.

    A row matches when it is scoped to the session, has not expired, and its
    hash verifies against the raw token.
    """
    now = now or datetime.now(timezone.utc)
    for row in token_rows:
        if row.get("session_id") != session_id:
            continue
        expires_at = _parse_timestamp(row.get("expires_at"))
        if expires_at is None or expires_at <= now:
            continue
        if verify_token(raw_token, row.get("token_hash", "")):
            return row
    return None


def authorize_session(
    session: Session,
    identity: Identity,
    anonymous_token: Optional[str],
    is_first_message: bool,
    token_rows: Iterable[Dict[str, Any]] = (),
    now: Optional[datetime] = None,
) -> None:
    """
    Check that the caller may post to ``session``.

    Authenticated sessions require the owner's bearer. Anonymous sessions
    require a valid anonymous token, except on the first message, when no
    token can exist yet.

    Raises:
        Unauthorized: credential missing or invalid
        Forbidden: valid bearer for a different owner
    """
    if not session.is_anonymous:
        if not isinstance(identity, Authenticated):
            raise Unauthorized("Authentication required")
        if session.user_id != identity.user_id:
            raise Forbidden("Session belongs to another user")
        return

    if is_first_message:
        return

    if not anonymous_token:
        raise Unauthorized("Missing anonymous token")

    if find_matching_token(token_rows, session.session_id, anonymous_token, now) is None:
        raise Unauthorized("Invalid or expired token")
