"""
JWT Token Utilities

This module handles JSON Web Token (JWT) creation and verification for wallet authentication.
After a wallet signs in, the token service uses these helpers to mint an access token and
a refresh token that share one payload shape:

    {
        "walletAddress": "0xabc...",            # lower-cased
        "sub": {"walletAddress": "0xabc...", "userId": "<uuid>"},
        "iat": <issued at>,
        "exp": <expiration>
    }

``sub`` is an object rather than a string, so decoding turns off PyJWT's
string-subject check.

Flow:
1. Wallet signs in -> TokenService.issue_pair() calls create_token() twice
2. Client calls an API with the access token -> verify_token() validates it
3. Protected endpoints use get_current_identity() from dependencies.py
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import HTTPException, status

from app.core.config import settings

logger = logging.getLogger(__name__)

DEFAULT_ACCESS_TOKEN_SECONDS = 15 * 60
DEFAULT_REFRESH_TOKEN_SECONDS = 30 * 24 * 60 * 60

_DURATION_UNITS = {"s": 1, "m": 60, "h": 3600, "d": 86400}
_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd])\s*$")

_DECODE_OPTIONS = {"require": ["exp", "iat"], "verify_sub": False}


def parse_duration(value: Optional[str], default_seconds: int) -> int:
    """
    Convert a duration string like "15m", "1h" or "30d" to seconds.

    Unknown suffixes, empty strings and non-positive amounts fall back to
    default_seconds so a typo in the environment never yields a token that
    expires immediately or never expires.
    """
    match = _DURATION_RE.match(value or "")
    if not match:
        logger.warning("unrecognised token duration %r, using %ss", value, default_seconds)
        return default_seconds
    amount = int(match.group(1))
    if amount <= 0:
        logger.warning("non-positive token duration %r, using %ss", value, default_seconds)
        return default_seconds
    return amount * _DURATION_UNITS[match.group(2)]


def _encode_key() -> str:
    if not settings.ENCODE_KEY:
        raise RuntimeError("ENCODE_KEY is not configured")
    return settings.ENCODE_KEY


def build_claims(wallet_address: str, user_id: str) -> Dict[str, Any]:
    return {
        "walletAddress": wallet_address,
        "sub": {"walletAddress": wallet_address, "userId": user_id},
    }


def create_token(claims: Dict[str, Any], expires_in_seconds: int) -> str:
    """
    Sign claims into a JWT that expires after expires_in_seconds.

    Raises:
        ValueError: If claims carry no walletAddress
    """
    if not claims.get("walletAddress"):
        raise ValueError("walletAddress is required")

    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = dict(claims)
    payload["iat"] = int(now.timestamp())
    payload["exp"] = int((now + timedelta(seconds=expires_in_seconds)).timestamp())
    return jwt.encode(payload, _encode_key(), algorithm=settings.ENCODE_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """
    Decode and verify a JWT. Raises jwt.ExpiredSignatureError / jwt.InvalidTokenError.
    """
    payload = jwt.decode(
        token,
        _encode_key(),
        algorithms=[settings.ENCODE_ALGORITHM],
        options=_DECODE_OPTIONS,
    )
    if not isinstance(payload.get("walletAddress"), str):
        raise jwt.InvalidTokenError("walletAddress claim missing")
    return payload


def verify_token(token: str) -> Dict[str, Any]:
    """
    Verify a bearer token for a protected endpoint.

    Raises:
        HTTPException 401: If token is missing, expired, invalid, or missing walletAddress
    """
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")

    try:
        return decode_token(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
