"""
FastAPI Authentication Dependencies
This module provides FastAPI dependency functions that can be injected into route handlers
to wire the auth services and to extract and validate JWT tokens from the Authorization header.
Usage in endpoints:
    @router.post("/protected")
    def protected_route(wallet_address: str = Depends(get_current_user)):
        # wallet_address is automatically extracted from JWT token
        return {"user": wallet_address}
Flow:
1. Client sends request with Authorization: Bearer <token> header
2. FastAPI calls get_current_user() dependency
3. _extract_token() extracts token from header
4. verify_token() validates the JWT (from jwt_utils.py)
5. Returns wallet_address to the route handler
"""

from functools import lru_cache
from typing import Any, Dict, Optional

from fastapi import Depends, Header, HTTPException, status

from app.core.jwt_utils import verify_token
from app.core.kv_store import KeyValueStore, get_kv_store
from app.services.auth_orchestrator import AuthOrchestrator
from app.services.key_cipher import KeyCipher
from app.services.message_verifier import MessageVerifier
from app.services.nonce_store import NonceStore
from app.services.token_service import TokenService
from app.services.user_store import UserStore
from app.services.wallet_provisioner import WalletProvisioner


def _extract_token(authorization: Optional[str]) -> Dict[str, Any]:
    """
    Extract JWT token from Authorization header.
    Supports both "Bearer <token>" and plain token formats.
    Raises:
        HTTPException 401: If Authorization header is missing or invalid
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing",
        )

    authorization = authorization.strip()
    if authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    else:
        token = authorization
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header",
        )

    return verify_token(token)


def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> str:
    """
    returning wallet address.
    """
    payload = _extract_token(authorization)
    return payload["walletAddress"]


@lru_cache
def get_key_cipher() -> KeyCipher:
    return KeyCipher()


def get_user_store() -> UserStore:
    return UserStore()


def get_nonce_store(kv: KeyValueStore = Depends(get_kv_store)) -> NonceStore:
    return NonceStore(kv)


def get_token_service(kv: KeyValueStore = Depends(get_kv_store)) -> TokenService:
    return TokenService(kv)


def get_auth_orchestrator(
    nonces: NonceStore = Depends(get_nonce_store),
    tokens: TokenService = Depends(get_token_service),
    users: UserStore = Depends(get_user_store),
    cipher: KeyCipher = Depends(get_key_cipher),
) -> AuthOrchestrator:
    return AuthOrchestrator(
        nonces=nonces,
        verifier=MessageVerifier(),
        tokens=tokens,
        users=users,
        provisioner=WalletProvisioner(users, cipher),
    )
