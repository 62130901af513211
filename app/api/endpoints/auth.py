import logging
from typing import List

from fastapi import APIRouter, Depends, Response, status

from app.core.dependencies import get_auth_orchestrator, get_current_user, get_nonce_store
from app.core.rate_limit import rate_limit
from app.services.auth_orchestrator import AuthOrchestrator
from app.services.nonce_store import NonceStore
import app.schemas.auth as schemas

logger = logging.getLogger(__name__)

router = APIRouter()
group_tags: List[str] = ["Auth"]

_error_responses = {
    400: {"model": schemas.ErrorResponse, "description": "Invalid nonce, message format or content"},
    401: {"model": schemas.ErrorResponse, "description": "Invalid signature or refresh token"},
    429: {"model": schemas.ErrorResponse, "description": "Rate limit exceeded"},
    503: {"model": schemas.ErrorResponse, "description": "Key-value or user store unavailable"},
}


@router.get(
    "/aptos/nonce",
    tags=group_tags,
    response_model=schemas.NonceResponse,
    status_code=status.HTTP_200_OK,
    responses={429: _error_responses[429], 503: _error_responses[503]},
    dependencies=[Depends(rate_limit("nonce", "NONCE_RATE_LIMIT", "NONCE_RATE_WINDOW_SECONDS"))],
)
async def get_aptos_nonce(nonces: NonceStore = Depends(get_nonce_store)) -> schemas.NonceResponse:
    """Generate a single-use nonce for Sign-in with Aptos (SIWA)."""
    return await nonces.issue()


@router.post(
    "/aptos/verify",
    tags=group_tags,
    response_model=schemas.AuthResponse,
    status_code=status.HTTP_200_OK,
    responses=_error_responses,
    dependencies=[Depends(rate_limit("verify", "VERIFY_RATE_LIMIT", "VERIFY_RATE_WINDOW_SECONDS"))],
)
async def verify_aptos_signature(
    body: schemas.VerifyRequest,
    auth: AuthOrchestrator = Depends(get_auth_orchestrator),
) -> schemas.AuthResponse:
    """
    Verify the signed SIWA output and sign the wallet in.

    Body:
    - output: serialized sign-in output, version "2" ({input, signature, publicKey})
      or, when legacy messages are enabled, version "1" ({message, signature, publicKey})

    Returns access and refresh tokens plus the user. The first login of a wallet
    also creates its embedded wallet.
    """
    result = await auth.login(body.output)
    return schemas.AuthResponse(
        accessToken=result.tokens.access_token,
        refreshToken=result.tokens.refresh_token,
        user=schemas.AuthUser(
            id=result.user.id,
            walletAddress=result.user.wallet_address,
            name=result.user.name,
            avatar=result.user.avatar,
        ),
        expiresIn=result.expires_in,
    )


@router.post(
    "/aptos/refresh",
    tags=group_tags,
    response_model=schemas.RefreshTokenResponse,
    status_code=status.HTTP_200_OK,
    responses={**_error_responses, 404: {"model": schemas.ErrorResponse, "description": "User not found"}},
    dependencies=[Depends(rate_limit("refresh", "REFRESH_RATE_LIMIT", "REFRESH_RATE_WINDOW_SECONDS"))],
)
async def refresh_aptos_token(
    wallet_address: str = Depends(get_current_user),
    auth: AuthOrchestrator = Depends(get_auth_orchestrator),
) -> schemas.RefreshTokenResponse:
    """Mint a new access token from the refresh token stored for the bearer's wallet."""
    access_token, expires_in = await auth.refresh_session(wallet_address)
    return schemas.RefreshTokenResponse(accessToken=access_token, expiresIn=expires_in)


@router.post(
    "/aptos/logout",
    tags=group_tags,
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    responses={401: _error_responses[401], 503: _error_responses[503]},
)
async def logout_aptos(
    wallet_address: str = Depends(get_current_user),
    auth: AuthOrchestrator = Depends(get_auth_orchestrator),
) -> Response:
    """Remove the stored refresh token. Logging out twice is not an error."""
    await auth.logout(wallet_address)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
