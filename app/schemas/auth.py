from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.my_base_model import CustomBaseModel


class NonceResponse(CustomBaseModel):
    """Response model for nonce generation - output"""

    nonce: str = ""
    expiresAt: int = 0


class SignInInput(BaseModel):
    """
    Fields a version "2" wallet signs. Mirrors the SIWA input object.

    Unknown keys are rejected: a field that is not rendered back into the
    message would make a genuine signature fail to verify.
    """

    model_config = ConfigDict(extra="forbid")

    nonce: str
    domain: str
    statement: str
    address: str
    chainId: Union[int, str]
    issuedAt: str
    uri: Optional[str] = None
    version: Optional[str] = None
    expirationTime: Optional[str] = None
    notBefore: Optional[str] = None
    requestId: Optional[str] = None
    resources: Optional[List[str]] = None


class LegacySignInOutput(BaseModel):
    """Version "1": the signed free-text message carries nonce and address."""

    model_config = ConfigDict(extra="ignore")

    version: Literal["1"]
    type: Literal["ed25519"] = "ed25519"
    message: str
    signature: str
    publicKey: str


class StructuredSignInOutput(BaseModel):
    """Version "2": the wallet signs the canonical encoding of input."""

    model_config = ConfigDict(extra="ignore")

    version: Literal["2"]
    type: Literal["ed25519"] = "ed25519"
    input: SignInInput
    signature: str
    publicKey: str


SignInOutput = Union[LegacySignInOutput, StructuredSignInOutput]


class VerifyRequest(BaseModel):
    """Request model for wallet verification - input validation"""

    output: Dict[str, Any] = Field(..., description="Serialized SIWA output from the wallet")


class AuthUser(CustomBaseModel):
    id: str = ""
    walletAddress: str = ""
    name: Optional[str] = None
    avatar: Optional[str] = None


class AuthResponse(CustomBaseModel):
    """Response model for authentication - output"""

    accessToken: str
    refreshToken: str
    user: AuthUser
    expiresIn: int = 0


class RefreshTokenResponse(CustomBaseModel):
    """Response model for access token refresh - output"""

    accessToken: str
    expiresIn: int = 0


class ErrorResponse(BaseModel):
    detail: str
    code: str
