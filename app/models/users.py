import uuid

from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.sql import func

from app.db.base import Base


def _new_user_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """Model for users table, one row per sign-in wallet
    Example:
    {
        "id": "550e8400-e29b-41d4-a716-446655440000",
        "wallet_address": "0x1d8727df513fa2a8785d0834e40b34223daff1affc079574082baadb74b66ee4",
        "name": null,
        "avatar_url": null,
        "embedded_wallet_address": "0x9f0c...",
        "embedded_wallet_network": "testnet",
        "encrypted_private_key": "gAAAAABm...",
        "embedded_wallet_created_at": "2024-01-01T12:00:00",
        "created_at": "2024-01-01T12:00:00",
        "last_login_at": "2024-01-01T12:00:00"
    }
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_user_id)
    wallet_address = Column(String(66), nullable=False, unique=True, index=True)
    name = Column(Text, nullable=True)
    avatar_url = Column(Text, nullable=True)

    # embedded (custodial) wallet profile, written once on first login
    embedded_wallet_address = Column(String(66), nullable=True)
    embedded_wallet_network = Column(String(32), nullable=True)
    encrypted_private_key = Column(Text, nullable=True)
    embedded_wallet_created_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    last_login_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    @property
    def has_wallet_profile(self) -> bool:
        return bool(self.embedded_wallet_address and self.encrypted_private_key)
