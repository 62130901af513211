import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.aptos_auth import normalize_address
from app.core.errors import InfrastructureUnavailable
from app.db.session import SessionLocal
from app.models.users import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WalletProfile:
    wallet_address: str
    network: str
    encrypted_private_key: str
    created_at: datetime


@dataclass(frozen=True)
class UserRecord:
    id: str
    wallet_address: str
    name: Optional[str] = None
    avatar: Optional[str] = None
    wallet_profile: Optional[WalletProfile] = None


def _to_record(user: User) -> UserRecord:
    profile = None
    if user.has_wallet_profile:
        profile = WalletProfile(
            wallet_address=user.embedded_wallet_address,
            network=user.embedded_wallet_network,
            encrypted_private_key=user.encrypted_private_key,
            created_at=user.embedded_wallet_created_at,
        )
    return UserRecord(
        id=str(user.id),
        wallet_address=user.wallet_address,
        name=user.name,
        avatar=user.avatar_url,
        wallet_profile=profile,
    )


class UserStore:
    """
    User records keyed by lower-cased wallet address.

    The ORM work is synchronous; every public method runs it in the threadpool
    with its own session and returns plain records, never live ORM objects.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    async def _run(self, op: Callable[[Session], object]):
        def work():
            with self.session_factory() as db:
                return op(db)

        try:
            return await run_in_threadpool(work)
        except SQLAlchemyError as exc:
            logger.exception("user store unavailable")
            raise InfrastructureUnavailable() from exc

    async def get_by_wallet_address(self, wallet_address: str) -> Optional[UserRecord]:
        address = normalize_address(wallet_address)

        def op(db: Session):
            user = db.query(User).filter(User.wallet_address == address).first()
            return _to_record(user) if user else None

        return await self._run(op)

    async def get_by_id(self, user_id: str) -> Optional[UserRecord]:
        def op(db: Session):
            user = db.get(User, user_id)
            return _to_record(user) if user else None

        return await self._run(op)

    async def upsert_by_wallet_address(self, wallet_address: str) -> UserRecord:
        """Create the user on first login, otherwise bump last_login_at."""
        address = normalize_address(wallet_address)

        def op(db: Session):
            now = datetime.now(timezone.utc)
            user = db.query(User).filter(User.wallet_address == address).first()
            if user:
                user.last_login_at = now
                db.commit()
                db.refresh(user)
                return _to_record(user)

            user = User(wallet_address=address, created_at=now, last_login_at=now)
            db.add(user)
            try:
                db.commit()
            except IntegrityError:
                # a concurrent login created the row first
                db.rollback()
                user = db.query(User).filter(User.wallet_address == address).one()
                return _to_record(user)
            db.refresh(user)
            logger.info("created user %s for %s", user.id, address)
            return _to_record(user)

        return await self._run(op)

    async def set_wallet_profile_if_absent(self, user_id: str, profile: WalletProfile) -> bool:
        """
        Conditional write of the embedded wallet. Returns False when a profile
        already exists, leaving it untouched.
        """

        def op(db: Session):
            result = db.execute(
                update(User)
                .where(User.id == user_id, User.encrypted_private_key.is_(None))
                .values(
                    embedded_wallet_address=profile.wallet_address,
                    embedded_wallet_network=profile.network,
                    encrypted_private_key=profile.encrypted_private_key,
                    embedded_wallet_created_at=profile.created_at,
                )
            )
            db.commit()
            return result.rowcount == 1

        return await self._run(op)
