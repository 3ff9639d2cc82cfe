"""
NoteKeep Backend — Authentication Service
=========================================

What:  Registration, password verification and JWT issue/verification.
How:   passlib's CryptContext (bcrypt) for hashes, python-jose for HS256
       tokens. The token subject is the user id; the email is carried as a
       claim for logging only and re-read from the database on every request.
Who:   Called by the /auth routes and by the get_current_principal dependency.

The sharing core never sees passwords or tokens: dependencies resolve a
request to a User and services receive only user ids.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.config import settings
from notekeep.exceptions import AuthenticationError, EmailAlreadyRegisteredError
from notekeep.models.user import User
from notekeep.schemas.auth import TokenResponse
from notekeep.timeutils import utcnow

logger = logging.getLogger(__name__)

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_rounds,
)


class AuthService:
    """Stateless; the signing key and lifetimes come from settings."""

    # ── Passwords ─────────────────────────────────────────────────────────

    def hash_password(self, password: str) -> str:
        return pwd_context.hash(password)

    def verify_password(self, password: str, password_hash: str) -> bool:
        return pwd_context.verify(password, password_hash)

    # ── Tokens ────────────────────────────────────────────────────────────

    def create_access_token(self, user: User, now: Optional[datetime] = None) -> TokenResponse:
        now = now or utcnow()
        lifetime = timedelta(minutes=settings.access_token_expire_minutes)
        claims = {
            "sub": str(user.id),
            "email": user.email,
            "iat": int(now.timestamp()),
            "exp": int((now + lifetime).timestamp()),
        }
        token = jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
        return TokenResponse(access_token=token, expires_in=int(lifetime.total_seconds()))

    def decode_access_token(self, token: str) -> UUID:
        """
        Returns the user id from a valid token.

        Raises:
            AuthenticationError: bad signature, expired, or malformed subject
        """
        try:
            payload = jwt.decode(
                token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm]
            )
            return UUID(payload["sub"])
        except (JWTError, KeyError, ValueError):
            raise AuthenticationError()

    # ── Accounts ──────────────────────────────────────────────────────────

    async def register(self, db: AsyncSession, email: str, password: str) -> User:
        existing = await self.get_user_by_email(db, email)
        if existing is not None:
            raise EmailAlreadyRegisteredError()

        user = User(email=email, password_hash=self.hash_password(password), created_at=utcnow())
        db.add(user)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise EmailAlreadyRegisteredError()

        logger.info("User %s registered", user.id)
        return user

    async def authenticate(self, db: AsyncSession, email: str, password: str) -> User:
        """Same error for unknown email and wrong password."""
        user = await self.get_user_by_email(db, email)
        if user is None or not self.verify_password(password, user.password_hash):
            logger.info("Failed login attempt")
            raise AuthenticationError(message="Invalid email or password")
        return user

    async def get_user_by_email(self, db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()


# ── Singleton Instance ────────────────────────────────────────────────────
auth_service = AuthService()
