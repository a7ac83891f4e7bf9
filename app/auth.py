from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol

import bcrypt
import jwt
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from app.depends import get_async_db
from app.models.users import User as UserModel

# bcrypt only looks at the first 72 bytes of a password
_BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str, rounds: int = 12) -> str:
    """
    Hashes a password with bcrypt; rounds is the log2 work factor (BCRYPT_ROUNDS)
    """
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Checks a password against its bcrypt hash
    """
    try:
        return bcrypt.checkpw(_password_bytes(plain_password), hashed_password.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


def _create_token(data: dict, settings: Settings, token_type: str, expires_delta: timedelta) -> str:
    to_encode = data.copy()
    to_encode.update({
        "exp": datetime.now(timezone.utc) + expires_delta,
        "token_type": token_type,
    })
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def create_access_token(data: dict, settings: Settings) -> str:
    """
    Creates a signed JWT access token
    """
    return _create_token(
        data, settings, "access", timedelta(minutes=settings.access_token_expire_minutes)
    )


def create_refresh_token(data: dict, settings: Settings) -> str:
    """
    Creates a signed JWT refresh token
    """
    return _create_token(
        data, settings, "refresh", timedelta(days=settings.refresh_token_expire_days)
    )


def token_claims(user: UserModel) -> dict:
    return {"sub": user.username, "role": user.role, "id": user.id}


@dataclass(frozen=True)
class Identity:
    """
    The authenticated caller of a request
    """
    id: int
    username: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def decode_identity(token: str, settings: Settings, expected_type: str = "access") -> Identity | None:
    """
    Verifies a JWT and returns the identity it carries,
    or None for an invalid, expired or wrongly-typed token
    """
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except jwt.PyJWTError:
        return None

    if payload.get("token_type") != expected_type:
        return None

    username = payload.get("sub")
    user_id = payload.get("id")
    role = payload.get("role")
    if not isinstance(username, str) or not isinstance(user_id, int) or not isinstance(role, str):
        return None

    return Identity(id=user_id, username=username, role=role)


class AuthStrategy(Protocol):
    """
    Resolves the caller of a request, or None when the request is anonymous
    """

    def resolve_identity(self, request: Request) -> Identity | None:
        ...


class BearerTokenStrategy:
    """
    Reads a JWT from the ``Authorization: Bearer <token>`` header
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    def resolve_identity(self, request: Request) -> Identity | None:
        header = request.headers.get("Authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return None
        return decode_identity(token.strip(), self.settings)


class CookieTokenStrategy:
    """
    Reads a JWT from the auth cookie set at login
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    def resolve_identity(self, request: Request) -> Identity | None:
        token = request.cookies.get(self.settings.auth_cookie_name)
        if not token:
            return None
        return decode_identity(token, self.settings)


class ChainedStrategy:
    """
    Tries each strategy in order; the first identity found wins
    """

    def __init__(self, *strategies: AuthStrategy):
        self.strategies = strategies

    def resolve_identity(self, request: Request) -> Identity | None:
        for strategy in self.strategies:
            identity = strategy.resolve_identity(request)
            if identity is not None:
                return identity
        return None


def default_strategy(settings: Settings) -> AuthStrategy:
    return ChainedStrategy(BearerTokenStrategy(settings), CookieTokenStrategy(settings))


def get_optional_identity(request: Request) -> Identity | None:
    return request.app.state.auth_strategy.resolve_identity(request)


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_identity(identity: Identity | None = Depends(get_optional_identity)) -> Identity:
    if identity is None:
        raise _credentials_exception()
    return identity


async def get_current_user(
        identity: Identity = Depends(get_current_identity),
        db: AsyncSession = Depends(get_async_db),
) -> UserModel:
    """
    Loads the authenticated user; the stored row is authoritative for the role
    """
    user = await db.scalar(select(UserModel).where(UserModel.id == identity.id))
    if user is None or user.username != identity.username:
        raise _credentials_exception()
    return user


async def get_current_admin(current_user: UserModel = Depends(get_current_user)) -> UserModel:
    if current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


def ensure_self_or_admin(current_user: UserModel, username: str) -> None:
    """
    Users may act on their own account only; admins on any account
    """
    if current_user.role != "admin" and current_user.username != username:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions",
        )
