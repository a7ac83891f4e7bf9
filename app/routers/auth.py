import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import (
    create_access_token,
    create_refresh_token,
    decode_identity,
    ensure_self_or_admin,
    get_current_user,
    hash_password,
    token_claims,
    verify_password,
)
from app.config import Settings
from app.depends import get_async_db, get_settings
from app.models.users import User as UserModel
from app.schemas.activity import Message
from app.schemas.users import (
    Credentials,
    LoginResponse,
    RefreshTokenRequest,
    RoleInfo,
    User as UserSchema,
    UserCreate,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


def _set_auth_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        max_age=settings.access_token_expire_minutes * 60,
        httponly=True,
        samesite="lax",
        secure=settings.auth_cookie_secure,
    )


@router.post("/login", response_model=LoginResponse)
async def login(
        credentials: Credentials,
        response: Response,
        db: AsyncSession = Depends(get_async_db),
        settings: Settings = Depends(get_settings),
):
    """
    Authenticates a user, returns signed tokens and sets the auth cookie
    """

    user = await db.scalar(
        select(UserModel).where(UserModel.username == credentials.username)
    )

    if not user or not verify_password(credentials.password, user.hashed_password):
        logger.warning("Failed login attempt for %s", credentials.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    claims = token_claims(user)
    access_token = create_access_token(claims, settings)
    _set_auth_cookie(response, access_token, settings)

    return LoginResponse(
        id=user.id,
        username=user.username,
        role=user.role,
        access_token=access_token,
        refresh_token=create_refresh_token(claims, settings),
    )


@router.post("/register", response_model=UserSchema, status_code=status.HTTP_201_CREATED)
async def register(
        data: UserCreate,
        db: AsyncSession = Depends(get_async_db),
        settings: Settings = Depends(get_settings),
):
    """
    Creates a new account with the user role
    """

    existing = await db.scalar(select(UserModel).where(UserModel.username == data.username))
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username already taken"
        )

    user = UserModel(
        username=data.username,
        hashed_password=hash_password(data.password, settings.bcrypt_rounds),
        role="user",
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username already taken"
        )
    await db.refresh(user)

    return user


@router.post("/forgot-password", response_model=Message)
async def reset_password(
        data: UserCreate,
        current_user: UserModel = Depends(get_current_user),
        db: AsyncSession = Depends(get_async_db),
        settings: Settings = Depends(get_settings),
):
    """
    Sets a new password for an account. Users may reset their own, admins anyone's.
    """
    ensure_self_or_admin(current_user, data.username)

    user = await db.scalar(select(UserModel).where(UserModel.username == data.username))
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    user.hashed_password = hash_password(data.password, settings.bcrypt_rounds)
    await db.commit()

    return Message(message="Password updated")


@router.post("/refresh-token")
async def refresh_token(
        body: RefreshTokenRequest,
        response: Response,
        db: AsyncSession = Depends(get_async_db),
        settings: Settings = Depends(get_settings),
):
    """
    Exchanges a valid refresh token for a new access/refresh pair
    """

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate refresh token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    identity = decode_identity(body.refresh_token, settings, expected_type="refresh")
    if identity is None:
        raise credentials_exception

    user = await db.scalar(select(UserModel).where(UserModel.id == identity.id))
    if user is None or user.username != identity.username:
        raise credentials_exception

    claims = token_claims(user)
    access_token = create_access_token(claims, settings)
    _set_auth_cookie(response, access_token, settings)

    return {
        "access_token": access_token,
        "refresh_token": create_refresh_token(claims, settings),
        "token_type": "bearer",
    }


@router.post("/logout", response_model=Message)
async def logout(response: Response, settings: Settings = Depends(get_settings)):
    """
    Clears the auth cookie
    """
    response.delete_cookie(settings.auth_cookie_name)
    return Message(message="Logged out")


@router.get("/user/me", response_model=UserSchema)
async def get_me(current_user: UserModel = Depends(get_current_user)):
    """
    Get current user info
    """
    return current_user


@router.get("/user/role", response_model=RoleInfo)
async def get_role(current_user: UserModel = Depends(get_current_user)):
    """
    Returns the role of the current user
    """
    return RoleInfo(role=current_user.role, is_admin=current_user.role == "admin")
