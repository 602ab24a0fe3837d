"""Admin authentication and user management service.

Handles login, audited user creation, token generation, and refresh.
"""

from datetime import UTC, datetime

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tally_api.core.config import Settings
from tally_api.core.errors import ConflictError, UnauthenticatedError
from tally_api.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)
from tally_api.models.user import User
from tally_api.schemas.auth import TokenResponse, UserCreateRequest
from tally_api.services.audit_service import log_action


async def authenticate_user(session: AsyncSession, username: str, password: str) -> User | None:
    """Authenticate a user by username and password.

    Returns:
        The User if authentication succeeds, None otherwise.
    """
    result = await session.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()
    if user is None or not verify_password(password, user.hashed_password):
        return None
    if not user.is_active:
        return None
    user.last_login_at = datetime.now(UTC)
    await session.commit()
    return user


async def create_user(session: AsyncSession, request: UserCreateRequest, created_by: User | None = None) -> User:
    """Create a new admin user.

    Every account creation is audited with the granted role and whether the
    account may record paper ballots, since that flag also withholds merge
    authority.

    Raises:
        ConflictError: If username or email already exists.
    """
    existing = await session.execute(
        select(User).where((User.username == request.username) | (User.email == request.email))
    )
    if existing.scalar_one_or_none() is not None:
        msg = "Username or email already exists"
        raise ConflictError(msg)

    user = User(
        username=request.username,
        email=request.email,
        hashed_password=hash_password(request.password),
        role=request.role,
        is_offline_vote_admin=request.is_offline_vote_admin,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)

    await log_action(
        session,
        action="user_create",
        resource_type="user",
        user_id=created_by.id if created_by else None,
        username=created_by.username if created_by else None,
        resource_ids=[str(user.id)],
        request_metadata={
            "username": user.username,
            "role": user.role,
            "is_offline_vote_admin": user.is_offline_vote_admin,
        },
    )
    logger.info(
        "Created user {} (role={}, offline_vote_admin={})", user.username, user.role, user.is_offline_vote_admin
    )
    return user


async def list_users(session: AsyncSession, page: int = 1, page_size: int = 20) -> tuple[list[User], int]:
    """List users with pagination.

    Returns:
        Tuple of (users list, total count).
    """
    count_result = await session.execute(select(func.count(User.id)))
    total = count_result.scalar_one()

    offset = (page - 1) * page_size
    result = await session.execute(select(User).offset(offset).limit(page_size).order_by(User.created_at))
    return list(result.scalars().all()), total


def generate_tokens(user: User, settings: Settings) -> TokenResponse:
    """Generate access and refresh tokens for a user."""
    access_token = create_access_token(
        subject=user.username,
        role=user.role,
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        expires_minutes=settings.jwt_access_token_expire_minutes,
    )
    refresh_token = create_refresh_token(
        subject=user.username,
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        expires_days=settings.jwt_refresh_token_expire_days,
    )
    return TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=settings.jwt_access_token_expire_minutes * 60,
    )


async def refresh_access_token(
    session: AsyncSession,
    refresh_token_str: str,
    settings: Settings,
) -> TokenResponse:
    """Refresh an access token using a refresh token.

    Raises:
        UnauthenticatedError: If the refresh token is invalid or the user is gone.
    """
    try:
        payload = decode_token(refresh_token_str, settings.jwt_secret_key, settings.jwt_algorithm)
    except Exception as e:
        msg = "Invalid refresh token"
        raise UnauthenticatedError(msg) from e

    if payload.get("type") != "refresh":
        msg = "Token is not a refresh token"
        raise UnauthenticatedError(msg)

    username = payload.get("sub")
    if username is None:
        msg = "Invalid token payload"
        raise UnauthenticatedError(msg)

    result = await session.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        msg = "User not found or inactive"
        raise UnauthenticatedError(msg)

    return generate_tokens(user, settings)
