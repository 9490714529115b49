"""
Authentication service handling user registration and login.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bus_booking.models.enums import UserRole
from bus_booking.models.user import User
from bus_booking.schemas.user import ProfileUpdate, UserCreate, UserLogin
from bus_booking.core.errors import AccessDenied, AuthenticationRequired, Conflict, NotFound
from bus_booking.core.security import hash_password, verify_password, create_access_token
from bus_booking.core.logging import get_logger

logger = get_logger(__name__)


async def register_user(db: AsyncSession, user_data: UserCreate, role: UserRole = UserRole.CUSTOMER) -> User:
    """
    Register a new user with hashed password.
    Raises Conflict if email or username already exists.
    """
    # Check for existing email
    result = await db.execute(select(User).where(User.email == user_data.email))
    if result.scalar_one_or_none():
        logger.warning("registration_failed", reason="email_exists", email=user_data.email)
        raise Conflict("Email already registered", reason="email_exists")

    # Check for existing username
    result = await db.execute(select(User).where(User.username == user_data.username))
    if result.scalar_one_or_none():
        logger.warning("registration_failed", reason="username_exists", username=user_data.username)
        raise Conflict("Username already taken", reason="username_exists")

    user = User(
        email=user_data.email,
        username=user_data.username,
        hashed_password=hash_password(user_data.password),
        first_name=user_data.first_name,
        last_name=user_data.last_name,
        phone_number=user_data.phone_number,
        role=role,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)

    logger.info("user_registered", user_id=user.id, email=user.email, role=user.role.value)
    return user


async def authenticate_user(db: AsyncSession, login_data: UserLogin) -> str:
    """
    Authenticate user and return JWT access token carrying the user's role.
    """
    result = await db.execute(select(User).where(User.email == login_data.email))
    user = result.scalar_one_or_none()

    if not user or not verify_password(login_data.password, user.hashed_password):
        logger.warning("login_failed", email=login_data.email)
        raise AuthenticationRequired("Invalid email or password", reason="invalid_credentials")

    if not user.is_active:
        raise AccessDenied("Account is deactivated", reason="account_inactive")

    token = create_access_token(data={"sub": str(user.id), "role": user.role.value})
    logger.info("user_logged_in", user_id=user.id)
    return token


async def get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("User not found", reason="user_not_found")
    return user


async def refresh_token(db: AsyncSession, user_id: int) -> str:
    """
    Issue a fresh token for an already authenticated user.
    The role claim is re-read from the account, so role changes take effect here.
    """
    user = await get_user(db, user_id)
    if not user.is_active:
        raise AccessDenied("Account is deactivated", reason="account_inactive")

    token = create_access_token(data={"sub": str(user.id), "role": user.role.value})
    logger.info("token_refreshed", user_id=user.id)
    return token


async def update_profile(db: AsyncSession, user_id: int, changes: ProfileUpdate) -> User:
    user = await get_user(db, user_id)

    fields = changes.model_dump(exclude_unset=True)
    for name in ("first_name", "last_name"):
        # names can be changed but not cleared
        if fields.get(name) is None:
            fields.pop(name, None)
    for name, value in fields.items():
        setattr(user, name, value)

    await db.commit()
    await db.refresh(user)

    logger.info("profile_updated", user_id=user.id, fields=sorted(fields))
    return user
