import logging
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core import security
from ..core.exceptions import AuthenticationError, ConflictError, ResourceNotFoundError
from ..models import User
from . import crud_role

logger = logging.getLogger(__name__)


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == email.strip().lower()))
    return result.scalar_one_or_none()


async def register_user(db: AsyncSession, email: str, password: str) -> User:
    if await get_user_by_email(db, email) is not None:
        raise ConflictError("User already exists.")
    user = User(email=email, password_hash=security.get_password_hash(password))
    db.add(user)
    await db.flush()
    logger.info("User %s registered", user.id)
    return user


async def authenticate_user(db: AsyncSession, email: str, password: str) -> User:
    user = await get_user_by_email(db, email)
    if user is None:
        raise ResourceNotFoundError("User", message="User not found.")
    if not security.verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid credentials.")
    return user


async def invite_user(
    db: AsyncSession, form_id: int, email: str, role: str
) -> Tuple[User, Optional[str]]:
    """
    Give ``email`` a role on the form. Unknown addresses get an account with a
    temporary password, which is returned so it can be mailed out.
    """
    temporary_password = None
    user = await get_user_by_email(db, email)
    if user is None:
        temporary_password = security.generate_temporary_password()
        user = User(
            email=email.strip().lower(),
            password_hash=security.get_password_hash(temporary_password),
        )
        db.add(user)
        await db.flush()
        logger.info("User %s created by invitation to form %s", user.id, form_id)

    await crud_role.assign_role(db, form_id, user.id, role)
    return user, temporary_password
