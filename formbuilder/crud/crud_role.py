import logging
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ResourceNotFoundError,
)
from ..models import Form, FormUserRole, ROLE_EDITOR, ROLE_OWNER, ROLE_VIEWER
from .upsert import upsert

logger = logging.getLogger(__name__)

MUTATE_ROLES = frozenset({ROLE_OWNER, ROLE_EDITOR})
READ_ROLES = frozenset({ROLE_OWNER, ROLE_EDITOR, ROLE_VIEWER})


async def get_role(db: AsyncSession, user_id: int, form_id: int) -> Optional[str]:
    result = await db.execute(
        select(FormUserRole.role).where(
            FormUserRole.form_id == form_id, FormUserRole.user_id == user_id
        )
    )
    return result.scalar_one_or_none()


async def authorize(
    db: AsyncSession,
    user_id: Optional[int],
    form_id: int,
    required_roles: Iterable[str],
) -> str:
    """Return the caller's role on the form or raise if it is not in ``required_roles``."""
    if user_id is None:
        raise AuthenticationError()

    role = await get_role(db, user_id, form_id)
    if role is None or role not in required_roles:
        logger.warning(
            "User %s denied on form %s (role=%s, required=%s)",
            user_id,
            form_id,
            role,
            sorted(required_roles),
        )
        raise AuthorizationError(
            "Unauthorized to access this form. Required role: "
            + " or ".join(sorted(required_roles))
        )
    return role


async def require_owner(db: AsyncSession, user_id: Optional[int], form_id: int) -> Form:
    """Stricter check against ``forms.owner_id`` instead of the role table."""
    if user_id is None:
        raise AuthenticationError()

    form = await db.get(Form, form_id)
    if form is None:
        raise ResourceNotFoundError("Form", form_id)
    if form.owner_id != user_id:
        raise AuthorizationError("Only the owner of this form may perform this action.")
    return form


async def assign_role(db: AsyncSession, form_id: int, user_id: int, role: str) -> None:
    await upsert(
        db,
        FormUserRole,
        {"form_id": form_id, "user_id": user_id, "role": role},
        index_elements=["form_id", "user_id"],
        update_columns=["role"],
    )
