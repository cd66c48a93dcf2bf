"""
Version Manager.

Revision labels have the form ``vMAJOR.MINOR``. Publishing never rewrites a
version's snapshot: it adds a new active row, deactivates all others and
repoints ``forms.active_version_id``. All writes run inside the caller's
transaction, with the form row locked so that concurrent publishes on the same
form are serialized.
"""

import logging
import re
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import ConflictError, ResourceNotFoundError
from ..models import Form, FormVersion

logger = logging.getLogger(__name__)

INITIAL_REVISION = "v1.0"
_REVISION_RE = re.compile(r"^v(\d+)\.(\d+)$")


def parse_revision(label: str) -> Tuple[int, int]:
    match = _REVISION_RE.match(label or "")
    if not match:
        raise ValueError(f"Invalid revision label: {label!r}")
    return int(match.group(1)), int(match.group(2))


def increment_revision(label: str) -> str:
    """``v1.3 -> v1.4``; the minor part rolls over at 10: ``v1.9 -> v2.0``."""
    major, minor = parse_revision(label)
    minor += 1
    if minor >= 10:
        major += 1
        minor = 0
    return f"v{major}.{minor}"


async def lock_form(db: AsyncSession, form_id: int) -> Form:
    # FOR UPDATE wird von SQLite ignoriert, dort serialisiert die DB selbst die Schreiber
    result = await db.execute(
        select(Form).where(Form.id == form_id).with_for_update()
    )
    form = result.scalar_one_or_none()
    if form is None:
        raise ResourceNotFoundError("Form", form_id)
    return form


async def highest_revision(db: AsyncSession, form_id: int) -> Optional[str]:
    result = await db.execute(
        select(FormVersion.revision_id).where(FormVersion.form_id == form_id)
    )
    labels = result.scalars().all()
    return max(labels, key=parse_revision, default=None)


async def get_active_version(db: AsyncSession, form_id: int) -> Optional[FormVersion]:
    result = await db.execute(
        select(FormVersion).where(
            FormVersion.form_id == form_id, FormVersion.is_active.is_(True)
        )
    )
    return result.scalar_one_or_none()


async def get_version(db: AsyncSession, form_id: int, version_id: int) -> FormVersion:
    result = await db.execute(
        select(FormVersion).where(
            FormVersion.id == version_id, FormVersion.form_id == form_id
        )
    )
    version = result.scalar_one_or_none()
    if version is None:
        raise ResourceNotFoundError("Form version", version_id)
    return version


async def get_version_by_revision(
    db: AsyncSession, form_id: int, revision_id: str
) -> FormVersion:
    result = await db.execute(
        select(FormVersion).where(
            FormVersion.form_id == form_id, FormVersion.revision_id == revision_id
        )
    )
    version = result.scalar_one_or_none()
    if version is None:
        raise ResourceNotFoundError("Form version", revision_id)
    return version


async def list_versions(db: AsyncSession, form_id: int) -> List[FormVersion]:
    result = await db.execute(
        select(FormVersion).where(FormVersion.form_id == form_id)
    )
    versions = list(result.scalars().all())
    versions.sort(key=lambda v: parse_revision(v.revision_id), reverse=True)
    return versions


async def check_revision(db: AsyncSession, form_id: int, expected_revision: str) -> None:
    """Optimistic check: the client must have edited the currently active revision."""
    active = await get_active_version(db, form_id)
    if active is None:
        raise ResourceNotFoundError(
            "Form version", message="No active version found for the form."
        )
    if active.revision_id != expected_revision:
        raise ConflictError("Version conflict. Please refresh and reapply your changes.")


async def create_initial_version(db: AsyncSession, form: Form, content) -> FormVersion:
    version = FormVersion(
        form_id=form.id,
        revision_id=INITIAL_REVISION,
        content=content,
        is_active=True,
    )
    db.add(version)
    await db.flush()
    form.active_version_id = version.id
    await db.flush()
    return version


async def _deactivate_all(db: AsyncSession, form_id: int) -> None:
    await db.execute(
        update(FormVersion)
        .where(FormVersion.form_id == form_id)
        .values(is_active=False)
    )


async def publish(db: AsyncSession, form_id: int, content) -> FormVersion:
    """Snapshot ``content`` as the next revision and make it the active version."""
    form = await lock_form(db, form_id)

    current = await highest_revision(db, form_id)
    new_revision = increment_revision(current) if current else INITIAL_REVISION

    await _deactivate_all(db, form_id)
    version = FormVersion(
        form_id=form_id,
        revision_id=new_revision,
        content=content,
        is_active=True,
    )
    db.add(version)
    try:
        await db.flush()
    except IntegrityError:
        # SQLite ignoriert FOR UPDATE, dort greift erst die Unique-Constraint
        logger.warning("Form %s: concurrent publish of %s rejected", form_id, new_revision)
        raise ConflictError("The form was published concurrently. Please retry.")

    form.active_version_id = version.id
    await db.flush()
    logger.info("Form %s published as %s (version %s)", form_id, new_revision, version.id)
    return version


async def activate_version(db: AsyncSession, form_id: int, version_id: int) -> FormVersion:
    """
    Roll an existing version forward: it keeps its id (and its responses) but is
    relabeled as the newest revision and becomes the active one.
    """
    form = await lock_form(db, form_id)
    version = await get_version(db, form_id, version_id)

    current = await highest_revision(db, form_id)
    new_revision = increment_revision(current)

    await _deactivate_all(db, form_id)
    version.revision_id = new_revision
    version.is_active = True
    form.active_version_id = version.id
    await db.flush()
    logger.info("Form %s: version %s activated as %s", form_id, version_id, new_revision)
    return version
