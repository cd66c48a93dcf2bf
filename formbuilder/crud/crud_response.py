"""
Response Collector and Response Editor.

A response is always bound to the version that was active when it was
submitted. ``total_score`` is derived from the stored answer rows after every
write, for both the initial submit and later edits.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .. import models
from ..core import config, security
from ..core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ExpiredError,
    InvalidTokenError,
    ResourceNotFoundError,
    ValidationError,
)
from ..schemas import AnswerIn
from . import crud_version
from .upsert import upsert

logger = logging.getLogger(__name__)


def _utc(value: datetime) -> datetime:
    # SQLite liefert naive Zeitstempel zurück, gespeichert wird immer UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def form_question_ids(db: AsyncSession, form_id: int) -> Set[int]:
    result = await db.execute(
        select(models.QuestionItem.question_id)
        .join(models.Item, models.Item.id == models.QuestionItem.item_id)
        .where(models.Item.form_id == form_id)
    )
    return set(result.scalars().all())


async def _check_question_ids(db: AsyncSession, form_id: int, question_ids) -> None:
    unknown = sorted(set(question_ids) - await form_question_ids(db, form_id))
    if unknown:
        raise ValidationError(
            "Answers reference questions that do not belong to this form.",
            details={"question_ids": unknown},
        )


async def recompute_total_score(db: AsyncSession, response: models.FormResponse) -> float:
    total = await db.scalar(
        select(func.coalesce(func.sum(models.Answer.score), 0)).where(
            models.Answer.response_id == response.id
        )
    )
    response.total_score = float(total or 0)
    return response.total_score


async def submit_response(
    db: AsyncSession,
    form_id: int,
    answers: Dict[int, AnswerIn],
    respondent_email: Optional[str] = None,
    now: Optional[datetime] = None,
) -> models.FormResponse:
    """Store a response against the form's active version and issue its token."""
    if await db.get(models.Form, form_id) is None:
        raise ResourceNotFoundError("Form", form_id)
    active = await crud_version.get_active_version(db, form_id)
    if active is None:
        raise ResourceNotFoundError(
            "Form version", message="No active version found for the form."
        )
    await _check_question_ids(db, form_id, answers.keys())

    now = now or datetime.now(timezone.utc)
    response = models.FormResponse(
        form_id=form_id,
        version_id=active.id,
        responder_email=respondent_email,
        created_at=now,
        updated_at=now,
        total_score=0,
    )
    db.add(response)
    await db.flush()

    for question_id, answer in answers.items():
        db.add(
            models.Answer(
                response_id=response.id,
                question_id=question_id,
                value=answer.text_answers.answers if answer.text_answers else {},
                score=answer.grade.score if answer.grade else 0,
                feedback=answer.grade.feedback if answer.grade else None,
            )
        )
    await db.flush()

    await recompute_total_score(db, response)
    response.response_token = security.create_response_token(response.id, form_id)
    await db.flush()
    logger.info(
        "Response %s stored for form %s (version %s, score %s)",
        response.id,
        form_id,
        active.id,
        response.total_score,
    )
    return response


# --- Lesen ---


def _with_answers(stmt):
    return stmt.options(selectinload(models.FormResponse.answers)).execution_options(
        populate_existing=True
    )


async def get_response_by_id(db: AsyncSession, response_id: int) -> models.FormResponse:
    result = await db.execute(
        _with_answers(
            select(models.FormResponse).where(models.FormResponse.id == response_id)
        )
    )
    response = result.scalar_one_or_none()
    if response is None:
        raise ResourceNotFoundError("Response", response_id)
    return response


async def get_response(
    db: AsyncSession, form_id: int, response_id: int
) -> models.FormResponse:
    response = await get_response_by_id(db, response_id)
    if response.form_id != form_id:
        raise ResourceNotFoundError("Response", response_id)
    return response


async def list_form_responses(db: AsyncSession, form_id: int) -> List[models.FormResponse]:
    result = await db.execute(
        _with_answers(
            select(models.FormResponse)
            .where(models.FormResponse.form_id == form_id)
            .order_by(models.FormResponse.created_at.desc(), models.FormResponse.id.desc())
        )
    )
    return list(result.scalars().all())


async def list_revision_responses(
    db: AsyncSession, form_id: int, revision_id: str
) -> List[models.FormResponse]:
    version = await crud_version.get_version_by_revision(db, form_id, revision_id)
    result = await db.execute(
        _with_answers(
            select(models.FormResponse)
            .where(models.FormResponse.version_id == version.id)
            .order_by(models.FormResponse.created_at.desc(), models.FormResponse.id.desc())
        )
    )
    return list(result.scalars().all())


async def get_response_by_token(
    db: AsyncSession, form_id: int, response_id: int, token: str
) -> models.FormResponse:
    """Respondent access: the token must be valid and the one stored on the response."""
    try:
        claims = security.decode_token(token, security.RESPONSE_TOKEN)
    except AuthenticationError:
        raise InvalidTokenError("Invalid or expired token")

    if claims.get("response_id") != response_id or claims.get("form_id") != form_id:
        raise InvalidTokenError("Invalid or expired token")

    response = await get_response(db, form_id, response_id)
    if response.response_token != token:
        raise InvalidTokenError("Invalid or expired token")
    return response


# --- Bearbeiten ---


async def update_response(
    db: AsyncSession,
    form_id: int,
    response_id: int,
    user_id: int,
    answers: Dict[int, AnswerIn],
    now: Optional[datetime] = None,
) -> models.FormResponse:
    """
    Overwrite answers of a response within the form's edit window.

    Only answers that carry a grade or text are written; a grade overwrites
    score and feedback, text overwrites the stored value.
    """
    form = await db.get(models.Form, form_id)
    if form is None:
        raise ResourceNotFoundError("Form", form_id)
    response = await db.get(models.FormResponse, response_id)
    if response is None:
        raise ResourceNotFoundError("Response", response_id)
    if form.owner_id != user_id or response.form_id != form_id:
        raise AuthorizationError("Unauthorized access to this response.")

    window_hours = form.update_window_hours or config.DEFAULT_UPDATE_WINDOW_HOURS
    now = now or datetime.now(timezone.utc)
    if now > _utc(response.created_at) + timedelta(hours=window_hours):
        raise ExpiredError("The update window for this response has expired.")

    await _check_question_ids(db, form_id, answers.keys())

    for question_id, answer in answers.items():
        values = {"response_id": response.id, "question_id": question_id}
        changed = []
        if answer.grade is not None:
            values.update(score=answer.grade.score, feedback=answer.grade.feedback)
            changed += ["score", "feedback"]
        if answer.text_answers is not None:
            values["value"] = answer.text_answers.answers
            changed.append("value")
        if not changed:
            continue
        values.setdefault("value", {})
        values.setdefault("score", 0)
        await upsert(
            db,
            models.Answer,
            values,
            index_elements=["response_id", "question_id"],
            update_columns=changed,
        )

    await recompute_total_score(db, response)
    response.updated_at = now
    await db.flush()
    logger.info("Response %s of form %s updated by user %s", response_id, form_id, user_id)
    return await get_response(db, form_id, response_id)


# --- Verwaltung ---


async def delete_response(db: AsyncSession, response_id: int) -> None:
    await db.execute(
        delete(models.FormResponse).where(models.FormResponse.id == response_id)
    )
    logger.info("Response %s deleted", response_id)


async def delete_revision_responses(db: AsyncSession, form_id: int, revision_id: str) -> int:
    """Delete every response of one revision; the version itself stays."""
    version = await crud_version.get_version_by_revision(db, form_id, revision_id)
    result = await db.execute(
        delete(models.FormResponse).where(models.FormResponse.version_id == version.id)
    )
    logger.info(
        "%s responses of form %s revision %s deleted", result.rowcount, form_id, revision_id
    )
    return result.rowcount
