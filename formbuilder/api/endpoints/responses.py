import logging
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ... import models, schemas
from ...crud import crud_response, crud_role
from ...database import get_db_session
from ...services.notifier import Notifier, get_notifier
from ..deps import get_current_user_id, get_optional_user_id

logger = logging.getLogger(__name__)

router = APIRouter(tags=["responses"])


@router.post(
    "/forms/{form_id}/responses",
    response_model=schemas.ResponseSubmitResult,
    status_code=201,
)
async def submit_response(
    form_id: int,
    response_in: schemas.ResponseSubmit,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db_session),
    notifier: Notifier = Depends(get_notifier),
):
    """Öffentlich: Antwort auf die aktive Version des Formulars abgeben"""
    async with db.begin():
        response = await crud_response.submit_response(
            db, form_id, response_in.answers, response_in.respondent_email
        )
        form = await db.get(models.Form, form_id)
        owner = await db.get(models.User, form.owner_id)
        result = schemas.ResponseSubmitResult(
            response_id=response.id,
            version_id=response.version_id,
            total_score=response.total_score,
            response_token=response.response_token,
        )
        form_title = form.title
        notify_owner = form.wants_email_updates
        owner_email = owner.email if owner else None

    # Läuft erst nach dem Commit und nachdem die Antwort gesendet wurde
    if response_in.respondent_email:
        background_tasks.add_task(
            notifier.notify_submission,
            form_title=form_title,
            form_id=form_id,
            response_id=result.response_id,
            respondent_email=response_in.respondent_email,
            response_token=result.response_token,
            owner_email=owner_email,
            notify_owner=notify_owner,
        )
    return result


@router.get("/forms/{form_id}/responses", response_model=List[schemas.ResponseOut])
async def list_form_responses(
    form_id: int,
    db: AsyncSession = Depends(get_db_session),
    user_id: int = Depends(get_optional_user_id),
):
    await crud_role.authorize(db, user_id, form_id, crud_role.READ_ROLES)
    return await crud_response.list_form_responses(db, form_id)


@router.get(
    "/forms/{form_id}/responses/{response_id}", response_model=schemas.ResponseOut
)
async def get_response(
    form_id: int,
    response_id: int,
    db: AsyncSession = Depends(get_db_session),
    user_id: int = Depends(get_optional_user_id),
):
    await crud_role.authorize(db, user_id, form_id, crud_role.READ_ROLES)
    return await crud_response.get_response(db, form_id, response_id)


@router.get(
    "/forms/{form_id}/responses/{response_id}/token",
    response_model=schemas.ResponseOut,
)
async def get_response_by_token(
    form_id: int,
    response_id: int,
    token: str = Query(...),
    db: AsyncSession = Depends(get_db_session),
):
    return await crud_response.get_response_by_token(db, form_id, response_id, token)


@router.patch(
    "/forms/{form_id}/responses/{response_id}",
    response_model=schemas.ResponseUpdateResult,
)
async def update_response(
    form_id: int,
    response_id: int,
    update_in: schemas.ResponseUpdate,
    db: AsyncSession = Depends(get_db_session),
    user_id: int = Depends(get_current_user_id),
):
    async with db.begin():
        response = await crud_response.update_response(
            db, form_id, response_id, user_id, update_in.answers
        )
        response_out = schemas.ResponseOut.model_validate(response)
    return schemas.ResponseUpdateResult(response=response_out)


@router.get(
    "/forms/{form_id}/revisions/{revision_id}/responses",
    response_model=List[schemas.ResponseOut],
)
async def list_revision_responses(
    form_id: int,
    revision_id: str,
    db: AsyncSession = Depends(get_db_session),
    user_id: int = Depends(get_optional_user_id),
):
    await crud_role.require_owner(db, user_id, form_id)
    return await crud_response.list_revision_responses(db, form_id, revision_id)


@router.delete(
    "/forms/{form_id}/revisions/{revision_id}/responses",
    response_model=schemas.Message,
)
async def delete_revision_responses(
    form_id: int,
    revision_id: str,
    db: AsyncSession = Depends(get_db_session),
    user_id: int = Depends(get_optional_user_id),
):
    async with db.begin():
        await crud_role.require_owner(db, user_id, form_id)
        deleted = await crud_response.delete_revision_responses(db, form_id, revision_id)
    return schemas.Message(
        message=f"{deleted} responses of revision {revision_id} deleted successfully."
    )


@router.delete("/responses/{response_id}", response_model=schemas.Message)
async def delete_response(
    response_id: int,
    db: AsyncSession = Depends(get_db_session),
    user_id: int = Depends(get_optional_user_id),
):
    async with db.begin():
        response = await crud_response.get_response_by_id(db, response_id)
        await crud_role.require_owner(db, user_id, response.form_id)
        await crud_response.delete_response(db, response_id)
    return schemas.Message(message="Response deleted successfully.")
