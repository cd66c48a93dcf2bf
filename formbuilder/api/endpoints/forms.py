import logging
from typing import List, Union

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ... import schemas
from ...core import config, security
from ...core.exceptions import (
    AuthenticationError,
    InvalidTokenError,
    ResourceNotFoundError,
    ValidationError,
)
from ...crud import crud_form, crud_role, crud_version
from ...database import get_db_session
from ...services.collaboration import CollaborationHub, get_hub
from ..deps import get_current_user_id, get_optional_user_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/forms", tags=["forms"])


async def _detail_or_404(db: AsyncSession, form_id: int, version_id: int = None) -> schemas.FormDetail:
    detail = await crud_form.fetch_form_details(db, form_id, version_id)
    if detail is None:
        raise ResourceNotFoundError("Form", form_id)
    return detail


@router.post("", response_model=schemas.FormCreateResponse, status_code=201)
async def create_form(
    form_in: schemas.FormCreate,
    db: AsyncSession = Depends(get_db_session),
    user_id: int = Depends(get_current_user_id),
):
    """Neues Formular inkl. OWNER-Rolle und aktiver Version v1.0"""
    async with db.begin():
        form = await crud_form.create_form(db, user_id, form_in)
        form_id = form.id
    detail = await _detail_or_404(db, form_id)
    return schemas.FormCreateResponse(message="Form created successfully.", form=detail)


# Muss vor /{form_id} stehen
@router.get("/respond", response_model=Union[schemas.FormDetail, schemas.VersionSnapshot])
async def get_form_by_share_token(
    token: str = Query(...),
    db: AsyncSession = Depends(get_db_session),
):
    """
    Öffentlicher Zugriff über einen Freigabe-Link. Ist die verlinkte Version
    noch aktiv, kommt das aktuelle Dokument zurück, sonst der eingefrorene Stand.
    """
    try:
        claims = security.decode_token(token, security.SHARE_TOKEN)
    except AuthenticationError:
        raise InvalidTokenError("Invalid or expired token")

    form_id = claims.get("form_id")
    version_id = claims.get("version_id")
    if form_id is None or version_id is None:
        raise InvalidTokenError("Invalid or expired token")

    version = await crud_version.get_version(db, form_id, version_id)
    if version.is_active:
        return await _detail_or_404(db, form_id, version.id)

    return schemas.VersionSnapshot(
        form_id=form_id,
        version_id=version.id,
        revision_id=version.revision_id,
        content=version.content,
    )


@router.get("/{form_id}", response_model=schemas.FormDetail)
async def get_form(
    form_id: int,
    db: AsyncSession = Depends(get_db_session),
    user_id: int = Depends(get_optional_user_id),
):
    await crud_role.authorize(db, user_id, form_id, crud_role.READ_ROLES)
    return await _detail_or_404(db, form_id)


@router.patch("/{form_id}", response_model=schemas.FormUpdateResponse)
async def update_form(
    form_id: int,
    form_in: schemas.FormUpdate,
    db: AsyncSession = Depends(get_db_session),
    user_id: int = Depends(get_optional_user_id),
    hub: CollaborationHub = Depends(get_hub),
):
    """Dokument anwenden und als neue Revision veröffentlichen (eine Transaktion)"""
    async with db.begin():
        await crud_role.authorize(db, user_id, form_id, crud_role.MUTATE_ROLES)
        form = await crud_version.lock_form(db, form_id)
        if form.is_template:
            raise ValidationError("Templates are edited via /templates and are not versioned.")
        if form_in.revision_id is not None:
            await crud_version.check_revision(db, form_id, form_in.revision_id)

        await crud_form.apply_document(db, form, form_in)
        await crud_version.publish(db, form_id, crud_form.document_snapshot(form_in))

    detail = await _detail_or_404(db, form_id)
    hub.broadcast(form_id, "formUpdated", detail.model_dump(mode="json"))
    return schemas.FormUpdateResponse(form_details=detail)


@router.delete("/{form_id}", response_model=schemas.Message)
async def delete_form(
    form_id: int,
    db: AsyncSession = Depends(get_db_session),
    user_id: int = Depends(get_optional_user_id),
):
    async with db.begin():
        await crud_role.require_owner(db, user_id, form_id)
        await crud_form.delete_form(db, form_id)
    return schemas.Message(message="Form deleted successfully.")


@router.get("/{form_id}/versions", response_model=List[schemas.VersionOut])
async def list_versions(
    form_id: int,
    db: AsyncSession = Depends(get_db_session),
    user_id: int = Depends(get_optional_user_id),
):
    await crud_role.authorize(db, user_id, form_id, crud_role.READ_ROLES)
    return await crud_version.list_versions(db, form_id)


@router.patch(
    "/{form_id}/activate_version/{version_id}",
    response_model=schemas.VersionActivateResponse,
)
async def activate_version(
    form_id: int,
    version_id: int,
    db: AsyncSession = Depends(get_db_session),
    user_id: int = Depends(get_optional_user_id),
):
    async with db.begin():
        await crud_role.authorize(db, user_id, form_id, crud_role.MUTATE_ROLES)
        version = await crud_version.activate_version(db, form_id, version_id)
        version_out = schemas.VersionOut.model_validate(version)
    return schemas.VersionActivateResponse(version=version_out)


@router.get("/{form_id}/share_link", response_model=schemas.ShareLinkResponse)
async def generate_share_link(
    form_id: int,
    db: AsyncSession = Depends(get_db_session),
    user_id: int = Depends(get_optional_user_id),
):
    await crud_role.authorize(db, user_id, form_id, crud_role.MUTATE_ROLES)
    active = await crud_version.get_active_version(db, form_id)
    if active is None:
        raise ResourceNotFoundError(
            "Form version", message="No active version found for the form."
        )
    token = security.create_share_token(form_id, active.id)
    link = f"{config.APP_DOMAIN_NAME}/api/v1/forms/respond?token={token}"
    logger.info("Share link for form %s (version %s) issued to user %s", form_id, active.id, user_id)
    return schemas.ShareLinkResponse(link=link, token=token)
