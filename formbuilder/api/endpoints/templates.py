from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ... import schemas
from ...core.exceptions import ResourceNotFoundError
from ...crud import crud_form, crud_role, crud_template
from ...database import get_db_session
from ..deps import get_current_user_id, get_optional_user_id

router = APIRouter(prefix="/templates", tags=["templates"])
categories_router = APIRouter(prefix="/template-categories", tags=["templates"])


async def _detail(db: AsyncSession, form_id: int) -> schemas.FormDetail:
    detail = await crud_form.fetch_form_details(db, form_id)
    if detail is None:
        raise ResourceNotFoundError("Template", form_id)
    return detail


@router.post("", response_model=schemas.FormCreateResponse, status_code=201)
async def create_template(
    template_in: schemas.TemplateCreate,
    db: AsyncSession = Depends(get_db_session),
    user_id: int = Depends(get_current_user_id),
):
    async with db.begin():
        template = await crud_template.create_template(db, user_id, template_in)
        template_id = template.id
    return schemas.FormCreateResponse(
        message="Template created successfully.", form=await _detail(db, template_id)
    )


@router.get("", response_model=List[schemas.TemplateListItem])
async def list_public_templates(db: AsyncSession = Depends(get_db_session)):
    return await crud_template.list_public_templates(db)


@router.get("/mine", response_model=List[schemas.TemplateListItem])
async def list_my_templates(
    db: AsyncSession = Depends(get_db_session),
    user_id: int = Depends(get_current_user_id),
):
    return await crud_template.list_user_templates(db, user_id)


@router.get("/{template_id}", response_model=schemas.FormDetail)
async def preview_template(
    template_id: int,
    db: AsyncSession = Depends(get_db_session),
    user_id: int = Depends(get_optional_user_id),
):
    """Öffentliche Vorlagen sind für alle sichtbar, private nur für Beteiligte"""
    template = await crud_template.get_template(db, template_id)
    if not template.is_public:
        await crud_role.authorize(db, user_id, template_id, crud_role.READ_ROLES)
    return await _detail(db, template_id)


@router.patch("/{template_id}", response_model=schemas.FormUpdateResponse)
async def update_template(
    template_id: int,
    template_in: schemas.TemplateUpdate,
    db: AsyncSession = Depends(get_db_session),
    user_id: int = Depends(get_optional_user_id),
):
    async with db.begin():
        await crud_role.authorize(db, user_id, template_id, crud_role.MUTATE_ROLES)
        await crud_template.update_template(db, template_id, template_in)
    return schemas.FormUpdateResponse(
        message="Template updated successfully.", form_details=await _detail(db, template_id)
    )


@router.delete("/{template_id}", response_model=schemas.Message)
async def delete_template(
    template_id: int,
    db: AsyncSession = Depends(get_db_session),
    user_id: int = Depends(get_optional_user_id),
):
    async with db.begin():
        await crud_role.require_owner(db, user_id, template_id)
        await crud_template.delete_template(db, template_id)
    return schemas.Message(message="Template deleted successfully.")


@router.post(
    "/{template_id}/forms", response_model=schemas.FormCreateResponse, status_code=201
)
async def create_form_from_template(
    template_id: int,
    db: AsyncSession = Depends(get_db_session),
    user_id: int = Depends(get_current_user_id),
):
    async with db.begin():
        form = await crud_template.create_form_from_template(db, user_id, template_id)
        form_id = form.id
    detail = await crud_form.fetch_form_details(db, form_id)
    return schemas.FormCreateResponse(
        message="Form created successfully from template.", form=detail
    )


# --- Kategorien ---


@categories_router.get("", response_model=List[schemas.CategoryOut])
async def list_categories(db: AsyncSession = Depends(get_db_session)):
    return await crud_template.list_categories(db)


@categories_router.post("", response_model=schemas.CategoryOut, status_code=201)
async def create_category(
    category_in: schemas.CategoryCreate,
    db: AsyncSession = Depends(get_db_session),
    user_id: int = Depends(get_current_user_id),
):
    async with db.begin():
        category = await crud_template.create_category(db, category_in)
        category_out = schemas.CategoryOut.model_validate(category)
    return category_out


@categories_router.patch("/{category_id}", response_model=schemas.CategoryOut)
async def update_category(
    category_id: int,
    category_in: schemas.CategoryCreate,
    db: AsyncSession = Depends(get_db_session),
    user_id: int = Depends(get_current_user_id),
):
    async with db.begin():
        category = await crud_template.update_category(db, category_id, category_in)
        category_out = schemas.CategoryOut.model_validate(category)
    return category_out


@categories_router.delete("/{category_id}", response_model=schemas.Message)
async def delete_category(
    category_id: int,
    db: AsyncSession = Depends(get_db_session),
    user_id: int = Depends(get_current_user_id),
):
    async with db.begin():
        await crud_template.delete_category(db, category_id)
    return schemas.Message(message="Template category deleted successfully.")
