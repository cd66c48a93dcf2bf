"""
Templates and template categories.

A template is a form row with ``is_template`` set. It is assembled with the same
code as a form but is never versioned and never receives responses.
"""

import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models, schemas
from ..core.exceptions import ConflictError, ResourceNotFoundError
from . import crud_form

logger = logging.getLogger(__name__)


# --- Kategorien ---


async def list_categories(db: AsyncSession) -> List[models.TemplateCategory]:
    result = await db.execute(
        select(models.TemplateCategory).order_by(models.TemplateCategory.name)
    )
    return list(result.scalars().all())


async def _ensure_unique_name(db: AsyncSession, name: str, exclude_id: int = None) -> None:
    stmt = select(models.TemplateCategory.id).where(models.TemplateCategory.name == name)
    if exclude_id is not None:
        stmt = stmt.where(models.TemplateCategory.id != exclude_id)
    if await db.scalar(stmt) is not None:
        raise ConflictError(f"Template category '{name}' already exists.")


async def get_category(db: AsyncSession, category_id: int) -> models.TemplateCategory:
    category = await db.get(models.TemplateCategory, category_id)
    if category is None:
        raise ResourceNotFoundError("Template category", category_id)
    return category


async def create_category(
    db: AsyncSession, data: schemas.CategoryCreate
) -> models.TemplateCategory:
    await _ensure_unique_name(db, data.name)
    category = models.TemplateCategory(name=data.name, description=data.description)
    db.add(category)
    await db.flush()
    return category


async def update_category(
    db: AsyncSession, category_id: int, data: schemas.CategoryCreate
) -> models.TemplateCategory:
    category = await get_category(db, category_id)
    await _ensure_unique_name(db, data.name, exclude_id=category_id)
    category.name = data.name
    category.description = data.description
    await db.flush()
    return category


async def delete_category(db: AsyncSession, category_id: int) -> None:
    category = await get_category(db, category_id)
    await db.delete(category)
    await db.flush()


# --- Vorlagen ---


async def get_template(db: AsyncSession, template_id: int) -> models.Form:
    template = await db.get(models.Form, template_id)
    if template is None or not template.is_template:
        raise ResourceNotFoundError("Template", template_id)
    return template


async def create_template(
    db: AsyncSession, user_id: int, data: schemas.TemplateCreate
) -> models.Form:
    return await crud_form.create_form(db, user_id, data, is_template=True)


async def update_template(
    db: AsyncSession, template_id: int, data: schemas.TemplateUpdate
) -> models.Form:
    template = await get_template(db, template_id)
    await crud_form.apply_document(db, template, data)
    return template


async def delete_template(db: AsyncSession, template_id: int) -> None:
    await get_template(db, template_id)
    await crud_form.delete_form(db, template_id)


def _template_list_stmt():
    return (
        select(models.Form, models.TemplateCategory.name, models.User.email)
        .join(models.User, models.User.id == models.Form.owner_id)
        .outerjoin(
            models.TemplateCategory, models.TemplateCategory.id == models.Form.category_id
        )
        .where(models.Form.is_template.is_(True))
        .order_by(models.Form.id)
    )


def _list_items(rows) -> List[schemas.TemplateListItem]:
    return [
        schemas.TemplateListItem(
            id=form.id,
            title=form.title,
            description=form.description,
            is_public=form.is_public,
            category_id=form.category_id,
            category_name=category_name,
            owner_email=owner_email,
            created_at=form.created_at,
            updated_at=form.updated_at,
        )
        for form, category_name, owner_email in rows
    ]


async def list_public_templates(db: AsyncSession) -> List[schemas.TemplateListItem]:
    result = await db.execute(_template_list_stmt().where(models.Form.is_public.is_(True)))
    return _list_items(result.all())


async def list_user_templates(db: AsyncSession, user_id: int) -> List[schemas.TemplateListItem]:
    result = await db.execute(_template_list_stmt().where(models.Form.owner_id == user_id))
    return _list_items(result.all())


# --- Formular aus Vorlage ---


def _question_in(question: schemas.QuestionOut) -> schemas.QuestionIn:
    grading = None
    if question.grading is not None:
        grading = schemas.GradingIn(**question.grading.model_dump(exclude={"id"}))
    options = None
    if question.options is not None:
        options = schemas.QuestionOptionsIn(
            type=question.options.type,
            shuffle=question.options.shuffle,
            choices=[
                schemas.OptionIn(
                    value=o.value,
                    image_id=o.image_id,
                    is_other=o.is_other,
                    goto_action=o.goto_action,
                )
                for o in question.options.choices
            ],
        )
    return schemas.QuestionIn(
        kind=question.kind, required=question.required, grading=grading, options=options
    )


def document_from_detail(detail: schemas.FormDetail) -> schemas.FormDocument:
    """Rebuild a submittable document from a stored nested form."""
    sections = []
    seq_by_section_id = {}
    for section in detail.sections:
        seq_by_section_id[section.id] = section.seq_order
        items = []
        for item in section.items:
            questions = [_question_in(q) for q in item.questions]
            items.append(
                schemas.ItemIn(
                    title=item.title,
                    description=item.description,
                    kind=item.kind,
                    question=questions[0]
                    if item.kind == "QUESTION_ITEM" and questions
                    else None,
                    questions=questions if item.kind == "QUESTION_GROUP_ITEM" else None,
                )
            )
        sections.append(
            schemas.SectionIn(
                title=section.title,
                description=section.description,
                seq_order=section.seq_order,
                items=items,
            )
        )

    rules = [
        schemas.NavigationRuleIn(
            section_id=seq_by_section_id[rule.section_id],
            target_section_id=seq_by_section_id[rule.target_section_id],
            condition=rule.condition,
        )
        for rule in detail.navigation_rules
        if rule.section_id in seq_by_section_id
        and rule.target_section_id in seq_by_section_id
    ]

    return schemas.FormDocument(
        title=detail.title,
        description=detail.description,
        is_public=detail.is_public,
        is_quiz=detail.settings.is_quiz,
        settings=schemas.FormSettings(
            is_quiz=detail.settings.is_quiz,
            update_window_hours=detail.settings.update_window_hours,
            wants_email_updates=detail.settings.wants_email_updates,
        ),
        sections=sections,
        navigation_rules=rules,
    )


async def create_form_from_template(
    db: AsyncSession, user_id: int, template_id: int
) -> models.Form:
    """Copy a template into a new form owned by ``user_id``, published as v1.0."""
    await get_template(db, template_id)
    detail = await crud_form.fetch_form_details(db, template_id)
    document = document_from_detail(detail)
    form = await crud_form.create_form(db, user_id, document)
    logger.info("Form %s created from template %s", form.id, template_id)
    return form
