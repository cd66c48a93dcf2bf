"""
Form Assembler.

Turns a nested form document (sections -> items -> questions -> options /
grading) into relational rows. Every function here runs inside the caller's
transaction; nothing commits on its own, so a failure anywhere discards the
whole document.

Identities used for matching on re-submit:

* sections: (form_id, seq_order)
* items: (form_id, title)
* questions: (item_id, kind, required) via ``find_or_create_question``
* options: none, they are fully replaced on every submit
"""

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .. import models, schemas
from ..core import config
from ..core.exceptions import ResourceNotFoundError, ValidationError
from . import crud_role, crud_version
from .upsert import upsert

logger = logging.getLogger(__name__)


def document_snapshot(document: schemas.FormDocument) -> dict:
    """JSON copy of the submitted body, stored as a version's content."""
    return document.model_dump(mode="json")


def validate_document(document: schemas.FormDocument) -> None:
    seq_orders = Counter(section.seq_order for section in document.sections)
    duplicated_orders = sorted(o for o, n in seq_orders.items() if n > 1)
    if duplicated_orders:
        raise ValidationError(
            "Section seq_order must be unique within a form.",
            details={"seq_order": duplicated_orders},
        )

    titles = Counter(
        item.title for section in document.sections for item in section.items
    )
    duplicated_titles = sorted(t for t, n in titles.items() if n > 1)
    if duplicated_titles:
        raise ValidationError(
            "Item titles must be unique within a form.",
            details={"titles": duplicated_titles},
        )

    for rule in document.navigation_rules:
        if rule.section_id not in seq_orders or rule.target_section_id not in seq_orders:
            raise ValidationError("Section ID not found for navigation rule.")


async def ensure_category_exists(db: AsyncSession, category_id: Optional[int]) -> None:
    if category_id is None:
        return
    if await db.get(models.TemplateCategory, category_id) is None:
        raise ValidationError("Category does not exist.")


# --- Einzelne Upserts ---


async def upsert_section(db: AsyncSession, form_id: int, section: schemas.SectionIn) -> int:
    return await upsert(
        db,
        models.Section,
        {
            "form_id": form_id,
            "title": section.title,
            "description": section.description,
            "seq_order": section.seq_order,
        },
        index_elements=["form_id", "seq_order"],
        update_columns=["title", "description"],
    )


async def upsert_item(
    db: AsyncSession, form_id: int, section_id: int, item: schemas.ItemIn
) -> int:
    return await upsert(
        db,
        models.Item,
        {
            "form_id": form_id,
            "section_id": section_id,
            "title": item.title,
            "description": item.description,
            "kind": item.kind,
        },
        index_elements=["form_id", "title"],
        update_columns=["description", "kind", "section_id"],
    )


async def upsert_navigation_rule(
    db: AsyncSession, section_id: int, target_section_id: int, condition: str
) -> int:
    return await upsert(
        db,
        models.NavigationRule,
        {
            "section_id": section_id,
            "target_section_id": target_section_id,
            "condition": condition,
        },
        index_elements=["section_id", "target_section_id", "condition"],
        update_columns=["condition"],
    )


async def find_or_create_question(
    db: AsyncSession,
    item_id: int,
    question: schemas.QuestionIn,
    exclude_ids: Iterable[int] = (),
) -> models.Question:
    """
    Reuse the question linked to ``item_id`` with the same (kind, required),
    or create a new question plus its item link. ``exclude_ids`` holds questions
    already matched for this item in the current document.
    """
    stmt = (
        select(models.Question)
        .join(models.QuestionItem, models.QuestionItem.question_id == models.Question.id)
        .where(
            models.QuestionItem.item_id == item_id,
            models.Question.kind == question.kind,
            models.Question.required == question.required,
        )
        .order_by(models.Question.id)
    )
    exclude_ids = list(exclude_ids)
    if exclude_ids:
        stmt = stmt.where(models.Question.id.not_in(exclude_ids))

    existing = (await db.execute(stmt.limit(1))).scalar_one_or_none()
    if existing is not None:
        return existing

    new_question = models.Question(kind=question.kind, required=question.required)
    db.add(new_question)
    await db.flush()
    db.add(models.QuestionItem(item_id=item_id, question_id=new_question.id))
    await db.flush()
    return new_question


async def attach_grading(
    db: AsyncSession, question: models.Question, grading: schemas.GradingIn
) -> models.Grading:
    """Insert a fresh grading, repoint the question and drop the replaced row."""
    previous_id = question.grading_id

    new_grading = models.Grading(**grading.model_dump())
    db.add(new_grading)
    await db.flush()
    question.grading_id = new_grading.id
    await db.flush()

    if previous_id is not None:
        still_used = await db.scalar(
            select(func.count(models.Question.id)).where(
                models.Question.grading_id == previous_id
            )
        )
        if not still_used:
            await db.execute(delete(models.Grading).where(models.Grading.id == previous_id))
    return new_grading


async def resolve_image_id(db: AsyncSession, image_id: Optional[int]) -> Optional[int]:
    # Unbekannte Bilder führen nicht zum Abbruch, die Option bleibt ohne Bild
    if image_id is None:
        return None
    if await db.get(models.Image, image_id) is None:
        logger.info("Unknown image id %s ignored", image_id)
        return None
    return image_id


async def replace_options(
    db: AsyncSession, question_id: int, options: schemas.QuestionOptionsIn
) -> None:
    """Full replace: delete every option of the question and insert the submitted ones."""
    await db.execute(delete(models.Option).where(models.Option.question_id == question_id))
    await upsert(
        db,
        models.ChoiceQuestion,
        {"question_id": question_id, "type": options.type, "shuffle": options.shuffle},
        index_elements=["question_id"],
        update_columns=["type", "shuffle"],
        returning=models.ChoiceQuestion.question_id,
    )
    for choice in options.choices:
        db.add(
            models.Option(
                question_id=question_id,
                value=choice.value,
                image_id=await resolve_image_id(db, choice.image_id),
                is_other=choice.is_other,
                goto_action=choice.goto_action,
            )
        )
    await db.flush()


async def handle_question(
    db: AsyncSession,
    item_id: int,
    question: schemas.QuestionIn,
    exclude_ids: Iterable[int] = (),
) -> models.Question:
    row = await find_or_create_question(db, item_id, question, exclude_ids)
    if question.grading is not None:
        await attach_grading(db, row, question.grading)
    if question.kind == "CHOICE_QUESTION" and question.options is not None:
        await replace_options(db, row.id, question.options)
    return row


async def delete_questions(db: AsyncSession, question_ids: List[int]) -> None:
    """Delete questions (options, links and answers cascade) and their now unused gradings."""
    if not question_ids:
        return
    grading_ids = (
        await db.execute(
            select(models.Question.grading_id).where(
                models.Question.id.in_(question_ids),
                models.Question.grading_id.is_not(None),
            )
        )
    ).scalars().all()

    await db.execute(delete(models.Question).where(models.Question.id.in_(question_ids)))

    if grading_ids:
        still_used = select(models.Question.grading_id).where(
            models.Question.grading_id.is_not(None)
        )
        await db.execute(
            delete(models.Grading).where(
                models.Grading.id.in_(grading_ids), models.Grading.id.not_in(still_used)
            )
        )


async def _unlink_stale_questions(db: AsyncSession, item_id: int, keep_ids: List[int]) -> None:
    # Fragen mit Antworten verlieren nur die Verknüpfung, alle anderen werden gelöscht
    stale_stmt = select(models.QuestionItem.question_id).where(
        models.QuestionItem.item_id == item_id
    )
    if keep_ids:
        stale_stmt = stale_stmt.where(models.QuestionItem.question_id.not_in(keep_ids))
    stale_ids = (await db.execute(stale_stmt)).scalars().all()
    if not stale_ids:
        return

    await db.execute(
        delete(models.QuestionItem).where(
            models.QuestionItem.item_id == item_id,
            models.QuestionItem.question_id.in_(stale_ids),
        )
    )

    answered = select(models.Answer.question_id).where(models.Answer.question_id.in_(stale_ids))
    linked = select(models.QuestionItem.question_id).where(
        models.QuestionItem.question_id.in_(stale_ids)
    )
    orphan_ids = (
        await db.execute(
            select(models.Question.id).where(
                models.Question.id.in_(stale_ids),
                models.Question.id.not_in(answered),
                models.Question.id.not_in(linked),
            )
        )
    ).scalars().all()
    await delete_questions(db, list(orphan_ids))


async def handle_item(
    db: AsyncSession, form_id: int, section_id: int, item: schemas.ItemIn
) -> int:
    item_id = await upsert_item(db, form_id, section_id, item)

    if item.kind == "QUESTION_ITEM" and item.question is not None:
        questions = [item.question]
    elif item.kind == "QUESTION_GROUP_ITEM" and item.questions:
        questions = item.questions
    else:
        questions = []

    claimed: List[int] = []
    for question in questions:
        row = await handle_question(db, item_id, question, claimed)
        claimed.append(row.id)
    await _unlink_stale_questions(db, item_id, claimed)
    return item_id


# --- Ganzes Dokument ---


def _apply_header(form: models.Form, document: schemas.FormDocument) -> None:
    form.title = document.title
    form.description = document.description
    form.category_id = document.category_id
    if document.is_public is not None:
        form.is_public = document.is_public
    if document.is_quiz is not None:
        form.is_quiz = document.is_quiz

    settings = document.settings
    if settings is not None:
        if settings.is_quiz is not None:
            form.is_quiz = settings.is_quiz
        if settings.wants_email_updates is not None:
            form.wants_email_updates = settings.wants_email_updates
        if "update_window_hours" in settings.model_fields_set:
            form.update_window_hours = settings.update_window_hours
    form.updated_at = datetime.now(timezone.utc)


async def apply_document(
    db: AsyncSession, form: models.Form, document: schemas.FormDocument
) -> None:
    """Apply a nested document to ``form`` (no versioning, no commit)."""
    validate_document(document)
    await ensure_category_exists(db, document.category_id)

    _apply_header(form, document)
    await db.flush()

    section_ids = {}
    for section in document.sections:
        section_id = await upsert_section(db, form.id, section)
        section_ids[section.seq_order] = section_id
        for item in section.items:
            await handle_item(db, form.id, section_id, item)

    for rule in document.navigation_rules:
        await upsert_navigation_rule(
            db,
            section_ids[rule.section_id],
            section_ids[rule.target_section_id],
            rule.condition,
        )
    logger.debug(
        "Form %s assembled: %d sections, %d rules",
        form.id,
        len(document.sections),
        len(document.navigation_rules),
    )


async def create_form(
    db: AsyncSession,
    owner_id: int,
    data: schemas.FormDocument,
    is_template: bool = False,
) -> models.Form:
    """Create the form, its OWNER role and (for forms) the active version v1.0."""
    await ensure_category_exists(db, data.category_id)

    form = models.Form(
        owner_id=owner_id,
        title=data.title,
        description=data.description,
        is_template=is_template,
        is_public=True if data.is_public is None else data.is_public,
        is_quiz=bool(data.is_quiz),
        category_id=data.category_id,
    )
    db.add(form)
    await db.flush()

    await crud_role.assign_role(db, form.id, owner_id, models.ROLE_OWNER)
    await apply_document(db, form, data)

    if not is_template:
        await crud_version.create_initial_version(db, form, document_snapshot(data))

    logger.info(
        "%s %s created by user %s", "Template" if is_template else "Form", form.id, owner_id
    )
    return form


async def get_form(db: AsyncSession, form_id: int) -> models.Form:
    form = await db.get(models.Form, form_id)
    if form is None:
        raise ResourceNotFoundError("Form", form_id)
    return form


async def delete_form(db: AsyncSession, form_id: int) -> None:
    """
    Delete a form with everything that hangs off it, including its questions.
    Unlinked questions are still reachable through the answers of the form's
    responses and are collected before those cascade away.
    """
    linked = (
        select(models.QuestionItem.question_id)
        .join(models.Item, models.Item.id == models.QuestionItem.item_id)
        .where(models.Item.form_id == form_id)
    )
    answered = (
        select(models.Answer.question_id)
        .join(models.FormResponse, models.FormResponse.id == models.Answer.response_id)
        .where(models.FormResponse.form_id == form_id)
    )
    question_ids = (await db.execute(linked.union(answered))).scalars().all()

    await db.execute(
        update(models.Form).where(models.Form.id == form_id).values(active_version_id=None)
    )
    await db.execute(delete(models.Form).where(models.Form.id == form_id))
    await delete_questions(db, list(question_ids))
    logger.info("Form %s deleted (%d questions)", form_id, len(question_ids))


# --- Lesen des verschachtelten Dokuments ---


def _question_out(question: models.Question) -> schemas.QuestionOut:
    options = None
    if question.kind == "CHOICE_QUESTION":
        choice = question.choice
        options = schemas.QuestionOptionsOut(
            type=choice.type if choice else "RADIO",
            shuffle=bool(choice.shuffle) if choice else False,
            choices=[schemas.OptionOut.model_validate(o) for o in question.options],
        )
    return schemas.QuestionOut(
        id=question.id,
        kind=question.kind,
        required=question.required,
        grading=schemas.GradingOut.model_validate(question.grading)
        if question.grading
        else None,
        options=options,
    )


def _section_out(section: models.Section) -> schemas.SectionOut:
    return schemas.SectionOut(
        id=section.id,
        title=section.title,
        description=section.description,
        seq_order=section.seq_order,
        items=[
            schemas.ItemOut(
                id=item.id,
                title=item.title,
                description=item.description,
                kind=item.kind,
                questions=[_question_out(q) for q in item.questions],
            )
            for item in section.items
        ],
    )


async def fetch_form_details(
    db: AsyncSession, form_id: int, version_id: Optional[int] = None
) -> Optional[schemas.FormDetail]:
    """Read the live nested document of a form, labeled with the given (or active) version."""
    stmt = (
        select(models.Form)
        .where(models.Form.id == form_id)
        .options(
            selectinload(models.Form.sections)
            .selectinload(models.Section.items)
            .selectinload(models.Item.questions)
            .options(
                selectinload(models.Question.grading),
                selectinload(models.Question.choice),
                selectinload(models.Question.options).selectinload(models.Option.image),
            )
        )
        .execution_options(populate_existing=True)
    )
    form = (await db.execute(stmt)).scalar_one_or_none()
    if form is None:
        return None

    rules = (
        await db.execute(
            select(models.NavigationRule)
            .join(models.Section, models.Section.id == models.NavigationRule.section_id)
            .where(models.Section.form_id == form_id)
            .order_by(models.NavigationRule.id)
        )
    ).scalars().all()

    version_id = version_id or form.active_version_id
    revision_id = None
    if version_id is not None:
        revision_id = await db.scalar(
            select(models.FormVersion.revision_id).where(
                models.FormVersion.id == version_id,
                models.FormVersion.form_id == form_id,
            )
        )

    return schemas.FormDetail(
        id=form.id,
        owner_id=form.owner_id,
        title=form.title,
        description=form.description,
        is_template=form.is_template,
        is_public=form.is_public,
        category_id=form.category_id,
        active_version_id=form.active_version_id,
        version_id=version_id if revision_id is not None else None,
        revision_id=revision_id,
        settings=schemas.SettingsOut(
            is_quiz=form.is_quiz,
            update_window_hours=form.update_window_hours or config.DEFAULT_UPDATE_WINDOW_HOURS,
            wants_email_updates=form.wants_email_updates,
        ),
        sections=[_section_out(s) for s in form.sections],
        navigation_rules=[schemas.NavigationRuleOut.model_validate(r) for r in rules],
    )


async def list_user_forms(db: AsyncSession, user_id: int) -> List[schemas.FormDetail]:
    form_ids = (
        await db.execute(
            select(models.Form.id)
            .where(models.Form.owner_id == user_id, models.Form.is_template.is_(False))
            .order_by(models.Form.id)
        )
    ).scalars().all()
    if not form_ids:
        raise ResourceNotFoundError("Form", message="No forms found for this user.")
    details = []
    for form_id in form_ids:
        details.append(await fetch_form_details(db, form_id))
    return details
