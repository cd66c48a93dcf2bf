from datetime import datetime, timedelta, timezone

import pytest

from formbuilder import schemas
from formbuilder.core.exceptions import (
    AuthorizationError,
    ExpiredError,
    InvalidTokenError,
    ResourceNotFoundError,
    ValidationError,
)
from formbuilder.crud import crud_form, crud_response, crud_version

from .conftest import make_user, sample_document

SUBMITTED_AT = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


async def _setup_form(db, owner):
    async with db.begin():
        form = await crud_form.create_form(db, owner.id, schemas.FormCreate(**sample_document()))
        form_id = form.id
        detail = await crud_form.fetch_form_details(db, form_id)
    items = detail.sections[0].items
    return form_id, items[0].questions[0].id, items[1].questions[0].id


def _answers(raw):
    return {qid: schemas.AnswerIn(**value) for qid, value in raw.items()}


async def _submit(db, form_id, raw, email=None, now=SUBMITTED_AT):
    async with db.begin():
        response = await crud_response.submit_response(db, form_id, _answers(raw), email, now=now)
        return response.id, response.version_id, response.total_score, response.response_token


@pytest.mark.asyncio
async def test_submit_binds_response_to_active_version(db, owner):
    form_id, choice_id, text_id = await _setup_form(db, owner)

    response_id, version_id, total, token = await _submit(
        db,
        form_id,
        {
            choice_id: {"grade": {"score": 2}, "text_answers": {"answers": ["Blue"]}},
            text_id: {"text_answers": {"answers": ["Great service"]}},
        },
        email="someone@example.com",
    )

    async with db.begin():
        active = await crud_version.get_active_version(db, form_id)
        stored = await crud_response.get_response(db, form_id, response_id)
    assert version_id == active.id
    assert total == 2
    assert stored.response_token == token
    assert stored.responder_email == "someone@example.com"
    assert {a.question_id: a.value for a in stored.answers} == {
        choice_id: ["Blue"],
        text_id: ["Great service"],
    }


@pytest.mark.asyncio
async def test_responses_keep_their_version_after_publish(db, owner):
    form_id, choice_id, _ = await _setup_form(db, owner)
    first_id, first_version, _, _ = await _submit(db, form_id, {choice_id: {"grade": {"score": 1}}})

    async with db.begin():
        form = await crud_version.lock_form(db, form_id)
        update = schemas.FormUpdate(**sample_document(title="Second"))
        await crud_form.apply_document(db, form, update)
        await crud_version.publish(db, form_id, crud_form.document_snapshot(update))

    second_id, second_version, _, _ = await _submit(db, form_id, {choice_id: {"grade": {"score": 1}}})

    assert second_version != first_version
    async with db.begin():
        first = await crud_response.get_response(db, form_id, first_id)
        v10 = await crud_response.list_revision_responses(db, form_id, "v1.0")
        v11 = await crud_response.list_revision_responses(db, form_id, "v1.1")
    assert first.version_id == first_version
    assert [r.id for r in v10] == [first_id]
    assert [r.id for r in v11] == [second_id]


@pytest.mark.asyncio
async def test_submit_rejects_questions_of_other_forms(db, owner):
    form_id, choice_id, _ = await _setup_form(db, owner)

    with pytest.raises(ValidationError):
        await _submit(db, form_id, {choice_id + 1000: {"grade": {"score": 1}}})


@pytest.mark.asyncio
async def test_submit_to_unknown_form_is_not_found(db, owner):
    with pytest.raises(ResourceNotFoundError):
        await _submit(db, 12345, {})


@pytest.mark.asyncio
async def test_update_within_window_recomputes_total(db, owner):
    form_id, choice_id, text_id = await _setup_form(db, owner)
    response_id, _, total, _ = await _submit(
        db,
        form_id,
        {choice_id: {"grade": {"score": 2}}, text_id: {"grade": {"score": 1}}},
    )
    assert total == 3

    async with db.begin():
        updated = await crud_response.update_response(
            db,
            form_id,
            response_id,
            owner.id,
            _answers({choice_id: {"grade": {"score": 0, "feedback": "Wrong colour"}}}),
            now=SUBMITTED_AT + timedelta(hours=23),
        )
        total_score = updated.total_score
        answers = {a.question_id: a for a in updated.answers}

    assert total_score == 1
    assert answers[choice_id].feedback == "Wrong colour"
    assert answers[text_id].score == 1


@pytest.mark.asyncio
async def test_update_after_window_is_rejected(db, owner):
    form_id, choice_id, _ = await _setup_form(db, owner)
    response_id, _, _, _ = await _submit(db, form_id, {choice_id: {"grade": {"score": 2}}})
    owner_id = owner.id

    with pytest.raises(ExpiredError):
        async with db.begin():
            await crud_response.update_response(
                db,
                form_id,
                response_id,
                owner_id,
                _answers({choice_id: {"grade": {"score": 0}}}),
                now=SUBMITTED_AT + timedelta(hours=25),
            )


@pytest.mark.asyncio
async def test_update_inserts_missing_answer(db, owner):
    form_id, choice_id, text_id = await _setup_form(db, owner)
    response_id, _, _, _ = await _submit(db, form_id, {choice_id: {"grade": {"score": 2}}})

    async with db.begin():
        updated = await crud_response.update_response(
            db,
            form_id,
            response_id,
            owner.id,
            _answers({text_id: {"grade": {"score": 3}, "text_answers": {"answers": ["late"]}}}),
            now=SUBMITTED_AT + timedelta(hours=1),
        )
        total_score = updated.total_score
        question_ids = [a.question_id for a in updated.answers]

    assert total_score == 5
    assert sorted(question_ids) == sorted([choice_id, text_id])


@pytest.mark.asyncio
async def test_only_the_owner_may_edit_responses(db, owner):
    form_id, choice_id, _ = await _setup_form(db, owner)
    response_id, _, _, _ = await _submit(db, form_id, {choice_id: {"grade": {"score": 2}}})
    intruder = await make_user(db, "intruder@example.com")
    intruder_id = intruder.id

    with pytest.raises(AuthorizationError):
        async with db.begin():
            await crud_response.update_response(
                db,
                form_id,
                response_id,
                intruder_id,
                _answers({choice_id: {"grade": {"score": 9}}}),
                now=SUBMITTED_AT,
            )


@pytest.mark.asyncio
async def test_response_token_grants_access_to_its_response_only(db, owner):
    form_id, choice_id, _ = await _setup_form(db, owner)
    first_id, _, _, first_token = await _submit(db, form_id, {choice_id: {"grade": {"score": 1}}})
    second_id, _, _, _ = await _submit(db, form_id, {choice_id: {"grade": {"score": 1}}})

    async with db.begin():
        response = await crud_response.get_response_by_token(db, form_id, first_id, first_token)
        assert response.id == first_id

    with pytest.raises(InvalidTokenError):
        async with db.begin():
            await crud_response.get_response_by_token(db, form_id, second_id, first_token)

    with pytest.raises(InvalidTokenError):
        async with db.begin():
            await crud_response.get_response_by_token(db, form_id, first_id, "not-a-token")


@pytest.mark.asyncio
async def test_delete_revision_responses_keeps_the_version(db, owner):
    form_id, choice_id, _ = await _setup_form(db, owner)
    await _submit(db, form_id, {choice_id: {"grade": {"score": 1}}})
    await _submit(db, form_id, {choice_id: {"grade": {"score": 1}}})

    async with db.begin():
        deleted = await crud_response.delete_revision_responses(db, form_id, "v1.0")
    assert deleted == 2

    async with db.begin():
        assert await crud_response.list_form_responses(db, form_id) == []
        version = await crud_version.get_version_by_revision(db, form_id, "v1.0")
        assert version.is_active


@pytest.mark.asyncio
async def test_grading_an_answer_keeps_the_respondents_text(db, owner):
    form_id, choice_id, _ = await _setup_form(db, owner)
    response_id, _, _, _ = await _submit(
        db,
        form_id,
        {choice_id: {"grade": {"score": 2}, "text_answers": {"answers": ["Blue"]}}},
    )

    async with db.begin():
        updated = await crud_response.update_response(
            db,
            form_id,
            response_id,
            owner.id,
            _answers({choice_id: {"grade": {"score": 1, "feedback": "Half right"}}}),
            now=SUBMITTED_AT + timedelta(hours=2),
        )
        answer = updated.answers[0]
        value, score, feedback = answer.value, answer.score, answer.feedback

    assert value == ["Blue"]
    assert score == 1
    assert feedback == "Half right"
