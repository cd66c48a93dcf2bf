import asyncio
import json

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from starlette.requests import Request

from formbuilder import models, schemas
from formbuilder.core.exceptions import ConflictError, ResourceNotFoundError
from formbuilder.crud import crud_form, crud_version
from formbuilder.main import integrity_error_handler

from .conftest import sample_document


@pytest.mark.parametrize(
    "label,expected",
    [
        ("v1.0", "v1.1"),
        ("v3.4", "v3.5"),
        ("v1.9", "v2.0"),
        ("v9.9", "v10.0"),
        ("v10.0", "v10.1"),
    ],
)
def test_increment_revision(label, expected):
    assert crud_version.increment_revision(label) == expected


@pytest.mark.parametrize("label", ["", "1.0", "v1", "v1.x", "version1.0"])
def test_increment_revision_rejects_malformed_labels(label):
    with pytest.raises(ValueError):
        crud_version.increment_revision(label)


async def _create_form(db, owner, document=None):
    async with db.begin():
        form = await crud_form.create_form(
            db, owner.id, schemas.FormCreate(**(document or sample_document()))
        )
    return form


async def _publish(db, form_id, document):
    async with db.begin():
        form = await crud_version.lock_form(db, form_id)
        update = schemas.FormUpdate(**document)
        await crud_form.apply_document(db, form, update)
        return await crud_version.publish(db, form_id, crud_form.document_snapshot(update))


async def _versions(db, form_id):
    async with db.begin():
        return await crud_version.list_versions(db, form_id)


@pytest.mark.asyncio
async def test_new_form_starts_at_v1_0(db, owner):
    form = await _create_form(db, owner)

    versions = await _versions(db, form.id)
    assert [v.revision_id for v in versions] == ["v1.0"]
    assert versions[0].is_active
    assert form.active_version_id == versions[0].id


@pytest.mark.asyncio
async def test_publish_keeps_exactly_one_active_version(db, owner):
    form = await _create_form(db, owner)

    await _publish(db, form.id, sample_document(title="Second"))
    latest = await _publish(db, form.id, sample_document(title="Third"))

    versions = await _versions(db, form.id)
    assert [v.revision_id for v in versions] == ["v1.2", "v1.1", "v1.0"]
    assert [v.id for v in versions if v.is_active] == [latest.id]

    async with db.begin():
        refreshed = await db.get(models.Form, form.id, populate_existing=True)
        assert refreshed.active_version_id == latest.id


@pytest.mark.asyncio
async def test_published_snapshots_are_never_rewritten(db, owner):
    form = await _create_form(db, owner)

    await _publish(db, form.id, sample_document(title="Changed title"))

    async with db.begin():
        first = await crud_version.get_version_by_revision(db, form.id, "v1.0")
        second = await crud_version.get_version_by_revision(db, form.id, "v1.1")
        assert first.content["title"] == "Customer survey"
        assert second.content["title"] == "Changed title"


@pytest.mark.asyncio
async def test_next_revision_is_computed_numerically(db, owner):
    form = await _create_form(db, owner)
    async with db.begin():
        db.add(models.FormVersion(form_id=form.id, revision_id="v9.9", is_active=False))
        db.add(models.FormVersion(form_id=form.id, revision_id="v10.0", is_active=False))

    version = await _publish(db, form.id, sample_document())

    assert version.revision_id == "v10.1"


@pytest.mark.asyncio
async def test_activate_version_relabels_and_keeps_id(db, owner):
    form = await _create_form(db, owner)
    await _publish(db, form.id, sample_document(title="Second"))
    async with db.begin():
        original = await crud_version.get_version_by_revision(db, form.id, "v1.0")
        original_id = original.id

    async with db.begin():
        activated = await crud_version.activate_version(db, form.id, original_id)

    assert activated.id == original_id
    assert activated.revision_id == "v1.2"
    versions = await _versions(db, form.id)
    assert [v.id for v in versions if v.is_active] == [original_id]
    async with db.begin():
        count = await db.scalar(
            select(func.count(models.FormVersion.id)).where(
                models.FormVersion.form_id == form.id
            )
        )
    assert count == 2


@pytest.mark.asyncio
async def test_activate_foreign_version_is_not_found(db, owner):
    form = await _create_form(db, owner)
    other = await _create_form(db, owner, sample_document(title="Other form"))

    with pytest.raises(ResourceNotFoundError):
        async with db.begin():
            await crud_version.activate_version(db, form.id, other.active_version_id)


@pytest.mark.asyncio
async def test_check_revision_detects_stale_client(db, owner):
    form = await _create_form(db, owner)
    await _publish(db, form.id, sample_document(title="Second"))

    async with db.begin():
        await crud_version.check_revision(db, form.id, "v1.1")

    with pytest.raises(ConflictError):
        async with db.begin():
            await crud_version.check_revision(db, form.id, "v1.0")


@pytest.mark.asyncio
async def test_concurrent_publishes_leave_one_active_version(session_factory, owner):
    async with session_factory() as db:
        form = await _create_form(db, owner)

    async def publish_in_own_session(title):
        snapshot = crud_form.document_snapshot(
            schemas.FormUpdate(**sample_document(title=title))
        )
        async with session_factory() as session:
            async with session.begin():
                return await crud_version.publish(session, form.id, snapshot)

    results = await asyncio.gather(
        publish_in_own_session("A"), publish_in_own_session("B"), return_exceptions=True
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert all(isinstance(f, ConflictError) for f in failures)
    async with session_factory() as db:
        versions = await crud_version.list_versions(db, form.id)
    revisions = [v.revision_id for v in versions]
    assert len(revisions) == len(set(revisions)) == 1 + len(results) - len(failures)
    assert len([v for v in versions if v.is_active]) == 1


@pytest.mark.asyncio
async def test_integrity_errors_are_reported_as_conflicts():
    request = Request(
        {
            "type": "http",
            "method": "PATCH",
            "path": "/api/v1/forms/1",
            "headers": [],
            "query_string": b"",
            "scheme": "http",
            "server": ("test", 80),
        }
    )
    error = IntegrityError("INSERT INTO form_versions", {}, Exception("UNIQUE constraint failed"))

    response = await integrity_error_handler(request, error)

    assert response.status_code == 409
    assert json.loads(response.body)["code"] == "CONFLICT"
