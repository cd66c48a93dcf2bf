import pytest
from httpx import AsyncClient

from .conftest import sample_document
from .test_api_forms import API, create_form, register


@pytest.mark.asyncio
async def test_register_and_login(client: AsyncClient):
    user_id, _ = await register(client, "Person@Example.com")

    duplicate = await client.post(
        f"{API}/users/register", json={"email": "person@example.com", "password": "secret123"}
    )
    assert duplicate.status_code == 409

    login = await client.post(
        f"{API}/users/login", json={"email": "person@example.com", "password": "secret123"}
    )
    assert login.status_code == 200
    assert login.json()["user_id"] == user_id
    assert login.json()["token_type"] == "bearer"

    wrong = await client.post(
        f"{API}/users/login", json={"email": "person@example.com", "password": "nope"}
    )
    assert wrong.status_code == 401

    unknown = await client.post(
        f"{API}/users/login", json={"email": "ghost@example.com", "password": "secret123"}
    )
    assert unknown.status_code == 404


@pytest.mark.asyncio
async def test_my_forms_lists_owned_forms(client: AsyncClient):
    _, headers = await register(client, "owner@example.com")

    empty = await client.get(f"{API}/users/me/forms", headers=headers)
    assert empty.status_code == 404

    await create_form(client, headers)
    await create_form(client, headers, sample_document(title="Second form"))

    mine = await client.get(f"{API}/users/me/forms", headers=headers)
    assert [f["title"] for f in mine.json()] == ["Customer survey", "Second form"]


@pytest.mark.asyncio
async def test_invited_viewer_can_read_but_not_edit(client: AsyncClient, notifier):
    _, headers = await register(client, "owner@example.com")
    form = await create_form(client, headers)

    invite = await client.post(
        f"{API}/users/invite",
        json={"email": "viewer@example.com", "form_id": form["id"], "role_name": "viewer"},
        headers=headers,
    )
    assert invite.status_code == 200

    invitation = notifier.invitations[0]
    assert invitation["role"] == "VIEWER"
    assert invitation["temporary_password"]

    login = await client.post(
        f"{API}/users/login",
        json={"email": "viewer@example.com", "password": invitation["temporary_password"]},
    )
    viewer_headers = {"Authorization": f"Bearer {login.json()['access_token']}"}

    read = await client.get(f"{API}/forms/{form['id']}", headers=viewer_headers)
    assert read.status_code == 200

    edit = await client.patch(
        f"{API}/forms/{form['id']}", json=sample_document(), headers=viewer_headers
    )
    assert edit.status_code == 403

    share = await client.get(f"{API}/forms/{form['id']}/share_link", headers=viewer_headers)
    assert share.status_code == 403


@pytest.mark.asyncio
async def test_invited_editor_can_publish_and_existing_user_gets_no_password(
    client: AsyncClient, notifier
):
    _, headers = await register(client, "owner@example.com")
    _, editor_headers = await register(client, "editor@example.com")
    form = await create_form(client, headers)

    await client.post(
        f"{API}/users/invite",
        json={"email": "editor@example.com", "form_id": form["id"], "role_name": "EDITOR"},
        headers=headers,
    )
    assert notifier.invitations[0]["temporary_password"] is None

    edit = await client.patch(
        f"{API}/forms/{form['id']}", json=sample_document(title="Edited"), headers=editor_headers
    )
    assert edit.status_code == 200

    # Einladen darf nur der Eigentümer
    denied = await client.post(
        f"{API}/users/invite",
        json={"email": "x@example.com", "form_id": form["id"], "role_name": "VIEWER"},
        headers=editor_headers,
    )
    assert denied.status_code == 403


@pytest.mark.asyncio
async def test_owner_role_cannot_be_granted_by_invitation(client: AsyncClient):
    _, headers = await register(client, "owner@example.com")
    form = await create_form(client, headers)

    response = await client.post(
        f"{API}/users/invite",
        json={"email": "x@example.com", "form_id": form["id"], "role_name": "OWNER"},
        headers=headers,
    )
    assert response.status_code == 422


async def _category(client, headers, name="Feedback"):
    response = await client.post(
        f"{API}/template-categories", json={"name": name}, headers=headers
    )
    assert response.status_code == 201
    return response.json()["id"]


@pytest.mark.asyncio
async def test_template_categories(client: AsyncClient):
    _, headers = await register(client, "owner@example.com")
    category_id = await _category(client, headers)

    duplicate = await client.post(
        f"{API}/template-categories", json={"name": "Feedback"}, headers=headers
    )
    assert duplicate.status_code == 409

    renamed = await client.patch(
        f"{API}/template-categories/{category_id}",
        json={"name": "Surveys", "description": "All kinds"},
        headers=headers,
    )
    assert renamed.json()["name"] == "Surveys"

    listed = await client.get(f"{API}/template-categories")
    assert [c["name"] for c in listed.json()] == ["Surveys"]

    deleted = await client.delete(f"{API}/template-categories/{category_id}", headers=headers)
    assert deleted.status_code == 200
    assert (await client.get(f"{API}/template-categories")).json() == []


@pytest.mark.asyncio
async def test_template_lifecycle_and_form_from_template(client: AsyncClient):
    _, headers = await register(client, "owner@example.com")
    _, other_headers = await register(client, "other@example.com")
    category_id = await _category(client, headers)

    missing_category = await client.post(
        f"{API}/templates", json=sample_document(category_id=category_id + 100), headers=headers
    )
    assert missing_category.status_code == 422

    created = await client.post(
        f"{API}/templates", json=sample_document(category_id=category_id), headers=headers
    )
    assert created.status_code == 201
    template = created.json()["form"]
    assert template["is_template"] is True
    assert template["revision_id"] is None

    public = (await client.get(f"{API}/templates")).json()
    assert public[0]["category_name"] == "Feedback"
    assert public[0]["owner_email"] == "owner@example.com"
    assert len((await client.get(f"{API}/templates/mine", headers=headers)).json()) == 1
    assert (await client.get(f"{API}/templates/mine", headers=other_headers)).json() == []

    versions = await client.get(f"{API}/forms/{template['id']}/versions", headers=headers)
    assert versions.json() == []

    updated = await client.patch(
        f"{API}/templates/{template['id']}",
        json=sample_document(title="Template v2", category_id=category_id),
        headers=headers,
    )
    assert updated.json()["form_details"]["title"] == "Template v2"

    copied = await client.post(f"{API}/templates/{template['id']}/forms", headers=other_headers)
    assert copied.status_code == 201
    form = copied.json()["form"]
    assert form["is_template"] is False
    assert form["revision_id"] == "v1.0"
    assert form["id"] != template["id"]
    question = form["sections"][0]["items"][0]["questions"][0]
    assert [c["value"] for c in question["options"]["choices"]] == ["Red", "Blue"]
    assert question["grading"]["point_value"] == 2
    assert len(form["navigation_rules"]) == 1

    # Die Kopie gehört dem Aufrufer und ist sofort beantwortbar
    detail = await client.get(f"{API}/forms/{form['id']}", headers=other_headers)
    assert detail.status_code == 200

    denied = await client.delete(f"{API}/templates/{template['id']}", headers=other_headers)
    assert denied.status_code == 403
    deleted = await client.delete(f"{API}/templates/{template['id']}", headers=headers)
    assert deleted.status_code == 200
    assert (await client.get(f"{API}/templates/{template['id']}")).status_code == 404

    unknown = await client.post(f"{API}/templates/99999/forms", headers=headers)
    assert unknown.status_code == 404


@pytest.mark.asyncio
async def test_form_routes_do_not_version_templates(client: AsyncClient):
    _, headers = await register(client, "owner@example.com")
    category_id = await _category(client, headers)
    template = (
        await client.post(
            f"{API}/templates", json=sample_document(category_id=category_id), headers=headers
        )
    ).json()["form"]

    response = await client.patch(
        f"{API}/forms/{template['id']}", json=sample_document(), headers=headers
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_registered_image_can_be_used_in_options(client: AsyncClient):
    _, headers = await register(client, "owner@example.com")

    image = await client.post(
        f"{API}/images",
        json={"url": "https://cdn.example.com/blue.png", "alt_text": "blue", "alignment": "CENTER"},
        headers=headers,
    )
    assert image.status_code == 201
    image_id = image.json()["id"]

    document = sample_document()
    document["sections"][0]["items"][0]["question"]["options"]["choices"][1]["image_id"] = image_id
    form = await create_form(client, headers, document)

    choice = form["sections"][0]["items"][0]["questions"][0]["options"]["choices"][1]
    assert choice["image"]["url"] == "https://cdn.example.com/blue.png"
    assert choice["image"]["alignment"] == "CENTER"


@pytest.mark.asyncio
async def test_image_upload_rejects_non_images(client: AsyncClient):
    _, headers = await register(client, "owner@example.com")

    response = await client.post(
        f"{API}/images/upload",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        headers=headers,
    )
    assert response.status_code == 422

    uploaded = await client.post(
        f"{API}/images/upload",
        files={"file": ("pixel.png", b"\x89PNG\r\n\x1a\n", "image/png")},
        data={"alt_text": "pixel"},
        headers=headers,
    )
    assert uploaded.status_code == 201
    assert "/static_images/" in uploaded.json()["url"]
    assert uploaded.json()["alt_text"] == "pixel"
