import pytest
from httpx import AsyncClient
from sqlalchemy import select

from studyhive.models import Resource

from .conftest import sign_up


async def upload(client, user, group_id, files=None, **fields):
    return await client.post(f"/api/v1/resources/{group_id}", data=fields, files=files, headers=user["headers"])


def pdf(name="notes.pdf"):
    return {"file": (name, b"%PDF-1.4 lecture notes", "application/pdf")}


@pytest.mark.asyncio
async def test_upload_each_resource_type(async_client: AsyncClient, classroom, blob_store):
    mentor = classroom["mentor"]
    group_id = classroom["group"]["groupId"]

    file_resource = await upload(async_client, mentor, group_id, files=pdf(), title="Lecture notes", type="file")
    assert file_resource.status_code == 201
    created = file_resource.json()["data"]
    assert created["type"] == "file"
    assert created["uploadedBy"] == mentor["id"]
    assert len(blob_store["uploaded"]) == 1

    link = await upload(async_client, mentor, group_id, title="Visualizer", type="link", linkUrl="https://visualgo.net")
    assert link.status_code == 201

    note = await upload(async_client, mentor, group_id, title="Reminder", type="note", description="Quiz on Friday")
    assert note.status_code == 201


@pytest.mark.asyncio
@pytest.mark.parametrize("fields", [
    {"title": "No file", "type": "file"},
    {"title": "Bad link", "type": "link", "linkUrl": "ftp://example.com/file"},
    {"title": "Empty note", "type": "note"},
    {"title": "", "type": "note", "description": "untitled"},
    {"title": "Unknown", "type": "video", "description": "nope"},
])
async def test_upload_validation(async_client: AsyncClient, classroom, fields):
    response = await upload(async_client, classroom["mentor"], classroom["group"]["groupId"], **fields)
    assert response.status_code == 400
    assert response.json()["errors"]


@pytest.mark.asyncio
async def test_upload_is_mentor_only(async_client: AsyncClient, classroom):
    group_id = classroom["group"]["groupId"]
    learner = await upload(async_client, classroom["learner"], group_id, title="Mine", type="note", description="x")
    assert learner.status_code == 403

    other_mentor = await sign_up(async_client, "Other Mentor", "other@example.com", role="mentor")
    foreign = await upload(async_client, other_mentor, group_id, title="Mine", type="note", description="x")
    assert foreign.status_code == 403

    missing = await upload(async_client, classroom["mentor"], 9999, title="Mine", type="note", description="x")
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_duplicate_title_discards_new_blob(async_client: AsyncClient, classroom, blob_store):
    mentor = classroom["mentor"]
    group_id = classroom["group"]["groupId"]
    await upload(async_client, mentor, group_id, files=pdf(), title="Syllabus", type="file")

    response = await upload(async_client, mentor, group_id, files=pdf("other.pdf"), title="Syllabus", type="file")
    assert response.status_code == 409
    assert len(blob_store["uploaded"]) == 1
    assert len(blob_store["destroyed"]) == 1


@pytest.mark.asyncio
async def test_list_resources_sorting_and_filter(async_client: AsyncClient, classroom):
    mentor = classroom["mentor"]
    group_id = classroom["group"]["groupId"]
    for title in ("Beta", "Alpha", "Gamma"):
        await upload(async_client, mentor, group_id, title=title, type="note", description=f"{title} notes")
    await upload(async_client, mentor, group_id, title="Delta", type="link", linkUrl="https://example.com/delta")

    learner = classroom["learner"]["headers"]
    recent = await async_client.get(f"/api/v1/resources/{group_id}", headers=learner)
    assert [r["title"] for r in recent.json()["data"]] == ["Delta", "Gamma", "Alpha", "Beta"]

    oldest = await async_client.get(f"/api/v1/resources/{group_id}", params={"sortBy": "oldest"}, headers=learner)
    assert [r["title"] for r in oldest.json()["data"]] == ["Beta", "Alpha", "Gamma", "Delta"]

    by_title = await async_client.get(f"/api/v1/resources/{group_id}", params={"sortBy": "title", "type": "note"}, headers=learner)
    assert [r["title"] for r in by_title.json()["data"]] == ["Alpha", "Beta", "Gamma"]
    assert by_title.json()["data"][0]["uploadedBy"]["id"] == mentor["id"]

    outsider = await async_client.get(f"/api/v1/resources/{group_id}", headers=classroom["outsider"]["headers"])
    assert outsider.status_code == 403

    bad_sort = await async_client.get(f"/api/v1/resources/{group_id}", params={"sortBy": "random"}, headers=learner)
    assert bad_sort.status_code == 400


@pytest.mark.asyncio
async def test_delete_resource(async_client: AsyncClient, classroom, blob_store):
    mentor = classroom["mentor"]
    group_id = classroom["group"]["groupId"]
    resource_id = (await upload(async_client, mentor, group_id, files=pdf(), title="Slides", type="file")).json()["data"]["resourceId"]

    learner = await async_client.delete(f"/api/v1/resources/{resource_id}", headers=classroom["learner"]["headers"])
    assert learner.status_code == 403

    response = await async_client.delete(f"/api/v1/resources/{resource_id}", headers=mentor["headers"])
    assert response.status_code == 200
    assert blob_store["uploaded"] == {}

    again = await async_client.delete(f"/api/v1/resources/{resource_id}", headers=mentor["headers"])
    assert again.status_code == 404


@pytest.mark.asyncio
async def test_blob_store_failure_keeps_record(async_client: AsyncClient, classroom, blob_store, async_session):
    mentor = classroom["mentor"]
    group_id = classroom["group"]["groupId"]
    resource_id = (await upload(async_client, mentor, group_id, files=pdf(), title="Slides", type="file")).json()["data"]["resourceId"]

    blob_store["fail_destroy"] = True
    response = await async_client.delete(f"/api/v1/resources/{resource_id}", headers=mentor["headers"])
    assert response.status_code == 502
    assert (await async_session.execute(select(Resource).where(Resource.id == resource_id))).scalars().first() is not None

    blob_store["fail_destroy"] = False
    retry = await async_client.delete(f"/api/v1/resources/{resource_id}", headers=mentor["headers"])
    assert retry.status_code == 200


@pytest.mark.asyncio
async def test_admin_can_delete_without_membership(async_client: AsyncClient, classroom):
    mentor = classroom["mentor"]
    resource_id = (await upload(
        async_client, mentor, classroom["group"]["groupId"], title="Old note", type="note", description="stale"
    )).json()["data"]["resourceId"]

    admin = await sign_up(async_client, "Admin Ada", "ada@example.com", role="admin")
    response = await async_client.delete(f"/api/v1/resources/{resource_id}", headers=admin["headers"])
    assert response.status_code == 200
