import os
import re
import tempfile

os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), 'studyhive_health.db')}"
os.environ["ENV"] = "test"
os.environ["BCRYPT_ROUNDS"] = "10"
os.environ["EMAIL_API_KEY"] = ""
os.environ.pop("REDIS_URL", None)

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from studyhive.database import get_db
from studyhive.main import app
from studyhive.models import Base

PASSWORD = "Str0ng!Pass"


@pytest.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'studyhive.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def async_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def sent_emails(monkeypatch):
    """Captures outgoing mail instead of calling SendGrid."""
    outbox = []

    def fake_send_email(to, subject, body, is_html=False):
        outbox.append({"to": to, "subject": subject, "body": body})
        return True

    monkeypatch.setattr("studyhive.routers.auth.send_email", fake_send_email)
    return outbox


@pytest.fixture
def blob_store(monkeypatch):
    """In-memory stand-in for the Cloudinary SDK calls."""
    store = {"uploaded": {}, "destroyed": [], "fail_destroy": False}

    def fake_upload(file_content, folder=None, **kwargs):
        public_id = f"{folder}/blob_{len(store['uploaded']) + 1}"
        store["uploaded"][public_id] = file_content
        return {
            "secure_url": f"https://res.cloudinary.test/{public_id}",
            "public_id": public_id,
            "resource_type": "image",
            "bytes": len(file_content),
        }

    def fake_destroy(public_id, resource_type="image", **kwargs):
        if store["fail_destroy"]:
            raise ConnectionError("cloudinary unreachable")
        store["destroyed"].append(public_id)
        return {"result": "ok" if store["uploaded"].pop(public_id, None) is not None else "not found"}

    monkeypatch.setattr("cloudinary.uploader.upload", fake_upload)
    monkeypatch.setattr("cloudinary.uploader.destroy", fake_destroy)
    return store


@pytest.fixture
async def async_client(session_factory, sent_emails, blob_store):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def cookie_value(response, name):
    for header in response.headers.get_list("set-cookie"):
        key, _, rest = header.partition("=")
        if key.strip() == name:
            return rest.split(";", 1)[0].strip('"')
    return None


def token_from_link(body):
    return re.search(r'href="[^"]*/([0-9a-f]{40})"', body).group(1)


async def register(client, name, email, role="learner", password=PASSWORD):
    response = await client.post(
        "/api/v1/auth/register", json={"name": name, "email": email, "password": password, "role": role}
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]["user"]


async def login(client, email, password=PASSWORD):
    response = await client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    client.cookies.clear()
    return {
        "access": cookie_value(response, "accessToken"),
        "refresh": cookie_value(response, "refreshToken"),
        "user": response.json()["data"]["user"],
    }


def bearer(session):
    return {"Authorization": f"Bearer {session['access']}"}


async def sign_up(client, name, email, role="learner"):
    """Register and log in; returns the login session with auth headers."""
    await register(client, name, email, role)
    session = await login(client, email)
    session["headers"] = bearer(session)
    session["id"] = session["user"]["id"]
    return session


async def create_group(client, mentor, name="Algorithms Study Circle"):
    response = await client.post(
        "/api/v1/groups/", json={"name": name, "description": "Weekly problem sets"}, headers=mentor["headers"]
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def join_group(client, user, invite_code):
    return await client.post("/api/v1/groups/join", json={"inviteCode": invite_code}, headers=user["headers"])


@pytest.fixture
async def classroom(async_client):
    """A mentor's group with one joined learner and one outsider."""
    mentor = await sign_up(async_client, "Mentor Maya", "maya@example.com", role="mentor")
    learner = await sign_up(async_client, "Learner Leo", "leo@example.com")
    outsider = await sign_up(async_client, "Outsider Olu", "olu@example.com")
    group = await create_group(async_client, mentor)
    response = await join_group(async_client, learner, group["inviteCode"])
    assert response.status_code == 200, response.text
    return {"mentor": mentor, "learner": learner, "outsider": outsider, "group": group}
