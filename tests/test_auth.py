import pytest
from httpx import AsyncClient
from sqlalchemy import select

from studyhive.models import User

from .conftest import PASSWORD, cookie_value, login, register, sign_up, token_from_link


@pytest.mark.asyncio
async def test_register_success(async_client: AsyncClient, sent_emails):
    user = await register(async_client, "Test User", "Test.User@Example.com")
    assert user["email"] == "test.user@example.com"
    assert user["role"] == "learner"
    assert user["isEmailVerified"] is False
    assert "passwordHash" not in user and "refreshTokenHash" not in user

    assert len(sent_emails) == 1
    assert sent_emails[0]["to"] == "test.user@example.com"
    assert "/api/v1/auth/verify-email/" in sent_emails[0]["body"]


@pytest.mark.asyncio
async def test_register_duplicate_email(async_client: AsyncClient):
    await register(async_client, "Test User", "dup@example.com")
    response = await async_client.post(
        "/api/v1/auth/register", json={"name": "Other User", "email": "DUP@example.com", "password": PASSWORD}
    )
    assert response.status_code == 409
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_register_rejects_weak_password(async_client: AsyncClient):
    response = await async_client.post(
        "/api/v1/auth/register", json={"name": "Weak User", "email": "weak@example.com", "password": "password"}
    )
    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation failed"
    assert body["errors"][0]["field"] == "password"


@pytest.mark.asyncio
async def test_register_survives_mail_outage(async_client: AsyncClient, monkeypatch):
    def broken_send_email(*args, **kwargs):
        return False

    monkeypatch.setattr("studyhive.routers.auth.send_email", broken_send_email)
    await register(async_client, "Offline Mail", "offline@example.com")
    await login(async_client, "offline@example.com")


@pytest.mark.asyncio
async def test_verify_email_consumes_token(async_client: AsyncClient, sent_emails, async_session):
    await register(async_client, "Verify Me", "verify@example.com")
    token = token_from_link(sent_emails[-1]["body"])

    response = await async_client.get(f"/api/v1/auth/verify-email/{token}")
    assert response.status_code == 200
    assert response.json()["data"] == {"isEmailVerified": True}

    user = (await async_session.execute(select(User).where(User.email == "verify@example.com"))).scalars().one()
    assert user.is_email_verified is True
    assert user.email_verification_token is None

    again = await async_client.get(f"/api/v1/auth/verify-email/{token}")
    assert again.status_code == 400
    assert again.json()["message"] == "Token is invalid or expired"


@pytest.mark.asyncio
async def test_login_sets_http_only_cookies(async_client: AsyncClient):
    await register(async_client, "Cookie User", "cookie@example.com")
    response = await async_client.post("/api/v1/auth/login", json={"email": "cookie@example.com", "password": PASSWORD})
    assert response.status_code == 200
    assert response.json()["data"]["user"]["email"] == "cookie@example.com"

    headers = response.headers.get_list("set-cookie")
    access_header = next(h for h in headers if h.startswith("accessToken="))
    assert "HttpOnly" in access_header
    assert "SameSite=strict" in access_header
    assert cookie_value(response, "refreshToken")


@pytest.mark.asyncio
async def test_login_failures_look_identical(async_client: AsyncClient):
    await register(async_client, "Known User", "known@example.com")
    wrong_password = await async_client.post("/api/v1/auth/login", json={"email": "known@example.com", "password": "Wr0ng!Pass"})
    unknown_email = await async_client.post("/api/v1/auth/login", json={"email": "nobody@example.com", "password": PASSWORD})
    assert wrong_password.status_code == unknown_email.status_code == 401
    assert wrong_password.json() == unknown_email.json()


@pytest.mark.asyncio
async def test_me_requires_authentication(async_client: AsyncClient):
    response = await async_client.get("/api/v1/auth/me")
    assert response.status_code == 401

    session = await sign_up(async_client, "Me Myself", "me@example.com", role="mentor")
    response = await async_client.get("/api/v1/auth/me", headers=session["headers"])
    assert response.status_code == 200
    assert response.json()["data"]["user"]["role"] == "mentor"


@pytest.mark.asyncio
async def test_me_accepts_access_cookie(async_client: AsyncClient):
    session = await sign_up(async_client, "Cookie Reader", "cookiereader@example.com")
    response = await async_client.get("/api/v1/auth/me", headers={"Cookie": f"accessToken={session['access']}"})
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_refresh_rotation_over_http(async_client: AsyncClient):
    session = await sign_up(async_client, "Rotating User", "rotate@example.com")
    rt1 = session["refresh"]

    first = await async_client.post("/api/v1/auth/refresh-token", json={"refreshToken": rt1})
    assert first.status_code == 200
    rt2 = cookie_value(first, "refreshToken")
    async_client.cookies.clear()

    replay = await async_client.post("/api/v1/auth/refresh-token", json={"refreshToken": rt1})
    assert replay.status_code == 401
    assert replay.json()["message"] == "Refresh token expired or reused"

    second = await async_client.post("/api/v1/auth/refresh-token", json={"refreshToken": rt2})
    assert second.status_code == 200
    async_client.cookies.clear()


@pytest.mark.asyncio
async def test_refresh_without_token(async_client: AsyncClient):
    response = await async_client.post("/api/v1/auth/refresh-token")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_logout_clears_refresh_token(async_client: AsyncClient):
    session = await sign_up(async_client, "Leaving User", "leaving@example.com")
    response = await async_client.post("/api/v1/auth/logout", headers=session["headers"])
    assert response.status_code == 200
    async_client.cookies.clear()

    response = await async_client.post("/api/v1/auth/refresh-token", json={"refreshToken": session["refresh"]})
    assert response.status_code == 401


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["/api/v1/auth/resend-email-verification", "/api/v1/auth/forgot-password"])
async def test_generic_answer_for_unknown_email(async_client: AsyncClient, sent_emails, path):
    await register(async_client, "Existing User", "existing@example.com")
    sent_emails.clear()

    known = await async_client.post(path, json={"email": "existing@example.com"})
    unknown = await async_client.post(path, json={"email": "ghost@example.com"})
    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
    assert [mail["to"] for mail in sent_emails] == ["existing@example.com"]


@pytest.mark.asyncio
async def test_forgot_and_reset_password(async_client: AsyncClient, sent_emails):
    session = await sign_up(async_client, "Forgetful User", "forgetful@example.com")
    await async_client.post("/api/v1/auth/forgot-password", json={"email": "forgetful@example.com"})
    token = token_from_link(sent_emails[-1]["body"])

    new_password = "N3w!Password"
    response = await async_client.post(f"/api/v1/auth/reset-password/{token}", json={"newPassword": new_password})
    assert response.status_code == 200

    reused = await async_client.post(f"/api/v1/auth/reset-password/{token}", json={"newPassword": new_password})
    assert reused.status_code == 400

    # the reset ended every session issued before it
    refresh = await async_client.post("/api/v1/auth/refresh-token", json={"refreshToken": session["refresh"]})
    assert refresh.status_code == 401
    await login(async_client, "forgetful@example.com", new_password)


@pytest.mark.asyncio
async def test_change_password(async_client: AsyncClient):
    session = await sign_up(async_client, "Changing User", "changing@example.com")

    wrong = await async_client.post(
        "/api/v1/auth/change-password",
        json={"oldPassword": "Wr0ng!Pass", "newPassword": "N3w!Password"},
        headers=session["headers"],
    )
    assert wrong.status_code == 400

    response = await async_client.post(
        "/api/v1/auth/change-password",
        json={"oldPassword": PASSWORD, "newPassword": "N3w!Password"},
        headers=session["headers"],
    )
    assert response.status_code == 200
    await login(async_client, "changing@example.com", "N3w!Password")
