import pytest
from httpx import AsyncClient
from starlette.requests import Request

from studyhive.dependencies import client_ip
from studyhive.settings import settings
from studyhive.utils import check_and_increment_rate_limit, close_redis_clients, get_redis_client

from .conftest import PASSWORD, register, sign_up


class FakeRedis:
    def __init__(self):
        self.counters = {}
        self.expiries = {}

    async def incr(self, key):
        self.counters[key] = self.counters.get(key, 0) + 1
        return self.counters[key]

    async def expire(self, key, seconds):
        self.expiries[key] = seconds


@pytest.fixture
def fake_redis(monkeypatch):
    redis = FakeRedis()
    monkeypatch.setattr("studyhive.utils.get_redis_client", lambda redis_url=None: redis)
    monkeypatch.setattr(settings, "redis_url", "redis://rate-limit.test:6379/0")
    return redis


@pytest.mark.asyncio
async def test_fixed_window_counter(fake_redis):
    results = [await check_and_increment_rate_limit("ip:1.2.3.4", 3, 60, settings.redis_url) for _ in range(5)]
    assert results == [True, True, True, False, False]
    assert fake_redis.expiries == {"rate_limit:ip:1.2.3.4": 60}


@pytest.mark.asyncio
async def test_login_attempts_are_limited_per_ip(async_client: AsyncClient, fake_redis):
    await register(async_client, "Limited User", "limited@example.com")
    statuses = []
    for _ in range(settings.auth_rate_limit):
        response = await async_client.post("/api/v1/auth/login", json={"email": "limited@example.com", "password": "Wr0ng!Pass"})
        statuses.append(response.status_code)
    # register already used one slot of the auth window
    assert statuses[-1] == 429
    assert set(statuses[:-1]) == {401}

    blocked = await async_client.post("/api/v1/auth/login", json={"email": "limited@example.com", "password": PASSWORD})
    assert blocked.status_code == 429
    assert blocked.json()["message"] == "Too many attempts, please try again after 5 minutes"


@pytest.mark.asyncio
async def test_user_limit_is_per_account(async_client: AsyncClient, fake_redis, monkeypatch):
    monkeypatch.setattr(settings, "user_rate_limit", 2)
    monkeypatch.setattr(settings, "auth_rate_limit", 50)
    first = await sign_up(async_client, "Busy User", "busy@example.com")
    second = await sign_up(async_client, "Calm User", "calm@example.com")

    codes = [(await async_client.get("/api/v1/groups/", headers=first["headers"])).status_code for _ in range(3)]
    assert codes == [200, 200, 429]

    other = await async_client.get("/api/v1/groups/", headers=second["headers"])
    assert other.status_code == 200


@pytest.mark.asyncio
async def test_no_redis_means_no_limit(async_client: AsyncClient, monkeypatch):
    monkeypatch.setattr(settings, "redis_url", None)
    monkeypatch.setattr(settings, "auth_rate_limit", 1)
    await register(async_client, "Unlimited User", "unlimited@example.com")
    for _ in range(3):
        response = await async_client.post("/api/v1/auth/login", json={"email": "unlimited@example.com", "password": PASSWORD})
        assert response.status_code == 200
        async_client.cookies.clear()


@pytest.mark.asyncio
async def test_forwarded_header_does_not_reset_ip_window(async_client: AsyncClient, fake_redis):
    await register(async_client, "Spoof User", "spoof@example.com")
    statuses = []
    for i in range(settings.auth_rate_limit + 2):
        response = await async_client.post(
            "/api/v1/auth/login",
            json={"email": "spoof@example.com", "password": "Wr0ng!Pass"},
            headers={"X-Forwarded-For": f"10.0.0.{i}"},
        )
        statuses.append(response.status_code)
    assert statuses[-2:] == [429, 429]
    assert statuses.count(401) == settings.auth_rate_limit - 1
    assert set(fake_redis.counters) == {"rate_limit:global:127.0.0.1", "rate_limit:auth:127.0.0.1"}


def request_from(peer, forwarded=None):
    headers = [(b"x-forwarded-for", forwarded.encode())] if forwarded else []
    return Request({"type": "http", "headers": headers, "client": (peer, 40000)})


def test_client_ip_ignores_forwarded_header_from_untrusted_peer(monkeypatch):
    monkeypatch.setattr(settings, "trusted_proxies", [])
    assert client_ip(request_from("203.0.113.9", "1.1.1.1")) == "203.0.113.9"


def test_client_ip_behind_trusted_proxy(monkeypatch):
    monkeypatch.setattr(settings, "trusted_proxies", ["10.1.0.1", "10.1.0.2"])
    # the leftmost entry is whatever the client sent; the proxies append the real hops
    assert client_ip(request_from("10.1.0.1", "6.6.6.6, 198.51.100.7, 10.1.0.2")) == "198.51.100.7"
    assert client_ip(request_from("10.1.0.1")) == "10.1.0.1"


@pytest.mark.asyncio
async def test_redis_client_is_shared_and_closed():
    url = "redis://shared-client.test:6379/0"
    first = get_redis_client(url)
    assert get_redis_client(url) is first
    assert get_redis_client("redis://shared-client.test:6379/1") is not first

    await close_redis_clients()
    assert get_redis_client(url) is not first
    await close_redis_clients()
