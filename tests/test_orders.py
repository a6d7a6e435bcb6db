import json

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import json_response
from storefront import deps, orders
from storefront.app import app
from storefront.errors import NotFoundError, OwnershipError, ValidationError
from storefront.model import OrderUpdate
from storefront.supabase_client import SupabaseClient


class OrdersBackend:
    """Serves one table of orders plus the auth user endpoint."""

    def __init__(self, rows, users=None):
        self.rows = {row["id"]: dict(row) for row in rows}
        self.users = users or {}
        self.requests = []

    def __call__(self, request: httpx.Request):
        self.requests.append(request)
        if request.url.path == "/auth/v1/user":
            token = request.headers["authorization"][len("Bearer "):]
            if token not in self.users:
                return json_response(401, {"message": "invalid JWT"})
            return json_response(200, self.users[token])

        order_id = request.url.params["id"][len("eq."):]
        row = self.rows.get(order_id)
        if request.method == "GET":
            return json_response(200, [row] if row else [])
        if request.method == "PATCH":
            row.update(json.loads(request.content))
            return json_response(200, [row])
        return json_response(405, {"message": "unsupported"})


def make_db(backend):
    return SupabaseClient(base_url="http://db.test", api_key="anon", transport=httpx.MockTransport(backend))


ORDER = {"id": "o1", "user_id": "u1", "status": "pending", "total": 25.0}


async def test_get_order_reads_through_cache(fake_redis):
    backend = OrdersBackend([ORDER])
    db = make_db(backend)

    first = await orders.get_order(db, fake_redis, "u1", "o1")
    second = await orders.get_order(db, fake_redis, "u1", "o1")

    assert first == second == ORDER
    assert len(backend.requests) == 1
    assert backend.requests[0].url.params["select"] == "*, designs(name, image_url, prompt)"
    assert fake_redis.ttls["order:o1"] == 300


async def test_get_order_checks_ownership_on_cache_hit(fake_redis):
    db = make_db(OrdersBackend([ORDER]))
    await orders.get_order(db, fake_redis, "u1", "o1")

    with pytest.raises(OwnershipError):
        await orders.get_order(db, fake_redis, "intruder", "o1")


async def test_get_missing_order(fake_redis):
    with pytest.raises(NotFoundError):
        await orders.get_order(make_db(OrdersBackend([])), fake_redis, "u1", "nope")


async def test_update_order_invalidates_cached_entries(fake_redis):
    backend = OrdersBackend([ORDER])
    db = make_db(backend)
    await orders.get_order(db, fake_redis, "u1", "o1")
    fake_redis.store["orders:u1"] = "[]"

    updated = await orders.update_order(
        db, fake_redis, "u1", "o1", OrderUpdate(shipping_address={"city": "Lisbon"})
    )

    assert updated["shipping_address"] == {"city": "Lisbon"}
    assert updated["status"] == "pending"
    assert "updated_at" in updated
    assert "order:o1" not in fake_redis.store
    assert "orders:u1" not in fake_redis.store

    patch = json.loads(backend.requests[-1].content)
    assert set(patch) == {"shipping_address", "updated_at"}


async def test_update_order_rejects_other_users(fake_redis):
    backend = OrdersBackend([ORDER])
    with pytest.raises(OwnershipError):
        await orders.update_order(make_db(backend), fake_redis, "u2", "o1", OrderUpdate(status="shipped"))
    assert [r.method for r in backend.requests] == ["GET"]


async def test_cancel_only_pending_orders(fake_redis):
    backend = OrdersBackend([ORDER, {"id": "o2", "user_id": "u1", "status": "shipped"}])
    db = make_db(backend)

    cancelled = await orders.cancel_order(db, fake_redis, "u1", "o1")
    assert cancelled["status"] == "cancelled"

    with pytest.raises(ValidationError):
        await orders.cancel_order(db, fake_redis, "u1", "o2")
    assert backend.rows["o2"]["status"] == "shipped"


@pytest.fixture
def api(fake_redis):
    backend = OrdersBackend([ORDER], users={"tok-u1": {"id": "u1"}, "tok-u2": {"id": "u2"}})
    app.dependency_overrides[deps.get_db] = lambda: make_db(backend)
    app.dependency_overrides[deps.get_redis] = lambda: fake_redis
    with TestClient(app) as c:
        yield c, backend
    app.dependency_overrides.clear()


def test_order_routes_require_a_session(api):
    client, _ = api
    assert client.get("/api/protected/orders/o1").status_code == 401

    r = client.get("/api/protected/orders/o1", headers={"Authorization": "Bearer bogus"})
    assert r.status_code == 401
    assert r.json() == {"error": "Unauthorized"}


def test_owner_reads_order_with_bearer_token(api):
    client, backend = api
    r = client.get("/api/protected/orders/o1", headers={"Authorization": "Bearer tok-u1"})

    assert r.status_code == 200
    assert r.json() == {"order": ORDER}
    # row reads go out with the caller's token
    assert backend.requests[-1].headers["authorization"] == "Bearer tok-u1"


def test_session_cookie_is_accepted(api):
    client, _ = api
    client.cookies.set("sb-access-token", "tok-u1")
    r = client.get("/api/protected/orders/o1")
    assert r.status_code == 200


def test_other_users_get_403(api):
    client, _ = api
    r = client.delete("/api/protected/orders/o1", headers={"Authorization": "Bearer tok-u2"})
    assert r.status_code == 403


def test_owner_cancels_pending_order(api):
    client, backend = api
    r = client.delete("/api/protected/orders/o1", headers={"Authorization": "Bearer tok-u1"})

    assert r.status_code == 200
    assert r.json()["order"]["status"] == "cancelled"
    assert backend.rows["o1"]["status"] == "cancelled"
