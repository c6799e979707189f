"""HTTP surface tests (FastAPI app driven through httpx's ASGI transport)."""

from decimal import Decimal

import httpx
import pytest

from storefront import inventory, main
from storefront.config import get_settings

BUYER = {"X-User-Id": "buyer-1"}
STAFF = {"X-User-Id": "clerk-1", "X-User-Capabilities": "staff"}


@pytest.fixture
async def client(tmp_path, monkeypatch):
    monkeypatch.setenv("STORE_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")
    monkeypatch.setenv("STORE_CREATE_TABLES", "true")
    monkeypatch.delenv("STORE_REDIS_URL", raising=False)
    get_settings.cache_clear()

    async with main.lifespan(main.app):
        transport = httpx.ASGITransport(app=main.app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac

    get_settings.cache_clear()


@pytest.fixture
def seed():
    async def _seed(name: str, price: str, stock: int) -> str:
        async with main.async_session() as session, session.begin():
            return await inventory.create_item(session, name, Decimal(price), stock)

    return _seed


class TestPlaceOrderEndpoint:
    @pytest.mark.asyncio
    async def test_order_created(self, client, seed):
        item = await seed("Keyboard", "10.00", 5)

        resp = await client.post(
            "/commands/orders",
            json={"items": [{"item_id": item, "quantity": 3}]},
            headers=BUYER,
        )

        assert resp.status_code == 201
        body = resp.json()
        assert Decimal(body["total"]) == Decimal("30.00")
        assert body["buyer_id"] == "buyer-1"
        assert body["lines"][0]["quantity"] == 3

        product = (await client.get(f"/queries/products/{item}")).json()
        assert product["stock"] == 2

    @pytest.mark.asyncio
    async def test_insufficient_stock_is_conflict(self, client, seed):
        item = await seed("Keyboard", "10.00", 1)

        resp = await client.post(
            "/commands/orders",
            json={"items": [{"item_id": item, "quantity": 2}]},
            headers=BUYER,
        )

        assert resp.status_code == 409
        detail = resp.json()["detail"]
        assert detail["item_id"] == item
        assert (detail["requested"], detail["available"]) == (2, 1)

    @pytest.mark.asyncio
    async def test_unknown_item_is_not_found(self, client):
        resp = await client.post(
            "/commands/orders",
            json={"items": [{"item_id": "ghost", "quantity": 1}]},
            headers=BUYER,
        )
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_empty_cart_is_bad_request(self, client):
        resp = await client.post("/commands/orders", json={"items": []}, headers=BUYER)
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_zero_quantity_is_bad_request(self, client, seed):
        item = await seed("Keyboard", "10.00", 1)
        resp = await client.post(
            "/commands/orders",
            json={"items": [{"item_id": item, "quantity": 0}]},
            headers=BUYER,
        )
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_anonymous_caller_rejected(self, client):
        resp = await client.post("/commands/orders", json={"items": []})
        assert resp.status_code == 401


class TestQueryEndpoints:
    @pytest.mark.asyncio
    async def test_history_and_staff_views(self, client, seed):
        item = await seed("Mouse", "5.00", 10)
        await client.post(
            "/commands/orders",
            json={"items": [{"item_id": item, "quantity": 1}]},
            headers=BUYER,
        )
        await client.post(
            "/commands/orders",
            json={"items": [{"item_id": item, "quantity": 2}]},
            headers={"X-User-Id": "buyer-2"},
        )

        history = (await client.get("/queries/orders/history", headers=BUYER)).json()
        assert len(history) == 1
        assert history[0]["lines"][0]["name"] == "Mouse"

        assert (await client.get("/queries/orders", headers=BUYER)).status_code == 403
        everything = await client.get("/queries/orders", headers=STAFF)
        assert everything.status_code == 200
        assert len(everything.json()) == 2

        assert (await client.get("/queries/activity", headers=BUYER)).status_code == 403
        activity = (await client.get("/queries/activity", headers=STAFF)).json()
        assert {a["actor_id"] for a in activity} == {"buyer-1", "buyer-2"}

    @pytest.mark.asyncio
    async def test_products_and_health(self, client, seed):
        await seed("Mouse", "5.00", 10)

        products = (await client.get("/queries/products")).json()
        assert [p["name"] for p in products] == ["Mouse"]
        assert (await client.get("/queries/products/missing")).status_code == 404

        health = await client.get("/health")
        assert health.json() == {"status": "ok", "service": "store-service"}
