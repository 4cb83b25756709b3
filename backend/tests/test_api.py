"""
HTTP-level tests: routing, bearer auth, the error envelope and admin
guards, with the database and quote provider swapped for test doubles.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient

from microinvest.api.deps import get_fees, get_quotes
from microinvest.api.main import app
from microinvest.core.database import get_db
from microinvest.core.security import create_access_token
from microinvest.services.account_service import AccountService


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
async def client(session_factory, quotes, fees):
    async def override_get_db():
        async with session_factory() as db:
            try:
                yield db
            except Exception:
                await db.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_quotes] = lambda: quotes
    app.dependency_overrides[get_fees] = lambda: fees
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def auth(username):
    return {"Authorization": f"Bearer {create_access_token(username)}"}


async def register(client, username):
    response = await client.post(
        "/api/v1/users/register",
        json={"username": username, "email": f"{username}@example.com"},
    )
    assert response.status_code == 201, response.text
    return response.json()


async def default_portfolio_id(client, username):
    response = await client.get("/api/v1/portfolios", headers=auth(username))
    assert response.status_code == 200
    return response.json()[0]["id"]


# ============================================================
# TESTS
# ============================================================

class TestService:

    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestAccounts:

    async def test_register_and_me(self, client):
        body = await register(client, "alice")
        assert body["username"] == "alice"
        assert body["status"] == "ACTIVE"
        assert Decimal(body["virtual_balance"]) == Decimal("10000")

        me = await client.get("/api/v1/users/me", headers=auth("alice"))
        assert me.status_code == 200
        assert me.json()["id"] == body["id"]

    async def test_duplicate_registration_conflict(self, client):
        await register(client, "alice")
        response = await client.post(
            "/api/v1/users/register",
            json={"username": "alice", "email": "second@example.com"},
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ALREADY_EXISTS"

    async def test_missing_token(self, client):
        response = await client.get("/api/v1/users/me")
        assert response.status_code == 401
        error = response.json()["error"]
        assert error["code"] == "AUTHENTICATION_FAILED"
        assert set(error) == {"code", "message", "details"}

    async def test_bad_token(self, client):
        response = await client.get("/api/v1/users/me", headers={"Authorization": "Bearer junk"})
        assert response.status_code == 401


class TestTrading:

    async def test_buy_then_inspect(self, client):
        await register(client, "alice")
        portfolio_id = await default_portfolio_id(client, "alice")

        response = await client.post(
            "/api/v1/orders",
            json={"portfolio_id": portfolio_id, "symbol": "sec1", "side": "BUY", "quantity": "5"},
            headers=auth("alice"),
        )
        assert response.status_code == 201, response.text
        order = response.json()
        assert order["status"] == "FILLED"
        assert order["symbol"] == "SEC1"

        position = await client.get(f"/api/v1/portfolios/{portfolio_id}/positions/SEC1", headers=auth("alice"))
        assert position.status_code == 200
        assert Decimal(position.json()["quantity"]) == Decimal("5")

        portfolio = await client.get(f"/api/v1/portfolios/{portfolio_id}", headers=auth("alice"))
        assert Decimal(portfolio.json()["cash_balance"]) == Decimal("9500")

        txs = await client.get("/api/v1/transactions", params={"portfolio_id": portfolio_id},
                               headers=auth("alice"))
        assert sorted(t["transaction_type"] for t in txs.json()) == ["BUY", "DEPOSIT"]

        me = await client.get("/api/v1/users/me", headers=auth("alice"))
        assert Decimal(me.json()["virtual_balance"]) == Decimal("9500")

    async def test_limit_order_with_utc_expiry(self, client):
        await register(client, "alice")
        portfolio_id = await default_portfolio_id(client, "alice")
        expiry = (datetime.now(timezone.utc) + timedelta(days=1)).strftime("%Y-%m-%dT%H:%M:%SZ")

        response = await client.post(
            "/api/v1/orders",
            json={"portfolio_id": portfolio_id, "symbol": "SEC1", "side": "BUY", "quantity": "1",
                  "order_type": "LIMIT", "limit_price": "90", "expiry_date": expiry},
            headers=auth("alice"),
        )
        assert response.status_code == 201, response.text
        assert response.json()["status"] == "PENDING"

    async def test_portfolio_day_changes(self, client, quotes):
        await register(client, "alice")
        portfolio_id = await default_portfolio_id(client, "alice")
        quotes.set_price("SEC1", "104")
        await client.post(
            "/api/v1/orders",
            json={"portfolio_id": portfolio_id, "symbol": "SEC1", "side": "BUY", "quantity": "2"},
            headers=auth("alice"),
        )

        response = await client.post(f"/api/v1/portfolios/{portfolio_id}/day-changes", headers=auth("alice"))
        assert response.status_code == 200, response.text
        assert Decimal(response.json()[0]["day_change"]) == Decimal("8.00")

    async def test_insufficient_funds_is_bad_request(self, client):
        await register(client, "alice")
        portfolio_id = await default_portfolio_id(client, "alice")
        response = await client.post(
            "/api/v1/orders",
            json={"portfolio_id": portfolio_id, "symbol": "MSFT", "side": "BUY", "quantity": "100"},
            headers=auth("alice"),
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INSUFFICIENT_FUNDS"

    async def test_quote_failure_returns_failed_order(self, client):
        await register(client, "alice")
        portfolio_id = await default_portfolio_id(client, "alice")
        response = await client.post(
            "/api/v1/orders",
            json={"portfolio_id": portfolio_id, "symbol": "NOPE", "side": "BUY", "quantity": "1"},
            headers=auth("alice"),
        )
        assert response.status_code == 201
        assert response.json()["status"] == "FAILED"

    async def test_cancel_filled_order_conflicts(self, client):
        await register(client, "alice")
        portfolio_id = await default_portfolio_id(client, "alice")
        order = (await client.post(
            "/api/v1/orders",
            json={"portfolio_id": portfolio_id, "symbol": "SEC1", "side": "BUY", "quantity": "1"},
            headers=auth("alice"),
        )).json()

        response = await client.post(f"/api/v1/orders/{order['id']}/cancel", json={}, headers=auth("alice"))
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INVALID_STATE_TRANSITION"

    async def test_foreign_portfolio_forbidden(self, client):
        await register(client, "alice")
        await register(client, "bob")
        portfolio_id = await default_portfolio_id(client, "alice")

        response = await client.get(f"/api/v1/portfolios/{portfolio_id}", headers=auth("bob"))
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "PERMISSION_DENIED"

    async def test_unknown_order_not_found(self, client):
        await register(client, "alice")
        response = await client.get("/api/v1/orders/9999", headers=auth("alice"))
        assert response.status_code == 404
        assert response.json()["error"]["details"]["entity"] == "Order"


class TestAdmin:

    async def test_regular_user_forbidden(self, client):
        await register(client, "alice")
        response = await client.get("/api/v1/admin/accounts", headers=auth("alice"))
        assert response.status_code == 403

    async def test_admin_can_suspend(self, client, session_factory):
        await register(client, "alice")
        async with session_factory() as db:
            await AccountService(db).register("root_admin", "root@example.com", is_admin=True)

        response = await client.post("/api/v1/admin/accounts/alice/suspend", headers=auth("root_admin"))
        assert response.status_code == 200
        assert response.json()["status"] == "SUSPENDED"

        portfolio_id = await default_portfolio_id(client, "alice")
        order = await client.post(
            "/api/v1/orders",
            json={"portfolio_id": portfolio_id, "symbol": "SEC1", "side": "BUY", "quantity": "1"},
            headers=auth("alice"),
        )
        assert order.status_code == 403

    async def test_settlement_sweep(self, client, session_factory):
        async with session_factory() as db:
            await AccountService(db).register("root_admin", "root@example.com", is_admin=True)
        response = await client.post("/api/v1/admin/sweeps/settlement", headers=auth("root_admin"))
        assert response.status_code == 200
        assert response.json() == {"due": 0, "settled": 0, "failed": 0}
