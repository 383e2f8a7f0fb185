"""HTTP tests for the wallet and admin endpoints."""

from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.api.admin import get_sweep_redis
from src.api.auth import get_current_user
from src.main import app
from src.models.escrow import EscrowStatus
from tests.conftest import BUYER_FUNDS, balance_of, load_escrow, make_user


class AuthAs:
    """Switches the authenticated user for subsequent requests."""

    def __init__(self):
        self.user = None

    def __call__(self, user):
        self.user = user


@pytest_asyncio.fixture
async def login():
    auth = AuthAs()
    app.dependency_overrides[get_current_user] = lambda: auth.user
    app.dependency_overrides[get_sweep_redis] = lambda: None
    yield auth
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(login):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_balance(client, login, buyer):
    login(buyer)

    response = await client.get("/api/wallet/balance")

    assert response.status_code == 200
    body = response.json()
    assert body["user_id"] == buyer.id
    assert Decimal(body["balance"]) == BUYER_FUNDS
    assert body["currency"] == "KES"


@pytest.mark.asyncio
async def test_order_payment_flow(client, login, buyer, seller, listing):
    login(buyer)

    response = await client.post("/api/wallet/orders", json={"book_listing_id": listing.id})
    assert response.status_code == 201
    order = response.json()["order"]
    assert Decimal(order["total_amount"]) == Decimal("1000.00")

    response = await client.post(f"/api/wallet/orders/{order['id']}/pay")
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Payment successful. Funds held in escrow for 7 days."
    assert body["order"]["status"] == "paid"

    response = await client.get("/api/wallet/escrow")
    escrows = response.json()
    assert [e["id"] for e in escrows] == [body["order"]["escrow_id"]]
    assert escrows[0]["status"] == "active"

    response = await client.get("/api/wallet/transactions")
    directions = [entry["direction"] for entry in response.json()]
    assert directions == ["debit", "credit"]

    response = await client.post(f"/api/wallet/orders/{order['id']}/pay")
    assert response.status_code == 400
    assert response.json()["message"] == "Order already processed"


@pytest.mark.asyncio
async def test_insufficient_balance_is_a_failure_result(client, login, seller, listing):
    poor = await make_user("user_broke", funds=Decimal("10.00"))
    login(poor)

    response = await client.post("/api/wallet/orders", json={"book_listing_id": listing.id})
    order_id = response.json()["order"]["id"]
    response = await client.post(f"/api/wallet/orders/{order_id}/pay")

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"].startswith("Insufficient wallet balance")
    assert await balance_of(poor.id) == Decimal("10.00")


@pytest.mark.asyncio
async def test_unknown_order_is_not_found(client, login, buyer):
    login(buyer)

    response = await client.get("/api/wallet/orders/999")

    assert response.status_code == 404
    assert response.json()["message"] == "Order not found"


@pytest.mark.asyncio
async def test_dispute_by_party_and_outsider(client, login, buyer, paid_order):
    outsider = await make_user("user_third_party")
    payload = {"escrow_id": paid_order.escrow_id, "reason": "Cover torn"}

    login(outsider)
    response = await client.post("/api/wallet/escrow/dispute", json=payload)
    assert response.status_code == 403

    login(buyer)
    response = await client.post("/api/wallet/escrow/dispute", json=payload)
    assert response.status_code == 200
    assert response.json()["escrow"]["status"] == "disputed"


@pytest.mark.asyncio
async def test_order_status_update(client, login, seller, paid_order):
    login(seller)

    response = await client.put(
        f"/api/wallet/orders/{paid_order.id}/status",
        json={"status": "confirmed", "tracking_number": "TRK-9"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Order status updated to confirmed"
    assert body["order"]["tracking_number"] == "TRK-9"


@pytest.mark.asyncio
async def test_admin_endpoints_require_admin(client, login, buyer, paid_order):
    login(buyer)

    response = await client.post(f"/api/admin/escrows/{paid_order.escrow_id}/release")

    assert response.status_code == 403
    assert (await load_escrow(paid_order.escrow_id)).status == EscrowStatus.ACTIVE


@pytest.mark.asyncio
async def test_admin_resolves_dispute_by_release(client, login, admin, buyer, seller, paid_order):
    login(buyer)
    await client.post(
        "/api/wallet/escrow/dispute",
        json={"escrow_id": paid_order.escrow_id, "reason": "Late"},
    )

    login(admin)
    response = await client.post(f"/api/admin/escrows/{paid_order.escrow_id}/release")

    assert response.status_code == 200
    escrow = response.json()["escrow"]
    assert escrow["status"] == "released"
    assert escrow["dispute_resolved_at"] is not None
    assert await balance_of(seller.id) == Decimal("950.00")

    response = await client.post(
        f"/api/admin/escrows/{paid_order.escrow_id}/refund", json={"reason": "Too late"}
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Escrow already released"


@pytest.mark.asyncio
async def test_admin_topup_and_reconcile(client, login, admin, seller):
    login(admin)

    response = await client.post(
        f"/api/admin/wallets/{seller.id}/topup", json={"amount": "75.50", "remark": "Promo"}
    )
    assert response.status_code == 200
    assert Decimal(response.json()["balance"]) == Decimal("75.50")

    response = await client.get(f"/api/admin/wallets/{seller.id}/reconcile")
    assert response.status_code == 200
    report = response.json()
    assert report["consistent"] is True
    assert report["entry_count"] == 1


@pytest.mark.asyncio
async def test_admin_release_sweep(client, login, admin, paid_order):
    login(admin)

    response = await client.post("/api/admin/escrows/release-sweep")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["released"] == 0
    assert body["skipped"] is False


@pytest.mark.asyncio
async def test_admin_recover_payments(client, login, admin):
    login(admin)

    response = await client.post("/api/admin/payments/recover")

    assert response.status_code == 200
    assert response.json()["message"] == "Recovered 0 stalled payments"


@pytest.mark.asyncio
async def test_profile_includes_wallet_balance(client, login, buyer):
    login(buyer)

    response = await client.get("/api/auth/me")

    assert response.status_code == 200
    body = response.json()
    assert body["clerk_id"] == "user_buyer"
    assert body["role"] == "user"
    assert Decimal(body["wallet_balance"]) == BUYER_FUNDS
    assert body["created_at"].endswith("Z")
