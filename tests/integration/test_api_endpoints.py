"""API endpoint integration tests.

Tests the FastAPI endpoints for charge, refund and callback operations.
"""

import pytest
from httpx import AsyncClient

from charge_engine.trade.channels.signing import sign_params

from ..conftest import SECRET
from .conftest import APP_HEADERS

pytestmark = pytest.mark.asyncio

CHARGE = {
    "order_no": "O1",
    "channel": "alipay_wap",
    "amount": 1000,
    "subject": "Order O1",
    "extra": {"return_url": "https://shop.example/return"},
}


async def create_charge(client: AsyncClient, **overrides) -> dict:
    response = await client.post("/api/v1/charges", headers=APP_HEADERS, json={**CHARGE, **overrides})
    assert response.status_code == 201, response.text
    return response.json()


async def pay(client: AsyncClient, sandbox, charge_no: str) -> None:
    sandbox.simulate_payment(charge_no)
    response = await client.get(f"/api/v1/charges/{charge_no}", headers=APP_HEADERS)
    assert response.json()["status"] == "success"


class TestHealthEndpoints:
    """Test health check endpoints."""

    async def test_health_check(self, client: AsyncClient):
        """Health endpoint should return 200 without a database."""
        response = await client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "not_configured"
        assert "timestamp" in data

    async def test_readiness_check(self, client: AsyncClient):
        """Readiness endpoint should return 200."""
        response = await client.get("/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    async def test_liveness_check(self, client: AsyncClient):
        """Liveness endpoint should return 200."""
        response = await client.get("/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"


class TestCharges:
    """Test charge endpoints."""

    async def test_create_charge(self, client: AsyncClient):
        """POST /api/v1/charges should create a waiting charge."""
        data = await create_charge(client)

        assert data["status"] == "wait_pay"
        assert data["app_id"] == 1
        assert data["charge_no"].startswith("ch_")
        assert data["credential"]["pay_url"]
        assert data["time_expire"] == 30

    async def test_create_is_idempotent(self, client: AsyncClient):
        """Repeating the create returns the same charge."""
        first = await create_charge(client)
        second = await create_charge(client)

        assert second["charge_no"] == first["charge_no"]

    async def test_create_requires_app_id(self, client: AsyncClient):
        """Creating a charge without X-App-ID should fail."""
        response = await client.post("/api/v1/charges", json=CHARGE)
        assert response.status_code == 400

    @pytest.mark.parametrize("header", ["abc", "0", "-3"])
    async def test_create_rejects_bad_app_id(self, client: AsyncClient, header):
        """X-App-ID must be a positive integer."""
        response = await client.post("/api/v1/charges", headers={"X-App-ID": header}, json=CHARGE)
        assert response.status_code == 400

    async def test_create_validates_payload(self, client: AsyncClient):
        """Schema violations are rejected with 422."""
        response = await client.post(
            "/api/v1/charges", headers=APP_HEADERS, json={**CHARGE, "amount": 0}
        )
        assert response.status_code == 422

    async def test_create_requires_channel_extra(self, client: AsyncClient):
        """Missing channel extras surface as a domain validation error."""
        response = await client.post(
            "/api/v1/charges", headers=APP_HEADERS, json={**CHARGE, "extra": {}}
        )

        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"

    async def test_create_on_rejecting_platform(self, client: AsyncClient, sandbox):
        """Platform refusal maps to 502."""
        sandbox.reject_next_pay = "risk control"

        response = await client.post("/api/v1/charges", headers=APP_HEADERS, json=CHARGE)

        assert response.status_code == 502
        assert response.json()["code"] == "CHANNEL_REJECTED"

    async def test_paid_order_conflicts(self, client: AsyncClient, sandbox):
        """A paid order cannot be charged again."""
        data = await create_charge(client)
        await pay(client, sandbox, data["charge_no"])

        response = await client.post("/api/v1/charges", headers=APP_HEADERS, json=CHARGE)

        assert response.status_code == 409
        assert response.json()["code"] == "ORDER_ALREADY_PAID"

    async def test_get_charge_hides_settled_credential(self, client: AsyncClient, sandbox):
        """GET refreshes the charge; paid charges carry no credential."""
        data = await create_charge(client)
        sandbox.simulate_payment(data["charge_no"])

        response = await client.get(f"/api/v1/charges/{data['charge_no']}", headers=APP_HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        assert body["credential"] is None
        assert body["platform_trade_no"]

    async def test_get_unknown_charge(self, client: AsyncClient):
        """Unknown charges return 404."""
        response = await client.get("/api/v1/charges/ch_missing", headers=APP_HEADERS)

        assert response.status_code == 404
        assert response.json()["code"] == "CHARGE_NOT_FOUND"

    async def test_get_other_apps_charge(self, client: AsyncClient):
        """Charges of other apps are not visible."""
        data = await create_charge(client)

        response = await client.get(f"/api/v1/charges/{data['charge_no']}", headers={"X-App-ID": "2"})

        assert response.status_code == 404


class TestRefunds:
    """Test refund endpoints."""

    async def test_refund_paid_charge(self, client: AsyncClient, sandbox):
        """POST /charges/{no}/refunds refunds a paid charge."""
        data = await create_charge(client)
        await pay(client, sandbox, data["charge_no"])

        response = await client.post(
            f"/api/v1/charges/{data['charge_no']}/refunds",
            headers=APP_HEADERS,
            json={"amount": 400, "reason": "damaged"},
        )

        assert response.status_code == 201, response.text
        refund = response.json()
        assert refund["status"] == "success"
        assert refund["amount"] == 400

        fetched = await client.get(f"/api/v1/refunds/{refund['refund_no']}", headers=APP_HEADERS)
        assert fetched.json()["refund_no"] == refund["refund_no"]

        listed = await client.get(f"/api/v1/charges/{data['charge_no']}/refunds", headers=APP_HEADERS)
        assert listed.json()["total"] == 1

    async def test_over_refund_conflicts(self, client: AsyncClient, sandbox):
        """Refunding more than was paid is a conflict."""
        data = await create_charge(client)
        await pay(client, sandbox, data["charge_no"])

        response = await client.post(
            f"/api/v1/charges/{data['charge_no']}/refunds",
            headers=APP_HEADERS,
            json={"amount": 1200},
        )

        assert response.status_code == 409
        assert response.json()["code"] == "CHARGE_NOT_REFUNDABLE"

    async def test_refund_unpaid_charge(self, client: AsyncClient):
        """Unpaid charges cannot be refunded."""
        data = await create_charge(client)

        response = await client.post(
            f"/api/v1/charges/{data['charge_no']}/refunds",
            headers=APP_HEADERS,
            json={"amount": 100},
        )

        assert response.status_code == 409

    async def test_get_unknown_refund(self, client: AsyncClient):
        """Unknown refunds return 404."""
        response = await client.get("/api/v1/refunds/re_missing", headers=APP_HEADERS)

        assert response.status_code == 404
        assert response.json()["code"] == "REFUND_NOT_FOUND"


class TestNotify:
    """Test platform callback endpoints."""

    async def test_alipay_charge_notify(self, client: AsyncClient, sandbox):
        """A signed Alipay callback is acknowledged with 'success'."""
        data = await create_charge(client)
        sandbox.simulate_payment(data["charge_no"])

        response = await client.post(
            "/notify/alipay/charge", data=sandbox.build_charge_notify(data["charge_no"])
        )

        assert response.status_code == 200
        assert response.text == "success"
        charge = await client.get(f"/api/v1/charges/{data['charge_no']}", headers=APP_HEADERS)
        assert charge.json()["status"] == "success"

    async def test_notify_form_with_non_ascii_values(self, client: AsyncClient, sandbox):
        """Form values survive decoding byte for byte, so the signature still checks."""
        data = await create_charge(client)
        sandbox.simulate_payment(data["charge_no"])
        params = sandbox.build_charge_notify(data["charge_no"])
        params["subject"] = "测试订单 O1"
        params["sign"] = sign_params(params, SECRET, exclude=("sign", "sign_type"))

        response = await client.post("/notify/alipay/charge", data=params)

        assert response.text == "success"

    async def test_tampered_notify_fails(self, client: AsyncClient, sandbox):
        """A forged callback is answered with 'fail' so nothing is settled."""
        data = await create_charge(client)
        sandbox.simulate_payment(data["charge_no"])

        response = await client.post(
            "/notify/alipay/charge",
            data=sandbox.build_charge_notify(data["charge_no"], secret="attacker-secret"),
        )

        assert response.text == "fail"

    async def test_unionpay_notify_acknowledgement(self, client: AsyncClient, sandbox):
        """UnionPay expects 'ok' with 200, anything else makes it retry."""
        data = await create_charge(
            client, channel="unionpay_wap", extra={"front_url": "https://shop.example/front"}
        )
        pending = await client.post(
            "/notify/unionpay/charge", data=sandbox.build_charge_notify(data["charge_no"])
        )
        sandbox.simulate_payment(data["charge_no"])
        paid = await client.post(
            "/notify/unionpay/charge", data=sandbox.build_charge_notify(data["charge_no"])
        )

        assert pending.status_code == 400
        assert pending.text == "fail"
        assert paid.status_code == 200
        assert paid.text == "ok"

    async def test_unionpay_refund_notify(self, client: AsyncClient, sandbox):
        """Asynchronous refunds settle through the refund callback."""
        data = await create_charge(
            client, channel="unionpay_pc", extra={"front_url": "https://shop.example/front"}
        )
        await pay(client, sandbox, data["charge_no"])
        refund = (
            await client.post(
                f"/api/v1/charges/{data['charge_no']}/refunds",
                headers=APP_HEADERS,
                json={"amount": 1000},
            )
        ).json()
        assert refund["status"] == "requested"
        sandbox.simulate_refund_result(refund["refund_no"])

        response = await client.post(
            "/notify/unionpay/refund", data=sandbox.build_refund_notify(refund["refund_no"])
        )

        assert response.text == "ok"

    async def test_unknown_platform(self, client: AsyncClient):
        """Callbacks for unknown platforms are refused."""
        response = await client.post("/notify/paypal/charge", data={"id": "x"})

        assert response.text == "fail"
