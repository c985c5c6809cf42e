"""
HTTP tests for the shipment routes.

Auth, DB and the carrier client are replaced through dependency_overrides;
the tracker runs for real against an AsyncMock client.
"""
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_carrier_client, get_current_admin, get_shipment_tracker
from app.api.routes.shipments import find_order
from app.core.database import get_db
from app.core.exceptions import CarrierBackoffError, CarrierLockoutError, OrderNotFoundError
from app.core.security import create_access_token
from app.main import app
from app.models import User
from app.modules.shipping.progression import ShipmentProgressionTracker

NOW = datetime(2024, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def carrier():
    return AsyncMock()


@pytest.fixture
def api(mock_db, carrier):
    async def override_db():
        yield mock_db

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_current_admin] = lambda: User(id=1, email="admin@example.com", is_admin=True, is_active=True)
    app.dependency_overrides[get_carrier_client] = lambda: carrier
    app.dependency_overrides[get_shipment_tracker] = lambda: ShipmentProgressionTracker(
        carrier, pickup_location="Sales Office", clock=lambda: NOW
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def stored_order(monkeypatch, order_factory):
    """Patch the order lookup to return one in-memory order."""
    order = order_factory()

    async def fake_find_order(db, order_ref):
        return order

    monkeypatch.setattr("app.api.routes.shipments.find_order", fake_find_order)
    return order


class TestServiceability:
    def test_defaults_are_applied(self, api, carrier):
        carrier.serviceability.return_value = {"status": 200, "data": {"available_courier_companies": []}}

        response = api.get("/api/serviceability", params={"pickup_postcode": "110001", "delivery_postcode": "400001"})

        assert response.status_code == 200
        assert response.json() == {"ok": True, "data": {"status": 200, "data": {"available_courier_companies": []}}}
        carrier.serviceability.assert_awaited_once_with(
            pickup_postcode="110001",
            delivery_postcode="400001",
            weight=0.5,
            cod=0,
            declared_value=0,
            mode="Surface",
        )

    @pytest.mark.parametrize("raw", ["true", "1", "yes"])
    def test_truthy_cod_is_sent_as_one(self, api, carrier, raw):
        carrier.serviceability.return_value = {}

        response = api.get(
            "/api/serviceability",
            params={"pickup_postcode": "110001", "delivery_postcode": "400001", "cod": raw},
        )

        assert response.status_code == 200
        assert carrier.serviceability.await_args.kwargs["cod"] == 1

    def test_bad_pincode_is_rejected_before_the_carrier(self, api, carrier):
        response = api.get("/api/serviceability", params={"pickup_postcode": "1100", "delivery_postcode": "400001"})

        assert response.status_code == 422
        body = response.json()
        assert body["ok"] is False
        assert body["error"]["code"] == "REQUEST_INVALID"
        carrier.serviceability.assert_not_awaited()

    def test_unknown_mode_is_rejected(self, api, carrier):
        response = api.get(
            "/api/serviceability",
            params={"pickup_postcode": "110001", "delivery_postcode": "400001", "mode": "Rail"},
        )

        assert response.status_code == 422

    def test_backoff_sets_retry_after(self, api, carrier):
        carrier.serviceability.side_effect = CarrierBackoffError("Login cooling down", retry_after_seconds=42)

        response = api.get("/api/serviceability", params={"pickup_postcode": "110001", "delivery_postcode": "400001"})

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "42"
        assert response.json()["error"]["code"] == "CARRIER_AUTH_BACKOFF"


class TestFulfillmentSteps:
    def test_create_commits_and_reports_stage(self, api, carrier, mock_db, stored_order):
        carrier.create_adhoc_order.return_value = {"shipment_id": 9911}

        response = api.post("/api/order/ORD-1001/shipment/create")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["step"] == "create_shipment"
        assert data["fields"] == {"shipment_id": "9911"}
        assert data["stage"] == "order_created"
        assert data["tracking"]["shipment_id"] == "9911"
        mock_db.commit.assert_awaited_once()

    def test_skipped_step_does_not_commit(self, api, carrier, mock_db, stored_order):
        stored_order.shipment_id = "9911"

        response = api.post("/api/order/ORD-1001/shipment/create")

        assert response.status_code == 200
        assert response.json()["data"]["skipped"] is True
        carrier.create_adhoc_order.assert_not_awaited()
        mock_db.commit.assert_not_awaited()

    def test_assign_awb_without_shipment_is_a_400(self, api, carrier, mock_db, stored_order):
        response = api.post("/api/order/ORD-1001/shipment/assign-awb")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "SHIPMENT_PRECONDITION_FAILED"
        assert error["details"]["missing_field"] == "shipment_id"
        assert carrier.mock_calls == []
        mock_db.commit.assert_not_awaited()

    @pytest.mark.parametrize("step", ["pickup", "label", "invoice", "manifest"])
    def test_step_without_shipment_is_a_400(self, api, carrier, mock_db, stored_order, step):
        response = api.post(f"/api/order/ORD-1001/shipment/{step}")

        assert response.status_code == 400
        assert response.json()["error"]["details"]["missing_field"] == "shipment_id"
        assert carrier.mock_calls == []
        mock_db.commit.assert_not_awaited()

    def test_assign_awb_passes_courier_id(self, api, carrier, stored_order):
        stored_order.shipment_id = "9911"
        carrier.assign_awb.return_value = {"response": {"data": {"awb_code": "sr1", "courier_name": "Xpressbees"}}}

        response = api.post("/api/order/ORD-1001/shipment/assign-awb", json={"courier_id": 12})

        assert response.status_code == 200
        assert response.json()["data"]["fields"] == {"awb_code": "SR1", "courier_name": "Xpressbees"}
        carrier.assign_awb.assert_awaited_once_with("9911", courier_id=12)

    def test_assign_awb_rejects_non_positive_courier(self, api, stored_order):
        response = api.post("/api/order/ORD-1001/shipment/assign-awb", json={"courier_id": 0})

        assert response.status_code == 422

    def test_invalid_payload_lists_violations(self, api, carrier, stored_order, sample_address):
        sample_address["phone_number"] = "12345"
        stored_order.shipping_address = sample_address

        response = api.post("/api/order/ORD-1001/shipment/create")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "SHIPMENT_PAYLOAD_INVALID"
        assert "Invalid billing_phone (must be 10 digits, no country code)" in error["details"]["violations"]
        carrier.create_adhoc_order.assert_not_awaited()

    def test_cancelled_order(self, api, carrier, stored_order):
        stored_order.status = "cancelled"

        response = api.post("/api/order/ORD-1001/shipment/label")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "ORDER_CANCELLED"

    def test_lockout_is_a_503_with_wait_hint(self, api, carrier, stored_order):
        stored_order.shipment_id = "9911"
        carrier.generate_pickup.side_effect = CarrierLockoutError("Account locked", retry_after_seconds=1800)

        response = api.post("/api/order/ORD-1001/shipment/pickup")

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "1800"
        assert response.json()["error"]["details"]["wait_hint"] == "Wait about 30 minutes before trying again"

    def test_status(self, api, stored_order):
        stored_order.shipment_id = "9911"
        stored_order.awb_code = "SR1"

        response = api.get("/api/order/ORD-1001/shipment")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["order_id"] == 42
        assert data["stage"] == "awb_assigned"


class TestOrderLookup:
    def test_unknown_order_is_a_404(self, api, mock_db):
        result = MagicMock()
        result.scalars.return_value.first.return_value = None
        mock_db.execute.return_value = result

        response = api.post("/api/order/ORD-404/shipment/create")

        assert response.status_code == 404
        assert response.json() == {
            "ok": False,
            "error": {
                "error_type": "OrderNotFoundError",
                "code": "ORDER_NOT_FOUND",
                "message": "Order ORD-404 not found",
                "severity": "P3",
                "details": {"order_ref": "ORD-404"},
            },
        }


    @pytest.mark.asyncio
    async def test_oversized_numeric_ref_is_looked_up_by_order_number(self, mock_db):
        result = MagicMock()
        result.scalars.return_value.first.return_value = None
        mock_db.execute.return_value = result
        ref = "99999999999999999999"

        with pytest.raises(OrderNotFoundError):
            await find_order(mock_db, ref)

        params = mock_db.execute.await_args.args[0].compile().params
        assert list(params.values()) == [ref]

    @pytest.mark.asyncio
    async def test_numeric_ref_matches_id_or_order_number(self, mock_db):
        result = MagicMock()
        result.scalars.return_value.first.return_value = None
        mock_db.execute.return_value = result

        with pytest.raises(OrderNotFoundError):
            await find_order(mock_db, "42")

        params = mock_db.execute.await_args.args[0].compile().params
        assert 42 in params.values()
        assert "42" in params.values()


class TestAuth:
    def test_admin_required(self, mock_db):
        async def override_db():
            yield mock_db

        app.dependency_overrides[get_db] = override_db
        try:
            response = TestClient(app).post("/api/order/ORD-1001/shipment/create")
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "HTTP_401"

    def _lookup_returns(self, mock_db, user):
        result = MagicMock()
        result.scalar_one_or_none.return_value = user
        mock_db.execute.return_value = result

    def _get_with_token(self, mock_db, token):
        async def override_db():
            yield mock_db

        app.dependency_overrides[get_db] = override_db
        try:
            return TestClient(app).get(
                "/api/order/ORD-1001/shipment",
                headers={"Authorization": f"Bearer {token}"},
            )
        finally:
            app.dependency_overrides.clear()

    def test_non_admin_is_forbidden(self, mock_db):
        self._lookup_returns(mock_db, User(id=5, email="user@example.com", is_admin=False, is_active=True))

        response = self._get_with_token(mock_db, create_access_token({"sub": 5}))

        assert response.status_code == 403
        assert response.json()["error"]["message"] == "Admin access required"

    def test_disabled_account_is_rejected(self, mock_db):
        self._lookup_returns(mock_db, User(id=5, email="admin@example.com", is_admin=True, is_active=False))

        response = self._get_with_token(mock_db, create_access_token({"sub": 5}))

        assert response.status_code == 401

    def test_garbage_token_is_rejected(self, mock_db):
        response = self._get_with_token(mock_db, "not-a-jwt")

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid or expired token"
        mock_db.execute.assert_not_awaited()
