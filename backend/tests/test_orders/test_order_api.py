"""
Integration tests for the order and revision API endpoints.

Routes run through the real application (middleware, exception handlers,
dependency wiring) with the service dependencies overridden to use the
in-memory repositories.
"""

import json
import uuid
from decimal import Decimal
from typing import Generator

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from atelier.api.deps import get_order_service, get_revision_ledger
from atelier.main import app

from conftest import submission_payload

ORDERS = "/api/v1/orders"
REVISIONS = "/api/v1/revisions"
CUSTOMER_HEADERS = {"X-Customer-Ref": "100200300"}
OPERATOR_HEADERS = {"X-Operator-Ref": "op-1"}


@pytest.fixture
def client(order_service, ledger) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_order_service] = lambda: order_service
    app.dependency_overrides[get_revision_ledger] = lambda: ledger
    yield TestClient(app)
    app.dependency_overrides.clear()


def submit(client: TestClient, days_ahead: int = 20, **overrides) -> dict:
    response = client.post(
        ORDERS,
        data={"data": json.dumps(submission_payload(days_ahead, **overrides))},
        headers=CUSTOMER_HEADERS,
    )
    assert response.status_code == status.HTTP_201_CREATED, response.text
    return response.json()


# ============================================================================
# Order Intake Tests
# ============================================================================


class TestCreateOrderEndpoint:
    def test_create_order(self, client):
        # Act
        body = submit(client, days_ahead=6)

        # Assert
        assert body["customer_ref"] == "100200300"
        assert body["status"] == "form_submitted"
        assert body["is_rush_order"] is True
        assert Decimal(body["rush_multiplier"]) == Decimal("1.4")
        assert len(body["history"]) == 1

    def test_create_order_with_photo(self, client, storage):
        response = client.post(
            ORDERS,
            data={"data": json.dumps(submission_payload())},
            files={"inspiration_photo": ("dress.jpg", b"jpeg-bytes", "image/jpeg")},
            headers=CUSTOMER_HEADERS,
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["inspiration_photo_url"] == "https://cdn.test/inspiration/1.jpg"
        assert storage.uploads == [("inspiration", b"jpeg-bytes")]

    def test_storage_outage_returns_503(self, client, storage):
        storage.fail = True

        response = client.post(
            ORDERS,
            data={"data": json.dumps(submission_payload())},
            files={"inspiration_photo": ("dress.jpg", b"jpeg-bytes", "image/jpeg")},
            headers=CUSTOMER_HEADERS,
        )

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["error"] == "Service Unavailable"

    def test_missing_agreement_returns_400(self, client):
        response = client.post(
            ORDERS,
            data={"data": json.dumps(submission_payload(terms_accepted=False))},
            headers=CUSTOMER_HEADERS,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["details"]["terms_accepted"] is False

    def test_invalid_payload_returns_422(self, client):
        payload = submission_payload()
        payload["measurements"]["bust"] = -1

        response = client.post(
            ORDERS,
            data={"data": json.dumps(payload)},
            headers=CUSTOMER_HEADERS,
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.json()["error"] == "Validation Error"

    def test_missing_customer_ref_returns_401(self, client):
        response = client.post(ORDERS, data={"data": json.dumps(submission_payload())})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_request_id_is_echoed(self, client):
        response = client.get(
            f"{ORDERS}/mine",
            headers={**CUSTOMER_HEADERS, "X-Request-ID": "req-123"},
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.headers["X-Request-ID"] == "req-123"

    def test_manual_order(self, client):
        payload = submission_payload()
        del payload["terms_accepted"]
        del payload["revision_policy_accepted"]

        response = client.post(
            f"{ORDERS}/manual",
            data={"data": json.dumps(payload)},
            headers=OPERATOR_HEADERS,
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["customer_ref"] == "walkin_251911234567"


# ============================================================================
# Order Read Tests
# ============================================================================


class TestReadOrderEndpoints:
    def test_owner_can_read_order(self, client):
        order = submit(client)

        response = client.get(f"{ORDERS}/{order['id']}", headers=CUSTOMER_HEADERS)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["id"] == order["id"]

    def test_other_customer_gets_404(self, client):
        order = submit(client)

        response = client.get(f"{ORDERS}/{order['id']}", headers={"X-Customer-Ref": "999"})

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_operator_can_read_any_order(self, client):
        order = submit(client)

        response = client.get(f"{ORDERS}/{order['id']}", headers=OPERATOR_HEADERS)

        assert response.status_code == status.HTTP_200_OK

    def test_list_requires_operator(self, client):
        response = client.get(ORDERS, headers=CUSTOMER_HEADERS)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_list_filters_by_status(self, client):
        submit(client)
        quoted = submit(client)
        client.patch(
            f"{ORDERS}/{quoted['id']}/quote",
            json={"base_price": "1000"},
            headers=OPERATOR_HEADERS,
        )

        response = client.get(ORDERS, params={"status": "bill_sent"}, headers=OPERATOR_HEADERS)

        body = response.json()
        assert body["total"] == 1
        assert body["items"][0]["id"] == quoted["id"]
        assert body["pages"] == 1

    def test_mine_lists_only_own_orders(self, client):
        submit(client)

        response = client.get(f"{ORDERS}/mine", headers={"X-Customer-Ref": "999"})

        assert response.json()["total"] == 0

    def test_stats(self, client):
        submit(client, days_ahead=6)

        response = client.get(f"{ORDERS}/stats", headers=OPERATOR_HEADERS)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["total_orders"] == 1
        assert response.json()["rush_orders"] == 1


# ============================================================================
# Operator Action Tests
# ============================================================================


class TestOperatorActionEndpoints:
    def test_quote_and_deposit(self, client):
        # Arrange
        order = submit(client, days_ahead=6)

        # Act
        quote = client.patch(
            f"{ORDERS}/{order['id']}/quote",
            json={"base_price": "1000"},
            headers=OPERATOR_HEADERS,
        )
        deposit = client.patch(
            f"{ORDERS}/{order['id']}/confirm-deposit",
            headers=OPERATOR_HEADERS,
        )

        # Assert
        assert quote.status_code == status.HTTP_200_OK
        assert Decimal(quote.json()["total_price"]) == Decimal("1400")
        assert Decimal(quote.json()["deposit_amount"]) == Decimal("420")
        assert deposit.json()["status"] == "paid"
        assert Decimal(deposit.json()["balance_due"]) == Decimal("980")

    def test_zero_quote_is_accepted(self, client):
        order = submit(client)

        response = client.patch(
            f"{ORDERS}/{order['id']}/quote",
            json={"base_price": "0"},
            headers=OPERATOR_HEADERS,
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "bill_sent"
        assert Decimal(response.json()["total_price"]) == Decimal("0")
        assert Decimal(response.json()["deposit_amount"]) == Decimal("0")

    def test_quote_rejects_negative_price(self, client):
        order = submit(client)

        response = client.patch(
            f"{ORDERS}/{order['id']}/quote",
            json={"base_price": "-1"},
            headers=OPERATOR_HEADERS,
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_quote_unknown_order(self, client):
        response = client.patch(
            f"{ORDERS}/{uuid.uuid4()}/quote",
            json={"base_price": "1000"},
            headers=OPERATOR_HEADERS,
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error"] == "Not Found"

    def test_status_change(self, client):
        order = submit(client)

        response = client.patch(
            f"{ORDERS}/{order['id']}/status",
            json={"status": "ready"},
            headers=OPERATOR_HEADERS,
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "ready"

    def test_edit_after_quote_returns_409(self, client):
        order = submit(client)
        client.patch(
            f"{ORDERS}/{order['id']}/quote",
            json={"base_price": "1000"},
            headers=OPERATOR_HEADERS,
        )

        response = client.patch(
            f"{ORDERS}/{order['id']}",
            json={"color_preference": "Ivory"},
            headers=CUSTOMER_HEADERS,
        )

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_edit_before_quote(self, client):
        order = submit(client)

        response = client.patch(
            f"{ORDERS}/{order['id']}",
            json={"measurements": {"waist": 72}},
            headers=CUSTOMER_HEADERS,
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["measurements"]["waist"] == 72

    def test_repair_history(self, client):
        order = submit(client)

        response = client.post(
            f"{ORDERS}/{order['id']}/repair-history",
            headers=OPERATOR_HEADERS,
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["history"] == order["history"]


# ============================================================================
# Revision Endpoint Tests
# ============================================================================


class TestRevisionEndpoints:
    def _quoted_revision(self, client) -> tuple[dict, dict]:
        order = submit(client, days_ahead=6)
        client.patch(
            f"{ORDERS}/{order['id']}/quote",
            json={"base_price": "1000"},
            headers=OPERATOR_HEADERS,
        )
        response = client.post(
            f"{REVISIONS}/{order['id']}",
            data={"data": json.dumps({"measurements": {"hips": 98}, "revision_reason": "Fit"})},
            headers=CUSTOMER_HEADERS,
        )
        assert response.status_code == status.HTTP_201_CREATED, response.text
        return order, response.json()

    def test_request_revision(self, client):
        order, revision = self._quoted_revision(client)

        refreshed = client.get(f"{ORDERS}/{order['id']}", headers=CUSTOMER_HEADERS).json()

        assert revision["revision_number"] == 1
        assert Decimal(revision["revision_fee"]) == Decimal("100")
        assert revision["status"] == "pending"
        assert Decimal(refreshed["total_price"]) == Decimal("1500")
        assert refreshed["status"] == "revision_requested"

    def test_request_revision_without_payload(self, client):
        order = submit(client)

        response = client.post(f"{REVISIONS}/{order['id']}", headers=CUSTOMER_HEADERS)

        assert response.status_code == status.HTTP_201_CREATED

    def test_list_order_revisions(self, client):
        order, revision = self._quoted_revision(client)

        response = client.get(f"{REVISIONS}/order/{order['id']}", headers=CUSTOMER_HEADERS)

        assert [r["revision_number"] for r in response.json()] == [0, 1]

    def test_pending_revisions(self, client):
        order, revision = self._quoted_revision(client)

        response = client.get(f"{REVISIONS}/pending", headers=OPERATOR_HEADERS)

        assert [r["id"] for r in response.json()] == [revision["id"]]

    def test_customer_revisions_hidden_from_others(self, client):
        self._quoted_revision(client)

        response = client.get(
            f"{REVISIONS}/customer/100200300",
            headers={"X-Customer-Ref": "999"},
        )

        assert response.json() == []

    def test_reject_then_approve_returns_409(self, client):
        # Arrange
        order, revision = self._quoted_revision(client)

        # Act
        rejected = client.patch(
            f"{REVISIONS}/{revision['id']}/status",
            json={"status": "rejected", "admin_notes": "Fabric already cut"},
            headers=OPERATOR_HEADERS,
        )
        approved = client.patch(
            f"{REVISIONS}/{revision['id']}/status",
            json={"status": "approved"},
            headers=OPERATOR_HEADERS,
        )

        # Assert
        assert rejected.status_code == status.HTTP_200_OK
        assert rejected.json()["admin_notes"] == "Fabric already cut"
        assert approved.status_code == status.HTTP_409_CONFLICT
        assert approved.json()["details"]["current_status"] == "rejected"

    def test_fee_paid(self, client):
        order, revision = self._quoted_revision(client)

        response = client.patch(
            f"{REVISIONS}/{revision['id']}/fee-paid",
            headers=OPERATOR_HEADERS,
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["revision_fee_paid"] is True

    def test_get_unknown_revision(self, client):
        response = client.get(f"{REVISIONS}/{uuid.uuid4()}", headers=OPERATOR_HEADERS)

        assert response.status_code == status.HTTP_404_NOT_FOUND


# ============================================================================
# Health Endpoint Tests
# ============================================================================


class TestHealthEndpoints:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "healthy"

    def test_live(self, client):
        response = client.get("/live")

        assert response.json()["status"] == "alive"
