"""
Tests for the client profile registry and profile endpoints.
"""

import uuid
from unittest.mock import AsyncMock

import pytest
from fastapi import status
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from atelier.api.deps import get_profile_registry
from atelier.database.models.profile import ClientProfile
from atelier.main import app

CONTACT = {
    "full_name": "Hanna Bekele",
    "phone_number": "0911234567",
    "city": "Addis Ababa",
    "instagram_handle": "hanna.b",
}


# ============================================================================
# Registry Tests
# ============================================================================


class TestClientProfileRegistry:
    @pytest.mark.asyncio
    async def test_upsert_creates_profile(self, registry, profile_repository):
        profile = await registry.upsert_from_submission("100", CONTACT)

        assert profile.customer_ref == "100"
        assert profile.order_count == 0
        assert profile.snapshot() == CONTACT

    @pytest.mark.asyncio
    async def test_upsert_overwrites_contact_but_not_count(self, registry):
        await registry.upsert_from_submission("100", CONTACT)
        await registry.increment_order_count("100")

        profile = await registry.upsert_from_submission("100", {**CONTACT, "city": "Hawassa"})

        assert profile.city == "Hawassa"
        assert profile.order_count == 1

    @pytest.mark.asyncio
    async def test_increment_commits(self, registry, mock_session):
        await registry.upsert_from_submission("100", CONTACT)

        assert await registry.increment_order_count("100") is True
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_increment_without_profile(self, registry):
        assert await registry.increment_order_count("unknown") is False

    @pytest.mark.asyncio
    async def test_increment_failure_is_reported_not_raised(
        self,
        registry,
        profile_repository,
        mock_session,
    ):
        await registry.upsert_from_submission("100", CONTACT)
        profile_repository.increment_order_count = AsyncMock(
            side_effect=OperationalError("UPDATE", {}, Exception("connection lost"))
        )

        assert await registry.increment_order_count("100") is False
        mock_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_recount_restores_counter(
        self,
        order_service,
        make_submission,
        registry,
        profile_repository,
    ):
        profile_repository.fail_increment = True
        await order_service.create(make_submission(), "100")
        await order_service.create(make_submission(), "100")
        profile_repository.fail_increment = False

        count = await registry.recount_orders("100")

        assert count == 2
        assert profile_repository.profiles["100"].order_count == 2

    @pytest.mark.asyncio
    async def test_find_by_phone(self, registry):
        await registry.upsert_from_submission("100", CONTACT)

        assert (await registry.find_by_phone("0911234567")).customer_ref == "100"
        assert await registry.find_by_phone("0900000000") is None


# ============================================================================
# Endpoint Tests
# ============================================================================


def stored_profile(customer_ref: str, phone_number: str) -> ClientProfile:
    return ClientProfile(
        id=uuid.uuid4(),
        customer_ref=customer_ref,
        order_count=0,
        **{**CONTACT, "phone_number": phone_number},
    )


@pytest.fixture
def client(registry):
    app.dependency_overrides[get_profile_registry] = lambda: registry
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestProfileEndpoints:
    def test_me(self, client, profile_repository):
        profile_repository.profiles["100"] = stored_profile("100", "0911234567")

        response = client.get("/api/v1/profiles/me", headers={"X-Customer-Ref": "100"})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["full_name"] == "Hanna Bekele"

    def test_me_without_profile(self, client):
        response = client.get("/api/v1/profiles/me", headers={"X-Customer-Ref": "100"})

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_list_for_operators(self, client, profile_repository):
        profile_repository.profiles["100"] = stored_profile("100", "0911234567")
        profile_repository.profiles["200"] = stored_profile("200", "0922000000")

        response = client.get(
            "/api/v1/profiles",
            params={"page_size": 1},
            headers={"X-Operator-Ref": "op-1"},
        )

        body = response.json()
        assert body["total"] == 2
        assert body["pages"] == 2
        assert len(body["items"]) == 1
