"""
Tests for the catalog service and catalog endpoints.
"""

import uuid

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from atelier.api.deps import get_catalog_service
from atelier.core.exceptions import NotFoundError, UpstreamUnavailableError
from atelier.main import app
from atelier.services.catalog.service import CatalogService
from atelier.services.storage.cloudinary import ImageUpload

CATALOG = "/api/v1/catalog"
OPERATOR_HEADERS = {"X-Operator-Ref": "op-1"}


@pytest.fixture
def catalog_service(mock_session, storage, catalog_repository) -> CatalogService:
    return CatalogService(mock_session, storage, repository=catalog_repository)


# ============================================================================
# Service Tests
# ============================================================================


class TestCatalogService:
    @pytest.mark.asyncio
    async def test_create_item(self, catalog_service, storage, mock_session):
        item = await catalog_service.create_item(
            "Emerald gown",
            ImageUpload(b"img", "gown.jpg"),
            ["evening"],
        )

        assert item.image_url == "https://cdn.test/catalog/1.jpg"
        assert item.storage_id == "catalog/1"
        assert item.tags == ["evening"]
        assert storage.uploads == [("catalog", b"img")]
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_upload_failure_stores_nothing(
        self,
        catalog_service,
        storage,
        catalog_repository,
    ):
        storage.fail = True

        with pytest.raises(UpstreamUnavailableError):
            await catalog_service.create_item("Emerald gown", ImageUpload(b"img"))

        assert catalog_repository.items == {}

    @pytest.mark.asyncio
    async def test_missing_storage(self, mock_session, catalog_repository):
        service = CatalogService(mock_session, None, repository=catalog_repository)

        with pytest.raises(UpstreamUnavailableError):
            await service.create_item("Emerald gown", ImageUpload(b"img"))

    @pytest.mark.asyncio
    async def test_replacing_image_deletes_old_one(self, catalog_service, storage):
        item = await catalog_service.create_item("Emerald gown", ImageUpload(b"one"))

        updated = await catalog_service.update_item(
            item.id,
            title="Emerald ball gown",
            image=ImageUpload(b"two"),
        )

        assert updated.title == "Emerald ball gown"
        assert updated.storage_id == "catalog/2"
        assert storage.deleted == ["catalog/1"]

    @pytest.mark.asyncio
    async def test_update_without_image_keeps_it(self, catalog_service, storage):
        item = await catalog_service.create_item("Emerald gown", ImageUpload(b"one"), ["a"])

        updated = await catalog_service.update_item(item.id, tags=["b", "c"])

        assert updated.tags == ["b", "c"]
        assert updated.storage_id == "catalog/1"
        assert storage.deleted == []

    @pytest.mark.asyncio
    async def test_update_unknown_item(self, catalog_service):
        with pytest.raises(NotFoundError):
            await catalog_service.update_item(uuid.uuid4(), title="x")

    @pytest.mark.asyncio
    async def test_delete_item(self, catalog_service, storage, catalog_repository):
        item = await catalog_service.create_item("Emerald gown", ImageUpload(b"one"))

        assert await catalog_service.delete_item(item.id) is True
        assert await catalog_service.delete_item(item.id) is False
        assert catalog_repository.items == {}
        assert storage.deleted == ["catalog/1"]


# ============================================================================
# Endpoint Tests
# ============================================================================


@pytest.fixture
def client(catalog_service):
    app.dependency_overrides[get_catalog_service] = lambda: catalog_service
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestCatalogEndpoints:
    def test_list_is_public(self, client):
        response = client.get(CATALOG)

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == []

    def test_create_and_list(self, client):
        created = client.post(
            CATALOG,
            data={"title": "Emerald gown", "tags": "evening, silk"},
            files={"image": ("gown.jpg", b"jpeg-bytes", "image/jpeg")},
            headers=OPERATOR_HEADERS,
        )
        listed = client.get(CATALOG)

        assert created.status_code == status.HTTP_201_CREATED
        assert created.json()["tags"] == ["evening", "silk"]
        assert [item["title"] for item in listed.json()] == ["Emerald gown"]

    def test_create_requires_operator(self, client):
        response = client.post(
            CATALOG,
            data={"title": "Emerald gown"},
            files={"image": ("gown.jpg", b"jpeg-bytes", "image/jpeg")},
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_empty_image_is_rejected(self, client):
        response = client.post(
            CATALOG,
            data={"title": "Emerald gown"},
            files={"image": ("gown.jpg", b"", "image/jpeg")},
            headers=OPERATOR_HEADERS,
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_delete_unknown_item(self, client):
        response = client.delete(f"{CATALOG}/{uuid.uuid4()}", headers=OPERATOR_HEADERS)

        assert response.status_code == status.HTTP_404_NOT_FOUND
