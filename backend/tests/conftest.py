"""
Pytest configuration and shared test fixtures.

Services are exercised against in-memory repositories exposing the same
async methods as the SQLAlchemy ones, a mocked ``AsyncSession`` for
commit/rollback bookkeeping, a pinned clock and a notifier that records
emitted events instead of scheduling delivery.
"""

import os

os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("APP_HISTORY_REPAIR_INTERVAL_SECONDS", "0")

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.core.exceptions import UpstreamUnavailableError
from atelier.database.models.catalog import CatalogItem
from atelier.database.models.order import Order
from atelier.database.models.profile import ClientProfile
from atelier.database.models.revision import Revision
from atelier.schemas.orders import ManualOrderSubmission, OrderSubmission
from atelier.services.orders.enums import OrderStatus, RevisionStatus
from atelier.services.orders.service import OrderService
from atelier.services.profiles.registry import ClientProfileRegistry
from atelier.services.profiles.repository import ProfileRepositoryError
from atelier.services.revisions.ledger import RevisionLedger
from atelier.services.revisions.repository import (
    RevisionConflictError,
    RevisionRepositoryError,
)
from atelier.services.storage.cloudinary import StoredObject

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


# ============================================================================
# In-memory repositories
# ============================================================================


class FakeOrderRepository:
    def __init__(self):
        self.orders: dict[uuid.UUID, Order] = {}
        self.fail_on_add: Optional[Exception] = None
        self.fail_on_save: Optional[Exception] = None

    async def add(self, order: Order) -> Order:
        if self.fail_on_add is not None:
            raise self.fail_on_add
        self.orders[order.id] = order
        return order

    async def save(self, order: Order) -> Order:
        if self.fail_on_save is not None:
            raise self.fail_on_save
        return order

    async def get_by_id(self, order_id: uuid.UUID, for_update: bool = False) -> Optional[Order]:
        return self.orders.get(order_id)

    async def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        customer_ref: Optional[str] = None,
        rush_only: bool = False,
        skip: int = 0,
        limit: int = 20,
    ):
        orders = [
            order
            for order in reversed(list(self.orders.values()))
            if (status is None or order.status == status)
            and (customer_ref is None or order.customer_ref == customer_ref)
            and (not rush_only or order.rush_multiplier > Decimal("1.0"))
        ]
        return orders[skip:skip + limit], len(orders)

    async def find_missing_history(self, limit: int = 50):
        return [order for order in self.orders.values() if not order.history][:limit]

    async def get_statistics(self) -> dict[str, Any]:
        breakdown: dict[OrderStatus, int] = {}
        for order in self.orders.values():
            breakdown[order.status] = breakdown.get(order.status, 0) + 1
        revenue = sum((order.total_price for order in self.orders.values()), Decimal("0"))
        deposits = sum(
            (order.deposit_amount for order in self.orders.values() if order.deposit_paid),
            Decimal("0"),
        )
        return {
            "total_orders": len(self.orders),
            "status_breakdown": breakdown,
            "rush_orders": sum(
                1 for order in self.orders.values() if order.rush_multiplier > Decimal("1.0")
            ),
            "total_revenue": revenue,
            "outstanding_balance": revenue - deposits,
        }


class FakeRevisionRepository:
    def __init__(self, orders: FakeOrderRepository):
        self.orders = orders
        self.revisions: dict[uuid.UUID, Revision] = {}
        self.fail_on_add: Optional[Exception] = None
        # Counts handed out before the real one, to simulate a racing writer
        self.stale_counts: list[int] = []

    async def add(self, revision: Revision) -> Revision:
        if self.fail_on_add is not None:
            raise self.fail_on_add
        for existing in self.revisions.values():
            if (
                existing.order_id == revision.order_id
                and existing.revision_number == revision.revision_number
            ):
                raise RevisionConflictError(
                    "Revision number already taken",
                    order_id=str(revision.order_id),
                    revision_number=revision.revision_number,
                )
        self.revisions[revision.id] = revision
        return revision

    async def save(self, revision: Revision) -> Revision:
        return revision

    async def get_by_id(self, revision_id: uuid.UUID, for_update: bool = False):
        return self.revisions.get(revision_id)

    async def get_by_number(self, order_id: uuid.UUID, revision_number: int):
        for revision in self.revisions.values():
            if revision.order_id == order_id and revision.revision_number == revision_number:
                return revision
        return None

    async def count_for_order(self, order_id: uuid.UUID) -> int:
        if self.stale_counts:
            return self.stale_counts.pop(0)
        return len(self.for_order(order_id))

    def for_order(self, order_id: uuid.UUID) -> list[Revision]:
        return sorted(
            (r for r in self.revisions.values() if r.order_id == order_id),
            key=lambda r: r.revision_number,
        )

    async def list_for_order(self, order_id: uuid.UUID):
        return self.for_order(order_id)

    async def list_all(self, skip: int = 0, limit: int = 20):
        revisions = list(reversed(list(self.revisions.values())))
        return revisions[skip:skip + limit], len(revisions)

    async def list_by_status(self, status: RevisionStatus):
        return [r for r in reversed(list(self.revisions.values())) if r.status == status]

    async def list_for_customer(self, customer_ref: str):
        return [
            r
            for r in reversed(list(self.revisions.values()))
            if r.order_id in self.orders.orders
            and self.orders.orders[r.order_id].customer_ref == customer_ref
        ]


class FakeProfileRepository:
    def __init__(self, orders: FakeOrderRepository):
        self.orders = orders
        self.profiles: dict[str, ClientProfile] = {}
        self.fail_increment = False

    async def upsert(self, customer_ref: str, fields: dict[str, Any]) -> ClientProfile:
        contact = {
            name: fields.get(name)
            for name in ("full_name", "phone_number", "city", "instagram_handle")
        }
        profile = self.profiles.get(customer_ref)
        if profile is None:
            profile = ClientProfile(
                id=uuid.uuid4(),
                customer_ref=customer_ref,
                order_count=0,
                **contact,
            )
            self.profiles[customer_ref] = profile
        else:
            for name, value in contact.items():
                setattr(profile, name, value)
        return profile

    async def increment_order_count(self, customer_ref: str) -> int:
        if self.fail_increment:
            raise ProfileRepositoryError("Failed to increment order count")
        profile = self.profiles.get(customer_ref)
        if profile is None:
            return 0
        profile.order_count += 1
        return 1

    async def set_order_count(self, customer_ref: str, order_count: int) -> int:
        profile = self.profiles.get(customer_ref)
        if profile is None:
            return 0
        profile.order_count = order_count
        return 1

    async def count_orders(self, customer_ref: str) -> int:
        return sum(1 for o in self.orders.orders.values() if o.customer_ref == customer_ref)

    async def get_by_ref(self, customer_ref: str) -> Optional[ClientProfile]:
        return self.profiles.get(customer_ref)

    async def get_by_phone(self, phone_number: str) -> Optional[ClientProfile]:
        matches = [p for p in self.profiles.values() if p.phone_number == phone_number]
        return matches[-1] if matches else None

    async def list_profiles(self, skip: int = 0, limit: int = 20):
        profiles = list(self.profiles.values())
        return profiles[skip:skip + limit], len(profiles)


class FakeCatalogRepository:
    def __init__(self):
        self.items: dict[uuid.UUID, CatalogItem] = {}

    async def add(self, item: CatalogItem) -> CatalogItem:
        self.items[item.id] = item
        return item

    async def save(self, item: CatalogItem) -> CatalogItem:
        return item

    async def delete(self, item: CatalogItem) -> None:
        self.items.pop(item.id, None)

    async def get_by_id(self, item_id: uuid.UUID) -> Optional[CatalogItem]:
        return self.items.get(item_id)

    async def list_items(self):
        return list(reversed(list(self.items.values())))


class FakeStorage:
    """Records uploads and deletes; ``fail`` makes every upload fail."""

    def __init__(self):
        self.uploads: list[tuple[str, bytes]] = []
        self.deleted: list[str] = []
        self.fail = False

    async def upload(self, data: bytes, category: str = "atelier", filename=None) -> StoredObject:
        if self.fail:
            raise UpstreamUnavailableError("Content upload failed after 3 attempts")
        self.uploads.append((category, data))
        n = len(self.uploads)
        return StoredObject(
            url=f"https://cdn.test/{category}/{n}.jpg",
            storage_id=f"{category}/{n}",
        )

    async def delete(self, storage_id: str) -> None:
        self.deleted.append(storage_id)

    async def aclose(self) -> None:
        pass


class RecordingNotifier:
    def __init__(self):
        self.events: list[tuple[Any, uuid.UUID, Optional[uuid.UUID]]] = []

    def emit(self, kind, order, revision=None):
        self.events.append((kind, order.id, revision.id if revision else None))

    @property
    def kinds(self) -> list:
        return [kind for kind, _, _ in self.events]


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def mock_session() -> AsyncMock:
    """
    Create mock async database session.

    Returns:
        AsyncMock: Mock database session
    """
    session = AsyncMock(spec=AsyncSession)
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.refresh = AsyncMock()
    return session


@pytest.fixture
def order_repository() -> FakeOrderRepository:
    return FakeOrderRepository()


@pytest.fixture
def revision_repository(order_repository) -> FakeRevisionRepository:
    return FakeRevisionRepository(order_repository)


@pytest.fixture
def profile_repository(order_repository) -> FakeProfileRepository:
    return FakeProfileRepository(order_repository)


@pytest.fixture
def catalog_repository() -> FakeCatalogRepository:
    return FakeCatalogRepository()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def ledger(mock_session, revision_repository, clock) -> RevisionLedger:
    return RevisionLedger(mock_session, repository=revision_repository, clock=clock)


@pytest.fixture
def registry(mock_session, profile_repository) -> ClientProfileRegistry:
    return ClientProfileRegistry(mock_session, repository=profile_repository)


@pytest.fixture
def order_service(
    mock_session,
    notifier,
    storage,
    order_repository,
    ledger,
    registry,
    clock,
) -> OrderService:
    """OrderService wired to the in-memory repositories."""
    return OrderService(
        mock_session,
        notifier=notifier,
        storage=storage,
        repository=order_repository,
        ledger=ledger,
        registry=registry,
        clock=clock,
    )


def submission_payload(days_ahead: int = 20, **overrides: Any) -> dict[str, Any]:
    """Intake form payload with a delivery date ``days_ahead`` after NOW."""
    payload: dict[str, Any] = {
        "client_profile": {
            "full_name": "Hanna Bekele",
            "phone_number": "+251 911 234 567",
            "city": "Addis Ababa",
            "instagram_handle": "@hanna.b",
        },
        "order_type": "custom_event_dress",
        "occasion": "wedding",
        "fabric_preference": "Silk chiffon",
        "event_date": (NOW + timedelta(days=days_ahead + 5)).isoformat(),
        "preferred_delivery_date": (NOW + timedelta(days=days_ahead)).isoformat(),
        "measurements": {
            "bust": 88,
            "waist": 70,
            "hips": 96,
            "shoulder_width": 38,
            "dress_length": 140,
            "arm_length": 58,
            "height": 165,
        },
        "body_concerns": "Prefers a higher neckline",
        "color_preference": "Emerald",
        "terms_accepted": True,
        "revision_policy_accepted": True,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_submission():
    def factory(days_ahead: int = 20, **overrides: Any) -> OrderSubmission:
        return OrderSubmission.model_validate(submission_payload(days_ahead, **overrides))

    return factory


@pytest.fixture
def make_manual_submission():
    def factory(days_ahead: int = 20, **overrides: Any) -> ManualOrderSubmission:
        payload = submission_payload(days_ahead, **overrides)
        payload.pop("terms_accepted")
        payload.pop("revision_policy_accepted")
        return ManualOrderSubmission.model_validate(payload)

    return factory


@pytest.fixture
def fail_revision_insert(revision_repository):
    """Make the next revision insert fail at the database level."""

    def activate():
        revision_repository.fail_on_add = RevisionRepositoryError("Failed to save revision")

    return activate
