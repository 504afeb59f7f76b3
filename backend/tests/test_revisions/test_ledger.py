"""
Tests for the revision ledger: originating snapshots, revision requests,
status transitions and fee payments.
"""

import uuid
from decimal import Decimal

import pytest
import pytest_asyncio

from atelier.core.exceptions import (
    IllegalTransitionError,
    InvalidInputError,
    NotFoundError,
)
from atelier.database.models.order import Order
from atelier.schemas.revisions import RevisionRequest
from atelier.services.orders.enums import OrderStatus, RevisionStatus
from atelier.services.revisions.ledger import merge_revision_fields, place_at_head
from atelier.services.revisions.repository import RevisionRepositoryError
from atelier.services.storage.cloudinary import StoredObject

from conftest import NOW


def make_order(**overrides) -> Order:
    fields = dict(
        id=uuid.uuid4(),
        customer_ref="100200300",
        client_profile={"full_name": "Hanna Bekele", "phone_number": "0911234567"},
        order_type="custom_event_dress",
        occasion="wedding",
        event_date=NOW,
        preferred_delivery_date=NOW,
        is_rush_order=True,
        rush_multiplier=Decimal("1.4"),
        days_until_delivery=6,
        measurements={"bust": 88.0, "waist": 70.0, "hips": 96.0},
        body_concerns="Prefers a higher neckline",
        color_preference="Emerald",
        inspiration_photo_url="https://cdn.test/inspiration/1.jpg",
        inspiration_storage_id="inspiration/1",
        status=OrderStatus.BILL_SENT,
        revision_count=0,
        base_price=Decimal("1000"),
        total_price=Decimal("1400"),
        deposit_amount=Decimal("420"),
        deposit_paid=False,
        history=[],
    )
    fields.update(overrides)
    return Order(**fields)


# ============================================================================
# Snapshot Merge Tests
# ============================================================================


class TestMergeRevisionFields:
    def test_absent_fields_are_inherited(self):
        order = make_order()

        snapshot = merge_revision_fields(order, RevisionRequest())

        assert snapshot["measurements"] == order.measurements
        assert snapshot["body_concerns"] == "Prefers a higher neckline"
        assert snapshot["color_preference"] == "Emerald"

    def test_zero_measurement_is_kept(self):
        order = make_order()
        request = RevisionRequest.model_validate({"measurements": {"waist": 0}})

        snapshot = merge_revision_fields(order, request)

        assert snapshot["measurements"]["waist"] == 0
        assert snapshot["measurements"]["bust"] == 88.0

    def test_explicit_null_is_treated_as_absent(self):
        order = make_order()
        request = RevisionRequest.model_validate(
            {"color_preference": None, "body_concerns": "Lower back"}
        )

        snapshot = merge_revision_fields(order, request)

        assert snapshot["color_preference"] == "Emerald"
        assert snapshot["body_concerns"] == "Lower back"

    def test_does_not_mutate_order_measurements(self):
        order = make_order()
        request = RevisionRequest.model_validate({"measurements": {"hips": 100}})

        merge_revision_fields(order, request)

        assert order.measurements["hips"] == 96.0


# ============================================================================
# Originating Snapshot Tests
# ============================================================================


class TestCreateOriginating:
    @pytest.mark.asyncio
    async def test_records_free_approved_snapshot(self, ledger, revision_repository):
        # Arrange
        order = make_order(status=OrderStatus.FORM_SUBMITTED, base_price=Decimal("0"))

        # Act
        revision = await ledger.create_originating(order)

        # Assert
        assert revision.revision_number == 0
        assert revision.is_free is True
        assert revision.revision_fee == Decimal("0")
        assert revision.status == RevisionStatus.APPROVED
        assert revision.measurements == order.measurements
        assert revision.inspiration_storage_id == "inspiration/1"
        assert order.history == [str(revision.id)]
        assert revision.id in revision_repository.revisions

    @pytest.mark.asyncio
    async def test_failed_insert_leaves_history_untouched(self, ledger, revision_repository):
        order = make_order()
        revision_repository.fail_on_add = RevisionRepositoryError("Failed to save revision")

        with pytest.raises(RevisionRepositoryError):
            await ledger.create_originating(order)

        assert order.history == []

    @pytest.mark.asyncio
    async def test_sync_copies_submission_fields(self, ledger):
        order = make_order(status=OrderStatus.FORM_SUBMITTED)
        revision = await ledger.create_originating(order)
        order.measurements = {**order.measurements, "waist": 72.0}
        order.color_preference = "Ivory"

        synced = await ledger.sync_originating(order)

        assert synced is revision
        assert revision.measurements["waist"] == 72.0
        assert revision.color_preference == "Ivory"

    @pytest.mark.asyncio
    async def test_sync_without_snapshot_is_noop(self, ledger):
        assert await ledger.sync_originating(make_order()) is None


class TestPlaceAtHead:
    def test_moves_existing_entry_to_front(self):
        order = make_order(history=["b", "a", "c"])

        place_at_head(order, "a")

        assert order.history == ["a", "b", "c"]

    def test_prepends_missing_entry(self):
        order = make_order(history=["b"])

        place_at_head(order, "a")

        assert order.history == ["a", "b"]


# ============================================================================
# Revision Request Tests
# ============================================================================


class TestRequestRevision:
    @pytest.mark.asyncio
    async def test_first_request_is_charged(self, ledger):
        # Arrange
        order = make_order()
        originating = await ledger.create_originating(order)
        request = RevisionRequest.model_validate(
            {"measurements": {"waist": 72}, "revision_reason": "Lost weight"}
        )

        # Act
        revision = await ledger.request_revision(order, request)

        # Assert
        assert revision.revision_number == 1
        assert revision.is_free is False
        assert revision.revision_fee == Decimal("100.00")
        assert revision.status == RevisionStatus.PENDING
        assert revision.measurements["waist"] == 72
        assert revision.measurements["bust"] == 88.0
        assert order.total_price == Decimal("1500")
        assert order.deposit_amount == Decimal("450")
        assert order.revision_count == 1
        assert order.status == OrderStatus.REVISION_REQUESTED
        assert order.history == [str(originating.id), str(revision.id)]

    @pytest.mark.asyncio
    async def test_fee_tracks_current_base_price(self, ledger):
        order = make_order()
        await ledger.create_originating(order)
        await ledger.request_revision(order, RevisionRequest())
        order.base_price = Decimal("2000")

        second = await ledger.request_revision(order, RevisionRequest())

        assert second.revision_number == 2
        assert second.revision_fee == Decimal("200.00")
        assert order.revision_count == 2

    @pytest.mark.asyncio
    async def test_new_image_replaces_inherited_photo(self, ledger):
        order = make_order()
        await ledger.create_originating(order)
        image = StoredObject(url="https://cdn.test/inspiration/2.jpg", storage_id="inspiration/2")

        revision = await ledger.request_revision(order, RevisionRequest(), image)

        assert revision.inspiration_photo_url == image.url
        assert revision.inspiration_storage_id == "inspiration/2"
        # The order keeps its photo until the revision is applied
        assert order.inspiration_storage_id == "inspiration/1"

    @pytest.mark.asyncio
    async def test_failed_insert_leaves_order_untouched(self, ledger, revision_repository):
        order = make_order()
        await ledger.create_originating(order)
        history = list(order.history)
        revision_repository.fail_on_add = RevisionRepositoryError("Failed to save revision")

        with pytest.raises(RevisionRepositoryError):
            await ledger.request_revision(order, RevisionRequest())

        assert order.total_price == Decimal("1400")
        assert order.revision_count == 0
        assert order.status == OrderStatus.BILL_SENT
        assert order.history == history


# ============================================================================
# Status Transition Tests
# ============================================================================


class TestSetStatus:
    @pytest_asyncio.fixture
    async def pending_revision(self, ledger):
        order = make_order()
        await ledger.create_originating(order)
        return await ledger.request_revision(order, RevisionRequest())

    @pytest.mark.asyncio
    async def test_approve_records_approver(self, ledger, pending_revision):
        revision = await ledger.set_status(
            pending_revision.id,
            RevisionStatus.APPROVED,
            approver_ref="op-1",
        )

        assert revision.status == RevisionStatus.APPROVED
        assert revision.approved_by == "op-1"
        assert revision.approved_at == NOW

    @pytest.mark.asyncio
    async def test_reject_stores_notes_without_approver(self, ledger, pending_revision):
        revision = await ledger.set_status(
            pending_revision.id,
            RevisionStatus.REJECTED,
            approver_ref="op-1",
            admin_notes="Fabric already cut",
        )

        assert revision.status == RevisionStatus.REJECTED
        assert revision.admin_notes == "Fabric already cut"
        assert revision.approved_by is None
        assert revision.approved_at is None

    @pytest.mark.asyncio
    async def test_apply_after_approval(self, ledger, pending_revision):
        await ledger.set_status(pending_revision.id, RevisionStatus.APPROVED, "op-1")

        revision = await ledger.set_status(pending_revision.id, RevisionStatus.APPLIED, "op-2")

        assert revision.status == RevisionStatus.APPLIED
        assert revision.approved_by == "op-1"

    @pytest.mark.asyncio
    async def test_rejected_cannot_be_approved(self, ledger, pending_revision):
        await ledger.set_status(pending_revision.id, RevisionStatus.REJECTED, "op-1")

        with pytest.raises(IllegalTransitionError) as exc_info:
            await ledger.set_status(pending_revision.id, RevisionStatus.APPROVED, "op-1")

        assert exc_info.value.context["current_status"] == "rejected"
        assert pending_revision.status == RevisionStatus.REJECTED

    @pytest.mark.asyncio
    async def test_pending_cannot_be_applied(self, ledger, pending_revision):
        with pytest.raises(IllegalTransitionError):
            await ledger.set_status(pending_revision.id, RevisionStatus.APPLIED, "op-1")

        assert pending_revision.status == RevisionStatus.PENDING

    @pytest.mark.asyncio
    async def test_unknown_revision(self, ledger):
        with pytest.raises(NotFoundError):
            await ledger.set_status(uuid.uuid4(), RevisionStatus.APPROVED)


class TestMarkFeePaid:
    @pytest.mark.asyncio
    async def test_marks_paid_once(self, ledger):
        order = make_order()
        await ledger.create_originating(order)
        revision = await ledger.request_revision(order, RevisionRequest())

        first, changed = await ledger.mark_fee_paid(revision.id)
        second, changed_again = await ledger.mark_fee_paid(revision.id)

        assert first.revision_fee_paid is True
        assert changed is True
        assert second is first
        assert changed_again is False

    @pytest.mark.asyncio
    async def test_free_revision_has_no_fee(self, ledger):
        order = make_order()
        originating = await ledger.create_originating(order)

        with pytest.raises(InvalidInputError):
            await ledger.mark_fee_paid(originating.id)

    @pytest.mark.asyncio
    async def test_unknown_revision(self, ledger):
        with pytest.raises(NotFoundError):
            await ledger.mark_fee_paid(uuid.uuid4())
