"""
Revision ledger: append-only history of an order's measurements and
preferences.

The ledger stages rows and order mutations in the caller's session but
never commits; the order service decides where the durability points
are. Every write path stores the revision row before touching the order
so a failed insert leaves the order untouched.
"""

import uuid
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from atelier.core.clock import Clock, utcnow
from atelier.core.exceptions import (
    IllegalTransitionError,
    InvalidInputError,
    NotFoundError,
)
from atelier.core.logging import get_logger
from atelier.database.models.order import Order
from atelier.database.models.revision import Revision
from atelier.schemas.revisions import RevisionRequest
from atelier.services.orders.enums import (
    OrderStatus,
    RevisionStatus,
    get_allowed_revision_transitions,
    validate_revision_status_transition,
)
from atelier.services.pricing.calculator import deposit_for, revision_fee_for
from atelier.services.revisions.repository import RevisionRepository
from atelier.services.storage.cloudinary import StoredObject

logger = get_logger(__name__)

ORIGINATING_SEQUENCE = 0


def merge_revision_fields(order: Order, request: RevisionRequest) -> dict:
    """
    Build the full snapshot for a revision from the order and a request.

    Merge is by presence: a field the caller did not send inherits the
    order's current value, a field sent as null is treated as not sent,
    and measurement zeros are kept.
    """
    measurements = dict(order.measurements or {})
    if request.measurements is not None:
        measurements.update(request.measurements.present_values())

    fields_set = request.model_fields_set
    snapshot = {
        "measurements": measurements,
        "body_concerns": order.body_concerns,
        "color_preference": order.color_preference,
    }
    for name in ("body_concerns", "color_preference"):
        value = getattr(request, name)
        if name in fields_set and value is not None:
            snapshot[name] = value
    return snapshot


class RevisionLedger:
    """
    Records revisions of an order and enforces revision status rules.

    Sequence 0 is the originating snapshot, free and approved at creation.
    Every later sequence is a customer request priced at 10% of the
    order's base price at the time of the request.
    """

    def __init__(
        self,
        session: AsyncSession,
        repository: Optional[RevisionRepository] = None,
        clock: Clock = utcnow,
    ):
        self.session = session
        self.repository = repository or RevisionRepository(session)
        self.clock = clock

    async def create_originating(self, order: Order) -> Revision:
        """
        Record the originating snapshot of an order and put it at
        ``history[0]``.

        Raises:
            RevisionRepositoryError: If the snapshot cannot be stored; the
                order is left untouched in that case
        """
        revision = Revision(
            id=uuid.uuid4(),
            order_id=order.id,
            revision_number=ORIGINATING_SEQUENCE,
            measurements=dict(order.measurements or {}),
            inspiration_photo_url=order.inspiration_photo_url,
            inspiration_storage_id=order.inspiration_storage_id,
            body_concerns=order.body_concerns,
            color_preference=order.color_preference,
            is_free=True,
            revision_fee=revision_fee_for(order.base_price, ORIGINATING_SEQUENCE),
            revision_fee_paid=False,
            status=RevisionStatus.APPROVED,
            revision_reason="Original submission",
            created_by=order.customer_ref,
        )
        await self.repository.add(revision)

        place_at_head(order, revision.id)

        logger.info(
            "Originating snapshot recorded",
            order_id=str(order.id),
            revision_id=str(revision.id),
        )
        return revision

    async def sync_originating(self, order: Order) -> Optional[Revision]:
        """
        Copy an order's current submission fields onto its originating
        snapshot. Only valid while the order has not been quoted.
        """
        revision = await self.find_originating(order.id)
        if revision is None:
            return None

        revision.measurements = dict(order.measurements or {})
        revision.body_concerns = order.body_concerns
        revision.color_preference = order.color_preference
        revision.inspiration_photo_url = order.inspiration_photo_url
        revision.inspiration_storage_id = order.inspiration_storage_id
        revision.updated_by = order.customer_ref
        await self.repository.save(revision)

        logger.debug(
            "Originating snapshot synced",
            order_id=str(order.id),
            revision_id=str(revision.id),
        )
        return revision

    async def request_revision(
        self,
        order: Order,
        request: RevisionRequest,
        image: Optional[StoredObject] = None,
    ) -> Revision:
        """
        Record a customer revision request against an order.

        The sequence number is the number of revisions already stored for
        the order. The caller must hold the order row lock so concurrent
        requests cannot read the same count; the unique constraint on
        (order_id, revision_number) rejects any that slip through.

        Side effects on the order, applied only after the row is stored:
        revision_count + 1, fee added to total_price with the deposit
        re-derived, status set to revision_requested and the revision ID
        appended to history.
        """
        sequence = await self.repository.count_for_order(order.id)
        fee = revision_fee_for(order.base_price, sequence)
        snapshot = merge_revision_fields(order, request)

        revision = Revision(
            id=uuid.uuid4(),
            order_id=order.id,
            revision_number=sequence,
            measurements=snapshot["measurements"],
            inspiration_photo_url=image.url if image else order.inspiration_photo_url,
            inspiration_storage_id=(
                image.storage_id if image else order.inspiration_storage_id
            ),
            body_concerns=snapshot["body_concerns"],
            color_preference=snapshot["color_preference"],
            is_free=sequence == ORIGINATING_SEQUENCE,
            revision_fee=fee,
            revision_fee_paid=False,
            status=RevisionStatus.PENDING,
            revision_reason=request.revision_reason,
            created_by=order.customer_ref,
        )
        await self.repository.add(revision)

        order.revision_count = (order.revision_count or 0) + 1
        order.total_price = order.total_price + fee
        order.deposit_amount = deposit_for(order.total_price)
        order.status = OrderStatus.REVISION_REQUESTED
        order.history = [*(order.history or []), str(revision.id)]

        logger.info(
            "Revision requested",
            order_id=str(order.id),
            revision_id=str(revision.id),
            revision_number=sequence,
            revision_fee=str(fee),
            new_total=str(order.total_price),
        )
        return revision

    async def set_status(
        self,
        revision_id: uuid.UUID,
        new_status: RevisionStatus,
        approver_ref: Optional[str] = None,
        admin_notes: Optional[str] = None,
    ) -> Revision:
        """
        Move a revision along pending -> approved/rejected -> applied.

        Approver and approval time are recorded only on pending ->
        approved.

        Raises:
            NotFoundError: If the revision does not exist
            IllegalTransitionError: If the edge is not allowed; the stored
                revision is not modified
        """
        revision = await self.repository.get_by_id(revision_id, for_update=True)
        if revision is None:
            raise NotFoundError("Revision not found", revision_id=str(revision_id))

        current = revision.status
        if not validate_revision_status_transition(current, new_status):
            allowed = get_allowed_revision_transitions(current)
            raise IllegalTransitionError(
                f"Cannot move revision from {current.value} to {new_status.value}",
                revision_id=str(revision_id),
                current_status=current.value,
                target_status=new_status.value,
                allowed_transitions=sorted(s.value for s in allowed),
            )

        revision.status = new_status
        if current == RevisionStatus.PENDING and new_status == RevisionStatus.APPROVED:
            revision.approved_by = approver_ref
            revision.approved_at = self.clock()
        if admin_notes is not None:
            revision.admin_notes = admin_notes
        revision.updated_by = approver_ref
        await self.repository.save(revision)

        logger.info(
            "Revision status changed",
            revision_id=str(revision_id),
            transition=f"{current.value}->{new_status.value}",
            actor_ref=approver_ref,
        )
        return revision

    async def mark_fee_paid(self, revision_id: uuid.UUID) -> tuple[Revision, bool]:
        """
        Record payment of a revision fee.

        Returns:
            The revision and whether this call changed it; repeated calls
            are no-ops

        Raises:
            NotFoundError: If the revision does not exist
            InvalidInputError: If the revision is free
        """
        revision = await self.repository.get_by_id(revision_id, for_update=True)
        if revision is None:
            raise NotFoundError("Revision not found", revision_id=str(revision_id))
        if revision.is_free or revision.revision_fee <= 0:
            raise InvalidInputError(
                "Revision has no fee to pay",
                revision_id=str(revision_id),
            )
        if revision.revision_fee_paid:
            return revision, False

        revision.revision_fee_paid = True
        await self.repository.save(revision)
        logger.info(
            "Revision fee marked paid",
            revision_id=str(revision_id),
            revision_fee=str(revision.revision_fee),
        )
        return revision, True

    async def get_revision(self, revision_id: uuid.UUID) -> Optional[Revision]:
        return await self.repository.get_by_id(revision_id)

    async def find_originating(self, order_id: uuid.UUID) -> Optional[Revision]:
        return await self.repository.get_by_number(order_id, ORIGINATING_SEQUENCE)

    async def list_for_order(self, order_id: uuid.UUID) -> Sequence[Revision]:
        return await self.repository.list_for_order(order_id)

    async def list_all(self, skip: int = 0, limit: int = 20) -> tuple[Sequence[Revision], int]:
        return await self.repository.list_all(skip=skip, limit=limit)

    async def list_pending(self) -> Sequence[Revision]:
        return await self.repository.list_by_status(RevisionStatus.PENDING)

    async def list_for_customer(self, customer_ref: str) -> Sequence[Revision]:
        return await self.repository.list_for_customer(customer_ref)


def place_at_head(order: Order, revision_id: uuid.UUID) -> None:
    """Put a revision ID at ``history[0]`` without duplicating it."""
    entry = str(revision_id)
    rest = [item for item in (order.history or []) if item != entry]
    # Reassign so the JSONB column is marked dirty.
    order.history = [entry, *rest]
