"""
Order service orchestrating the order lifecycle.

Intake (customer and walk-in), quoting, deposit confirmation, status
changes, submission edits, revision requests and decisions, and the
repair of orders whose originating snapshot was never recorded.

Each operation commits at its own durability points and emits at most one
notification event after the commit that made its change visible.
Order creation is deliberately split into separate commits: the order
itself, its originating snapshot, and the customer's order counter. A
failure after the first commit leaves a valid order that the history
repair loop completes later.
"""

import re
import uuid
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.core.clock import Clock, utcnow
from atelier.core.exceptions import (
    AgreementRequiredError,
    AtelierError,
    IllegalTransitionError,
    InvalidInputError,
    NotFoundError,
    UpstreamUnavailableError,
)
from atelier.core.logging import get_logger, log_performance
from atelier.database.models.order import Order
from atelier.database.models.revision import Revision
from atelier.schemas.orders import ManualOrderSubmission, OrderSubmission, SubmissionUpdate
from atelier.schemas.revisions import RevisionRequest
from atelier.services.notifications.dispatcher import WALK_IN_PREFIX
from atelier.services.notifications.service import NotificationKind, OrderNotifier
from atelier.services.orders.enums import OrderStatus, RevisionStatus
from atelier.services.orders.repository import OrderRepository, OrderRepositoryError
from atelier.services.orders.state_machine import OrderStatusPolicy
from atelier.services.pricing.calculator import (
    RushClassification,
    classify_rush,
    price_order,
    to_money,
)
from atelier.services.profiles.registry import ClientProfileRegistry
from atelier.services.profiles.repository import ProfileRepositoryError
from atelier.services.revisions.ledger import RevisionLedger, place_at_head
from atelier.services.revisions.repository import (
    RevisionConflictError,
    RevisionRepositoryError,
)
from atelier.services.storage.cloudinary import CloudinaryStorage, ImageUpload, StoredObject

logger = get_logger(__name__)

INSPIRATION_FOLDER = "inspiration"
REVISION_NUMBER_ATTEMPTS = 3

PERSISTENCE_ERRORS = (
    OrderRepositoryError,
    ProfileRepositoryError,
    RevisionRepositoryError,
    SQLAlchemyError,
)


def walk_in_ref(phone_number: str) -> str:
    """Customer reference for a walk-in customer, derived from the phone."""
    digits = re.sub(r"\D", "", phone_number or "")
    if not digits:
        raise InvalidInputError(
            "Phone number must contain digits",
            phone_number=phone_number,
        )
    return f"{WALK_IN_PREFIX}{digits}"


class OrderService:
    """
    Order lifecycle operations.

    Attributes:
        repository: Order data access
        ledger: Revision ledger sharing this service's session
        registry: Client profile registry sharing this service's session
        notifier: Optional event notifier; without one no events are sent
        storage: Optional content storage for inspiration photos
        status_policy: Audits operator status changes
    """

    def __init__(
        self,
        session: AsyncSession,
        notifier: Optional[OrderNotifier] = None,
        storage: Optional[CloudinaryStorage] = None,
        repository: Optional[OrderRepository] = None,
        ledger: Optional[RevisionLedger] = None,
        registry: Optional[ClientProfileRegistry] = None,
        status_policy: Optional[OrderStatusPolicy] = None,
        clock: Clock = utcnow,
    ):
        self.session = session
        self.notifier = notifier
        self.storage = storage
        self.clock = clock
        self.repository = repository or OrderRepository(session)
        self.ledger = ledger or RevisionLedger(session, clock=clock)
        self.registry = registry or ClientProfileRegistry(session)
        self.status_policy = status_policy or OrderStatusPolicy()

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    async def create(
        self,
        submission: OrderSubmission,
        customer_ref: str,
        image: Optional[ImageUpload] = None,
    ) -> Order:
        """
        Create an order from a customer submission.

        Args:
            submission: Validated intake form
            customer_ref: Reference of the submitting customer
            image: Optional inspiration photo

        Returns:
            The created order. Its history is empty if the originating
            snapshot could not be recorded.

        Raises:
            AgreementRequiredError: If either agreement was not accepted
            UpstreamUnavailableError: If the photo could not be stored;
                nothing is created in that case
        """
        if not (submission.terms_accepted and submission.revision_policy_accepted):
            raise AgreementRequiredError(
                "Terms and revision policy must both be accepted",
                customer_ref=customer_ref,
                terms_accepted=submission.terms_accepted,
                revision_policy_accepted=submission.revision_policy_accepted,
            )
        return await self._create(submission, customer_ref, image, actor_ref=customer_ref)

    async def create_manual(
        self,
        submission: ManualOrderSubmission,
        image: Optional[ImageUpload] = None,
        actor_ref: Optional[str] = None,
    ) -> Order:
        """
        Record an order for a walk-in customer.

        The customer reference of an existing profile with the same phone
        number is reused; otherwise a ``walkin_<digits>`` reference is
        derived. Agreements are taken as accepted in person.
        """
        phone_number = submission.client_profile.phone_number
        existing = await self.registry.find_by_phone(phone_number)
        customer_ref = existing.customer_ref if existing else walk_in_ref(phone_number)

        logger.info(
            "Recording walk-in order",
            customer_ref=customer_ref,
            existing_profile=existing is not None,
            actor_ref=actor_ref,
        )
        return await self._create(
            submission,
            customer_ref,
            image,
            actor_ref=actor_ref or customer_ref,
            admin_notes=submission.admin_notes,
        )

    async def _create(
        self,
        submission: OrderSubmission,
        customer_ref: str,
        image: Optional[ImageUpload],
        actor_ref: str,
        admin_notes: Optional[str] = None,
    ) -> Order:
        stored = await self._upload_inspiration(image)
        now = self.clock()

        with log_performance(logger, "order_create", customer_ref=customer_ref):
            try:
                profile = await self.registry.upsert_from_submission(
                    customer_ref,
                    submission.client_profile.model_dump(),
                )
                rush = classify_rush(submission.preferred_delivery_date, now)

                order = Order(
                    id=uuid.uuid4(),
                    customer_ref=customer_ref,
                    client_profile=profile.snapshot(),
                    order_type=submission.order_type,
                    occasion=submission.occasion,
                    fabric_preference=submission.fabric_preference,
                    catalog_item_id=submission.catalog_item_id,
                    event_date=submission.event_date,
                    preferred_delivery_date=submission.preferred_delivery_date,
                    measurements=submission.measurements.model_dump(),
                    body_concerns=submission.body_concerns,
                    color_preference=submission.color_preference,
                    inspiration_photo_url=stored.url if stored else None,
                    inspiration_storage_id=stored.storage_id if stored else None,
                    terms_accepted=True,
                    terms_accepted_at=now,
                    revision_policy_accepted=True,
                    revision_policy_accepted_at=now,
                    status=OrderStatus.FORM_SUBMITTED,
                    revision_count=0,
                    base_price=Decimal("0"),
                    total_price=Decimal("0"),
                    deposit_amount=Decimal("0"),
                    deposit_paid=False,
                    final_payment_paid=False,
                    history=[],
                    admin_notes=admin_notes,
                    created_by=actor_ref,
                    updated_by=actor_ref,
                )
                _apply_rush(order, rush)

                await self.repository.add(order)
                await self.session.commit()

            except PERSISTENCE_ERRORS as e:
                await self.session.rollback()
                logger.error(
                    "Failed to create order",
                    customer_ref=customer_ref,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                await self._delete_content(stored.storage_id if stored else None)
                raise

        await self._record_originating(order)

        if not await self.registry.increment_order_count(customer_ref):
            # A failed counter commit rolls back and expires the session
            await self.session.refresh(order)

        logger.info(
            "Order created",
            order_id=str(order.id),
            customer_ref=customer_ref,
            is_rush_order=order.is_rush_order,
            days_until_delivery=order.days_until_delivery,
            has_history=order.has_originating_snapshot,
        )

        self._emit(NotificationKind.ORDER_RECEIVED, order)
        return order

    async def _record_originating(self, order: Order) -> bool:
        """Record and commit the originating snapshot of a new order."""
        try:
            await self.ledger.create_originating(order)
            await self.repository.save(order)
            await self.session.commit()
            return True
        except PERSISTENCE_ERRORS as e:
            await self.session.rollback()
            await self.session.refresh(order)
            logger.error(
                "Originating snapshot not recorded, order left for repair",
                order_id=str(order.id),
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    async def quote(
        self,
        order_id: uuid.UUID,
        base_price: Any,
        delivery_date: Optional[Any] = None,
        actor_ref: Optional[str] = None,
    ) -> Order:
        """
        Price an order and send the bill.

        The rush classification is recomputed against the current time
        (and the new delivery date when one is given), the total and
        deposit are derived from the base price, and the status is set to
        ``bill_sent`` whatever it was before.

        Raises:
            NotFoundError: If the order does not exist
            InvalidInputError: If the base price is not a non-negative number
        """
        base = to_money(base_price, "base_price")
        order = await self._get_for_update(order_id)

        if delivery_date is not None:
            order.preferred_delivery_date = delivery_date
        _apply_rush(order, classify_rush(order.preferred_delivery_date, self.clock()))

        pricing = price_order(base, order.rush_multiplier)
        order.base_price = base
        order.total_price = pricing.total_price
        order.deposit_amount = pricing.deposit_amount
        order.status = OrderStatus.BILL_SENT
        order.updated_by = actor_ref

        await self._commit(order)

        logger.info(
            "Order quoted",
            order_id=str(order_id),
            base_price=str(base),
            rush_multiplier=str(order.rush_multiplier),
            total_price=str(order.total_price),
            deposit_amount=str(order.deposit_amount),
            actor_ref=actor_ref,
        )

        self._emit(NotificationKind.QUOTE_ISSUED, order)
        return order

    async def confirm_deposit(
        self,
        order_id: uuid.UUID,
        actor_ref: Optional[str] = None,
    ) -> Order:
        """
        Record the deposit as paid and move the order to ``paid``.

        Raises:
            NotFoundError: If the order does not exist
        """
        order = await self._get_for_update(order_id)

        order.deposit_paid = True
        order.deposit_paid_at = self.clock()
        order.status = OrderStatus.PAID
        order.updated_by = actor_ref

        await self._commit(order)

        logger.info(
            "Deposit confirmed",
            order_id=str(order_id),
            deposit_amount=str(order.deposit_amount),
            actor_ref=actor_ref,
        )

        self._emit(NotificationKind.DEPOSIT_CONFIRMED, order)
        return order

    async def change_status(
        self,
        order_id: uuid.UUID,
        new_status: OrderStatus,
        actor_ref: Optional[str] = None,
    ) -> Order:
        """
        Set an order's status.

        Any status may be set; moves outside the usual progression are
        logged as warnings.

        Raises:
            NotFoundError: If the order does not exist
        """
        order = await self._get_for_update(order_id)

        change = self.status_policy.evaluate(
            order.status,
            new_status,
            order_id=str(order_id),
            actor_ref=actor_ref,
        )
        order.status = new_status
        order.updated_by = actor_ref

        await self._commit(order)

        logger.info(
            "Order status changed",
            order_id=str(order_id),
            transition=f"{change.previous.value}->{change.new.value}",
            conventional=change.conventional,
            actor_ref=actor_ref,
        )

        self._emit(NotificationKind.STATUS_CHANGED, order)
        return order

    # ------------------------------------------------------------------
    # Customer edits
    # ------------------------------------------------------------------

    async def update_submission(
        self,
        order_id: uuid.UUID,
        customer_ref: str,
        patch: SubmissionUpdate,
        image: Optional[ImageUpload] = None,
    ) -> Order:
        """
        Edit a submission that has not been quoted yet.

        Fields are merged by presence. A new delivery date reclassifies
        the rush tier and reprices when a base price exists. The
        originating snapshot, when present, is kept in sync.

        Raises:
            NotFoundError: If the order does not exist or belongs to
                another customer
            IllegalTransitionError: If the order is past ``form_submitted``
        """
        order = await self._get_owned(order_id, customer_ref)
        _ensure_editable(order)

        stored = await self._upload_inspiration(image)
        try:
            order, previous_storage_id = await self._apply_submission_update(
                order_id,
                customer_ref,
                patch,
                stored,
            )
        except Exception:
            await self._delete_content(stored.storage_id if stored else None)
            raise

        if stored is not None and previous_storage_id:
            await self._delete_content(previous_storage_id)

        logger.info(
            "Submission updated",
            order_id=str(order_id),
            fields=sorted(patch.model_fields_set),
            image_replaced=stored is not None,
        )
        return order

    async def _apply_submission_update(
        self,
        order_id: uuid.UUID,
        customer_ref: str,
        patch: SubmissionUpdate,
        stored: Optional[StoredObject],
    ) -> tuple[Order, Optional[str]]:
        order = await self._get_owned(order_id, customer_ref, for_update=True)
        _ensure_editable(order)
        previous_storage_id = order.inspiration_storage_id

        fields_set = patch.model_fields_set
        for name in (
            "order_type",
            "occasion",
            "fabric_preference",
            "event_date",
            "body_concerns",
            "color_preference",
        ):
            value = getattr(patch, name)
            if name in fields_set and value is not None:
                setattr(order, name, value)

        if patch.measurements is not None:
            order.measurements = {
                **(order.measurements or {}),
                **patch.measurements.present_values(),
            }

        if "preferred_delivery_date" in fields_set and patch.preferred_delivery_date:
            order.preferred_delivery_date = patch.preferred_delivery_date
            _apply_rush(order, classify_rush(order.preferred_delivery_date, self.clock()))
            if order.base_price > 0:
                pricing = price_order(order.base_price, order.rush_multiplier)
                order.total_price = pricing.total_price
                order.deposit_amount = pricing.deposit_amount

        if stored is not None:
            order.inspiration_photo_url = stored.url
            order.inspiration_storage_id = stored.storage_id

        order.updated_by = customer_ref

        await self.ledger.sync_originating(order)
        await self._commit(order)
        return order, previous_storage_id

    # ------------------------------------------------------------------
    # Revisions
    # ------------------------------------------------------------------

    async def request_revision(
        self,
        order_id: uuid.UUID,
        request: RevisionRequest,
        customer_ref: Optional[str] = None,
        image: Optional[ImageUpload] = None,
    ) -> Revision:
        """
        Record a revision request against an order.

        The order row is locked while the sequence number is assigned. If
        another request still wins the number, the transaction is rolled
        back and the request retried a bounded number of times.

        Raises:
            NotFoundError: If the order does not exist, or belongs to
                another customer when ``customer_ref`` is given
            IllegalTransitionError: If the order has been delivered
            RevisionConflictError: If the sequence number stays contended
        """
        await self._get_revisable(order_id, customer_ref)
        stored = await self._upload_inspiration(image)
        try:
            order, revision = await self._record_revision(order_id, request, customer_ref, stored)
        except Exception:
            await self._delete_content(stored.storage_id if stored else None)
            raise

        self._emit(NotificationKind.REVISION_REQUESTED, order, revision)
        return revision

    async def _record_revision(
        self,
        order_id: uuid.UUID,
        request: RevisionRequest,
        customer_ref: Optional[str],
        stored: Optional[StoredObject],
    ) -> tuple[Order, Revision]:
        attempt = 0
        while True:
            attempt += 1
            order = await self._get_revisable(order_id, customer_ref, for_update=True)
            try:
                if await self._ensure_originating(order):
                    logger.warning(
                        "Originating snapshot repaired before revision",
                        order_id=str(order_id),
                    )
                revision = await self.ledger.request_revision(order, request, stored)
                await self.repository.save(order)
                await self.session.commit()

            except RevisionConflictError:
                await self.session.rollback()
                if attempt == REVISION_NUMBER_ATTEMPTS:
                    raise
                logger.warning(
                    "Revision number contended, retrying",
                    order_id=str(order_id),
                    attempt=attempt,
                )
                continue

            except PERSISTENCE_ERRORS as e:
                await self.session.rollback()
                logger.error(
                    "Failed to record revision",
                    order_id=str(order_id),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

            return order, revision

    async def decide_revision(
        self,
        revision_id: uuid.UUID,
        new_status: RevisionStatus,
        actor_ref: Optional[str] = None,
        admin_notes: Optional[str] = None,
    ) -> Revision:
        """
        Approve, reject or apply a revision.

        Applying a revision copies its snapshot onto the order's current
        measurements and preferences.

        Raises:
            NotFoundError: If the revision does not exist
            IllegalTransitionError: If the transition is not allowed
        """
        revision = await self.ledger.set_status(
            revision_id,
            new_status,
            approver_ref=actor_ref,
            admin_notes=admin_notes,
        )

        order = await self.repository.get_by_id(
            revision.order_id,
            for_update=new_status == RevisionStatus.APPLIED,
        )
        if order is not None and new_status == RevisionStatus.APPLIED:
            order.measurements = dict(revision.measurements or {})
            order.body_concerns = revision.body_concerns
            order.color_preference = revision.color_preference
            order.inspiration_photo_url = revision.inspiration_photo_url
            order.inspiration_storage_id = revision.inspiration_storage_id
            order.updated_by = actor_ref
            await self.repository.save(order)

        try:
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise

        if order is not None:
            if new_status == RevisionStatus.APPROVED:
                self._emit(NotificationKind.REVISION_APPROVED, order, revision)
            elif new_status == RevisionStatus.REJECTED:
                self._emit(NotificationKind.REVISION_REJECTED, order, revision)

        return revision

    async def mark_revision_fee_paid(self, revision_id: uuid.UUID) -> Revision:
        """
        Record payment of a revision fee. Repeated calls change nothing
        and send no further notification.

        Raises:
            NotFoundError: If the revision does not exist
            InvalidInputError: If the revision is free
        """
        revision, changed = await self.ledger.mark_fee_paid(revision_id)
        if not changed:
            return revision

        try:
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise

        order = await self.repository.get_by_id(revision.order_id)
        if order is not None:
            self._emit(NotificationKind.REVISION_FEE_PAID, order, revision)
        return revision

    # ------------------------------------------------------------------
    # History repair
    # ------------------------------------------------------------------

    async def repair_history(self, order_id: uuid.UUID) -> Order:
        """
        Make sure an order's originating snapshot exists and sits at
        ``history[0]``. Safe to call any number of times.

        Raises:
            NotFoundError: If the order does not exist
        """
        order = await self._get_for_update(order_id)
        try:
            repaired = await self._ensure_originating(order)
            if repaired:
                await self.repository.save(order)
            await self.session.commit()
        except PERSISTENCE_ERRORS:
            await self.session.rollback()
            raise

        if repaired:
            logger.info("Order history repaired", order_id=str(order_id))
        return order

    async def repair_missing_histories(self, limit: int = 50) -> int:
        """
        Repair orders created without an originating snapshot.

        Returns:
            Number of orders repaired; failures are logged and skipped
        """
        orders = await self.repository.find_missing_history(limit=limit)
        order_ids = [order.id for order in orders]
        repaired = 0

        for order_id in order_ids:
            try:
                await self.repair_history(order_id)
                repaired += 1
            except (AtelierError, SQLAlchemyError) as e:
                logger.error(
                    "History repair failed",
                    order_id=str(order_id),
                    error=str(e),
                    error_type=type(e).__name__,
                )

        if order_ids:
            logger.info(
                "History repair pass finished",
                candidates=len(order_ids),
                repaired=repaired,
            )
        return repaired

    async def _ensure_originating(self, order: Order) -> bool:
        """
        Stage the originating snapshot if missing and put it at the head
        of the history. Returns whether anything changed.
        """
        existing = await self.ledger.find_originating(order.id)
        if existing is None:
            await self.ledger.create_originating(order)
            return True

        entry = str(existing.id)
        if not order.history or order.history[0] != entry:
            place_at_head(order, existing.id)
            return True
        return False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_order(self, order_id: uuid.UUID) -> Optional[Order]:
        return await self.repository.get_by_id(order_id)

    async def list_orders(
        self,
        page: int = 1,
        page_size: int = 20,
        status: Optional[OrderStatus] = None,
        rush_only: bool = False,
        customer_ref: Optional[str] = None,
    ) -> tuple[Sequence[Order], int]:
        """Page through orders newest first. Returns (orders, total)."""
        return await self.repository.list_orders(
            status=status,
            customer_ref=customer_ref,
            rush_only=rush_only,
            skip=(page - 1) * page_size,
            limit=page_size,
        )

    async def dashboard_stats(self) -> dict[str, Any]:
        """Figures for the operator dashboard."""
        stats = await self.repository.get_statistics()
        pending_revisions = await self.ledger.list_pending()
        breakdown: dict[OrderStatus, int] = stats["status_breakdown"]

        return {
            "total_orders": stats["total_orders"],
            "active_orders": sum(
                count for status, count in breakdown.items() if status.is_active()
            ),
            "pending_quotes": breakdown.get(OrderStatus.FORM_SUBMITTED, 0),
            "rush_orders": stats["rush_orders"],
            "ready_orders": breakdown.get(OrderStatus.READY, 0),
            "pending_revisions": len(pending_revisions),
            "total_revenue": stats["total_revenue"],
            "outstanding_balance": stats["outstanding_balance"],
        }

    @staticmethod
    def balance_due(order: Order) -> Decimal:
        return order.balance_due

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _get_for_update(self, order_id: uuid.UUID) -> Order:
        order = await self.repository.get_by_id(order_id, for_update=True)
        if order is None:
            raise NotFoundError("Order not found", order_id=str(order_id))
        return order

    async def _get_owned(
        self,
        order_id: uuid.UUID,
        customer_ref: Optional[str],
        for_update: bool = False,
    ) -> Order:
        order = await self.repository.get_by_id(order_id, for_update=for_update)
        # Another customer's order is reported as missing
        if order is None or (customer_ref is not None and order.customer_ref != customer_ref):
            raise NotFoundError("Order not found", order_id=str(order_id))
        return order

    async def _get_revisable(
        self,
        order_id: uuid.UUID,
        customer_ref: Optional[str],
        for_update: bool = False,
    ) -> Order:
        order = await self._get_owned(order_id, customer_ref, for_update=for_update)
        if order.status == OrderStatus.DELIVERED:
            raise IllegalTransitionError(
                "Delivered orders cannot be revised",
                order_id=str(order_id),
                current_status=order.status.value,
            )
        return order

    async def _commit(self, order: Order) -> None:
        try:
            await self.repository.save(order)
            await self.session.commit()
        except PERSISTENCE_ERRORS as e:
            await self.session.rollback()
            logger.error(
                "Failed to commit order changes",
                order_id=str(order.id),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

    async def _upload_inspiration(self, image: Optional[ImageUpload]) -> Optional[StoredObject]:
        if image is None:
            return None
        if self.storage is None:
            raise UpstreamUnavailableError("Content storage is not configured")
        return await self.storage.upload(image.data, INSPIRATION_FOLDER, image.filename)

    async def _delete_content(self, storage_id: Optional[str]) -> None:
        if storage_id and self.storage is not None:
            await self.storage.delete(storage_id)

    def _emit(
        self,
        kind: NotificationKind,
        order: Order,
        revision: Optional[Revision] = None,
    ) -> None:
        if self.notifier is not None:
            self.notifier.emit(kind, order, revision)


def _apply_rush(order: Order, rush: RushClassification) -> None:
    order.is_rush_order = rush.is_rush
    order.rush_multiplier = rush.multiplier
    order.days_until_delivery = rush.days_until


def _ensure_editable(order: Order) -> None:
    if order.status != OrderStatus.FORM_SUBMITTED:
        raise IllegalTransitionError(
            "Order can only be edited before it is quoted",
            order_id=str(order.id),
            current_status=order.status.value,
        )
