import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from emasjid_billing.core.results import ErrorCode, Result, failure, success
from emasjid_billing.models.enums import PaymentMethod, PaymentStatus, SubscriptionStatus, Tier
from emasjid_billing.models.transaction_model import PaymentTransaction
from emasjid_billing.modules.payment.split_billing import SplitBillingError, compute_split
from emasjid_billing.modules.tiers.catalog import TierCatalog, tier_catalog
from emasjid_billing.repository.payment_repository import OPEN_STATUSES, payment_repository
from emasjid_billing.repository.subscription_repository import subscription_repository
from emasjid_billing.utils.activity_logger import log_billing_event
from emasjid_billing.utils.money import to_money

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (PaymentStatus.COMPLETED.value, PaymentStatus.FAILED.value, PaymentStatus.REFUNDED.value)


class PaymentLedger:
    """
    Append-only record of payment attempts.

    Gateway outcomes are applied at most once per transaction: the status
    column only ever moves out of pending/processing through a conditional
    update, so a replayed callback can never apply twice.
    """

    def __init__(self, catalog: TierCatalog = tier_catalog):
        self.catalog = catalog

    async def record(
        self,
        db: AsyncSession,
        subscription_id: int,
        amount,
        method=PaymentMethod.TOYYIBPAY,
        external_transaction_id: Optional[str] = None,
    ) -> Result:
        try:
            amount = to_money(amount)
        except ValueError as e:
            return failure(ErrorCode.VALIDATION_ERROR, str(e))
        if amount <= 0:
            return failure(ErrorCode.VALIDATION_ERROR, "Payment amount must be greater than zero")

        subscription = await subscription_repository.get(db, subscription_id)
        if subscription is None:
            return failure(ErrorCode.NOT_FOUND, f"Subscription {subscription_id} not found")
        if subscription.status == SubscriptionStatus.CANCELLED.value:
            return failure(
                ErrorCode.VALIDATION_ERROR,
                f"Subscription {subscription_id} is cancelled and cannot take payments",
            )

        if external_transaction_id:
            existing = await payment_repository.get_by_external_id(db, external_transaction_id)
            if existing:
                return failure(
                    ErrorCode.CONFLICT,
                    f"Payment with external id {external_transaction_id} already recorded",
                    {"transaction_id": existing.id},
                )

        split_details = None
        if subscription.tier == Tier.PREMIUM.value:
            try:
                split = compute_split(amount, self.catalog.get_tier(subscription.tier))
            except SplitBillingError as e:
                return failure(ErrorCode.VALIDATION_ERROR, str(e))
            split_details = split.model_dump(mode="json")

        transaction = PaymentTransaction(
            subscription_id=subscription.id,
            tenant_id=subscription.tenant_id,
            amount=amount,
            payment_method=PaymentMethod(method).value,
            status=PaymentStatus.PENDING.value,
            external_transaction_id=external_transaction_id,
            split_billing_details=split_details,
        )
        db.add(transaction)
        try:
            await db.flush()
        except IntegrityError:
            return failure(
                ErrorCode.CONFLICT, f"Payment with external id {external_transaction_id} already recorded"
            )
        await db.refresh(transaction)

        await log_billing_event(
            db,
            subscription.tenant_id,
            "Payment/Record",
            f"Payment {transaction.id} of {amount} recorded for subscription {subscription.id} via {transaction.payment_method}.",
        )
        return success(transaction)

    async def apply_gateway_outcome(
        self,
        db: AsyncSession,
        external_transaction_id: str,
        outcome,
        *,
        amount=None,
        reference_id: Optional[int] = None,
        gateway_reference: Optional[str] = None,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Result:
        """
        Apply a gateway outcome to the transaction it names.

        The result carries `applied=True` only for the call that actually
        moved the row; replays of the same outcome return the stored row
        with `applied=False`.
        """
        now = now or datetime.utcnow()
        outcome = PaymentStatus(outcome)
        if outcome not in (PaymentStatus.PROCESSING, PaymentStatus.COMPLETED, PaymentStatus.FAILED):
            return failure(ErrorCode.VALIDATION_ERROR, f"Unsupported gateway outcome: {outcome.value}")

        transaction = await payment_repository.get_by_external_id(db, external_transaction_id)
        if transaction is None and reference_id is not None:
            transaction = await self._bind_by_reference(db, reference_id, external_transaction_id)
        if transaction is None:
            logger.warning("Gateway callback for unknown transaction %s", external_transaction_id)
            return failure(ErrorCode.NOT_FOUND, f"No payment for external id {external_transaction_id}")

        if amount is not None:
            try:
                reported = to_money(amount)
            except ValueError as e:
                return failure(ErrorCode.VALIDATION_ERROR, str(e))
            if reported != to_money(transaction.amount):
                logger.warning(
                    "Amount mismatch on %s: recorded %s, gateway reported %s",
                    external_transaction_id, transaction.amount, reported,
                )
                return failure(
                    ErrorCode.VALIDATION_ERROR,
                    "Reported amount does not match the recorded payment",
                    {"recorded": str(transaction.amount), "reported": str(reported)},
                )

        if transaction.status == outcome.value:
            logger.info("Replayed %s outcome for %s ignored", outcome.value, external_transaction_id)
            return success(transaction, applied=False)
        if transaction.status in TERMINAL_STATUSES:
            logger.warning(
                "Conflicting outcome %s for %s, already %s",
                outcome.value, external_transaction_id, transaction.status,
            )
            return failure(
                ErrorCode.CONFLICT,
                f"Payment {external_transaction_id} is already {transaction.status}",
                {"current_status": transaction.status, "reported_outcome": outcome.value},
            )

        values = {"status": outcome.value, "updated_at": now}
        if gateway_reference:
            values["gateway_reference"] = gateway_reference
        if outcome == PaymentStatus.COMPLETED:
            values["paid_at"] = now
        elif outcome == PaymentStatus.FAILED:
            values["failed_at"] = now
            values["failure_reason"] = reason or "Payment failed at gateway"

        if outcome == PaymentStatus.PROCESSING:
            from_statuses = (PaymentStatus.PENDING.value,)
        else:
            from_statuses = OPEN_STATUSES

        applied = await payment_repository.transition_status(
            db, transaction.id, from_statuses=from_statuses, values=values
        )
        await db.refresh(transaction)
        if not applied:
            # Another callback moved the row between our read and our update.
            if transaction.status == outcome.value:
                return success(transaction, applied=False)
            return failure(
                ErrorCode.CONFLICT,
                f"Payment {external_transaction_id} is already {transaction.status}",
                {"current_status": transaction.status, "reported_outcome": outcome.value},
            )

        await log_billing_event(
            db,
            transaction.tenant_id,
            "Payment/Outcome",
            f"Payment {transaction.id} ({external_transaction_id}) marked {outcome.value}.",
            timestamp=now,
        )
        logger.info("Payment %s marked %s", external_transaction_id, outcome.value)
        return success(transaction, applied=True)

    async def _bind_by_reference(
        self, db: AsyncSession, reference_id: int, external_transaction_id: str
    ) -> Optional[PaymentTransaction]:
        transaction = await payment_repository.get(db, reference_id)
        if transaction is None or transaction.external_transaction_id is not None:
            return None
        if not await payment_repository.bind_external_id(db, transaction.id, external_transaction_id):
            return None
        await db.refresh(transaction)
        return transaction

    async def set_billing_period(
        self, db: AsyncSession, transaction: PaymentTransaction, start: datetime, end: datetime
    ) -> None:
        transaction.billing_period_start = start
        transaction.billing_period_end = end
        await db.flush()

    async def history(
        self,
        db: AsyncSession,
        *,
        subscription_id: Optional[int] = None,
        tenant_id: Optional[str] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Result:
        items, total = await payment_repository.list_filtered(
            db, subscription_id=subscription_id, tenant_id=tenant_id, status=status, skip=skip, limit=limit
        )
        return success(items, total=total)

    async def pending(self, db: AsyncSession, *, older_than: Optional[datetime] = None) -> Result:
        return success(await payment_repository.list_by_status(db, OPEN_STATUSES, older_than=older_than))

    async def failed(self, db: AsyncSession, subscription_id: int) -> Result:
        return success(
            await payment_repository.list_by_status(db, (PaymentStatus.FAILED.value,), subscription_id=subscription_id)
        )


payment_ledger = PaymentLedger()
