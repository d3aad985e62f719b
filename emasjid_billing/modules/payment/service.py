import hmac
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from emasjid_billing.core.config import settings
from emasjid_billing.core.results import Result, success
from emasjid_billing.models.enums import PaymentStatus, SubscriptionStatus
from emasjid_billing.modules.local_admin.service import capacity_allocator
from emasjid_billing.modules.payment.ledger import payment_ledger
from emasjid_billing.modules.subscription.service import subscription_service
from emasjid_billing.schemas.transaction_schema import PaymentCallback, PaymentCreate

logger = logging.getLogger(__name__)


class BillingService:
    """
    Drives a gateway callback through the ledger, the subscription and the
    local admin earnings. Everything happens in the caller's session, so
    the whole chain commits or rolls back together.
    """

    async def record_payment(self, db: AsyncSession, data: PaymentCreate) -> Result:
        return await payment_ledger.record(
            db,
            data.subscription_id,
            data.amount,
            method=data.method,
            external_transaction_id=data.external_transaction_id,
        )

    def verify_callback(self, callback: PaymentCallback) -> bool:
        secret = settings.PAYMENT_CALLBACK_SECRET
        if not secret:
            return True
        return hmac.compare_digest(callback.hash or "", secret)

    async def process_callback(
        self, db: AsyncSession, callback: PaymentCallback, *, now: Optional[datetime] = None
    ) -> Result:
        now = now or datetime.utcnow()
        result = await payment_ledger.apply_gateway_outcome(
            db,
            callback.external_transaction_id,
            callback.outcome,
            amount=callback.amount,
            reference_id=callback.reference_id,
            gateway_reference=callback.gateway_reference,
            reason=callback.reason,
            now=now,
        )
        if not result.ok or not result.meta.get("applied"):
            return result

        transaction = result.value
        if transaction.status == PaymentStatus.PROCESSING.value:
            return result

        outcome = await subscription_service.apply_payment_outcome(db, transaction, transaction.status, now=now)
        if not outcome.ok:
            return outcome

        if transaction.status == PaymentStatus.COMPLETED.value:
            subscription = outcome.value
            if subscription.status == SubscriptionStatus.ACTIVE.value:
                await payment_ledger.set_billing_period(
                    db, transaction, subscription.current_period_start, subscription.current_period_end
                )
            credit = await capacity_allocator.credit_earnings(db, transaction)
            if not credit.ok:
                return credit

        logger.info(
            "Callback %s processed: payment %s, subscription %s",
            callback.external_transaction_id, transaction.status, outcome.value.status,
        )
        return success(transaction, applied=True)


billing_service = BillingService()
