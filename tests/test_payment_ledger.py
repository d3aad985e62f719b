import pytest
from datetime import datetime
from decimal import Decimal

from emasjid_billing.core.results import ErrorCode
from emasjid_billing.core.uow import finalize
from emasjid_billing.modules.payment.ledger import payment_ledger

NOW = datetime(2025, 3, 1, 8, 0, 0)


@pytest.mark.asyncio
async def test_record_creates_pending_row(db, make_subscription):
    subscription = await make_subscription("masjid-a", tier="pro")
    result = await finalize(db, await payment_ledger.record(db, subscription.id, Decimal("30.00"), "toyyibpay", "BILL-1"))
    assert result.ok
    transaction = result.value
    assert transaction.status == "pending"
    assert transaction.tenant_id == "masjid-a"
    assert transaction.split_billing_details is None


@pytest.mark.asyncio
async def test_premium_row_carries_split_details(db, make_subscription):
    subscription = await make_subscription("masjid-p", tier="premium", status="active")
    result = await finalize(db, await payment_ledger.record(db, subscription.id, "100.00", "toyyibpay", "BILL-P"))
    details = result.value.split_billing_details
    assert Decimal(details["masjid_admin_amount"]) == Decimal("50.00")
    assert Decimal(details["local_admin_amount"]) == Decimal("50.00")
    assert details["local_admin_percentage"] == 50


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["0", "-10.00", "abc"])
async def test_record_rejects_non_positive_amounts(db, make_subscription, amount):
    subscription = await make_subscription("masjid-a")
    result = await finalize(db, await payment_ledger.record(db, subscription.id, amount))
    assert result.code == ErrorCode.VALIDATION_ERROR


@pytest.mark.asyncio
async def test_record_for_unknown_subscription(db):
    result = await finalize(db, await payment_ledger.record(db, 999, "30.00"))
    assert result.code == ErrorCode.NOT_FOUND


@pytest.mark.asyncio
async def test_record_for_cancelled_subscription(db, make_subscription):
    subscription = await make_subscription("masjid-a", status="cancelled")
    result = await finalize(db, await payment_ledger.record(db, subscription.id, "30.00"))
    assert result.code == ErrorCode.VALIDATION_ERROR


@pytest.mark.asyncio
async def test_duplicate_external_id_conflicts(db, make_subscription):
    subscription = await make_subscription("masjid-a")
    await finalize(db, await payment_ledger.record(db, subscription.id, "30.00", "toyyibpay", "BILL-1"))
    result = await finalize(db, await payment_ledger.record(db, subscription.id, "30.00", "toyyibpay", "BILL-1"))
    assert result.code == ErrorCode.CONFLICT


@pytest.mark.asyncio
async def test_same_outcome_twice_applies_once(db, make_subscription):
    subscription = await make_subscription("masjid-a")
    await finalize(db, await payment_ledger.record(db, subscription.id, "30.00", "toyyibpay", "BILL-1"))

    first = await finalize(db, await payment_ledger.apply_gateway_outcome(db, "BILL-1", "completed", now=NOW))
    second = await finalize(db, await payment_ledger.apply_gateway_outcome(db, "BILL-1", "completed"))

    assert first.meta["applied"] is True
    assert second.meta["applied"] is False
    assert first.value.id == second.value.id
    assert second.value.status == "completed"
    assert second.value.paid_at == NOW


@pytest.mark.asyncio
async def test_conflicting_outcome_on_terminal_row(db, make_subscription):
    subscription = await make_subscription("masjid-a")
    await finalize(db, await payment_ledger.record(db, subscription.id, "30.00", "toyyibpay", "BILL-1"))
    await finalize(db, await payment_ledger.apply_gateway_outcome(db, "BILL-1", "completed"))

    result = await finalize(db, await payment_ledger.apply_gateway_outcome(db, "BILL-1", "failed"))
    assert result.code == ErrorCode.CONFLICT

    db.expire_all()
    history = await payment_ledger.history(db, subscription_id=subscription.id)
    assert [tx.status for tx in history.value] == ["completed"]


@pytest.mark.asyncio
async def test_processing_then_failed(db, make_subscription):
    subscription = await make_subscription("masjid-a")
    await finalize(db, await payment_ledger.record(db, subscription.id, "30.00", "toyyibpay", "BILL-1"))
    processing = await finalize(db, await payment_ledger.apply_gateway_outcome(db, "BILL-1", "processing"))
    assert processing.value.status == "processing"

    failed = await finalize(
        db, await payment_ledger.apply_gateway_outcome(db, "BILL-1", "failed", reason="Insufficient balance")
    )
    assert failed.meta["applied"]
    assert failed.value.failure_reason == "Insufficient balance"

    result = await payment_ledger.failed(db, subscription.id)
    assert [tx.external_transaction_id for tx in result.value] == ["BILL-1"]


@pytest.mark.asyncio
async def test_amount_mismatch_is_rejected(db, make_subscription):
    subscription = await make_subscription("masjid-a")
    await finalize(db, await payment_ledger.record(db, subscription.id, "30.00", "toyyibpay", "BILL-1"))
    result = await finalize(db, await payment_ledger.apply_gateway_outcome(db, "BILL-1", "completed", amount="3.00"))
    assert result.code == ErrorCode.VALIDATION_ERROR


@pytest.mark.asyncio
async def test_unknown_external_id_is_not_found(db):
    result = await finalize(db, await payment_ledger.apply_gateway_outcome(db, "BILL-X", "completed"))
    assert result.code == ErrorCode.NOT_FOUND


@pytest.mark.asyncio
async def test_callback_binds_bill_code_through_reference_id(db, make_subscription):
    subscription = await make_subscription("masjid-a")
    recorded = await finalize(db, await payment_ledger.record(db, subscription.id, "30.00"))
    transaction_id = recorded.value.id

    result = await finalize(
        db,
        await payment_ledger.apply_gateway_outcome(
            db, "BILL-9", "completed", reference_id=transaction_id, gateway_reference="TP0001"
        ),
    )
    assert result.meta["applied"]
    assert result.value.external_transaction_id == "BILL-9"
    assert result.value.gateway_reference == "TP0001"


@pytest.mark.asyncio
async def test_pending_lists_open_rows(db, make_subscription):
    subscription = await make_subscription("masjid-a")
    await finalize(db, await payment_ledger.record(db, subscription.id, "30.00", "toyyibpay", "BILL-1"))
    await finalize(db, await payment_ledger.record(db, subscription.id, "30.00", "toyyibpay", "BILL-2"))
    await finalize(db, await payment_ledger.apply_gateway_outcome(db, "BILL-2", "completed"))

    result = await payment_ledger.pending(db)
    assert [tx.external_transaction_id for tx in result.value] == ["BILL-1"]

    history = await payment_ledger.history(db, tenant_id="masjid-a")
    assert history.meta["total"] == 2
