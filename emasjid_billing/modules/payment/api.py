import json
import logging
import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from emasjid_billing.core.dependencies import (
    MASJID_ADMIN,
    SUPER_ADMIN,
    ensure_tenant_access,
    get_current_super_admin,
    get_current_user,
    get_db,
)
from emasjid_billing.core.global_error_handler import unwrap
from emasjid_billing.core.results import ErrorCode, failure
from emasjid_billing.core.uow import finalize
from emasjid_billing.models.enums import PaymentStatus
from emasjid_billing.modules.payment.ledger import payment_ledger
from emasjid_billing.modules.payment.service import billing_service
from emasjid_billing.repository.subscription_repository import subscription_repository
from emasjid_billing.schemas.token_schema import TokenData
from emasjid_billing.schemas.transaction_schema import (
    PaymentCallback,
    PaymentCreate,
    PaymentTransaction,
    PaymentTransactionListResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# ToyyibPay posts form fields under its own names.
GATEWAY_FIELD_ALIASES = {
    "billcode": "external_transaction_id",
    "status_id": "outcome",
    "status": "outcome",
    "order_id": "reference_id",
    "refno": "gateway_reference",
}


async def _parse_payload(request: Request) -> dict:
    """Best-effort payload parsing for JSON or form-urlencoded."""
    try:
        if request.headers.get("content-type", "").startswith("application/json"):
            raw = await request.json()
        else:
            raw = dict(await request.form())
    except Exception:
        body_bytes = await request.body()
        try:
            raw = json.loads(body_bytes.decode("utf-8"))
        except ValueError:
            return {}
    if not isinstance(raw, dict):
        return {}

    payload = {}
    for key, value in raw.items():
        key = str(key).lower()
        target = GATEWAY_FIELD_ALIASES.get(key, key)
        if target not in payload or key == target:
            payload[target] = value
    return payload


@router.post("/payments", response_model=PaymentTransaction, status_code=status.HTTP_201_CREATED)
async def record_payment(
    data: PaymentCreate,
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if current_user.role != SUPER_ADMIN:
        subscription = await subscription_repository.get(db, data.subscription_id)
        if subscription is not None:
            ensure_tenant_access(current_user, subscription.tenant_id)
    result = await billing_service.record_payment(db, data)
    return unwrap(await finalize(db, result))


@router.post("/payments/callback", response_model=PaymentTransaction)
async def payment_callback(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Webhook target for the payment gateway. Any non-2xx answer makes the
    gateway retry, so unknown transactions are reported, never dropped.
    """
    payload = await _parse_payload(request)
    try:
        callback = PaymentCallback.model_validate(payload)
    except ValidationError as e:
        logger.warning("Malformed payment callback: %s", e.errors())
        errors = e.errors(include_url=False, include_context=False, include_input=False)
        unwrap(failure(ErrorCode.VALIDATION_ERROR, "Malformed payment callback", {"errors": errors}))

    if not billing_service.verify_callback(callback):
        logger.warning("Payment callback for %s failed hash verification", callback.external_transaction_id)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid callback signature")

    result = await billing_service.process_callback(db, callback)
    return unwrap(await finalize(db, result))


@router.get("/payments", response_model=PaymentTransactionListResponse)
async def list_payments(
    subscription_id: Optional[int] = Query(default=None),
    tenant_id: Optional[str] = Query(default=None),
    payment_status: Optional[PaymentStatus] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if current_user.role == MASJID_ADMIN:
        if tenant_id is not None:
            ensure_tenant_access(current_user, tenant_id)
        tenant_id = current_user.tenant_id
    elif current_user.role != SUPER_ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="The user does not have access to payment history",
        )

    result = await payment_ledger.history(
        db,
        subscription_id=subscription_id,
        tenant_id=tenant_id,
        status=payment_status.value if payment_status else None,
        skip=(page - 1) * limit,
        limit=limit,
    )
    items = unwrap(result)
    total = result.meta.get("total", 0)
    return PaymentTransactionListResponse(
        items=[PaymentTransaction.model_validate(tx) for tx in items],
        total=total,
        current_page=page,
        total_pages=math.ceil(total / limit) if total else 0,
    )


@router.get("/payments/pending", response_model=list[PaymentTransaction])
async def list_pending_payments(
    current_user: TokenData = Depends(get_current_super_admin),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await payment_ledger.pending(db))
