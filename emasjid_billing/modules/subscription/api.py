from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from emasjid_billing.core.dependencies import (
    ensure_tenant_access,
    get_current_super_admin,
    get_current_user,
    get_db,
)
from emasjid_billing.core.global_error_handler import unwrap
from emasjid_billing.core.uow import finalize
from emasjid_billing.modules.subscription.service import subscription_service
from emasjid_billing.schemas.subscription_schema import (
    EvaluationResponse,
    Subscription,
    SubscriptionCreate,
    SweepResponse,
    TierChangeRequest,
    TransitionRequest,
)
from emasjid_billing.schemas.token_schema import TokenData

router = APIRouter()


@router.post("/subscriptions", response_model=Subscription, status_code=status.HTTP_201_CREATED)
async def create_subscription(
    data: SubscriptionCreate,
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    ensure_tenant_access(current_user, data.tenant_id)
    result = await subscription_service.create_subscription(db, data, actor_id=current_user.sub)
    return unwrap(await finalize(db, result))


@router.post("/subscriptions/sweep", response_model=SweepResponse)
async def run_sweep(current_user: TokenData = Depends(get_current_super_admin)):
    """Runs the scheduled sweep on demand. Each tenant is evaluated in its own transaction."""
    return await subscription_service.sweep()


@router.get("/subscriptions/{tenant_id}", response_model=Subscription)
async def get_subscription(
    tenant_id: str,
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    ensure_tenant_access(current_user, tenant_id)
    return unwrap(await subscription_service.get_subscription(db, tenant_id))


@router.post("/subscriptions/{tenant_id}/transitions", response_model=Subscription)
async def transition_subscription(
    tenant_id: str,
    request: TransitionRequest,
    current_user: TokenData = Depends(get_current_super_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await subscription_service.transition(
        db, tenant_id, request.target_status, reason=request.reason, actor_id=current_user.sub
    )
    return unwrap(await finalize(db, result))


@router.post("/subscriptions/{tenant_id}/evaluate", response_model=EvaluationResponse)
async def evaluate_subscription(
    tenant_id: str,
    current_user: TokenData = Depends(get_current_super_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await finalize(db, await subscription_service.evaluate_due(db, tenant_id))
    subscription = unwrap(result)
    return EvaluationResponse(
        subscription=Subscription.model_validate(subscription),
        transitioned=result.meta.get("transitioned", False),
        previous_status=result.meta.get("previous_status", subscription.status),
    )


@router.post("/subscriptions/{tenant_id}/tier", response_model=Subscription)
async def change_subscription_tier(
    tenant_id: str,
    request: TierChangeRequest,
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    ensure_tenant_access(current_user, tenant_id)
    result = await subscription_service.change_tier(db, tenant_id, request, actor_id=current_user.sub)
    return unwrap(await finalize(db, result))
