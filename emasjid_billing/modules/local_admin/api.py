from typing import List

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from emasjid_billing.core.dependencies import (
    ensure_local_admin_access,
    get_current_super_admin,
    get_current_user,
    get_db,
)
from emasjid_billing.core.global_error_handler import unwrap
from emasjid_billing.core.uow import finalize
from emasjid_billing.modules.local_admin.service import capacity_allocator
from emasjid_billing.schemas.local_admin_schema import (
    Assignment,
    AssignmentCreate,
    EarningsReport,
    LocalAdmin,
    LocalAdminCreate,
    LocalAdminUpdate,
)
from emasjid_billing.schemas.token_schema import TokenData

router = APIRouter()


@router.post("/local-admins", response_model=LocalAdmin, status_code=status.HTTP_201_CREATED)
async def create_local_admin(
    data: LocalAdminCreate,
    current_user: TokenData = Depends(get_current_super_admin),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await finalize(db, await capacity_allocator.create_local_admin(db, data)))


@router.get("/local-admins", response_model=List[LocalAdmin])
async def list_local_admins(
    available_only: bool = Query(default=False),
    current_user: TokenData = Depends(get_current_super_admin),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await capacity_allocator.list_local_admins(db, available_only=available_only))


@router.get("/local-admins/{local_admin_id}", response_model=LocalAdmin)
async def get_local_admin(
    local_admin_id: int,
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    ensure_local_admin_access(current_user, local_admin_id)
    return unwrap(await capacity_allocator.get_local_admin(db, local_admin_id))


@router.patch("/local-admins/{local_admin_id}", response_model=LocalAdmin)
async def update_local_admin(
    local_admin_id: int,
    data: LocalAdminUpdate,
    current_user: TokenData = Depends(get_current_super_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await capacity_allocator.update_local_admin(db, local_admin_id, data)
    return unwrap(await finalize(db, result))


@router.post(
    "/local-admins/{local_admin_id}/assignments",
    response_model=Assignment,
    status_code=status.HTTP_201_CREATED,
)
async def assign_tenant(
    local_admin_id: int,
    data: AssignmentCreate,
    current_user: TokenData = Depends(get_current_super_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await capacity_allocator.assign(db, data.tenant_id, local_admin_id, actor_id=current_user.sub)
    return unwrap(await finalize(db, result))


@router.get("/local-admins/{local_admin_id}/assignments", response_model=List[Assignment])
async def list_assignments(
    local_admin_id: int,
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    ensure_local_admin_access(current_user, local_admin_id)
    return unwrap(await capacity_allocator.list_assignments(db, local_admin_id))


@router.delete(
    "/local-admins/{local_admin_id}/assignments/{tenant_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def unassign_tenant(
    local_admin_id: int,
    tenant_id: str,
    current_user: TokenData = Depends(get_current_super_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await capacity_allocator.unassign(
        db, tenant_id, local_admin_id=local_admin_id, actor_id=current_user.sub
    )
    unwrap(await finalize(db, result))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/local-admins/{local_admin_id}/earnings", response_model=EarningsReport)
async def get_earnings(
    local_admin_id: int,
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    ensure_local_admin_access(current_user, local_admin_id)
    return unwrap(await capacity_allocator.earnings_report(db, local_admin_id))


@router.post("/local-admins/{local_admin_id}/earnings/recompute", response_model=EarningsReport)
async def recompute_earnings(
    local_admin_id: int,
    current_user: TokenData = Depends(get_current_super_admin),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await finalize(db, await capacity_allocator.recompute_earnings(db, local_admin_id)))
