from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from emasjid_billing.core.dependencies import get_db
from emasjid_billing.core.global_error_handler import unwrap
from emasjid_billing.modules.features.service import feature_gate
from emasjid_billing.schemas.feature_schema import FeatureAccess

router = APIRouter()


@router.get("/tenants/{tenant_id}/features/{feature_key}", response_model=FeatureAccess)
async def check_feature_access(
    tenant_id: str,
    feature_key: str,
    usage: Optional[int] = Query(default=None, ge=0, description="Current usage for numeric limits"),
    db: AsyncSession = Depends(get_db),
):
    """Called by the e-Masjid apps before rendering or serving a gated feature."""
    return unwrap(await feature_gate.can_use(db, tenant_id, feature_key, usage))
