from fastapi import APIRouter, HTTPException, status

from emasjid_billing.core.config import settings
from emasjid_billing.models.enums import Tier
from emasjid_billing.modules.tiers.catalog import TierDefinition, tier_catalog
from emasjid_billing.schemas.tier_schema import TierCatalogResponse, TierFeatures, TierPublic

router = APIRouter()


def _to_public(definition: TierDefinition) -> TierPublic:
    return TierPublic(
        tier=definition.tier,
        display_name=definition.display_name,
        description=definition.description,
        features=TierFeatures.model_validate(definition.features),
        monthly_price=definition.monthly_price,
        yearly_price=definition.yearly_price,
        local_admin_share_percent=definition.local_admin_share_percent,
        platform_share_percent=definition.platform_share_percent,
        includes_local_admin=definition.includes_local_admin,
        recommended=definition.recommended,
    )


@router.get("/tiers", response_model=TierCatalogResponse)
async def list_tiers():
    return TierCatalogResponse(
        version=tier_catalog.version,
        currency=settings.CURRENCY,
        tiers=[_to_public(d) for d in tier_catalog.list_tiers()],
    )


@router.get("/tiers/{tier}", response_model=TierPublic)
async def get_tier(tier: str):
    try:
        definition = tier_catalog.get_tier(tier)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown tier '{tier}'. Expected one of: {', '.join(t.value for t in Tier)}",
        )
    return _to_public(definition)
