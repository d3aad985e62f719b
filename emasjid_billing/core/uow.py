from sqlalchemy.ext.asyncio import AsyncSession

from emasjid_billing.core.cache import apply_invalidations, discard_invalidations
from emasjid_billing.core.results import Result


async def finalize(db: AsyncSession, result: Result) -> Result:
    """Commit the session when the operation succeeded, roll it back otherwise."""
    if result.ok:
        await db.commit()
        apply_invalidations(db)
    else:
        await db.rollback()
        discard_invalidations(db)
    return result
