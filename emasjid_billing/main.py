from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from emasjid_billing.modules.tiers.api import router as tiers_router
from emasjid_billing.modules.subscription.api import router as subscription_router
from emasjid_billing.modules.payment.api import router as payment_router
from emasjid_billing.modules.local_admin.api import router as local_admin_router
from emasjid_billing.modules.features.api import router as features_router
from emasjid_billing.core.database import db_manager
from emasjid_billing.core.dependencies import get_db
from emasjid_billing.core.global_error_handler import register_global_exception_handlers
from emasjid_billing.core.config import settings
import logging

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    description="Subscription, payment and local admin billing core for e-Masjid tenants.",
    version="1.0.0"
)

# Register global exception handlers
register_global_exception_handlers(app)

@app.on_event("shutdown")
async def shutdown_event():
    """Close database connections on shutdown."""
    await db_manager.close()
    logger.info("Database engine closed.")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(tiers_router, prefix="/api")
app.include_router(subscription_router, prefix="/api")
app.include_router(payment_router, prefix="/api")
app.include_router(local_admin_router, prefix="/api")
app.include_router(features_router, prefix="/api")

@app.get("/api/")
async def root():
    return {"message": "e-Masjid billing API is running"}

@app.get("/api/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    await db.execute(text("SELECT 1"))
    return {"status": "ok"}
