from fastapi import APIRouter

from farmlink.api.schemas import PublicConfigResponse
from farmlink.core.config import settings
from farmlink.core.deps import get_escrow_orchestrator

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


@router.get("/config/public", response_model=PublicConfigResponse)
async def public_config():
    """Public platform configuration (commission, currency)."""
    return PublicConfigResponse(
        platform_commission_rate=get_escrow_orchestrator().commission_rate,
        currency=settings.payment_currency,
        simulated_payments_enabled=settings.simulated_payments_enabled,
    )
