"""Escrow funding, release and payment-processor webhook endpoints."""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.api.schemas import (
    CreateIntentRequest,
    CreateIntentResponse,
    EscrowFundRequest,
    EscrowFundResponse,
    EscrowListResponse,
    ProcessPaymentRequest,
    ProcessPaymentResponse,
    ReleaseRequest,
    ReleaseResponse,
    WebhookAck,
)
from farmlink.core.config import settings
from farmlink.core.deps import get_db, get_escrow_orchestrator
from farmlink.core.errors import NotFoundError
from farmlink.core.rate_limit import limiter
from farmlink.core.security import get_current_user
from farmlink.models.profile import Profile
from farmlink.services.escrow import CARD_METHOD, EscrowOrchestrator
from farmlink.services.payments.gateway import verify_webhook_signature
from farmlink.services.payments.webhook import handle_gateway_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])

DECLINE_MESSAGE = "Payment failed. Please try again or use a different payment method."


@router.post("/escrow", response_model=EscrowFundResponse)
@limiter.limit(settings.rate_limit_payments)
async def fund_escrow(
    request: Request,
    body: EscrowFundRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    orchestrator: EscrowOrchestrator = Depends(get_escrow_orchestrator),
):
    """Open (if needed) the contract's escrow and record a pending deposit for its total."""
    escrow = await orchestrator.escrow_for_buyer(db, body.contract_id, user.id)
    attempt = await orchestrator.fund_escrow(
        db, escrow.id, escrow.total_amount, body.payment_method, actor_id=user.id,
    )
    return EscrowFundResponse(
        escrow_id=escrow.id,
        transaction_id=attempt.transaction.id,
        amount=escrow.total_amount,
        commission=escrow.platform_commission,
        farmer_amount=escrow.farmer_amount,
    )


@router.get("/escrow", response_model=EscrowListResponse)
async def list_escrows(
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    orchestrator: EscrowOrchestrator = Depends(get_escrow_orchestrator),
):
    escrows = await orchestrator.list_escrows_for_user(db, user.id)
    return EscrowListResponse(escrow_accounts=escrows)


@router.post("/create-intent", response_model=CreateIntentResponse)
@limiter.limit(settings.rate_limit_payments)
async def create_intent(
    request: Request,
    body: CreateIntentRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    orchestrator: EscrowOrchestrator = Depends(get_escrow_orchestrator),
):
    escrow = await orchestrator.escrow_for_buyer(db, body.contract_id, user.id)
    attempt = await orchestrator.fund_escrow(
        db, escrow.id, body.amount, CARD_METHOD, actor_id=user.id,
    )
    return CreateIntentResponse(
        client_secret=attempt.intent.client_secret,
        payment_intent_id=attempt.intent.id,
    )


@router.post("/process", response_model=ProcessPaymentResponse)
@limiter.limit(settings.rate_limit_payments)
async def process_payment(
    request: Request,
    body: ProcessPaymentRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    orchestrator: EscrowOrchestrator = Depends(get_escrow_orchestrator),
):
    """Synchronously settle a pending deposit without the processor round trip."""
    if not settings.simulated_payments_enabled:
        raise NotFoundError()

    succeeded = await orchestrator.process_simulated_payment(
        db, body.transaction_id, user.id, body.payment_details,
    )
    if not succeeded:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": DECLINE_MESSAGE, "message": DECLINE_MESSAGE},
        )
    return ProcessPaymentResponse(
        success=True,
        message="Payment processed successfully. Funds are now in escrow.",
        transaction_id=body.transaction_id,
    )


@router.post("/release", response_model=ReleaseResponse)
@limiter.limit(settings.rate_limit_payments)
async def release_payment(
    request: Request,
    body: ReleaseRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    orchestrator: EscrowOrchestrator = Depends(get_escrow_orchestrator),
):
    receipt = await orchestrator.release_payment(
        db, body.escrow_id, user.id, verification_notes=body.verification_notes,
    )
    return ReleaseResponse(farmer_amount=receipt.farmer_amount, commission=receipt.commission)


@router.post("/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    orchestrator: EscrowOrchestrator = Depends(get_escrow_orchestrator),
):
    """Processor callback. Any verified event is acknowledged with 200."""
    raw_body = await request.body()
    event = verify_webhook_signature(
        raw_body,
        request.headers.get("stripe-signature"),
        settings.stripe_webhook_secret,
    )
    logger.info("Webhook event %s (%s) received", event.id, event.type)
    await handle_gateway_event(db, event, orchestrator)
    return WebhookAck()
