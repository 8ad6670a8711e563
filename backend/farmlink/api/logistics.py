from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.api.schemas import (
    ProviderListResponse,
    QuoteListResponse,
    QuoteRequest,
    ServiceType,
    ShipmentCreate,
    ShipmentListResponse,
    ShipmentResponse,
    TrackingUpdate,
)
from farmlink.core.deps import get_db
from farmlink.core.security import get_current_user
from farmlink.models.profile import Profile
from farmlink.services import logistics as logistics_svc

router = APIRouter(prefix="/logistics", tags=["logistics"])


@router.get("/providers", response_model=ProviderListResponse)
async def list_providers(
    type: str | None = None,
    service_type: ServiceType | None = None,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    providers = await logistics_svc.list_providers(db, provider_type=type, service_type=service_type)
    return ProviderListResponse(providers=providers)


@router.get("/quotes", response_model=QuoteListResponse)
async def list_quotes(
    contract_id: int,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return QuoteListResponse(quotes=await logistics_svc.list_quotes(db, user.id, contract_id))


@router.post("/quotes", response_model=QuoteListResponse, status_code=201)
async def request_quotes(
    body: QuoteRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return QuoteListResponse(quotes=await logistics_svc.request_quotes(db, user.id, body))


@router.get("/shipments", response_model=ShipmentListResponse)
async def list_shipments(
    contract_id: int | None = None,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    shipments = await logistics_svc.list_shipments(db, user.id, contract_id)
    return ShipmentListResponse(shipments=shipments)


@router.post("/shipments", response_model=ShipmentResponse, status_code=201)
async def book_shipment(
    body: ShipmentCreate,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await logistics_svc.book_shipment(db, user.id, body)


@router.post("/shipments/{shipment_id}/tracking", response_model=ShipmentResponse)
async def add_tracking_event(
    shipment_id: int,
    body: TrackingUpdate,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await logistics_svc.add_tracking_event(db, user.id, shipment_id, body)
