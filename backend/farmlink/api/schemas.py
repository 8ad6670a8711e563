from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field, computed_field, model_validator

from farmlink.services.contract_state_machine import BidAction, get_allowed_transitions


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


class ProfileBrief(BaseModel):
    id: int
    full_name: str | None = None
    user_type: str
    company_name: str | None = None
    location: str | None = None

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


class ContractCreate(BaseModel):
    buyer_id: int | None = None
    crop_type: str = Field(..., min_length=1, max_length=100)
    quantity: Decimal = Field(..., gt=0, max_digits=14, decimal_places=3)
    price_per_unit: Decimal = Field(..., gt=0, max_digits=14, decimal_places=4)
    delivery_date: date
    quality_standards: str | None = None
    payment_terms: str | None = None


class ContractStatusUpdate(BaseModel):
    status: Literal["pending", "active", "completed", "cancelled"]
    notes: str | None = Field(default=None, max_length=2000)


class ContractResponse(BaseModel):
    id: int
    farmer_id: int
    buyer_id: int | None
    crop_type: str
    quantity: Decimal
    price_per_unit: Decimal
    total_amount: Decimal
    delivery_date: date
    status: str
    quality_standards: str | None = None
    payment_terms: str
    farmer: ProfileBrief | None = None
    buyer: ProfileBrief | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def allowed_transitions(self) -> list[str]:
        return get_allowed_transitions(self.status)


class ContractSummary(BaseModel):
    id: int
    crop_type: str
    quantity: Decimal
    status: str
    delivery_date: date

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Bid
# ---------------------------------------------------------------------------


class BidCreate(BaseModel):
    bid_amount: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)
    message: str | None = Field(default=None, max_length=2000)


class BidResolve(BaseModel):
    action: BidAction


class BidResponse(BaseModel):
    id: int
    contract_id: int
    bidder_id: int
    bid_amount: Decimal
    message: str | None = None
    status: str
    bidder: ProfileBrief | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


class EscrowFundRequest(BaseModel):
    contract_id: int
    payment_method: str = Field(..., min_length=1, max_length=50)


class EscrowFundResponse(BaseModel):
    escrow_id: int
    transaction_id: int
    amount: Decimal
    commission: Decimal
    farmer_amount: Decimal


class CreateIntentRequest(BaseModel):
    contract_id: int
    amount: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)


class CreateIntentResponse(BaseModel):
    client_secret: str | None
    payment_intent_id: str


class ProcessPaymentRequest(BaseModel):
    transaction_id: int
    payment_details: dict = Field(default_factory=dict)


class ProcessPaymentResponse(BaseModel):
    success: bool
    message: str
    transaction_id: int


class ReleaseRequest(BaseModel):
    escrow_id: int
    verification_notes: str | None = Field(default=None, max_length=2000)


class ReleaseResponse(BaseModel):
    success: bool = True
    message: str = "Payment released successfully to farmer"
    farmer_amount: Decimal
    commission: Decimal


class PaymentTransactionResponse(BaseModel):
    id: int
    transaction_type: str
    amount: Decimal
    payment_method: str
    payment_gateway_id: str | None = None
    status: str
    failure_reason: str | None = None
    processed_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class EscrowResponse(BaseModel):
    id: int
    contract_id: int
    buyer_id: int
    farmer_id: int
    total_amount: Decimal
    platform_commission_rate: Decimal
    platform_commission: Decimal
    farmer_amount: Decimal
    status: str
    funded_at: datetime | None = None
    released_at: datetime | None = None
    contract: ContractSummary | None = None
    transactions: list[PaymentTransactionResponse] = []
    created_at: datetime

    model_config = {"from_attributes": True}


class EscrowListResponse(BaseModel):
    escrow_accounts: list[EscrowResponse]


class WebhookAck(BaseModel):
    received: bool = True


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class NotificationResponse(BaseModel):
    id: int
    type: str
    title: str
    content: str
    related_id: int | None = None
    read_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    unread_count: int


class NotificationMarkRead(BaseModel):
    notification_ids: list[int] | None = None
    mark_all: bool = False

    @model_validator(mode="after")
    def _require_target(self) -> "NotificationMarkRead":
        if not self.mark_all and self.notification_ids is None:
            raise ValueError("notification_ids or mark_all is required")
        return self


class NotificationMarkReadResponse(BaseModel):
    updated: int


# ---------------------------------------------------------------------------
# Ratings
# ---------------------------------------------------------------------------

RatingCategory = Literal["communication", "quality", "timeliness", "overall"]


class RatingSubmit(BaseModel):
    contract_id: int
    reviewee_id: int
    ratings: dict[RatingCategory, int] = Field(..., min_length=1)
    review_text: str | None = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def _check_scores(self) -> "RatingSubmit":
        for category, score in self.ratings.items():
            if not 1 <= score <= 5:
                raise ValueError(f"{category} rating must be between 1 and 5")
        return self


class ReviewerBrief(BaseModel):
    full_name: str | None = None
    user_type: str

    model_config = {"from_attributes": True}


class RatingResponse(BaseModel):
    id: int
    contract_id: int
    reviewer_id: int
    reviewee_id: int
    category: str
    rating: int
    review_text: str | None = None
    reviewer: ReviewerBrief | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class RatingSummary(BaseModel):
    average_rating: Decimal
    total_reviews: int


class RatingSummaryResponse(BaseModel):
    summary: RatingSummary
    reviews: list[RatingResponse]


# ---------------------------------------------------------------------------
# Platform
# ---------------------------------------------------------------------------


class PublicConfigResponse(BaseModel):
    platform_commission_rate: Decimal
    currency: str
    simulated_payments_enabled: bool


class MetricsResponse(BaseModel):
    contracts_by_status: dict[str, int]
    escrows_by_status: dict[str, int]
    platform_commission_total: Decimal


# ---------------------------------------------------------------------------
# Messaging
# ---------------------------------------------------------------------------


class ConversationCreate(BaseModel):
    participant_id: int
    contract_id: int | None = None


class ContractBrief(BaseModel):
    crop_type: str
    status: str

    model_config = {"from_attributes": True}


class MessageCreate(BaseModel):
    conversation_id: int
    content: str = Field(..., min_length=1, max_length=5000)


class MessageResponse(BaseModel):
    id: int
    conversation_id: int
    sender_id: int | None
    content: str
    read_at: datetime | None = None
    sender: ReviewerBrief | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ConversationResponse(BaseModel):
    id: int
    participant_1_id: int
    participant_2_id: int
    contract_id: int | None = None
    last_message_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ConversationSummary(ConversationResponse):
    other_participant: ReviewerBrief | None = None
    contract: ContractBrief | None = None
    last_message: MessageResponse | None = None
    unread_count: int = 0


class ConversationListResponse(BaseModel):
    conversations: list[ConversationSummary]


class MessageListResponse(BaseModel):
    messages: list[MessageResponse]


# ---------------------------------------------------------------------------
# Logistics
# ---------------------------------------------------------------------------

ServiceType = Literal["standard", "express", "refrigerated"]


class ProviderResponse(BaseModel):
    id: int
    name: str
    type: str
    capabilities: list[str]
    base_rate: Decimal
    rating: Decimal

    model_config = {"from_attributes": True}


class ProviderListResponse(BaseModel):
    providers: list[ProviderResponse]


class QuoteRequest(BaseModel):
    contract_id: int
    origin_address: str = Field(..., min_length=1, max_length=500)
    destination_address: str = Field(..., min_length=1, max_length=500)
    weight: Decimal = Field(..., gt=0, max_digits=12, decimal_places=3)
    distance_km: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    service_type: ServiceType = "standard"


class QuoteResponse(BaseModel):
    id: int
    contract_id: int
    provider_id: int
    origin_address: str
    destination_address: str
    weight: Decimal
    distance_km: Decimal
    service_type: str
    estimated_cost: Decimal
    estimated_delivery_days: int
    valid_until: datetime
    status: str
    provider: ProviderResponse | None = None

    model_config = {"from_attributes": True}


class QuoteListResponse(BaseModel):
    quotes: list[QuoteResponse]


class ShipmentCreate(BaseModel):
    quote_id: int
    pickup_date: date
    special_instructions: str | None = Field(default=None, max_length=2000)


class TrackingUpdate(BaseModel):
    location: str = Field(..., min_length=1, max_length=500)
    status: Literal["in_transit", "delivered"]
    description: str | None = Field(default=None, max_length=2000)


class TrackingEventResponse(BaseModel):
    location: str
    status: str
    description: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ShipmentResponse(BaseModel):
    id: int
    contract_id: int
    quote_id: int
    tracking_number: str
    pickup_date: date
    estimated_delivery_date: date
    special_instructions: str | None = None
    current_location: str | None = None
    status: str
    quote: QuoteResponse | None = None
    tracking_events: list[TrackingEventResponse] = []
    created_at: datetime

    model_config = {"from_attributes": True}


class ShipmentListResponse(BaseModel):
    shipments: list[ShipmentResponse]


# ---------------------------------------------------------------------------
# Drafts and templates
# ---------------------------------------------------------------------------


class TemplateCreate(BaseModel):
    name: str | None = Field(default=None, max_length=255)
    description: str | None = None
    template_fields: dict | None = None


class TemplateResponse(BaseModel):
    id: int
    name: str
    description: str | None = None
    template_fields: dict
    created_by: int | None = None
    is_default: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class TemplateListResponse(BaseModel):
    templates: list[TemplateResponse]


class DraftCreate(BaseModel):
    template_id: int | None = None
    buyer_id: int | None = None
    contract_data: dict = Field(default_factory=dict)


class DraftUpdate(BaseModel):
    contract_data: dict | None = None
    buyer_id: int | None = None


class DraftResponse(BaseModel):
    id: int
    template_id: int | None = None
    farmer_id: int
    buyer_id: int | None = None
    contract_data: dict
    status: str
    contract_id: int | None = None
    farmer: ProfileBrief | None = None
    buyer: ProfileBrief | None = None
    template: TemplateResponse | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class DraftListResponse(BaseModel):
    drafts: list[DraftResponse]


class DraftSubmitResponse(BaseModel):
    draft: DraftResponse
    contract: ContractResponse
