from farmlink.models.profile import Profile
from farmlink.models.contract import Contract, ContractBid
from farmlink.models.escrow import (
    DeliveryVerification,
    EscrowAccount,
    PaymentTransaction,
    PlatformWalletEntry,
)
from farmlink.models.notification import Notification
from farmlink.models.rating import Rating
from farmlink.models.conversation import Conversation, Message
from farmlink.models.logistics import (
    LogisticsProvider,
    Shipment,
    ShipmentTrackingEvent,
    ShippingQuote,
)
from farmlink.models.contract_draft import ContractDraft, ContractTemplate
from farmlink.models.audit_log import AuditLog

__all__ = [
    "Profile",
    "Contract",
    "ContractBid",
    "EscrowAccount",
    "PaymentTransaction",
    "DeliveryVerification",
    "PlatformWalletEntry",
    "Notification",
    "Rating",
    "Conversation",
    "Message",
    "LogisticsProvider",
    "ShippingQuote",
    "Shipment",
    "ShipmentTrackingEvent",
    "ContractTemplate",
    "ContractDraft",
    "AuditLog",
]
