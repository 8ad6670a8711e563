"""Domain error taxonomy.

Services raise these; ``farmlink.main`` maps every subclass to its HTTP status
with a ``{"error": message}`` body.
"""


class MarketplaceError(Exception):
    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class UnauthorizedError(MarketplaceError):
    status_code = 401
    default_message = "Unauthorized"


class ForbiddenError(MarketplaceError):
    status_code = 403
    default_message = "Access denied"


class NotFoundError(MarketplaceError):
    status_code = 404
    default_message = "Not found"


class InvalidStateError(MarketplaceError):
    status_code = 400
    default_message = "Operation not allowed in the current state"


class InvalidTransitionError(MarketplaceError):
    """Raised when a contract status change is not allowed."""

    status_code = 400

    def __init__(self, current: str, target: str, reason: str | None = None):
        self.current = current
        self.target = target
        msg = f"Cannot change status from {current} to {target}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class DuplicateBidError(MarketplaceError):
    status_code = 400
    default_message = "You already have a pending bid on this contract"


class SelfDealingError(MarketplaceError):
    status_code = 400
    default_message = "Cannot bid on your own contract"


class SignatureInvalidError(MarketplaceError):
    status_code = 400
    default_message = "Invalid signature"


class GatewayError(MarketplaceError):
    status_code = 500
    default_message = "Payment processor error"


class InternalError(MarketplaceError):
    status_code = 500
