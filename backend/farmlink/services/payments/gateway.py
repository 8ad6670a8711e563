"""Payment processor adapter (Stripe-compatible REST API over httpx).

Two operations cross the process boundary: creating a payment intent for an
escrow deposit, and verifying the signed webhook the processor sends back.
Intent creation is never retried: one call, one intent.
"""

import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import StrEnum

import httpx

from farmlink.core.config import settings
from farmlink.core.errors import GatewayError, SignatureInvalidError

logger = logging.getLogger(__name__)

SIGNATURE_SCHEME = "v1"


class GatewayEventType(StrEnum):
    PAYMENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_FAILED = "payment_intent.payment_failed"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    client_secret: str | None
    amount_cents: int
    status: str


@dataclass(frozen=True)
class GatewayEvent:
    id: str
    type: str
    data: dict = field(default_factory=dict)

    @property
    def kind(self) -> GatewayEventType:
        try:
            return GatewayEventType(self.type)
        except ValueError:
            return GatewayEventType.UNRECOGNIZED

    @property
    def intent_id(self) -> str | None:
        return self.data.get("id")

    @property
    def metadata(self) -> dict:
        return self.data.get("metadata") or {}

    @property
    def failure_message(self) -> str:
        error = self.data.get("last_payment_error") or {}
        return error.get("message") or "Payment failed"


def to_cents(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class StripeGateway:
    """Thin async wrapper around the processor's payment-intent endpoints."""

    def __init__(
        self,
        secret_key: str | None = None,
        base_url: str | None = None,
        currency: str | None = None,
    ) -> None:
        self.secret_key = secret_key if secret_key is not None else settings.stripe_secret_key
        self.base_url = (base_url or settings.stripe_api_base_url).rstrip("/")
        self.currency = currency or settings.payment_currency

    async def create_payment_intent(
        self,
        amount_cents: int,
        metadata: dict[str, object],
        description: str | None = None,
    ) -> PaymentIntent:
        form: dict[str, str] = {
            "amount": str(amount_cents),
            "currency": self.currency,
            "automatic_payment_methods[enabled]": "true",
        }
        if description:
            form["description"] = description
        for key, value in metadata.items():
            form[f"metadata[{key}]"] = "" if value is None else str(value)

        body = await self._send("POST", "/payment_intents", "create payment intent", data=form)
        return _intent_from(body, amount_cents)

    async def retrieve_payment_intent(self, intent_id: str) -> PaymentIntent:
        """Fetch an existing intent, e.g. to hand its client secret out again."""
        body = await self._send("GET", f"/payment_intents/{intent_id}", "retrieve payment intent")
        return _intent_from(body, 0)

    async def _send(
        self,
        method: str,
        path: str,
        action: str,
        data: dict[str, str] | None = None,
    ) -> dict:
        if not self.secret_key:
            raise GatewayError("Payment processor is not configured")

        try:
            async with httpx.AsyncClient(timeout=20) as client:
                resp = await client.request(
                    method,
                    f"{self.base_url}{path}",
                    data=data,
                    auth=(self.secret_key, ""),
                )
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            message = _error_message(exc.response)
            logger.error(
                "Processor rejected %s (%s): %s",
                action, exc.response.status_code, message,
            )
            raise GatewayError(f"Failed to {action}: {message}") from exc
        except httpx.HTTPError as exc:
            logger.exception("Payment processor unreachable")
            raise GatewayError(f"Failed to {action}") from exc

        return resp.json()


def _intent_from(body: dict, default_amount: int) -> PaymentIntent:
    return PaymentIntent(
        id=body["id"],
        client_secret=body.get("client_secret"),
        amount_cents=int(body.get("amount", default_amount)),
        status=body.get("status", "requires_payment_method"),
    )


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return response.text[:200] or f"HTTP {response.status_code}"


def compute_signature(raw_body: bytes, secret: str, timestamp: int) -> str:
    signed = f"{timestamp}.".encode() + raw_body
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def sign_payload(raw_body: bytes, secret: str, timestamp: int | None = None) -> str:
    """Build a signature header value in the processor's ``t=…,v1=…`` format."""
    ts = int(time.time()) if timestamp is None else timestamp
    return f"t={ts},{SIGNATURE_SCHEME}={compute_signature(raw_body, secret, ts)}"


def verify_webhook_signature(
    raw_body: bytes,
    signature_header: str | None,
    secret: str,
    tolerance: int | None = None,
    now: int | None = None,
) -> GatewayEvent:
    """Verify a webhook delivery and return its parsed event.

    Follows the processor's scheme:
    1. Split the header into ``t`` (unix timestamp) and one or more ``v1`` values.
    2. Recompute HMAC-SHA256 over ``"{t}.{raw_body}"`` keyed with the endpoint secret.
    3. Accept if any ``v1`` matches and ``t`` is within the tolerance window.
    """
    if not secret:
        logger.error("Webhook secret is not configured; rejecting delivery")
        raise SignatureInvalidError("Webhook secret not configured")
    if not signature_header:
        raise SignatureInvalidError("Missing signature header")

    timestamp: int | None = None
    candidates: list[str] = []
    for part in signature_header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                raise SignatureInvalidError("Malformed signature timestamp")
        elif key == SIGNATURE_SCHEME:
            candidates.append(value)

    if timestamp is None or not candidates:
        raise SignatureInvalidError("Malformed signature header")

    expected = compute_signature(raw_body, secret, timestamp)
    if not any(hmac.compare_digest(expected, c) for c in candidates):
        raise SignatureInvalidError("Invalid signature")

    window = settings.webhook_tolerance_seconds if tolerance is None else tolerance
    current = int(time.time()) if now is None else now
    if window > 0 and abs(current - timestamp) > window:
        raise SignatureInvalidError("Signature timestamp outside tolerance")

    try:
        payload = json.loads(raw_body)
    except ValueError as exc:
        raise SignatureInvalidError("Webhook body is not valid JSON") from exc

    return GatewayEvent(
        id=str(payload.get("id", "")),
        type=str(payload.get("type", "")),
        data=(payload.get("data") or {}).get("object") or {},
    )
