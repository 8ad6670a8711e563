"""Contract, bid and escrow status vocabularies. Pure logic, no DB dependency.

Defines the four-status contract lifecycle and its allowed transitions, plus
the closed sets of bid actions and escrow/ledger statuses used by the
negotiation and escrow services.
"""

from enum import StrEnum

from farmlink.core.errors import InvalidTransitionError


class ContractStatus(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BidStatus(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class BidAction(StrEnum):
    ACCEPT = "accept"
    REJECT = "reject"


class EscrowStatus(StrEnum):
    PENDING = "pending"
    FUNDED = "funded"
    RELEASED = "released"


class TransactionType(StrEnum):
    DEPOSIT = "deposit"
    RELEASE = "release"
    COMMISSION = "commission"


class TransactionStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


# current status → statuses it may move to
TRANSITIONS: dict[ContractStatus, frozenset[ContractStatus]] = {
    ContractStatus.PENDING: frozenset({ContractStatus.ACTIVE, ContractStatus.CANCELLED}),
    ContractStatus.ACTIVE: frozenset({ContractStatus.COMPLETED, ContractStatus.CANCELLED}),
    ContractStatus.COMPLETED: frozenset(),
    ContractStatus.CANCELLED: frozenset(),
}

# Escrow statuses only ever advance along this order
ESCROW_ORDER: tuple[EscrowStatus, ...] = (
    EscrowStatus.PENDING,
    EscrowStatus.FUNDED,
    EscrowStatus.RELEASED,
)


def validate_transition(current: str, target: str) -> ContractStatus:
    """Validate and return the target status for a contract transition.

    Raises InvalidTransitionError for unknown statuses or disallowed moves.
    """
    try:
        current_status = ContractStatus(current)
        target_status = ContractStatus(target)
    except ValueError:
        raise InvalidTransitionError(current, target)

    if target_status not in TRANSITIONS[current_status]:
        raise InvalidTransitionError(current, target)

    return target_status


def get_allowed_transitions(current: str) -> list[str]:
    """Return the statuses reachable from ``current`` (empty when terminal)."""
    try:
        current_status = ContractStatus(current)
    except ValueError:
        return []
    return sorted(s.value for s in TRANSITIONS[current_status])


def escrow_can_advance(current: str, target: str) -> bool:
    """True when ``target`` is the next escrow status after ``current``."""
    try:
        i = ESCROW_ORDER.index(EscrowStatus(current))
        j = ESCROW_ORDER.index(EscrowStatus(target))
    except ValueError:
        return False
    return j == i + 1


def escrow_predecessor(target: str) -> EscrowStatus:
    """The only status an escrow may hold right before moving to ``target``."""
    status = EscrowStatus(target)
    i = ESCROW_ORDER.index(status)
    if i == 0:
        raise ValueError(f"Escrow cannot move back to {target}")
    return ESCROW_ORDER[i - 1]
