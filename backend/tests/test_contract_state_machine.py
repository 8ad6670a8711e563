"""Tests for the contract state machine: transitions, terminal states, escrow ordering."""

import itertools

import pytest

from farmlink.core.errors import InvalidTransitionError
from farmlink.services.contract_state_machine import (
    ContractStatus,
    EscrowStatus,
    TRANSITIONS,
    escrow_can_advance,
    escrow_predecessor,
    get_allowed_transitions,
    validate_transition,
)

ALLOWED = {
    ("pending", "active"),
    ("pending", "cancelled"),
    ("active", "completed"),
    ("active", "cancelled"),
}


class TestHappyPathLifecycle:
    def test_pending_to_active_to_completed(self):
        status = ContractStatus.PENDING

        status = validate_transition(status, "active")
        assert status == ContractStatus.ACTIVE

        status = validate_transition(status, "completed")
        assert status == ContractStatus.COMPLETED

    def test_cancel_from_pending_and_active(self):
        assert validate_transition("pending", "cancelled") == ContractStatus.CANCELLED
        assert validate_transition("active", "cancelled") == ContractStatus.CANCELLED


class TestTransitionTable:
    @pytest.mark.parametrize(
        "current,target",
        list(itertools.product([s.value for s in ContractStatus], repeat=2)),
    )
    def test_only_listed_transitions_pass(self, current, target):
        if (current, target) in ALLOWED:
            assert validate_transition(current, target) == ContractStatus(target)
        else:
            with pytest.raises(InvalidTransitionError):
                validate_transition(current, target)

    def test_completed_cannot_reactivate(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_transition("completed", "active")
        assert str(exc_info.value) == "Cannot change status from completed to active"

    def test_unknown_status_rejected(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition("pending", "shipped")
        with pytest.raises(InvalidTransitionError):
            validate_transition("draft", "active")


class TestTerminalStatuses:
    def test_terminal_have_no_exits(self):
        for status in (ContractStatus.COMPLETED, ContractStatus.CANCELLED):
            assert TRANSITIONS[status] == frozenset()
            assert get_allowed_transitions(status) == []

    def test_allowed_transitions_sorted(self):
        assert get_allowed_transitions("pending") == ["active", "cancelled"]
        assert get_allowed_transitions("active") == ["cancelled", "completed"]
        assert get_allowed_transitions("bogus") == []


class TestEscrowOrdering:
    def test_advances_one_step(self):
        assert escrow_can_advance("pending", "funded")
        assert escrow_can_advance("funded", "released")

    def test_never_skips_or_regresses(self):
        assert not escrow_can_advance("pending", "released")
        assert not escrow_can_advance("funded", "pending")
        assert not escrow_can_advance("released", "funded")
        assert not escrow_can_advance("released", "released")
        assert not escrow_can_advance("pending", "refunded")

    def test_predecessor_follows_order(self):
        assert escrow_predecessor("funded") == EscrowStatus.PENDING
        assert escrow_predecessor("released") == EscrowStatus.FUNDED
        with pytest.raises(ValueError):
            escrow_predecessor("pending")
