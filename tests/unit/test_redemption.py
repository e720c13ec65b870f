"""
test_redemption.py - Unit tests for compute_redemption()

Tests:
- Settlement of winning and losing tickets
- Ordering of checks (replay, expiry, signature, commitments, escrow)
- Shortfall handling with and without penalty burning
- redemption_outcome() summaries
"""

import pytest

from ticketing import (
    BURN_ADDRESS, MAX_UINT256, ExecuteResult, OriginType, SignedTicket,
    TicketAlreadyRedeemed, TicketExpired, InvalidSignature, CommitmentMismatch,
    InsufficientEscrow,
    compute_redemption, redemption_outcome, compute_deposit_escrow, sign_ticket,
    escrow_wallet, penalty_wallet,
)
from tests.conftest import (
    ALICE, BOB, BOB_KEY, ALICE_ESCROW, ALICE_PENALTY, make_signed_ticket,
)
from tests.fake_view import FakeView


def _view(escrow: int = 1000, penalty: int = 500, **kwargs) -> FakeView:
    return FakeView(
        balances={escrow_wallet(ALICE): escrow, penalty_wallet(ALICE): penalty},
        **kwargs,
    )


def _forged(signed: SignedTicket) -> SignedTicket:
    """Same ticket, signed by bob instead of the sender."""
    return SignedTicket(signed.ticket, sign_ticket(signed.ticket, BOB_KEY).signature)


class TestSettlement:

    def test_winning_ticket_pays_face_value(self):
        signed, s_rand, r_rand = make_signed_ticket(face_value=300)
        pending = compute_redemption(_view(), signed, s_rand, r_rand)
        assert len(pending.moves) == 1
        move = pending.moves[0]
        assert (move.quantity, move.source, move.dest) == (300, escrow_wallet(ALICE), BOB)
        assert pending.consumes == (signed.ticket_hash,)
        assert pending.origin.origin_type == OriginType.REDEMPTION
        assert pending.origin.source_id == BOB

    def test_losing_ticket_consumed_without_moves(self):
        signed, s_rand, r_rand = make_signed_ticket(win_prob=0)
        pending = compute_redemption(_view(), signed, s_rand, r_rand)
        assert pending.moves == ()
        assert pending.consumes == (signed.ticket_hash,)

    def test_zero_face_value_winner(self):
        signed, s_rand, r_rand = make_signed_ticket(face_value=0)
        pending = compute_redemption(_view(), signed, s_rand, r_rand)
        assert pending.moves == ()
        assert redemption_outcome(pending).won

    def test_face_value_equal_to_escrow(self):
        signed, s_rand, r_rand = make_signed_ticket(face_value=1000)
        pending = compute_redemption(_view(escrow=1000), signed, s_rand, r_rand)
        assert pending.moves[0].quantity == 1000

    def test_unexpired_at_expiration_block(self):
        signed, s_rand, r_rand = make_signed_ticket(expiration_block=20)
        compute_redemption(_view(block=20), signed, s_rand, r_rand)


class TestCheckOrder:

    def test_expired(self):
        signed, s_rand, r_rand = make_signed_ticket(expiration_block=20)
        with pytest.raises(TicketExpired):
            compute_redemption(_view(block=21), signed, s_rand, r_rand)

    def test_already_redeemed(self):
        signed, s_rand, r_rand = make_signed_ticket()
        view = _view(redeemed={signed.ticket_hash})
        with pytest.raises(TicketAlreadyRedeemed):
            compute_redemption(view, signed, s_rand, r_rand)

    def test_replay_checked_before_expiry(self):
        signed, s_rand, r_rand = make_signed_ticket(expiration_block=5)
        view = _view(block=50, redeemed={signed.ticket_hash})
        with pytest.raises(TicketAlreadyRedeemed):
            compute_redemption(view, signed, s_rand, r_rand)

    def test_expiry_checked_before_signature(self):
        signed, s_rand, r_rand = make_signed_ticket(expiration_block=5)
        with pytest.raises(TicketExpired):
            compute_redemption(_view(block=6), _forged(signed), s_rand, r_rand)

    def test_signature_by_other_key(self):
        signed, s_rand, r_rand = make_signed_ticket()
        with pytest.raises(InvalidSignature, match="expected sender"):
            compute_redemption(_view(), _forged(signed), s_rand, r_rand)

    def test_malformed_signature(self):
        signed, s_rand, r_rand = make_signed_ticket()
        broken = SignedTicket(signed.ticket, b"\x00" * 10)
        with pytest.raises(InvalidSignature):
            compute_redemption(_view(), broken, s_rand, r_rand)

    def test_signature_checked_before_commitments(self):
        signed, s_rand, r_rand = make_signed_ticket()
        with pytest.raises(InvalidSignature):
            compute_redemption(_view(), _forged(signed), s_rand + 1, r_rand)

    def test_wrong_reveal(self):
        signed, s_rand, r_rand = make_signed_ticket()
        with pytest.raises(CommitmentMismatch):
            compute_redemption(_view(), signed, s_rand, r_rand + 1)

    def test_commitments_checked_before_escrow(self):
        signed, s_rand, r_rand = make_signed_ticket(face_value=5000)
        with pytest.raises(CommitmentMismatch):
            compute_redemption(_view(escrow=10), signed, s_rand + 1, r_rand)

    def test_losing_ticket_ignores_escrow(self):
        signed, s_rand, r_rand = make_signed_ticket(face_value=5000, win_prob=0)
        pending = compute_redemption(_view(escrow=0, penalty=0), signed, s_rand, r_rand)
        assert not redemption_outcome(pending).won


class TestShortfall:

    def test_insufficient_escrow_rejected_by_default(self):
        signed, s_rand, r_rand = make_signed_ticket(face_value=1001)
        with pytest.raises(InsufficientEscrow):
            compute_redemption(_view(escrow=1000), signed, s_rand, r_rand)

    def test_burn_pays_remaining_escrow_and_burns_penalty(self):
        signed, s_rand, r_rand = make_signed_ticket(face_value=1500)
        view = _view(escrow=1000, penalty=500, burn_penalty_on_shortfall=True)
        pending = compute_redemption(view, signed, s_rand, r_rand)
        flows = sorted((m.source, m.dest, m.quantity) for m in pending.moves)
        assert flows == sorted([
            (escrow_wallet(ALICE), BOB, 1000),
            (penalty_wallet(ALICE), BURN_ADDRESS, 500),
        ])
        outcome = redemption_outcome(pending)
        assert (outcome.payout, outcome.burned) == (1000, 500)

    def test_burn_with_empty_deposit(self):
        signed, s_rand, r_rand = make_signed_ticket(face_value=10)
        view = _view(escrow=0, penalty=0, burn_penalty_on_shortfall=True)
        pending = compute_redemption(view, signed, s_rand, r_rand)
        assert pending.moves == ()
        assert pending.consumes == (signed.ticket_hash,)


class TestRedemptionOutcome:

    def test_outcome_of_win(self):
        signed, s_rand, r_rand = make_signed_ticket(face_value=250)
        outcome = redemption_outcome(compute_redemption(_view(block=4), signed, s_rand, r_rand))
        assert outcome.ticket_hash == signed.ticket_hash
        assert outcome.won
        assert (outcome.payout, outcome.burned, outcome.block) == (250, 0, 4)

    def test_outcome_of_loss(self):
        signed, s_rand, r_rand = make_signed_ticket(win_prob=0)
        outcome = redemption_outcome(compute_redemption(_view(), signed, s_rand, r_rand))
        assert not outcome.won
        assert outcome.payout == 0

    def test_rejects_non_redemption(self):
        view = FakeView(balances={ALICE: 100})
        with pytest.raises(ValueError, match="Not a redemption"):
            redemption_outcome(compute_deposit_escrow(view, 10, ALICE))


class TestLedgerRedemption:

    def test_win_settles_on_ledger(self, funded_ledger):
        signed, s_rand, r_rand = make_signed_ticket(face_value=400)
        result = funded_ledger.execute(compute_redemption(funded_ledger, signed, s_rand, r_rand))
        assert result == ExecuteResult.APPLIED
        assert funded_ledger.get_balance(BOB) == 400
        assert funded_ledger.get_deposit(ALICE).escrow == ALICE_ESCROW - 400
        assert funded_ledger.is_redeemed(signed.ticket_hash)

    def test_second_execution_already_applied(self, funded_ledger):
        signed, s_rand, r_rand = make_signed_ticket()
        first = compute_redemption(funded_ledger, signed, s_rand, r_rand)
        second = compute_redemption(funded_ledger, signed, s_rand, r_rand)
        assert funded_ledger.execute(first) == ExecuteResult.APPLIED
        assert funded_ledger.execute(second) == ExecuteResult.ALREADY_APPLIED
        assert funded_ledger.get_balance(BOB) == 100

    def test_failed_redemption_leaves_ticket_unconsumed(self, funded_ledger):
        signed, s_rand, r_rand = make_signed_ticket(face_value=ALICE_ESCROW + 1)
        with pytest.raises(InsufficientEscrow):
            compute_redemption(funded_ledger, signed, s_rand, r_rand)
        assert not funded_ledger.is_redeemed(signed.ticket_hash)

        funded_ledger.execute(compute_deposit_escrow(funded_ledger, 1, ALICE))
        pending = compute_redemption(funded_ledger, signed, s_rand, r_rand)
        assert funded_ledger.execute(pending) == ExecuteResult.APPLIED

    def test_burn_on_ledger(self, burning_ledger):
        signed, s_rand, r_rand = make_signed_ticket(face_value=MAX_UINT256 // 2)
        pending = compute_redemption(burning_ledger, signed, s_rand, r_rand)
        assert burning_ledger.execute(pending) == ExecuteResult.APPLIED
        assert burning_ledger.get_balance(BOB) == ALICE_ESCROW
        assert burning_ledger.get_balance(BURN_ADDRESS) == ALICE_PENALTY
        assert burning_ledger.get_deposit(ALICE).total == 0
        assert burning_ledger.verify_conservation()['valid']
