"""
test_winning.py - Unit tests for win evaluation

Tests:
- Outcome hash against a hand-packed encoding
- Boundary probabilities (0, 2^256 - 1) and the strict "<" comparison
- Commitment checks
- Empirical win rate
"""

import pytest
from web3 import Web3

from ticketing import (
    MAX_UINT256, CommitmentMismatch,
    compute_outcome, is_winning_outcome, is_winning_ticket, expected_value,
)
from tests.conftest import make_signed_ticket


class TestComputeOutcome:

    def test_matches_tightly_packed_encoding(self):
        signature = b"\x07" * 65
        t_hash = b"\x09" * 32
        packed = (1).to_bytes(32, "big") + (2).to_bytes(32, "big") + signature + t_hash
        expected = int.from_bytes(Web3.keccak(packed), "big")
        assert compute_outcome(1, 2, signature, t_hash) == expected

    def test_outcome_in_uint256_range(self):
        outcome = compute_outcome(3, 4, b"\x01" * 65, b"\x02" * 32)
        assert 0 <= outcome <= MAX_UINT256

    def test_outcome_depends_on_each_input(self):
        base = compute_outcome(1, 2, b"\x01" * 65, b"\x02" * 32)
        assert compute_outcome(9, 2, b"\x01" * 65, b"\x02" * 32) != base
        assert compute_outcome(1, 9, b"\x01" * 65, b"\x02" * 32) != base
        assert compute_outcome(1, 2, b"\x03" * 65, b"\x02" * 32) != base
        assert compute_outcome(1, 2, b"\x01" * 65, b"\x04" * 32) != base


class TestIsWinningOutcome:

    def test_tie_loses(self):
        assert not is_winning_outcome(500, 500)

    def test_below_wins(self):
        assert is_winning_outcome(499, 500)

    def test_zero_probability_never_wins(self):
        assert not is_winning_outcome(0, 0)

    def test_max_probability_always_wins(self):
        assert is_winning_outcome(MAX_UINT256, MAX_UINT256)
        assert is_winning_outcome(0, MAX_UINT256)

    def test_half_probability_win_rate(self):
        half = 1 << 255
        wins = sum(
            is_winning_outcome(compute_outcome(i, 0, b"\x01" * 65, b"\x02" * 32), half)
            for i in range(2000)
        )
        assert 850 < wins < 1150


class TestIsWinningTicket:

    def test_always_win_ticket(self):
        signed, s_rand, r_rand = make_signed_ticket(win_prob=MAX_UINT256)
        assert is_winning_ticket(signed, s_rand, r_rand)

    def test_never_win_ticket(self):
        signed, s_rand, r_rand = make_signed_ticket(win_prob=0)
        assert not is_winning_ticket(signed, s_rand, r_rand)

    def test_wrong_sender_rand(self):
        signed, s_rand, r_rand = make_signed_ticket()
        with pytest.raises(CommitmentMismatch, match="senderRand"):
            is_winning_ticket(signed, s_rand + 1, r_rand)

    def test_wrong_receiver_rand(self):
        signed, s_rand, r_rand = make_signed_ticket()
        with pytest.raises(CommitmentMismatch, match="receiverRand"):
            is_winning_ticket(signed, s_rand, r_rand + 1)

    def test_swapped_reveals_mismatch(self):
        signed, s_rand, r_rand = make_signed_ticket()
        with pytest.raises(CommitmentMismatch):
            is_winning_ticket(signed, r_rand, s_rand)


class TestExpectedValue:

    def test_max_probability_pays_face_value(self):
        signed, _, _ = make_signed_ticket(face_value=1000, win_prob=MAX_UINT256)
        assert expected_value(signed.ticket) == 1000

    def test_half_probability(self):
        signed, _, _ = make_signed_ticket(face_value=1000, win_prob=1 << 255)
        assert expected_value(signed.ticket) == 500

    def test_zero_probability(self):
        signed, _, _ = make_signed_ticket(face_value=1000, win_prob=0)
        assert expected_value(signed.ticket) == 0
