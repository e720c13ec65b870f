"""
winning.py - Win evaluation for revealed tickets

Once both random values are revealed, the outcome is

    uint256(keccak256(abi.encodePacked(senderRand, receiverRand, signature, ticketHash)))

and the ticket wins iff outcome < win_prob. Neither party can steer the
outcome: both values were committed in the signed ticket before either was
revealed.
"""

from __future__ import annotations

from .core import MAX_UINT256, CommitmentMismatch
from .commitment import verify_commitment
from .crypto import solidity_keccak
from .tickets import SignedTicket, Ticket


OUTCOME_ABI_TYPES = ("uint256", "uint256", "bytes", "bytes32")


def check_commitments(ticket: Ticket, sender_rand: int, receiver_rand: int) -> None:
    """
    Raises:
        CommitmentMismatch: If either revealed value does not match its commitment
    """
    if not verify_commitment(sender_rand, ticket.sender_commit):
        raise CommitmentMismatch("Hash of senderRand doesn't match senderRandHash")
    if not verify_commitment(receiver_rand, ticket.receiver_commit):
        raise CommitmentMismatch("Hash of receiverRand doesn't match receiverRandHash")


def compute_outcome(
    sender_rand: int,
    receiver_rand: int,
    signature: bytes,
    ticket_hash: bytes,
) -> int:
    """Combined outcome value in [0, 2^256)."""
    digest = solidity_keccak(
        OUTCOME_ABI_TYPES,
        [sender_rand, receiver_rand, bytes(signature), bytes(ticket_hash)],
    )
    return int.from_bytes(digest, "big")


def is_winning_outcome(outcome: int, win_prob: int) -> bool:
    # The maximum probability always wins, even for outcome == 2^256 - 1.
    if win_prob == MAX_UINT256:
        return True
    return outcome < win_prob


def is_winning_ticket(signed: SignedTicket, sender_rand: int, receiver_rand: int) -> bool:
    """
    Verify both reveals and evaluate the win condition.

    The signature is not checked here; the ledger verifies it first.

    Raises:
        CommitmentMismatch: If either revealed value does not match its commitment
    """
    ticket = signed.ticket
    check_commitments(ticket, sender_rand, receiver_rand)
    outcome = compute_outcome(sender_rand, receiver_rand, signed.signature, signed.ticket_hash)
    return is_winning_outcome(outcome, ticket.win_prob)


def expected_value(ticket: Ticket) -> int:
    """Expected payout of a ticket, rounded down: face_value * win_prob / 2^256."""
    if ticket.win_prob == MAX_UINT256:
        return ticket.face_value
    return (ticket.face_value * ticket.win_prob) >> 256
