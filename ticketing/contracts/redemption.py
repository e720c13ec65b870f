"""
redemption.py - Ticket redemption

compute_redemption() runs the ledger-side checks in order and, if they pass,
returns a PendingTransaction that consumes the ticket hash:

    1. Replay guard     - hash already redeemed   → TicketAlreadyRedeemed
    2. Expiry           - past expiration_block   → TicketExpired
    3. Signature        - must recover the sender → InvalidSignature
    4. Commitments      - both reveals must match → CommitmentMismatch
    5. Win evaluation   - outcome < win_prob
    6. Escrow coverage  - face value ≤ escrow     → InsufficientEscrow

A losing ticket is consumed with no moves. A winning ticket pays face_value
from escrow:<sender> to the receiver. When the ledger burns penalties on a
shortfall, an under-funded winner instead pays out whatever escrow is left
and sends the sender's whole penalty deposit to BURN_ADDRESS.
"""

from __future__ import annotations
from typing import Optional

from ..core import (
    LedgerView, Move, PendingTransaction, RedemptionOutcome, TransactionOrigin, OriginType,
    BURN_ADDRESS,
    InsufficientEscrow, TicketAlreadyRedeemed, TicketExpired,
    build_transaction, escrow_wallet, penalty_wallet, read_deposit,
)
from ..crypto import SignatureScheme
from ..tickets import SignedTicket, verify_ticket_signature
from ..winning import is_winning_ticket


EVENT_TICKET_WIN = "TICKET_WIN"
EVENT_TICKET_LOSS = "TICKET_LOSS"

PAYOUT_CONTRACT_ID = "ticket_payout"
BURN_CONTRACT_ID = "penalty_burn"


def compute_redemption(
    view: LedgerView,
    signed: SignedTicket,
    sender_rand: int,
    receiver_rand: int,
    scheme: Optional[SignatureScheme] = None,
) -> PendingTransaction:
    """
    Verify a revealed ticket and compute its settlement.

    Args:
        view: Read-only ledger access
        signed: Ticket and the sender's signature over its hash
        sender_rand: Revealed preimage of ticket.sender_commit
        receiver_rand: Revealed preimage of ticket.receiver_commit
        scheme: Signature scheme used to recover the signer

    Returns:
        PendingTransaction consuming the ticket hash, with the payout (and
        burn) moves on a win and no moves on a loss.

    Raises:
        TicketAlreadyRedeemed, TicketExpired, InvalidSignature,
        CommitmentMismatch, InsufficientEscrow
    """
    ticket = signed.ticket
    t_hash = signed.ticket_hash

    if view.is_redeemed(t_hash):
        raise TicketAlreadyRedeemed(f"Ticket already redeemed: 0x{t_hash.hex()}")
    if ticket.is_expired(view.current_block):
        raise TicketExpired(
            f"Ticket has expired: block {view.current_block} > {ticket.expiration_block}"
        )
    verify_ticket_signature(signed, scheme)

    if not is_winning_ticket(signed, sender_rand, receiver_rand):
        return build_transaction(
            view,
            [],
            origin=TransactionOrigin(OriginType.REDEMPTION, ticket.receiver, EVENT_TICKET_LOSS),
            consumes=[t_hash],
            expires_at=ticket.expiration_block,
        )

    deposit = read_deposit(view, ticket.sender)
    pool = escrow_wallet(ticket.sender)
    moves = []
    if ticket.face_value <= deposit.escrow:
        if ticket.face_value > 0:
            moves.append(Move(ticket.face_value, pool, ticket.receiver, PAYOUT_CONTRACT_ID))
    elif view.burn_penalty_on_shortfall:
        if deposit.escrow > 0:
            moves.append(Move(deposit.escrow, pool, ticket.receiver, PAYOUT_CONTRACT_ID))
        if deposit.penalty > 0:
            moves.append(Move(
                deposit.penalty, penalty_wallet(ticket.sender), BURN_ADDRESS, BURN_CONTRACT_ID
            ))
    else:
        raise InsufficientEscrow(
            f"Face value {ticket.face_value} exceeds escrow {deposit.escrow} of {ticket.sender}"
        )

    return build_transaction(
        view,
        moves,
        origin=TransactionOrigin(OriginType.REDEMPTION, ticket.receiver, EVENT_TICKET_WIN),
        consumes=[t_hash],
        expires_at=ticket.expiration_block,
    )


def redemption_outcome(pending: PendingTransaction) -> RedemptionOutcome:
    """Summarise a redemption transaction built by compute_redemption()."""
    if len(pending.consumes) != 1 or pending.origin.origin_type != OriginType.REDEMPTION:
        raise ValueError(f"Not a redemption transaction: {pending!r}")
    return RedemptionOutcome(
        ticket_hash=pending.consumes[0],
        won=pending.origin.event_type == EVENT_TICKET_WIN,
        payout=sum(m.quantity for m in pending.moves if m.contract_id == PAYOUT_CONTRACT_ID),
        burned=sum(m.quantity for m in pending.moves if m.contract_id == BURN_CONTRACT_ID),
        block=pending.block,
    )
