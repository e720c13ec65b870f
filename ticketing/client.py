"""
client.py - Account-level client for a ticketing ledger

TicketingClient wraps one account. It computes intents with the pure
compute_* functions, submits them to the ledger, and turns ledger results
into return values or TicketingError subclasses.

Sender role:
    signed = alice.issue_ticket(bob.address, face_value=100, win_prob=MAX_UINT256,
                                receiver_commit=bob.new_receiver_commitment())
    sender_rand = alice.reveal_sender_rand(signed.ticket_hash)

Receiver role:
    outcome = bob.redeem(signed, sender_rand)

Submissions compute and execute under the ledger lock, so clients sharing a
ledger never act on each other's stale state. Nonce allocation and retained
commitments are guarded by a per-client lock. A redemption that loses a race
against another submitter of the same ticket surfaces as TicketAlreadyRedeemed,
which callers may treat as benign.
"""

from __future__ import annotations
from typing import Callable, ContextManager, Dict, Optional, Protocol
import threading

from loguru import logger

from .core import (
    LedgerView, PendingTransaction, ExecuteResult,
    Deposit, Stake, Unlocking, RedemptionOutcome,
    MAX_UINT32,
    CommitmentMismatch, TicketAlreadyRedeemed, TransactionRejected,
    read_deposit, read_stake, read_unlocking,
)
from .commitment import Commitment, RandomSource
from .contracts import (
    compute_deposit_escrow, compute_deposit_penalty,
    compute_unlock_deposits, compute_lock_deposits, compute_withdraw,
    compute_add_stake, compute_unlock_stake, compute_cancel_unlocking, compute_withdraw_stake,
    compute_redemption, redemption_outcome,
)
from .crypto import SignatureScheme, DEFAULT_SIGNATURE_SCHEME, address_of, to_checksum
from .tickets import SignedTicket, Ticket, sign_ticket


class TicketingLedger(LedgerView, Protocol):
    """A LedgerView that also accepts intents for execution."""

    @property
    def lock(self) -> ContextManager:
        ...

    def execute(self, pending: PendingTransaction) -> ExecuteResult:
        ...


class TicketingClient:
    """
    One account's view of the ticketing protocol.

    Args:
        ledger: Ledger the client reads from and submits to
        private_key: Signing key; required for issuing tickets
        account: Account address (derived from private_key when omitted)
        random_source: Source of 256-bit commitment values (default: OS CSPRNG)
        scheme: Signature scheme for signing and verifying tickets
    """

    def __init__(
        self,
        ledger: TicketingLedger,
        private_key=None,
        account: Optional[str] = None,
        random_source: Optional[RandomSource] = None,
        scheme: Optional[SignatureScheme] = None,
    ):
        if private_key is None and account is None:
            raise ValueError("TicketingClient needs a private_key or an account")
        if private_key is not None:
            derived = address_of(private_key)
            if account is not None and to_checksum(account) != derived:
                raise ValueError(f"account {account} does not match private key ({derived})")
            account = derived
        self.ledger = ledger
        self.address = to_checksum(account)
        self._private_key = private_key
        self._random_source = random_source
        self._scheme = scheme or DEFAULT_SIGNATURE_SCHEME
        self._lock = threading.Lock()
        self._next_nonce = 0
        # Random values kept until reveal, keyed by ticket hash / commitment hash
        self._sender_commitments: Dict[bytes, Commitment] = {}
        self._receiver_commitments: Dict[bytes, Commitment] = {}

    # ========================================================================
    # SUBMISSION
    # ========================================================================

    def _submit(self, compute: Callable[[LedgerView], PendingTransaction]) -> PendingTransaction:
        """
        Compute an intent against the current ledger state and execute it.

        The ledger lock is held across compute and execute, so no other
        submitter can change the state the intent was computed against.
        """
        with self.ledger.lock:
            pending = compute(self.ledger)
            logger.debug(f"{self.address} submitting {pending!r}")
            result = self.ledger.execute(pending)
        if result == ExecuteResult.ALREADY_APPLIED:
            raise TicketAlreadyRedeemed(
                f"Ticket already redeemed: 0x{pending.consumes[0].hex()}"
            )
        if result == ExecuteResult.REJECTED:
            raise TransactionRejected(f"Ledger rejected {pending!r}")
        return pending

    # ========================================================================
    # QUERIES
    # ========================================================================

    def query_deposit(self, account: Optional[str] = None) -> Deposit:
        return read_deposit(self.ledger, account or self.address)

    def query_stake(self, staker: str, stakee: str) -> Stake:
        return read_stake(self.ledger, staker, stakee)

    def query_unlocking(self, stakee: str, staker: Optional[str] = None) -> Unlocking:
        return read_unlocking(self.ledger, staker or self.address, stakee)

    # ========================================================================
    # DEPOSITS
    # ========================================================================

    def deposit_escrow(self, amount: int, account: Optional[str] = None) -> Deposit:
        """Deposit escrow for `account` (default: this client's account)."""
        account = account or self.address
        self._submit(lambda view: compute_deposit_escrow(view, amount, self.address, account))
        return self.query_deposit(account)

    def deposit_penalty(self, amount: int, account: Optional[str] = None) -> Deposit:
        account = account or self.address
        self._submit(lambda view: compute_deposit_penalty(view, amount, self.address, account))
        return self.query_deposit(account)

    def request_unlock_deposit(self) -> int:
        """Start the deposit unlock period and return the unlock block."""
        self._submit(lambda view: compute_unlock_deposits(view, self.address))
        unlock_at = self.query_deposit().unlock_at
        logger.info(f"{self.address} deposit unlocking at block {unlock_at}")
        return unlock_at

    def lock_deposit(self) -> None:
        self._submit(lambda view: compute_lock_deposits(view, self.address))

    def withdraw_deposit(self, to: Optional[str] = None) -> int:
        """Withdraw the unlocked deposit and return the number of tokens transferred."""
        pending = self._submit(lambda view: compute_withdraw(view, self.address, to))
        value = sum(m.quantity for m in pending.moves)
        logger.info(f"{self.address} withdrew {value} to {to or self.address}")
        return value

    # ========================================================================
    # STAKING
    # ========================================================================

    def add_stake(self, amount: int, stakee: str) -> Stake:
        self._submit(lambda view: compute_add_stake(view, amount, self.address, stakee))
        return self.query_stake(self.address, stakee)

    def request_unlock_stake(self, amount: int, stakee: str) -> int:
        """Move `amount` of stake into unlocking and return the unlock block."""
        self._submit(lambda view: compute_unlock_stake(view, amount, self.address, stakee))
        return self.query_unlocking(stakee).unlock_at

    def cancel_unlock_stake(self, amount: int, stakee: str) -> None:
        self._submit(lambda view: compute_cancel_unlocking(view, amount, self.address, stakee))

    def withdraw_stake(self, stakee: str) -> int:
        """Withdraw matured unlocking stake and return the number of tokens transferred."""
        pending = self._submit(lambda view: compute_withdraw_stake(view, self.address, stakee))
        return sum(m.quantity for m in pending.moves)

    # ========================================================================
    # SENDER ROLE
    # ========================================================================

    def issue_ticket(
        self,
        receiver: str,
        face_value: int,
        win_prob: int,
        receiver_commit: bytes,
        expiration_block: int = 0,
    ) -> SignedTicket:
        """
        Build and sign a ticket paying `receiver`.

        A fresh sender commitment is generated and kept until
        reveal_sender_rand() is called for the ticket.

        Raises:
            ValueError: If the client has no private key or the nonce space is exhausted
        """
        if self._private_key is None:
            raise ValueError(f"{self.address} has no private key and cannot sign tickets")
        with self._lock:
            if self._next_nonce > MAX_UINT32:
                raise ValueError("Sender nonce space exhausted")
            nonce = self._next_nonce
            self._next_nonce += 1

        commitment = Commitment.generate(self._random_source)
        ticket = Ticket(
            sender=self.address,
            receiver=receiver,
            face_value=face_value,
            win_prob=win_prob,
            expiration_block=expiration_block,
            sender_commit=commitment.commit,
            receiver_commit=receiver_commit,
            sender_nonce=nonce,
        )
        signed = sign_ticket(ticket, self._private_key, self._scheme)
        with self._lock:
            self._sender_commitments[signed.ticket_hash] = commitment
        logger.debug(f"{self.address} issued ticket 0x{signed.ticket_hash.hex()} nonce={nonce}")
        return signed

    def reveal_sender_rand(self, ticket_hash: bytes) -> int:
        """
        Reveal and forget the sender value committed in a ticket.

        Raises:
            KeyError: If this client did not issue the ticket or already revealed it
        """
        with self._lock:
            commitment = self._sender_commitments.pop(bytes(ticket_hash))
        return commitment.reveal()

    # ========================================================================
    # RECEIVER ROLE
    # ========================================================================

    def new_receiver_commitment(self) -> bytes:
        """Generate a receiver value, keep it, and return its commitment hash."""
        commitment = Commitment.generate(self._random_source)
        with self._lock:
            self._receiver_commitments[commitment.commit] = commitment
        return commitment.commit

    def redeem(self, signed: SignedTicket, sender_rand: int) -> RedemptionOutcome:
        """
        Redeem a ticket using the retained receiver value for its commitment.

        The receiver value is discarded once the ticket is redeemed, by this
        call or an earlier one.

        Raises:
            CommitmentMismatch: If no receiver value is retained for the ticket
        """
        commit = signed.ticket.receiver_commit
        with self._lock:
            commitment = self._receiver_commitments.get(commit)
        if commitment is None:
            raise CommitmentMismatch(f"No receiver value retained for commitment 0x{commit.hex()}")
        try:
            outcome = self.submit_redemption(signed, sender_rand, commitment.reveal())
        except TicketAlreadyRedeemed:
            self._forget_receiver_commitment(commit)
            raise
        self._forget_receiver_commitment(commit)
        return outcome

    def _forget_receiver_commitment(self, commit: bytes) -> None:
        with self._lock:
            self._receiver_commitments.pop(commit, None)

    def submit_redemption(
        self,
        signed: SignedTicket,
        sender_rand: int,
        receiver_rand: int,
    ) -> RedemptionOutcome:
        """
        Submit a revealed ticket for redemption.

        Raises:
            TicketAlreadyRedeemed: If the ticket was redeemed before (benign)
            TicketExpired, InvalidSignature, CommitmentMismatch, InsufficientEscrow
        """
        pending = self._submit(
            lambda view: compute_redemption(view, signed, sender_rand, receiver_rand, self._scheme)
        )
        outcome = redemption_outcome(pending)
        if outcome.won:
            logger.success(
                f"Ticket 0x{outcome.ticket_hash.hex()} won: paid {outcome.payout} "
                f"to {signed.ticket.receiver}"
                + (f", burned {outcome.burned}" if outcome.burned else "")
            )
        else:
            logger.info(f"Ticket 0x{outcome.ticket_hash.hex()} lost")
        return outcome
