"""
Core types and pure helpers for the ticketing ledger.

This module provides the foundational data structures and protocols:
1. Protocols: LedgerView for read-only ledger access
2. Immutable data structures: Move, StateChange, PendingTransaction, Transaction
3. Account records: Deposit, Stake, Unlocking and their status enums
4. Exceptions: TicketingError and the redemption / unlock error taxonomy
5. Wallet naming: derived pool wallets for escrow, penalty and stake balances

All functions in this module are pure and operate on read-only views.
No function can mutate ledger state directly.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
import copy
import hashlib
from typing import (
    Dict, List, Optional, Any, Protocol,
    Tuple, FrozenSet, runtime_checkable,
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for token issuance.
# The system wallet is exempt from balance validation and can hold any balance.
SYSTEM_WALLET = "system"

# Penalty deposits burned on an escrow shortfall are sent here.
BURN_ADDRESS = "0x000000000000000000000000000000000000dEaD"

MAX_UINT256 = (1 << 256) - 1
MAX_UINT32 = (1 << 32) - 1

# Blocks between an unlock request and the moment funds become withdrawable.
DEFAULT_UNLOCK_DURATION = 10
DEFAULT_STAKE_UNLOCK_DURATION = 10

# Prefixes for derived pool wallets and state records.
ESCROW_PREFIX = "escrow"
PENALTY_PREFIX = "penalty"
STAKE_PREFIX = "stake"
UNLOCKING_PREFIX = "unlocking"
DEPOSIT_RECORD_PREFIX = "deposit"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from wallet ID to token balance.
BalanceMap = Dict[str, int]

# Mutable record stored by the ledger under a state key.
RecordState = Dict[str, Any]


# ============================================================================
# WALLET AND RECORD NAMING
# ============================================================================

def escrow_wallet(account: str) -> str:
    """Pool wallet holding the escrow backing `account`'s tickets."""
    return f"{ESCROW_PREFIX}:{account}"


def penalty_wallet(account: str) -> str:
    """Pool wallet holding `account`'s penalty deposit."""
    return f"{PENALTY_PREFIX}:{account}"


def stake_wallet(staker: str, stakee: str) -> str:
    return f"{STAKE_PREFIX}:{staker}:{stakee}"


def unlocking_wallet(staker: str, stakee: str) -> str:
    return f"{UNLOCKING_PREFIX}:{staker}:{stakee}"


def deposit_record_key(account: str) -> str:
    return f"{DEPOSIT_RECORD_PREFIX}:{account}"


def unlocking_record_key(staker: str, stakee: str) -> str:
    return f"{UNLOCKING_PREFIX}:{staker}:{stakee}"


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a transaction execution attempt.

    APPLIED: Transaction was validated and applied to the ledger.
    ALREADY_APPLIED: A ticket the transaction consumes was already redeemed.
    REJECTED: Transaction failed validation (negative balance, stale state,
              block in the future).
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Classification of where a transaction originated."""
    USER_ACTION = "user_action"           # Deposit, stake and withdrawal requests
    REDEMPTION = "redemption"             # Ticket redemption
    SYSTEM = "system"                     # Issuance and initial setup


class DepositStatus(Enum):
    LOCKED = "locked"
    UNLOCKING = "unlocking"
    WITHDRAWABLE = "withdrawable"


class StakeStatus(Enum):
    STAKED = "staked"
    UNLOCKING = "unlocking"
    WITHDRAWABLE = "withdrawable"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class TicketingError(Exception):
    """
    Base exception for all ticketing errors.

    Every error is terminal for the operation that raised it. `benign` marks
    outcomes a caller may treat as success under at-least-once delivery.
    """
    benign = False


class InsufficientFunds(TicketingError):
    """Raised when a payer cannot cover a deposit or stake."""
    pass


class InvalidTicket(TicketingError, ValueError):
    """Raised when a ticket field is malformed or out of range."""
    pass


class InvalidSignature(TicketingError):
    """Raised when the ticket signature does not recover the ticket's sender."""
    pass


class TicketExpired(TicketingError):
    pass


class TicketAlreadyRedeemed(TicketingError):
    """Raised when a ticket hash is already in the replay guard."""
    benign = True


class CommitmentMismatch(TicketingError):
    """Raised when a revealed random value does not hash to its commitment."""
    pass


class InsufficientEscrow(TicketingError):
    """Raised when a winning ticket's face value exceeds the sender's escrow."""
    pass


class UnlockPeriodNotComplete(TicketingError):
    pass


class NothingToUnlock(TicketingError):
    pass


class StakeNotYetUnlocked(TicketingError):
    pass


class UnlockAlreadyInProgress(TicketingError):
    pass


class NotUnlocking(TicketingError):
    pass


class InsufficientStake(TicketingError):
    """Raised when an unlock or cancel amount exceeds what is held."""
    pass


class TransactionRejected(TicketingError):
    """Raised by the client when the ledger rejects a submitted intent."""
    pass


# ============================================================================
# ACCOUNT RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Deposit:
    """
    Escrow and penalty balances of one account.

    Attributes:
        escrow: Tokens backing ticket payouts.
        penalty: Tokens forfeited when escrow cannot cover a winning ticket.
        unlock_at: Block at which the deposit becomes withdrawable (0 = locked).
    """
    escrow: int = 0
    penalty: int = 0
    unlock_at: int = 0

    @property
    def total(self) -> int:
        return self.escrow + self.penalty

    def status(self, current_block: int) -> DepositStatus:
        if self.unlock_at == 0:
            return DepositStatus.LOCKED
        if current_block < self.unlock_at:
            return DepositStatus.UNLOCKING
        return DepositStatus.WITHDRAWABLE


@dataclass(frozen=True, slots=True)
class Stake:
    staker: str
    stakee: str
    amount: int = 0


@dataclass(frozen=True, slots=True)
class Unlocking:
    """Stake moved out of a staker→stakee pair and waiting to mature."""
    amount: int = 0
    unlock_at: int = 0

    def status(self, current_block: int) -> StakeStatus:
        if self.amount == 0:
            return StakeStatus.STAKED
        if current_block < self.unlock_at:
            return StakeStatus.UNLOCKING
        return StakeStatus.WITHDRAWABLE


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Contract functions (deposits, staking, redemption) query state through
    this protocol without the ability to modify it. The Ledger class implements
    it and adds mutation methods; tests use FakeView, a truly immutable
    implementation.
    """

    @property
    def current_block(self) -> int:
        """Return the current block height of the ledger."""
        ...

    @property
    def unlock_duration(self) -> int:
        ...

    @property
    def stake_unlock_duration(self) -> int:
        ...

    @property
    def burn_penalty_on_shortfall(self) -> bool:
        """Whether a winning ticket exceeding escrow burns the penalty deposit."""
        ...

    def get_balance(self, wallet_id: str) -> int:
        """Return the token balance of a wallet (0 if unknown)."""
        ...

    def get_record(self, key: str) -> RecordState:
        """Return a copy of the state record stored under `key` (empty if absent)."""
        ...

    def is_redeemed(self, ticket_hash: bytes) -> bool:
        """Return True if the ticket hash is in the replay guard."""
        ...


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of a transaction's origin for audit purposes.

    Attributes:
        origin_type: Classification of the origin source
        source_id: Account that requested the transaction
        event_type: Specific event (e.g., "DEPOSIT_ESCROW", "TICKET_WIN")
    """
    origin_type: OriginType
    source_id: str
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.event_type:
            parts.append(f"event={self.event_type}")
        return f"Origin({', '.join(parts)})"


# ============================================================================
# STATE CHANGE
# ============================================================================

@dataclass(frozen=True, slots=True)
class StateChange:
    """
    Record of a ledger record change for transaction logging and replay.

    Stores complete before/after snapshots. The ledger applies new_state only
    when old_state still matches the stored record.

    Attributes:
        key: Record key (e.g., "deposit:0xabc...")
        old_state: Complete record before the change (dict or None)
        new_state: Complete record after the change (dict)
    """
    key: str
    old_state: Any
    new_state: Any

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """
        Compute fields that differ between old and new state.

        Returns:
            Dict mapping field name to (old_value, new_value) tuples.
        """
        old = self.old_state if isinstance(self.old_state, dict) else {}
        new = self.new_state if isinstance(self.new_state, dict) else {}
        changes = {}
        for key in set(old.keys()) | set(new.keys()):
            old_val = old.get(key)
            new_val = new.get(key)
            if old_val != new_val:
                changes[key] = (old_val, new_val)
        return changes


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of tokens between two wallets.

    Attributes:
        quantity: The amount to transfer (positive integer, smallest token unit).
        source: The wallet ID from which tokens are debited.
        dest: The wallet ID to which tokens are credited.
        contract_id: Identifier of the operation generating this move.
    """
    quantity: int
    source: str
    dest: str
    contract_id: str

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.contract_id or not self.contract_id.strip():
            raise ValueError("Move contract_id cannot be empty")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValueError(f"Move quantity must be int, got {type(self.quantity)}")
        if self.quantity <= 0:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity}: {self.source}→{self.dest})"


def _canonicalize(value: Any) -> str:
    """
    Produce a canonical string representation of a value for hashing.

    Dict keys and set members are sorted so that semantically equal values
    serialize identically.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, (bytes, bytearray)):
        return f"B:{bytes(value).hex()}"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        serialized = ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items)
        return f"{{{serialized}}}"
    if isinstance(value, (list, tuple)):
        serialized = ",".join(_canonicalize(item) for item in value)
        return f"[{serialized}]"
    if isinstance(value, (set, frozenset)):
        serialized = ",".join(_canonicalize(item) for item in sorted(value, key=str))
        return f"<{serialized}>"
    return f"R:{repr(value)}"


def _compute_intent_id(
    moves: Tuple[Move, ...],
    state_changes: Tuple[StateChange, ...],
    origin: TransactionOrigin,
    consumes: Tuple[bytes, ...] = (),
) -> str:
    """
    Compute a deterministic content hash for a transaction's intent.

    Based solely on moves, state changes, origin and consumed tickets, never
    on the block or ledger-specific data. Same inputs always produce the same
    intent_id, which makes it usable as an audit and replay key.
    """
    sorted_moves = tuple(sorted(
        moves,
        key=lambda m: (m.quantity, m.source, m.dest, m.contract_id)
    ))

    content_parts = [f"origin:{origin.origin_type.value}:{origin.source_id}"]
    if origin.event_type:
        content_parts.append(f"event:{origin.event_type}")

    for m in sorted_moves:
        content_parts.append(f"move:{m.quantity}|{m.source}|{m.dest}|{m.contract_id}")

    for sc in sorted(state_changes, key=lambda s: s.key):
        old_canonical = _canonicalize(sc.old_state)
        new_canonical = _canonicalize(sc.new_state)
        content_parts.append(f"state_change:{sc.key}|{old_canonical}|{new_canonical}")

    for ticket_hash in sorted(consumes):
        content_parts.append(f"consume:{ticket_hash.hex()}")

    content = "|".join(content_parts)
    return hashlib.sha256(content.encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A transaction specification before execution - represents INTENT.

    Created by contract functions and submitted to the ledger for execution.

    Lifecycle:
    1. A compute_* function builds the PendingTransaction from a LedgerView
    2. intent_id is auto-computed from content (deterministic hash)
    3. Ledger.execute() validates and executes, creating a Transaction record

    Attributes:
        moves: Tuple of token transfers between wallets
        state_changes: Tuple of record changes (with old_state and new_state)
        origin: Who/what created this transaction and why
        block: Block height the intent was computed at
        consumes: Ticket hashes entering the replay guard on execution
        expires_at: Last block at which the intent may execute (0 = no limit)
        intent_id: Content-addressable hash of the transaction intent (auto-computed)
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[StateChange, ...]
    origin: TransactionOrigin
    block: int
    consumes: Tuple[bytes, ...] = ()
    expires_at: int = 0
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            computed_id = _compute_intent_id(
                self.moves, self.state_changes, self.origin, self.consumes
            )
            object.__setattr__(self, 'intent_id', computed_id)

    def is_empty(self) -> bool:
        """Return True if there are no moves, no state changes and no consumed tickets."""
        return not self.moves and not self.state_changes and not self.consumes

    def __repr__(self) -> str:
        return (
            f"PendingTransaction({len(self.moves)} moves, {len(self.state_changes)} deltas, "
            f"{len(self.consumes)} tickets, {self.origin})"
        )


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    state_changes: Optional[List[StateChange]] = None,
    origin: Optional[TransactionOrigin] = None,
    consumes: Optional[List[bytes]] = None,
    expires_at: int = 0,
) -> PendingTransaction:
    """
    Build a PendingTransaction from moves, record changes and consumed tickets.

    This is the standard way to create transactions.

    Args:
        view: Read-only ledger view (provides current_block)
        moves: List of moves to include in the transaction
        state_changes: Optional list of StateChange objects
        origin: Transaction origin (defaults to a USER_ACTION origin)
        consumes: Optional ticket hashes to add to the replay guard
        expires_at: Last block at which the ledger may apply it (0 = no limit)

    Returns:
        A PendingTransaction ready for execution

    Example:
        def compute_payment(view, payer, payee, amount):
            moves = [Move(amount, payer, payee, "payment")]
            return build_transaction(view, moves)
    """
    if origin is None:
        origin = TransactionOrigin(
            origin_type=OriginType.USER_ACTION,
            source_id="client",
        )

    copied_changes: Tuple[StateChange, ...] = ()
    if state_changes:
        copied_changes = tuple(
            StateChange(
                key=sc.key,
                old_state=copy.deepcopy(sc.old_state),
                new_state=copy.deepcopy(sc.new_state),
            )
            for sc in state_changes
        )

    return PendingTransaction(
        moves=tuple(moves),
        state_changes=copied_changes,
        origin=origin,
        block=view.current_block,
        consumes=tuple(bytes(h) for h in consumes or ()),
        expires_at=expires_at,
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of ledger state changes - represents FACT.

    Created by the ledger when executing a PendingTransaction.

    Attributes:
        moves: Tuple of token transfers between wallets
        state_changes: Tuple of record changes (with old_state and new_state)
        origin: Who/what created this transaction and why
        block: Block the PendingTransaction was computed at
        intent_id: Content hash from PendingTransaction
        exec_id: Unique execution identifier (ledger + sequence + block)
        ledger_name: Name of the ledger that executed this
        execution_block: Block at which this was executed and logged
        sequence_number: Monotonic sequence within the ledger (for ordering)
        consumes: Ticket hashes added to the replay guard
        contract_ids: Set of contract IDs from moves (auto-populated)
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[StateChange, ...]
    origin: TransactionOrigin
    block: int
    intent_id: str
    exec_id: str
    ledger_name: str
    execution_block: int
    sequence_number: int
    consumes: Tuple[bytes, ...] = ()
    contract_ids: FrozenSet[str] = None

    def __post_init__(self):
        if not self.moves and not self.state_changes and not self.consumes:
            raise ValueError("Transaction must have moves, state_changes, or consumes")
        if self.contract_ids is None:
            object.__setattr__(
                self, 'contract_ids',
                frozenset(m.contract_id for m in self.moves)
            )

    def __repr__(self) -> str:
        w = 100
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            "",
            f"┌{bar}┐",
            f"│{pad(' Transaction: ' + self.exec_id)}│",
            f"├{bar}┤",
            f"│{pad('   intent_id       : ' + self.intent_id)}│",
            f"│{pad('   block           : ' + str(self.block))}│",
            f"│{pad('   ledger_name     : ' + self.ledger_name)}│",
            f"│{pad('   execution_block : ' + str(self.execution_block))}│",
            f"│{pad('   sequence        : ' + str(self.sequence_number))}│",
            f"│{pad('   origin          : ' + str(self.origin))}│",
            f"│{pad('   contract_ids    : ' + str(sorted(self.contract_ids)))}│",
        ]
        if self.consumes:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' Tickets Consumed (' + str(len(self.consumes)) + '):')}│")
            for ticket_hash in self.consumes:
                lines.append(f"│{pad('   0x' + ticket_hash.hex())}│")
        lines.append(f"├{bar}┤")
        lines.append(f"│{pad(' Moves (' + str(len(self.moves)) + '):')}│")
        for i, move in enumerate(self.moves):
            move_str = f"   [{i}] {move.quantity}: {move.source} → {move.dest}"
            lines.append(f"│{pad(move_str)}│")
        if self.state_changes:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' State Changes (' + str(len(self.state_changes)) + '):')}│")
            for sc in self.state_changes:
                lines.append(f"│{pad('   [' + sc.key + ']')}│")
                for field_name, (old_val, new_val) in sc.changed_fields().items():
                    lines.append(f"│{pad(f'      {field_name}: {old_val!r} → {new_val!r}')}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


@dataclass(frozen=True, slots=True)
class RedemptionOutcome:
    """
    Result of a ticket redemption.

    Attributes:
        ticket_hash: Hash of the redeemed ticket
        won: Whether the ticket won
        payout: Tokens credited to the receiver (0 on a loss)
        burned: Penalty tokens burned because escrow fell short
        block: Block at which the redemption was computed
    """
    ticket_hash: bytes
    won: bool
    payout: int = 0
    burned: int = 0
    block: int = 0


# ============================================================================
# RECORD READERS
# ============================================================================

def read_deposit(view: LedgerView, account: str) -> Deposit:
    """Assemble an account's Deposit from its pool wallets and record."""
    record = view.get_record(deposit_record_key(account))
    return Deposit(
        escrow=view.get_balance(escrow_wallet(account)),
        penalty=view.get_balance(penalty_wallet(account)),
        unlock_at=record.get('unlock_at', 0),
    )


def read_stake(view: LedgerView, staker: str, stakee: str) -> Stake:
    return Stake(
        staker=staker,
        stakee=stakee,
        amount=view.get_balance(stake_wallet(staker, stakee)),
    )


def read_unlocking(view: LedgerView, staker: str, stakee: str) -> Unlocking:
    record = view.get_record(unlocking_record_key(staker, stakee))
    return Unlocking(
        amount=view.get_balance(unlocking_wallet(staker, stakee)),
        unlock_at=record.get('unlock_at', 0),
    )


# ============================================================================
# VALIDATION HELPERS
# ============================================================================

def require_positive_amount(amount: int) -> None:
    """
    Raises:
        ValueError: If amount is not a positive int
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"amount must be int, got {type(amount).__name__}")
    if amount <= 0:
        raise ValueError(f"amount must be positive, got {amount}")


def require_funds(view: LedgerView, payer: str, amount: int) -> None:
    """
    Raises:
        InsufficientFunds: If payer's balance is below amount (SYSTEM_WALLET exempt)
    """
    if payer == SYSTEM_WALLET:
        return
    balance = view.get_balance(payer)
    if balance < amount:
        raise InsufficientFunds(f"{payer} holds {balance}, needs {amount}")
