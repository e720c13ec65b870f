"""
ticketing - Probabilistic Micropayment Tickets

Escrow deposits, staking and probabilistic ticket redemption, with an
in-memory reference ledger that enforces the ledger-side rules.

Usage:
    from ticketing import Ledger, TicketingClient, MAX_UINT256

    ledger = Ledger("main")
    alice = TicketingClient(ledger, private_key=ALICE_KEY)
    bob = TicketingClient(ledger, private_key=BOB_KEY)

    # Fund alice via SYSTEM_WALLET and lock escrow behind her tickets
    ledger.mint(alice.address, 1_000)
    alice.deposit_escrow(500)
    alice.deposit_penalty(100)

    # Bob commits first, alice signs a ticket over both commitments
    signed = alice.issue_ticket(
        bob.address, face_value=100, win_prob=MAX_UINT256,
        receiver_commit=bob.new_receiver_commitment(),
    )

    # After the service is delivered alice reveals her value; bob redeems
    outcome = bob.redeem(signed, alice.reveal_sender_rand(signed.ticket_hash))
"""

# Core types
from .core import (
    LedgerView,
    Move,
    StateChange,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    ExecuteResult,
    build_transaction,
    Deposit,
    DepositStatus,
    Stake,
    StakeStatus,
    Unlocking,
    RedemptionOutcome,
    SYSTEM_WALLET,
    BURN_ADDRESS,
    MAX_UINT256,
    MAX_UINT32,
    DEFAULT_UNLOCK_DURATION,
    DEFAULT_STAKE_UNLOCK_DURATION,
    escrow_wallet,
    penalty_wallet,
    stake_wallet,
    unlocking_wallet,
    # Exceptions
    TicketingError,
    InsufficientFunds,
    InvalidTicket,
    InvalidSignature,
    TicketExpired,
    TicketAlreadyRedeemed,
    CommitmentMismatch,
    InsufficientEscrow,
    UnlockPeriodNotComplete,
    NothingToUnlock,
    StakeNotYetUnlocked,
    UnlockAlreadyInProgress,
    NotUnlocking,
    InsufficientStake,
    TransactionRejected,
)

# Crypto capabilities
from .crypto import (
    SignatureScheme,
    EthereumSignatureScheme,
    keccak256,
    solidity_keccak,
    address_of,
    sign_ticket_hash,
    recover_signer,
)

# Commitments
from .commitment import (
    Commitment,
    commitment_hash,
    verify_commitment,
    secure_random_source,
)

# Tickets
from .tickets import (
    Ticket,
    SignedTicket,
    ticket_hash,
    sign_ticket,
    verify_ticket_signature,
)

# Win evaluation
from .winning import (
    compute_outcome,
    is_winning_outcome,
    is_winning_ticket,
    expected_value,
)

# Contracts
from .contracts import (
    compute_deposit_escrow,
    compute_deposit_penalty,
    compute_unlock_deposits,
    compute_lock_deposits,
    compute_withdraw,
    compute_add_stake,
    compute_unlock_stake,
    compute_cancel_unlocking,
    compute_withdraw_stake,
    compute_redemption,
    redemption_outcome,
)

# Ledger and client
from .ledger import Ledger
from .client import TicketingClient, TicketingLedger
from .config import LedgerConfig, configure_logging
