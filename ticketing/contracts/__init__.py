"""
contracts - Pure state-transition functions

Each compute_* function takes a read-only LedgerView, enforces the rules of
one operation, and returns a PendingTransaction for Ledger.execute().
"""

from .deposits import (
    compute_deposit_escrow,
    compute_deposit_penalty,
    compute_unlock_deposits,
    compute_lock_deposits,
    compute_withdraw,
)
from .staking import (
    compute_add_stake,
    compute_unlock_stake,
    compute_cancel_unlocking,
    compute_withdraw_stake,
)
from .redemption import (
    compute_redemption,
    redemption_outcome,
    EVENT_TICKET_WIN,
    EVENT_TICKET_LOSS,
)
