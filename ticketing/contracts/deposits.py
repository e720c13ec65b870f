"""
deposits.py - Escrow and penalty deposit lifecycle

Pure functions for the per-account deposit state machine:

    Locked ──unlock──▶ Unlocking ──(current_block ≥ unlock_at)──▶ Withdrawable
      ▲                    │                                            │
      ├─────── lock ───────┘                                            │
      └──────────────────────── withdraw / deposit ─────────────────────┘

1. compute_deposit_escrow() / compute_deposit_penalty() - Fund an account's pools
2. compute_unlock_deposits() - Start the unlock period
3. compute_lock_deposits() - Cancel a pending unlock
4. compute_withdraw() - Pay out escrow and penalty once unlocked

Escrow and penalty tokens live in the derived wallets escrow:<account> and
penalty:<account>; the unlock block lives in the deposit:<account> record.
All functions take a LedgerView and return a PendingTransaction, or raise.
"""

from __future__ import annotations
from typing import Optional

from ..core import (
    LedgerView, Move, PendingTransaction, StateChange, TransactionOrigin, OriginType,
    NothingToUnlock, UnlockAlreadyInProgress, NotUnlocking,
    UnlockPeriodNotComplete,
    build_transaction, require_positive_amount, require_funds,
    deposit_record_key, escrow_wallet, penalty_wallet, read_deposit,
)


def _unlock_at_change(view: LedgerView, account: str, unlock_at: int) -> StateChange:
    key = deposit_record_key(account)
    old_state = view.get_record(key)
    return StateChange(key=key, old_state=old_state, new_state={**old_state, 'unlock_at': unlock_at})


def _compute_deposit(
    view: LedgerView,
    amount: int,
    payer: str,
    account: str,
    pool: str,
    event_type: str,
) -> PendingTransaction:
    require_positive_amount(amount)
    unlock_at = read_deposit(view, account).unlock_at
    if view.current_block < unlock_at:
        raise UnlockAlreadyInProgress("Cannot deposit while unlocking")
    require_funds(view, payer, amount)

    # Topping up a Withdrawable deposit returns it to Locked.
    changes = []
    if unlock_at != 0:
        changes.append(_unlock_at_change(view, account, 0))

    return build_transaction(
        view,
        [Move(amount, payer, pool, event_type.lower())],
        changes,
        origin=TransactionOrigin(OriginType.USER_ACTION, payer, event_type),
    )


def compute_deposit_escrow(
    view: LedgerView,
    amount: int,
    payer: str,
    account: Optional[str] = None,
) -> PendingTransaction:
    """
    Move `amount` tokens from `payer` into `account`'s escrow.

    Args:
        view: Read-only ledger access
        amount: Tokens to deposit (positive)
        payer: Wallet paying for the deposit
        account: Account credited (defaults to the payer)

    Raises:
        ValueError: If amount is not a positive int
        UnlockAlreadyInProgress: If the account is Unlocking
        InsufficientFunds: If the payer's balance cannot cover amount
    """
    account = account or payer
    return _compute_deposit(view, amount, payer, account, escrow_wallet(account), "DEPOSIT_ESCROW")


def compute_deposit_penalty(
    view: LedgerView,
    amount: int,
    payer: str,
    account: Optional[str] = None,
) -> PendingTransaction:
    """Move `amount` tokens from `payer` into `account`'s penalty deposit."""
    account = account or payer
    return _compute_deposit(view, amount, payer, account, penalty_wallet(account), "DEPOSIT_PENALTY")


def compute_unlock_deposits(view: LedgerView, account: str) -> PendingTransaction:
    """
    Start the unlock period for an account's escrow and penalty.

    Sets unlock_at = current_block + unlock_duration.

    Raises:
        NothingToUnlock: If the account holds neither escrow nor penalty
        UnlockAlreadyInProgress: If an unlock was already requested
    """
    deposit = read_deposit(view, account)
    if deposit.total == 0:
        raise NothingToUnlock("No amount to unlock")
    if deposit.unlock_at != 0:
        raise UnlockAlreadyInProgress("Unlock already in progress")

    unlock_at = view.current_block + view.unlock_duration
    return build_transaction(
        view,
        [],
        [_unlock_at_change(view, account, unlock_at)],
        origin=TransactionOrigin(OriginType.USER_ACTION, account, "UNLOCK_DEPOSITS"),
    )


def compute_lock_deposits(view: LedgerView, account: str) -> PendingTransaction:
    """
    Cancel a pending unlock, returning the deposit to Locked.

    Raises:
        NotUnlocking: If no unlock was requested
    """
    if read_deposit(view, account).unlock_at == 0:
        raise NotUnlocking("Not unlocking, cannot lock")
    return build_transaction(
        view,
        [],
        [_unlock_at_change(view, account, 0)],
        origin=TransactionOrigin(OriginType.USER_ACTION, account, "LOCK_DEPOSITS"),
    )


def compute_withdraw(
    view: LedgerView,
    account: str,
    to: Optional[str] = None,
) -> PendingTransaction:
    """
    Pay out an unlocked deposit.

    Both escrow and penalty are transferred to `to` (defaults to the account),
    leaving the deposit empty and Locked.

    Raises:
        UnlockPeriodNotComplete: If no unlock was requested or it has not matured
        NothingToUnlock: If the deposit is empty
    """
    deposit = read_deposit(view, account)
    if deposit.unlock_at == 0:
        raise UnlockPeriodNotComplete("Deposits not unlocked")
    if view.current_block < deposit.unlock_at:
        raise UnlockPeriodNotComplete(
            f"Unlock period not complete: block {view.current_block} < {deposit.unlock_at}"
        )
    if deposit.total == 0:
        raise NothingToUnlock("Nothing to withdraw")

    to = to or account
    moves = []
    if deposit.escrow > 0:
        moves.append(Move(deposit.escrow, escrow_wallet(account), to, "withdraw_escrow"))
    if deposit.penalty > 0:
        moves.append(Move(deposit.penalty, penalty_wallet(account), to, "withdraw_penalty"))

    return build_transaction(
        view,
        moves,
        [_unlock_at_change(view, account, 0)],
        origin=TransactionOrigin(OriginType.USER_ACTION, account, "WITHDRAW"),
    )
