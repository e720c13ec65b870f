"""
staking.py - Stake lifecycle per staker→stakee pair

    Staked ──unlock(amount)──▶ Unlocking ──(current_block ≥ unlock_at)──▶ Withdrawable
       ▲                           │                                         │
       └──── cancel(amount) ───────┘                         withdraw ───────┘

Staked tokens sit in stake:<staker>:<stakee>; tokens being unlocked sit in
unlocking:<staker>:<stakee> with their maturity block in the matching record.
Each new unlock request restarts the unlock period for the whole unlocking
amount.
"""

from __future__ import annotations

from ..core import (
    LedgerView, Move, PendingTransaction, StateChange, TransactionOrigin, OriginType,
    InsufficientStake, NothingToUnlock, StakeNotYetUnlocked,
    build_transaction, read_stake, read_unlocking, require_positive_amount, require_funds,
    stake_wallet, unlocking_wallet, unlocking_record_key,
)


def _unlocking_change(view: LedgerView, staker: str, stakee: str, unlock_at: int) -> StateChange:
    key = unlocking_record_key(staker, stakee)
    old_state = view.get_record(key)
    return StateChange(key=key, old_state=old_state, new_state={**old_state, 'unlock_at': unlock_at})


def compute_add_stake(
    view: LedgerView,
    amount: int,
    staker: str,
    stakee: str,
) -> PendingTransaction:
    """
    Stake `amount` tokens from `staker` on `stakee`.

    Raises:
        ValueError: If amount is not a positive int
        InsufficientFunds: If the staker cannot cover amount
    """
    require_positive_amount(amount)
    require_funds(view, staker, amount)
    return build_transaction(
        view,
        [Move(amount, staker, stake_wallet(staker, stakee), "add_stake")],
        origin=TransactionOrigin(OriginType.USER_ACTION, staker, "ADD_STAKE"),
    )


def compute_unlock_stake(
    view: LedgerView,
    amount: int,
    staker: str,
    stakee: str,
) -> PendingTransaction:
    """
    Move `amount` of stake into the unlocking pool.

    The unlocking record's unlock_at becomes current_block + stake_unlock_duration.

    Raises:
        ValueError: If amount is not a positive int
        NothingToUnlock: If nothing is staked
        InsufficientStake: If amount exceeds the stake
    """
    require_positive_amount(amount)
    stake = read_stake(view, staker, stakee)
    if stake.amount == 0:
        raise NothingToUnlock("Nothing to unstake")
    if amount > stake.amount:
        raise InsufficientStake(f"Cannot unlock {amount}, only {stake.amount} staked")

    unlock_at = view.current_block + view.stake_unlock_duration
    return build_transaction(
        view,
        [Move(amount, stake_wallet(staker, stakee), unlocking_wallet(staker, stakee), "unlock_stake")],
        [_unlocking_change(view, staker, stakee, unlock_at)],
        origin=TransactionOrigin(OriginType.USER_ACTION, staker, "UNLOCK_STAKE"),
    )


def compute_cancel_unlocking(
    view: LedgerView,
    amount: int,
    staker: str,
    stakee: str,
) -> PendingTransaction:
    """
    Return `amount` from the unlocking pool to the stake.

    When the whole unlocking amount is returned the record is cleared.

    Raises:
        ValueError: If amount is not a positive int
        NothingToUnlock: If nothing is unlocking
        InsufficientStake: If amount exceeds the unlocking amount
    """
    require_positive_amount(amount)
    unlocking = read_unlocking(view, staker, stakee)
    if unlocking.amount == 0:
        raise NothingToUnlock("No amount to unlock")
    if amount > unlocking.amount:
        raise InsufficientStake(f"Cannot cancel {amount}, only {unlocking.amount} unlocking")

    changes = []
    if amount == unlocking.amount:
        changes.append(_unlocking_change(view, staker, stakee, 0))

    return build_transaction(
        view,
        [Move(amount, unlocking_wallet(staker, stakee), stake_wallet(staker, stakee), "cancel_unlocking")],
        changes,
        origin=TransactionOrigin(OriginType.USER_ACTION, staker, "CANCEL_UNLOCKING"),
    )


def compute_withdraw_stake(view: LedgerView, staker: str, stakee: str) -> PendingTransaction:
    """
    Return matured unlocking tokens to the staker.

    Raises:
        StakeNotYetUnlocked: If current_block < unlock_at
        NothingToUnlock: If nothing is unlocking
    """
    unlocking = read_unlocking(view, staker, stakee)
    if view.current_block < unlocking.unlock_at:
        raise StakeNotYetUnlocked(
            f"Stake not yet unlocked: block {view.current_block} < {unlocking.unlock_at}"
        )
    if unlocking.amount == 0:
        raise NothingToUnlock("No amount to unlock")

    return build_transaction(
        view,
        [Move(unlocking.amount, unlocking_wallet(staker, stakee), staker, "withdraw_stake")],
        [_unlocking_change(view, staker, stakee, 0)],
        origin=TransactionOrigin(OriginType.USER_ACTION, staker, "WITHDRAW_STAKE"),
    )
