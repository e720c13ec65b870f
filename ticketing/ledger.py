"""
ledger.py - Stateful reference ledger for ticketing

The Ledger class is the single serializer of state transitions. It is the
only module that mutates state, ensuring controlled and auditable changes.

Key responsibilities:
    - Implements LedgerView protocol for safe read-only access by pure functions
    - Executes transactions atomically (all moves and record changes, or nothing)
    - Holds token balances, deposit / unlocking records and the replay guard
    - Tracks block height and provides clone() and replay()
    - Always validates and always logs the transaction - no exceptions
"""

from __future__ import annotations
from collections import defaultdict
from typing import Dict, List, Set, Optional, Tuple, Any
import copy
import threading

from loguru import logger

from .core import (
    # Types
    Move, Transaction, PendingTransaction, TransactionOrigin, OriginType,
    ExecuteResult, Deposit, Stake, Unlocking, RecordState, BalanceMap,
    # Constants
    SYSTEM_WALLET, STAKE_PREFIX, DEFAULT_UNLOCK_DURATION, DEFAULT_STAKE_UNLOCK_DURATION,
    # Exceptions
    TicketingError,
    # Helpers
    build_transaction, read_deposit, read_stake, read_unlocking,
)


class Ledger:
    """
    Token ledger with deposit, stake and ticket-redemption state.

    Implements the LedgerView protocol, allowing the ledger to be passed to the
    pure compute_* functions that access only read-only methods.

    Design Principles:
        - Always validates: every transaction is checked for negative balances,
          stale records and replayed tickets before anything is applied.
        - Always logs: every applied transaction is recorded in the audit trail,
          enabling replay() for state reconstruction.

    Thread Safety:
        execute() and mint() hold the ledger lock, so the replay guard check
        and the commit of a transaction cannot interleave across threads.
        Callers that compute an intent and execute it as one step hold `lock`
        themselves (TicketingClient does). The lock is re-entrant.

    Example:
        ledger = Ledger("main")
        ledger.mint(alice, 1_000)

        tx = compute_deposit_escrow(ledger, 600, alice)
        result = ledger.execute(tx)
    """

    def __init__(
        self,
        name: str,
        initial_block: int = 0,
        unlock_duration: int = DEFAULT_UNLOCK_DURATION,
        stake_unlock_duration: int = DEFAULT_STAKE_UNLOCK_DURATION,
        burn_penalty_on_shortfall: bool = False,
        verbose: bool = True,
        test_mode: bool = False,
    ):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            initial_block: Starting block height (default: 0)
            unlock_duration: Blocks before an unlocked deposit is withdrawable
            stake_unlock_duration: Blocks before unlocking stake is withdrawable
            burn_penalty_on_shortfall: Pay out remaining escrow and burn the
                penalty when a winning ticket exceeds escrow (default: reject)
            verbose: Log every executed transaction (default: True)
            test_mode: Enable test mode to allow set_balance() calls (default: False)
        """
        if initial_block < 0:
            raise ValueError(f"initial_block must be non-negative, got {initial_block}")
        # unlock_at == 0 means Locked, so an unlock must always land after block 0
        if unlock_duration < 1:
            raise ValueError(f"unlock_duration must be at least 1 block, got {unlock_duration}")
        if stake_unlock_duration < 1:
            raise ValueError(
                f"stake_unlock_duration must be at least 1 block, got {stake_unlock_duration}"
            )
        self.name = name
        self.balances: Dict[str, int] = defaultdict(int)
        self.records: Dict[str, RecordState] = {}
        self.redeemed_tickets: Set[bytes] = set()
        self.transaction_log: List[Transaction] = []
        self._initial_block = initial_block
        self._current_block = initial_block
        self._unlock_duration = unlock_duration
        self._stake_unlock_duration = stake_unlock_duration
        self._burn_penalty_on_shortfall = burn_penalty_on_shortfall
        self.verbose = verbose
        self._test_mode = test_mode
        # Monotonic sequence counter for execution ordering
        self._next_sequence: int = 0
        self._lock = threading.RLock()

    @classmethod
    def from_config(cls, name: str, config=None, **kwargs) -> Ledger:
        """
        Create a ledger from a LedgerConfig (default: LedgerConfig.from_env()).

        Keyword arguments are passed through to the constructor.
        """
        from .config import LedgerConfig

        config = config or LedgerConfig.from_env()
        return cls(
            name,
            unlock_duration=config.unlock_duration,
            stake_unlock_duration=config.stake_unlock_duration,
            burn_penalty_on_shortfall=config.burn_penalty_on_shortfall,
            verbose=config.verbose,
            **kwargs,
        )

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_block(self) -> int:
        """Current block height of the ledger."""
        return self._current_block

    @property
    def unlock_duration(self) -> int:
        return self._unlock_duration

    @property
    def stake_unlock_duration(self) -> int:
        return self._stake_unlock_duration

    @property
    def lock(self) -> threading.RLock:
        """Re-entrant lock serializing state transitions on this ledger."""
        return self._lock

    @property
    def burn_penalty_on_shortfall(self) -> bool:
        return self._burn_penalty_on_shortfall

    def get_balance(self, wallet_id: str) -> int:
        """Token balance of a wallet (0 if the wallet has never held tokens)."""
        return self.balances.get(wallet_id, 0)

    def get_record(self, key: str) -> RecordState:
        """
        Get a deep copy of a stored record.

        The returned dictionary can be safely mutated without affecting the
        ledger's internal state.
        """
        return copy.deepcopy(self.records.get(key, {}))

    def is_redeemed(self, ticket_hash: bytes) -> bool:
        return bytes(ticket_hash) in self.redeemed_tickets

    # ========================================================================
    # QUERIES
    # ========================================================================

    def get_deposit(self, account: str) -> Deposit:
        return read_deposit(self, account)

    def get_stake(self, staker: str, stakee: str) -> Stake:
        return read_stake(self, staker, stakee)

    def get_unlocking(self, staker: str, stakee: str) -> Unlocking:
        return read_unlocking(self, staker, stakee)

    def get_stakers(self, stakee: str) -> List[str]:
        """Accounts with a non-zero stake on `stakee`, sorted."""
        stakers = []
        suffix = f":{stakee}"
        for wallet, balance in self.balances.items():
            if balance > 0 and wallet.startswith(f"{STAKE_PREFIX}:") and wallet.endswith(suffix):
                stakers.append(wallet[len(STAKE_PREFIX) + 1:-len(suffix)])
        return sorted(stakers)

    def get_total_stake(self, stakee: str) -> int:
        return sum(self.get_stake(staker, stakee).amount for staker in self.get_stakers(stakee))

    def list_wallets(self) -> Set[str]:
        """Wallets holding a non-zero balance."""
        return {w for w, b in self.balances.items() if b != 0}

    def get_wallet_balances(self) -> BalanceMap:
        return {w: b for w, b in self.balances.items() if b != 0}

    def total_supply(self) -> int:
        """
        Tokens issued and held outside the system wallet.

        Wallets are sorted before summation to ensure deterministic
        accumulation order.
        """
        return sum(
            self.balances[w] for w in sorted(self.balances) if w != SYSTEM_WALLET
        )

    def verify_conservation(self, expected_supply: Optional[int] = None) -> Dict[str, Any]:
        """
        Verify that tokens are neither created nor destroyed.

        Issuance debits SYSTEM_WALLET, so the sum over every wallet including
        the system wallet is always zero. Burned tokens remain counted at
        BURN_ADDRESS.

        Args:
            expected_supply: Optional expected total_supply()

        Returns:
            Dict with keys:
            - 'valid': bool - True if conservation holds
            - 'supply': int - Current total_supply()
            - 'issued': int - Tokens issued by SYSTEM_WALLET
            - 'discrepancies': List[Dict] - Details of any violations

        Example:
            result = ledger.verify_conservation(expected_supply=10_000)
            assert result['valid'], f"Conservation violated: {result['discrepancies']}"
        """
        supply = self.total_supply()
        issued = -self.balances.get(SYSTEM_WALLET, 0)
        discrepancies = []
        if supply != issued:
            discrepancies.append({'check': 'issued', 'expected': issued, 'actual': supply})
        if expected_supply is not None and supply != expected_supply:
            discrepancies.append({'check': 'expected', 'expected': expected_supply, 'actual': supply})
        return {
            'valid': len(discrepancies) == 0,
            'supply': supply,
            'issued': issued,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # BLOCK HEIGHT
    # ========================================================================

    def advance_block(self, n: int = 1) -> int:
        """
        Advance the block height by `n` blocks and return the new height.

        Raises:
            ValueError: If n is negative
        """
        if n < 0:
            raise ValueError(f"Cannot move block height backwards by {n}")
        with self._lock:
            self._current_block += n
            return self._current_block

    def advance_to(self, block: int) -> None:
        """
        Raises:
            ValueError: If block is below the current block height
        """
        if block < self._current_block:
            raise ValueError(
                f"Cannot move block height backwards: {block} < {self._current_block}"
            )
        with self._lock:
            self._current_block = block

    # ========================================================================
    # CONFIGURATION (Mutating)
    # ========================================================================

    def set_unlock_duration(self, blocks: int) -> None:
        """
        Change the deposit unlock period for future unlock requests.

        Deposits already unlocking keep their unlock_at.

        Raises:
            ValueError: If blocks is less than 1
        """
        if blocks < 1:
            raise ValueError(f"unlock_duration must be at least 1 block, got {blocks}")
        with self._lock:
            self._unlock_duration = blocks

    def set_stake_unlock_duration(self, blocks: int) -> None:
        """Change the stake unlock period for future unlock requests."""
        if blocks < 1:
            raise ValueError(f"stake_unlock_duration must be at least 1 block, got {blocks}")
        with self._lock:
            self._stake_unlock_duration = blocks

    # ========================================================================
    # ISSUANCE (Mutating)
    # ========================================================================

    def mint(self, account: str, amount: int) -> ExecuteResult:
        """Issue `amount` new tokens from SYSTEM_WALLET to `account`."""
        pending = build_transaction(
            self,
            [Move(amount, SYSTEM_WALLET, account, "mint")],
            origin=TransactionOrigin(OriginType.SYSTEM, SYSTEM_WALLET, "MINT"),
        )
        return self.execute(pending)

    def set_balance(self, wallet_id: str, quantity: int) -> None:
        """
        Set a wallet's balance directly.

        WARNING: This method bypasses double-entry accounting and is only
        available in test mode. For production use, use mint() or
        build_transaction() and execute() instead.

        Raises:
            TicketingError: If called when test_mode is False
        """
        if not self._test_mode:
            raise TicketingError(
                "set_balance() is disabled in production mode. "
                "Use mint() or build_transaction() and execute() to modify balances. "
                "Set test_mode=True when creating Ledger for testing."
            )
        self.balances[wallet_id] = int(quantity)

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        """
        Generate a unique execution ID.

        Format: exec:{ledger_name}:{sequence:012d}:{block}
        """
        return f"exec:{self.name}:{sequence:012d}:{self._current_block}"

    def execute(self, pending: PendingTransaction) -> ExecuteResult:
        """
        Execute a PendingTransaction atomically.

        All moves, record changes and ticket consumptions succeed together or
        not at all. A transaction consuming a ticket hash that is already in the
        replay guard is never applied, which resolves concurrent redemptions
        of the same ticket. The ledger lock is held from the replay guard
        check until the transaction is logged.

        Args:
            pending: PendingTransaction to execute

        Returns:
            ExecuteResult.APPLIED if successful
            ExecuteResult.ALREADY_APPLIED if a consumed ticket was already redeemed
            ExecuteResult.REJECTED if validation failed
        """
        if pending.is_empty():
            return ExecuteResult.APPLIED
        with self._lock:
            return self._execute_locked(pending)

    def _execute_locked(self, pending: PendingTransaction) -> ExecuteResult:
        replayed = [h for h in pending.consumes if h in self.redeemed_tickets]
        if replayed:
            if self.verbose:
                logger.warning(
                    f"⚠ ALREADY_APPLIED: ticket 0x{replayed[0].hex()} already redeemed "
                    f"(intent_id={pending.intent_id})"
                )
            return ExecuteResult.ALREADY_APPLIED

        valid, reason = self._validate_pending(pending)
        if not valid:
            if self.verbose:
                logger.warning(f"✗ REJECTED: {reason} (intent_id={pending.intent_id})")
            return ExecuteResult.REJECTED

        sequence = self._next_sequence
        self._next_sequence += 1

        tx = Transaction(
            moves=pending.moves,
            state_changes=pending.state_changes,
            origin=pending.origin,
            block=pending.block,
            intent_id=pending.intent_id,
            exec_id=self._generate_exec_id(sequence),
            ledger_name=self.name,
            execution_block=self._current_block,
            sequence_number=sequence,
            consumes=pending.consumes,
        )

        self._execute_moves(tx.moves)
        for sc in tx.state_changes:
            self.records[sc.key] = copy.deepcopy(
                sc.new_state if isinstance(sc.new_state, dict) else {}
            )
        self.redeemed_tickets.update(tx.consumes)

        # Log transaction (always - audit trail is mandatory)
        self.transaction_log.append(tx)

        if self.verbose:
            self._log_tx_result(tx, "APPLIED", "✓")
        return ExecuteResult.APPLIED

    def _log_tx_result(self, tx: Transaction, result: str, icon: str) -> None:
        """Log the transaction box from Transaction.__repr__ with a result line appended."""
        lines = repr(tx).split('\n')
        w = 100
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines[-1] = f"├{bar}┤"
        lines.append(f"│{pad(' ' + icon + ' ' + result)}│")
        lines.append(f"└{bar}┘")
        logger.info("\n".join(lines))

    def _validate_pending(self, pending: PendingTransaction) -> Tuple[bool, str]:
        """
        Validate a pending transaction against all constraints.

        Checks performed:
        1. Block check (the intent must not come from a future block)
        2. Expiry (the current block must not be past expires_at)
        3. Duplicate tickets within the transaction
        4. Record freshness (old_state must match the stored record)
        5. Balance check (no wallet except SYSTEM_WALLET may go negative)

        Returns:
            Tuple of (success: bool, reason: str)
        """
        if pending.block > self._current_block:
            return False, f"future block {pending.block} > {self._current_block}"

        if pending.expires_at and self._current_block > pending.expires_at:
            return False, f"intent expired at block {pending.expires_at} < {self._current_block}"

        if len(set(pending.consumes)) != len(pending.consumes):
            return False, "ticket consumed twice in one transaction"

        # Optimistic concurrency: the intent was computed against old_state
        for sc in pending.state_changes:
            expected = sc.old_state if isinstance(sc.old_state, dict) else {}
            current = self.records.get(sc.key, {})
            if expected != current:
                return False, f"stale state for {sc.key}: expected {expected!r}, found {current!r}"

        net: Dict[str, int] = {}
        for move in pending.moves:
            net[move.source] = net.get(move.source, 0) - move.quantity
            net[move.dest] = net.get(move.dest, 0) + move.quantity

        for wallet, delta in net.items():
            if wallet == SYSTEM_WALLET:
                continue
            proposed = self.balances.get(wallet, 0) + delta
            if proposed < 0:
                return False, f"{wallet}: {proposed} < 0"

        return True, ""

    def _execute_moves(self, moves) -> None:
        for move in moves:
            self.balances[move.source] -= move.quantity
            self.balances[move.dest] += move.quantity

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> Ledger:
        """
        Create a deep copy of this ledger.

        All state is fully independent: balances, records, the replay guard,
        the transaction log, block height and configuration.
        """
        cloned = Ledger.__new__(Ledger)
        cloned.name = self.name
        cloned._initial_block = self._initial_block
        cloned._current_block = self._current_block
        cloned._unlock_duration = self._unlock_duration
        cloned._stake_unlock_duration = self._stake_unlock_duration
        cloned._burn_penalty_on_shortfall = self._burn_penalty_on_shortfall
        cloned.verbose = self.verbose
        cloned._test_mode = self._test_mode

        cloned.balances = defaultdict(int, self.balances)
        cloned.records = copy.deepcopy(self.records)
        cloned.redeemed_tickets = set(self.redeemed_tickets)
        cloned.transaction_log = list(self.transaction_log)
        cloned._next_sequence = self._next_sequence
        cloned._lock = threading.RLock()
        return cloned

    def replay(self, from_tx: int = 0) -> Ledger:
        """
        Create a new ledger by replaying the transaction log.

        Each logged transaction is re-executed at its execution block, so the
        replayed ledger ends with the same balances, records and replay guard.

        Note: balances set via set_balance() are NOT replayed because they are
        not part of the transaction log. Use clone() to preserve them.

        Args:
            from_tx: Starting transaction index (0 = replay from beginning)

        Raises:
            TicketingError: If a logged transaction fails to re-apply
        """
        new_ledger = Ledger(
            name=f"{self.name}_replayed",
            initial_block=self._initial_block,
            unlock_duration=self._unlock_duration,
            stake_unlock_duration=self._stake_unlock_duration,
            burn_penalty_on_shortfall=self._burn_penalty_on_shortfall,
            verbose=self.verbose,
            test_mode=self._test_mode,
        )

        for tx in self.transaction_log[from_tx:]:
            if tx.execution_block > new_ledger.current_block:
                new_ledger.advance_to(tx.execution_block)

            pending = PendingTransaction(
                moves=tx.moves,
                state_changes=tx.state_changes,
                origin=tx.origin,
                block=tx.block,
                consumes=tx.consumes,
                intent_id=tx.intent_id,
            )
            result = new_ledger.execute(pending)
            if result != ExecuteResult.APPLIED:
                raise TicketingError(f"Replay failed at tx {tx.exec_id}: {result.value}")

        if self._current_block > new_ledger.current_block:
            new_ledger.advance_to(self._current_block)
        return new_ledger
