"""
conftest.py - Shared pytest fixtures for ticketing tests

Provides common fixtures used across unit, conformance and functional tests:
- Deterministic keys, addresses and random sources
- Ledgers (empty, funded with escrow and penalty)
- Clients for the sender and receiver roles
- Ticket construction helpers
"""

import itertools
from typing import Callable, Tuple

import pytest
from eth_account import Account
from loguru import logger

from ticketing import (
    Ledger, TicketingClient, Ticket, SignedTicket, Commitment,
    MAX_UINT256, ExecuteResult,
    compute_deposit_escrow, compute_deposit_penalty,
    sign_ticket,
)

from tests.fake_view import FakeView


# =============================================================================
# KEYS AND ACCOUNTS
# =============================================================================

ALICE_KEY = "0x" + "11" * 32
BOB_KEY = "0x" + "22" * 32
CAROL_KEY = "0x" + "33" * 32

ALICE = Account.from_key(ALICE_KEY).address
BOB = Account.from_key(BOB_KEY).address
CAROL = Account.from_key(CAROL_KEY).address

ALICE_FUNDS = 10_000
ALICE_ESCROW = 1_000
ALICE_PENALTY = 500


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def counter_random_source(start: int = 1) -> Callable[[], int]:
    """Deterministic stand-in for the CSPRNG: start, start + 1, ..."""
    counter = itertools.count(start)
    return lambda: next(counter)


def make_signed_ticket(
    sender_key: str = ALICE_KEY,
    receiver: str = BOB,
    face_value: int = 100,
    win_prob: int = MAX_UINT256,
    expiration_block: int = 0,
    sender_nonce: int = 0,
    sender_rand: int = 1111,
    receiver_rand: int = 2222,
) -> Tuple[SignedTicket, int, int]:
    """Build and sign a ticket; returns (signed_ticket, sender_rand, receiver_rand)."""
    ticket = Ticket(
        sender=Account.from_key(sender_key).address,
        receiver=receiver,
        face_value=face_value,
        win_prob=win_prob,
        expiration_block=expiration_block,
        sender_commit=Commitment(sender_rand).commit,
        receiver_commit=Commitment(receiver_rand).commit,
        sender_nonce=sender_nonce,
    )
    return sign_ticket(ticket, sender_key), sender_rand, receiver_rand


def fund_deposit(ledger: Ledger, account: str, escrow: int, penalty: int) -> None:
    """Deposit escrow and penalty for an account that already holds tokens (zero amounts skipped)."""
    if escrow:
        assert ledger.execute(compute_deposit_escrow(ledger, escrow, account)) == ExecuteResult.APPLIED
    if penalty:
        assert ledger.execute(compute_deposit_penalty(ledger, penalty, account)) == ExecuteResult.APPLIED


# =============================================================================
# LEDGER FIXTURES
# =============================================================================

@pytest.fixture
def ledger():
    """Fresh ledger at block 0."""
    return Ledger("test", verbose=False, test_mode=True)


@pytest.fixture
def funded_ledger(ledger):
    """Ledger where alice holds 10,000 tokens with 1,000 escrow and 500 penalty deposited."""
    ledger.mint(ALICE, ALICE_FUNDS)
    fund_deposit(ledger, ALICE, ALICE_ESCROW, ALICE_PENALTY)
    return ledger


@pytest.fixture
def burning_ledger():
    """Funded ledger that burns penalties when escrow falls short."""
    ledger = Ledger("burning", verbose=False, test_mode=True, burn_penalty_on_shortfall=True)
    ledger.mint(ALICE, ALICE_FUNDS)
    fund_deposit(ledger, ALICE, ALICE_ESCROW, ALICE_PENALTY)
    return ledger


@pytest.fixture
def empty_view():
    return FakeView(balances={})


@pytest.fixture
def caplog_loguru():
    """Messages logged through loguru while the test runs."""
    messages = []
    handler_id = logger.add(messages.append, format="{level}: {message}", level="DEBUG")
    yield messages
    logger.remove(handler_id)


# =============================================================================
# CLIENT FIXTURES
# =============================================================================

@pytest.fixture
def alice(funded_ledger):
    """Sender client on the funded ledger."""
    return TicketingClient(funded_ledger, private_key=ALICE_KEY, random_source=counter_random_source(1000))


@pytest.fixture
def bob(funded_ledger):
    """Receiver client on the funded ledger."""
    return TicketingClient(funded_ledger, private_key=BOB_KEY, random_source=counter_random_source(5000))
