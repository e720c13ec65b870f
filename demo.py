#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Probabilistic Micropayments Step by Step

Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:   Foundation  - The ledger, issuance, escrow and penalty deposits
  4-6:   Tickets     - Commitments, signing, redemption
  7-8:   Safety      - Replay guard, expiry
  9-10:  Unlocking   - Deposit withdrawal, conservation proof

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
import sys

from eth_account import Account

from ticketing import (
    Ledger, TicketingClient, SignedTicket,
    MAX_UINT256, TicketAlreadyRedeemed, TicketExpired, UnlockPeriodNotComplete,
    expected_value, configure_logging,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    alice_initial: int = 100_000
    escrow: int = 20_000
    penalty: int = 2_000

    face_value: int = 1_000
    win_prob: int = MAX_UINT256 // 10     # 10% chance per ticket
    session_tickets: int = 50

    unlock_duration: int = 5


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_ledger() -> Ledger:
    step_header(1, "The Ledger", "Create an empty ledger tracking block height")
    ledger = Ledger("tutorial", unlock_duration=CONFIG.unlock_duration, verbose=False)
    print(">>> ledger = Ledger('tutorial', unlock_duration=5)")
    print(f"Current block:   {ledger.current_block}")
    print(f"Unlock duration: {ledger.unlock_duration} blocks")
    print(f"Transaction log: {len(ledger.transaction_log)} entries")
    return ledger


def step_02_clients(ledger: Ledger):
    step_header(2, "Accounts", "Give alice (sender) and bob (receiver) keys and tokens")
    alice = TicketingClient(ledger, private_key=Account.create().key)
    bob = TicketingClient(ledger, private_key=Account.create().key)
    ledger.mint(alice.address, CONFIG.alice_initial)
    print(f"Alice: {alice.address}  balance {ledger.get_balance(alice.address)}")
    print(f"Bob:   {bob.address}  balance {ledger.get_balance(bob.address)}")
    print(f"System wallet: {ledger.get_balance('system')} (issuance is a debit)")
    return alice, bob


def step_03_deposits(alice: TicketingClient):
    step_header(3, "Escrow and Penalty", "Lock funds that back alice's tickets")
    alice.deposit_escrow(CONFIG.escrow)
    deposit = alice.deposit_penalty(CONFIG.penalty)
    print(f"Escrow:  {deposit.escrow}")
    print(f"Penalty: {deposit.penalty}")
    print(f"Status:  {deposit.status(alice.ledger.current_block).value}")


# ============================================================================
# PHASE 2: TICKETS (Steps 4-6)
# ============================================================================

def step_04_commitments(alice: TicketingClient, bob: TicketingClient) -> SignedTicket:
    step_header(4, "Commit and Sign", "Both parties commit to randomness before the outcome exists")
    receiver_commit = bob.new_receiver_commitment()
    signed = alice.issue_ticket(bob.address, CONFIG.face_value, MAX_UINT256, receiver_commit)
    ticket = signed.ticket
    print(f"Receiver commit: 0x{ticket.receiver_commit.hex()}")
    print(f"Sender commit:   0x{ticket.sender_commit.hex()}")
    print(f"Ticket hash:     0x{signed.ticket_hash.hex()}")
    print(f"Signature:       0x{signed.signature.hex()[:32]}...")
    return signed


def step_05_redeem(alice: TicketingClient, bob: TicketingClient, signed: SignedTicket) -> int:
    step_header(5, "Redeem", "Alice reveals, bob redeems, the ledger pays from escrow")
    sender_rand = alice.reveal_sender_rand(signed.ticket_hash)
    outcome = bob.redeem(signed, sender_rand)
    print(f"Won: {outcome.won}  payout: {outcome.payout}")
    print(f"Bob balance:  {bob.ledger.get_balance(bob.address)}")
    print(f"Alice escrow: {alice.query_deposit().escrow}")
    return sender_rand


def step_06_session(alice: TicketingClient, bob: TicketingClient):
    step_header(6, "Micropayment Session", "Many small tickets; only a few pay out")
    before = bob.ledger.get_balance(bob.address)
    wins = 0
    signed = None
    for _ in range(CONFIG.session_tickets):
        signed = alice.issue_ticket(
            bob.address, CONFIG.face_value, CONFIG.win_prob, bob.new_receiver_commitment()
        )
        wins += bob.redeem(signed, alice.reveal_sender_rand(signed.ticket_hash)).won
    paid = bob.ledger.get_balance(bob.address) - before
    print(f"Tickets:        {CONFIG.session_tickets}")
    print(f"Winning:        {wins}")
    print(f"Paid:           {paid}")
    print(f"Expected value: {CONFIG.session_tickets * expected_value(signed.ticket)}")


# ============================================================================
# PHASE 3: SAFETY (Steps 7-8)
# ============================================================================

def step_07_replay(bob: TicketingClient, signed: SignedTicket, sender_rand: int):
    step_header(7, "Replay Guard", "A ticket hash can be consumed only once")
    try:
        bob.submit_redemption(signed, sender_rand, 0)
    except TicketAlreadyRedeemed as e:
        print(f"TicketAlreadyRedeemed (benign={e.benign}): {e}")


def step_08_expiry(ledger: Ledger, alice: TicketingClient, bob: TicketingClient):
    step_header(8, "Expiry", "Tickets carry a last valid block")
    signed = alice.issue_ticket(
        bob.address, CONFIG.face_value, MAX_UINT256, bob.new_receiver_commitment(),
        expiration_block=ledger.current_block,
    )
    ledger.advance_block()
    try:
        bob.redeem(signed, alice.reveal_sender_rand(signed.ticket_hash))
    except TicketExpired as e:
        print(f"TicketExpired: {e}")


# ============================================================================
# PHASE 4: UNLOCKING (Steps 9-10)
# ============================================================================

def step_09_withdraw(ledger: Ledger, alice: TicketingClient):
    step_header(9, "Unlock and Withdraw", "Deposits leave only after the unlock period")
    unlock_at = alice.request_unlock_deposit()
    print(f"Unlocking at block {unlock_at} (now {ledger.current_block})")
    try:
        alice.withdraw_deposit()
    except UnlockPeriodNotComplete as e:
        print(f"UnlockPeriodNotComplete: {e}")
    ledger.advance_to(unlock_at)
    print(f"Withdrew {alice.withdraw_deposit()} at block {ledger.current_block}")


def step_10_conservation(ledger: Ledger):
    step_header(10, "Conservation", "Every token issued is still accounted for")
    result = ledger.verify_conservation(expected_supply=CONFIG.alice_initial)
    print(f"Supply:  {result['supply']}")
    print(f"Issued:  {result['issued']}")
    print(f"Valid:   {result['valid']}")
    replayed = ledger.replay()
    print(f"Replay matches: {replayed.get_wallet_balances() == ledger.get_wallet_balances()}")


def main():
    configure_logging("WARNING")
    print("=" * 70)
    print("       PROBABILISTIC MICROPAYMENTS TUTORIAL")
    print("=" * 70)

    ledger = step_01_ledger()
    wait_for_enter()
    alice, bob = step_02_clients(ledger)
    wait_for_enter()
    step_03_deposits(alice)
    wait_for_enter()

    signed = step_04_commitments(alice, bob)
    wait_for_enter()
    sender_rand = step_05_redeem(alice, bob, signed)
    wait_for_enter()
    step_06_session(alice, bob)
    wait_for_enter()

    step_07_replay(bob, signed, sender_rand)
    wait_for_enter()
    step_08_expiry(ledger, alice, bob)
    wait_for_enter()

    step_09_withdraw(ledger, alice)
    wait_for_enter()
    step_10_conservation(ledger)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)


if __name__ == "__main__":
    main()
