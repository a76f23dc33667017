#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Dividend Token Step by Step

Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:   Foundation  - Deploying the token, minting, the holder registry
  4-6:   Movement    - Transfers, allowances, rejected operations
  7-9:   Dividends   - Pro-rata distribution, dust, withdrawal
  10-11: Safety      - Burning, reentrancy rejection
  12-13: Audit       - clone_at, replay, invariant checks

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
import sys

from dividend_ledger import (
    Ledger, Move, SYSTEM_WALLET, NULL_ADDRESS,
    build_transaction, create_dividend_token, parse_units, format_units,
    LedgerError, InvalidAddress, ReentrantCall,
    DividendToken,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)

    # Faucet funding per account, in ETH
    initial_eth: Decimal = Decimal("10000")

    # Token flows, in ETH
    deployer_mint: Decimal = Decimal("50")
    alice_mint: Decimal = Decimal("50")
    transfer_amount: Decimal = Decimal("20")
    first_dividend: Decimal = Decimal("10")

    # Tiny balances and a dividend that does not divide evenly, in base units
    dust_balances: tuple = (1, 1, 1)
    dust_dividend: int = 100


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv

ACCOUNTS = ["deployer", "alice", "bob", "payer"]


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def show(amount: int) -> str:
    return f"{format_units(amount)}"


def print_holders(token: DividendToken):
    print(f"    holder_count() = {token.holder_count()}")
    for i in range(1, token.holder_count() + 1):
        account = token.holder_at(i)
        print(f"    holder_at({i}) = {account:<10} balance {show(token.balance_of(account))} {token.symbol}")


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_deploy():
    """Deploy the token on a fresh ledger."""
    step_header(1, "Deploying the Token",
        "Register the base asset, the token and its escrow wallet.")

    ledger = Ledger("demo", CONFIG.start_time, verbose=False)
    token = create_dividend_token(ledger)

    for account in ACCOUNTS:
        ledger.register_wallet(account)
    ledger.execute(build_transaction(ledger, [
        Move(parse_units(CONFIG.initial_eth), "ETH", SYSTEM_WALLET, account, f"faucet_{account}")
        for account in ACCOUNTS
    ]))

    print("  Deploying contracts with account: deployer")
    print(f"  Account balance: {show(ledger.get_balance('deployer', 'ETH'))} ETH")

    details = token.describe()
    print("\n  Contract details:")
    print(f"    Name: {details['name']}")
    print(f"    Symbol: {details['symbol']}")
    print(f"    Initial Total Supply: {details['total_supply_units']} {details['symbol']}")
    print(f"    Escrow wallet: {details['escrow_wallet']}")

    print("""
    The token never holds a separate pot of money: every unit in circulation
    is matched by one unit of ETH sitting in the escrow wallet.
    """)
    return ledger, token


def step_02_mint(ledger: Ledger, token: DividendToken):
    """Mint tokens against ETH deposits."""
    step_header(2, "Minting",
        "See that minting moves ETH into escrow and credits tokens 1:1.")

    event = token.mint("deployer", parse_units(CONFIG.deployer_mint))
    print(f"  {event}")
    event = token.mint("alice", parse_units(CONFIG.alice_mint))
    print(f"  {event}")

    print(f"\n  total_supply()   = {show(token.total_supply())} {token.symbol}")
    print(f"  escrow_balance() = {show(token.escrow_balance())} ETH")
    print(f"  deployer ETH     = {show(ledger.get_balance('deployer', 'ETH'))}")
    return ledger, token


def step_03_holders(ledger: Ledger, token: DividendToken):
    """Enumerate holders."""
    step_header(3, "The Holder Registry",
        "Enumerate exactly the accounts with a positive balance, 1-based.")

    print_holders(token)

    section_header("Out-of-range index")
    try:
        token.holder_at(token.holder_count() + 1)
    except LedgerError as e:
        print(f"  {type(e).__name__}: {e}")
    return ledger, token


# ============================================================================
# PHASE 2: MOVEMENT (Steps 4-6)
# ============================================================================

def step_04_transfer(ledger: Ledger, token: DividendToken):
    """Transfer between holders."""
    step_header(4, "Transfers",
        "Move tokens and watch the registry follow balances.")

    event = token.transfer("alice", "bob", parse_units(CONFIG.transfer_amount))
    print(f"  {event}")
    print_holders(token)
    return ledger, token


def step_05_allowance(ledger: Ledger, token: DividendToken):
    """Approve and spend an allowance."""
    step_header(5, "Allowances",
        "Let one account move another account's tokens up to a limit.")

    amount = parse_units("5")
    print(f"  {token.approve('deployer', 'bob', amount)}")
    print(f"  allowance(deployer, bob) = {show(token.allowance('deployer', 'bob'))}")
    print(f"  {token.transfer_from('bob', 'deployer', 'bob', amount)}")
    print(f"  allowance(deployer, bob) = {show(token.allowance('deployer', 'bob'))}")
    return ledger, token


def step_06_rejections(ledger: Ledger, token: DividendToken):
    """Rejected operations change nothing."""
    step_header(6, "Rejected Operations",
        "See that a failed operation leaves balances, holders and events untouched.")

    events_before = len(token.events)
    log_before = len(ledger.transaction_log)

    attempts = [
        ("transfer more than held", lambda: token.transfer("bob", "alice", parse_units("1000"))),
        ("transfer to null address", lambda: token.transfer("alice", NULL_ADDRESS, 1)),
        ("mint zero", lambda: token.mint("alice", 0)),
    ]
    for label, attempt in attempts:
        try:
            attempt()
        except LedgerError as e:
            print(f"  {label:<26} -> {type(e).__name__}")

    print(f"\n  events unchanged: {len(token.events) == events_before}")
    print(f"  log unchanged:    {len(ledger.transaction_log) == log_before}")
    return ledger, token


# ============================================================================
# PHASE 3: DIVIDENDS (Steps 7-9)
# ============================================================================

def step_07_dividend(ledger: Ledger, token: DividendToken):
    """Record a dividend and split it pro rata."""
    step_header(7, "Recording a Dividend",
        "Split a deposit across holders in proportion to their balances.")

    ledger.advance_time(CONFIG.start_time + timedelta(days=30))
    event = token.record_dividend("payer", parse_units(CONFIG.first_dividend))
    print(f"  {event}")

    for account in token.holders():
        print(f"    {account:<10} holds {show(token.balance_of(account)):>6} "
              f"-> withdrawable {show(token.get_withdrawable(account))} ETH")
    return ledger, token


def step_08_dust():
    """Floor rounding leaves dust in escrow."""
    step_header(8, "Rounding Dust",
        "Each share is rounded down; the remainder stays in escrow.")

    ledger = Ledger("dust", CONFIG.start_time, verbose=False, test_mode=True)
    token = create_dividend_token(ledger)
    holders = ["h1", "h2", "h3"]
    for account, balance in zip(holders, CONFIG.dust_balances):
        ledger.register_wallet(account)
        ledger.set_balance(account, "ETH", balance)
        token.mint(account, balance)
    ledger.register_wallet("payer")
    ledger.set_balance("payer", "ETH", CONFIG.dust_dividend)

    token.record_dividend("payer", CONFIG.dust_dividend)
    for account in holders:
        print(f"  {account}: withdrawable {token.get_withdrawable(account)} wei")
    print(f"\n  undistributed dust: {token.undistributed_balance()} wei")


def step_09_withdraw(ledger: Ledger, token: DividendToken):
    """Withdraw accrued dividends."""
    step_header(9, "Withdrawing",
        "Pay out an account's dividends and reset its entitlement to zero.")

    before = ledger.get_balance("alice", "ETH")
    event = token.withdraw("alice", "alice")
    print(f"  {event}")
    print(f"  alice ETH gained: {show(ledger.get_balance('alice', 'ETH') - before)}")
    print(f"  get_withdrawable(alice) = {token.get_withdrawable('alice')}")

    section_header("Withdrawing again")
    try:
        token.withdraw("alice", "alice")
    except LedgerError as e:
        print(f"  {type(e).__name__}: {e}")
    return ledger, token


# ============================================================================
# PHASE 4: SAFETY (Steps 10-11)
# ============================================================================

def step_10_burn(ledger: Ledger, token: DividendToken):
    """Burn an entire balance."""
    step_header(10, "Burning",
        "Redeem a full balance for ETH and leave the holder registry.")

    event = token.burn("bob", "bob")
    print(f"  {event}")
    print_holders(token)
    print(f"\n  bob still has dividends to withdraw: {show(token.get_withdrawable('bob'))} ETH")

    section_header("Burning to the null address")
    try:
        token.burn("deployer", NULL_ADDRESS)
    except InvalidAddress as e:
        print(f"  InvalidAddress: {e}")
    return ledger, token


def step_11_reentrancy(ledger: Ledger, token: DividendToken):
    """A receiving wallet that calls back in is refused."""
    step_header(11, "Reentrancy",
        "A payout recipient cannot re-enter burn or withdraw mid-payment.")

    def attack(move):
        print(f"    hook received {show(move.quantity)} {move.unit_symbol}, calling withdraw again...")
        token.withdraw("deployer", "deployer")

    ledger.set_receive_hook("deployer", attack)
    before = token.get_withdrawable("deployer")
    try:
        token.withdraw("deployer", "deployer")
    except ReentrantCall as e:
        print(f"  ReentrantCall: {e}")
    finally:
        ledger.set_receive_hook("deployer", None)

    print(f"  withdrawable unchanged: {token.get_withdrawable('deployer') == before}")
    print(f"  guard released:         {not token.guard.held}")
    return ledger, token


# ============================================================================
# PHASE 5: AUDIT (Steps 12-13)
# ============================================================================

def step_12_time_travel(ledger: Ledger, token: DividendToken):
    """Reconstruct past state and replay the log."""
    step_header(12, "Time Travel and Replay",
        "Rebuild the ledger as it stood before the dividend and replay history.")

    past = ledger.clone_at(CONFIG.start_time)
    print(f"  before dividend: alice claims {show(past.get_balance('alice', token.claim_unit))} ETH")
    print(f"  now:             alice claims {show(ledger.get_balance('alice', token.claim_unit))} ETH")

    replayed = ledger.replay()
    same = all(
        replayed.get_balance(w, u) == ledger.get_balance(w, u)
        for w in ledger.list_wallets() for u in ledger.list_units()
    )
    print(f"\n  replay reproduces every balance: {same}")
    return ledger, token


def step_13_invariants(ledger: Ledger, token: DividendToken):
    """Check the accounting invariants."""
    step_header(13, "Invariants",
        "Confirm supply, registry and escrow backing are consistent.")

    result = token.verify_invariants()
    print(f"  verify_invariants():   valid={result['valid']} violations={result['violations']}")
    double_entry = ledger.verify_double_entry()
    print(f"  verify_double_entry(): valid={double_entry['valid']}")
    print(f"\n  escrow {show(token.escrow_balance())} ETH covers supply "
          f"{show(token.total_supply())} + outstanding {show(token.outstanding_dividends())}")
    print(f"\n  {len(token.events)} events emitted:")
    for event in token.events:
        print(f"    {type(event).__name__}")


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       DIVIDEND TOKEN - INTERACTIVE TUTORIAL")
    print("=" * 70)
    print("""
    Press Enter to advance through each step.

    PHASES:
      1-3:   Foundation  - Deploy, mint, holder registry
      4-6:   Movement    - Transfers, allowances, rejections
      7-9:   Dividends   - Distribution, dust, withdrawal
      10-11: Safety      - Burning, reentrancy
      12-13: Audit       - Time travel, replay, invariants
    """)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")

    wait_for_enter()

    ledger, token = step_01_deploy()
    wait_for_enter()
    ledger, token = step_02_mint(ledger, token)
    wait_for_enter()
    ledger, token = step_03_holders(ledger, token)
    wait_for_enter()

    ledger, token = step_04_transfer(ledger, token)
    wait_for_enter()
    ledger, token = step_05_allowance(ledger, token)
    wait_for_enter()
    ledger, token = step_06_rejections(ledger, token)
    wait_for_enter()

    ledger, token = step_07_dividend(ledger, token)
    wait_for_enter()
    step_08_dust()
    wait_for_enter()
    ledger, token = step_09_withdraw(ledger, token)
    wait_for_enter()

    ledger, token = step_10_burn(ledger, token)
    wait_for_enter()
    ledger, token = step_11_reentrancy(ledger, token)
    wait_for_enter()

    ledger, token = step_12_time_travel(ledger, token)
    wait_for_enter()
    step_13_invariants(ledger, token)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    You've learned:
      - Every token is backed 1:1 by ETH held in escrow
      - holder_at() enumerates exactly the positive balances
      - Dividends are split by floor(amount * balance / supply)
      - Payouts commit bookkeeping before money leaves, under a guard
      - Failed operations change nothing and emit nothing

    Next steps:
      - See dividend_ledger/units/*.py for the pure token functions
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
