"""
conftest.py - Shared pytest fixtures for dividend ledger tests

Provides common fixtures used across unit, functional and conformance tests:
- Basic ledgers (empty, base asset only)
- Token ledgers (deployed token, funded accounts, two initial holders)
- Shared account names and starting balances
"""

import pytest
from datetime import datetime
from typing import List

from dividend_ledger import Ledger, base_asset, create_dividend_token, parse_units

from tests.helpers import eth


# Named like the accounts of a local test chain
ACCOUNTS: List[str] = [
    "owner", "account1", "account2", "account3",
    "account4", "account5", "account9",
]

# ETH given to every account before each test
STARTING_ETH = parse_units("10000")


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def empty_ledger():
    """Fresh ledger with no registrations."""
    return Ledger("test", verbose=False, test_mode=True)


@pytest.fixture
def eth_ledger():
    """Ledger with ETH and two funded wallets."""
    ledger = Ledger("test", datetime(2025, 1, 1), verbose=False, test_mode=True)
    ledger.register_unit(base_asset("ETH", "Ether"))
    ledger.register_wallet("alice")
    ledger.register_wallet("bob")
    ledger.set_balance("alice", "ETH", 1000)
    return ledger


# =============================================================================
# TOKEN FIXTURES
# =============================================================================

@pytest.fixture
def ledger():
    """Ledger with every test account registered and funded with ETH."""
    ledger = Ledger("token", datetime(2025, 1, 1), verbose=False, test_mode=True)
    ledger.register_unit(base_asset("ETH", "Ether"))
    for account in ACCOUNTS:
        ledger.register_wallet(account)
        ledger.set_balance(account, "ETH", STARTING_ETH)
    return ledger


@pytest.fixture
def token(ledger):
    """Freshly deployed TEST token with no holders."""
    return create_dividend_token(ledger)


@pytest.fixture
def held_token(token):
    """Token where owner and account1 each minted 50."""
    token.mint("owner", eth("50"))
    token.mint("account1", eth("50"))
    return token
