"""
Units module - Factory and pure functions for the dividend token.

This module provides:
- Token and claim unit factories
- Balance ledger operations (mint, burn, transfer, approve, transfer_from)
- Dividend distribution and withdrawal

All unit factories and related functions are re-exported here for convenience.
"""

# Token units
from .token import (
    Payout,
    escrow_wallet_for,
    claim_unit_for,
    create_dividend_token_unit,
    create_dividend_claim_unit,
    total_supply,
    balance_of,
    get_allowance,
    escrow_balance,
    compute_mint,
    compute_burn,
    compute_transfer,
    compute_approve,
    compute_transfer_from,
)

# Dividends
from .dividend import (
    DividendShare,
    compute_dividend_shares,
    compute_dividend,
    compute_withdrawal,
    get_withdrawable,
    outstanding_claims,
    undistributed_balance,
)
