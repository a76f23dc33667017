"""
dividend_ledger - Self-Custodial Dividend Token Ledger

Participants deposit a base asset to mint token units 1:1, redeem their whole
balance for the base asset, and receive pro-rata dividends they can withdraw.

Usage:
    from dividend_ledger import Ledger, create_dividend_token, parse_units

    ledger = Ledger("main", verbose=False, test_mode=True)
    token = create_dividend_token(ledger)          # "TEST" backed by "ETH"
    ledger.register_wallet("alice")
    ledger.register_wallet("payer")
    ledger.set_balance("alice", "ETH", parse_units("100"))
    ledger.set_balance("payer", "ETH", parse_units("1000"))

    token.mint("alice", parse_units("50"))
    token.record_dividend("payer", parse_units("10"))
    token.get_withdrawable("alice")                # 10 ETH in base units
    token.withdraw("alice", "alice")
"""

__version__ = "0.1.0"

# Core types
from .core import (
    LedgerView,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    empty_pending_transaction,
    Unit,
    UnitStateChange,
    ExecuteResult,
    LedgerError,
    InvalidAmount,
    InvalidAddress,
    InsufficientBalance,
    InsufficientAllowance,
    NoHolders,
    NothingToWithdraw,
    IndexOutOfBounds,
    ReentrantCall,
    TransferRuleViolation,
    UnitNotRegistered,
    WalletNotRegistered,
    issuance_only_transfer_rule,
    is_null_address,
    validate_amount,
    parse_units,
    format_units,
    base_asset,
    SYSTEM_WALLET,
    NULL_ADDRESS,
    DEFAULT_DECIMALS,
    DEFAULT_TOKEN_NAME,
    DEFAULT_TOKEN_SYMBOL,
    DEFAULT_BASE_SYMBOL,
    UNIT_TYPE_BASE_ASSET,
    UNIT_TYPE_DIVIDEND_TOKEN,
    UNIT_TYPE_DIVIDEND_CLAIM,
)

# Ledger
from .ledger import Ledger, ReceiveHook

# Holder registry
from .holders import HolderRegistry

# Guard
from .guard import ReentrancyGuard, nonreentrant

# Events
from .events import (
    Mint,
    Burn,
    Transfer,
    Approval,
    DividendRecorded,
    DividendWithdrawn,
    TokenEvent,
    EventListener,
)

# Token and dividends
from .units.token import (
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
from .units.dividend import (
    DividendShare,
    compute_dividend_shares,
    compute_dividend,
    compute_withdrawal,
    get_withdrawable,
    outstanding_claims,
    undistributed_balance,
)

# Facade
from .dividend_token import DividendToken, create_dividend_token
