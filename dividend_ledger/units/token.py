"""
token.py - Dividend Token Unit

=== MODEL ===

A dividend token is three ledger units plus one wallet:

    base asset   (e.g. ETH)       deposited to mint, paid out on burn/withdraw
    token        (e.g. TEST)      fungible units, 1:1 with deposited base asset
    claim        (e.g. TEST.DIV)  withdrawable dividend balances
    escrow wallet                 holds every deposited and distributed base asset

Issuance and redemption go through SYSTEM_WALLET, so the token's circulating
supply is always -balance(SYSTEM_WALLET, token) and the sum of holder balances
equals supply by double entry.

Token unit state:
    name, decimals, base_unit, claim_unit, escrow_wallet
    allowances:          {owner: {spender: amount}}
    dividends_recorded:  number of distributions
    dividends_total:     base asset received for distribution
    dividends_credited:  sum of shares credited (total minus dust)

=== PURE FUNCTIONS ===

Every operation is a pure function from a LedgerView to a PendingTransaction
(or a Payout for operations that send base asset out). All checks run and
raise before anything is built, so a raised error means no effect.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Optional

from ..core import (
    LedgerView, Move, PendingTransaction, TransactionOrigin, OriginType, Unit, UnitStateChange,
    build_transaction,
    InvalidAddress, InsufficientAllowance, InsufficientBalance, WalletNotRegistered,
    SYSTEM_WALLET, CLAIM_SUFFIX, DEFAULT_DECIMALS, DEFAULT_BASE_SYMBOL,
    UNIT_TYPE_DIVIDEND_TOKEN, UNIT_TYPE_DIVIDEND_CLAIM,
    is_null_address, validate_amount, issuance_only_transfer_rule, _freeze_state,
)


@dataclass(frozen=True, slots=True)
class Payout:
    """
    An operation that sends base asset out of the escrow wallet.

    The two transactions are kept apart so the caller can commit effects
    before handing value (and control) to the destination.

    Attributes:
        account: Wallet whose entitlement is being paid
        amount: Base asset paid out
        destination: Wallet receiving the base asset
        effects: Internal bookkeeping (burn units, return claims)
        transfer: Outbound base asset move escrow -> destination
    """
    account: str
    amount: int
    destination: str
    effects: PendingTransaction
    transfer: PendingTransaction


# =============================================================================
# UNIT FACTORIES
# =============================================================================

def escrow_wallet_for(symbol: str) -> str:
    """Wallet id of the token's escrow."""
    return f"{symbol}:escrow"


def claim_unit_for(symbol: str) -> str:
    """Symbol of the token's dividend claim unit."""
    return f"{symbol}{CLAIM_SUFFIX}"


def create_dividend_token_unit(
    symbol: str,
    name: str,
    base_unit: str = DEFAULT_BASE_SYMBOL,
    decimals: int = DEFAULT_DECIMALS,
    escrow_wallet: Optional[str] = None,
) -> Unit:
    """
    Create the fungible token unit.

    Args:
        symbol: Token symbol (e.g., "TEST")
        name: Human-readable name (e.g., "Test token")
        base_unit: Symbol of the base asset backing the token 1:1
        decimals: Display decimals (matches the base asset)
        escrow_wallet: Wallet holding the backing (default: "<symbol>:escrow")
    """
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_DIVIDEND_TOKEN,
        min_balance=0,
        decimals=decimals,
        _frozen_state=_freeze_state({
            'name': name,
            'decimals': decimals,
            'base_unit': base_unit,
            'claim_unit': claim_unit_for(symbol),
            'escrow_wallet': escrow_wallet or escrow_wallet_for(symbol),
            'allowances': {},
            'dividends_recorded': 0,
            'dividends_total': 0,
            'dividends_credited': 0,
        })
    )


def create_dividend_claim_unit(
    token_symbol: str,
    base_unit: str = DEFAULT_BASE_SYMBOL,
    decimals: int = DEFAULT_DECIMALS,
) -> Unit:
    """
    Create the withdrawable-dividend unit of a token.

    One claim unit is one base unit owed to the holder. Claims only move to or
    from SYSTEM_WALLET.
    """
    return Unit(
        symbol=claim_unit_for(token_symbol),
        name=f"{token_symbol} withdrawable dividend",
        unit_type=UNIT_TYPE_DIVIDEND_CLAIM,
        min_balance=0,
        decimals=decimals,
        transfer_rule=issuance_only_transfer_rule,
        _frozen_state=_freeze_state({
            'token': token_symbol,
            'base_unit': base_unit,
        })
    )


# =============================================================================
# READS
# =============================================================================

def total_supply(view: LedgerView, symbol: str) -> int:
    """Circulating supply: everything the system wallet has issued."""
    return -view.get_balance(SYSTEM_WALLET, symbol)


def balance_of(view: LedgerView, symbol: str, account: str) -> int:
    """Token balance; 0 for wallets the ledger does not know."""
    if not view.is_registered(account):
        return 0
    return view.get_balance(account, symbol)


def get_allowance(view: LedgerView, symbol: str, owner: str, spender: str) -> int:
    allowances: Dict[str, Dict[str, int]] = view.get_unit_state(symbol).get('allowances', {})
    return allowances.get(owner, {}).get(spender, 0)


def escrow_balance(view: LedgerView, symbol: str) -> int:
    """Base asset held by the token."""
    state = view.get_unit_state(symbol)
    return view.get_balance(state['escrow_wallet'], state['base_unit'])


# =============================================================================
# VALIDATION HELPERS
# =============================================================================

def _require_wallet(view: LedgerView, wallet: str) -> None:
    if not view.is_registered(wallet):
        raise WalletNotRegistered(f"Wallet {wallet} not registered")


def _require_destination(view: LedgerView, state: Dict, wallet: Optional[str]) -> str:
    """A wallet that may receive value: not null, not reserved, registered."""
    if is_null_address(wallet):
        raise InvalidAddress("Invalid destination address")
    if wallet in (SYSTEM_WALLET, state['escrow_wallet']):
        raise InvalidAddress(f"Reserved wallet {wallet} cannot be a destination")
    _require_wallet(view, wallet)
    return wallet


def _origin(symbol: str, source_id: str, event_type: str,
            origin_type: OriginType = OriginType.USER_ACTION) -> TransactionOrigin:
    return TransactionOrigin(
        origin_type=origin_type,
        source_id=source_id,
        unit_symbol=symbol,
        event_type=event_type,
    )


# =============================================================================
# BALANCE LEDGER OPERATIONS
# =============================================================================

def compute_mint(
    view: LedgerView,
    symbol: str,
    account: str,
    amount: int,
) -> PendingTransaction:
    """
    Deposit base asset and mint the same number of token units.

    Moves:
        base asset: account -> escrow
        token:      SYSTEM  -> account

    Raises:
        InvalidAmount: If amount <= 0
        InvalidAddress: If account is a reserved wallet
        WalletNotRegistered: If account is unknown
        InsufficientBalance: If account holds less base asset than amount
    """
    validate_amount(amount)
    state = view.get_unit_state(symbol)
    if account in (SYSTEM_WALLET, state['escrow_wallet']):
        raise InvalidAddress(f"Reserved wallet {account} cannot mint")
    _require_wallet(view, account)

    base_unit = state['base_unit']
    available = view.get_balance(account, base_unit)
    if available < amount:
        raise InsufficientBalance(
            f"{account} has {available} {base_unit}, needs {amount} to mint"
        )

    moves = [
        Move(amount, base_unit, account, state['escrow_wallet'], f'mint_{symbol}_deposit'),
        Move(amount, symbol, SYSTEM_WALLET, account, f'mint_{symbol}_units'),
    ]
    return build_transaction(view, moves, origin=_origin(symbol, account, "MINT"))


def compute_burn(
    view: LedgerView,
    symbol: str,
    account: str,
    destination: str,
) -> Payout:
    """
    Redeem account's entire token balance for base asset paid to destination.

    There is no partial redemption: the amount is always the full balance.

    Raises:
        InvalidAddress: If destination is null or reserved
        WalletNotRegistered: If account or destination is unknown
        InsufficientBalance: If account holds no units
    """
    state = view.get_unit_state(symbol)
    _require_destination(view, state, destination)
    _require_wallet(view, account)

    amount = view.get_balance(account, symbol)
    if amount <= 0:
        raise InsufficientBalance(f"{account} has no {symbol} to burn")

    effects = build_transaction(
        view,
        [Move(amount, symbol, account, SYSTEM_WALLET, f'burn_{symbol}_units')],
        origin=_origin(symbol, account, "BURN"),
    )
    transfer = build_transaction(
        view,
        [Move(amount, state['base_unit'], state['escrow_wallet'], destination, f'burn_{symbol}_payout')],
        origin=_origin(symbol, account, "BURN", OriginType.PAYOUT),
    )
    return Payout(account, amount, destination, effects, transfer)


def compute_transfer(
    view: LedgerView,
    symbol: str,
    sender: str,
    recipient: str,
    amount: int,
) -> PendingTransaction:
    """
    Move token units between wallets. Supply is unchanged.

    A zero amount, or a transfer to oneself, is accepted and moves nothing.

    Raises:
        InvalidAmount: If amount is negative
        InvalidAddress: If recipient is null or reserved
        WalletNotRegistered: If sender or recipient is unknown
        InsufficientBalance: If sender holds less than amount
    """
    validate_amount(amount, allow_zero=True)
    state = view.get_unit_state(symbol)
    _require_destination(view, state, recipient)
    _require_wallet(view, sender)

    available = view.get_balance(sender, symbol)
    if available < amount:
        raise InsufficientBalance(f"{sender} has {available} {symbol}, needs {amount}")

    moves = []
    if amount > 0 and sender != recipient:
        moves.append(Move(amount, symbol, sender, recipient, f'transfer_{symbol}'))
    return build_transaction(view, moves, origin=_origin(symbol, sender, "TRANSFER"))


def compute_approve(
    view: LedgerView,
    symbol: str,
    owner: str,
    spender: str,
    amount: int,
) -> PendingTransaction:
    """
    Set the amount spender may move out of owner's balance (overwrites).

    Raises:
        InvalidAmount: If amount is negative
        InvalidAddress: If spender is null
        WalletNotRegistered: If owner is unknown
    """
    validate_amount(amount, allow_zero=True)
    if is_null_address(spender):
        raise InvalidAddress("Invalid spender address")
    _require_wallet(view, owner)

    state = view.get_unit_state(symbol)
    allowances = {o: dict(s) for o, s in state.get('allowances', {}).items()}
    allowances.setdefault(owner, {})[spender] = amount
    new_state = {**state, 'allowances': allowances}
    return build_transaction(
        view, [],
        [UnitStateChange(unit=symbol, old_state=state, new_state=new_state)],
        origin=_origin(symbol, owner, "APPROVE"),
    )


def compute_transfer_from(
    view: LedgerView,
    symbol: str,
    spender: str,
    owner: str,
    recipient: str,
    amount: int,
) -> PendingTransaction:
    """
    Move units out of owner's balance on spender's allowance.

    The allowance is reduced by amount in the same transaction.

    Raises:
        InsufficientAllowance: If spender's allowance is below amount
        plus every failure of compute_transfer
    """
    validate_amount(amount, allow_zero=True)
    state = view.get_unit_state(symbol)
    allowed = state.get('allowances', {}).get(owner, {}).get(spender, 0)
    if allowed < amount:
        raise InsufficientAllowance(
            f"{spender} may move {allowed} {symbol} from {owner}, needs {amount}"
        )

    transfer = compute_transfer(view, symbol, owner, recipient, amount)

    state_changes = []
    if amount > 0:
        allowances = {o: dict(s) for o, s in state.get('allowances', {}).items()}
        allowances[owner][spender] = allowed - amount
        state_changes.append(UnitStateChange(
            unit=symbol, old_state=state, new_state={**state, 'allowances': allowances},
        ))
    return build_transaction(
        view, list(transfer.moves), state_changes,
        origin=_origin(symbol, spender, "TRANSFER_FROM"),
    )
