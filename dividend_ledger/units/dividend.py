"""
dividend.py - Dividend Distribution and Withdrawal

=== DISTRIBUTION MODEL ===

record_dividend(amount) with circulating supply S credits every current holder
H with balance B:

    share(H) = floor(amount * B / S)

Holders are enumerated once, in holder registry order. Each share is issued as
claim units (SYSTEM -> holder); the whole amount of base asset moves into
escrow. Because of floor division the shares may sum to less than amount.
That remainder ("dust") stays in escrow untracked: it is never refunded and
never redistributed on its own.

Claims are a snapshot: selling or burning units later does not touch them.

=== WITHDRAWAL ===

withdraw returns the account's claims to SYSTEM (effects) and then pays the
same amount of base asset from escrow to the destination (interaction).

=== PURE FUNCTION ===

The arithmetic is ONE pure function:
    compute_dividend_shares(amount, positions, total_supply) -> [DividendShare]
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Mapping

from ..core import (
    LedgerView, Move, PendingTransaction, OriginType, UnitStateChange,
    build_transaction,
    InvalidAddress, InsufficientBalance, NoHolders, NothingToWithdraw,
    SYSTEM_WALLET, validate_amount,
)
from .token import (
    Payout, total_supply, _origin, _require_destination, _require_wallet,
)


@dataclass(frozen=True, slots=True)
class DividendShare:
    """One holder's part of a distribution."""
    wallet: str
    balance: int
    share: int


# =============================================================================
# PURE FUNCTIONS - The core logic, trivially testable
# =============================================================================

def compute_dividend_shares(
    amount: int,
    positions: Mapping[str, int],
    supply: int,
) -> List[DividendShare]:
    """
    Split amount across positions pro rata, rounding each share down.

    Args:
        amount: Base asset to distribute
        positions: {wallet: balance} in enumeration order
        supply: Total supply the balances are measured against

    Returns:
        One DividendShare per position, in the order given. Shares may be zero.

    Invariants:
        - share = amount * balance // supply (exact integer arithmetic)
        - sum(shares) <= amount when sum(balances) == supply
    """
    if supply <= 0:
        raise NoHolders("Cannot distribute against zero supply")
    return [
        DividendShare(wallet=wallet, balance=balance, share=amount * balance // supply)
        for wallet, balance in positions.items()
    ]


# =============================================================================
# ORCHESTRATORS - Connect pure functions to LedgerView
# =============================================================================

def get_withdrawable(view: LedgerView, symbol: str, account: str) -> int:
    """Accrued, unpaid dividend of account (0 if never credited or fully withdrawn)."""
    if not view.is_registered(account):
        return 0
    claim_unit = view.get_unit_state(symbol)['claim_unit']
    return view.get_balance(account, claim_unit)


def outstanding_claims(view: LedgerView, symbol: str) -> int:
    """Dividends credited to holders and not yet withdrawn."""
    claim_unit = view.get_unit_state(symbol)['claim_unit']
    return -view.get_balance(SYSTEM_WALLET, claim_unit)


def undistributed_balance(view: LedgerView, symbol: str) -> int:
    """
    Escrowed base asset backing neither units nor claims.

    This is accumulated distribution dust plus anything sent to escrow
    outside the token's operations.
    """
    state = view.get_unit_state(symbol)
    escrow = view.get_balance(state['escrow_wallet'], state['base_unit'])
    return escrow - total_supply(view, symbol) - outstanding_claims(view, symbol)


def compute_dividend(
    view: LedgerView,
    symbol: str,
    payer: str,
    amount: int,
) -> PendingTransaction:
    """
    Distribute amount of base asset from payer across all current holders.

    Moves:
        base asset: payer  -> escrow        (amount)
        claims:     SYSTEM -> each holder   (share, when non-zero)

    Raises:
        InvalidAmount: If amount <= 0
        NoHolders: If total supply is zero
        InvalidAddress: If payer is a reserved wallet
        WalletNotRegistered: If payer is unknown
        InsufficientBalance: If payer holds less base asset than amount
    """
    validate_amount(amount)
    supply = total_supply(view, symbol)
    if supply <= 0:
        raise NoHolders(f"{symbol} has no token holders")

    state = view.get_unit_state(symbol)
    if payer in (SYSTEM_WALLET, state['escrow_wallet']):
        raise InvalidAddress(f"Reserved wallet {payer} cannot pay a dividend")
    _require_wallet(view, payer)

    base_unit = state['base_unit']
    available = view.get_balance(payer, base_unit)
    if available < amount:
        raise InsufficientBalance(
            f"{payer} has {available} {base_unit}, needs {amount} for dividend"
        )

    shares = compute_dividend_shares(amount, view.get_positions(symbol), supply)

    claim_unit = state['claim_unit']
    moves = [Move(amount, base_unit, payer, state['escrow_wallet'], f'dividend_{symbol}_funding')]
    credited = 0
    for s in shares:
        if s.share <= 0:
            continue
        credited += s.share
        moves.append(Move(s.share, claim_unit, SYSTEM_WALLET, s.wallet, f'dividend_{symbol}_{s.wallet}'))

    new_state = {
        **state,
        'dividends_recorded': state.get('dividends_recorded', 0) + 1,
        'dividends_total': state.get('dividends_total', 0) + amount,
        'dividends_credited': state.get('dividends_credited', 0) + credited,
    }
    state_changes = [UnitStateChange(unit=symbol, old_state=state, new_state=new_state)]

    return build_transaction(
        view, moves, state_changes,
        origin=_origin(symbol, payer, "DIVIDEND", OriginType.DISTRIBUTION),
    )


def compute_withdrawal(
    view: LedgerView,
    symbol: str,
    account: str,
    destination: str,
) -> Payout:
    """
    Pay account's whole withdrawable dividend to destination.

    Raises:
        InvalidAddress: If destination is null or reserved
        WalletNotRegistered: If destination is unknown
        NothingToWithdraw: If account has no withdrawable dividend
    """
    state = view.get_unit_state(symbol)
    _require_destination(view, state, destination)

    amount = get_withdrawable(view, symbol, account)
    if amount <= 0:
        raise NothingToWithdraw(f"{account} has no dividend to withdraw")

    effects = build_transaction(
        view,
        [Move(amount, state['claim_unit'], account, SYSTEM_WALLET, f'withdraw_{symbol}_claims')],
        origin=_origin(symbol, account, "WITHDRAW"),
    )
    transfer = build_transaction(
        view,
        [Move(amount, state['base_unit'], state['escrow_wallet'], destination, f'withdraw_{symbol}_payout')],
        origin=_origin(symbol, account, "WITHDRAW", OriginType.PAYOUT),
    )
    return Payout(account, amount, destination, effects, transfer)
