"""
dividend_token.py - Dividend Token

Stateful facade that runs the token's pure functions against a Ledger.

Every public operation:
1. Computes its PendingTransaction(s) from the ledger view (all checks first)
2. Executes them inside an atomic scope
3. Queues its event, published once the outermost scope commits

Operations that send base asset out (burn, withdraw) additionally hold the
token's ReentrancyGuard and commit their bookkeeping before the outbound
delivery, which is the only point where foreign code (a receive hook) runs.

If anything raises inside a scope, the ledger is unwound to the checkpoint
taken on entry. Operations re-entered from a receive hook open nested scopes
and are unwound with the outer one if it fails.
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional
import logging

from .core import (
    PendingTransaction, ExecuteResult, LedgerError, UnitNotRegistered,
    DEFAULT_BASE_SYMBOL, DEFAULT_DECIMALS, DEFAULT_TOKEN_NAME, DEFAULT_TOKEN_SYMBOL,
    base_asset, format_units, is_null_address,
)
from .events import (
    Approval, Burn, DividendRecorded, DividendWithdrawn, EventListener, Mint,
    TokenEvent, Transfer,
)
from .guard import nonreentrant
from .ledger import Ledger
from .units.dividend import (
    compute_dividend, compute_withdrawal, get_withdrawable, outstanding_claims,
    undistributed_balance,
)
from .units.token import (
    Payout,
    balance_of, compute_approve, compute_burn, compute_mint, compute_transfer,
    compute_transfer_from, create_dividend_claim_unit, create_dividend_token_unit,
    escrow_balance, get_allowance, total_supply,
)


logger = logging.getLogger(__name__)


class DividendToken:
    """
    Fungible units minted 1:1 against a base asset, with pro-rata dividends.

    Example:
        ledger = Ledger("main", verbose=False, test_mode=True)
        token = create_dividend_token(ledger)
        ledger.register_wallet("alice")
        ledger.set_balance("alice", "ETH", parse_units("100"))

        token.mint("alice", parse_units("23"))
        token.record_dividend("alice", parse_units("10"))
        token.withdraw("alice", "alice")
    """

    def __init__(self, ledger: Ledger, symbol: str):
        """
        Bind to a token whose units are already registered on the ledger.

        Use create_dividend_token() to register them.

        Raises:
            UnitNotRegistered: If the token unit is missing
        """
        if symbol not in ledger.units:
            raise UnitNotRegistered(f"Unit {symbol} not registered")
        self.ledger = ledger
        self.symbol = symbol
        self.guard = ledger.guard_for(symbol)
        self.events: List[TokenEvent] = []
        self._listeners: List[EventListener] = []
        self._pending_events: List[TokenEvent] = []
        self._depth = 0
        # wallets registered by the open scopes, undone if they fail
        self._admitted: List[str] = []

    # ========================================================================
    # METADATA
    # ========================================================================

    @property
    def state(self) -> Dict[str, Any]:
        return self.ledger.get_unit_state(self.symbol)

    @property
    def name(self) -> str:
        return self.state['name']

    @property
    def decimals(self) -> int:
        return self.state['decimals']

    @property
    def base_unit(self) -> str:
        return self.state['base_unit']

    @property
    def claim_unit(self) -> str:
        return self.state['claim_unit']

    @property
    def escrow_wallet(self) -> str:
        return self.state['escrow_wallet']

    def describe(self) -> Dict[str, Any]:
        """Summary of the token's metadata and supply."""
        return {
            'name': self.name,
            'symbol': self.symbol,
            'decimals': self.decimals,
            'base_unit': self.base_unit,
            'escrow_wallet': self.escrow_wallet,
            'total_supply': self.total_supply(),
            'total_supply_units': format_units(self.total_supply(), self.decimals),
            'holders': self.holder_count(),
        }

    # ========================================================================
    # READS
    # ========================================================================

    def balance_of(self, account: str) -> int:
        return balance_of(self.ledger, self.symbol, account)

    def total_supply(self) -> int:
        return total_supply(self.ledger, self.symbol)

    def allowance(self, owner: str, spender: str) -> int:
        return get_allowance(self.ledger, self.symbol, owner, spender)

    def get_withdrawable(self, account: str) -> int:
        """Accrued dividend of account not yet withdrawn."""
        return get_withdrawable(self.ledger, self.symbol, account)

    def holder_count(self) -> int:
        return self.ledger.get_holders(self.symbol).count()

    def holder_at(self, index: int) -> str:
        """
        Holder at a 1-based index.

        Raises:
            IndexOutOfBounds: If index is not in [1, holder_count()]
        """
        return self.ledger.get_holders(self.symbol).holder_at(index)

    def holders(self) -> List[str]:
        """Current holders in enumeration order."""
        return self.ledger.get_holders(self.symbol).snapshot()

    def escrow_balance(self) -> int:
        """Base asset held by the token."""
        return escrow_balance(self.ledger, self.symbol)

    def outstanding_dividends(self) -> int:
        return outstanding_claims(self.ledger, self.symbol)

    def undistributed_balance(self) -> int:
        """Escrowed base asset owed to nobody (distribution dust)."""
        return undistributed_balance(self.ledger, self.symbol)

    # ========================================================================
    # EVENTS
    # ========================================================================

    def subscribe(self, listener: EventListener) -> None:
        """
        Call listener with every event after its operation commits.

        A listener that raises is logged and skipped; the operation stays
        committed and the remaining listeners still run.
        """
        self._listeners.append(listener)

    def _emit(self, event: TokenEvent) -> None:
        self._pending_events.append(event)

    def _publish(self) -> None:
        published, self._pending_events = self._pending_events, []
        for event in published:
            self.events.append(event)
            logger.debug("%s %r", self.symbol, event)
            for listener in self._listeners:
                try:
                    listener(event)
                except Exception:
                    logger.exception("%s listener %r failed on %r", self.symbol, listener, event)

    # ========================================================================
    # EXECUTION
    # ========================================================================

    @contextmanager
    def _atomic(self) -> Iterator[None]:
        """
        All-or-nothing scope: on failure unwind the ledger, unregister the
        wallets the scope admitted and drop its queued events.
        """
        checkpoint = self.ledger.checkpoint()
        mark = len(self._pending_events)
        admitted = len(self._admitted)
        self._depth += 1
        try:
            yield
        except Exception:
            self.ledger.rollback(checkpoint)
            for wallet in reversed(self._admitted[admitted:]):
                self.ledger.unregister_wallet(wallet)
            del self._admitted[admitted:]
            del self._pending_events[mark:]
            raise
        finally:
            self._depth -= 1
        if self._depth == 0:
            self._admitted.clear()
            self._publish()

    def _admit(self, *wallets: str) -> None:
        """Register any unknown counterparty so it can hold and receive value."""
        for wallet in wallets:
            if is_null_address(wallet) or not isinstance(wallet, str) or not wallet.strip():
                continue
            if not self.ledger.is_registered(wallet):
                self.ledger.register_wallet(wallet)
                self._admitted.append(wallet)
                logger.debug("%s admitted wallet %s", self.symbol, wallet)

    def _execute(self, pending: PendingTransaction) -> None:
        if self.ledger.execute(pending) != ExecuteResult.APPLIED:
            raise LedgerError(f"{pending.origin} rejected by ledger {self.ledger.name}")

    def _pay(self, payout: Payout) -> None:
        """Commit bookkeeping, then deliver the base asset."""
        self._execute(payout.effects)
        if self.ledger.deliver(payout.transfer) != ExecuteResult.APPLIED:
            raise LedgerError(f"{payout.transfer.origin} rejected by ledger {self.ledger.name}")

    # ========================================================================
    # OPERATIONS
    # ========================================================================

    def mint(self, account: str, amount: int) -> Mint:
        """Deposit amount of base asset from account and mint as many units to it."""
        with self._atomic():
            self._admit(account)
            self._execute(compute_mint(self.ledger, self.symbol, account, amount))
            event = Mint(account, amount, self.ledger.current_time)
            self._emit(event)
        return event

    @nonreentrant
    def burn(self, account: str, destination: str) -> Burn:
        """Burn account's entire balance and pay the base asset to destination."""
        with self._atomic():
            self._admit(account, destination)
            payout = compute_burn(self.ledger, self.symbol, account, destination)
            self._pay(payout)
            event = Burn(account, payout.amount, destination, self.ledger.current_time)
            self._emit(event)
        return event

    def transfer(self, sender: str, recipient: str, amount: int) -> Transfer:
        with self._atomic():
            self._admit(sender, recipient)
            self._execute(compute_transfer(self.ledger, self.symbol, sender, recipient, amount))
            event = Transfer(sender, recipient, amount, self.ledger.current_time)
            self._emit(event)
        return event

    def approve(self, owner: str, spender: str, amount: int) -> Approval:
        with self._atomic():
            self._admit(owner, spender)
            self._execute(compute_approve(self.ledger, self.symbol, owner, spender, amount))
            event = Approval(owner, spender, amount, self.ledger.current_time)
            self._emit(event)
        return event

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> Transfer:
        """Move amount from owner to recipient on spender's allowance."""
        with self._atomic():
            self._admit(spender, owner, recipient)
            self._execute(compute_transfer_from(
                self.ledger, self.symbol, spender, owner, recipient, amount
            ))
            event = Transfer(owner, recipient, amount, self.ledger.current_time)
            self._emit(event)
        return event

    def record_dividend(self, payer: str, amount: int) -> DividendRecorded:
        """Distribute amount of payer's base asset across current holders."""
        with self._atomic():
            self._admit(payer)
            supply = self.total_supply()
            self._execute(compute_dividend(self.ledger, self.symbol, payer, amount))
            event = DividendRecorded(amount, supply, self.ledger.current_time)
            self._emit(event)
        logger.info("%s dividend of %d recorded against supply %d", self.symbol, amount, supply)
        return event

    @nonreentrant
    def withdraw(self, account: str, destination: str) -> DividendWithdrawn:
        """Pay account's accrued dividend to destination."""
        with self._atomic():
            self._admit(account, destination)
            payout = compute_withdrawal(self.ledger, self.symbol, account, destination)
            self._pay(payout)
            event = DividendWithdrawn(account, payout.amount, destination, self.ledger.current_time)
            self._emit(event)
        return event

    # ========================================================================
    # AUDIT
    # ========================================================================

    def verify_invariants(self) -> Dict[str, Any]:
        """
        Check the token's accounting invariants.

        - supply: holder balances sum to total supply
        - holders: registry holds exactly the wallets with a positive balance, once
        - backing: escrow covers supply plus outstanding dividends

        Returns:
            Dict with 'valid' (bool) and 'violations' (list of str)
        """
        violations: List[str] = []
        supply = self.total_supply()

        positions = self.ledger.get_positions(self.symbol)
        if sum(positions.values()) != supply:
            violations.append(f"holder balances {sum(positions.values())} != supply {supply}")
        if self.ledger.total_supply(self.symbol) != supply:
            violations.append(
                f"wallet balances {self.ledger.total_supply(self.symbol)} != supply {supply}"
            )

        holders = self.holders()
        if len(holders) != len(set(holders)):
            violations.append(f"duplicate holders: {holders}")
        positive = {
            w for w in self.ledger.list_wallets()
            if w in self.ledger.balances and self.ledger.balances[w].get(self.symbol, 0) > 0
        }
        if set(holders) != positive:
            violations.append(f"registry {sorted(holders)} != positive balances {sorted(positive)}")

        owed = supply + self.outstanding_dividends()
        if self.escrow_balance() < owed:
            violations.append(f"escrow {self.escrow_balance()} < owed {owed}")

        return {'valid': not violations, 'violations': violations}

    def __repr__(self) -> str:
        return f"DividendToken({self.symbol!r}, supply={self.total_supply()}, holders={self.holder_count()})"


def create_dividend_token(
    ledger: Ledger,
    symbol: str = DEFAULT_TOKEN_SYMBOL,
    name: str = DEFAULT_TOKEN_NAME,
    base_symbol: str = DEFAULT_BASE_SYMBOL,
    base_name: str = "Ether",
    decimals: int = DEFAULT_DECIMALS,
    escrow_wallet: Optional[str] = None,
) -> DividendToken:
    """
    Register a dividend token on a ledger and return its facade.

    Registers the base asset (if not already registered), the token unit,
    the claim unit and the escrow wallet.

    Args:
        ledger: Ledger to register on
        symbol: Token symbol (default "TEST")
        name: Token name (default "Test token")
        base_symbol: Base asset symbol (default "ETH")
        base_name: Base asset name, used only when registering it
        decimals: Decimals of the base asset and the token
        escrow_wallet: Escrow wallet id (default "<symbol>:escrow")

    Raises:
        ValueError: If the token symbol or escrow wallet is already registered,
                    or the base asset uses different decimals
    """
    if base_symbol in ledger.units:
        if ledger.units[base_symbol].decimals != decimals:
            raise ValueError(
                f"{base_symbol} has {ledger.units[base_symbol].decimals} decimals, token expects {decimals}"
            )
    else:
        ledger.register_unit(base_asset(base_symbol, base_name, decimals))

    token_unit = create_dividend_token_unit(symbol, name, base_symbol, decimals, escrow_wallet)
    ledger.register_unit(token_unit)
    ledger.register_unit(create_dividend_claim_unit(symbol, base_symbol, decimals))
    ledger.register_wallet(token_unit.state['escrow_wallet'])

    logger.info("Created dividend token %s (%s) backed by %s", symbol, name, base_symbol)
    return DividendToken(ledger, symbol)
