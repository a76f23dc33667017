"""
Core types and pure functions for the dividend ledger.

This module provides the foundational data structures and protocols:
1. Protocols: LedgerView for read-only ledger access
2. Immutable data structures: Move, PendingTransaction, Transaction, Unit
3. Exceptions: LedgerError and domain-specific error types
4. Type aliases: Positions, BalanceMap, UnitState
5. Transfer rules: Pure validation functions for moves
6. Unit factories and amount conversion helpers

All functions in this module are pure and operate on read-only views.
No function can mutate ledger state directly.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_DOWN, localcontext
from enum import Enum
import copy
from typing import (
    Dict, List, Set, Optional, Callable, Any, Protocol,
    Tuple, FrozenSet, runtime_checkable,
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for issuance and redemption.
# The system wallet is exempt from balance validation and can hold any balance,
# so for every unit the sum over all wallets (system included) is zero.
SYSTEM_WALLET = "system"

# The null destination. Operations that pay out refuse it.
NULL_ADDRESS = "0x0000000000000000000000000000000000000000"

# Unit type constants (strings, not enum).
UNIT_TYPE_BASE_ASSET = "BASE_ASSET"
UNIT_TYPE_DIVIDEND_TOKEN = "DIVIDEND_TOKEN"
UNIT_TYPE_DIVIDEND_CLAIM = "DIVIDEND_CLAIM"

# Base units per whole unit are 10 ** decimals.
DEFAULT_DECIMALS = 18

DEFAULT_TOKEN_NAME = "Test token"
DEFAULT_TOKEN_SYMBOL = "TEST"
DEFAULT_BASE_SYMBOL = "ETH"

# Suffix appended to a token symbol to name its dividend claim unit.
CLAIM_SUFFIX = ".DIV"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from wallet ID to quantity held by that wallet for a specific unit.
Positions = Dict[str, int]

# Mapping from unit symbol to quantity held in a single wallet.
BalanceMap = Dict[str, int]

# Internal state for a unit: metadata, allowances, counters.
UnitState = Dict[str, Any]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Token and dividend functions accept a LedgerView to declare their read-only
    intent. The Ledger class implements this protocol but also provides mutation
    methods. For testing, FakeView provides a truly immutable implementation.
    """

    @property
    def current_time(self) -> datetime:
        """Return the current logical time of the ledger."""
        ...

    def get_balance(self, wallet_id: str, unit_symbol: str) -> int:
        """
        Return the balance of a specific unit in a wallet.

        Returns 0 if the wallet holds none of the unit.
        """
        ...

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """Return a copy of the unit's internal state."""
        ...

    def get_positions(self, unit_symbol: str) -> Positions:
        """
        Return all strictly positive positions for a unit.

        Iteration order is holder registry order.
        """
        ...

    def list_wallets(self) -> Set[str]:
        """Return the set of all registered wallet IDs."""
        ...

    def get_unit(self, symbol: str) -> 'Unit':
        """Return the Unit object for a given symbol."""
        ...

    def is_registered(self, wallet_id: str) -> bool:
        """Return True if the wallet is registered."""
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a transaction execution attempt.

    APPLIED: Transaction was successfully validated and applied to the ledger.
    REJECTED: Transaction failed validation due to insufficient funds, balance
              constraints, or transfer rule violations.
    """
    APPLIED = "applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Classification of where a transaction originated."""
    USER_ACTION = "user_action"           # Caller-initiated operation (mint, transfer, ...)
    CONTRACT = "contract"                 # Token contract bookkeeping
    DISTRIBUTION = "distribution"         # Dividend distribution
    PAYOUT = "payout"                     # Outbound base asset delivery
    SYSTEM = "system"                     # Funding and setup


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class InvalidAmount(LedgerError):
    """Raised when a zero or negative amount is given where a positive one is required."""
    pass


class InvalidAddress(LedgerError):
    """Raised when a null or reserved address is used as a destination."""
    pass


class InsufficientBalance(LedgerError):
    """Raised when a burn, transfer or deposit exceeds the available balance."""
    pass


class InsufficientAllowance(LedgerError):
    """Raised when a delegated transfer exceeds the approved allowance."""
    pass


class NoHolders(LedgerError):
    """Raised when a dividend is recorded while total supply is zero."""
    pass


class NothingToWithdraw(LedgerError):
    """Raised when a withdrawal is attempted with no accrued dividend."""
    pass


class IndexOutOfBounds(LedgerError):
    """Raised when a holder index falls outside [1, count]."""
    pass


class ReentrantCall(LedgerError):
    """Raised when a guarded operation is entered while the guard is held."""
    pass


class TransferRuleViolation(LedgerError):
    """Raised when a move violates the unit's transfer rule."""
    pass


class UnitNotRegistered(LedgerError):
    """Raised when attempting to operate on a unit that has not been registered with the ledger."""
    pass


class WalletNotRegistered(LedgerError):
    """Raised when attempting to operate on a wallet that has not been registered with the ledger."""
    pass


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of a transaction's origin for audit purposes.

    Attributes:
        origin_type: Classification of the origin source
        source_id: Identifier of the specific source (token symbol, wallet, ...)
        unit_symbol: Symbol of the unit that triggered this (if applicable)
        event_type: Specific operation (e.g., "MINT", "BURN", "DIVIDEND")
    """
    origin_type: OriginType
    source_id: str
    unit_symbol: Optional[str] = None
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.unit_symbol:
            parts.append(f"unit={self.unit_symbol}")
        if self.event_type:
            parts.append(f"event={self.event_type}")
        return f"Origin({', '.join(parts)})"


# ============================================================================
# UNIT STATE CHANGE
# ============================================================================

@dataclass(frozen=True, slots=True)
class UnitStateChange:
    """
    Record of a unit state change for transaction logging and rollback.

    Stores complete before/after state snapshots:
    - Forward replay: apply new_state
    - Backward unwind: restore old_state

    Attributes:
        unit: Symbol of the unit whose state changed
        old_state: Complete state before the change (dict or None)
        new_state: Complete state after the change (dict)
    """
    unit: str
    old_state: Any
    new_state: Any

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """Return {field: (old_value, new_value)} for fields that differ."""
        old = self.old_state if isinstance(self.old_state, dict) else {}
        new = self.new_state if isinstance(self.new_state, dict) else {}
        changes = {}
        for key in set(old.keys()) | set(new.keys()):
            old_val = old.get(key)
            new_val = new.get(key)
            if old_val != new_val:
                changes[key] = (old_val, new_val)
        return changes


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of value between two wallets.

    Attributes:
        quantity: The amount to transfer in base units (strictly positive int).
        unit_symbol: The symbol of the unit being transferred (e.g., "ETH", "TEST").
        source: The wallet ID from which value is debited.
        dest: The wallet ID to which value is credited.
        contract_id: Identifier of the operation generating this move.
        metadata: Optional additional information about the move.

    This class is immutable (frozen=True) and memory-optimized (slots=True).
    All fields are validated in __post_init__.
    """
    quantity: int
    unit_symbol: str
    source: str
    dest: str
    contract_id: str
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.unit_symbol or not self.unit_symbol.strip():
            raise ValueError("Move unit_symbol cannot be empty")
        if not self.contract_id or not self.contract_id.strip():
            raise ValueError("Move contract_id cannot be empty")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValueError(f"Move quantity must be int, got {type(self.quantity)}")
        if self.quantity <= 0:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}→{self.dest})"


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A transaction specification before execution - represents INTENT.

    Created by token and dividend functions and submitted to the ledger for
    execution. Contains everything needed to describe what should happen, but
    without execution-specific metadata (exec_id, sequence_number).

    Attributes:
        moves: Tuple of value transfers between wallets
        state_changes: Tuple of unit state changes (with old_state and new_state)
        origin: Who/what created this transaction and why
        timestamp: When this pending transaction was created
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime

    def is_empty(self) -> bool:
        """Return True if this pending transaction has no moves and no state deltas."""
        return not self.moves and not self.state_changes

    def __repr__(self) -> str:
        return f"PendingTransaction({len(self.moves)} moves, {len(self.state_changes)} deltas, {self.origin})"


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    state_changes: Optional[List[UnitStateChange]] = None,
    origin: Optional[TransactionOrigin] = None,
) -> PendingTransaction:
    """
    Build a PendingTransaction from moves and state deltas.

    This is the standard way to create transactions.

    Args:
        view: Read-only ledger view (provides current_time)
        moves: List of moves to include in the transaction
        state_changes: Optional list of UnitStateChange objects
        origin: Transaction origin (defaults to CONTRACT origin)

    Returns:
        A PendingTransaction ready for execution

    Example:
        def compute_payment(view, sender, recipient, amount):
            moves = [Move(amount, "ETH", sender, recipient, "payment")]
            return build_transaction(view, moves)
    """
    if origin is None:
        origin = TransactionOrigin(
            origin_type=OriginType.CONTRACT,
            source_id="contract",
        )

    # Deep copy state changes to prevent mutation
    copied_changes: Tuple[UnitStateChange, ...] = ()
    if state_changes:
        copied_changes = tuple(
            UnitStateChange(
                unit=sc.unit,
                old_state=copy.deepcopy(sc.old_state),
                new_state=copy.deepcopy(sc.new_state),
            )
            for sc in state_changes
        )

    return PendingTransaction(
        moves=tuple(moves),
        state_changes=copied_changes,
        origin=origin,
        timestamp=view.current_time,
    )


def empty_pending_transaction(view: LedgerView) -> PendingTransaction:
    """Create an empty PendingTransaction (no moves, no state changes)."""
    return PendingTransaction(
        moves=(),
        state_changes=(),
        origin=TransactionOrigin(OriginType.CONTRACT, "noop"),
        timestamp=view.current_time,
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of ledger state changes - represents FACT.

    Attributes:
        moves: Tuple of value transfers between wallets
        state_changes: Tuple of unit state changes (with old_state and new_state)
        origin: Who/what created this transaction and why
        timestamp: When the PendingTransaction was created
        exec_id: Unique execution identifier (ledger + sequence + time)
        ledger_name: Name of the ledger that executed this
        execution_time: When this was executed and logged
        sequence_number: Monotonic sequence within the ledger (for ordering and unwind)
        contract_ids: Set of contract IDs from moves (auto-populated)
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    exec_id: str
    ledger_name: str
    execution_time: datetime
    sequence_number: int
    contract_ids: FrozenSet[str] = None

    def __post_init__(self):
        if not self.moves and not self.state_changes:
            raise ValueError("Transaction must have moves or state_changes")
        if self.contract_ids is None:
            object.__setattr__(
                self, 'contract_ids',
                frozenset(m.contract_id for m in self.moves)
            )

    def __repr__(self) -> str:
        w = 100  # Inner content width
        bar = "─" * w

        def pad(text: str) -> str:
            """Pad or truncate text to exactly w characters."""
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            "",
            f"┌{bar}┐",
            f"│{pad(' Transaction: ' + self.exec_id)}│",
            f"├{bar}┤",
            f"│{pad('   timestamp      : ' + str(self.timestamp))}│",
            f"│{pad('   ledger_name    : ' + self.ledger_name)}│",
            f"│{pad('   sequence       : ' + str(self.sequence_number))}│",
            f"│{pad('   origin         : ' + str(self.origin))}│",
        ]
        lines.append(f"├{bar}┤")
        lines.append(f"│{pad(' Moves (' + str(len(self.moves)) + '):')}│")
        for i, move in enumerate(self.moves):
            move_str = f"   [{i}] {move.quantity} {move.unit_symbol}: {move.source} → {move.dest}"
            lines.append(f"│{pad(move_str)}│")
        if self.state_changes:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' State Changes (' + str(len(self.state_changes)) + '):')}│")
            for sc in self.state_changes:
                lines.append(f"│{pad('   [' + sc.unit + ']')}│")
                for field_name, (old_val, new_val) in sc.changed_fields().items():
                    lines.append(f"│{pad(f'      {field_name}: {old_val!r} → {new_val!r}')}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


# Type alias for transfer rule functions.
# Transfer rules validate moves and raise TransferRuleViolation if invalid.
TransferRule = Callable[[LedgerView, Move], None]


def _freeze_state(state: Optional[UnitState]) -> Tuple[Tuple[str, Any], ...]:
    """Convert a state dict to a tuple of (key, value) pairs sorted by key."""
    if not state:
        return ()
    return tuple(sorted(state.items()))


def _thaw_state(frozen_state: Tuple[Tuple[str, Any], ...]) -> UnitState:
    """Convert a frozen state representation back to a mutable dict."""
    return dict(frozen_state)


@dataclass(frozen=True, slots=True)
class Unit:
    """
    Definition of a unit (asset type) in the ledger.

    Attributes:
        symbol: Short identifier for the unit (e.g., "ETH", "TEST").
        name: Human-readable name for the unit.
        unit_type: Category of the unit (BASE_ASSET, DIVIDEND_TOKEN, DIVIDEND_CLAIM).
        min_balance: Minimum allowed balance in any non-system wallet.
        max_balance: Maximum allowed balance in any wallet (None = unbounded).
        decimals: Number of decimals used when displaying base units.
        transfer_rule: Optional function to validate moves involving this unit.
        _frozen_state: Internal frozen state representation (tuple of key-value pairs).
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: int = 0
    max_balance: Optional[int] = None
    decimals: int = DEFAULT_DECIMALS
    transfer_rule: Optional[TransferRule] = None
    _frozen_state: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    @property
    def state(self) -> UnitState:
        """
        Get the unit's state as a mutable dictionary.

        Returns a new dict each time to prevent accidental mutation.
        """
        return _thaw_state(self._frozen_state)


# ============================================================================
# TRANSFER RULES
# ============================================================================

def issuance_only_transfer_rule(view: LedgerView, move: Move) -> None:
    """
    Allow moves of a unit only to or from the system wallet.

    Dividend claims are issued by the system on distribution and returned to it on
    withdrawal. A holder can never hand a claim to another wallet.

    Raises:
        TransferRuleViolation: If neither side of the move is the system wallet.
    """
    if move.source != SYSTEM_WALLET and move.dest != SYSTEM_WALLET:
        raise TransferRuleViolation(
            f"{move.unit_symbol} is not transferable: {move.source} → {move.dest}"
        )


# ============================================================================
# ADDRESS AND AMOUNT HELPERS
# ============================================================================

def is_null_address(address: Optional[str]) -> bool:
    """True for None, the empty string, and NULL_ADDRESS."""
    return not address or address == NULL_ADDRESS


def validate_amount(amount: int, allow_zero: bool = False) -> int:
    """
    Check that an amount is an int in base units.

    Raises:
        InvalidAmount: If the amount is not an int, is negative, or is zero
                       while allow_zero is False.
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(f"Amount must be an int in base units, got {type(amount).__name__}")
    if amount < 0 or (amount == 0 and not allow_zero):
        raise InvalidAmount(f"Amount must be positive, got {amount}")
    return amount


def parse_units(value: Any, decimals: int = DEFAULT_DECIMALS) -> int:
    """
    Convert a human amount ("23", Decimal("0.5")) to integer base units.

    Fractions finer than the unit's precision are rejected rather than rounded.

    Example:
        parse_units("1.5", 18) == 1_500_000_000_000_000_000
    """
    if isinstance(value, float):
        value = str(value)
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    if not value.is_finite():
        raise InvalidAmount(f"Amount must be finite, got {value}")
    with localcontext() as ctx:
        ctx.prec = 80
        scaled = value.scaleb(decimals)
        integral = scaled.to_integral_value(rounding=ROUND_DOWN)
        if integral != scaled:
            raise InvalidAmount(f"{value} has more than {decimals} decimal places")
    return int(integral)


def format_units(amount: int, decimals: int = DEFAULT_DECIMALS) -> Decimal:
    """Convert integer base units to a Decimal in whole units."""
    with localcontext() as ctx:
        ctx.prec = 80
        value = Decimal(amount).scaleb(-decimals).normalize()
        # normalize() turns 50 into 5E+1
        if value.as_tuple().exponent > 0:
            value = value.quantize(Decimal(1))
        return value


# ============================================================================
# UNIT FACTORIES
# ============================================================================

def base_asset(symbol: str = DEFAULT_BASE_SYMBOL, name: str = "Ether",
               decimals: int = DEFAULT_DECIMALS) -> Unit:
    """
    Create the base asset unit deposited to mint and paid out on redemption.

    Args:
        symbol: Asset code (e.g., "ETH").
        name: Full name of the asset.
        decimals: Display precision of one whole unit.

    Returns:
        A Unit with minimum balance 0 (no overdrafts outside the system wallet).
    """
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_BASE_ASSET,
        min_balance=0,
        decimals=decimals,
    )
