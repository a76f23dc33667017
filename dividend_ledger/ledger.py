"""
ledger.py - Stateful Double-Entry Ledger

The Ledger class is the central state manager for the dividend ledger.
It is the only module that mutates balances, ensuring controlled and auditable changes.

Key responsibilities:
    - Implements LedgerView protocol for safe read-only access by pure functions
    - Executes transactions atomically (all moves succeed or all fail)
    - Maintains wallet balances, unit definitions and per-unit holder registries
    - Delivers outbound value to wallets with receive hooks (deliver)
    - Unwinds executed transactions back to a checkpoint (rollback)
    - Tracks time and provides temporal operations (clone_at, replay)
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, List, Set, Optional, Tuple, Any
import copy
import logging

from .core import (
    # Types
    Move, Transaction, Unit,
    PendingTransaction,
    ExecuteResult, LedgerView,
    Positions, UnitState, BalanceMap,
    # Constants
    SYSTEM_WALLET,
    # Exceptions
    LedgerError, TransferRuleViolation, UnitNotRegistered, WalletNotRegistered,
    # Helper functions
    _freeze_state,
)
from .guard import ReentrancyGuard
from .holders import HolderRegistry


logger = logging.getLogger(__name__)

# Called with the delivered move after it has been applied.
ReceiveHook = Callable[[Move], None]


class Ledger:
    """
    Double-entry ledger with full validation and audit trail.

    Implements the LedgerView protocol, allowing the ledger to be passed to pure
    functions that access only read-only methods.

    Design Principles:
        - Always validates: Every transaction is validated against balance constraints,
          transfer rules, and timestamp requirements.
        - Always logs: Every transaction is recorded in the audit trail, enabling
          rollback(), clone_at() and replay().
        - Holder registries are updated on every balance write, never afterwards.

    Thread Safety:
        Not thread-safe. Each thread should maintain its own Ledger instance.

    Example:
        ledger = Ledger("main")
        ledger.register_unit(base_asset("ETH", "Ether"))
        ledger.register_wallet("alice")
        ledger.register_wallet("bob")

        tx = build_transaction(ledger, [
            Move(100, "ETH", "alice", "bob", "payment_001")
        ])
        result = ledger.execute(tx)
    """

    def __init__(
        self,
        name: str,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
        test_mode: bool = False
    ):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            initial_time: Starting time for the ledger (default: 1970-01-01)
            verbose: Print each applied or rejected transaction (default: True)
            test_mode: Enable test mode to allow set_balance() calls (default: False)
        """
        self.name = name
        self.balances: Dict[str, Dict[str, int]] = {}
        self.units: Dict[str, Unit] = {}
        self.registered_wallets: Set[str] = set()
        self.transaction_log: List[Transaction] = []
        self.receive_hooks: Dict[str, ReceiveHook] = {}
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self.verbose = verbose
        self._test_mode = test_mode
        # Monotonic sequence counter for execution ordering
        self._next_sequence: int = 0
        # unit -> registry of wallets with a strictly positive balance
        self._holders_by_unit: Dict[str, HolderRegistry] = {}
        # holder registry journal marks taken before each logged transaction
        self._registry_marks: List[Dict[str, int]] = []
        # unit -> net amount written by set_balance() outside the log
        self._injected: Dict[str, int] = defaultdict(int)
        # token symbol -> guard shared by every facade bound to that token
        self._guards: Dict[str, ReentrancyGuard] = {}

        # Auto-register the system wallet (used for unit issuance/redemption)
        self.registered_wallets.add(SYSTEM_WALLET)
        self.balances[SYSTEM_WALLET] = defaultdict(int)

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time of the ledger."""
        return self._current_time

    def get_balance(self, wallet_id: str, unit_symbol: str) -> int:
        """
        Get the balance of a specific unit in a wallet.

        Raises:
            WalletNotRegistered: If wallet is not registered
            UnitNotRegistered: If unit is not registered
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return self.balances[wallet_id].get(unit_symbol, 0)

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """
        Get a deep copy of a unit's internal state.

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        state = self.units[unit_symbol].state
        return copy.deepcopy(state) if state else {}

    def get_positions(self, unit_symbol: str) -> Positions:
        """
        Get all strictly positive positions for a unit, in holder registry order.

        The system wallet never appears: its balance is the negative of issuance.
        """
        registry = self._holders_by_unit.get(unit_symbol)
        if registry is None:
            return {}
        return {w: self.balances[w][unit_symbol] for w in registry}

    def get_holders(self, unit_symbol: str) -> HolderRegistry:
        """
        Return the live holder registry for a unit.

        Callers must treat it as read-only; the ledger keeps it in sync.

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return self._holders_by_unit[unit_symbol]

    def list_wallets(self) -> Set[str]:
        """List all registered wallet IDs."""
        return self.registered_wallets.copy()

    def list_units(self) -> List[str]:
        """List all registered unit symbols."""
        return sorted(self.units.keys())

    def get_unit(self, symbol: str) -> Unit:
        """Return the Unit object for a given symbol."""
        if symbol not in self.units:
            raise UnitNotRegistered(f"Unit {symbol} not registered")
        return self.units[symbol]

    def get_wallet_balances(self, wallet_id: str) -> BalanceMap:
        """Get all balances for a wallet."""
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        return dict(self.balances[wallet_id])

    def total_supply(self, unit_symbol: str) -> int:
        """
        Sum of a unit's balances across all non-system wallets.

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return sum(
            self.balances[w].get(unit_symbol, 0)
            for w in sorted(self.registered_wallets)
            if w != SYSTEM_WALLET
        )

    def verify_double_entry(
        self,
        expected_supplies: Optional[Dict[str, int]] = None,
    ) -> Dict[str, Any]:
        """
        Verify that conservation laws hold for all units.

        Every move debits one wallet and credits another by the same amount,
        so for each unit the sum over all wallets (system wallet included)
        equals the amount injected through set_balance(). Units issued only
        through the system wallet therefore sum to zero.

        Pass expected_supplies to also compare current non-system supplies
        against known totals.

        Returns:
            Dict with keys:
            - 'valid': bool - True if all conservation laws hold
            - 'supplies': Dict[str, int] - Current non-system supply for each unit
            - 'discrepancies': List[Dict] - Details of any violations

        Example:
            result = ledger.verify_double_entry()
            assert result['valid'], f"Conservation violated: {result['discrepancies']}"
        """
        supplies = {}
        discrepancies = []

        for unit_symbol in self.units:
            current_supply = self.total_supply(unit_symbol)
            supplies[unit_symbol] = current_supply

            grand_total = current_supply + self.balances[SYSTEM_WALLET].get(unit_symbol, 0)
            injected = self._injected.get(unit_symbol, 0)
            if grand_total != injected:
                discrepancies.append({
                    'unit': unit_symbol,
                    'expected': injected,
                    'actual': grand_total,
                    'difference': grand_total - injected,
                    'error': 'wallets do not net to injected supply',
                })

            if expected_supplies and unit_symbol in expected_supplies:
                expected = expected_supplies[unit_symbol]
                if current_supply != expected:
                    discrepancies.append({
                        'unit': unit_symbol,
                        'expected': expected,
                        'actual': current_supply,
                        'difference': current_supply - expected,
                    })

        if expected_supplies:
            for unit_symbol, expected in expected_supplies.items():
                if unit_symbol not in supplies:
                    discrepancies.append({
                        'unit': unit_symbol,
                        'expected': expected,
                        'actual': 0,
                        'difference': -expected,
                        'error': 'unit not registered',
                    })

        return {
            'valid': len(discrepancies) == 0,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    def is_registered(self, wallet_id: str) -> bool:
        """Check if a wallet is registered."""
        return wallet_id in self.registered_wallets

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the ledger's logical clock to a new time.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_wallet(self, wallet_id: str, on_receive: Optional[ReceiveHook] = None) -> str:
        """
        Register a new wallet in the ledger.

        Args:
            wallet_id: Unique identifier for the wallet
            on_receive: Optional hook run by deliver() after value reaches the
                        wallet. It may call back into code that uses this ledger.

        Returns:
            The wallet_id that was registered

        Raises:
            ValueError: If wallet is already registered or the id is empty
        """
        if not wallet_id or not wallet_id.strip():
            raise ValueError("Wallet id cannot be empty")
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = defaultdict(int)
        if on_receive is not None:
            self.receive_hooks[wallet_id] = on_receive
        return wallet_id

    def unregister_wallet(self, wallet_id: str) -> None:
        """
        Remove a wallet that holds nothing and never appeared in the log.

        Used to undo an implicit registration when the operation that made it
        fails.

        Raises:
            WalletNotRegistered: If wallet is not registered
            LedgerError: If wallet is the system wallet, holds a non-zero
                         balance or is referenced by a logged transaction
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if wallet_id == SYSTEM_WALLET:
            raise LedgerError("The system wallet cannot be unregistered")
        if any(self.balances[wallet_id].values()):
            raise LedgerError(f"Wallet {wallet_id} still holds a balance")
        if any(wallet_id in (m.source, m.dest) for tx in self.transaction_log for m in tx.moves):
            raise LedgerError(f"Wallet {wallet_id} appears in the transaction log")
        self.registered_wallets.discard(wallet_id)
        del self.balances[wallet_id]
        self.receive_hooks.pop(wallet_id, None)

    def guard_for(self, symbol: str) -> ReentrancyGuard:
        """
        The reentrancy guard of a token unit, created on first use.

        Every DividendToken bound to the same symbol on this ledger shares it.
        """
        if symbol not in self._guards:
            self._guards[symbol] = ReentrancyGuard()
        return self._guards[symbol]

    def set_receive_hook(self, wallet_id: str, on_receive: Optional[ReceiveHook]) -> None:
        """Install or clear (None) the receive hook of a registered wallet."""
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if on_receive is None:
            self.receive_hooks.pop(wallet_id, None)
        else:
            self.receive_hooks[wallet_id] = on_receive

    def register_unit(self, unit: Unit) -> None:
        """
        Register a new unit (asset type) in the ledger.

        Raises:
            ValueError: If unit symbol is already registered
        """
        if unit.symbol in self.units:
            raise ValueError(f"Unit {unit.symbol} already registered")
        self.units[unit.symbol] = unit
        self._holders_by_unit[unit.symbol] = self._new_registry(unit.symbol)
        logger.debug("Registered unit %s (%s) [%s]", unit.symbol, unit.name, unit.unit_type)
        if self.verbose:
            rule_str = f", rule={unit.transfer_rule.__name__}" if unit.transfer_rule else ""
            print(f"📝 Registered: {unit.symbol} ({unit.name}) [{unit.unit_type}]{rule_str}")

    def set_balance(self, wallet_id: str, unit_symbol: str, quantity: int) -> None:
        """
        Set a wallet's balance for a unit directly.

        WARNING: This method bypasses double-entry accounting and is only
        available in test mode. It is not recorded in the transaction log,
        so rollback() and replay() do not see it.

        Raises:
            LedgerError: If called when test_mode is False
        """
        if not self._test_mode:
            raise LedgerError(
                "set_balance() is disabled in production mode. "
                "Use build_transaction() and execute() to modify balances. "
                "Set test_mode=True when creating Ledger for testing."
            )
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValueError(f"Balance must be int, got {type(quantity)}")
        self._injected[unit_symbol] += quantity - self.balances[wallet_id].get(unit_symbol, 0)
        self.balances[wallet_id][unit_symbol] = quantity
        self._update_position_index(wallet_id, unit_symbol)

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        """
        Generate a unique execution ID.

        Format: exec:{ledger_name}:{sequence:012d}:{timestamp_micros}
        """
        micros = int(self._current_time.timestamp() * 1_000_000)
        return f"exec:{self.name}:{sequence:012d}:{micros}"

    def execute(self, pending: PendingTransaction) -> ExecuteResult:
        """
        Execute a PendingTransaction atomically.

        All moves succeed together or all fail together. Validation covers:
        - Unit and wallet registration
        - Balance constraints (min/max balance limits)
        - Transfer rules
        - Timestamp requirements

        Returns:
            ExecuteResult.APPLIED if successful
            ExecuteResult.REJECTED if validation failed
        """
        if pending.is_empty():
            return ExecuteResult.APPLIED

        valid, reason = self._validate_pending(pending)
        if not valid:
            logger.info("Rejected transaction %r: %s", pending, reason)
            if self.verbose:
                print(f"✗ REJECTED: {reason}")
            return ExecuteResult.REJECTED

        sequence = self._next_sequence
        self._next_sequence += 1

        tx = Transaction(
            moves=pending.moves,
            state_changes=pending.state_changes,
            origin=pending.origin,
            timestamp=pending.timestamp,
            exec_id=self._generate_exec_id(sequence),
            ledger_name=self.name,
            execution_time=self._current_time,
            sequence_number=sequence,
        )

        self._registry_marks.append({u: r.mark() for u, r in self._holders_by_unit.items()})
        self._execute_moves(tx.moves)

        # Unit is frozen, so each state change swaps in a new Unit instance
        for sc in tx.state_changes:
            old_unit = self.units[sc.unit]
            new_state = copy.deepcopy(sc.new_state if isinstance(sc.new_state, dict) else {})
            self.units[sc.unit] = replace(old_unit, _frozen_state=_freeze_state(new_state))

        # Audit trail is mandatory
        self.transaction_log.append(tx)

        logger.debug("Applied %s (%s)", tx.exec_id, tx.origin)
        if self.verbose:
            self._print_tx_result(tx, "APPLIED", "✓")
        return ExecuteResult.APPLIED

    def deliver(self, pending: PendingTransaction) -> ExecuteResult:
        """
        Execute a value transfer and hand control to the receiving wallets.

        After the moves are applied, the receive hook of each destination wallet
        runs in move order. A hook may call arbitrary code, including code that
        executes further transactions on this ledger. If the transaction is
        rejected the ledger is untouched; if any hook raises, everything done
        since the delivery started (nested transactions included) is unwound
        and the exception propagates.

        Returns:
            ExecuteResult of the underlying execute()
        """
        checkpoint = self.checkpoint()
        result = self.execute(pending)
        if result != ExecuteResult.APPLIED:
            return result
        try:
            for move in pending.moves:
                hook = self.receive_hooks.get(move.dest)
                if hook is not None:
                    hook(move)
        except Exception:
            logger.info("Receive hook failed, unwinding delivery to checkpoint %d", checkpoint)
            self.rollback(checkpoint)
            raise
        return result

    def _print_tx_result(self, tx: Transaction, result: str, icon: str) -> None:
        """Print the transaction box with a result line appended."""
        lines = repr(tx).split('\n')
        w = 100
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines[-1] = f"├{bar}┤"
        lines.append(f"│{pad(' ' + icon + ' ' + result)}│")
        lines.append(f"└{bar}┘")
        print("\n".join(lines))

    def _validate_pending(self, pending: PendingTransaction) -> Tuple[bool, str]:
        """
        Validate pending transaction against all constraints.

        Checks performed:
        1. Timestamp validation (transaction must not be from the future)
        2. Unit and wallet registration
        3. Transfer rule enforcement
        4. Balance constraint validation (min/max balance limits)

        Returns:
            Tuple of (success: bool, reason: str)
        """
        if pending.timestamp > self._current_time:
            return False, "future timestamp"

        for sc in pending.state_changes:
            if sc.unit not in self.units:
                return False, f"unit not registered: {sc.unit}"

        for move in pending.moves:
            if move.unit_symbol not in self.units:
                return False, f"unit not registered: {move.unit_symbol}"
            if not self.is_registered(move.source):
                return False, f"wallet not registered: {move.source}"
            if not self.is_registered(move.dest):
                return False, f"wallet not registered: {move.dest}"

            unit = self.units[move.unit_symbol]
            if unit.transfer_rule:
                try:
                    unit.transfer_rule(self, move)
                except TransferRuleViolation as e:
                    return False, str(e)

        net: Dict[Tuple[str, str], int] = defaultdict(int)
        for move in pending.moves:
            net[(move.source, move.unit_symbol)] -= move.quantity
            net[(move.dest, move.unit_symbol)] += move.quantity

        # SYSTEM_WALLET is exempt - it is the issuer and redeemer of every unit
        for (wallet, unit_sym), delta in net.items():
            if wallet == SYSTEM_WALLET:
                continue
            unit = self.units[unit_sym]
            proposed = self.balances[wallet].get(unit_sym, 0) + delta
            if proposed < unit.min_balance:
                return False, f"{wallet} {unit_sym}: {proposed} < min {unit.min_balance}"
            if unit.max_balance is not None and proposed > unit.max_balance:
                return False, f"{wallet} {unit_sym}: {proposed} > max {unit.max_balance}"

        return True, ""

    def _new_registry(self, unit_symbol: str) -> HolderRegistry:
        return HolderRegistry(lambda w: self.balances.get(w, {}).get(unit_symbol, 0))

    def _update_position_index(self, wallet_id: str, unit_symbol: str) -> None:
        """Sync the unit's holder registry after a balance change of wallet_id."""
        self._holders_by_unit[unit_symbol].sync(wallet_id)

    def _write_delta(self, wallet_id: str, unit_symbol: str, delta: int) -> None:
        self.balances[wallet_id][unit_symbol] = self.balances[wallet_id].get(unit_symbol, 0) + delta

    def _apply_delta(self, wallet_id: str, unit_symbol: str, delta: int) -> None:
        self._write_delta(wallet_id, unit_symbol, delta)
        self._update_position_index(wallet_id, unit_symbol)

    def _execute_moves(self, moves) -> None:
        """Apply all moves to wallet balances and holder registries."""
        for move in moves:
            self._apply_delta(move.source, move.unit_symbol, -move.quantity)
            self._apply_delta(move.dest, move.unit_symbol, move.quantity)

    # ========================================================================
    # CHECKPOINT / ROLLBACK
    # ========================================================================

    def checkpoint(self) -> int:
        """Return a marker for the current end of the transaction log."""
        return len(self.transaction_log)

    def rollback(self, checkpoint: int) -> List[Transaction]:
        """
        Unwind every transaction executed after checkpoint, newest first.

        For each unwound transaction the moves are reversed and unit state is
        restored from old_state. Holder registries are reverted to their
        journal marks from before the first unwound transaction, so their
        enumeration order is exactly what it was at the checkpoint. The
        transaction log and sequence counter are truncated to the checkpoint.

        Returns:
            The unwound transactions, oldest first.

        Raises:
            ValueError: If checkpoint is outside the current log.
        """
        if checkpoint < 0 or checkpoint > len(self.transaction_log):
            raise ValueError(
                f"Checkpoint {checkpoint} outside log of length {len(self.transaction_log)}"
            )
        unwound = self.transaction_log[checkpoint:]
        touched: Dict[str, Set[str]] = defaultdict(set)
        for tx in reversed(unwound):
            self._unwind(tx)
            for move in tx.moves:
                touched[move.unit_symbol].update((move.source, move.dest))

        if unwound:
            marks = self._registry_marks[checkpoint]
            for unit_symbol, registry in self._holders_by_unit.items():
                if unit_symbol in marks:
                    touched[unit_symbol] |= registry.revert(marks[unit_symbol])
            # set_balance() writes are journaled but not unwound
            for unit_symbol, wallets in touched.items():
                for wallet in sorted(wallets):
                    if wallet in self.registered_wallets:
                        self._update_position_index(wallet, unit_symbol)

        del self.transaction_log[checkpoint:]
        del self._registry_marks[checkpoint:]
        self._next_sequence = checkpoint
        if unwound:
            logger.debug("Rolled back %d transaction(s) to checkpoint %d", len(unwound), checkpoint)
        return unwound

    def _unwind(self, tx: Transaction) -> None:
        for move in reversed(tx.moves):
            if move.unit_symbol not in self.units:
                raise LedgerError(f"Cannot unwind: unit {move.unit_symbol} not found")
            # registries are reverted from their journals by rollback()
            self._write_delta(move.dest, move.unit_symbol, -move.quantity)
            self._write_delta(move.source, move.unit_symbol, move.quantity)
        for sc in reversed(tx.state_changes):
            if sc.unit in self.units:
                restored = copy.deepcopy(sc.old_state if isinstance(sc.old_state, dict) else {})
                self.units[sc.unit] = replace(self.units[sc.unit], _frozen_state=_freeze_state(restored))

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> Ledger:
        """
        Create a deep copy of this ledger.

        Cloned state includes units, wallets, balances, holder registries
        (same enumeration order), transaction log, time and configuration.
        Receive hooks are not copied: they close over the original objects.
        """
        cloned = Ledger.__new__(Ledger)
        cloned.name = self.name
        cloned._current_time = self._current_time
        cloned.verbose = self.verbose
        cloned._test_mode = self._test_mode

        cloned.units = {
            symbol: replace(unit, _frozen_state=_freeze_state(copy.deepcopy(unit.state)))
            for symbol, unit in self.units.items()
        }

        cloned.registered_wallets = self.registered_wallets.copy()
        cloned.transaction_log = list(self.transaction_log)
        cloned.receive_hooks = {}
        cloned._next_sequence = self._next_sequence
        cloned._injected = defaultdict(int, self._injected)
        cloned._registry_marks = list(self._registry_marks)
        cloned._guards = {}

        cloned.balances = {}
        for wallet, bals in self.balances.items():
            cloned.balances[wallet] = defaultdict(int, bals)

        cloned._holders_by_unit = {}
        for unit_symbol, registry in self._holders_by_unit.items():
            cloned._holders_by_unit[unit_symbol] = registry.copy(
                lambda w, u=unit_symbol: cloned.balances.get(w, {}).get(u, 0)
            )

        return cloned

    def clone_at(self, target_time: datetime) -> Ledger:
        """
        Create a copy of this ledger as it existed at a specific past time.

        Clones the current state, then unwinds every transaction whose
        execution_time is after target_time.

        Raises:
            ValueError: If target_time is in the future
        """
        if target_time > self._current_time:
            raise ValueError(f"Target time {target_time} is in the future")

        cloned = self.clone()
        keep = len(self.transaction_log)
        while keep > 0 and self.transaction_log[keep - 1].execution_time > target_time:
            keep -= 1
        cloned.rollback(keep)
        cloned._current_time = target_time
        return cloned

    def replay(self, from_tx: int = 0) -> Ledger:
        """
        Create a new ledger by replaying the transaction log.

        Unit definitions (with their state as of the first replayed
        transaction) and wallet registrations are copied, then every logged
        transaction from from_tx on is re-executed in order.

        Note: Balances set via set_balance() are NOT replayed because they are
        not part of the transaction log.

        Raises:
            LedgerError: If a replayed transaction is rejected
        """
        new_ledger = Ledger(
            name=f"{self.name}_replayed",
            initial_time=datetime(1970, 1, 1),
            verbose=self.verbose,
            test_mode=self._test_mode
        )

        # Unit state as it was before the first replayed transaction
        initial_states: Dict[str, UnitState] = {}
        for tx in self.transaction_log[from_tx:]:
            for sc in tx.state_changes:
                initial_states.setdefault(sc.unit, sc.old_state if isinstance(sc.old_state, dict) else {})

        for symbol, unit in self.units.items():
            state = initial_states.get(symbol, unit.state)
            new_ledger.units[symbol] = replace(unit, _frozen_state=_freeze_state(copy.deepcopy(state)))
            new_ledger._holders_by_unit[symbol] = new_ledger._new_registry(symbol)

        for wallet in sorted(self.registered_wallets):
            if wallet != SYSTEM_WALLET:
                new_ledger.register_wallet(wallet)

        for tx in self.transaction_log[from_tx:]:
            if tx.timestamp > new_ledger._current_time:
                new_ledger.advance_time(tx.timestamp)

            pending = PendingTransaction(
                moves=tx.moves,
                state_changes=tx.state_changes,
                origin=tx.origin,
                timestamp=tx.timestamp,
            )
            if new_ledger.execute(pending) == ExecuteResult.REJECTED:
                raise LedgerError(f"Replay failed at tx {tx.exec_id}")

        return new_ledger
