"""
holders.py - Holder Registry

Enumerable set of wallets holding a strictly positive balance of one unit.

The registry is an array plus a position index:
    _holders:  [wallet, ...]          enumeration order
    _index:    {wallet: slot}         O(1) membership and O(1) removal

Removal overwrites the removed slot with the last element and pops the tail.
This is O(1) but does not keep the relative order of the survivors, so callers
must not rely on enumeration order surviving a removal.

Every add and remove is journaled with the slot it touched, so the ledger can
revert the registry to an earlier mark (exact order included) when it unwinds
transactions.

Enumerating every holder is O(n). Dividend distribution walks the whole
registry, which makes the holder count the practical scalability limit.
"""

from __future__ import annotations
from typing import Callable, Dict, Iterator, List, Set, Tuple

from .core import IndexOutOfBounds


class HolderRegistry:
    """
    Set of current holders of a unit with stable 1-based enumeration.

    The registry consults the unit's balances through ``balance_of`` so that
    ``add_holder`` and ``remove_holder`` can be called unconditionally after any
    balance change: each is a no-op unless the wallet's balance qualifies.

    Invariant: wallet in registry  <=>  balance_of(wallet) > 0.

    Example:
        balances = {"alice": 10}
        registry = HolderRegistry(lambda w: balances.get(w, 0))
        registry.add_holder("alice")
        registry.holder_at(1)  # "alice"
    """

    def __init__(self, balance_of: Callable[[str], int]):
        self._balance_of = balance_of
        self._holders: List[str] = []
        self._index: Dict[str, int] = {}
        # (op, wallet, slot) for every membership change, oldest first
        self._journal: List[Tuple[str, str, int]] = []

    def add_holder(self, wallet: str) -> None:
        """Append wallet unless it is already present or holds nothing."""
        if wallet in self._index or self._balance_of(wallet) <= 0:
            return
        self._index[wallet] = len(self._holders)
        self._holders.append(wallet)
        self._journal.append(("add", wallet, self._index[wallet]))

    def remove_holder(self, wallet: str) -> None:
        """Swap-remove wallet unless it is absent or still holds a balance."""
        if wallet not in self._index or self._balance_of(wallet) > 0:
            return
        slot = self._index.pop(wallet)
        last = self._holders.pop()
        if last != wallet:
            self._holders[slot] = last
            self._index[last] = slot
        self._journal.append(("remove", wallet, slot))

    def mark(self) -> int:
        """Position in the journal to pass to revert() later."""
        return len(self._journal)

    def revert(self, mark: int) -> Set[str]:
        """
        Undo every membership change made after mark, newest first.

        Restores the exact enumeration order the registry had at mark.
        Returns the wallets whose membership was touched, so the caller can
        re-sync any whose balance was changed outside the journal.
        """
        touched: Set[str] = set()
        while len(self._journal) > mark:
            op, wallet, slot = self._journal.pop()
            touched.add(wallet)
            if op == "add":
                self._holders.pop()
                del self._index[wallet]
            elif slot == len(self._holders):
                # wallet was the tail when removed
                self._index[wallet] = slot
                self._holders.append(wallet)
            else:
                moved = self._holders[slot]
                self._index[moved] = len(self._holders)
                self._holders.append(moved)
                self._holders[slot] = wallet
                self._index[wallet] = slot
        return touched

    def sync(self, wallet: str) -> None:
        """Bring wallet's membership in line with its current balance."""
        self.add_holder(wallet)
        self.remove_holder(wallet)

    def count(self) -> int:
        return len(self._holders)

    def holder_at(self, index: int) -> str:
        """
        Return the holder at a 1-based index.

        Raises:
            IndexOutOfBounds: If index is not in [1, count()].
        """
        if isinstance(index, bool) or not isinstance(index, int):
            raise IndexOutOfBounds(f"Holder index must be an int, got {index!r}")
        if index < 1 or index > len(self._holders):
            raise IndexOutOfBounds(
                f"Holder index {index} out of bounds [1, {len(self._holders)}]"
            )
        return self._holders[index - 1]

    def snapshot(self) -> List[str]:
        """Copy of the holders in current enumeration order."""
        return list(self._holders)

    def copy(self, balance_of: Callable[[str], int]) -> HolderRegistry:
        """Independent copy bound to another balance source (used by Ledger.clone)."""
        cloned = HolderRegistry(balance_of)
        cloned._holders = list(self._holders)
        cloned._index = dict(self._index)
        cloned._journal = list(self._journal)
        return cloned

    def __contains__(self, wallet: object) -> bool:
        return wallet in self._index

    def __len__(self) -> int:
        return len(self._holders)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._holders))

    def __repr__(self) -> str:
        return f"HolderRegistry({self._holders!r})"
