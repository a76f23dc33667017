"""
guard.py - Value-Transfer Guard

A single-entry-at-a-time execution discipline for operations that send the
base asset out of the system. While a guarded operation runs, any attempt to
enter a guarded operation on the same guard fails with ReentrantCall. The
guard is released on every exit path, so a failed attempt never leaves the
token locked.

One guard is shared by all guarded operations of a token and is not keyed by
account: a nested call for a different account is rejected as well.
"""

from __future__ import annotations
from contextlib import contextmanager
from functools import wraps
from typing import Callable, Iterator, Optional, TypeVar
import logging

from .core import ReentrantCall


logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable)


class ReentrancyGuard:
    """
    Mutable held/free flag checked-and-set around guarded operations.

    Example:
        guard = ReentrancyGuard()
        with guard.enter("withdraw"):
            ...  # update state, then pay out
    """

    def __init__(self):
        self._held_by: Optional[str] = None

    @property
    def held(self) -> bool:
        return self._held_by is not None

    @property
    def held_by(self) -> Optional[str]:
        """Name of the operation currently holding the guard, if any."""
        return self._held_by

    @contextmanager
    def enter(self, operation: str = "guarded operation") -> Iterator[None]:
        """
        Hold the guard for the duration of the with-block.

        Raises:
            ReentrantCall: If the guard is already held.
        """
        if self._held_by is not None:
            logger.warning("Rejected reentrant %s while %s is in progress", operation, self._held_by)
            raise ReentrantCall(f"{operation} called while {self._held_by} is in progress")
        self._held_by = operation
        try:
            yield
        finally:
            self._held_by = None

    def __repr__(self) -> str:
        return f"ReentrancyGuard(held_by={self._held_by!r})"


def nonreentrant(method: F) -> F:
    """
    Run a method while holding ``self.guard``.

    The owning object must expose a ReentrancyGuard as ``guard``.
    """
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.guard.enter(method.__name__):
            return method(self, *args, **kwargs)
    return wrapper
