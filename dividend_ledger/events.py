"""
events.py - Token Events

Immutable audit records emitted by DividendToken after an operation commits.
A failed operation emits nothing.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Union


@dataclass(frozen=True, slots=True)
class Mint:
    """Units minted to account against an equal base asset deposit."""
    account: str
    amount: int
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class Burn:
    """Account's entire balance burned and its base asset paid to destination."""
    account: str
    amount: int
    destination: str
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class Transfer:
    sender: str
    recipient: str
    amount: int
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class Approval:
    owner: str
    spender: str
    amount: int
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class DividendRecorded:
    """
    A distribution of amount across holders.

    total_supply is the supply snapshot the shares were computed against.
    """
    amount: int
    total_supply: int
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class DividendWithdrawn:
    account: str
    amount: int
    destination: str
    timestamp: datetime


TokenEvent = Union[Mint, Burn, Transfer, Approval, DividendRecorded, DividendWithdrawn]

EventListener = Callable[[TokenEvent], None]
