"""
Temporal Conformance Tests

INVARIANT: Time-based operations respect ordering and causality.

    ∀ transactions t1, t2 in the log:
        index(t1) < index(t2) ⟹ execution_time(t1) ≤ execution_time(t2)

This ensures:
- Time can only advance forward
- Transactions and events carry the time they executed at
- clone_at(t) sees exactly the operations executed up to t
"""

import pytest
from datetime import datetime, timedelta
from hypothesis import given, settings
from hypothesis import strategies as st

from dividend_ledger import Ledger, create_dividend_token


START = datetime(2025, 1, 1)


def dated_token():
    ledger = Ledger("temporal", START, verbose=False, test_mode=True)
    token = create_dividend_token(ledger)
    for w in ("alice", "bob", "payer"):
        ledger.register_wallet(w)
        ledger.set_balance(w, "ETH", 1_000_000)
    return ledger, token


class TestTemporalOrdering:

    def test_time_cannot_go_backwards(self):
        ledger, _ = dated_token()
        ledger.advance_time(START + timedelta(days=1))
        with pytest.raises(ValueError):
            ledger.advance_time(START)

    def test_events_and_log_carry_execution_time(self):
        ledger, token = dated_token()
        token.mint("alice", 100)
        ledger.advance_time(START + timedelta(days=3))
        token.record_dividend("payer", 50)

        assert [e.timestamp for e in token.events] == [START, START + timedelta(days=3)]
        assert [tx.execution_time for tx in ledger.transaction_log] == [START, START + timedelta(days=3)]

    @given(st.lists(st.integers(min_value=0, max_value=10), min_size=1, max_size=15))
    @settings(max_examples=50, deadline=None)
    def test_log_is_time_ordered(self, gaps):
        ledger, token = dated_token()
        for i, gap in enumerate(gaps):
            ledger.advance_time(ledger.current_time + timedelta(hours=gap))
            token.mint("alice" if i % 2 else "bob", i + 1)

        times = [tx.execution_time for tx in ledger.transaction_log]
        assert times == sorted(times)


class TestCloneAt:

    def test_clone_at_each_day_matches_history(self):
        ledger, token = dated_token()
        supplies = {}
        for day in range(5):
            ledger.advance_time(START + timedelta(days=day))
            token.mint("alice", 10)
            supplies[day] = token.total_supply()

        for day, supply in supplies.items():
            past = ledger.clone_at(START + timedelta(days=day))
            assert past.total_supply("TEST") == supply
            assert past.current_time == START + timedelta(days=day)

    def test_clone_at_restores_claims_and_holders(self):
        ledger, token = dated_token()
        token.mint("alice", 100)
        ledger.advance_time(START + timedelta(days=1))
        token.transfer("alice", "bob", 100)
        token.record_dividend("payer", 40)
        ledger.advance_time(START + timedelta(days=2))

        past = ledger.clone_at(START)

        assert past.get_holders("TEST").snapshot() == ["alice"]
        assert past.get_balance("bob", "TEST.DIV") == 0
        assert ledger.get_balance("bob", "TEST.DIV") == 40

    def test_clone_at_future_rejected(self):
        ledger, _ = dated_token()
        with pytest.raises(ValueError):
            ledger.clone_at(START + timedelta(days=1))

    def test_clone_at_leaves_original_untouched(self):
        ledger, token = dated_token()
        token.mint("alice", 100)
        ledger.advance_time(START + timedelta(days=1))
        token.burn("alice", "alice")

        ledger.clone_at(START)

        assert token.total_supply() == 0
        assert token.holders() == []
