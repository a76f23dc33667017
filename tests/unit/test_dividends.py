"""
Tests for dividend distribution and withdrawal.

Distribution model:
- share(H) = amount * balance(H) // supply, for each holder in registry order
- the full amount enters escrow; the floor-division remainder is retained
- claims are issued SYSTEM -> holder and returned holder -> SYSTEM on withdrawal
"""
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from dividend_ledger import (
    SYSTEM_WALLET, NULL_ADDRESS, OriginType,
    InsufficientBalance, InvalidAddress, InvalidAmount, NoHolders, NothingToWithdraw,
    WalletNotRegistered,
)
from dividend_ledger.units.dividend import (
    DividendShare,
    compute_dividend, compute_dividend_shares, compute_withdrawal,
    get_withdrawable, outstanding_claims, undistributed_balance,
)

from tests.fake_view import make_token_view


ESCROW = "TEST:escrow"


# =============================================================================
# SHARE ARITHMETIC
# =============================================================================

class TestComputeDividendShares:

    def test_even_split(self):
        shares = compute_dividend_shares(1000, {"a": 50, "b": 50}, 100)
        assert shares == [DividendShare("a", 50, 500), DividendShare("b", 50, 500)]

    def test_three_way_split(self):
        shares = compute_dividend_shares(1000, {"a": 25, "b": 50, "c": 25}, 100)
        assert [s.share for s in shares] == [250, 500, 250]

    def test_floor_division_leaves_dust(self):
        shares = compute_dividend_shares(100, {"a": 1, "b": 1, "c": 1}, 3)
        assert [s.share for s in shares] == [33, 33, 33]
        assert 100 - sum(s.share for s in shares) == 1

    def test_tiny_holder_gets_zero(self):
        shares = compute_dividend_shares(10, {"whale": 999, "minnow": 1}, 1000)
        assert [s.share for s in shares] == [9, 0]

    def test_preserves_enumeration_order(self):
        positions = {"z": 1, "a": 1, "m": 1}
        assert [s.wallet for s in compute_dividend_shares(3, positions, 3)] == ["z", "a", "m"]

    def test_exact_for_huge_amounts(self):
        amount = 10 ** 40 + 7
        shares = compute_dividend_shares(amount, {"a": 1, "b": 2}, 3)
        assert shares[0].share == amount // 3
        assert shares[1].share == amount * 2 // 3

    def test_zero_supply_rejected(self):
        with pytest.raises(NoHolders):
            compute_dividend_shares(10, {}, 0)

    @given(
        st.integers(min_value=1, max_value=10 ** 24),
        st.lists(st.integers(min_value=1, max_value=10 ** 21), min_size=1, max_size=12),
    )
    @settings(max_examples=200)
    def test_shares_never_exceed_amount(self, amount, balances):
        """PROPERTY: sum(shares) <= amount and each share is the exact floor."""
        positions = {f"w{i}": b for i, b in enumerate(balances)}
        supply = sum(balances)
        shares = compute_dividend_shares(amount, positions, supply)
        assert sum(s.share for s in shares) <= amount
        for s in shares:
            assert s.share * supply <= amount * s.balance < (s.share + 1) * supply


# =============================================================================
# DISTRIBUTION
# =============================================================================

class TestComputeDividend:

    def test_funds_escrow_and_issues_claims(self):
        view = make_token_view({"alice": 25, "bob": 50, "carol": 25}, base={"payer": 5000})
        pending = compute_dividend(view, "TEST", "payer", 1000)

        assert [(m.quantity, m.unit_symbol, m.source, m.dest) for m in pending.moves] == [
            (1000, "ETH", "payer", ESCROW),
            (250, "TEST.DIV", SYSTEM_WALLET, "alice"),
            (500, "TEST.DIV", SYSTEM_WALLET, "bob"),
            (250, "TEST.DIV", SYSTEM_WALLET, "carol"),
        ]
        assert pending.origin.origin_type == OriginType.DISTRIBUTION

    def test_updates_counters(self):
        view = make_token_view({"a": 1, "b": 1, "c": 1}, base={"payer": 100})
        (change,) = compute_dividend(view, "TEST", "payer", 100).state_changes
        assert change.changed_fields() == {
            'dividends_recorded': (0, 1),
            'dividends_total': (0, 100),
            'dividends_credited': (0, 99),
        }

    def test_skips_zero_shares(self):
        view = make_token_view({"whale": 999, "minnow": 1}, base={"payer": 10})
        pending = compute_dividend(view, "TEST", "payer", 10)
        assert [m.dest for m in pending.moves] == [ESCROW, "whale"]

    @pytest.mark.parametrize("amount", [0, -1])
    def test_rejects_non_positive(self, amount):
        view = make_token_view({"alice": 10}, base={"payer": 100})
        with pytest.raises(InvalidAmount):
            compute_dividend(view, "TEST", "payer", amount)

    def test_rejects_without_holders(self):
        view = make_token_view({}, base={"payer": 100})
        with pytest.raises(NoHolders):
            compute_dividend(view, "TEST", "payer", 10)

    def test_amount_checked_before_holders(self):
        view = make_token_view({}, base={"payer": 100})
        with pytest.raises(InvalidAmount):
            compute_dividend(view, "TEST", "payer", 0)

    def test_rejects_underfunded_payer(self):
        view = make_token_view({"alice": 10}, base={"payer": 9})
        with pytest.raises(InsufficientBalance):
            compute_dividend(view, "TEST", "payer", 10)

    def test_rejects_unknown_payer(self):
        view = make_token_view({"alice": 10})
        with pytest.raises(WalletNotRegistered):
            compute_dividend(view, "TEST", "ghost", 10)

    @pytest.mark.parametrize("payer", [SYSTEM_WALLET, ESCROW])
    def test_rejects_reserved_payer(self, payer):
        view = make_token_view({"alice": 10})
        with pytest.raises(InvalidAddress):
            compute_dividend(view, "TEST", payer, 10)


# =============================================================================
# READS
# =============================================================================

class TestDividendReads:

    def test_get_withdrawable(self):
        view = make_token_view({"alice": 10}, claims={"alice": 7})
        assert get_withdrawable(view, "TEST", "alice") == 7
        assert get_withdrawable(view, "TEST", "ghost") == 0

    def test_outstanding_claims(self):
        view = make_token_view({"alice": 10}, claims={"alice": 7, "bob": 3})
        assert outstanding_claims(view, "TEST") == 10

    def test_undistributed_balance_is_zero_when_fully_backed(self):
        view = make_token_view({"alice": 10}, claims={"alice": 7})
        assert undistributed_balance(view, "TEST") == 0


# =============================================================================
# WITHDRAWAL
# =============================================================================

class TestComputeWithdrawal:

    def test_returns_claims_then_pays(self):
        view = make_token_view({}, claims={"alice": 500}, wallets=["dest"])
        payout = compute_withdrawal(view, "TEST", "alice", "dest")

        assert payout.amount == 500
        assert [(m.quantity, m.unit_symbol, m.source, m.dest) for m in payout.effects.moves] == [
            (500, "TEST.DIV", "alice", SYSTEM_WALLET),
        ]
        assert [(m.quantity, m.unit_symbol, m.source, m.dest) for m in payout.transfer.moves] == [
            (500, "ETH", ESCROW, "dest"),
        ]

    def test_rejects_nothing_to_withdraw(self):
        view = make_token_view({"alice": 10}, wallets=["dest"])
        with pytest.raises(NothingToWithdraw):
            compute_withdrawal(view, "TEST", "alice", "dest")

    def test_rejects_null_destination(self):
        view = make_token_view({}, claims={"alice": 500})
        with pytest.raises(InvalidAddress, match="Invalid destination address"):
            compute_withdrawal(view, "TEST", "alice", NULL_ADDRESS)

    def test_destination_checked_before_balance(self):
        view = make_token_view({}, wallets=["alice"])
        with pytest.raises(InvalidAddress):
            compute_withdrawal(view, "TEST", "alice", NULL_ADDRESS)
