"""
test_dividend_lifecycle.py - Multi-round dividend scenarios end to end

Walks a token through several distributions, transfers, burns and
withdrawals, checking after each step that:
- escrow always covers supply plus outstanding dividends
- distribution dust stays in escrow and is never paid out on its own
- the audit tools (verify_invariants, verify_double_entry, clone_at, replay)
  agree with the live token
"""

import logging
import pytest
from datetime import timedelta

from dividend_ledger import (
    DividendRecorded, DividendWithdrawn, Mint, Burn, Transfer,
    create_dividend_token, Ledger, base_asset,
    Move, SYSTEM_WALLET, build_transaction,
    InsufficientBalance, NoHolders,
)

from tests.helpers import eth, compare_ledger_states


def assert_sound(token):
    result = token.verify_invariants()
    assert result['valid'], result['violations']
    double_entry = token.ledger.verify_double_entry()
    assert double_entry['valid'], double_entry['discrepancies']


class TestDustRetention:

    def test_dust_stays_in_escrow(self, token):
        token.mint("owner", 1)
        token.mint("account1", 1)
        token.mint("account2", 1)

        token.record_dividend("account5", 100)

        for account in ("owner", "account1", "account2"):
            assert token.get_withdrawable(account) == 33
        assert token.undistributed_balance() == 1
        assert token.escrow_balance() == 3 + 100
        assert token.state['dividends_total'] == 100
        assert token.state['dividends_credited'] == 99
        assert_sound(token)

    def test_dust_survives_full_exit(self, token, ledger):
        token.mint("owner", 1)
        token.mint("account1", 2)
        token.record_dividend("account5", 10)       # 3 and 6, dust 1

        token.withdraw("owner", "owner")
        token.withdraw("account1", "account1")
        token.burn("owner", "owner")
        token.burn("account1", "account1")

        assert token.total_supply() == 0
        assert token.outstanding_dividends() == 0
        assert token.escrow_balance() == 1
        assert token.undistributed_balance() == 1
        assert_sound(token)

    def test_dust_is_not_redistributed(self, token):
        token.mint("owner", 3)
        token.record_dividend("account5", 10)       # sole holder takes all 10
        token.mint("account1", 3)
        token.record_dividend("account5", 1)        # 1 * 3 // 6 == 0 each, dust 1

        assert token.get_withdrawable("owner") == 10
        assert token.get_withdrawable("account1") == 0
        assert token.undistributed_balance() == 1


class TestSnapshotEntitlements:

    def test_entitlement_follows_balance_at_distribution(self, held_token):
        held_token.record_dividend("account5", eth("100"))
        held_token.transfer("owner", "account1", eth("50"))

        assert held_token.get_withdrawable("owner") == eth("50")
        assert held_token.get_withdrawable("account1") == eth("50")

        held_token.record_dividend("account5", eth("100"))

        assert held_token.get_withdrawable("owner") == eth("50")
        assert held_token.get_withdrawable("account1") == eth("150")

    def test_new_holder_gets_only_later_dividends(self, held_token):
        held_token.record_dividend("account5", eth("100"))
        held_token.mint("account3", eth("100"))
        held_token.record_dividend("account5", eth("200"))

        assert held_token.get_withdrawable("account3") == eth("100")
        assert held_token.get_withdrawable("owner") == eth("100")
        assert held_token.get_withdrawable("account1") == eth("100")


class TestEventLog:

    def test_full_lifecycle_event_sequence(self, token):
        received = []
        token.subscribe(received.append)

        token.mint("owner", 60)
        token.transfer("owner", "account1", 20)
        token.record_dividend("account5", 30)
        token.withdraw("account1", "account9")
        token.burn("owner", "account9")

        assert [type(e) for e in received] == [Mint, Transfer, DividendRecorded, DividendWithdrawn, Burn]
        assert received == token.events
        assert received[2].total_supply == 60
        assert received[3].amount == 10
        assert received[4].amount == 40

    def test_failed_operations_leave_no_events(self, token):
        with pytest.raises(NoHolders):
            token.record_dividend("account5", 10)
        with pytest.raises(InsufficientBalance):
            token.burn("owner", "owner")
        assert token.events == []

    def test_failing_listener_does_not_undo_operation(self, token, caplog):
        received = []

        def broken(event):
            raise RuntimeError("listener down")

        token.subscribe(broken)
        token.subscribe(received.append)

        with caplog.at_level(logging.ERROR, logger="dividend_ledger.dividend_token"):
            event = token.mint("owner", 60)

        assert token.balance_of("owner") == 60
        assert token.events == [event]
        assert received == [event]
        assert "listener down" in caplog.text


class TestAuditTools:

    def test_invariants_hold_through_lifecycle(self, held_token):
        steps = [
            lambda t: t.transfer("owner", "account2", eth("25")),
            lambda t: t.record_dividend("account5", eth("1000")),
            lambda t: t.withdraw("account1", "account9"),
            lambda t: t.burn("account2", "account2"),
            lambda t: t.mint("account3", eth("7")),
            lambda t: t.record_dividend("account4", 12345),
            lambda t: t.withdraw("account2", "account2"),
        ]
        for step in steps:
            step(held_token)
            assert_sound(held_token)

    def test_verify_invariants_detects_broken_registry(self, held_token):
        held_token.ledger.get_holders("TEST")._holders.append("account9")
        result = held_token.verify_invariants()
        assert not result['valid']

    def test_clone_at_sees_pre_dividend_state(self, held_token, ledger):
        t0 = ledger.current_time
        ledger.advance_time(t0 + timedelta(days=30))
        held_token.record_dividend("account5", eth("1000"))

        past = ledger.clone_at(t0)

        assert past.get_balance("owner", "TEST.DIV") == 0
        assert past.get_unit_state("TEST")['dividends_recorded'] == 0
        assert ledger.get_balance("owner", "TEST.DIV") == eth("500")

    def test_replay_matches_live_token(self):
        ledger = Ledger("chain", verbose=False)
        token = create_dividend_token(ledger)
        for account in ("owner", "account1", "payer"):
            ledger.register_wallet(account)
        ledger.execute(build_transaction(ledger, [
            Move(eth("100"), "ETH", SYSTEM_WALLET, "owner", "faucet_owner"),
            Move(eth("100"), "ETH", SYSTEM_WALLET, "account1", "faucet_account1"),
            Move(eth("100"), "ETH", SYSTEM_WALLET, "payer", "faucet_payer"),
        ]))

        token.mint("owner", eth("30"))
        token.mint("account1", eth("10"))
        token.approve("owner", "account1", eth("5"))
        token.transfer_from("account1", "owner", "account1", eth("5"))
        token.record_dividend("payer", eth("7"))
        token.withdraw("owner", "owner")

        replayed = ledger.replay()
        diff = compare_ledger_states(ledger, replayed)
        assert diff["equal"], diff
        assert replayed.get_holders("TEST").snapshot() == ledger.get_holders("TEST").snapshot()


class TestMultipleTokens:

    def test_tokens_share_base_asset_but_not_state(self, ledger, token):
        other = create_dividend_token(ledger, symbol="ALT", name="Alt token")

        token.mint("owner", 10)
        other.mint("account1", 10)
        token.record_dividend("account5", 100)

        assert token.get_withdrawable("owner") == 100
        assert other.get_withdrawable("account1") == 0
        assert token.escrow_balance() == 110
        assert other.escrow_balance() == 10
        assert other.holders() == ["account1"]

    def test_decimals_mismatch_rejected(self):
        ledger = Ledger("x", verbose=False)
        ledger.register_unit(base_asset("USDC", "USD Coin", decimals=6))
        with pytest.raises(ValueError, match="decimals"):
            create_dividend_token(ledger, base_symbol="USDC")
