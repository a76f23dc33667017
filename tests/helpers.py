"""
helpers.py - Shared assertions and conversions for token tests
"""

from typing import Dict, List

from dividend_ledger import DividendToken, Ledger, parse_units


def eth(amount) -> int:
    """Whole ETH (str, int or Decimal) to base units."""
    return parse_units(amount, 18)


def holder_set(token: DividendToken) -> List[str]:
    """Holders enumerated through holder_at(), sorted (order is not meaningful)."""
    return sorted(token.holder_at(i) for i in range(1, token.holder_count() + 1))


def snapshot(token: DividendToken) -> Dict:
    """Everything an operation could change, for before/after comparison (zero balances omitted)."""
    ledger = token.ledger
    wallets = sorted(ledger.list_wallets())
    return {
        'balances': {w: {u: q for u, q in ledger.balances[w].items() if q} for w in wallets},
        'state': ledger.get_unit_state(token.symbol),
        'holders': sorted(token.holders()),
        'log_length': len(ledger.transaction_log),
        'events': len(token.events),
    }


def compare_ledger_states(ledger1: Ledger, ledger2: Ledger) -> dict:
    """Compare balances and unit states of two ledgers and return differences."""
    balance_diffs = []
    state_diffs = []

    all_wallets = ledger1.registered_wallets | ledger2.registered_wallets
    all_units = set(ledger1.units.keys()) | set(ledger2.units.keys())

    for wallet in all_wallets:
        for unit in all_units:
            bal1 = ledger1.balances.get(wallet, {}).get(unit, 0)
            bal2 = ledger2.balances.get(wallet, {}).get(unit, 0)
            if bal1 != bal2:
                balance_diffs.append({
                    "wallet": wallet,
                    "unit": unit,
                    "ledger1": bal1,
                    "ledger2": bal2,
                })

    for unit_sym in all_units:
        if unit_sym in ledger1.units and unit_sym in ledger2.units:
            state1 = ledger1.get_unit_state(unit_sym)
            state2 = ledger2.get_unit_state(unit_sym)
            if state1 != state2:
                state_diffs.append({"unit": unit_sym, "ledger1": state1, "ledger2": state2})

    return {
        "equal": len(balance_diffs) == 0 and len(state_diffs) == 0,
        "balance_diffs": balance_diffs,
        "state_diffs": state_diffs,
    }
