"""Tests for balance reconciliation."""

from statement_ledger.models import Transaction
from statement_ledger.services.reconciliation import (
    check_balance,
    compute_totals,
    format_currency,
    net_change,
    running_balances,
)


def txn(debit: float = 0, credit: float = 0, fee: float = 0, vat: float = 0) -> Transaction:
    return Transaction(date="01/03/2024", description="Test", debit=debit, credit=credit, fee=fee, vat=vat)


class TestFormatCurrency:
    """Test vi-VN amount formatting."""

    def test_groups_thousands_with_dots(self):
        """Should group thousands with dots."""
        assert format_currency(1234567) == "1.234.567"

    def test_uses_comma_for_decimals(self):
        """Should use a comma as decimal mark and drop trailing zeros."""
        assert format_currency(1234.5) == "1.234,5"
        assert format_currency(0.125) == "0,125"

    def test_negative_values(self):
        """Should keep the minus sign in front of the grouped value."""
        assert format_currency(-100) == "-100"
        assert format_currency(-1500000) == "-1.500.000"

    def test_zero(self):
        assert format_currency(0) == "0"

    def test_non_finite(self):
        """Should not fail on values that cannot be grouped."""
        assert format_currency(float("inf")) == "N/A"
        assert format_currency(float("nan")) == "N/A"


class TestRunningBalances:
    """Test the running balance fold."""

    def test_net_change_subtracts_fee_and_vat(self):
        """Should count fee and VAT as money leaving the account."""
        assert net_change(txn(credit=818_000_000, fee=327_200, vat=32_720)) == -818_359_920

    def test_folds_from_opening_balance(self):
        """Should apply each transaction in order."""
        transactions = [txn(debit=500), txn(credit=200, fee=10), txn(debit=50, vat=5)]
        assert running_balances(1000, transactions) == [1500, 1290, 1335]

    def test_empty_ledger(self):
        assert running_balances(1000, []) == []

    def test_last_balance_matches_totals(self):
        """Should end on the same balance the totals compute."""
        transactions = [txn(debit=300), txn(credit=120, fee=3, vat=7)]
        totals = compute_totals(50, transactions)
        assert running_balances(50, transactions)[-1] == totals.calculated_ending_balance


class TestComputeTotals:
    def test_sums_each_column(self):
        """Should sum every numeric column separately."""
        totals = compute_totals(100, [txn(debit=500, fee=1), txn(credit=200, vat=2)])
        assert totals.total_debit == 500
        assert totals.total_credit == 200
        assert totals.total_fee == 1
        assert totals.total_vat == 2
        assert totals.calculated_ending_balance == 397


class TestCheckBalance:
    """Test the reconciliation warning."""

    def test_matching_balance_has_no_warning(self):
        """Should not warn when the computed and declared balances agree."""
        assert check_balance(1000, [txn(debit=500)], 1500) is None

    def test_mismatch_produces_warning(self):
        """Should report both balances and the difference."""
        warning = check_balance(1000, [txn(debit=500)], 1600)

        assert warning is not None
        assert "1.500" in warning
        assert "1.600" in warning
        assert "Chênh lệch: -100" in warning

    def test_within_tolerance(self):
        """Should absorb differences up to 1 VND."""
        assert check_balance(1000, [txn(debit=500)], 1501) is None
        assert check_balance(1000, [txn(debit=500)], 1499) is None
        assert check_balance(1000, [txn(debit=500)], 1501.5) is not None

    def test_zero_declared_balance_is_not_checked(self):
        """Should skip the check when the statement has no ending balance."""
        assert check_balance(1000, [txn(debit=500)], 0) is None
        assert check_balance(1000, [txn(debit=500)], None) is None
