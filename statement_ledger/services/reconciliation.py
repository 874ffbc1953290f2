"""Balance reconciliation: replay transactions from the opening balance and compare with the statement."""

import math
from collections.abc import Sequence

from statement_ledger.models import LedgerTotals, Transaction

# Absolute tolerance (1 VND) absorbing rounding in extracted amounts
BALANCE_TOLERANCE = 1.0


def format_currency(value: float) -> str:
    """Format an amount in vi-VN style: "." groups thousands, "," marks decimals (max 3 digits)."""
    if not math.isfinite(value):
        return "N/A"
    rounded = round(value, 3)
    sign = "-" if rounded < 0 else ""
    integer, _, fraction = f"{abs(rounded):.3f}".partition(".")
    grouped = f"{int(integer):,}".replace(",", ".")
    fraction = fraction.rstrip("0")
    return f"{sign}{grouped},{fraction}" if fraction else f"{sign}{grouped}"


def net_change(transaction: Transaction) -> float:
    return transaction.debit - transaction.credit - transaction.fee - transaction.vat


def running_balances(opening_balance: float, transactions: Sequence[Transaction]) -> list[float]:
    """Balance after each transaction, folding left from the opening balance."""
    balances = []
    balance = opening_balance
    for transaction in transactions:
        balance = balance + net_change(transaction)
        balances.append(balance)
    return balances


def compute_totals(opening_balance: float, transactions: Sequence[Transaction]) -> LedgerTotals:
    total_debit = sum(t.debit for t in transactions)
    total_credit = sum(t.credit for t in transactions)
    total_fee = sum(t.fee for t in transactions)
    total_vat = sum(t.vat for t in transactions)
    return LedgerTotals(
        total_debit=total_debit,
        total_credit=total_credit,
        total_fee=total_fee,
        total_vat=total_vat,
        calculated_ending_balance=opening_balance + total_debit - total_credit - total_fee - total_vat,
    )


def check_balance(
    opening_balance: float, transactions: Sequence[Transaction], declared_ending_balance: float | None
) -> str | None:
    """
    Compare the computed ending balance with the one printed on the statement.

    A missing or zero declared balance is not checked. Returns a warning
    message on mismatch, otherwise None.
    """
    if not declared_ending_balance:
        return None

    computed = compute_totals(opening_balance, transactions).calculated_ending_balance
    difference = computed - declared_ending_balance
    if abs(difference) <= BALANCE_TOLERANCE:
        return None

    return (
        f"Số dư cuối kỳ tính toán ({format_currency(computed)}) không khớp với số dư trên sao kê "
        f"({format_currency(declared_ending_balance)}). Chênh lệch: {format_currency(difference)}. "
        "Vui lòng rà soát lại các giao dịch."
    )
