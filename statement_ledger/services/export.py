"""Render the ledger as CSV, a tab-separated clipboard payload, or a standalone HTML page."""

import csv
import io
from html import escape
from typing import Any

from statement_ledger.models import Ledger
from statement_ledger.services.reconciliation import compute_totals, format_currency, running_balances

EXPORT_HEADERS = [
    "Tên tài khoản",
    "Số tài khoản",
    "Tên ngân hàng",
    "Chi nhánh",
    "Mã GD",
    "Ngày giá trị",
    "Nội dung thanh toán",
    "Phát Sinh Nợ",
    "Phát Sinh Có",
    "Phí",
    "Thuế VAT",
    "Số dư",
]

HTML_HEADERS = ["Tên TK", "Số TK", "Ngân hàng", "Chi nhánh", "Mã GD", "Ngày", "Nội dung", "PS Nợ", "PS Có", "Phí", "Thuế VAT", "Số dư"]

OPENING_LABEL = "Số dư đầu kỳ"
TOTALS_LABEL = "Cộng phát sinh"
CSV_FILENAME = "so_ke_ke_toan.csv"

HTML_STYLE = """
  body { font-family: -apple-system, "Segoe UI", Roboto, Helvetica, Arial, sans-serif; margin: 2em; color: #333; }
  h1, h3 { color: #1a202c; }
  table { width: 100%; border-collapse: collapse; font-size: 0.9em; }
  th, td { border: 1px solid #ddd; padding: 10px; text-align: left; }
  th { background-color: #f2f2f2; }
  tbody tr:nth-child(even) { background-color: #f9f9f9; }
  td.num { text-align: right; font-family: monospace; }
  td.debit { color: green; }
  td.credit { color: red; }
  tr.opening, tfoot tr { font-weight: bold; }
  tfoot tr { background-color: #f8fafc; border-top: 2px solid #e2e8f0; }
"""


def _cell(value: Any) -> str:
    """Plain text for a table cell; whole numbers lose their trailing .0."""
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    return str(value)


def build_table(ledger: Ledger, opening_balance: float) -> tuple[list[str], list[list[Any]]]:
    """
    Build export rows: opening balance row, one row per transaction with its
    running balance, and a totals row.
    """
    info = ledger.account_info
    account_cells = [info.account_name, info.account_number, info.bank_name, info.branch]
    balances = running_balances(opening_balance, ledger.transactions)
    totals = compute_totals(opening_balance, ledger.transactions)

    rows: list[list[Any]] = [[*account_cells, "", "", OPENING_LABEL, "", "", "", "", opening_balance]]
    for txn, balance in zip(ledger.transactions, balances):
        rows.append(
            [
                *account_cells,
                txn.transaction_code,
                txn.date,
                txn.description,
                txn.debit,
                txn.credit,
                txn.fee,
                txn.vat,
                balance,
            ]
        )
    rows.append(
        [
            "", "", "", "", "", "",
            TOTALS_LABEL,
            totals.total_debit,
            totals.total_credit,
            totals.total_fee,
            totals.total_vat,
            totals.calculated_ending_balance,
        ]
    )
    return EXPORT_HEADERS, rows


def to_csv(ledger: Ledger, opening_balance: float) -> str:
    """CSV with every cell quoted."""
    headers, rows = build_table(ledger, opening_balance)
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_cell(value) for value in row])
    return buffer.getvalue()


def to_tsv(ledger: Ledger, opening_balance: float) -> str:
    """Tab-separated payload for pasting into a spreadsheet."""
    headers, rows = build_table(ledger, opening_balance)
    lines = ["\t".join(headers)]
    lines.extend("\t".join(_cell(value) for value in row) for row in rows)
    return "\n".join(lines)


def _amount_or_blank(value: float) -> str:
    return format_currency(value) if value > 0 else ""


def to_html(ledger: Ledger, opening_balance: float) -> str:
    """Standalone HTML document with an inline-styled ledger table."""
    info = ledger.account_info
    account = [escape(v or "N/A") for v in (info.account_name, info.account_number, info.bank_name, info.branch)]
    account_tds = "".join(f"<td>{v}</td>" for v in account)
    balances = running_balances(opening_balance, ledger.transactions)
    totals = compute_totals(opening_balance, ledger.transactions)

    body_rows = [
        f'<tr class="opening">{account_tds}<td colspan="7" style="text-align: center;">{OPENING_LABEL}</td>'
        f'<td class="num">{format_currency(opening_balance)}</td></tr>'
    ]
    for txn, balance in zip(ledger.transactions, balances):
        body_rows.append(
            "<tr>"
            f"{account_tds}"
            f"<td>{escape(txn.transaction_code)}</td>"
            f"<td>{escape(txn.date)}</td>"
            f"<td>{escape(txn.description)}</td>"
            f'<td class="num debit">{_amount_or_blank(txn.debit)}</td>'
            f'<td class="num credit">{_amount_or_blank(txn.credit)}</td>'
            f'<td class="num">{_amount_or_blank(txn.fee)}</td>'
            f'<td class="num">{_amount_or_blank(txn.vat)}</td>'
            f'<td class="num">{format_currency(balance)}</td>'
            "</tr>"
        )

    header_cells = "".join(f"<th>{h}</th>" for h in HTML_HEADERS)
    newline = "\n        "
    return f"""<!DOCTYPE html>
<html lang="vi">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Sổ Kế Toán</title>
  <style>{HTML_STYLE}</style>
</head>
<body>
  <h1>Bảng Kê Kế Toán</h1>
  <h3>Thông tin tài khoản</h3>
  <p><strong>Tên tài khoản:</strong> {account[0]}</p>
  <p><strong>Số tài khoản:</strong> {account[1]}</p>
  <p><strong>Ngân hàng:</strong> {account[2]}</p>
  <p><strong>Chi nhánh:</strong> {account[3]}</p>
  <table>
    <thead>
      <tr>{header_cells}</tr>
    </thead>
    <tbody>
        {newline.join(body_rows)}
    </tbody>
    <tfoot>
      <tr>
        <td colspan="7" style="text-align: center;">{TOTALS_LABEL}</td>
        <td class="num debit">{format_currency(totals.total_debit)}</td>
        <td class="num credit">{format_currency(totals.total_credit)}</td>
        <td class="num">{format_currency(totals.total_fee)}</td>
        <td class="num">{format_currency(totals.total_vat)}</td>
        <td class="num">{format_currency(totals.calculated_ending_balance)}</td>
      </tr>
    </tfoot>
  </table>
</body>
</html>
"""
