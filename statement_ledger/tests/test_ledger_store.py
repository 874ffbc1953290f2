"""Tests for the ledger store and its undo history."""

from datetime import date

import pytest

from statement_ledger.models import AccountInfo, Ledger, LedgerField, Transaction, TransactionDraft
from statement_ledger.services.ledger_store import (
    NEW_TRANSACTION_DESCRIPTION,
    LedgerIndexError,
    LedgerNotLoadedError,
    LedgerStore,
    format_display_date,
)


def create_ledger(*amounts: float) -> Ledger:
    """Create a ledger with one incoming transaction per amount."""
    return Ledger(
        account_info=AccountInfo(account_name="CONG TY ABC", account_number="0123456789", bank_name="VCB"),
        transactions=[
            Transaction(transaction_code=f"FT{i}", date="01/03/2024", description=f"Txn {i}", debit=amount)
            for i, amount in enumerate(amounts)
        ],
        opening_balance=1000,
        ending_balance=1000 + sum(amounts),
    )


@pytest.fixture
def store():
    s = LedgerStore(today=lambda: date(2024, 7, 5))
    s.replace(create_ledger(500, 200))
    return s


class TestFormatDisplayDate:
    def test_pads_day_and_month(self):
        """Should format dates as DD/MM/YYYY."""
        assert format_display_date(date(2024, 7, 5)) == "05/07/2024"


class TestReplace:
    """Test installing a freshly extracted ledger."""

    def test_replace_resets_history(self, store):
        """Should keep only the new ledger in history."""
        store.update_field(0, LedgerField.DEBIT, 1)
        new_ledger = create_ledger(10)

        store.replace(new_ledger)

        assert store.current() is new_ledger
        assert store.history == (new_ledger,)

    def test_operations_require_ledger(self):
        """Should raise when nothing has been extracted yet."""
        empty = LedgerStore()
        with pytest.raises(LedgerNotLoadedError):
            empty.update_field(0, "debit", 1)
        with pytest.raises(LedgerNotLoadedError):
            empty.add_transaction(TransactionDraft())


class TestUpdateField:
    """Test editing a numeric cell."""

    def test_updates_only_target_cell(self, store):
        """Should change exactly one cell and leave the rest intact."""
        before = store.current()

        after = store.update_field(1, "credit", 75)

        assert after.transactions[1].credit == 75
        assert after.transactions[1].debit == 200
        assert after.transactions[0] == before.transactions[0]
        assert after.account_info == before.account_info

    def test_previous_snapshot_is_not_mutated(self, store):
        """Should build a new ledger instead of editing the old one."""
        before = store.current()

        store.update_field(0, LedgerField.DEBIT, 999)

        assert before.transactions[0].debit == 500
        assert store.history[-1] is before

    def test_rejects_out_of_range_index(self, store):
        """Should reject indices outside the transaction list."""
        with pytest.raises(LedgerIndexError):
            store.update_field(5, LedgerField.FEE, 1)
        with pytest.raises(IndexError):
            store.update_field(-1, LedgerField.FEE, 1)
        assert len(store.history) == 1

    def test_rejects_unknown_field(self, store):
        """Should only edit the numeric columns."""
        with pytest.raises(ValueError):
            store.update_field(0, "description", 1)

    def test_nan_is_written_as_zero(self, store):
        """Should store NaN as 0."""
        store.update_field(0, LedgerField.VAT, float("nan"))
        assert store.current().transactions[0].vat == 0


class TestAddTransaction:
    """Test appending transactions."""

    def test_fills_missing_fields(self, store):
        """Should default date to today, description to the placeholder and amounts to 0."""
        ledger = store.add_transaction(TransactionDraft(credit=50))

        added = ledger.transactions[-1]
        assert len(ledger.transactions) == 3
        assert added.date == "05/07/2024"
        assert added.description == NEW_TRANSACTION_DESCRIPTION
        assert added.transaction_code == ""
        assert added.credit == 50
        assert added.debit == 0 and added.fee == 0 and added.vat == 0

    def test_keeps_given_fields(self, store):
        """Should keep the fields provided by the draft."""
        draft = TransactionDraft(transaction_code="FT99", date="02/03/2024", description="Thu tiền", debit=300)
        added = store.add_transaction(draft).transactions[-1]
        assert (added.transaction_code, added.date, added.description, added.debit) == (
            "FT99",
            "02/03/2024",
            "Thu tiền",
            300,
        )

    def test_accepts_full_transaction(self, store):
        """Should accept a complete Transaction as well as a draft."""
        txn = Transaction(date="03/03/2024", description="Phí", fee=10)
        assert store.add_transaction(txn).transactions[-1].fee == 10


class TestUndo:
    """Test the undo history."""

    def test_undo_restores_previous_ledger(self, store):
        """Should restore the ledger as it was before the last change."""
        original = store.current()
        store.update_field(0, LedgerField.DEBIT, 1)
        store.add_transaction(TransactionDraft())

        store.undo()
        assert len(store.current().transactions) == 2
        assert store.current().transactions[0].debit == 1

        store.undo()
        assert store.current() == original

    def test_undo_never_removes_extracted_ledger(self, store):
        """Should be a no-op once only the extraction result is left."""
        original = store.current()

        store.undo()
        store.undo()

        assert store.current() is original
        assert len(store.history) == 1

    def test_undo_without_ledger(self):
        """Should do nothing when no ledger exists."""
        assert LedgerStore().undo() is None

    def test_clear_drops_everything(self, store):
        """Should forget the ledger and history."""
        store.clear()
        assert store.current() is None
        assert store.history == ()
