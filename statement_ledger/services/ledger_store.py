"""Ledger state store with a linear undo history.

Every mutation pushes the current ledger onto the history and then installs a
new ledger value built from copies, so snapshots held in the history are never
modified afterwards.
"""

import logging
from collections.abc import Callable
from datetime import date

from statement_ledger.models import Ledger, LedgerField, Transaction, TransactionDraft
from statement_ledger.parsers.validation import coerce_amount

logger = logging.getLogger(__name__)

NEW_TRANSACTION_DESCRIPTION = "Giao dịch mới"


class LedgerError(Exception):
    """Base class for ledger mutation failures."""

    pass


class LedgerNotLoadedError(LedgerError):
    """Raised when an operation needs a ledger but none has been extracted yet."""

    pass


class LedgerIndexError(LedgerError, IndexError):
    """Raised when a transaction index is outside the current ledger."""

    pass


def format_display_date(value: date) -> str:
    """Format a date the way statements print it (DD/MM/YYYY)."""
    return f"{value.day:02d}/{value.month:02d}/{value.year}"


class LedgerStore:
    """Holds the current ledger and the snapshots needed to undo changes."""

    def __init__(self, today: Callable[[], date] = date.today):
        self._today = today
        self._current: Ledger | None = None
        self._history: list[Ledger] = []

    def current(self) -> Ledger | None:
        return self._current

    def require_current(self) -> Ledger:
        if self._current is None:
            raise LedgerNotLoadedError("No ledger has been extracted yet")
        return self._current

    @property
    def history(self) -> tuple[Ledger, ...]:
        return tuple(self._history)

    def replace(self, ledger: Ledger) -> None:
        """Install a freshly extracted ledger; it becomes the undo floor."""
        self._current = ledger
        self._history = [ledger]
        logger.info(f"Ledger replaced ({len(ledger.transactions)} transactions)")

    def clear(self) -> None:
        self._current = None
        self._history = []

    def _commit(self, ledger: Ledger) -> None:
        self._history.append(self.require_current())
        self._current = ledger

    def update_field(self, index: int, field: LedgerField | str, value: float) -> Ledger:
        """
        Set one numeric cell of a transaction.

        Raises:
            LedgerNotLoadedError: If no ledger exists
            LedgerIndexError: If index is outside the transaction list
            ValueError: If field is not an editable column or value is not finite
        """
        ledger = self.require_current()
        field = LedgerField(field)
        value = coerce_amount(float(value))

        if not 0 <= index < len(ledger.transactions):
            raise LedgerIndexError(f"Transaction index {index} out of range (0-{len(ledger.transactions) - 1})")

        transactions = list(ledger.transactions)
        transactions[index] = transactions[index].model_copy(update={field.value: value})
        self._commit(ledger.model_copy(update={"transactions": transactions}))

        logger.info(f"Updated transaction {index} {field.value} -> {value}")
        return self._current

    def add_transaction(self, draft: TransactionDraft | Transaction) -> Ledger:
        """
        Append a transaction at the end of the ledger, filling missing fields.

        Raises:
            LedgerNotLoadedError: If no ledger exists
        """
        ledger = self.require_current()
        if isinstance(draft, Transaction):
            draft = TransactionDraft(**draft.model_dump())

        transaction = Transaction(
            transaction_code=draft.transaction_code or "",
            date=draft.date or format_display_date(self._today()),
            description=draft.description or NEW_TRANSACTION_DESCRIPTION,
            debit=draft.debit or 0.0,
            credit=draft.credit or 0.0,
            fee=draft.fee or 0.0,
            vat=draft.vat or 0.0,
        )
        self._commit(ledger.model_copy(update={"transactions": [*ledger.transactions, transaction]}))

        logger.info(f"Added transaction '{transaction.description}' on {transaction.date}")
        return self._current

    def undo(self) -> Ledger | None:
        """Restore the most recent snapshot; the extraction result itself is never undone."""
        if len(self._history) <= 1:
            logger.debug("Nothing to undo")
            return self._current

        self._current = self._history.pop()
        logger.info(f"Undo applied, {len(self._history)} snapshot(s) left")
        return self._current
