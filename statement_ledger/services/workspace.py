"""Workspace orchestration: upload -> extraction -> structuring -> ledger editing and chat."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Literal

from statement_ledger.db.sqlite import SessionState, SessionStateStore
from statement_ledger.models import (
    ChatMessage,
    ExtractedContent,
    ImagePart,
    Ledger,
    LedgerField,
    LedgerView,
    TransactionDraft,
)
from statement_ledger.parsers.assistant import chat_with_assistant
from statement_ledger.parsers.extract import extract_from_file
from statement_ledger.parsers.ocr import extract_text_from_images
from statement_ledger.parsers.statement import process_statement
from statement_ledger.parsers.validation import coerce_amount, parse_amount_input
from statement_ledger.services import export
from statement_ledger.services.confirmation import AssistantFn, ConfirmationGate
from statement_ledger.services.ledger_store import LedgerStore
from statement_ledger.services.progress import ProgressTracker
from statement_ledger.services.reconciliation import check_balance, compute_totals, running_balances
from statement_ledger.services.voice import (
    SpeechInputError,
    SpeechRecognizer,
    UnsupportedSpeechRecognizer,
    parse_spoken_amount,
)

logger = logging.getLogger(__name__)

STATEMENT_SEPARATOR = "\n\n--- TÁCH BIỆT SAO KÊ ---\n\n"
MAX_LISTED_FILE_NAMES = 3
NO_CONTENT_MESSAGE = "Không có nội dung sao kê để xử lý. Vui lòng upload file hoặc dán nội dung."

LoadingState = Literal["idle", "extracting", "processing"]
ExportFormat = Literal["csv", "html", "tsv"]

Extractor = Callable[[str, bytes, str | None], Awaitable[ExtractedContent]]
OcrFn = Callable[[list[ImagePart]], Awaitable[str]]
StructurerFn = Callable[[str], Awaitable[Ledger]]


class WorkspaceBusyError(Exception):
    """Raised when a long-running operation is requested while another is in progress."""

    pass


@dataclass
class UploadedDocument:
    filename: str
    contents: bytes
    media_type: str | None = None


def display_file_name(filenames: list[str]) -> str:
    """Show up to three names, otherwise just a count."""
    if len(filenames) <= MAX_LISTED_FILE_NAMES:
        return ", ".join(filenames)
    return f"{len(filenames)} tệp đã chọn"


def combine_extracted(results: list[ExtractedContent]) -> tuple[str, list[ImagePart]]:
    """Join texts in input order and collect every image for a single OCR pass."""
    texts = [r.text for r in results if r.text]
    images = [image for r in results for image in r.images]
    return STATEMENT_SEPARATOR.join(texts), images


class StatementWorkspace:
    """The single-user workspace behind the HTTP API."""

    def __init__(
        self,
        state_store: SessionStateStore | None = None,
        store: LedgerStore | None = None,
        progress: ProgressTracker | None = None,
        extractor: Extractor = extract_from_file,
        ocr: OcrFn = extract_text_from_images,
        structurer: StructurerFn = process_statement,
        assistant: AssistantFn = chat_with_assistant,
        recognizer: SpeechRecognizer | None = None,
    ):
        self._state_store = state_store
        self.store = store or LedgerStore()
        self.progress = progress or ProgressTracker()
        self.gate = ConfirmationGate(self.store, assistant=assistant)
        self.recognizer = recognizer or UnsupportedSpeechRecognizer()
        self._extractor = extractor
        self._ocr = ocr
        self._structurer = structurer

        self.state = state_store.load() if state_store else SessionState()
        self.opening_balance = 0.0
        self.loading_state: LoadingState = "idle"

    # ==================== PERSISTED STATE ====================

    @property
    def statement_content(self) -> str:
        return self.state.statement_content

    @property
    def file_name(self) -> str:
        return self.state.file_name

    def _save_state(self) -> None:
        if self._state_store is None:
            return
        if not self.state.statement_content and not self.state.file_name:
            self._state_store.clear()
        else:
            self._state_store.save(self.state)

    def set_statement_content(self, text: str) -> None:
        """Replace the raw statement text (pasted or edited by the user)."""
        self.state.statement_content = text
        self._save_state()

    # ==================== LONG-RUNNING OPERATIONS ====================

    def _begin(self, loading_state: LoadingState, message: str) -> None:
        if self.loading_state != "idle":
            raise WorkspaceBusyError(f"Workspace is busy ({self.loading_state})")
        if self.gate.is_loading:
            raise WorkspaceBusyError("Workspace is busy (chat)")
        self.loading_state = loading_state
        self.progress.start(loading_state, message)

    async def load_files(self, files: list[UploadedDocument]) -> str:
        """
        Extract every uploaded file concurrently and combine the results.

        Texts are joined in upload order with a separator; all images go through
        one OCR call whose text is appended at the end.

        Raises:
            ValueError: If no files were given
            WorkspaceBusyError: If another operation is running
            DocumentExtractionError: If a file cannot be read
            ExtractionServiceError: If OCR fails
        """
        if not files:
            raise ValueError("No files provided")

        self._begin("extracting", "Đang trích xuất văn bản từ file...")
        try:
            results = await asyncio.gather(
                *(self._extractor(f.filename, f.contents, f.media_type) for f in files)
            )
            combined, images = combine_extracted(list(results))
            if images:
                combined += "\n\n" + await self._ocr(images)
        except Exception as e:
            logger.error(f"Upload failed: {e}")
            self.progress.fail(f"Lỗi đọc file: {e}")
            raise
        finally:
            self.loading_state = "idle"

        self.progress.finish()

        # A new statement invalidates the previous ledger and conversation
        self.store.clear()
        self.gate.reset()
        self.opening_balance = 0.0
        self.state = SessionState(
            statement_content=combined.strip(),
            file_name=display_file_name([f.filename for f in files]),
        )
        self._save_state()
        logger.info(f"Loaded {len(files)} file(s): {len(self.state.statement_content)} chars of statement text")
        return self.state.statement_content

    async def process(self) -> LedgerView:
        """
        Structure the current statement text into a ledger.

        Raises:
            ValueError: If there is no statement text
            WorkspaceBusyError: If another operation is running
            ExtractionServiceError: If the AI call fails; the previous ledger is kept
        """
        if not self.statement_content.strip():
            raise ValueError(NO_CONTENT_MESSAGE)

        self._begin("processing", "AI đang phân tích nghiệp vụ...")
        try:
            ledger = await self._structurer(self.statement_content)
        except Exception as e:
            logger.error(f"Processing failed: {e}")
            self.progress.fail(str(e))
            raise
        finally:
            self.loading_state = "idle"

        self.progress.finish()
        self.store.replace(ledger)
        self.opening_balance = ledger.opening_balance
        self.gate.reset()
        return self.view()

    # ==================== EDITING ====================

    def edit_cell(self, index: int, field: LedgerField | str, value: float | str | None) -> LedgerView:
        """Direct edit of a numeric cell. Unparseable input is written as 0."""
        amount = parse_amount_input(value) if isinstance(value, str) or value is None else coerce_amount(value)
        self.store.update_field(index, field, amount)
        return self.view()

    async def voice_edit(
        self,
        index: int,
        field: LedgerField | str,
        transcript: str | None = None,
        audio: bytes | None = None,
    ) -> tuple[bool, str, float | None]:
        """
        Apply a dictated amount to a cell.

        Returns:
            (applied, transcript, value); a transcript without a number is ignored

        Raises:
            SpeechInputError: If no transcript could be obtained
        """
        if transcript is None:
            if audio is None:
                raise SpeechInputError("no-speech")
            if not self.recognizer.available:
                raise SpeechInputError("unsupported")
            transcript = await self.recognizer.transcribe(audio)

        if not transcript.strip():
            raise SpeechInputError("no-speech")

        value = parse_spoken_amount(transcript)
        if value is None:
            return False, transcript, None

        self.store.update_field(index, field, value)
        return True, transcript, value

    def add_transaction(self, draft: TransactionDraft) -> LedgerView:
        self.store.add_transaction(draft)
        return self.view()

    def undo(self) -> LedgerView:
        self.store.undo()
        return self.view()

    def set_opening_balance(self, value: float | str) -> LedgerView:
        """The opening balance is user-editable and is not part of the undo history."""
        self.opening_balance = parse_amount_input(value)
        return self.view()

    # ==================== CHAT ====================

    async def chat(self, message: str, image: ImagePart | None = None) -> ChatMessage:
        """
        Raises:
            WorkspaceBusyError: If a statement is being extracted or processed
        """
        if self.loading_state != "idle":
            raise WorkspaceBusyError(f"Workspace is busy ({self.loading_state})")
        return await self.gate.handle_message(message, self.statement_content, image=image)

    # ==================== DERIVED VIEWS ====================

    def view(self) -> LedgerView:
        """Ledger with running balances, totals and the reconciliation warning."""
        ledger = self.store.current()
        if ledger is None:
            return LedgerView()

        opening = self.opening_balance
        return LedgerView(
            ledger=ledger,
            opening_balance=opening,
            running_balances=running_balances(opening, ledger.transactions),
            totals=compute_totals(opening, ledger.transactions),
            balance_mismatch_warning=check_balance(opening, ledger.transactions, ledger.ending_balance),
            history_depth=len(self.store.history),
        )

    def export(self, fmt: ExportFormat) -> str:
        ledger = self.store.require_current()
        if fmt == "csv":
            return export.to_csv(ledger, self.opening_balance)
        if fmt == "html":
            return export.to_html(ledger, self.opening_balance)
        if fmt == "tsv":
            return export.to_tsv(ledger, self.opening_balance)
        raise ValueError(f"Unsupported export format: {fmt}")
