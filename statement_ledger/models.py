"""Data models for Statement Ledger."""

import math
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that speaks camelCase on the wire and snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, allow_inf_nan=False)


class LedgerField(str, Enum):
    """Numeric transaction columns that can be edited."""

    DEBIT = "debit"
    CREDIT = "credit"
    FEE = "fee"
    VAT = "vat"


class ChatRole(str, Enum):
    USER = "user"
    MODEL = "model"


class ChatAction(str, Enum):
    """Intent classified by the assistant."""

    UPDATE = "update"
    ADD = "add"
    UNDO = "undo"
    QUERY = "query"


def _zero_if_missing(value: Any) -> Any:
    if value is None or value == "":
        return 0.0
    if isinstance(value, float) and math.isnan(value):
        return 0.0
    return value


class AccountInfo(CamelModel):
    """Account holder details printed on the statement."""

    account_name: str = ""
    account_number: str = ""
    bank_name: str = ""
    branch: str = ""

    @field_validator("account_name", "account_number", "bank_name", "branch", mode="before")
    @classmethod
    def _empty_if_missing(cls, value: Any) -> Any:
        return "" if value is None else value


class Transaction(CamelModel):
    """A single ledger row.

    ``debit`` is money into the account (Phát Sinh Nợ on the ledger) and
    ``credit`` is the principal leaving it (Phát Sinh Có), excluding fee and VAT.
    """

    transaction_code: str = ""
    date: str
    description: str
    debit: float = 0.0
    credit: float = 0.0
    fee: float = 0.0
    vat: float = 0.0

    @field_validator("debit", "credit", "fee", "vat", mode="before")
    @classmethod
    def _amount_default(cls, value: Any) -> Any:
        return _zero_if_missing(value)

    @field_validator("transaction_code", mode="before")
    @classmethod
    def _code_default(cls, value: Any) -> Any:
        return "" if value is None else value


class TransactionDraft(CamelModel):
    """A transaction proposal where every field may be missing."""

    transaction_code: str | None = None
    date: str | None = None
    description: str | None = None
    debit: float | None = None
    credit: float | None = None
    fee: float | None = None
    vat: float | None = None


class Ledger(CamelModel):
    """Structured result of a processed statement."""

    account_info: AccountInfo = Field(default_factory=AccountInfo)
    transactions: list[Transaction] = Field(default_factory=list)
    opening_balance: float = 0.0
    ending_balance: float = 0.0

    @field_validator("opening_balance", "ending_balance", mode="before")
    @classmethod
    def _balance_default(cls, value: Any) -> Any:
        return _zero_if_missing(value)


class TransactionUpdate(CamelModel):
    """Proposed change of one numeric cell."""

    index: int
    field: LedgerField
    new_value: float


class AssistantReply(CamelModel):
    """Structured answer of the conversational endpoint."""

    response_text: str
    action: ChatAction = ChatAction.QUERY
    update: TransactionUpdate | None = None
    add: TransactionDraft | None = None
    confirmation_required: bool | None = None

    def proposes_mutation(self) -> bool:
        """True when the reply carries an action that must be confirmed."""
        if not self.confirmation_required:
            return False
        return (
            (self.action == ChatAction.UPDATE and self.update is not None)
            or (self.action == ChatAction.ADD and self.add is not None)
            or self.action == ChatAction.UNDO
        )


class PendingAction(CamelModel):
    """A mutation awaiting the user's yes/no."""

    kind: ChatAction
    update: TransactionUpdate | None = None
    add: TransactionDraft | None = None

    @classmethod
    def from_reply(cls, reply: AssistantReply) -> "PendingAction":
        return cls(kind=reply.action, update=reply.update, add=reply.add)


class ChatMessage(CamelModel):
    """One turn of the assistant conversation."""

    role: ChatRole
    content: str
    image: str | None = None  # data URL of a pasted image


class ImagePart(CamelModel):
    """Base64-encoded image sent to the model."""

    mime_type: str
    data: str

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


class ExtractedContent(CamelModel):
    """Output of the document extractor for one file."""

    text: str | None = None
    images: list[ImagePart] = Field(default_factory=list)


# ==================== API MODELS ====================


class LedgerTotals(CamelModel):
    total_debit: float = 0.0
    total_credit: float = 0.0
    total_fee: float = 0.0
    total_vat: float = 0.0
    calculated_ending_balance: float = 0.0


class LedgerView(CamelModel):
    """Ledger plus everything derived from it for display."""

    ledger: Ledger | None = None
    opening_balance: float = 0.0
    running_balances: list[float] = Field(default_factory=list)
    totals: LedgerTotals = Field(default_factory=LedgerTotals)
    balance_mismatch_warning: str | None = None
    history_depth: int = 0


class UploadResponse(CamelModel):
    """Response after file upload and extraction."""

    file_name: str
    files_processed: int
    statement_content: str
    message: str


class StatementContent(CamelModel):
    statement_content: str
    file_name: str = ""


class CellUpdateRequest(CamelModel):
    """Direct edit of a numeric cell; strings are parsed as vi-VN amounts."""

    field: LedgerField
    value: float | str | None = None


class VoiceCellResponse(CamelModel):
    applied: bool
    transcript: str
    value: float | None = None
    view: LedgerView


class OpeningBalanceUpdate(CamelModel):
    value: float | str


class ChatResponse(CamelModel):
    reply: ChatMessage
    awaiting_confirmation: bool
    view: LedgerView


class ChatTranscript(CamelModel):
    messages: list[ChatMessage]
    awaiting_confirmation: bool
    pending_action: PendingAction | None = None


class ProgressResponse(CamelModel):
    status: str
    stage: str | None = None
    progress: float = 0.0
    message: str = ""


class SettingsUpdate(BaseModel):
    """Settings update request."""

    llm_provider: str | None = None
    gemini_api_key: str | None = None
    openai_api_key: str | None = None
    ollama_host: str | None = None


class SettingsResponse(BaseModel):
    """Current settings response."""

    llm_provider: str
    ollama_host: str
    has_gemini_key: bool
    has_openai_key: bool
