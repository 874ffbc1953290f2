"""FastAPI application for Statement Ledger."""

import base64
import logging
from typing import Literal, NoReturn

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, PlainTextResponse, Response

from statement_ledger.config import settings
from statement_ledger.db.sqlite import state_store
from statement_ledger.models import (
    CellUpdateRequest,
    ChatResponse,
    ChatTranscript,
    ImagePart,
    LedgerField,
    LedgerView,
    OpeningBalanceUpdate,
    ProgressResponse,
    SettingsResponse,
    SettingsUpdate,
    StatementContent,
    TransactionDraft,
    UploadResponse,
    VoiceCellResponse,
)
from statement_ledger.parsers.extract import DocumentExtractionError
from statement_ledger.parsers.llm_client import ExtractionServiceError
from statement_ledger.parsers.validation import ValidationError
from statement_ledger.services.confirmation import AttachmentNotAllowedError, ChatBusyError, GateState
from statement_ledger.services.export import CSV_FILENAME
from statement_ledger.services.ledger_store import LedgerIndexError, LedgerNotLoadedError
from statement_ledger.services.voice import SpeechInputError
from statement_ledger.services.workspace import StatementWorkspace, UploadedDocument, WorkspaceBusyError

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Statement Ledger",
    description="Convert bank statements into an accounting ledger with an AI assistant",
    version="0.1.0",
)

# CORS for the browser frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Single-user workspace
workspace = StatementWorkspace(state_store=state_store)


def _raise_http(e: Exception) -> NoReturn:
    """Translate a domain error into an HTTP error."""
    if isinstance(e, ExtractionServiceError):
        raise HTTPException(status_code=502, detail=str(e))
    if isinstance(e, SpeechInputError):
        raise HTTPException(status_code=501 if e.code == "unsupported" else 422, detail=str(e))
    if isinstance(e, (LedgerNotLoadedError, LedgerIndexError)):
        raise HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (WorkspaceBusyError, ChatBusyError, AttachmentNotAllowedError)):
        raise HTTPException(status_code=409, detail=str(e))
    if isinstance(e, DocumentExtractionError):
        raise HTTPException(status_code=400, detail=f"Lỗi đọc file: {e}")
    if isinstance(e, (ValidationError, ValueError)):
        raise HTTPException(status_code=400, detail=str(e))
    raise HTTPException(status_code=500, detail=f"Unexpected error: {e}")


@app.on_event("startup")
async def startup():
    """Initialize on startup."""
    logging.basicConfig(level=settings.log_level)
    settings.ensure_directories()
    settings.log_config()


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "ledger_loaded": workspace.store.current() is not None}


# ==================== STATEMENT ====================


@app.post("/upload", response_model=UploadResponse)
async def upload_files(files: list[UploadFile] = File(...)):
    """Upload one or more statements (PDF, image, DOCX, XLSX, CSV or text)."""
    documents = []
    for file in files:
        if not file.filename:
            raise HTTPException(status_code=400, detail="No filename provided")
        documents.append(UploadedDocument(file.filename, await file.read(), file.content_type))

    try:
        content = await workspace.load_files(documents)
    except Exception as e:
        _raise_http(e)

    return UploadResponse(
        file_name=workspace.file_name,
        files_processed=len(documents),
        statement_content=content,
        message=f"Đã trích xuất {len(content)} ký tự từ {len(documents)} tệp",
    )


@app.get("/statement", response_model=StatementContent)
async def get_statement():
    """Raw statement text, persisted across restarts."""
    return StatementContent(statement_content=workspace.statement_content, file_name=workspace.file_name)


@app.put("/statement", response_model=StatementContent)
async def put_statement(body: StatementContent):
    """Replace the raw statement text (pasted or corrected by the user)."""
    workspace.set_statement_content(body.statement_content)
    return StatementContent(statement_content=workspace.statement_content, file_name=workspace.file_name)


@app.post("/process", response_model=LedgerView)
async def process():
    """Run AI structuring on the current statement text."""
    try:
        return await workspace.process()
    except Exception as e:
        _raise_http(e)


# ==================== LEDGER ====================


@app.get("/ledger", response_model=LedgerView)
async def get_ledger():
    return workspace.view()


@app.patch("/ledger/transactions/{index}", response_model=LedgerView)
async def edit_transaction(index: int, body: CellUpdateRequest):
    """Directly edit a numeric cell."""
    try:
        return workspace.edit_cell(index, body.field, body.value)
    except Exception as e:
        _raise_http(e)


@app.post("/ledger/transactions/{index}/{field}/voice", response_model=VoiceCellResponse)
async def voice_edit_transaction(
    index: int,
    field: LedgerField,
    transcript: str | None = Form(None),
    audio: UploadFile | None = File(None),
):
    """Dictate an amount into a cell, either as a transcript or as audio for the host recognizer."""
    try:
        audio_bytes = await audio.read() if audio is not None else None
        applied, heard, value = await workspace.voice_edit(index, field, transcript=transcript, audio=audio_bytes)
    except Exception as e:
        _raise_http(e)

    return VoiceCellResponse(applied=applied, transcript=heard, value=value, view=workspace.view())


@app.post("/ledger/transactions", response_model=LedgerView)
async def add_transaction(draft: TransactionDraft):
    """Append a transaction; missing fields are defaulted."""
    try:
        return workspace.add_transaction(draft)
    except Exception as e:
        _raise_http(e)


@app.post("/ledger/undo", response_model=LedgerView)
async def undo():
    return workspace.undo()


@app.put("/ledger/opening-balance", response_model=LedgerView)
async def set_opening_balance(body: OpeningBalanceUpdate):
    try:
        return workspace.set_opening_balance(body.value)
    except Exception as e:
        _raise_http(e)


# ==================== CHAT ====================


def _transcript() -> ChatTranscript:
    gate = workspace.gate
    return ChatTranscript(
        messages=gate.messages,
        awaiting_confirmation=gate.state == GateState.AWAITING_CONFIRMATION,
        pending_action=gate.pending_action,
    )


@app.get("/chat", response_model=ChatTranscript)
async def get_chat():
    return _transcript()


@app.post("/chat", response_model=ChatResponse)
async def chat(message: str = Form(""), image: UploadFile | None = File(None)):
    """Send a chat message, optionally with a pasted image."""
    image_part = None
    if image is not None:
        if not (image.content_type or "").startswith("image/"):
            raise HTTPException(status_code=400, detail="Only images can be attached")
        image_part = ImagePart(
            mime_type=image.content_type, data=base64.b64encode(await image.read()).decode("ascii")
        )

    try:
        reply = await workspace.chat(message, image=image_part)
    except Exception as e:
        _raise_http(e)

    return ChatResponse(
        reply=reply,
        awaiting_confirmation=workspace.gate.state == GateState.AWAITING_CONFIRMATION,
        view=workspace.view(),
    )


# ==================== EXPORT ====================


@app.get("/export/{fmt}")
async def export_ledger(fmt: Literal["csv", "html", "tsv"]):
    """Export the ledger as CSV download, HTML page or clipboard TSV."""
    try:
        content = workspace.export(fmt)
    except Exception as e:
        _raise_http(e)

    if fmt == "csv":
        return Response(
            content=content,
            media_type="text/csv; charset=utf-8",
            headers={"Content-Disposition": f'attachment; filename="{CSV_FILENAME}"'},
        )
    if fmt == "html":
        return HTMLResponse(content=content)
    return PlainTextResponse(content=content)


# ==================== STATUS & SETTINGS ====================


@app.get("/progress", response_model=ProgressResponse)
async def get_progress():
    snapshot = workspace.progress.snapshot()
    return ProgressResponse(
        status=snapshot["status"],
        stage=snapshot["stage"],
        progress=round(snapshot["progress"], 1),
        message=snapshot["message"],
    )


@app.get("/settings", response_model=SettingsResponse)
async def get_settings():
    """Get current settings."""
    return SettingsResponse(
        llm_provider=settings.llm_provider,
        ollama_host=settings.ollama_host,
        has_gemini_key=bool(settings.gemini_api_key),
        has_openai_key=bool(settings.openai_api_key),
    )


@app.put("/settings")
async def update_settings(update: SettingsUpdate):
    """Update settings (runtime only, doesn't persist to .env)."""
    if update.llm_provider:
        if update.llm_provider not in ("gemini", "openai", "ollama"):
            raise HTTPException(status_code=400, detail=f"Unknown LLM provider: {update.llm_provider}")
        settings.llm_provider = update.llm_provider  # type: ignore
    if update.gemini_api_key:
        settings.gemini_api_key = update.gemini_api_key
    if update.openai_api_key:
        settings.openai_api_key = update.openai_api_key
    if update.ollama_host:
        settings.ollama_host = update.ollama_host
    return {"status": "updated"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "statement_ledger.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.dev_mode,
    )
