"""Tests for the HTTP API."""

from datetime import date
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from statement_ledger import main
from statement_ledger.db.sqlite import SessionStateStore
from statement_ledger.models import (
    AssistantReply,
    ChatAction,
    ExtractedContent,
    Ledger,
    LedgerField,
    Transaction,
    TransactionUpdate,
)
from statement_ledger.parsers.extract import DocumentExtractionError
from statement_ledger.services.confirmation import APPLIED_MESSAGE
from statement_ledger.services.ledger_store import LedgerStore
from statement_ledger.services.progress import ProgressTracker
from statement_ledger.services.workspace import StatementWorkspace


def create_ledger() -> Ledger:
    return Ledger(
        transactions=[
            Transaction(transaction_code="FT1", date="01/03/2024", description="Thu tiền", debit=500),
            Transaction(transaction_code="FT2", date="02/03/2024", description="Chi tiền", credit=100),
        ],
        opening_balance=1000,
        ending_balance=1400,
    )


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    ws = StatementWorkspace(
        state_store=SessionStateStore(db_path=tmp_path / "session.db"),
        store=LedgerStore(today=lambda: date(2024, 3, 9)),
        progress=ProgressTracker(tick_seconds=0.01, step_max=5, ceiling=95, reset_seconds=0.01),
        extractor=AsyncMock(side_effect=lambda name, data, media: ExtractedContent(text=data.decode("utf-8"))),
        ocr=AsyncMock(return_value=""),
        structurer=AsyncMock(return_value=create_ledger()),
        assistant=AsyncMock(return_value=AssistantReply(response_text="Dạ")),
    )
    monkeypatch.setattr(main, "workspace", ws)
    return ws


@pytest.fixture
def client(workspace):
    return TestClient(main.app)


@pytest.fixture
def processed(client):
    client.post("/upload", files=[("files", ("sao_ke.txt", "Số dư đầu kỳ 1.000".encode("utf-8"), "text/plain"))])
    response = client.post("/process")
    assert response.status_code == 200
    return client


class TestStatementEndpoints:
    """Test upload and statement text endpoints."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "ledger_loaded": False}

    def test_upload_multiple_files(self, client):
        """Should extract every file and report the combined text."""
        response = client.post(
            "/upload",
            files=[
                ("files", ("a.txt", b"A", "text/plain")),
                ("files", ("b.txt", b"B", "text/plain")),
            ],
        )

        assert response.status_code == 200
        data = response.json()
        assert data["fileName"] == "a.txt, b.txt"
        assert data["filesProcessed"] == 2
        assert data["statementContent"].startswith("A")

    def test_upload_failure(self, client, workspace):
        """Should return 400 when a file cannot be read."""
        workspace._extractor.side_effect = DocumentExtractionError("bad.pdf: broken")

        response = client.post("/upload", files=[("files", ("bad.pdf", b"x", "application/pdf"))])

        assert response.status_code == 400
        assert "bad.pdf" in response.json()["detail"]

    def test_put_and_get_statement(self, client):
        """Should accept pasted statement text."""
        response = client.put("/statement", json={"statementContent": "Dán nội dung"})
        assert response.status_code == 200

        assert client.get("/statement").json()["statementContent"] == "Dán nội dung"

    def test_process_without_content(self, client):
        response = client.post("/process")
        assert response.status_code == 400


class TestLedgerEndpoints:
    """Test ledger editing endpoints."""

    def test_process_returns_view(self, processed):
        data = processed.get("/ledger").json()
        assert data["openingBalance"] == 1000
        assert data["runningBalances"] == [1500, 1400]
        assert data["totals"]["calculatedEndingBalance"] == 1400
        assert data["balanceMismatchWarning"] is None

    def test_ledger_before_processing(self, client):
        assert client.get("/ledger").json()["ledger"] is None

    def test_edit_cell(self, processed):
        response = processed.patch("/ledger/transactions/1", json={"field": "credit", "value": "200"})

        assert response.status_code == 200
        data = response.json()
        assert data["ledger"]["transactions"][1]["credit"] == 200
        assert data["balanceMismatchWarning"] is not None

    def test_edit_out_of_range(self, processed):
        response = processed.patch("/ledger/transactions/9", json={"field": "debit", "value": 1})
        assert response.status_code == 404

    def test_edit_without_ledger(self, client):
        response = client.patch("/ledger/transactions/0", json={"field": "debit", "value": 1})
        assert response.status_code == 404

    def test_add_and_undo(self, processed):
        """Should append a defaulted row and undo it."""
        added = processed.post("/ledger/transactions", json={"description": "Phí SMS", "fee": 11000}).json()
        assert len(added["ledger"]["transactions"]) == 3
        assert added["ledger"]["transactions"][2]["date"] == "09/03/2024"

        undone = processed.post("/ledger/undo").json()
        assert len(undone["ledger"]["transactions"]) == 2

    def test_opening_balance(self, processed):
        response = processed.put("/ledger/opening-balance", json={"value": "2.000"})
        assert response.json()["runningBalances"] == [2500, 2400]

    def test_overflowing_opening_balance(self, processed):
        """Should reject the value and keep serving the ledger."""
        response = processed.put("/ledger/opening-balance", json={"value": "9" * 400})
        assert response.status_code == 400

        ledger = processed.get("/ledger")
        assert ledger.status_code == 200
        assert ledger.json()["openingBalance"] == 1000

    def test_voice_transcript(self, processed):
        response = processed.post("/ledger/transactions/0/debit/voice", data={"transcript": "500 nghìn"})

        assert response.status_code == 200
        data = response.json()
        assert data["applied"] is True
        assert data["view"]["ledger"]["transactions"][0]["debit"] == 500_000

    def test_voice_audio_unsupported(self, processed):
        response = processed.post(
            "/ledger/transactions/0/debit/voice", files={"audio": ("a.wav", b"RIFF", "audio/wav")}
        )
        assert response.status_code == 501


class TestChatEndpoints:
    """Test the chat flow over HTTP."""

    def test_chat_requires_ledger(self, client):
        response = client.post("/chat", data={"message": "Xin chào"})
        assert response.status_code == 404

    def test_confirmed_update(self, processed, workspace):
        """Should propose, wait for confirmation, then apply."""
        workspace.gate._assistant.return_value = AssistantReply(
            response_text="Anh/chị có muốn em điều chỉnh trên báo cáo không?",
            action=ChatAction.UPDATE,
            update=TransactionUpdate(index=0, field=LedgerField.DEBIT, new_value=700),
            confirmation_required=True,
        )

        proposal = processed.post("/chat", data={"message": "Sửa dòng 1 thành 700"}).json()
        assert proposal["awaitingConfirmation"] is True
        assert proposal["view"]["ledger"]["transactions"][0]["debit"] == 500

        answer = processed.post("/chat", data={"message": "có"}).json()
        assert answer["reply"]["content"] == APPLIED_MESSAGE
        assert answer["view"]["ledger"]["transactions"][0]["debit"] == 700

        transcript = processed.get("/chat").json()
        assert transcript["awaitingConfirmation"] is False
        assert len(transcript["messages"]) == 5

    def test_chat_with_image(self, processed, workspace):
        response = processed.post(
            "/chat", data={"message": "Thêm giao dịch này"}, files={"image": ("anh.png", b"png", "image/png")}
        )

        assert response.status_code == 200
        assert workspace.gate._assistant.call_args.kwargs["image"].mime_type == "image/png"

    def test_chat_rejects_non_image(self, processed):
        response = processed.post("/chat", data={"message": "x"}, files={"image": ("a.txt", b"x", "text/plain")})
        assert response.status_code == 400


class TestExportAndStatus:
    def test_csv_download(self, processed):
        response = processed.get("/export/csv")

        assert response.status_code == 200
        assert "so_ke_ke_toan.csv" in response.headers["content-disposition"]
        assert response.text.startswith('"Tên tài khoản"')

    def test_html_export(self, processed):
        response = processed.get("/export/html")
        assert response.headers["content-type"].startswith("text/html")

    def test_export_without_ledger(self, client):
        assert client.get("/export/csv").status_code == 404

    def test_unknown_format(self, processed):
        assert processed.get("/export/xml").status_code == 422

    def test_progress(self, client):
        data = client.get("/progress").json()
        assert data["status"] in ("idle", "complete")

    def test_settings_hide_keys(self, client):
        data = client.get("/settings").json()
        assert "gemini_api_key" not in data
        assert "has_gemini_key" in data
