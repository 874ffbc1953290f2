"""Document extraction: turn an uploaded file into text or page images."""

import asyncio
import base64
import logging
from io import BytesIO
from pathlib import PurePath
from typing import Literal

import pandas as pd
import pdfplumber
from docx import Document

from statement_ledger.config import settings
from statement_ledger.models import ExtractedContent, ImagePart
from statement_ledger.parsers.validation import ValidationError, decode_text, validate_file_contents

logger = logging.getLogger(__name__)

FileKind = Literal["pdf", "image", "docx", "xlsx", "text"]

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

IMAGE_EXTENSIONS = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".heic": "image/heic",
}


class DocumentExtractionError(Exception):
    """Raised when a file cannot be read or has no usable content."""

    pass


def detect_file_kind(filename: str, media_type: str | None = None) -> FileKind:
    """Detect how a file should be extracted from its media type, falling back to the extension."""
    media_type = (media_type or "").lower()
    suffix = PurePath(filename).suffix.lower()

    if media_type == "application/pdf" or suffix == ".pdf":
        return "pdf"
    if media_type.startswith("image/") or suffix in IMAGE_EXTENSIONS:
        return "image"
    if media_type == DOCX_MEDIA_TYPE or suffix == ".docx":
        return "docx"
    if media_type == XLSX_MEDIA_TYPE or suffix == ".xlsx":
        return "xlsx"
    return "text"


def _image_media_type(filename: str, media_type: str | None) -> str:
    if media_type and media_type.lower().startswith("image/"):
        return media_type.lower()
    return IMAGE_EXTENSIONS.get(PurePath(filename).suffix.lower(), "image/png")


def _encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _render_pdf_pages(contents: bytes) -> list[ImagePart]:
    """Rasterize every PDF page to a PNG image."""
    pages: list[ImagePart] = []
    with pdfplumber.open(BytesIO(contents)) as pdf:
        for page in pdf.pages:
            page_image = page.to_image(resolution=settings.pdf_render_resolution)
            buffer = BytesIO()
            # PNG keeps digits lossless for OCR
            page_image.original.save(buffer, format="PNG")
            pages.append(ImagePart(mime_type="image/png", data=_encode(buffer.getvalue())))

    if not pages:
        raise DocumentExtractionError("PDF has no pages")
    return pages


def _extract_docx_text(contents: bytes) -> str:
    """Extract paragraph and table text from a DOCX file."""
    doc = Document(BytesIO(contents))
    lines = [p.text for p in doc.paragraphs if p.text.strip()]

    for table in doc.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells]
            if any(cells):
                lines.append(" | ".join(cells))

    return "\n".join(lines)


def _extract_xlsx_text(contents: bytes) -> str:
    """Render every worksheet as CSV, one after another."""
    sheets = pd.read_excel(BytesIO(contents), sheet_name=None, header=None, dtype=str, engine="openpyxl")
    return "".join(df.fillna("").to_csv(index=False, header=False) for df in sheets.values())


def _extract_sync(filename: str, contents: bytes, media_type: str | None) -> ExtractedContent:
    kind = detect_file_kind(filename, media_type)
    logger.info(f"Extracting {filename} as {kind} ({len(contents)} bytes)")

    if kind == "pdf":
        return ExtractedContent(text=None, images=_render_pdf_pages(contents))
    if kind == "image":
        image = ImagePart(mime_type=_image_media_type(filename, media_type), data=_encode(contents))
        return ExtractedContent(text=None, images=[image])
    if kind == "docx":
        return ExtractedContent(text=_extract_docx_text(contents))
    if kind == "xlsx":
        return ExtractedContent(text=_extract_xlsx_text(contents))
    return ExtractedContent(text=decode_text(contents))


async def extract_from_file(filename: str, contents: bytes, media_type: str | None = None) -> ExtractedContent:
    """
    Extract text or images from an uploaded statement.

    PDFs are rasterized page by page for OCR rather than read as text, images
    pass through, and office and text documents are decoded directly.

    Raises:
        DocumentExtractionError: If the file is empty, too large or unreadable
    """
    try:
        validate_file_contents(contents, max_size=settings.max_upload_bytes)
        return await asyncio.to_thread(_extract_sync, filename, contents, media_type)
    except DocumentExtractionError:
        raise
    except ValidationError as e:
        raise DocumentExtractionError(f"{filename}: {e}") from e
    except Exception as e:
        logger.error(f"Extraction failed for {filename}: {e}")
        raise DocumentExtractionError(f"{filename}: {e}") from e
