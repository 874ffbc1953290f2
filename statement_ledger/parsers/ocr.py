"""OCR of statement images via the LLM."""

import logging

from statement_ledger.config import settings
from statement_ledger.models import ImagePart
from statement_ledger.parsers.llm_client import ExtractionServiceError, llm_complete_text

logger = logging.getLogger(__name__)

OCR_FAILED_MESSAGE = "Không thể trích xuất văn bản từ file hình ảnh."

OCR_PROMPT = """You are an OCR engine specialised in Vietnamese bank statements. Transcribe the attached images.

ACCURACY OF NUMBERS COMES FIRST:
1. This is a financial document. Every digit matters.
2. Vietnamese statements use "." and "," as thousands separators. Copy them exactly as printed.
3. Never drop or add trailing zeros. "3,000,000" is three million: it must not become "30,000,000" or "300,000".
4. Keep Vietnamese diacritics exactly (Số dư đầu kỳ, Phát sinh Nợ, Phát sinh Có, Phí, Thuế GTGT).

OUTPUT:
- Plain text only, in reading order, page after page.
- Do not interpret, summarise, reformat or add commentary.
- Do not wrap the text in code fences."""


async def extract_text_from_images(images: list[ImagePart]) -> str:
    """
    Transcribe statement images to raw text.

    Returns:
        Concatenated raw text, or "" when there are no images

    Raises:
        ExtractionServiceError: With a user-facing message if the OCR call fails
    """
    if not images:
        return ""

    logger.info(f"Running OCR on {len(images)} image(s)")
    try:
        text = await llm_complete_text(OCR_PROMPT, images=images, temperature=settings.ocr_temperature)
    except ExtractionServiceError as e:
        logger.error(f"OCR failed: {e}")
        raise ExtractionServiceError(OCR_FAILED_MESSAGE) from e

    logger.info(f"OCR produced {len(text)} chars")
    return text.strip()
