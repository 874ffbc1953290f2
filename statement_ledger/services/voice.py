"""Optional speech input for dictating amounts into ledger cells.

Speech recognition is a capability of the host environment. The service only
defines the seam and ships a fallback that reports the capability as
unsupported.
"""

import logging
import re
from typing import Protocol

logger = logging.getLogger(__name__)

SPEECH_LANGUAGE = "vi-VN"

SPEECH_ERROR_MESSAGES = {
    "no-speech": "Không nghe thấy giọng nói. Vui lòng đảm bảo micrô đang hoạt động và thử nói lại.",
    "audio-capture": "Không tìm thấy micrô. Vui lòng kiểm tra micrô đã được kết nối và cấp quyền.",
    "not-allowed": "Quyền truy cập micrô đã bị từ chối. Vui lòng cấp quyền trong phần cài đặt.",
    "unsupported": "Môi trường hiện tại không hỗ trợ nhận dạng giọng nói.",
}

# Spoken multipliers, checked largest first
SPOKEN_MULTIPLIERS = [
    (("tỷ", "tỉ"), 1_000_000_000),
    (("triệu",), 1_000_000),
    (("nghìn", "ngàn"), 1_000),
]

_LEADING_INTEGER = re.compile(r"^[+-]?\d+")


def speech_error_message(code: str) -> str:
    """User-facing message for a speech recognition error code."""
    return SPEECH_ERROR_MESSAGES.get(code, f"Đã xảy ra lỗi nhận dạng giọng nói: {code}.")


class SpeechInputError(Exception):
    """Raised when speech input cannot produce a transcript."""

    def __init__(self, code: str):
        self.code = code
        super().__init__(speech_error_message(code))


class SpeechRecognizer(Protocol):
    """Host-provided speech-to-text capability."""

    @property
    def available(self) -> bool: ...

    async def transcribe(self, audio: bytes, language: str = SPEECH_LANGUAGE) -> str: ...


class UnsupportedSpeechRecognizer:
    """Fallback used when the host provides no speech recognition."""

    available = False

    async def transcribe(self, audio: bytes, language: str = SPEECH_LANGUAGE) -> str:
        raise SpeechInputError("unsupported")


def parse_spoken_amount(transcript: str) -> float | None:
    """
    Read an amount from a dictated transcript.

    Separators and spaces are dropped before reading the leading integer, so
    "1.500.000" and "1 500 000" are both 1500000. A spoken unit multiplies the
    number: "3 triệu" is 3000000, "500 nghìn" is 500000.

    Returns:
        The amount, or None if the transcript does not start with a number
    """
    compact = re.sub(r"[.,\s]", "", transcript)
    match = _LEADING_INTEGER.match(compact)
    if not match:
        logger.debug(f"No number in transcript: {transcript!r}")
        return None

    value = float(match.group(0))
    lowered = transcript.lower()
    for words, multiplier in SPOKEN_MULTIPLIERS:
        if any(word in lowered for word in words):
            return value * multiplier
    return value
