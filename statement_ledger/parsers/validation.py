"""Shared validation utilities for uploaded documents and user-entered amounts."""

import math
import re

# Vietnamese statements are often exported as cp1258 by older core-banking systems
TEXT_ENCODINGS = ["utf-8", "utf-8-sig", "cp1258", "cp1252", "latin-1"]

_LEADING_NUMBER = re.compile(r"^[+-]?\d+(?:\.\d+)?")


class ValidationError(Exception):
    """Raised when validation fails."""

    pass


def validate_file_contents(contents: bytes, min_size: int = 1, max_size: int | None = None) -> None:
    """
    Validate file contents before extraction.

    Args:
        contents: Raw file bytes
        min_size: Minimum expected file size in bytes
        max_size: Maximum accepted file size in bytes, unlimited if None

    Raises:
        ValidationError: If validation fails
    """
    if not contents:
        raise ValidationError("File is empty")

    if len(contents) < min_size:
        raise ValidationError(f"File too small ({len(contents)} bytes), minimum {min_size} bytes expected")

    if max_size is not None and len(contents) > max_size:
        raise ValidationError(f"File too large ({len(contents)} bytes), maximum {max_size} bytes allowed")


def decode_text(contents: bytes) -> str:
    """
    Decode a text document trying common encodings in order.

    Raises:
        ValidationError: If no supported encoding can decode the bytes
    """
    for encoding in TEXT_ENCODINGS:
        try:
            return contents.decode(encoding)
        except UnicodeDecodeError:
            continue

    raise ValidationError(f"Could not decode file with any supported encoding ({', '.join(TEXT_ENCODINGS)})")


def parse_amount_input(raw: str | float | int | None) -> float:
    """
    Parse an amount typed in vi-VN format.

    "." groups thousands and is dropped, "," is the decimal mark. Only the
    leading numeric part is read, so "1.500.000 đ" is 1500000. Anything that
    does not start with a number is 0.

    Raises:
        ValueError: If the number is too large to represent
    """
    if raw is None:
        return 0.0
    if isinstance(raw, (int, float)):
        return coerce_amount(float(raw))

    cleaned = re.sub(r"\s+", "", raw).replace(".", "").replace(",", ".")
    match = _LEADING_NUMBER.match(cleaned)
    if not match:
        return 0.0
    return coerce_amount(float(match.group(0)))


def coerce_amount(value: float) -> float:
    """
    Normalize an amount before it is written into the ledger.

    NaN becomes 0.

    Raises:
        ValueError: If the amount is infinite
    """
    if math.isnan(value):
        return 0.0
    if math.isinf(value):
        raise ValueError("Amount must be a finite number")
    return value
