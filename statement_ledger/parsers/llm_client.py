"""Reusable LLM client for OCR, statement structuring and chat with structured output."""

import asyncio
import json
import logging
from typing import Any, Optional, Type, TypeVar

from litellm import acompletion
from pydantic import BaseModel, ValidationError

from statement_ledger.config import settings
from statement_ledger.models import ImagePart

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class ExtractionServiceError(Exception):
    """Raised when a call to the AI extraction service fails or returns malformed data."""

    pass


def _get_model_name() -> str:
    """Get the appropriate model name based on provider."""
    if settings.llm_provider == "gemini":
        return f"gemini/{settings.gemini_model}"
    if settings.llm_provider == "openai":
        return settings.openai_model
    return f"ollama/{settings.ollama_model}"


def _get_api_base() -> Optional[str]:
    """Get the API base URL for Ollama."""
    if settings.llm_provider == "ollama":
        return settings.ollama_host
    return None


def _get_api_key() -> Optional[str]:
    if settings.llm_provider == "gemini":
        return settings.gemini_api_key or None
    if settings.llm_provider == "openai":
        return settings.openai_api_key or None
    return None


def _build_messages(prompt: str, images: list[ImagePart] | None = None) -> list[dict[str, Any]]:
    """Build a single user message, attaching images as data-URL content parts."""
    if not images:
        return [{"role": "user", "content": prompt}]

    parts: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
    for image in images:
        parts.append({"type": "image_url", "image_url": {"url": image.to_data_url()}})
    return [{"role": "user", "content": parts}]


def _strip_to_json(content: str) -> str:
    """Extract the JSON payload from a response that may contain fences or prose."""
    # Handle both "```json" and "```" styles, and text before the block
    if "```" in content:
        parts = content.split("```")
        if len(parts) >= 3:
            json_content = parts[1]
            if json_content.lstrip().startswith("json"):
                json_content = json_content.lstrip()[4:]
            content = json_content.strip()
        elif len(parts) == 2:
            # Only one ``` marker (incomplete response)
            content = parts[1].strip()

    # Find first { or [
    json_start = min(
        content.find("{") if "{" in content else len(content),
        content.find("[") if "[" in content else len(content),
    )
    if 0 < json_start < len(content):
        content = content[json_start:]
    return content


async def _call_llm(
    prompt: str, images: list[ImagePart] | None, temperature: float, timeout: float
) -> str:
    response = await acompletion(
        model=_get_model_name(),
        messages=_build_messages(prompt, images),
        api_base=_get_api_base(),
        api_key=_get_api_key(),
        temperature=temperature,
        max_tokens=settings.llm_max_tokens,
        timeout=timeout,
    )
    content = response.choices[0].message.content
    return (content or "").strip()


async def llm_complete_text(
    prompt: str,
    images: list[ImagePart] | None = None,
    temperature: float = 0.0,
    timeout: float | None = None,
    max_retries: int | None = None,
) -> str:
    """
    Call the LLM and return its plain-text answer.

    Raises:
        ExtractionServiceError: If every attempt fails or the answer is empty
    """
    timeout = timeout or settings.llm_timeout
    max_retries = max_retries or settings.llm_max_retries

    for attempt in range(max_retries):
        try:
            logger.debug(f"[llm_complete_text] Attempt {attempt + 1}/{max_retries} model={_get_model_name()}")
            content = await _call_llm(prompt, images, temperature, timeout)
            if content:
                return content
            logger.warning(f"LLM returned empty text (attempt {attempt + 1}/{max_retries})")
            if attempt == max_retries - 1:
                raise ExtractionServiceError("LLM returned an empty response")
        except ExtractionServiceError:
            raise
        except Exception as e:
            logger.error(f"LLM call failed (attempt {attempt + 1}/{max_retries}): {e}")
            if attempt == max_retries - 1:
                raise ExtractionServiceError(f"LLM call failed: {e}") from e
        await asyncio.sleep(2**attempt)  # Exponential backoff

    raise ExtractionServiceError("Unexpected error in llm_complete_text")


async def llm_extract_json(
    prompt: str,
    response_model: Type[T],
    images: list[ImagePart] | None = None,
    temperature: float = 0.0,
    timeout: float | None = None,
    max_retries: int | None = None,
) -> T:
    """
    Call LLM with a prompt and extract structured JSON output.

    Args:
        prompt: The prompt to send to the LLM
        response_model: Pydantic model class to parse response into
        images: Optional images sent alongside the prompt
        temperature: Sampling temperature
        timeout: Timeout in seconds for each LLM call
        max_retries: Maximum number of attempts

    Returns:
        Instance of response_model with parsed data

    Raises:
        ExtractionServiceError: If LLM call fails or returns invalid JSON after all retries
    """
    timeout = timeout or settings.llm_timeout
    max_retries = max_retries or settings.llm_max_retries

    for attempt in range(max_retries):
        try:
            logger.debug(f"[llm_extract_json] Attempt {attempt + 1}/{max_retries} model={_get_model_name()}")
            content = _strip_to_json(await _call_llm(prompt, images, temperature, timeout))
        except TimeoutError:
            logger.warning(f"LLM timeout (attempt {attempt + 1}/{max_retries})")
            if attempt == max_retries - 1:
                raise ExtractionServiceError(f"LLM call timed out after {max_retries} attempts")
            await asyncio.sleep(2**attempt)
            continue
        except Exception as e:
            logger.error(f"LLM call failed (attempt {attempt + 1}/{max_retries}): {e}")
            if attempt == max_retries - 1:
                raise ExtractionServiceError(f"LLM call failed: {e}") from e
            await asyncio.sleep(2**attempt)
            continue

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON from LLM (attempt {attempt + 1}/{max_retries}): {e}")
            logger.error(f"Content preview: {content[:200]}...")
            if content and not content.rstrip().endswith(("}", "]")):
                logger.error("Response appears truncated")
            if attempt == max_retries - 1:
                raise ExtractionServiceError(f"LLM returned invalid JSON: {e}") from e
            await asyncio.sleep(2**attempt)
            continue

        try:
            return response_model.model_validate(data)
        except ValidationError as e:
            logger.error(f"Pydantic validation failed (attempt {attempt + 1}/{max_retries}): {e}")
            if attempt == max_retries - 1:
                raise ExtractionServiceError(f"LLM response validation failed: {e}") from e
            await asyncio.sleep(2**attempt)

    # Should never reach here
    raise ExtractionServiceError("Unexpected error in llm_extract_json")
