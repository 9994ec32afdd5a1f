"""
Provider capability interface and the shared response validator.
"""

import json
import re
from typing import Protocol

from pydantic import ValidationError

from clientpulse.features.note_analysis.domain.models import AnalysisResult
from clientpulse.infrastructure.observability.logging import get_logger

from .errors import MalformedResponseError

logger = get_logger(__name__)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class AnalysisProvider(Protocol):
    """Anything that can turn note text into an AnalysisResult."""

    name: str

    async def analyze(self, note_text: str) -> AnalysisResult: ...


def parse_analysis_payload(provider: str, raw_text: str | None) -> AnalysisResult:
    """
    Validate raw provider text against the AnalysisResult shape.

    Raises:
        MalformedResponseError: if no JSON object is present, it does not
            parse, or it fails validation. Nothing is coerced.
    """
    if not raw_text or not raw_text.strip():
        raise MalformedResponseError(provider, "empty response")

    match = _JSON_OBJECT.search(raw_text)
    if not match:
        raise MalformedResponseError(provider, "no JSON object in response")

    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.warning(
            "Provider returned invalid JSON",
            provider=provider,
            error=str(e),
            raw_preview=raw_text[:200],
        )
        raise MalformedResponseError(provider, f"invalid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise MalformedResponseError(provider, "response JSON is not an object")

    try:
        return AnalysisResult.model_validate(payload)
    except ValidationError as e:
        logger.warning(
            "Provider response failed validation",
            provider=provider,
            error_count=e.error_count(),
            errors=[err["loc"] for err in e.errors()][:5],
        )
        raise MalformedResponseError(
            provider, f"schema validation failed: {e.error_count()} errors"
        ) from e
