"""
Gemini provider adapter for note analysis.
Fallback provider reached over the generateContent REST endpoint.
"""

import httpx

from clientpulse.features.note_analysis.domain.models import AnalysisResult
from clientpulse.infrastructure.observability.logging import get_logger

from .base import parse_analysis_payload
from .errors import (
    AuthFailureError,
    MalformedResponseError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    RateLimitedError,
)
from .prompt import ANALYSIS_INSTRUCTIONS

logger = get_logger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"


class GeminiProvider:
    """Analyze notes with a Gemini model."""

    name = "gemini"

    def __init__(
        self,
        api_key: str | None,
        model: str = "gemini-1.5-flash",
        timeout_seconds: float = 45.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        if not api_key:
            raise AuthFailureError(self.name, "GEMINI_API_KEY not configured")
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.http_client = http_client

        logger.info("Gemini provider initialized", model=model, timeout=timeout_seconds)

    def _endpoint(self) -> str:
        return f"{GEMINI_BASE_URL}/{self.model}:generateContent"

    def _request_body(self, note_text: str) -> dict:
        return {
            "contents": [{"parts": [{"text": f"{ANALYSIS_INSTRUCTIONS}\n{note_text}"}]}],
            "generationConfig": {"responseMimeType": "application/json"},
        }

    async def analyze(self, note_text: str) -> AnalysisResult:
        try:
            if self.http_client is not None:
                response = await self._post(self.http_client, note_text)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await self._post(client, note_text)
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(self.name, str(e)) from e
        except httpx.TransportError as e:
            raise ProviderUnavailableError(self.name, str(e)) from e

        status = response.status_code
        if status == 429:
            raise RateLimitedError(self.name, "HTTP 429")
        if status >= 500:
            raise ProviderUnavailableError(self.name, f"HTTP {status}")
        if status >= 400:
            # 401/403 and other client errors mean the request or key is rejected
            logger.warning(
                "Gemini rejected request", status_code=status, body_preview=response.text[:200]
            )
            raise AuthFailureError(self.name, f"HTTP {status}")

        try:
            data = response.json()
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise MalformedResponseError(self.name, f"unexpected response shape: {e}") from e

        return parse_analysis_payload(self.name, text)

    async def _post(self, client: httpx.AsyncClient, note_text: str) -> httpx.Response:
        return await client.post(
            self._endpoint(),
            params={"key": self.api_key},
            json=self._request_body(note_text),
            timeout=self.timeout_seconds,
        )
