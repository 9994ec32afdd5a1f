"""
OpenAI provider adapter for note analysis.
Primary provider: one chat completion per call, JSON mode, no internal retries
(the provider chain owns retry and backoff).
"""

from typing import Any

import openai
from openai import AsyncOpenAI

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


class OpenAIProvider:
    """Analyze notes with an OpenAI chat model."""

    name = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
        max_tokens: int = 1024,
        temperature: float = 0.2,
        timeout_seconds: float = 30.0,
        client: Any | None = None,
    ):
        if client is None:
            if not api_key:
                raise AuthFailureError(self.name, "OPENAI_API_KEY not configured")
            # SDK retries disabled: retry policy belongs to the chain
            client = AsyncOpenAI(api_key=api_key, timeout=timeout_seconds, max_retries=0)
        self.client = client
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

        logger.info("OpenAI provider initialized", model=model, timeout=timeout_seconds)

    async def analyze(self, note_text: str) -> AnalysisResult:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": ANALYSIS_INSTRUCTIONS},
                    {"role": "user", "content": note_text},
                ],
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                response_format={"type": "json_object"},
            )
        except openai.APITimeoutError as e:
            raise ProviderTimeoutError(self.name, str(e)) from e
        except openai.RateLimitError as e:
            raise RateLimitedError(self.name, str(e)) from e
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise AuthFailureError(self.name, str(e)) from e
        except openai.APIConnectionError as e:
            raise ProviderUnavailableError(self.name, str(e)) from e
        except openai.APIStatusError as e:
            if e.status_code >= 500:
                raise ProviderUnavailableError(self.name, f"HTTP {e.status_code}: {e}") from e
            # Remaining 4xx: the request itself is rejected (bad model, bad params)
            raise AuthFailureError(self.name, f"HTTP {e.status_code}: {e}") from e

        if not response.choices or not response.choices[0].message.content:
            raise MalformedResponseError(self.name, "empty completion")

        content = response.choices[0].message.content.strip()

        logger.debug(
            "OpenAI completion received",
            response_length=len(content),
            usage_tokens=response.usage.total_tokens if response.usage else 0,
        )

        return parse_analysis_payload(self.name, content)
