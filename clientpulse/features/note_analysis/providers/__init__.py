"""
Analysis provider adapters and their failure taxonomy.
"""

from .base import AnalysisProvider, parse_analysis_payload
from .errors import (
    AuthFailureError,
    MalformedResponseError,
    ProviderError,
    ProviderErrorKind,
    ProviderTimeoutError,
    ProviderUnavailableError,
    RateLimitedError,
)
from .gemini_provider import GeminiProvider
from .openai_provider import OpenAIProvider

__all__ = [
    "AnalysisProvider",
    "AuthFailureError",
    "GeminiProvider",
    "MalformedResponseError",
    "OpenAIProvider",
    "ProviderError",
    "ProviderErrorKind",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    "RateLimitedError",
    "parse_analysis_payload",
]
