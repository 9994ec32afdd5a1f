"""
Builds the provider chain and pipeline configuration from settings.

The resulting configuration is immutable; the worker receives it once at
construction and never reads global settings while handling jobs.
"""

from dataclasses import dataclass

from clientpulse.config import Settings
from clientpulse.features.note_analysis.pipeline.chain import ProviderChain, ProviderPolicy
from clientpulse.infrastructure.observability.logging import get_logger

from .errors import AuthFailureError
from .gemini_provider import GeminiProvider
from .openai_provider import OpenAIProvider

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    chain: ProviderChain
    max_attempts: int = 3
    max_concurrency: int = 5
    requeue_backoff_seconds: tuple[int, ...] = (120, 240, 480)
    processing_lease_seconds: int = 900

    def requeue_delay(self, attempt: int) -> int:
        """Delay before re-delivering after ``attempt`` failed; the last entry repeats."""
        if not self.requeue_backoff_seconds:
            return 0
        index = min(max(attempt, 1), len(self.requeue_backoff_seconds)) - 1
        return int(self.requeue_backoff_seconds[index])


def _build_policy(name: str, settings: Settings) -> ProviderPolicy:
    if name == "openai":
        provider = OpenAIProvider(
            api_key=settings.OPENAI_API_KEY,
            model=settings.OPENAI_MODEL,
            max_tokens=settings.OPENAI_MAX_TOKENS,
            temperature=settings.OPENAI_TEMPERATURE,
            timeout_seconds=settings.OPENAI_TIMEOUT_SECONDS,
        )
        return ProviderPolicy(
            provider=provider,
            max_retries=settings.OPENAI_MAX_RETRIES,
            backoff_schedule=tuple(settings.OPENAI_BACKOFF_SECONDS),
            timeout_seconds=settings.OPENAI_TIMEOUT_SECONDS,
        )

    if name == "gemini":
        provider = GeminiProvider(
            api_key=settings.GEMINI_API_KEY,
            model=settings.GEMINI_MODEL,
            timeout_seconds=settings.GEMINI_TIMEOUT_SECONDS,
        )
        return ProviderPolicy(
            provider=provider,
            max_retries=settings.GEMINI_MAX_RETRIES,
            backoff_schedule=tuple(settings.GEMINI_BACKOFF_SECONDS),
            timeout_seconds=settings.GEMINI_TIMEOUT_SECONDS,
        )

    raise ValueError(f"Unknown analysis provider: {name}")


def build_provider_chain(settings: Settings) -> ProviderChain:
    """
    Create the chain in AI_PROVIDER_ORDER.

    Providers without credentials are skipped with a warning.

    Raises:
        ValueError: if no provider could be configured.
    """
    policies = []
    for name in settings.provider_order():
        try:
            policies.append(_build_policy(name, settings))
        except AuthFailureError as e:
            logger.warning("Skipping analysis provider", provider=name, reason=e.detail)
        except ValueError as e:
            logger.warning("Skipping analysis provider", provider=name, reason=str(e))

    if not policies:
        raise ValueError("No analysis provider configured; set OPENAI_API_KEY or GEMINI_API_KEY")

    logger.info("Provider chain configured", providers=[p.name for p in policies])
    return ProviderChain(policies)


def build_pipeline_config(settings: Settings) -> PipelineConfig:
    return PipelineConfig(
        chain=build_provider_chain(settings),
        max_attempts=settings.ANALYSIS_MAX_ATTEMPTS,
        max_concurrency=settings.ANALYSIS_MAX_CONCURRENCY,
        requeue_backoff_seconds=tuple(settings.ANALYSIS_REQUEUE_BACKOFF_SECONDS),
        processing_lease_seconds=settings.ANALYSIS_PROCESSING_LEASE_SECONDS,
    )
