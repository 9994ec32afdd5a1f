"""
Provider chain: ordered providers with per-provider retry and backoff.

A provider is retried on recoverable failures until its retry budget is
spent, then the chain falls through to the next provider. Once any provider
succeeds, lower-priority providers are never consulted.
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field

from clientpulse.features.note_analysis.domain.models import AnalysisResult
from clientpulse.features.note_analysis.providers.base import AnalysisProvider
from clientpulse.features.note_analysis.providers.errors import (
    ProviderError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)
from clientpulse.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class ProviderPolicy:
    """Retry policy for one provider in the chain."""

    provider: AnalysisProvider
    max_retries: int = 0
    backoff_schedule: tuple[float, ...] = ()
    timeout_seconds: float = 30.0

    @property
    def name(self) -> str:
        return self.provider.name

    def backoff_for(self, retry_number: int) -> float:
        """Delay before retry ``retry_number`` (1-based); the last entry repeats."""
        if not self.backoff_schedule:
            return 0.0
        index = min(retry_number, len(self.backoff_schedule)) - 1
        return float(self.backoff_schedule[index])


@dataclass(slots=True)
class ChainSuccess:
    result: AnalysisResult
    provider: str
    calls: int


@dataclass(slots=True)
class ChainReport:
    """Per-run bookkeeping: calls made and each provider's last failure."""

    calls: int = 0
    failures: dict[str, ProviderError] = field(default_factory=dict)


class ProviderChainExhaustedError(Exception):
    """Every provider in the chain failed for this attempt."""

    def __init__(self, last_error: ProviderError, report: ChainReport, order: Sequence[str]):
        super().__init__(f"All analysis providers failed; last error: {last_error}")
        self.last_error = last_error
        self.report = report
        self._order = tuple(order)

    @property
    def public_message(self) -> str:
        return self.last_error.public_message

    @property
    def restart_provider(self) -> str | None:
        """
        Highest-priority provider whose last failure was recoverable.

        None when every failure was structural, meaning the next attempt
        starts from the top of the chain.
        """
        for name in self._order:
            error = self.report.failures.get(name)
            if error is not None and error.recoverable:
                return name
        return None


class ProviderChain:
    """Try providers in priority order until one returns a valid analysis."""

    def __init__(self, policies: Sequence[ProviderPolicy], sleep: SleepFn = asyncio.sleep):
        if not policies:
            raise ValueError("Provider chain needs at least one provider")
        self.policies = tuple(policies)
        self._sleep = sleep

    @property
    def provider_names(self) -> list[str]:
        return [policy.name for policy in self.policies]

    def _policies_from(self, start_at: str | None) -> tuple[ProviderPolicy, ...]:
        if start_at is None:
            return self.policies
        names = self.provider_names
        if start_at not in names:
            logger.warning("Unknown start provider, using full chain", provider=start_at)
            return self.policies
        return self.policies[names.index(start_at) :]

    async def run(self, note_text: str, start_at: str | None = None) -> ChainSuccess:
        """
        Analyze note text with the first provider that succeeds.

        Raises:
            ProviderChainExhaustedError: if every provider failed.
        """
        report = ChainReport()
        last_error: ProviderError | None = None

        for policy in self._policies_from(start_at):
            retries_used = 0
            while True:
                report.calls += 1
                try:
                    result = await self._call(policy, note_text)
                    logger.info(
                        "Provider analysis succeeded",
                        provider=policy.name,
                        retries=retries_used,
                        calls=report.calls,
                    )
                    return ChainSuccess(result=result, provider=policy.name, calls=report.calls)
                except ProviderError as e:
                    last_error = e
                    report.failures[policy.name] = e

                    if e.recoverable and retries_used < policy.max_retries:
                        retries_used += 1
                        delay = policy.backoff_for(retries_used)
                        logger.warning(
                            "Provider failed, retrying",
                            provider=policy.name,
                            error_kind=e.kind.value,
                            retry=retries_used,
                            max_retries=policy.max_retries,
                            delay_seconds=delay,
                            detail=e.detail[:200],
                        )
                        await self._sleep(delay)
                        continue

                    logger.warning(
                        "Provider exhausted, falling through",
                        provider=policy.name,
                        error_kind=e.kind.value,
                        recoverable=e.recoverable,
                        retries=retries_used,
                        detail=e.detail[:200],
                    )
                    break

        raise ProviderChainExhaustedError(last_error, report, self.provider_names)

    async def _call(self, policy: ProviderPolicy, note_text: str) -> AnalysisResult:
        try:
            return await asyncio.wait_for(
                policy.provider.analyze(note_text), timeout=policy.timeout_seconds
            )
        except TimeoutError as e:
            raise ProviderTimeoutError(
                policy.name, f"no response within {policy.timeout_seconds}s"
            ) from e
        except ProviderError:
            raise
        except Exception as e:
            logger.error(
                "Provider raised an unmapped error",
                provider=policy.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ProviderUnavailableError(policy.name, f"{type(e).__name__}: {e}") from e
