import asyncio

import pytest

from clientpulse.features.note_analysis.pipeline.chain import (
    ProviderChain,
    ProviderChainExhaustedError,
    ProviderPolicy,
)
from clientpulse.features.note_analysis.providers.errors import (
    AuthFailureError,
    MalformedResponseError,
    ProviderErrorKind,
    ProviderTimeoutError,
    RateLimitedError,
)
from tests.conftest import ScriptedProvider, SleepRecorder, make_analysis, make_chain


@pytest.mark.asyncio
async def test_primary_success_never_touches_fallback():
    primary = ScriptedProvider("openai", make_analysis())
    fallback = ScriptedProvider("gemini", make_analysis(title="Fallback"))
    chain = make_chain(primary, fallback)

    success = await chain.run("note text")

    assert success.provider == "openai"
    assert success.calls == 1
    assert success.result.title == "Quarterly check-in"
    assert fallback.calls == 0


@pytest.mark.asyncio
async def test_recoverable_failures_retry_with_backoff_then_fall_through():
    sleep = SleepRecorder()
    primary = ScriptedProvider("openai", ProviderTimeoutError("openai", "slow"))
    fallback = ScriptedProvider("gemini", make_analysis(title="From fallback"))
    chain = make_chain(
        ProviderPolicy(provider=primary, max_retries=2, backoff_schedule=(2, 8)),
        ProviderPolicy(provider=fallback, max_retries=1, backoff_schedule=(30,)),
        sleep=sleep,
    )

    success = await chain.run("note text")

    assert primary.calls == 3
    assert fallback.calls == 1
    assert sleep.delays == [2.0, 8.0]
    assert success.provider == "gemini"
    assert success.calls == 4
    assert success.result.title == "From fallback"


@pytest.mark.asyncio
async def test_recovers_on_retry_without_fallback():
    sleep = SleepRecorder()
    primary = ScriptedProvider("openai", RateLimitedError("openai"), make_analysis())
    fallback = ScriptedProvider("gemini", make_analysis())
    chain = make_chain(
        ProviderPolicy(provider=primary, max_retries=2, backoff_schedule=(2, 8)),
        fallback,
        sleep=sleep,
    )

    success = await chain.run("note text")

    assert success.provider == "openai"
    assert primary.calls == 2
    assert fallback.calls == 0
    assert sleep.delays == [2.0]


@pytest.mark.asyncio
async def test_non_recoverable_failure_falls_through_without_retry():
    sleep = SleepRecorder()
    primary = ScriptedProvider("openai", MalformedResponseError("openai", "not json"))
    fallback = ScriptedProvider("gemini", make_analysis())
    chain = make_chain(
        ProviderPolicy(provider=primary, max_retries=2, backoff_schedule=(2, 8)),
        fallback,
        sleep=sleep,
    )

    success = await chain.run("note text")

    assert primary.calls == 1
    assert sleep.delays == []
    assert success.provider == "gemini"


@pytest.mark.asyncio
async def test_exhausted_chain_reports_last_error_and_restart_provider():
    primary = ScriptedProvider("openai", AuthFailureError("openai", "bad key"))
    fallback = ScriptedProvider("gemini", RateLimitedError("gemini", "quota"))
    chain = make_chain(
        primary, ProviderPolicy(provider=fallback, max_retries=1, backoff_schedule=(30,))
    )

    with pytest.raises(ProviderChainExhaustedError) as exc_info:
        await chain.run("note text")

    error = exc_info.value
    assert error.last_error.kind == ProviderErrorKind.RATE_LIMITED
    assert error.public_message == "gemini was rate limited"
    assert error.report.calls == 3
    assert set(error.report.failures) == {"openai", "gemini"}
    # openai failed structurally, so the next attempt should start at gemini
    assert error.restart_provider == "gemini"


@pytest.mark.asyncio
async def test_restart_provider_is_none_when_every_failure_is_structural():
    chain = make_chain(
        ScriptedProvider("openai", AuthFailureError("openai")),
        ScriptedProvider("gemini", MalformedResponseError("gemini")),
    )

    with pytest.raises(ProviderChainExhaustedError) as exc_info:
        await chain.run("note text")

    assert exc_info.value.restart_provider is None


@pytest.mark.asyncio
async def test_start_at_skips_higher_priority_providers():
    primary = ScriptedProvider("openai", make_analysis())
    fallback = ScriptedProvider("gemini", make_analysis(title="Gemini"))
    chain = make_chain(primary, fallback)

    success = await chain.run("note text", start_at="gemini")

    assert success.provider == "gemini"
    assert primary.calls == 0


@pytest.mark.asyncio
async def test_unknown_start_at_uses_full_chain():
    primary = ScriptedProvider("openai", make_analysis())
    chain = make_chain(primary)

    success = await chain.run("note text", start_at="anthropic")

    assert success.provider == "openai"


@pytest.mark.asyncio
async def test_slow_provider_is_cut_off_as_timeout():
    class SlowProvider:
        name = "openai"

        async def analyze(self, note_text):
            await asyncio.sleep(5)

    fallback = ScriptedProvider("gemini", make_analysis())
    chain = make_chain(ProviderPolicy(provider=SlowProvider(), timeout_seconds=0.01), fallback)

    success = await chain.run("note text")

    assert success.provider == "gemini"
    assert success.calls == 2


@pytest.mark.asyncio
async def test_unmapped_exception_is_treated_as_unavailable():
    chain = make_chain(ScriptedProvider("openai", RuntimeError("socket closed")))

    with pytest.raises(ProviderChainExhaustedError) as exc_info:
        await chain.run("note text")

    assert exc_info.value.last_error.kind == ProviderErrorKind.UNAVAILABLE
    assert exc_info.value.last_error.recoverable is True


def test_backoff_schedule_repeats_last_entry():
    policy = ProviderPolicy(provider=ScriptedProvider("openai"), backoff_schedule=(2, 8))

    assert policy.backoff_for(1) == 2.0
    assert policy.backoff_for(2) == 8.0
    assert policy.backoff_for(5) == 8.0
    assert ProviderPolicy(provider=ScriptedProvider("x")).backoff_for(1) == 0.0


def test_chain_requires_a_provider():
    with pytest.raises(ValueError):
        ProviderChain([])
