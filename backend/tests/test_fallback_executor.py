"""
Inceptra Backend — Fallback Executor Unit Tests
=================================================

What we test:
    ✅ Retryable failure (error or timeout) advances to the next candidate
    ✅ Fatal failure stops the walk; later candidates are never called
    ✅ A successful candidate is not followed by further attempts
    ✅ Normalization failures are fatal unless the policy flag says otherwise
    ✅ The timeout abandons the in-flight call without waiting for it
"""

import asyncio
import time

import pytest

from app.schemas.generation import Feature
from app.services.candidates import ProviderCandidate
from app.services.fallback_executor import (
    AllFailed,
    ExecutionSucceeded,
    FallbackExecutor,
    FatalFailure,
    RetryableFailure,
    Success,
)
from app.services.normalizer import NormalizationError
from app.services.provider_base import ProviderError
from conftest import ScriptedProvider, Slow


def identity(payload):
    return payload


def candidates(*models, timeout=0.5):
    return [ProviderCandidate(model, timeout) for model in models]


class TestExecute:

    def setup_method(self):
        self.executor = FallbackExecutor(retry_on_normalization_error=False)

    @pytest.mark.asyncio
    async def test_retryable_then_success_returns_second_output(self):
        provider = ScriptedProvider(script={
            "A": ProviderError("credits exhausted", retryable=True, status_code=402),
            "B": "output from B",
        })

        result = await self.executor.execute(
            Feature.ARTICLE,
            candidates("A", "B", timeout=0.01),
            lambda c: provider.generate_text(c.model, []),
            identity,
        )

        assert isinstance(result, ExecutionSucceeded)
        assert result.output == "output from B"
        assert result.candidate.model == "B"
        assert provider.calls == ["A", "B"]
        assert [a.outcome for a in result.attempts] == ["retryable", "success"]

    @pytest.mark.asyncio
    async def test_timeout_then_success(self):
        provider = ScriptedProvider(script={"A": Slow(5, "too late"), "B": "fast"})

        result = await self.executor.execute(
            Feature.IMAGE,
            candidates("A", "B", timeout=0.01),
            lambda c: provider.generate_image(c.model, "cat"),
            identity,
        )

        assert isinstance(result, ExecutionSucceeded)
        assert result.output == "fast"
        assert provider.calls == ["A", "B"]

    @pytest.mark.asyncio
    async def test_fatal_failure_stops_before_next_candidate(self):
        provider = ScriptedProvider(script={
            "A": ProviderError("invalid model id", retryable=False, status_code=400),
            "B": "never reached",
        })

        result = await self.executor.execute(
            Feature.ARTICLE,
            candidates("A", "B"),
            lambda c: provider.generate_text(c.model, []),
            identity,
        )

        assert isinstance(result, AllFailed)
        assert result.fatal
        assert provider.calls == ["A"]
        assert "invalid model id" in result.last_error.reason

    @pytest.mark.asyncio
    async def test_unclassified_exception_is_fatal(self):
        provider = ScriptedProvider(script={"A": RuntimeError("boom"), "B": "unused"})

        result = await self.executor.execute(
            Feature.ARTICLE,
            candidates("A", "B"),
            lambda c: provider.generate_text(c.model, []),
            identity,
        )

        assert isinstance(result, AllFailed)
        assert result.fatal
        assert provider.calls == ["A"]

    @pytest.mark.asyncio
    async def test_all_retryable_failures_exhaust_the_list(self):
        provider = ScriptedProvider(script={
            "A": ProviderError("429", retryable=True),
            "B": TimeoutError("read timed out"),
        })

        result = await self.executor.execute(
            Feature.RESUME,
            candidates("A", "B"),
            lambda c: provider.generate_text(c.model, []),
            identity,
        )

        assert isinstance(result, AllFailed)
        assert not result.fatal
        assert result.timed_out
        assert provider.calls == ["A", "B"]
        assert len(result.attempts) == 2

    @pytest.mark.asyncio
    async def test_empty_candidate_list(self):
        result = await self.executor.execute(Feature.ARTICLE, [], lambda c: None, identity)

        assert isinstance(result, AllFailed)
        assert result.last_error is None
        assert result.attempts == []

    @pytest.mark.asyncio
    async def test_normalization_failure_is_fatal_by_default(self):
        provider = ScriptedProvider(script={"A": {"unexpected": 1}, "B": "fine"})

        def strict(payload):
            if not isinstance(payload, str):
                raise NormalizationError("unrecognized payload")
            return payload

        result = await self.executor.execute(
            Feature.ARTICLE,
            candidates("A", "B"),
            lambda c: provider.generate_text(c.model, []),
            strict,
        )

        assert isinstance(result, AllFailed)
        assert result.fatal
        assert provider.calls == ["A"]

    @pytest.mark.asyncio
    async def test_normalization_failure_retryable_when_enabled(self):
        executor = FallbackExecutor(retry_on_normalization_error=True)
        provider = ScriptedProvider(script={"A": {"unexpected": 1}, "B": "fine"})

        def strict(payload):
            if not isinstance(payload, str):
                raise NormalizationError("unrecognized payload")
            return payload

        result = await executor.execute(
            Feature.ARTICLE,
            candidates("A", "B"),
            lambda c: provider.generate_text(c.model, []),
            strict,
        )

        assert isinstance(result, ExecutionSucceeded)
        assert result.output == "fine"


class TestRunCandidate:

    def setup_method(self):
        self.executor = FallbackExecutor(retry_on_normalization_error=False)

    @pytest.mark.asyncio
    async def test_timeout_does_not_wait_for_the_call(self):
        started = asyncio.Event()

        async def hang(candidate):
            started.set()
            await asyncio.sleep(10)

        begin = time.monotonic()
        outcome = await self.executor.run_candidate(ProviderCandidate("slow", 0.05), hang, identity)

        assert started.is_set()
        assert isinstance(outcome, RetryableFailure)
        assert outcome.timed_out
        assert time.monotonic() - begin < 1

    @pytest.mark.asyncio
    async def test_abandoned_call_is_cancelled(self):
        cancelled = asyncio.Event()

        async def hang(candidate):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        await self.executor.run_candidate(ProviderCandidate("slow", 0.01), hang, identity)
        await asyncio.wait_for(cancelled.wait(), timeout=1)

    @pytest.mark.asyncio
    async def test_success_is_normalized(self):
        async def ok(candidate):
            return "  raw  "

        outcome = await self.executor.run_candidate(
            ProviderCandidate("m", 1), ok, lambda p: p.strip()
        )

        assert outcome == Success("raw")

    @pytest.mark.asyncio
    async def test_fatal_provider_error(self):
        async def bad(candidate):
            raise ProviderError("HTTP 401", retryable=False, status_code=401)

        outcome = await self.executor.run_candidate(ProviderCandidate("m", 1), bad, identity)

        assert outcome == FatalFailure("HTTP 401")
