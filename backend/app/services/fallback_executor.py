"""
Inceptra Backend — Fallback Executor
======================================

What:  Runs one generation request against an ordered candidate list.
Why:   Free-tier inference endpoints time out and run out of credits all the
       time. Walking a preference-ordered list turns a single flaky model
       into a reasonably available feature.
How:   Candidates are tried strictly one after another. Each call runs as an
       asyncio task raced against the candidate's timeout with
       asyncio.wait(); when the timer wins the task is cancelled and left
       behind (its eventual result or error is discarded).

Outcome per attempt:
    ┌──────────────────────────────┬──────────────────┬─────────────────┐
    │ what happened                │ outcome          │ next step       │
    ├──────────────────────────────┼──────────────────┼─────────────────┤
    │ timer fired first            │ RetryableFailure │ next candidate  │
    │ TimeoutError raised          │ RetryableFailure │ next candidate  │
    │ ProviderError(retryable)     │ RetryableFailure │ next candidate  │
    │ any other error              │ FatalFailure     │ stop            │
    │ payload fails normalization  │ FatalFailure *   │ stop            │
    │ payload normalizes           │ Success          │ return          │
    └──────────────────────────────┴──────────────────┴─────────────────┘
    * RetryableFailure when retry_on_normalization_error is enabled.

Worst-case latency is the sum of the attempted candidates' timeouts.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Union

from app.config import settings
from app.schemas.generation import Feature
from app.services.candidates import ProviderCandidate
from app.services.normalizer import NormalizationError
from app.services.provider_base import ProviderError

logger = logging.getLogger(__name__)

# Starts one provider call for a candidate; returns the raw payload
Invoker = Callable[[ProviderCandidate], Awaitable[Any]]
# Turns a raw payload into canonical output; raises NormalizationError
Normalize = Callable[[Any], Any]


# ══════════════════════════════════════════════════════════════════════════
# Outcomes
# ══════════════════════════════════════════════════════════════════════════


@dataclass
class Success:
    output: Any


@dataclass
class RetryableFailure:
    reason: str
    timed_out: bool = False


@dataclass
class FatalFailure:
    reason: str


CandidateOutcome = Union[Success, RetryableFailure, FatalFailure]


@dataclass
class Attempt:
    """One entry of the attempt trail (logged, never persisted)."""

    model: str
    provider: str
    outcome: str
    reason: str = ""
    duration_ms: float = 0.0


@dataclass
class ExecutionSucceeded:
    output: Any
    candidate: ProviderCandidate
    attempts: List[Attempt] = field(default_factory=list)


@dataclass
class AllFailed:
    """
    No candidate produced output.

    last_error is the outcome that ended the walk: the fatal failure, or the
    retryable failure of the last candidate.
    """

    last_error: Union[RetryableFailure, FatalFailure, None]
    attempts: List[Attempt] = field(default_factory=list)

    @property
    def timed_out(self) -> bool:
        return isinstance(self.last_error, RetryableFailure) and self.last_error.timed_out

    @property
    def fatal(self) -> bool:
        return isinstance(self.last_error, FatalFailure)


ExecutionResult = Union[ExecutionSucceeded, AllFailed]


def _discard_result(task: "asyncio.Future[Any]") -> None:
    # Consume the abandoned task's outcome so asyncio does not log
    # "Task exception was never retrieved"
    if not task.cancelled():
        task.exception()


# ══════════════════════════════════════════════════════════════════════════
# Executor
# ══════════════════════════════════════════════════════════════════════════


class FallbackExecutor:
    """
    Ordered fallback with a per-candidate timeout race.

    Stateless apart from the normalization policy flag, so a single instance
    serves every request.
    """

    def __init__(self, retry_on_normalization_error: Optional[bool] = None):
        if retry_on_normalization_error is None:
            retry_on_normalization_error = settings.retry_on_normalization_error
        self.retry_on_normalization_error = retry_on_normalization_error

    async def run_candidate(
        self,
        candidate: ProviderCandidate,
        invoke: Invoker,
        normalize: Normalize,
    ) -> CandidateOutcome:
        """Race one candidate call against its timeout and classify the outcome."""
        task = asyncio.ensure_future(invoke(candidate))
        done, _ = await asyncio.wait({task}, timeout=candidate.timeout)

        if task not in done:
            task.cancel()
            task.add_done_callback(_discard_result)
            return RetryableFailure(f"timeout after {candidate.timeout}s", timed_out=True)

        try:
            payload = task.result()
        except asyncio.CancelledError:
            return FatalFailure("call cancelled")
        except TimeoutError as e:
            return RetryableFailure(f"transport timeout: {e}", timed_out=True)
        except ProviderError as e:
            if e.retryable:
                return RetryableFailure(e.reason)
            return FatalFailure(e.reason)
        except Exception as e:
            return FatalFailure(f"{type(e).__name__}: {e}")

        try:
            return Success(normalize(payload))
        except NormalizationError as e:
            reason = f"normalization failed: {e.reason}"
            if self.retry_on_normalization_error:
                return RetryableFailure(reason)
            return FatalFailure(reason)

    async def execute(
        self,
        feature: Feature,
        candidates: Sequence[ProviderCandidate],
        invoke: Invoker,
        normalize: Normalize,
    ) -> ExecutionResult:
        """
        Try candidates in order until one succeeds or a fatal error occurs.

        Args:
            feature:    Feature being served (for logging)
            candidates: Preference-ordered candidate list
            invoke:     Starts the provider call for a candidate
            normalize:  Converts the raw payload to canonical output

        Returns:
            ExecutionSucceeded on the first success, AllFailed otherwise.
        """
        attempts: List[Attempt] = []
        last_error: Union[RetryableFailure, FatalFailure, None] = None

        for index, candidate in enumerate(candidates, start=1):
            start_time = time.monotonic()
            outcome = await self.run_candidate(candidate, invoke, normalize)
            duration_ms = (time.monotonic() - start_time) * 1000

            if isinstance(outcome, Success):
                attempts.append(
                    Attempt(candidate.model, candidate.provider, "success", duration_ms=duration_ms)
                )
                logger.info(
                    "%s served by %s (attempt %d/%d, %.0fms)",
                    feature.value,
                    candidate.model,
                    index,
                    len(candidates),
                    duration_ms,
                )
                return ExecutionSucceeded(outcome.output, candidate, attempts)

            kind = "retryable" if isinstance(outcome, RetryableFailure) else "fatal"
            attempts.append(
                Attempt(candidate.model, candidate.provider, kind, outcome.reason, duration_ms)
            )
            last_error = outcome
            logger.warning(
                "%s candidate %s failed (%s, attempt %d/%d, %.0fms): %s",
                feature.value,
                candidate.model,
                kind,
                index,
                len(candidates),
                duration_ms,
                outcome.reason,
            )
            if isinstance(outcome, FatalFailure):
                break

        logger.error(
            "%s: no candidate succeeded after %d attempt(s)",
            feature.value,
            len(attempts),
        )
        return AllFailed(last_error, attempts)


fallback_executor = FallbackExecutor()
