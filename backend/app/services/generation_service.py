"""
Inceptra Backend — Generation Service (Request Orchestrator)
==============================================================

What:  The single entry point the routes use to run a generation request.
Why:   Keeps the order of operations (validate → quota → fallback → record)
       in one place, independent of HTTP concerns.
How:   Composes the upload preparation service, the quota ledger, the
       fallback executor, the response normalizer and the generation
       recorder. Like every service here it is stateless per request: the
       GenerationStore is passed in for each call.

Orchestration Flow:
    ┌──────────┐   ┌──────────┐   ┌─────────────────────┐   ┌──────────┐
    │ Validate │──▶│  Quota   │──▶│  Fallback executor  │──▶│  Record  │
    │  input   │   │  ledger  │   │  (candidate walk +  │   │ history  │
    └──────────┘   └──────────┘   │   normalization)    │   └──────────┘
                                  └─────────────────────┘

    Validation failure → ValidationError, nothing else runs
    Quota denied       → QuotaExceededError, no provider call
    All candidates fail→ GenerationFailedError, nothing recorded
    Record fails       → logged; the user still receives the output
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from app.config import settings
from app.exceptions import (
    GenerationFailedError,
    QuotaExceededError,
    StorageUnavailableError,
    ValidationError,
)
from app.schemas.generation import Feature, HistoryResponse, UsageResponse
from app.services.candidates import FeaturePolicy, ProviderCandidate, build_feature_policies
from app.services.fallback_executor import AllFailed, FallbackExecutor, fallback_executor
from app.services.file_service import FileService, file_service
from app.services.generation_recorder import GenerationRecorder, generation_recorder
from app.services.generation_store import GenerationStore
from app.services.gemini_service import gemini_provider
from app.services.huggingface_service import huggingface_provider
from app.services.normalizer import ResponseNormalizer, response_normalizer
from app.services.provider_base import InferenceProvider, ProviderError
from app.services.quota_service import Clock, Denied, QuotaLedger

logger = logging.getLogger(__name__)

ARTICLE_SYSTEM_PROMPT = (
    "You are a professional content writer. Write well-structured, engaging "
    "articles with a clear title, an introduction, body sections and a conclusion."
)

RESUME_SYSTEM_PROMPT = (
    "You are a professional career advisor. Provide feedback on resume strengths, "
    "weaknesses, missing skills, and suggest relevant job roles."
)

# Key of the canonical output in the response body and the history record
OUTPUT_KEYS = {
    Feature.ARTICLE: "content",
    Feature.IMAGE: "image",
    Feature.BACKGROUND_REMOVAL: "image",
    Feature.RESUME: "analysis",
}

FEATURE_LABELS = {
    Feature.ARTICLE: "Article generation",
    Feature.IMAGE: "Image generation",
    Feature.BACKGROUND_REMOVAL: "Background removal",
    Feature.RESUME: "Resume analysis",
}


@dataclass
class PreparedRequest:
    """Validated input, ready for the candidate walk."""

    invoke: Callable[[ProviderCandidate], Awaitable[Any]]
    normalize: Callable[[Any], str]
    record_input: Dict[str, Any]


def build_image_prompt(prompt: str, style: Optional[str] = None, size: Optional[str] = None) -> str:
    """Append the optional style and size hints to the user's prompt."""
    full_prompt = prompt
    if style:
        full_prompt += f", style: {style}"
    if size:
        full_prompt += f", size: {size}"
    return full_prompt


def build_article_messages(prompt: str, length: Optional[int] = None) -> List[Dict[str, str]]:
    instruction = f"Write an article about: {prompt}"
    if length:
        instruction += f"\nThe article should be approximately {length} words long."
    return [
        {"role": "system", "content": ARTICLE_SYSTEM_PROMPT},
        {"role": "user", "content": instruction},
    ]


class GenerationService:
    """
    Orchestrates generation requests for every feature.

    Args:
        providers: Provider adapters keyed by the candidate `provider` field
        policies:  FeaturePolicy table (candidates + daily limit per feature)
        clock:     Source of "now" for the quota window
    """

    def __init__(
        self,
        providers: Dict[str, InferenceProvider],
        policies: Optional[Dict[Feature, FeaturePolicy]] = None,
        executor: Optional[FallbackExecutor] = None,
        normalizer: Optional[ResponseNormalizer] = None,
        recorder: Optional[GenerationRecorder] = None,
        files: Optional[FileService] = None,
        clock: Optional[Clock] = None,
    ):
        self.providers = providers
        self.policies = policies or build_feature_policies()
        self.executor = executor or fallback_executor
        self.normalizer = normalizer or response_normalizer
        self.recorder = recorder or generation_recorder
        self.files = files or file_service
        self.ledger = QuotaLedger(self.policies, clock=clock)

    # ── Provider dispatch ─────────────────────────────────────────────────

    def _provider(self, candidate: ProviderCandidate) -> InferenceProvider:
        provider = self.providers.get(candidate.provider)
        if provider is None:
            raise ProviderError(f"no provider registered as '{candidate.provider}'")
        return provider

    # ── Input preparation (runs before the quota check) ──────────────────

    def _validate_prompt(self, raw_input: Dict[str, Any]) -> str:
        prompt = (raw_input.get("prompt") or "").strip()
        if len(prompt) < settings.min_prompt_length:
            raise ValidationError(
                message=f"Prompt must be at least {settings.min_prompt_length} characters long.",
                field="prompt",
            )
        return prompt

    async def _prepare(self, feature: Feature, raw_input: Dict[str, Any]) -> PreparedRequest:
        if feature is Feature.ARTICLE:
            prompt = self._validate_prompt(raw_input)
            length = raw_input.get("length")
            messages = build_article_messages(prompt, length)

            async def invoke(candidate: ProviderCandidate) -> Any:
                return await self._provider(candidate).generate_text(candidate.model, messages)

            record_input = {"prompt": prompt}
            if length:
                record_input["length"] = length
            return PreparedRequest(
                invoke=invoke,
                normalize=lambda payload: self.normalizer.normalize(feature, payload),
                record_input=record_input,
            )

        if feature is Feature.IMAGE:
            prompt = self._validate_prompt(raw_input)
            style, size = raw_input.get("style"), raw_input.get("size")
            full_prompt = build_image_prompt(prompt, style, size)

            async def invoke(candidate: ProviderCandidate) -> Any:
                return await self._provider(candidate).generate_image(candidate.model, full_prompt)

            return PreparedRequest(
                invoke=invoke,
                normalize=lambda payload: self.normalizer.normalize(feature, payload),
                record_input={"prompt": prompt, "style": style, "size": size},
            )

        if feature is Feature.BACKGROUND_REMOVAL:
            original: bytes = raw_input.get("image") or b""
            compressed = await self.files.prepare_image(original)

            async def invoke(candidate: ProviderCandidate) -> Any:
                return await self._provider(candidate).segment_image(candidate.model, compressed)

            return PreparedRequest(
                invoke=invoke,
                normalize=lambda payload: self.normalizer.normalize_background_removal(
                    original, payload
                ),
                record_input={"filename": raw_input.get("filename") or ""},
            )

        if feature is Feature.RESUME:
            text = await self.files.extract_resume_text(raw_input.get("file") or b"")
            messages = [
                {"role": "system", "content": RESUME_SYSTEM_PROMPT},
                {"role": "user", "content": text},
            ]

            async def invoke(candidate: ProviderCandidate) -> Any:
                return await self._provider(candidate).generate_text(candidate.model, messages)

            return PreparedRequest(
                invoke=invoke,
                normalize=lambda payload: self.normalizer.normalize(feature, payload),
                record_input={"filename": raw_input.get("filename") or ""},
            )

        raise ValidationError(message=f"Unsupported feature '{feature}'.", field="feature")

    # ── Public operations ─────────────────────────────────────────────────

    async def handle_generation_request(
        self,
        store: GenerationStore,
        user_id: str,
        feature: Feature,
        raw_input: Dict[str, Any],
    ) -> Dict[str, str]:
        """
        Run one generation request end to end.

        Returns:
            {"content": ...} for articles, {"image": ...} for image features,
            {"analysis": ...} for resumes

        Raises:
            ValidationError:       bad input (before quota or providers)
            UserNotFoundError:     identity and storage disagree
            QuotaExceededError:    daily limit reached (no provider call)
            GenerationFailedError: no candidate produced output
        """
        prepared = await self._prepare(feature, raw_input)

        admission = await self.ledger.check_and_admit(store, user_id, feature)
        if isinstance(admission, Denied):
            raise QuotaExceededError(
                feature=feature.value,
                limit=admission.limit,
                reset_time=admission.reset_time,
            )

        policy = self.policies[feature]
        result = await self.executor.execute(
            feature,
            policy.candidates,
            prepared.invoke,
            prepared.normalize,
        )

        if isinstance(result, AllFailed):
            raise self._failure(feature, result)

        output = {OUTPUT_KEYS[feature]: result.output}
        try:
            await self.recorder.record(store, user_id, feature, prepared.record_input, output)
        except StorageUnavailableError as e:
            # History is best-effort; the output is returned regardless
            logger.error(
                "History write failed for %s generation by user %s: %s",
                feature.value,
                user_id,
                e.context,
            )
        return output

    def _failure(self, feature: Feature, result: AllFailed) -> GenerationFailedError:
        label = FEATURE_LABELS[feature]
        if result.fatal:
            code, message = "generation_failed", f"{label} failed. Please try again later."
        elif result.timed_out:
            code, message = "provider_timeout", f"{label} timed out. Please try again."
        else:
            code, message = (
                "provider_unavailable",
                f"{label} is temporarily unavailable. Please try again later.",
            )
        return GenerationFailedError(
            message=message,
            code=code,
            context={
                "feature": feature.value,
                "attempts": [
                    {"model": a.model, "outcome": a.outcome, "reason": a.reason}
                    for a in result.attempts
                ],
            },
        )

    async def get_usage(self, store: GenerationStore, user_id: str) -> UsageResponse:
        return await self.ledger.get_usage(store, user_id)

    async def list_history(
        self,
        store: GenerationStore,
        user_id: str,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
        page: int = 1,
    ) -> HistoryResponse:
        return await self.recorder.list_history(store, user_id, limit, cursor, page)

    async def close(self) -> None:
        for provider in self.providers.values():
            await provider.close()


# ── Singleton Instance ────────────────────────────────────────────────────
generation_service = GenerationService(
    providers={
        gemini_provider.name: gemini_provider,
        huggingface_provider.name: huggingface_provider,
    },
)
