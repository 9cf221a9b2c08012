"""
Inceptra Backend — Hugging Face Inference Provider
====================================================

What:  Provider adapter for the Hugging Face Inference API.
Why:   Serves every image-generation and segmentation candidate, the resume
       analysis chat models, and the article fallbacks.
How:   Wraps huggingface_hub's AsyncInferenceClient. Each operation returns
       the client's raw result (a PIL image, a list of segmentation
       elements, a chat completion) for the response normalizer.

Retry classification:
    HTTP 402 (credits exhausted) / 429 (rate or quota exhausted) → retryable
    timeouts (InferenceTimeoutError is a TimeoutError)             → retryable
    anything else (bad model id, 4xx input errors, 5xx)           → fatal
"""

import logging
from typing import Any, Dict, List

from huggingface_hub import AsyncInferenceClient
from huggingface_hub.errors import HfHubHTTPError

from app.config import settings
from app.services.provider_base import InferenceProvider, ProviderError, status_code_of

logger = logging.getLogger(__name__)

# Credit exhaustion (402) and rate/quota exhaustion (429)
RESOURCE_EXHAUSTED_STATUSES = frozenset({402, 429})

# Few denoising steps keeps free-tier latency inside the candidate timeouts
IMAGE_INFERENCE_STEPS = 5


def _translate(exc: HfHubHTTPError, model: str) -> ProviderError:
    status = status_code_of(exc)
    retryable = status in RESOURCE_EXHAUSTED_STATUSES
    logger.warning(
        "Hugging Face %s failed with status %s (retryable=%s): %s",
        model,
        status,
        retryable,
        exc,
    )
    return ProviderError(
        f"huggingface HTTP {status}",
        retryable=retryable,
        status_code=status,
    )


class HuggingFaceProvider(InferenceProvider):
    """Hugging Face Inference API implementation of all three operations."""

    name = "huggingface"

    def __init__(self, token: str = ""):
        token = token or settings.hf_token
        self.configured = bool(token)
        self.client = AsyncInferenceClient(token=token or None)
        logger.info("HuggingFaceProvider initialized (configured=%s)", self.configured)

    async def generate_text(self, model: str, messages: List[Dict[str, str]]) -> Any:
        try:
            return await self.client.chat_completion(messages=messages, model=model)
        except HfHubHTTPError as e:
            raise _translate(e, model) from e

    async def generate_image(self, model: str, prompt: str) -> Any:
        try:
            return await self.client.text_to_image(
                prompt,
                model=model,
                num_inference_steps=IMAGE_INFERENCE_STEPS,
            )
        except HfHubHTTPError as e:
            raise _translate(e, model) from e

    async def segment_image(self, model: str, image: bytes) -> Any:
        try:
            return await self.client.image_segmentation(image, model=model)
        except HfHubHTTPError as e:
            raise _translate(e, model) from e

    async def health_check(self) -> bool:
        """Reports whether a token is configured; probing models would spend credits."""
        return self.configured

    async def close(self) -> None:
        await self.client.close()


huggingface_provider = HuggingFaceProvider()
