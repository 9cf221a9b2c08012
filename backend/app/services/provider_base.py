"""
Inceptra Backend — Abstract Inference Provider Interface
==========================================================

What:  Abstract base class defining the contract for inference providers.
Why:   The fallback executor walks candidates served by different vendors
       (Gemini, Hugging Face). A common interface lets a candidate name its
       provider by key and keeps vendor SDK details inside each adapter.
How:   Concrete providers override the operations they support and translate
       their SDK's errors into ProviderError, setting `retryable` when the
       upstream signalled resource/credit exhaustion or a transport timeout.

Error contract:
    ProviderError(retryable=True)   → the executor moves to the next candidate
    ProviderError(retryable=False)  → the executor stops (fatal)
    TimeoutError                    → treated as retryable by the executor
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class ProviderError(Exception):
    """
    A provider call failed.

    Attributes:
        reason:      Short operator-facing description (logged, never returned)
        retryable:   True when another candidate may succeed
        status_code: Upstream HTTP status, when the SDK exposed one
    """

    def __init__(
        self,
        reason: str,
        retryable: bool = False,
        status_code: Optional[int] = None,
    ):
        super().__init__(reason)
        self.reason = reason
        self.retryable = retryable
        self.status_code = status_code


class UnsupportedOperationError(ProviderError):
    """The candidate's provider does not implement the requested operation."""

    def __init__(self, provider: str, operation: str):
        super().__init__(f"{provider} does not support {operation}", retryable=False)


class InferenceProvider(ABC):
    """
    Abstract interface for third-party inference backends.

    Every operation returns the provider's raw payload untouched; converting
    it to the canonical shape is the response normalizer's job.
    """

    name = "provider"

    async def generate_text(
        self,
        model: str,
        messages: List[Dict[str, str]],
    ) -> Any:
        """
        Run a chat-style text generation.

        Args:
            model:    Provider-specific model identifier
            messages: [{"role": "system"|"user", "content": "..."}]
        """
        raise UnsupportedOperationError(self.name, "text generation")

    async def generate_image(self, model: str, prompt: str) -> Any:
        """Generate an image from a text prompt."""
        raise UnsupportedOperationError(self.name, "image generation")

    async def segment_image(self, model: str, image: bytes) -> Any:
        """Produce a foreground mask for an encoded image."""
        raise UnsupportedOperationError(self.name, "image segmentation")

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check whether the provider is reachable and configured.

        Must not consume generation quota. Returns False instead of raising.
        """
        ...

    async def close(self) -> None:
        """Release network resources held by the provider (called on shutdown)."""
        return None


def status_code_of(exc: BaseException) -> Optional[int]:
    """
    Best-effort extraction of an HTTP status from an SDK exception.

    Covers `exc.response.status_code` (requests/httpx style), `exc.status`
    (aiohttp style) and `exc.code` when it is an int (google.api_core style).
    """
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    if isinstance(status, int):
        return status
    for attr in ("status", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None
