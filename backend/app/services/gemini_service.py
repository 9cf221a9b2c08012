"""
Inceptra Backend — Google Gemini Provider
===========================================

What:  Text-generation provider backed by the Google Gemini API.
Why:   Gemini is the preferred article-generator candidate (fast, cheap,
       generous free tier); Hugging Face chat models back it up.
How:   Maps chat messages onto a GenerativeModel (system prompt →
       system_instruction, user turns → content) and returns the raw
       response. Vendor errors are translated into ProviderError.

Retry classification:
    ResourceExhausted (429, quota)  → retryable, next candidate
    DeadlineExceeded / timeouts     → retryable, next candidate
    anything else (bad key, invalid argument, safety block) → fatal

No retry loop lives here: one call per candidate attempt. Trying another
model is the fallback executor's decision.
"""

import asyncio
import logging
import time
import uuid
from typing import Any, Dict, List

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from app.config import settings
from app.services.provider_base import InferenceProvider, ProviderError, status_code_of

logger = logging.getLogger(__name__)

RETRYABLE_GOOGLE_ERRORS = (
    google_exceptions.ResourceExhausted,
    google_exceptions.DeadlineExceeded,
)


class GeminiProvider(InferenceProvider):
    """
    Google Gemini implementation of the text-generation operation.

    Model objects are created lazily per (model, system prompt) pair and
    reused across requests.
    """

    name = "gemini"

    def __init__(self, api_key: str = ""):
        api_key = api_key or settings.gemini_api_key
        self.configured = bool(api_key)
        if self.configured:
            genai.configure(api_key=api_key)
        self._models: Dict[tuple, Any] = {}
        logger.info("GeminiProvider initialized (configured=%s)", self.configured)

    def _get_model(self, model: str, system_prompt: str) -> Any:
        key = (model, system_prompt)
        if key not in self._models:
            self._models[key] = genai.GenerativeModel(
                model,
                system_instruction=system_prompt or None,
            )
        return self._models[key]

    async def generate_text(self, model: str, messages: List[Dict[str, str]]) -> Any:
        """
        Send the conversation to Gemini and return the raw response.

        Raises:
            ProviderError: retryable for quota exhaustion and deadlines,
                           fatal otherwise.
        """
        call_id = str(uuid.uuid4())[:8]
        system_prompt = "\n".join(m["content"] for m in messages if m["role"] == "system")
        content = "\n\n".join(m["content"] for m in messages if m["role"] != "system")
        start_time = time.time()

        try:
            response = await self._get_model(model, system_prompt).generate_content_async(content)
        except RETRYABLE_GOOGLE_ERRORS as e:
            logger.warning("[%s] Gemini %s exhausted/timed out: %s", call_id, model, e)
            raise ProviderError(
                f"gemini {type(e).__name__}",
                retryable=True,
                status_code=status_code_of(e),
            ) from e
        except TimeoutError:
            raise
        except Exception as e:
            logger.warning("[%s] Gemini %s call failed: %s", call_id, model, e)
            raise ProviderError(
                f"gemini {type(e).__name__}",
                retryable=False,
                status_code=status_code_of(e),
            ) from e

        logger.info(
            "[%s] Gemini %s completed in %.0fms",
            call_id,
            model,
            (time.time() - start_time) * 1000,
        )
        return response

    async def health_check(self) -> bool:
        """
        Check if the Gemini API is reachable.

        Lists models (free, no token cost) to verify key and connectivity.
        """
        if not self.configured:
            return False
        try:
            names = await asyncio.to_thread(lambda: [m.name for m in genai.list_models()])
            target = f"models/{settings.gemini_model}"
            if target not in names:
                logger.warning("Configured model %s not found in available models", target)
            return True
        except Exception as e:
            logger.warning("Gemini health check failed: %s", str(e))
            return False


gemini_provider = GeminiProvider()
