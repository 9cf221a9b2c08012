"""
Inceptra Backend — Provider Candidate Lists
=============================================

What:  Per-feature, ordered lists of model candidates with timeout budgets,
       packaged with the feature's daily limit as a FeaturePolicy.
Why:   The fallback executor needs an explicit table instead of model names
       and limits scattered through route handlers.
How:   DEFAULT_CANDIDATES holds the built-in preference order (most capable
       or most available first). build_feature_policies() overlays the
       Settings overrides and returns one immutable policy per feature.

Worst-case latency of a request is the sum of its candidates' timeouts, so
lists are kept short.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from app.config import Settings, settings as default_settings
from app.schemas.generation import Feature

GEMINI = "gemini"
HUGGINGFACE = "huggingface"


@dataclass(frozen=True)
class ProviderCandidate:
    """One model eligible to serve a feature."""

    model: str
    timeout: float  # seconds
    provider: str = HUGGINGFACE


@dataclass(frozen=True)
class FeaturePolicy:
    """Candidates (in preference order) and free-tier daily limit for one feature."""

    feature: Feature
    candidates: Tuple[ProviderCandidate, ...]
    daily_limit: int

    @property
    def worst_case_latency(self) -> float:
        return sum(c.timeout for c in self.candidates)


def default_candidates(gemini_model: str) -> Dict[Feature, Tuple[ProviderCandidate, ...]]:
    """Built-in candidate table. The Gemini model name comes from settings."""
    return {
        Feature.ARTICLE: (
            ProviderCandidate(gemini_model, 30, GEMINI),
            ProviderCandidate("meta-llama/Llama-3.1-8B-Instruct", 40),
            ProviderCandidate("mistralai/Mistral-7B-Instruct-v0.3", 35),
        ),
        Feature.IMAGE: (
            ProviderCandidate("black-forest-labs/FLUX.1-dev", 90),
            ProviderCandidate("stabilityai/stable-diffusion-xl-base-1.0", 75),
            ProviderCandidate("runwayml/stable-diffusion-v1-5", 60),
        ),
        Feature.BACKGROUND_REMOVAL: (
            ProviderCandidate("briaai/RMBG-2.0", 60),
            ProviderCandidate("CIDAS/clipseg-rd64-refined", 60),
            ProviderCandidate("rembg/rembg", 60),
        ),
        Feature.RESUME: (
            ProviderCandidate("deepseek-ai/DeepSeek-R1-0528", 45),
            ProviderCandidate("meta-llama/Llama-3.1-8B-Instruct", 40),
            ProviderCandidate("microsoft/DialoGPT-medium", 35),
        ),
    }


def build_feature_policies(
    config: Optional[Settings] = None,
) -> Dict[Feature, FeaturePolicy]:
    """
    Build the FeaturePolicy table from configuration.

    Candidate overrides replace a feature's whole list; features without an
    override keep the built-in list. Unknown feature keys are ignored.
    """
    config = config or default_settings
    table = default_candidates(config.gemini_model)

    for key, overrides in (config.feature_candidates or {}).items():
        try:
            feature = Feature(key)
        except ValueError:
            continue
        table[feature] = tuple(
            ProviderCandidate(c.model, c.timeout, c.provider) for c in overrides
        )

    return {
        feature: FeaturePolicy(
            feature=feature,
            candidates=candidates,
            daily_limit=config.daily_limits.get(feature.value, config.default_daily_limit),
        )
        for feature, candidates in table.items()
    }
