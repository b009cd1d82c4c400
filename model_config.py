"""Model provider selection.

Priority:
  1. ANTHROPIC_API_KEY set → Anthropic API
  2. OPENAI_API_KEY set (or an agency-level OpenAI key) → OpenAI API
  3. GOOGLE_CLOUD_PROJECT set → Vertex AI (service account credentials)
  4. Otherwise → no LLM; agents fall back to heuristics and templated text

Two models are used per provider: a cheap one for weekly chat summaries and
a stronger one for the final classification and the diagnosis. Either can be
overridden with LLM_SUMMARY_MODEL / LLM_ANALYSIS_MODEL.

Usage:
    from model_config import get_llm_settings
    llm = get_llm_settings()
"""
import os
from dataclasses import dataclass
from typing import Optional

# Model identifiers (litellm naming)
ANTHROPIC_SUMMARY_MODEL = "anthropic/claude-haiku-4-5"
ANTHROPIC_ANALYSIS_MODEL = "anthropic/claude-sonnet-4-6"
OPENAI_SUMMARY_MODEL = "gpt-4o-mini"
OPENAI_ANALYSIS_MODEL = "gpt-4o"
VERTEX_SUMMARY_MODEL = "vertex_ai/claude-haiku-4-5@20251001"
VERTEX_ANALYSIS_MODEL = "vertex_ai/claude-sonnet-4-5@20250929"


@dataclass(frozen=True)
class LlmSettings:
    provider: str
    summary_model: str
    analysis_model: str
    api_key: Optional[str] = None


def _with_overrides(settings: LlmSettings) -> LlmSettings:
    return LlmSettings(
        provider=settings.provider,
        summary_model=os.environ.get("LLM_SUMMARY_MODEL", settings.summary_model),
        analysis_model=os.environ.get("LLM_ANALYSIS_MODEL", settings.analysis_model),
        api_key=settings.api_key,
    )


def get_llm_settings(agency_api_key: Optional[str] = None) -> Optional[LlmSettings]:
    """Return the active LLM settings, or None when no credential is configured.

    agency_api_key is an OpenAI key stored (encrypted) on the agency record;
    it is only used when no process-wide key is set.
    """
    if os.environ.get("ANTHROPIC_API_KEY"):
        settings = LlmSettings(
            "anthropic",
            ANTHROPIC_SUMMARY_MODEL,
            ANTHROPIC_ANALYSIS_MODEL,
            os.environ["ANTHROPIC_API_KEY"],
        )
    elif os.environ.get("OPENAI_API_KEY") or agency_api_key:
        settings = LlmSettings(
            "openai",
            OPENAI_SUMMARY_MODEL,
            OPENAI_ANALYSIS_MODEL,
            os.environ.get("OPENAI_API_KEY") or agency_api_key,
        )
    elif os.environ.get("GOOGLE_CLOUD_PROJECT"):
        settings = LlmSettings("vertex_ai", VERTEX_SUMMARY_MODEL, VERTEX_ANALYSIS_MODEL)
    else:
        return None
    return _with_overrides(settings)


def active_provider() -> str:
    """Return 'anthropic', 'openai', 'vertex_ai' or 'none'."""
    settings = get_llm_settings()
    return settings.provider if settings else "none"
