"""Initialize the LLM backend from environment variables.

Provider selection lives in model_config. This module only configures
process-wide litellm state:
  - Vertex AI project/location when Vertex is the active provider
  - Langfuse success/failure callbacks when LANGFUSE_PUBLIC_KEY is set

Call init_llm() once at process start (the CLI does).
"""
import logging
import os

import litellm

from model_config import active_provider

logger = logging.getLogger(__name__)


def init_llm() -> None:
    """Initialize the active LLM provider."""
    provider = active_provider()
    if provider == "vertex_ai":
        litellm.vertex_project = os.environ["GOOGLE_CLOUD_PROJECT"]
        litellm.vertex_location = os.environ.get("GOOGLE_CLOUD_LOCATION", "us-east5")
        logger.info(
            "LLM provider: Vertex AI (project=%s, location=%s)",
            litellm.vertex_project,
            litellm.vertex_location,
        )
    elif provider == "none":
        logger.info("LLM provider: none, heuristic scoring and templated diagnosis only")
    else:
        logger.info("LLM provider: %s", provider)

    if os.environ.get("LANGFUSE_PUBLIC_KEY"):
        litellm.success_callback = ["langfuse"]
        litellm.failure_callback = ["langfuse"]
