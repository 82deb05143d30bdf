"""Resolve the configured model to a litellm model handle.

Usage::

    from decision_agent.models import resolve_model

    handle = resolve_model(config.model)
    handle.litellm_model   # "anthropic/claude-sonnet-4-5"
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from decision_agent.config import ModelConfig
from decision_agent.errors import ConfigurationError

logger = logging.getLogger(__name__)

API_KEY_ENV = "LLM_API_KEY"

PROVIDER_PREFIXES: dict[str, str] = {
    "xai": "xai",
    "openai": "openai",
    "anthropic": "anthropic",
    "google": "gemini",
}
"""Known providers → litellm route prefix."""

OPENAI_COMPATIBLE_PREFIX = "openai"
"""Route for unknown providers that give a base_url (OpenAI-compatible chat API)."""


@dataclass(frozen=True)
class ModelHandle:
    """Everything litellm needs to call the configured model."""

    litellm_model: str
    api_key: str = field(repr=False)
    api_base: str | None = None
    provider: str = ""


def resolve_model(
    model_config: ModelConfig,
    env: Mapping[str, str] | None = None,
) -> ModelHandle:
    """Map ``{provider, model_id, base_url?}`` to a ModelHandle.

    Raises:
        ConfigurationError: If LLM_API_KEY is missing, or the provider is
            unknown and no base_url is configured.
    """
    env = os.environ if env is None else env
    api_key = env.get(API_KEY_ENV)
    if not api_key:
        raise ConfigurationError(f"Missing {API_KEY_ENV} env var")

    provider = model_config.provider.strip().lower()
    prefix = PROVIDER_PREFIXES.get(provider)
    if prefix is not None:
        handle = ModelHandle(
            litellm_model=f"{prefix}/{model_config.model_id}",
            api_key=api_key,
            provider=provider,
        )
    elif model_config.base_url:
        handle = ModelHandle(
            litellm_model=f"{OPENAI_COMPATIBLE_PREFIX}/{model_config.model_id}",
            api_key=api_key,
            api_base=model_config.base_url,
            provider=provider,
        )
    else:
        raise ConfigurationError(
            f'Unknown provider "{model_config.provider}" with no base_url',
            details={"provider": model_config.provider},
        )

    logger.debug("Resolved model %s (api_base=%s)", handle.litellm_model, handle.api_base)
    return handle


__all__ = [
    "API_KEY_ENV",
    "ModelHandle",
    "PROVIDER_PREFIXES",
    "resolve_model",
]
