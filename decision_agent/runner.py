"""Config mode: connect tool providers, run the decision loop, tear down."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping

from decision_agent.config import AgentConfig, RunSettings
from decision_agent.decision_loop import DecisionRunResult, run_decision_loop
from decision_agent.mcp_servers import ToolProviderPool
from decision_agent.models import resolve_model

logger = logging.getLogger(__name__)


async def run_config_mode(
    config: AgentConfig,
    env: Mapping[str, str] | None = None,
    settings: RunSettings | None = None,
) -> DecisionRunResult:
    """Resolve the model, aggregate tools, and run one decision loop.

    The model is resolved before any provider is contacted, so a missing
    LLM_API_KEY fails without opening connections. Every connected provider
    is closed when the loop ends, whether it returned or raised.
    """
    env = os.environ if env is None else env
    settings = settings or RunSettings.from_env(env)
    model = resolve_model(config.model, env)

    async with ToolProviderPool(config.tool_providers, env, settings.init_timeout) as pool:
        logger.info("Running decision loop with %s...", model.litellm_model)
        result = await run_decision_loop(pool.tools, config, settings=settings, model=model)
        logger.info("Decision loop complete (submitted=%s)", result.submitted)
    return result
