"""Decision agent CLI.

Usage:
    python -m decision_agent                         # reads ./agent.config.json
    python -m decision_agent --config agent.yaml
    python -m decision_agent --log-level DEBUG

Exit codes: 0 when the loop completed (submitted or not), 1 on a fatal
error, 2 when the config file does not exist.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from decision_agent.config import CONFIG_PATH_ENV, DEFAULT_CONFIG_PATH, load_agent_config
from decision_agent.env import load_env_file
from decision_agent.runner import run_config_mode

logger = logging.getLogger("decision_agent")

LOG_FORMAT = "[agent] %(levelname)s %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m decision_agent",
        description="Run the decision loop against the configured model and tool providers.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help=f"Agent config (.json/.yaml). Default: ${CONFIG_PATH_ENV} or {DEFAULT_CONFIG_PATH}",
    )
    parser.add_argument(
        "--keys-file",
        default=None,
        help="KEY=value file loaded into the environment (default: .env)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT)
    logger.info("Starting agent")

    load_env_file(args.keys_file)
    config_path = Path(args.config or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    if not config_path.exists():
        logger.error("Agent config not found: %s", config_path)
        return 2

    try:
        config = load_agent_config(config_path)
        result = asyncio.run(run_config_mode(config))
    except Exception:
        logger.exception("Fatal error")
        return 1

    if not result.submitted:
        logger.warning("Run ended without a submitted decision")
    return 0


if __name__ == "__main__":
    sys.exit(main())
