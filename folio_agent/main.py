"""
Main entry point — parse args, load config, build the provider, run one query.
"""

from __future__ import annotations
import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from .config.settings import load_config
from .core.agent import run_agent
from .core.error_catalog import classify_error
from .core.models import AgentConfig, AgentStatus
from .core.providers import PROVIDER_PRESETS, ProviderFactory
from .core.structured_logger import setup_structured_logging
from .core.tool_registry import ToolRegistry


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="folio-agent",
        description="Portfolio research agent — ask one question from the command line",
    )
    parser.add_argument("query", help="Question to ask the agent")
    parser.add_argument(
        "-c", "--config",
        help="Path to config YAML file",
        default=None,
    )
    parser.add_argument(
        "-p", "--provider",
        choices=sorted(PROVIDER_PRESETS),
        help="LLM provider preset",
        default=None,
    )
    parser.add_argument(
        "-m", "--model",
        help="Model name to use (default: the preset's model)",
        default=None,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for INFO, -vv for DEBUG)",
    )
    parser.add_argument(
        "--trace",
        action="store_true",
        help="Print the step-by-step run trace as JSON after the answer",
    )
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)

    # Load config
    try:
        config = load_config(args.config)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    # Logging level: -v flags win over the config file
    if args.verbose >= 2:
        log_level = "DEBUG"
    elif args.verbose >= 1:
        log_level = "INFO"
    else:
        log_level = config.get("logging.level", "WARNING")
    json_mode = True if config.get("logging.format") == "json" else None
    setup_structured_logging(json_mode=json_mode, level=log_level)

    logger = logging.getLogger(__name__)

    # Override config with CLI args
    if args.provider:
        config.set("llm.provider", args.provider)
    if args.model:
        config.set("llm.model", args.model)
    logger.debug(f"Loaded {config!r}")

    try:
        provider = ProviderFactory.create(config.raw)
        agent_config = AgentConfig.from_dict(config.get("agent"))
        agent_config.validate()
    except (ValueError, TypeError) as e:
        print(f"Error creating agent: {e}", file=sys.stderr)
        sys.exit(1)

    # Domain tools are supplied by embedding applications; the CLI runs with none
    registry = ToolRegistry()

    try:
        run = asyncio.run(run_agent(args.query, [], agent_config, provider, registry))
    except KeyboardInterrupt:
        print("\nCancelled.", file=sys.stderr)
        sys.exit(130)
    except Exception as e:
        agent_error = classify_error(e)
        logger.debug(f"Run failed: {e!r}")
        print(f"Error: {agent_error.message}", file=sys.stderr)
        sys.exit(1)

    print(run.final_response or "")
    if run.status is AgentStatus.MAX_STEPS_REACHED:
        logger.warning(f"Stopped after {len(run.steps) - 1} steps without a final answer")
    if args.trace:
        print(json.dumps(run.to_dict(), indent=2, default=str))


if __name__ == "__main__":
    main()
