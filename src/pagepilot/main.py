"""
PagePilot entry point.

This file handles startup concerns (arg-parsing, env setup, logging) and launches the appropriate
interface: an interactive agent run, the REST API, or manual tool listing / execution.
"""

import argparse
import asyncio
import json
import logging
import sys
import uuid

from pagepilot.config import (
    AgentConfig,
    settings,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stderr,
    )
    # Reduce SDK transport noise
    for noisy in ("httpx", "httpcore", "openai", "anthropic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Drive a web page with an LLM agent")
    parser.add_argument(
        "--mode",
        choices=["cli", "api", "tools", "call"],
        type=str.lower,
        default="cli",
        help="Run a goal interactively, serve the REST API, list tools, or call one tool "
        "(default: %(default)s)",
    )
    parser.add_argument("--goal", help="Goal for the agent (cli mode)")
    parser.add_argument("--single-turn", action="store_true", help="Stop after one step")
    parser.add_argument("--max-iterations", type=int, default=None)
    parser.add_argument(
        "--approve",
        action="store_true",
        help="Ask before every page tool call (overrides AUTO_APPROVE)",
    )
    parser.add_argument(
        "--allow-iframes",
        action="store_true",
        default=None,
        help="Discover and execute tools in embedded frames",
    )
    parser.add_argument("--bridge-url", default=None, help="Page bridge relay URL")
    parser.add_argument("--planner", default=None, help="Planner backend (default from env)")
    parser.add_argument("--tool", help="Tool name (call mode)")
    parser.add_argument("--args", default="{}", help="JSON arguments (call mode)")
    parser.add_argument("--origin", default=None, help="Origin key (call mode)")
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    return parser


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for the PagePilot application.

    Returns the process exit status: 0 when the run completed, 1 otherwise.
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = _build_parser()
    args = parser.parse_args(argv)

    # Override log level setting with command-line argument
    settings.LOG_LEVEL = args.log_level
    _init_logging(settings.LOG_LEVEL)

    logger.info("Starting PagePilot [%s mode]", args.mode)
    secrets = {"OPENAI_API_KEY", "AZURE_OPENAI_API_KEY", "ANTHROPIC_API_KEY"}
    logger.debug("Settings: %s", settings.model_dump(exclude=secrets))

    if args.mode == "api":
        from pagepilot.api.app import (  # pylint: disable=import-outside-toplevel
            run_api,
        )

        run_api(host="0.0.0.0", port=settings.API_PORT, reload=settings.DEBUG)
        return 0

    # Lazy imports keep the API stack out of terminal modes
    from pagepilot.bridge.http_bridge import (  # pylint: disable=import-outside-toplevel
        HttpBridge,
    )
    from pagepilot.client import cli  # pylint: disable=import-outside-toplevel

    bridge = HttpBridge(base_url=args.bridge_url)
    allow_iframes = (
        settings.ALLOW_EMBEDDED_ORIGINS if args.allow_iframes is None else args.allow_iframes
    )

    if args.mode == "tools":
        asyncio.run(cli.list_tools(bridge, include_embedded=allow_iframes))
        return 0

    if args.mode == "call":
        if not args.tool:
            parser.error("--tool is required in call mode")
        try:
            tool_args = json.loads(args.args)
        except ValueError:
            tool_args = args.args
        ok = asyncio.run(
            cli.call_tool(bridge, args.tool, tool_args, args.origin, allow_iframes)
        )
        return 0 if ok else 1

    if not args.goal:
        parser.error("--goal is required in cli mode")

    from pagepilot.agent.planner_interface import (  # pylint: disable=import-outside-toplevel
        PlannerError,
        load_planner,
    )
    from pagepilot.memory.run_log import (  # pylint: disable=import-outside-toplevel
        event_logger,
    )

    if args.planner:
        settings.PLANNER = args.planner
    if not settings.planner_configured():
        logger.error("Planner '%s' is not configured; set its API key/endpoint", settings.PLANNER)
        return 1
    try:
        planner = load_planner()
    except (PlannerError, ValueError) as exc:
        logger.error("%s", exc)
        return 1

    config = AgentConfig.from_settings(
        max_iterations=1 if args.single_turn else args.max_iterations,
        auto_approve=False if args.approve else None,
        allow_embedded_origins=allow_iframes,
        single_turn=args.single_turn,
    )
    on_event = cli.render_event
    if settings.RUN_LOG_ENABLED:
        on_event = event_logger(str(uuid.uuid4()), forward=cli.render_event)

    terminal = asyncio.run(cli.run_goal(args.goal, bridge, planner, config, on_event=on_event))
    return 0 if terminal.type.value == "completed" else 1


if __name__ == "__main__":
    sys.exit(main())
