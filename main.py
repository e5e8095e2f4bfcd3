"""
OOREP client entry point.

Runs one repertory search and prints the result as JSON:

    python main.py "head pain" --repertory kent --max-results 5
"""

import argparse
import asyncio
import json
import sys

from loguru import logger

from oorep.client import OOREPClient
from oorep.services.errors import OOREPError, sanitize_error
from oorep.settings import Settings, configure_logging
from oorep.tools import ToolName, execute_tool


def parse_cli(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Search the OOREP repertory")
    parser.add_argument("symptom", help="Symptom to search for")
    parser.add_argument("--repertory", default=None)
    parser.add_argument("--min-weight", type=int, default=None)
    parser.add_argument("--max-results", type=int, default=None)
    parser.add_argument("--base-url", default=None)
    parser.add_argument("--timeout", type=int, default=None, help="Timeout in ms")
    parser.add_argument("--log-level", default=None)
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    args = parse_cli(argv)

    overrides = {
        "base_url": args.base_url,
        "timeout_ms": args.timeout,
        "log_level": args.log_level,
    }
    try:
        settings = Settings.from_env(**{k: v for k, v in overrides.items() if v is not None})
    except OOREPError as e:
        logger.error(str(e))
        return 2
    configure_logging(settings.log_level)

    arguments = {"symptom": args.symptom}
    if args.repertory:
        arguments["repertory"] = args.repertory
    if args.min_weight is not None:
        arguments["minWeight"] = args.min_weight
    if args.max_results is not None:
        arguments["maxResults"] = args.max_results

    async with OOREPClient(settings) as client:
        try:
            result = await execute_tool(client, ToolName.SEARCH_REPERTORY.value, arguments)
        except Exception as e:
            logger.debug(f"Search failed: {e!r}")
            print(f"Error: {sanitize_error(e)}", file=sys.stderr)
            return 1

    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
