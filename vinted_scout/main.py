"""
Command line entry point for the Vinted scout.

    vinted-scout search "dragon quest 11 switch" --cookies-file cookies.txt
    vinted-scout alerts --cookies-file cookies.txt

Results are printed as JSON on stdout. Exit codes: 0 success, 1 failed or
partial run, 2 credential problems.
"""

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import List, Optional

from .models.query import Query
from .orchestrator import ScoutOrchestrator
from .utils.error_handling import AuthExpired, MissingCredential
from .utils.logging import get_logger

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CREDENTIALS = 2

COOKIES_ENV_VAR = "VINTED_COOKIES"


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", help="Path to the configuration file")
    common.add_argument(
        "--cookies-file",
        help=f"File holding the browser cookie string (defaults to ${COOKIES_ENV_VAR})",
    )

    parser = argparse.ArgumentParser(prog="vinted-scout", description=__doc__.strip().splitlines()[0])
    subparsers = parser.add_subparsers(dest="command", required=True)

    search = subparsers.add_parser("search", parents=[common], help="Run an ad hoc search")
    search.add_argument("text", help="Free-text query")
    search.add_argument("--max-pages", type=int, help="Maximum number of pages to fetch")
    search.add_argument("--min-score", type=float, help="Minimum relevance score (0-100)")
    search.add_argument("--price-from", type=float)
    search.add_argument("--price-to", type=float)
    search.add_argument("--platform", help="Platform hint, e.g. switch or ps5")
    search.add_argument("--only-new", action="store_true", help="Skip listings seen before")
    search.add_argument("--remember", action="store_true", help="Mark returned listings as seen")

    alerts = subparsers.add_parser("alerts", parents=[common], help="Check every active price alert once")
    alerts.add_argument("--max-concurrent", type=int, help="Alerts checked in parallel")

    return parser


def read_cookies(cookies_file: Optional[str]) -> Optional[str]:
    if cookies_file:
        return Path(cookies_file).read_text(encoding="utf-8").strip()
    return os.getenv(COOKIES_ENV_VAR)


def _print_json(payload):
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def run(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, run the command and return the exit code."""
    args = build_parser().parse_args(argv)
    logger = get_logger("main")

    orchestrator = ScoutOrchestrator(config_path=args.config)
    if not orchestrator.initialize():
        _print_json({"success": False, "error": "initialization failed, see logs"})
        return EXIT_FAILED

    try:
        cookies = read_cookies(args.cookies_file)
        if args.command == "search":
            query = Query(
                text=args.text,
                price_from=args.price_from,
                price_to=args.price_to,
                platform_hint=args.platform,
                min_relevance_score=(
                    args.min_score if args.min_score is not None
                    else orchestrator.config.scoring.min_score
                ),
            )
            outcome = orchestrator.search(
                cookies,
                query,
                max_pages=args.max_pages,
                exclude_seen=args.only_new,
                remember=args.remember,
            )
            _print_json(outcome.to_dict())
            return EXIT_OK if outcome.success else EXIT_FAILED

        summary = asyncio.run(orchestrator.run_alerts(cookies, args.max_concurrent))
        _print_json(summary.to_dict())
        return EXIT_OK if summary.success else EXIT_FAILED

    except (MissingCredential, AuthExpired) as e:
        logger.error("Credential problem", extra={"error_type": type(e).__name__, "error": str(e)})
        _print_json({"success": False, "error": f"{type(e).__name__}: {e}"})
        return EXIT_CREDENTIALS
    except (OSError, ValueError) as e:
        logger.error("Command failed", extra={"error": str(e)}, exc_info=True)
        _print_json({"success": False, "error": str(e)})
        return EXIT_FAILED
    finally:
        orchestrator.shutdown()


def main():
    """Console script entry point."""
    try:
        sys.exit(run())
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        sys.exit(EXIT_FAILED)


if __name__ == "__main__":
    main()
