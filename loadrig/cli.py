from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional, Sequence

from dotenv import load_dotenv

from loadrig.catalog import Catalog
from loadrig.config import get_settings
from loadrig.exceptions import ConfigurationError
from loadrig.runner import ExitCode, RunOverrides, Runner
from loadrig.schedule import Stage
from loadrig.summary import format_summary

EXAMPLES = """\
Examples:
  loadrig basic-load
  loadrig stress-test --summary-export=results.json
  loadrig basic-load --vus 50 --duration 30s
  loadrig spike-test --stage 10s:50 --stage 20s:50 --stage 5s:0
"""


def _parse_stage(value: str) -> Stage:
    duration, sep, target = value.rpartition(":")
    if not sep or not duration:
        raise argparse.ArgumentTypeError(
            f"invalid stage {value!r} (expected DURATION:TARGET, e.g. 30s:10)"
        )
    try:
        return Stage.parse((duration, int(target)))
    except (ValueError, ConfigurationError) as exc:
        raise argparse.ArgumentTypeError(f"invalid stage {value!r}: {exc}") from exc


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="loadrig",
        description="Run a load test scenario against the target service.",
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("test", nargs="?", help="Scenario name (see --list).")
    parser.add_argument("--list", action="store_true", help="List all available tests.")
    parser.add_argument("--base-url", help="Target base URL override.")
    parser.add_argument("--vus", type=int, help="Constant number of virtual users.")
    parser.add_argument("--duration", help="Run length for --vus, e.g. 30s or 1m.")
    parser.add_argument(
        "--stage",
        action="append",
        type=_parse_stage,
        metavar="DURATION:TARGET",
        help="Replace the scenario's stages (repeatable).",
    )
    parser.add_argument("--summary-export", help="Write the JSON summary to this path.")
    parser.add_argument(
        "--no-thresholds", action="store_true", help="Skip threshold evaluation."
    )
    parser.add_argument("--seed", type=int, help="Seed for per-VU randomness.")
    parser.add_argument(
        "--progress", action="store_true", help="Log progress to stderr every second."
    )
    parser.add_argument(
        "--skip-env-check",
        action="store_true",
        help="Do not probe (or start) the target before running.",
    )
    parser.add_argument("--log-level", help="Logging level (default from LOADRIG_LOG_LEVEL).")
    return parser


def _format_listing(catalog: Catalog) -> str:
    lines = ["Available tests:", ""]
    for name, description in catalog.descriptions().items():
        lines.append(f"  {name}")
        lines.append(f"    {description}")
    return "\n".join(lines)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        settings = get_settings()
    except ConfigurationError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return int(ExitCode.CONFIGURATION_ERROR)
    _configure_logging(args.log_level or settings.log_level)

    runner = Runner(settings)

    if args.list:
        print(_format_listing(runner.catalog))
        return int(ExitCode.OK)

    if not args.test:
        parser.print_help()
        print()
        print(_format_listing(runner.catalog))
        return int(ExitCode.OK)

    stages: Optional[List[Stage]] = args.stage
    overrides = RunOverrides(
        base_url=args.base_url,
        vus=args.vus,
        duration=args.duration,
        stages=stages,
        summary_export=args.summary_export,
        no_thresholds=args.no_thresholds,
        seed=args.seed,
        progress=args.progress,
    )

    outcome = asyncio.run(
        runner.run_async(
            args.test,
            overrides,
            check_environment=not args.skip_env_check,
            handle_signals=True,
        )
    )

    if outcome.error is not None:
        print(f"Error: {outcome.error.message}", file=sys.stderr)
        if outcome.exit_code == ExitCode.CONFIGURATION_ERROR and args.test not in runner.catalog:
            print(_format_listing(runner.catalog), file=sys.stderr)
    if outcome.summary is not None:
        print(format_summary(outcome.summary))

    if outcome.exit_code == ExitCode.OK:
        print("Test completed successfully", file=sys.stderr)
    else:
        print(f"Test failed with exit code {int(outcome.exit_code)}", file=sys.stderr)
    return int(outcome.exit_code)


if __name__ == "__main__":
    sys.exit(main())
