#!/usr/bin/env python3
"""
GQL Intel - Capture Runner

Extracts GraphQL operations from a live browser session (or a recorded HAR):
1. Browse: Chromium opens the target, keep browsing to trigger traffic
2. Capture: GraphQL requests/responses recorded as they happen
3. Extract: every JavaScript asset downloaded and scanned for operations
4. Export: .graphql, .json and _detailed.log files in the output directory

Usage:
    python run_capture.py --domain https://example.com
    python run_capture.py --domain example.com --timeout 120 --headless
    python run_capture.py --har session.har --output-dir results
"""

import argparse
import asyncio
import sys

from gql_intel.engine import CaptureEngine
from gql_intel.errors import CaptureRunError
from gql_intel.probers.har_replay import HarEventSource
from gql_intel.utils.logger import configure_logging, get_logger
from gql_intel.utils.settings import load_settings

logger = get_logger(__name__)


def normalize_target(domain: str) -> str:
    if not domain.startswith(("http://", "https://")):
        return f"https://{domain}"
    return domain


def build_parser():
    parser = argparse.ArgumentParser(description="GQL Intel - GraphQL operation capture")
    parser.add_argument("--domain", type=str, help="Target domain or URL to browse")
    parser.add_argument("--har", type=str, help="Replay a recorded HAR file instead of opening a browser")
    parser.add_argument("--timeout", type=float, help="Overall timeout in seconds")
    parser.add_argument("--progress", type=float, help="Progress report interval in seconds")
    parser.add_argument("--output-dir", type=str, help="Directory for the exported files")
    parser.add_argument("--headless", action="store_true", help="Run the browser without a window")
    parser.add_argument("--config", type=str, help="YAML config file")
    parser.add_argument("--log-level", type=str, help="Logging level (DEBUG, INFO, ...)")
    return parser


def apply_arguments(settings, args):
    if args.timeout is not None:
        settings["capture"]["timeout"] = args.timeout
    if args.progress is not None:
        settings["capture"]["progress_interval"] = args.progress
    if args.output_dir:
        settings["output"]["dir"] = args.output_dir
    if args.headless:
        settings["browser"]["headless"] = True
    if args.log_level:
        settings["logging"]["level"] = args.log_level.upper()
    return settings


def make_source(args, settings):
    if args.har:
        return HarEventSource(args.har, channel_size=settings["capture"]["channel_size"])
    from gql_intel.probers.playwright_probe import PlaywrightEventSource
    return PlaywrightEventSource(settings)


async def capture(args, settings) -> int:
    target = normalize_target(args.domain) if args.domain else args.har
    engine = CaptureEngine(settings)
    source = make_source(args, settings)

    logger.info("=" * 60)
    logger.info(f"Starting GraphQL capture for: {target}")
    logger.info(f"Timeout: {settings['capture']['timeout']}s")
    logger.info("=" * 60)

    try:
        result = await engine.run(source, target)
    except CaptureRunError as e:
        logger.error(f"Capture failed: {e}")
        if e.result is not None:
            logger.error(f"Partial results exported: {len(e.result.operations)} operations")
        return 1
    finally:
        engine.fetcher.close()

    for formatter, error in result.report.errors.items():
        logger.error(f"Export {formatter} failed: {error}")
    logger.info(f"Stopped: {result.terminated_by}")
    return 0 if result.report.ok else 1


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.domain and not args.har:
        parser.print_usage(sys.stderr)
        print("error: --domain is required unless --har is given", file=sys.stderr)
        return 1

    settings = apply_arguments(load_settings(args.config), args)
    configure_logging(settings["logging"]["level"], settings["logging"].get("file"))

    try:
        return asyncio.run(capture(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 1


if __name__ == "__main__":
    sys.exit(main())
