"""CLI for running a single WAF test."""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Dict, List, Optional

from ..core.models import ConfigError, FinalResult, TestConfig
from ..core.payloads import PayloadPool
from ..core.session import SessionCoordinator
from ..results.aggregator import ResultAggregator
from ..results.charts import generate_charts
from ..results.exporter import DEFAULT_EXPORTS_DIR, EXPORT_FORMATS, export_results

logger = logging.getLogger(__name__)


def parse_headers(values: Optional[List[str]]) -> Dict[str, str]:
    """Turn repeated ``Name: value`` arguments into a header dict."""
    headers: Dict[str, str] = {}
    for value in values or []:
        name, sep, header_value = value.partition(":")
        if not sep or not name.strip():
            raise ConfigError(f"Invalid header '{value}', expected 'Name: value'")
        headers[name.strip()] = header_value.strip()
    return headers


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Send controlled traffic at a target to observe WAF and rate-limit behaviour"
    )

    parser.add_argument(
        "--target-url",
        type=str,
        required=True,
        help="URL to send requests to",
    )
    parser.add_argument(
        "--requests",
        type=int,
        required=True,
        help="Total number of requests to send (1-10000)",
    )
    parser.add_argument(
        "--duration",
        type=int,
        required=True,
        help="Seconds to spread the requests over (1-3600)",
    )

    # Traffic shape
    parser.add_argument(
        "--traffic-type",
        choices=["normal", "attack"],
        default="normal",
        help="Send normal requests or requests carrying attack payloads (default: normal)",
    )
    parser.add_argument(
        "--test-mode",
        choices=["baseline", "burst"],
        default="baseline",
        help="Spread requests evenly or front-load them into the first half (default: baseline)",
    )
    parser.add_argument(
        "--error-mode",
        action="store_true",
        help="Append a random nonexistent path to force 404s (normal traffic only)",
    )

    # Request contents
    parser.add_argument(
        "--method",
        type=str,
        default="GET",
        help="HTTP method (default: GET)",
    )
    parser.add_argument(
        "--header",
        action="append",
        metavar="'NAME: VALUE'",
        help="Custom request header, may be repeated",
    )
    parser.add_argument(
        "--body",
        type=str,
        default="",
        help="Request body (sent as application/json)",
    )
    parser.add_argument(
        "--user-agent-type",
        choices=["legitimate", "scanner"],
        default=None,
        help="User-agent pool (default: scanner for attack traffic, legitimate otherwise)",
    )
    parser.add_argument(
        "--custom-user-agent",
        type=str,
        default="",
        help="Exact User-Agent to send, overrides --user-agent-type",
    )

    # Output
    parser.add_argument(
        "--payloads-dir",
        type=str,
        default=None,
        help="Directory containing payload files (default: bundled payloads)",
    )
    parser.add_argument(
        "--export",
        choices=EXPORT_FORMATS,
        default=None,
        help="Export results to a json or csv file",
    )
    parser.add_argument(
        "--exports-dir",
        type=str,
        default=DEFAULT_EXPORTS_DIR,
        help=f"Directory for exported results (default: {DEFAULT_EXPORTS_DIR})",
    )
    parser.add_argument(
        "--charts",
        action="store_true",
        help="Save response time and blocking charts as PNG",
    )
    return parser


async def run_streaming_test(
    config: TestConfig, payloads_dir: Optional[str] = None
) -> Optional[FinalResult]:
    """Run a test, logging progress events, and return its final result."""
    payload_pool = await PayloadPool.from_directory(payloads_dir)
    coordinator = SessionCoordinator(payload_pool)
    session = await coordinator.start_streaming_session(config)

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, session.cancel)
    except (NotImplementedError, RuntimeError):
        logger.debug("Signal handlers unavailable, Ctrl-C will not cancel gracefully")

    async for event in session.events():
        if event.type == "progress" and event.current_stats is not None:
            stats = event.current_stats
            logger.info(
                f"Progress {event.completed}/{event.total} ({event.percentage}%) - "
                f"success={stats.success_count} errors={stats.error_count} "
                f"blocked={stats.blocked_count} avg={stats.avg_response}ms"
            )
            for outcome in event.new_requests or []:
                if outcome.was_blocked:
                    logger.warning(
                        f"  Request #{outcome.id} blocked with HTTP {outcome.status}"
                    )
        elif event.type == "cancelled":
            logger.warning(f"Test cancelled after {event.completed}/{event.total} requests")
        elif event.type == "error":
            logger.error(f"Test failed: {event.error}")

    return session.final_result


def main():
    """Main entry point for the run CLI."""
    parser = build_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
    )

    try:
        config = TestConfig(
            target_url=args.target_url,
            total_requests=args.requests,
            duration=args.duration,
            traffic_type=args.traffic_type,
            test_mode=args.test_mode,
            http_method=args.method.upper(),
            custom_headers=parse_headers(args.header),
            request_body=args.body,
            user_agent_type=args.user_agent_type or "",
            custom_user_agent=args.custom_user_agent,
            error_mode=args.error_mode,
        )
        config.validate()
    except ConfigError as e:
        print(f"Error: {e}")
        sys.exit(1)

    if args.error_mode and args.traffic_type == "attack":
        logger.warning("--error-mode only applies to normal traffic, ignoring it")

    try:
        result = asyncio.run(run_streaming_test(config, args.payloads_dir))
    except Exception as e:
        print(f"Error running test: {e}")
        sys.exit(1)

    if result is None:
        print("\nTest did not complete, no final results")
        sys.exit(130)

    ResultAggregator(result).print_results()

    if args.export:
        path = export_results(config.with_defaults(), result, args.export, args.exports_dir)
        print(f"\nResults exported to {path}")

    if args.charts:
        generate_charts(result)


if __name__ == "__main__":
    main()
