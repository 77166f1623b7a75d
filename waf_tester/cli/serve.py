"""CLI for running the HTTP API server."""

import argparse
import logging
import os
from aiohttp import web

from ..api.server import create_app
from ..core.payloads import PayloadPool
from ..core.session import SessionCoordinator
from ..results.exporter import DEFAULT_EXPORTS_DIR


def main():
    """Main entry point for the serve CLI."""
    parser = argparse.ArgumentParser(description="WAF tester HTTP API server")
    parser.add_argument(
        "--host",
        type=str,
        default="0.0.0.0",
        help="Interface to bind (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("PORT", "8080")),
        help="Port to listen on (default: $PORT or 8080)",
    )
    parser.add_argument(
        "--payloads-dir",
        type=str,
        default=None,
        help="Directory containing payload files (default: bundled payloads)",
    )
    parser.add_argument(
        "--exports-dir",
        type=str,
        default=DEFAULT_EXPORTS_DIR,
        help=f"Directory for exported results (default: {DEFAULT_EXPORTS_DIR})",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
    )
    logger = logging.getLogger(__name__)

    async def build_app() -> web.Application:
        # Payloads are loaded once and shared by every session
        payload_pool = await PayloadPool.from_directory(args.payloads_dir)
        coordinator = SessionCoordinator(payload_pool)
        return create_app(coordinator, exports_dir=args.exports_dir)

    logger.info(f"WAF tester API listening on http://{args.host}:{args.port}")
    web.run_app(build_app(), host=args.host, port=args.port, print=None)


if __name__ == "__main__":
    main()
