"""CLI entry point for Storefront MCP server."""

import argparse
import asyncio
import os
from typing import Optional

ENVIRONMENT_HELP = """\
environment:
  STOREFRONT_API_URL           storefront REST service (default: http://localhost:3000)
  STOREFRONT_TIMEOUT           request timeout in seconds (default: 30)
  STOREFRONT_SESSION_FILE      session file (default: ~/.storefront_session.json)
  STOREFRONT_LOCAL_STORE_FILE  guest cart and addresses (default: ~/.storefront_local.json)
  STOREFRONT_ACCESS_TOKEN      start signed in; requires STOREFRONT_USER_ID
  STOREFRONT_USER_EMAIL        display email for that session
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="storefront-mcp-server",
        description="Cart, address book and order history for the vendor marketplace, over MCP or HTTP",
        epilog=ENVIRONMENT_HELP,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--mode",
        choices=["stdio", "http"],
        default="stdio",
        help="stdio serves MCP tools to an agent, http serves the REST API",
    )
    parser.add_argument(
        "--api-url",
        help="Storefront REST service to talk to (overrides STOREFRONT_API_URL)",
    )
    parser.add_argument("--host", default="0.0.0.0", help="HTTP mode bind address (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8000, help="HTTP mode port (default: 8000)")
    parser.add_argument(
        "--reload",
        action="store_true",
        help="HTTP mode: restart when files under storefront_server/ change",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    # Settings are read from the environment when the server starts
    if args.api_url:
        os.environ["STOREFRONT_API_URL"] = args.api_url

    if args.mode == "http":
        from .http_server import run_http_server
        run_http_server(host=args.host, port=args.port, reload=args.reload)
    else:
        from .server import main as server_main
        asyncio.run(server_main())


if __name__ == "__main__":
    main()
