#!/usr/bin/env python3
"""
JSON Proxy Service - CLI entry point
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from .config import Settings, load_settings
from .links import build_proxy_url
from .models import ServiceResponse
from .service import ProxyService
from .validate import is_valid_url

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="json-proxy",
        description="Validate third-party JSON endpoints and relay them through one origin",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: JSON_PROXY_LOG_LEVEL or INFO)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP server")
    serve.add_argument("--host", default=None, help="Bind address (default: JSON_PROXY_HOST or 0.0.0.0)")
    serve.add_argument("--port", type=int, default=None, help="Port (default: PORT or 3000)")

    check = sub.add_parser("check", help="Probe a URL and print the proxy link it would get")
    check.add_argument("url", help="Target URL")
    check.add_argument(
        "--origin", default="http://localhost:3000", help="Public origin used for the proxy link"
    )
    check.add_argument("--json", "-j", action="store_true", help="Output as JSON")

    link = sub.add_parser("link", help="Print the proxy link for a URL (no network access)")
    link.add_argument("url", help="Target URL")
    link.add_argument(
        "--origin", default="http://localhost:3000", help="Public origin used for the proxy link"
    )
    return parser


def print_result(result: ServiceResponse, as_json: bool) -> None:
    body = result.body if isinstance(result.body, dict) else {}
    if as_json:
        print(json.dumps({"status": result.status_code, **body}, indent=2))
        return

    if result.status_code == 200:
        print(f"OK  {body.get('originalUrl')}")
        print(f"    content type: {body.get('contentType')}")
        print(f"    proxy url:    {body.get('proxyUrl')}")
        return

    print(f"FAIL ({result.status_code}) {body.get('error')}")
    if body.get("message"):
        print(f"    {body['message']}")
    if body.get("contentType"):
        print(f"    content type: {body['contentType']}")


async def run_check(settings: Settings, url: str, origin: str) -> ServiceResponse:
    service = ProxyService(settings)
    try:
        return await service.create_proxy(url, client_id="cli", origin=origin)
    finally:
        await service.aclose()


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = load_settings()
    configure_logging(args.log_level or settings.log_level)

    if args.command == "serve":
        import uvicorn

        from .api import create_app

        app = create_app(settings)
        uvicorn.run(app, host=args.host or settings.host, port=args.port or settings.port)
        return 0

    if args.command == "link":
        if not is_valid_url(args.url):
            print(f"Invalid URL: {args.url}", file=sys.stderr)
            return 1
        print(build_proxy_url(args.origin, args.url, settings.proxy_path))
        return 0

    result = asyncio.run(run_check(settings, args.url, args.origin))
    print_result(result, args.json)
    return 0 if result.status_code == 200 else 1


if __name__ == "__main__":
    sys.exit(main())
