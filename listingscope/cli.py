"""CLI tool for ListingScope: one-off scrapes and the API server.

Usage:
    python -m listingscope.cli scrape laptop
    python -m listingscope.cli scrape "usb c cable" --retry 2
    python -m listingscope.cli scrape laptop --raw-only
    python -m listingscope.cli serve --port 3000
"""

import argparse
import asyncio
import json
import logging
import sys


def _setup_logging(verbose: bool = False):
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


async def _cmd_scrape(args) -> int:
    """Run the extraction pipeline once for a keyword."""
    from listingscope.core.exceptions import ScrapeError
    from listingscope.services.browser import session_manager
    from listingscope.services.fetch_backend import RawFetchBackend
    from listingscope.services.orchestrator import scrape

    try:
        if args.raw_only:
            products = await RawFetchBackend().extract(args.keyword)
            output = {
                "success": bool(products),
                "count": len(products),
                "products": [p.model_dump(by_alias=True) for p in products],
            }
        else:
            result = await scrape(args.keyword, args.retry)
            output = result.model_dump(by_alias=True)
    except ScrapeError as e:
        print(json.dumps(e.to_dict(), indent=2, ensure_ascii=False))
        return 1
    finally:
        await session_manager.shutdown()

    print(json.dumps(output, indent=2, ensure_ascii=False))
    print(f"\nFound {output['count']} products", file=sys.stderr)
    return 0


def _cmd_serve(args) -> int:
    import uvicorn

    from listingscope.config import settings

    uvicorn.run(
        "listingscope.main:app",
        host=args.host or settings.HOST,
        port=args.port or settings.PORT,
    )
    return 0


def main():
    parser = argparse.ArgumentParser(
        prog="listingscope",
        description="ListingScope CLI: scrape product listings or run the API",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # --- scrape ---
    scrape_parser = subparsers.add_parser("scrape", help="Scrape listings for a keyword")
    scrape_parser.add_argument("keyword", help="Search keyword")
    scrape_parser.add_argument(
        "--retry", type=int, default=0,
        help="Rendering retries before the raw-fetch fallback (0-3)",
    )
    scrape_parser.add_argument(
        "--raw-only", action="store_true",
        help="Skip the browser and use a single raw HTTP fetch",
    )

    # --- serve ---
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="Port")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "scrape":
        _setup_logging(args.verbose)
        sys.exit(asyncio.run(_cmd_scrape(args)))
    elif args.command == "serve":
        sys.exit(_cmd_serve(args))


if __name__ == "__main__":
    main()
