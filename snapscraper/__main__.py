#!/usr/bin/env python3
"""
Command Line Interface
======================
Query a public profile from the terminal and print JSON.

All configuration flows through ``ScraperRunConfig``: ``SNAPSCRAPER_*``
environment variables (and ``.env``) first, then the flags below.

Run with: python -m snapscraper <command> ...
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from .models import Category
from .run_config import ScraperRunConfig
from .service import ProfileScraper

logger = logging.getLogger(__name__)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


async def _run(args: argparse.Namespace, cfg: ScraperRunConfig) -> int:
    async with ProfileScraper(cfg) as scraper:
        if args.command == "profile":
            result = await scraper.get_profile(args.subject, cfg.locale)
            _print_json(result.to_dict())
            return 0 if result.ok else 1

        if args.command == "tab":
            result = await scraper.get_tab(args.subject, args.category, cfg.locale)
            _print_json(result.to_dict())
            return 0 if result.ok else 1

        if args.command == "categories":
            available = await scraper.available_categories(args.subject, args.wait)
            _print_json({
                'subject': args.subject,
                'available': [c.value for c in available],
                'health': scraper.health(),
            })
            return 0 if available else 1

        if args.command == "video":
            resolved = await scraper.resolve_video(args.url)
            _print_json({
                'canonicalUrl': args.url,
                'video': resolved.to_dict() if resolved else None,
            })
            return 0 if resolved else 1

        if args.command == "health":
            upstream = await scraper.check_upstream()
            _print_json({'upstream': upstream, 'local': scraper.health()})
            return 0 if upstream['reachable'] else 1

    return 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="snapscraper",
        description="Extract profile data, tab content and video URLs from public profile pages",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m snapscraper profile alice
  python -m snapscraper tab alice spotlight --locale fr-FR
  python -m snapscraper categories alice --wait 5
  python -m snapscraper video https://www.snapchat.com/@alice/spotlight/abc123
  python -m snapscraper health
        """
    )
    parser.add_argument('--locale', type=str, help='Upstream locale (default: en-US)')
    parser.add_argument('--timeout', type=float, help='Timeout per request in seconds (default: 15)')
    parser.add_argument('--retries', type=int, help='Retries for transient failures (default: 1)')
    parser.add_argument('--base-url', type=str, help='Upstream/proxy base URL')
    parser.add_argument('--env-file', type=str, help='Path to a .env file')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')

    commands = parser.add_subparsers(dest='command', required=True)

    profile = commands.add_parser('profile', help='Profile header')
    profile.add_argument('subject', help='Username (leading @ optional)')

    tab = commands.add_parser('tab', help='Tiles of one category')
    tab.add_argument('subject', help='Username (leading @ optional)')
    tab.add_argument('category', choices=[c.value for c in Category], type=str.lower)

    categories = commands.add_parser('categories', help='Categories that have content')
    categories.add_argument('subject', help='Username (leading @ optional)')
    categories.add_argument('--wait', type=float, default=None,
                            help='Seconds to wait for validation (default: config)')

    video = commands.add_parser('video', help='Resolve a playable video URL')
    video.add_argument('url', help='Canonical content URL')

    commands.add_parser('health', help='Check the upstream is reachable')

    return parser


def main(argv: Optional[list] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%H:%M:%S',
        stream=sys.stderr,
    )

    cfg = ScraperRunConfig.from_cli_args(args)
    if args.verbose:
        cfg.log_summary()

    try:
        return asyncio.run(_run(args, cfg))
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130


if __name__ == '__main__':
    sys.exit(main())
