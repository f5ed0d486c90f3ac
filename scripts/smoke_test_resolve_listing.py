import argparse
import asyncio
import logging
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from listing_resolver.config import settings
from listing_resolver.scraper.resolver import ListingResolver, listing_from_url
from listing_resolver.scraper.strategies import BUILTIN_STRATEGIES, build_strategies

DEFAULT_URL = (
    "https://www.google.com/maps/place/Sagar+Stationers/@26.4963403,80.3134521,869m/"
    "data=!3m2!1e3!4b1!4m6!3m5!1s0x399c385b73ce767b:0x5e3ad9471c8aac91!8m2!3d26.4963403!4d80.3134521"
)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Smoke test for listing resolution against a live map URL.")
    parser.add_argument("urls", nargs="*", help="Listing URLs to resolve (default: a sample place URL).")
    parser.add_argument(
        "--strategy",
        action="append",
        choices=tuple(BUILTIN_STRATEGIES),
        help=(
            "Strategy to include, repeatable, in order "
            f"(default: {', '.join(settings.scraper_strategy_order)})."
        ),
    )
    parser.add_argument(
        "--headed",
        action="store_true",
        help="Show the browser window instead of running headless.",
    )
    parser.add_argument(
        "--no-pointer",
        action="store_true",
        help="Disable synthetic pointer movement.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log matched selectors per field.",
    )
    return parser.parse_args()


async def main() -> None:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    overrides: dict[str, object] = {}
    if args.headed:
        overrides["scraper_headless"] = False
    if args.no_pointer:
        overrides["scraper_simulate_pointer"] = False
    run_settings = settings.model_copy(update=overrides)

    resolver = ListingResolver(
        build_strategies(run_settings, names=args.strategy),
        batch_size=run_settings.scraper_batch_size,
        batch_delay_s=(run_settings.scraper_batch_min_delay_s, run_settings.scraper_batch_max_delay_s),
    )
    urls = args.urls or [DEFAULT_URL]

    records = await resolver.resolve_many(urls)
    for record in records:
        degraded = record == listing_from_url(record.source_url)
        print(f"URL: {record.source_url}")
        print(f"Strategies: {', '.join(resolver.strategy_names)}")
        print(f"Listing: {record.public_fields()}")
        if degraded:
            print("NOTE: every browser strategy failed; the name was derived from the URL.")


if __name__ == "__main__":
    asyncio.run(main())
