#!/usr/bin/env python3
"""
CLI entry point for the rider calendar scraper
"""

import asyncio
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List

import aiohttp

from batch_scraper import SOURCES, scrape_batch, scrape_one, write_json
from config import ConfigError, ScrapingConfig
from pcs_scraper import ProCyclingStatsScraper, SOURCE as PCS_SOURCE
from reconcile import seed_from_files
from store import RiderStore
from update_riders import sync_team_rosters

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    """Setup logging configuration"""
    Path('logs').mkdir(exist_ok=True)
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler('logs/scraper.log')
        ]
    )


def parse_list(value) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(',') if item.strip()]


def parse_file_list(path) -> List[str]:
    if not path:
        return []
    lines = Path(path).read_text(encoding='utf-8').splitlines()
    return [line.strip() for line in lines if line.strip()]


def add_scrape_options(parser: argparse.ArgumentParser):
    parser.add_argument(
        '--source',
        choices=SOURCES,
        default=PCS_SOURCE,
        help='Site to scrape (default: procyclingstats)'
    )
    parser.add_argument(
        '--min-delay',
        type=float,
        help='Minimum delay between requests in seconds (default: 1.5)'
    )
    parser.add_argument(
        '--max-retries',
        type=int,
        help='Maximum retries for transient failures (default: 3)'
    )
    parser.add_argument(
        '--browser',
        action='store_true',
        help='Fetch ProCyclingStats pages with a headless browser'
    )
    parser.add_argument(
        '--browser-engine',
        choices=['chromium', 'firefox', 'webkit'],
        help='Playwright engine (default: chromium)'
    )
    parser.add_argument(
        '--no-headless',
        action='store_true',
        help='Show the browser window'
    )
    parser.add_argument(
        '--debug-dir',
        type=str,
        help='Save screenshots and raw HTML of browser fetches here'
    )


def parse_args(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="Rider calendar scraper for procyclingstats.com and the UCI site",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py rider --rider tadej-pogacar --out tadej.json
  python main.py rider --source uci --url https://www.uci.org/rider/...
  python main.py batch --riders jonas-vingegaard,remco-evenepoel --ndjson out/riders.ndjson
  python main.py batch --riders-file riders.txt --per-rider-dir out/riders --ingest
  python main.py roster
  python main.py seed tadej-pogacar.json jonas-vingegaard.json
  python main.py calendar --rider pogacar
"""
    )
    parser.add_argument(
        '--database',
        type=str,
        help='SQLite database path (default: data/riders.db)'
    )
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )

    commands = parser.add_subparsers(dest='command', required=True)

    rider = commands.add_parser('rider', help='Scrape one rider calendar')
    add_scrape_options(rider)
    rider.add_argument('--rider', help='ProCyclingStats rider slug')
    rider.add_argument('--url', help='UCI rider page URL')
    rider.add_argument('--out', default='rider-calendar.json', help='Output JSON file')

    batch = commands.add_parser('batch', help='Scrape many rider calendars')
    add_scrape_options(batch)
    batch.add_argument('--riders', help='Comma separated ProCyclingStats slugs')
    batch.add_argument('--riders-file', help='File with one ProCyclingStats slug per line')
    batch.add_argument('--urls', help='Comma separated UCI rider URLs')
    batch.add_argument('--urls-file', help='File with one UCI rider URL per line')
    batch.add_argument('--out', default='rider-calendars.json', help='Batch report JSON file')
    batch.add_argument('--ndjson', help='Also stream each result to this NDJSON file')
    batch.add_argument('--per-rider-dir', help='Also write one JSON file per rider here')
    batch.add_argument(
        '--delay',
        type=float,
        default=2.0,
        help='Pause between riders in seconds (default: 2.0)'
    )
    batch.add_argument('--ingest', action='store_true', help='Store results in the database')

    roster = commands.add_parser('roster', help='Sync team rosters into the database')
    add_scrape_options(roster)

    seed = commands.add_parser('seed', help='Load saved rider JSON files into the database')
    seed.add_argument('files', nargs='+', help='Per-rider JSON files named <slug>.json')

    calendar = commands.add_parser('calendar', help='Print stored riders and calendars')
    calendar.add_argument('--rider', help='Slug, or part of a rider name')

    return parser.parse_args(argv)


def build_config(args) -> ScrapingConfig:
    """Environment defaults, overridden by command line flags"""
    config = ScrapingConfig.from_env(getattr(args, 'source', None))

    if args.database:
        config.database_path = args.database
    if getattr(args, 'min_delay', None) is not None:
        config.min_delay = args.min_delay
    if getattr(args, 'max_retries', None) is not None:
        config.max_retries = args.max_retries
    if getattr(args, 'delay', None) is not None:
        config.batch_delay = args.delay
    if getattr(args, 'browser', False):
        config.use_browser = True
    if getattr(args, 'browser_engine', None):
        config.browser.engine = args.browser_engine
    if getattr(args, 'no_headless', False):
        config.browser.headless = False
    if getattr(args, 'debug_dir', None):
        config.browser.debug_dir = args.debug_dir

    return config.validate()


async def open_store(config: ScrapingConfig) -> RiderStore:
    store = RiderStore(config.database_path)
    await store.init_tables()
    return store


async def run_rider(args, config: ScrapingConfig) -> int:
    identifier = args.rider if args.source == PCS_SOURCE else args.url
    if not identifier:
        flag = '--rider <slug>' if args.source == PCS_SOURCE else '--url <riderUrl>'
        raise ConfigError(f"Missing {flag} for {args.source}")

    result = await scrape_one(args.source, identifier, config)
    write_json(result.to_dict(), args.out)
    logger.info(f"Saved calendar to {args.out}")
    return 0


async def run_batch_command(args, config: ScrapingConfig) -> int:
    if args.source == PCS_SOURCE:
        identifiers = parse_list(args.riders) + parse_file_list(args.riders_file)
        if not identifiers:
            raise ConfigError("Provide --riders or --riders-file for PCS batch scraping")
    else:
        identifiers = parse_list(args.urls) + parse_file_list(args.urls_file)
        if not identifiers:
            raise ConfigError("Provide --urls or --urls-file for UCI batch scraping")

    store = await open_store(config) if args.ingest else None

    report = await scrape_batch(
        args.source,
        identifiers,
        config,
        out_path=args.out,
        ndjson_path=args.ndjson,
        per_rider_dir=args.per_rider_dir,
        store=store,
    )
    return 0 if report.results or not report.errors else 1


async def run_roster(args, config: ScrapingConfig) -> int:
    store = await open_store(config)
    timeout = aiohttp.ClientTimeout(total=config.timeout)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        scraper = ProCyclingStatsScraper(session, config)
        summary = await sync_team_rosters(store, scraper)
    print(json.dumps(summary, indent=2, ensure_ascii=False))
    return 0


async def run_seed(args, config: ScrapingConfig) -> int:
    store = await open_store(config)
    summary = await seed_from_files(store, args.files)
    logger.info(f"Seeded {summary['seeded']} riders ({summary['entries']} entries, {summary['skipped']} skipped)")
    return 0


async def run_calendar(args, config: ScrapingConfig) -> int:
    store = await open_store(config)

    async def with_entries(rider):
        data = rider.to_dict()
        data['calendarEntries'] = [entry.to_dict() for entry in await store.get_calendar_entries(rider.id)]
        return data

    if args.rider:
        rider = await store.search_rider(args.rider)
        payload = {'rider': await with_entries(rider) if rider else None}
    else:
        payload = {'riders': [await with_entries(rider) for rider in await store.find_riders()]}

    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0


COMMANDS = {
    'rider': run_rider,
    'batch': run_batch_command,
    'roster': run_roster,
    'seed': run_seed,
    'calendar': run_calendar,
}


def main(argv=None) -> int:
    """Main entry point"""
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = build_config(args)
        return asyncio.run(COMMANDS[args.command](args, config))
    except ConfigError as e:
        logger.error(f"❌ {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("🛑 Interrupted by user")
        return 1
    except Exception as e:
        logger.error(f"💥 Scraping error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
