#!/usr/bin/env python3
"""
Batch orchestration for rider calendar scraping

Riders are processed strictly one after another: the rate limiter and the
shared browser are unsynchronized state. A failing rider is recorded in the
report and never stops the batch.
"""

import asyncio
import json
import logging
import time
from contextlib import AsyncExitStack, asynccontextmanager
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Union

import aiohttp

from config import ConfigError, ScrapingConfig
from fetchers import open_shared_browser
from models import BatchError, BatchReport, ScrapeResult
from pcs_scraper import ProCyclingStatsScraper, SOURCE as PCS_SOURCE
from reconcile import ingest_scrape_result
from store import RiderStore
from uci_scraper import UCIScraper, SOURCE as UCI_SOURCE
from utils import to_safe_filename

logger = logging.getLogger(__name__)

SOURCES = (PCS_SOURCE, UCI_SOURCE)

ScrapeFn = Callable[[str], Awaitable[ScrapeResult]]


def derive_identifier(source: str, identifier: Optional[str], result: Optional[ScrapeResult] = None) -> str:
    """File stem for a rider's output: slug, last URL segment, or rider name"""
    if source == PCS_SOURCE and identifier:
        stem = to_safe_filename(identifier)
        if stem:
            return stem

    if source == UCI_SOURCE and identifier:
        segments = [segment for segment in identifier.split('/') if segment]
        if segments:
            stem = to_safe_filename(segments[-1])
            if stem:
                return stem

    if result is not None and result.rider.name:
        stem = to_safe_filename(result.rider.name)
        if stem:
            return stem

    return f"rider-{int(time.time() * 1000)}"


def write_json(data, path: Union[str, Path]):
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def write_report(report: BatchReport, path: Union[str, Path]):
    write_json(report.to_dict(), path)
    logger.info(f"Saved batch output to {path}")


async def run_batch(
    source: str,
    identifiers: List[str],
    scrape: ScrapeFn,
    delay: float = 2.0,
    store: Optional[RiderStore] = None,
    ndjson_path: Optional[str] = None,
    per_rider_dir: Optional[str] = None,
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> BatchReport:
    """Scrape (and optionally ingest) each identifier in order, collecting errors.

    Per item the steps run scrape, ingest, NDJSON line, per-rider file. An item
    lands in `results` only when every step succeeded; a later failure is
    reported as an error but does not undo the steps before it.
    """
    sleep = sleep or asyncio.sleep
    report = BatchReport(source=source)

    ndjson_file = None
    if ndjson_path:
        Path(ndjson_path).parent.mkdir(parents=True, exist_ok=True)
        ndjson_file = open(ndjson_path, 'w', encoding='utf-8')

    try:
        for index, identifier in enumerate(identifiers):
            if index > 0 and delay:
                await sleep(delay)

            logger.info(f"Processing {index + 1}/{len(identifiers)}: {identifier}")

            try:
                result = await scrape(identifier)

                if store is not None:
                    slug = identifier if source == PCS_SOURCE else None
                    await ingest_scrape_result(store, result, slug=slug)

                if ndjson_file:
                    ndjson_file.write(json.dumps(result.to_dict(), ensure_ascii=False) + '\n')
                    ndjson_file.flush()

                if per_rider_dir:
                    stem = derive_identifier(source, identifier, result)
                    write_json(result.to_dict(), Path(per_rider_dir) / f"{stem}.json")

            except Exception as e:
                message = str(e) or type(e).__name__
                logger.error(f"💥 Error scraping {identifier}: {message}")
                report.errors.append(BatchError(identifier=identifier, error=message))
                continue

            report.results.append(result)
    finally:
        if ndjson_file:
            ndjson_file.close()

    logger.info(f"🎉 Batch completed: {len(report.results)} succeeded, {len(report.errors)} failed")
    return report


@asynccontextmanager
async def open_scraper(source: str, config: ScrapingConfig, share_browser: bool = False):
    """Yield a scraper for `source`, owning the HTTP session and any shared browser"""
    if source not in SOURCES:
        raise ConfigError(f"Unknown source: {source}")

    async with AsyncExitStack() as stack:
        browser = None
        if share_browser:
            browser = await stack.enter_async_context(open_shared_browser(config.browser))

        if source == UCI_SOURCE:
            yield UCIScraper(config, browser=browser)
            return

        timeout = aiohttp.ClientTimeout(total=config.timeout)
        session = await stack.enter_async_context(aiohttp.ClientSession(timeout=timeout))
        yield ProCyclingStatsScraper(session, config, browser=browser)


async def scrape_batch(
    source: str,
    identifiers: List[str],
    config: ScrapingConfig,
    out_path: Optional[str] = None,
    ndjson_path: Optional[str] = None,
    per_rider_dir: Optional[str] = None,
    store: Optional[RiderStore] = None,
) -> BatchReport:
    """Run a full batch for one source and write the report"""
    if source not in SOURCES:
        raise ConfigError(f"Unknown source: {source}")
    if not identifiers:
        raise ConfigError(f"No riders given for {source} batch scraping")
    config.validate()

    # UCI pages always need a browser, so one instance serves the whole batch
    share_browser = config.use_browser or source == UCI_SOURCE

    report = None
    try:
        async with open_scraper(source, config, share_browser=share_browser) as scraper:
            report = await run_batch(
                source,
                identifiers,
                scraper.scrape_rider_calendar,
                delay=config.batch_delay,
                store=store,
                ndjson_path=ndjson_path,
                per_rider_dir=per_rider_dir,
            )
    except Exception as e:
        message = str(e) or type(e).__name__
        if report is not None:
            # Items finished; only teardown failed
            logger.warning(f"Batch teardown failed: {message}")
        else:
            logger.error(f"💥 Batch could not run: {message}")
            report = BatchReport(
                source=source,
                errors=[BatchError(identifier=identifier, error=message) for identifier in identifiers],
            )

    if out_path:
        write_report(report, out_path)
    if ndjson_path:
        logger.info(f"Saved NDJSON output to {ndjson_path}")
    if per_rider_dir:
        logger.info(f"Saved per-rider files to {per_rider_dir}")

    return report


async def scrape_one(source: str, identifier: str, config: ScrapingConfig) -> ScrapeResult:
    """Scrape a single rider; errors propagate to the caller"""
    if not identifier:
        raise ConfigError(f"No rider given for {source}")
    config.validate()

    async with open_scraper(source, config) as scraper:
        return await scraper.scrape_rider_calendar(identifier)
