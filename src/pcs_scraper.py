#!/usr/bin/env python3
"""
ProCyclingStats scraper
Parses rider calendar pages, rider profile photos and team roster pages
"""

import logging
import re
from typing import List, Optional

import aiohttp
from bs4 import BeautifulSoup
from playwright.async_api import Browser

from config import ScrapingConfig
from fetchers import FetchError, fetch_html, fetch_html_with_browser
from models import CalendarEntry, RiderInfo, RosterRider, ScrapeResult, UPCOMING
from rate_limiter import RateLimiter
from utils import (
    clean_text,
    first_non_empty,
    is_iso_date,
    looks_like_birth_date,
    normalize_team_name,
    parse_loose_date,
    to_absolute_url,
)

logger = logging.getLogger(__name__)

PCS_BASE_URL = "https://www.procyclingstats.com"
SOURCE = 'procyclingstats'

# Checked in order; the first non-empty attribute value wins
PHOTO_SOURCES = [
    ('meta[property="og:image"]', 'content'),
    ('meta[name="twitter:image"]', 'content'),
    ('img[src*="images/riders/"]', 'src'),
    ('.riderPhoto img', 'src'),
    ('.rdrPic img', 'src'),
    ('.rdrpic img', 'src'),
    ('.riderPic img', 'src'),
    ('.riderPhoto', 'data-src'),
]

TEAM_SELECTORS = ['.page-title .subtitle h2', '.riderInfo a']

FLAG_CLASS_PATTERN = re.compile(r'\bflag\s+([a-z]{2})\b', re.I)


def _select_attr(soup, selector: str, attr: str) -> Optional[str]:
    node = soup.select_one(selector)
    if node is None:
        return None
    value = node.get(attr)
    return value if isinstance(value, str) else None


def _select_text(soup, selector: str) -> Optional[str]:
    node = soup.select_one(selector)
    return clean_text(node.get_text()) if node else None


def extract_photo_url(soup: BeautifulSoup, base_url: str = PCS_BASE_URL) -> Optional[str]:
    """Find the rider photo from social preview tags or profile image blocks"""
    candidate = first_non_empty(
        (lambda selector=selector, attr=attr: _select_attr(soup, selector, attr))
        for selector, attr in PHOTO_SOURCES
    )
    return to_absolute_url(base_url, candidate)


def extract_team(soup: BeautifulSoup) -> Optional[str]:
    team = first_non_empty(
        (lambda selector=selector: _select_text(soup, selector)) for selector in TEAM_SELECTORS
    )
    return normalize_team_name(team) or None


def parse_race_rows(soup: BeautifulSoup, base_url: str = PCS_BASE_URL) -> List[CalendarEntry]:
    """Race rows need an ISO date in the first cell and a race link in the second"""
    races = []

    for row in soup.select('table tr'):
        cells = row.find_all('td')
        if len(cells) < 2:
            continue

        date_text = clean_text(cells[0].get_text())
        link = cells[1].find('a')
        race_name = clean_text(link.get_text()) if link else ''

        if not race_name or not is_iso_date(date_text):
            continue

        result = clean_text(cells[2].get_text()) if len(cells) > 2 else ''
        races.append(CalendarEntry(
            date=date_text,
            race_name=race_name,
            race_link=to_absolute_url(base_url, link.get('href')),
            result=result or UPCOMING,
        ))

    return races


def parse_rider_calendar(html: str, base_url: str = PCS_BASE_URL) -> ScrapeResult:
    """Parse a rider calendar page into identity plus race entries"""
    soup = BeautifulSoup(html, 'html.parser')

    h1 = soup.find('h1')
    rider = RiderInfo(
        name=clean_text(h1.get_text()) if h1 else '',
        team=extract_team(soup),
        photo_url=extract_photo_url(soup, base_url),
    )

    return ScrapeResult(rider=rider, calendar=parse_race_rows(soup, base_url), source=SOURCE)


def extract_nationality(cell) -> Optional[str]:
    """Two-letter code from a `flag xx` class, else the cell text"""
    flag = cell.select_one('.flag')
    if flag is not None:
        match = FLAG_CLASS_PATTERN.search(' '.join(flag.get('class', [])))
        if match:
            return match.group(1).upper()

    text = clean_text(cell.get_text())
    return text or None


def parse_team_roster(html: str, team_name: str) -> List[RosterRider]:
    """Parse a team page into roster riders"""
    soup = BeautifulSoup(html, 'html.parser')
    riders = []

    for row in soup.select('table tr'):
        cells = row.find_all('td')
        if not cells:
            continue

        rider_link = row.select_one('a[href*="rider/"]')
        name = clean_text(rider_link.get_text()) if rider_link else ''
        if not name:
            continue

        nationality = extract_nationality(cells[1]) if len(cells) > 1 else None

        cell_texts = [clean_text(cell.get_text()) for cell in cells]
        birth_text = next((text for text in cell_texts if looks_like_birth_date(text)), None)

        riders.append(RosterRider(
            name=name,
            team=team_name,
            nationality=nationality,
            birth_date=parse_loose_date(birth_text),
        ))

    return riders


class ProCyclingStatsScraper:
    """Fetches and parses ProCyclingStats rider and team pages"""

    source = SOURCE

    def __init__(
        self,
        session: aiohttp.ClientSession,
        config: ScrapingConfig,
        browser: Optional[Browser] = None,
        base_url: str = PCS_BASE_URL,
    ):
        self.session = session
        self.config = config
        self.browser = browser
        self.base_url = base_url
        self.rate_limiter = RateLimiter(config.min_delay)

    def calendar_url(self, rider_slug: str) -> str:
        return f"{self.base_url}/rider/{rider_slug}/calendar/calendar"

    def profile_url(self, rider_slug: str) -> str:
        return f"{self.base_url}/rider/{rider_slug}"

    async def fetch_with_browser(self, url: str) -> str:
        return await fetch_html_with_browser(url, self.config.browser, browser=self.browser)

    async def fetch_page(self, url: str) -> str:
        """Fetch a page, escalating from plain HTTP to the browser on a 403"""
        if self.config.use_browser:
            return await self.fetch_with_browser(url)

        try:
            return await fetch_html(
                self.session,
                url,
                rate_limiter=self.rate_limiter,
                max_retries=self.config.max_retries,
                backoff_base=self.config.backoff_base,
            )
        except FetchError as e:
            if e.status != 403:
                raise
            logger.warning(f"PCS returned 403 for {url}, retrying with browser...")
            return await self.fetch_with_browser(url)

    async def fetch_profile_photo(self, rider_slug: str) -> Optional[str]:
        """Fallback: read the photo from the bare profile page"""
        url = self.profile_url(rider_slug)
        try:
            html = await self.fetch_page(url)
            return extract_photo_url(BeautifulSoup(html, 'html.parser'), self.base_url)
        except Exception as e:
            # A missing photo never fails the rider
            logger.warning(f"Photo fallback failed for {rider_slug}: {e}")
            return None

    async def scrape_rider_calendar(self, rider_slug: str) -> ScrapeResult:
        """Scrape one rider's season calendar"""
        url = self.calendar_url(rider_slug)
        logger.info(f"Scraping PCS: {url}")

        html = await self.fetch_page(url)
        result = parse_rider_calendar(html, self.base_url)

        if not result.rider.photo_url:
            logger.debug(f"No photo on calendar page for {rider_slug}, trying profile page")
            result.rider.photo_url = await self.fetch_profile_photo(rider_slug)

        logger.info(f"✅ {result.rider.name or rider_slug}: {len(result.calendar)} races")
        return result

    async def scrape_team_roster(self, team_url: str, team_name: str) -> List[RosterRider]:
        """Scrape a team page into roster riders"""
        logger.info(f"Scraping PCS team: {team_url}")
        html = await self.fetch_page(team_url)
        riders = parse_team_roster(html, team_name)
        logger.info(f"Found {len(riders)} riders for {team_name}")
        return riders
