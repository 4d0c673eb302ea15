#!/usr/bin/env python3
"""
UCI rider calendar scraper
The calendar tab is rendered client-side, so pages are always fetched with a browser
"""

import logging
import re
from typing import List, Optional

from bs4 import BeautifulSoup
from playwright.async_api import Browser, Page

from config import ScrapingConfig
from fetchers import fetch_html_with_browser
from models import CalendarEntry, RiderInfo, ScrapeResult, UPCOMING
from utils import clean_text, to_absolute_url

logger = logging.getLogger(__name__)

SOURCE = 'uci'

CALENDAR_ROW_SELECTORS = [
    'div[role="tabpanel"][aria-labelledby*="calendar"] table tbody tr',
    'section[data-component*="calendar"] table tbody tr',
    '[data-testid*="calendar"] table tbody tr',
]
CALENDAR_ROW_SELECTOR = ', '.join(CALENDAR_ROW_SELECTORS)

TEAM_LINK_SELECTOR = 'a[href*="/team/"], a[href*="/team-details/"]'

CALENDAR_TAB_NAME = re.compile(r'calendar', re.I)


def parse_calendar_rows(soup: BeautifulSoup, page_url: str) -> List[CalendarEntry]:
    """Date from the first cell, race from the first link, result from the last cell"""
    races = []

    for row in soup.select(CALENDAR_ROW_SELECTOR):
        cells = row.find_all('td')
        link = row.select_one('a[href]')
        race_name = clean_text(link.get_text()) if link else ''
        if not race_name:
            continue

        races.append(CalendarEntry(
            date=clean_text(cells[0].get_text()) if cells else '',
            race_name=race_name,
            race_link=to_absolute_url(page_url, link.get('href')),
            result=(clean_text(cells[-1].get_text()) if cells else '') or UPCOMING,
        ))

    return races


def parse_uci_calendar(html: str, page_url: str) -> ScrapeResult:
    """Parse a rendered UCI rider page"""
    soup = BeautifulSoup(html, 'html.parser')

    h1 = soup.find('h1')
    team_link = soup.select_one(TEAM_LINK_SELECTOR)
    rider = RiderInfo(
        name=clean_text(h1.get_text()) if h1 else '',
        team=(clean_text(team_link.get_text()) or None) if team_link else None,
    )

    return ScrapeResult(rider=rider, calendar=parse_calendar_rows(soup, page_url), source=SOURCE)


async def activate_calendar_tab(page: Page):
    """Click the calendar tab when the page has one"""
    tab = page.get_by_role('tab', name=CALENDAR_TAB_NAME)
    if await tab.count():
        await tab.first.click()


class UCIScraper:
    """Scrapes UCI rider pages through a (possibly shared) headless browser"""

    source = SOURCE

    def __init__(self, config: ScrapingConfig, browser: Optional[Browser] = None):
        self.config = config
        self.browser = browser

    async def scrape_rider_calendar(self, rider_url: str) -> ScrapeResult:
        logger.info(f"Scraping UCI: {rider_url}")

        html = await fetch_html_with_browser(
            rider_url,
            self.config.browser,
            browser=self.browser,
            wait_selector=CALENDAR_ROW_SELECTOR,
            require_selector=True,
            wait_until='networkidle',
            prepare=activate_calendar_tab,
        )
        result = parse_uci_calendar(html, rider_url)

        logger.info(f"✅ {result.rider.name or rider_url}: {len(result.calendar)} races")
        return result
