"""
Utility functions for the rider calendar scraper
"""

import re
import logging
from datetime import date, datetime, timezone
from typing import Callable, Iterable, Optional
from urllib.parse import urljoin

logger = logging.getLogger(__name__)

ISO_DATE_PATTERN = re.compile(r'[0-9]{4}-[0-9]{2}-[0-9]{2}')
MONTH_PATTERN = re.compile(r'(Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)', re.I)
YEAR_PATTERN = re.compile(r'\d{4}')

LOOSE_DATE_FORMATS = (
    '%Y-%m-%d',
    '%d %b %Y',
    '%d %B %Y',
    '%b %d %Y',
    '%B %d %Y',
    '%d/%m/%Y',
    '%d.%m.%Y',
)


def slugify(value: str) -> str:
    """Lowercase a name and collapse non-alphanumeric runs into single hyphens"""
    return re.sub(r'[^a-z0-9]+', '-', (value or '').lower()).strip('-')


def to_safe_filename(value: str) -> str:
    """Filesystem-safe stem for per-rider output files"""
    return slugify(value)[:80]


def is_iso_date(value) -> bool:
    """True only for strict YYYY-MM-DD strings naming a real calendar day"""
    if not isinstance(value, str) or not ISO_DATE_PATTERN.fullmatch(value):
        return False
    try:
        datetime.strptime(value, '%Y-%m-%d')
    except ValueError:
        return False
    return True


def to_utc_midnight(value: str) -> datetime:
    """Convert a validated ISO date string to a UTC-midnight datetime"""
    return datetime.strptime(value, '%Y-%m-%d').replace(tzinfo=timezone.utc)


def parse_loose_date(value: Optional[str]) -> Optional[date]:
    """Parse human date text such as '1 Sep 1998' or '21st September 1998'"""
    if not value:
        return None

    cleaned = re.sub(r'(\d+)(st|nd|rd|th)\b', r'\1', value)
    cleaned = re.sub(r'\([^)]*\)', ' ', cleaned)
    cleaned = re.sub(r'[,\s]+', ' ', cleaned).strip()

    for fmt in LOOSE_DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).date()
        except ValueError:
            continue

    logger.debug(f"Could not parse date text: {value!r}")
    return None


def looks_like_birth_date(text: str) -> bool:
    return bool(YEAR_PATTERN.search(text) and MONTH_PATTERN.search(text))


def to_absolute_url(base_url: str, maybe_relative: Optional[str]) -> Optional[str]:
    """Resolve a possibly relative link against the site base URL"""
    if not maybe_relative:
        return None
    maybe_relative = maybe_relative.strip()
    if not maybe_relative:
        return None
    try:
        return urljoin(base_url, maybe_relative)
    except ValueError:
        return None


def normalize_team_name(team: Optional[str]) -> str:
    """Strip trailing federation/sponsor codes like ' - UAD' and extra whitespace"""
    if not team:
        return ''
    team = re.sub(r'\s*-\s*[A-Z0-9]{2,6}\s*$', '', team)
    team = re.sub(r'\s{2,}', ' ', team)
    return team.strip()


def clean_text(value: Optional[str]) -> str:
    if not value:
        return ''
    return re.sub(r'\s+', ' ', value).strip()


def first_non_empty(strategies: Iterable[Callable[[], Optional[str]]]) -> Optional[str]:
    """Try extraction strategies in order; the first non-empty value wins"""
    for strategy in strategies:
        value = strategy()
        if value and value.strip():
            return value.strip()
    return None


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')
