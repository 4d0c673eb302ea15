"""
Reconciles scraped riders and calendars into the rider store.

Calendar ingestion is a full replace: every stored entry for the rider is
deleted and the freshly scraped set is inserted. Upstream races carry no
stable identifier, so there is no per-entry diffing. Entries added by hand
are lost on the next scrape of that rider.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from models import CalendarEntry, Rider, RosterRider, ScrapeResult, StoredCalendarEntry
from store import RiderStore
from utils import is_iso_date, slugify, to_utc_midnight

logger = logging.getLogger(__name__)

MISSING_PAGE_NAME = 'page not found'


@dataclass
class IngestOutcome:
    rider: Rider
    created: bool
    entries: int
    skipped: int


def to_stored_entries(rider_id: int, entries: List[CalendarEntry]) -> Tuple[List[StoredCalendarEntry], int]:
    """Keep entries with a valid ISO date; return them plus the number dropped"""
    stored = []
    skipped = 0

    for entry in entries:
        if not is_iso_date(entry.date):
            skipped += 1
            logger.debug(f"Skipping entry with malformed date {entry.date!r}: {entry.race_name}")
            continue
        stored.append(StoredCalendarEntry(
            rider_id=rider_id,
            date=to_utc_midnight(entry.date),
            race_name=entry.race_name,
            race_link=entry.race_link,
            result=entry.result,
        ))

    return stored, skipped


def is_missing_page(result: ScrapeResult) -> bool:
    """The source served its 404 page instead of a rider"""
    return (result.rider.name or '').strip().lower() == MISSING_PAGE_NAME


async def ingest_scrape_result(store: RiderStore, result: ScrapeResult, slug: Optional[str] = None) -> IngestOutcome:
    """Upsert the rider by slug and replace its calendar"""
    slug = slug or slugify(result.rider.name)
    if not slug:
        raise ValueError("Cannot ingest a scrape result without a rider name or slug")

    fields = {
        'name': result.rider.name or slug,
        'team': result.rider.team or None,
        'photo_url': result.rider.photo_url or None,
    }

    existing = await store.find_rider(slug=slug)
    rider = await store.upsert_rider(slug, create=fields, update=fields)

    stored, skipped = to_stored_entries(rider.id, result.calendar)
    removed = await store.delete_calendar_entries(rider.id)
    inserted = await store.create_calendar_entries(stored)

    action = "Updated" if existing else "Created"
    logger.info(f"{action} {slug}: replaced {removed} entries with {inserted} ({skipped} skipped)")
    if skipped:
        logger.warning(f"{slug}: {skipped} calendar rows had malformed dates")

    return IngestOutcome(rider=rider, created=existing is None, entries=inserted, skipped=skipped)


async def ingest_roster_rider(store: RiderStore, roster_rider: RosterRider) -> Tuple[Rider, bool]:
    """Match a roster rider by exact name; update it or create it with a derived slug"""
    existing = await store.find_rider(name=roster_rider.name)

    if existing:
        rider = await store.update_rider(
            existing.id,
            team=roster_rider.team,
            nationality=roster_rider.nationality,
            birth_date=roster_rider.birth_date,
        )
        return rider, False

    rider = await store.create_rider(
        slug=slugify(roster_rider.name),
        name=roster_rider.name,
        team=roster_rider.team,
        nationality=roster_rider.nationality,
        birth_date=roster_rider.birth_date,
    )
    return rider, True


async def seed_from_files(store: RiderStore, paths: List[Union[str, Path]]) -> Dict[str, int]:
    """Ingest saved per-rider JSON files; the file stem is the rider slug"""
    summary = {'seeded': 0, 'skipped': 0, 'entries': 0}

    for path in map(Path, paths):
        if not path.exists():
            logger.warning(f"Skipping missing file: {path}")
            summary['skipped'] += 1
            continue

        result = ScrapeResult.from_dict(json.loads(path.read_text(encoding='utf-8')))
        if is_missing_page(result):
            logger.warning(f"Skipping 404 payload: {path}")
            summary['skipped'] += 1
            continue

        outcome = await ingest_scrape_result(store, result, slug=path.stem)
        summary['seeded'] += 1
        summary['entries'] += outcome.entries
        logger.info(f"Seeded {path.stem} with {outcome.entries} entries")

    return summary
