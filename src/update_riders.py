#!/usr/bin/env python3
"""
Team roster sync for ProCyclingStats

Scrapes the configured team pages and creates or updates one rider per roster
row. Riders are matched by exact name; a failing team or rider is recorded in
the summary and the sync moves on.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pcs_scraper import ProCyclingStatsScraper
from reconcile import ingest_roster_rider
from store import RiderStore

logger = logging.getLogger(__name__)


@dataclass
class TeamPage:
    team_name: str
    url: str


TEAM_PAGES = [
    TeamPage('Visma | Lease a Bike', 'https://www.procyclingstats.com/team/visma-lease-a-bike-2025'),
    TeamPage('UAE Team Emirates', 'https://www.procyclingstats.com/team/uae-team-emirates-2025'),
]


async def sync_team_rosters(
    store: RiderStore,
    scraper: ProCyclingStatsScraper,
    team_pages: Optional[List[TeamPage]] = None,
) -> Dict[str, Any]:
    """Scrape team rosters and upsert their riders"""
    team_pages = TEAM_PAGES if team_pages is None else team_pages
    summary = {'scraped': 0, 'created': 0, 'updated': 0, 'errors': []}

    for team in team_pages:
        try:
            riders = await scraper.scrape_team_roster(team.url, team.team_name)
        except Exception as e:
            logger.error(f"💥 Error scraping team {team.team_name}: {e}")
            summary['errors'].append({'team': team.team_name, 'error': str(e)})
            continue

        summary['scraped'] += len(riders)

        for rider in riders:
            try:
                _, created = await ingest_roster_rider(store, rider)
            except Exception as e:
                logger.error(f"💥 Error saving rider {rider.name}: {e}")
                summary['errors'].append({'rider': rider.name, 'error': str(e)})
                continue

            summary['created' if created else 'updated'] += 1

    logger.info(f"🎉 Roster sync completed:")
    logger.info(f"   📊 Scraped: {summary['scraped']}")
    logger.info(f"   ✅ Created: {summary['created']}")
    logger.info(f"   🔄 Updated: {summary['updated']}")
    logger.info(f"   ❌ Errors: {len(summary['errors'])}")

    return summary
