"""
Data models for the rider calendar scraper
"""

from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any
from datetime import date, datetime

from utils import utc_now_iso

UPCOMING = "Upcoming"


@dataclass
class CalendarEntry:
    """One race appearance as parsed from a source page"""
    date: str
    race_name: str
    race_link: Optional[str] = None
    result: str = UPCOMING

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date': self.date,
            'raceName': self.race_name,
            'raceLink': self.race_link,
            'result': self.result,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CalendarEntry":
        return cls(
            date=data.get('date') or '',
            race_name=data.get('raceName') or '',
            race_link=data.get('raceLink'),
            result=data.get('result') or UPCOMING,
        )


@dataclass
class RiderInfo:
    """Rider identity as read from a source page"""
    name: str
    team: Optional[str] = None
    photo_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'team': self.team, 'photoUrl': self.photo_url}


@dataclass
class ScrapeResult:
    """Parsed rider page: identity plus calendar, before it is stored"""
    rider: RiderInfo
    calendar: List[CalendarEntry]
    source: str
    scraped_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rider': self.rider.to_dict(),
            'calendar': [entry.to_dict() for entry in self.calendar],
            'scrapedAt': self.scraped_at,
            'source': self.source,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScrapeResult":
        rider = data.get('rider') or {}
        return cls(
            rider=RiderInfo(
                name=rider.get('name') or '',
                team=rider.get('team') or None,
                photo_url=rider.get('photoUrl') or None,
            ),
            calendar=[CalendarEntry.from_dict(entry) for entry in data.get('calendar') or []],
            source=data.get('source') or 'unknown',
            scraped_at=data.get('scrapedAt') or utc_now_iso(),
        )


@dataclass
class RosterRider:
    """Rider row from a team roster page"""
    name: str
    team: str
    nationality: Optional[str] = None
    birth_date: Optional[date] = None


@dataclass
class Rider:
    """Stored rider record"""
    id: int
    slug: str
    name: str
    team: Optional[str] = None
    nationality: Optional[str] = None
    birth_date: Optional[date] = None
    photo_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'slug': self.slug,
            'name': self.name,
            'team': self.team,
            'nationality': self.nationality,
            'birthDate': self.birth_date.isoformat() if self.birth_date else None,
            'photoUrl': self.photo_url,
        }


@dataclass
class StoredCalendarEntry:
    """Stored calendar row; date is UTC midnight"""
    rider_id: int
    date: datetime
    race_name: str
    race_link: Optional[str] = None
    result: Optional[str] = None
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'riderId': self.rider_id,
            'date': self.date.isoformat().replace('+00:00', 'Z'),
            'raceName': self.race_name,
            'raceLink': self.race_link,
            'result': self.result,
        }


@dataclass
class BatchError:
    identifier: str
    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {'identifier': self.identifier, 'error': self.error}


@dataclass
class BatchReport:
    """Outcome of one batch run: successes and per-item errors side by side"""
    source: str
    results: List[ScrapeResult] = field(default_factory=list)
    errors: List[BatchError] = field(default_factory=list)
    scraped_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'scrapedAt': self.scraped_at,
            'source': self.source,
            'results': [result.to_dict() for result in self.results],
            'errors': [error.to_dict() for error in self.errors],
        }
