"""
SQLite-backed store for riders and their calendar entries
"""

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiosqlite

from models import Rider, StoredCalendarEntry

logger = logging.getLogger(__name__)

RIDER_FIELDS = ('slug', 'name', 'team', 'nationality', 'birth_date', 'photo_url')


def _to_db_value(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def _row_to_rider(row) -> Rider:
    return Rider(
        id=row['id'],
        slug=row['slug'],
        name=row['name'],
        team=row['team'],
        nationality=row['nationality'],
        birth_date=date.fromisoformat(row['birth_date']) if row['birth_date'] else None,
        photo_url=row['photo_url'],
    )


def _row_to_entry(row) -> StoredCalendarEntry:
    return StoredCalendarEntry(
        id=row['id'],
        rider_id=row['rider_id'],
        date=datetime.fromisoformat(row['date']),
        race_name=row['race_name'],
        race_link=row['race_link'],
        result=row['result'],
    )


class RiderStore:
    """Rider and calendar persistence with find/upsert/deleteMany/createMany semantics"""

    def __init__(self, database_path: str):
        self.database_path = database_path

    @asynccontextmanager
    async def connect(self):
        async with aiosqlite.connect(self.database_path) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys = ON")
            yield db

    async def init_tables(self):
        """Initialize rider and calendar tables"""
        Path(self.database_path).parent.mkdir(parents=True, exist_ok=True)

        async with aiosqlite.connect(self.database_path) as db:
            await db.execute('''
                CREATE TABLE IF NOT EXISTS riders (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    slug TEXT UNIQUE NOT NULL,
                    name TEXT NOT NULL,
                    team TEXT,
                    nationality TEXT,
                    birth_date TEXT,
                    photo_url TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            await db.execute('''
                CREATE TABLE IF NOT EXISTS calendar_entries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    rider_id INTEGER NOT NULL,
                    date TEXT NOT NULL,
                    race_name TEXT NOT NULL,
                    race_link TEXT,
                    result TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (rider_id) REFERENCES riders (id) ON DELETE CASCADE
                )
            ''')

            await db.execute(
                'CREATE INDEX IF NOT EXISTS idx_calendar_rider_date ON calendar_entries (rider_id, date)'
            )

            await db.commit()
            logger.info("Rider database tables initialized")

    async def find_rider(self, slug: Optional[str] = None, name: Optional[str] = None) -> Optional[Rider]:
        """Find one rider by exact slug or exact name"""
        if slug is None and name is None:
            raise ValueError("find_rider needs a slug or a name")

        column, value = ('slug', slug) if slug is not None else ('name', name)
        async with self.connect() as db:
            cursor = await db.execute(f'SELECT * FROM riders WHERE {column} = ? ORDER BY id LIMIT 1', (value,))
            row = await cursor.fetchone()
            return _row_to_rider(row) if row else None

    async def find_riders(self) -> List[Rider]:
        """All riders ordered by name"""
        async with self.connect() as db:
            cursor = await db.execute('SELECT * FROM riders ORDER BY name ASC')
            return [_row_to_rider(row) for row in await cursor.fetchall()]

    async def search_rider(self, term: str) -> Optional[Rider]:
        """Exact slug match, or a case-insensitive name substring match"""
        async with self.connect() as db:
            cursor = await db.execute('''
                SELECT * FROM riders
                WHERE slug = ? OR instr(lower(name), lower(?)) > 0
                ORDER BY (slug = ?) DESC, name ASC
                LIMIT 1
            ''', (term, term, term))
            row = await cursor.fetchone()
            return _row_to_rider(row) if row else None

    async def create_rider(self, **fields) -> Rider:
        data = {key: _to_db_value(fields.get(key)) for key in RIDER_FIELDS}
        async with self.connect() as db:
            cursor = await db.execute(
                f'INSERT INTO riders ({", ".join(RIDER_FIELDS)}) VALUES ({", ".join("?" for _ in RIDER_FIELDS)})',
                tuple(data[key] for key in RIDER_FIELDS),
            )
            await db.commit()
            rider_id = cursor.lastrowid
            cursor = await db.execute('SELECT * FROM riders WHERE id = ?', (rider_id,))
            return _row_to_rider(await cursor.fetchone())

    async def update_rider(self, rider_id: int, **fields) -> Rider:
        """Overwrite the given fields; unknown keys are rejected"""
        unknown = set(fields) - set(RIDER_FIELDS)
        if unknown:
            raise ValueError(f"Unknown rider fields: {sorted(unknown)}")

        async with self.connect() as db:
            if fields:
                assignments = ', '.join(f'{key} = ?' for key in fields)
                await db.execute(
                    f'UPDATE riders SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = ?',
                    (*(_to_db_value(value) for value in fields.values()), rider_id),
                )
                await db.commit()
            cursor = await db.execute('SELECT * FROM riders WHERE id = ?', (rider_id,))
            row = await cursor.fetchone()
            if row is None:
                raise LookupError(f"Rider {rider_id} does not exist")
            return _row_to_rider(row)

    async def upsert_rider(self, slug: str, create: Dict[str, Any], update: Dict[str, Any]) -> Rider:
        """Update the rider with this slug, or create it"""
        existing = await self.find_rider(slug=slug)
        if existing:
            return await self.update_rider(existing.id, **update)
        return await self.create_rider(slug=slug, **create)

    async def delete_calendar_entries(self, rider_id: int) -> int:
        async with self.connect() as db:
            cursor = await db.execute('DELETE FROM calendar_entries WHERE rider_id = ?', (rider_id,))
            await db.commit()
            return cursor.rowcount

    async def create_calendar_entries(self, entries: List[StoredCalendarEntry]) -> int:
        if not entries:
            return 0

        async with self.connect() as db:
            await db.executemany(
                'INSERT INTO calendar_entries (rider_id, date, race_name, race_link, result) VALUES (?, ?, ?, ?, ?)',
                [
                    (entry.rider_id, entry.date.isoformat(), entry.race_name, entry.race_link, entry.result)
                    for entry in entries
                ],
            )
            await db.commit()
            return len(entries)

    async def get_calendar_entries(self, rider_id: int) -> List[StoredCalendarEntry]:
        """A rider's entries ordered by date ascending"""
        async with self.connect() as db:
            cursor = await db.execute(
                'SELECT * FROM calendar_entries WHERE rider_id = ? ORDER BY date ASC, id ASC',
                (rider_id,),
            )
            return [_row_to_entry(row) for row in await cursor.fetchall()]
