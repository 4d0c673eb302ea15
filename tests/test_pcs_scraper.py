import asyncio

import pytest

import pcs_scraper
from config import ScrapingConfig
from fetchers import FetchError
from fixture_utils import read_fixture
from pcs_scraper import (
  ProCyclingStatsScraper,
  parse_rider_calendar,
  parse_team_roster,
)
from models import UPCOMING

BASE = "https://www.procyclingstats.com"


class FetchRecorder:
  """Replaces the module-level fetchers; each URL maps to html or an exception"""

  def __init__(self, pages):
    self.pages = pages
    self.calls = []

  def _serve(self, kind, url):
    self.calls.append((kind, url))
    page = self.pages[(kind, url)]
    if isinstance(page, Exception):
      raise page
    return page

  async def fetch_html(self, session, url, **kwargs):
    return self._serve("http", url)

  async def fetch_html_with_browser(self, url, options=None, browser=None, **kwargs):
    return self._serve("browser", url)


def make_scraper(monkeypatch, pages, **config):
  recorder = FetchRecorder(pages)
  monkeypatch.setattr(pcs_scraper, "fetch_html", recorder.fetch_html)
  monkeypatch.setattr(pcs_scraper, "fetch_html_with_browser", recorder.fetch_html_with_browser)
  scraper = ProCyclingStatsScraper(session=None, config=ScrapingConfig(min_delay=0, **config))
  return scraper, recorder


def test_parse_calendar_fixture():
  result = parse_rider_calendar(read_fixture("pcs_calendar"))

  assert result.source == "procyclingstats"
  assert result.rider.name == "Tadej Pogačar"
  assert result.rider.team == "UAE Team Emirates"
  assert result.rider.photo_url == f"{BASE}/images/riders/bp/tadej-pogacar-2025.jpg"

  assert [entry.race_name for entry in result.calendar] == [
    "Strade Bianche",
    "Ronde van Vlaanderen",
    "Tour de France",
  ]
  strade, ronde, tour = result.calendar
  assert strade.race_link == f"{BASE}/race/strade-bianche/2026"
  assert strade.result == "1"
  assert ronde.result == UPCOMING
  assert tour.to_dict() == {
    "date": "2026-07-04",
    "raceName": "Tour de France",
    "raceLink": f"{BASE}/race/tour-de-france/2026",
    "result": "1st",
  }


def test_parse_calendar_without_photo_uses_rider_info_team():
  result = parse_rider_calendar(read_fixture("pcs_calendar_no_photo"))

  assert result.rider.name == "Jonas Vingegaard"
  assert result.rider.team == "Team Visma | Lease a Bike"
  assert result.rider.photo_url is None
  assert len(result.calendar) == 1


def test_parse_empty_page():
  result = parse_rider_calendar("<html><body></body></html>")

  assert result.rider.name == ""
  assert result.rider.team is None
  assert result.calendar == []


def test_text_split_across_tags_keeps_word_spacing():
  roster = parse_team_roster(
    "<table><tr><td>1</td><td>SI</td>"
    "<td><a href=\"rider/tadej-pogacar\"><span class=\"uppercase\">POGAČAR</span> Tadej</a></td></tr></table>",
    "UAE Team Emirates",
  )
  calendar = parse_rider_calendar(
    "<h1>Tadej <span>Pogačar</span></h1>"
    "<div class=\"riderInfo\"><a href=\"/team/x\">UAE Team <b>Emirates</b></a></div>"
    "<table><tr><td>2026-07-04</td>"
    "<td><a href=\"/race/tour-de-france/2026\"><span class=\"flag fr\"></span> Tour <b>de</b> France</a></td></tr></table>"
  )

  assert roster[0].name == "POGAČAR Tadej"
  assert calendar.rider.name == "Tadej Pogačar"
  assert calendar.rider.team == "UAE Team Emirates"
  assert calendar.calendar[0].race_name == "Tour de France"


def test_parse_team_roster():
  riders = parse_team_roster(read_fixture("pcs_team"), "UAE Team Emirates")

  assert [rider.name for rider in riders] == ["Tadej Pogačar", "João Almeida", "Adam Yates", "NARVÁEZ Jhonatan"]
  assert all(rider.team == "UAE Team Emirates" for rider in riders)

  pogacar, almeida, yates, narvaez = riders
  assert pogacar.nationality == "SI"
  assert pogacar.birth_date.isoformat() == "1998-09-21"
  assert almeida.nationality == "Portugal"
  assert almeida.birth_date.isoformat() == "1998-08-05"
  assert yates.nationality == "GB"
  assert yates.birth_date is None
  assert narvaez.nationality == "EC"
  assert narvaez.birth_date.isoformat() == "1997-03-04"


def test_forbidden_escalates_to_browser(monkeypatch):
  url = f"{BASE}/rider/tadej-pogacar/calendar/calendar"
  scraper, recorder = make_scraper(monkeypatch, {
    ("http", url): FetchError(url, 403),
    ("browser", url): read_fixture("pcs_calendar"),
  })

  result = asyncio.run(scraper.scrape_rider_calendar("tadej-pogacar"))

  assert recorder.calls == [("http", url), ("browser", url)]
  assert len(result.calendar) == 3


def test_browser_mode_skips_plain_fetch(monkeypatch):
  url = f"{BASE}/rider/tadej-pogacar/calendar/calendar"
  scraper, recorder = make_scraper(monkeypatch, {
    ("browser", url): read_fixture("pcs_calendar"),
  }, use_browser=True)

  asyncio.run(scraper.scrape_rider_calendar("tadej-pogacar"))

  assert recorder.calls == [("browser", url)]


def test_not_found_propagates_without_browser(monkeypatch):
  url = f"{BASE}/rider/nobody/calendar/calendar"
  scraper, recorder = make_scraper(monkeypatch, {("http", url): FetchError(url, 404)})

  with pytest.raises(FetchError) as excinfo:
    asyncio.run(scraper.scrape_rider_calendar("nobody"))

  assert excinfo.value.status == 404
  assert recorder.calls == [("http", url)]


def test_photo_falls_back_to_profile_page(monkeypatch):
  calendar_url = f"{BASE}/rider/jonas-vingegaard/calendar/calendar"
  profile_url = f"{BASE}/rider/jonas-vingegaard"
  scraper, recorder = make_scraper(monkeypatch, {
    ("http", calendar_url): read_fixture("pcs_calendar_no_photo"),
    ("http", profile_url): read_fixture("pcs_profile"),
  })

  result = asyncio.run(scraper.scrape_rider_calendar("jonas-vingegaard"))

  assert recorder.calls == [("http", calendar_url), ("http", profile_url)]
  assert result.rider.photo_url == f"{BASE}/images/riders/bp/jonas-vingegaard-2026.jpg"


def test_photo_fallback_runs_once_and_may_find_nothing(monkeypatch):
  calendar_url = f"{BASE}/rider/jonas-vingegaard/calendar/calendar"
  profile_url = f"{BASE}/rider/jonas-vingegaard"
  scraper, recorder = make_scraper(monkeypatch, {
    ("http", calendar_url): read_fixture("pcs_calendar_no_photo"),
    ("http", profile_url): read_fixture("pcs_profile_no_photo"),
  })

  result = asyncio.run(scraper.scrape_rider_calendar("jonas-vingegaard"))

  assert result.rider.photo_url is None
  assert [url for _, url in recorder.calls].count(profile_url) == 1


def test_failed_photo_fallback_keeps_calendar(monkeypatch):
  calendar_url = f"{BASE}/rider/jonas-vingegaard/calendar/calendar"
  profile_url = f"{BASE}/rider/jonas-vingegaard"
  scraper, _ = make_scraper(monkeypatch, {
    ("http", calendar_url): read_fixture("pcs_calendar_no_photo"),
    ("http", profile_url): FetchError(profile_url, 500),
  })

  result = asyncio.run(scraper.scrape_rider_calendar("jonas-vingegaard"))

  assert result.rider.photo_url is None
  assert len(result.calendar) == 1


def test_scrape_team_roster_goes_through_fetch_page(monkeypatch):
  team_url = f"{BASE}/team/uae-team-emirates-2025"
  scraper, recorder = make_scraper(monkeypatch, {
    ("http", team_url): FetchError(team_url, 403),
    ("browser", team_url): read_fixture("pcs_team"),
  })

  riders = asyncio.run(scraper.scrape_team_roster(team_url, "UAE Team Emirates"))

  assert len(riders) == 4
  assert recorder.calls == [("http", team_url), ("browser", team_url)]


@pytest.mark.parametrize("failure", [
  UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte"),
  RuntimeError("browser crashed"),
])
def test_photo_fallback_never_fails_the_rider(monkeypatch, failure):
  calendar_url = f"{BASE}/rider/jonas-vingegaard/calendar/calendar"
  profile_url = f"{BASE}/rider/jonas-vingegaard"
  scraper, _ = make_scraper(monkeypatch, {
    ("http", calendar_url): read_fixture("pcs_calendar_no_photo"),
    ("http", profile_url): failure,
  })

  result = asyncio.run(scraper.scrape_rider_calendar("jonas-vingegaard"))

  assert result.rider.name == "Jonas Vingegaard"
  assert result.rider.photo_url is None
  assert len(result.calendar) == 1
