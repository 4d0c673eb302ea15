import json

import pytest

import main
from main import build_config, parse_args, parse_file_list, parse_list

ENV_VARS = [
  "SCRAPE_MIN_DELAY_MS",
  "SCRAPE_MAX_RETRIES",
  "SCRAPE_BACKOFF_BASE_MS",
  "PCS_USE_BROWSER",
  "PCS_BROWSER_ENGINE",
  "PCS_BROWSER_CHANNEL",
  "PCS_BROWSER_EXECUTABLE_PATH",
  "PCS_BROWSER_ARGS",
  "UCI_BROWSER_ENGINE",
  "UCI_BROWSER_CHANNEL",
  "UCI_BROWSER_EXECUTABLE_PATH",
  "UCI_BROWSER_ARGS",
  "PCS_DEBUG_DIR",
  "RIDERS_DATABASE",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
  for name in ENV_VARS:
    monkeypatch.delenv(name, raising=False)
  monkeypatch.chdir(tmp_path)


def test_parse_list():
  assert parse_list(" tadej-pogacar, ,jonas-vingegaard ") == ["tadej-pogacar", "jonas-vingegaard"]
  assert parse_list(None) == []


def test_parse_file_list(tmp_path):
  path = tmp_path / "riders.txt"
  path.write_text("tadej-pogacar\n\n  jonas-vingegaard  \n", encoding="utf-8")
  assert parse_file_list(str(path)) == ["tadej-pogacar", "jonas-vingegaard"]


def test_env_defaults_converted_from_milliseconds(monkeypatch):
  monkeypatch.setenv("SCRAPE_MIN_DELAY_MS", "500")
  monkeypatch.setenv("SCRAPE_BACKOFF_BASE_MS", "250")
  monkeypatch.setenv("PCS_USE_BROWSER", "true")
  monkeypatch.setenv("PCS_BROWSER_ARGS", "--no-sandbox, --disable-gpu")

  config = build_config(parse_args(["batch", "--riders", "a"]))

  assert config.min_delay == 0.5
  assert config.backoff_base == 0.25
  assert config.use_browser
  assert config.browser.launch_args == ["--no-sandbox", "--disable-gpu"]


def test_flags_override_environment(monkeypatch):
  monkeypatch.setenv("SCRAPE_MIN_DELAY_MS", "500")
  monkeypatch.setenv("RIDERS_DATABASE", "env.db")

  config = build_config(parse_args([
    "--database", "flag.db",
    "batch", "--riders", "a", "--min-delay", "0.1", "--delay", "0",
    "--browser-engine", "firefox", "--no-headless",
  ]))

  assert config.min_delay == 0.1
  assert config.batch_delay == 0
  assert config.database_path == "flag.db"
  assert config.browser.engine == "firefox"
  assert not config.browser.headless


def test_bad_environment_exits_with_error(monkeypatch):
  monkeypatch.setenv("SCRAPE_MAX_RETRIES", "lots")
  assert main.main(["calendar"]) == 1


def test_unsupported_engine_exits_with_error(monkeypatch):
  monkeypatch.setenv("PCS_BROWSER_ENGINE", "netscape")
  assert main.main(["calendar"]) == 1


def test_rider_command_requires_identifier():
  assert main.main(["rider"]) == 1
  assert main.main(["rider", "--source", "uci"]) == 1


def test_seed_then_calendar(tmp_path, capsys):
  rider_file = tmp_path / "tadej-pogacar.json"
  rider_file.write_text(json.dumps({
    "rider": {"name": "Tadej Pogačar", "team": "UAE Team Emirates", "photoUrl": None},
    "calendar": [
      {"date": "2026-07-04", "raceName": "Tour de France", "raceLink": None, "result": "Upcoming"},
      {"date": "2026-03-07", "raceName": "Strade Bianche", "raceLink": None, "result": "1"},
    ],
    "scrapedAt": "2026-03-08T10:00:00Z",
    "source": "procyclingstats",
  }), encoding="utf-8")
  database = str(tmp_path / "riders.db")

  assert main.main(["--database", database, "seed", str(rider_file)]) == 0
  capsys.readouterr()

  assert main.main(["--database", database, "calendar", "--rider", "pogačar"]) == 0
  payload = json.loads(capsys.readouterr().out)
  assert payload["rider"]["slug"] == "tadej-pogacar"
  assert [entry["raceName"] for entry in payload["rider"]["calendarEntries"]] == [
    "Strade Bianche",
    "Tour de France",
  ]

  assert main.main(["--database", database, "calendar", "--rider", "remco"]) == 0
  assert json.loads(capsys.readouterr().out) == {"rider": None}


def test_browser_settings_follow_the_source(monkeypatch):
  monkeypatch.setenv("PCS_BROWSER_ENGINE", "firefox")
  monkeypatch.setenv("PCS_BROWSER_ARGS", "--pcs-only")
  monkeypatch.setenv("UCI_BROWSER_ENGINE", "WebKit")
  monkeypatch.setenv("UCI_BROWSER_CHANNEL", "beta")
  monkeypatch.setenv("UCI_BROWSER_EXECUTABLE_PATH", "/opt/webkit/run")
  monkeypatch.setenv("UCI_BROWSER_ARGS", "--no-sandbox")

  uci = build_config(parse_args(["batch", "--source", "uci", "--urls", "https://x/rider/a"]))
  pcs = build_config(parse_args(["batch", "--riders", "a"]))

  assert uci.browser.engine == "webkit"
  assert uci.browser.channel == "beta"
  assert uci.browser.executable_path == "/opt/webkit/run"
  assert uci.browser.launch_args == ["--no-sandbox"]
  assert pcs.browser.engine == "firefox"
  assert pcs.browser.channel is None
  assert pcs.browser.launch_args == ["--pcs-only"]
