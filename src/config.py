"""
Configuration for the rider calendar scraper
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

BROWSER_ENGINES = ('chromium', 'firefox', 'webkit')

# Browser launch env vars are read per source: PCS_BROWSER_* or UCI_BROWSER_*
BROWSER_ENV_PREFIXES = {'procyclingstats': 'PCS', 'uci': 'UCI'}


class ConfigError(Exception):
    """Raised for configuration problems found before any scraping starts"""


def parse_browser_args(value) -> Optional[List[str]]:
    """Split a comma separated launch-arg string; lists pass through"""
    if not value:
        return None
    if isinstance(value, (list, tuple)):
        return list(value)
    args = [arg.strip() for arg in str(value).split(',')]
    return [arg for arg in args if arg] or None


def _env_flag(name: str) -> bool:
    return os.environ.get(name, '').strip().lower() == 'true'


def _env_ms(name: str, default: float) -> float:
    """Read a millisecond env var and return seconds"""
    raw = os.environ.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return float(raw) / 1000
    except ValueError:
        raise ConfigError(f"{name} must be a number of milliseconds, got {raw!r}")


@dataclass
class BrowserOptions:
    """Headless browser launch and capture settings"""
    engine: str = 'chromium'
    headless: bool = True
    channel: Optional[str] = None
    executable_path: Optional[str] = None
    launch_args: Optional[List[str]] = None
    debug_dir: Optional[str] = None
    navigation_timeout: int = 45000  # ms
    default_timeout: int = 20000  # ms
    selector_timeout: int = 15000  # ms

    @classmethod
    def from_env(cls, prefix: str = 'PCS') -> "BrowserOptions":
        return cls(
            engine=(os.environ.get(f'{prefix}_BROWSER_ENGINE') or 'chromium').lower(),
            channel=os.environ.get(f'{prefix}_BROWSER_CHANNEL') or None,
            executable_path=os.environ.get(f'{prefix}_BROWSER_EXECUTABLE_PATH') or None,
            launch_args=parse_browser_args(os.environ.get(f'{prefix}_BROWSER_ARGS')),
            debug_dir=os.environ.get('PCS_DEBUG_DIR') or None,
        )


@dataclass
class ScrapingConfig:
    """Configuration for rider calendar scraping"""
    min_delay: float = 1.5  # Minimum spacing between requests in seconds
    max_retries: int = 3
    backoff_base: float = 1.0  # Retry delay is backoff_base * 2**attempt
    batch_delay: float = 2.0  # Pause between batch items in seconds
    timeout: int = 30
    use_browser: bool = False
    browser: BrowserOptions = field(default_factory=BrowserOptions)
    database_path: str = "data/riders.db"

    @classmethod
    def from_env(cls, source: Optional[str] = None) -> "ScrapingConfig":
        """Build a config from SCRAPE_* and the source's PCS_* or UCI_* environment variables"""
        max_retries = os.environ.get('SCRAPE_MAX_RETRIES')
        try:
            retries = int(max_retries) if max_retries else 3
        except ValueError:
            raise ConfigError(f"SCRAPE_MAX_RETRIES must be an integer, got {max_retries!r}")

        return cls(
            min_delay=_env_ms('SCRAPE_MIN_DELAY_MS', 1.5),
            max_retries=retries,
            backoff_base=_env_ms('SCRAPE_BACKOFF_BASE_MS', 1.0),
            use_browser=_env_flag('PCS_USE_BROWSER'),
            browser=BrowserOptions.from_env(BROWSER_ENV_PREFIXES.get(source, 'PCS')),
            database_path=os.environ.get('RIDERS_DATABASE') or "data/riders.db",
        )

    def validate(self) -> "ScrapingConfig":
        if self.browser.engine not in BROWSER_ENGINES:
            raise ConfigError(
                f'Unsupported browser engine "{self.browser.engine}". Use chromium, firefox, or webkit.'
            )
        if self.max_retries < 0:
            raise ConfigError("max_retries must be >= 0")
        if self.min_delay < 0 or self.backoff_base < 0 or self.batch_delay < 0:
            raise ConfigError("delays must be >= 0")
        return self
