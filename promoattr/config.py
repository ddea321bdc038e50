"""
Runtime settings, read from the environment (and a local .env if present).

Every knob is prefixed PROMOATTR_. Defaults mirror the timings that work for
the storefront in practice: settle ~900ms after navigation, reload, then wait
for network idle within the capture budget.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass
class Settings:
    """Application configuration"""
    expected_domain: str = field(default_factory=lambda: os.getenv("PROMOATTR_DOMAIN", "whop.com"))
    timeout_ms: int = field(default_factory=lambda: int(os.getenv("PROMOATTR_TIMEOUT_MS", "15000")))
    settle_ms: int = field(default_factory=lambda: int(os.getenv("PROMOATTR_SETTLE_MS", "900")))
    reload_settle_ms: int = field(default_factory=lambda: int(os.getenv("PROMOATTR_RELOAD_SETTLE_MS", "700")))
    navigation_timeout_ms: int = field(default_factory=lambda: int(os.getenv("PROMOATTR_NAV_TIMEOUT_MS", "45000")))
    concurrency: int = field(default_factory=lambda: int(os.getenv("PROMOATTR_CONCURRENCY", "2")))
    storage_state: Optional[str] = field(default_factory=lambda: os.getenv("PROMOATTR_STORAGE") or None)
    headless: bool = field(default_factory=lambda: _flag("PROMOATTR_HEADLESS", "true"))
    user_agent: str = field(default_factory=lambda: os.getenv(
        "PROMOATTR_USER_AGENT",
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126 Safari/537.36",
    ))
    locale: str = field(default_factory=lambda: os.getenv("PROMOATTR_LOCALE", "en-GB"))
    data_dir: Path = field(default_factory=lambda: Path(os.getenv("PROMOATTR_DATA_DIR", "./data")))
    out_dir: Path = field(default_factory=lambda: Path(os.getenv("PROMOATTR_OUT_DIR", "./out")))
    # discount extraction windows (characters)
    fallback_window: int = field(default_factory=lambda: int(os.getenv("PROMOATTR_FALLBACK_WINDOW", "600")))
    record_span: int = field(default_factory=lambda: int(os.getenv("PROMOATTR_RECORD_SPAN", "4000")))


def get_settings() -> Settings:
    return Settings()
