from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, List, Optional

# --- Configuration ---
SINA_FEED_URL = "https://zhibo.sina.com.cn/api/zhibo/feed"
SINA_FEED_PARAMS = {
    "zhibo_id": "152",
    "tag": "0",
    "pagesize": "20",
    "dire": "f",
    "dpc": "1",
}
CONNECTIVITY_PROBE_URL = "https://httpbin.org/get"
CONNECT_TIMEOUT = 10.0
REQUEST_TIMEOUT = 30.0

REQUEST_HEADERS = {
    "Accept": "application/json",
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"
    ),
}

REFRESH_PAGE_SIZE = 10
LOAD_MORE_PAGE_SIZE = 20

DEFAULT_REFRESH_INTERVAL = 30.0
MIN_REFRESH_INTERVAL = 5.0
MAX_REFRESH_INTERVAL = 60.0
DEFAULT_SPEECH_RATE = 0.5

CONFIG_PATH = os.path.expanduser("~/.config/news_flash/config.json")

# --- Logging ---
logger = logging.getLogger("news_flash")


def setup_logging(debug: bool = False) -> Optional[str]:
    """Configure logging."""
    if not debug:
        logging.basicConfig(level=logging.CRITICAL, handlers=[logging.NullHandler()])
        return None

    ts = datetime.now().strftime("%Y%m%dT%H%M%S")
    pid = os.getpid()
    debug_path = f"/tmp/news_flash_debug_{ts}_{pid}.log"

    logging.basicConfig(
        level=logging.DEBUG,
        filename=debug_path,
        filemode="a",
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )

    logger.debug("Debug logging enabled to %s", debug_path)
    return debug_path


def clamp_interval(seconds: float) -> float:
    return max(MIN_REFRESH_INTERVAL, min(MAX_REFRESH_INTERVAL, float(seconds)))


@dataclass
class Settings:
    """User preferences consumed by the poller, engine and dispatcher."""

    speech_rate: float = DEFAULT_SPEECH_RATE
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    refresh_sound: str = "Pop"
    news_sound: str = "Submarine"
    keyword_sound: str = "Glass"
    monitored_keywords: List[str] = field(default_factory=list)
    important_broadcast_enabled: bool = True
    important_broadcast_title: bool = True
    keyword_broadcast_enabled: bool = True
    keyword_broadcast_title: bool = False
    voice: Optional[str] = None
    desktop_notifications: bool = True
    source: str = "sina"
    sources: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        known = {f.name for f in fields(cls)}
        settings = cls(**{k: v for k, v in data.items() if k in known})
        # Zero or negative values mean "never set"
        try:
            rate = float(settings.speech_rate)
        except (TypeError, ValueError):
            rate = 0.0
        settings.speech_rate = rate if rate > 0 else DEFAULT_SPEECH_RATE
        try:
            interval = float(settings.refresh_interval)
        except (TypeError, ValueError):
            interval = 0.0
        settings.refresh_interval = (
            clamp_interval(interval) if interval > 0 else DEFAULT_REFRESH_INTERVAL
        )
        settings.monitored_keywords = [
            k for k in (settings.monitored_keywords or []) if isinstance(k, str)
        ]
        if not isinstance(settings.source, str) or not settings.source:
            settings.source = "sina"
        if not isinstance(settings.sources, dict):
            settings.sources = {}
        settings.sources = {
            name: block for name, block in settings.sources.items() if isinstance(block, dict)
        }
        return settings

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def add_keyword(keywords: List[str], keyword: str) -> bool:
    """Append a trimmed keyword unless it is empty or already present."""
    trimmed = keyword.strip()
    if not trimmed or trimmed in keywords:
        return False
    keywords.append(trimmed)
    return True


def remove_keyword(keywords: List[str], index: int) -> bool:
    if index < 0 or index >= len(keywords):
        return False
    del keywords[index]
    return True


def load_config(path: str = CONFIG_PATH) -> Dict[str, Any]:
    """Load the main configuration file."""
    if not os.path.exists(path):
        logger.info("Config file not found at %s, creating default.", path)
        save_config(Settings().to_dict(), path)
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            config = json.load(f)
            logger.info("Loaded config from %s", path)
            if not isinstance(config, dict):
                logger.error("Config at %s is not an object, ignoring", path)
                return {}
            return config
    except (IOError, json.JSONDecodeError) as e:
        logger.error("Failed to load config from %s: %s", path, e)
        return {}


def save_config(config: Dict[str, Any], path: str = CONFIG_PATH) -> None:
    """Save the main configuration file."""
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2, ensure_ascii=False)
        logger.info("Saved config to %s", path)
    except IOError as e:
        logger.error("Failed to save config to %s: %s", path, e)


def load_settings(path: str = CONFIG_PATH) -> Settings:
    return Settings.from_dict(load_config(path))


def save_settings(settings: Settings, path: str = CONFIG_PATH) -> None:
    save_config(settings.to_dict(), path)
