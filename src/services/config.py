"""
Loads and handles config from ~/.config/hn-brief/config.yml
Backend settings (OLLAMA_BASE_URL, OLLAMA_MODEL, OLLAMA_CHEAP_MODEL) can be overridden from .env
"""
import logging
import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "hn-brief"
CONFIG_FILE_NAME = "config.yml"


@dataclass(frozen=True)
class SettingRange:
    """Allowed range and step for a single filter knob."""
    min: float
    max: float
    step: float
    label: str
    description: str


class FilterConfig(BaseModel):
    """
    Configurable filter settings.
    These control story filtering, ranking, comment display, and caching behavior.
    """
    # Story filtering
    max_posts: int = 24
    fetch_limit: int = 200
    hours_window: int = 24
    min_points: int = 50
    min_comments: int = 20

    # Ranking algorithm
    comment_weight: float = 0.75
    recency_bonus_max: int = 100

    # Comment display
    max_root_comments: int = 12
    max_child_comments: int = 8
    max_comment_level: int = 3

    # Cache
    stories_ttl_minutes: int = 5


DEFAULT_SETTINGS = FilterConfig()

SETTING_RANGES: Dict[str, SettingRange] = {
    "max_posts": SettingRange(1, 50, 1, "Max Stories", "Maximum number of stories to display"),
    "fetch_limit": SettingRange(50, 500, 50, "Fetch Limit", "Number of posts to fetch from HN API"),
    "hours_window": SettingRange(1, 168, 1, "Time Window (hours)", "Only show posts from the last N hours"),
    "min_points": SettingRange(0, 500, 10, "Min Points", "Minimum points for a story to appear"),
    "min_comments": SettingRange(0, 100, 5, "Min Comments", "Minimum comments for a story to appear"),
    "comment_weight": SettingRange(0, 2, 0.25, "Comment Weight", "Weight of comments in ranking (0-2)"),
    "recency_bonus_max": SettingRange(0, 200, 10, "Recency Bonus", "Maximum bonus points for new posts"),
    "max_root_comments": SettingRange(1, 50, 1, "Root Comments", "Maximum root-level comments per story"),
    "max_child_comments": SettingRange(1, 20, 1, "Child Comments", "Maximum replies per comment"),
    "max_comment_level": SettingRange(1, 10, 1, "Nesting Depth", "Maximum comment nesting levels"),
    "stories_ttl_minutes": SettingRange(1, 60, 1, "Cache TTL (min)", "How long to cache stories before refresh"),
}

SETTING_CATEGORIES = {
    "Story Filtering": ["max_posts", "hours_window", "min_points", "min_comments"],
    "Ranking": ["comment_weight", "recency_bonus_max"],
    "Comments": ["max_root_comments", "max_child_comments", "max_comment_level"],
    "Advanced": ["fetch_limit", "stories_ttl_minutes"],
}


class BackendConfig(BaseModel):
    """Configuration for the text-generation backend."""
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "llama3.1:8b"
    OLLAMA_CHEAP_MODEL: str = "llama3.2:3b"
    TIMEOUT_SECONDS: float = 120.0


class Config(BaseModel):
    backend: BackendConfig = BackendConfig()
    filter_settings: FilterConfig = FilterConfig()


def _config_path(config_dir: Optional[Path] = None) -> Path:
    return Path(config_dir or CONFIG_DIR) / CONFIG_FILE_NAME


def validate_setting(key: str, value: Any) -> float:
    """
    Clamp a setting value to its allowed range and snap it to the nearest step.
    Invalid values fall back to the default.
    """
    range_ = SETTING_RANGES[key]
    default = getattr(DEFAULT_SETTINGS, key)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default

    clamped = max(range_.min, min(range_.max, number))
    # Halves round up
    steps = math.floor((clamped - range_.min) / range_.step + 0.5)
    snapped = range_.min + steps * range_.step

    if isinstance(default, int):
        return int(round(snapped))
    return round(snapped, 6)


def validate_settings(settings: Optional[Dict[str, Any]]) -> FilterConfig:
    """Validate all settings, returning a sanitized copy."""
    validated = DEFAULT_SETTINGS.model_dump()

    if isinstance(settings, dict):
        for key in SETTING_RANGES:
            if settings.get(key) is not None:
                validated[key] = validate_setting(key, settings[key])

    return FilterConfig(**validated)


def _read_raw(config_dir: Optional[Path] = None) -> Dict[str, Any]:
    path = _config_path(config_dir)
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as file:
            data = yaml.safe_load(file)
    except Exception as e:
        logger.warning(f"Ignoring unreadable config {path}: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def load_config(config_dir: Optional[Path] = None) -> Config:
    """Load configuration from config.yml and backend overrides from .env."""
    load_dotenv()

    raw = _read_raw(config_dir)
    backend_data = raw.get("backend") or {}
    if not isinstance(backend_data, dict):
        backend_data = {}

    defaults = BackendConfig()
    backend = BackendConfig(
        OLLAMA_BASE_URL=os.getenv("OLLAMA_BASE_URL") or backend_data.get("OLLAMA_BASE_URL", defaults.OLLAMA_BASE_URL),
        OLLAMA_MODEL=os.getenv("OLLAMA_MODEL") or backend_data.get("OLLAMA_MODEL", defaults.OLLAMA_MODEL),
        OLLAMA_CHEAP_MODEL=os.getenv("OLLAMA_CHEAP_MODEL") or backend_data.get("OLLAMA_CHEAP_MODEL", defaults.OLLAMA_CHEAP_MODEL),
        TIMEOUT_SECONDS=float(backend_data.get("TIMEOUT_SECONDS", defaults.TIMEOUT_SECONDS)),
    )

    return Config(
        backend=backend,
        filter_settings=validate_settings(raw.get("filter_settings")),
    )


def _write_raw(data: Dict[str, Any], config_dir: Optional[Path] = None) -> None:
    path = _config_path(config_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as file:
        yaml.dump(data, file, default_flow_style=False, allow_unicode=True, sort_keys=False)


def save_config(config: Config, config_dir: Optional[Path] = None) -> None:
    _write_raw({
        "backend": config.backend.model_dump(),
        "filter_settings": validate_settings(config.filter_settings.model_dump()).model_dump(),
    }, config_dir)


def load_settings(config_dir: Optional[Path] = None) -> FilterConfig:
    """Load filter settings from config, with defaults for missing values."""
    return validate_settings(_read_raw(config_dir).get("filter_settings"))


def save_settings(settings: FilterConfig, config_dir: Optional[Path] = None) -> None:
    """
    Rewrite only the filter_settings section. Other sections are kept as
    stored on disk, without environment overrides.
    """
    data = _read_raw(config_dir)
    data["filter_settings"] = validate_settings(settings.model_dump()).model_dump()
    _write_raw(data, config_dir)


def update_setting(key: str, value: Any, config_dir: Optional[Path] = None) -> FilterConfig:
    """Update a single setting value."""
    if key not in SETTING_RANGES:
        raise ValueError(f"Unknown setting: {key}")
    settings = load_settings(config_dir).model_copy(update={key: validate_setting(key, value)})
    save_settings(settings, config_dir)
    return settings


def reset_settings(config_dir: Optional[Path] = None) -> FilterConfig:
    """Reset all settings to defaults."""
    save_settings(DEFAULT_SETTINGS, config_dir)
    return DEFAULT_SETTINGS.model_copy()


def reset_setting(key: str, config_dir: Optional[Path] = None) -> FilterConfig:
    """Reset a single setting to its default value."""
    return update_setting(key, getattr(DEFAULT_SETTINGS, key), config_dir)


def is_modified(key: str, config_dir: Optional[Path] = None) -> bool:
    return getattr(load_settings(config_dir), key) != getattr(DEFAULT_SETTINGS, key)


def has_modified_settings(config_dir: Optional[Path] = None) -> bool:
    settings = load_settings(config_dir)
    return any(getattr(settings, key) != getattr(DEFAULT_SETTINGS, key) for key in SETTING_RANGES)


def format_setting_value(key: str, value: float) -> str:
    if key == "comment_weight":
        return f"{value:.2f}"
    return str(value)
