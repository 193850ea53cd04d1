"""Persisted user settings (JSON)."""

import json
import logging
from pathlib import Path

from .models import DEFAULT_CHAR_LIMIT, ConversionOptions
from .voice_view import SORT_ORDERS

logger = logging.getLogger(__name__)

SETTINGS_PATH = Path.home() / ".config" / "midi_to_mml" / "settings.json"

DEFAULT_SETTINGS = {
    "mode": "normal",
    "char_limit": DEFAULT_CHAR_LIMIT,
    "compress_mode": False,
    "melody_policy": "first",
    "sort": "default",
}


def load_settings(path: Path | str | None = None) -> dict:
    path = Path(path) if path else SETTINGS_PATH
    settings = dict(DEFAULT_SETTINGS)
    if not path.exists():
        return settings
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as exc:
        logger.warning("ignoring unreadable settings file %s (%s)", path, exc)
        return settings
    if not isinstance(data, dict):
        logger.warning("ignoring settings file %s: expected a JSON object", path)
        return settings
    for key, value in data.items():
        if key in DEFAULT_SETTINGS:
            settings[key] = value
    if settings["sort"] not in SORT_ORDERS:
        settings["sort"] = DEFAULT_SETTINGS["sort"]
    return settings


def save_settings(settings: dict, path: Path | str | None = None) -> None:
    path = Path(path) if path else SETTINGS_PATH
    data = {k: settings.get(k, v) for k, v in DEFAULT_SETTINGS.items()}
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)


def options_from_settings(settings: dict) -> ConversionOptions:
    return ConversionOptions.from_dict(settings)
