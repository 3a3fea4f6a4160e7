"""libmdb.config

User settings, persisted as a small JSON file.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields

from .model import MAX_BOX_LEVEL

DEFAULT_SETTINGS_FILE = "mdbstudio.json"


@dataclass
class Settings:
    # prefix written in front of every map_Kd texture
    texture_directory: str = ""
    export_cbox: bool = False
    auto_cbox: bool = True

    @property
    def max_box_level(self) -> int:
        return MAX_BOX_LEVEL


def save_settings(settings: Settings, path: str = DEFAULT_SETTINGS_FILE) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(asdict(settings), f, indent=2)
        f.write("\n")


def load_settings(path: str = DEFAULT_SETTINGS_FILE) -> Settings:
    """Read settings from path; a missing or broken file yields the defaults,
    which are written back so the user has a file to edit."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, ValueError):
        settings = Settings()
        try:
            save_settings(settings, path)
        except OSError:
            # read-only location, run on the in-memory defaults
            pass
        return settings

    if not isinstance(raw, dict):
        return Settings()
    known = {f.name for f in fields(Settings)}
    settings = Settings(**{k: v for k, v in raw.items() if k in known})
    if not isinstance(settings.texture_directory, str):
        settings.texture_directory = ""
    settings.export_cbox = bool(settings.export_cbox)
    settings.auto_cbox = bool(settings.auto_cbox)
    return settings
