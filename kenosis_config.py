#!/usr/bin/env python3
"""
Configuration management for Kenosis

Handles persistent storage of the keep list, default project types,
worker count and run statistics in ~/.kenosis/config.json. Extra
artifact rules may be placed in ~/.kenosis/rules.toml.
"""

import json
import os
import pathlib
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Optional

CONFIG_DIR_ENV = "KENOSIS_HOME"


def _default_stats() -> dict:
    return {"total_runs": 0, "total_reclaimed_bytes": 0}


@dataclass
class KenosisConfig:
    """Configuration for Kenosis"""

    ignore_paths: list[str] = field(default_factory=list)
    default_types: list[str] = field(default_factory=list)
    workers: Optional[int] = None
    last_run: Optional[str] = None
    stats: dict = field(default_factory=_default_stats)

    def add_keep(self, path: pathlib.Path) -> bool:
        """Add a path to the keep list"""
        path_str = str(path.expanduser().resolve())
        if path_str not in self.ignore_paths:
            self.ignore_paths.append(path_str)
            self.ignore_paths.sort()
            return True
        return False

    def clear_keep(self):
        self.ignore_paths.clear()

    def record_run(self, reclaimed: int):
        """Update run statistics"""
        self.stats["total_runs"] = self.stats.get("total_runs", 0) + 1
        self.stats["total_reclaimed_bytes"] = self.stats.get("total_reclaimed_bytes", 0) + reclaimed
        self.last_run = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "KenosisConfig":
        workers = data.get("workers")
        return cls(
            ignore_paths=[str(p) for p in data.get("ignore_paths", [])],
            default_types=[str(t) for t in data.get("default_types", [])],
            workers=workers if isinstance(workers, int) and workers > 0 else None,
            last_run=data.get("last_run"),
            stats={**_default_stats(), **data.get("stats", {})},
        )


class ConfigManager:
    """Manages loading and saving configuration"""

    def __init__(self, config_dir: Optional[pathlib.Path] = None):
        """Initialize configuration manager

        Args:
            config_dir: Override default ~/.kenosis directory location
        """
        if config_dir:
            self.config_dir = config_dir
        elif os.environ.get(CONFIG_DIR_ENV):
            self.config_dir = pathlib.Path(os.environ[CONFIG_DIR_ENV]).expanduser()
        else:
            self.config_dir = pathlib.Path.home() / ".kenosis"

        self.config_file = self.config_dir / "config.json"
        self.rules_file = self.config_dir / "rules.toml"

    def load(self) -> KenosisConfig:
        """Load configuration from file"""
        if self.config_file.exists():
            try:
                with self.config_file.open() as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    return KenosisConfig.from_dict(data)
            except (json.JSONDecodeError, OSError, AttributeError, TypeError):
                # If config is corrupted, return default
                pass
        return KenosisConfig()

    def save(self, config: KenosisConfig):
        """Save configuration to file"""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with self.config_file.open("w") as f:
            json.dump(config.to_dict(), f, indent=2)
