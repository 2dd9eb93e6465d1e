"""
Settings
========

• Optional YAML file, looked up in this order:
      explicit path  →  $MERGEBOT_CONFIG  →  ~/.config/mergebot/config.yaml
• A missing file means "use the defaults"; unknown keys are an error so
  typos do not silently fall back to defaults.
• Exposes the values as plain attributes.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from mergebot.core.exceptions import ConfigError

log = logging.getLogger(__name__)

DEFAULT_SOAP_URL = "https://bugs.debian.org/cgi-bin/soap.cgi"

DEFAULTS: Dict[str, Any] = {
    "soap_url":    DEFAULT_SOAP_URL,
    "builder":     "sbuild -v -As --dist=unstable",
    "temp_prefix": "mergebot-",
    "temp_root":   None,            # None -> tempfile.gettempdir()
    "log_level":   "INFO",
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def check_log_level(value: Any) -> str:
    """Upper-cased level name, or ConfigError for anything logging does not know."""
    name = str(value).upper()
    if name not in LOG_LEVELS:
        raise ConfigError(f"unknown log level \"{value}\", want one of {', '.join(LOG_LEVELS)}")
    return name


class Settings:
    # --------------------------------------------------------------------- init
    def __init__(self, path: Optional[os.PathLike | str] = None, **overrides: Any) -> None:
        self.path = self._locate(path)
        self._values: Dict[str, Any] = dict(DEFAULTS)
        self._values.update(self._load_file())
        self._values.update({k: v for k, v in overrides.items() if v is not None})
        self._check_keys(self._values)
        self._values["log_level"] = check_log_level(self._values["log_level"])

    # ----------------------------------------------------------------- public API
    @property
    def soap_url(self) -> str:
        return self._values["soap_url"]

    @property
    def builder(self) -> str:
        return self._values["builder"]

    @property
    def temp_prefix(self) -> str:
        return self._values["temp_prefix"]

    @property
    def temp_root(self) -> Optional[Path]:
        root = self._values["temp_root"]
        return Path(root).expanduser() if root else None

    @property
    def log_level(self) -> str:
        return self._values["log_level"]

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._values)

    # ---------------------------------------------------------------- helpers
    @staticmethod
    def _locate(path: Optional[os.PathLike | str]) -> Path:
        if path is not None:
            return Path(path)
        if env_path := os.environ.get("MERGEBOT_CONFIG"):
            return Path(env_path)
        return Path.home() / ".config" / "mergebot" / "config.yaml"

    def _load_file(self) -> Dict[str, Any]:
        if not self.path.exists():
            log.debug("No settings file at %s, using defaults", self.path)
            return {}
        try:
            with open(self.path, "r") as fp:
                data = yaml.safe_load(fp) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"could not read {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"{self.path}: expected a mapping at the top level")
        return data

    def _check_keys(self, values: Dict[str, Any]) -> None:
        unknown = sorted(set(values) - set(DEFAULTS))
        if unknown:
            raise ConfigError(f"{self.path}: unknown setting(s) {', '.join(unknown)}")

    # ---------------------------------------------------------------- repr
    def __repr__(self) -> str:
        return f"<Settings {self.path}>"
