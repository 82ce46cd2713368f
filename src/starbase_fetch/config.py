"""
Configuration for StarBase-Fetch.

Settings are read from a YAML file and can be overridden through
environment variables:

    STARBASE_FETCH_PREFETCH        enable/disable batched loading
    STARBASE_FETCH_LINK_PREFETCH   enable/disable link prefetching
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

ENV_PREFETCH = "STARBASE_FETCH_PREFETCH"
ENV_LINK_PREFETCH = "STARBASE_FETCH_LINK_PREFETCH"

DEFAULT_HIGHLIGHT_TEMPLATE = '<span class="smw-query-token">{token}</span>'


class ConfigValidationError(Exception):
    """Configuration validation error."""
    pass


_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def _parse_flag(name: str, value: str) -> Optional[bool]:
    text = value.strip().lower()
    if text in _TRUTHY:
        return True
    if text in _FALSY:
        return False
    logger.warning(f"Ignoring invalid value for {name}: {value!r}")
    return None


@dataclass
class FetchConfig:
    """Content fetching configuration."""
    prefetch_enabled: bool = True
    link_prefetch: bool = True
    text_type_ids: List[str] = field(default_factory=lambda: ["_txt"])
    record_type_marker: str = "_rec"
    # `-ia` is the deprecated spelling of `-raw`
    raw_format_markers: List[str] = field(default_factory=lambda: ["-raw", "-ia"])
    highlight_format_marker: str = "-hl"
    highlight_template: str = DEFAULT_HIGHLIGHT_TEMPLATE

    def validate(self) -> None:
        """Raise ConfigValidationError on inconsistent settings."""
        if "{token}" not in self.highlight_template:
            raise ConfigValidationError("highlight_template must contain '{token}'")
        if not all(marker for marker in self.raw_format_markers):
            raise ConfigValidationError("raw_format_markers must not contain empty markers")
        if not self.highlight_format_marker:
            raise ConfigValidationError("highlight_format_marker must not be empty")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prefetch_enabled": self.prefetch_enabled,
            "link_prefetch": self.link_prefetch,
            "text_type_ids": list(self.text_type_ids),
            "record_type_marker": self.record_type_marker,
            "raw_format_markers": list(self.raw_format_markers),
            "highlight_format_marker": self.highlight_format_marker,
            "highlight_template": self.highlight_template,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FetchConfig":
        config = cls(
            prefetch_enabled=bool(data.get("prefetch_enabled", True)),
            link_prefetch=bool(data.get("link_prefetch", True)),
            text_type_ids=list(data.get("text_type_ids", ["_txt"])),
            record_type_marker=data.get("record_type_marker", "_rec"),
            raw_format_markers=list(data.get("raw_format_markers", ["-raw", "-ia"])),
            highlight_format_marker=data.get("highlight_format_marker", "-hl"),
            highlight_template=data.get("highlight_template", DEFAULT_HIGHLIGHT_TEMPLATE),
        )
        config.validate()
        return config

    def apply_env(self, environ: Optional[Dict[str, str]] = None) -> "FetchConfig":
        """Override settings from environment variables (in place)."""
        environ = os.environ if environ is None else environ

        if ENV_PREFETCH in environ:
            flag = _parse_flag(ENV_PREFETCH, environ[ENV_PREFETCH])
            if flag is not None:
                self.prefetch_enabled = flag

        if ENV_LINK_PREFETCH in environ:
            flag = _parse_flag(ENV_LINK_PREFETCH, environ[ENV_LINK_PREFETCH])
            if flag is not None:
                self.link_prefetch = flag

        return self

    def save(self, path: Path) -> None:
        """Save configuration as YAML."""
        path = Path(path)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    @classmethod
    def load(cls, path: Optional[Path] = None, environ: Optional[Dict[str, str]] = None) -> "FetchConfig":
        """
        Load configuration from a YAML file.

        A missing file yields the defaults. Environment overrides are
        applied last.
        """
        data: Dict[str, Any] = {}
        if path is not None:
            path = Path(path)
            if path.exists():
                with open(path, "r", encoding="utf-8") as f:
                    loaded = yaml.safe_load(f)
                if loaded is None:
                    loaded = {}
                if not isinstance(loaded, dict):
                    raise ConfigValidationError(f"{path}: expected a mapping at top level")
                data = loaded.get("fetch", loaded)
            else:
                logger.debug(f"No config file at {path}, using defaults")

        return cls.from_dict(data).apply_env(environ)
