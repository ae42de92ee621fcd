"""Layered configuration for replaycli.

Later layers win:

1. Defaults
2. Global config (~/.replay.yaml)
3. Project config (.replay.yaml in the current directory)
4. Environment: REPLAY_HEADLESS, REPLAY_BROWSER, REPLAY_CDP_ENDPOINT,
   REPLAY_DEVICE, REPLAY_VERBOSE, REPLAY_SCREENSHOT_DIR

Durations in any layer are seconds, or strings such as "500ms" and "5s".
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger("replay.config")

GLOBAL_CONFIG = Path.home() / ".replay.yaml"
PROJECT_CONFIG = Path.cwd() / ".replay.yaml"

LOG_FORMAT = "%(asctime)s.%(msecs)03d [%(levelname)s] %(name)s | %(message)s"

_TRUTHY = {"true", "1", "yes", "on"}
_DURATION_UNITS = (("ms", 1000.0), ("s", 1.0))

# Environment variable -> path into the config mapping
_ENV_KEYS = {
    "REPLAY_DEVICE": ("device",),
    "REPLAY_VERBOSE": ("verbose",),
    "REPLAY_SCREENSHOT_DIR": ("screenshot_dir",),
    "REPLAY_BROWSER": ("browser", "type"),
    "REPLAY_HEADLESS": ("browser", "headless"),
    "REPLAY_CDP_ENDPOINT": ("browser", "cdp_endpoint"),
}


def _safe_int(value: Any, default: int) -> int:
    try:
        return default if value is None else int(value)
    except (TypeError, ValueError):
        return default


def _parse_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return bool(value)


def _parse_duration(value: Any, default: float) -> float:
    """Read a duration in seconds.

    Args:
        value: Number of seconds, or a string like "5s", "500ms" or "1.5"
        default: Returned for None, booleans and unreadable strings

    Returns:
        Seconds as float
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        return default

    text, divisor = value.strip().lower(), 1.0
    for suffix, unit in _DURATION_UNITS:
        if text.endswith(suffix):
            text, divisor = text[: -len(suffix)], unit
            break
    try:
        return float(text) / divisor
    except ValueError:
        return default


def _durations(cls: type, section: dict[str, Any], positive: bool = False) -> Any:
    """Build a dataclass of durations, keeping defaults for missing keys.

    Args:
        cls: TimeoutConfig or DelayConfig
        section: Raw mapping from the config layers
        positive: Reject zero and negative values. Playwright reads a timeout
            of 0 as "no timeout", so such values keep the default instead.
    """
    defaults = cls()
    values = {}
    for f in fields(cls):
        default = getattr(defaults, f.name)
        value = _parse_duration(section.get(f.name), default)
        if positive and value <= 0:
            logger.warning(
                "Ignoring %s.%s=%r, must be greater than 0 (using %ss)",
                cls.__name__, f.name, section.get(f.name), default,
            )
            value = default
        values[f.name] = max(value, 0.0)
    return cls(**values)


@dataclass
class TimeoutConfig:
    """Bounded waits, in seconds."""

    element: float = 5.0  # Primary locator visibility
    fallback: float = 3.0  # Each declared fallback
    text_match: float = 2.0  # Description-derived text search
    wait_for_element: float = 30.0  # wait_for_element action
    navigation: float = 30.0  # DOM content after goto
    modal_navigation: float = 5.0  # Settle before resolving inside a modal
    action: float = 10.0  # Individual driver operations (click, fill, ...)


@dataclass
class DelayConfig:
    """Fixed settle delays, in seconds."""

    post_navigation: float = 1.0  # Client-side framework initialization
    backdrop_settle: float = 0.3  # After dismissing a transient backdrop
    force_settle: float = 1.0  # Before a forced retry not caused by occlusion


@dataclass
class HeuristicsConfig:
    """Pattern-matching knobs tuned to Angular Material style UIs."""

    backdrop_selector: str = ".cdk-overlay-backdrop"
    option_selector: str = "mat-option, [role='option']"
    recorder_overlay_id: str = "qa-recorder-overlay"
    modal_tokens: list[str] = field(default_factory=lambda: ["modal", "dialog"])
    modal_body_div_index: int = 2  # /html/body/div[N] with N >= this is a portal


@dataclass
class BrowserConfig:
    """Browser launch settings."""

    type: str = "chromium"  # chromium, firefox, webkit
    headless: bool = False
    cdp_endpoint: str | None = None  # Attach to a persistent browser instead of launching
    args: list[str] = field(default_factory=lambda: ["--start-maximized"])


@dataclass
class ReplayConfig:
    """Main configuration for replaycli."""

    device: str | None = None
    screenshot_dir: str = "screenshots"
    verbose: bool = False

    # Nested configs with defaults
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    delays: DelayConfig = field(default_factory=DelayConfig)
    heuristics: HeuristicsConfig = field(default_factory=HeuristicsConfig)


class ConfigLoader:
    """Reads the config layers and builds a ReplayConfig."""

    @classmethod
    def load(cls) -> ReplayConfig:
        merged: dict[str, Any] = {}
        for path in (GLOBAL_CONFIG, PROJECT_CONFIG):
            if path.exists():
                merged = cls._deep_merge(merged, cls._load_yaml(path))
        merged = cls._deep_merge(merged, cls._get_env_overrides())
        return cls._build_config(merged)

    @classmethod
    def _load_yaml(cls, path: Path) -> dict[str, Any]:
        """Mapping from a YAML file; unreadable or non-mapping files count as empty."""
        try:
            data = yaml.safe_load(path.read_text())
        except (yaml.YAMLError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    @classmethod
    def _get_env_overrides(cls) -> dict[str, Any]:
        overrides: dict[str, Any] = {}
        for name, keys in _ENV_KEYS.items():
            if name not in os.environ:
                continue
            section = overrides
            for key in keys[:-1]:
                section = section.setdefault(key, {})
            section[keys[-1]] = os.environ[name]
        return overrides

    @classmethod
    def _deep_merge(cls, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        merged = dict(base)
        for key, value in override.items():
            if isinstance(merged.get(key), dict) and isinstance(value, dict):
                merged[key] = cls._deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged

    @classmethod
    def _build_config(cls, config_dict: dict[str, Any]) -> ReplayConfig:
        browser_dict = config_dict.get("browser") or {}
        heuristics_dict = config_dict.get("heuristics") or {}

        heuristic_defaults = HeuristicsConfig()
        modal_tokens = heuristics_dict.get("modal_tokens")
        heuristics = HeuristicsConfig(
            backdrop_selector=heuristics_dict.get(
                "backdrop_selector", heuristic_defaults.backdrop_selector
            ),
            option_selector=heuristics_dict.get(
                "option_selector", heuristic_defaults.option_selector
            ),
            recorder_overlay_id=heuristics_dict.get(
                "recorder_overlay_id", heuristic_defaults.recorder_overlay_id
            ),
            modal_tokens=(
                [str(t) for t in modal_tokens]
                if isinstance(modal_tokens, list)
                else heuristic_defaults.modal_tokens
            ),
            modal_body_div_index=_safe_int(
                heuristics_dict.get("modal_body_div_index"),
                heuristic_defaults.modal_body_div_index,
            ),
        )

        browser_defaults = BrowserConfig()
        args = browser_dict.get("args")
        browser = BrowserConfig(
            type=str(browser_dict.get("type") or browser_defaults.type),
            headless=_parse_bool(browser_dict.get("headless"), browser_defaults.headless),
            cdp_endpoint=browser_dict.get("cdp_endpoint") or None,
            args=[str(a) for a in args] if isinstance(args, list) else browser_defaults.args,
        )

        return ReplayConfig(
            device=config_dict.get("device"),
            screenshot_dir=str(config_dict.get("screenshot_dir") or "screenshots"),
            verbose=_parse_bool(config_dict.get("verbose")),
            browser=browser,
            timeouts=_durations(TimeoutConfig, config_dict.get("timeouts") or {}, positive=True),
            delays=_durations(DelayConfig, config_dict.get("delays") or {}),
            heuristics=heuristics,
        )


def to_ms(seconds: float) -> float:
    """Seconds to the millisecond units Playwright expects."""
    return float(seconds or 0) * 1000


def setup_logging(verbose: bool, log_dir: Path | None) -> Path | None:
    """Send the replay.* loggers to <log_dir>/debug.log at DEBUG level.

    Each call replaces the previous handler, so consecutive runs in one
    process each get their own file.

    Returns:
        Path to the log file, or None when verbose is off or there is no folder
    """
    if not verbose or log_dir is None:
        return None

    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "debug.log"
    handler = logging.FileHandler(log_file, mode="w")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root = logging.getLogger("replay")
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)
    return log_file
