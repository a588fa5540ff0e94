#!/usr/bin/env python3
"""
spa_config.py: Read-only runtime defaults for Start-Process-After.

Values come from the process environment. The CLI calls load_dotenv() before
load_config(), so a .env file in the working directory works too:

    SPA_CHECK_INTERVAL=5          seconds between checks (1..60)
    SPA_URL_TIMEOUT=10            per-request timeout for UrlIsAccessible
    SPA_USER_AGENT=...            User-Agent sent by the URL probe
    SPA_LOG_FILE=~/spa.log        optional extra log destination
    SPA_LOG_LEVEL=INFO

A bad value never aborts startup: it is logged and the default is used.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

logger = logging.getLogger("spa.config")

DEFAULT_CHECK_INTERVAL = 5
MIN_CHECK_INTERVAL     = 1
MAX_CHECK_INTERVAL     = 60
DEFAULT_URL_TIMEOUT    = 10.0
DEFAULT_USER_AGENT     = "Start-Process-After/1.0"
DEFAULT_LOG_LEVEL      = "INFO"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class LauncherConfig:
    check_interval: int           = DEFAULT_CHECK_INTERVAL
    url_timeout:    float         = DEFAULT_URL_TIMEOUT
    user_agent:     str           = DEFAULT_USER_AGENT
    log_file:       Optional[Path] = None
    log_level:      str           = DEFAULT_LOG_LEVEL


# ─── Parsers ──────────────────────────────────────────────────────────────────

def parse_check_interval(value: str) -> int:
    """Parse an interval in whole seconds. Raises ValueError outside 1..60."""
    interval = int(str(value).strip())
    if not MIN_CHECK_INTERVAL <= interval <= MAX_CHECK_INTERVAL:
        raise ValueError(
            f"check interval must be between {MIN_CHECK_INTERVAL} and "
            f"{MAX_CHECK_INTERVAL} seconds, got {interval}"
        )
    return interval


def parse_timeout(value: str) -> float:
    timeout = float(str(value).strip())
    if not 0 < timeout < float("inf"):
        raise ValueError(f"timeout must be positive, got {timeout}")
    return timeout


def _env_value(env: Mapping[str, str], key: str, parser, default):
    raw = env.get(key, "")
    if not raw.strip():
        return default
    try:
        return parser(raw)
    except ValueError as exc:
        logger.warning("Ignoring %s=%r (%s); using %r", key, raw, exc, default)
        return default


def _parse_log_level(value: str) -> str:
    level = value.strip().upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"expected one of {', '.join(_LOG_LEVELS)}")
    return level


# ─── Loader ───────────────────────────────────────────────────────────────────

def load_config(environ: Optional[Mapping[str, str]] = None) -> LauncherConfig:
    """Build a LauncherConfig from `environ` (defaults to os.environ). Never raises."""
    env = os.environ if environ is None else environ

    log_file_raw = env.get("SPA_LOG_FILE", "").strip()
    log_file = Path(log_file_raw).expanduser() if log_file_raw else None

    user_agent = env.get("SPA_USER_AGENT", "").strip() or DEFAULT_USER_AGENT

    return LauncherConfig(
        check_interval=_env_value(env, "SPA_CHECK_INTERVAL", parse_check_interval, DEFAULT_CHECK_INTERVAL),
        url_timeout=_env_value(env, "SPA_URL_TIMEOUT", parse_timeout, DEFAULT_URL_TIMEOUT),
        user_agent=user_agent,
        log_file=log_file,
        log_level=_env_value(env, "SPA_LOG_LEVEL", _parse_log_level, DEFAULT_LOG_LEVEL),
    )
