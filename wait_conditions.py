#!/usr/bin/env python3
"""
wait_conditions.py: The three pollable conditions and their probes.

    UrlIsAccessible   GET <target> answers exactly 200
    FolderExists      <target> is an existing directory
    ProcessExists     a running process is named exactly <target>

check(kind, target) runs one synchronous probe and returns a bool. Network,
filesystem and process-table errors are expected while waiting, so every
probe turns them into False; only an unknown kind raises.
"""

from __future__ import annotations

import http.client
import logging
import os
import urllib.error
import urllib.request
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

import psutil

from spa_config import DEFAULT_URL_TIMEOUT, DEFAULT_USER_AGENT
from spa_errors import InvalidWaitSpecError, UnknownWaitTypeError

logger = logging.getLogger("spa.conditions")

_IS_WINDOWS = os.name == "nt"


# ─── Kinds ────────────────────────────────────────────────────────────────────

class WaitKind(str, Enum):
    URL_IS_ACCESSIBLE = "UrlIsAccessible"
    FOLDER_EXISTS     = "FolderExists"
    PROCESS_EXISTS    = "ProcessExists"

    @classmethod
    def parse(cls, value: Union["WaitKind", str]) -> "WaitKind":
        """
        Resolve a wait type name. Case-insensitive; also accepts the short
        aliases url/folder/process and the older UrlReachable spelling.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise UnknownWaitTypeError(value)
        kind = _KIND_ALIASES.get(value.strip().lower())
        if kind is None:
            raise UnknownWaitTypeError(value)
        return kind


_KIND_ALIASES: dict[str, WaitKind] = {
    "urlisaccessible": WaitKind.URL_IS_ACCESSIBLE,
    "urlreachable":    WaitKind.URL_IS_ACCESSIBLE,
    "url":             WaitKind.URL_IS_ACCESSIBLE,
    "folderexists":    WaitKind.FOLDER_EXISTS,
    "folder":          WaitKind.FOLDER_EXISTS,
    "processexists":   WaitKind.PROCESS_EXISTS,
    "process":         WaitKind.PROCESS_EXISTS,
}


@dataclass(frozen=True)
class WaitSpec:
    """What to wait for and how often to look. `interval` is in seconds."""
    kind:     WaitKind
    target:   str
    interval: float = 5.0

    def __post_init__(self):
        object.__setattr__(self, "kind", WaitKind.parse(self.kind))
        if not isinstance(self.target, str) or not self.target.strip():
            raise InvalidWaitSpecError("wait target must be a non-empty string")
        try:
            interval = float(self.interval)
        except (TypeError, ValueError):
            raise InvalidWaitSpecError(f"interval must be a number, got {self.interval!r}") from None
        if not 0 < interval < float("inf"):
            raise InvalidWaitSpecError(f"interval must be positive, got {self.interval!r}")
        object.__setattr__(self, "interval", interval)


# ─── Probes ───────────────────────────────────────────────────────────────────

def url_is_accessible(
    url: str,
    timeout: float = DEFAULT_URL_TIMEOUT,
    user_agent: str = DEFAULT_USER_AGENT,
    logger: logging.Logger = logger,
) -> bool:
    """True iff GET <url> returns status 200. Redirects are followed."""
    try:
        req = urllib.request.Request(url, headers={"User-Agent": user_agent})
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            code = resp.getcode()
    except urllib.error.HTTPError as e:
        logger.debug("GET %s: HTTP %s", url, e.code)
        return False
    except urllib.error.URLError as e:
        logger.debug("GET %s: connection error: %s", url, e.reason)
        return False
    except (http.client.HTTPException, OSError, ValueError) as e:
        logger.debug("GET %s: %s", url, e)
        return False
    if code != 200:
        logger.debug("GET %s: HTTP %s", url, code)
    return code == 200


def folder_exists(path: str, logger: logging.Logger = logger) -> bool:
    """
    True iff <path> is an existing directory. Files do not count, and an
    unresolvable ~user prefix is just a missing folder.
    """
    try:
        return Path(path).expanduser().is_dir()
    except (OSError, RuntimeError, ValueError) as e:
        logger.debug("stat %s: %s", path, e)
        return False


def process_name_matches(name: Optional[str], target: str, windows: bool = _IS_WINDOWS) -> bool:
    """
    Exact process-name comparison. On Windows the comparison ignores case and
    `notepad` also matches `notepad.exe`, the way Get-Process names work.
    """
    if not name:
        return False
    if not windows:
        return name == target
    name, target = name.lower(), target.lower()
    if name == target:
        return True
    return name.endswith(".exe") and name[:-4] == target


def process_exists(name: str, logger: logging.Logger = logger) -> bool:
    """True iff at least one running process is named exactly <name>."""
    try:
        for proc in psutil.process_iter(["name"]):
            if process_name_matches(proc.info.get("name"), name):
                return True
    except (psutil.Error, OSError) as e:
        logger.debug("process enumeration failed: %s", e)
    return False


# ─── Dispatcher ───────────────────────────────────────────────────────────────

def check(
    kind: Union[WaitKind, str],
    target: str,
    *,
    timeout: float = DEFAULT_URL_TIMEOUT,
    user_agent: str = DEFAULT_USER_AGENT,
    logger: logging.Logger = logger,
) -> bool:
    """
    Run one probe for `kind` against `target`.

    Returns the probe's answer and logs one line naming the probe, the target
    and the outcome. Raises UnknownWaitTypeError for an unrecognised kind;
    never raises for a failed probe.
    """
    kind = WaitKind.parse(kind)
    if kind is WaitKind.URL_IS_ACCESSIBLE:
        ready = url_is_accessible(target, timeout=timeout, user_agent=user_agent, logger=logger)
    elif kind is WaitKind.FOLDER_EXISTS:
        ready = folder_exists(target, logger=logger)
    else:
        ready = process_exists(target, logger=logger)
    logger.info("%s %s: %s", kind.value, target, "ready" if ready else "not ready")
    return ready
