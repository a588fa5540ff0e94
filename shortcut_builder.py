#!/usr/bin/env python3
"""
shortcut_builder.py: Re-entrant command lines and launcher files.

A shortcut is just this tool invoked again with the same WaitType / WaitFor /
CommandLine / interval. Every parameter is a flat string, so one level of
host-shell quoting is enough to carry it:

    Windows   subprocess.list2cmdline, written into a .cmd batch file
    POSIX     shlex.join, written into a freedesktop .desktop entry
"""

from __future__ import annotations

import os
import re
import shlex
import stat
import subprocess
import sys
from pathlib import Path
from typing import Optional, Union

from command_line import CommandSpec
from spa_config import parse_check_interval
from spa_errors import InvalidWaitSpecError
from wait_conditions import WaitSpec

MODULE_NAME = "start_process_after"

_BATCH_METACHARS  = "^&|<>()"
_DESKTOP_RESERVED = re.compile(r'([`"$\\])')


def build_argv(
    spec: WaitSpec,
    command: Union[CommandSpec, str],
    python: Optional[str] = None,
) -> list[str]:
    """The argv that re-runs this wait-then-launch from scratch."""
    command = command if isinstance(command, CommandSpec) else CommandSpec(command)
    if not float(spec.interval).is_integer():
        raise InvalidWaitSpecError(f"shortcut intervals must be whole seconds, got {spec.interval:g}")
    try:
        interval = parse_check_interval(str(int(spec.interval)))
    except ValueError as exc:
        raise InvalidWaitSpecError(str(exc)) from None
    return [
        python or sys.executable,
        "-m", MODULE_NAME,
        "--wait-type", spec.kind.value,
        "--wait-for", spec.target,
        "--command-line", command.raw,
        "--check-interval", str(interval),
    ]


def render_command_line(argv: list[str], windows: Optional[bool] = None) -> str:
    """Quote `argv` for one level of the host shell."""
    if windows is None:
        windows = os.name == "nt"
    if windows:
        return subprocess.list2cmdline(argv)
    return shlex.join(argv)


# ─── Launcher files ───────────────────────────────────────────────────────────

def _escape_for_batch(line: str) -> str:
    """
    Make a command line literal inside a .cmd file: % is always doubled,
    and cmd metacharacters outside double quotes get a caret.
    """
    out = []
    in_quotes = False
    for ch in line:
        if ch == '"':
            in_quotes = not in_quotes
        elif ch == "%":
            out.append("%")
        elif ch in _BATCH_METACHARS and not in_quotes:
            out.append("^")
        out.append(ch)
    return "".join(out)


def _desktop_string(value: str) -> str:
    # Escapes for a desktop-entry string value; applied after Exec quoting.
    return (value.replace("\\", "\\\\")
                 .replace("\n", "\\n")
                 .replace("\t", "\\t")
                 .replace("\r", "\\r"))


def _desktop_exec(argv: list[str]) -> str:
    quoted = []
    for arg in argv:
        arg = '"' + _DESKTOP_RESERVED.sub(r"\\\1", arg) + '"'
        quoted.append(arg.replace("%", "%%"))
    return _desktop_string(" ".join(quoted))


def render_batch_file(argv: list[str]) -> str:
    line = _escape_for_batch(render_command_line(argv, windows=True))
    return "\r\n".join([
        "@echo off",
        "chcp 65001 >nul",
        f'start "" /min {line}',
        "",
    ])


def render_desktop_entry(argv: list[str], name: str) -> str:
    return "\n".join([
        "[Desktop Entry]",
        "Type=Application",
        f"Name={_desktop_string(name)}",
        f"Exec={_desktop_exec(argv)}",
        "Terminal=false",
        "",
    ])


def write_shortcut(
    path: Union[str, Path],
    spec: WaitSpec,
    command: Union[CommandSpec, str],
    *,
    python: Optional[str] = None,
    overwrite: bool = False,
    windows: Optional[bool] = None,
) -> Path:
    """
    Write a launcher file for `spec` + `command` and return its path.

    Windows gets a .cmd batch file, everything else a .desktop entry marked
    executable. The suffix is added when `path` has none. Raises
    FileExistsError unless `overwrite` is set.
    """
    if windows is None:
        windows = os.name == "nt"
    path = Path(path).expanduser()
    if not path.suffix:
        path = path.with_suffix(".cmd" if windows else ".desktop")
    if path.exists() and not overwrite:
        raise FileExistsError(f"{path} already exists")

    command = command if isinstance(command, CommandSpec) else CommandSpec(command)
    argv = build_argv(spec, command, python=python)
    if windows:
        content = render_batch_file(argv)
    else:
        program = command.parse().program_path
        content = render_desktop_entry(
            argv, name=f"{Path(program).name} after {spec.kind.value} {spec.target}"
        )

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(content)
    if not windows:
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path
