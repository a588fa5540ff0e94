#!/usr/bin/env python3
"""
command_line.py: Split a command-line string and start it detached.

Tokenizing rules (tokenize()):
  - unquoted whitespace separates tokens
  - "..." or '...' groups text, quotes are dropped and the run joins any
    adjacent text: --name="a b"  →  --name=a b
  - inside quotes a doubled quote is one literal quote: "a ""b"" c"  →  a "b" c
  - backslashes are ordinary characters, so C:\\Program Files\\... survives
  - an unquoted ; ends the command; the rest of the line is a comment
  - an unterminated quote is an error, as is a line with no tokens

The first token is the program, every other token is handed to the OS as one
argv element. There is no shell in between, so nothing in an argument is
expanded or re-split.
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Callable, Optional

from spa_errors import CommandLineError, LaunchError, TokenizationError

logger = logging.getLogger("spa.command_line")

QUOTE_CHARS    = ("'", '"')
COMMENT_MARKER = ";"


# ─── Data classes ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ParsedCommand:
    program_path: str
    args:         tuple[str, ...] = ()

    @property
    def argv(self) -> list[str]:
        return [self.program_path, *self.args]


@dataclass(frozen=True)
class CommandSpec:
    raw: str

    def __post_init__(self):
        if not isinstance(self.raw, str) or not self.raw.strip():
            raise TokenizationError("command line is empty")

    def parse(self) -> ParsedCommand:
        return parse(self.raw)


@dataclass(frozen=True)
class LaunchResult:
    """Outcome of one launch attempt. Errors are carried, not raised."""
    started:   bool
    error:     Optional[CommandLineError] = None
    pid:       Optional[int]              = None
    command:   Optional[ParsedCommand]    = None
    cancelled: bool                       = False

    @property
    def ok(self) -> bool:
        return self.started and self.error is None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


# ─── Tokenizer ────────────────────────────────────────────────────────────────

def tokenize(raw: str) -> list[str]:
    """Split `raw` into tokens. Raises TokenizationError (see module docstring)."""
    tokens: list[str] = []
    buf: list[str] = []
    in_token = False
    quote: Optional[str] = None
    quote_start = 0
    i, n = 0, len(raw)

    while i < n:
        ch = raw[i]
        if quote is not None:
            if ch != quote:
                buf.append(ch)
            elif i + 1 < n and raw[i + 1] == quote:
                buf.append(quote)
                i += 1
            else:
                quote = None
        elif ch in QUOTE_CHARS:
            quote = ch
            quote_start = i
            in_token = True
        elif ch == COMMENT_MARKER:
            break
        elif ch.isspace():
            if in_token:
                tokens.append("".join(buf))
                buf = []
                in_token = False
        else:
            buf.append(ch)
            in_token = True
        i += 1

    if quote is not None:
        raise TokenizationError(f"unterminated {quote} quote starting at position {quote_start}")
    if in_token:
        tokens.append("".join(buf))
    if not tokens:
        raise TokenizationError(f"no program to start in command line {raw!r}")
    return tokens


def parse(raw: str) -> ParsedCommand:
    if not isinstance(raw, str):
        raise TokenizationError(f"command line must be a string, got {type(raw).__name__}")
    tokens = tokenize(raw)
    return ParsedCommand(program_path=tokens[0], args=tuple(tokens[1:]))


# ─── Launcher ─────────────────────────────────────────────────────────────────

def detached_popen_kwargs() -> dict:
    """Popen keyword arguments for a child we never wait on."""
    if os.name == "nt":
        return {
            "creationflags": subprocess.CREATE_NEW_CONSOLE | subprocess.CREATE_NEW_PROCESS_GROUP,
            "close_fds": True,
        }
    return {
        "start_new_session": True,
        "stdin": subprocess.DEVNULL,
        "close_fds": True,
    }


def launch(
    raw: str,
    *,
    cwd: Optional[str] = None,
    popen: Optional[Callable[..., subprocess.Popen]] = None,
    logger: logging.Logger = logger,
) -> LaunchResult:
    """
    Tokenize `raw` and start it without waiting for it to exit.

    Returns LaunchResult(started=True, pid=...) on success. A bad command
    line gives error=TokenizationError; an OS refusal (missing executable,
    permission denied) gives error=LaunchError with the OSError as __cause__.
    Nothing is raised.
    """
    try:
        command = parse(raw)
    except TokenizationError as exc:
        logger.error("Cannot parse command line %r: %s", raw, exc)
        return LaunchResult(started=False, error=exc)

    if popen is None:
        popen = subprocess.Popen
    try:
        proc = popen(command.argv, cwd=cwd, **detached_popen_kwargs())
    except (OSError, ValueError) as exc:
        reason = getattr(exc, "strerror", None) or str(exc)
        error = LaunchError(f"cannot start {command.program_path!r}: {reason}")
        error.__cause__ = exc
        logger.error("Launch failed: %s", error)
        return LaunchResult(started=False, error=error, command=command)

    logger.info(
        "Started %s (pid %s) with %d argument(s)",
        command.program_path, proc.pid, len(command.args),
    )
    # Never waited on; stops Popen.__del__ warning that the child still runs.
    proc.returncode = 0
    return LaunchResult(started=True, pid=proc.pid, command=command)
