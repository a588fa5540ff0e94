#!/usr/bin/env python3
"""
Start-Process-After: wait for a condition, then launch a command line.

  ┌──────────────┐  not ready, sleep N s   ┌──────────────────┐
  │  wait_loop   │ ──────────────────────► │ wait_conditions  │
  │   .run()     │ ◄────────────────────── │    .check()      │
  └──────┬───────┘        ready            └──────────────────┘
         │ once
         ▼
  ┌──────────────┐
  │ command_line │  tokenize → Popen (detached, no shell)
  │  .launch()   │
  └──────────────┘

Usage:
  python3 start_process_after.py --wait-type UrlIsAccessible \\
      --wait-for http://localhost:8080/health \\
      --command-line '"C:\\Program Files\\App\\app.exe" --flag value'

  python3 start_process_after.py --wait-type ProcessExists --wait-for vpnui \\
      --command-line "ttermpro.exe ssh://user@host:22 ; office box" \\
      --check-interval 10

  ... --create-shortcut ~/Desktop/office-ssh   # write a launcher file, don't wait
  ... --print-command                          # show the re-entrant command line

Exit codes: 0 launched, 1 launch failed, 2 bad command line or arguments,
130 cancelled (Ctrl+C / SIGTERM) before the condition was met.
"""

from __future__ import annotations

import argparse
import functools
import logging
import os
import signal
import sys
import threading
from pathlib import Path
from typing import Callable, Optional, Union

from dotenv import load_dotenv

import command_line
import wait_conditions
import wait_loop
from command_line import CommandSpec, LaunchResult
from shortcut_builder import build_argv, render_command_line, write_shortcut
from spa_config import (
    DEFAULT_URL_TIMEOUT,
    DEFAULT_USER_AGENT,
    LauncherConfig,
    load_config,
    parse_check_interval,
    parse_timeout,
)
from spa_errors import TokenizationError, UnknownWaitTypeError, WaitSpecError
from wait_conditions import WaitKind, WaitSpec

log = logging.getLogger("spa.start_after")

EXIT_OK           = 0
EXIT_LAUNCH_ERROR = 1
EXIT_BAD_INPUT    = 2
EXIT_CANCELLED    = 130

LOG_FORMAT  = "%(asctime)s [SPA] %(levelname)s %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


# ─── Orchestration ────────────────────────────────────────────────────────────

def start_after(
    spec: WaitSpec,
    command: Union[CommandSpec, str],
    *,
    cancel: Optional[wait_loop.CancelToken] = None,
    checker: Optional[wait_loop.Checker] = None,
    launcher: Optional[Callable[[str], LaunchResult]] = None,
    timeout: float = DEFAULT_URL_TIMEOUT,
    user_agent: str = DEFAULT_USER_AGENT,
    logger: Optional[logging.Logger] = None,
) -> LaunchResult:
    """
    Wait until `spec` holds, then launch `command` once.

    The command line is tokenized before the first check so a malformed one
    fails straight away instead of after the wait. A failed launch is
    returned in the result and never retried. Cancellation before the
    condition is met gives LaunchResult(started=False, cancelled=True).
    """
    log_kwargs = {"logger": logger} if logger is not None else {}
    active_log = logger or log

    try:
        command = command if isinstance(command, CommandSpec) else CommandSpec(command)
        command.parse()
    except TokenizationError as exc:
        active_log.error("Not waiting: cannot parse command line: %s", exc)
        return LaunchResult(started=False, error=exc)

    if checker is None:
        checker = functools.partial(
            wait_conditions.check, timeout=timeout, user_agent=user_agent, **log_kwargs
        )
    if launcher is None:
        launcher = functools.partial(command_line.launch, **log_kwargs)

    results: list[LaunchResult] = []
    ready = wait_loop.run(
        spec,
        lambda: results.append(launcher(command.raw)),
        cancel=cancel,
        checker=checker,
        **log_kwargs,
    )
    if not ready:
        return LaunchResult(started=False, cancelled=True)
    return results[0]


def exit_code_for(result: LaunchResult) -> int:
    if result.ok:
        return EXIT_OK
    if result.cancelled:
        return EXIT_CANCELLED
    if isinstance(result.error, TokenizationError):
        return EXIT_BAD_INPUT
    return EXIT_LAUNCH_ERROR


# ─── CLI helpers ──────────────────────────────────────────────────────────────

def _wait_kind_arg(value: str) -> WaitKind:
    try:
        return WaitKind.parse(value)
    except UnknownWaitTypeError:
        names = ", ".join(k.value for k in WaitKind)
        raise argparse.ArgumentTypeError(f"unknown wait type {value!r} (choose from {names})")


def _interval_arg(value: str) -> int:
    try:
        return parse_check_interval(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc))


def _timeout_arg(value: str) -> float:
    try:
        return parse_timeout(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="start-process-after",
        description="Wait for a URL, folder or process, then start a command line",
    )
    parser.add_argument("--wait-type", required=True, type=_wait_kind_arg, metavar="TYPE",
                        help="UrlIsAccessible, FolderExists or ProcessExists")
    parser.add_argument("--wait-for", required=True, metavar="TARGET",
                        help="URL, folder path or process name to wait for")
    parser.add_argument("--command-line", required=True, metavar="COMMAND",
                        help="Program and arguments to start; text after an unquoted ; is ignored")
    parser.add_argument("--check-interval", type=_interval_arg, metavar="SECONDS",
                        help="Seconds between checks, 1-60 (default: SPA_CHECK_INTERVAL or 5)")
    parser.add_argument("--timeout", type=_timeout_arg, metavar="SECONDS",
                        help="Per-request timeout for UrlIsAccessible (default: SPA_URL_TIMEOUT or 10)")
    out = parser.add_mutually_exclusive_group()
    out.add_argument("--create-shortcut", metavar="PATH",
                     help="Write a launcher file that runs this wait later, then exit")
    out.add_argument("--print-command", action="store_true",
                     help="Print the equivalent command line and exit")
    parser.add_argument("--overwrite", action="store_true",
                        help="Allow --create-shortcut to replace an existing file")
    parser.add_argument("--log-file", metavar="PATH",
                        help="Also append log lines to this file (default: SPA_LOG_FILE)")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log probe failure details")
    return parser


def _setup_logging(config: LauncherConfig, args: argparse.Namespace) -> None:
    level = logging.DEBUG if args.verbose else getattr(logging, config.log_level)
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATEFMT)
    logging.getLogger("spa").setLevel(level)

    log_file = args.log_file or config.log_file
    if log_file:
        _attach_log_file(Path(log_file).expanduser())


def _attach_log_file(path: Path) -> None:
    """Append "spa" log lines to `path`. An unusable path only costs the file copy."""
    spa_logger = logging.getLogger("spa")
    target = os.path.abspath(path)
    for existing in spa_logger.handlers:
        if isinstance(existing, logging.FileHandler) and existing.baseFilename == target:
            return
    try:
        handler = logging.FileHandler(path, encoding="utf-8")
    except OSError as exc:
        log.warning("Cannot open log file %s (%s); logging to the console only", path, exc)
        return
    handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATEFMT))
    spa_logger.addHandler(handler)


def _install_signal_handlers(cancel: threading.Event) -> dict:
    previous = {}

    def _handle_signal(sig, _frame) -> None:
        log.info("Signal %s received, cancelling wait", sig)
        cancel.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        previous[sig] = signal.signal(sig, _handle_signal)
    return previous


def _restore_signal_handlers(previous: dict) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)


# ─── CLI ──────────────────────────────────────────────────────────────────────

def main(argv: Optional[list[str]] = None) -> int:
    load_dotenv()
    config = load_config()
    args = build_parser().parse_args(argv)
    _setup_logging(config, args)

    interval = args.check_interval or config.check_interval
    timeout = args.timeout or config.url_timeout
    try:
        spec = WaitSpec(args.wait_type, args.wait_for, interval)
        command = CommandSpec(args.command_line)
        command.parse()
    except (WaitSpecError, TokenizationError) as exc:
        log.error("%s", exc)
        return EXIT_BAD_INPUT

    if args.print_command:
        print(render_command_line(build_argv(spec, command)))
        return EXIT_OK

    if args.create_shortcut:
        try:
            path = write_shortcut(args.create_shortcut, spec, command, overwrite=args.overwrite)
        except FileExistsError as exc:
            log.error("%s (use --overwrite to replace it)", exc)
            return EXIT_BAD_INPUT
        except OSError as exc:
            log.error("Cannot write shortcut %s: %s", args.create_shortcut, exc)
            return EXIT_LAUNCH_ERROR
        print(f"Shortcut written: {path}")
        return EXIT_OK

    cancel = threading.Event()
    previous = _install_signal_handlers(cancel)
    try:
        result = start_after(
            spec, command, cancel=cancel, timeout=timeout, user_agent=config.user_agent
        )
    finally:
        _restore_signal_handlers(previous)

    if result.cancelled:
        log.warning("Cancelled before %s %s was met", spec.kind.value, spec.target)
    elif result.error is not None:
        log.error("%s", result.error)
    return exit_code_for(result)


if __name__ == "__main__":
    sys.exit(main())
