#!/usr/bin/env python3
"""
test_start_process_after.py: Wait-then-launch orchestration and CLI tests.

Covers:
  1.  Condition already true        → 1 check, 0 sleeps, launched once
  2.  Condition true on 3rd check   → 3 checks, 2 sleeps, launched once
  3.  Bad command line              → TokenizationError, no polling at all
  4.  Launch failure after the wait → LaunchError returned, not retried, exit 1
  5.  Cancelled                     → cancelled=True, launcher untouched, exit 130
  6.  Injected logger               → every stage logs through it
  7.  CLI happy path                → FolderExists on a temp dir, exit 0
  8.  CLI bad input                 → comment-only command 2, unknown type / interval 2
  9.  CLI --print-command           → round-trips through shlex.split
  10. CLI --create-shortcut         → file written, second run refuses without --overwrite
  11. CLI --log-file                → unusable path warns, ~ expanded, one handler per file

Run:
    python3 test_start_process_after.py      (or: pytest test_start_process_after.py)
"""

import io
import logging
import os
import shlex
import sys
import tempfile
from contextlib import redirect_stdout
from pathlib import Path
from unittest.mock import MagicMock, patch

import start_process_after as spa
from command_line import LaunchResult, ParsedCommand
from shortcut_builder import build_argv
from spa_errors import LaunchError, TokenizationError
from wait_conditions import WaitKind, WaitSpec

# ─── Helpers ──────────────────────────────────────────────────────────────────

PASS = "\033[92mPASS\033[0m"
FAIL = "\033[91mFAIL\033[0m"

_results: list[tuple[str, bool]] = []


def _check(label: str, condition: bool, detail: str = "") -> None:
    _results.append((label, condition))
    suffix = f"  ({detail})" if detail else ""
    print(f"  [{PASS if condition else FAIL}] {label}{suffix}")
    if not condition:
        raise AssertionError(f"FAILED: {label}{suffix}")


class FakeCancel:
    def __init__(self, cancelled: bool = False):
        self.cancelled = cancelled
        self.sleeps: list[float] = []

    def is_set(self) -> bool:
        return self.cancelled

    def wait(self, timeout=None) -> bool:
        self.sleeps.append(timeout)
        return self.cancelled


def _counting_checker(ready_on: int):
    calls = []

    def checker(kind, target):
        calls.append((kind, target))
        return len(calls) >= ready_on

    return checker, calls


def _ok_launcher(pid: int = 99) -> MagicMock:
    return MagicMock(return_value=LaunchResult(
        started=True, pid=pid, command=ParsedCommand("notepad.exe")))


def _run_main(argv: list[str]) -> tuple[int, str]:
    out = io.StringIO()
    with redirect_stdout(out):
        try:
            code = spa.main(argv)
        except SystemExit as exc:
            code = exc.code
    return code, out.getvalue()


SPEC = WaitSpec(WaitKind.PROCESS_EXISTS, "vpnui", 4)


# ─── Orchestration ────────────────────────────────────────────────────────────

def test_condition_already_true():
    print("\n[1] Condition already true")
    checker, calls = _counting_checker(ready_on=1)
    cancel, launcher = FakeCancel(), _ok_launcher()
    result = spa.start_after(SPEC, "notepad.exe", cancel=cancel, checker=checker, launcher=launcher)
    _check("launched", result.ok)
    _check("one check", len(calls) == 1)
    _check("zero sleeps", cancel.sleeps == [])
    _check("launcher called once with the raw line",
           launcher.call_count == 1 and launcher.call_args.args == ("notepad.exe",))
    _check("exit code 0", spa.exit_code_for(result) == spa.EXIT_OK)


def test_condition_true_after_three_checks():
    print("\n[2] Condition true on the 3rd check")
    checker, calls = _counting_checker(ready_on=3)
    cancel, launcher = FakeCancel(), _ok_launcher()
    raw = "ttermpro.exe ssh://user@host:22 ; office box"
    result = spa.start_after(SPEC, raw, cancel=cancel, checker=checker, launcher=launcher)
    _check("launched", result.started)
    _check("three checks", len(calls) == 3)
    _check("two sleeps of 4s", cancel.sleeps == [4.0, 4.0], repr(cancel.sleeps))
    _check("launcher called once", launcher.call_count == 1)


def test_bad_command_line_skips_polling():
    print("\n[3] Bad command line")
    for raw in ("; only a comment", '"unterminated', "   "):
        checker, calls = _counting_checker(ready_on=1)
        launcher = _ok_launcher()
        result = spa.start_after(SPEC, raw, cancel=FakeCancel(), checker=checker, launcher=launcher)
        _check(f"{raw!r}: TokenizationError", isinstance(result.error, TokenizationError), repr(result.error))
        _check(f"{raw!r}: no checks", calls == [])
        _check(f"{raw!r}: no launch", not launcher.called)
        _check(f"{raw!r}: exit code 2", spa.exit_code_for(result) == spa.EXIT_BAD_INPUT)


def test_launch_failure_surfaces():
    print("\n[4] Launch failure after the wait")
    checker, calls = _counting_checker(ready_on=2)
    missing = os.path.join(tempfile.gettempdir(), "spa-missing-program-51c2")
    result = spa.start_after(SPEC, f'"{missing}" --go', cancel=FakeCancel(), checker=checker)
    _check("not started", not result.started)
    _check("LaunchError carried", isinstance(result.error, LaunchError), repr(result.error))
    _check("not reported as cancelled", not result.cancelled)
    _check("no retry: polling stopped at ready", len(calls) == 2)
    _check("exit code 1", spa.exit_code_for(result) == spa.EXIT_LAUNCH_ERROR)


def test_cancelled():
    print("\n[5] Cancelled")
    checker, calls = _counting_checker(ready_on=1)
    launcher = _ok_launcher()
    result = spa.start_after(SPEC, "notepad.exe", cancel=FakeCancel(cancelled=True),
                             checker=checker, launcher=launcher)
    _check("cancelled flag", result.cancelled)
    _check("no error", result.error is None)
    _check("launcher untouched", not launcher.called)
    _check("exit code 130", spa.exit_code_for(result) == spa.EXIT_CANCELLED)


def test_injected_logger():
    print("\n[6] Injected logger")
    log = MagicMock()
    with tempfile.TemporaryDirectory() as tmp, \
         patch("command_line.subprocess.Popen") as popen:
        popen.return_value.pid = 321
        spec = WaitSpec(WaitKind.FOLDER_EXISTS, tmp, 1)
        result = spa.start_after(spec, "notepad.exe /A", cancel=FakeCancel(), logger=log)
    messages = " ".join(str(c.args[0]) for c in log.info.call_args_list)
    _check("launched through the default launcher", result.pid == 321)
    _check("wait loop logged", "Waiting for" in messages)
    _check("check logged", any("FolderExists" in c.args for c in log.info.call_args_list))
    _check("launch logged", "Started" in messages)


# ─── CLI ──────────────────────────────────────────────────────────────────────

def test_cli_happy_path():
    print("\n[7] CLI happy path")
    launcher = MagicMock(return_value=LaunchResult(started=True, pid=7))
    with tempfile.TemporaryDirectory() as tmp, patch("command_line.launch", launcher):
        code, _ = _run_main([
            "--wait-type", "FolderExists", "--wait-for", tmp,
            "--command-line", "notepad.exe notes.txt", "--check-interval", "1",
        ])
    _check("exit 0", code == 0, str(code))
    _check("launched the raw command line", launcher.call_args.args[0] == "notepad.exe notes.txt")

    launcher = MagicMock(return_value=LaunchResult(started=False, error=LaunchError("denied")))
    with tempfile.TemporaryDirectory() as tmp, patch("command_line.launch", launcher):
        code, _ = _run_main([
            "--wait-type", "folder", "--wait-for", tmp, "--command-line", "locked.exe",
        ])
    _check("launch failure exits 1", code == 1, str(code))


def test_cli_bad_input():
    print("\n[8] CLI bad input")
    code, _ = _run_main([
        "--wait-type", "FolderExists", "--wait-for", "/tmp", "--command-line", "; nothing here",
    ])
    _check("comment-only command line exits 2", code == 2, str(code))

    code, _ = _run_main([
        "--wait-type", "PortOpen", "--wait-for", "x", "--command-line", "notepad.exe",
    ])
    _check("unknown wait type exits 2", code == 2, str(code))

    code, _ = _run_main([
        "--wait-type", "FolderExists", "--wait-for", "/tmp", "--command-line", "notepad.exe",
        "--check-interval", "61",
    ])
    _check("interval above 60 exits 2", code == 2, str(code))

    code, _ = _run_main([
        "--wait-type", "FolderExists", "--wait-for", "  ", "--command-line", "notepad.exe",
    ])
    _check("blank target exits 2", code == 2, str(code))


def test_cli_print_command():
    print("\n[9] CLI --print-command")
    raw = '"C:\\Program Files\\App\\app.exe" --title "it\'s $HOME" ; note'
    code, out = _run_main([
        "--wait-type", "UrlIsAccessible", "--wait-for", "http://localhost:8080/?a=1&b=2",
        "--command-line", raw, "--check-interval", "9", "--print-command",
    ])
    _check("exit 0", code == 0, str(code))
    expected = build_argv(WaitSpec("UrlIsAccessible", "http://localhost:8080/?a=1&b=2", 9), raw)
    if os.name != "nt":
        _check("output splits back to the same argv", shlex.split(out.strip()) == expected, out)
    _check("raw command line carried verbatim", raw in expected)


def test_cli_create_shortcut():
    print("\n[10] CLI --create-shortcut")
    with tempfile.TemporaryDirectory() as tmp:
        target = Path(tmp) / "office-ssh"
        args = [
            "--wait-type", "ProcessExists", "--wait-for", "vpnui",
            "--command-line", "ttermpro.exe ssh://user@host:22",
            "--create-shortcut", str(target),
        ]
        code, out = _run_main(args)
        written = list(Path(tmp).iterdir())
        _check("exit 0", code == 0, str(code))
        _check("one file written", len(written) == 1, repr(written))
        _check("path reported", str(written[0]) in out)

        code, _ = _run_main(args)
        _check("second run refuses to overwrite", code == 2, str(code))
        code, _ = _run_main(args + ["--overwrite"])
        _check("--overwrite replaces it", code == 0, str(code))


def _spa_file_handlers() -> list[logging.FileHandler]:
    return [h for h in logging.getLogger("spa").handlers if isinstance(h, logging.FileHandler)]


def _drop_spa_file_handlers() -> None:
    for handler in _spa_file_handlers():
        logging.getLogger("spa").removeHandler(handler)
        handler.close()


def test_cli_log_file():
    print("\n[11] CLI --log-file")
    base = ["--wait-type", "FolderExists", "--wait-for", "/tmp",
            "--command-line", "notepad.exe", "--print-command"]
    with tempfile.TemporaryDirectory() as tmp:
        try:
            missing = Path(tmp) / "missing-dir" / "spa.log"
            with patch.object(spa.log, "warning") as warn:
                code, _ = _run_main(base + ["--log-file", str(missing)])
            _check("missing log directory still exits 0", code == 0, str(code))
            _check("warned about the log file", warn.called)
            _check("no handler attached for it", _spa_file_handlers() == [])

            log_path = Path(tmp) / "spa.log"
            _run_main(base + ["--log-file", str(log_path)])
            _run_main(base + ["--log-file", str(log_path)])
            _check("repeated runs attach one handler", len(_spa_file_handlers()) == 1,
                   repr(_spa_file_handlers()))
            _drop_spa_file_handlers()

            if os.name != "nt":
                with patch.dict(os.environ, {"HOME": tmp}):
                    code, _ = _run_main(base + ["--log-file", "~/home.log"])
                _check("~ expanded in --log-file", (Path(tmp) / "home.log").exists(), str(code))
        finally:
            _drop_spa_file_handlers()


# ─── Runner ───────────────────────────────────────────────────────────────────

def main() -> int:
    print("=" * 60)
    print("Start-Process-After orchestration tests")
    print("=" * 60)
    tests = [
        test_condition_already_true,
        test_condition_true_after_three_checks,
        test_bad_command_line_skips_polling,
        test_launch_failure_surfaces,
        test_cancelled,
        test_injected_logger,
        test_cli_happy_path,
        test_cli_bad_input,
        test_cli_print_command,
        test_cli_create_shortcut,
        test_cli_log_file,
    ]
    failed = 0
    for test in tests:
        try:
            test()
        except AssertionError as exc:
            failed += 1
            print(f"  {exc}")
    passed = sum(1 for _, ok in _results if ok)
    print(f"\n{'=' * 60}")
    print(f"Results: {passed}/{len(_results)} checks passed, {failed} test(s) failed")
    print(f"{'=' * 60}")
    return 0 if failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
