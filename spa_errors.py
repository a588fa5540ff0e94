#!/usr/bin/env python3
"""
spa_errors.py: Exception hierarchy shared by the wait/launch modules.

  StartAfterError
  ├── CommandLineError
  │   ├── TokenizationError   malformed command line, nothing launched
  │   └── LaunchError         tokens were fine, the process could not start
  └── WaitSpecError (ValueError)
      ├── InvalidWaitSpecError
      └── UnknownWaitTypeError

Probe failures (network down, folder missing, process table unreadable) are
not exceptions at all: the probes turn them into False.
"""


class StartAfterError(Exception):
    """Base class for everything this tool raises on purpose."""


class CommandLineError(StartAfterError):
    pass


class TokenizationError(CommandLineError):
    pass


class LaunchError(CommandLineError):
    pass


class WaitSpecError(StartAfterError, ValueError):
    pass


class InvalidWaitSpecError(WaitSpecError):
    pass


class UnknownWaitTypeError(WaitSpecError):
    def __init__(self, kind: object):
        self.kind = kind
        super().__init__(f"Unknown wait type: {kind!r}")
