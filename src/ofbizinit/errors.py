"""Exceptions raised while initializing an OFBiz container.

Every failure that should abort the run derives from InitializationError,
which carries the exit code the entry point terminates with. Stage markers
written before the failure are left in place, so the next container start
resumes from the first incomplete stage.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence

__all__ = [
    "exit_status",
    "InitializationError",
    "HookError",
    "LoaderError",
    "ConfigurationError",
]


def exit_status(returncode: int) -> int:
    """Map a subprocess return code to the status a shell would report.

    A child killed by signal N has a negative return code; shells report
    it as 128 + N.
    """
    if returncode < 0:
        return 128 - returncode
    return returncode


class InitializationError(Exception):
    """Base class for fatal initialization failures."""

    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code or 1


class HookError(InitializationError):
    """A hook script exited non-zero and vetoed startup."""

    def __init__(self, checkpoint: str, path: Path, exit_code: int):
        exit_code = exit_status(exit_code)
        self.checkpoint = checkpoint
        self.path = path
        super().__init__(
            f"{checkpoint}: hook {path} failed with exit code {exit_code}",
            exit_code=exit_code,
        )


class LoaderError(InitializationError):
    """The external bulk loader exited non-zero."""

    def __init__(self, args: Sequence[str], exit_code: int):
        exit_code = exit_status(exit_code)
        self.loader_args = list(args)
        super().__init__(
            f"Data load {' '.join(self.loader_args) or '(default data)'} failed with exit code {exit_code}",
            exit_code=exit_code,
        )


class ConfigurationError(InitializationError):
    """A configuration file could not be read or rewritten."""

    def __init__(self, path: Path, reason: Optional[str] = None):
        self.path = path
        message = f"Cannot apply configuration to {path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, exit_code=1)
