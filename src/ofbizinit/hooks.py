"""
Operator hook scripts run at fixed initialization checkpoints.

Each checkpoint maps to a flat directory ``docker-entrypoint-<name>.d``
under the hooks root (``/`` in the image). Entries are visited in
lexicographic order of their file names:

- names not ending in ``.sh`` are logged and ignored;
- executable scripts are RunnableHooks: they run as isolated subprocesses
  and a non-zero exit aborts initialization;
- non-executable scripts are EnvironmentMutatingHooks: they are sourced by
  bash and every variable they set, change or unset is returned as an
  explicit override (unset variables as empty strings). Overrides are
  applied to the runner's working environment, so later hooks, the data
  loader and the final application process see them, and callers merge
  them into their InitializationConfig.

An absent or empty directory is a no-op.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, MutableMapping, Optional, Tuple, Union

from ofbizinit.errors import HookError
from ofbizinit.logger import StageLogger

__all__ = [
    "Checkpoint",
    "SCRIPT_SUFFIX",
    "RunnableHook",
    "EnvironmentMutatingHook",
    "Hook",
    "classify_hook",
    "discover_hooks",
    "HookRunner",
]

logger = logging.getLogger(__name__)

SCRIPT_SUFFIX = ".sh"

# Sources the hook with auto-export on, sending its own output to stderr so
# that stdout only carries the resulting environment.
_SOURCE_COMMAND = 'set -a -e; . "$1" >&2; env -0'

# Variables bash maintains itself; never treated as hook overrides.
_SHELL_MANAGED = frozenset({"_", "SHLVL", "PWD", "OLDPWD"})

# Only names bash can hold as variables survive sourcing.
_SHELL_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]*\Z")


class Checkpoint(str, Enum):
    """Named points in the sequence where operator scripts may run."""
    BEFORE_CONFIG_APPLIED = "before-config-applied"
    AFTER_CONFIG_APPLIED = "after-config-applied"
    BEFORE_DATA_LOAD = "before-data-load"
    AFTER_DATA_LOAD = "after-data-load"
    ADDITIONAL_DATA = "additional-data"

    def directory(self, hooks_root: Union[str, Path]) -> Path:
        """Directory scanned for this checkpoint."""
        return Path(hooks_root) / f"docker-entrypoint-{self.value}.d"


@dataclass(frozen=True)
class RunnableHook:
    """Executable script run in its own process; cannot change our state."""
    path: Path


@dataclass(frozen=True)
class EnvironmentMutatingHook:
    """Non-executable script whose variable assignments become overrides."""
    path: Path


Hook = Union[RunnableHook, EnvironmentMutatingHook]


def classify_hook(path: Union[str, Path]) -> Optional[Hook]:
    """
    Decide how a directory entry is handled.

    Returns:
        RunnableHook or EnvironmentMutatingHook, or None for entries that
        are not shell scripts.
    """
    path = Path(path)
    if not path.name.endswith(SCRIPT_SUFFIX) or not path.is_file():
        return None
    if os.access(path, os.X_OK):
        return RunnableHook(path)
    return EnvironmentMutatingHook(path)


def discover_hooks(directory: Union[str, Path]) -> List[Path]:
    """List candidate entries of a hook directory, sorted by file name."""
    directory = Path(directory)
    if not directory.is_dir():
        return []
    return sorted(
        (entry for entry in directory.iterdir() if not entry.name.startswith(".")),
        key=lambda entry: entry.name,
    )


def _parse_environment(output: bytes) -> Dict[str, str]:
    environ: Dict[str, str] = {}
    for item in output.split(b"\0"):
        if not item:
            continue
        key, sep, value = item.decode("utf-8", errors="surrogateescape").partition("=")
        if sep:
            environ[key] = value
    return environ


class HookRunner:
    """
    Executes the hook scripts of a checkpoint.

    ``environ`` is the working environment shared with the rest of the
    entry point; it is handed to every hook and updated in place with the
    overrides produced by sourced hooks.
    """

    def __init__(
        self,
        hooks_root: Union[str, Path],
        environ: MutableMapping[str, str],
        events: Optional[StageLogger] = None,
        cwd: Optional[Union[str, Path]] = None,
        shell: str = "bash",
    ):
        self.hooks_root = Path(hooks_root)
        self.environ = environ
        self.events = events or StageLogger()
        self.cwd = cwd
        self.shell = shell

    def run(self, checkpoint: Checkpoint) -> Dict[str, str]:
        """Run every hook found in the checkpoint's directory."""
        directory = checkpoint.directory(self.hooks_root)
        return self.run_paths(checkpoint, discover_hooks(directory))

    def run_paths(self, checkpoint: Checkpoint, paths: Iterable[Union[str, Path]]) -> Dict[str, str]:
        """
        Run the given candidate paths in order.

        Returns:
            Combined overrides from all sourced hooks (later hooks win). A
            variable a hook unsets is removed from the working environment
            and reported as an empty string.

        Raises:
            HookError: On the first hook that fails; remaining hooks do not run.
        """
        name = Checkpoint(checkpoint).value
        overrides: Dict[str, str] = {}
        for path in paths:
            hook = classify_hook(path)
            if hook is None:
                self.events.hook_ignored(name, str(path))
            elif isinstance(hook, RunnableHook):
                self.events.hook_running(name, str(hook.path))
                self._run_isolated(name, hook)
            else:
                self.events.hook_sourcing(name, str(hook.path))
                changed, removed = self._source(name, hook)
                self.environ.update(changed)
                for key in removed:
                    self.environ.pop(key, None)
                overrides.update(changed)
                overrides.update(dict.fromkeys(removed, ""))
        return overrides

    def _run_isolated(self, checkpoint: str, hook: RunnableHook) -> None:
        try:
            result = subprocess.run([str(hook.path)], env=dict(self.environ), cwd=self.cwd)
        except OSError as exc:
            logger.error(f"{checkpoint}: cannot execute {hook.path}: {exc}")
            raise HookError(checkpoint, hook.path, 126) from exc
        if result.returncode != 0:
            raise HookError(checkpoint, hook.path, result.returncode)

    def _source(
        self, checkpoint: str, hook: EnvironmentMutatingHook
    ) -> Tuple[Dict[str, str], List[str]]:
        result = subprocess.run(
            [self.shell, "-c", _SOURCE_COMMAND, "ofbiz-init-hook", str(hook.path)],
            env=dict(self.environ),
            cwd=self.cwd,
            stdout=subprocess.PIPE,
        )
        if result.returncode != 0:
            raise HookError(checkpoint, hook.path, result.returncode)

        after = _parse_environment(result.stdout)
        changed = {
            key: value
            for key, value in after.items()
            if key not in _SHELL_MANAGED and self.environ.get(key) != value
        }
        removed = [
            key
            for key in self.environ
            if key not in after and key not in _SHELL_MANAGED and _SHELL_NAME.match(key)
        ]
        if changed:
            logger.debug(f"{checkpoint}: {hook.path} set {', '.join(sorted(changed))}")
        if removed:
            logger.debug(f"{checkpoint}: {hook.path} unset {', '.join(sorted(removed))}")
        return changed, removed
