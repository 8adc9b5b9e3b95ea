"""
Stage markers for container initialization.

A stage marker records that one initialization stage has been applied to
the persistent volume. Existence of the marker is the only state: markers
are created when a stage succeeds and are never modified or removed here.
Deleting a marker by hand forces the stage to run again on the next start.

Layout (FileStageStore):
    /ofbiz/runtime/container_state/
    ├── config_applied
    ├── data_loaded
    └── admin_loaded

No locking is performed. Running two containers against the same state
volume at once is unsupported; deploy one replica per volume.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import List, Protocol, Set, Union, runtime_checkable

__all__ = [
    "Stage",
    "StageStore",
    "FileStageStore",
    "MemoryStageStore",
    "show_stage_summary",
]

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    """Guarded initialization stages, in execution order."""
    CONFIG_APPLIED = "config_applied"
    DATA_LOADED = "data_loaded"
    ADMIN_LOADED = "admin_loaded"


@runtime_checkable
class StageStore(Protocol):
    """Durable record of completed stages."""

    def has_completed(self, stage: Stage) -> bool:
        """Return True if the stage's marker exists."""
        ...

    def mark_completed(self, stage: Stage) -> None:
        """Record the stage as completed."""
        ...

    def completed(self) -> List[Stage]:
        """List completed stages in execution order."""
        ...


class FileStageStore:
    """
    Marker files under a state directory.

    The directory (and its parents) is created on first use. Marking a
    stage that is already marked is a no-op.
    """

    def __init__(self, state_dir: Union[str, Path]):
        self.state_dir = Path(state_dir)
        self._ready = False

    def _ensure_dir(self) -> None:
        if not self._ready:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            self._ready = True

    def marker_path(self, stage: Stage) -> Path:
        return self.state_dir / Stage(stage).value

    def has_completed(self, stage: Stage) -> bool:
        self._ensure_dir()
        return self.marker_path(stage).is_file()

    def mark_completed(self, stage: Stage) -> None:
        self._ensure_dir()
        path = self.marker_path(stage)
        path.touch(exist_ok=True)
        logger.debug(f"Wrote stage marker {path}")

    def completed(self) -> List[Stage]:
        if not self.state_dir.is_dir():
            return []
        return [stage for stage in Stage if self.marker_path(stage).is_file()]


class MemoryStageStore:
    """In-process stage store, for tests and dry runs."""

    def __init__(self, *completed: Stage):
        self._completed: Set[Stage] = {Stage(s) for s in completed}

    def has_completed(self, stage: Stage) -> bool:
        return Stage(stage) in self._completed

    def mark_completed(self, stage: Stage) -> None:
        self._completed.add(Stage(stage))

    def completed(self) -> List[Stage]:
        return [stage for stage in Stage if stage in self._completed]


def show_stage_summary(store: StageStore) -> str:
    """Format a human-readable summary of stage completion."""
    done = set(store.completed())
    lines = ["Container initialization state", "=" * 30]
    for stage in Stage:
        symbol = "x" if stage in done else " "
        lines.append(f"  [{symbol}] {stage.value}")
    lines.extend(["", f"Progress: {len(done)}/{len(Stage)} stages completed"])
    return "\n".join(lines)
