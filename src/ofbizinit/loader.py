"""Client for the OFBiz bulk data loader (``bin/ofbiz --load-data``)."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Mapping, Optional, Sequence, Union

from ofbizinit.errors import LoaderError
from ofbizinit.logger import StageLogger

__all__ = ["BulkLoader", "SEED_READERS"]

logger = logging.getLogger(__name__)

SEED_READERS = ("seed", "seed-initial")


class BulkLoader:
    """
    Invokes the external loader synchronously.

    No timeout is applied: a hung load blocks initialization until the
    container is stopped. Any non-zero exit raises LoaderError.
    """

    def __init__(
        self,
        command: Union[str, Sequence[str]],
        environ: Optional[Mapping[str, str]] = None,
        events: Optional[StageLogger] = None,
        cwd: Optional[Union[str, Path]] = None,
    ):
        self.command: List[str] = [command] if isinstance(command, str) else list(command)
        self.environ = environ
        self.events = events or StageLogger()
        self.cwd = cwd

    def load(self, *selectors: str) -> None:
        """Run ``--load-data`` with the given selector arguments."""
        self.events.loader_invoked(selectors)
        cmd = self.command + ["--load-data", *selectors]
        env = dict(self.environ) if self.environ is not None else None
        try:
            result = subprocess.run(cmd, env=env, cwd=self.cwd)
        except OSError as exc:
            logger.error(f"Cannot run data loader {self.command[0]}: {exc}")
            raise LoaderError(selectors, 127) from exc
        if result.returncode != 0:
            raise LoaderError(selectors, result.returncode)

    def load_all(self) -> None:
        """Load the complete default data set (seed and demo)."""
        self.load()

    def load_readers(self, *readers: str) -> None:
        """Load only the given reader categories."""
        self.load(f"readers={','.join(readers)}")

    def load_seed(self) -> None:
        self.load_readers(*SEED_READERS)

    def load_directory(self, directory: Union[str, Path]) -> None:
        self.load(f"dir={directory}")

    def load_file(self, path: Union[str, Path]) -> None:
        self.load(f"file={path}")
