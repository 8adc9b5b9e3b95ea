"""
Initialization sequence and process handoff.

The Initializer runs the guarded stages in a fixed order:

    ConfigurationApplier -> DataLoader -> CredentialProvisioner

Each stage is skipped independently when its marker exists; the order of
the stages that do run never changes. The first failure aborts the run and
leaves the markers of already completed stages intact.

When the stages are done, the Initializer produces a Handoff: the wrapped
command plus the working environment with the OFBIZ_* inputs removed.
Handoff.execute() replaces this process with the command, so the
application inherits our PID and receives container signals directly.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, NoReturn, Optional, Sequence, Tuple

from opentelemetry import trace

from ofbizinit.config import INPUT_VARIABLES, EntrypointSettings, InitializationConfig, resolve_config
from ofbizinit.configuration import ConfigurationApplier
from ofbizinit.credentials import CredentialProvisioner
from ofbizinit.data import DataLoader
from ofbizinit.hooks import Checkpoint, HookRunner
from ofbizinit.loader import BulkLoader
from ofbizinit.logger import StageLogger
from ofbizinit.shutdown import ShutdownHandler
from ofbizinit.stages import FileStageStore, StageStore

__all__ = ["Handoff", "Initializer", "SCRUBBED_VARIABLES", "DEFAULT_COMMAND"]

logger = logging.getLogger(__name__)
tracer = trace.get_tracer("ofbizinit")

SCRUBBED_VARIABLES = tuple(INPUT_VARIABLES.values())
DEFAULT_COMMAND = ("bin/ofbiz",)


@dataclass(frozen=True)
class Handoff:
    """Terminal action: replace this process with ``command``."""
    command: Tuple[str, ...]
    environ: Dict[str, str] = field(default_factory=dict)

    def execute(self) -> NoReturn:
        """exec the command; only returns by raising OSError."""
        os.execvpe(self.command[0], list(self.command), self.environ)


class Initializer:
    """
    Sequences the initialization stages for one container start.

    Args:
        settings: Container layout and commands
        store: Stage marker store (defaults to marker files in settings.state_dir)
        environ: Starting environment (defaults to a copy of os.environ)
        events: Structured event logger
        loader: Bulk loader client (defaults to settings.loader_command)
        shutdown: Signal relay (defaults to settings.stop_command)
    """

    def __init__(
        self,
        settings: EntrypointSettings,
        store: Optional[StageStore] = None,
        environ: Optional[Mapping[str, str]] = None,
        events: Optional[StageLogger] = None,
        loader: Optional[BulkLoader] = None,
        shutdown: Optional[ShutdownHandler] = None,
    ):
        self.settings = settings
        self.environ: Dict[str, str] = dict(os.environ if environ is None else environ)
        self.events = events or StageLogger()
        self.store = store if store is not None else FileStageStore(settings.state_dir)

        app_root = Path(settings.app_root)
        workdir = app_root if app_root.is_dir() else None
        self.hooks = HookRunner(settings.hooks_root, self.environ, events=self.events, cwd=workdir)
        self.loader = loader or BulkLoader(
            settings.loader_command, environ=self.environ, events=self.events, cwd=workdir
        )
        self.shutdown = shutdown or ShutdownHandler(settings.stop_command, events=self.events)

    @property
    def skip_requested(self) -> bool:
        return bool(self.environ.get("OFBIZ_SKIP_INIT"))

    def initialize(self) -> Optional[InitializationConfig]:
        """
        Run the stages unless OFBIZ_SKIP_INIT is set.

        Returns:
            The final config, or None when initialization was skipped.

        Raises:
            InitializationError: From the first failing stage.
        """
        if self.skip_requested:
            logger.info("OFBIZ_SKIP_INIT is set, skipping initialization")
            return None

        config = resolve_config(self.environ)
        self._export(config)
        settings = self.settings
        with tracer.start_as_current_span("ofbiz.initialize") as span:
            span.set_attribute("ofbiz.data_load", config.data_load.value)

            applier = ConfigurationApplier(settings.app_root, self.store, self.hooks, events=self.events)
            config = applier.run(config)

            data_loader = DataLoader(
                self.store,
                self.hooks,
                self.loader,
                Checkpoint.ADDITIONAL_DATA.directory(settings.hooks_root),
                events=self.events,
            )
            config = data_loader.run(config)

            provisioner = CredentialProvisioner(
                self.store, self.loader, settings.admin_template_path, events=self.events
            )
            provisioner.run(config)
        return config

    def _export(self, config: InitializationConfig) -> None:
        """Publish the resolved inputs to the working environment seen by hooks."""
        resolved = config.to_environ()
        del resolved["OFBIZ_SKIP_INIT"]
        if not config.enable_ajp_port:
            del resolved["OFBIZ_ENABLE_AJP_PORT"]
        self.environ.update(resolved)

    def handoff(self, command: Sequence[str]) -> Handoff:
        """Build the handoff with the OFBIZ_* inputs scrubbed from the environment."""
        environ = {k: v for k, v in self.environ.items() if k not in SCRUBBED_VARIABLES}
        self.events.handoff(command)
        return Handoff(tuple(command), environ)

    def run(self, command: Sequence[str] = DEFAULT_COMMAND) -> Handoff:
        """Arm the signal relay, initialize, and return the handoff to execute."""
        self.shutdown.install()
        self.initialize()
        self.shutdown.reap()
        return self.handoff(command or DEFAULT_COMMAND)
