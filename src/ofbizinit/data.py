"""
Bulk data loading on first start.

Runs once per persistent volume, guarded by the ``data_loaded`` marker:

    before-data-load hooks
    -> none | seed | demo import
    -> additional data directory (if non-empty)
    -> data_loaded marker
    -> after-data-load hooks

The demo data set already contains a usable admin account, so the demo
branch also writes the ``admin_loaded`` marker; the CredentialProvisioner
then has nothing to do. The additional data directory is only loaded
inside this guarded block and is not re-imported on later starts.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from opentelemetry import trace

from ofbizinit.config import DataLoadMode, InitializationConfig
from ofbizinit.hooks import Checkpoint, HookRunner
from ofbizinit.loader import BulkLoader
from ofbizinit.logger import StageLogger
from ofbizinit.stages import Stage, StageStore

__all__ = ["DataLoader", "has_additional_data"]

logger = logging.getLogger(__name__)
tracer = trace.get_tracer("ofbizinit.data")


def has_additional_data(directory: Union[str, Path]) -> bool:
    """True if the directory exists and contains at least one entry."""
    directory = Path(directory)
    if not directory.is_dir():
        return False
    return any(directory.iterdir())


class DataLoader:
    """Imports the selected data set and any operator-supplied data."""

    def __init__(
        self,
        store: StageStore,
        hooks: HookRunner,
        loader: BulkLoader,
        additional_data_dir: Union[str, Path],
        events: Optional[StageLogger] = None,
    ):
        self.store = store
        self.hooks = hooks
        self.loader = loader
        self.additional_data_dir = Path(additional_data_dir)
        self.events = events or StageLogger()

    def run(self, config: InitializationConfig) -> InitializationConfig:
        """
        Run the stage if its marker is absent.

        Returns:
            The config, updated with overrides from sourced hooks. A
            before-data-load hook may change the data load mode.
        """
        stage = Stage.DATA_LOADED
        if self.store.has_completed(stage):
            self.events.stage_skipped(stage.value)
            return config

        with tracer.start_as_current_span(f"stage:{stage.value}") as span:
            self.events.stage_started(stage.value)
            config = config.merged(self.hooks.run(Checkpoint.BEFORE_DATA_LOAD))
            span.set_attribute("ofbiz.data_load", config.data_load.value)

            self._load_data_set(config.data_load)

            if has_additional_data(self.additional_data_dir):
                self.loader.load_directory(self.additional_data_dir)
                span.set_attribute("ofbiz.additional_data", True)

            self.store.mark_completed(stage)
            self.events.stage_completed(stage.value)

            config = config.merged(self.hooks.run(Checkpoint.AFTER_DATA_LOAD))
        return config

    def _load_data_set(self, mode: DataLoadMode) -> None:
        if mode is DataLoadMode.SEED:
            self.loader.load_seed()
        elif mode is DataLoadMode.DEMO:
            self.loader.load_all()
            # Demo data ships an admin user already.
            self.store.mark_completed(Stage.ADMIN_LOADED)
            self.events.stage_completed(Stage.ADMIN_LOADED.value, implied_by="demo data")
        else:
            logger.info("Data load mode is none, skipping bulk import")
