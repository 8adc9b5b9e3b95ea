"""
In-place edits of the OFBiz configuration files.

Edits are line-pattern substitutions rather than structural parses; each
target file carries exactly one occurrence of every matched pattern. Every
edit is idempotent, so re-applying after a lost stage marker leaves the
files unchanged.

Files (relative to the OFBiz root):
- framework/catalina/ofbiz-component.xml      AJP connector address
- framework/security/config/security.properties host-headers-allowed
- framework/webapp/config/url.properties       content.url.prefix.*
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Optional, Union

from opentelemetry import trace

from ofbizinit.config import InitializationConfig
from ofbizinit.errors import ConfigurationError
from ofbizinit.hooks import Checkpoint, HookRunner
from ofbizinit.logger import StageLogger
from ofbizinit.stages import Stage, StageStore

__all__ = [
    "CATALINA_COMPONENT",
    "SECURITY_PROPERTIES",
    "URL_PROPERTIES",
    "AJP_CONNECTOR_LINE",
    "AJP_ADDRESS_PROPERTY",
    "set_property",
    "insert_ajp_address",
    "rewrite_file",
    "ConfigurationApplier",
]

logger = logging.getLogger(__name__)
tracer = trace.get_tracer("ofbizinit.configuration")

CATALINA_COMPONENT = "framework/catalina/ofbiz-component.xml"
SECURITY_PROPERTIES = "framework/security/config/security.properties"
URL_PROPERTIES = "framework/webapp/config/url.properties"

AJP_CONNECTOR_LINE = '<property name="ajp-connector" value="connector">'
AJP_ADDRESS_PROPERTY = '<property name="address" value="0.0.0.0"/>'


def set_property(text: str, key: str, value: str) -> str:
    """Replace the value of ``key=...`` up to the end of its line."""
    pattern = re.compile(re.escape(key) + "=.*")
    return pattern.sub(lambda _: f"{key}={value}", text)


def insert_ajp_address(text: str) -> str:
    """
    Bind the AJP connector to all interfaces.

    Inserts the address property on the line after the connector
    declaration, indented one level deeper, unless it is already there.
    """
    lines = text.splitlines(keepends=True)
    result = []
    for index, line in enumerate(lines):
        result.append(line)
        if AJP_CONNECTOR_LINE not in line:
            continue
        following = lines[index + 1] if index + 1 < len(lines) else ""
        if following.strip() == AJP_ADDRESS_PROPERTY:
            continue
        if not line.endswith("\n"):
            result[-1] = line + "\n"
        indent = line[: len(line) - len(line.lstrip())]
        result.append(f"{indent}    {AJP_ADDRESS_PROPERTY}\n")
    return "".join(result)


def rewrite_file(path: Path, transform: Callable[[str], str]) -> bool:
    """
    Apply ``transform`` to a file's contents, writing atomically.

    The file is only replaced when the contents change; its permission
    bits are preserved.

    Returns:
        True if the file was modified.

    Raises:
        ConfigurationError: If the file cannot be read or written.
    """
    try:
        original = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(path, exc.strerror or str(exc)) from exc

    updated = transform(original)
    if updated == original:
        logger.debug(f"{path} already up to date")
        return False

    try:
        fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}-", suffix=".tmp")
    except OSError as exc:
        raise ConfigurationError(path, exc.strerror or str(exc)) from exc
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(updated)
        shutil.copymode(path, temp_path)
        os.replace(temp_path, path)
    except OSError as exc:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise ConfigurationError(path, exc.strerror or str(exc)) from exc

    logger.info(f"Updated {path}")
    return True


class ConfigurationApplier:
    """Applies the configuration edits once per persistent volume."""

    def __init__(
        self,
        app_root: Union[str, Path],
        store: StageStore,
        hooks: HookRunner,
        events: Optional[StageLogger] = None,
    ):
        self.app_root = Path(app_root)
        self.store = store
        self.hooks = hooks
        self.events = events or StageLogger()

    def run(self, config: InitializationConfig) -> InitializationConfig:
        """
        Run the stage if its marker is absent.

        Returns:
            The config, updated with overrides from sourced hooks.
        """
        stage = Stage.CONFIG_APPLIED
        if self.store.has_completed(stage):
            self.events.stage_skipped(stage.value)
            return config

        with tracer.start_as_current_span(f"stage:{stage.value}") as span:
            self.events.stage_started(stage.value)
            config = config.merged(self.hooks.run(Checkpoint.BEFORE_CONFIG_APPLIED))

            self.apply(config)
            self.store.mark_completed(stage)
            self.events.stage_completed(stage.value)

            config = config.merged(self.hooks.run(Checkpoint.AFTER_CONFIG_APPLIED))
            span.set_attribute("ofbiz.host", config.host)
            span.set_attribute("ofbiz.ajp_enabled", config.enable_ajp_port)
        return config

    def apply(self, config: InitializationConfig) -> None:
        """Apply every edit; safe to repeat."""
        if config.enable_ajp_port:
            rewrite_file(self.app_root / CATALINA_COMPONENT, insert_ajp_address)

        rewrite_file(
            self.app_root / SECURITY_PROPERTIES,
            lambda text: set_property(text, "host-headers-allowed", config.host),
        )

        def _url_prefixes(text: str) -> str:
            text = set_property(text, "content.url.prefix.secure", config.content_url_prefix)
            return set_property(text, "content.url.prefix.standard", config.content_url_prefix)

        rewrite_file(self.app_root / URL_PROPERTIES, _url_prefixes)
