"""
Pytest configuration and fixtures for ofbizinit tests.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, Generator

import pytest

from ofbizinit.config import INPUT_VARIABLES, EntrypointSettings, reset_settings
from ofbizinit.hooks import Checkpoint


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def clean_env(monkeypatch) -> Generator[None, None, None]:
    """Remove OFBIZ_* inputs and reset global settings/logging for each test."""
    for variable in INPUT_VARIABLES.values():
        monkeypatch.delenv(variable, raising=False)
    for key in list(os.environ):
        if key.startswith("OFBIZ_ENTRYPOINT_"):
            monkeypatch.delenv(key, raising=False)
    reset_settings()

    yield

    reset_settings()
    package_logger = logging.getLogger("ofbizinit")
    package_logger.handlers.clear()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


# ============================================================================
# Filesystem Fixtures
# ============================================================================

CATALINA_XML = """\
<ofbiz-component name="catalina">
    <container name="catalina-container" loaders="main" class="org.apache.ofbiz.catalina.container.CatalinaContainer">
        <property name="ajp-connector" value="connector">
            <property name="allowTrace" value="false"/>
            <property name="port" value="8009"/>
        </property>
    </container>
</ofbiz-component>
"""

SECURITY_PROPERTIES = """\
# Hosts allowed in the Host header
host-headers-allowed=localhost,127.0.0.1
security.login.password.hash=SHA
"""

URL_PROPERTIES = """\
port.https=8443
content.url.prefix.secure=
content.url.prefix.standard=
"""

ADMIN_TEMPLATE = """\
<?xml version="1.0" encoding="UTF-8"?>
<entity-engine-xml>
    <UserLogin userLoginId="@userLoginId@" currentPassword="{SHA}47ca69ebb4bdc9ae0adec130880165d2cc05db1a" requirePasswordChange="Y"/>
    <UserLoginSecurityGroup groupId="SUPER" userLoginId="@userLoginId@" fromDate="2001-01-01 12:00:00.0"/>
</entity-engine-xml>
"""

FAKE_LOADER = """\
#!/bin/sh
echo "$*" >> "$LOADER_LOG"
for arg in "$@"; do
  case "$arg" in
    file=*) cat "${arg#file=}" > "$LOADER_RECORD" ;;
  esac
done
exit "${LOADER_EXIT:-0}"
"""

FAKE_STOP = """\
#!/bin/sh
exit 0
"""


def write_script(directory: Path, name: str, body: str, executable: bool = True) -> Path:
    """Write a shell script, optionally marking it executable."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(body)
    mode = 0o755 if executable else 0o644
    path.chmod(mode)
    return path


@pytest.fixture
def app_root(tmp_path) -> Path:
    """A minimal OFBiz tree with the files the entry point edits."""
    root = tmp_path / "ofbiz"
    files = {
        "framework/catalina/ofbiz-component.xml": CATALINA_XML,
        "framework/security/config/security.properties": SECURITY_PROPERTIES,
        "framework/webapp/config/url.properties": URL_PROPERTIES,
        "framework/resources/templates/AdminUserLoginData.xml": ADMIN_TEMPLATE,
    }
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    write_script(root / "bin", "ofbiz", FAKE_LOADER)
    write_script(root, "send_ofbiz_stop_signal.sh", FAKE_STOP)
    return root


@pytest.fixture
def hooks_root(tmp_path) -> Path:
    """Hook root with all checkpoint directories present and empty."""
    root = tmp_path / "hooks"
    for checkpoint in Checkpoint:
        checkpoint.directory(root).mkdir(parents=True)
    return root


@pytest.fixture
def state_dir(tmp_path) -> Path:
    return tmp_path / "runtime" / "container_state"


@pytest.fixture
def settings(app_root, hooks_root, state_dir) -> EntrypointSettings:
    return EntrypointSettings(
        app_root=str(app_root),
        state_dir=str(state_dir),
        hooks_root=str(hooks_root),
        loader_command=str(app_root / "bin" / "ofbiz"),
        stop_command=str(app_root / "send_ofbiz_stop_signal.sh"),
    )


@pytest.fixture
def loader_log(tmp_path) -> Path:
    return tmp_path / "loader.log"


@pytest.fixture
def loader_record(tmp_path) -> Path:
    return tmp_path / "loader-record.xml"


@pytest.fixture
def base_environ(loader_log, loader_record) -> Dict[str, str]:
    """Environment handed to hooks and the fake loader."""
    return {
        "PATH": os.environ.get("PATH", "/usr/bin:/bin"),
        "LOADER_LOG": str(loader_log),
        "LOADER_RECORD": str(loader_record),
    }


def loader_calls(loader_log: Path) -> list:
    """Argument lines recorded by the fake loader."""
    if not loader_log.exists():
        return []
    return loader_log.read_text().splitlines()
