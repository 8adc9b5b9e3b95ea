"""
End-to-end tests for the Initializer using real marker files, hook scripts
and a fake bin/ofbiz loader.
"""

import os
from unittest.mock import MagicMock, patch

import pytest

from conftest import (
    SECURITY_PROPERTIES as SECURITY_TEXT,
    URL_PROPERTIES as URL_TEXT,
    loader_calls,
    write_script,
)
from ofbizinit import credentials
from ofbizinit.configuration import CATALINA_COMPONENT, SECURITY_PROPERTIES, URL_PROPERTIES
from ofbizinit.errors import HookError, LoaderError
from ofbizinit.hooks import Checkpoint
from ofbizinit.orchestrator import DEFAULT_COMMAND, SCRUBBED_VARIABLES, Handoff, Initializer
from ofbizinit.shutdown import ShutdownHandler


@pytest.fixture
def shutdown():
    return MagicMock(spec=ShutdownHandler)


@pytest.fixture
def make_initializer(settings, base_environ, shutdown):
    def factory(**env):
        return Initializer(settings, environ=dict(base_environ, **env), shutdown=shutdown)
    return factory


def markers(state_dir):
    if not state_dir.exists():
        return []
    return sorted(path.name for path in state_dir.iterdir())


class TestFullSequence:

    def test_seed_run(self, make_initializer, state_dir, loader_log, loader_record, app_root):
        initializer = make_initializer(OFBIZ_DATA_LOAD="seed", OFBIZ_HOST="erp.example.com")

        handoff = initializer.run(["bin/ofbiz"])

        assert markers(state_dir) == ["admin_loaded", "config_applied", "data_loaded"]
        calls = loader_calls(loader_log)
        assert calls[0] == "--load-data readers=seed,seed-initial"
        assert calls[1].startswith("--load-data file=")
        assert len(calls) == 2
        assert 'userLoginId="admin"' in loader_record.read_text()
        assert "host-headers-allowed=erp.example.com" in (app_root / SECURITY_PROPERTIES).read_text()
        assert handoff.command == ("bin/ofbiz",)

    def test_second_run_is_noop(self, make_initializer, loader_log, app_root, state_dir):
        make_initializer(OFBIZ_DATA_LOAD="seed").run(["bin/ofbiz"])
        calls_after_first = loader_calls(loader_log)
        security_after_first = (app_root / SECURITY_PROPERTIES).read_text()

        with patch.object(credentials, "hash_password", wraps=credentials.hash_password) as hasher:
            make_initializer(OFBIZ_DATA_LOAD="demo", OFBIZ_HOST="changed").run(["bin/ofbiz"])

        hasher.assert_not_called()
        assert loader_calls(loader_log) == calls_after_first
        assert (app_root / SECURITY_PROPERTIES).read_text() == security_after_first

    def test_demo_short_circuits_admin(self, make_initializer, state_dir, loader_log):
        with patch.object(credentials, "hash_password", wraps=credentials.hash_password) as hasher:
            make_initializer(OFBIZ_DATA_LOAD="demo").run(["bin/ofbiz"])

        hasher.assert_not_called()
        assert markers(state_dir) == ["admin_loaded", "config_applied", "data_loaded"]
        assert loader_calls(loader_log) == ["--load-data"]

    def test_bogus_mode_behaves_like_none(self, make_initializer, loader_log, state_dir):
        make_initializer(OFBIZ_DATA_LOAD="bogus").run(["bin/ofbiz"])

        calls = loader_calls(loader_log)
        assert len(calls) == 1
        assert calls[0].startswith("--load-data file=")
        assert markers(state_dir) == ["admin_loaded", "config_applied", "data_loaded"]

    def test_stage_order(self, make_initializer, hooks_root, state_dir, tmp_path, app_root):
        trace = tmp_path / "order.log"
        write_script(
            Checkpoint.BEFORE_DATA_LOAD.directory(hooks_root),
            "10-check.sh",
            '#!/bin/sh\n'
            'test -e "$STATE_DIR/config_applied" || exit 7\n'
            'grep -q "host-headers-allowed=ordered" "$APP_ROOT/framework/security/config/security.properties" || exit 7\n'
            'test ! -e "$STATE_DIR/admin_loaded" || exit 7\n'
            'echo data >> "$TRACE"\n',
        )
        initializer = make_initializer(
            OFBIZ_HOST="ordered",
            STATE_DIR=str(state_dir),
            APP_ROOT=str(app_root),
            TRACE=str(trace),
        )

        initializer.run(["bin/ofbiz"])

        assert trace.read_text().strip() == "data"

    def test_additional_data_loaded(self, make_initializer, hooks_root, loader_log):
        extra = Checkpoint.ADDITIONAL_DATA.directory(hooks_root)
        (extra / "products.xml").write_text("<entity-engine-xml/>")

        make_initializer(OFBIZ_DATA_LOAD="none").run(["bin/ofbiz"])

        assert loader_calls(loader_log)[0] == f"--load-data dir={extra}"

    def test_shutdown_handler_armed_first(self, make_initializer, shutdown):
        make_initializer(OFBIZ_SKIP_INIT="1").run(["bin/ofbiz"])
        shutdown.install.assert_called_once_with()

    def test_finished_stop_commands_reaped_before_handoff(self, make_initializer, shutdown):
        make_initializer(OFBIZ_DATA_LOAD="none").run(["bin/ofbiz"])
        shutdown.reap.assert_called_once_with()


class TestHookEnvironment:

    def test_sourced_hook_reads_resolved_defaults(self, make_initializer, hooks_root, app_root):
        write_script(
            Checkpoint.BEFORE_CONFIG_APPLIED.directory(hooks_root),
            "10-host.sh",
            'OFBIZ_HOST="api.$OFBIZ_HOST"\n',
            executable=False,
        )

        config = make_initializer().initialize()

        assert config.host == "api.localhost"
        assert "host-headers-allowed=api.localhost" in (app_root / SECURITY_PROPERTIES).read_text()

    def test_hooks_see_coerced_data_load(self, make_initializer, hooks_root, tmp_path):
        seen = tmp_path / "seen"
        write_script(
            Checkpoint.BEFORE_DATA_LOAD.directory(hooks_root),
            "10-report.sh",
            f'#!/bin/sh\necho "$OFBIZ_DATA_LOAD $OFBIZ_ADMIN_USER" > {seen}\n',
        )

        make_initializer(OFBIZ_DATA_LOAD="bogus").initialize()

        assert seen.read_text().strip() == "none admin"

    def test_unset_in_sourced_hook_disables_ajp(self, make_initializer, hooks_root, app_root):
        write_script(
            Checkpoint.BEFORE_CONFIG_APPLIED.directory(hooks_root),
            "10-no-ajp.sh",
            "unset OFBIZ_ENABLE_AJP_PORT\n",
            executable=False,
        )
        initializer = make_initializer(OFBIZ_ENABLE_AJP_PORT="1")

        config = initializer.initialize()

        assert config.enable_ajp_port is False
        assert "OFBIZ_ENABLE_AJP_PORT" not in initializer.environ
        assert 'name="address"' not in (app_root / CATALINA_COMPONENT).read_text()


class TestSkipInit:

    def test_no_markers_and_no_edits(self, make_initializer, state_dir, app_root, loader_log):
        initializer = make_initializer(
            OFBIZ_SKIP_INIT="yes",
            OFBIZ_DATA_LOAD="demo",
            OFBIZ_HOST="ignored.example.com",
            OFBIZ_ENABLE_AJP_PORT="1",
        )

        handoff = initializer.run(["bin/ofbiz"])

        assert not state_dir.exists()
        assert (app_root / SECURITY_PROPERTIES).read_text() == SECURITY_TEXT
        assert (app_root / URL_PROPERTIES).read_text() == URL_TEXT
        assert loader_calls(loader_log) == []
        assert "OFBIZ_SKIP_INIT" not in handoff.environ

    def test_initialize_returns_none(self, make_initializer):
        assert make_initializer(OFBIZ_SKIP_INIT="1").initialize() is None


class TestFailures:

    def test_loader_failure_keeps_completed_markers(self, make_initializer, state_dir):
        initializer = make_initializer(OFBIZ_DATA_LOAD="seed", LOADER_EXIT="3")

        with pytest.raises(LoaderError) as exc_info:
            initializer.run(["bin/ofbiz"])

        assert exc_info.value.exit_code == 3
        assert markers(state_dir) == ["config_applied"]

    def test_hook_veto_prevents_loader(self, make_initializer, hooks_root, state_dir, loader_log):
        write_script(Checkpoint.BEFORE_DATA_LOAD.directory(hooks_root), "10-veto.sh", "#!/bin/sh\nexit 1\n")

        with pytest.raises(HookError):
            make_initializer(OFBIZ_DATA_LOAD="demo").run(["bin/ofbiz"])

        assert markers(state_dir) == ["config_applied"]
        assert loader_calls(loader_log) == []

    def test_retry_after_failure_resumes(self, make_initializer, hooks_root, state_dir, loader_log):
        veto = write_script(Checkpoint.BEFORE_DATA_LOAD.directory(hooks_root), "10-veto.sh", "#!/bin/sh\nexit 1\n")
        with pytest.raises(HookError):
            make_initializer(OFBIZ_DATA_LOAD="seed").run(["bin/ofbiz"])

        veto.unlink()
        make_initializer(OFBIZ_DATA_LOAD="seed").run(["bin/ofbiz"])

        assert markers(state_dir) == ["admin_loaded", "config_applied", "data_loaded"]
        assert loader_calls(loader_log)[0] == "--load-data readers=seed,seed-initial"


class TestHandoff:

    def test_scrubs_inputs_and_keeps_the_rest(self, make_initializer, hooks_root):
        write_script(
            Checkpoint.AFTER_CONFIG_APPLIED.directory(hooks_root),
            "10-java.sh",
            "JAVA_OPTS=-Xmx1g\n",
            executable=False,
        )
        initializer = make_initializer(
            OFBIZ_ADMIN_PASSWORD="hunter2",
            OFBIZ_ADMIN_USER="root",
            OFBIZ_HOST="h",
            OFBIZ_CONTENT_URL_PREFIX="https://c",
            OFBIZ_DATA_LOAD="none",
            OFBIZ_ENABLE_AJP_PORT="1",
        )

        handoff = initializer.run(["bin/ofbiz", "--start"])

        for variable in SCRUBBED_VARIABLES:
            assert variable not in handoff.environ
        assert "hunter2" not in handoff.environ.values()
        assert handoff.environ["JAVA_OPTS"] == "-Xmx1g"
        assert "PATH" in handoff.environ
        assert handoff.command == ("bin/ofbiz", "--start")

    def test_default_command(self, make_initializer):
        handoff = make_initializer(OFBIZ_SKIP_INIT="1").run([])
        assert handoff.command == DEFAULT_COMMAND

    def test_execute_replaces_process(self):
        handoff = Handoff(("bin/ofbiz", "--start"), {"PATH": "/usr/bin"})

        with patch("ofbizinit.orchestrator.os.execvpe") as execvpe:
            handoff.execute()

        execvpe.assert_called_once_with("bin/ofbiz", ["bin/ofbiz", "--start"], {"PATH": "/usr/bin"})

    def test_does_not_modify_process_environment(self, settings, monkeypatch, shutdown):
        monkeypatch.setenv("OFBIZ_SKIP_INIT", "1")
        monkeypatch.setenv("OFBIZ_ADMIN_PASSWORD", "hunter2")

        handoff = Initializer(settings, shutdown=shutdown).run(["bin/ofbiz"])

        assert "OFBIZ_ADMIN_PASSWORD" not in handoff.environ
        assert os.environ["OFBIZ_ADMIN_PASSWORD"] == "hunter2"
