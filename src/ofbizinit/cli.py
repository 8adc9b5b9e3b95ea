"""
ofbiz-init CLI - Initialize an OFBiz container and hand off to OFBiz.

Commands:
    ofbiz-init run [COMMAND...]   Apply config, load data, provision admin, exec COMMAND
    ofbiz-init status             Show which initialization stages have completed
    ofbiz-init hash-password      Print an OFBiz $SHA$ credential for a password

Typical image configuration:
    ENTRYPOINT ["ofbiz-init", "run", "--"]
    CMD ["bin/ofbiz"]
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Optional, Tuple

import click

from ofbizinit import __version__
from ofbizinit.config import get_settings
from ofbizinit.credentials import hash_password
from ofbizinit.errors import InitializationError
from ofbizinit.logger import configure_logging
from ofbizinit.orchestrator import DEFAULT_COMMAND, Initializer
from ofbizinit.stages import FileStageStore, Stage, show_stage_summary

logger = logging.getLogger("ofbizinit.cli")


@click.group()
@click.version_option(version=__version__)
def main():
    """ofbiz-init - OFBiz container initialization entry point."""
    pass


@main.command(context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False})
@click.argument("command", nargs=-1, type=click.UNPROCESSED)
def run(command: Tuple[str, ...]):
    """Initialize the container, then exec COMMAND (default: bin/ofbiz).

    Initialization is controlled by OFBIZ_* environment variables and is
    skipped entirely when OFBIZ_SKIP_INIT is non-empty. Stages already
    recorded in the state directory are not repeated.

    Example:
        ofbiz-init run -- bin/ofbiz --start
    """
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)

    initializer = Initializer(settings)
    try:
        handoff = initializer.run(command or DEFAULT_COMMAND)
    except InitializationError as e:
        logger.error(f"Initialization failed: {e}")
        sys.exit(e.exit_code)

    try:
        handoff.execute()
    except OSError as e:
        logger.error(f"Cannot execute {handoff.command[0]}: {e}")
        sys.exit(127)


@main.command()
@click.option("--state-dir", type=click.Path(file_okay=False), default=None,
              help="State directory (default: OFBIZ_ENTRYPOINT_STATE_DIR)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def status(state_dir: Optional[str], as_json: bool):
    """Show which initialization stages have completed."""
    directory = state_dir or get_settings().state_dir
    store = FileStageStore(directory)

    if as_json:
        done = store.completed()
        click.echo(json.dumps({
            "state_dir": str(directory),
            "stages": {stage.value: stage in done for stage in Stage},
        }, indent=2))
    else:
        click.echo(f"State directory: {directory}")
        click.echo(show_stage_summary(store))


@main.command("hash-password")
@click.option("--password", prompt=True, hide_input=True, envvar="OFBIZ_ADMIN_PASSWORD",
              help="Password to encode (prompted if omitted)")
@click.option("--salt", default=None, help="Fixed salt (random 16 characters if omitted)")
def hash_password_cmd(password: str, salt: Optional[str]):
    """Print the OFBiz $SHA$ credential string for a password."""
    click.echo(hash_password(password, salt=salt))


if __name__ == "__main__":
    main()
