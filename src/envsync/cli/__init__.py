"""
envsync CLI — end-to-end encrypted .env sync from the command line.

The main Click group is defined here; each command group lives in its
own module and is attached through a ``register_*`` function.

Entry point: envsync.cli:main
"""

from __future__ import annotations

from pathlib import Path

import click

from .. import __version__
from ..config import configure_logging
from ._common import CliState


@click.group()
@click.version_option(version=__version__, prog_name="envsync")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
@click.option("--home", default=None, type=click.Path(), help="envsync home directory.")
@click.pass_context
def main(ctx: click.Context, verbose: bool, home: str):
    """envsync — end-to-end encrypted environment variables.

    Secrets are encrypted on this machine before they are uploaded.
    The server only ever stores ciphertext.
    """
    configure_logging(verbose)
    state = ctx.ensure_object(CliState)
    if home:
        state.home = Path(home).expanduser()


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .auth import register_auth_commands
from .keys import register_keys_commands
from .link import register_link_commands
from .project import register_project_commands
from .grant import register_grant_commands
from .sync_cmd import register_sync_commands

register_auth_commands(main)
register_keys_commands(main)
register_link_commands(main)
register_project_commands(main)
register_grant_commands(main)
register_sync_commands(main)
