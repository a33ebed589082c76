"""Project commands: init-key, members."""

from __future__ import annotations

import click
from rich.table import Table

from ..project_keys import ProjectKeyDistributor, pending_members
from ._common import (
    CliState,
    console,
    pass_state,
    reporting_errors,
    require_link,
    require_local_identity,
)


def register_project_commands(main: click.Group) -> None:
    """Register the project command group."""

    @main.group()
    def project():
        """Project keys and membership."""

    @project.command("init-key")
    @pass_state
    def init_key(state: CliState):
        """Create the project key for the linked project.

        Only needed once per project, by its first member. Everyone else
        receives the key through 'envsync grant'.

        Examples:

            envsync project init-key
        """
        project_link = require_link(state)
        with reporting_errors():
            identity = require_local_identity(state)
            distributor = ProjectKeyDistributor(state.remote_store())
            distributor.initialize_project_key(project_link.project_id, identity.public_key)
        console.print(f"[green]Project key created[/] for [bold]{project_link.project_name}[/]")

    @project.command("members")
    @pass_state
    def members(state: CliState):
        """List members and whether they can decrypt yet."""
        project_link = require_link(state)
        with reporting_errors():
            member_list = state.remote_store().list_members(project_link.project_id)

        pending = {m.user_id for m in pending_members(member_list)}
        table = Table(title="Members")
        table.add_column("Email", style="cyan")
        table.add_column("Role")
        table.add_column("Access")
        for member in member_list:
            access = "[yellow]pending[/]" if member.user_id in pending else "[green]granted[/]"
            table.add_row(member.email, member.role, access)
        console.print(table)
        if pending:
            console.print("[dim]Grant pending members with: envsync grant --all[/]")
