"""Grant command: hand the project key to other members."""

from __future__ import annotations

from typing import Optional

import click
from rich.table import Table

from ..errors import MissingPublicKey
from ..project_keys import ProjectKeyDistributor, pending_members
from ._common import (
    CliState,
    console,
    fail,
    pass_state,
    reporting_errors,
    require_link,
    require_local_identity,
)


def register_grant_commands(main: click.Group) -> None:
    """Register the grant command."""

    @main.command("grant")
    @click.argument("email", required=False)
    @click.option("--all", "grant_all", is_flag=True, help="Grant every member still waiting for access.")
    @pass_state
    def grant(state: CliState, email: Optional[str], grant_all: bool):
        """Give project members a copy of the project key.

        With --all, members who have not registered a public key yet are
        reported and skipped. A single EMAIL without a key is an error.

        Examples:

            envsync grant alice@example.com

            envsync grant --all
        """
        if bool(email) == grant_all:
            fail("Give exactly one of EMAIL or --all.")

        project_link = require_link(state)
        with reporting_errors():
            identity = require_local_identity(state)
            remote = state.remote_store()
            distributor = ProjectKeyDistributor(remote)
            project_key = distributor.unwrap_project_key(
                project_link.project_id, identity.private_key,
            )
            members = remote.list_members(project_link.project_id)

        if grant_all:
            targets = pending_members(members)
            if not targets:
                console.print("[green]Every member already has access.[/]")
                return
        else:
            wanted = email.strip().lower()
            member = next((m for m in members if m.email.lower() == wanted), None)
            if member is None:
                fail(f"{email} is not a member of this project. Invite them first.")
            with reporting_errors():
                try:
                    distributor.grant_member(project_link.project_id, member, project_key)
                except MissingPublicKey as exc:
                    fail(f"{exc}. Ask them to run 'envsync keys ensure', then grant again.")
            console.print(f"[green]Granted {member.email} access to {project_link.project_name}.[/]")
            return

        report = distributor.grant_many(project_link.project_id, targets, project_key)

        table = Table(title="Grant")
        table.add_column("Member", style="cyan")
        table.add_column("Result")
        for member in report.granted:
            table.add_row(member.email, "[green]granted[/]")
        for member in report.unresolved:
            table.add_row(member.email, "[yellow]no public key yet[/]")
        for member, error in report.failed:
            table.add_row(member.email, f"[red]{error}[/]")
        console.print(table)

        if report.failed:
            raise SystemExit(1)
        if report.unresolved:
            console.print("[dim]Ask them to run 'envsync keys ensure', then grant again.[/]")
