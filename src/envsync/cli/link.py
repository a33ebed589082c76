"""Project link commands: link, map, files."""

from __future__ import annotations

import click
from rich.table import Table

from ..project_link import (
    detect_env_files,
    get_linked_env,
    get_unlinked_files,
    link_file_to_env,
    load_project_link,
    new_project_link,
    save_project_link,
)
from ..validators import is_valid_env_name
from ._common import CliState, console, fail, pass_state, require_link


def register_link_commands(main: click.Group) -> None:
    """Register link, map and files."""

    @main.command("link")
    @click.argument("project_id")
    @click.argument("name")
    @pass_state
    def link(state: CliState, project_id: str, name: str):
        """Link the current directory to a project.

        Writes envsync.json. Relinking to the same project keeps the
        existing file mapping.

        Examples:

            envsync link 3f0c1a2e my-api
        """
        existing = load_project_link(state.cwd)
        project_link = new_project_link(project_id, name)
        if existing and existing.project_id == project_id:
            project_link.mapping = existing.mapping
        path = save_project_link(project_link, state.cwd)
        console.print(f"[green]Linked[/] to [bold]{name}[/] ([dim]{project_id}[/])")
        console.print(f"  Wrote [cyan]{path.name}[/]")

        detected = detect_env_files(state.cwd)
        if detected:
            console.print(f"  Found: {', '.join(detected)}")
            console.print("[dim]Map them with: envsync map ENV FILE[/]")

    @main.command("map")
    @click.argument("env")
    @click.argument("file")
    @pass_state
    def map_file(state: CliState, env: str, file: str):
        """Map an environment to a local .env file.

        Examples:

            envsync map development .env

            envsync map production .env.production
        """
        project_link = require_link(state)
        env_name = env.strip().lower()
        if not is_valid_env_name(env_name):
            fail(f"Invalid environment name '{env}'. Use lowercase letters, digits, - and _.")

        previous = get_linked_env(project_link, file)
        if previous and previous != env_name:
            console.print(f"[yellow]{file} was mapped to {previous}; remapping.[/]")
            del project_link.mapping[previous]
        if not (state.cwd / file).exists():
            console.print(f"[yellow]{file} does not exist yet; pull will create it.[/]")

        link_file_to_env(project_link, env_name, file, state.cwd)
        console.print(f"[green]Mapped[/] {env_name} -> [cyan]{file}[/]")

    @main.command("files")
    @pass_state
    def files(state: CliState):
        """Show mapped and unmapped .env files."""
        project_link = require_link(state)

        table = Table(title=f"{project_link.project_name or project_link.project_id}")
        table.add_column("Environment", style="cyan")
        table.add_column("File")
        for env_name, file in sorted(project_link.mapping.items()):
            table.add_row(env_name, file)
        console.print(table)

        unlinked = get_unlinked_files(project_link, state.cwd)
        if unlinked:
            console.print(f"[yellow]Not mapped:[/] {', '.join(unlinked)}")
