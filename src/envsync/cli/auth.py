"""Auth commands: login, logout."""

from __future__ import annotations

from typing import Optional

import click

from ..config import save_settings
from ._common import CliState, console, pass_state


def register_auth_commands(main: click.Group) -> None:
    """Register login and logout."""

    @main.command("login")
    @click.option("--token", prompt=True, hide_input=True, help="API token from the web dashboard.")
    @click.option("--api-url", default=None, help="API root, e.g. https://api.example.com/api/v1.")
    @pass_state
    def login(state: CliState, token: str, api_url: Optional[str]):
        """Store an API token for later commands.

        Examples:

            envsync login --token $ENVSYNC_TOKEN

            envsync login --api-url https://envsync.internal/api/v1
        """
        settings = state.settings()
        settings.token = token.strip()
        if api_url:
            settings.api_url = api_url.rstrip("/")
        path = save_settings(settings, state.home)
        console.print(f"[green]Logged in.[/] Token saved to [cyan]{path}[/]")
        console.print("[dim]Next: envsync keys ensure[/]")

    @main.command("logout")
    @pass_state
    def logout(state: CliState):
        """Forget the stored API token. Local keys are kept."""
        settings = state.settings()
        if not settings.is_authenticated:
            console.print("[yellow]Not logged in.[/]")
            return
        settings.token = None
        save_settings(settings, state.home)
        console.print("[green]Logged out.[/]")
