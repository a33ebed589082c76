"""Identity key commands: ensure, show."""

from __future__ import annotations

import click
from rich.panel import Panel

from ..asymmetric import keys_match, public_key_fingerprint
from ..bootstrap import BootstrapOutcome, IdentityBootstrap
from ..recovery import looks_like_recovery_key
from ._common import CliState, console, pass_state, reporting_errors, require_local_identity

MAX_RECOVERY_ATTEMPTS = 3

_OUTCOME_MESSAGES = {
    BootstrapOutcome.EXISTING: "[green]Identity already set up on this device.[/]",
    BootstrapOutcome.PUBLIC_KEY_RESTORED: "[green]Public key restored from the server.[/]",
    BootstrapOutcome.RECOVERED: "[green]Identity recovered from your backup.[/]",
    BootstrapOutcome.CREATED: "[green]New identity created and registered.[/]",
}


def _prompt_recovery_key(attempt: int) -> str:
    if attempt == 1:
        console.print(
            "[yellow]This account already has an identity.[/] "
            "Enter your recovery key to restore it on this device."
        )
    while True:
        entry = click.prompt(
            f"Recovery key ({attempt}/{MAX_RECOVERY_ATTEMPTS})", hide_input=True,
        )
        if looks_like_recovery_key(entry):
            return entry
        console.print("[red]That is not a recovery key.[/] Expected RK- followed by 8 groups of 4 hex digits.")


def register_keys_commands(main: click.Group) -> None:
    """Register the keys command group."""

    @main.group()
    def keys():
        """Identity keys — the RSA keypair that unlocks your projects."""

    @keys.command("ensure")
    @pass_state
    def keys_ensure(state: CliState):
        """Make sure this device has a usable identity.

        Creates a new identity on first use, restores the public key if
        only the private key is present, or recovers the private key from
        your encrypted backup on a new device.

        Examples:

            envsync keys ensure
        """
        bootstrap = IdentityBootstrap(
            state.identity_store(),
            state.remote_store(),
            prompt_recovery_key=_prompt_recovery_key,
            max_attempts=MAX_RECOVERY_ATTEMPTS,
        )
        with reporting_errors():
            result = bootstrap.ensure()

        console.print(_OUTCOME_MESSAGES[result.outcome])
        if result.recovery_key:
            console.print(Panel(
                f"[bold]{result.recovery_key}[/]\n\n"
                "This key restores your identity on a new device.\n"
                "It is shown [bold]once[/] and is not stored anywhere. Keep it safe.",
                title="Recovery Key",
                border_style="yellow",
            ))
        fingerprint = public_key_fingerprint(result.identity.public_key)
        console.print(f"  Fingerprint: [cyan]{fingerprint}[/]")

    @keys.command("show")
    @click.option("--check", is_flag=True, help="Compare with the key registered on the server.")
    @pass_state
    def keys_show(state: CliState, check: bool):
        """Show the fingerprint of this device's identity.

        Examples:

            envsync keys show

            envsync keys show --check
        """
        with reporting_errors():
            identity = require_local_identity(state)
            console.print(f"  Fingerprint: [cyan]{public_key_fingerprint(identity.public_key)}[/]")
            console.print(f"  Stored in:   [dim]{state.home_path / 'identity'}[/]")
            if not check:
                return
            registered = state.remote_store().get_my_public_key()

        if not registered:
            console.print("  Server:      [yellow]no public key registered[/]")
        elif keys_match(registered, identity.private_key):
            console.print("  Server:      [green]matches[/]")
        else:
            console.print("  Server:      [bold red]MISMATCH[/]")
            raise SystemExit(1)
