"""Sync commands: push, pull, status."""

from __future__ import annotations

import json
from typing import Optional

import click
from rich.table import Table

from ..errors import EnvSyncError, InvalidVariableNames
from ..models import ProjectLink
from ..project_link import get_linked_file
from ..reconcile import format_diff, format_status, format_sync_result, status_to_dict
from ..sync import PushResult, SecretSync, SyncTarget, resolve_targets
from ..validators import format_key_validation_error
from ._common import (
    CliState,
    console,
    fail,
    logger,
    open_project,
    pass_state,
    reporting_errors,
    require_link,
)


def _select_targets(
    state: CliState,
    sync: SecretSync,
    project_link: ProjectLink,
    env: Optional[str],
    file: Optional[str],
    all_envs: bool,
) -> list[SyncTarget]:
    """Turn --env/--file/--all into sync targets."""
    environments = sync.remote.list_environments(project_link.project_id)

    if all_envs:
        targets, missing = resolve_targets(project_link, environments, state.cwd)
        for name in missing:
            console.print(f"[yellow]Skipping {name}: no such environment on the server.[/]")
        if not targets:
            fail("No mapped environments. Map one with: envsync map ENV FILE")
        return targets

    if env is None:
        if len(project_link.mapping) != 1:
            fail("Specify --env ENV or --all.")
        env = next(iter(project_link.mapping))

    match = next((e for e in environments if e.name.lower() == env.lower()), None)
    if match is None:
        available = ", ".join(e.name for e in environments) or "none"
        fail(f"Environment '{env}' not found. Available: {available}")

    if file is None:
        file = get_linked_file(project_link, match.name) or get_linked_file(project_link, env)
    if file is None:
        fail(f"No file mapped to {match.name}. Use --file or: envsync map {match.name} FILE")
    return [SyncTarget(environment=match, file_path=state.cwd / file)]


def _push_interactively(sync: SecretSync, target: SyncTarget, prune: bool) -> Optional[PushResult]:
    """Show the diff, ask, then apply exactly that plan. None when declined."""
    try:
        plan = sync.plan_push(target.environment, target.file_path, prune)
    except InvalidVariableNames as exc:
        console.print(f"[red]{format_key_validation_error(exc.keys)}[/]")
        return PushResult(env_name=target.env_name, error=str(exc))
    except (EnvSyncError, OSError) as exc:
        return PushResult(env_name=target.env_name, error=str(exc))

    console.print(format_diff(plan.diff, target.env_name))
    if not plan.diff.has_changes:
        return PushResult(env_name=target.env_name, diff=plan.diff)

    if plan.diff.deletes:
        console.print(f"[red]Will delete from {target.env_name}:[/] {', '.join(plan.diff.deletes)}")
    if not click.confirm(f"Push to {target.env_name}?", default=True):
        console.print("[dim]Skipped.[/]")
        return None

    try:
        return sync.push(target.environment, target.file_path, prune, plan=plan)
    except EnvSyncError as exc:
        return PushResult(env_name=target.env_name, diff=plan.diff, error=str(exc))


def register_sync_commands(main: click.Group) -> None:
    """Register push, pull and status."""

    @main.command("push")
    @click.option("--env", "-e", default=None, help="Environment to push to.")
    @click.option("--file", "-f", default=None, help="Local .env file (defaults to the mapped one).")
    @click.option("--all", "all_envs", is_flag=True, help="Push every mapped environment.")
    @click.option("--prune", is_flag=True, help="Delete remote variables missing from the file.")
    @click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
    @pass_state
    def push(state: CliState, env, file, all_envs, prune, yes):
        """Encrypt local variables and upload the changes.

        Examples:

            envsync push --env development

            envsync push --all --yes

            envsync push -e production -f .env.prod --prune
        """
        project_link = require_link(state)
        with reporting_errors():
            sync = open_project(state, project_link)
            targets = _select_targets(state, sync, project_link, env, file, all_envs)

        if yes:
            results = sync.push_many(targets, prune)
        else:
            results = [
                r for r in (_push_interactively(sync, t, prune) for t in targets) if r
            ]

        for result in results:
            if not result.ok:
                console.print(f"  [red]{result.env_name}: {result.error}[/]")
            elif result.applied:
                console.print(f"  [green]{result.env_name}[/] {format_sync_result(result.diff)}")
                if result.repaired:
                    console.print(f"    [dim]Repaired: {', '.join(result.repaired)}[/]")
            else:
                console.print(f"  [dim]{result.env_name}: nothing to push[/]")

        if any(not r.ok for r in results):
            raise SystemExit(1)

    @main.command("pull")
    @click.option("--env", "-e", default=None, help="Environment to pull from.")
    @click.option("--file", "-f", default=None, help="Local .env file (defaults to the mapped one).")
    @click.option("--all", "all_envs", is_flag=True, help="Pull every mapped environment.")
    @click.option("--yes", "-y", is_flag=True, help="Do not ask before dropping local-only variables.")
    @pass_state
    def pull(state: CliState, env, file, all_envs, yes):
        """Download and decrypt variables into local files.

        Variables that cannot be decrypted are never written; their
        local values, if any, are kept.

        Examples:

            envsync pull --env development

            envsync pull --all
        """
        project_link = require_link(state)
        with reporting_errors():
            sync = open_project(state, project_link)
            targets = _select_targets(state, sync, project_link, env, file, all_envs)

        if not yes:
            reports = sync.status_many(targets)
            confirmed = []
            for target in targets:
                report = reports[target.env_name]
                dropped = report.status.local_only if report.status else []
                if dropped and not click.confirm(
                    f"{target.file_path.name} has local-only variables "
                    f"({', '.join(dropped)}) that pull will remove. Continue?",
                    default=False,
                ):
                    console.print(f"  [dim]{target.env_name}: skipped[/]")
                    continue
                confirmed.append(target)
            targets = confirmed

        results = sync.pull_many(targets)
        for result in results:
            if not result.ok:
                console.print(f"  [red]{result.env_name}: {result.error}[/]")
                continue
            console.print(
                f"  [green]{result.env_name}[/] -> [cyan]{result.file_path.name}[/] "
                f"({result.written} variables, {result.changes} changed)"
            )
            if result.undecryptable:
                console.print(
                    f"    [yellow]Could not decrypt: {', '.join(result.undecryptable)}[/]"
                )

        if any(not r.ok for r in results):
            raise SystemExit(1)

    @main.command("status")
    @click.option("--env", "-e", default=None, help="Only check this environment.")
    @click.option("--json", "as_json", is_flag=True, help="Machine-readable output.")
    @pass_state
    def status(state: CliState, env, as_json):
        """Compare local files with the server without changing anything.

        Examples:

            envsync status

            envsync status --json
        """
        project_link = require_link(state)
        with reporting_errors():
            sync = open_project(state, project_link)
            targets = _select_targets(state, sync, project_link, env, None, env is None)

        reports = sync.status_many(targets)
        logger.debug("Checked %d environment(s)", len(reports))

        if as_json:
            payload = {}
            for name, report in reports.items():
                entry = status_to_dict(report.status) if report.status else {}
                entry.update({
                    "file": str(report.file_path),
                    "undecryptable": report.undecryptable,
                    "error": report.error,
                })
                payload[name] = entry
            click.echo(json.dumps(payload, indent=2))
        else:
            table = Table(title=f"{project_link.project_name or project_link.project_id}")
            table.add_column("Environment", style="cyan")
            table.add_column("File")
            table.add_column("State")
            for name, report in reports.items():
                if report.error:
                    state_text = f"[red]{report.error}[/]"
                elif report.status.is_synced:
                    state_text = "[green]in sync[/]"
                else:
                    state_text = f"[yellow]{report.status.total_diff} difference(s)[/]"
                table.add_row(name, report.file_path.name, state_text)
            console.print(table)

            for report in reports.values():
                if report.status and not report.status.is_synced:
                    console.print(format_status(report.status, report.env_name))
                if report.undecryptable:
                    console.print(
                        f"[yellow]{report.env_name}: could not decrypt "
                        f"{', '.join(report.undecryptable)}[/]"
                    )

        if any(r.error for r in reports.values()):
            raise SystemExit(1)
