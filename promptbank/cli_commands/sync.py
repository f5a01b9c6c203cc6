"""CLI commands for prompt synchronization.

This module provides commands for syncing a workspace's prompt library and
the team libraries the user belongs to.
"""

from pathlib import Path
from typing import Annotated, Optional

import cyclopts
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from promptbank.config import (
    PromptBankConfig,
    get_default_promptbank_dir,
    load_config,
    workspace_storage_dir,
)
from promptbank.errors import (
    AuthError,
    QuotaExceededError,
    SyncInProgressError,
    SyncRetryRequired,
)
from promptbank.identity import WorkspaceIdentity, detect_device
from promptbank.storage.prompt_store import FilePromptStore
from promptbank.sync.client import PromptBankClient
from promptbank.sync.engine import SyncEngine, SyncGuard, TeamSyncService
from promptbank.sync.executor import SyncResult
from promptbank.sync.http_transport import PersonalTransport, TeamTransport
from promptbank.sync.quota import QuotaGuard
from promptbank.sync.state_store import SyncStateStore

# Create the sync command group
sync_app = cyclopts.App(name="sync", help="Synchronize prompts with the cloud")

# One guard per process so that concurrent invocations share it
_GUARD = SyncGuard()


def _get_console() -> Console:
    """Get a Rich console for output."""
    return Console()


def _require_config(console: Console, workspace: Path) -> PromptBankConfig:
    config = load_config(workspace=workspace)
    if not config.is_configured:
        console.print(
            "[red]Error: Sync not configured. Set PROMPTBANK_API_URL, "
            "PROMPTBANK_TOKEN and PROMPTBANK_USER or add them to "
            "~/.promptbank/config.json.[/red]"
        )
        raise SystemExit(1)
    return config


def _make_client(config: PromptBankConfig) -> PromptBankClient:
    return PromptBankClient(config.api_url, config.token, timeout=config.timeout)


def build_personal_engine(
    config: PromptBankConfig, workspace: Path, client: PromptBankClient
) -> SyncEngine:
    """Wire up a SyncEngine for a workspace's personal library."""
    storage_dir = workspace_storage_dir(workspace)
    device = detect_device(config.device_name)
    workspace_meta = WorkspaceIdentity(storage_dir).get_or_create(device)
    transport = PersonalTransport(
        client,
        user_id=config.user_id,
        device=device,
        workspace_id=workspace_meta.workspace_id,
        workspace_name=workspace.resolve().name,
        quota_guard=QuotaGuard(config.quota_warning_threshold),
    )
    return SyncEngine(
        transport=transport,
        state_store=SyncStateStore(storage_dir),
        local_store=FilePromptStore(storage_dir),
        device=device,
        user_id=config.user_id,
        workspace_id=workspace_meta.workspace_id,
        guard=_GUARD,
        upload_concurrency=config.upload_concurrency,
        max_versions=config.max_versions,
    )


def _print_result(console: Console, result: SyncResult, title: str = "Sync Complete"):
    table = Table(title=title, show_header=False, box=None)
    table.add_column("Operation", style="cyan")
    table.add_column("Count", style="white", justify="right")
    table.add_row("Uploaded", str(len(result.uploaded)))
    table.add_row("Downloaded", str(len(result.downloaded)))
    table.add_row("Deleted locally", str(len(result.deleted_local)))
    table.add_row("Deleted remotely", str(len(result.deleted_remote)))
    table.add_row("Conflicts forked", str(result.conflicts))
    if result.skipped:
        table.add_row("Skipped (role)", str(len(result.skipped)))
    table.add_row("Duration", f"{result.duration:.2f}s")
    console.print(table)

    if result.quota_warning is not None:
        console.print(
            f"[yellow]Warning: you are using {result.quota_warning:.0f}% of your "
            "sync quota. Consider deleting old prompts.[/yellow]"
        )


@sync_app.command
def run(
    *,
    workspace: Annotated[
        Path, cyclopts.Parameter(help="Workspace root directory")
    ] = Path("."),
):
    """Sync the workspace's prompt library.

    Example:
        promptbank sync run
        promptbank sync run --workspace ~/projects/api
    """
    console = _get_console()
    config = _require_config(console, workspace)

    try:
        with _make_client(config) as client:
            engine = build_personal_engine(config, workspace, client)
            with console.status("[cyan]Syncing prompts...[/cyan]"):
                result = engine.sync()
        _print_result(console, result)

    except QuotaExceededError as e:
        console.print(
            Panel(
                Text.assemble(
                    ("✗ ", "red bold"),
                    ("Sync would exceed your quota\n\n", "red"),
                    ("Limit: ", "cyan"),
                    (f"{e.kind} {e.limit}\n", "white"),
                    ("In use: ", "cyan"),
                    (f"{e.current}\n", "white"),
                    ("Requested: ", "cyan"),
                    (f"{e.requested}\n\n", "white"),
                    ("Nothing was uploaded.", "white"),
                ),
                title="Quota Exceeded",
                border_style="red",
            )
        )
        raise SystemExit(1)
    except SyncRetryRequired as e:
        console.print(
            f"[yellow]Another device changed a prompt during sync "
            f"(expected v{e.expected_version}, found v{e.actual_version}). "
            "Run 'promptbank sync run' again.[/yellow]"
        )
        raise SystemExit(1)
    except SyncInProgressError:
        console.print("[yellow]A sync is already running for this workspace.[/yellow]")
        raise SystemExit(1)
    except AuthError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise SystemExit(1)
    except Exception as e:
        console.print(f"[red]Error during sync: {e}[/red]")
        raise


@sync_app.command
def status(
    *,
    workspace: Annotated[
        Path, cyclopts.Parameter(help="Workspace root directory")
    ] = Path("."),
):
    """Show which prompts have changed since the last sync.

    Works offline: compares local prompts with the last-synced baseline.

    Example:
        promptbank sync status
    """
    console = _get_console()
    config = _require_config(console, workspace)

    try:
        with _make_client(config) as client:
            report = build_personal_engine(config, workspace, client).status()

        table = Table(title="Sync Status", show_header=False, box=None)
        table.add_column("Key", style="cyan", no_wrap=True)
        table.add_column("Value", style="white")
        table.add_row("In sync", str(len(report.synced)))
        table.add_row("Modified locally", str(len(report.modified)))
        table.add_row("Never synced", str(len(report.never_synced)))
        table.add_row("Deleted locally", str(len(report.deleted_locally)))
        if report.last_synced_at:
            table.add_row(
                "Last Sync", report.last_synced_at.strftime("%Y-%m-%d %H:%M:%S UTC")
            )
        else:
            table.add_row("Last Sync", "Never")
        console.print(table)

        if report.needs_sync:
            console.print("\n[dim]To sync now: promptbank sync run[/dim]")

    except Exception as e:
        console.print(f"[red]Error getting status: {e}[/red]")
        raise


@sync_app.command
def reset(
    *,
    workspace: Annotated[
        Path, cyclopts.Parameter(help="Workspace root directory")
    ] = Path("."),
    yes: Annotated[bool, cyclopts.Parameter(help="Skip confirmation")] = False,
):
    """Forget the sync baseline for this workspace.

    Local prompts are kept. The next sync re-matches every prompt with the
    cloud, which may surface conflicts for prompts edited on both sides.

    Example:
        promptbank sync reset --yes
    """
    console = _get_console()

    if not yes:
        console.print("[yellow]This clears the sync baseline. Re-run with --yes.[/yellow]")
        return

    try:
        SyncStateStore(workspace_storage_dir(workspace)).clear()
        console.print("[green]✓ Sync state cleared[/green]")
    except Exception as e:
        console.print(f"[red]Error clearing sync state: {e}[/red]")
        raise


@sync_app.command
def deleted(
    *,
    workspace: Annotated[
        Path, cyclopts.Parameter(help="Workspace root directory")
    ] = Path("."),
):
    """List prompts deleted since they were last synced.

    Example:
        promptbank sync deleted
    """
    console = _get_console()
    entries = SyncStateStore(workspace_storage_dir(workspace)).deleted_prompts()

    if not entries:
        console.print("[dim]No deleted prompts.[/dim]")
        return

    table = Table(title="Deleted Prompts")
    table.add_column("Prompt ID", style="cyan")
    table.add_column("Cloud ID", style="white")
    table.add_column("Deleted At", style="white")
    for local_id, info in sorted(entries.items()):
        deleted_at = info.deleted_at.strftime("%Y-%m-%d %H:%M") if info.deleted_at else "-"
        table.add_row(local_id, info.cloud_id or "-", deleted_at)
    console.print(table)


@sync_app.command
def restore(
    prompt_id: Annotated[str, cyclopts.Parameter(help="Local id of the deleted prompt")],
    *,
    workspace: Annotated[
        Path, cyclopts.Parameter(help="Workspace root directory")
    ] = Path("."),
):
    """Restore a deleted prompt from the cloud.

    Example:
        promptbank sync restore prompt_1718000000000_k3j9x0a1b
    """
    console = _get_console()
    config = _require_config(console, workspace)

    try:
        with _make_client(config) as client:
            result = build_personal_engine(config, workspace, client).restore(prompt_id)
        console.print(f"[green]✓ Restored {prompt_id}[/green]")
        _print_result(console, result)
    except KeyError:
        console.print(f"[red]Error: no deleted prompt with id {prompt_id}[/red]")
        raise SystemExit(1)
    except Exception as e:
        console.print(f"[red]Error restoring prompt: {e}[/red]")
        raise


@sync_app.command
def teams(
    *,
    team: Annotated[
        Optional[str], cyclopts.Parameter(help="Only sync the team with this id")
    ] = None,
):
    """Sync team libraries.

    Teams and roles come from the "teams" list in ~/.promptbank/config.json.
    Viewers only receive changes; editors may also upload; admins and owners
    may also delete.

    Example:
        promptbank sync teams
        promptbank sync teams --team 3f6c...
    """
    console = _get_console()
    config = _require_config(console, Path("."))

    selected = [t for t in config.teams if team is None or t.id == team]
    if not selected:
        console.print("[yellow]No matching teams configured.[/yellow]")
        return

    device = detect_device(config.device_name)
    with _make_client(config) as client:
        service = TeamSyncService(
            teams_dir=get_default_promptbank_dir() / "teams",
            user_id=config.user_id,
            device=device,
            transport_factory=lambda t: TeamTransport(client, device, t),
            local_store_factory=FilePromptStore,
            guard=_GUARD,
            upload_concurrency=config.upload_concurrency,
        )
        reports = service.sync_all(selected)

    table = Table(title="Team Sync")
    table.add_column("Team", style="cyan")
    table.add_column("Role", style="white")
    table.add_column("Result", style="white")
    for report in reports:
        if report.ok:
            r = report.result
            summary = (
                f"↑{len(r.uploaded)} ↓{len(r.downloaded)} "
                f"✗{len(r.deleted_local) + len(r.deleted_remote)} ⚡{r.conflicts}"
            )
            table.add_row(report.team.name, report.team.role.value, f"[green]{summary}[/green]")
        else:
            table.add_row(report.team.name, report.team.role.value, f"[red]{report.error}[/red]")
    console.print(table)
