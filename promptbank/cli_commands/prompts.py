"""CLI commands for managing the local prompt library."""

from pathlib import Path
from typing import Annotated, Optional

import cyclopts
from rich.console import Console
from rich.table import Table

from promptbank.config import load_config, workspace_storage_dir
from promptbank.identity import detect_device
from promptbank.models import DEFAULT_CATEGORY, Prompt, record_edit
from promptbank.storage.prompt_store import FilePromptStore

prompts_app = cyclopts.App(name="prompts", help="Manage local prompts")


def _get_console() -> Console:
    """Get a Rich console for output."""
    return Console()


def _store(workspace: Path) -> FilePromptStore:
    return FilePromptStore(workspace_storage_dir(workspace))


@prompts_app.command
def add(
    title: Annotated[str, cyclopts.Parameter(help="Prompt title")],
    content: Annotated[str, cyclopts.Parameter(help="Prompt body, may use {{variables}}")],
    *,
    category: Annotated[str, cyclopts.Parameter(help="Category")] = DEFAULT_CATEGORY,
    description: Annotated[Optional[str], cyclopts.Parameter(help="Description")] = None,
    workspace: Annotated[Path, cyclopts.Parameter(help="Workspace root directory")] = Path("."),
):
    """Add a prompt to the workspace library.

    Example:
        promptbank prompts add "Review" "Review {{filename}} for bugs" --category Code
    """
    console = _get_console()
    prompt = _store(workspace).save(Prompt.create(title, content, category, description))
    console.print(f"[green]✓ Added {prompt.id}[/green]")


@prompts_app.command(name="list")
def list_prompts(
    *,
    category: Annotated[Optional[str], cyclopts.Parameter(help="Only this category")] = None,
    workspace: Annotated[Path, cyclopts.Parameter(help="Workspace root directory")] = Path("."),
):
    """List prompts in the workspace library."""
    console = _get_console()
    prompts = [
        p for p in _store(workspace).list() if category is None or p.category == category
    ]

    table = Table(title="Prompts")
    table.add_column("ID", style="dim")
    table.add_column("Category", style="cyan")
    table.add_column("Title", style="white")
    table.add_column("Variables", style="white")
    table.add_column("Versions", style="white", justify="right")
    for prompt in sorted(prompts, key=lambda p: (p.category, p.order or 0, p.title)):
        table.add_row(
            prompt.id,
            prompt.category,
            prompt.title,
            ", ".join(v.name for v in prompt.variables),
            str(len(prompt.versions)),
        )
    console.print(table)


@prompts_app.command
def edit(
    prompt_id: Annotated[str, cyclopts.Parameter(help="Prompt id")],
    *,
    title: Annotated[Optional[str], cyclopts.Parameter(help="New title")] = None,
    content: Annotated[Optional[str], cyclopts.Parameter(help="New content")] = None,
    category: Annotated[Optional[str], cyclopts.Parameter(help="New category")] = None,
    reason: Annotated[Optional[str], cyclopts.Parameter(help="Why it changed")] = None,
    workspace: Annotated[Path, cyclopts.Parameter(help="Workspace root directory")] = Path("."),
):
    """Edit a prompt, keeping the previous text in its history.

    Example:
        promptbank prompts edit prompt_1718000000000_k3j9x0a1b --title "Review v2"
    """
    console = _get_console()
    store = _store(workspace)
    prompt = store.get(prompt_id)
    if prompt is None:
        console.print(f"[red]Error: no prompt with id {prompt_id}[/red]")
        raise SystemExit(1)

    changes = {
        name: value
        for name, value in (("title", title), ("content", content), ("category", category))
        if value is not None
    }
    if not changes:
        console.print("[yellow]Nothing to change.[/yellow]")
        return

    config = load_config(workspace=workspace)
    edited = record_edit(
        prompt,
        detect_device(config.device_name),
        change_reason=reason,
        max_versions=config.max_versions,
        **changes,
    )
    store.save(edited)
    console.print(f"[green]✓ Updated {prompt_id}[/green]")


@prompts_app.command
def remove(
    prompt_id: Annotated[str, cyclopts.Parameter(help="Prompt id")],
    *,
    workspace: Annotated[Path, cyclopts.Parameter(help="Workspace root directory")] = Path("."),
):
    """Delete a prompt locally. The next sync deletes it in the cloud."""
    console = _get_console()
    if _store(workspace).delete(prompt_id):
        console.print(f"[green]✓ Removed {prompt_id}[/green]")
    else:
        console.print(f"[red]Error: no prompt with id {prompt_id}[/red]")
        raise SystemExit(1)
