import asyncio
import json
import logging
import os
from typing import Any, Coroutine, List, TypeVar

import typer
from rich import print
from rich.markup import escape
from rich.table import Table

from memtags.config import ENV_FILE, Settings
from memtags.core.bulk import bulk_add_parent
from memtags.core.client import TagHierarchyClient
from memtags.core.errors import TagHierarchyError
from memtags.core.hierarchy import TagHierarchyService
from memtags.core.models import BulkReport, FlatTag, Tag
from memtags.core.projection import flatten

logger = logging.getLogger(__name__)

T = TypeVar("T")

APP_HELP = """
memtags: Browse and edit the memory server's tag hierarchy.

Tags form a graph: a tag may have several parents and several children.
The tree view shows every position a tag occupies, so a tag with two
parents appears twice.

CORE WORKFLOW:
1. CONFIGURE: Run `memtags config set-key <key> --server <url>`.
2. BROWSE:    Run `memtags tree --expand-all` or `memtags tree --search go`.
3. EDIT:      Run `memtags add-parent <child> <parent>` or
              `memtags create-pair <child-name> <parent-name>`.
4. BULK:      Run `memtags bulk-add-parent <parent> <child> <child> ...`.
"""

app = typer.Typer(name="memtags", help=APP_HELP, no_args_is_help=True)
config_app = typer.Typer(name="config", help="Manage configuration and keys.")
app.add_typer(config_app, name="config")


def _build_service() -> TagHierarchyService:
    return TagHierarchyService(TagHierarchyClient())


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine, turning hierarchy errors into a red message and exit 1."""
    try:
        return asyncio.run(coro)
    except TagHierarchyError as e:
        print(f"[red]Error: {escape(e.message)}[/red]")
        raise typer.Exit(code=1)


def _render_rows(rows: List[FlatTag]) -> None:
    for row in rows:
        if not row.has_children:
            marker = "   "
        elif row.is_expanded:
            marker = "[-]"
        else:
            marker = "[+]"
        print(f"{'  ' * row.depth}{escape(marker)} {escape(row.name)} [dim]({row.id})[/dim]")


def _render_tags(title: str, tags: List[Tag]) -> None:
    if not tags:
        print(f"[yellow]{escape(title)}: none[/yellow]")
        return
    table = Table(title=title)
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="magenta")
    for tag in tags:
        table.add_row(str(tag.id), escape(tag.name))
    print(table)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log requests and reloads."),
):
    """
    memtags: tag hierarchy client.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# ============================================================================
# Browse Commands
# ============================================================================

@app.command("tree")
def tree(
    search: str = typer.Option(None, "--search", "-s", help="Only show tags whose name contains this text (and their ancestors)."),
    expand_all: bool = typer.Option(False, "--expand-all", "-a", help="Expand every tag."),
    expand: List[int] = typer.Option([], "--expand", "-e", help="Expand this tag id (repeatable)."),
    json_output: bool = typer.Option(False, "--json", help="Output rows as JSON"),
):
    """
    Show the tag hierarchy.

    Without options only root tags are listed. A search expands every
    remaining tag so that matches are visible.

    Examples:
        memtags tree --expand-all
        memtags tree --expand 1 --expand 4
        memtags tree --search rust
    """

    async def load() -> List[FlatTag]:
        service = _build_service()
        await service.refresh()
        roots = service.filtered_tree(search) if search else service.graph.roots
        if expand_all or search:
            service.state.expand_all(roots, service.graph.max_depth)
        for tag_id in expand:
            service.state.expand(tag_id)
        return flatten(roots, service.state.expanded_ids, service.graph.max_depth)

    rows = _run(load())

    if json_output:
        typer.echo(json.dumps([row.model_dump() for row in rows]))
        return

    if not rows:
        if search:
            print(f"[yellow]No tags match your search \"{escape(search)}\"[/yellow]")
        else:
            print("[yellow]No tags found. Create some tags to see the hierarchy.[/yellow]")
        return

    _render_rows(rows)
    print(f"[dim]Rows: {len(rows)}[/dim]")


@app.command("find")
def find(tag_id: int = typer.Argument(..., help="Tag ID")):
    """
    Show where a tag first appears in the hierarchy.
    """

    async def load():
        service = _build_service()
        await service.refresh()
        node = service.graph.find_node(tag_id)
        if node is None:
            return None, [], 0
        return node, service.graph.path_to(tag_id), service.graph.count_nodes(node)

    node, path, count = _run(load())
    if node is None:
        print(f"[red]Tag {tag_id} not found in the hierarchy[/red]")
        raise typer.Exit(code=1)

    print(f"[bold]{escape(node.name)}[/bold] [dim]({node.id})[/dim]")
    print(f"Path: {escape(' / '.join(step.name for step in path))}")
    parents = ", ".join(p.name for p in node.parents) or "none"
    print(f"Parents: {escape(parents)}")
    print(f"Children: {len(node.children)}")
    print(f"Subtree size: {count}")


@app.command("path")
def path(tag_id: int = typer.Argument(..., help="Tag ID")):
    """
    Print the root-to-tag path of a tag.
    """

    async def load():
        service = _build_service()
        await service.refresh()
        return service.graph.path_to(tag_id)

    steps = _run(load())
    if not steps:
        print(f"[red]Tag {tag_id} not found in the hierarchy[/red]")
        raise typer.Exit(code=1)
    print(" / ".join(f"{escape(step.name)} [dim]({step.id})[/dim]" for step in steps))


@app.command("ancestors")
def ancestors(tag_id: int = typer.Argument(..., help="Tag ID")):
    """List every ancestor of a tag."""
    _render_tags("Ancestors", _run(_build_service().get_ancestors(tag_id)))


@app.command("descendants")
def descendants(tag_id: int = typer.Argument(..., help="Tag ID")):
    """List every descendant of a tag."""
    _render_tags("Descendants", _run(_build_service().get_descendants(tag_id)))


@app.command("parents")
def parents(tag_id: int = typer.Argument(..., help="Tag ID")):
    """List the immediate parents of a tag."""
    _render_tags("Parents", _run(_build_service().get_parents(tag_id)))


@app.command("children")
def children(tag_id: int = typer.Argument(..., help="Tag ID")):
    """List the immediate children of a tag."""
    _render_tags("Children", _run(_build_service().get_children(tag_id)))


# ============================================================================
# Edit Commands
# ============================================================================

@app.command("add-parent")
def add_parent(
    child_id: int = typer.Argument(..., help="Child tag ID"),
    parent_id: int = typer.Argument(..., help="Parent tag ID"),
):
    """
    Make PARENT_ID a parent of CHILD_ID.

    The server rejects edges that would create a cycle or already exist.
    """
    _run(_build_service().add_parent(child_id, parent_id))
    print(f"[green]Added parent {parent_id} to tag {child_id}[/green]")


@app.command("remove-parent")
def remove_parent(
    child_id: int = typer.Argument(..., help="Child tag ID"),
    parent_id: int = typer.Argument(..., help="Parent tag ID"),
):
    """
    Remove the parent relationship CHILD_ID -> PARENT_ID.
    """
    _run(_build_service().remove_parent(child_id, parent_id))
    print(f"[green]Removed parent {parent_id} from tag {child_id}[/green]")


@app.command("create-pair")
def create_pair(
    child_name: str = typer.Argument(..., help="Child tag name"),
    parent_name: str = typer.Argument(..., help="Parent tag name"),
):
    """
    Create a child tag under a parent tag, creating either tag if missing.

    Examples:
        memtags create-pair rust languages
    """
    result = _run(_build_service().create_linked_pair(child_name, parent_name))
    print(f"[green]{escape(result.message)}[/green]")
    print(
        f"[dim]child: {escape(result.child_tag.name)} ({result.child_tag.id}), "
        f"parent: {escape(result.parent_tag.name)} ({result.parent_tag.id})[/dim]"
    )


@app.command("bulk-add-parent")
def bulk_add_parent_command(
    parent_id: int = typer.Argument(..., help="Parent tag ID"),
    child_ids: List[int] = typer.Argument(..., help="Child tag IDs"),
):
    """
    Add one parent to many tags.

    Every child is attempted even if earlier ones fail. Exits with code 1
    when any child failed.
    """

    async def run() -> BulkReport:
        service = _build_service()
        # Loaded first so failures can be reported by tag name
        await service.refresh()
        return await bulk_add_parent(service, parent_id, child_ids)

    report = _run(run())

    print(f"[green]Success: {report.succeeded}[/green]")
    print(f"[red]Failed: {len(report.failed)}[/red]")
    if report.failed:
        table = Table(title="Failures")
        table.add_column("Child ID", style="cyan")
        table.add_column("Tag", style="magenta")
        table.add_column("Error", style="red")
        for failure in report.failed:
            table.add_row(str(failure.child_id), escape(failure.label), escape(failure.message))
        print(table)
    if report.reload_error:
        print(f"[yellow]Reload failed: {escape(report.reload_error)}[/yellow]")
    if report.failed:
        raise typer.Exit(code=1)


# ============================================================================
# Config Commands
# ============================================================================

@config_app.command("set-key")
def set_key(
    key: str = typer.Argument(..., help="API key for the memory server"),
    server_url: str = typer.Option(None, "--server", "-s", help="Memory server URL (e.g., https://memory.example.com)")
):
    """
    Save the API key (and optionally the server URL) to ~/.memtags/.env.

    Examples:
        memtags config set-key mk-abc123
        memtags config set-key mk-abc123 --server https://memory.example.com
    """
    env_path = os.fspath(ENV_FILE)
    os.makedirs(os.path.dirname(env_path), exist_ok=True)

    lines = []
    if os.path.exists(env_path):
        with open(env_path, "r") as f:
            lines = f.readlines()

    lines = [l for l in lines if not l.startswith("MEMTAGS_API_KEY=")]
    lines.append(f"MEMTAGS_API_KEY={key}\n")

    if server_url:
        lines = [l for l in lines if not l.startswith("MEMTAGS_API_URL=")]
        lines.append(f"MEMTAGS_API_URL={server_url}\n")

    with open(env_path, "w") as f:
        f.writelines(lines)

    print(f"[green]API key saved to {env_path}[/green]")
    if server_url:
        print(f"[green]Server URL set to {server_url}[/green]")


@config_app.command("show")
def show_config():
    """Show the effective configuration."""
    current = Settings()
    table = Table(title="memtags configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("api_url", current.api_url)
    table.add_row("api_prefix", current.api_prefix)
    table.add_row("api_key", "set" if current.is_authenticated else "not set")
    table.add_row("timeout", str(current.timeout))
    table.add_row("max_depth", str(current.max_depth))
    print(table)


if __name__ == "__main__":
    app()
