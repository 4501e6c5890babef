"""
VHDForge CLI Main Entry Point.

Provides the command-line interface for managing a native-boot VHDX workspace.
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import click
import humanize
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from vhdforge import __version__
from vhdforge.core.config import VhdForgeConfig, load_config
from vhdforge.core.errors import VhdForgeError
from vhdforge.core.models import Node, NodeStatus
from vhdforge.core.session import Workspace

console = Console()

STATUS_STYLES = {
    NodeStatus.NORMAL: "green",
    NodeStatus.MISSING_FILE: "red",
    NodeStatus.MISSING_PARENT: "red",
    NodeStatus.MISSING_BCD: "yellow",
    NodeStatus.MOUNTED: "blue",
    NodeStatus.ERROR: "red",
}


def get_workspace(ctx: click.Context) -> Workspace:
    """Get or open the workspace from context."""
    if "workspace" not in ctx.obj:
        ctx.obj["workspace"] = Workspace(config=ctx.obj["config"], root=ctx.obj.get("root"))
        ctx.call_on_close(ctx.obj["workspace"].close)
    return ctx.obj["workspace"]


def echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def fail(message: str) -> None:
    console.print(f"[red]Error: {escape(message)}[/red]")
    sys.exit(1)


def confirm_destructive(ctx: click.Context, message: str, yes: bool) -> None:
    """Ask before a destructive step unless --yes was given or prompts are off."""
    config: VhdForgeConfig = ctx.obj["config"]
    if yes or not config.safety.confirm_destructive:
        return
    if not click.confirm(message, default=False):
        console.print("[yellow]Aborted[/yellow]")
        sys.exit(1)


def _age(timestamp: datetime) -> str:
    return humanize.naturaltime(datetime.now(timezone.utc) - timestamp)


def _file_size(path: str) -> str:
    try:
        return humanize.naturalsize(Path(path).stat().st_size, binary=True)
    except OSError:
        return "-"


def _status_text(status: NodeStatus) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status.value}[/{style}]"


def _node_label(node: Node) -> str:
    boot = node.bcd_guid or "no boot entry"
    return f"[cyan]{node.name}[/cyan] [dim]{node.id[:8]}[/dim] {_status_text(node.status)} [dim]{boot}[/dim]"


def render_tree(nodes: list[Node]) -> Tree:
    """Render the node forest, roots first, children under their parents."""
    ids = {node.id for node in nodes}
    children: dict[str | None, list[Node]] = {}
    for node in nodes:
        # Dangling parents are shown as roots
        parent = node.parent_id if node.parent_id in ids else None
        children.setdefault(parent, []).append(node)

    tree = Tree("[bold]Workspace[/bold]")
    stack: list[tuple[Tree, str | None]] = [(tree, None)]
    seen: set[str] = set()
    while stack:
        branch, parent_id = stack.pop()
        for node in sorted(children.get(parent_id, []), key=lambda n: n.created_at):
            if node.id in seen:
                continue
            seen.add(node.id)
            stack.append((branch.add(_node_label(node)), node.id))
    return tree


def render_node(node: Node) -> Panel:
    return Panel(
        f"""[cyan]ID:[/cyan] {node.id}
[cyan]Name:[/cyan] {node.name}
[cyan]Path:[/cyan] {node.path}
[cyan]Size:[/cyan] {_file_size(node.path)}
[cyan]Parent:[/cyan] {node.parent_id or "(base disk)"}
[cyan]Boot entry:[/cyan] {node.bcd_guid or "(none)"}
[cyan]Description:[/cyan] {node.desc or "(none)"}
[cyan]Status:[/cyan] {_status_text(node.status)}
[cyan]Created:[/cyan] {node.created_at.isoformat()} ({_age(node.created_at)})""",
        title="Node",
    )


class WorkspaceGroup(click.Group):
    """Reports workspace errors as a one-line message and exit status 1."""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except VhdForgeError as e:
            fail(str(e))


@click.group(cls=WorkspaceGroup)
@click.version_option(version=__version__, prog_name="VHDForge")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option(
    "--root",
    "-r",
    type=click.Path(file_okay=False, path_type=Path),
    help="Workspace root (overrides workspace.root from the config)",
)
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path | None,
    root: Path | None,
    json_output: bool,
) -> None:
    """
    VHDForge - Native-boot virtual disk workspace manager.

    Creates base and differencing disks, registers them with the boot
    manager and keeps the disk tree in sync with storage.
    """
    ctx.ensure_object(dict)

    if config:
        ctx.obj["config"] = VhdForgeConfig.load(config)
    else:
        ctx.obj["config"] = load_config()

    ctx.obj["root"] = root
    ctx.obj["json_output"] = json_output


@cli.command("scan")
@click.pass_context
def scan(ctx: click.Context) -> None:
    """Discover disks on storage and reconcile the node tree."""
    workspace = get_workspace(ctx)

    with console.status("Scanning workspace..."):
        report = workspace.reconciler.scan_report()

    if ctx.obj["json_output"]:
        echo_json(report.to_dict())
        return

    console.print(render_tree(report.nodes))
    console.print(
        f"[green]✓[/green] {len(report.discovered_paths)} disk file(s), "
        f"{len(report.inserted)} imported, {len(report.relinked)} relinked, "
        f"{len(report.rebound)} boot entries rebound, "
        f"{len(report.status_changes)} status change(s)"
    )
    by_id = {node.id: node for node in report.nodes}
    for node_id, (old, new) in report.status_changes.items():
        name = by_id[node_id].name if node_id in by_id else node_id
        console.print(f"  {name}: {old.value} → {_status_text(new)}")
    for failure in report.failures:
        console.print(f"[yellow]⚠ {escape(failure)}[/yellow]")


@cli.command("list")
@click.pass_context
def list_nodes(ctx: click.Context) -> None:
    """List the stored node tree without querying any tools."""
    workspace = get_workspace(ctx)
    nodes = workspace.reconciler.list_nodes()

    if ctx.obj["json_output"]:
        echo_json([node.to_dict() for node in nodes])
        return

    if not nodes:
        console.print("[dim]No disks in workspace. Run 'vhdforge scan' or create a base disk.[/dim]")
        return

    table = Table(title=f"Disks in {workspace.paths.root}")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Parent", style="dim")
    table.add_column("Size", style="green")
    table.add_column("Status")
    table.add_column("Boot Entry", style="magenta")
    table.add_column("Created", style="white")

    for node in nodes:
        table.add_row(
            node.id[:8],
            node.name,
            node.parent_id[:8] if node.parent_id else "",
            _file_size(node.path),
            _status_text(node.status),
            node.bcd_guid or "",
            _age(node.created_at),
        )

    console.print(table)


@cli.command("images")
@click.argument("image_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def list_images(ctx: click.Context, image_file: Path) -> None:
    """List the images contained in a WIM/ESD file."""
    workspace = get_workspace(ctx)

    with console.status("Reading image file..."):
        images = workspace.reconciler.list_wim_images(image_file)

    if ctx.obj["json_output"]:
        echo_json([image.to_dict() for image in images])
        return

    table = Table(title=f"Images in {image_file.name}")
    table.add_column("Index", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Description", style="dim")
    table.add_column("Size", style="green")

    for image in images:
        table.add_row(
            str(image.index),
            image.name,
            image.description or "",
            humanize.naturalsize(image.size_bytes, binary=True) if image.size_bytes else (image.size or ""),
        )

    console.print(table)


@cli.command("create-base")
@click.option("--name", "-n", required=True, help="Display name of the new disk")
@click.option("--desc", "-d", default=None, help="Free-text description")
@click.option(
    "--image",
    "-i",
    "image_file",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="WIM/ESD file to deploy",
)
@click.option("--index", "image_index", type=click.IntRange(min=1), default=1, help="Image index")
@click.option("--size-gb", type=click.IntRange(min=1), default=64, help="Maximum disk size in GiB")
@click.pass_context
def create_base(
    ctx: click.Context,
    name: str,
    desc: str | None,
    image_file: Path,
    image_index: int,
    size_gb: int,
) -> None:
    """Create a base disk, deploy an image onto it and make it bootable."""
    workspace = get_workspace(ctx)

    with console.status(f"Creating base disk '{name}'..."):
        node = workspace.reconciler.create_base(name, desc, image_file, image_index, size_gb)

    if ctx.obj["json_output"]:
        echo_json(node.to_dict())
        return

    console.print("[green]✓ Base disk created[/green]")
    console.print(render_node(node))
    if node.bcd_guid is None:
        console.print("[yellow]⚠ No boot entry was matched; run 'vhdforge repair-bcd' later[/yellow]")


@cli.command("create-diff")
@click.argument("parent_id")
@click.option("--name", "-n", required=True, help="Display name of the new disk")
@click.option("--desc", "-d", default=None, help="Free-text description")
@click.pass_context
def create_diff(ctx: click.Context, parent_id: str, name: str, desc: str | None) -> None:
    """Create a differencing disk on top of PARENT_ID."""
    workspace = get_workspace(ctx)

    with console.status(f"Creating differencing disk '{name}'..."):
        node = workspace.reconciler.create_diff(parent_id, name, desc)

    if ctx.obj["json_output"]:
        echo_json(node.to_dict())
        return

    console.print("[green]✓ Differencing disk created[/green]")
    console.print(render_node(node))


@cli.command("boot")
@click.argument("node_id")
@click.option("--no-reboot", is_flag=True, help="Set the boot sequence without restarting")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def boot(ctx: click.Context, node_id: str, no_reboot: bool, yes: bool) -> None:
    """Boot into NODE_ID on the next restart (and restart now)."""
    workspace = get_workspace(ctx)
    if not no_reboot:
        confirm_destructive(ctx, "This will restart the computer immediately. Continue?", yes)

    guid = workspace.reconciler.set_bootsequence_and_reboot(node_id, reboot=not no_reboot)

    if ctx.obj["json_output"]:
        echo_json({"node_id": node_id, "bcd_guid": guid, "reboot": not no_reboot})
        return

    console.print(f"[green]✓ Next boot set to {guid}[/green]")


@cli.command("delete")
@click.argument("node_id")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def delete(ctx: click.Context, node_id: str, yes: bool) -> None:
    """Delete NODE_ID and every disk derived from it."""
    workspace = get_workspace(ctx)
    confirm_destructive(
        ctx,
        f"Delete {node_id} and all of its children, their boot entries and disk files?",
        yes,
    )

    report = workspace.reconciler.delete_subtree(node_id)

    if ctx.obj["json_output"]:
        echo_json(report.to_dict())
        return

    console.print(f"[green]✓ Deleted {len(report.deleted)} node(s)[/green]")
    for failure in report.failures:
        console.print(f"[yellow]⚠ {escape(failure)}[/yellow]")


@cli.command("delete-bcd")
@click.argument("node_id")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def delete_bcd(ctx: click.Context, node_id: str, yes: bool) -> None:
    """Remove the boot entry of NODE_ID (the disk is kept)."""
    workspace = get_workspace(ctx)
    confirm_destructive(ctx, f"Delete the boot entry of {node_id}?", yes)

    workspace.reconciler.delete_bcd(node_id)

    if ctx.obj["json_output"]:
        echo_json({"node_id": node_id, "bcd_guid": None})
        return

    console.print("[green]✓ Boot entry removed[/green]")


@cli.command("add-bcd")
@click.argument("node_id")
@click.option("--description", "-d", default=None, help="Boot menu text for the entry")
@click.pass_context
def add_bcd(ctx: click.Context, node_id: str, description: str | None) -> None:
    """Register a boot entry for NODE_ID."""
    workspace = get_workspace(ctx)

    with console.status("Installing boot files..."):
        guid = workspace.reconciler.add_bcd_entry(node_id, description)

    _print_guid(ctx, node_id, guid)


@cli.command("repair-bcd")
@click.argument("node_id")
@click.pass_context
def repair_bcd(ctx: click.Context, node_id: str) -> None:
    """Re-create a lost boot entry for NODE_ID."""
    workspace = get_workspace(ctx)

    with console.status("Repairing boot entry..."):
        guid = workspace.reconciler.repair_bcd(node_id)

    _print_guid(ctx, node_id, guid)


def _print_guid(ctx: click.Context, node_id: str, guid: str | None) -> None:
    if ctx.obj["json_output"]:
        echo_json({"node_id": node_id, "bcd_guid": guid})
        return
    if guid:
        console.print(f"[green]✓ Boot entry {guid}[/green]")
    else:
        console.print("[yellow]⚠ Boot files installed but no matching boot entry was found[/yellow]")


@cli.command("describe")
@click.argument("node_id")
@click.argument("text")
@click.pass_context
def describe(ctx: click.Context, node_id: str, text: str) -> None:
    """Set the boot menu text of NODE_ID."""
    workspace = get_workspace(ctx)
    node = workspace.reconciler.update_bcd_description(node_id, text)

    if ctx.obj["json_output"]:
        echo_json(node.to_dict())
        return

    console.print("[green]✓ Description updated[/green]")


@cli.command("history")
@click.argument("node_id", required=False)
@click.option("--limit", type=click.IntRange(min=1), default=50, help="Maximum records to show")
@click.pass_context
def history(ctx: click.Context, node_id: str | None, limit: int) -> None:
    """Show the operation log, optionally for one node."""
    workspace = get_workspace(ctx)
    records = workspace.reconciler.history(node_id)[:limit]

    if ctx.obj["json_output"]:
        echo_json([record.to_dict() for record in records])
        return

    table = Table(title="Operation History")
    table.add_column("When", style="white")
    table.add_column("Action", style="cyan")
    table.add_column("Result")
    table.add_column("Node", style="dim")
    table.add_column("Detail", style="dim")

    for record in records:
        result_style = "green" if record.success else ("yellow" if record.result == "partial" else "red")
        table.add_row(
            _age(record.timestamp),
            record.action,
            f"[{result_style}]{record.result}[/{result_style}]",
            record.node_id[:8] if record.node_id else "",
            record.detail[:60],
        )

    console.print(table)


def main() -> None:
    """Main entry point."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled[/yellow]")
        sys.exit(130)
    except Exception as e:
        fail(str(e))


if __name__ == "__main__":
    main()
