import json
import logging
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich import print
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from zamm import __version__
from zamm.config import get_settings, write_data_redirect
from zamm.errors import ZammError
from zamm.models.node import NodeBase, NodeType
from zamm.services.browser import NodeBrowser
from zamm.services.link_service import LinkService, abbreviate_commit_label
from zamm.services.llm import AnthropicSlugSuggester, suggest_or_sanitize
from zamm.services.node_service import NodeService
from zamm.services.organizer import PathOrganizer
from zamm.services.rendering import ChildGroupRenderer, render_view
from zamm.services.storage import METADATA_FILE, FileStorage

logger = logging.getLogger(__name__)

APP_HELP = """
zamm: a tree of documentation nodes kept as Markdown files.

Nodes are specifications, projects or implementations. Link them into a
hierarchy, reference the git commits that implement them, and run
`zamm organize` to lay their files out under documentation/ following
the hierarchy.
"""

app = typer.Typer(name="zamm", help=APP_HELP, no_args_is_help=True)
node_app = typer.Typer(name="node", help="Create, inspect and edit nodes.")
link_app = typer.Typer(name="link", help="Manage parent/child links between nodes.")
commit_app = typer.Typer(name="commit", help="Manage links from nodes to git commits.")
slug_app = typer.Typer(name="slug", help="Assign and suggest path slugs.")
app.add_typer(node_app, name="node")
app.add_typer(link_app, name="link")
app.add_typer(commit_app, name="commit")
app.add_typer(slug_app, name="slug")


class _Services:
    def __init__(self) -> None:
        self.settings = get_settings()
        self.storage = FileStorage(self.settings)
        self.nodes = NodeService(self.storage)
        self.links = LinkService(self.storage)
        self.organizer = PathOrganizer(self.nodes, self.settings)
        self.browser = NodeBrowser(self.nodes, self.links, self.settings)


def _services() -> _Services:
    try:
        return _Services()
    except ZammError as exc:
        _fail(exc)


def _fail(exc: ZammError) -> None:
    print(f"[red]Error ({exc.error_type}): {escape(str(exc))}[/red]")
    raise typer.Exit(code=1)


class RichTreeRenderer(ChildGroupRenderer):
    """Builds a rich Tree from a grouped child view."""

    def __init__(self, tree: Tree) -> None:
        self.stack = [tree]

    def render_group_start(self, depth: int, label: str) -> None:
        self.stack.append(self.stack[-1].add(f"[bold]{escape(label)}[/bold]"))

    def render_group_end(self, depth: int) -> None:
        self.stack.pop()

    def render_node(self, depth: int, node: NodeBase) -> None:
        self.stack[-1].add(f"{escape(node.title)} [dim]({node.type}, {node.id})[/dim]")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")):
    try:
        settings = get_settings()
    except ZammError as exc:
        _fail(exc)
    except ValueError as exc:
        print(f"[red]Invalid configuration: {escape(str(exc))}[/red]")
        raise typer.Exit(code=1)
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level, logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@app.command()
def init():
    """
    Initialize storage and the root project node.
    """
    services = _services()
    try:
        root = services.nodes.initialize_root()
    except ZammError as exc:
        _fail(exc)
    print(f"[green]Storage ready at {services.settings.storage_path}[/green]")
    print(f"Root node: {escape(root.title)} [dim]({root.id})[/dim]")


@app.command()
def status(json_output: bool = typer.Option(False, "--json", help="Output as JSON")):
    """
    Show the storage location, node count and root node.
    """
    settings = get_settings()
    info = {
        "storage_path": str(settings.storage_path),
        "initialized": (settings.storage_path / METADATA_FILE).exists(),
        "node_count": 0,
        "root_id": None,
    }
    if info["initialized"]:
        services = _services()
        try:
            info["node_count"] = len(services.nodes.list_nodes())
            info["root_id"] = services.nodes.root_id()
        except ZammError as exc:
            _fail(exc)

    if json_output:
        typer.echo(json.dumps(info, indent=2))
        return
    print(f"Storage: {info['storage_path']}")
    if not info["initialized"]:
        print("[yellow]Not initialized, run `zamm init`[/yellow]")
        return
    print(f"Nodes: {info['node_count']}")
    print(f"Root: {info['root_id'] or '[dim]not set[/dim]'}")


@app.command()
def version():
    """
    Print the zamm version.
    """
    typer.echo(f"zamm {__version__}")


@app.command()
def redirect(directory: Path = typer.Argument(..., help="Directory to keep storage in")):
    """
    Keep this project's storage in another directory.

    Writes a data-redirect entry to .zamm/local-metadata.json in the current
    directory.
    """
    try:
        metadata_path = write_data_redirect(Path.cwd(), directory)
    except ZammError as exc:
        _fail(exc)
    print(f"[green]Storage redirected to {directory} ({metadata_path})[/green]")


@app.command()
def recache():
    """
    Track node files in .zamm/nodes/ that node-files.csv is missing.
    """
    services = _services()
    try:
        added = services.storage.recache()
    except ZammError as exc:
        _fail(exc)
    for node_id, path in added:
        print(f"{node_id}  {path}")
    print(f"[green]Recached {len(added)} node files[/green]")


# ============================================================================
# Node Commands
# ============================================================================

@node_app.command("create")
def node_create(
    title: str = typer.Argument(..., help="Node title"),
    content: str = typer.Option(..., "--content", "-c", help="Markdown content"),
    node_type: NodeType = typer.Option(NodeType.SPECIFICATION, "--type", "-t", help="Node kind"),
    parent: Optional[str] = typer.Option(None, "--parent", "-p", help="Parent node ID"),
    slug: Optional[str] = typer.Option(None, "--slug", help="Explicit slug"),
    repo_url: Optional[str] = typer.Option(None, "--repo-url", help="Implementation repository URL"),
    branch: Optional[str] = typer.Option(None, "--branch", help="Implementation branch"),
    folder_path: Optional[str] = typer.Option(None, "--folder", help="Implementation folder path"),
):
    """
    Create a node, optionally linking it under a parent.
    """
    services = _services()
    fields = {
        key: value
        for key, value in {"repo_url": repo_url, "branch": branch, "folder_path": folder_path}.items()
        if value is not None
    }
    try:
        node = services.nodes.create_node(node_type, title, content, slug=slug, **fields)
        if parent:
            services.nodes.add_child(child_id=node.id, parent_id=parent)
    except ZammError as exc:
        _fail(exc)
    print(f"[green]Created {node.type} {node.id}[/green]")


@node_app.command("show")
def node_show(node_id: str = typer.Argument(..., help="Node ID")):
    """
    Show a node with its commits and grouped children.
    """
    services = _services()
    try:
        node = services.browser.get_node_by_id(node_id)
        commits = services.browser.get_commits_for_node(node_id)
        parent = services.browser.get_parent_node(node_id)
        view = services.browser.get_organized_children(node_id)
    except ZammError as exc:
        _fail(exc)

    print(f"[bold]{escape(node.title)}[/bold] [dim]({node.type}, {node.id})[/dim]")
    print(f"slug: {node.slug!r}  parent: {parent.id if parent else '-'}")
    print(f"path: {services.storage.relative_node_path(node.id)}")
    print()
    print(escape(node.content))
    print()

    if commits:
        table = Table("Label", "Commit", "Repository")
        for link in commits:
            table.add_row(abbreviate_commit_label(link.label), link.commit_hash, link.repo_path)
        print(table)
    else:
        print("[dim]No linked commits[/dim]")

    if view.is_empty():
        print("[dim]No children[/dim]")
        return
    tree = Tree("Children")
    render_view(view, RichTreeRenderer(tree))
    print(tree)


@node_app.command("list")
def node_list(json_output: bool = typer.Option(False, "--json", help="Output as JSON")):
    """
    List every node.
    """
    services = _services()
    nodes = services.nodes.list_nodes()
    if json_output:
        typer.echo(json.dumps([node.model_dump(mode="json") for node in nodes], indent=2))
        return
    table = Table("ID", "Type", "Slug", "Title")
    for node in nodes:
        table.add_row(node.id, node.type, "" if node.slug is None else node.slug, escape(node.title))
    print(table)


@node_app.command("update")
def node_update(
    node_id: str = typer.Argument(..., help="Node ID"),
    title: Optional[str] = typer.Option(None, "--title", help="New title"),
    content: Optional[str] = typer.Option(None, "--content", "-c", help="New content"),
):
    """
    Update a node's title or content.
    """
    services = _services()
    try:
        services.nodes.update_node(node_id, title=title, content=content)
    except ZammError as exc:
        _fail(exc)
    print(f"[green]Updated {node_id}[/green]")


@node_app.command("delete")
def node_delete(
    node_id: str = typer.Argument(..., help="Node ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """
    Delete a node and every link that references it.
    """
    if not yes:
        typer.confirm(f"Delete node {node_id}?", abort=True)
    services = _services()
    try:
        services.nodes.delete_node(node_id)
    except ZammError as exc:
        _fail(exc)
    print(f"[green]Deleted {node_id}[/green]")


@node_app.command("orphans")
def node_orphans():
    """
    List non-root nodes without a parent.
    """
    services = _services()
    for node in services.nodes.get_orphans():
        print(f"{node.id}  {escape(node.title)}")


@node_app.command("groups")
def node_groups(
    node_id: str = typer.Argument(..., help="Node ID"),
    groups_yaml: Optional[str] = typer.Argument(
        None, help="YAML mapping of label to child IDs; omit to clear"
    ),
):
    """
    Set the explicit child grouping of a node.

    Example:
        zamm node groups <id> '{"Core": ["<child-1>", "<child-2>"]}'
    """
    services = _services()
    try:
        groups = yaml.safe_load(groups_yaml) if groups_yaml else None
    except yaml.YAMLError as exc:
        print(f"[red]Invalid YAML: {escape(str(exc))}[/red]")
        raise typer.Exit(code=1)
    try:
        services.nodes.set_child_groups(node_id, groups)
    except ZammError as exc:
        _fail(exc)
    print(f"[green]Updated groups for {node_id}[/green]")


# ============================================================================
# Link Commands
# ============================================================================

@link_app.command("add")
def link_add(
    child_id: str = typer.Option(..., "--child", help="Child node ID"),
    parent_id: str = typer.Option(..., "--parent", help="Parent node ID"),
    label: str = typer.Option("child", "--label", help="Link label"),
):
    """
    Link a child node under a parent.
    """
    services = _services()
    try:
        services.nodes.add_child(child_id=child_id, parent_id=parent_id, label=label)
    except ZammError as exc:
        _fail(exc)
    print(f"[green]Linked {child_id} under {parent_id}[/green]")


@link_app.command("remove")
def link_remove(
    child_id: str = typer.Option(..., "--child", help="Child node ID"),
    parent_id: str = typer.Option(..., "--parent", help="Parent node ID"),
):
    """
    Remove the link between a child and its parent.
    """
    services = _services()
    try:
        services.nodes.remove_child(child_id=child_id, parent_id=parent_id)
    except ZammError as exc:
        _fail(exc)
    print(f"[green]Unlinked {child_id} from {parent_id}[/green]")


# ============================================================================
# Commit Commands
# ============================================================================

@commit_app.command("link")
def commit_link(
    node_id: str = typer.Argument(..., help="Node ID"),
    commit_hash: str = typer.Argument(..., help="Commit hash"),
    repo_path: str = typer.Option(".", "--repo", help="Repository path"),
    label: str = typer.Option("implements", "--label", help="implements, fixes, updates, ..."),
):
    """
    Reference a git commit from a node.
    """
    services = _services()
    try:
        services.links.link_commit(node_id, commit_hash, repo_path, label)
    except ZammError as exc:
        _fail(exc)
    print(f"[green]Linked {node_id} to {commit_hash}[/green]")


@commit_app.command("unlink")
def commit_unlink(
    node_id: str = typer.Argument(..., help="Node ID"),
    commit_hash: str = typer.Argument(..., help="Commit hash"),
    repo_path: str = typer.Option(".", "--repo", help="Repository path"),
):
    """
    Remove a commit reference.
    """
    services = _services()
    try:
        services.links.unlink_commit(node_id, commit_hash, repo_path)
    except ZammError as exc:
        _fail(exc)
    print(f"[green]Unlinked {commit_hash} from {node_id}[/green]")


@commit_app.command("list")
def commit_list(node_id: str = typer.Argument(..., help="Node ID")):
    """
    List commits referenced by a node.
    """
    services = _services()
    try:
        commits = services.links.get_commits_for_node(node_id)
    except ZammError as exc:
        _fail(exc)
    for link in commits:
        print(f"{abbreviate_commit_label(link.label):7} {link.commit_hash}  {link.repo_path}")


@commit_app.command("list-by-commit")
@link_app.command("list-by-commit")
def commit_list_by_commit(
    commit_hash: str = typer.Argument(..., help="Commit hash"),
    repo_path: str = typer.Option(".", "--repo", help="Repository path"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    List nodes that reference a commit.
    """
    services = _services()
    try:
        nodes = services.links.get_nodes_for_commit(commit_hash, repo_path)
    except ZammError as exc:
        _fail(exc)
    if json_output:
        typer.echo(json.dumps([node.model_dump(mode="json") for node in nodes], indent=2))
        return
    if not nodes:
        print(f"[yellow]No nodes reference {commit_hash}[/yellow]")
        return
    for node in nodes:
        print(f"{node.id}  {escape(node.title)} [dim]({node.type})[/dim]")


# ============================================================================
# Slug Commands
# ============================================================================

@slug_app.command("set")
def slug_set(
    node_id: str = typer.Argument(..., help="Node ID"),
    slug: str = typer.Argument(..., help="New slug"),
):
    """
    Explicitly set a node's slug.
    """
    services = _services()
    try:
        services.nodes.set_slug(node_id, slug)
    except ZammError as exc:
        _fail(exc)
    print(f"[green]Slug for {node_id} set to {slug!r}[/green]")


@slug_app.command("suggest")
def slug_suggest(
    node_id: str = typer.Argument(..., help="Node ID"),
    apply: bool = typer.Option(False, "--apply", help="Assign the suggestion if the node has no slug"),
):
    """
    Suggest a slug for a node, using the LLM for long titles when configured.
    """
    services = _services()
    try:
        node = services.nodes.get_node(node_id)
    except ZammError as exc:
        _fail(exc)
    suggester = AnthropicSlugSuggester(services.settings) if services.settings.is_llm_configured else None
    suggestion = suggest_or_sanitize(node.title, suggester)
    print(suggestion)
    if apply:
        try:
            services.nodes.ensure_slug(node_id, suggested=suggestion)
        except ZammError as exc:
            _fail(exc)


# ============================================================================
# Organize / Tree
# ============================================================================

@app.command()
def organize(
    node_id: Optional[str] = typer.Argument(None, help="Organize only this node"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Move node files into documentation/ following the node hierarchy.

    Missing slugs are generated from titles. The root becomes
    documentation/index.md; nodes with children become directories with an
    index.md; leaves become <slug>.md files. node-files.csv is updated with
    the new paths.
    """
    services = _services()
    try:
        report = services.organizer.organize(node_id)
    except ZammError as exc:
        _fail(exc)

    if json_output:
        result = {
            "success": report.ok,
            "paths": report.paths(),
            "failed": {failed_id: str(error) for failed_id, error in report.failed},
            "skipped": report.skipped,
        }
        typer.echo(json.dumps(result, indent=2))
    else:
        moved = sum(1 for result in report.moved if result.moved)
        print(f"[green]Organized {len(report.moved)} nodes ({moved} moved)[/green]")
        for failed_id, error in report.failed:
            print(f"[red]{failed_id}: {escape(str(error))}[/red]")
        if report.skipped:
            print(f"[yellow]Skipped {len(report.skipped)} descendants of failed nodes[/yellow]")
    if not report.ok:
        raise typer.Exit(code=1)


@app.command()
def tree(node_id: Optional[str] = typer.Argument(None, help="Start node (default: root)")):
    """
    Print the node hierarchy with children grouped for display.
    """
    services = _services()
    try:
        start = services.browser.get_node_by_id(node_id) if node_id else services.browser.get_root_node()
        root = Tree(f"[bold]{escape(start.title)}[/bold]")
        _add_subtree(services, start, root, set())
    except ZammError as exc:
        _fail(exc)
    print(root)


def _add_subtree(services: _Services, node: NodeBase, branch: Tree, seen: set) -> None:
    seen.add(node.id)
    view = services.browser.get_organized_children(node.id)
    renderer = _RecursiveTreeRenderer(services, branch, seen)
    render_view(view, renderer)


class _RecursiveTreeRenderer(RichTreeRenderer):
    def __init__(self, services: _Services, tree: Tree, seen: set) -> None:
        super().__init__(tree)
        self.services = services
        self.seen = seen

    def render_node(self, depth: int, node: NodeBase) -> None:
        branch = self.stack[-1].add(escape(node.title))
        if node.id not in self.seen:
            _add_subtree(self.services, node, branch, self.seen)


if __name__ == "__main__":
    app()
