"""
Main CLI application for generations.

Provides a Typer-based command-line interface for creating versioned
documents, applying updates and reading past generations.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import typer
import yaml
from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import PyMongoError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from ..config import get_config_manager, load_config
from ..core.errors import GenerationError, StateOutOfSync
from ..version.collection import GenerationCollection
from ..version.diff_engine import DiffEngine
from ..version.state import GenerationState

# Initialize Typer app
app = typer.Typer(
    name="generations",
    help="Diff-chain versioning for documents stored in MongoDB",
    add_completion=False,
    rich_markup_mode="rich"
)

# Global console for rich output
console = Console()

logger = logging.getLogger(__name__)

# Global state
collection: Optional[GenerationCollection] = None


def get_collection() -> GenerationCollection:
    """Get or create the generation collection instance."""
    global collection
    if collection is None:
        collection = GenerationCollection.from_config(load_config())
    return collection


def _fail(message: str) -> None:
    console.print(f"[red]Error: {message}[/red]")
    raise typer.Exit(1)


def _parse_tree(tree: str) -> ObjectId:
    try:
        return ObjectId(tree)
    except (InvalidId, TypeError):
        _fail(f"Invalid tree identifier: {tree}")


def _read_document(file_path: Path) -> Dict[str, Any]:
    """Read a JSON or YAML document from disk."""
    if not file_path.exists():
        _fail(f"File not found: {file_path}")

    try:
        with open(file_path, 'r') as f:
            if file_path.suffix.lower() in ('.yaml', '.yml'):
                document = yaml.safe_load(f)
            else:
                document = json.load(f)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        _fail(f"Could not parse {file_path}: {e}")

    if not isinstance(document, dict):
        _fail(f"{file_path} must contain a JSON object or YAML mapping")
    return document


def _load_state(tree_id: ObjectId) -> GenerationState:
    state = get_collection().find_primary_state(tree_id)
    if state is None:
        _fail(f"Tree not found: {tree_id}")
    return state


def _print_document(document: Dict[str, Any], title: str) -> None:
    rendered = json.dumps(document, indent=2, default=str)
    console.print(Panel(Syntax(rendered, "json", word_wrap=True), title=title, border_style="blue"))


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level (default: from config)"),
) -> None:
    """
    Record documents as diff chains and read them back at any generation.
    """
    level = (log_level or load_config().log_level).upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


@app.command()
def create(
    file_path: Path = typer.Argument(..., help="JSON or YAML file with the initial document"),
) -> None:
    """
    Start a new tree from a document.
    """
    document = _read_document(file_path)

    try:
        state = get_collection().insert_generation(document)
    except (GenerationError, PyMongoError) as e:
        logger.error(f"Could not create tree: {e}", exc_info=True)
        _fail(f"Could not create tree: {e}")

    console.print(f"[green]Created tree {state.tree}[/green]")
    console.print(f"State: {state.state_id}")


@app.command()
def update(
    tree: str = typer.Argument(..., help="Tree identifier"),
    file_path: Path = typer.Argument(..., help="JSON or YAML file with the update"),
    full: bool = typer.Option(False, "--full", help="Treat the file as the complete new document"),
) -> None:
    """
    Apply a partial update to a tree.

    With [cyan]--full[/cyan] the file holds the whole new document and the
    partial update is computed against the latest generation.
    """
    tree_id = _parse_tree(tree)
    document = _read_document(file_path)
    state = _load_state(tree_id)

    if full:
        engine = DiffEngine()
        document_diff = engine.diff_documents(state.cached_object, document)
        if document_diff.removed_paths:
            _fail(
                "Updates cannot remove fields: "
                + ", ".join(document_diff.removed_paths)
            )
        if not document_diff.changes:
            console.print("[yellow]No changes detected, nothing recorded[/yellow]")
            return
        document = engine.to_update(document_diff)

    try:
        diff = state.apply_update(document)
    except StateOutOfSync as e:
        logger.error(str(e))
        _fail(f"{e}\nRun [cyan]generations verify {tree_id} --repair[/cyan] to repair the tree")
    except (GenerationError, PyMongoError) as e:
        logger.error(f"Could not update tree {tree_id}: {e}", exc_info=True)
        _fail(str(e))

    console.print(f"[green]Recorded generation {diff.generation} of tree {tree_id}[/green]")


@app.command()
def show(
    tree: str = typer.Argument(..., help="Tree identifier"),
    generation: Optional[int] = typer.Option(None, "--generation", "-g", help="Generation to show (default: latest)"),
    at: Optional[str] = typer.Option(None, "--at", help="Show the document as it was at an ISO 8601 time"),
) -> None:
    """
    Show a tree at a generation or point in time.
    """
    tree_id = _parse_tree(tree)

    if generation is not None and at is not None:
        _fail("Use either --generation or --at, not both")

    state = _load_state(tree_id)

    try:
        if at is not None:
            try:
                date = datetime.fromisoformat(at)
            except ValueError:
                _fail(f"Invalid timestamp: {at}")
            document = state.reconstruct_at(date)
            title = f"Tree {tree_id} at {at}"
        else:
            target = state.last_diff if generation is None else generation
            document = state.reconstruct(target)
            title = f"Tree {tree_id} generation {target}"
    except (GenerationError, PyMongoError) as e:
        logger.error(f"Could not reconstruct tree {tree_id}: {e}", exc_info=True)
        _fail(str(e))

    _print_document(document, title)


@app.command()
def history(
    tree: str = typer.Argument(..., help="Tree identifier"),
    field_path: Optional[str] = typer.Option(None, "--field", "-f", help="Only show changes to a dotted field path"),
) -> None:
    """
    Show the diff history of a tree.
    """
    tree_id = _parse_tree(tree)
    state = _load_state(tree_id)

    try:
        if field_path:
            revisions = state.field_history(field_path)
            rows = [(r.generation, r.creation, json.dumps(r.value, default=str)) for r in revisions]
            title = f"History of {field_path}"
        else:
            diffs = state.history()
            rows = [(d.generation, d.creation, ", ".join(d.diff.keys())) for d in diffs]
            title = f"History of tree {tree_id}"
    except (GenerationError, PyMongoError) as e:
        _fail(str(e))

    if not rows:
        console.print("[yellow]No history available[/yellow]")
        return

    history_table = Table(title=title)
    history_table.add_column("Generation", style="cyan")
    history_table.add_column("Date", style="blue")
    history_table.add_column("Value" if field_path else "Fields", style="green")

    for generation, creation, detail in rows:
        marker = "→ " if generation == state.last_diff else "  "
        history_table.add_row(
            f"{marker}{generation}",
            creation.strftime("%Y-%m-%d %H:%M:%S"),
            detail,
        )

    console.print(history_table)


@app.command()
def diff(
    tree: str = typer.Argument(..., help="Tree identifier"),
    generation1: int = typer.Argument(..., help="First generation"),
    generation2: int = typer.Argument(..., help="Second generation"),
    output_format: str = typer.Option("text", "--format", help="Output format: text, json"),
) -> None:
    """
    Show differences between two generations of a tree.
    """
    tree_id = _parse_tree(tree)
    state = _load_state(tree_id)

    try:
        doc1 = state.reconstruct(generation1)
        doc2 = state.reconstruct(generation2)
    except (GenerationError, PyMongoError) as e:
        _fail(str(e))

    diff_engine = DiffEngine()
    document_diff = diff_engine.diff_documents(doc1, doc2, generation1, generation2)

    if output_format == "json":
        console.print_json(json.dumps(document_diff.to_dict(), default=str))
        return

    if output_format != "text":
        _fail(f"Unknown format: {output_format}")

    diff_text = diff_engine.generate_text_diff(doc1, doc2)
    if not diff_text.strip():
        console.print("[yellow]No differences found[/yellow]")
        return

    console.print(Panel(
        Syntax(diff_text, "diff", theme="monokai"),
        title=f"Diff: {generation1} → {generation2}",
        border_style="blue"
    ))

    summary = diff_engine.summarize_changes(document_diff)
    console.print(Panel.fit(
        f"[bold]{summary['overview']}[/bold]\n\n"
        + "\n".join(f"• {change}" for change in summary['changes']),
        title="Change Summary",
        border_style="green"
    ))


@app.command()
def verify(
    tree: str = typer.Argument(..., help="Tree identifier"),
    repair: bool = typer.Option(False, "--repair", help="Rebuild the cached document from the diff log"),
) -> None:
    """
    Check a tree's cached document against its diff log.
    """
    tree_id = _parse_tree(tree)
    state = _load_state(tree_id)

    try:
        result = state.verify()
        if result.consistent:
            console.print(f"[green]Tree {tree_id} is consistent at generation {result.last_diff}[/green]")
            return

        console.print(
            f"[yellow]Tree {tree_id} is out of sync: cached generation {result.last_diff}, "
            f"diff log at {result.chain_head}[/yellow]"
        )
        if not repair:
            raise typer.Exit(1)

        state.rebuild()
    except (GenerationError, PyMongoError) as e:
        _fail(str(e))

    console.print(f"[green]Rebuilt tree {tree_id} at generation {state.last_diff}[/green]")


@app.command()
def trees() -> None:
    """
    List all trees in the collection.
    """
    try:
        tree_ids = get_collection().list_trees()
    except PyMongoError as e:
        _fail(str(e))

    if not tree_ids:
        console.print("[yellow]No trees found[/yellow]")
        return

    for tree_id in tree_ids:
        console.print(str(tree_id))


@app.command()
def config(
    show: bool = typer.Option(False, "--show", help="Show current configuration"),
    create_default: bool = typer.Option(False, "--create-default", help="Create default config file"),
) -> None:
    """
    Manage generations configuration.
    """
    config_manager = get_config_manager()

    if create_default:
        path = config_manager.create_default_config()
        console.print(f"[green]Created default configuration at {path}[/green]")
        return

    if show:
        config_info = config_manager.get_config_info()
        current_config = load_config()

        config_display = f"""[bold]generations Configuration[/bold]

[bold cyan]Database:[/bold cyan]
• MongoDB URL: {current_config.mongo_url}
• Database: {current_config.database}
• Bucket: {current_config.bucket}

[bold yellow]Replay:[/bold yellow]
• Batch Size: {current_config.batch_size}
• Max Merge Depth: {current_config.max_merge_depth}

[bold green]Writes:[/bold green]
• Transactions: {'Yes' if current_config.use_transactions else 'No'}
• Ensure Indexes: {'Yes' if current_config.ensure_indexes else 'No'}

[bold magenta]Files:[/bold magenta]
• Config File: {config_info['config_file']}
• Exists: {'Yes' if config_info['config_exists'] else 'No'}"""

        console.print(Panel(config_display, border_style="green"))
        return

    console.print("Use [cyan]generations config --show[/cyan] to see full configuration")
    console.print("Use [cyan]generations config --create-default[/cyan] to create a default config file")


if __name__ == "__main__":
    app()
