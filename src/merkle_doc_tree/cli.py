"""CLI for Merkle Doc Tree."""

import sys
from pathlib import Path
from typing import NoReturn

import click
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from . import MDT_DIR, __version__
from .config import MDTConfig, get_config_path, get_data_dir, load_config, save_config
from .errors import MerkleTreeError
from .hashing import HashAlgorithm
from .logging import setup_logging
from .proof import Proof
from .tree import DocumentTree, open_proof_store, read_document_file, read_summary_header
from .verify import ProofVerifier

console = Console()
error_console = Console(stderr=True)

EXIT_ERROR = 1
EXIT_VERIFY_FAILED = 2


def get_project_root(ctx: click.Context) -> Path:
    """Get the project root directory (--project, else the current working directory)."""
    return ctx.obj["project_root"]


def fail(message: str) -> NoReturn:
    error_console.print(f"[red]Error:[/red] {escape(message)}", highlight=False)
    sys.exit(EXIT_ERROR)


def get_config(ctx: click.Context) -> MDTConfig:
    return ctx.obj["config"]


def open_tree(ctx: click.Context) -> DocumentTree:
    return DocumentTree.open(get_project_root(ctx), get_config(ctx))


@click.group()
@click.version_option(version=__version__, prog_name="mdt")
@click.option("--verbose", "-v", is_flag=True, help="Log progress to stderr")
@click.option("--log-json", is_flag=True, help="Emit logs as JSON")
@click.option(
    "--project",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Project root (default: current directory)",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, log_json: bool, project: Path | None) -> None:
    """Merkle Doc Tree - Append-only Merkle tree over documents."""
    project_root = project or Path.cwd()
    try:
        config = load_config(project_root)
    except (ValidationError, ValueError) as e:
        fail(f"Invalid configuration: {e}")

    setup_logging("DEBUG" if verbose else config.log_level, json_output=log_json)
    ctx.ensure_object(dict)
    ctx.obj["project_root"] = project_root
    ctx.obj["config"] = config


@main.command()
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
@click.pass_context
def init(ctx: click.Context, force: bool) -> None:
    """Write a default configuration and create the data directory."""
    project_root = get_project_root(ctx)
    config_path = get_config_path(project_root)

    if config_path.exists() and not force:
        error_console.print(
            f"[yellow]Warning:[/yellow] {MDT_DIR}/ already exists. Use --force to reinitialize."
        )
        sys.exit(EXIT_ERROR)

    config = get_config(ctx)
    save_config(config, project_root)
    data_dir = get_data_dir(config, project_root)
    data_dir.mkdir(parents=True, exist_ok=True)

    console.print(
        Panel(
            f"[green]Initialized Merkle Doc Tree[/green]\n\n"
            f"Config: [dim]{config_path}[/dim]\n"
            f"Data directory: [dim]{data_dir}[/dim]\n\n"
            f"Next steps:\n"
            f"  1. Place documents as [bold]{config.doc_template.format(index=0)}[/bold], ...\n"
            f"  2. Run [bold]mdt build N[/bold] to build the tree",
            title="mdt init",
        )
    )


@main.command()
@click.argument("n", type=int)
@click.pass_context
def build(ctx: click.Context, n: int) -> None:
    """Build a new tree from documents 0..N-1."""
    try:
        tree = open_tree(ctx)
        tree.build(n)
    except MerkleTreeError as e:
        fail(str(e))
    console.print("[green]Tree computed successfully[/green]")


@main.command()
@click.argument("doc_idx", type=int)
@click.pass_context
def add(ctx: click.Context, doc_idx: int) -> None:
    """Add the next document to the tree."""
    try:
        tree = open_tree(ctx)
        tree.add_doc(doc_idx)
    except MerkleTreeError as e:
        fail(str(e))
    console.print("[green]New document added successfully[/green]")


@main.command()
@click.argument("doc_idx", type=int)
@click.pass_context
def proof(ctx: click.Context, doc_idx: int) -> None:
    """Generate an inclusion proof for a document."""
    config = get_config(ctx)
    name = config.proof_template.format(index=doc_idx)
    try:
        tree = open_tree(ctx)
        proofs = open_proof_store(get_project_root(ctx), config, name)
        tree.write_proof(doc_idx, proofs)
    except MerkleTreeError as e:
        fail(str(e))
    console.print(f"[green]Proof generated successfully[/green] [dim]({name})[/dim]")


@main.command()
@click.argument("doc_name")
@click.argument("proof_name")
@click.pass_context
def verify(ctx: click.Context, doc_name: str, proof_name: str) -> None:
    """Verify a document against a proof and the stored root."""
    project_root = get_project_root(ctx)
    config = get_config(ctx)
    try:
        header = read_summary_header(project_root, config)
        document = read_document_file(project_root, config, doc_name)
        inclusion = Proof.from_text(open_proof_store(project_root, config, proof_name).read())
        verifier = ProofVerifier(HashAlgorithm(config.hash_algorithm))
        ok = verifier.verify(header, document, inclusion)
    except MerkleTreeError as e:
        fail(str(e))

    if ok:
        console.print("[green]Proof verification passed[/green]")
    else:
        console.print("[red]Proof verification failed[/red]")
        sys.exit(EXIT_VERIFY_FAILED)


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the stored tree summary."""
    try:
        tree = open_tree(ctx)
        if tree.summaries.read() is None:
            console.print("[yellow]No tree found.[/yellow] Run [bold]mdt build N[/bold] first.")
            return
        header = tree.header()
    except MerkleTreeError as e:
        fail(str(e))

    table = Table(title="Merkle Doc Tree Status")
    table.add_column("Property", style="cyan")
    table.add_column("Value")

    table.add_row("Tree id", header.tree_id)
    table.add_row("Algorithm", header.algorithm.value)
    table.add_row("Documents", str(header.n))
    table.add_row("Height", str(header.height))
    table.add_row("Root", header.root.hex())

    console.print(table)


@main.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Compare the stored summary against the node store."""
    try:
        result = open_tree(ctx).check()
    except MerkleTreeError as e:
        fail(str(e))

    if result.ok:
        console.print("[green]Node store matches summary[/green]")
        return

    for layer, index in result.missing:
        error_console.print(f"[red]missing[/red]  {layer}:{index}")
    for layer, index in result.mismatched:
        error_console.print(f"[red]mismatch[/red] {layer}:{index}")
    sys.exit(EXIT_ERROR)


if __name__ == "__main__":
    main()
