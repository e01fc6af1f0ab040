"""Command-line interface for the clip graph."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import load_settings
from .constants import TEXT_PREVIEW_CHARS
from .engine import ClipGraph
from .errors import ClipGraphError
from .models import MemoryItem, preview

console = Console()


def _preview(text: str, width: int = TEXT_PREVIEW_CHARS) -> str:
    return escape(preview(text, width))


def _parse_embedding(raw: str | None) -> list[float] | None:
    """Parse a JSON array of numbers given on the command line."""
    if raw is None:
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="--embedding")
    if not isinstance(value, list) or not all(
        isinstance(x, (int, float)) and not isinstance(x, bool) for x in value
    ):
        raise click.BadParameter("must be a JSON array of numbers", param_hint="--embedding")
    return [float(x) for x in value]


def _dump(data) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/red] {escape(message)}")
    sys.exit(1)


@click.group()
@click.option(
    "--data-dir",
    envvar="CLIPGRAPH_PATH",
    type=click.Path(path_type=Path),
    help="Directory holding clipgraph.db",
)
@click.option("--owner", envvar="CLIPGRAPH_OWNER", help="Owner whose graph to use")
@click.option(
    "--embeddings/--no-embeddings",
    default=None,
    help="Compute embeddings for clips that arrive without one",
)
@click.option("-v", "--verbose", is_flag=True, help="Log to stderr")
@click.pass_context
def cli(ctx, data_dir, owner, embeddings, verbose):
    """Clipgraph - semantic memory graph of clipped text."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            stream=sys.stderr,
        )
    try:
        settings = load_settings(
            data_dir=data_dir, owner_id=owner, embeddings_enabled=embeddings
        )
        graph = ClipGraph.from_settings(settings)
    except ClipGraphError as e:
        _fail(str(e))

    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    ctx.obj["graph"] = graph
    ctx.obj["owner"] = settings.owner_id
    ctx.call_on_close(graph.close)


@cli.command()
@click.argument("text")
@click.option("-d", "--doc", "source_doc_id", required=True, help="Source document ID")
@click.option("-t", "--title", default=None, help="Display title")
@click.option("--provenance", default="clip", show_default=True, help="How it was captured")
@click.option("--embedding", default=None, help="Precomputed embedding as a JSON array")
@click.option("--threshold", type=float, default=None, help="Similarity threshold in (0, 1)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def clip(ctx, text, source_doc_id, title, provenance, embedding, threshold, as_json):
    """Clip TEXT from a document into the graph."""
    graph: ClipGraph = ctx.obj["graph"]
    try:
        result = graph.clip(
            owner_id=ctx.obj["owner"],
            source_doc_id=source_doc_id,
            text=text,
            provenance=provenance,
            embedding=_parse_embedding(embedding),
            title=title,
            threshold=threshold,
        )
    except ClipGraphError as e:
        _fail(str(e))

    if as_json:
        _dump(result.to_dict())
        return

    if result.deduplicated:
        console.print(f"[yellow]=[/yellow] Already clipped as [cyan]{result.item.id}[/cyan]")
        return

    console.print(f"[green]✓[/green] Clipped [cyan]{result.item.id}[/cyan]")
    if not result.has_embedding:
        console.print("[dim]   No embedding, so no connections yet[/dim]")
    for edge in result.new_edges:
        other = edge.other_end(result.item.id)
        console.print(f"   [green]+[/green] linked to {other} ({edge.weight:.2%})")


@cli.command(name="list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def list_cmd(ctx, as_json):
    """List clips, newest first."""
    items: list[MemoryItem] = ctx.obj["graph"].list_items(ctx.obj["owner"])
    if as_json:
        _dump([i.to_summary() for i in items])
        return
    if not items:
        console.print("[dim]No clips[/dim]")
        return

    table = Table(title=f"Clips for {ctx.obj['owner']}")
    table.add_column("ID", style="cyan")
    table.add_column("Doc", style="green")
    table.add_column("Text")
    table.add_column("Emb", justify="center")
    table.add_column("Created", style="dim")
    for item in items:
        table.add_row(
            item.id,
            item.source_doc_id,
            _preview(item.title or item.text),
            "✓" if item.has_embedding else "-",
            item.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def graph(ctx, as_json):
    """Show the graph: clips and their similarity edges."""
    data = ctx.obj["graph"].graph(ctx.obj["owner"])
    if as_json:
        _dump(data.model_dump(mode="json"))
        return

    console.print(f"[bold]{len(data.nodes)}[/bold] clips, [bold]{len(data.edges)}[/bold] edges")
    texts = {n.id: n.text for n in data.nodes}
    for edge in sorted(data.edges, key=lambda e: e.weight, reverse=True):
        console.print(
            f"  {edge.weight:.2%}  \"{_preview(texts[edge.source_id], 30)}\""
            f" ↔ \"{_preview(texts[edge.target_id], 30)}\""
        )


@cli.command()
@click.argument("item_id")
@click.pass_context
def delete(ctx, item_id):
    """Delete a clip and its edges."""
    try:
        ctx.obj["graph"].delete(item_id)
    except ClipGraphError as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Deleted {item_id}")


@cli.command()
@click.argument("item_id")
@click.argument("text", required=False)
@click.option("--clear", is_flag=True, help="Remove the note")
@click.pass_context
def note(ctx, item_id, text, clear):
    """Attach a note to a clip."""
    if not clear and not text:
        raise click.UsageError("Give note TEXT or --clear")
    try:
        ctx.obj["graph"].attach_note(item_id, None if clear else text)
    except ClipGraphError as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Note {'cleared' if clear else 'saved'} on {item_id}")


@cli.command()
@click.option("--threshold", type=float, default=None, help="Similarity threshold in (0, 1)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def analyze(ctx, threshold, as_json):
    """Similarity of every pair of clips (diagnostic, changes nothing)."""
    try:
        report = ctx.obj["graph"].analyze(ctx.obj["owner"], threshold)
    except ClipGraphError as e:
        _fail(str(e))

    if as_json:
        _dump(report.model_dump(mode="json"))
        return
    if not report.pairs:
        console.print("[dim]Need at least 2 embedded clips to analyze[/dim]")
        return

    table = Table(title=f"Pairwise similarity (threshold {report.threshold:.1%})")
    table.add_column("Similarity", justify="right")
    table.add_column("Clip A")
    table.add_column("Clip B")
    table.add_column("Linked", justify="center")
    for pair in report.pairs:
        table.add_row(
            f"{pair.similarity:.2%}",
            _preview(pair.source_text, 40),
            _preview(pair.target_text, 40),
            "[green]✓[/green]" if pair.connected else "[red]✗[/red]",
        )
    console.print(table)
    console.print(
        f"{report.connected_pairs}/{report.total_pairs} pairs connected; "
        f"highest {report.highest_similarity:.2%}, lowest {report.lowest_similarity:.2%}"
    )


@cli.command()
@click.option("--threshold", type=float, required=True, help="New threshold in (0, 1)")
@click.pass_context
def recalculate(ctx, threshold):
    """Rebuild all edges at a new threshold."""
    try:
        edges = ctx.obj["graph"].recalculate(ctx.obj["owner"], threshold)
    except ClipGraphError as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Rebuilt graph at {threshold}: {len(edges)} edges")


@cli.command()
@click.argument("item_id")
@click.option("--embedding", default=None, help="Embedding as a JSON array (default: compute)")
@click.option("--threshold", type=float, default=None, help="Similarity threshold in (0, 1)")
@click.pass_context
def embed(ctx, item_id, embedding, threshold):
    """Store an embedding on an existing clip and link it."""
    try:
        edges = ctx.obj["graph"].backfill_embedding(
            item_id, _parse_embedding(embedding), threshold
        )
    except ClipGraphError as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Embedded {item_id}: {len(edges)} edges")


@cli.command()
@click.pass_context
def stats(ctx):
    """Show store totals."""
    info = ctx.obj["graph"].stats()
    console.print(f"Data: {ctx.obj['settings'].db_path}")
    console.print(
        f"Items: [bold]{info['items']}[/bold], Edges: [bold]{info['edges']}[/bold]"
    )
    console.print(
        f"Threshold: {info['threshold']}, "
        f"embeddings {'on' if info['embeddings'] else 'off'}"
    )


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
