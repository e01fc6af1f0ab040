"""MCP server exposing the clip graph as tools."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
import traceback

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from .config import Settings, load_settings
from .constants import DEFAULT_PROVENANCE
from .engine import ClipGraph
from .errors import ClipGraphError

logger = logging.getLogger("clipgraph")

_EMBEDDING_SCHEMA = {
    "type": "array",
    "items": {"type": "number"},
    "description": "Precomputed embedding. Omit to let the server compute one.",
}
_THRESHOLD_SCHEMA = {
    "type": "number",
    "exclusiveMinimum": 0,
    "exclusiveMaximum": 1,
    "description": "Similarity threshold; pairs strictly above it are linked",
}
_OWNER_SCHEMA = {"type": "string", "description": "Owner ID (default: server's owner)"}


TOOLS = [
    Tool(
        name="clip_text",
        description=(
            "Clip text from a document into the memory graph. "
            "Links it to every existing clip whose embedding similarity exceeds the threshold. "
            "Re-clipping the same text from the same document returns the existing clip."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "owner_id": _OWNER_SCHEMA,
                "source_doc_id": {"type": "string", "description": "Document the text came from"},
                "text": {"type": "string", "description": "Clipped text"},
                "title": {"type": "string", "description": "Optional display title"},
                "provenance": {
                    "type": "string",
                    "description": "How it was captured (default 'clip')",
                },
                "embedding": _EMBEDDING_SCHEMA,
                "threshold": _THRESHOLD_SCHEMA,
            },
            "required": ["source_doc_id", "text"],
        },
    ),
    Tool(
        name="list_items",
        description="List clips, newest first (summaries, no embeddings)",
        inputSchema={"type": "object", "properties": {"owner_id": _OWNER_SCHEMA}},
    ),
    Tool(
        name="get_graph",
        description="Read the memory graph: nodes and similarity edges",
        inputSchema={"type": "object", "properties": {"owner_id": _OWNER_SCHEMA}},
    ),
    Tool(
        name="delete_item",
        description="Delete a clip (cascades to its edges)",
        inputSchema={
            "type": "object",
            "properties": {"id": {"type": "string", "description": "Clip ID"}},
            "required": ["id"],
        },
    ),
    Tool(
        name="attach_note",
        description="Attach a note to a clip; pass an empty note to clear it",
        inputSchema={
            "type": "object",
            "properties": {
                "id": {"type": "string", "description": "Clip ID"},
                "note": {"type": "string"},
            },
            "required": ["id", "note"],
        },
    ),
    Tool(
        name="analyze_pairs",
        description=(
            "Diagnostic: similarity of every pair of clips, highest first, "
            "marked connected when above the threshold. Changes nothing."
        ),
        inputSchema={
            "type": "object",
            "properties": {"owner_id": _OWNER_SCHEMA, "threshold": _THRESHOLD_SCHEMA},
        },
    ),
    Tool(
        name="recalculate_edges",
        description="Rebuild every edge from scratch at a new threshold",
        inputSchema={
            "type": "object",
            "properties": {"owner_id": _OWNER_SCHEMA, "threshold": _THRESHOLD_SCHEMA},
            "required": ["threshold"],
        },
    ),
]


def dispatch(graph: ClipGraph, default_owner: str, name: str, arguments: dict) -> dict | list:
    """Run one tool call and return its JSON-serializable result.

    Raises:
        ClipGraphError: Validation, not-found or persistence failures.
        KeyError: If a required argument is missing.
        ValueError: If the tool name is unknown.
    """
    owner = arguments.get("owner_id") or default_owner

    if name == "clip_text":
        result = graph.clip(
            owner_id=owner,
            source_doc_id=arguments["source_doc_id"],
            text=arguments["text"],
            provenance=arguments.get("provenance", DEFAULT_PROVENANCE),
            embedding=arguments.get("embedding"),
            title=arguments.get("title"),
            threshold=arguments.get("threshold"),
        )
        return result.to_dict()

    elif name == "list_items":
        return [i.to_summary() for i in graph.list_items(owner)]

    elif name == "get_graph":
        data = graph.graph(owner)
        return {
            "nodes": [n.to_summary() for n in data.nodes],
            "edges": [e.to_summary() for e in data.edges],
        }

    elif name == "delete_item":
        return {"deleted": graph.delete(arguments["id"]), "id": arguments["id"]}

    elif name == "attach_note":
        item = graph.attach_note(arguments["id"], arguments["note"])
        return item.to_summary() | {"note": item.note}

    elif name == "analyze_pairs":
        return graph.analyze(owner, arguments.get("threshold")).model_dump(mode="json")

    elif name == "recalculate_edges":
        edges = graph.recalculate(owner, arguments["threshold"])
        return {
            "threshold": arguments["threshold"],
            "edge_count": len(edges),
            "edges": [e.to_summary() for e in edges],
        }

    raise ValueError(f"Unknown tool: {name}")


def create_server(graph: ClipGraph, default_owner: str) -> Server:
    """Build an MCP server bound to one ClipGraph instance."""
    server = Server("clipgraph")

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        return TOOLS

    @server.call_tool()
    async def call_tool(name: str, arguments: dict) -> list[TextContent]:
        try:
            result = dispatch(graph, default_owner, name, arguments or {})
        except (ClipGraphError, KeyError, ValueError) as e:
            logger.info(f"Tool {name} bad request: {e}")
            return [TextContent(type="text", text=f"Error: {e}")]
        except Exception as e:
            logger.error(f"Tool {name} failed: {e}")
            logger.error(traceback.format_exc())
            return [TextContent(type="text", text=f"Error: {e}")]
        return [TextContent(type="text", text=json.dumps(result, indent=2, default=str))]

    return server


def _setup_logging(settings: Settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.FileHandler(settings.log_path),
            logging.StreamHandler(sys.stderr),
        ],
    )


def main():
    """Entry point for the MCP server."""
    settings = load_settings()
    _setup_logging(settings)
    graph = ClipGraph.from_settings(settings)
    items, edges = graph.store.counts()
    logger.info(f"Clipgraph MCP server starting (data_dir={settings.data_dir}, owner={settings.owner_id})")
    logger.info(f"Loaded {items} items, {edges} edges")
    try:
        asyncio.run(_run_server(create_server(graph, settings.owner_id)))
    except Exception as e:
        logger.error(f"Server crashed: {e}")
        logger.error(traceback.format_exc())
        raise
    finally:
        graph.close()


async def _run_server(server: Server):
    """Run the MCP server over stdio."""
    async with stdio_server() as (read, write):
        await server.run(read, write, server.create_initialization_options())


if __name__ == "__main__":
    main()
