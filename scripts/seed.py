#!/usr/bin/env python3
"""Seed script to populate a clip graph with sample clips.

Usage:
    CLIPGRAPH_PATH=/path/to/data python scripts/seed.py

    # Or with default path (~/.clipgraph) and owner (demo-user):
    python scripts/seed.py

Embeddings are computed with sentence-transformers when it is installed;
otherwise clips are stored without one and can be backfilled later with
`clipgraph embed`.
"""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from clipgraph.config import load_settings
from clipgraph.engine import ClipGraph


SAMPLE_CLIPS = [
    ("paper-1", "The Transformer architecture has revolutionized natural language processing"),
    ("paper-1", "Self-attention lets every token attend to every other token in the sequence"),
    ("paper-2", "Graph neural networks can learn representations of molecular structures"),
    ("paper-2", "Message passing aggregates information from a node's neighbours"),
    ("paper-3", "Attention mechanisms also help graph models weigh neighbouring nodes"),
]


def seed_sample_clips(graph: ClipGraph, owner_id: str) -> None:
    """Clip the sample passages, reporting the links each one forms."""
    for doc, text in SAMPLE_CLIPS:
        result = graph.clip(owner_id, doc, text)
        if result.deduplicated:
            print(f"  = {text[:50]}... (already clipped)")
            continue
        status = f"{len(result.new_edges)} links" if result.has_embedding else "no embedding"
        print(f"  + {text[:50]}... ({status})")


def main():
    settings = load_settings()

    print(f"Seeding clip graph at: {settings.db_path} (owner {settings.owner_id})")
    graph = ClipGraph.from_settings(settings)
    try:
        existing = len(graph.list_items(settings.owner_id))
        if existing > 0:
            print(f"Warning: Graph already has {existing} clips")
            response = input("Continue and add more? [y/N] ")
            if response.lower() != "y":
                print("Aborted")
                return

        seed_sample_clips(graph, settings.owner_id)

        stats = graph.stats()
        print(f"\nFinal state: {stats['items']} clips, {stats['edges']} edges")
    finally:
        graph.close()


if __name__ == "__main__":
    main()
