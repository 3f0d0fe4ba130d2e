#!/usr/bin/env python3
"""
Load files or web pages into a user's KimbleAI knowledge base.

Usage
-----
Ingest a folder of notes for Zach:
    python scripts/ingest_knowledge.py --user zach notes/

Ingest a single page as a manual entry for Rebecca:
    python scripts/ingest_knowledge.py --user rebecca https://example.com/recipe

Soft-delete a chunk:
    python scripts/ingest_knowledge.py --user zach --deactivate <chunk-id>

Files (.md, .txt, .html) are stored with source type "file", URLs with
"manual". Re-running the script adds fresh chunks; it never removes the old
ones (deactivate them explicitly if needed).
"""

import argparse
import os
import sys

# Make sure project root is on the path so we can import kimble/
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kimble.config import USERS  # noqa: E402
from kimble.embeddings import EmbeddingError  # noqa: E402
from kimble.ingest import SUPPORTED_EXTENSIONS, fetch_page, load_file  # noqa: E402
from kimble.knowledge import KnowledgeStore, SourceType  # noqa: E402


def _expand_inputs(inputs: list) -> list:
    """Directories are walked recursively for supported files; URLs pass through."""
    expanded = []
    for item in inputs:
        if item.startswith(("http://", "https://")):
            expanded.append(item)
        elif os.path.isdir(item):
            for root, _dirs, files in os.walk(item):
                for fname in sorted(files):
                    if os.path.splitext(fname)[1].lower() in SUPPORTED_EXTENSIONS:
                        expanded.append(os.path.join(root, fname))
        elif os.path.isfile(item):
            expanded.append(item)
        else:
            print(f"  [SKIP] {item} (not found)")
    return expanded


def ingest(user_id: str, inputs: list, importance: float) -> int:
    store = KnowledgeStore()
    total = 0
    for item in _expand_inputs(inputs):
        print(f"  {item} … ", end="", flush=True)
        try:
            if item.startswith(("http://", "https://")):
                text = fetch_page(item)
                source_type = SourceType.MANUAL
            else:
                text = load_file(item)
                source_type = SourceType.FILE
            chunks = store.ingest(user_id, text, source_type, importance=importance, title=os.path.basename(item))
        except (OSError, ValueError, EmbeddingError) as e:
            print(f"[ERROR] {e}")
            continue
        total += len(chunks)
        print(f"{len(chunks)} chunk(s)")
    return total


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Load files or web pages into a KimbleAI knowledge base.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("inputs", nargs="*", help="Files, directories or URLs to ingest.")
    parser.add_argument("--user", required=True, choices=sorted(USERS), help="Owner of the new chunks.")
    parser.add_argument("--importance", type=float, default=0.5, help="Importance score 0-1 (default 0.5).")
    parser.add_argument("--deactivate", metavar="CHUNK_ID", help="Soft-delete a chunk instead of ingesting.")
    args = parser.parse_args()

    if args.deactivate:
        ok = KnowledgeStore().deactivate(args.deactivate, args.user)
        print("Deactivated." if ok else "Chunk not found for this user.")
        return

    if not args.inputs:
        parser.error("nothing to ingest")

    total = ingest(args.user, args.inputs, args.importance)
    print(f"\nDone. {total} chunk(s) stored for {USERS[args.user]}.")


if __name__ == "__main__":
    main()
