#!/usr/bin/env python3
"""
Index Rebuild Utility
Re-embeds every exemplar from the canonical SQLite store, e.g. after switching
embedding providers. The running API rebuilds its in-memory index from stored
embeddings at startup; this script recomputes the embeddings themselves.
"""

import json
import sys
from pathlib import Path

import dotenv
dotenv.load_dotenv()

# Add the repository root so the script runs from a checkout
sys.path.insert(0, str(Path(__file__).parent.parent))

from schemabridge.core.config import DB_PATH, get_embedding_provider
from schemabridge.core.db import get_db, init_db


def main():
    """Recompute stored embeddings for all exemplars."""
    init_db()
    embedding_provider = get_embedding_provider()

    print(f"Re-embedding exemplars in {DB_PATH} with {embedding_provider.__class__.__name__}...")

    with get_db() as conn:
        rows = conn.execute("SELECT id, consumer_request FROM exemplars ORDER BY seq ASC").fetchall()
        print(f"Found {len(rows)} exemplars in canonical store")

        updated = 0
        for exemplar_id, consumer_request in rows:
            try:
                vector = embedding_provider.embed(json.loads(consumer_request))
            except Exception as e:
                print(f"WARNING: Failed to embed {exemplar_id}: {e}")
                continue
            conn.execute("UPDATE exemplars SET embedding = ? WHERE id = ?", (json.dumps(list(vector)), exemplar_id))
            updated += 1

        conn.commit()

    print(f"✓ Re-embedded {updated}/{len(rows)} exemplars")


if __name__ == "__main__":
    main()
