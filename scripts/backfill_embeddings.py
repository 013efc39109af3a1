#!/usr/bin/env python3
"""
Embedding Backfill Script

Ensures the project/call vector indexes exist and embeds Project and Call
nodes that have body text but no stored embedding (records imported by
scrapers or created while the embedding provider was down).

Usage:
    python scripts/backfill_embeddings.py [--dry-run] [--batch-size 50] [--label Project]
"""

import sys
import argparse
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# (label, id property, body property, index attribute on GraphConfig)
TARGETS = [
    ("Project", "projectId", "summary", "project_index"),
    ("Call", "callId", "description", "call_index"),
]


def main():
    parser = argparse.ArgumentParser(description="Embed graph records that have no embedding yet")
    parser.add_argument("--dry-run", action="store_true", help="Print what would be done without executing")
    parser.add_argument("--batch-size", type=int, default=50, help="Number of records to embed per batch")
    parser.add_argument("--label", choices=[t[0] for t in TARGETS], help="Only backfill this label")
    args = parser.parse_args()

    from dotenv import load_dotenv
    from intelligraph.common.config import load_config
    from intelligraph.common.embedding_service import get_embedding_service
    from intelligraph.common.errors import StoreError
    from intelligraph.common.graph_client import GraphClient

    load_dotenv()
    config = load_config()

    print("[Backfill] Initializing embedding service...")
    print(f"[Backfill] Mode: {config.embedding.mode}, model: {config.embedding.model}")
    embedding_svc = get_embedding_service(config)

    if not embedding_svc.is_available:
        print("[Backfill] ERROR: Embedding service not available")
        sys.exit(1)

    # Verify dimension
    test_vec = embedding_svc.embed_single("test")
    dim = len(test_vec)
    print(f"[Backfill] Embedding dimension: {dim}")
    if dim != config.graph.embedding_dim:
        print(f"[Backfill] WARNING: Embedding dimension is not {config.graph.embedding_dim}, received {dim}.")

    print(f"[Backfill] Connecting to Neo4j at {config.graph.uri}...")
    client = GraphClient.from_config(config)
    if not client.verify():
        print("[Backfill] ERROR: Could not connect to Neo4j")
        sys.exit(1)

    targets = [t for t in TARGETS if not args.label or t[0] == args.label]
    migrated = 0
    errors = 0
    total = 0

    try:
        for label, id_field, text_field, index_attr in targets:
            index_name = getattr(config.graph, index_attr)

            if args.dry_run:
                print(f"[Backfill] DRY RUN - would ensure index '{index_name}' on :{label}({dim} dims)")
            else:
                client.create_vector_index(index_name, label, dim)
                print(f"[Backfill] Index '{index_name}' ready")

            try:
                records = client.nodes_missing_embedding(label, id_field, text_field)
            except StoreError as e:
                print(f"[Backfill] ERROR: Failed to fetch {label} records: {e}")
                sys.exit(1)

            records = [r for r in records if r.get("id") is not None and (r.get("text") or "").strip()]
            total += len(records)
            print(f"[Backfill] Found {len(records)} {label} record(s) without embeddings")

            if args.dry_run or not records:
                continue

            for i in range(0, len(records), args.batch_size):
                batch = records[i:i + args.batch_size]
                texts = [r["text"] for r in batch]

                try:
                    print(f"[Backfill] Embedding {label} batch {i // args.batch_size + 1} ({len(texts)} records)...")
                    embeddings = embedding_svc.embed(texts)
                except Exception as e:
                    print(f"[Backfill] ERROR: Batch embedding failed: {e}")
                    errors += len(texts)
                    continue

                for record, embedding in zip(batch, embeddings):
                    try:
                        if client.set_embedding(label, id_field, record["id"], embedding):
                            migrated += 1
                        else:
                            print(f"[Backfill] WARNING: {label} {record['id']} disappeared before update")
                            errors += 1
                    except StoreError as e:
                        print(f"[Backfill] WARNING: Failed to update {record['id']}: {e}")
                        errors += 1
    finally:
        client.close()

    if args.dry_run:
        print(f"[Backfill] DRY RUN complete: {total} record(s) would be embedded")
    else:
        print(f"[Backfill] Complete: {migrated} embedded, {errors} errors, {total} total")


if __name__ == "__main__":
    main()
