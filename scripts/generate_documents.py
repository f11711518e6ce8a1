#!/usr/bin/env python3
"""
Generate synthetic versioned documents as JSON lines for benchmarking.
"""

import argparse
import json
import random
from pathlib import Path

# Configuration
INPUT_DIR = Path("benchmark_results") / "input"

TITLES = ["How-To", "Schema", "Resume", "Release Notes", "FAQ", "Roadmap", "Changelog", "Tutorial"]


def generate_documents(num_documents: int, num_keys: int, seed: int = 0):
    """
    Yield documents spread over num_keys document_ids.

    Versions are one-decimal numbers between 0 and 20, so most keys see
    several versions and a few see just one.
    """
    rng = random.Random(seed)
    for i in range(num_documents):
        key = rng.randrange(num_keys)
        yield {
            'document_id': f"{TITLES[key % len(TITLES)]} #{key}",
            'version': rng.randint(0, 200) / 10,
            'title': TITLES[key % len(TITLES)],
            'revision': i
        }


def write_documents(output_path: Path, num_documents: int, num_keys: int, seed: int = 0) -> int:
    """Write generated documents to output_path. Returns the file size in bytes."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w', encoding='utf-8') as f:
        for document in generate_documents(num_documents, num_keys, seed):
            f.write(json.dumps(document) + '\n')
    return output_path.stat().st_size


def main():
    parser = argparse.ArgumentParser(description="Generate versioned documents")
    parser.add_argument('--documents', type=int, default=10000, help="Number of documents")
    parser.add_argument('--keys', type=int, default=500, help="Number of distinct document_ids")
    parser.add_argument('--seed', type=int, default=0)
    parser.add_argument('--output', type=Path, default=INPUT_DIR / "documents.jsonl")
    args = parser.parse_args()

    size = write_documents(args.output, args.documents, args.keys, args.seed)
    print(f"✓ Wrote {args.documents} documents over {args.keys} keys to {args.output} "
          f"({size / 1024:.1f} KB)")
    return 0


if __name__ == "__main__":
    exit(main())
