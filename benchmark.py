#!/usr/bin/env python3
"""
Benchmarking script for the map_reduce command.
Runs the version_range job under several task/batch/combiner settings,
checks that every setting produces the same output, and collects metrics.
"""

import argparse
import csv
import json
import os
import sys
import logging
import tempfile
from datetime import datetime
from pathlib import Path

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), 'scripts'))

from generate_documents import write_documents
from version_mr import config
from version_mr.common.store import get_database, load_jsonl
from version_mr.coordinator.map_reduce import MapReduceCoordinator

logger = logging.getLogger(__name__)

# Configuration
RESULTS_DIR = Path("benchmark_results")
JOB = "version_mr.jobs.version_range"

# Benchmark configurations
BENCHMARKS = [
    # Experiment 1: Map task scaling
    {"name": "map_scaling_1", "maps": 1, "reduces": 2, "batch": 1000, "combiner": True,
     "description": "1 map task"},
    {"name": "map_scaling_2", "maps": 2, "reduces": 2, "batch": 1000, "combiner": True,
     "description": "2 map tasks"},
    {"name": "map_scaling_4", "maps": 4, "reduces": 2, "batch": 1000, "combiner": True,
     "description": "4 map tasks"},
    {"name": "map_scaling_8", "maps": 8, "reduces": 2, "batch": 1000, "combiner": True,
     "description": "8 map tasks"},

    # Experiment 2: Reduce task scaling
    {"name": "reduce_scaling_1", "maps": 4, "reduces": 1, "batch": 1000, "combiner": True,
     "description": "1 reduce task"},
    {"name": "reduce_scaling_4", "maps": 4, "reduces": 4, "batch": 1000, "combiner": True,
     "description": "4 reduce tasks"},
    {"name": "reduce_scaling_8", "maps": 4, "reduces": 8, "batch": 1000, "combiner": True,
     "description": "8 reduce tasks"},

    # Experiment 3: Reduce batch size (how often reduce sees its own output)
    {"name": "batch_2", "maps": 4, "reduces": 2, "batch": 2, "combiner": False,
     "description": "Pairwise reduction"},
    {"name": "batch_10", "maps": 4, "reduces": 2, "batch": 10, "combiner": False,
     "description": "Batches of 10"},
    {"name": "batch_1000", "maps": 4, "reduces": 2, "batch": 1000, "combiner": False,
     "description": "Batches of 1000"},

    # Experiment 4: Combiner
    {"name": "combiner_off", "maps": 4, "reduces": 2, "batch": 1000, "combiner": False,
     "description": "Without combiner"},
    {"name": "combiner_on", "maps": 4, "reduces": 2, "batch": 1000, "combiner": True,
     "description": "With combiner"},
]


def run_benchmark(coordinator, db, bench, run_number=1):
    """Run a single benchmark configuration. Returns (result row, output records)."""
    job_id = f"{bench['name']}-{run_number}-{datetime.now().strftime('%H%M%S%f')}"
    logger.info(f"Benchmark {bench['name']} (run {run_number}): {bench['description']}")

    response = coordinator.run(
        db, 'documents', job=JOB, out={'inline': 1},
        num_map_tasks=bench['maps'],
        num_reduce_tasks=bench['reduces'],
        reduce_batch_size=bench['batch'],
        use_combiner=bench['combiner'],
        job_id=job_id
    )
    metrics = coordinator.metrics_collector.get_metrics(job_id)

    result = {
        "benchmark_name": bench["name"],
        "description": bench["description"],
        "run_number": run_number,
        "timestamp": datetime.now().isoformat(),
        "job_id": job_id,
        "num_map_tasks": bench["maps"],
        "num_reduce_tasks": bench["reduces"],
        "reduce_batch_size": bench["batch"],
        "use_combiner": bench["combiner"],
        "total_runtime_seconds": round(metrics.total_time_seconds, 4),
        "map_phase_seconds": round(metrics.map_phase_time_seconds, 4),
        "reduce_phase_seconds": round(metrics.reduce_phase_time_seconds, 4),
        "intermediate_size_bytes": metrics.intermediate_size_bytes,
        "peak_memory_mb": round(metrics.peak_memory_bytes / 1024 / 1024, 2),
        "documents_per_second": round(metrics.input_count / metrics.total_time_seconds, 1)
        if metrics.total_time_seconds > 0 else 0,
    }
    result.update({f"count_{name}": value for name, value in response['counts'].items()})
    return result, response['results']


def save_results(results, timestamp):
    """Save results to JSON and CSV files."""
    json_file = RESULTS_DIR / f"benchmark_results_{timestamp}.json"
    with open(json_file, 'w') as f:
        json.dump(results, f, indent=2)
    print(f"\n✓ Results saved to: {json_file}")

    csv_file = RESULTS_DIR / f"benchmark_results_{timestamp}.csv"
    if results:
        fieldnames = list(results[0].keys())
        with open(csv_file, 'w', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames)
            writer.writeheader()
            writer.writerows(results)
        print(f"✓ Results saved to: {csv_file}")

    return json_file, csv_file


def print_summary(results):
    """Print a summary table of results."""
    print(f"\n{'='*78}")
    print("BENCHMARK SUMMARY")
    print(f"{'='*78}")
    print(f"{'Benchmark':<20} {'Maps':>5} {'Reduces':>7} {'Batch':>6} {'Comb':>5} "
          f"{'Runtime':>10} {'Reduces called':>15}")
    print(f"{'-'*78}")

    for r in results:
        print(f"{r['benchmark_name']:<20} {r['num_map_tasks']:>5} {r['num_reduce_tasks']:>7} "
              f"{r['reduce_batch_size']:>6} {'y' if r['use_combiner'] else 'n':>5} "
              f"{r['total_runtime_seconds']:>9.3f}s {r['count_reduce']:>15}")

    print(f"{'='*78}")


def main():
    parser = argparse.ArgumentParser(description="Benchmark the map_reduce command")
    parser.add_argument('--documents', type=int, default=20000, help="Number of generated documents")
    parser.add_argument('--keys', type=int, default=1000, help="Number of distinct document_ids")
    parser.add_argument('--runs', type=int, default=1, help="Runs per configuration")
    parser.add_argument('--max-workers', type=int, default=config.MAX_WORKERS)
    parser.add_argument('--mongo-uri', default=config.MONGO_URI)
    parser.add_argument('--database', default='version_mapreduce_benchmark')
    args = parser.parse_args()

    config.configure_logging()
    RESULTS_DIR.mkdir(exist_ok=True)

    input_file = RESULTS_DIR / "input" / f"documents_{args.documents}_{args.keys}.jsonl"
    if not input_file.exists():
        write_documents(input_file, args.documents, args.keys)

    db = get_database(args.mongo_uri, args.database)
    db.drop_collection('documents')
    load_jsonl(db['documents'], str(input_file))

    all_results = []
    baseline = None
    mismatches = []

    with tempfile.TemporaryDirectory() as data_dir:
        coordinator = MapReduceCoordinator(data_dir=data_dir, max_workers=args.max_workers)
        for bench in BENCHMARKS:
            for run in range(1, args.runs + 1):
                result, records = run_benchmark(coordinator, db, bench, run_number=run)
                all_results.append(result)

                if baseline is None:
                    baseline = records
                elif records != baseline:
                    mismatches.append(bench['name'])

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    json_file, _ = save_results(all_results, timestamp)
    print_summary(all_results)

    if mismatches:
        print(f"\n❌ Output differed from the baseline for: {', '.join(sorted(set(mismatches)))}")
        return 1

    print(f"\n✓ All {len(all_results)} runs produced identical output")
    print(f"  Generate plots: python tools/visualize_performance.py {json_file}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
