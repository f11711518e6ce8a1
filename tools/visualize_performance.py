#!/usr/bin/env python3
"""
Generate performance plots from a benchmark.py results file.
"""

import json
import sys
from collections import defaultdict
from pathlib import Path

import matplotlib
matplotlib.use('Agg')  # Non-interactive backend
import matplotlib.pyplot as plt
import numpy as np

# Configuration
PLOTS_DIR = Path("benchmark_results/plots")


def load_results(json_file):
    """Load benchmark results from JSON file."""
    with open(json_file, 'r') as f:
        return json.load(f)


def aggregate_runs(results):
    """
    Aggregate multiple runs of the same benchmark.
    Returns dict: benchmark_name -> {avg_runtime, std_runtime, config, ...}
    """
    by_benchmark = defaultdict(list)
    for r in results:
        by_benchmark[r['benchmark_name']].append(r)

    aggregated = {}
    for name, runs in by_benchmark.items():
        runtimes = [r['total_runtime_seconds'] for r in runs]
        first = runs[0]

        aggregated[name] = {
            'benchmark_name': name,
            'description': first['description'],
            'num_map_tasks': first['num_map_tasks'],
            'num_reduce_tasks': first['num_reduce_tasks'],
            'reduce_batch_size': first['reduce_batch_size'],
            'use_combiner': first['use_combiner'],
            'avg_runtime': np.mean(runtimes),
            'std_runtime': np.std(runtimes),
            'avg_map_phase': np.mean([r['map_phase_seconds'] for r in runs]),
            'avg_reduce_phase': np.mean([r['reduce_phase_seconds'] for r in runs]),
            'intermediate_size_bytes': first['intermediate_size_bytes'],
            'reduce_calls': first['count_reduce'],
            'num_runs': len(runs)
        }

    return aggregated


def _select(aggregated, prefix, field):
    data = [(v[field], v['avg_runtime'], v['std_runtime'])
            for k, v in aggregated.items() if k.startswith(prefix)]
    data.sort()
    return data


def plot_task_scaling(aggregated, output_file):
    """Plot runtime vs number of map tasks and vs number of reduce tasks."""
    map_data = _select(aggregated, 'map_scaling_', 'num_map_tasks')
    reduce_data = _select(aggregated, 'reduce_scaling_', 'num_reduce_tasks')

    if not map_data and not reduce_data:
        print("⚠️  No task scaling data found")
        return

    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(14, 5))

    if map_data:
        tasks, runtimes, stds = zip(*map_data)
        ax1.errorbar(tasks, runtimes, yerr=stds, marker='s', capsize=5,
                     linewidth=2, markersize=8, color='orangered')
        ax1.set_xticks(tasks)
    ax1.set_xlabel('Number of Map Tasks')
    ax1.set_ylabel('Runtime (seconds)')
    ax1.set_title('Map Task Parallelism')
    ax1.grid(True, alpha=0.3)

    if reduce_data:
        tasks, runtimes, stds = zip(*reduce_data)
        ax2.errorbar(tasks, runtimes, yerr=stds, marker='^', capsize=5,
                     linewidth=2, markersize=8, color='green')
        ax2.set_xticks(tasks)
    ax2.set_xlabel('Number of Reduce Tasks')
    ax2.set_ylabel('Runtime (seconds)')
    ax2.set_title('Reduce Task Parallelism')
    ax2.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(output_file, dpi=300, bbox_inches='tight')
    print(f"✓ Saved: {output_file}")
    plt.close()


def plot_batch_size(aggregated, output_file):
    """Plot reduce calls and runtime against the reduce batch size."""
    data = [(v['reduce_batch_size'], v['reduce_calls'], v['avg_reduce_phase'])
            for k, v in aggregated.items() if k.startswith('batch_')]

    if not data:
        print("⚠️  No batch size data found")
        return

    data.sort()
    sizes, calls, reduce_times = zip(*data)
    labels = [str(s) for s in sizes]

    fig, ax1 = plt.subplots(figsize=(10, 6))
    ax1.bar(labels, calls, color='#4ECDC4', label='Reduce calls')
    ax1.set_xlabel('Reduce Batch Size')
    ax1.set_ylabel('Reduce Calls')
    ax1.grid(axis='y', alpha=0.3)

    ax2 = ax1.twinx()
    ax2.plot(labels, reduce_times, marker='o', color='#FF6B6B', linewidth=2, label='Reduce phase')
    ax2.set_ylabel('Reduce Phase (seconds)')

    ax1.set_title('Repeated Reduction: Calls and Time by Batch Size', fontweight='bold')
    plt.tight_layout()
    plt.savefig(output_file, dpi=300, bbox_inches='tight')
    print(f"✓ Saved: {output_file}")
    plt.close()


def plot_combiner_comparison(aggregated, output_file):
    """Create bar charts comparing combiner vs no combiner."""
    without = aggregated.get('combiner_off')
    with_combiner = aggregated.get('combiner_on')

    if not without or not with_combiner:
        print("⚠️  No combiner comparison data found")
        return

    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(12, 5))
    labels = ['Without Combiner', 'With Combiner']

    ax1.bar(labels, [without['avg_runtime'], with_combiner['avg_runtime']], color=['#FF6B6B', '#4ECDC4'])
    ax1.set_ylabel('Execution Time (seconds)')
    ax1.set_title('Job Execution Time Comparison')
    ax1.grid(axis='y', alpha=0.3)

    sizes = [without['intermediate_size_bytes'] / 1024, with_combiner['intermediate_size_bytes'] / 1024]
    ax2.bar(labels, sizes, color=['#FF6B6B', '#4ECDC4'])
    ax2.set_ylabel('Intermediate Data Size (KB)')
    ax2.set_title('Intermediate Data Size Comparison')
    ax2.grid(axis='y', alpha=0.3)

    if sizes[0] > 0:
        reduction = ((sizes[0] - sizes[1]) / sizes[0]) * 100
        ax2.text(0.5, max(sizes) * 0.9, f'{reduction:.1f}% reduction',
                 ha='center', fontsize=12, fontweight='bold')

    plt.tight_layout()
    plt.savefig(output_file, dpi=300, bbox_inches='tight')
    print(f"✓ Saved: {output_file}")
    plt.close()


def main():
    if len(sys.argv) < 2:
        print("Usage: python tools/visualize_performance.py <benchmark_results.json>")
        sys.exit(1)

    PLOTS_DIR.mkdir(parents=True, exist_ok=True)
    aggregated = aggregate_runs(load_results(sys.argv[1]))

    print("Generating visualizations...")
    plot_task_scaling(aggregated, PLOTS_DIR / 'task_scaling.png')
    plot_batch_size(aggregated, PLOTS_DIR / 'batch_size.png')
    plot_combiner_comparison(aggregated, PLOTS_DIR / 'combiner_comparison.png')
    print(f"\nDone! Plots written to {PLOTS_DIR}")


if __name__ == '__main__':
    main()
