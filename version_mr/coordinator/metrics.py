"""
Performance metrics collection for map_reduce jobs.
"""

import os
import glob
import json
import time
import threading
from collections import OrderedDict
from dataclasses import dataclass, asdict

import psutil

from version_mr import config


def _total_size(pattern: str) -> int:
    return sum(os.path.getsize(f) for f in glob.glob(pattern) if os.path.exists(f))


@dataclass
class JobMetrics:
    """Metrics for a single map_reduce job execution."""

    job_id: str
    start_time: float
    end_time: float
    map_phase_start: float
    map_phase_end: float
    reduce_phase_start: float
    reduce_phase_end: float
    num_map_tasks: int
    num_reduce_tasks: int
    use_combiner: bool
    input_count: int = 0
    emit_count: int = 0
    reduce_count: int = 0
    output_count: int = 0
    intermediate_size_bytes: int = 0
    output_size_bytes: int = 0
    peak_memory_bytes: int = 0

    @property
    def total_time_seconds(self) -> float:
        """Total job execution time in seconds."""
        return self.end_time - self.start_time

    @property
    def map_phase_time_seconds(self) -> float:
        """Map phase execution time in seconds."""
        return self.map_phase_end - self.map_phase_start

    @property
    def reduce_phase_time_seconds(self) -> float:
        """Reduce phase execution time in seconds."""
        return self.reduce_phase_end - self.reduce_phase_start

    @property
    def time_millis(self) -> int:
        return int(self.total_time_seconds * 1000)

    @property
    def counts(self) -> dict:
        """Counters in the shape returned by the map_reduce command."""
        return {
            'input': self.input_count,
            'emit': self.emit_count,
            'reduce': self.reduce_count,
            'output': self.output_count
        }

    def to_dict(self) -> dict:
        """Convert metrics to dictionary, including the derived timings."""
        data = asdict(self)
        data['total_time_seconds'] = self.total_time_seconds
        data['map_phase_time_seconds'] = self.map_phase_time_seconds
        data['reduce_phase_time_seconds'] = self.reduce_phase_time_seconds
        return data

    def save_to_file(self, filepath: str):
        """Save metrics to JSON file."""
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


class MetricsCollector:
    """Collects and manages metrics for map_reduce jobs."""

    def __init__(self, max_history: int = None):
        self.job_metrics = OrderedDict()
        self.max_history = config.JOB_HISTORY if max_history is None else max_history
        if self.max_history < 1:
            raise ValueError("max_history must be at least 1")
        self.process = psutil.Process()
        self._lock = threading.Lock()

    def _sample_memory(self, job_id: str):
        rss = self.process.memory_info().rss
        metrics = self.job_metrics[job_id]
        metrics.peak_memory_bytes = max(metrics.peak_memory_bytes, rss)

    def start_job(self, job_id: str, num_map_tasks: int, num_reduce_tasks: int,
                  use_combiner: bool, input_count: int):
        """Initialize metrics tracking for a new job."""
        now = time.time()
        with self._lock:
            self.job_metrics[job_id] = JobMetrics(
                job_id=job_id,
                start_time=now,
                end_time=0,
                map_phase_start=now,
                map_phase_end=0,
                reduce_phase_start=0,
                reduce_phase_end=0,
                num_map_tasks=num_map_tasks,
                num_reduce_tasks=num_reduce_tasks,
                use_combiner=use_combiner,
                input_count=input_count
            )
            self._sample_memory(job_id)

    def record_map_task(self, job_id: str, emit_count: int, reduce_count: int):
        """Add one map task's counters."""
        with self._lock:
            if job_id in self.job_metrics:
                self.job_metrics[job_id].emit_count += emit_count
                self.job_metrics[job_id].reduce_count += reduce_count

    def record_reduce_task(self, job_id: str, reduce_count: int, output_count: int):
        """Add one reduce task's counters."""
        with self._lock:
            if job_id in self.job_metrics:
                self.job_metrics[job_id].reduce_count += reduce_count
                self.job_metrics[job_id].output_count += output_count

    def end_map_phase(self, job_id: str):
        """Mark the end of the map phase."""
        with self._lock:
            if job_id in self.job_metrics:
                self.job_metrics[job_id].map_phase_end = time.time()
                self._sample_memory(job_id)

    def start_reduce_phase(self, job_id: str, intermediate_dir: str):
        """Mark the start of the reduce phase and calculate intermediate data size."""
        with self._lock:
            if job_id in self.job_metrics:
                self.job_metrics[job_id].reduce_phase_start = time.time()
                self.job_metrics[job_id].intermediate_size_bytes = _total_size(
                    os.path.join(intermediate_dir, "map-*-reduce-*.jsonl"))

    def end_job(self, job_id: str, output_path: str):
        """Mark job completion and calculate output size."""
        with self._lock:
            if job_id in self.job_metrics:
                now = time.time()
                metrics = self.job_metrics[job_id]
                if not metrics.map_phase_end:
                    metrics.map_phase_end = now
                if metrics.reduce_phase_start:
                    metrics.reduce_phase_end = now
                else:
                    metrics.reduce_phase_start = metrics.reduce_phase_end = metrics.map_phase_end
                metrics.end_time = now
                metrics.output_size_bytes = _total_size(os.path.join(output_path, "part-*.jsonl"))
                self._sample_memory(job_id)
                self._evict_finished()

    def _evict_finished(self):
        finished = [job_id for job_id, metrics in self.job_metrics.items() if metrics.end_time]
        for job_id in finished[:max(0, len(finished) - self.max_history)]:
            del self.job_metrics[job_id]

    def get_metrics(self, job_id: str) -> JobMetrics:
        """Retrieve metrics for a specific job."""
        with self._lock:
            return self.job_metrics.get(job_id)
