"""
Map Task Executor
Executes map tasks by applying the map function to a slice of documents,
partitioning output, and writing intermediate files
"""

import os
import json
import time
import logging
from collections import defaultdict

from version_mr.common.keys import canonical_key, partition_for
from version_mr.worker.function_loader import FunctionLoader

logger = logging.getLogger(__name__)


class MapExecutor:
    """Executes a single map task"""

    def __init__(self, task_id: int, documents: list, num_reduce_tasks: int,
                 loader: FunctionLoader, use_combiner: bool, job_id: str,
                 intermediate_dir: str):
        """
        Initialize the map executor

        Args:
            task_id: Unique ID for this map task
            documents: The documents assigned to this task
            num_reduce_tasks: Number of reduce tasks (for partitioning)
            loader: Resolves the job's map and combiner functions
            use_combiner: Whether to pre-reduce values locally
            job_id: Unique job identifier
            intermediate_dir: Directory for this job's intermediate files
        """
        self.task_id = task_id
        self.documents = documents
        self.num_reduce_tasks = num_reduce_tasks
        self.loader = loader
        self.use_combiner = use_combiner
        self.job_id = job_id
        self.intermediate_dir = intermediate_dir
        self.emit_count = 0
        self.reduce_count = 0

    def execute(self) -> dict:
        """
        Execute the map task

        Returns:
            Dictionary with 'success', 'execution_time_ms', 'error_message',
            'emit_count', 'reduce_count' and 'intermediate_files' fields
        """
        start_time = time.time()
        intermediate_files = []

        try:
            map_func = self.loader.get_map_function()

            logger.info(f"Map task {self.task_id}: Processing {len(self.documents)} documents")
            intermediate = defaultdict(list)
            for document in self.documents:
                for out_key, out_value in map_func(document):
                    partition = partition_for(out_key, self.num_reduce_tasks)
                    intermediate[partition].append((out_key, out_value))
                    self.emit_count += 1

            logger.debug(f"Map task {self.task_id}: Emitted {self.emit_count} pairs")

            if self.use_combiner:
                intermediate = self._apply_combiner(intermediate)
                logger.debug(f"Map task {self.task_id}: After combiner: "
                             f"{sum(len(v) for v in intermediate.values())} pairs")

            intermediate_files = self._write_intermediate_files(intermediate)

            execution_time = int((time.time() - start_time) * 1000)
            logger.info(f"Map task {self.task_id}: Completed in {execution_time}ms")

            return {
                'success': True,
                'execution_time_ms': execution_time,
                'error_message': '',
                'emit_count': self.emit_count,
                'reduce_count': self.reduce_count,
                'intermediate_files': intermediate_files
            }

        except Exception as e:
            execution_time = int((time.time() - start_time) * 1000)
            logger.error(f"Map task {self.task_id} failed - Job: {self.job_id}. Error: {e}")
            return {
                'success': False,
                'execution_time_ms': execution_time,
                'error_message': str(e),
                'emit_count': self.emit_count,
                'reduce_count': self.reduce_count,
                'intermediate_files': intermediate_files
            }

    def _apply_combiner(self, intermediate: dict) -> dict:
        """
        Pre-reduce each key's local values

        Keys with a single local value are passed through without calling the
        combiner.

        Args:
            intermediate: Dictionary mapping partition_id to list of (key, value) pairs

        Returns:
            Dictionary with same structure but at most one pair per key
        """
        combiner_func = self.loader.get_combiner_function()
        if not combiner_func:
            return intermediate

        combined = {}
        for partition, kv_pairs in intermediate.items():
            # Group by key, keeping first-seen order
            key_groups = {}
            for k, v in kv_pairs:
                token = canonical_key(k)
                if token not in key_groups:
                    key_groups[token] = (k, [])
                key_groups[token][1].append(v)

            combined_pairs = []
            for key, values in key_groups.values():
                if len(values) == 1:
                    combined_pairs.append((key, values[0]))
                else:
                    combined_pairs.append((key, combiner_func(key, values)))
                    self.reduce_count += 1

            combined[partition] = combined_pairs

        return combined

    def _write_intermediate_files(self, intermediate: dict) -> list:
        """
        Write intermediate key-value pairs to disk in JSON-lines format

        Args:
            intermediate: Dictionary mapping partition_id to list of (key, value) pairs

        Returns:
            Paths of the files written, one per non-empty partition
        """
        os.makedirs(self.intermediate_dir, exist_ok=True)

        written = []
        for partition, kv_pairs in sorted(intermediate.items()):
            if not kv_pairs:
                continue
            filename = os.path.join(self.intermediate_dir,
                                    f"map-{self.task_id}-reduce-{partition}.jsonl")

            with open(filename, 'w', encoding='utf-8') as f:
                for key, value in kv_pairs:
                    f.write(json.dumps({'key': key, 'value': value}) + '\n')
            written.append(filename)

        return written
