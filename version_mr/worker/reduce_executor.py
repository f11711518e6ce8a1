"""
Reduce Task Executor
Executes reduce tasks by reading intermediate data, grouping by key,
folding each key's values down to one, and writing the partition output
"""

import os
import json
import time
import logging

from version_mr.common.keys import canonical_key, sort_token
from version_mr.worker.function_loader import FunctionLoader

logger = logging.getLogger(__name__)


def tree_reduce(reduce_func, key, values: list, batch_size: int):
    """
    Fold values for one key by reducing in bounded batches.

    Each round reduces every batch of up to batch_size values and feeds the
    partial results into the next round, until a single value remains. A batch
    holding one value is carried forward without calling reduce_func.

    Returns:
        (final value, number of reduce_func calls)
    """
    if batch_size < 2:
        raise ValueError(f"Reduce batch size must be at least 2, got {batch_size}")
    if not values:
        raise ValueError(f"No values to reduce for key {key!r}")

    calls = 0
    while len(values) > 1:
        partials = []
        for start in range(0, len(values), batch_size):
            batch = values[start:start + batch_size]
            if len(batch) == 1:
                partials.append(batch[0])
            else:
                partials.append(reduce_func(key, batch))
                calls += 1
        values = partials
    return values[0], calls


class ReduceExecutor:
    """Executes a single reduce task"""

    def __init__(self, task_id: int, partition_id: int, intermediate_files: list,
                 loader: FunctionLoader, output_path: str, job_id: str,
                 batch_size: int = 1000, finalize_function=None):
        """
        Initialize the reduce executor

        Args:
            task_id: Unique ID for this reduce task
            partition_id: Partition ID this reduce task is responsible for
            intermediate_files: List of intermediate file paths to read
            loader: Resolves the job's reduce function
            output_path: Directory path where the partition output is written
            job_id: Unique job identifier
            batch_size: Maximum number of values passed to one reduce call
            finalize_function: Optional (key, value) -> value applied to every key
        """
        self.task_id = task_id
        self.partition_id = partition_id
        self.intermediate_files = intermediate_files
        self.loader = loader
        self.output_path = output_path
        self.job_id = job_id
        self.batch_size = batch_size
        self.finalize_function = finalize_function
        self.reduce_count = 0
        self.lines_skipped = 0

    def execute(self) -> dict:
        """
        Execute the reduce task

        Returns:
            Dictionary with 'success', 'execution_time_ms', 'error_message',
            'reduce_count', 'output_count' and 'output_file' fields
        """
        start_time = time.time()

        try:
            reduce_func = self.loader.get_reduce_function()

            key_groups = self._read_and_group_intermediate()
            logger.info(f"Reduce task {self.task_id}: Grouped {len(key_groups)} unique keys")

            records = []
            for key, values in key_groups.values():
                if len(values) == 1:
                    value = values[0]
                else:
                    value, calls = tree_reduce(reduce_func, key, values, self.batch_size)
                    self.reduce_count += calls
                if self.finalize_function is not None:
                    value = self.finalize_function(key, value)
                records.append({'_id': key, 'value': value})

            # Sort by key for deterministic output
            records.sort(key=lambda record: sort_token(record['_id']))

            output_file = self._write_output(records)

            execution_time = int((time.time() - start_time) * 1000)
            logger.info(f"Reduce task {self.task_id}: Completed in {execution_time}ms "
                        f"with {self.reduce_count} reduce calls")

            return {
                'success': True,
                'execution_time_ms': execution_time,
                'error_message': '',
                'reduce_count': self.reduce_count,
                'output_count': len(records),
                'output_file': output_file
            }

        except Exception as e:
            execution_time = int((time.time() - start_time) * 1000)
            logger.error(f"Reduce task {self.task_id} failed - Job: {self.job_id}. Error: {e}")
            return {
                'success': False,
                'execution_time_ms': execution_time,
                'error_message': str(e),
                'reduce_count': self.reduce_count,
                'output_count': 0,
                'output_file': ''
            }

    def _read_and_group_intermediate(self) -> dict:
        """
        Read all intermediate files and group by key

        Returns:
            Dictionary mapping canonical key to (key, list of values)
        """
        key_groups = {}
        files_read = 0
        lines_processed = 0

        for filepath in self.intermediate_files:
            if not os.path.exists(filepath):
                logger.warning(f"Reduce task {self.task_id}: File not found: {filepath}")
                continue

            files_read += 1

            with open(filepath, 'r', encoding='utf-8') as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue

                    try:
                        record = json.loads(line)
                        key = record['key']
                        value = record['value']
                    except (json.JSONDecodeError, KeyError, TypeError) as e:
                        self.lines_skipped += 1
                        logger.warning(f"Reduce task {self.task_id}: Skipping malformed line in {filepath}: {e}")
                        continue

                    token = canonical_key(key)
                    if token not in key_groups:
                        key_groups[token] = (key, [])
                    key_groups[token][1].append(value)
                    lines_processed += 1

        logger.debug(f"Reduce task {self.task_id}: Read {files_read} files, processed {lines_processed} records, "
                     f"skipped {self.lines_skipped} malformed records")
        return key_groups

    def _write_output(self, records: list) -> str:
        """
        Write the partition's reduced records as JSON lines

        Args:
            records: List of {'_id', 'value'} records

        Returns:
            Path of the output file
        """
        os.makedirs(self.output_path, exist_ok=True)

        output_file = os.path.join(self.output_path, f"part-{self.partition_id}.jsonl")

        with open(output_file, 'w', encoding='utf-8') as f:
            for record in records:
                f.write(json.dumps(record) + '\n')

        logger.debug(f"Reduce task {self.task_id}: Wrote output to {output_file}")
        return output_file
