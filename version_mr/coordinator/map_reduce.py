"""
The map_reduce command.

Selects documents from a source collection, runs map tasks and then reduce
tasks on a thread pool, and materializes one {'_id', 'value'} record per
emitted key into an output collection.
"""

import os
import json
import uuid
import shutil
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Tuple

from pymongo import ReplaceOne
from pymongo.errors import PyMongoError

from version_mr import config
from version_mr.common.keys import sort_token
from version_mr.common.store import select_documents
from version_mr.coordinator.job_manager import JobManager
from version_mr.coordinator.metrics import MetricsCollector
from version_mr.worker.function_loader import FunctionLoader
from version_mr.worker.map_executor import MapExecutor
from version_mr.worker.reduce_executor import ReduceExecutor

logger = logging.getLogger(__name__)

OUT_MODES = ('replace', 'merge', 'reduce', 'inline')


def parse_out(out) -> Tuple[str, Optional[str]]:
    """
    Normalize the 'out' argument.

    Accepts a collection name (replace mode) or a single-key dict:
    {'replace': name}, {'merge': name}, {'reduce': name} or {'inline': 1}.

    Returns:
        (mode, collection name or None for inline)
    """
    if isinstance(out, str):
        if not out:
            raise ValueError("Output collection name must not be empty")
        return 'replace', out
    if isinstance(out, dict) and len(out) == 1:
        mode, target = next(iter(out.items()))
        if mode == 'inline':
            return 'inline', None
        if mode in OUT_MODES and isinstance(target, str) and target:
            return mode, target
    raise ValueError(f"Invalid out specification: {out!r}; expected a collection name "
                     f"or one of {{'replace'|'merge'|'reduce': name}}, {{'inline': 1}}")


def _resolve_loader(job, map_function, reduce_function) -> FunctionLoader:
    if job is not None:
        if map_function is not None or reduce_function is not None:
            raise ValueError("Pass either job or map_function/reduce_function, not both")
        loader = FunctionLoader(job)
    elif map_function is not None and reduce_function is not None:
        loader = FunctionLoader.from_callables(map_function, reduce_function)
    else:
        raise ValueError("map_function and reduce_function are required")

    # Fail before any work is scheduled if the job is incomplete
    loader.get_map_function()
    loader.get_reduce_function()
    return loader


class MapReduceCoordinator:
    """Runs map_reduce jobs and keeps their bookkeeping and metrics"""

    def __init__(self, data_dir: str = None, max_workers: int = None, max_history: int = None):
        self.data_dir = data_dir or config.DATA_DIR
        self.max_workers = max_workers or config.MAX_WORKERS
        self.job_manager = JobManager(max_history)
        self.metrics_collector = MetricsCollector(max_history)

    def run(self, db, source: str, map_function=None, reduce_function=None, out=None,
            job=None, query=None, sort=None, limit: Optional[int] = None, finalize_function=None,
            num_map_tasks: int = None, num_reduce_tasks: int = None, use_combiner: bool = True,
            reduce_batch_size: int = None, max_workers: int = None, job_id: str = None) -> dict:
        """
        Run one map_reduce job.

        Args:
            db: pymongo Database holding the source and output collections
            source: Name of the source collection
            map_function: document -> iterable of (key, value) pairs
            reduce_function: (key, values) -> single value
            out: Output collection name or mode dict, see parse_out()
            job: Module name or file path defining the job functions,
                instead of map_function/reduce_function
            query: Filter applied to the source before mapping
            sort: Sort applied to the source before limit
            limit: Maximum number of source documents mapped
            finalize_function: (key, value) -> value applied once per key,
                or True to use the job module's finalize_function
            num_map_tasks: Number of document slices mapped in parallel
            num_reduce_tasks: Number of key partitions
            use_combiner: Pre-reduce inside map tasks
            reduce_batch_size: Maximum number of values per reduce call
            max_workers: Thread pool size
            job_id: Identifier for bookkeeping; generated when omitted

        Returns:
            {'result' | 'results', 'timeMillis', 'counts', 'ok'}

        Raises:
            ValueError: For invalid arguments
            RuntimeError: If any map or reduce task fails, or the output
                collection cannot be merged or written
        """
        mode, out_name = parse_out(out)
        num_map_tasks = config.NUM_MAP_TASKS if num_map_tasks is None else num_map_tasks
        num_reduce_tasks = config.NUM_REDUCE_TASKS if num_reduce_tasks is None else num_reduce_tasks
        reduce_batch_size = config.REDUCE_BATCH_SIZE if reduce_batch_size is None else reduce_batch_size
        max_workers = max_workers or self.max_workers
        if reduce_batch_size < 2:
            raise ValueError(f"reduce_batch_size must be at least 2, got {reduce_batch_size}")

        loader = _resolve_loader(job, map_function, reduce_function)
        if finalize_function is True:
            finalize_function = loader.get_finalize_function()
            if finalize_function is None:
                raise ValueError("finalize_function=True but the job defines no finalize_function")
        reduce_func = loader.get_reduce_function()

        documents = select_documents(db, source, query, sort, limit)

        job_id = job_id or uuid.uuid4().hex
        intermediate_dir = config.intermediate_dir(job_id, self.data_dir)
        output_path = config.staging_dir(job_id, self.data_dir)

        job_state = self.job_manager.create_job(
            job_id=job_id,
            source=source,
            out=out_name or 'inline',
            num_documents=len(documents),
            num_map_tasks=num_map_tasks,
            num_reduce_tasks=num_reduce_tasks,
            use_combiner=use_combiner,
            intermediate_dir=intermediate_dir,
            output_path=output_path
        )
        logger.info(f"Job {job_id}: map_reduce over {source} ({len(documents)} documents) "
                    f"-> {out_name or 'inline'} [{mode}]")
        self.metrics_collector.start_job(job_id, job_state.num_map_tasks, num_reduce_tasks,
                                         use_combiner, len(documents))

        try:
            self._run_map_phase(job_state, documents, loader, max_workers)

            self.metrics_collector.end_map_phase(job_id)
            reduce_tasks = self.job_manager.generate_reduce_tasks(job_state)
            self.metrics_collector.start_reduce_phase(job_id, intermediate_dir)

            # In reduce mode finalize runs after merging with the existing records
            task_finalize = None if mode == 'reduce' else finalize_function
            output_files = self._run_reduce_phase(job_state, reduce_tasks, loader,
                                                  reduce_batch_size, task_finalize, max_workers)

            records = self._load_output(output_files)
            if mode == 'reduce':
                records = self._merge_existing(db[out_name], records, reduce_func,
                                               finalize_function, job_id)
            response = self._write_out(db, mode, out_name, records, job_id)
            self.job_manager.mark_job_completed(job_id)
        finally:
            self.metrics_collector.end_job(job_id, output_path)
            shutil.rmtree(intermediate_dir, ignore_errors=True)
            shutil.rmtree(output_path, ignore_errors=True)

        metrics = self.metrics_collector.get_metrics(job_id)
        response.update({
            'timeMillis': metrics.time_millis,
            'counts': metrics.counts,
            'ok': 1.0
        })
        return response

    def _run_map_phase(self, job_state, documents, loader, max_workers):
        job_id = job_state.job_id
        self.job_manager.generate_map_tasks(job_state)

        executors = {}
        while True:
            task = self.job_manager.get_next_pending_map_task(job_id)
            if task is None:
                break
            executors[task.task_id] = (task, MapExecutor(
                task_id=task.task_id,
                documents=documents[task.start_index:task.end_index],
                num_reduce_tasks=job_state.num_reduce_tasks,
                loader=loader,
                use_combiner=job_state.use_combiner,
                job_id=job_id,
                intermediate_dir=job_state.intermediate_dir
            ))

        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = {task_id: pool.submit(executor.execute)
                       for task_id, (_, executor) in executors.items()}
            results = {task_id: future.result() for task_id, future in futures.items()}

        for task_id, result in sorted(results.items()):
            task = executors[task_id][0]
            self.metrics_collector.record_map_task(job_id, result['emit_count'], result['reduce_count'])
            if not result['success']:
                error_msg = f"Map task {task_id} failed: {result['error_message']}"
                self.job_manager.mark_task_failed(job_id, task, error_msg)
                raise RuntimeError(error_msg)
            self.job_manager.mark_map_task_completed(job_id, task_id)

    def _run_reduce_phase(self, job_state, reduce_tasks, loader, batch_size,
                          finalize_function, max_workers) -> list:
        job_id = job_state.job_id

        executors = {}
        while True:
            task = self.job_manager.get_next_pending_reduce_task(job_id)
            if task is None:
                break
            executors[task.task_id] = (task, ReduceExecutor(
                task_id=task.task_id,
                partition_id=task.partition_id,
                intermediate_files=task.intermediate_files,
                loader=loader,
                output_path=job_state.output_path,
                job_id=job_id,
                batch_size=batch_size,
                finalize_function=finalize_function
            ))

        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = {task_id: pool.submit(executor.execute)
                       for task_id, (_, executor) in executors.items()}
            results = {task_id: future.result() for task_id, future in futures.items()}

        output_files = []
        for task_id, result in sorted(results.items()):
            task = executors[task_id][0]
            self.metrics_collector.record_reduce_task(job_id, result['reduce_count'], result['output_count'])
            if not result['success']:
                error_msg = f"Reduce task {task_id} failed: {result['error_message']}"
                self.job_manager.mark_task_failed(job_id, task, error_msg)
                raise RuntimeError(error_msg)
            self.job_manager.mark_reduce_task_completed(job_id, task_id)
            output_files.append(result['output_file'])
        return output_files

    @staticmethod
    def _load_output(output_files: list) -> list:
        """Read every partition's records, merged into one key order."""
        records = []
        for path in output_files:
            if not os.path.exists(path):
                continue
            with open(path, 'r', encoding='utf-8') as f:
                for line in f:
                    line = line.strip()
                    if line:
                        records.append(json.loads(line))
        records.sort(key=lambda record: sort_token(record['_id']))
        return records

    def _merge_existing(self, target, records, reduce_func, finalize_function, job_id) -> list:
        """
        Fold each new record with the record already stored under its key.

        Nothing is written here, so a failing reduce or finalize leaves the
        output collection as it was.
        """
        try:
            existing = {doc['_id']: doc['value']
                        for doc in target.find({'_id': {'$in': [r['_id'] for r in records]}})}
            merged = []
            reduce_calls = 0
            for record in records:
                key, value = record['_id'], record['value']
                if key in existing:
                    value = reduce_func(key, [existing[key], value])
                    reduce_calls += 1
                if finalize_function is not None:
                    value = finalize_function(key, value)
                merged.append({'_id': key, 'value': value})
        except Exception as e:
            error_msg = f"Merging with {target.name} failed: {e}"
            self.job_manager.mark_job_failed(job_id, error_msg)
            raise RuntimeError(error_msg) from e

        self.metrics_collector.record_reduce_task(job_id, reduce_calls, 0)
        return merged

    def _write_out(self, db, mode, out_name, records, job_id) -> dict:
        if mode == 'inline':
            return {'results': records}

        target = db[out_name]
        try:
            if mode == 'replace':
                target.drop()
                if records:
                    target.insert_many(records)
            elif records:
                target.bulk_write([ReplaceOne({'_id': record['_id']}, record, upsert=True)
                                   for record in records])
        except PyMongoError as e:
            error_msg = f"Writing to {out_name} failed: {e}"
            self.job_manager.mark_job_failed(job_id, error_msg)
            raise RuntimeError(error_msg) from e

        logger.info(f"Job {job_id}: wrote {len(records)} records to {out_name} [{mode}]")
        return {'result': out_name}


_default_coordinator = None


def get_coordinator() -> MapReduceCoordinator:
    """The process-wide coordinator used by map_reduce()."""
    global _default_coordinator
    if _default_coordinator is None:
        _default_coordinator = MapReduceCoordinator()
    return _default_coordinator


def map_reduce(db, source: str, map_function=None, reduce_function=None, out=None, **kwargs) -> dict:
    """Run the map_reduce command on the default coordinator. See MapReduceCoordinator.run()."""
    return get_coordinator().run(db, source, map_function, reduce_function, out, **kwargs)
