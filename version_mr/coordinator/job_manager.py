"""
Job Manager for the map_reduce command
Handles job state management, task generation, and progress tracking
"""

import glob
import os
import threading
from collections import OrderedDict
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import List, Dict, Optional

from version_mr import config

logger = logging.getLogger(__name__)


class JobStatus(Enum):
    """Status of a MapReduce job"""
    PENDING = "pending"
    MAP_PHASE = "map_phase"
    REDUCE_PHASE = "reduce_phase"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskStatus(Enum):
    """Status of individual map or reduce tasks"""
    PENDING = "pending"
    ASSIGNED = "assigned"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class MapTask:
    """Represents a single map task over a slice of the input documents"""
    task_id: int
    start_index: int
    end_index: int
    status: TaskStatus = TaskStatus.PENDING


@dataclass
class ReduceTask:
    """Represents a single reduce task"""
    task_id: int
    partition_id: int
    intermediate_files: List[str] = field(default_factory=list)
    status: TaskStatus = TaskStatus.PENDING


@dataclass
class Job:
    """Represents a complete map_reduce run"""
    job_id: str
    source: str
    out: str
    num_documents: int
    num_map_tasks: int
    num_reduce_tasks: int
    use_combiner: bool
    intermediate_dir: str
    output_path: str
    status: JobStatus = JobStatus.PENDING
    map_tasks: List[MapTask] = field(default_factory=list)
    reduce_tasks: List[ReduceTask] = field(default_factory=list)
    error_message: str = ""
    start_time: float = 0.0
    end_time: float = 0.0


class JobManager:
    """Manages all map_reduce jobs and their lifecycle"""

    def __init__(self, max_history: int = None):
        self.jobs: Dict[str, Job] = OrderedDict()
        self.max_history = config.JOB_HISTORY if max_history is None else max_history
        if self.max_history < 1:
            raise ValueError("max_history must be at least 1")
        self.lock = threading.Lock()

    def _evict_finished(self):
        """Drop the oldest finished jobs beyond max_history. Caller holds the lock."""
        finished = [job_id for job_id, job in self.jobs.items()
                    if job.status in (JobStatus.COMPLETED, JobStatus.FAILED)]
        for job_id in finished[:max(0, len(finished) - self.max_history)]:
            del self.jobs[job_id]

    def create_job(self, job_id: str, source: str, out: str, num_documents: int,
                   num_map_tasks: int, num_reduce_tasks: int, use_combiner: bool,
                   intermediate_dir: str, output_path: str) -> Job:
        """
        Create a new job

        The map task count is clamped to [1, num_documents] so no map task is
        handed an empty slice (except when there are no documents at all).
        """
        if num_map_tasks < 1 or num_reduce_tasks < 1:
            raise ValueError("num_map_tasks and num_reduce_tasks must be at least 1")

        with self.lock:
            if job_id in self.jobs:
                raise ValueError(f"Job {job_id} already exists")
            job = Job(
                job_id=job_id,
                source=source,
                out=out,
                num_documents=num_documents,
                num_map_tasks=max(1, min(num_map_tasks, num_documents)),
                num_reduce_tasks=num_reduce_tasks,
                use_combiner=use_combiner,
                intermediate_dir=intermediate_dir,
                output_path=output_path,
                start_time=time.time()
            )
            self.jobs[job.job_id] = job
            return job

    def get_job(self, job_id: str) -> Optional[Job]:
        with self.lock:
            return self.jobs.get(job_id)

    def generate_map_tasks(self, job: Job) -> List[MapTask]:
        """Split the input documents into M contiguous slices"""
        chunk_size, remainder = divmod(job.num_documents, job.num_map_tasks)

        map_tasks = []
        start = 0
        for i in range(job.num_map_tasks):
            # The first `remainder` slices take one extra document
            end = start + chunk_size + (1 if i < remainder else 0)
            map_tasks.append(MapTask(task_id=i, start_index=start, end_index=end))
            start = end

        with self.lock:
            job.map_tasks = map_tasks
            job.status = JobStatus.MAP_PHASE
        logger.info(f"Job {job.job_id} started MAP phase with {len(map_tasks)} tasks")
        return map_tasks

    def generate_reduce_tasks(self, job: Job) -> List[ReduceTask]:
        """Create R reduce tasks with intermediate file assignments"""
        reduce_tasks = []
        for partition_id in range(job.num_reduce_tasks):
            # Find all intermediate files for this partition
            intermediate_pattern = os.path.join(job.intermediate_dir, f"map-*-reduce-{partition_id}.jsonl")
            intermediate_files = sorted(glob.glob(intermediate_pattern))

            reduce_tasks.append(ReduceTask(
                task_id=partition_id,
                partition_id=partition_id,
                intermediate_files=intermediate_files
            ))

        with self.lock:
            job.reduce_tasks = reduce_tasks
        return reduce_tasks

    def get_next_pending_map_task(self, job_id: str) -> Optional[MapTask]:
        """Get next pending map task for assignment"""
        with self.lock:
            job = self.jobs.get(job_id)
            if not job:
                return None

            for task in job.map_tasks:
                if task.status == TaskStatus.PENDING:
                    task.status = TaskStatus.ASSIGNED
                    return task
            return None

    def get_next_pending_reduce_task(self, job_id: str) -> Optional[ReduceTask]:
        """Get next pending reduce task for assignment"""
        with self.lock:
            job = self.jobs.get(job_id)
            if not job:
                return None

            for task in job.reduce_tasks:
                if task.status == TaskStatus.PENDING:
                    task.status = TaskStatus.ASSIGNED
                    return task
            return None

    def mark_map_task_completed(self, job_id: str, task_id: int):
        """Mark map task as completed"""
        with self.lock:
            job = self.jobs.get(job_id)
            if job and task_id < len(job.map_tasks):
                job.map_tasks[task_id].status = TaskStatus.COMPLETED

                # Check if all map tasks completed
                if all(t.status == TaskStatus.COMPLETED for t in job.map_tasks):
                    job.status = JobStatus.REDUCE_PHASE
                    logger.info(f"Job {job_id} started REDUCE phase")

    def mark_reduce_task_completed(self, job_id: str, task_id: int):
        """Mark reduce task as completed. The job completes once its output is written."""
        with self.lock:
            job = self.jobs.get(job_id)
            if job and task_id < len(job.reduce_tasks):
                job.reduce_tasks[task_id].status = TaskStatus.COMPLETED

    def mark_job_completed(self, job_id: str):
        """Mark a job whose output has been written as completed"""
        with self.lock:
            job = self.jobs.get(job_id)
            if not job or job.status == JobStatus.FAILED:
                return
            if not all(t.status == TaskStatus.COMPLETED for t in job.map_tasks + job.reduce_tasks):
                raise ValueError(f"Job {job_id} still has unfinished tasks")
            job.status = JobStatus.COMPLETED
            job.end_time = time.time()
            logger.info(f"Job {job_id} completed successfully")
            self._evict_finished()

    def mark_job_failed(self, job_id: str, error_msg: str):
        """Fail a job for a reason outside any single task"""
        with self.lock:
            self._fail(job_id, error_msg)

    def mark_task_failed(self, job_id: str, task, error_msg: str):
        """Mark a map or reduce task as failed, failing the whole job"""
        with self.lock:
            task.status = TaskStatus.FAILED
            self._fail(job_id, error_msg)

    def _fail(self, job_id: str, error_msg: str):
        job = self.jobs.get(job_id)
        if job and job.status != JobStatus.FAILED:
            job.status = JobStatus.FAILED
            job.error_message = error_msg
            job.end_time = time.time()
            logger.error(f"Job {job_id} failed: {error_msg}")
            self._evict_finished()

    def get_job_status(self, job_id: str) -> Optional[Dict]:
        """Get current job status with progress"""
        with self.lock:
            job = self.jobs.get(job_id)
            if not job:
                return None

            map_completed = sum(1 for t in job.map_tasks if t.status == TaskStatus.COMPLETED)
            reduce_completed = sum(1 for t in job.reduce_tasks if t.status == TaskStatus.COMPLETED)

            # Reduce tasks are only generated after the map phase, so count
            # the planned number rather than the generated one
            total_tasks = job.num_map_tasks + job.num_reduce_tasks
            progress = int((map_completed + reduce_completed) / total_tasks * 100)

            return {
                'status': job.status.value,
                'progress': progress,
                'map_completed': map_completed,
                'map_total': len(job.map_tasks),
                'reduce_completed': reduce_completed,
                'reduce_total': len(job.reduce_tasks),
                'error_message': job.error_message
            }
