"""
Runtime configuration for the map-reduce command.

Values come from the environment, falling back to the defaults below.
Arguments passed to map_reduce() take precedence over both.
"""

import os
import logging
import tempfile

# Configuration from environment
DATA_DIR = os.getenv('MAPREDUCE_DATA_DIR', os.path.join(tempfile.gettempdir(), 'version-mapreduce'))
NUM_MAP_TASKS = int(os.getenv('MAPREDUCE_NUM_MAP_TASKS', 4))
NUM_REDUCE_TASKS = int(os.getenv('MAPREDUCE_NUM_REDUCE_TASKS', 2))
REDUCE_BATCH_SIZE = int(os.getenv('MAPREDUCE_REDUCE_BATCH_SIZE', 1000))
MAX_WORKERS = int(os.getenv('MAPREDUCE_MAX_WORKERS', 4))
LOG_LEVEL = os.getenv('MAPREDUCE_LOG_LEVEL', 'INFO')
MONGO_URI = os.getenv('MAPREDUCE_MONGO_URI', 'mongodb://localhost:27017')
MONGO_DB = os.getenv('MAPREDUCE_MONGO_DB', 'version_mapreduce')
# Finished jobs kept for get_job_status() and get_metrics()
JOB_HISTORY = int(os.getenv('MAPREDUCE_JOB_HISTORY', 100))

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def intermediate_dir(job_id: str, data_dir: str = None) -> str:
    """Directory holding the map output of one job."""
    return os.path.join(data_dir or DATA_DIR, 'intermediate', job_id)


def staging_dir(job_id: str, data_dir: str = None) -> str:
    """Directory holding the reduce output of one job before it is loaded."""
    return os.path.join(data_dir or DATA_DIR, 'output', job_id)


def configure_logging(level: str = None):
    """Set up root logging for scripts. Library code never calls this."""
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO),
        format=LOG_FORMAT
    )
