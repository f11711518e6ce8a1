"""
Key helpers shared by the map and reduce executors.
Emitted keys are grouped, partitioned and ordered through their canonical JSON form.
"""

import json
import zlib
from numbers import Number


def canonical_key(key) -> str:
    """Stable string form of an emitted key, used for grouping."""
    return json.dumps(key, sort_keys=True, separators=(',', ':'))


def partition_for(key, num_partitions: int) -> int:
    """
    Route a key to a reduce partition.

    Uses crc32 of the canonical form rather than hash(), so the routing does
    not change between interpreter runs.
    """
    return zlib.crc32(canonical_key(key).encode('utf-8')) % num_partitions


def sort_token(key):
    """Ordering for output records: numbers, then strings, then everything else."""
    if isinstance(key, Number) and not isinstance(key, bool):
        return (0, key, '')
    if isinstance(key, str):
        return (1, 0, key)
    return (2, 0, canonical_key(key))
