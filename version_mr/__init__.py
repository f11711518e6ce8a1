"""
Map-reduce toolkit for per-key version aggregation over MongoDB collections.
"""

from version_mr.common.store import get_database
from version_mr.coordinator.map_reduce import map_reduce

__version__ = "0.1.0"

__all__ = ["get_database", "map_reduce"]
