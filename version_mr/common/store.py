"""
MongoDB access for the map_reduce command.
Connects to the configured database, selects the command's input and moves
collections to and from JSON-lines files.
"""

import json
import logging
from typing import List, Optional

from pymongo import MongoClient

from version_mr import config

logger = logging.getLogger(__name__)

ASCENDING = 1
DESCENDING = -1


def get_database(uri: str = None, name: str = None):
    """
    Open a database on the configured MongoDB server.

    Args:
        uri: Connection string, MAPREDUCE_MONGO_URI by default
        name: Database name, MAPREDUCE_MONGO_DB by default
    """
    client = MongoClient(uri or config.MONGO_URI)
    return client[name or config.MONGO_DB]


def normalize_sort(sort) -> List[tuple]:
    """Turn a field name or a list of fields / (field, 1 | -1) pairs into pymongo sort keys."""
    if sort is None:
        return []
    if isinstance(sort, str):
        return [(sort, ASCENDING)]
    normalized = []
    for item in sort:
        if isinstance(item, str):
            normalized.append((item, ASCENDING))
        else:
            field, direction = item
            if direction not in (ASCENDING, DESCENDING):
                raise ValueError(f"Sort direction must be 1 or -1, got {direction!r}")
            normalized.append((field, direction))
    return normalized


def select_documents(db, source: str, query: Optional[dict] = None, sort=None,
                     limit: Optional[int] = None) -> List[dict]:
    """
    Read the input of a map_reduce run.

    Args:
        db: pymongo Database
        source: Collection name
        query: Filter document passed to find()
        sort: See normalize_sort()
        limit: Maximum number of documents (None or 0 for no limit)

    Returns:
        The selected documents, empty when the collection does not exist
    """
    if limit is not None and limit < 0:
        raise ValueError(f"limit must not be negative, got {limit}")
    sort_keys = normalize_sort(sort)

    if source not in db.list_collection_names():
        logger.warning(f"Source collection {source} does not exist, mapping no documents")
        return []

    cursor = db[source].find(query or {})
    if sort_keys:
        cursor = cursor.sort(sort_keys)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def load_jsonl(collection, path: str, batch_size: int = 1000) -> int:
    """Insert documents from a JSON-lines file. Returns the number loaded."""
    loaded = 0
    batch = []
    with open(path, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            batch.append(json.loads(line))
            if len(batch) >= batch_size:
                collection.insert_many(batch)
                loaded += len(batch)
                batch = []
    if batch:
        collection.insert_many(batch)
        loaded += len(batch)
    logger.info(f"Loaded {loaded} documents into {collection.name} from {path}")
    return loaded


def dump_jsonl(collection, path: str) -> int:
    """Write every document of a collection to a JSON-lines file. Returns the number written."""
    written = 0
    with open(path, 'w', encoding='utf-8') as f:
        for doc in collection.find():
            f.write(json.dumps(doc, default=str) + '\n')
            written += 1
    return written
