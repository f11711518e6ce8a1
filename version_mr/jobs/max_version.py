"""
Highest version seen for each document_id.
"""


def map_function(document):
    """Emit (document_id, version)."""
    yield (document['document_id'], document['version'])


def reduce_function(key, values):
    """Largest of the values; also valid on its own earlier output."""
    return max(values)
