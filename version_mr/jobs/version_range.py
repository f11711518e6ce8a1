"""
Highest and lowest version seen for each document_id.

Every emitted value already has the {'max', 'min'} shape the reducer returns,
so partial results can be folded again in any grouping or order.
"""


def map_function(document):
    """
    Map function: emit the version as a one-element range.

    Args:
        document: Source document with 'document_id' and 'version'

    Yields:
        (document_id, {'max': version, 'min': version}) tuple
    """
    version = document['version']
    yield (document['document_id'], {'max': version, 'min': version})


def merge_ranges(ranges):
    """Fold {'max', 'min'} records into one, seeded from the first."""
    ranges = iter(ranges)
    first = next(ranges)
    merged = {'max': first['max'], 'min': first['min']}
    for item in ranges:
        if item['max'] > merged['max']:
            merged['max'] = item['max']
        if item['min'] < merged['min']:
            merged['min'] = item['min']
    return merged


def reduce_function(key, values):
    """
    Reduce function: widest range covering all values.

    Args:
        key: document_id
        values: Emitted or previously reduced {'max', 'min'} records

    Returns:
        Single {'max', 'min'} record
    """
    return merge_ranges(values)


def finalize_function(key, value):
    """Add the distance between the newest and oldest version."""
    return {'max': value['max'], 'min': value['min'], 'spread': value['max'] - value['min']}
