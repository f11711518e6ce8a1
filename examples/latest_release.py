"""
Newest release per document: the version number together with the title it
was published under.

Loaded by file path, e.g. map_reduce(db, 'docs', job='examples/latest_release.py', out='latest').
"""


def map_function(document):
    """
    Map function: emit the document's release.

    Args:
        document: Source document with 'document_id', 'version' and optional 'title'

    Yields:
        (document_id, {'version': version, 'title': title}) tuple
    """
    yield (document['document_id'], {'version': document['version'], 'title': document.get('title')})


def reduce_function(key, values):
    """
    Reduce function: keep the release with the highest version.

    Ties keep the release seen first.
    """
    latest = values[0]
    for release in values[1:]:
        if release['version'] > latest['version']:
            latest = release
    return latest
