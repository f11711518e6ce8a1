"""
Pytest configuration and shared fixtures
"""

import os
import shutil
import tempfile

import mongomock
import pytest

from version_mr.coordinator.map_reduce import MapReduceCoordinator

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


@pytest.fixture
def temp_dir():
    """Create temporary directory for test files"""
    dirpath = tempfile.mkdtemp()
    yield dirpath
    shutil.rmtree(dirpath)


@pytest.fixture
def sample_documents():
    """Versioned documents from the max/min version recipe"""
    return [
        {'document_id': 'mongoDB How-To', 'version': 1, 'title': 'How-To'},
        {'document_id': 'mongoDB How-To', 'version': 1.1, 'title': 'How-To (revised)'},
        {'document_id': 'Schema', 'version': 0.9, 'title': 'Schema draft'},
        {'document_id': 'Schema', 'version': 1, 'title': 'Schema'},
        {'document_id': 'Resume', 'version': 6, 'title': 'Resume'},
    ]


@pytest.fixture
def db(sample_documents):
    """In-process MongoDB database with the recipe documents in the 'docs' collection"""
    database = mongomock.MongoClient()['recipes']
    database['docs'].insert_many([dict(doc) for doc in sample_documents])
    return database


@pytest.fixture
def coordinator(temp_dir):
    """Coordinator writing its intermediate data under a temp dir"""
    return MapReduceCoordinator(data_dir=temp_dir, max_workers=2)


@pytest.fixture
def latest_release_job_file():
    """Path to the file-based example job"""
    return os.path.join(PROJECT_ROOT, 'examples', 'latest_release.py')
