"""
Correctness validation tests
Runs the version jobs end to end and checks the output collection
"""

import mongomock
import pytest


class TestVersionRangeCorrectness:
    """The {max, min} recipe over the sample documents"""

    def test_version_range_per_document(self, db, coordinator):
        response = coordinator.run(db, 'docs', job='version_mr.jobs.version_range', out='version_ranges')

        assert response['ok'] == 1.0
        assert response['result'] == 'version_ranges'
        assert list(db['version_ranges'].find()) == [
            {'_id': 'Resume', 'value': {'max': 6, 'min': 6}},
            {'_id': 'Schema', 'value': {'max': 1, 'min': 0.9}},
            {'_id': 'mongoDB How-To', 'value': {'max': 1.1, 'min': 1}},
        ]

    def test_counts(self, db, coordinator):
        response = coordinator.run(db, 'docs', job='version_mr.jobs.version_range', out='version_ranges',
                                   num_map_tasks=1, use_combiner=False)

        # Two keys have two values each, Resume has one and is never reduced
        assert response['counts'] == {'input': 5, 'emit': 5, 'reduce': 2, 'output': 3}
        assert response['timeMillis'] >= 0

    def test_finalize_from_job(self, db, coordinator):
        coordinator.run(db, 'docs', job='version_mr.jobs.version_range', out='version_ranges',
                        finalize_function=True)

        record = db['version_ranges'].find_one({'_id': 'mongoDB How-To'})
        assert record['value']['spread'] == pytest.approx(0.1)


class TestScalarCorrectness:
    """Max and min versions as bare numbers"""

    def test_max_version(self, db, coordinator):
        coordinator.run(db, 'docs', job='version_mr.jobs.max_version', out='max_versions')

        values = {r['_id']: r['value'] for r in db['max_versions'].find()}
        assert values == {'mongoDB How-To': 1.1, 'Schema': 1, 'Resume': 6}

    def test_min_version(self, db, coordinator):
        coordinator.run(db, 'docs', job='version_mr.jobs.min_version', out='min_versions')

        values = {r['_id']: r['value'] for r in db['min_versions'].find()}
        assert values == {'mongoDB How-To': 1, 'Schema': 0.9, 'Resume': 6}

    def test_single_document_key_is_not_reduced(self, coordinator):
        calls = []

        def map_fn(document):
            yield (document['document_id'], document['version'])

        def reduce_fn(key, values):
            calls.append(key)
            return max(values)

        database = mongomock.MongoClient()['single']
        database['docs'].insert_one({'document_id': 'Resume', 'version': 6})
        response = coordinator.run(database, 'docs', map_fn, reduce_fn, out='max_versions')

        assert list(database['max_versions'].find()) == [{'_id': 'Resume', 'value': 6}]
        assert calls == []
        assert response['counts']['reduce'] == 0


class TestFileJobCorrectness:
    """Jobs loaded from a file path"""

    def test_latest_release(self, db, coordinator, latest_release_job_file):
        response = coordinator.run(db, 'docs', job=latest_release_job_file, out={'inline': 1})

        latest = {r['_id']: r['value'] for r in response['results']}
        assert latest['mongoDB How-To'] == {'version': 1.1, 'title': 'How-To (revised)'}
        assert latest['Schema'] == {'version': 1, 'title': 'Schema'}
        assert latest['Resume'] == {'version': 6, 'title': 'Resume'}
