"""
Unit tests for the max/min version jobs
"""

import random

import pytest

from version_mr.jobs import max_version, min_version, version_range


def _emit_all(job, documents):
    return [pair for doc in documents for pair in job.map_function(doc)]


class TestMapFunctions:
    """Each document emits exactly one (document_id, value) pair"""

    def test_scalar_jobs_emit_version(self):
        doc = {'document_id': 'Schema', 'version': 0.9, 'title': 'ignored'}
        assert list(max_version.map_function(doc)) == [('Schema', 0.9)]
        assert list(min_version.map_function(doc)) == [('Schema', 0.9)]

    def test_range_job_emits_range(self):
        doc = {'document_id': 'Resume', 'version': 6}
        assert list(version_range.map_function(doc)) == [('Resume', {'max': 6, 'min': 6})]

    def test_map_does_not_modify_document(self):
        doc = {'document_id': 'Resume', 'version': 6, 'tags': ['cv']}
        list(version_range.map_function(doc))
        assert doc == {'document_id': 'Resume', 'version': 6, 'tags': ['cv']}


class TestScalarReduce:
    """max/min over any non-empty value set"""

    @pytest.mark.parametrize('seed', range(5))
    def test_matches_builtin_max_and_min(self, seed):
        rng = random.Random(seed)
        values = [round(rng.uniform(0, 10), 2) for _ in range(rng.randint(2, 40))]

        assert max_version.reduce_function('k', values) == max(values)
        assert min_version.reduce_function('k', values) == min(values)

    def test_variable_arity(self):
        assert max_version.reduce_function('k', [1, 1.1]) == 1.1
        assert max_version.reduce_function('k', [3, 9, 2, 7, 1]) == 9
        assert min_version.reduce_function('k', [3, 9, 2, 7, 1]) == 1

    def test_reapplication_to_own_output(self):
        values = [4, 8, 1, 6]
        partial = [max_version.reduce_function('k', values[:2]), max_version.reduce_function('k', values[2:])]
        assert max_version.reduce_function('k', partial) == max_version.reduce_function('k', values)


class TestRangeReduce:
    """The {max, min} fold is associative and commutative"""

    def test_recipe_scenarios(self):
        assert version_range.reduce_function(
            'mongoDB How-To', [{'max': 1, 'min': 1}, {'max': 1.1, 'min': 1.1}]) == {'max': 1.1, 'min': 1}
        assert version_range.reduce_function(
            'Schema', [{'max': 0.9, 'min': 0.9}, {'max': 1, 'min': 1}]) == {'max': 1, 'min': 0.9}

    @pytest.mark.parametrize('seed', range(10))
    def test_merge_of_partition_folds_equals_whole_fold(self, seed):
        rng = random.Random(seed)
        documents = [{'document_id': 'k', 'version': rng.randint(0, 1000) / 10}
                     for _ in range(rng.randint(2, 30))]
        values = [value for _, value in _emit_all(version_range, documents)]
        rng.shuffle(values)
        split = rng.randint(1, len(values) - 1)
        a, b = values[:split], values[split:]

        whole = version_range.reduce_function('k', values)
        merged = version_range.reduce_function('k', [version_range.reduce_function('k', a),
                                                     version_range.reduce_function('k', b)])

        assert merged == whole
        assert whole == {'max': max(d['version'] for d in documents),
                         'min': min(d['version'] for d in documents)}

    def test_order_does_not_matter(self):
        values = [{'max': v, 'min': v} for v in [5, 2, 8, 3]]
        assert version_range.reduce_function('k', values) == \
            version_range.reduce_function('k', list(reversed(values)))

    def test_idempotent_on_single_reduced_value(self):
        reduced = {'max': 1.1, 'min': 1}
        assert version_range.reduce_function('k', [reduced]) == reduced

    def test_does_not_mutate_inputs(self):
        values = [{'max': 1, 'min': 1}, {'max': 2, 'min': 2}]
        version_range.reduce_function('k', values)
        assert values == [{'max': 1, 'min': 1}, {'max': 2, 'min': 2}]
