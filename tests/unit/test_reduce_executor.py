"""
Unit tests for ReduceExecutor and tree_reduce
"""

import os
import json
from unittest.mock import Mock

import pytest

from version_mr.worker.function_loader import FunctionLoader
from version_mr.worker.reduce_executor import ReduceExecutor, tree_reduce
from version_mr.jobs import version_range


def _write_intermediate(path, pairs):
    with open(path, 'w') as f:
        for key, value in pairs:
            f.write(json.dumps({'key': key, 'value': value}) + '\n')
    return path


def _read_output(path):
    with open(path, 'r') as f:
        return [json.loads(line) for line in f if line.strip()]


def _executor(files, temp_dir, loader=None, batch_size=1000, finalize_function=None):
    return ReduceExecutor(
        task_id=0,
        partition_id=0,
        intermediate_files=files,
        loader=loader or FunctionLoader('version_mr.jobs.max_version'),
        output_path=os.path.join(temp_dir, 'output'),
        job_id='test-job',
        batch_size=batch_size,
        finalize_function=finalize_function
    )


class TestTreeReduce:
    """Tests for batched repeated reduction"""

    def test_single_value_is_returned_without_calls(self):
        reduce_fn = Mock()
        value, calls = tree_reduce(reduce_fn, 'k', [6], batch_size=2)

        assert value == 6
        assert calls == 0
        reduce_fn.assert_not_called()

    def test_batches_are_bounded(self):
        seen_sizes = []

        def reduce_fn(key, values):
            seen_sizes.append(len(values))
            return max(values)

        value, calls = tree_reduce(reduce_fn, 'k', list(range(10)), batch_size=3)

        assert value == 9
        assert max(seen_sizes) <= 3
        # 10 values -> 4 partials (3 calls) -> 2 partials (1 call) -> 1 (1 call)
        assert calls == len(seen_sizes) == 5

    def test_reducer_sees_its_own_output(self):
        ranges = [{'max': v, 'min': v} for v in [3, 1, 4, 1, 5, 9, 2, 6]]
        value, _ = tree_reduce(version_range.reduce_function, 'k', ranges, batch_size=2)

        assert value == {'max': 9, 'min': 1}

    def test_rejects_batch_size_below_two(self):
        with pytest.raises(ValueError):
            tree_reduce(max, 'k', [1, 2], batch_size=1)

    def test_rejects_empty_values(self):
        with pytest.raises(ValueError):
            tree_reduce(max, 'k', [], batch_size=2)


class TestReduceExecutorGrouping:
    """Tests for key grouping functionality"""

    def test_groups_values_across_files(self, temp_dir):
        file1 = _write_intermediate(os.path.join(temp_dir, 'map-0-reduce-0.jsonl'),
                                    [('Schema', 0.9), ('Resume', 6)])
        file2 = _write_intermediate(os.path.join(temp_dir, 'map-1-reduce-0.jsonl'),
                                    [('Schema', 1)])

        key_groups = _executor([file1, file2], temp_dir)._read_and_group_intermediate()

        assert key_groups['"Schema"'] == ('Schema', [0.9, 1])
        assert key_groups['"Resume"'] == ('Resume', [6])

    def test_handles_missing_intermediate_files(self, temp_dir):
        key_groups = _executor(['/nonexistent/file.jsonl'], temp_dir)._read_and_group_intermediate()
        assert key_groups == {}

    def test_skips_malformed_lines(self, temp_dir):
        path = os.path.join(temp_dir, 'map-0-reduce-0.jsonl')
        with open(path, 'w') as f:
            f.write(json.dumps({'key': 'a', 'value': 1}) + '\n')
            f.write('not json\n')
            f.write(json.dumps({'missing': 'key_field'}) + '\n')
            f.write(json.dumps({'key': 'b', 'value': 2}) + '\n')

        executor = _executor([path], temp_dir)
        key_groups = executor._read_and_group_intermediate()

        assert len(key_groups) == 2
        assert executor.lines_skipped == 2


class TestReduceExecutorExecution:
    """Tests for overall execution"""

    def test_reduces_and_sorts_output(self, temp_dir):
        path = _write_intermediate(os.path.join(temp_dir, 'map-0-reduce-0.jsonl'),
                                   [('Schema', 0.9), ('Resume', 6), ('Schema', 1),
                                    ('mongoDB How-To', 1), ('mongoDB How-To', 1.1)])

        result = _executor([path], temp_dir).execute()

        assert result['success'] is True
        assert result['error_message'] == ''
        assert result['output_count'] == 3
        assert result['reduce_count'] == 2
        assert _read_output(result['output_file']) == [
            {'_id': 'Resume', 'value': 6},
            {'_id': 'Schema', 'value': 1},
            {'_id': 'mongoDB How-To', 'value': 1.1},
        ]

    def test_single_value_key_skips_reduce(self, temp_dir):
        path = _write_intermediate(os.path.join(temp_dir, 'map-0-reduce-0.jsonl'), [('Resume', 6)])
        reduce_fn = Mock(return_value=-1)
        loader = FunctionLoader.from_callables(lambda doc: [], reduce_fn)

        result = _executor([path], temp_dir, loader=loader).execute()

        assert result['success'] is True
        assert _read_output(result['output_file']) == [{'_id': 'Resume', 'value': 6}]
        reduce_fn.assert_not_called()

    def test_finalize_applies_to_every_key(self, temp_dir):
        path = _write_intermediate(os.path.join(temp_dir, 'map-0-reduce-0.jsonl'),
                                   [('Resume', {'max': 6, 'min': 6}),
                                    ('Schema', {'max': 0.9, 'min': 0.9}),
                                    ('Schema', {'max': 1, 'min': 1})])

        result = _executor([path], temp_dir,
                           loader=FunctionLoader('version_mr.jobs.version_range'),
                           finalize_function=version_range.finalize_function).execute()

        output = {r['_id']: r['value'] for r in _read_output(result['output_file'])}
        assert output['Resume'] == {'max': 6, 'min': 6, 'spread': 0}
        assert output['Schema']['spread'] == pytest.approx(0.1)

    def test_creates_output_directory_if_not_exists(self, temp_dir):
        path = _write_intermediate(os.path.join(temp_dir, 'map-0-reduce-0.jsonl'), [('a', 1)])
        output_path = os.path.join(temp_dir, 'output')
        assert not os.path.exists(output_path)

        result = _executor([path], temp_dir).execute()

        assert result['success'] is True
        assert os.path.exists(output_path)

    def test_execution_failure_returns_error_result(self, temp_dir):
        path = _write_intermediate(os.path.join(temp_dir, 'map-0-reduce-0.jsonl'), [('a', 1), ('a', 2)])

        def reduce_error(key, values):
            raise ValueError("Test error")

        loader = FunctionLoader.from_callables(lambda doc: [], reduce_error)
        result = _executor([path], temp_dir, loader=loader).execute()

        assert result['success'] is False
        assert 'Test error' in result['error_message']
        assert result['output_file'] == ''
