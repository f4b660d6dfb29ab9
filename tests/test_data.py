import numpy as np
import pandas as pd
import pytest

from sdsearch import ColumnType, Table


def test_column_types_are_inferred():
    table = Table(pd.DataFrame({
        'flag': [True, False, True],
        'dummy': [0, 1, 1],
        'number': [0.5, 1.0, 2.0],
        'name': ['a', 'b', 'a']
    }))
    assert [column.get_type() for column in table.get_columns()] == [
        ColumnType.BINARY, ColumnType.BINARY, ColumnType.NUMERIC, ColumnType.NOMINAL]
    assert [column.get_index() for column in table.get_columns()] == [0, 1, 2, 3]


def test_explicit_column_types_override_inference():
    table = Table(pd.DataFrame({'code': [0, 1, 1, 0]}), column_types={'code': 'nominal'})
    column = table.get_column('code')
    assert column.is_nominal_type()
    assert column.get_domain() == ['0', '1']


def test_unknown_column_raises(demo_table):
    with pytest.raises(ValueError):
        demo_table.get_column('unknown')
    assert demo_table.has_column('x')
    assert not demo_table.has_column('unknown')


def test_column_values_are_read_only(demo_table):
    with pytest.raises(ValueError):
        demo_table.get_column('x').get_values()[0] = 1.0


def test_domain_restricted_to_members():
    table = Table(pd.DataFrame({'value': [3.0, 1.0, np.nan, 2.0, 3.0],
                                'name': ['b', 'a', 'c', 'a', 'b']}))
    members = np.array([True, False, True, True, True])
    assert table.get_column('value').get_domain(members) == [2.0, 3.0]
    assert table.get_column('name').get_domain(members) == ['a', 'b', 'c']
    assert table.get_column('value').get_min() == 1.0
    assert table.get_column('value').get_max() == 3.0


def test_split_points_are_equal_frequency():
    table = Table(pd.DataFrame({'value': np.arange(1.0, 11.0)}))
    column = table.get_column('value')
    members = np.ones(10, dtype=bool)
    # Positions 10 * (j + 1) // 4 = 2, 5, 7 of the sorted values:
    assert column.get_split_points(members, 3).tolist() == [3.0, 6.0, 8.0]
    assert len(column.get_split_points(np.zeros(10, dtype=bool), 3)) == 0


def test_statistics_of_members():
    table = Table(pd.DataFrame({'value': [1.0, 2.0, 3.0, 10.0]}))
    members = np.array([True, True, True, False])
    statistics = table.get_column('value').get_statistics(members, need_median=True)
    assert statistics.coverage == 3
    assert statistics.sum == pytest.approx(6.0)
    assert statistics.sum_squared_deviations == pytest.approx(2.0)
    assert statistics.median == pytest.approx(2.0)
    assert statistics.median_absolute_deviation == pytest.approx(1.0)
    empty_statistics = table.get_column('value').get_statistics(np.zeros(4, dtype=bool))
    assert empty_statistics.coverage == 0


def test_random_members_have_requested_size(demo_table):
    members = demo_table.get_random_members(42, np.random.default_rng(0))
    assert members.dtype == bool
    assert np.count_nonzero(members) == 42


def test_permuted_columns_are_restored(demo_table):
    original_target = demo_table.get_column('target').get_values().copy()
    original_x = demo_table.get_column('x').get_values().copy()
    with demo_table.permuted_columns(['target', 'x'], np.random.default_rng(0)):
        permuted_target = demo_table.get_column('target').get_values()
        assert np.count_nonzero(permuted_target) == np.count_nonzero(original_target)
        assert not np.array_equal(demo_table.get_column('x').get_values(), original_x)
    assert np.array_equal(demo_table.get_column('target').get_values(), original_target)
    assert np.array_equal(demo_table.get_column('x').get_values(), original_x)


def test_permuted_columns_are_restored_after_exception(demo_table):
    original_x = demo_table.get_column('x').get_values().copy()
    with pytest.raises(RuntimeError):
        with demo_table.permuted_columns(['x'], np.random.default_rng(0)):
            raise RuntimeError('Search failed.')
    assert np.array_equal(demo_table.get_column('x').get_values(), original_x)
