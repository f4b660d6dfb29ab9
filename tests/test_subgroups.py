import numpy as np
import pandas as pd
import pytest

from sdsearch import Condition, Operator, SearchStrategy, Subgroup, SubgroupSet, Table
from sdsearch.subgroups import select_cover_based


def make_subgroup(members, quality):
    subgroup = Subgroup(np.asarray(members, dtype=bool))
    subgroup.set_quality(quality)
    return subgroup


def test_add_condition_restricts_members(demo_table):
    root = Subgroup(np.ones(demo_table.get_nr_rows(), dtype=bool))
    condition = Condition(demo_table.get_column('x'), Operator.LESS_THAN_OR_EQUAL)
    condition.set_value(50.0)
    child = root.copy()
    child.add_condition(condition)
    assert child.get_depth() == 1
    assert root.get_depth() == 0
    assert root.get_coverage() == demo_table.get_nr_rows()
    assert child.get_coverage() == np.count_nonzero(child.get_members())
    assert child.get_coverage() < root.get_coverage()
    assert not (child.get_members() & ~root.get_members()).any()
    assert np.array_equal(child.get_members(), demo_table.evaluate(condition))


def test_members_are_read_only():
    subgroup = make_subgroup([True, False], 0.0)
    with pytest.raises(ValueError):
        subgroup.get_members()[1] = True


def test_set_keeps_best_subgroups_up_to_bound():
    rng = np.random.default_rng(7)
    subgroup_set = SubgroupSet(max_size=10, nr_rows=50)
    discarded = []
    for _ in range(200):
        members = rng.random(50) < 0.5
        subgroup = make_subgroup(members, rng.normal())
        if not subgroup_set.add(subgroup):
            discarded.append(subgroup)
        assert len(subgroup_set) <= 10
    qualities = [subgroup.get_quality() for subgroup in subgroup_set]
    assert qualities == sorted(qualities, reverse=True)
    assert min(qualities) >= max(subgroup.get_quality() for subgroup in discarded)


def test_set_orders_ties_by_coverage_and_rejects_duplicates():
    subgroup_set = SubgroupSet(max_size=0, nr_rows=4)
    small = make_subgroup([True, False, False, False], 0.5)
    large = make_subgroup([True, True, False, False], 0.5)
    assert subgroup_set.add(small)
    assert subgroup_set.add(large)
    assert not subgroup_set.add(make_subgroup([True, True, False, False], 0.5))
    assert list(subgroup_set) == [large, small]
    subgroup_set.set_ids()
    assert [subgroup.get_id() for subgroup in subgroup_set] == [1, 2]
    assert subgroup_set.get_best() is large
    assert subgroup_set.get_worst() is small


def test_nan_quality_sorts_last():
    subgroup_set = SubgroupSet()
    subgroup_set.add(make_subgroup([True, False], float('nan')))
    subgroup_set.add(make_subgroup([True, False], -1.0))
    assert subgroup_set.get_best().get_quality() == -1.0


def test_rates_relative_to_binary_target():
    subgroup_set = SubgroupSet(nr_rows=4, binary_target=np.array([True, True, False, False]))
    subgroup = make_subgroup([True, False, True, True], 0.1)
    subgroup_set.add(subgroup)
    assert subgroup.get_true_positive_rate() == pytest.approx(0.5)
    assert subgroup.get_false_positive_rate() == pytest.approx(1.0)
    assert subgroup_set.get_roc_points() == [(1.0, 0.5)]
    assert subgroup_set.get_total_target_coverage() == 2


def test_rates_with_zero_denominators():
    subgroup_set = SubgroupSet(nr_rows=3, binary_target=np.array([True, True, True]))
    subgroup = make_subgroup([True, False, True], 0.1)
    subgroup_set.add(subgroup)
    assert subgroup.get_false_positive_rate() == 0.0
    subgroup_set = SubgroupSet(nr_rows=3, binary_target=np.array([False, False, False]))
    subgroup = make_subgroup([True, False, True], 0.1)
    subgroup_set.add(subgroup)
    assert subgroup.get_true_positive_rate() == 0.0


def test_rates_need_binary_target():
    subgroup = make_subgroup([True, False], 0.1)
    with pytest.raises(ValueError):
        subgroup.get_true_positive_rate()


def test_to_frame(demo_table):
    subgroup_set = SubgroupSet(nr_rows=demo_table.get_nr_rows())
    condition = Condition(demo_table.get_column('color'), Operator.EQUALS)
    condition.set_value('red')
    subgroup = Subgroup(np.ones(demo_table.get_nr_rows(), dtype=bool))
    subgroup.add_condition(condition)
    subgroup.set_quality(0.2)
    subgroup_set.add(subgroup)
    subgroup_set.set_ids()
    frame = subgroup_set.to_frame()
    assert isinstance(frame, pd.DataFrame)
    assert frame.loc[0, 'conditions'] == "color = 'red'"
    assert frame.loc[0, 'coverage'] == subgroup.get_coverage()
    assert frame.loc[0, 'id'] == 1
    assert SubgroupSet().to_frame().empty


def test_cover_based_selection_prefers_diverse_subgroups():
    first = make_subgroup([True, True, True, False, False, False], 1.0)
    overlapping = make_subgroup([True, True, True, False, False, False], 0.99)
    disjoint = make_subgroup([False, False, False, True, True, True], 0.95)
    assert select_cover_based([first, overlapping, disjoint], 2, 6) == [0, 2]


def test_post_process_only_for_cover_based_strategy():
    subgroup_set = SubgroupSet(max_size=3, nr_rows=4)
    for quality in (0.3, 0.2, 0.1):
        subgroup_set.add(make_subgroup([True, True, False, False], quality))
    assert subgroup_set.post_process(SearchStrategy.BEAM, 1) is subgroup_set
    selected = subgroup_set.post_process(SearchStrategy.COVER_BASED_BEAM_SELECTION, 2)
    assert len(selected) == 2
    assert selected.get_best().get_quality() == 0.3


def test_table_evaluate_matches_conditions():
    table = Table(pd.DataFrame({'a': [1.0, 2.0, 3.0], 'b': ['u', 'v', 'u']}))
    a_condition = Condition(table.get_column('a'), Operator.GREATER_THAN_OR_EQUAL)
    a_condition.set_value(2.0)
    b_condition = Condition(table.get_column('b'), Operator.EQUALS)
    b_condition.set_value('u')
    assert table.evaluate([a_condition, b_condition]).tolist() == [False, False, True]
