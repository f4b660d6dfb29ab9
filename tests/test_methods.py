import time
import warnings

from loguru import logger
import numpy as np
import pandas as pd
import pytest

from sdsearch import (QM, NumericStrategy, Operator, SearchStrategy, SubgroupDiscovery, Table,
                      TargetConcept, TargetType, TimeLimitWarning, wracc)


class RecordingDiscovery(SubgroupDiscovery):
    """Search remembering every refined subgroup together with its parent's coverage."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.refined = []

    def check_and_log(self, subgroup, parent_coverage):
        self.refined.append((subgroup, parent_coverage))
        super().check_and_log(subgroup, parent_coverage)


class SlowDiscovery(SubgroupDiscovery):
    """Search whose refinements only return after a given point in time."""

    def __init__(self, *args, sleep_until=0.0, **kwargs):
        super().__init__(*args, **kwargs)
        self.sleep_until = sleep_until

    def check_and_log(self, subgroup, parent_coverage):
        super().check_and_log(subgroup, parent_coverage)
        while time.time() <= self.sleep_until:
            time.sleep(0.05)


class FailingDiscovery(SubgroupDiscovery):

    def evaluate_candidate(self, subgroup):
        raise RuntimeError('Evaluation failed.')


def describe(subgroup_set):
    return [(str(subgroup.get_conditions()), subgroup.get_coverage(), subgroup.get_quality())
            for subgroup in subgroup_set]


def test_result_satisfies_coverage_and_quality_gates(demo_table, make_parameters):
    parameters = make_parameters(search_depth=2, search_strategy=SearchStrategy.BREADTH_FIRST,
                                 numeric_strategy=NumericStrategy.NUMERIC_BINS,
                                 minimum_coverage=20, maximum_coverage_fraction=0.5,
                                 quality_measure_minimum=0.01, maximum_subgroups=0)
    subgroup_discovery = RecordingDiscovery(parameters, demo_table)
    results = subgroup_discovery.mine()
    result = subgroup_discovery.get_result()
    assert results['n_subgroups'] == len(result) > 0
    assert results['n_candidates'] == len(subgroup_discovery.refined)
    # Recorded subgroups stay alive, so their ids are unique:
    parent_coverages = {id(subgroup): parent_coverage
                        for subgroup, parent_coverage in subgroup_discovery.refined}
    assert len(parent_coverages) == len(subgroup_discovery.refined)
    assert not results['timed_out']
    assert subgroup_discovery.get_maximum_coverage() == 150
    for subgroup in result:
        assert subgroup.get_quality() > 0.01
        assert 20 <= subgroup.get_coverage() <= 150
        assert subgroup.get_coverage() < parent_coverages[id(subgroup)]
        assert 1 <= subgroup.get_depth() <= 2
        assert np.array_equal(subgroup.get_members(),
                              demo_table.evaluate(subgroup.get_conditions()))
        # No target column in descriptions:
        assert all(condition.get_column().get_name() != 'target'
                   for condition in subgroup.get_conditions())
    assert [subgroup.get_id() for subgroup in result] == list(range(1, len(result) + 1))
    qualities = [subgroup.get_quality() for subgroup in result]
    assert qualities == sorted(qualities, reverse=True)


@pytest.mark.parametrize('search_strategy', list(SearchStrategy))
@pytest.mark.parametrize('numeric_strategy, nominal_sets', [
    (NumericStrategy.NUMERIC_BINS, False), (NumericStrategy.NUMERIC_INTERVALS, True)])
def test_result_independent_of_thread_count(demo_table, make_parameters, search_strategy,
                                            numeric_strategy, nominal_sets):
    parameters = make_parameters(search_depth=2, search_strategy=search_strategy,
                                 search_strategy_width=5, numeric_strategy=numeric_strategy,
                                 nominal_sets=nominal_sets, maximum_subgroups=50)
    expected_description = None
    expected_candidates = None
    for n_threads in [None, 1, 2, 4, 8, 0]:
        subgroup_discovery = SubgroupDiscovery(parameters, demo_table)
        results = subgroup_discovery.mine(n_threads=n_threads)
        description = describe(subgroup_discovery.get_result())
        if expected_description is None:
            expected_description = description
            expected_candidates = results['n_candidates']
        assert description == expected_description
        assert results['n_candidates'] == expected_candidates
    assert 0 < len(expected_description) <= 50


@pytest.mark.parametrize('n_threads', [None, 2])
def test_passed_deadline_stops_search_with_warning(demo_table, make_parameters, n_threads):
    parameters = make_parameters(search_depth=2, maximum_time=1)
    subgroup_discovery = SubgroupDiscovery(parameters, demo_table)
    with pytest.warns(TimeLimitWarning):
        results = subgroup_discovery.mine(begin_time=time.time() - 3600, n_threads=n_threads)
    assert results['timed_out']
    assert results['n_candidates'] == 0
    assert subgroup_discovery.get_result().is_empty()


@pytest.mark.parametrize('n_threads', [None, 2])
def test_search_completed_after_deadline_is_not_timed_out(demo_data, make_parameters, n_threads):
    # Only one refinement (binary "flag"); its children fail the coverage gate:
    table = Table(demo_data[['flag', 'target']])
    parameters = make_parameters(minimum_coverage=300, maximum_time=1)
    begin_time = time.time() - 59
    subgroup_discovery = SlowDiscovery(parameters, table, sleep_until=begin_time + 60)
    with warnings.catch_warnings():
        warnings.simplefilter('error', TimeLimitWarning)
        results = subgroup_discovery.mine(begin_time=begin_time, n_threads=n_threads)
    assert time.time() > begin_time + 60
    assert not results['timed_out']
    assert results['n_candidates'] == 2


@pytest.mark.parametrize('n_threads', [None, 2])
def test_refinement_error_is_raised(demo_table, make_parameters, n_threads):
    subgroup_discovery = FailingDiscovery(make_parameters(search_depth=2), demo_table)
    with pytest.raises(RuntimeError, match='Evaluation failed'):
        subgroup_discovery.mine(n_threads=n_threads)


@pytest.fixture
def threshold_table() -> Table:
    rng = np.random.default_rng(0)
    x = rng.permutation(1000) / 10  # distinct values 0.0 ... 99.9
    return Table(pd.DataFrame({'x': x, 'target': x >= 70}), name='threshold')


def reference_threshold_qualities(table, minimum_coverage):
    # Qualities of all "x <= v" and "x >= v" subgroups passing the coverage gates, from prefix
    # counts over the sorted values:
    x = table.get_column('x').get_values()
    target = table.get_column('target').get_values()
    n_rows = len(x)
    n_positives = int(np.count_nonzero(target))
    cumulative_positives = np.cumsum(target[np.argsort(x)])
    qualities = []
    for i in range(n_rows):
        below_positives = int(cumulative_positives[i - 1]) if i > 0 else 0
        for coverage, positives in [(i + 1, int(cumulative_positives[i])),
                                    (n_rows - i, n_positives - below_positives)]:
            if minimum_coverage <= coverage < n_rows:
                qualities.append(wracc(positives, coverage, n_positives, n_rows))
    return qualities


def test_numeric_all_evaluates_every_threshold(threshold_table, make_parameters):
    parameters = make_parameters(numeric_strategy=NumericStrategy.NUMERIC_ALL,
                                 minimum_coverage=50, maximum_subgroups=0)
    subgroup_discovery = SubgroupDiscovery(parameters, threshold_table)
    results = subgroup_discovery.mine()
    expected = sorted((quality for quality
                       in reference_threshold_qualities(threshold_table, minimum_coverage=50)
                       if quality > 0), reverse=True)
    result = subgroup_discovery.get_result()
    assert results['n_candidates'] == 2000  # two operators times 1000 values
    assert [subgroup.get_quality() for subgroup in result] == pytest.approx(expected)
    assert str(result.get_best().get_conditions()) == "x >= '70'"
    assert result.get_best().get_quality() == pytest.approx(0.21)


def test_numeric_best_keeps_best_threshold_per_operator(threshold_table, make_parameters):
    parameters = make_parameters(numeric_strategy=NumericStrategy.NUMERIC_BEST,
                                 minimum_coverage=50)
    subgroup_discovery = SubgroupDiscovery(parameters, threshold_table)
    results = subgroup_discovery.mine()
    assert results['n_candidates'] == 2
    # All "x <= v" subgroups have negative quality:
    assert describe(subgroup_discovery.get_result()) == [("x >= '70'", 300, pytest.approx(0.21))]


def test_numeric_intervals_at_least_as_good_as_thresholds(demo_table, make_parameters):
    best_quality = {}
    for numeric_strategy in (NumericStrategy.NUMERIC_BEST, NumericStrategy.NUMERIC_INTERVALS):
        subgroup_discovery = SubgroupDiscovery(
            make_parameters(numeric_strategy=numeric_strategy), demo_table)
        subgroup_discovery.mine()
        x_subgroups = [subgroup for subgroup in subgroup_discovery.get_result()
                       if subgroup.get_conditions()[0].get_column().get_name() == 'x']
        best_quality[numeric_strategy] = max(subgroup.get_quality() for subgroup in x_subgroups)
        if numeric_strategy == NumericStrategy.NUMERIC_INTERVALS:
            assert len(x_subgroups) == 1
            assert x_subgroups[0].get_conditions()[0].get_operator() == Operator.BETWEEN
    assert (best_quality[NumericStrategy.NUMERIC_INTERVALS] >=
            best_quality[NumericStrategy.NUMERIC_BEST] - 1e-12)


def test_nominal_sets_use_values_above_overall_ratio(demo_data, demo_table, make_parameters):
    subgroup_discovery = SubgroupDiscovery(make_parameters(nominal_sets=True), demo_table)
    subgroup_discovery.mine()
    color_subgroups = [subgroup for subgroup in subgroup_discovery.get_result()
                       if subgroup.get_conditions()[0].get_column().get_name() == 'color']
    assert len(color_subgroups) == 1
    condition = color_subgroups[0].get_conditions()[0]
    assert condition.get_operator() == Operator.ELEMENT_OF
    color_ratios = demo_data.groupby('color')['target'].mean()
    expected = sorted(color_ratios[color_ratios >= demo_data['target'].mean()].index)
    assert list(condition.get_value()) == expected


def test_cover_based_selection_limits_result(demo_table, make_parameters):
    parameters = make_parameters(search_depth=2,
                                 search_strategy=SearchStrategy.COVER_BASED_BEAM_SELECTION,
                                 search_strategy_width=4, maximum_post_processing_subgroups=3)
    subgroup_discovery = SubgroupDiscovery(parameters, demo_table)
    results = subgroup_discovery.mine()
    result = subgroup_discovery.get_result()
    assert 0 < len(result) <= 3
    assert results['n_subgroups'] > len(result)
    assert [subgroup.get_id() for subgroup in result] == list(range(1, len(result) + 1))


def test_repeated_mining_gives_same_result(demo_table, make_parameters):
    subgroup_discovery = SubgroupDiscovery(make_parameters(search_depth=2), demo_table)
    first_results = subgroup_discovery.mine()
    first_description = describe(subgroup_discovery.get_result())
    second_results = subgroup_discovery.mine()
    assert describe(subgroup_discovery.get_result()) == first_description
    assert first_results['n_candidates'] == second_results['n_candidates']


def test_verbose_search_logs_progress(demo_table, make_parameters):
    messages = []
    sink_id = logger.add(messages.append, level='DEBUG')
    try:
        SubgroupDiscovery(make_parameters(verbose=True), demo_table).mine()
        SubgroupDiscovery(make_parameters(), demo_table).mine()
    finally:
        logger.remove(sink_id)
    assert sum('Number of candidates' in message for message in messages) == 1
    assert any('Candidate ' in message for message in messages)


def test_single_numeric_target(demo_data, demo_table, make_parameters):
    target_concept = TargetConcept(TargetType.SINGLE_NUMERIC, primary_target='y')
    parameters = make_parameters(target_concept, quality_measure=QM.Z_SCORE)
    subgroup_discovery = SubgroupDiscovery(parameters, demo_table)
    subgroup_discovery.mine()
    best = subgroup_discovery.get_result().get_best()
    values = demo_data['y'].to_numpy()[best.get_members()]
    assert best.get_quality() > 0
    assert best.get_secondary_statistic() == pytest.approx(values.mean())
    assert best.get_tertiary_statistic() == pytest.approx(values.std())
    # The numeric target itself is no descriptor:
    assert all(condition.get_column().get_name() != 'y'
               for subgroup in subgroup_discovery.get_result()
               for condition in subgroup.get_conditions())


def test_double_regression_target(demo_data, demo_table, make_parameters):
    target_concept = TargetConcept(TargetType.DOUBLE_REGRESSION, primary_target='x',
                                   secondary_target='y')
    parameters = make_parameters(target_concept, quality_measure=QM.LINEAR_REGRESSION,
                                 minimum_coverage=1)
    subgroup_discovery = SubgroupDiscovery(parameters, demo_table)
    subgroup_discovery.mine()
    # The lowest and highest value of "z" form subgroups too small for a regression line:
    assert subgroup_discovery.get_rank_deficient_count() > 0
    best = subgroup_discovery.get_result().get_best()
    members = best.get_members()
    slope, intercept = np.polyfit(demo_data['x'].to_numpy()[members],
                                  demo_data['y'].to_numpy()[members], deg=1)
    assert np.isfinite(best.get_quality())
    assert best.get_secondary_statistic() == pytest.approx(slope)
    assert best.get_tertiary_statistic() == pytest.approx(intercept)


def test_rank_deficient_count_restarts_with_each_search(demo_table, make_parameters):
    target_concept = TargetConcept(TargetType.DOUBLE_REGRESSION, primary_target='x',
                                   secondary_target='y')
    parameters = make_parameters(target_concept, quality_measure=QM.LINEAR_REGRESSION,
                                 minimum_coverage=1)
    subgroup_discovery = SubgroupDiscovery(parameters, demo_table)
    subgroup_discovery.mine()
    first_count = subgroup_discovery.get_rank_deficient_count()
    subgroup_discovery.mine()
    assert first_count > 0
    assert subgroup_discovery.get_rank_deficient_count() == first_count


def test_double_correlation_target(demo_data, demo_table, make_parameters):
    target_concept = TargetConcept(TargetType.DOUBLE_CORRELATION, primary_target='x',
                                   secondary_target='y')
    parameters = make_parameters(target_concept, quality_measure=QM.CORRELATION_DISTANCE,
                                 minimum_coverage=10)
    subgroup_discovery = SubgroupDiscovery(parameters, demo_table)
    subgroup_discovery.mine()
    best = subgroup_discovery.get_result().get_best()
    members = best.get_members()
    x = demo_data['x'].to_numpy()
    y = demo_data['y'].to_numpy()
    correlation = np.corrcoef(x[members], y[members])[0, 1]
    complement_correlation = np.corrcoef(x[~members], y[~members])[0, 1]
    assert best.get_secondary_statistic() == pytest.approx(correlation)
    assert best.get_quality() == pytest.approx(abs(correlation - complement_correlation))


def test_multi_label_target(demo_table, make_parameters):
    target_concept = TargetConcept(TargetType.MULTI_LABEL, multi_targets=['flag', 'target'])
    parameters = make_parameters(target_concept, quality_measure=QM.WEED, random_seed=0,
                                 post_processing_count=3, maximum_post_processing_subgroups=5)
    subgroup_discovery = SubgroupDiscovery(parameters, demo_table)
    subgroup_discovery.mine()
    result = subgroup_discovery.get_result()
    assert len(result) <= 5
    for subgroup in result:
        assert 0 <= subgroup.get_quality() <= 1
        assert subgroup.get_dag().shape == (2, 2)
        assert all(condition.get_column().get_name() not in ('flag', 'target')
                   for condition in subgroup.get_conditions())


def test_multi_label_post_processing_keeps_input_set(demo_table, make_parameters):
    target_concept = TargetConcept(TargetType.MULTI_LABEL, multi_targets=['flag', 'target'])
    parameters = make_parameters(target_concept, quality_measure=QM.WEED, random_seed=0,
                                 post_processing_count=2, post_processing_do_autorun=False,
                                 maximum_post_processing_subgroups=4)
    subgroup_discovery = SubgroupDiscovery(parameters, demo_table)
    subgroup_discovery.mine()
    result = subgroup_discovery.get_result()
    description = describe(result)
    dags = [subgroup.get_dag() for subgroup in result]
    post_processed = subgroup_discovery.get_target_evaluator().post_process(result)
    assert 0 < len(post_processed) <= 4
    assert describe(result) == description
    assert all(subgroup.get_dag() is dag for subgroup, dag in zip(result, dags))
    assert all(subgroup is not original for subgroup in post_processed for original in result)
    qualities = [subgroup.get_quality() for subgroup in post_processed]
    assert qualities == sorted(qualities, reverse=True)


def test_target_columns_need_fitting_types(demo_table, make_parameters):
    with pytest.raises(ValueError):
        SubgroupDiscovery(make_parameters(TargetConcept(
            TargetType.MULTI_LABEL, multi_targets=['flag', 'color']),
            quality_measure=QM.EDIT_DISTANCE), demo_table)
    with pytest.raises(ValueError):
        SubgroupDiscovery(make_parameters(TargetConcept(
            TargetType.SINGLE_NUMERIC, primary_target='color'), quality_measure=QM.AVERAGE),
            demo_table)
    with pytest.raises(ValueError):  # non-binary nominal target without target value
        SubgroupDiscovery(make_parameters(TargetConcept(
            TargetType.SINGLE_NOMINAL, primary_target='color')), demo_table)
    subgroup_discovery = SubgroupDiscovery(make_parameters(TargetConcept(
        TargetType.SINGLE_NOMINAL, primary_target='color', target_value='blue')), demo_table)
    n_blue = np.count_nonzero(demo_table.get_column('color').get_values() == 'blue')
    assert subgroup_discovery.get_quality_measure().get_total_target_coverage() == n_blue
