import itertools

import numpy as np
import pytest

from sdsearch import QM, QualityMeasure
from sdsearch.splits import ConvexHull, HullPoint, NominalCrossTable, find_best_interval
from sdsearch.splits import find_best_value_set


def brute_force_best_interval(values, positives, calculate):
    """Best quality of all intervals (lower, upper] over split points, except the full range."""

    split_points = np.unique(values)
    lowers = [float('-inf')] + split_points[:-1].tolist()
    uppers = split_points[:-1].tolist() + [float('inf')]
    best_quality = float('-inf')
    for lower, upper in itertools.product(lowers, uppers):
        if lower >= upper or (lower == float('-inf') and upper == float('inf')):
            continue
        members = (values > lower) & (values <= upper)
        quality = calculate(int(np.count_nonzero(positives & members)),
                            int(np.count_nonzero(members)))
        best_quality = max(best_quality, quality)
    return best_quality


@pytest.mark.parametrize('measure', [QM.WRACC, QM.CHI_SQUARED, QM.INFORMATION_GAIN])
@pytest.mark.parametrize('seed', range(8))
def test_best_interval_equals_brute_force(measure, seed):
    rng = np.random.default_rng(seed)
    n_rows = int(rng.integers(20, 201))
    values = rng.integers(0, int(rng.integers(5, 40)), size=n_rows).astype(float)
    # Make the positive ratio depend on the value, so that good intervals exist:
    positives = rng.random(n_rows) < np.where((values > 3) & (values < 12), 0.7, 0.25)
    quality_measure = QualityMeasure(measure, total_coverage=n_rows,
                                     total_target_coverage=int(np.count_nonzero(positives)))
    result = find_best_interval(values, positives, quality_measure.calculate)
    expected = brute_force_best_interval(values, positives, quality_measure.calculate)
    assert result is not None
    interval, quality = result
    assert quality == pytest.approx(expected)
    # The returned interval really has the returned quality:
    members = (values > interval.lower) & (values <= interval.upper)
    assert quality_measure.calculate(int(np.count_nonzero(positives & members)),
                                     int(np.count_nonzero(members))) == pytest.approx(quality)
    assert np.count_nonzero(members) < n_rows


def test_best_interval_ignores_missing_values():
    values = np.array([1.0, 2.0, np.nan, 3.0, 4.0, np.nan])
    positives = np.array([False, True, True, True, False, True])
    quality_measure = QualityMeasure(QM.WRACC, total_coverage=4, total_target_coverage=2)
    interval, quality = find_best_interval(values, positives, quality_measure.calculate)
    assert (interval.lower, interval.upper) == (1.0, 3.0)
    assert quality == pytest.approx(quality_measure.calculate(2, 2))


def test_best_interval_needs_two_class_ratios():
    values = np.array([1.0, 2.0, 3.0, 4.0])
    positives = np.array([True, False, True, False])
    quality_measure = QualityMeasure(QM.WRACC, total_coverage=4, total_target_coverage=2)
    assert find_best_interval(values, positives, quality_measure.calculate) is not None
    assert find_best_interval(values, np.ones(4, dtype=bool), quality_measure.calculate) is None
    assert find_best_interval(np.full(4, 2.0), positives, quality_measure.calculate) is None


def test_minkowski_difference_contains_all_extreme_differences():
    rng = np.random.default_rng(3)
    points_1 = [HullPoint(float(x), float(y), 1.0, 0.0)
                for x, y in rng.integers(0, 20, size=(12, 2))]
    points_2 = [HullPoint(float(x), float(y), 2.0, 0.0)
                for x, y in rng.integers(0, 20, size=(9, 2))]
    difference = ConvexHull(points_1).minkowski_difference(ConvexHull(points_2))
    vertices = {(point.x, point.y) for point in difference.get_vertices()}
    all_differences = [(p.x - q.x, p.y - q.y) for p in points_1 for q in points_2]
    # Extreme points in several directions are hull vertices of the difference:
    for direction in [(1, 0), (0, 1), (-1, 0), (0, -1), (1, 1), (1, -1), (-1, 1), (-1, -1)]:
        best = max(direction[0] * x + direction[1] * y for x, y in all_differences)
        assert any(direction[0] * x + direction[1] * y == best for x, y in vertices)
    assert all(point.label_1 == 1.0 and point.label_2 == 2.0
               for point in difference.get_vertices())


def make_cross_table():
    # Ratios: a 4/5, b 1/5, c 3/5, d 3/5, e 0/4
    values = np.array(['a'] * 5 + ['b'] * 5 + ['c'] * 5 + ['d'] * 5 + ['e'] * 4)
    positives = np.array([True] * 4 + [False] + [True] + [False] * 4 +
                         [True] * 3 + [False] * 2 + [True] * 3 + [False] * 2 + [False] * 4)
    return values, positives


def test_value_set_for_wracc_uses_ratio_threshold():
    values, positives = make_cross_table()
    cross_table = NominalCrossTable(values, positives)
    ratio = np.count_nonzero(positives) / len(positives)
    quality_measure = QualityMeasure(QM.WRACC, total_coverage=len(values),
                                     total_target_coverage=int(np.count_nonzero(positives)))
    value_set = find_best_value_set(cross_table, QM.WRACC, quality_measure.calculate)
    expected = [value for value in np.unique(values)
                if positives[values == value].mean() >= ratio]
    assert list(value_set) == expected == ['a', 'c', 'd']


@pytest.mark.parametrize('measure', [QM.CHI_SQUARED, QM.INFORMATION_GAIN, QM.BINOMIAL,
                                     QM.JACCARD, QM.F_MEASURE, QM.LIFT])
def test_value_set_dominates_ratio_contiguous_subsets(measure):
    values, positives = make_cross_table()
    cross_table = NominalCrossTable(values, positives)
    quality_measure = QualityMeasure(measure, total_coverage=len(values),
                                     total_target_coverage=int(np.count_nonzero(positives)))
    value_set = find_best_value_set(cross_table, measure, quality_measure.calculate)

    def quality_of(value_subset):
        members = np.isin(values, list(value_subset))
        return quality_measure.calculate(int(np.count_nonzero(positives & members)),
                                         int(np.count_nonzero(members)))

    sorted_values = [cross_table.get_value(index)
                     for index in cross_table.get_sorted_domain_indices()]
    assert sorted_values == ['a', 'c', 'd', 'b', 'e']
    # Cuts between 'c' and 'd' would split a run of equal ratios:
    cuts = [1, 3, 4]
    prefixes = [sorted_values[:cut] for cut in cuts]
    suffixes = [sorted_values[cut:] for cut in cuts]
    if measure.is_low_negative() or measure.is_symmetric():
        compared_subsets = prefixes
    else:
        compared_subsets = prefixes + suffixes
    for value_subset in compared_subsets:
        assert quality_of(value_set) >= quality_of(value_subset) - 1e-12


def test_symmetric_measure_prefers_smaller_complement():
    values, positives = make_cross_table()
    cross_table = NominalCrossTable(values, positives)
    quality_measure = QualityMeasure(QM.CHI_SQUARED, total_coverage=len(values),
                                     total_target_coverage=int(np.count_nonzero(positives)))
    value_set = find_best_value_set(cross_table, QM.CHI_SQUARED, quality_measure.calculate)
    assert len(value_set) <= 5 / 2
