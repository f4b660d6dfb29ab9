"""Target evaluators

Classes scoring subgroups for the different kinds of target concepts. Each evaluator holds the
dataset-wide statistics of its target, computes the quality of a subgroup from the subgroup's
membership, and stores the target-specific statistics on the subgroup. Use
:func:`create_target_evaluator` to obtain the evaluator fitting the search parameters.
"""


from abc import ABCMeta, abstractmethod
import math
import threading
from typing import Any, Optional

import numpy as np

from .conditions import Condition, Operator
from .data import Column, Table
from .dependency import DependencyGraphLearner
from .metrics import (CorrelationMeasure, QualityMeasure, QM, RegressionMeasure, edit_distance,
                      entropy)
from .parameters import SearchParameters, TargetType
from .splits import QualityFunction
from .subgroups import Subgroup, SubgroupSet


class TargetEvaluator(metaclass=ABCMeta):
    """Target evaluator

    The abstract base class for scoring subgroups. Subclasses implement :meth:`evaluate`, which
    computes the quality of a subgroup and sets its secondary and tertiary statistic. Evaluations
    whose statistical model cannot be fitted (e.g., too few rows) yield a quality of `-inf` and are
    counted (:meth:`get_rank_deficient_count`). All methods may be called from multiple threads.
    """

    def __init__(self, parameters: SearchParameters, table: Table):
        self._parameters = parameters
        self._table = table
        self._nr_rows = table.get_nr_rows()
        self._quality_measure = None
        self._rank_deficient_count = 0
        self._lock = threading.Lock()

    @abstractmethod
    def evaluate(self, subgroup: Subgroup) -> float:
        """Evaluate a subgroup

        Should compute the quality of the subgroup and set its secondary and tertiary statistic
        (meaning depends on the target type). Should not set the quality itself.

        Raises
        ------
        NotImplementedError
            Always raised since abstract method (specific to the target type).

        Returns
        -------
        float
            The quality of the subgroup.
        """

        raise NotImplementedError('Abstract method.')

    def get_quality_measure(self) -> Any:
        """Get the object computing qualities (its type depends on the target type)."""

        return self._quality_measure

    def get_binary_target(self) -> Optional[np.ndarray]:
        """Get the boolean array of positive rows (only for single nominal targets)."""

        return None

    def get_quality_function(self) -> Optional[QualityFunction]:
        """Get the count-based quality function used by the optimal split searches, if any."""

        return None

    def get_rank_deficient_count(self) -> int:
        return self._rank_deficient_count

    def reset_rank_deficient_count(self) -> None:
        with self._lock:
            self._rank_deficient_count = 0

    def post_process(self, subgroup_set: SubgroupSet) -> SubgroupSet:
        """Post-process the result of a search (returns it unchanged unless overridden)."""

        return subgroup_set

    def _count_rank_deficient(self) -> None:
        with self._lock:
            self._rank_deficient_count += 1


class SingleNominalTarget(TargetEvaluator):
    """Evaluator for a single nominal (or binary) target with one positive value."""

    def __init__(self, parameters: SearchParameters, table: Table):
        super().__init__(parameters, table)
        target_concept = parameters.target_concept
        column = table.get_column(target_concept.primary_target)
        target_value = target_concept.target_value
        if target_value is None:
            if not column.is_binary_type():
                raise ValueError('A non-binary nominal target needs a target value.')
            target_value = True
        condition = Condition(column, Operator.EQUALS)
        condition.set_value(target_value)
        self._binary_target = column.evaluate(condition)
        self._binary_target.flags.writeable = False
        self._quality_measure = QualityMeasure(
            parameters.quality_measure, total_coverage=self._nr_rows,
            total_target_coverage=int(np.count_nonzero(self._binary_target)))

    def evaluate(self, subgroup: Subgroup) -> float:
        coverage = subgroup.get_coverage()
        n_positives = int(np.count_nonzero(self._binary_target & subgroup.get_members()))
        subgroup.set_secondary_statistic(n_positives / coverage if coverage > 0 else 0.0)
        subgroup.set_tertiary_statistic(n_positives)
        return self._quality_measure.calculate(n_positives, coverage)

    def get_binary_target(self) -> np.ndarray:
        return self._binary_target

    def get_quality_function(self) -> QualityFunction:
        return self._quality_measure.calculate


class SingleNumericTarget(TargetEvaluator):
    """Evaluator for a single numeric target; statistics are the mean and standard deviation."""

    def __init__(self, parameters: SearchParameters, table: Table):
        super().__init__(parameters, table)
        self._column = _get_numeric_column(table, parameters.target_concept.primary_target)
        self._need_median = parameters.quality_measure == QM.MMAD
        statistics = self._column.get_statistics(np.ones(self._nr_rows, dtype=bool),
                                                 need_median=self._need_median)
        self._quality_measure = QualityMeasure(
            parameters.quality_measure, total_coverage=self._nr_rows,
            total_average=statistics.sum / self._nr_rows,
            total_ssd=statistics.sum_squared_deviations, total_median=statistics.median)

    def evaluate(self, subgroup: Subgroup) -> float:
        statistics = self._column.get_statistics(subgroup.get_members(),
                                                 need_median=self._need_median)
        if statistics.coverage > 0:
            subgroup.set_secondary_statistic(statistics.sum / statistics.coverage)
            subgroup.set_tertiary_statistic(
                math.sqrt(statistics.sum_squared_deviations / statistics.coverage))
        return self._quality_measure.calculate_numeric(
            coverage=statistics.coverage, total=statistics.sum,
            sum_squared_deviations=statistics.sum_squared_deviations, median=statistics.median,
            median_absolute_deviation=statistics.median_absolute_deviation)


class DoubleRegressionTarget(TargetEvaluator):
    """Evaluator for the regression of the secondary on the primary target column

    Statistics are the slope and intercept of the subgroup's regression line.
    """

    def __init__(self, parameters: SearchParameters, table: Table):
        super().__init__(parameters, table)
        target_concept = parameters.target_concept
        x = _get_numeric_column(table, target_concept.primary_target).get_values()
        y = _get_numeric_column(table, target_concept.secondary_target).get_values()
        self._quality_measure = RegressionMeasure(parameters.quality_measure, x=x, y=y)

    def evaluate(self, subgroup: Subgroup) -> float:
        quality, slope, intercept = self._quality_measure.evaluate(subgroup.get_members())
        subgroup.set_secondary_statistic(slope)
        subgroup.set_tertiary_statistic(intercept)
        if quality == float('-inf'):
            self._count_rank_deficient()
        return quality


class DoubleCorrelationTarget(TargetEvaluator):
    """Evaluator for the correlation between two numeric target columns

    Statistics are the correlation in the subgroup and its distance to the complement's one.
    """

    def __init__(self, parameters: SearchParameters, table: Table):
        super().__init__(parameters, table)
        target_concept = parameters.target_concept
        self._x = _get_numeric_column(table, target_concept.primary_target).get_values()
        self._y = _get_numeric_column(table, target_concept.secondary_target).get_values()
        self._quality_measure = CorrelationMeasure(parameters.quality_measure, x=self._x,
                                                   y=self._y)

    def evaluate(self, subgroup: Subgroup) -> float:
        members = subgroup.get_members()
        correlation_measure = self._quality_measure.create_child()
        correlation_measure.add_observations(self._x[members], self._y[members])
        quality = correlation_measure.get_evaluation_measure_value()
        subgroup.set_secondary_statistic(correlation_measure.get_correlation())
        subgroup.set_tertiary_statistic(correlation_measure.compute_correlation_distance())
        if quality == float('-inf'):
            self._count_rank_deficient()
        return quality


class MultiLabelTarget(TargetEvaluator):
    """Evaluator for a multi-label target (several binary columns)

    Learns a dependency graph over the target columns for each subgroup and compares it with the
    graph of the whole dataset. Statistics are the edit distance between both graphs and the
    entropy of the subgroup/complement split.

    Literature
    ----------
    Duivesteijn et al. (2010): "Subgroup Discovery meets Bayesian networks -- an Exceptional Model
    Mining approach"
    """

    def __init__(self, parameters: SearchParameters, table: Table):
        super().__init__(parameters, table)
        columns = [table.get_column(name) for name in parameters.target_concept.multi_targets]
        for column in columns:
            if not column.is_binary_type():
                raise ValueError(f'Multi-label target column "{column.get_name()}" needs to be'
                                 ' binary.')
        self._data = np.column_stack([column.get_values() for column in columns])
        self._learner = DependencyGraphLearner(alpha=parameters.alpha, beta=parameters.beta)
        self._quality_measure = QualityMeasure(parameters.quality_measure,
                                               total_coverage=self._nr_rows,
                                               base_dag=self._learner.learn(self._data))

    def evaluate(self, subgroup: Subgroup) -> float:
        dag = self._learner.learn(self._data[subgroup.get_members()])
        subgroup.set_dag(dag)
        subgroup.set_secondary_statistic(edit_distance(dag, self._quality_measure.get_base_dag()))
        subgroup.set_tertiary_statistic(entropy(subgroup.get_coverage() / self._nr_rows))
        return self._quality_measure.calculate_multi_label(dag, subgroup.get_coverage())

    def post_process(self, subgroup_set: SubgroupSet) -> SubgroupSet:
        """Re-score the best subgroups with bootstrapped graphs

        Learns `post_processing_count` graphs on bootstrap samples of the whole dataset and, for
        each of the `maximum_post_processing_subgroups` best subgroups, as many graphs on
        bootstrap samples of the subgroup. The new quality is the average over all pairs of
        subgroup graph and dataset graph.

        Returns
        -------
        SubgroupSet
            A new set with re-scored copies of the subgroups, ordered by their new quality. The
            input set is not modified.
        """

        parameters = self._parameters
        if subgroup_set.is_empty():
            return subgroup_set
        rng = np.random.default_rng(parameters.random_seed)
        n_graphs = parameters.post_processing_count
        measures = [QualityMeasure(parameters.quality_measure, total_coverage=self._nr_rows,
                                   base_dag=self._learner.learn(self._data, rng=rng))
                    for _ in range(n_graphs)]
        result = SubgroupSet(max_size=subgroup_set.get_max_size(),
                             nr_rows=subgroup_set.get_nr_rows(),
                             binary_target=subgroup_set.get_binary_target())
        for original in list(subgroup_set)[:parameters.maximum_post_processing_subgroups]:
            # Members of a set must not change, so re-score a copy:
            subgroup = original.copy()
            subgroup_data = self._data[subgroup.get_members()]
            total_quality = 0.0
            for _ in range(n_graphs):
                dag = self._learner.learn(subgroup_data, rng=rng)
                subgroup.set_dag(dag)
                for measure in measures:
                    total_quality += measure.calculate_multi_label(dag, subgroup.get_coverage())
            subgroup.set_quality(total_quality / n_graphs ** 2)
            result.add(subgroup)
        if parameters.verbose:
            parameters.logger.info(f'Post-processed {len(result)} subgroups.')
        return result


def _get_numeric_column(table: Table, name: str) -> Column:
    column = table.get_column(name)
    if not column.is_numeric_type():
        raise ValueError(f'Target column "{name}" needs to be numeric.')
    return column


def create_target_evaluator(parameters: SearchParameters, table: Table) -> TargetEvaluator:
    """Create the evaluator for the target type of the search parameters

    Raises
    ------
    ValueError
        If a target column does not exist or has the wrong type.
    """

    target_type = parameters.target_concept.target_type
    if target_type == TargetType.SINGLE_NOMINAL:
        return SingleNominalTarget(parameters, table)
    if target_type == TargetType.SINGLE_NUMERIC:
        return SingleNumericTarget(parameters, table)
    if target_type == TargetType.DOUBLE_REGRESSION:
        return DoubleRegressionTarget(parameters, table)
    if target_type == TargetType.DOUBLE_CORRELATION:
        return DoubleCorrelationTarget(parameters, table)
    if target_type == TargetType.MULTI_LABEL:
        return MultiLabelTarget(parameters, table)
    raise ValueError(f'Unknown target type "{target_type}".')
