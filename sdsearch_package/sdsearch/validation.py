"""Statistical validation

Functionality to assess the significance of mined subgroups: quality distributions of random
subgroups, random descriptions, and swap-randomized datasets, thresholds derived from them, and
the regression test comparing the best mined subgroups with random ones.

Literature
----------
Duivesteijn & Knobbe (2011): "Exploiting False Discoveries -- Statistical Validation of Patterns
and Quality Measures in Subgroup Discovery"
"""


import dataclasses
from typing import Dict, Optional, Sequence

import numpy as np
from scipy import stats

from .conditions import Condition, ConditionList, Operator
from .data import Column, Table
from .methods import SubgroupDiscovery
from .parameters import SearchParameters
from .subgroups import Subgroup, SubgroupSet
from .targets import create_target_evaluator


MAX_ATTEMPTS = 10000  # random draws per repetition before giving up
MAX_SWAP_ATTEMPTS = 100  # searches per swap-randomization repetition before giving up
SIGNIFICANCE_LEVELS = (0.01, 0.05, 0.1)


class Validation:
    """Randomization-based validation of a search setting

    All methods return the qualities of `n` random samples as :class:`np.ndarray`, computed with
    the same target evaluator as the search. Random draws use a generator seeded with the
    `random_seed` of the search parameters.
    """

    def __init__(self, parameters: SearchParameters, table: Table):
        self._parameters = parameters
        self._table = table
        self._nr_rows = table.get_nr_rows()
        self._maximum_coverage = int(self._nr_rows * parameters.maximum_coverage_fraction)
        self._rng = np.random.default_rng(parameters.random_seed)

    def random_subgroups(self, n: int) -> np.ndarray:
        """Qualities of subgroups with uniformly drawn sizes and uniformly drawn rows

        Sizes below the minimum coverage are rejected and drawn again (the size never equals the
        number of rows).
        """

        target_evaluator = create_target_evaluator(self._parameters, self._table)
        qualities = np.zeros(n)
        for i in range(n):
            for _ in range(MAX_ATTEMPTS):
                size = int(self._rng.integers(self._nr_rows))
                if size >= self._parameters.minimum_coverage:
                    break
            else:
                raise RuntimeError('Could not draw a subgroup size satisfying the minimum'
                                   ' coverage.')
            subgroup = Subgroup(self._table.get_random_members(size, self._rng))
            qualities[i] = target_evaluator.evaluate(subgroup)
        return qualities

    def random_conditions(self, n: int) -> np.ndarray:
        """Qualities of random subgroup descriptions

        Each description has a random depth between 1 and the search depth; each condition uses a
        random non-target column (nominal: equals a random domain value; binary: equals a random
        bool; numeric: `<=` or `>=` a value drawn uniformly from the middle half of the column's
        range). Descriptions with a coverage outside the coverage bounds are rejected.
        """

        target_evaluator = create_target_evaluator(self._parameters, self._table)
        target_columns = set(self._parameters.target_concept.get_target_columns())
        columns = [column for column in self._table.get_columns()
                   if column.is_enabled() and column.get_name() not in target_columns]
        if not columns:
            raise ValueError('Random conditions need at least one non-target column.')
        qualities = np.zeros(n)
        for i in range(n):
            for _ in range(MAX_ATTEMPTS):
                conditions = self._get_random_condition_list(columns)
                members = self._table.evaluate(conditions)
                coverage = np.count_nonzero(members)
                if self._parameters.minimum_coverage <= coverage <= self._maximum_coverage:
                    break
            else:
                raise RuntimeError('Could not draw a description satisfying the coverage'
                                   ' bounds.')
            if self._parameters.verbose:
                self._parameters.logger.debug(f'Random description: {conditions}')
            qualities[i] = target_evaluator.evaluate(Subgroup(members, conditions=conditions))
        return qualities

    def _get_random_condition_list(self, columns: Sequence[Column]) -> ConditionList:
        conditions = ConditionList()
        depth = int(self._rng.integers(1, self._parameters.search_depth + 1))
        for _ in range(depth):
            column = columns[int(self._rng.integers(len(columns)))]
            if column.is_binary_type():
                condition = Condition(column, Operator.EQUALS)
                condition.set_value(bool(self._rng.integers(2)))
            elif column.is_nominal_type():
                condition = Condition(column, Operator.EQUALS)
                domain = column.get_domain()
                condition.set_value(domain[int(self._rng.integers(len(domain)))])
            else:
                operator = (Operator.LESS_THAN_OR_EQUAL if self._rng.integers(2) == 0
                            else Operator.GREATER_THAN_OR_EQUAL)
                condition = Condition(column, operator)
                minimum = column.get_min()
                maximum = column.get_max()
                condition.set_value(minimum + (maximum - minimum) / 4 +
                                    (maximum - minimum) * self._rng.random() / 2)
            conditions.add_condition(condition)
        return conditions

    def swap_randomization(self, n: int, n_threads: Optional[int] = None) -> np.ndarray:
        """Qualities of the best subgroups found on swap-randomized datasets

        For each repetition, permutes the target column(s) jointly, runs the complete search, and
        keeps the quality of the best subgroup. Repetitions finding no subgroup are repeated. The
        original target columns are restored afterwards, also if the search failed.

        Parameters
        ----------
        n : int
            Number of repetitions.
        n_threads : Optional[int], optional
            Passed to :meth:`SubgroupDiscovery.mine`.
        """

        # Inner searches run silently; the caller's configuration is not changed:
        parameters = dataclasses.replace(self._parameters, verbose=False)
        target_columns = parameters.target_concept.get_target_columns()
        qualities = np.zeros(n)
        for i in range(n):
            for _ in range(MAX_SWAP_ATTEMPTS):
                with self._table.permuted_columns(target_columns, self._rng):
                    subgroup_discovery = SubgroupDiscovery(parameters, self._table)
                    subgroup_discovery.mine(n_threads=n_threads)
                result = subgroup_discovery.get_result()
                if not result.is_empty():
                    break
            else:
                raise RuntimeError('Swap randomization did not find any subgroup.')
            qualities[i] = result.get_best().get_quality()
            if self._parameters.verbose:
                self._parameters.logger.info(f'Swap randomization {i + 1}/{n}: best quality'
                                             f' {qualities[i]:.6g}')
        return qualities

    def perform_regression_test(self, qualities: Sequence[float], k: int,
                                subgroup_set: SubgroupSet) -> float:
        """Regression test of the top-k subgroups against random qualities

        Rescales the random qualities and the mean quality of the `k` best subgroups of
        `subgroup_set` to [0, 1], fits a least-squares line through the sorted random qualities
        (at x-values `i / n`) and the top-k mean (at x = 1), and compares the top-k mean with the
        line's value at x = 1.

        Returns
        -------
        float
            Rescaled top-k mean minus the regression line at x = 1; positive values indicate that
            the best subgroups stand out from the random ones. 0 if all qualities are equal.
        """

        if not 0 < k <= len(subgroup_set):
            raise ValueError('k needs to be between 1 and the number of subgroups.')
        top_k_quality = float(np.mean([subgroup_set[i].get_quality() for i in range(k)]))
        qualities = np.sort(np.asarray(qualities, dtype=float))
        n_random = len(qualities)
        minimum = min(float(qualities[0]), top_k_quality)
        maximum = max(float(qualities[-1]), top_k_quality)
        if maximum == minimum:
            return 0.0
        qualities = (qualities - minimum) / (maximum - minimum)
        top_k_quality = (top_k_quality - minimum) / (maximum - minimum)
        x = np.append(np.arange(n_random) / n_random, 1.0)
        y = np.append(qualities, top_k_quality)
        x_mean = x.mean()
        y_mean = y.mean()
        beta1 = float(((x - x_mean) * (y - y_mean)).sum() / ((x - x_mean) ** 2).sum())
        beta0 = y_mean - beta1 * x_mean
        score = top_k_quality - beta1 - beta0
        if self._parameters.verbose:
            self._parameters.logger.info(f'Fitted regression line: y = {beta1:.6g} * x +'
                                         f' {beta0:.6g}; regression test score: {score:.6g}')
        return score


class NormalDistribution:
    """Normal distribution fitted to a sample of qualities."""

    def __init__(self, qualities: Sequence[float]):
        qualities = np.asarray(qualities, dtype=float)
        qualities = qualities[np.isfinite(qualities)]
        if len(qualities) == 0:
            raise ValueError('Need at least one finite quality.')
        self._mean = float(qualities.mean())
        self._std = float(qualities.std(ddof=1)) if len(qualities) > 1 else 0.0

    def get_mean(self) -> float:
        return self._mean

    def get_std(self) -> float:
        return self._std

    def get_threshold(self, level: float) -> float:
        """Get the quality exceeded by random subgroups with probability `level` (one-sided)."""

        if not 0 < level < 1:
            raise ValueError('Significance level needs to be in (0, 1).')
        if self._std == 0:
            return self._mean
        return float(stats.norm.ppf(1 - level, loc=self._mean, scale=self._std))

    def get_thresholds(self) -> Dict[float, float]:
        """Get the thresholds at the significance levels 1%, 5%, and 10%."""

        return {level: self.get_threshold(level) for level in SIGNIFICANCE_LEVELS}

    def __repr__(self) -> str:
        return f'NormalDistribution(mean={self._mean:.6g}, std={self._std:.6g})'
