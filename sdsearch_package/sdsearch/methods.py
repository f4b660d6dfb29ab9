"""Subgroup-discovery search

The search driver: refines candidate subgroups level by level (or in the order of another search
strategy), scores the refinements with the target evaluator, and collects the best subgroups in a
bounded result set. The search can run in the calling thread or in a pool of worker threads.

Literature
----------
Klösgen (1996): "Explora: A Multipattern and Multistrategy Discovery Assistant"
Meeng & Knobbe (2021): "For real: a thorough look at numeric attributes in subgroup discovery"
"""


import concurrent.futures
import os
import threading
import time
from typing import Any, Dict, Optional
import warnings

import numpy as np

from .candidate_queue import CandidateQueue
from .conditions import Operator
from .data import Table
from .parameters import NumericStrategy, SearchParameters
from .refinement import Refinement, RefinementList
from .splits import NominalCrossTable, find_best_interval, find_best_value_set
from .subgroups import Candidate, Subgroup, SubgroupSet
from .targets import TargetEvaluator, create_target_evaluator


class TimeLimitWarning(UserWarning):
    """Issued once per search that stopped because its time limit passed."""


class SubgroupDiscovery:
    """Subgroup-discovery search

    Starts from the subgroup containing all rows and repeatedly refines candidates from the
    candidate queue by one more condition. Each refinement passes two gates: it is only scored if
    its coverage is smaller than its parent's and at least the minimum coverage, and it only enters
    the result set if its quality is above the quality minimum and its coverage at most the
    maximum coverage. Every scored refinement becomes a candidate itself; candidates are refined
    until they reach the search depth.

    Literature
    ----------
    Atzmueller (2015): "Subgroup discovery"
    """

    def __init__(self, parameters: SearchParameters, table: Table):
        """Initialize search

        Parameters
        ----------
        parameters : SearchParameters
            Target concept and search settings.
        table : Table
            The dataset. Must contain the target column(s).

        Raises
        ------
        ValueError
            If a target column is missing or has a type not fitting the target type.
        """

        self._parameters = parameters
        self._table = table
        self._nr_rows = table.get_nr_rows()
        self._logger = parameters.logger
        self._target_evaluator = create_target_evaluator(parameters, table)
        self._minimum_coverage = parameters.minimum_coverage
        self._maximum_coverage = int(self._nr_rows * parameters.maximum_coverage_fraction)
        self._result = self._create_result_set()
        self._candidate_queue = None
        self._candidate_count = 0
        self._count_lock = threading.Lock()
        self._end_time = float('inf')
        self._timed_out = False
        self._task_error = None

    def _create_result_set(self) -> SubgroupSet:
        return SubgroupSet(max_size=self._parameters.maximum_subgroups, nr_rows=self._nr_rows,
                           binary_target=self._target_evaluator.get_binary_target())

    def mine(self, begin_time: Optional[float] = None,
             n_threads: Optional[int] = None) -> Dict[str, Any]:
        """Run the search

        Parameters
        ----------
        begin_time : Optional[float], optional
            Start of the time budget (as :func:`time.time`); defaults to now. The search stops
            refining once `begin_time + 60 * maximum_time` has passed and issues a
            :class:`TimeLimitWarning`.
        n_threads : Optional[int], optional
            `None` runs the search in the calling thread, `0` uses one worker thread per CPU, a
            positive number uses that many worker threads.

        Raises
        ------
        Exception
            The first exception raised while refining a candidate (multi-threaded search stops
            dispatching candidates and re-raises it once all running refinements finished).

        Returns
        -------
        Dict[str, Any]
            Meta-data about the search: `n_candidates`, `n_subgroups` (found by the search,
            before post-processing), `mining_time` (seconds), and `timed_out`.
        """

        parameters = self._parameters
        start_time = time.perf_counter()
        if begin_time is None:
            begin_time = time.time()
        self._end_time = float('inf')
        if parameters.maximum_time > 0:
            self._end_time = begin_time + 60 * parameters.maximum_time
        self._result = self._create_result_set()
        self._candidate_count = 0
        self._target_evaluator.reset_rank_deficient_count()
        self._timed_out = False
        self._task_error = None
        self._candidate_queue = CandidateQueue(parameters.search_strategy,
                                               width=parameters.search_strategy_width,
                                               nr_rows=self._nr_rows)
        root = Subgroup(np.ones(self._nr_rows, dtype=bool), subgroup_set=self._result)
        self._candidate_queue.add(Candidate(root))
        if n_threads == 0:
            n_threads = os.cpu_count() or 1
        if parameters.verbose:
            self._logger.info(f'Mining "{self._table.get_name()}" with'
                              f' {parameters.quality_measure.label}, depth'
                              f' {parameters.search_depth}, {parameters.search_strategy.value}'
                              f' search, {n_threads or 1} thread(s).')
        if n_threads is None:
            self._mine_single_threaded()
        else:
            self._mine_multi_threaded(n_threads)
        if self._timed_out:
            warnings.warn(f'Time limit of {parameters.maximum_time} minute(s) reached; the'
                          ' result contains the subgroups found so far.', TimeLimitWarning,
                          stacklevel=2)
        if parameters.verbose:
            self._logger.info(f'Number of candidates: {self._candidate_count}')
            rank_deficient_count = self.get_rank_deficient_count()
            if rank_deficient_count > 0:
                self._logger.info(f'Rank-deficient models: {rank_deficient_count}')
            self._logger.info(f'Number of subgroups: {len(self._result)}')
        n_subgroups = len(self._result)
        self._post_process()
        end_time = time.perf_counter()
        return {'n_candidates': self._candidate_count, 'n_subgroups': n_subgroups,
                'mining_time': end_time - start_time, 'timed_out': self._timed_out}

    def _post_process(self) -> None:
        parameters = self._parameters
        self._result.set_ids()
        if parameters.post_processing_do_autorun:
            self._result = self._target_evaluator.post_process(self._result)
        self._result = self._result.post_process(
            parameters.search_strategy, parameters.maximum_post_processing_subgroups)
        # Order may have changed and subgroups may have been removed:
        self._result.set_ids()

    def _mine_single_threaded(self) -> None:
        while True:
            candidate = self._candidate_queue.remove_first()
            if candidate is None or self._is_past_deadline():
                break
            self._refine_candidate(candidate)

    def _mine_multi_threaded(self, n_threads: int) -> None:
        # The dispatcher holds one permit while waiting for a candidate, so at most `n_threads`
        # candidates are refined or waited for at any time:
        candidate_queue = self._candidate_queue
        permits = threading.BoundedSemaphore(n_threads)
        with concurrent.futures.ThreadPoolExecutor(max_workers=n_threads,
                                                   thread_name_prefix='sdsearch') as executor:
            try:
                while True:
                    permits.acquire()
                    candidate = candidate_queue.take(self._end_time)
                    if candidate is None:
                        permits.release()
                        break
                    future = executor.submit(self._refine_task, candidate, permits)
                    future.add_done_callback(self._handle_task_result)
            except KeyboardInterrupt:
                self._logger.warning('Search interrupted; waiting for running refinements.')
                candidate_queue.close()
                raise
        if self._task_error is not None:
            raise self._task_error
        if candidate_queue.is_expired():
            self._timed_out = True

    def _refine_task(self, candidate: Candidate, permits: threading.BoundedSemaphore) -> None:
        try:
            self._refine_candidate(candidate)
        finally:
            self._candidate_queue.task_done()
            permits.release()

    def _handle_task_result(self, future: concurrent.futures.Future) -> None:
        if future.cancelled() or future.exception() is None:
            return
        with self._count_lock:
            if self._task_error is None:
                self._task_error = future.exception()
                self._logger.error(f'Refinement failed: {self._task_error!r}')
        self._candidate_queue.close()

    def _is_past_deadline(self) -> bool:
        if time.time() > self._end_time:
            self._timed_out = True
            return True
        return False

    def _refine_candidate(self, candidate: Candidate) -> None:
        subgroup = candidate.get_subgroup()
        if subgroup.get_depth() >= self._parameters.search_depth:
            return
        for refinement in RefinementList(subgroup, self._table, self._parameters):
            if self._is_past_deadline():
                break
            condition = refinement.get_condition()
            # Numeric EQUALS refinements are treated like nominal ones:
            if (condition.get_column().is_numeric_type() and
                    condition.get_operator() != Operator.EQUALS):
                self._evaluate_numeric_refinements(refinement)
            else:
                self._evaluate_nominal_binary_refinements(refinement)

    def _evaluate_numeric_refinements(self, refinement: Refinement) -> None:
        subgroup = refinement.get_subgroup()
        parent_coverage = subgroup.get_coverage()
        column = refinement.get_condition().get_column()
        members = subgroup.get_members()
        numeric_strategy = self._parameters.numeric_strategy
        if numeric_strategy == NumericStrategy.NUMERIC_ALL:
            for split_point in column.get_unique_numeric_domain(members):
                self.check_and_log(refinement.get_refined_subgroup(float(split_point)),
                                   parent_coverage)
        elif numeric_strategy == NumericStrategy.NUMERIC_BINS:
            split_points = column.get_split_points(members, self._parameters.nr_bins - 1)
            for j, split_point in enumerate(split_points):
                if j == 0 or split_point != split_points[j - 1]:
                    self.check_and_log(refinement.get_refined_subgroup(float(split_point)),
                                       parent_coverage)
        elif numeric_strategy == NumericStrategy.NUMERIC_BEST:
            best_quality = float('-inf')
            best_subgroup = None
            for split_point in column.get_unique_numeric_domain(members):
                refined_subgroup = refinement.get_refined_subgroup(float(split_point))
                coverage = refined_subgroup.get_coverage()
                if (self._minimum_coverage <= coverage < parent_coverage and
                        coverage <= self._maximum_coverage):
                    quality = self.evaluate_candidate(refined_subgroup)
                    if quality > best_quality:  # first maximum wins
                        best_quality = quality
                        best_subgroup = refined_subgroup
            if best_subgroup is not None:
                self.check_and_log(best_subgroup, parent_coverage)
        else:
            result = find_best_interval(column.get_values()[members],
                                        self._target_evaluator.get_binary_target()[members],
                                        self._target_evaluator.get_quality_function())
            if result is not None:
                self.check_and_log(refinement.get_refined_subgroup(result[0]), parent_coverage)

    def _evaluate_nominal_binary_refinements(self, refinement: Refinement) -> None:
        subgroup = refinement.get_subgroup()
        parent_coverage = subgroup.get_coverage()
        column = refinement.get_condition().get_column()
        members = subgroup.get_members()
        if refinement.get_condition().get_operator() == Operator.ELEMENT_OF:
            cross_table = NominalCrossTable(column.get_values()[members],
                                            self._target_evaluator.get_binary_target()[members])
            value_set = find_best_value_set(cross_table, self._parameters.quality_measure,
                                            self._target_evaluator.get_quality_function())
            if value_set is not None:
                self.check_and_log(refinement.get_refined_subgroup(value_set), parent_coverage)
        else:
            for value in column.get_domain(members):
                self.check_and_log(refinement.get_refined_subgroup(value), parent_coverage)

    def check_and_log(self, subgroup: Subgroup, parent_coverage: int) -> None:
        """Score a refined subgroup and collect it if it is good enough

        Subgroups whose coverage is not smaller than `parent_coverage` or below the minimum
        coverage are dropped without scoring. Other subgroups are scored, added to the result set
        if their quality exceeds the quality minimum and their coverage is at most the maximum
        coverage, and become candidates for further refinement in any case. Every call counts as
        one candidate.
        """

        coverage = subgroup.get_coverage()
        if self._minimum_coverage <= coverage < parent_coverage:
            quality = self.evaluate_candidate(subgroup)
            subgroup.set_quality(quality)
            if (quality > self._parameters.quality_measure_minimum and
                    coverage <= self._maximum_coverage):
                self._result.add(subgroup)
            self._candidate_queue.add(Candidate(subgroup))
            if self._parameters.verbose:
                self._logger.debug(f'Candidate {subgroup.get_conditions()} (coverage'
                                   f' {coverage}, quality {quality:.6g})')
        with self._count_lock:
            self._candidate_count += 1

    def evaluate_candidate(self, subgroup: Subgroup) -> float:
        """Compute the quality of a subgroup (also sets its secondary and tertiary statistic)."""

        return self._target_evaluator.evaluate(subgroup)

    def get_result(self) -> SubgroupSet:
        return self._result

    def get_quality_measure(self) -> Any:
        return self._target_evaluator.get_quality_measure()

    def get_target_evaluator(self) -> TargetEvaluator:
        return self._target_evaluator

    def get_candidate_count(self) -> int:
        return self._candidate_count

    def get_rank_deficient_count(self) -> int:
        return self._target_evaluator.get_rank_deficient_count()

    def get_maximum_coverage(self) -> int:
        return self._maximum_coverage
