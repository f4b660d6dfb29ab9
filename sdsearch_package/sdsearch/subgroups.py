"""Subgroups and result sets

Classes for nodes of the search lattice (:class:`Subgroup`), the bounded, ordered, thread-safe
collection of the best subgroups found (:class:`SubgroupSet`), and queue entries
(:class:`Candidate`), plus cover-based selection of diverse subgroups.
"""


import bisect
import math
import threading
from typing import Any, Iterator, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .conditions import Condition, ConditionList
from .parameters import SearchStrategy


COVER_WEIGHT = 0.9  # multiplicative weight per time a row is already covered


class Subgroup:
    """Subgroup of a dataset

    A node of the search lattice: a conjunction of conditions together with the boolean membership
    array of the rows satisfying it (owned by the subgroup, cloned on :meth:`copy`), the coverage,
    the depth, the quality, and two further statistics whose meaning depends on the target type.
    A subgroup is only mutated (:meth:`add_condition`, setters) before it is inserted into a
    :class:`SubgroupSet`.
    """

    def __init__(self, members: np.ndarray, conditions: Optional[ConditionList] = None,
                 subgroup_set: Optional['SubgroupSet'] = None):
        self._members = np.array(members, dtype=bool)
        self._coverage = int(np.count_nonzero(self._members))
        self._conditions = ConditionList() if conditions is None else conditions
        self._depth = len(self._conditions)
        self._quality = 0.0
        self._secondary_statistic = float('nan')
        self._tertiary_statistic = float('nan')
        self._dag = None
        self._id = 0
        self._parent_set = subgroup_set

    def copy(self) -> 'Subgroup':
        result = Subgroup.__new__(Subgroup)
        result._members = self._members.copy()
        result._coverage = self._coverage
        result._conditions = self._conditions.copy()
        result._depth = self._depth
        result._quality = self._quality
        result._secondary_statistic = self._secondary_statistic
        result._tertiary_statistic = self._tertiary_statistic
        result._dag = self._dag
        result._id = 0
        result._parent_set = self._parent_set
        return result

    def add_condition(self, condition: Condition) -> None:
        """Restrict the subgroup by one more condition (ANDs the membership in place)."""

        np.logical_and(self._members, condition.get_column().evaluate(condition),
                       out=self._members)
        self._coverage = int(np.count_nonzero(self._members))
        self._conditions.add_condition(condition)
        self._depth += 1

    def get_members(self) -> np.ndarray:
        """Get a read-only view of the boolean membership array."""

        members = self._members.view()
        members.flags.writeable = False
        return members

    def get_coverage(self) -> int:
        return self._coverage

    def get_depth(self) -> int:
        return self._depth

    def get_conditions(self) -> ConditionList:
        return self._conditions

    def get_quality(self) -> float:
        return self._quality

    def set_quality(self, quality: float) -> None:
        self._quality = float(quality)

    def get_secondary_statistic(self) -> float:
        return self._secondary_statistic

    def set_secondary_statistic(self, value: float) -> None:
        self._secondary_statistic = float(value)

    def get_tertiary_statistic(self) -> float:
        return self._tertiary_statistic

    def set_tertiary_statistic(self, value: float) -> None:
        self._tertiary_statistic = float(value)

    def get_dag(self) -> Optional[np.ndarray]:
        return self._dag

    def set_dag(self, dag: np.ndarray) -> None:
        self._dag = dag

    def get_id(self) -> int:
        return self._id

    def get_parent_set(self) -> Optional['SubgroupSet']:
        return self._parent_set

    def get_true_positive_rate(self) -> float:
        """Fraction of the dataset's positives covered by the subgroup (0 without positives)."""

        binary_target = self._get_binary_target()
        n_positives = np.count_nonzero(binary_target)
        if n_positives == 0:
            return 0.0
        return np.count_nonzero(binary_target & self._members) / n_positives

    def get_false_positive_rate(self) -> float:
        """Fraction of the dataset's negatives covered by the subgroup (0 without negatives)."""

        binary_target = self._get_binary_target()
        n_negatives = len(binary_target) - np.count_nonzero(binary_target)
        if n_negatives == 0:
            return 0.0
        return np.count_nonzero(~binary_target & self._members) / n_negatives

    def _get_binary_target(self) -> np.ndarray:
        if self._parent_set is None or self._parent_set.get_binary_target() is None:
            raise ValueError('Rates need a subgroup set with a binary target.')
        return self._parent_set.get_binary_target()

    def get_sort_key(self) -> Tuple[Any, ...]:
        """Get a key ordering subgroups from best to worst

        Orders by quality (descending, NaN last), coverage (descending), depth (descending), and
        finally the conditions, which makes the order total.
        """

        quality_key = float('inf') if math.isnan(self._quality) else -self._quality
        return (quality_key, -self._coverage, -self._depth, self._conditions.get_sort_key())

    def __str__(self) -> str:
        return str(self._conditions)

    def __repr__(self) -> str:
        return (f'Subgroup({self._conditions}, coverage={self._coverage},'
                f' quality={self._quality:.6g})')


class SubgroupSet:
    """Bounded, ordered set of subgroups

    Keeps at most `max_size` subgroups, ordered from best to worst (see
    :meth:`Subgroup.get_sort_key`). Adding to a full set evicts the worst subgroup if the new one
    is better; subgroups equal to a member (same conditions, coverage, and quality) are rejected.
    :meth:`add` is thread-safe. Also carries dataset-wide information: the number of rows and the
    binary target (if any), used for rate statistics of the members.
    """

    def __init__(self, max_size: int = 0, nr_rows: int = 0,
                 binary_target: Optional[np.ndarray] = None):
        """Initialize subgroup set

        Parameters
        ----------
        max_size : int, optional
            Maximum number of subgroups; non-positive values mean unbounded.
        nr_rows : int, optional
            Number of rows of the dataset.
        binary_target : Optional[np.ndarray], optional
            Boolean array indicating the positive rows (single nominal targets only).
        """

        self._max_size = max_size
        self._nr_rows = nr_rows
        self._binary_target = None
        if binary_target is not None:
            self._binary_target = np.array(binary_target, dtype=bool)
            self._binary_target.flags.writeable = False
        self._subgroups = []
        self._keys = []
        self._lock = threading.Lock()

    def add(self, subgroup: Subgroup) -> bool:
        """Add a subgroup

        Returns
        -------
        bool
            Whether the subgroup is now a member of the set.
        """

        key = subgroup.get_sort_key()
        with self._lock:
            position = bisect.bisect_left(self._keys, key)
            if position < len(self._keys) and self._keys[position] == key:
                return False
            if 0 < self._max_size <= len(self._subgroups):
                if position >= self._max_size:
                    return False
                self._subgroups.pop()
                self._keys.pop()
            self._subgroups.insert(position, subgroup)
            self._keys.insert(position, key)
            subgroup._parent_set = self
            return True

    def resort(self) -> None:
        """Restore the order after qualities of members were changed (e.g., post-processing)."""

        with self._lock:
            self._subgroups.sort(key=Subgroup.get_sort_key)
            self._keys = [subgroup.get_sort_key() for subgroup in self._subgroups]

    def set_ids(self) -> None:
        """Number the subgroups 1..n in their current order."""

        for number, subgroup in enumerate(self._subgroups, start=1):
            subgroup._id = number

    def get_max_size(self) -> int:
        return self._max_size

    def get_nr_rows(self) -> int:
        return self._nr_rows

    def get_binary_target(self) -> Optional[np.ndarray]:
        return self._binary_target

    def get_total_target_coverage(self) -> int:
        if self._binary_target is None:
            return 0
        return int(np.count_nonzero(self._binary_target))

    def get_best(self) -> Subgroup:
        return self._subgroups[0]

    def get_worst(self) -> Subgroup:
        return self._subgroups[-1]

    def is_empty(self) -> bool:
        return len(self._subgroups) == 0

    def get_roc_points(self) -> List[Tuple[float, float]]:
        """Get (false positive rate, true positive rate) of every member."""

        return [(subgroup.get_false_positive_rate(), subgroup.get_true_positive_rate())
                for subgroup in self._subgroups]

    def post_process(self, search_strategy: SearchStrategy, n_selected: int) -> 'SubgroupSet':
        """Post-process the result

        For cover-based beam selection, selects up to `n_selected` members greedily by quality
        weighted with how often their rows are covered by already selected members. Other
        strategies return the set itself.
        """

        if search_strategy != SearchStrategy.COVER_BASED_BEAM_SELECTION:
            return self
        result = SubgroupSet(max_size=n_selected, nr_rows=self._nr_rows,
                             binary_target=self._binary_target)
        for index in select_cover_based(self._subgroups, n_selected, self._nr_rows):
            result.add(self._subgroups[index])
        return result

    def to_frame(self) -> pd.DataFrame:
        """Summarize the members as a data frame (one row per subgroup, best first)."""

        return pd.DataFrame([{
            'id': subgroup.get_id(),
            'conditions': str(subgroup.get_conditions()),
            'depth': subgroup.get_depth(),
            'coverage': subgroup.get_coverage(),
            'quality': subgroup.get_quality(),
            'secondary_statistic': subgroup.get_secondary_statistic(),
            'tertiary_statistic': subgroup.get_tertiary_statistic()
        } for subgroup in self._subgroups], columns=[
            'id', 'conditions', 'depth', 'coverage', 'quality', 'secondary_statistic',
            'tertiary_statistic'])

    def __len__(self) -> int:
        return len(self._subgroups)

    def __iter__(self) -> Iterator[Subgroup]:
        return iter(list(self._subgroups))

    def __getitem__(self, index: int) -> Subgroup:
        return self._subgroups[index]


class Candidate:
    """Entry of the candidate queue: a subgroup with a priority (defaults to its quality)."""

    def __init__(self, subgroup: Subgroup, priority: Optional[float] = None):
        self._subgroup = subgroup
        self._priority = subgroup.get_quality() if priority is None else float(priority)

    def get_subgroup(self) -> Subgroup:
        return self._subgroup

    def get_priority(self) -> float:
        return self._priority

    def get_sort_key(self) -> Tuple[Any, ...]:
        # Best (highest priority) first; ties resolved by the subgroup order:
        priority_key = float('inf') if math.isnan(self._priority) else -self._priority
        return (priority_key, self._subgroup.get_sort_key())

    def __repr__(self) -> str:
        return f'Candidate({self._subgroup!r}, priority={self._priority:.6g})'


def select_cover_based(subgroups: Sequence[Subgroup], n_selected: int,
                       nr_rows: int) -> List[int]:
    """Select diverse subgroups greedily

    In each step, picks the subgroup maximizing its quality times the mean weight of its rows,
    where a row's weight is :data:`COVER_WEIGHT` to the power of the number of already selected
    subgroups covering it.

    Literature
    ----------
    van Leeuwen & Knobbe (2012): "Diverse subgroup set discovery"

    Returns
    -------
    List[int]
        Indices of the selected subgroups, in order of selection.
    """

    cover_counts = np.zeros(nr_rows, dtype=int)
    remaining = list(range(len(subgroups)))
    selected = []
    while remaining and len(selected) < n_selected:
        weights = COVER_WEIGHT ** cover_counts
        best_position = 0
        best_score = float('-inf')
        for position, index in enumerate(remaining):
            subgroup = subgroups[index]
            quality = subgroup.get_quality()
            if math.isnan(quality) or subgroup.get_coverage() == 0:
                continue
            score = quality * float(weights[subgroup.get_members()].mean())
            if score > best_score:
                best_position = position
                best_score = score
        index = remaining.pop(best_position)
        selected.append(index)
        cover_counts[subgroups[index].get_members()] += 1
    return selected
