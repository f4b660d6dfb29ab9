"""Optimal splits for binary targets

Functions and classes finding the best set-valued condition on a nominal column
(:func:`find_best_value_set`) and the best interval condition on a numeric column
(:func:`find_best_interval`) for quality measures that are functions of the number of positives and
the coverage of a subgroup. The interval search evaluates only the vertices of convex hulls of
(negatives, positives) points instead of all O(n^2) intervals.

Literature
----------
Mampaey et al. (2012): "Efficient Algorithms for Finding Richer Subgroup Descriptions in Numeric
and Nominal Data"
"""


from typing import Callable, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from .conditions import Interval, ValueSet
from .metrics import QM


QualityFunction = Callable[[int, int], float]  # (positives, coverage) -> quality


class NominalCrossTable:
    """Positive and negative counts per value of a nominal column within a subgroup

    Only values occurring in the subgroup are part of the table, in ascending order.
    """

    def __init__(self, values: np.ndarray, positives: np.ndarray):
        """Initialize cross table

        Parameters
        ----------
        values : np.ndarray
            Column values of the subgroup's rows.
        positives : np.ndarray
            Boolean target of the subgroup's rows (same length as `values`).
        """

        domain, inverse = np.unique(values, return_inverse=True)
        self._domain = [str(value) for value in domain]
        counts = np.bincount(inverse, minlength=len(domain))
        self._positive_counts = np.bincount(inverse, weights=np.asarray(positives, dtype=float),
                                            minlength=len(domain)).astype(int)
        self._negative_counts = counts - self._positive_counts

    def get_size(self) -> int:
        return len(self._domain)

    def get_value(self, index: int) -> str:
        return self._domain[index]

    def get_positive_count(self, index: Optional[int] = None) -> int:
        if index is None:
            return int(self._positive_counts.sum())
        return int(self._positive_counts[index])

    def get_negative_count(self, index: Optional[int] = None) -> int:
        if index is None:
            return int(self._negative_counts.sum())
        return int(self._negative_counts[index])

    def get_sorted_domain_indices(self) -> List[int]:
        """Get the value indices sorted by positive ratio (descending), ties by value."""

        ratios = self._positive_counts / (self._positive_counts + self._negative_counts)
        return sorted(range(len(self._domain)), key=lambda index: (-ratios[index], index))


def find_best_value_set(cross_table: NominalCrossTable, measure: QM,
                        calculate: QualityFunction) -> Optional[ValueSet]:
    """Find the best set of values for an ELEMENT_OF condition

    For WRAcc, the optimum has a closed form: all values whose positive ratio is at least the
    positive ratio of the subgroup. For other measures, the values are sorted by positive ratio and
    all prefixes (upper convex hull) are evaluated; symmetric measures replace a large result by
    its complement, and measures for which negative-rich sets may score high also evaluate all
    suffixes (lower convex hull). Adjacent values with identical ratio are never separated.

    Parameters
    ----------
    cross_table : NominalCrossTable
        Counts per value within the subgroup.
    measure : QM
        The quality measure (decides about the closed form and the hull parts searched).
    calculate : QualityFunction
        Computes the quality from the number of positives and the coverage.

    Returns
    -------
    Optional[ValueSet]
        The best value set, or `None` if no proper subset of the values was evaluated.
    """

    size = cross_table.get_size()
    if measure == QM.WRACC:
        n_positives = cross_table.get_positive_count()
        ratio = n_positives / (n_positives + cross_table.get_negative_count())
        # Values with a ratio equal to the subgroup's one keep WRAcc but increase coverage:
        return ValueSet(tuple(
            cross_table.get_value(i) for i in range(size)
            if cross_table.get_positive_count(i) >= ratio * (cross_table.get_positive_count(i) +
                                                             cross_table.get_negative_count(i))))

    sorted_indices = cross_table.get_sorted_domain_indices()

    def same_ratio(index_1: int, index_2: int) -> bool:
        positives_1 = cross_table.get_positive_count(index_1)
        positives_2 = cross_table.get_positive_count(index_2)
        return (positives_1 * cross_table.get_negative_count(index_2) ==
                positives_2 * cross_table.get_negative_count(index_1))

    # Upper part of the hull (prefixes of the ratio-sorted values, except the full domain):
    best_quality = float('-inf')
    best_values = []
    n_pos = 0
    n_neg = 0
    for i in range(size - 1):
        index = sorted_indices[i]
        n_pos += cross_table.get_positive_count(index)
        n_neg += cross_table.get_negative_count(index)
        if i < size - 2 and same_ratio(index, sorted_indices[i + 1]):
            continue  # degenerate hull point
        quality = calculate(n_pos, n_pos + n_neg)
        if quality > best_quality:
            best_quality = quality
            best_values = sorted_indices[:i + 1]

    # Lower part of the hull (suffixes), depending on the measure:
    if measure.is_symmetric():
        if len(best_values) > size / 2:  # prefer the (equally good) complement if smaller
            best_values = sorted_indices[len(best_values):]
    elif not measure.is_low_negative():
        n_pos = 0
        n_neg = 0
        for i in range(size - 1, 0, -1):
            index = sorted_indices[i]
            n_pos += cross_table.get_positive_count(index)
            n_neg += cross_table.get_negative_count(index)
            if i > 1 and same_ratio(index, sorted_indices[i - 1]):
                continue  # degenerate hull point
            quality = calculate(n_pos, n_pos + n_neg)
            if quality > best_quality:
                best_quality = quality
                best_values = sorted_indices[i:]

    if not best_values:
        return None
    return ValueSet(tuple(cross_table.get_value(index) for index in best_values))


class RealBaseIntervalCrossTable:
    """Positive and negative counts per base interval of a numeric column within a subgroup

    Initially, there is one base interval per distinct (non-NaN) value; base interval `i` is
    `(split_point[i - 1], split_point[i]]`. :meth:`aggregate_intervals` merges adjacent base
    intervals with the same class ratio.
    """

    def __init__(self, values: np.ndarray, positives: np.ndarray):
        is_valid = ~np.isnan(values)
        split_points, inverse = np.unique(values[is_valid], return_inverse=True)
        counts = np.bincount(inverse, minlength=len(split_points))
        self._split_points = split_points
        self._positive_counts = np.bincount(inverse, weights=positives[is_valid].astype(float),
                                            minlength=len(split_points)).astype(int)
        self._negative_counts = counts - self._positive_counts

    def aggregate_intervals(self) -> None:
        """Merge runs of adjacent base intervals with identical positive ratio."""

        if len(self._split_points) == 0:
            return
        keep = [0]
        positive_counts = [int(self._positive_counts[0])]
        negative_counts = [int(self._negative_counts[0])]
        for i in range(1, len(self._split_points)):
            p_i = int(self._positive_counts[i])
            n_i = int(self._negative_counts[i])
            if p_i * negative_counts[-1] == positive_counts[-1] * n_i:
                positive_counts[-1] += p_i
                negative_counts[-1] += n_i
                keep[-1] = i  # merged interval ends at the later split point
            else:
                keep.append(i)
                positive_counts.append(p_i)
                negative_counts.append(n_i)
        self._split_points = self._split_points[keep]
        self._positive_counts = np.array(positive_counts)
        self._negative_counts = np.array(negative_counts)

    def get_nr_base_intervals(self) -> int:
        return len(self._split_points)

    def get_split_point(self, index: int) -> float:
        return float(self._split_points[index])

    def get_positive_count(self, index: Optional[int] = None) -> int:
        if index is None:
            return int(self._positive_counts.sum())
        return int(self._positive_counts[index])

    def get_negative_count(self, index: Optional[int] = None) -> int:
        if index is None:
            return int(self._negative_counts.sum())
        return int(self._negative_counts[index])


class HullPoint(NamedTuple):
    """Point (negatives, positives) with the interval bounds it stands for

    `label_1` is the upper bound and `label_2` the (exclusive) lower bound of the interval.
    """

    x: float
    y: float
    label_1: float
    label_2: float


def _cross(o: HullPoint, a: HullPoint, b: HullPoint) -> float:
    return (a.x - o.x) * (b.y - o.y) - (a.y - o.y) * (b.x - o.x)


class ConvexHull:
    """Convex hull of points in the plane, stored as upper and lower chain

    Both chains run from the lexicographically smallest to the largest point (by x, then y). Side
    0 is the upper chain, side 1 the lower chain.
    """

    UPPER = 0
    LOWER = 1

    def __init__(self, points: Sequence[HullPoint]):
        points = sorted(points, key=lambda point: (point.x, point.y))
        self._chains = (self._build_chain(points, upper=True),
                        self._build_chain(points, upper=False))

    @staticmethod
    def _build_chain(points: Sequence[HullPoint], upper: bool) -> List[HullPoint]:
        # Andrew's monotone chain; collinear points are dropped:
        chain = []
        for point in points:
            while len(chain) >= 2:
                turn = _cross(chain[-2], chain[-1], point)
                if (turn >= 0) if upper else (turn <= 0):
                    chain.pop()
                else:
                    break
            chain.append(point)
        return chain

    @classmethod
    def _from_chains(cls, upper: List[HullPoint], lower: List[HullPoint]) -> 'ConvexHull':
        hull = cls.__new__(cls)
        hull._chains = (upper, lower)
        return hull

    def get_size(self, side: int) -> int:
        return len(self._chains[side])

    def get_point(self, side: int, index: int) -> HullPoint:
        return self._chains[side][index]

    def get_vertices(self) -> List[HullPoint]:
        """Get all distinct vertices of both chains."""

        vertices = {(point.x, point.y): point for point in self._chains[1]}
        vertices.update({(point.x, point.y): point for point in self._chains[0]})
        return list(vertices.values())

    def concatenate(self, other: 'ConvexHull') -> 'ConvexHull':
        """Get the convex hull of the union of both hulls' points."""

        return ConvexHull(self.get_vertices() + other.get_vertices())

    def minkowski_difference(self, other: 'ConvexHull') -> 'ConvexHull':
        """Get the convex hull of all differences `p - q` (p from `self`, q from `other`)

        Computed as the Minkowski sum with the negated `other`, merging the edge sequences of the
        chains by slope in linear time. A resulting point carries `label_1` of `p` and, as
        `label_2`, the `label_1` of `q`.
        """

        # Negating a hull swaps its chains and reverses their direction:
        negated_upper = [HullPoint(-point.x, -point.y, point.label_1, point.label_2)
                         for point in reversed(other._chains[1])]
        negated_lower = [HullPoint(-point.x, -point.y, point.label_1, point.label_2)
                         for point in reversed(other._chains[0])]
        return ConvexHull._from_chains(_merge_chains(self._chains[0], negated_upper, upper=True),
                                       _merge_chains(self._chains[1], negated_lower, upper=False))


def _merge_chains(chain_1: List[HullPoint], chain_2: List[HullPoint],
                  upper: bool) -> List[HullPoint]:
    # Minkowski sum of two x-monotone chains: walk both, always taking the edge that keeps the
    # result convex (decreasing slope for upper chains, increasing slope for lower chains):
    i = 0
    j = 0
    result = [_add(chain_1[0], chain_2[0])]
    while i < len(chain_1) - 1 or j < len(chain_2) - 1:
        if i == len(chain_1) - 1:
            j += 1
        elif j == len(chain_2) - 1:
            i += 1
        else:
            edge_1 = (chain_1[i + 1].x - chain_1[i].x, chain_1[i + 1].y - chain_1[i].y)
            edge_2 = (chain_2[j + 1].x - chain_2[j].x, chain_2[j + 1].y - chain_2[j].y)
            cross = edge_1[0] * edge_2[1] - edge_1[1] * edge_2[0]
            if (cross <= 0) if upper else (cross >= 0):
                i += 1
            else:
                j += 1
        result.append(_add(chain_1[i], chain_2[j]))
    return result


def _add(point_1: HullPoint, point_2: HullPoint) -> HullPoint:
    return HullPoint(point_1.x + point_2.x, point_1.y + point_2.y, point_1.label_1,
                     point_2.label_1)


def find_best_interval(values: np.ndarray, positives: np.ndarray,
                       calculate: QualityFunction) -> Optional[Tuple[Interval, float]]:
    """Find the best interval condition on a numeric column

    Evaluates all one-sided intervals in a linear pass, and all two-sided intervals (including
    those open to the right) via convex hulls: the cumulative (negatives, positives) counts up to
    each split point are single-point hulls; adjacent hulls are paired, the vertices of each pair's
    Minkowski difference (= intervals starting in the left and ending in the right part) are
    evaluated, and the pair is merged into one hull for the next round. Optimal for quality
    measures that are convex in (negatives, positives), e.g., WRAcc, chi-squared, and information
    gain.

    Parameters
    ----------
    values : np.ndarray
        Column values of the subgroup's rows (NaN values are ignored).
    positives : np.ndarray
        Boolean target of the subgroup's rows.
    calculate : QualityFunction
        Computes the quality from the number of positives and the coverage.

    Returns
    -------
    Optional[Tuple[Interval, float]]
        The best interval (never covering all values) and its quality, or `None` if the column
        has less than two distinct values with different class ratios.
    """

    cross_table = RealBaseIntervalCrossTable(np.asarray(values, dtype=float),
                                             np.asarray(positives, dtype=bool))
    cross_table.aggregate_intervals()
    n_intervals = cross_table.get_nr_base_intervals()
    if n_intervals <= 1:
        return None

    # Linear pass over the intervals (-inf, split point]:
    best_quality = float('-inf')
    best_interval = None
    n_pos = 0
    n_neg = 0
    hulls = []
    for i in range(n_intervals - 1):
        n_pos += cross_table.get_positive_count(i)
        n_neg += cross_table.get_negative_count(i)
        quality = calculate(n_pos, n_pos + n_neg)
        if quality > best_quality:
            best_quality = quality
            best_interval = Interval(float('-inf'), cross_table.get_split_point(i))
        hulls.append(ConvexHull([HullPoint(n_neg, n_pos, cross_table.get_split_point(i),
                                           float('-inf'))]))
    hulls.append(ConvexHull([HullPoint(cross_table.get_negative_count(),
                                       cross_table.get_positive_count(), float('inf'),
                                       float('-inf'))]))

    # Iterative pairwise reduction of the hulls:
    while len(hulls) > 1:
        next_hulls = []
        for i in range(0, len(hulls) - 1, 2):
            difference = hulls[i + 1].minkowski_difference(hulls[i])
            for side in (ConvexHull.UPPER, ConvexHull.LOWER):
                for j in range(difference.get_size(side)):
                    point = difference.get_point(side, j)
                    quality = calculate(int(point.y), int(point.x + point.y))
                    if quality > best_quality:
                        best_quality = quality
                        best_interval = Interval(point.label_2, point.label_1)
            next_hulls.append(hulls[i].concatenate(hulls[i + 1]))
        if len(hulls) % 2 == 1:
            next_hulls.append(hulls[-1])
        hulls = next_hulls

    if best_interval is None:
        return None
    return best_interval, best_quality
