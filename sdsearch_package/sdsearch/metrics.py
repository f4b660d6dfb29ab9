"""Subgroup-quality metrics

Functions and classes quantifying subgroup quality: count-based functions for binary targets,
the catalogue of quality measures (:class:`QM`), and evaluators that turn subgroup statistics into
quality values for nominal and numeric targets (:class:`QualityMeasure`), for correlation between
two numeric targets (:class:`CorrelationMeasure`), and for regression slopes
(:class:`RegressionMeasure`).

Literature
----------
Lavrac et al. (1999): "Rule Evaluation Measures: A Unifying View"
Duivesteijn et al. (2016): "Exceptional Model Mining"
"""


import enum
import math
from typing import Optional, Tuple

import numpy as np
from scipy import stats


def wracc(n_true_pos: int, n_pred_pos: int, n_actual_pos: int, n_instances: int) -> float:
    """Weighted relative accuracy

    Computes the weighted relative accuracy (WRAcc) from counts: the number of positive subgroup
    members, the subgroup size, the number of positives in the dataset, and the dataset size. The
    range of WRAcc is at most [-0.25, 0.25] but actually depends on the class imbalance (becomes
    smaller if the classes are more imbalanced).

    Literature
    ----------
    Lavrac et al. (1999): "Rule Evaluation Measures: A Unifying View"

    Parameters
    ----------
    n_true_pos : int
        Number of positive data objects in the subgroup.
    n_pred_pos : int
        Number of data objects in the subgroup (coverage).
    n_actual_pos : int
        Number of positive data objects in the dataset.
    n_instances : int
        Number of data objects in the dataset.

    Returns
    -------
    float
        Value of the WRAcc metric.
    """
    return n_true_pos / n_instances - n_pred_pos * n_actual_pos / (n_instances ** 2)


def wracc_np(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """Weighted relative accuracy

    Same functionality as :func:`wracc`, but computing the counts from binary (bool or int)
    `numpy` arrays indicating class labels and subgroup membership.

    Parameters
    ----------
    y_true : np.ndarray
        Binary ground-truth labels.
    y_pred : np.ndarray
        Binary subgroup-membership indicators.

    Returns
    -------
    float
        Value of the WRAcc metric.
    """
    y_true = np.asarray(y_true, dtype=bool)
    y_pred = np.asarray(y_pred, dtype=bool)
    return wracc(n_true_pos=np.count_nonzero(y_true & y_pred),
                 n_pred_pos=np.count_nonzero(y_pred), n_actual_pos=np.count_nonzero(y_true),
                 n_instances=len(y_true))


def entropy(probability: float) -> float:
    """Binary entropy (in bits) of a Bernoulli distribution; 0 for probabilities 0 and 1."""
    if probability <= 0 or probability >= 1:
        return 0.0
    return -probability * math.log2(probability) - (1 - probability) * math.log2(1 - probability)


def chi_squared(n_true_pos: int, n_pred_pos: int, n_actual_pos: int, n_instances: int) -> float:
    """Chi-squared statistic of the 2x2 contingency table subgroup x target (0 if degenerate)."""
    a = n_true_pos
    b = n_pred_pos - n_true_pos
    c = n_actual_pos - n_true_pos
    d = n_instances - n_actual_pos - b
    denominator = (a + b) * (c + d) * (a + c) * (b + d)
    if denominator == 0:
        return 0.0
    return n_instances * (a * d - b * c) ** 2 / denominator


def information_gain(n_true_pos: int, n_pred_pos: int, n_actual_pos: int,
                     n_instances: int) -> float:
    """Reduction of target entropy when splitting the dataset into subgroup and complement."""
    if n_pred_pos == 0 or n_pred_pos == n_instances:
        return 0.0
    n_complement = n_instances - n_pred_pos
    return (entropy(n_actual_pos / n_instances) -
            n_pred_pos / n_instances * entropy(n_true_pos / n_pred_pos) -
            n_complement / n_instances * entropy((n_actual_pos - n_true_pos) / n_complement))


def edit_distance(graph_1: np.ndarray, graph_2: np.ndarray) -> float:
    """Normalized edit distance between two directed acyclic graphs

    Both graphs are given as boolean adjacency matrices over the same nodes. For each unordered
    pair of nodes, the graphs agree if both have no edge, or both have an edge in the same
    direction. Returns the fraction of node pairs on which the graphs disagree, in [0, 1].
    """
    n_nodes = graph_1.shape[0]
    if n_nodes < 2:
        return 0.0
    upper = np.triu_indices(n_nodes, k=1)
    differs = ((graph_1[upper] != graph_2[upper]) |
               (graph_1.T[upper] != graph_2.T[upper]))
    return np.count_nonzero(differs) / len(upper[0])


class QM(enum.Enum):
    """Quality measures, each with a display label and the target type it applies to."""

    # Single nominal (binary) targets:
    WRACC = ('WRAcc', 'single nominal')
    ABSWRACC = ('Abs WRAcc', 'single nominal')
    CHI_SQUARED = ('Chi-squared', 'single nominal')
    INFORMATION_GAIN = ('Information gain', 'single nominal')
    BINOMIAL = ('Binomial test', 'single nominal')
    JACCARD = ('Jaccard', 'single nominal')
    COVERAGE = ('Coverage', 'single nominal')
    ACCURACY = ('Accuracy', 'single nominal')
    SPECIFICITY = ('Specificity', 'single nominal')
    SENSITIVITY = ('Sensitivity', 'single nominal')
    LAPLACE = ('Laplace', 'single nominal')
    F_MEASURE = ('F-measure', 'single nominal')
    CORRELATION = ('Correlation', 'single nominal')
    PURITY = ('Purity', 'single nominal')
    LIFT = ('Lift', 'single nominal')
    # Single numeric targets:
    Z_SCORE = ('Z-Score', 'single numeric')
    INVERSE_Z_SCORE = ('Inverse Z-Score', 'single numeric')
    ABS_Z_SCORE = ('Abs Z-Score', 'single numeric')
    AVERAGE = ('Average', 'single numeric')
    INVERSE_AVERAGE = ('Inverse Average', 'single numeric')
    MEAN_TEST = ('Mean Test', 'single numeric')
    INVERSE_MEAN_TEST = ('Inverse Mean Test', 'single numeric')
    ABS_MEAN_TEST = ('Abs Mean Test', 'single numeric')
    T_TEST = ('t-Test', 'single numeric')
    INVERSE_T_TEST = ('Inverse t-Test', 'single numeric')
    ABS_T_TEST = ('Abs t-Test', 'single numeric')
    MMAD = ('Median MAD metric', 'single numeric')
    # Double targets:
    LINEAR_REGRESSION = ('Significance of Slope Difference', 'double regression')
    CORRELATION_R = ('r', 'double correlation')
    CORRELATION_R_NEG = ('Negative r', 'double correlation')
    CORRELATION_R_SQ = ('r squared', 'double correlation')
    CORRELATION_R_NEG_SQ = ('Negative r squared', 'double correlation')
    CORRELATION_DISTANCE = ('Distance', 'double correlation')
    CORRELATION_P = ('p-Value Distance', 'double correlation')
    CORRELATION_ENTROPY = ('Wtd Ent Distance', 'double correlation')
    # Multi-label targets:
    WEED = ('Wtd Ent Edit Distance', 'multi-label')
    EDIT_DISTANCE = ('Edit Distance', 'multi-label')

    def __init__(self, label: str, target_type: str):
        self.label = label
        self.target_type = target_type

    @classmethod
    def from_string(cls, name: str) -> 'QM':
        normalized = name.strip().lower()
        for measure in cls:
            if normalized in (measure.name.lower(), measure.label.lower()):
                return measure
        raise ValueError(f'Unknown quality measure "{name}".')

    def is_symmetric(self) -> bool:
        """Whether the measure scores a subgroup and its complement alike."""
        return self in _SYMMETRIC_MEASURES

    def is_low_negative(self) -> bool:
        """Whether subsets dominated by negatives always score low (no need to search them)."""
        return self in _LOW_IS_NEGATIVE_MEASURES


_SYMMETRIC_MEASURES = frozenset({QM.ABSWRACC, QM.CHI_SQUARED, QM.INFORMATION_GAIN})
_LOW_IS_NEGATIVE_MEASURES = frozenset({QM.WRACC, QM.BINOMIAL})


class QualityMeasure:
    """Quality evaluator for single targets

    Holds the dataset-wide statistics of the target (number of rows and positives for nominal
    targets; mean, sum of squared deviations, and median for numeric targets) and computes the
    quality of a subgroup from the subgroup's statistics.
    """

    def __init__(self, measure: QM, total_coverage: int, total_target_coverage: int = 0,
                 total_average: float = float('nan'), total_ssd: float = float('nan'),
                 total_median: float = float('nan'),
                 base_dag: Optional[np.ndarray] = None):
        """Initialize quality measure

        Parameters
        ----------
        measure : QM
            The quality measure to compute.
        total_coverage : int
            Number of rows of the dataset.
        total_target_coverage : int, optional
            Number of positive rows (nominal targets only).
        total_average : float, optional
            Mean of the target column (numeric targets only).
        total_ssd : float, optional
            Sum of squared deviations of the target column from its mean (numeric targets only).
        total_median : float, optional
            Median of the target column (numeric targets only).
        base_dag : Optional[np.ndarray], optional
            Dependency graph of the whole dataset (multi-label targets only).
        """

        self._measure = measure
        self._total_coverage = total_coverage
        self._total_target_coverage = total_target_coverage
        self._total_average = total_average
        self._total_ssd = total_ssd
        self._total_median = total_median
        self._base_dag = base_dag

    def get_measure(self) -> QM:
        return self._measure

    def get_total_coverage(self) -> int:
        return self._total_coverage

    def get_total_target_coverage(self) -> int:
        return self._total_target_coverage

    def get_total_average(self) -> float:
        return self._total_average

    def get_base_dag(self) -> Optional[np.ndarray]:
        return self._base_dag

    def calculate(self, count_head_body: int, coverage: int) -> float:
        """Compute the quality for a binary target

        Parameters
        ----------
        count_head_body : int
            Number of positive rows in the subgroup.
        coverage : int
            Number of rows in the subgroup.

        Returns
        -------
        float
            The quality. Measures with undefined denominators return 0.
        """

        p = count_head_body
        n = coverage
        big_p = self._total_target_coverage
        big_n = self._total_coverage
        measure = self._measure
        if measure == QM.WRACC:
            return wracc(p, n, big_p, big_n)
        if measure == QM.ABSWRACC:
            return abs(wracc(p, n, big_p, big_n))
        if measure == QM.CHI_SQUARED:
            return chi_squared(p, n, big_p, big_n)
        if measure == QM.INFORMATION_GAIN:
            return information_gain(p, n, big_p, big_n)
        if measure == QM.COVERAGE:
            return float(n)
        if measure == QM.JACCARD:
            return _divide(p, n + big_p - p)
        if measure == QM.SPECIFICITY:
            return 1.0 - _divide(n - p, big_n - big_p) if big_n > big_p else 0.0
        if measure == QM.SENSITIVITY:
            return _divide(p, big_p)
        if measure == QM.LAPLACE:
            return (p + 1) / (n + 2)
        if measure == QM.F_MEASURE:
            return _divide(2 * p, n + big_p)
        if measure == QM.CORRELATION:
            return _divide(p * big_n - n * big_p,
                           math.sqrt(n * big_p * (big_n - n) * (big_n - big_p)))
        if n == 0:
            return 0.0
        if measure == QM.BINOMIAL:
            return math.sqrt(n / big_n) * (p / n - big_p / big_n)
        if measure == QM.ACCURACY:
            return p / n
        if measure == QM.PURITY:
            return max(p / n, 1 - p / n)
        if measure == QM.LIFT:
            return _divide(p / n, big_p / big_n)
        raise ValueError(f'Quality measure "{measure.name}" needs a single nominal target.')

    def calculate_numeric(self, coverage: int, total: float, sum_squared_deviations: float,
                          median: float = float('nan'),
                          median_absolute_deviation: float = float('nan')) -> float:
        """Compute the quality for a numeric target

        Parameters
        ----------
        coverage : int
            Number of rows in the subgroup.
        total : float
            Sum of the target values in the subgroup.
        sum_squared_deviations : float
            Sum of squared deviations of the subgroup's target values from their mean.
        median, median_absolute_deviation : float, optional
            Median statistics of the subgroup (only needed for MMAD).

        Returns
        -------
        float
            The quality. Measures with undefined denominators return 0.
        """

        measure = self._measure
        n = coverage
        if n == 0:
            return 0.0
        average = total / n
        difference = average - self._total_average
        if measure == QM.AVERAGE:
            return average
        if measure == QM.INVERSE_AVERAGE:
            return -average
        if measure in (QM.MEAN_TEST, QM.INVERSE_MEAN_TEST, QM.ABS_MEAN_TEST):
            return _orient(measure, math.sqrt(n) * difference)
        if measure in (QM.Z_SCORE, QM.INVERSE_Z_SCORE, QM.ABS_Z_SCORE):
            # Population standard deviation of the whole target:
            deviation = math.sqrt(self._total_ssd / self._total_coverage)
            return _orient(measure, _divide(math.sqrt(n) * difference, deviation))
        if measure in (QM.T_TEST, QM.INVERSE_T_TEST, QM.ABS_T_TEST):
            if n < 2:
                return 0.0
            deviation = math.sqrt(sum_squared_deviations / (n - 1))
            return _orient(measure, _divide(math.sqrt(n) * difference, deviation))
        if measure == QM.MMAD:
            return _divide(n, 2 * median + median_absolute_deviation)
        raise ValueError(f'Quality measure "{measure.name}" needs a single numeric target.')

    def calculate_multi_label(self, dag: np.ndarray, coverage: int) -> float:
        """Compute the quality for a multi-label target

        Parameters
        ----------
        dag : np.ndarray
            Dependency graph learned on the subgroup (boolean adjacency matrix).
        coverage : int
            Number of rows in the subgroup.

        Returns
        -------
        float
            Edit distance to the dataset's graph (EDIT_DISTANCE), weighted with the entropy of
            the subgroup/complement split for WEED.
        """

        distance = edit_distance(dag, self._base_dag)
        if self._measure == QM.EDIT_DISTANCE:
            return distance
        if self._measure == QM.WEED:
            return entropy(coverage / self._total_coverage) * distance
        raise ValueError(f'Quality measure "{self._measure.name}" needs a multi-label target.')


def _divide(enumerator: float, denominator: float) -> float:
    return enumerator / denominator if denominator != 0 else 0.0


def _orient(measure: QM, value: float) -> float:
    if measure.name.startswith('INVERSE'):
        return -value
    if measure.name.startswith('ABS'):
        return abs(value)
    return value


class MomentSums:
    """Incrementally accumulated sums of two paired variables (x, y)."""

    def __init__(self, x: Optional[np.ndarray] = None, y: Optional[np.ndarray] = None):
        self.n = 0
        self.sum_x = 0.0
        self.sum_y = 0.0
        self.sum_xx = 0.0
        self.sum_yy = 0.0
        self.sum_xy = 0.0
        if x is not None:
            self.add_observations(x, y)

    def add_observation(self, x: float, y: float) -> None:
        self.n += 1
        self.sum_x += x
        self.sum_y += y
        self.sum_xx += x * x
        self.sum_yy += y * y
        self.sum_xy += x * y

    def add_observations(self, x: np.ndarray, y: np.ndarray) -> None:
        x = np.asarray(x, dtype=float)
        y = np.asarray(y, dtype=float)
        self.n += len(x)
        self.sum_x += float(x.sum())
        self.sum_y += float(y.sum())
        self.sum_xx += float(x @ x)
        self.sum_yy += float(y @ y)
        self.sum_xy += float(x @ y)

    def __sub__(self, other: 'MomentSums') -> 'MomentSums':
        result = MomentSums()
        result.n = self.n - other.n
        result.sum_x = self.sum_x - other.sum_x
        result.sum_y = self.sum_y - other.sum_y
        result.sum_xx = self.sum_xx - other.sum_xx
        result.sum_yy = self.sum_yy - other.sum_yy
        result.sum_xy = self.sum_xy - other.sum_xy
        return result

    def get_centered(self) -> Tuple[float, float, float]:
        """Get the centered sums of squares and products `(S_xx, S_yy, S_xy)`."""
        s_xx = max(self.sum_xx - self.sum_x ** 2 / self.n, 0.0)
        s_yy = max(self.sum_yy - self.sum_y ** 2 / self.n, 0.0)
        s_xy = self.sum_xy - self.sum_x * self.sum_y / self.n
        return s_xx, s_yy, s_xy


class CorrelationMeasure:
    """Quality evaluator for the correlation between two numeric targets

    The base instance accumulates the sums of the whole dataset; :meth:`create_child` creates an
    empty instance for a subgroup, whose observations are added incrementally
    (:meth:`add_observation`, :meth:`add_observations`). The complement's statistics are derived
    from the base sums, so every quality can compare the subgroup with the rest of the data.

    Literature
    ----------
    Leman et al. (2008): "Exceptional Model Mining"
    """

    def __init__(self, measure: QM, x: Optional[np.ndarray] = None,
                 y: Optional[np.ndarray] = None, base: Optional['CorrelationMeasure'] = None):
        self._measure = measure
        self._sums = MomentSums(x, y)
        self._base = base

    def create_child(self) -> 'CorrelationMeasure':
        return CorrelationMeasure(self._measure, base=self)

    def add_observation(self, x: float, y: float) -> None:
        self._sums.add_observation(x, y)

    def add_observations(self, x: np.ndarray, y: np.ndarray) -> None:
        self._sums.add_observations(x, y)

    def get_sample_size(self) -> int:
        return self._sums.n

    def get_correlation(self) -> float:
        return _correlation(self._sums)

    def get_complement_correlation(self) -> float:
        return _correlation(self._base._sums - self._sums)

    def get_complement_size(self) -> int:
        return self._base.get_sample_size() - self._sums.n

    def compute_correlation_distance(self) -> float:
        """Absolute difference between the correlation in the subgroup and in its complement."""
        return abs(self.get_correlation() - self.get_complement_correlation())

    def get_evaluation_measure_value(self) -> float:
        """Compute the quality of the subgroup

        Returns
        -------
        float
            The quality; `-inf` if the subgroup or its complement is too small for the measure.
        """

        measure = self._measure
        r = self.get_correlation()
        if math.isnan(r):
            return float('-inf')
        if measure == QM.CORRELATION_R:
            return r
        if measure == QM.CORRELATION_R_NEG:
            return -r
        if measure == QM.CORRELATION_R_SQ:
            return r * r
        if measure == QM.CORRELATION_R_NEG_SQ:
            return -r * r
        r_complement = self.get_complement_correlation()
        if math.isnan(r_complement):
            return float('-inf')
        if measure == QM.CORRELATION_DISTANCE:
            return abs(r - r_complement)
        if measure == QM.CORRELATION_ENTROPY:
            coverage = self._sums.n
            return entropy(coverage / self._base.get_sample_size()) * abs(r - r_complement)
        if measure == QM.CORRELATION_P:
            n_1 = self._sums.n
            n_2 = self.get_complement_size()
            if n_1 <= 3 or n_2 <= 3:
                return float('-inf')
            # Fisher z-transformation of both correlations (clipped to keep atanh finite):
            z_1 = math.atanh(min(max(r, -_MAX_CORRELATION), _MAX_CORRELATION))
            z_2 = math.atanh(min(max(r_complement, -_MAX_CORRELATION), _MAX_CORRELATION))
            z = (z_1 - z_2) / math.sqrt(1 / (n_1 - 3) + 1 / (n_2 - 3))
            return 1 - 2 * float(stats.norm.sf(abs(z)))
        raise ValueError(f'Quality measure "{measure.name}" needs a double correlation target.')


_MAX_CORRELATION = 1 - 1e-12


def _correlation(sums: MomentSums) -> float:
    # Undefined (NaN) below two observations; 0 if one variable is constant:
    if sums.n < 2:
        return float('nan')
    s_xx, s_yy, s_xy = sums.get_centered()
    if s_xx == 0 or s_yy == 0:
        return 0.0
    return min(max(s_xy / math.sqrt(s_xx * s_yy), -1.0), 1.0)


class RegressionMeasure:
    """Quality evaluator for the slope of a simple linear regression

    Fits `y = slope * x + intercept` by least squares in a subgroup and in its complement; the
    quality (LINEAR_REGRESSION) is the t-statistic of the difference between the two slopes.

    Literature
    ----------
    Duivesteijn et al. (2012): "Different Slopes for Different Folks"
    """

    def __init__(self, measure: QM, x: np.ndarray, y: np.ndarray):
        self._measure = measure
        self._x = np.asarray(x, dtype=float)
        self._y = np.asarray(y, dtype=float)
        self._base_sums = MomentSums(self._x, self._y)
        self._base_slope, self._base_intercept, _ = _fit_line(self._base_sums)

    def get_base_slope(self) -> float:
        return self._base_slope

    def get_base_intercept(self) -> float:
        return self._base_intercept

    def evaluate(self, members: np.ndarray) -> Tuple[float, float, float]:
        """Evaluate a subgroup

        Parameters
        ----------
        members : np.ndarray
            Boolean membership array of the subgroup.

        Returns
        -------
        Tuple[float, float, float]
            Quality, slope, and intercept in the subgroup. Quality is `-inf` if the model of the
            subgroup or the complement is rank-deficient (fewer than 3 rows or constant x).
        """

        sums = MomentSums(self._x[members], self._y[members])
        slope, intercept, variance = _fit_line(sums)
        complement_slope, _, complement_variance = _fit_line(self._base_sums - sums)
        if math.isnan(variance) or math.isnan(complement_variance):
            return float('-inf'), slope, intercept
        difference = abs(slope - complement_slope)
        standard_error = math.sqrt(variance + complement_variance)
        if standard_error == 0:
            return (float('inf') if difference > 0 else 0.0), slope, intercept
        return difference / standard_error, slope, intercept


def _fit_line(sums: MomentSums) -> Tuple[float, float, float]:
    # Returns slope, intercept, and variance of the slope estimate (NaN if rank-deficient):
    if sums.n < 1:
        return float('nan'), float('nan'), float('nan')
    s_xx, s_yy, s_xy = sums.get_centered()
    if s_xx == 0:
        return float('nan'), float('nan'), float('nan')
    slope = s_xy / s_xx
    intercept = (sums.sum_y - slope * sums.sum_x) / sums.n
    if sums.n < 3:
        return slope, intercept, float('nan')
    residual_sum_squares = max(s_yy - slope * s_xy, 0.0)
    return slope, intercept, residual_sum_squares / (sums.n - 2) / s_xx

