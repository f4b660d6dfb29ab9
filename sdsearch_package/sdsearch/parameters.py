"""Search configuration

Enumerations and dataclasses describing a subgroup-discovery run: the target concept (which
column(s) should be explained) and the search parameters (quality measure, search strategy,
numeric strategy, coverage bounds, limits, and logging sink).
"""


import dataclasses
import enum
from typing import Any, Optional, Sequence, Tuple

from loguru import logger

from .conditions import Operator
from .metrics import QM


class TargetType(enum.Enum):
    """Kind of target concept, selecting how candidates are scored."""

    SINGLE_NOMINAL = 'single nominal'
    SINGLE_NUMERIC = 'single numeric'
    DOUBLE_REGRESSION = 'double regression'
    DOUBLE_CORRELATION = 'double correlation'
    MULTI_LABEL = 'multi-label'

    @classmethod
    def from_string(cls, name: str) -> 'TargetType':
        return _enum_from_string(cls, name)

    def is_double(self) -> bool:
        return self in (TargetType.DOUBLE_REGRESSION, TargetType.DOUBLE_CORRELATION)


class SearchStrategy(enum.Enum):
    """Order in which the candidate queue hands out subgroups for refinement."""

    BREADTH_FIRST = 'breadth first'
    DEPTH_FIRST = 'depth first'
    BEST_FIRST = 'best first'
    BEAM = 'beam'
    COVER_BASED_BEAM_SELECTION = 'cover-based beam selection'

    @classmethod
    def from_string(cls, name: str) -> 'SearchStrategy':
        return _enum_from_string(cls, name)

    def is_beam(self) -> bool:
        return self in (SearchStrategy.BEAM, SearchStrategy.COVER_BASED_BEAM_SELECTION)


class NumericStrategy(enum.Enum):
    """How thresholds for numeric conditions are chosen."""

    NUMERIC_ALL = 'all'
    NUMERIC_BINS = 'bins'
    NUMERIC_BEST = 'best'
    NUMERIC_INTERVALS = 'intervals'

    @classmethod
    def from_string(cls, name: str) -> 'NumericStrategy':
        return _enum_from_string(cls, name)


class NumericOperators(enum.Enum):
    """Operators used for refinements of numeric columns (an inclusive range of `Operator`)."""

    NORMAL = (Operator.LESS_THAN_OR_EQUAL, Operator.GREATER_THAN_OR_EQUAL)
    LEQ = (Operator.LESS_THAN_OR_EQUAL, Operator.LESS_THAN_OR_EQUAL)
    GEQ = (Operator.GREATER_THAN_OR_EQUAL, Operator.GREATER_THAN_OR_EQUAL)
    ALL = (Operator.EQUALS, Operator.GREATER_THAN_OR_EQUAL)
    EQ = (Operator.EQUALS, Operator.EQUALS)

    @classmethod
    def from_string(cls, name: str) -> 'NumericOperators':
        return _enum_from_string(cls, name)


def _enum_from_string(enum_class: Any, name: str) -> Any:
    # Accept member names ("BEST_FIRST") and values ("best first"), case-insensitively:
    normalized = name.strip().lower().replace('_', ' ').replace('-', ' ')
    for member in enum_class:
        if normalized in (member.name.lower().replace('_', ' '),
                          str(member.value).lower().replace('-', ' ')):
            return member
    raise ValueError(f'Unknown {enum_class.__name__}: "{name}".')


@dataclasses.dataclass
class TargetConcept:
    """Target concept of a subgroup-discovery run

    Parameters
    ----------
    target_type : TargetType
        Kind of target; determines which other fields are used.
    primary_target : Optional[str]
        Name of the target column (single targets) or of the first column (double targets).
    target_value : Any, optional
        For SINGLE_NOMINAL: the value of :attr:`primary_target` counted as positive. Binary
        columns default to `True`.
    secondary_target : Optional[str], optional
        Name of the second column for DOUBLE_REGRESSION (response) and DOUBLE_CORRELATION.
    multi_targets : Sequence[str], optional
        Names of the binary columns forming a MULTI_LABEL target.
    """

    target_type: TargetType = TargetType.SINGLE_NOMINAL
    primary_target: Optional[str] = None
    target_value: Any = None
    secondary_target: Optional[str] = None
    multi_targets: Sequence[str] = ()

    def __post_init__(self):
        if isinstance(self.target_type, str):
            self.target_type = TargetType.from_string(self.target_type)
        self.multi_targets = tuple(self.multi_targets)
        if self.target_type == TargetType.MULTI_LABEL:
            if len(self.multi_targets) < 2:
                raise ValueError('A multi-label target needs at least two target columns.')
        elif self.primary_target is None:
            raise ValueError(f'Target type "{self.target_type.value}" needs a primary target.')
        if self.target_type.is_double() and self.secondary_target is None:
            raise ValueError(f'Target type "{self.target_type.value}" needs a secondary target.')

    def get_target_columns(self) -> Tuple[str, ...]:
        """Get the names of all columns belonging to the target (never used as descriptors)."""

        if self.target_type == TargetType.MULTI_LABEL:
            return self.multi_targets
        if self.target_type.is_double():
            return (self.primary_target, self.secondary_target)
        return (self.primary_target,)


@dataclasses.dataclass
class SearchParameters:
    """Parameters of a subgroup-discovery run

    Parameters
    ----------
    target_concept : TargetConcept
        What should be explained.
    quality_measure : QM
        Quality measure; must fit the target type. May also be passed as a string.
    quality_measure_minimum : float, optional
        Subgroups need a quality strictly above this value to enter the result set.
    search_depth : int, optional
        Maximum number of conditions per subgroup description.
    minimum_coverage : int, optional
        Minimum number of rows a subgroup needs to be scored.
    maximum_coverage_fraction : float, optional
        Maximum fraction of rows a subgroup may cover to enter the result set.
    maximum_subgroups : int, optional
        Size of the result set; non-positive values mean unbounded.
    maximum_time : float, optional
        Time limit in minutes; non-positive values mean unbounded.
    search_strategy : SearchStrategy, optional
        Order in which candidates are refined.
    search_strategy_width : int, optional
        Beam width (only for the beam strategies).
    numeric_operators : NumericOperators, optional
        Operators for numeric columns (ignored for the INTERVALS strategy, which uses BETWEEN).
    numeric_strategy : NumericStrategy, optional
        How numeric thresholds are chosen.
    nr_bins : int, optional
        Number of bins for the BINS strategy.
    nominal_sets : bool, optional
        Whether nominal columns are refined with set-valued (ELEMENT_OF) conditions.
    alpha, beta : float, optional
        Parameters of the dependency-graph learner (MULTI_LABEL only); `alpha` is the
        significance level of the edge test.
    post_processing_count : int, optional
        Number of graphs learned per subgroup when post-processing MULTI_LABEL results.
    post_processing_do_autorun : bool, optional
        Whether MULTI_LABEL results are post-processed after mining.
    maximum_post_processing_subgroups : int, optional
        Number of best subgroups that are post-processed (and size of a cover-based selection).
    random_seed : Optional[int], optional
        Seed of the random generators used by validation and the dependency-graph learner.
    verbose : bool, optional
        Whether the driver reports progress and every candidate through :attr:`logger`.
    logger : Any, optional
        Logging sink with the `loguru` interface. Defaults to the `loguru` logger.
    """

    target_concept: TargetConcept
    quality_measure: QM = QM.WRACC
    quality_measure_minimum: float = 0.0
    search_depth: int = 1
    minimum_coverage: int = 2
    maximum_coverage_fraction: float = 1.0
    maximum_subgroups: int = 1000
    maximum_time: float = 0.0
    search_strategy: SearchStrategy = SearchStrategy.BEAM
    search_strategy_width: int = 100
    numeric_operators: NumericOperators = NumericOperators.NORMAL
    numeric_strategy: NumericStrategy = NumericStrategy.NUMERIC_BEST
    nr_bins: int = 8
    nominal_sets: bool = False
    alpha: float = 0.5
    beta: float = 1.0
    post_processing_count: int = 20
    post_processing_do_autorun: bool = True
    maximum_post_processing_subgroups: int = 100
    random_seed: Optional[int] = None
    verbose: bool = False
    logger: Any = dataclasses.field(default=None, repr=False, compare=False)

    def __post_init__(self):
        # Allow plain strings for all enum-valued settings (e.g., from the command line):
        if isinstance(self.quality_measure, str):
            self.quality_measure = QM.from_string(self.quality_measure)
        if isinstance(self.search_strategy, str):
            self.search_strategy = SearchStrategy.from_string(self.search_strategy)
        if isinstance(self.numeric_strategy, str):
            self.numeric_strategy = NumericStrategy.from_string(self.numeric_strategy)
        if isinstance(self.numeric_operators, str):
            self.numeric_operators = NumericOperators.from_string(self.numeric_operators)
        if self.logger is None:
            self.logger = logger.bind(name='sdsearch')
        target_type = self.target_concept.target_type
        if self.quality_measure.target_type != target_type.value:
            raise ValueError(f'Quality measure "{self.quality_measure.name}" does not fit target'
                             f' type "{target_type.value}".')
        if self.search_depth < 1:
            raise ValueError('Search depth needs to be at least 1.')
        if self.minimum_coverage < 1:
            raise ValueError('Minimum coverage needs to be at least 1.')
        if not 0 < self.maximum_coverage_fraction <= 1:
            raise ValueError('Maximum coverage fraction needs to be in (0, 1].')
        if self.search_strategy.is_beam() and self.search_strategy_width < 1:
            raise ValueError('Beam width needs to be at least 1.')
        if self.numeric_strategy == NumericStrategy.NUMERIC_BINS and self.nr_bins < 2:
            raise ValueError('Number of bins needs to be at least 2.')
        if target_type == TargetType.MULTI_LABEL and not (0 < self.alpha < 1 and self.beta > 0):
            raise ValueError('Multi-label targets need alpha in (0, 1) and a positive beta.')
        if target_type != TargetType.SINGLE_NOMINAL:
            if self.numeric_strategy == NumericStrategy.NUMERIC_INTERVALS:
                raise ValueError('Numeric intervals require a single nominal target.')
            if self.nominal_sets:
                raise ValueError('Set-valued nominal conditions require a single nominal target.')

    def get_numeric_operator_range(self) -> Tuple[Operator, Operator]:
        """Get the first and last operator used to refine numeric columns."""

        if self.numeric_strategy == NumericStrategy.NUMERIC_INTERVALS:
            return Operator.BETWEEN, Operator.BETWEEN
        return self.numeric_operators.value

    def get_nominal_operator_range(self) -> Tuple[Operator, Operator]:
        """Get the first and last operator used to refine nominal columns."""

        if self.nominal_sets:
            return Operator.ELEMENT_OF, Operator.ELEMENT_OF
        return Operator.DOES_NOT_EQUAL, Operator.EQUALS
