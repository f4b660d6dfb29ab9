"""Data layer

Classes wrapping a :class:`pd.DataFrame` for subgroup search: typed, read-only columns that
evaluate conditions into boolean membership arrays (one entry per row) and answer domain and
statistics queries, and a table holding the columns.
"""


import contextlib
import enum
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Sequence, Union

import numpy as np
import pandas as pd

from .conditions import Condition, Operator


MISSING_NOMINAL_VALUE = '?'


class ColumnType(enum.Enum):
    NOMINAL = 'nominal'
    NUMERIC = 'numeric'
    BINARY = 'binary'


class ColumnStatistics(NamedTuple):
    """Statistics of a numeric column restricted to the members of a subgroup."""

    coverage: int
    sum: float
    sum_squared_deviations: float
    median: float
    median_absolute_deviation: float


class Column:
    """Typed column of a :class:`Table`

    Stores the values as a read-only :class:`np.ndarray`: `bool` for binary columns, `float` for
    numeric columns (missing values are NaN), and `str` objects for nominal columns (missing
    values are replaced by :data:`MISSING_NOMINAL_VALUE`).
    """

    def __init__(self, name: str, values: Sequence[Any], column_type: ColumnType, index: int,
                 enabled: bool = True):
        self._name = name
        self._type = column_type
        self._index = index
        self._enabled = enabled
        self._values = self._convert(values)

    def _convert(self, values: Sequence[Any]) -> np.ndarray:
        if self._type == ColumnType.BINARY:
            result = np.asarray(values)
            if result.dtype.kind in 'OUS':
                result = np.array([str(value).strip().lower() in ('1', 'true', 't', 'yes', 'y')
                                   for value in result], dtype=bool)
            else:
                result = result.astype(bool)
        elif self._type == ColumnType.NUMERIC:
            result = pd.to_numeric(pd.Series(values), errors='coerce').to_numpy(dtype=float)
        else:
            result = pd.Series(values).fillna(MISSING_NOMINAL_VALUE).astype(str).to_numpy(
                dtype=object)
        result.flags.writeable = False
        return result

    def get_name(self) -> str:
        return self._name

    def get_index(self) -> int:
        return self._index

    def get_type(self) -> ColumnType:
        return self._type

    def is_binary_type(self) -> bool:
        return self._type == ColumnType.BINARY

    def is_numeric_type(self) -> bool:
        return self._type == ColumnType.NUMERIC

    def is_nominal_type(self) -> bool:
        return self._type == ColumnType.NOMINAL

    def is_enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled

    def get_values(self) -> np.ndarray:
        return self._values

    def set_values(self, values: np.ndarray) -> None:
        """Replace all values (used to permute target columns); converts like the initializer."""

        assert len(values) == len(self._values), 'Number of values must not change.'
        self._values = self._convert(values)

    def get_nr_rows(self) -> int:
        return len(self._values)

    def get_min(self) -> float:
        return float(np.nanmin(self._values))

    def get_max(self) -> float:
        return float(np.nanmax(self._values))

    def get_domain(self, members: Optional[np.ndarray] = None) -> List[Any]:
        """Get the sorted distinct values of the column

        Parameters
        ----------
        members : Optional[np.ndarray], optional
            Boolean membership array; if given, only values of member rows are considered.

        Returns
        -------
        List[Any]
            Distinct values (without NaN for numeric columns) in ascending order.
        """

        if self._type == ColumnType.NUMERIC:
            return self.get_unique_numeric_domain(members).tolist()
        values = self._values if members is None else self._values[members]
        return sorted(set(values.tolist()))

    def get_unique_numeric_domain(self, members: Optional[np.ndarray] = None) -> np.ndarray:
        values = self._values if members is None else self._values[members]
        return np.unique(values[~np.isnan(values)])

    def get_split_points(self, members: np.ndarray, nr_split_points: int) -> np.ndarray:
        """Get equal-frequency split points of the member values

        The `j`-th split point is the value at position `n * (j + 1) / (nr_split_points + 1)` of
        the sorted member values, so consecutive split points may coincide.
        """

        values = self._values[members]
        sorted_values = np.sort(values[~np.isnan(values)])
        n_values = len(sorted_values)
        if n_values == 0:
            return np.array([], dtype=float)
        positions = [n_values * (j + 1) // (nr_split_points + 1) for j in range(nr_split_points)]
        return sorted_values[positions]

    def get_statistics(self, members: np.ndarray, need_median: bool = False) -> ColumnStatistics:
        values = self._values[members]
        coverage = len(values)
        if coverage == 0:
            return ColumnStatistics(0, 0.0, 0.0, float('nan'), float('nan'))
        total = float(values.sum())
        sum_squared_deviations = float(((values - total / coverage) ** 2).sum())
        median = float('nan')
        median_absolute_deviation = float('nan')
        if need_median:
            median = float(np.median(values))
            median_absolute_deviation = float(np.median(np.abs(values - median)))
        return ColumnStatistics(coverage, total, sum_squared_deviations, median,
                                median_absolute_deviation)

    def evaluate(self, condition: Condition) -> np.ndarray:
        """Evaluate a condition for all rows

        Returns
        -------
        np.ndarray
            Boolean array, `True` for rows satisfying the condition. All-false (with a logged
            warning) if the operator does not fit the column type.
        """

        if not condition.is_valid():
            condition._log_type_error('evaluate')
            return np.zeros(len(self._values), dtype=bool)
        operator = condition.get_operator()
        value = condition.get_value()
        values = self._values
        if operator == Operator.ELEMENT_OF:
            return np.isin(values, list(value))
        if operator == Operator.DOES_NOT_EQUAL:
            return values != value
        if operator == Operator.EQUALS:
            return values == value
        if operator == Operator.LESS_THAN_OR_EQUAL:
            return values <= value
        if operator == Operator.GREATER_THAN_OR_EQUAL:
            return values >= value
        return (values > value.lower) & (values <= value.upper)

    def __repr__(self) -> str:
        return f'Column({self._name!r}, {self._type.name}, index={self._index})'


class Table:
    """Dataset for subgroup search

    Wraps a :class:`pd.DataFrame`: one :class:`Column` per data-frame column. Column types are
    inferred (bool columns and columns with values in {0, 1} are binary, other numeric columns are
    numeric, everything else is nominal) unless given explicitly.
    """

    def __init__(self, data: pd.DataFrame, name: str = 'table',
                 column_types: Optional[Dict[str, Union[ColumnType, str]]] = None):
        assert data.columns.is_unique, 'Column names need to be unique.'
        column_types = {} if column_types is None else column_types
        self._name = name
        self._nr_rows = data.shape[0]
        self._columns = []
        for index, column_name in enumerate(data.columns):
            column_type = column_types.get(column_name)
            if column_type is None:
                column_type = _infer_column_type(data[column_name])
            self._columns.append(Column(name=str(column_name), values=data[column_name].to_numpy(),
                                        column_type=ColumnType(column_type), index=index))
        self._columns_by_name = {column.get_name(): column for column in self._columns}

    def get_name(self) -> str:
        return self._name

    def get_nr_rows(self) -> int:
        return self._nr_rows

    def get_nr_columns(self) -> int:
        return len(self._columns)

    def get_columns(self) -> List[Column]:
        return list(self._columns)

    def get_column(self, key: Union[int, str]) -> Column:
        if isinstance(key, str):
            if key not in self._columns_by_name:
                raise ValueError(f'Unknown column "{key}".')
            return self._columns_by_name[key]
        return self._columns[key]

    def has_column(self, name: str) -> bool:
        return name in self._columns_by_name

    def evaluate(self, conditions: Union[Condition, Sequence[Condition]]) -> np.ndarray:
        """Get the membership of a condition or a conjunction of conditions."""

        members = np.ones(self._nr_rows, dtype=bool)
        if isinstance(conditions, Condition):
            conditions = [conditions]
        for condition in conditions:
            members &= condition.get_column().evaluate(condition)
        return members

    def get_random_members(self, size: int, rng: np.random.Generator) -> np.ndarray:
        """Get a membership array with `size` rows drawn uniformly without replacement."""

        members = np.zeros(self._nr_rows, dtype=bool)
        members[rng.choice(self._nr_rows, size=size, replace=False)] = True
        return members

    @contextlib.contextmanager
    def permuted_columns(self, names: Sequence[str],
                         rng: np.random.Generator) -> Iterator[None]:
        """Temporarily permute the rows of some columns jointly

        All given columns are permuted with the same random permutation (keeping their joint
        distribution but destroying their relationship to the other columns). The original values
        are restored when leaving the context, also if an exception occurred.
        """

        columns = [self.get_column(name) for name in names]
        original_values = [column.get_values() for column in columns]
        permutation = rng.permutation(self._nr_rows)
        try:
            for column, values in zip(columns, original_values):
                column.set_values(values[permutation])
            yield
        finally:
            for column, values in zip(columns, original_values):
                column.set_values(values)

    def __repr__(self) -> str:
        return f'Table({self._name!r}, rows={self._nr_rows}, columns={len(self._columns)})'


def _infer_column_type(series: pd.Series) -> ColumnType:
    if pd.api.types.is_bool_dtype(series):
        return ColumnType.BINARY
    if pd.api.types.is_numeric_dtype(series):
        if series.dropna().isin((0, 1)).all() and series.notna().all():
            return ColumnType.BINARY
        return ColumnType.NUMERIC
    return ColumnType.NOMINAL
