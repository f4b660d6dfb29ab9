"""Subgroup descriptions

Classes for the building blocks of subgroup descriptions: operators, numeric intervals, nominal
value sets, single conditions (one column, one operator, one value), and conjunctions of
conditions. Conditions do not hold row data themselves; evaluating them over a whole column is
done by :meth:`sdsearch.data.Column.evaluate`.
"""


import dataclasses
import enum
import math
from typing import Any, Iterable, Iterator, Optional, Tuple

from loguru import logger


class Operator(enum.IntEnum):
    """Comparison operator of a condition; the integer order is the order of enumeration."""

    ELEMENT_OF = 0
    DOES_NOT_EQUAL = 1
    EQUALS = 2
    LESS_THAN_OR_EQUAL = 3
    GREATER_THAN_OR_EQUAL = 4
    BETWEEN = 5

    def __str__(self) -> str:
        return _OPERATOR_STRINGS[self]


_OPERATOR_STRINGS = {
    Operator.ELEMENT_OF: 'in',
    Operator.DOES_NOT_EQUAL: '!=',
    Operator.EQUALS: '=',
    Operator.LESS_THAN_OR_EQUAL: '<=',
    Operator.GREATER_THAN_OR_EQUAL: '>=',
    Operator.BETWEEN: 'in',
}

# Default operator ranges per column type (inclusive):
BINARY_OPERATORS = (Operator.EQUALS, Operator.EQUALS)
NOMINAL_OPERATORS = (Operator.DOES_NOT_EQUAL, Operator.EQUALS)
NUMERIC_OPERATORS = (Operator.EQUALS, Operator.BETWEEN)


@dataclasses.dataclass(frozen=True, order=True)
class Interval:
    """Left-open numeric interval `(lower, upper]`

    Infinite bounds denote one-sided intervals; `(-inf, inf)` contains every non-NaN number.
    """

    lower: float = float('-inf')
    upper: float = float('inf')

    def between(self, value: float) -> bool:
        return self.lower < value <= self.upper

    def __str__(self) -> str:
        closing = ')' if math.isinf(self.upper) else ']'
        return f'({_format_float(self.lower)}, {_format_float(self.upper)}{closing}'


@dataclasses.dataclass(frozen=True)
class ValueSet:
    """Set of nominal values, stored sorted and without duplicates."""

    values: Tuple[str, ...]

    def __post_init__(self):
        object.__setattr__(self, 'values', tuple(sorted(set(self.values))))

    def __contains__(self, value: Any) -> bool:
        return value in self.values

    def __iter__(self) -> Iterator[str]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def __str__(self) -> str:
        return '{' + ', '.join(self.values) + '}'


def _format_float(value: float) -> str:
    if math.isinf(value):
        return '-inf' if value < 0 else 'inf'
    return f'{value:g}'


class Condition:
    """Condition of a subgroup description

    A predicate over a single column, consisting of the column, an operator, and a value. Which
    kind of value is populated depends on the column type: a string for nominal columns with
    (in)equality operators, a :class:`ValueSet` for nominal columns with ELEMENT_OF, a float for
    numeric columns with comparison operators, an :class:`Interval` for numeric columns with
    BETWEEN, and a bool for binary columns. Conditions are ordered by column index, operator, and
    value, which makes :class:`ConditionList` canonical.
    """

    def __init__(self, column: Any, operator: Optional[Operator] = None,
                 last_operator: Optional[Operator] = None):
        """Initialize condition

        Parameters
        ----------
        column : Column
            The column the condition refers to (see :class:`sdsearch.data.Column`).
        operator : Optional[Operator], optional
            The condition's operator. Defaults to the first operator for the column's type.
        last_operator : Optional[Operator], optional
            The last operator returned by :meth:`get_next_operator`. Defaults to the last operator
            for the column's type.
        """

        if column.is_binary_type():
            first, last = BINARY_OPERATORS
        elif column.is_numeric_type():
            first, last = NUMERIC_OPERATORS
        else:
            first, last = NOMINAL_OPERATORS
        self._column = column
        self._operator = Operator(first if operator is None else operator)
        self._last_operator = Operator(last if last_operator is None else last_operator)
        self._value = None

    def get_column(self) -> Any:
        return self._column

    def get_operator(self) -> Operator:
        return self._operator

    def get_value(self) -> Any:
        return self._value

    def copy(self) -> 'Condition':
        """Copy the condition, sharing the column but not the value slot."""

        result = Condition(self._column, self._operator, self._last_operator)
        result._value = self._value
        return result

    def set_value(self, value: Any) -> None:
        """Set the value of the condition

        Dispatches on the type of `value`: :class:`ValueSet` and :class:`Interval` are stored
        as-is; for other values, the column type decides. Numeric values that cannot be parsed
        become NaN, which no row satisfies.
        """

        if isinstance(value, (ValueSet, Interval)):
            self._value = value
        elif self._column.is_binary_type():
            self._value = _parse_bool(value)
        elif self._column.is_numeric_type():
            try:
                self._value = float(value)
            except (TypeError, ValueError):
                logger.debug('Cannot parse "{}" as a number for column "{}".', value,
                              self._column.get_name())
                self._value = float('nan')
        else:
            self._value = str(value)

    def is_valid(self) -> bool:
        """Check whether operator and value kind match the column type."""

        operator = self._operator
        value = self._value
        if self._column.is_binary_type():
            return operator == Operator.EQUALS and isinstance(value, bool)
        if self._column.is_numeric_type():
            if operator == Operator.BETWEEN:
                return isinstance(value, Interval)
            return (Operator.EQUALS <= operator <= Operator.GREATER_THAN_OR_EQUAL and
                    isinstance(value, float))
        if operator == Operator.ELEMENT_OF:
            return isinstance(value, ValueSet)
        return operator in (Operator.DOES_NOT_EQUAL, Operator.EQUALS) and isinstance(value, str)

    def evaluate(self, value: Any) -> bool:
        """Evaluate the condition for a single cell value

        Returns `False` (and logs a warning) if the operator does not fit the column type or the
        condition's value.
        """

        if not self.is_valid():
            self._log_type_error('evaluate')
            return False
        operator = self._operator
        if operator == Operator.ELEMENT_OF:
            return str(value) in self._value
        if operator == Operator.DOES_NOT_EQUAL:
            return str(value) != self._value
        if operator == Operator.BETWEEN:
            return self._value.between(float(value))
        if self._column.is_binary_type():
            return bool(value) == self._value
        if self._column.is_numeric_type():
            value = float(value)
            if operator == Operator.EQUALS:
                return value == self._value
            if operator == Operator.LESS_THAN_OR_EQUAL:
                return value <= self._value
            return value >= self._value
        return str(value) == self._value

    def has_next_operator(self) -> bool:
        return self._operator < self._last_operator

    def get_next_operator(self) -> Optional[Operator]:
        """Get the operator following this condition's operator, `None` after the last one."""

        if self.has_next_operator():
            return Operator(self._operator + 1)
        return None

    def get_sort_key(self) -> Tuple[Any, ...]:
        """Get a key establishing the total order of conditions

        Conditions are ordered by column index, then operator, then value. Value sets compare by
        size first, binary values as `False < True`.
        """

        value = self._value
        if isinstance(value, ValueSet):
            value_key = (len(value), value.values)
        elif isinstance(value, Interval):
            value_key = (value.lower, value.upper)
        elif value is None:
            value_key = ()
        else:
            value_key = (value,)
        return (self._column.get_index(), int(self._operator), value_key)

    def _log_type_error(self, method: str) -> None:
        logger.warning('Condition.{}(): operator "{}" does not fit column "{}" of type {} with'
                       ' value {!r}.', method, self._operator.name, self._column.get_name(),
                       self._column.get_type().name, self._value)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Condition):
            return NotImplemented
        return self.get_sort_key() == other.get_sort_key()

    def __lt__(self, other: 'Condition') -> bool:
        return self.get_sort_key() < other.get_sort_key()

    def __hash__(self) -> int:
        return hash(self.get_sort_key())

    def __str__(self) -> str:
        return f"{self._column.get_name()} {self._operator} '{self._value_to_string()}'"

    def __repr__(self) -> str:
        return f'Condition({self})'

    def _value_to_string(self) -> str:
        value = self._value
        if isinstance(value, bool):
            return '1' if value else '0'
        if isinstance(value, float):
            return _format_float(value)
        return str(value)


def _parse_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 't', 'yes', 'y')
    return bool(value)


class ConditionList:
    """Conjunction of conditions

    Conditions are kept in canonical (sorted) order, so conjunctions of the same conditions are
    equal regardless of the order in which the conditions were added.
    """

    def __init__(self, conditions: Iterable[Condition] = ()):
        self._conditions = sorted(conditions, key=Condition.get_sort_key)

    def add_condition(self, condition: Condition) -> None:
        key = condition.get_sort_key()
        position = len(self._conditions)
        while position > 0 and self._conditions[position - 1].get_sort_key() > key:
            position -= 1
        self._conditions.insert(position, condition)

    def copy(self) -> 'ConditionList':
        result = ConditionList()
        result._conditions = list(self._conditions)
        return result

    def find_conditions(self, column: Any) -> Tuple[Condition, ...]:
        """Get all conditions on the given column."""

        return tuple(condition for condition in self._conditions
                     if condition.get_column() is column)

    def get_sort_key(self) -> Tuple[Tuple[Any, ...], ...]:
        return tuple(condition.get_sort_key() for condition in self._conditions)

    def __len__(self) -> int:
        return len(self._conditions)

    def __iter__(self) -> Iterator[Condition]:
        return iter(self._conditions)

    def __getitem__(self, index: int) -> Condition:
        return self._conditions[index]

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, ConditionList):
            return NotImplemented
        return self.get_sort_key() == other.get_sort_key()

    def __lt__(self, other: 'ConditionList') -> bool:
        return self.get_sort_key() < other.get_sort_key()

    def __hash__(self) -> int:
        return hash(self.get_sort_key())

    def __str__(self) -> str:
        if not self._conditions:
            return '(empty)'
        return ' AND '.join(str(condition) for condition in self._conditions)

    def __repr__(self) -> str:
        return f'ConditionList({self})'
