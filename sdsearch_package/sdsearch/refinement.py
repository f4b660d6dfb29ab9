"""Refinements

Classes enumerating the one-step specializations of a subgroup: one :class:`Refinement` per
eligible column and operator, each able to create refined subgroups for concrete values.
"""


from typing import Any, Tuple

from .conditions import Condition, Operator
from .data import Column, Table
from .parameters import SearchParameters
from .subgroups import Subgroup


class Refinement:
    """Refinement of a subgroup by a condition whose value is not fixed yet."""

    def __init__(self, condition: Condition, subgroup: Subgroup):
        self._condition = condition
        self._subgroup = subgroup

    def get_condition(self) -> Condition:
        return self._condition

    def get_subgroup(self) -> Subgroup:
        return self._subgroup

    def get_refined_subgroup(self, value: Any) -> Subgroup:
        """Create the refined subgroup for a concrete value

        Parameters
        ----------
        value : Any
            A single nominal or numeric value, a bool, a :class:`ValueSet`, or an
            :class:`Interval`, matching the column type and operator.

        Returns
        -------
        Subgroup
            A new subgroup: the parent's conditions plus the specified condition, with the
            membership restricted accordingly. The parent is not changed.
        """

        condition = self._condition.copy()
        condition.set_value(value)
        refined_subgroup = self._subgroup.copy()
        refined_subgroup.add_condition(condition)
        return refined_subgroup

    def __repr__(self) -> str:
        return (f'Refinement({self._condition.get_column().get_name()}'
                f' {self._condition.get_operator()}, {self._subgroup})')


class RefinementList(list):
    """All refinements of a subgroup

    A list with one :class:`Refinement` per eligible column and operator. Columns are eligible if
    they are enabled, not part of the target, and not already fixed in the subgroup by an EQUALS
    or ELEMENT_OF condition. The operators per column type come from the search parameters.
    """

    def __init__(self, subgroup: Subgroup, table: Table, search_parameters: SearchParameters):
        super().__init__()
        target_columns = set(search_parameters.target_concept.get_target_columns())
        for column in table.get_columns():
            if (not column.is_enabled() or column.get_name() in target_columns or
                    _is_fixed(subgroup, column)):
                continue
            first, last = _get_operator_range(column, search_parameters)
            condition = Condition(column, first, last_operator=last)
            self.append(Refinement(condition, subgroup))
            while condition.has_next_operator():
                condition = Condition(column, condition.get_next_operator(), last_operator=last)
                self.append(Refinement(condition, subgroup))


def _is_fixed(subgroup: Subgroup, column: Column) -> bool:
    return any(condition.get_operator() in (Operator.EQUALS, Operator.ELEMENT_OF)
               for condition in subgroup.get_conditions().find_conditions(column))


def _get_operator_range(column: Column,
                        search_parameters: SearchParameters) -> Tuple[Operator, Operator]:
    if column.is_binary_type():
        return Operator.EQUALS, Operator.EQUALS
    if column.is_numeric_type():
        return search_parameters.get_numeric_operator_range()
    return search_parameters.get_nominal_operator_range()
