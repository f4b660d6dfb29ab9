"""Subgroup-discovery search

A search engine for subgroup discovery: finds conjunctive descriptions of subsets of a dataset's
rows whose target behaves unusually, according to a quality measure.
"""

from .candidate_queue import CandidateQueue
from .conditions import Condition, ConditionList, Interval, Operator, ValueSet
from .data import Column, ColumnType, Table
from .dependency import DependencyGraphLearner
from .methods import SubgroupDiscovery, TimeLimitWarning
from .metrics import QM, QualityMeasure, wracc, wracc_np
from .parameters import (NumericOperators, NumericStrategy, SearchParameters, SearchStrategy,
                         TargetConcept, TargetType)
from .refinement import Refinement, RefinementList
from .splits import find_best_interval, find_best_value_set
from .subgroups import Candidate, Subgroup, SubgroupSet
from .targets import create_target_evaluator
from .validation import NormalDistribution, Validation
