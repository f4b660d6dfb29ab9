"""Shared fixtures: small synthetic datasets and a factory for search parameters."""


from typing import Any, Callable

import numpy as np
import pandas as pd
import pytest

from sdsearch import SearchParameters, Table, TargetConcept, TargetType


@pytest.fixture
def demo_data() -> pd.DataFrame:
    rng = np.random.default_rng(25)
    n_rows = 300
    x = rng.uniform(0, 100, size=n_rows).round(1)
    color = rng.choice(['red', 'green', 'blue', 'yellow'], size=n_rows)
    flag = rng.random(n_rows) < 0.5
    noise = rng.random(n_rows) < 0.1
    return pd.DataFrame({
        'x': x,
        'color': color,
        'flag': flag,
        'z': rng.normal(size=n_rows).round(2),
        'y': (2 * x + np.where(flag, 30, 0) + rng.normal(scale=5, size=n_rows)).round(2),
        'target': ((x > 60) & (color != 'blue')) | noise
    })


@pytest.fixture
def demo_table(demo_data: pd.DataFrame) -> Table:
    return Table(demo_data, name='demo')


@pytest.fixture
def make_parameters() -> Callable[..., SearchParameters]:
    """Factory for parameters with a single nominal target `target` (overridable)."""

    def _make_parameters(target_concept: Any = None, **kwargs: Any) -> SearchParameters:
        if target_concept is None:
            target_concept = TargetConcept(TargetType.SINGLE_NOMINAL, primary_target='target')
        return SearchParameters(target_concept=target_concept, **kwargs)

    return _make_parameters
