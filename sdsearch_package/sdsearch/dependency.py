"""Dependency graphs between binary targets

A simple learner for directed acyclic graphs over the columns of a multi-label target, used to
score subgroups by how much their dependency structure differs from the whole dataset's.
"""


from typing import Optional

import numpy as np
from scipy import stats


class DependencyGraphLearner:
    """Learner for dependency graphs over binary target columns

    Adds an edge `i -> j` for each pair of columns `i < j` (fixed column order, so the graph is
    acyclic) whose association is significant according to a G-test of independence on the 2x2
    table of the two columns. Each table cell is smoothed with a pseudo-count.

    Literature
    ----------
    Duivesteijn et al. (2010): "Subgroup Discovery meets Bayesian networks -- an Exceptional Model
    Mining approach"
    """

    def __init__(self, alpha: float = 0.05, beta: float = 1.0):
        """Initialize learner

        Parameters
        ----------
        alpha : float, optional
            Significance level of the independence test; higher values create more edges.
        beta : float, optional
            Pseudo-count added to each cell of the contingency tables.
        """

        self._alpha = alpha
        self._beta = beta

    def learn(self, data: np.ndarray, rng: Optional[np.random.Generator] = None) -> np.ndarray:
        """Learn a graph

        Parameters
        ----------
        data : np.ndarray
            Boolean matrix (rows x target columns).
        rng : Optional[np.random.Generator], optional
            If given, the graph is learned on a bootstrap sample of the rows.

        Returns
        -------
        np.ndarray
            Boolean adjacency matrix (target columns x target columns).
        """

        data = np.asarray(data, dtype=bool)
        if rng is not None and len(data) > 0:
            data = data[rng.integers(len(data), size=len(data))]
        n_columns = data.shape[1]
        graph = np.zeros((n_columns, n_columns), dtype=bool)
        if len(data) == 0:
            return graph
        for i in range(n_columns):
            for j in range(i + 1, n_columns):
                graph[i, j] = self._is_dependent(data[:, i], data[:, j])
        return graph

    def _is_dependent(self, column_1: np.ndarray, column_2: np.ndarray) -> bool:
        observed = np.array([
            [np.count_nonzero(column_1 & column_2), np.count_nonzero(column_1 & ~column_2)],
            [np.count_nonzero(~column_1 & column_2), np.count_nonzero(~column_1 & ~column_2)]
        ], dtype=float) + self._beta
        expected = observed.sum(axis=1, keepdims=True) * observed.sum(axis=0) / observed.sum()
        g_statistic = 2 * float((observed * np.log(observed / expected)).sum())
        return float(stats.chi2.sf(g_statistic, df=1)) < self._alpha
