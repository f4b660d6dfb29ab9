"""Candidate queue

The scheduler of the search: holds subgroups that still need to be refined, hands them out in the
order prescribed by the search strategy, and coordinates worker threads so that level transitions
(beam search) and completion are detected consistently.
"""


import collections
import heapq
import itertools
import threading
import time
from typing import List, Optional

from .parameters import SearchStrategy
from .subgroups import Candidate, select_cover_based


class CandidateQueue:
    """Candidate queue

    Holds the current level of candidates and a buffer for the next level. Breadth-first search
    pops in FIFO order, depth-first search in LIFO order, and best-first search by priority; these
    strategies add to the current level directly. The beam strategies add to the next level, which
    replaces the current level once the latter is exhausted: beam search keeps the `width`
    candidates with highest priority, cover-based beam selection picks `width` diverse candidates.

    All methods are thread-safe. Worker threads use :meth:`take` and :meth:`task_done`: a level
    transition only happens when no handed-out candidate is still being refined (its children may
    belong to the next level), and the search is complete when both levels are empty and no
    candidate is being refined.
    """

    def __init__(self, search_strategy: SearchStrategy, width: int = 0, nr_rows: int = 0):
        """Initialize candidate queue

        Parameters
        ----------
        search_strategy : SearchStrategy
            Determines pop order and level handling.
        width : int, optional
            Beam width (beam strategies only).
        nr_rows : int, optional
            Number of rows of the dataset (cover-based beam selection only).
        """

        self._search_strategy = search_strategy
        self._width = width
        self._nr_rows = nr_rows
        self._current = collections.deque()  # FIFO/LIFO strategies
        self._current_heap = []  # priority strategies, entries (sort key, sequence, candidate)
        self._next_level = []
        self._sequence = itertools.count()  # tie-breaker for equal sort keys
        self._n_active = 0
        self._closed = False
        self._expired = False  # a worker asked for a candidate after the deadline
        self._condition = threading.Condition()

    def add(self, candidate: Candidate) -> None:
        with self._condition:
            if self._search_strategy.is_beam():
                self._next_level.append(candidate)
            elif self._search_strategy == SearchStrategy.BEST_FIRST:
                heapq.heappush(self._current_heap,
                               (candidate.get_sort_key(), next(self._sequence), candidate))
            else:
                self._current.append(candidate)
            self._condition.notify_all()

    def remove_first(self) -> Optional[Candidate]:
        """Pop the next candidate, moving to the next level if the current one is exhausted

        Meant for single-threaded use. Returns `None` if the queue is empty.
        """

        with self._condition:
            if self._current_level_size() == 0:
                self._move_to_next_level()
            if self._current_level_size() == 0:
                return None
            return self._pop()

    def take(self, end_time: float = float('inf')) -> Optional[Candidate]:
        """Hand out the next candidate to a worker

        Blocks while the current level is empty but other workers may still add candidates.
        Every candidate returned must be acknowledged with :meth:`task_done` once refined.

        Parameters
        ----------
        end_time : float, optional
            Deadline (as :func:`time.time`); no candidate is handed out afterwards. Once it
            has passed, waits for running refinements before deciding whether the search was
            complete or candidates were left (see :meth:`is_expired`).

        Returns
        -------
        Optional[Candidate]
            The candidate, or `None` if the search is complete, the deadline passed, or the queue
            was closed.
        """

        with self._condition:
            while True:
                if self._closed:
                    return None
                if (self._current_level_size() == 0 and self._n_active == 0 and
                        not self._next_level):
                    self._condition.notify_all()
                    return None
                if time.time() > end_time:
                    if self._current_level_size() > 0 or self._n_active == 0:
                        self._expired = True
                        return None
                    # Only running refinements are left; whether their children remain unrefined
                    # decides between a complete and an expired search:
                    self._condition.wait()
                    continue
                if self._current_level_size() > 0:
                    self._n_active += 1
                    return self._pop()
                if self._n_active == 0:
                    self._move_to_next_level()
                    continue
                timeout = None if end_time == float('inf') else max(end_time - time.time(), 0)
                self._condition.wait(timeout)

    def task_done(self) -> None:
        """Acknowledge that a candidate handed out by :meth:`take` was refined completely."""

        with self._condition:
            self._n_active -= 1
            self._condition.notify_all()

    def close(self) -> None:
        """Stop handing out candidates (wakes up all waiting workers)."""

        with self._condition:
            self._closed = True
            self._condition.notify_all()

    def is_expired(self) -> bool:
        """Check whether :meth:`take` refused a candidate because the deadline had passed."""

        with self._condition:
            return self._expired

    def current_level_size(self) -> int:
        with self._condition:
            return self._current_level_size()

    def __len__(self) -> int:
        with self._condition:
            return self._current_level_size() + len(self._next_level)

    def _current_level_size(self) -> int:
        return len(self._current) + len(self._current_heap)

    def _pop(self) -> Candidate:
        if self._search_strategy == SearchStrategy.BREADTH_FIRST:
            return self._current.popleft()
        if self._search_strategy == SearchStrategy.DEPTH_FIRST:
            return self._current.pop()
        return heapq.heappop(self._current_heap)[2]

    def _move_to_next_level(self) -> None:
        next_level = self._next_level
        self._next_level = []
        if self._search_strategy == SearchStrategy.COVER_BASED_BEAM_SELECTION:
            next_level = self._select_cover_based(next_level)
        elif self._search_strategy == SearchStrategy.BEAM:
            next_level = heapq.nsmallest(self._width, next_level, key=Candidate.get_sort_key)
        for candidate in next_level:
            heapq.heappush(self._current_heap,
                           (candidate.get_sort_key(), next(self._sequence), candidate))

    def _select_cover_based(self, candidates: List[Candidate]) -> List[Candidate]:
        # Pre-select the best candidates to bound the cost of the greedy selection:
        candidates = heapq.nsmallest(self._width * 4, candidates, key=Candidate.get_sort_key)
        subgroups = [candidate.get_subgroup() for candidate in candidates]
        return [candidates[index] for index
                in select_cover_based(subgroups, self._width, self._nr_rows)]
