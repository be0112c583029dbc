# src/KNNrainPy/neighbors.py
# SPDX-License-Identifier: MIT
"""
Neighbor ordering on a dense, precomputed distance matrix.

- :func:`order_by_distance`: indices of all sites sorted by ascending
  distance from one site, undefined distances last.
- :func:`neighbor_orders`: the same ordering for every site at once.
- :class:`NeighborCache`: lazily memoized per-site orderings for one
  distance matrix, shared across time slices.

Ordering contract
-----------------
The sort is stable: equal finite distances keep the input index order, and
undefined (``NaN``) distances are placed after every defined distance while
keeping their own input order. With an undefined diagonal the site itself
therefore always lands in the tail of its own ordering.
"""

from __future__ import annotations

from typing import Dict

import numpy as np
import pandas as pd

from .diagnostics import InvalidInputShape


def as_square_array(distance_matrix) -> np.ndarray:
    """
    Return *distance_matrix* as a 2-D ``float`` array and check it is square.

    DataFrames are accepted; their labels are dropped (align them first).

    Raises
    ------
    InvalidInputShape
        If the input is not a square 2-D array.
    """
    if isinstance(distance_matrix, pd.DataFrame):
        distance_matrix = distance_matrix.to_numpy(dtype=float)
    d = np.asarray(distance_matrix, dtype=float)
    if d.ndim != 2 or d.shape[0] != d.shape[1]:
        raise InvalidInputShape(
            f"Distance matrix must be square (N x N); got shape {d.shape}."
        )
    return d


def _order_column(col: np.ndarray) -> np.ndarray:
    missing = np.isnan(col)
    defined = np.flatnonzero(~missing)
    defined = defined[np.argsort(col[defined], kind="stable")]
    return np.concatenate([defined, np.flatnonzero(missing)])


def order_by_distance(site_index: int, distance_matrix) -> np.ndarray:
    """
    Order all sites by ascending distance from ``site_index``.

    Parameters
    ----------
    site_index : int
        0-based index of the reference site, in ``[0, N)``.
    distance_matrix : array-like or DataFrame
        N x N symmetric distances with an undefined (``NaN``) diagonal.

    Returns
    -------
    np.ndarray
        Integer permutation of ``range(N)``; the first entry is the nearest
        site. Undefined distances (including the site itself) come last.

    Raises
    ------
    InvalidInputShape
        If the matrix is not square or ``site_index`` is out of range.
    """
    d = as_square_array(distance_matrix)
    n = d.shape[0]
    i = int(site_index)
    if not 0 <= i < n:
        raise InvalidInputShape(f"site_index {site_index} out of range [0, {n}).")
    # column i == row i by symmetry
    return _order_column(d[:, i])


def neighbor_orders(distance_matrix) -> np.ndarray:
    """
    Return an N x N integer table whose row ``i`` is
    ``order_by_distance(i, distance_matrix)``.
    """
    d = as_square_array(distance_matrix)
    n = d.shape[0]
    out = np.empty((n, n), dtype=np.intp)
    for i in range(n):
        out[i] = _order_column(d[:, i])
    return out


class NeighborCache:
    """
    Memoized neighbor orderings for one distance matrix.

    Orderings are computed on first request and reused afterwards, so a
    matrix with T time slices costs at most N sorts instead of N * T.

    Examples
    --------
    >>> cache = NeighborCache(dist)
    >>> cache[3]            # ordering for site 3
    >>> cache.table()       # all orderings as an N x N array
    """

    def __init__(self, distance_matrix) -> None:
        self.distances = as_square_array(distance_matrix)
        self._orders: Dict[int, np.ndarray] = {}

    @property
    def n_sites(self) -> int:
        return self.distances.shape[0]

    def __len__(self) -> int:
        return self.n_sites

    def __getitem__(self, site_index: int) -> np.ndarray:
        i = int(site_index)
        if i not in self._orders:
            self._orders[i] = order_by_distance(i, self.distances)
        return self._orders[i]

    def table(self) -> np.ndarray:
        """All orderings stacked row-wise (site ``i`` in row ``i``)."""
        if self.n_sites == 0:
            return np.empty((0, 0), dtype=np.intp)
        return np.vstack([self[i] for i in range(self.n_sites)])


__all__ = [
    "as_square_array",
    "order_by_distance",
    "neighbor_orders",
    "NeighborCache",
]
