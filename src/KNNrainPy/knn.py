# src/KNNrainPy/knn.py
# SPDX-License-Identifier: MIT
"""
k-NN estimation of a single value from its nearest observed neighbors.

Given a neighbor ordering (see :mod:`KNNrainPy.neighbors`) and the
measurement vector of one time slice, :func:`estimate`:

1. walks the ordering, skipping the site itself and any neighbor whose
   measurement is missing (and, in weighted mode, whose distance is
   undefined),
2. truncates to the first ``k`` survivors, reducing ``k`` to the number of
   survivors when fewer are available,
3. returns their arithmetic mean, or the inverse-distance-weighted mean
   with weights ``1 / d``.

Zero or negative distances in weighted mode are handled by the
``zero_distance`` policy:

- ``"missing"`` (default): the value is left missing and reported.
- ``"clamp"``: such distances are replaced by ``min_distance``.
- ``"raise"``: :class:`~KNNrainPy.diagnostics.ZeroDistanceError`.
"""

from __future__ import annotations

import numbers
from typing import Hashable, List, Optional, Sequence

import numpy as np

from .diagnostics import (
    DEGRADED,
    NO_NEIGHBORS,
    ZERO_DISTANCE,
    Diagnostic,
    InvalidInputShape,
    ZeroDistanceError,
)
from .neighbors import as_square_array, neighbor_orders, order_by_distance

ZERO_DISTANCE_POLICIES = ("missing", "clamp", "raise")
DEFAULT_MIN_DISTANCE = 1e-6


def check_knn_params(
    k: int,
    zero_distance: str = "missing",
    min_distance: float = DEFAULT_MIN_DISTANCE,
) -> None:
    """Raise ``ValueError`` for an unusable ``k`` / zero-distance setting."""
    if (
        isinstance(k, bool)
        or not isinstance(k, numbers.Real)
        or not np.isfinite(k)
        or int(k) != k
        or k < 1
    ):
        raise ValueError(f"k must be an integer >= 1; got {k!r}.")
    if zero_distance not in ZERO_DISTANCE_POLICIES:
        raise ValueError(
            f"zero_distance must be one of {ZERO_DISTANCE_POLICIES}; got {zero_distance!r}."
        )
    if not np.isfinite(min_distance) or min_distance <= 0:
        raise ValueError(f"min_distance must be a positive number; got {min_distance!r}.")


def _report(
    diagnostics: Optional[List[Diagnostic]],
    warn: bool,
    kind: str,
    site: Hashable,
    column: Optional[Hashable],
    k: int,
    k_eff: int,
    message: str,
) -> None:
    record = Diagnostic(
        kind=kind,
        site=site,
        column=column,
        requested_k=int(k),
        effective_k=int(k_eff),
        message=message,
    )
    if diagnostics is not None:
        diagnostics.append(record)
    if warn:
        record.warn(stacklevel=4)


def estimate(
    site_index: int,
    ordered_neighbors: Sequence[int],
    measurements: Sequence[float],
    k: int = 5,
    weighted: bool = False,
    distances: Optional[Sequence[float]] = None,
    *,
    zero_distance: str = "missing",
    min_distance: float = DEFAULT_MIN_DISTANCE,
    site_label: Optional[Hashable] = None,
    column: Optional[Hashable] = None,
    diagnostics: Optional[List[Diagnostic]] = None,
    warn: bool = True,
) -> float:
    """
    Estimate the value at ``site_index`` from its nearest valid neighbors.

    Parameters
    ----------
    site_index : int
        0-based index of the site being estimated. It is never used as its
        own neighbor, whatever its position in ``ordered_neighbors``.
    ordered_neighbors : sequence of int
        Site indices by ascending distance (see :func:`order_by_distance`).
    measurements : sequence of float
        Values for all N sites of one time slice; ``NaN`` means missing.
    k : int, default 5
        Number of neighbors to average.
    weighted : bool, default False
        Inverse-distance-weighted mean instead of the arithmetic mean.
    distances : sequence of float, optional
        Distances from ``site_index`` to every site (column ``site_index``
        of the distance matrix). Required when ``weighted=True``.
    zero_distance : {"missing", "clamp", "raise"}
        Policy for zero/negative distances among the selected neighbors.
    min_distance : float
        Replacement distance under ``zero_distance="clamp"``.
    site_label, column : hashable, optional
        Identifiers used in diagnostics (defaults to ``site_index``).
    diagnostics : list, optional
        If given, :class:`Diagnostic` records are appended to it.
    warn : bool, default True
        Also issue each diagnostic as a warning.

    Returns
    -------
    float
        The estimate, or ``NaN`` when no valid neighbor exists (or the
        ``"missing"`` zero-distance policy applies).

    Raises
    ------
    InvalidInputShape
        ``ordered_neighbors`` and ``measurements`` differ in length, or
        ``site_index`` / a neighbor index is out of range.
    """
    check_knn_params(k, zero_distance, min_distance)
    k = int(k)
    values = np.asarray(measurements, dtype=float)
    order = np.asarray(ordered_neighbors, dtype=np.intp)
    site = site_index if site_label is None else site_label

    if values.ndim != 1 or order.shape != values.shape:
        raise InvalidInputShape(
            f"ordered_neighbors {order.shape} and measurements {values.shape} "
            "must be 1-D and of equal length."
        )
    n = values.shape[0]
    if not 0 <= int(site_index) < n:
        raise InvalidInputShape(f"site_index {site_index} is out of range for {n} sites.")
    if order.size and (order.min() < 0 or order.max() >= n):
        raise InvalidInputShape(f"ordered_neighbors holds indices outside [0, {n}).")

    order = order[order != int(site_index)]
    keep = ~np.isnan(values[order])
    dist = None
    if weighted:
        if distances is None:
            raise ValueError("distances are required when weighted=True.")
        dist = np.asarray(distances, dtype=float)
        if dist.shape != values.shape:
            raise InvalidInputShape(
                f"distances length {dist.shape} does not match measurements {values.shape}."
            )
        # undefined distances cannot carry a weight
        keep &= ~np.isnan(dist[order])
    valid = order[keep]

    if valid.size == 0:
        _report(
            diagnostics, warn, NO_NEIGHBORS, site, column, k, 0,
            f"Site {site!r}: no valid neighbors (column {column!r}); value left missing.",
        )
        return np.nan

    k_eff = min(k, int(valid.size))
    if k_eff < k:
        _report(
            diagnostics, warn, DEGRADED, site, column, k, k_eff,
            f"Site {site!r}: only {k_eff} valid neighbor(s) for k={k} "
            f"(column {column!r}); using k={k_eff}.",
        )

    chosen = valid[:k_eff]
    v = values[chosen]
    if not weighted:
        return float(np.mean(v))

    d = dist[chosen]
    bad = d <= 0.0
    if bad.any():
        msg = (
            f"Site {site!r}: {int(bad.sum())} selected neighbor(s) at zero or "
            f"negative distance (column {column!r})"
        )
        if zero_distance == "raise":
            raise ZeroDistanceError(msg + ".")
        if zero_distance == "clamp":
            _report(
                diagnostics, warn, ZERO_DISTANCE, site, column, k, k_eff,
                msg + f"; clamped to {min_distance}.",
            )
            d = np.where(bad, min_distance, d)
        else:
            _report(
                diagnostics, warn, ZERO_DISTANCE, site, column, k, k_eff,
                msg + "; value left missing.",
            )
            return np.nan

    w = 1.0 / d
    total = float(np.sum(w))
    if total <= 0.0:
        # every selected neighbor is infinitely far
        _report(
            diagnostics, warn, NO_NEIGHBORS, site, column, k, 0,
            f"Site {site!r}: all selected neighbors at infinite distance "
            f"(column {column!r}); value left missing.",
        )
        return np.nan
    return float(np.sum(w * v) / total)


def knn_interpolate(
    i: int,
    values: Sequence[float],
    distance_matrix,
    k: int = 5,
    weighted: bool = False,
    **kwargs,
) -> float:
    """
    Order the neighbors of site ``i`` and estimate its value.

    Convenience wrapper around :func:`order_by_distance` and
    :func:`estimate`; extra keyword arguments go to :func:`estimate`.
    """
    d = as_square_array(distance_matrix)
    values = np.asarray(values, dtype=float)
    if values.shape != (d.shape[0],):
        raise InvalidInputShape(
            f"values length {values.shape} does not match distance matrix {d.shape}."
        )
    return estimate(
        i,
        order_by_distance(i, d),
        values,
        k=k,
        weighted=weighted,
        distances=d[:, int(i)],
        **kwargs,
    )


def apply_knn(
    values: Sequence[float],
    distance_matrix,
    k: int = 5,
    weighted: bool = False,
    *,
    orders: Optional[np.ndarray] = None,
    zero_distance: str = "missing",
    min_distance: float = DEFAULT_MIN_DISTANCE,
    labels: Optional[Sequence[Hashable]] = None,
    column: Optional[Hashable] = None,
    diagnostics: Optional[List[Diagnostic]] = None,
    warn: bool = True,
) -> np.ndarray:
    """
    Estimate every site of one measurement vector from its neighbors.

    Each site is estimated from the *other* sites only, so observed
    values receive an estimate too (useful for leave-one-out scoring).

    Parameters
    ----------
    values : sequence of float
        Length-N measurements; ``NaN`` means missing.
    distance_matrix : array-like
        N x N distances with an undefined diagonal.
    k, weighted, zero_distance, min_distance :
        See :func:`estimate`.
    orders : np.ndarray, optional
        Precomputed :func:`~KNNrainPy.neighbors.neighbor_orders` table.
    labels : sequence, optional
        External site keys used in diagnostics.

    Returns
    -------
    np.ndarray
        Length-N estimates (``NaN`` where no estimate exists).
    """
    check_knn_params(k, zero_distance, min_distance)
    d = as_square_array(distance_matrix)
    vals = np.asarray(values, dtype=float)
    n = d.shape[0]
    if vals.shape != (n,):
        raise InvalidInputShape(
            f"values length {vals.shape} does not match distance matrix {d.shape}."
        )
    if orders is None:
        orders = neighbor_orders(d)

    out = np.full(n, np.nan)
    for i in range(n):
        out[i] = estimate(
            i,
            orders[i],
            vals,
            k=k,
            weighted=weighted,
            distances=d[:, i] if weighted else None,
            zero_distance=zero_distance,
            min_distance=min_distance,
            site_label=None if labels is None else labels[i],
            column=column,
            diagnostics=diagnostics,
            warn=warn,
        )
    return out


__all__ = [
    "ZERO_DISTANCE_POLICIES",
    "DEFAULT_MIN_DISTANCE",
    "check_knn_params",
    "estimate",
    "knn_interpolate",
    "apply_knn",
]
