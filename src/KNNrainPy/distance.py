# src/KNNrainPy/distance.py
# SPDX-License-Identifier: MIT
"""
Distance-matrix helpers for station networks.

The interpolation engine consumes a precomputed N x N distance matrix and
never looks at coordinates. This module produces and checks such matrices:

- :func:`haversine_distance`: vectorized great-circle distance (km).
- :func:`distance_matrix_from_coords`: dense symmetric matrix from
  longitude/latitude with an undefined (``NaN``) diagonal.
- :func:`validate_distance_matrix`: shape / symmetry / diagonal checks.

Coordinates are decimal degrees; distances are kilometers.
"""

from __future__ import annotations

import warnings
from typing import Hashable, Optional, Sequence, Union

import numpy as np
import pandas as pd

from .diagnostics import DiagonalDefinedWarning, InvalidInputShape
from .neighbors import as_square_array

EARTH_RADIUS_KM = 6371.0


def haversine_distance(
    lat1: np.ndarray,
    lon1: np.ndarray,
    lat2: np.ndarray,
    lon2: np.ndarray,
) -> np.ndarray:
    """
    Great-circle distance between two sets of points (km).

    Inputs follow standard NumPy broadcasting.
    """
    lat1_rad = np.radians(lat1)
    lon1_rad = np.radians(lon1)
    lat2_rad = np.radians(lat2)
    lon2_rad = np.radians(lon2)

    dlat = lat2_rad - lat1_rad
    dlon = lon2_rad - lon1_rad

    a = (
        np.sin(dlat / 2.0) ** 2
        + np.cos(lat1_rad) * np.cos(lat2_rad) * np.sin(dlon / 2.0) ** 2
    )
    # rounding can push a marginally above 1 for antipodal points
    c = 2.0 * np.arcsin(np.sqrt(np.clip(a, 0.0, 1.0)))
    return EARTH_RADIUS_KM * c


def distance_matrix_from_coords(
    lon: Sequence[float],
    lat: Sequence[float],
    labels: Optional[Sequence[Hashable]] = None,
) -> Union[np.ndarray, pd.DataFrame]:
    """
    Build a symmetric great-circle distance matrix (km).

    Note the argument order: **longitude first**, then latitude.

    Parameters
    ----------
    lon, lat : sequence of float
        Site coordinates in decimal degrees, same length N.
    labels : sequence, optional
        Site keys. When given, a DataFrame indexed and labelled by them is
        returned instead of a bare array.

    Returns
    -------
    np.ndarray or pandas.DataFrame
        N x N distances with ``NaN`` on the diagonal, so a site is never
        its own neighbor.
    """
    lon = np.asarray(lon, dtype=float)
    lat = np.asarray(lat, dtype=float)
    if lon.shape != lat.shape or lon.ndim != 1:
        raise InvalidInputShape(
            f"lon {lon.shape} and lat {lat.shape} must be 1-D and of equal length."
        )
    d = haversine_distance(lat[:, None], lon[:, None], lat[None, :], lon[None, :])
    np.fill_diagonal(d, np.nan)
    if labels is None:
        return d
    labels = list(labels)
    if len(labels) != d.shape[0]:
        raise InvalidInputShape(
            f"{len(labels)} labels given for {d.shape[0]} sites."
        )
    return pd.DataFrame(d, index=labels, columns=labels)


def validate_distance_matrix(
    distance_matrix,
    n_sites: Optional[int] = None,
    *,
    check_symmetry: bool = True,
    rtol: float = 1e-9,
    atol: float = 1e-12,
) -> np.ndarray:
    """
    Check a distance matrix and return it as a ``float`` array.

    Parameters
    ----------
    distance_matrix : array-like or DataFrame
        Candidate N x N matrix.
    n_sites : int, optional
        Expected N (e.g. the number of measurement rows).
    check_symmetry : bool, default True
        Require ``d[i, j] == d[j, i]`` (within tolerance, ``NaN == NaN``).

    Raises
    ------
    InvalidInputShape
        Non-square matrix, wrong size or asymmetric entries. Zero and
        negative distances are left to the zero-distance policy of
        :func:`~KNNrainPy.knn.estimate`.

    Warns
    -----
    DiagonalDefinedWarning
        If any diagonal entry is defined; such a site would be its own
        nearest neighbor. The matrix is not modified.
    """
    d = as_square_array(distance_matrix)
    if n_sites is not None and d.shape[0] != int(n_sites):
        raise InvalidInputShape(
            f"Distance matrix is {d.shape[0]} x {d.shape[1]} but {n_sites} sites were given."
        )
    if check_symmetry and not np.allclose(d, d.T, rtol=rtol, atol=atol, equal_nan=True):
        raise InvalidInputShape("Distance matrix is not symmetric.")
    n_diag = int(np.sum(~np.isnan(np.diag(d))))
    if n_diag:
        warnings.warn(
            f"{n_diag} diagonal distance(s) are defined; set the diagonal to NaN "
            "so that sites are not their own neighbors.",
            DiagonalDefinedWarning,
            stacklevel=2,
        )
    return d


__all__ = [
    "EARTH_RADIUS_KM",
    "haversine_distance",
    "distance_matrix_from_coords",
    "validate_distance_matrix",
]
