"""
KNNrainPy
=========

Spatial k-nearest-neighbor gap filling for daily precipitation networks.

A missing value at one site is estimated from the nearest sites that did
record a value that day, either as a plain mean or as an inverse-distance
weighted mean. The engine works on in-memory arrays:

- an N x N distance matrix (symmetric, ``NaN`` diagonal), and
- an N x T measurement matrix (sites x days, ``NaN`` = missing).

1. Interpolation engine
   --------------------
   - :func:`order_by_distance`, :func:`neighbor_orders`, :class:`NeighborCache`
   - :func:`estimate`, :func:`knn_interpolate`, :func:`apply_knn`
   - :func:`impute`, :func:`estimate_matrix`, :class:`ImputationConfig`,
     :class:`ImputationResult`

2. Around the engine
   -----------------
   - :func:`distance_matrix_from_coords`, :func:`validate_distance_matrix`
   - :func:`long_to_wide`, :func:`wide_to_long`, :func:`impute_long_table`
   - :func:`evaluate_k`, :func:`sweep_k`, :func:`plot_k_sweep`
   - :func:`regression_metrics`

Example
-------
    >>> import numpy as np
    >>> from KNNrainPy import impute
    >>> dist = np.array([[np.nan, 1.0, 2.0],
    ...                  [1.0, np.nan, 1.5],
    ...                  [2.0, 1.5, np.nan]])
    >>> rain = np.array([[np.nan, 3.0],
    ...                  [2.0, np.nan],
    ...                  [4.0, 5.0]])
    >>> res = impute(rain, dist, k=1)
    >>> res.values
    array([[2., 3.],
           [2., 3.],
           [4., 5.]])
"""

from __future__ import annotations

# Public version (update in sync with pyproject.toml)
__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Interpolation engine
# ---------------------------------------------------------------------------

from .diagnostics import (
    DegradedNeighborCountWarning,
    Diagnostic,
    DiagnosticLog,
    DiagonalDefinedWarning,
    InvalidInputShape,
    KNNRainWarning,
    NoValidNeighborsWarning,
    ZeroDistanceError,
    ZeroDistanceWarning,
    set_warning_policy,
)
from .neighbors import NeighborCache, neighbor_orders, order_by_distance
from .knn import apply_knn, estimate, knn_interpolate
from .imputer import ImputationConfig, ImputationResult, estimate_matrix, impute

# ---------------------------------------------------------------------------
# Distances, tables and evaluation
# ---------------------------------------------------------------------------

from .distance import distance_matrix_from_coords, haversine_distance, validate_distance_matrix
from .reshape import impute_long_table, long_to_wide, save_table, site_table, wide_to_long
from .metrics import kge, nse, regression_metrics, rmse
from .evaluation import evaluate_k, plot_k_sweep, sweep_k

__all__ = [
    "__version__",
    # errors and diagnostics
    "InvalidInputShape",
    "ZeroDistanceError",
    "KNNRainWarning",
    "DegradedNeighborCountWarning",
    "NoValidNeighborsWarning",
    "ZeroDistanceWarning",
    "DiagonalDefinedWarning",
    "Diagnostic",
    "DiagnosticLog",
    "set_warning_policy",
    # engine
    "order_by_distance",
    "neighbor_orders",
    "NeighborCache",
    "estimate",
    "knn_interpolate",
    "apply_knn",
    "ImputationConfig",
    "ImputationResult",
    "impute",
    "estimate_matrix",
    # distances and tables
    "haversine_distance",
    "distance_matrix_from_coords",
    "validate_distance_matrix",
    "site_table",
    "long_to_wide",
    "wide_to_long",
    "impute_long_table",
    "save_table",
    # scoring
    "rmse",
    "kge",
    "nse",
    "regression_metrics",
    "evaluate_k",
    "sweep_k",
    "plot_k_sweep",
]
