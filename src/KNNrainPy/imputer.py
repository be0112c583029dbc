# src/KNNrainPy/imputer.py
# SPDX-License-Identifier: MIT
"""
Gap filling of a full site x time measurement matrix.

:func:`impute` applies :func:`KNNrainPy.knn.estimate` to every missing cell
of an N x T matrix, one time slice (column) at a time:

- the neighbor ordering of each site is computed once and shared by all
  columns (the distance matrix does not change over time);
- a column with no observation at all is returned entirely missing;
- observed cells are copied verbatim and never replaced by an estimate.

Columns are independent of each other, so they may be processed in any
order or in parallel (``n_jobs``) with identical results.

Inputs may be NumPy arrays or labelled pandas objects. With a DataFrame
distance matrix, its rows/columns are aligned to the measurement row labels
before anything else happens.

Runtime dependencies
--------------------
- numpy
- pandas
- joblib (parallel columns)
- tqdm (progress bar)
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field
from typing import Hashable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from tqdm.auto import tqdm

from .diagnostics import (
    NO_NEIGHBORS,
    Diagnostic,
    DiagnosticLog,
    InvalidInputShape,
)
from .distance import validate_distance_matrix
from .knn import DEFAULT_MIN_DISTANCE, check_knn_params, estimate
from .neighbors import neighbor_orders

ArrayOrFrame = Union[np.ndarray, pd.DataFrame, pd.Series]


# ---------------------------------------------------------------------
# Configuration (persisted as JSON)
# ---------------------------------------------------------------------


def _save_json(obj: dict, path: str) -> None:
    """Persist a dictionary as a UTF-8 JSON file with indentation."""
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, ensure_ascii=False, indent=2)


@dataclass(frozen=True)
class ImputationConfig:
    """Settings of an imputation run.

    Attributes
    ----------
    k :
        Neighbors to average (``>= 1``).
    weighted :
        Inverse-distance-weighted mean instead of the arithmetic mean.
    zero_distance :
        ``"missing"``, ``"clamp"`` or ``"raise"``; see :mod:`KNNrainPy.knn`.
    min_distance :
        Replacement distance under ``zero_distance="clamp"``.
    n_jobs :
        Parallel workers over columns (``1`` = sequential, ``-1`` = all
        cores).
    progress :
        Show a progress bar over columns.
    check_symmetry :
        Reject asymmetric distance matrices.
    """

    k: int = 5
    weighted: bool = False
    zero_distance: str = "missing"
    min_distance: float = DEFAULT_MIN_DISTANCE
    n_jobs: int = 1
    progress: bool = False
    check_symmetry: bool = True

    def validate(self) -> "ImputationConfig":
        check_knn_params(self.k, self.zero_distance, self.min_distance)
        if int(self.n_jobs) == 0:
            raise ValueError("n_jobs must be non-zero.")
        return self

    @staticmethod
    def load(path: str) -> "ImputationConfig":
        """Load settings from a JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            d = json.load(f)
        return ImputationConfig(**d).validate()

    def save(self, path: str) -> None:
        """Save settings to a JSON file."""
        _save_json(asdict(self), path)


# ---------------------------------------------------------------------
# Result container
# ---------------------------------------------------------------------


@dataclass
class ImputationResult:
    """Outcome of :func:`impute`.

    Attributes
    ----------
    values :
        Filled matrix with the input's shape and type (array, Series or
        DataFrame).
    estimated_mask :
        Boolean N x T (or N) array, True where an estimate was written.
    missing_mask :
        Boolean array, True where the input was missing.
    diagnostics :
        Recoverable conditions met during the run.
    config :
        Settings used.
    """

    values: ArrayOrFrame
    estimated_mask: np.ndarray
    missing_mask: np.ndarray
    config: ImputationConfig
    diagnostics: DiagnosticLog = field(default_factory=DiagnosticLog)

    @property
    def n_missing_before(self) -> int:
        return int(self.missing_mask.sum())

    @property
    def n_filled(self) -> int:
        return int(self.estimated_mask.sum())

    @property
    def n_missing_after(self) -> int:
        return self.n_missing_before - self.n_filled

    def summary(self) -> pd.DataFrame:
        """One-row table describing the run."""
        shape = self.missing_mask.shape
        row = {
            "n_sites": shape[0],
            "n_slices": shape[1] if len(shape) > 1 else 1,
            "k": self.config.k,
            "weighted": self.config.weighted,
            "zero_distance": self.config.zero_distance,
            "n_missing_before": self.n_missing_before,
            "n_filled": self.n_filled,
            "n_missing_after": self.n_missing_after,
        }
        for kind, n in self.diagnostics.counts().items():
            row[f"n_{kind}"] = n
        return pd.DataFrame([row])


# ---------------------------------------------------------------------
# Input preparation
# ---------------------------------------------------------------------


@dataclass
class _Prepared:
    values: np.ndarray  # always N x T
    distances: np.ndarray
    row_labels: Optional[List[Hashable]]
    col_labels: Optional[List[Hashable]]
    kind: str  # "array1d", "array2d", "series", "frame"
    index: Optional[pd.Index] = None
    columns: Optional[pd.Index] = None
    name: Optional[Hashable] = None


def _align_distances(distance_matrix, row_index: Optional[pd.Index]):
    if not isinstance(distance_matrix, pd.DataFrame) or row_index is None:
        return distance_matrix
    missing = [lab for lab in row_index if lab not in distance_matrix.index
               or lab not in distance_matrix.columns]
    if missing:
        raise InvalidInputShape(
            f"{len(missing)} site(s) missing from the distance matrix, "
            f"e.g. {missing[:5]}."
        )
    return distance_matrix.loc[row_index, row_index]


def _prepare(measurements, distance_matrix, check_symmetry: bool) -> _Prepared:
    if isinstance(measurements, pd.DataFrame):
        if not measurements.index.is_unique:
            raise InvalidInputShape("Measurement row labels must be unique.")
        dist = _align_distances(distance_matrix, measurements.index)
        prep = _Prepared(
            values=measurements.to_numpy(dtype=float),
            distances=None,
            row_labels=list(measurements.index),
            col_labels=list(measurements.columns),
            kind="frame",
            index=measurements.index,
            columns=measurements.columns,
        )
    elif isinstance(measurements, pd.Series):
        if not measurements.index.is_unique:
            raise InvalidInputShape("Measurement row labels must be unique.")
        dist = _align_distances(distance_matrix, measurements.index)
        prep = _Prepared(
            values=measurements.to_numpy(dtype=float)[:, None],
            distances=None,
            row_labels=list(measurements.index),
            col_labels=None,
            kind="series",
            index=measurements.index,
            name=measurements.name,
        )
    else:
        arr = np.asarray(measurements, dtype=float)
        if arr.ndim == 1:
            prep = _Prepared(arr[:, None], None, None, None, "array1d")
        elif arr.ndim == 2:
            prep = _Prepared(arr, None, None, None, "array2d")
        else:
            raise InvalidInputShape(
                f"Measurements must be 1-D or 2-D; got {arr.ndim} dimensions."
            )
        dist = distance_matrix

    prep.distances = validate_distance_matrix(
        dist, prep.values.shape[0], check_symmetry=check_symmetry
    )
    return prep


def _restore(prep: _Prepared, arr: np.ndarray) -> ArrayOrFrame:
    if prep.kind == "frame":
        return pd.DataFrame(arr, index=prep.index, columns=prep.columns)
    if prep.kind == "series":
        return pd.Series(arr[:, 0], index=prep.index, name=prep.name)
    if prep.kind == "array1d":
        return arr[:, 0]
    return arr


def _resolve_config(config: Optional[ImputationConfig], **kwargs) -> ImputationConfig:
    if config is None:
        config = ImputationConfig(**kwargs)
    return config.validate()


# ---------------------------------------------------------------------
# Column worker
# ---------------------------------------------------------------------


def _column_worker(
    col: np.ndarray,
    distances: np.ndarray,
    orders: np.ndarray,
    cfg: ImputationConfig,
    row_labels: Optional[Sequence[Hashable]],
    col_label: Hashable,
    only_missing: bool,
) -> Tuple[np.ndarray, np.ndarray, List[Diagnostic]]:
    """
    Estimate one time slice.

    Returns the output column, the mask of cells that received an estimate
    and the diagnostics met. Reads shared inputs only; writes nothing
    outside its own return values.
    """
    n = col.shape[0]
    missing = np.isnan(col)
    out = col.copy() if only_missing else np.full(n, np.nan)
    written = np.zeros(n, dtype=bool)
    diags: List[Diagnostic] = []

    if missing.all():
        diags.append(
            Diagnostic(
                kind=NO_NEIGHBORS,
                site=None,
                column=col_label,
                requested_k=int(cfg.k),
                effective_k=0,
                message=f"Column {col_label!r} is entirely missing; left missing.",
            )
        )
        return out, written, diags

    targets = np.flatnonzero(missing) if only_missing else np.arange(n)
    for i in targets:
        val = estimate(
            i,
            orders[i],
            col,
            k=cfg.k,
            weighted=cfg.weighted,
            distances=distances[:, i] if cfg.weighted else None,
            zero_distance=cfg.zero_distance,
            min_distance=cfg.min_distance,
            site_label=None if row_labels is None else row_labels[i],
            column=col_label,
            diagnostics=diags,
            warn=False,
        )
        if not np.isnan(val):
            out[i] = val
            written[i] = True
    return out, written, diags


def _run_columns(
    prep: _Prepared,
    cfg: ImputationConfig,
    only_missing: bool,
    desc: str,
) -> Tuple[np.ndarray, np.ndarray, DiagnosticLog]:
    values = prep.values
    n_sites, n_cols = values.shape
    orders = neighbor_orders(prep.distances)
    labels = prep.col_labels if prep.col_labels is not None else list(range(n_cols))
    if prep.kind in ("array1d", "series"):
        labels = [None]

    jobs = (
        delayed(_column_worker)(
            values[:, j], prep.distances, orders, cfg, prep.row_labels, labels[j], only_missing
        )
        for j in range(n_cols)
    )
    if int(cfg.n_jobs) == 1:
        results = (fn(*args, **kw) for fn, args, kw in jobs)
    else:
        results = Parallel(n_jobs=cfg.n_jobs, prefer="threads", return_as="generator")(jobs)
    # the bar advances as columns finish, not as they are dispatched
    if cfg.progress:
        results = tqdm(results, total=n_cols, desc=desc, unit="col")

    out = np.full((n_sites, n_cols), np.nan)
    written = np.zeros((n_sites, n_cols), dtype=bool)
    log = DiagnosticLog()
    # results come back in column order whatever the backend
    for j, (col_out, col_written, diags) in enumerate(results):
        out[:, j] = col_out
        written[:, j] = col_written
        log.extend(diags)
    return out, written, log


# ---------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------


def impute(
    measurements: ArrayOrFrame,
    distance_matrix,
    k: int = 5,
    weighted: bool = False,
    *,
    config: Optional[ImputationConfig] = None,
    zero_distance: str = "missing",
    min_distance: float = DEFAULT_MIN_DISTANCE,
    n_jobs: int = 1,
    progress: bool = False,
    check_symmetry: bool = True,
    warn: bool = True,
) -> ImputationResult:
    """
    Fill the missing cells of a site x time matrix by k-NN interpolation.

    Parameters
    ----------
    measurements : array-like, Series or DataFrame
        N x T matrix (or length-N vector) with ``NaN`` for missing values.
        Rows are sites, columns are time slices.
    distance_matrix : array-like or DataFrame
        N x N symmetric distances, diagonal ``NaN``. A DataFrame is aligned
        to the measurement row labels when the measurements are labelled.
    k : int, default 5
        Neighbors to average.
    weighted : bool, default False
        Use inverse-distance weights ``1 / d``.
    config : ImputationConfig, optional
        Full settings; when given it replaces ``k``, ``weighted``,
        ``zero_distance``, ``min_distance``, ``n_jobs``, ``progress`` and
        ``check_symmetry``.
    zero_distance : {"missing", "clamp", "raise"}
        Zero/negative distance policy in weighted mode.
    n_jobs : int, default 1
        Columns processed in parallel through joblib threads.
    progress : bool, default False
        Show a progress bar over columns.
    warn : bool, default True
        Issue one summary warning per diagnostic kind at the end.

    Returns
    -------
    ImputationResult
        ``result.values`` has the input's shape and type; observed values
        are untouched, missing ones hold the estimate or stay ``NaN``.

    Raises
    ------
    InvalidInputShape
        Inconsistent shapes/labels or an asymmetric distance matrix; also
        :class:`~KNNrainPy.diagnostics.ZeroDistanceError` under
        ``zero_distance="raise"``.
    ValueError
        Invalid ``k`` or policy.
    """
    cfg = _resolve_config(
        config,
        k=k,
        weighted=weighted,
        zero_distance=zero_distance,
        min_distance=min_distance,
        n_jobs=n_jobs,
        progress=progress,
        check_symmetry=check_symmetry,
    )
    prep = _prepare(measurements, distance_matrix, cfg.check_symmetry)
    missing_mask = np.isnan(prep.values)
    out, written, log = _run_columns(prep, cfg, only_missing=True, desc="Imputing")

    if warn:
        log.emit_summary(stacklevel=3)

    shape = (prep.values.shape[0],) if prep.kind in ("array1d", "series") else prep.values.shape
    return ImputationResult(
        values=_restore(prep, out),
        estimated_mask=written.reshape(shape),
        missing_mask=missing_mask.reshape(shape),
        config=cfg,
        diagnostics=log,
    )


def estimate_matrix(
    measurements: ArrayOrFrame,
    distance_matrix,
    k: int = 5,
    weighted: bool = False,
    *,
    config: Optional[ImputationConfig] = None,
    zero_distance: str = "missing",
    min_distance: float = DEFAULT_MIN_DISTANCE,
    n_jobs: int = 1,
    progress: bool = False,
    check_symmetry: bool = True,
) -> Tuple[ArrayOrFrame, DiagnosticLog]:
    """
    Estimate **every** cell from its neighbors, observed cells included.

    Each site is estimated from the other sites only, so comparing the
    output with the observed cells gives a leave-one-site-out score. Same
    parameters as :func:`impute`.

    Returns
    -------
    estimates : array, Series or DataFrame
        Same shape and type as ``measurements``.
    diagnostics : DiagnosticLog
    """
    cfg = _resolve_config(
        config,
        k=k,
        weighted=weighted,
        zero_distance=zero_distance,
        min_distance=min_distance,
        n_jobs=n_jobs,
        progress=progress,
        check_symmetry=check_symmetry,
    )
    prep = _prepare(measurements, distance_matrix, cfg.check_symmetry)
    out, _written, log = _run_columns(prep, cfg, only_missing=False, desc="Estimating")
    return _restore(prep, out), log


__all__ = [
    "ImputationConfig",
    "ImputationResult",
    "impute",
    "estimate_matrix",
]
