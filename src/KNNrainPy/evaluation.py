# src/KNNrainPy/evaluation.py
# SPDX-License-Identifier: MIT
"""
Leave-one-site-out scoring of the k-NN estimator.

Every observed cell is re-estimated from the *other* sites of its time
slice (:func:`KNNrainPy.imputer.estimate_matrix`) and compared with the
observation. This is how a value of ``k`` (and weighting mode) is judged on
real data:

- :func:`evaluate_k`: metrics for one setting.
- :func:`sweep_k`: one row of metrics per (k, weighted) combination.
- :func:`plot_k_sweep`: a metric against k, one line per weighting mode.

The sweep only reports scores; choosing k is left to the caller.
"""

from __future__ import annotations

import os
from typing import Dict, Iterable, Optional, Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from tqdm.auto import tqdm

from .imputer import estimate_matrix
from .knn import DEFAULT_MIN_DISTANCE
from .metrics import regression_metrics


def evaluate_k(
    measurements,
    distance_matrix,
    k: int = 5,
    weighted: bool = False,
    *,
    zero_distance: str = "missing",
    min_distance: float = DEFAULT_MIN_DISTANCE,
    n_jobs: int = 1,
) -> Dict[str, float]:
    """
    Score the estimator on the observed cells of *measurements*.

    Returns
    -------
    dict
        ``MAE``, ``RMSE``, ``R2``, ``KGE``, ``NSE`` plus ``n_pairs`` (cells
        with both an observation and an estimate) and ``n_unestimated``
        (observed cells for which no estimate exists).
    """
    obs = np.asarray(measurements, dtype=float)
    est, _log = estimate_matrix(
        measurements,
        distance_matrix,
        k=k,
        weighted=weighted,
        zero_distance=zero_distance,
        min_distance=min_distance,
        n_jobs=n_jobs,
    )
    est = np.asarray(est, dtype=float)

    observed = ~np.isnan(obs)
    paired = observed & ~np.isnan(est)
    scores = regression_metrics(obs[paired], est[paired])
    scores["n_pairs"] = int(paired.sum())
    scores["n_unestimated"] = int((observed & ~paired).sum())
    return scores


def sweep_k(
    measurements,
    distance_matrix,
    ks: Iterable[int] = range(1, 11),
    weighted: Sequence[bool] = (False,),
    *,
    zero_distance: str = "missing",
    min_distance: float = DEFAULT_MIN_DISTANCE,
    n_jobs: int = 1,
    show_progress: bool = False,
) -> pd.DataFrame:
    """
    Evaluate several values of ``k`` (and weighting modes).

    Parameters
    ----------
    ks : iterable of int, default 1..10
        Values of k to score.
    weighted : sequence of bool, default ``(False,)``
        Weighting modes to score; pass ``(False, True)`` for both.
    show_progress : bool
        Wrap the combinations with :func:`tqdm`.

    Returns
    -------
    pandas.DataFrame
        Columns ``k``, ``weighted``, the metric keys, ``n_pairs`` and
        ``n_unestimated``; one row per combination, ordered by weighting
        mode then k.
    """
    if isinstance(weighted, bool):
        weighted = (weighted,)
    combos = [(bool(w), int(k)) for w in weighted for k in ks]
    it = tqdm(combos, desc="Sweeping k", unit="k") if show_progress else combos

    rows = []
    for w, k in it:
        scores = evaluate_k(
            measurements,
            distance_matrix,
            k=k,
            weighted=w,
            zero_distance=zero_distance,
            min_distance=min_distance,
            n_jobs=n_jobs,
        )
        rows.append({"k": k, "weighted": w, **scores})
    return pd.DataFrame(rows)


def plot_k_sweep(
    table: pd.DataFrame,
    *,
    metric: str = "RMSE",
    title: Optional[str] = None,
    out_path: Optional[str] = None,
    dpi: int = 150,
):
    """
    Line plot of ``metric`` against ``k`` from a :func:`sweep_k` table.

    Returns the matplotlib ``Figure``; also saved to *out_path* if given.
    """
    if metric not in table.columns:
        raise ValueError(f"Column {metric!r} not found in the sweep table.")

    fig, ax = plt.subplots(figsize=(6, 4))
    for w, g in table.groupby("weighted", sort=True):
        g = g.sort_values("k")
        label = "inverse-distance weighted" if w else "unweighted"
        ax.plot(g["k"], g[metric], marker="o", label=label)
    ax.set_xlabel("k (neighbors)")
    ax.set_ylabel(metric)
    ax.set_title(title or f"{metric} by number of neighbors")
    ax.grid(True, alpha=0.3)
    ax.legend()
    fig.tight_layout()

    if out_path:
        os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
        fig.savefig(out_path, dpi=dpi)
    return fig


__all__ = [
    "evaluate_k",
    "sweep_k",
    "plot_k_sweep",
]
