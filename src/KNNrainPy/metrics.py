# src/KNNrainPy/metrics.py
# SPDX-License-Identifier: MIT
"""
Regression metrics for scoring interpolated precipitation.

- :func:`rmse`: root mean squared error over the pairs where both sides
  are defined.
- :func:`kge`: Kling–Gupta efficiency (Gupta et al., 2009).
- :func:`nse`: Nash–Sutcliffe efficiency.
- :func:`regression_metrics`: MAE, RMSE, R², KGE, NSE in a single dict.

Inputs may be lists, NumPy arrays or pandas objects of any shape (matrices
are flattened). Interpolated matrices keep ``NaN`` where no estimate could
be made, so :func:`regression_metrics` drops incomplete pairs by default.
Undefined metrics are returned as ``numpy.nan``.

R² here is the square of the Pearson correlation between observations and
estimates, not :func:`sklearn.metrics.r2_score`.
"""

from __future__ import annotations

from typing import Dict, Iterable, Tuple

import numpy as np
from sklearn.metrics import mean_absolute_error, mean_squared_error

METRIC_KEYS = ("MAE", "RMSE", "R2", "KGE", "NSE")


def _paired(
    y_true: Iterable[float],
    y_pred: Iterable[float],
    dropna: bool = True,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Flatten both inputs to ``float`` arrays of equal length.

    Raises
    ------
    ValueError
        If the shapes of *y_true* and *y_pred* do not match.
    """
    yt = np.asarray(y_true, dtype=float)
    yp = np.asarray(y_pred, dtype=float)
    if yt.shape != yp.shape:
        raise ValueError(
            f"Shapes of y_true {yt.shape} and y_pred {yp.shape} do not match."
        )
    yt, yp = yt.ravel(), yp.ravel()
    if dropna:
        ok = ~(np.isnan(yt) | np.isnan(yp))
        yt, yp = yt[ok], yp[ok]
    return yt, yp


def rmse(y_true: Iterable[float], y_pred: Iterable[float]) -> float:
    """RMSE over complete pairs; ``nan`` when there is none."""
    yt, yp = _paired(y_true, y_pred)
    if yt.size == 0:
        return np.nan
    return float(np.sqrt(mean_squared_error(yt, yp)))


def kge(y_true: Iterable[float], y_pred: Iterable[float]) -> float:
    """
    Kling–Gupta efficiency.

    .. math::

        \\mathrm{KGE} = 1 - \\sqrt{(r - 1)^2 + (\\alpha - 1)^2 + (\\beta - 1)^2}

    with ``r`` the Pearson correlation, ``alpha = sd(pred) / sd(obs)`` and
    ``beta = mean(pred) / mean(obs)``.

    Returns ``nan`` for fewer than two pairs, a constant series on either
    side, or a zero observed mean (common for dry days).
    """
    yt, yp = _paired(y_true, y_pred)
    if yt.size < 2:
        return np.nan

    mu_y, mu_p = float(np.mean(yt)), float(np.mean(yp))
    sd_y, sd_p = float(np.std(yt, ddof=1)), float(np.std(yp, ddof=1))
    if sd_y == 0.0 or sd_p == 0.0 or mu_y == 0.0:
        return np.nan

    r = float(np.corrcoef(yt, yp)[0, 1])
    if not np.isfinite(r):
        return np.nan
    val = 1.0 - np.sqrt((r - 1.0) ** 2 + (sd_p / sd_y - 1.0) ** 2 + (mu_p / mu_y - 1.0) ** 2)
    return float(val)


def nse(y_true: Iterable[float], y_pred: Iterable[float]) -> float:
    """
    Nash–Sutcliffe efficiency, ``1 - SSE / SST``.

    Returns ``nan`` for fewer than two pairs or a constant observed series.
    Poor estimates can score below 0.
    """
    yt, yp = _paired(y_true, y_pred)
    if yt.size < 2:
        return np.nan
    sst = float(np.sum((yt - np.mean(yt)) ** 2))
    if sst == 0.0:
        return np.nan
    return float(1.0 - np.sum((yt - yp) ** 2) / sst)


def regression_metrics(
    y_true: Iterable[float],
    y_pred: Iterable[float],
    *,
    dropna: bool = True,
) -> Dict[str, float]:
    """
    MAE, RMSE, R² (squared Pearson r), KGE and NSE.

    Parameters
    ----------
    y_true, y_pred
        Observed and estimated values (any matching shape).
    dropna : bool, default True
        Ignore pairs where either value is missing. With ``dropna=False``
        a missing value propagates to every metric.

    Returns
    -------
    dict
        Keys ``"MAE"``, ``"RMSE"``, ``"R2"``, ``"KGE"``, ``"NSE"``; each
        ``nan`` when undefined. With no usable pair, everything is ``nan``.
    """
    yt, yp = _paired(y_true, y_pred, dropna=dropna)
    if yt.size == 0 or np.isnan(yt).any() or np.isnan(yp).any():
        return {key: np.nan for key in METRIC_KEYS}

    mae = float(mean_absolute_error(yt, yp))
    err = float(np.sqrt(mean_squared_error(yt, yp)))

    r2 = np.nan
    if yt.size >= 2 and np.std(yt) > 0.0 and np.std(yp) > 0.0:
        r2 = float(np.corrcoef(yt, yp)[0, 1] ** 2)

    return {
        "MAE": mae,
        "RMSE": err,
        "R2": r2 if np.isfinite(r2) else np.nan,
        "KGE": kge(yt, yp),
        "NSE": nse(yt, yp),
    }


__all__ = [
    "METRIC_KEYS",
    "rmse",
    "kge",
    "nse",
    "regression_metrics",
]
