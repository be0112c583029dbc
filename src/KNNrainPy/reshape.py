# src/KNNrainPy/reshape.py
# SPDX-License-Identifier: MIT
"""
Table helpers around the interpolation engine.

Station records usually arrive as a long table, one row per (site, day)::

    site | date | latitude | longitude | rain

The engine works on a wide site x day matrix plus a site x site distance
matrix whose rows are in the *same* order. This module converts between the
two layouts and chains the whole workflow:

- :func:`site_table`: one row per site with its coordinates.
- :func:`long_to_wide` / :func:`wide_to_long`: layout conversion.
- :func:`impute_long_table`: sites -> distances -> wide -> impute -> long.
- :func:`save_table`: CSV / Parquet output by file extension.
"""

from __future__ import annotations

import os
import warnings
from typing import Optional, Tuple

import pandas as pd
from pandas.api.types import DatetimeTZDtype

from .diagnostics import KNNRainWarning
from .distance import distance_matrix_from_coords
from .imputer import ImputationConfig, ImputationResult, impute
from .knn import DEFAULT_MIN_DISTANCE


# ---------------------------------------------------------------------
# Small I/O helpers
# ---------------------------------------------------------------------


def save_table(
    df: pd.DataFrame,
    path: Optional[str],
    *,
    parquet_compression: str = "snappy",
) -> Optional[str]:
    """
    Write *df* to ``.csv`` or ``.parquet`` (chosen by extension).

    Parent directories are created. Returns the path, or ``None`` when
    *path* is ``None``.
    """
    if path is None:
        return None
    os.makedirs(os.path.dirname(str(path)) or ".", exist_ok=True)
    ext = os.path.splitext(str(path))[1].lower()
    if ext == ".csv":
        df.to_csv(path, index=False)
    elif ext == ".parquet":
        df.to_parquet(path, index=False, compression=parquet_compression)
    else:
        raise ValueError(f"Unsupported extension {ext!r}; use .csv or .parquet.")
    return str(path)


def _ensure_datetime(df: pd.DataFrame, date_col: str) -> pd.DataFrame:
    """Return a copy with a timezone-naive datetime column; invalid dates dropped."""
    out = df.copy()
    out[date_col] = pd.to_datetime(out[date_col], errors="coerce")
    if isinstance(out[date_col].dtype, DatetimeTZDtype):
        out[date_col] = out[date_col].dt.tz_localize(None)
    return out.dropna(subset=[date_col])


# ---------------------------------------------------------------------
# Layout conversion
# ---------------------------------------------------------------------


def site_table(
    data: pd.DataFrame,
    *,
    id_col: str = "site",
    lat_col: str = "latitude",
    lon_col: str = "longitude",
) -> pd.DataFrame:
    """
    One row per site (sorted by id) with its median coordinates.

    Sites whose coordinates are all missing are kept with ``NaN``
    coordinates; their distances are then undefined and the engine treats
    them as infinitely far from every other site.
    """
    sites = (
        data.groupby(id_col, sort=True)[[lat_col, lon_col]]
        .median()
        .reset_index()
    )
    return sites


def long_to_wide(
    data: pd.DataFrame,
    *,
    id_col: str = "site",
    date_col: str = "date",
    value_col: str = "rain",
    sites: Optional[pd.Index] = None,
) -> pd.DataFrame:
    """
    Pivot a long table to a site x date matrix.

    Duplicate (site, date) rows are averaged; missing combinations become
    ``NaN``. Rows are sorted by site id, or reindexed to *sites* when given
    (so that they match a distance matrix).
    """
    df = _ensure_datetime(data[[id_col, date_col, value_col]], date_col)
    wide = df.pivot_table(
        index=id_col,
        columns=date_col,
        values=value_col,
        aggfunc="mean",
        dropna=False,
    )
    wide = wide.sort_index(axis=0).sort_index(axis=1)
    if sites is not None:
        wide = wide.reindex(sites)
    wide.columns.name = date_col
    wide.index.name = id_col
    return wide.astype(float)


def wide_to_long(
    wide: pd.DataFrame,
    *,
    id_col: str = "site",
    date_col: str = "date",
    value_col: str = "rain",
) -> pd.DataFrame:
    """Inverse of :func:`long_to_wide`; missing cells are kept as ``NaN`` rows."""
    out = wide.copy()
    out.index.name = id_col
    out.columns.name = None
    long = out.reset_index().melt(id_vars=id_col, var_name=date_col, value_name=value_col)
    return long.sort_values([id_col, date_col], kind="stable").reset_index(drop=True)


# ---------------------------------------------------------------------
# End-to-end workflow
# ---------------------------------------------------------------------


def impute_long_table(
    data: pd.DataFrame,
    *,
    id_col: str = "site",
    date_col: str = "date",
    lat_col: str = "latitude",
    lon_col: str = "longitude",
    value_col: str = "rain",
    k: int = 5,
    weighted: bool = False,
    config: Optional[ImputationConfig] = None,
    zero_distance: str = "missing",
    min_distance: float = DEFAULT_MIN_DISTANCE,
    n_jobs: int = 1,
    progress: bool = False,
    save_path: Optional[str] = None,
) -> Tuple[pd.DataFrame, ImputationResult]:
    """
    Fill the gaps of a long (site, date) precipitation table.

    Steps:

    1. one row per site with median coordinates (:func:`site_table`); sites
       without coordinates are kept, with a warning, as infinitely far;
    2. great-circle distance matrix, diagonal ``NaN``;
    3. wide site x date matrix in the same site order;
    4. :func:`KNNrainPy.imputer.impute`;
    5. back to long format, with a boolean ``imputed`` column.

    Parameters
    ----------
    data : DataFrame
        Long table with at least [id_col, date_col, lat_col, lon_col,
        value_col].
    k, weighted, config, zero_distance, min_distance, n_jobs, progress :
        Passed to :func:`~KNNrainPy.imputer.impute`.
    save_path : str, optional
        Write the long result to ``.csv`` or ``.parquet``.

    Returns
    -------
    long_df : DataFrame
        Columns [id_col, date_col, value_col, "imputed"], one row per
        site and date of the wide matrix.
    result : ImputationResult
        Full result with the wide matrix and diagnostics.
    """
    sites = site_table(data, id_col=id_col, lat_col=lat_col, lon_col=lon_col)
    no_coords = sites.loc[sites[[lat_col, lon_col]].isna().any(axis=1), id_col].tolist()
    if no_coords:
        warnings.warn(
            f"{len(no_coords)} site(s) without coordinates are kept as infinitely far "
            f"from every other site, e.g. {no_coords[:5]}.",
            KNNRainWarning,
            stacklevel=2,
        )
    dist = distance_matrix_from_coords(
        sites[lon_col].to_numpy(),
        sites[lat_col].to_numpy(),
        labels=sites[id_col].tolist(),
    )
    wide = long_to_wide(
        data,
        id_col=id_col,
        date_col=date_col,
        value_col=value_col,
        sites=pd.Index(sites[id_col], name=id_col),
    )

    result = impute(
        wide,
        dist,
        k=k,
        weighted=weighted,
        config=config,
        zero_distance=zero_distance,
        min_distance=min_distance,
        n_jobs=n_jobs,
        progress=progress,
    )

    long_df = wide_to_long(result.values, id_col=id_col, date_col=date_col, value_col=value_col)
    flags = pd.DataFrame(result.estimated_mask, index=wide.index, columns=wide.columns)
    flags = wide_to_long(flags, id_col=id_col, date_col=date_col, value_col="imputed")
    long_df["imputed"] = flags["imputed"].astype(bool).to_numpy()

    save_table(long_df, save_path)
    return long_df, result


__all__ = [
    "save_table",
    "site_table",
    "long_to_wide",
    "wide_to_long",
    "impute_long_table",
]
