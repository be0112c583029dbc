# tests/test_imputer.py
import warnings

import numpy as np
import pandas as pd
import pytest

from KNNrainPy.diagnostics import (
    DEGRADED,
    NO_NEIGHBORS,
    DegradedNeighborCountWarning,
    InvalidInputShape,
    NoValidNeighborsWarning,
    ZeroDistanceError,
)
import KNNrainPy.imputer as imputer_mod
from KNNrainPy.imputer import ImputationConfig, estimate_matrix, impute


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------


def _poc_matrix() -> np.ndarray:
    """4 sites x 3 days; day 2 is entirely missing."""
    return np.array(
        [
            [np.nan, 0.0, np.nan],
            [1.0, 1.0, np.nan],
            [2.0, np.nan, np.nan],
            [1.0, 1.0, np.nan],
        ]
    )


# ----------------------------------------------------------------------
# Fill policy
# ----------------------------------------------------------------------


def test_impute_fills_missing_cells_only(poc_distances):
    res = impute(_poc_matrix(), poc_distances, k=1, warn=False)
    expected = np.array(
        [
            [1.0, 0.0, np.nan],
            [1.0, 1.0, np.nan],
            [2.0, 1.0, np.nan],
            [1.0, 1.0, np.nan],
        ]
    )
    np.testing.assert_array_equal(res.values, expected)
    assert res.n_missing_before == 6
    assert res.n_filled == 2
    assert res.n_missing_after == 4
    assert res.estimated_mask[0, 0] and res.estimated_mask[2, 1]


def test_observed_values_are_never_overwritten(random_network):
    rain, dist = random_network
    observed = ~np.isnan(rain)
    for k in (1, 3, 20):
        res = impute(rain, dist, k=k, weighted=True, warn=False)
        np.testing.assert_array_equal(res.values[observed], rain[observed])
        assert not res.estimated_mask[observed].any()


def test_complete_matrix_is_returned_unchanged(random_network):
    _, dist = random_network
    rng = np.random.default_rng(0)
    full = rng.gamma(0.8, 4.0, size=(12, 5))
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        res = impute(full, dist, k=4)
    np.testing.assert_array_equal(res.values, full)
    assert res.values is not full
    assert res.n_filled == 0
    assert len(res.diagnostics) == 0


def test_input_is_not_mutated(poc_distances):
    m = _poc_matrix()
    before = m.copy()
    d_before = poc_distances.copy()
    impute(m, poc_distances, k=2, warn=False)
    np.testing.assert_array_equal(m, before)
    np.testing.assert_array_equal(poc_distances, d_before)


@pytest.mark.parametrize("k", [1, 3])
@pytest.mark.parametrize("weighted", [False, True])
def test_all_missing_column_stays_missing(k, weighted, poc_distances):
    res = impute(_poc_matrix(), poc_distances, k=k, weighted=weighted, warn=False)
    assert np.isnan(res.values[:, 2]).all()
    col_diags = [d for d in res.diagnostics if d.column == 2]
    assert len(col_diags) == 1
    assert col_diags[0].kind == NO_NEIGHBORS
    assert col_diags[0].site is None


def test_summary_warning_per_kind(poc_distances):
    with pytest.warns(NoValidNeighborsWarning, match="entirely missing"):
        impute(_poc_matrix(), poc_distances, k=1)


def test_parallel_matches_sequential(random_network):
    rain, dist = random_network
    seq = impute(rain, dist, k=3, weighted=True, n_jobs=1, warn=False)
    par = impute(rain, dist, k=3, weighted=True, n_jobs=2, warn=False)
    np.testing.assert_array_equal(seq.values, par.values)
    np.testing.assert_array_equal(seq.estimated_mask, par.estimated_mask)
    assert seq.diagnostics.records == par.diagnostics.records


def test_progress_bar_does_not_change_result(random_network):
    rain, dist = random_network
    a = impute(rain, dist, k=2, warn=False)
    b = impute(rain, dist, k=2, progress=True, warn=False)
    np.testing.assert_array_equal(a.values, b.values)


@pytest.mark.parametrize("n_jobs", [1, 2])
def test_progress_bar_counts_finished_columns(n_jobs, random_network, monkeypatch):
    seen = {}

    class RecordingBar:
        def __init__(self, iterable, total=None, **kwargs):
            self.iterable = iterable
            seen["total"] = total
            seen["items"] = []

        def __iter__(self):
            for item in self.iterable:
                seen["items"].append(item)
                yield item

    monkeypatch.setattr(imputer_mod, "tqdm", RecordingBar)
    rain, dist = random_network
    impute(rain, dist, k=2, n_jobs=n_jobs, progress=True, warn=False)

    assert seen["total"] == rain.shape[1]
    assert len(seen["items"]) == rain.shape[1]
    # each step is a computed column, not a pending job
    col_out, col_written, diags = seen["items"][0]
    assert col_out.shape == (rain.shape[0],)
    assert col_written.dtype == bool
    assert isinstance(diags, list)


def test_degraded_cells_reach_result_diagnostics(poc_distances):
    labels = ["A", "B", "C", "D"]
    dist = pd.DataFrame(poc_distances, index=labels, columns=labels)
    dates = pd.date_range("2024-07-29", periods=3, freq="D")
    rain = pd.DataFrame(_poc_matrix(), index=labels, columns=dates)

    with pytest.warns(DegradedNeighborCountWarning, match="2 cell"):
        res = impute(rain, dist, k=5)

    degraded = res.diagnostics.of_kind(DEGRADED)
    assert [(d.site, d.column) for d in degraded] == [("A", dates[0]), ("C", dates[1])]
    assert all(d.requested_k == 5 and d.effective_k == 3 for d in degraded)
    assert res.values.loc["A", dates[0]] == pytest.approx(4.0 / 3.0)
    assert res.values.loc["C", dates[1]] == pytest.approx(2.0 / 3.0)
    assert res.summary().loc[0, "n_degraded"] == 2


# ----------------------------------------------------------------------
# Labelled inputs
# ----------------------------------------------------------------------


def test_dataframe_inputs_are_aligned(poc_distances):
    labels = ["A", "B", "C", "D"]
    dist = pd.DataFrame(poc_distances, index=labels, columns=labels)
    dates = pd.date_range("2024-07-29", periods=3, freq="D")
    rain = pd.DataFrame(_poc_matrix(), index=labels, columns=dates)

    # shuffled rows must give the same per-site answers
    shuffled = rain.loc[["C", "A", "D", "B"]]
    res = impute(shuffled, dist, k=1, warn=False)

    assert isinstance(res.values, pd.DataFrame)
    assert list(res.values.index) == ["C", "A", "D", "B"]
    assert list(res.values.columns) == list(dates)
    assert res.values.loc["A", dates[0]] == 1.0
    assert res.values.loc["C", dates[1]] == 1.0
    assert res.values[dates[2]].isna().all()
    diag_cols = {d.column for d in res.diagnostics}
    assert diag_cols == {dates[2]}


def test_dataframe_missing_site_raises(poc_distances):
    labels = ["A", "B", "C", "D"]
    dist = pd.DataFrame(poc_distances, index=labels, columns=labels)
    rain = pd.DataFrame(_poc_matrix(), index=["A", "B", "C", "Z"])
    with pytest.raises(InvalidInputShape, match="missing from the distance matrix"):
        impute(rain, dist, k=1)


def test_series_and_vector_inputs(poc_distances):
    vec = np.array([np.nan, 1.0, 2.0, 1.0])
    res = impute(vec, poc_distances, k=1, warn=False)
    assert res.values.shape == (4,)
    np.testing.assert_array_equal(res.values, [1.0, 1.0, 2.0, 1.0])
    assert res.estimated_mask.shape == (4,)

    s = pd.Series(vec, index=list("ABCD"), name="2024-07-30")
    res_s = impute(s, poc_distances, k=1, warn=False)
    assert isinstance(res_s.values, pd.Series)
    assert res_s.values.name == "2024-07-30"
    assert res_s.values["A"] == 1.0


# ----------------------------------------------------------------------
# Errors
# ----------------------------------------------------------------------


def test_shape_errors(poc_distances):
    with pytest.raises(InvalidInputShape):
        impute(np.ones((3, 2)), poc_distances, k=1)
    with pytest.raises(InvalidInputShape):
        impute(np.ones((4, 2)), np.ones((4, 3)), k=1)
    with pytest.raises(InvalidInputShape):
        impute(np.ones((4, 2, 2)), poc_distances, k=1)


def test_asymmetric_distance_matrix(poc_distances):
    d = poc_distances.copy()
    d[0, 3] = 9.0
    with pytest.raises(InvalidInputShape, match="symmetric"):
        impute(_poc_matrix(), d, k=1)
    res = impute(_poc_matrix(), d, k=1, check_symmetry=False, warn=False)
    assert res.values.shape == (4, 3)


def test_invalid_k(poc_distances):
    with pytest.raises(ValueError):
        impute(_poc_matrix(), poc_distances, k=0)


def test_zero_distance_policies_through_impute():
    d = np.array(
        [
            [np.nan, 0.0, 2.0],
            [0.0, np.nan, 1.0],
            [2.0, 1.0, np.nan],
        ]
    )
    rain = np.array([[np.nan, 1.0], [4.0, 2.0], [1.0, np.nan]])

    with pytest.raises(ZeroDistanceError):
        impute(rain, d, k=2, weighted=True, zero_distance="raise")

    res = impute(rain, d, k=2, weighted=True, zero_distance="missing", warn=False)
    assert np.isnan(res.values[0, 0])
    # the other column is unaffected: site 2 from sites 1 (d=1) and 0 (d=2)
    assert res.values[2, 1] == pytest.approx((2.0 * 1.0 + 1.0 * 0.5) / 1.5)
    assert res.diagnostics.counts() == {"zero_distance": 1}

    res = impute(rain, d, k=2, weighted=True, zero_distance="clamp", warn=False)
    assert np.isfinite(res.values).all()


# ----------------------------------------------------------------------
# Configuration, summary and raw estimates
# ----------------------------------------------------------------------


def test_config_overrides_keyword_arguments(poc_distances):
    cfg = ImputationConfig(k=1)
    res = impute(_poc_matrix(), poc_distances, k=3, config=cfg, warn=False)
    assert res.config.k == 1
    assert res.values[0, 0] == 1.0


def test_config_json_round_trip(tmp_path):
    cfg = ImputationConfig(k=6, weighted=True, zero_distance="clamp", n_jobs=2)
    path = tmp_path / "cfg" / "knn.json"
    cfg.save(str(path))
    assert path.exists()
    assert ImputationConfig.load(str(path)) == cfg


def test_config_validation():
    with pytest.raises(ValueError):
        ImputationConfig(k=0).validate()
    with pytest.raises(ValueError):
        ImputationConfig(n_jobs=0).validate()
    with pytest.raises(ValueError):
        ImputationConfig(zero_distance="skip").validate()


def test_summary_table(poc_distances):
    res = impute(_poc_matrix(), poc_distances, k=2, weighted=True, warn=False)
    table = res.summary()
    assert len(table) == 1
    row = table.iloc[0]
    assert row["n_sites"] == 4
    assert row["n_slices"] == 3
    assert row["n_filled"] == 2
    assert row["n_no_neighbors"] == 1
    assert bool(row["weighted"]) is True


def test_estimate_matrix_covers_observed_cells(poc_distances, poc_values):
    est, log = estimate_matrix(poc_values[:, None], poc_distances, k=1)
    np.testing.assert_allclose(est[:, 0], [1.0, 0.0, 1.0, 2.0])
    assert len(log) == 0
