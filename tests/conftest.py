# tests/conftest.py
import numpy as np
import pytest


@pytest.fixture
def poc_distances() -> np.ndarray:
    """
    Four-site symmetric distance matrix with an undefined diagonal.

    Site 1 is equidistant (0.8) from sites 0 and 2, which exercises the
    input-order tie-break.
    """
    return np.array(
        [
            [np.nan, 0.8, 1.0, 2.8],
            [0.8, np.nan, 0.8, 2.8],
            [1.0, 0.8, np.nan, 2.0],
            [2.8, 2.8, 2.0, np.nan],
        ]
    )


@pytest.fixture
def poc_values() -> np.ndarray:
    return np.array([0.0, 1.0, 2.0, 1.0])


@pytest.fixture
def random_network():
    """
    Deterministic 12-site x 30-day network with ~30% gaps and one
    entirely missing day.
    """
    rng = np.random.default_rng(42)
    xy = rng.uniform(0.0, 10.0, size=(12, 2))
    dist = np.sqrt(((xy[:, None, :] - xy[None, :, :]) ** 2).sum(axis=2))
    np.fill_diagonal(dist, np.nan)

    rain = rng.gamma(shape=0.8, scale=4.0, size=(12, 30))
    rain[rng.uniform(size=rain.shape) < 0.3] = np.nan
    rain[:, 7] = np.nan
    return rain, dist
