# tests/test_neighbors.py
import numpy as np
import pandas as pd
import pytest

from KNNrainPy.diagnostics import InvalidInputShape
from KNNrainPy.neighbors import NeighborCache, neighbor_orders, order_by_distance


def test_order_by_distance_poc_matrix(poc_distances):
    # column 2 = [1.0, 0.8, NA, 2.0]; the site itself goes last
    order = order_by_distance(2, poc_distances)
    assert order.tolist() == [1, 0, 3, 2]


def test_ties_keep_input_order(poc_distances):
    # sites 0 and 2 are both 0.8 away from site 1
    order = order_by_distance(1, poc_distances)
    assert order.tolist() == [0, 2, 3, 1]

    flat = np.array(
        [
            [np.nan, 1.0, 1.0, 1.0],
            [1.0, np.nan, 1.0, 1.0],
            [1.0, 1.0, np.nan, 1.0],
            [1.0, 1.0, 1.0, np.nan],
        ]
    )
    assert order_by_distance(0, flat).tolist() == [1, 2, 3, 0]
    assert order_by_distance(2, flat).tolist() == [0, 1, 3, 2]


def test_undefined_distances_sort_last_in_input_order():
    d = np.array(
        [
            [np.nan, np.nan, 2.0, 1.0],
            [np.nan, np.nan, 1.0, 1.0],
            [2.0, 1.0, np.nan, 1.0],
            [1.0, 1.0, 1.0, np.nan],
        ]
    )
    assert order_by_distance(0, d).tolist() == [3, 2, 0, 1]
    assert order_by_distance(1, d).tolist() == [2, 3, 0, 1]


def test_order_is_sorted_permutation(random_network):
    _, dist = random_network
    n = dist.shape[0]
    for i in range(n):
        order = order_by_distance(i, dist)
        assert sorted(order.tolist()) == list(range(n))
        col = dist[order, i]
        defined = col[~np.isnan(col)]
        assert np.all(np.diff(defined) >= 0)
        # all undefined entries after all defined ones
        n_def = defined.size
        assert np.isnan(col[n_def:]).all()
        assert order[-1] == i


def test_dataframe_input(poc_distances):
    labels = ["A", "B", "C", "D"]
    df = pd.DataFrame(poc_distances, index=labels, columns=labels)
    assert order_by_distance(2, df).tolist() == [1, 0, 3, 2]


def test_invalid_inputs_raise(poc_distances):
    with pytest.raises(InvalidInputShape):
        order_by_distance(0, np.ones((3, 4)))
    with pytest.raises(InvalidInputShape):
        order_by_distance(4, poc_distances)
    with pytest.raises(InvalidInputShape):
        order_by_distance(-1, poc_distances)
    with pytest.raises(InvalidInputShape):
        neighbor_orders(np.ones(4))


def test_neighbor_orders_and_cache_agree(random_network):
    _, dist = random_network
    table = neighbor_orders(dist)
    cache = NeighborCache(dist)

    assert table.shape == dist.shape
    for i in range(dist.shape[0]):
        np.testing.assert_array_equal(table[i], order_by_distance(i, dist))
        np.testing.assert_array_equal(cache[i], table[i])

    # memoized: the same object comes back
    assert cache[3] is cache[3]
    np.testing.assert_array_equal(cache.table(), table)
    assert len(cache) == dist.shape[0]


def test_empty_cache_table():
    cache = NeighborCache(np.empty((0, 0)))
    assert cache.table().shape == (0, 0)
