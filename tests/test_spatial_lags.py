import geopandas as gpd
import numpy as np
import pytest
from scipy import sparse
from scipy.stats import norm
from shapely.geometry import box

from geodata_tutorials.spatial_lags import (
    contiguity_weights,
    knn_weights,
    morans_i,
    spatial_lag,
)


def _strip(n=4):
    return gpd.GeoDataFrame(geometry=[box(i, 0, i + 1, 1) for i in range(n)], crs="EPSG:32717")


def _square_block():
    return gpd.GeoDataFrame(
        geometry=[box(0, 0, 1, 1), box(1, 0, 2, 1), box(0, 1, 1, 2), box(1, 1, 2, 2)],
        crs="EPSG:32717",
    )


def _row_sums(weights):
    return np.asarray(weights.sum(axis=1)).ravel()


def test_contiguity_weights_strip_row_standardised():
    weights = contiguity_weights(_strip())

    expected = np.array(
        [
            [0, 1, 0, 0],
            [0.5, 0, 0.5, 0],
            [0, 0.5, 0, 0.5],
            [0, 0, 1, 0],
        ]
    )
    np.testing.assert_allclose(weights.toarray(), expected)


def test_queen_and_rook_differ_on_corners():
    queen = contiguity_weights(_square_block(), queen=True, style="B")
    rook = contiguity_weights(_square_block(), queen=False, style="B")

    np.testing.assert_array_equal(_row_sums(queen), [3, 3, 3, 3])
    np.testing.assert_array_equal(_row_sums(rook), [2, 2, 2, 2])
    assert (queen.toarray() == queen.toarray().T).all()


def test_contiguity_weights_island_row_is_zero(caplog):
    layer = gpd.GeoDataFrame(geometry=[box(0, 0, 1, 1), box(1, 0, 2, 1), box(10, 10, 11, 11)], crs="EPSG:32717")

    with caplog.at_level("WARNING"):
        weights = contiguity_weights(layer)

    np.testing.assert_allclose(_row_sums(weights), [1, 1, 0])
    assert "no neighbours" in caplog.text


def test_contiguity_weights_rejects_unknown_style():
    with pytest.raises(ValueError):
        contiguity_weights(_strip(), style="C")


def test_knn_weights_from_coordinates():
    coords = np.array([[0, 0], [1, 0], [2, 0], [3, 0], [10, 0]], dtype=float)

    weights = knn_weights(coords, k=2)
    binary = knn_weights(coords, k=2, style="B")

    np.testing.assert_allclose(_row_sums(weights), np.ones(5))
    np.testing.assert_array_equal(_row_sums(binary), np.full(5, 2))
    assert binary[0, 1] == 1 and binary[0, 2] == 1
    assert binary[4, 3] == 1
    assert weights.diagonal().sum() == 0


def test_knn_weights_from_polygons():
    weights = knn_weights(_strip(5), k=1, style="B")

    assert weights.shape == (5, 5)
    np.testing.assert_array_equal(_row_sums(weights), np.ones(5))


@pytest.mark.parametrize("k", [0, 4, 10])
def test_knn_weights_rejects_bad_k(k):
    with pytest.raises(ValueError):
        knn_weights(np.arange(8, dtype=float).reshape(4, 2), k=k)


def test_spatial_lag_is_neighbour_average():
    lag = spatial_lag(contiguity_weights(_strip()), [1, 2, 3, 4])

    np.testing.assert_allclose(lag, [2, 2, 3, 3])


def test_spatial_lag_shape_mismatch():
    with pytest.raises(ValueError):
        spatial_lag(contiguity_weights(_strip()), [1, 2, 3])


def test_morans_i_positive_autocorrelation():
    result = morans_i([1, 2, 3, 4], contiguity_weights(_strip()))

    assert result.statistic == pytest.approx(0.4)
    assert result.expectation == pytest.approx(-1 / 3)
    assert result.variance > 0
    assert result.z_score > 0
    assert 0 < result.p_value < 0.5


def test_morans_i_alternatives_are_consistent():
    weights = contiguity_weights(_strip(6))
    values = [1, 5, 2, 6, 3, 7]

    greater = morans_i(values, weights)
    less = morans_i(values, weights, alternative="less")
    two_sided = morans_i(values, weights, alternative="two-sided")

    assert greater.statistic < greater.expectation
    assert greater.p_value + less.p_value == pytest.approx(1.0)
    assert two_sided.p_value == pytest.approx(2 * min(greater.p_value, less.p_value))


def test_morans_i_normality_variance():
    weights = contiguity_weights(_strip(6))
    values = np.array([1.0, 2.0, 4.0, 3.0, 6.0, 5.0])

    randomised = morans_i(values, weights)
    normal = morans_i(values, weights, randomisation=False)

    assert normal.statistic == pytest.approx(randomised.statistic)
    assert normal.variance > 0
    assert normal.variance != pytest.approx(randomised.variance)


def test_morans_i_invalid_inputs():
    weights = contiguity_weights(_strip())

    with pytest.raises(ValueError):
        morans_i([1, 1, 1, 1], weights)
    with pytest.raises(ValueError):
        morans_i([1, np.nan, 3, 4], weights)
    with pytest.raises(ValueError):
        morans_i([1, 2, 3, 4], sparse.csr_matrix((4, 4)))
    with pytest.raises(ValueError):
        morans_i([1, 2, 3, 4], weights, alternative="both")
    with pytest.raises(ValueError):
        morans_i([1, 2, 3], contiguity_weights(_strip(3)))


def test_morans_i_reference_values():
    # closed-form values for the 4-unit strip, row-standardised weights
    # S0 = 4, S1 = 5.5, S2 = 17, sample kurtosis 1.64
    weights = contiguity_weights(_strip())

    randomised = morans_i([1, 2, 3, 4], weights)
    normal = morans_i([1, 2, 3, 4], weights, randomisation=False)

    assert randomised.variance == pytest.approx(31.36 / 96 - 1 / 9)
    assert randomised.z_score == pytest.approx((0.4 + 1 / 3) / np.sqrt(31.36 / 96 - 1 / 9))
    assert randomised.z_score == pytest.approx(1.5795, abs=1e-4)
    assert randomised.p_value == pytest.approx(0.0571, abs=2e-4)
    assert normal.variance == pytest.approx(68 / 240 - 1 / 9)
    assert normal.p_value == pytest.approx(norm.sf(normal.z_score))
