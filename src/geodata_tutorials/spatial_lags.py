"""
Spatial weights, spatial lags and Moran's I.

A spatial lag of a variable at a location is the weighted average of that
variable over the location's neighbours.  Weights are kept as
``scipy.sparse`` CSR matrices so layers with thousands of polygons stay cheap.

Moran's I follows the usual definition::

    I = (N / S0) * sum_ij w_ij (x_i - x_bar)(x_j - x_bar) / sum_i (x_i - x_bar)^2

with the variance under either the randomisation or the normality
assumption, and a one-sided ("greater") p-value by default.
"""

from __future__ import annotations

from typing import NamedTuple, Union

import geopandas as gpd
import numpy as np
from scipy import sparse
from scipy.spatial import cKDTree
from scipy.stats import norm

from geodata_tutorials.log import lags_logger

_STYLES = ("W", "B")
_ALTERNATIVES = ("greater", "less", "two-sided")


class MoranResult(NamedTuple):
    statistic: float
    expectation: float
    variance: float
    z_score: float
    p_value: float


def _standardise(weights: sparse.csr_matrix, style: str) -> sparse.csr_matrix:
    """Row-standardise (``W``) or keep binary (``B``) weights; zero rows stay zero."""
    if style not in _STYLES:
        raise ValueError(f"Unknown weights style {style!r}. Valid values are {', '.join(_STYLES)}.")
    if style == "B":
        return weights.tocsr()

    row_sums = np.asarray(weights.sum(axis=1)).ravel()
    inverse = np.divide(1.0, row_sums, out=np.zeros_like(row_sums, dtype=float), where=row_sums > 0)
    return (sparse.diags(inverse) @ weights).tocsr()


def contiguity_weights(gdf: gpd.GeoDataFrame, queen: bool = True, style: str = "W") -> sparse.csr_matrix:
    """
    Polygon contiguity weights.

    Queen contiguity treats polygons sharing any boundary point as neighbours;
    rook (``queen=False``) requires a shared edge.  Polygons without
    neighbours keep an all-zero row.
    """
    n = len(gdf)
    geoms = gdf.geometry.reset_index(drop=True)
    layer = gpd.GeoDataFrame(geometry=geoms, crs=gdf.crs)

    pairs = gpd.sjoin(layer, layer, how="inner", predicate="intersects")
    i = pairs.index.to_numpy()
    j = pairs["index_right"].to_numpy()
    keep = i != j
    i, j = i[keep], j[keep]

    if not queen:
        shared_edge = np.array(
            [geoms.iloc[a].intersection(geoms.iloc[b]).length > 0 for a, b in zip(i, j)],
            dtype=bool,
        )
        i, j = i[shared_edge], j[shared_edge]

    weights = sparse.csr_matrix((np.ones(len(i)), (i, j)), shape=(n, n))
    islands = int(np.sum(np.asarray(weights.sum(axis=1)).ravel() == 0))
    if islands:
        lags_logger.warning("%d of %d polygons have no neighbours", islands, n)
    return _standardise(weights, style)


def knn_weights(
    points: Union[np.ndarray, gpd.GeoDataFrame, gpd.GeoSeries],
    k: int = 4,
    style: str = "W",
) -> sparse.csr_matrix:
    """k-nearest-neighbour weights from coordinates (or geometry centroids)."""
    if isinstance(points, (gpd.GeoDataFrame, gpd.GeoSeries)):
        centroids = points.geometry.centroid if isinstance(points, gpd.GeoDataFrame) else points.centroid
        coords = np.column_stack([centroids.x.to_numpy(), centroids.y.to_numpy()])
    else:
        coords = np.asarray(points, dtype=float)

    n = len(coords)
    if k < 1 or k >= n:
        raise ValueError(f"k must be between 1 and {n - 1}, got {k}.")

    _, neighbours = cKDTree(coords).query(coords, k=k + 1)
    rows, cols = [], []
    for i, candidates in enumerate(neighbours):
        chosen = [j for j in candidates if j != i][:k]
        rows.extend([i] * len(chosen))
        cols.extend(chosen)

    weights = sparse.csr_matrix((np.ones(len(rows)), (rows, cols)), shape=(n, n))
    return _standardise(weights, style)


def spatial_lag(weights: sparse.spmatrix, values) -> np.ndarray:
    """Weighted average of ``values`` over each unit's neighbours (``W @ x``)."""
    x = np.asarray(values, dtype=float)
    if weights.shape[0] != weights.shape[1] or weights.shape[1] != x.shape[0]:
        raise ValueError(f"Weights of shape {weights.shape} do not match {x.shape[0]} values.")
    return np.asarray(weights @ x).ravel()


def morans_i(
    values,
    weights: sparse.spmatrix,
    randomisation: bool = True,
    alternative: str = "greater",
) -> MoranResult:
    """
    Moran's I test for spatial autocorrelation.

    Parameters
    ----------
    values : array-like
        Observed variable, one value per spatial unit.
    weights : sparse matrix
        Spatial weights (``n x n``).
    randomisation : bool
        Variance under randomisation (default) or under normality.
    alternative : str
        ``greater`` (clustering, default), ``less`` or ``two-sided``.
    """
    if alternative not in _ALTERNATIVES:
        raise ValueError(f"Unknown alternative {alternative!r}. Valid values are {', '.join(_ALTERNATIVES)}.")

    x = np.asarray(values, dtype=float)
    n = x.shape[0]
    if weights.shape != (n, n):
        raise ValueError(f"Weights of shape {weights.shape} do not match {n} values.")
    if np.isnan(x).any():
        raise ValueError("values contain NaN.")
    if n < 4 and randomisation:
        raise ValueError("At least 4 units are needed for the randomisation variance.")

    w = sparse.csr_matrix(weights, dtype=float)
    z = x - x.mean()
    m2 = float(z @ z)
    if m2 == 0:
        raise ValueError("values are constant; Moran's I is undefined.")

    s0 = float(w.sum())
    if s0 == 0:
        raise ValueError("Weights sum to zero.")
    s1 = 0.5 * float((w + w.T).power(2).sum())
    s2 = float(np.sum((np.asarray(w.sum(axis=1)).ravel() + np.asarray(w.sum(axis=0)).ravel()) ** 2))

    statistic = (n / s0) * float(z @ (w @ z)) / m2
    expectation = -1.0 / (n - 1)

    if randomisation:
        kurtosis = (n * np.sum(z ** 4)) / (m2 ** 2)
        numerator = n * ((n * n - 3 * n + 3) * s1 - n * s2 + 3 * s0 ** 2)
        numerator -= kurtosis * ((n * n - n) * s1 - 2 * n * s2 + 6 * s0 ** 2)
        variance = numerator / ((n - 1) * (n - 2) * (n - 3) * s0 ** 2) - expectation ** 2
    else:
        variance = (n * n * s1 - n * s2 + 3 * s0 ** 2) / (s0 ** 2 * (n * n - 1)) - expectation ** 2

    z_score = (statistic - expectation) / np.sqrt(variance)
    if alternative == "greater":
        p_value = norm.sf(z_score)
    elif alternative == "less":
        p_value = norm.cdf(z_score)
    else:
        p_value = 2 * norm.sf(abs(z_score))

    lags_logger.debug("Moran's I = %.4f (z = %.3f, p = %.4f)", statistic, z_score, p_value)
    return MoranResult(float(statistic), float(expectation), float(variance), float(z_score), float(p_value))
