"""
Tests for classical MDS.
"""

import numpy as np
import pytest

from rnaseq_qc.distance import DistanceMatrix, pairwise_distance
from rnaseq_qc.mds import embed, double_center, EIGEN_RTOL
from rnaseq_qc.normalize import normalize
from rnaseq_qc.expression_filter import filter_genes
from rnaseq_qc.errors import NegativeEigenvalue, InvalidParameter

from conftest import make_store, synthetic_counts


def distance_matrix(values):
    values = np.asarray(values, dtype=float)
    ids = [f"S{i}" for i in range(values.shape[0])]
    return DistanceMatrix(values, ids, None, top_n=500, effective_top_n=500)


def euclidean(points):
    points = np.asarray(points, dtype=float)
    diff = points[:, None, :] - points[None, :, :]
    return np.sqrt((diff ** 2).sum(axis=-1))


def test_double_center_rows_and_columns_sum_to_zero():
    b = double_center(euclidean(np.random.RandomState(0).normal(size=(5, 3))))
    np.testing.assert_allclose(b.sum(axis=0), 0, atol=1e-10)
    np.testing.assert_allclose(b.sum(axis=1), 0, atol=1e-10)


def test_recovers_planar_configuration():
    points = np.array([[0.0, 0.0], [3.0, 0.0], [0.0, 1.0], [3.0, 1.0], [1.5, 0.5]])
    d = euclidean(points)
    result = embed(distance_matrix(d), dimensions=2)
    assert result.coordinates.shape == (5, 2)
    np.testing.assert_allclose(euclidean(result.coordinates), d, atol=1e-8)
    # the long axis carries more variance
    assert result.eigenvalues[0] > result.eigenvalues[1] > 0
    assert result.variance_explained.sum() == pytest.approx(1.0)


def test_coordinates_are_centered_and_eigenvalues_descending():
    d = euclidean(np.random.RandomState(1).normal(size=(7, 4)))
    result = embed(distance_matrix(d), dimensions=3)
    np.testing.assert_allclose(result.coordinates.mean(axis=0), 0, atol=1e-10)
    assert np.all(np.diff(result.all_eigenvalues) <= 1e-12)
    assert len(result.eigenvalues) == 3
    assert result.method == "mds"


@pytest.mark.parametrize("dimensions", [1, 2, 4])
def test_output_dimensionality(dimensions):
    d = euclidean(np.random.RandomState(2).normal(size=(6, 5)))
    result = embed(distance_matrix(d), dimensions=dimensions)
    assert result.coordinates.shape == (6, dimensions)
    assert result.dimensions == dimensions
    assert result.coordinate("S3").shape == (dimensions,)


def test_non_euclidean_distances_raise_negative_eigenvalue():
    # violates the triangle inequality, the third eigenvalue is negative
    d = np.array([[0.0, 1.0, 1.0], [1.0, 0.0, 3.0], [1.0, 3.0, 0.0]])
    with pytest.raises(NegativeEigenvalue) as excinfo:
        embed(distance_matrix(d), dimensions=3)
    assert excinfo.value.dimension == 3
    assert excinfo.value.eigenvalue < 0
    # the first two dimensions are still embeddable
    result = embed(distance_matrix(d), dimensions=2)
    assert result.coordinates.shape == (3, 2)


@pytest.mark.parametrize("dimensions", [0, 4, 1.5])
def test_invalid_dimensions(dimensions):
    d = euclidean(np.eye(3))
    with pytest.raises(InvalidParameter):
        embed(distance_matrix(d), dimensions=dimensions)


def test_identical_samples_embed_at_origin():
    result = embed(distance_matrix(np.zeros((4, 4))), dimensions=2)
    np.testing.assert_allclose(result.coordinates, 0)
    np.testing.assert_allclose(result.variance_explained, 0)


def test_sample_permutation_permutes_rows():
    store = make_store(synthetic_counts(n_genes=200, n_samples=6, seed=11))
    order = ["S4", "S1", "S6", "S2", "S5", "S3"]
    permuted = store.reorder_samples(order)

    def run(s):
        normalized = normalize(s, log=True)
        mask = filter_genes(normalized, threshold=1.0, min_samples=2)
        return embed(pairwise_distance(normalized, mask, top_n=50), dimensions=2)

    original = run(store)
    shuffled = run(permuted)
    assert shuffled.sample_ids == tuple(order)
    np.testing.assert_allclose(shuffled.eigenvalues, original.eigenvalues, rtol=1e-10)

    # equal up to rotation/reflection, so compare distances between embedded samples
    idx = [store.sample_ids.index(s) for s in order]
    np.testing.assert_allclose(
        euclidean(shuffled.coordinates), euclidean(original.coordinates)[np.ix_(idx, idx)], atol=1e-8
    )
    for s in order:
        np.testing.assert_allclose(np.abs(shuffled.coordinate(s)), np.abs(original.coordinate(s)), atol=1e-8)


def test_small_scale_non_euclidean_distances_still_raise():
    # same geometry as above shrunk by 1e-5, the tolerance has to shrink with it
    d = np.array([[0.0, 1.0, 1.0], [1.0, 0.0, 3.0], [1.0, 3.0, 0.0]]) * 1e-5
    with pytest.raises(NegativeEigenvalue) as excinfo:
        embed(distance_matrix(d), dimensions=3)
    assert excinfo.value.dimension == 3


def gram_distances(third_eigenvalue):
    """
    Distances whose double centered matrix has eigenvalues 1, 0.5 and third_eigenvalue.
    """
    v1 = np.array([1.0, -1.0, 0.0, 0.0]) / np.sqrt(2)
    v2 = np.array([0.0, 0.0, 1.0, -1.0]) / np.sqrt(2)
    v3 = np.array([1.0, 1.0, -1.0, -1.0]) / 2
    b = np.outer(v1, v1) + 0.5 * np.outer(v2, v2) + third_eigenvalue * np.outer(v3, v3)
    diag = np.diag(b)
    d2 = diag[:, None] + diag[None, :] - 2 * b
    return np.sqrt(np.clip(d2, 0, None))


@pytest.mark.parametrize("factor, raises", [(0.5, False), (2.0, True)])
def test_negative_eigenvalue_tolerance_band(factor, raises):
    # largest eigenvalue is 1 so the tolerance is EIGEN_RTOL, the centering eigenvalue 0 sorts third
    d = distance_matrix(gram_distances(-factor * EIGEN_RTOL))
    if raises:
        with pytest.raises(NegativeEigenvalue):
            embed(d, dimensions=4)
    else:
        result = embed(d, dimensions=4)
        np.testing.assert_allclose(result.eigenvalues[:2], [1.0, 0.5], atol=1e-10)
        np.testing.assert_array_equal(result.coordinates[:, 3], 0.0)
