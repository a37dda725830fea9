# region Imports

import numbers
import numpy as np

from rnaseq_qc.distance import DistanceMatrix
from rnaseq_qc.errors import InvalidParameter, NegativeEigenvalue

# endregion

# eigenvalues down to -EIGEN_RTOL * largest |eigenvalue| are treated as zero (EIGEN_RTOL itself when all are zero)
EIGEN_RTOL = 1e-8


class EmbeddingResult:
    """
    Low dimensional sample coordinates (rows = samples, cols = dimensions) and the eigenvalues used to get them.
    Coordinates are only defined up to rotation and reflection
    """

    def __init__(self, coordinates: np.ndarray, eigenvalues, sample_ids, metadata,
                 variance_explained=None, all_eigenvalues=None, method: str = "mds"):
        coordinates = np.array(coordinates, dtype=float)
        coordinates.setflags(write=False)
        eigenvalues = np.array(eigenvalues, dtype=float)
        eigenvalues.setflags(write=False)

        self._coordinates = coordinates
        self._eigenvalues = eigenvalues
        self._sample_ids = tuple(sample_ids)
        self._metadata = metadata
        self.variance_explained = None if variance_explained is None else np.array(variance_explained, dtype=float)
        self.all_eigenvalues = None if all_eigenvalues is None else np.array(all_eigenvalues, dtype=float)
        self.method = method

    @property
    def coordinates(self):
        return self._coordinates

    @property
    def eigenvalues(self):
        return self._eigenvalues

    @property
    def sample_ids(self):
        return self._sample_ids

    @property
    def metadata(self):
        return self._metadata

    @property
    def dimensions(self):
        return self._coordinates.shape[1]

    def coordinate(self, sample: str):
        """
        coordinate vector of one sample
        """
        return self._coordinates[self._sample_ids.index(str(sample))]

    def __repr__(self):
        return f"EmbeddingResult(method={self.method!r}, n_samples={len(self._sample_ids)}, dimensions={self.dimensions})"


def double_center(d: np.ndarray):
    """
    Squares the distances and double centers them, B = -1/2 * J D^2 J with J = I - 1/n
    """
    d2 = np.asarray(d, dtype=float) ** 2
    row_means = d2.mean(axis=1, keepdims=True)
    col_means = d2.mean(axis=0, keepdims=True)
    grand_mean = d2.mean()
    return -0.5 * (d2 - row_means - col_means + grand_mean)


def embed(distance: DistanceMatrix, dimensions: int = 2):
    """
    Classical multidimensional scaling (Torgerson-Gower) of a sample distance matrix
    Params:
        distance                        DistanceMatrix from pairwise_distance()
        dimensions                      number of coordinates to keep per sample
    Returns:
        EmbeddingResult with one row of coordinates per sample
    """
    n = distance.n_samples
    if isinstance(dimensions, bool) or not isinstance(dimensions, numbers.Integral) or dimensions < 1:
        raise InvalidParameter(f"dimensions must be an integer >= 1, got {dimensions!r}")
    if dimensions > n:
        raise InvalidParameter(f"dimensions ({dimensions}) must be <= number of samples ({n})")

    b = double_center(distance.values)
    # symmetrize against round off before the symmetric solver
    b = (b + b.T) / 2

    # eigh returns ascending eigenvalues, flip to descending
    eigvals, eigvecs = np.linalg.eigh(b)
    order = np.argsort(eigvals)[::-1]
    eigvals = eigvals[order]
    eigvecs = eigvecs[:, order]

    # anything inside the tolerance is numerically zero, below it is reported
    scale = float(np.abs(eigvals).max()) if eigvals.size else 0.0
    tolerance = EIGEN_RTOL * scale if scale > 0 else EIGEN_RTOL
    for k in range(dimensions):
        if eigvals[k] < -tolerance:
            raise NegativeEigenvalue(k + 1, float(eigvals[k]), tolerance)

    lam = np.where(eigvals[:dimensions] > 0, eigvals[:dimensions], 0.0)
    coords = eigvecs[:, :dimensions] * np.sqrt(lam)

    # proportion of the positive spectrum each kept dimension carries
    positive = eigvals[eigvals > tolerance].sum()
    if positive > 0:
        variance = lam / positive
    else:
        variance = np.zeros(dimensions)

    return EmbeddingResult(
        coords,
        eigvals[:dimensions],
        distance.sample_ids,
        distance.metadata,
        variance_explained=variance,
        all_eigenvalues=eigvals,
        method="mds",
    )
