# region Imports

import numbers
import warnings
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from rnaseq_qc.normalize import NormalizedMatrix
from rnaseq_qc.errors import InvalidParameter, EmptyResult, InsufficientGenes, SchemaMismatch

# endregion

# pseudocount used when the matrix handed in is not log scaled yet
LOG_PSEUDOCOUNT = 1.0


class DistanceMatrix:
    """
    Symmetric sample x sample leading fold-change distances with a zero diagonal, read only
    """

    def __init__(self, values: np.ndarray, sample_ids, metadata, top_n: int, effective_top_n: int):
        values = np.array(values, dtype=float)
        values.setflags(write=False)
        self._values = values
        self._sample_ids = tuple(sample_ids)
        self._metadata = metadata
        self.top_n = top_n
        self.effective_top_n = effective_top_n

    @property
    def values(self):
        return self._values

    @property
    def sample_ids(self):
        return self._sample_ids

    @property
    def metadata(self):
        return self._metadata

    @property
    def n_samples(self):
        return len(self._sample_ids)

    @property
    def insufficient(self):
        """
        True when fewer genes than top_n were available and all of them were used
        """
        return self.effective_top_n < self.top_n

    def distance(self, sample_a: str, sample_b: str):
        """
        distance lookup by sample id
        """
        i = self._sample_ids.index(str(sample_a))
        j = self._sample_ids.index(str(sample_b))
        return float(self._values[i, j])

    def __repr__(self):
        return f"DistanceMatrix(n_samples={self.n_samples}, top_n={self.top_n}, effective_top_n={self.effective_top_n})"


def _log_values(normalized: NormalizedMatrix):
    """
    returns the matrix values in log2 space
    """
    if normalized.is_log:
        return normalized.values
    return np.log2(normalized.values + LOG_PSEUDOCOUNT)


def leading_fold_change(x: np.ndarray, y: np.ndarray, top_n: int):
    """
    Root mean square of the top_n largest absolute log fold changes between two samples
    Params:
        x, y                            log scale expression vectors for the two samples
        top_n                           number of genes to use, must be <= len(x)
    Returns:
        float distance
    """
    # squaring keeps the same ordering as absolute values
    squared = (x - y) ** 2
    n = squared.shape[0]
    if top_n < n:
        # partition puts the top_n largest values at the end without a full sort
        top = np.partition(squared, n - top_n)[n - top_n:]
    else:
        top = squared
    return float(np.sqrt(top.mean()))


def _distance_rows(values: np.ndarray, rows, top_n: int, out: np.ndarray):
    """
    fills out[i, j] and out[j, i] for every j > i for the given rows i, each worker gets disjoint rows
    """
    n = values.shape[1]
    for i in rows:
        for j in range(i + 1, n):
            d = leading_fold_change(values[:, i], values[:, j], top_n)
            out[i, j] = d
            out[j, i] = d


def pairwise_distance(normalized: NormalizedMatrix, mask, top_n: int = 500, threads: int = 1):
    """
    Computes the leading fold-change distance between every pair of samples. For each pair the top_n genes with
    the largest absolute log fold change between those two samples are chosen, so every pair can use a different
    set of genes
    Params:
        normalized                      NormalizedMatrix, log2 scale preferred, otherwise log2(x + 1) is taken
        mask                            FilterMask (or boolean sequence) aligned to normalized.gene_ids
        top_n                           number of leading genes per pair
        threads                         number of worker threads used for the sample pairs
    Returns:
        DistanceMatrix, effective_top_n tells how many genes were actually used
    """
    # check parameters
    if isinstance(top_n, bool) or not isinstance(top_n, numbers.Integral) or top_n < 1:
        raise InvalidParameter(f"top_n must be an integer >= 1, got {top_n!r}")
    if isinstance(threads, bool) or not isinstance(threads, numbers.Integral) or threads < 1:
        raise InvalidParameter(f"threads must be an integer >= 1, got {threads!r}")

    try:
        filtered = normalized.subset(mask)
    except SchemaMismatch as e:
        raise InvalidParameter(f"Mask is not aligned to the normalized matrix: {e}")

    n_genes = filtered.n_genes
    if n_genes == 0:
        raise EmptyResult("No genes retained by the mask, cannot compute distances")

    # use every retained gene when there are fewer than top_n
    effective = int(top_n)
    if n_genes < top_n:
        effective = n_genes
        warnings.warn(
            f"Only {n_genes} genes retained but top_n={top_n} requested, using all {n_genes} genes",
            InsufficientGenes,
            stacklevel=2,
        )

    values = _log_values(filtered)
    n_samples = filtered.n_samples
    out = np.zeros((n_samples, n_samples), dtype=float)

    if threads == 1 or n_samples < 3:
        _distance_rows(values, range(n_samples), effective, out)
    else:
        # interleave rows so early rows (more pairs) are spread across workers
        chunks = [range(w, n_samples, threads) for w in range(min(threads, n_samples))]
        with ThreadPoolExecutor(max_workers=len(chunks)) as ex:
            futures = [ex.submit(_distance_rows, values, rows, effective, out) for rows in chunks]
            for future in futures:
                future.result()

    return DistanceMatrix(out, filtered.sample_ids, filtered.metadata, int(top_n), effective)
