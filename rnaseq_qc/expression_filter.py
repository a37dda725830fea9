# region Imports

import numbers
import numpy as np

from rnaseq_qc.normalize import NormalizedMatrix, CPM_SCALE
from rnaseq_qc.errors import InvalidParameter, EmptyResult

# endregion

class FilterMask:
    """
    Boolean vector aligned to the gene rows of the matrix it was computed from, True = gene retained.
    Read only, always produced by filter_genes()
    """

    def __init__(self, mask, gene_ids, threshold: float, min_samples: int):
        mask = np.array(mask, dtype=bool)
        mask.setflags(write=False)
        self._mask = mask
        self._gene_ids = tuple(gene_ids)
        self.threshold = threshold
        self.min_samples = min_samples

    @property
    def mask(self):
        return self._mask

    @property
    def gene_ids(self):
        return self._gene_ids

    @property
    def retained_ids(self):
        return tuple(g for g, keep in zip(self._gene_ids, self._mask) if keep)

    @property
    def n_retained(self):
        return int(self._mask.sum())

    @property
    def n_removed(self):
        return len(self._mask) - self.n_retained

    @property
    def empty(self):
        """
        True when no gene passed the filter
        """
        return self.n_retained == 0

    def require_nonempty(self):
        """
        raises EmptyResult if no gene passed, otherwise returns the mask
        """
        if self.empty:
            raise EmptyResult(
                f"No genes passed the expression filter (threshold={self.threshold}, "
                f"min_samples={self.min_samples}, {len(self._mask)} genes tested)"
            )
        return self

    def __len__(self):
        return len(self._mask)

    def __repr__(self):
        return f"FilterMask(retained={self.n_retained}, removed={self.n_removed})"


def filter_genes(normalized: NormalizedMatrix, threshold: float, min_samples: int, strict: bool = False):
    """
    Finds genes expressed above threshold in at least min_samples samples. Neither parameter has a default,
    a threshold equivalent to roughly 10-15 raw counts at typical depth (see cpm_threshold) and min_samples equal
    to the smallest group size are good starting points
    Params:
        normalized                      NormalizedMatrix, threshold is compared on the same scale (log or not)
        threshold                       a value must be strictly greater than this to count as expressed
        min_samples                     number of samples a gene must be expressed in to be kept
        strict                          if True raise EmptyResult when no gene passes instead of returning an empty mask
    Returns:
        FilterMask aligned to normalized.gene_ids
    """
    n_samples = normalized.n_samples

    # validate parameters before touching the data
    if isinstance(min_samples, bool) or not isinstance(min_samples, numbers.Integral):
        raise InvalidParameter(f"min_samples must be an integer, got {min_samples!r}")
    if min_samples < 0:
        raise InvalidParameter(f"min_samples must be >= 0, got {min_samples}")
    if min_samples > n_samples:
        raise InvalidParameter(f"min_samples ({min_samples}) is greater than the number of samples ({n_samples})")
    try:
        threshold = float(threshold)
    except (TypeError, ValueError):
        raise InvalidParameter(f"threshold must be a number, got {threshold!r}")
    if not np.isfinite(threshold) or threshold < 0:
        raise InvalidParameter(f"threshold must be a finite value >= 0, got {threshold}")

    # count samples above threshold for every gene
    expressed = (normalized.values > threshold).sum(axis=1)
    keep = expressed >= int(min_samples)

    mask = FilterMask(keep, normalized.gene_ids, threshold, int(min_samples))

    if strict:
        mask.require_nonempty()

    return mask


def cpm_threshold(library_sizes, min_count: float):
    """
    Converts a raw count floor into the CPM value it corresponds to at the median library size, the heuristic
    edgeR's filterByExpr uses. Only a helper for choosing a threshold, filter_genes never calls it
    Params:
        library_sizes                   per sample library sizes (CountMatrixStore.library_sizes)
        min_count                       raw count a gene should reach, usually 10-15
    Returns:
        CPM threshold as a float
    """
    sizes = np.asarray(library_sizes, dtype=float)
    if sizes.size == 0:
        raise InvalidParameter("library_sizes is empty")
    if min_count < 0:
        raise InvalidParameter(f"min_count must be >= 0, got {min_count}")

    median = float(np.median(sizes))
    if median <= 0:
        raise InvalidParameter("median library size is zero, cannot convert counts to CPM")

    return min_count / median * CPM_SCALE
