# region Imports

import numpy as np
from sklearn.preprocessing import StandardScaler

from rnaseq_qc.count_matrix import CountMatrixStore
from rnaseq_qc.errors import DegenerateLibrary, InvalidParameter, SchemaMismatch

# endregion

# every sample is scaled to this many reads
CPM_SCALE = 1e6


class NormalizedMatrix:
    """
    Float gene x sample matrix produced by normalize(), read only
    rows = genes, cols = samples
    """

    def __init__(self, values: np.ndarray, gene_ids, sample_ids, metadata, library_sizes,
                 is_log: bool = False, pseudocount: float = None):
        values = np.array(values, dtype=float)
        if values.shape != (len(gene_ids), len(sample_ids)):
            raise SchemaMismatch(
                f"Values shape {values.shape} does not match {len(gene_ids)} genes x {len(sample_ids)} samples"
            )
        values.setflags(write=False)

        self._values = values
        self._gene_ids = tuple(gene_ids)
        self._sample_ids = tuple(sample_ids)
        self._metadata = metadata
        self._library_sizes = np.array(library_sizes, dtype=np.int64)
        self._library_sizes.setflags(write=False)
        self._is_log = bool(is_log)
        self._pseudocount = pseudocount

    @property
    def values(self):
        return self._values

    @property
    def gene_ids(self):
        return self._gene_ids

    @property
    def sample_ids(self):
        return self._sample_ids

    @property
    def metadata(self):
        return self._metadata

    @property
    def library_sizes(self):
        """
        library sizes of the raw counts this matrix was normalized from
        """
        return self._library_sizes

    @property
    def is_log(self):
        return self._is_log

    @property
    def pseudocount(self):
        return self._pseudocount

    @property
    def n_genes(self):
        return len(self._gene_ids)

    @property
    def n_samples(self):
        return len(self._sample_ids)

    def subset(self, mask):
        """
        Returns a new matrix holding only the genes retained by mask
        Params:
            mask                            FilterMask or boolean sequence aligned to the rows of this matrix
        """
        keep = np.asarray(getattr(mask, "mask", mask), dtype=bool)
        if keep.shape != (self.n_genes,):
            raise SchemaMismatch(f"Mask has length {keep.shape[0]} but matrix has {self.n_genes} genes")
        mask_genes = getattr(mask, "gene_ids", None)
        if mask_genes is not None and tuple(mask_genes) != self._gene_ids:
            raise SchemaMismatch("Mask was computed for a different set of genes")

        rows = np.flatnonzero(keep)
        return NormalizedMatrix(
            self._values[rows, :],
            [self._gene_ids[r] for r in rows],
            self._sample_ids,
            self._metadata,
            self._library_sizes,
            is_log=self._is_log,
            pseudocount=self._pseudocount,
        )

    def __repr__(self):
        return f"NormalizedMatrix(n_genes={self.n_genes}, n_samples={self.n_samples}, is_log={self._is_log})"


def normalize(matrix: CountMatrixStore, log: bool = False, pseudocount: float = 1.0):
    """
    Normalizes counts to counts per million so each sample sums to 1 million, this accounts for differences in
    library size (number of counts) between samples. Optionally takes log2(cpm + pseudocount)
    Params:
        matrix                          CountMatrixStore holding raw counts
        log                             if True return log2(cpm + pseudocount)
        pseudocount                     value added before taking the log so log2(0) is never taken, must be > 0
    Returns:
        NormalizedMatrix with the same genes and samples as matrix
    """
    # check parameters before touching the data
    if log:
        try:
            pseudocount = float(pseudocount)
        except (TypeError, ValueError):
            raise InvalidParameter(f"pseudocount must be a number, got {pseudocount!r}")
        if not np.isfinite(pseudocount) or pseudocount <= 0:
            raise InvalidParameter(f"pseudocount must be > 0, got {pseudocount}")

    # cpm is undefined for empty libraries
    library_sizes = matrix.library_sizes
    empty = [s for s, size in zip(matrix.sample_ids, library_sizes) if size == 0]
    if empty:
        raise DegenerateLibrary(empty)

    # per sample scale factor applied to every count in that column
    scale = CPM_SCALE / library_sizes.astype(float)
    cpm = matrix.counts.astype(float) * scale[np.newaxis, :]

    if log:
        values = np.log2(cpm + pseudocount)
    else:
        values = cpm

    return NormalizedMatrix(
        values,
        matrix.gene_ids,
        matrix.sample_ids,
        matrix.metadata,
        library_sizes,
        is_log=log,
        pseudocount=pseudocount if log else None,
    )


def zscore(matrix: NormalizedMatrix):
    """
    Calculates a zscore for every gene across samples, the number of standard deviations each value is from that
    gene's mean. Stops highly expressed genes from dominating PCA
    Params:
        matrix                          NormalizedMatrix (usually log scaled) to standardize
    Returns:
        z_matrix                        2d numpy array rows = samples cols = genes
    """
    # StandardScaler standardizes columns, so put genes in columns
    scaler = StandardScaler()
    z_matrix = scaler.fit_transform(matrix.values.T)

    return z_matrix
