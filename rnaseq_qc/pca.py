# region Imports

import numbers
import numpy as np
from sklearn.decomposition import PCA

from rnaseq_qc.normalize import NormalizedMatrix, zscore
from rnaseq_qc.mds import EmbeddingResult
from rnaseq_qc.errors import InvalidParameter, EmptyResult

# endregion

def pca_embed(normalized: NormalizedMatrix, mask, components: int = 2, scale: bool = True):
    """
    Performs PCA on the retained genes with samples as observations, a second QC view of the samples next to MDS
    Params:
        normalized                      NormalizedMatrix, log scale recommended
        mask                            FilterMask (or boolean sequence) aligned to normalized.gene_ids
        components                      number of principal components to keep
        scale                           if True z-score every gene before PCA
    Returns:
        EmbeddingResult with method "pca", variance_explained holds the explained variance ratio of each PC
    """
    filtered = normalized.subset(mask)

    if filtered.n_genes == 0:
        raise EmptyResult("No genes retained by the mask, cannot run PCA")

    # throw error if too many PCs are asked for
    if isinstance(components, bool) or not isinstance(components, numbers.Integral) or components < 1:
        raise InvalidParameter(f"components must be an integer >= 1, got {components!r}")
    if components > min(filtered.n_samples, filtered.n_genes):
        raise InvalidParameter(
            f"Too many PCs requested, components must be <= min(number_samples, number_genes) "
            f"= {min(filtered.n_samples, filtered.n_genes)}"
        )

    # rows = samples cols = genes
    if scale:
        matrix = zscore(filtered)
    else:
        matrix = np.asarray(filtered.values).T

    # calculate principal components
    pca = PCA(n_components=components)
    pc_scores = pca.fit_transform(matrix)

    return EmbeddingResult(
        pc_scores,
        pca.explained_variance_,
        filtered.sample_ids,
        filtered.metadata,
        variance_explained=pca.explained_variance_ratio_,
        method="pca",
    )
