"""
Shared fixtures for the sample QC tests.
"""

import numpy as np
import pytest

from rnaseq_qc.count_matrix import CountMatrixStore, SampleMetadata


def make_store(counts, sample_ids=None, gene_ids=None, groups=None):
    """
    Builds a CountMatrixStore from a gene x sample array with generated ids.
    """
    counts = np.asarray(counts)
    n_genes, n_samples = counts.shape
    if sample_ids is None:
        sample_ids = [f"S{i + 1}" for i in range(n_samples)]
    if gene_ids is None:
        gene_ids = [f"G{i + 1}" for i in range(n_genes)]
    if groups is None:
        groups = ["ctrl" if i < n_samples // 2 else "treat" for i in range(n_samples)]
    metadata = SampleMetadata([{"sample": s, "group": g} for s, g in zip(sample_ids, groups)])
    return CountMatrixStore(counts, gene_ids, sample_ids, metadata)


def synthetic_counts(n_genes=300, n_samples=6, seed=7):
    """
    Negative binomial-ish counts with two groups and a block of differentially expressed genes.
    """
    rng = np.random.RandomState(seed)
    base = rng.lognormal(mean=4, sigma=1.5, size=n_genes)
    depth = rng.uniform(0.5, 2.0, size=n_samples)
    means = np.outer(base, depth)
    # first 30 genes up 8x in the second half of the samples
    means[:30, n_samples // 2:] *= 8
    return rng.poisson(means).astype(np.int64)


@pytest.fixture
def scenario_store():
    """4 samples, 2 genes, the second gene never seen."""
    return make_store([[100, 200, 50, 10], [0, 0, 0, 0]])


@pytest.fixture
def synthetic_store():
    return make_store(synthetic_counts())
