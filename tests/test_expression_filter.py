"""
Tests for the expression filter and FilterMask.
"""

import numpy as np
import pytest

from rnaseq_qc.normalize import normalize
from rnaseq_qc.expression_filter import filter_genes, cpm_threshold, FilterMask
from rnaseq_qc.errors import InvalidParameter, EmptyResult

from conftest import make_store


def test_scenario_all_zero_gene_removed(scenario_store):
    normalized = normalize(scenario_store)
    mask = filter_genes(normalized, threshold=0.5, min_samples=2)
    assert mask.mask.tolist() == [True, False]
    assert mask.retained_ids == ("G1",)
    assert not mask.empty
    assert mask.require_nonempty() is mask


@pytest.mark.parametrize("threshold", [1e-9, 1.0, 100.0])
def test_all_zero_gene_removed_at_any_positive_threshold(scenario_store, threshold):
    normalized = normalize(scenario_store)
    mask = filter_genes(normalized, threshold=threshold, min_samples=1)
    assert not mask.mask[1]


def test_strictly_greater_than_threshold():
    store = make_store([[1, 1], [3, 3]])
    normalized = normalize(store)
    # first gene is exactly 250000 CPM in both samples
    mask = filter_genes(normalized, threshold=250000.0, min_samples=1)
    assert mask.mask.tolist() == [False, True]


def test_min_samples_counts_samples():
    store = make_store([[10, 10, 0, 0], [10, 0, 0, 0], [10, 10, 10, 10]])
    normalized = normalize(store)
    mask = filter_genes(normalized, threshold=1.0, min_samples=2)
    assert mask.mask.tolist() == [True, False, True]
    assert mask.n_retained == 2
    assert mask.n_removed == 1


def test_min_samples_greater_than_sample_count(scenario_store):
    normalized = normalize(scenario_store)
    with pytest.raises(InvalidParameter, match="greater than the number of samples"):
        filter_genes(normalized, threshold=1.0, min_samples=5)


def test_invalid_parameters_checked_before_data():
    class Exploding:
        n_samples = 3

        @property
        def values(self):
            raise AssertionError("data touched")

    with pytest.raises(InvalidParameter):
        filter_genes(Exploding(), threshold=1.0, min_samples=4)
    with pytest.raises(InvalidParameter):
        filter_genes(Exploding(), threshold=-1.0, min_samples=1)
    with pytest.raises(InvalidParameter):
        filter_genes(Exploding(), threshold=1.0, min_samples=1.5)


def test_empty_result_is_reported_not_raised(scenario_store):
    normalized = normalize(scenario_store)
    mask = filter_genes(normalized, threshold=2e6, min_samples=1)
    assert mask.empty
    with pytest.raises(EmptyResult):
        mask.require_nonempty()


def test_empty_result_strict(scenario_store):
    normalized = normalize(scenario_store)
    with pytest.raises(EmptyResult):
        filter_genes(normalized, threshold=2e6, min_samples=1, strict=True)


def test_filter_is_idempotent(synthetic_store):
    normalized = normalize(synthetic_store, log=True)
    mask = filter_genes(normalized, threshold=8.0, min_samples=3)
    assert 0 < mask.n_retained < normalized.n_genes

    again = filter_genes(normalized.subset(mask), threshold=8.0, min_samples=3)
    assert again.mask.all()
    assert again.retained_ids == mask.retained_ids


def test_mask_is_read_only(scenario_store):
    mask = filter_genes(normalize(scenario_store), threshold=0.5, min_samples=1)
    assert isinstance(mask, FilterMask)
    with pytest.raises(ValueError):
        mask.mask[1] = True


def test_cpm_threshold_uses_median_library_size():
    # 10 reads at a median depth of 20 million is 0.5 CPM
    assert cpm_threshold([10e6, 20e6, 30e6], 10) == pytest.approx(0.5)


def test_cpm_threshold_rejects_empty():
    with pytest.raises(InvalidParameter):
        cpm_threshold([], 10)
