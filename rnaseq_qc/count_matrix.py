# region Imports

import numpy as np

from rnaseq_qc.errors import SchemaMismatch, InvalidCount

# endregion

class SampleMetadata:
    """
    Ordered per-sample records, the order of the records is the canonical column order for every matrix
    built from them. Only the id field is interpreted, every other field is an opaque label
    """

    def __init__(self, records, id_field: str = "sample"):
        """
        Params:
            records                         iterable of dicts, one per sample
            id_field                        name of the field holding the sample identifier
        """
        self.id_field = id_field
        # copy records so callers cannot change them under us
        self._records = tuple(dict(r) for r in records)

        ids = []
        for idx, record in enumerate(self._records):
            if id_field not in record:
                raise SchemaMismatch(f"Metadata record {idx} has no '{id_field}' field")
            ids.append(str(record[id_field]))

        # sample ids must be unique
        if len(set(ids)) != len(ids):
            dupes = sorted({s for s in ids if ids.count(s) > 1})
            raise SchemaMismatch(f"Duplicate sample identifiers in metadata: {', '.join(dupes)}")

        self._sample_ids = tuple(ids)

    @classmethod
    def from_ids(cls, sample_ids, id_field: str = "sample"):
        """
        builds metadata with no labels from a list of sample ids
        """
        return cls([{id_field: s} for s in sample_ids], id_field=id_field)

    @property
    def sample_ids(self):
        return self._sample_ids

    @property
    def records(self):
        return tuple(dict(r) for r in self._records)

    def labels(self, field: str):
        """
        Returns the value of field for every sample in order, None where a record does not have it
        """
        return tuple(r.get(field) for r in self._records)

    def rename(self, mapping: dict):
        """
        Returns new metadata with sample ids replaced according to mapping, ids not in mapping are kept
        """
        records = []
        for r in self._records:
            new = dict(r)
            new[self.id_field] = mapping.get(str(r[self.id_field]), r[self.id_field])
            records.append(new)
        return SampleMetadata(records, id_field=self.id_field)

    def reorder(self, sample_ids):
        """
        Returns new metadata with records in the order given by sample_ids
        """
        sample_ids = [str(s) for s in sample_ids]
        if sorted(sample_ids) != sorted(self._sample_ids):
            raise SchemaMismatch("Reordering requires exactly the same set of sample identifiers")
        index = {s: i for i, s in enumerate(self._sample_ids)}
        return SampleMetadata([self._records[index[s]] for s in sample_ids], id_field=self.id_field)

    def __len__(self):
        return len(self._records)

    def __repr__(self):
        return f"SampleMetadata(n_samples={len(self)}, id_field={self.id_field!r})"


class CountMatrixStore:
    """
    Immutable gene x sample raw count matrix bound to its sample metadata
    rows = genes, cols = samples (in metadata order)
    """

    def __init__(self, counts, gene_ids, sample_ids, metadata: SampleMetadata):
        """
        Params:
            counts                          2d array-like of non-negative integer counts, rows = genes cols = samples
            gene_ids                        unique gene identifiers, one per row
            sample_ids                      column identifiers from the count matrix header
            metadata                        SampleMetadata whose ids must match sample_ids by position
        """
        gene_ids = tuple(str(g) for g in gene_ids)
        sample_ids = tuple(str(s) for s in sample_ids)

        # check metadata against matrix columns before looking at values
        if len(metadata) != len(sample_ids):
            raise SchemaMismatch(
                f"Metadata describes {len(metadata)} samples but count matrix has {len(sample_ids)} columns"
            )
        mismatched = [
            f"{pos}: matrix={m!r} metadata={d!r}"
            for pos, (m, d) in enumerate(zip(sample_ids, metadata.sample_ids)) if m != d
        ]
        if mismatched:
            raise SchemaMismatch(
                "Metadata sample identifiers do not match count matrix columns by position:\n" +
                "\n".join(f" - {e}" for e in mismatched)
            )

        # gene ids must be unique keys
        if len(set(gene_ids)) != len(gene_ids):
            dupes = sorted({g for g in gene_ids if gene_ids.count(g) > 1})
            raise SchemaMismatch(f"Duplicate gene identifiers: {', '.join(dupes[:10])}")

        raw = np.asarray(counts)
        if raw.size == 0 and raw.ndim < 2 and not gene_ids:
            raw = raw.reshape(len(gene_ids), len(sample_ids))
        if raw.ndim != 2:
            raise SchemaMismatch(f"Count matrix must be 2 dimensional, got {raw.ndim} dimensions")
        if raw.shape != (len(gene_ids), len(sample_ids)):
            raise SchemaMismatch(
                f"Count matrix shape {raw.shape} does not match {len(gene_ids)} genes x {len(sample_ids)} samples"
            )

        self._counts = CountMatrixStore._validate_counts(raw)
        self._gene_ids = gene_ids
        self._sample_ids = sample_ids
        self._metadata = metadata
        self._gene_index = {g: i for i, g in enumerate(gene_ids)}
        self._sample_index = {s: i for i, s in enumerate(sample_ids)}

        # library sizes are derived once per store, every transformation builds a new store
        self._library_sizes = self._counts.sum(axis=0)
        self._library_sizes.setflags(write=False)

    @staticmethod
    def _validate_counts(raw: np.ndarray):
        """
        checks counts are finite non-negative integers and returns a read-only int64 copy
        """
        if raw.dtype == bool:
            raise InvalidCount("Count matrix is boolean, counts must be integers")
        if not np.issubdtype(raw.dtype, np.number):
            try:
                raw = raw.astype(float)
            except (TypeError, ValueError):
                raise InvalidCount("Count matrix contains non-numeric entries")

        if np.issubdtype(raw.dtype, np.integer):
            if (raw < 0).any():
                row, col = np.argwhere(raw < 0)[0]
                raise InvalidCount(f"Negative count {raw[row, col]} at row {row}, column {col}")
            # unsigned values above the int64 range would wrap around in the cast
            if raw.dtype.kind == "u" and raw.size and raw.max() > np.uint64(np.iinfo(np.int64).max):
                raise InvalidCount(f"Count {raw.max()} does not fit in a 64 bit integer")
            counts = raw.astype(np.int64)
        else:
            if not np.isfinite(raw).all():
                raise InvalidCount("Count matrix contains NaN or infinite entries")
            if (raw < 0).any():
                row, col = np.argwhere(raw < 0)[0]
                raise InvalidCount(f"Negative count {raw[row, col]} at row {row}, column {col}")
            if (raw != np.floor(raw)).any():
                row, col = np.argwhere(raw != np.floor(raw))[0]
                raise InvalidCount(f"Non-integral count {raw[row, col]} at row {row}, column {col}")
            if raw.size and raw.max() >= 2.0 ** 63:
                raise InvalidCount(f"Count {raw.max()} does not fit in a 64 bit integer")
            counts = raw.astype(np.int64)

        # np.array copies so the caller's array is never shared
        counts = np.array(counts, dtype=np.int64)
        counts.setflags(write=False)
        return counts

    @classmethod
    def from_mapping(cls, mapping: dict, sample_ids, metadata: SampleMetadata):
        """
        Builds a store from a {gene: [count per sample]} mapping, rows keep the mapping's order
        """
        sample_ids = list(sample_ids)
        gene_ids = list(mapping.keys())
        for gene, row in mapping.items():
            if len(row) != len(sample_ids):
                raise SchemaMismatch(f"Gene {gene} has {len(row)} counts but there are {len(sample_ids)} samples")
        counts = [list(mapping[g]) for g in gene_ids]
        if not counts:
            counts = np.zeros((0, len(sample_ids)), dtype=np.int64)
        return cls(counts, gene_ids, sample_ids, metadata)

    # region accessors

    @property
    def counts(self):
        return self._counts

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
        return self._library_sizes

    @property
    def n_genes(self):
        return len(self._gene_ids)

    @property
    def n_samples(self):
        return len(self._sample_ids)

    @property
    def shape(self):
        return self._counts.shape

    def value(self, gene: str, sample: str):
        """
        raw count lookup by gene and sample identifier
        """
        try:
            row = self._gene_index[str(gene)]
        except KeyError:
            raise KeyError(f"Unknown gene {gene}")
        try:
            col = self._sample_index[str(sample)]
        except KeyError:
            raise KeyError(f"Unknown sample {sample}")
        return int(self._counts[row, col])

    # endregion

    # region transformations

    def rename_samples(self, mapping: dict):
        """
        Returns a new store with matrix columns and metadata ids renamed together
        """
        sample_ids = [mapping.get(s, s) for s in self._sample_ids]
        return CountMatrixStore(self._counts, self._gene_ids, sample_ids, self._metadata.rename(mapping))

    def reorder_samples(self, sample_ids):
        """
        Returns a new store with columns (and metadata) in the given sample order
        """
        sample_ids = [str(s) for s in sample_ids]
        if sorted(sample_ids) != sorted(self._sample_ids):
            raise SchemaMismatch("Reordering requires exactly the same set of sample identifiers")
        cols = [self._sample_index[s] for s in sample_ids]
        return CountMatrixStore(
            self._counts[:, cols], self._gene_ids, sample_ids, self._metadata.reorder(sample_ids)
        )

    def subset_genes(self, genes):
        """
        Returns a new store holding only the selected genes
        Params:
            genes                           FilterMask, boolean sequence aligned to rows, or an iterable of gene ids
        """
        genes = getattr(genes, "mask", genes)
        genes = list(genes) if not isinstance(genes, np.ndarray) else genes
        keep = np.asarray(genes)
        if keep.dtype == bool:
            if keep.shape != (self.n_genes,):
                raise SchemaMismatch(f"Gene mask has length {keep.shape[0]} but store has {self.n_genes} genes")
            rows = np.flatnonzero(keep)
        else:
            missing = [g for g in genes if str(g) not in self._gene_index]
            if missing:
                raise KeyError(f"Unknown genes: {', '.join(map(str, missing[:10]))}")
            rows = np.array([self._gene_index[str(g)] for g in genes], dtype=int)
        gene_ids = [self._gene_ids[r] for r in rows]
        return CountMatrixStore(self._counts[rows, :], gene_ids, self._sample_ids, self._metadata)

    # endregion

    def __repr__(self):
        return f"CountMatrixStore(n_genes={self.n_genes}, n_samples={self.n_samples})"
