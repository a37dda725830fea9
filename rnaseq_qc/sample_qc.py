# region Imports

import json
import warnings
import numpy as np
from pathlib import Path

from rnaseq_qc.config_loader import ConfigLoader
from rnaseq_qc.count_matrix import CountMatrixStore
from rnaseq_qc.counts import read_count_matrix, summarize_counts, read_sample_metadata, collect_alignment_rates, AUX_COLUMNS
from rnaseq_qc.normalize import normalize
from rnaseq_qc.expression_filter import filter_genes
from rnaseq_qc.distance import pairwise_distance
from rnaseq_qc.mds import embed
from rnaseq_qc.pca import pca_embed
from rnaseq_qc.errors import InsufficientGenes
from rnaseq_qc.utils import log_step

# endregion

class QCResult:
    """
    Every artifact produced by one SampleQC run, earlier stages stay available for reuse
    status is "ok" or "empty" (no gene passed the expression filter, distance and embeddings were skipped)
    """

    def __init__(self, store, normalized, mask, distance=None, embedding=None, pca=None, alignment=None):
        self.store = store
        self.normalized = normalized
        self.mask = mask
        self.distance = distance
        self.embedding = embedding
        self.pca = pca
        self.alignment = alignment or {}

    @property
    def status(self):
        return "empty" if self.mask.empty else "ok"

    def summary(self):
        """
        json ready dict describing the run
        """
        summary = {
            "status": self.status,
            "samples": list(self.store.sample_ids),
            "library_sizes": [int(x) for x in self.store.library_sizes],
            "genes_total": self.store.n_genes,
            "genes_retained": self.mask.n_retained,
            "filter": {"threshold": self.mask.threshold, "min_samples": self.mask.min_samples},
            "log": self.normalized.is_log,
            "pseudocount": self.normalized.pseudocount,
            "alignment": self.alignment,
        }
        if self.distance is not None:
            summary["distance"] = {
                "top_n": self.distance.top_n,
                "effective_top_n": self.distance.effective_top_n,
            }
        if self.embedding is not None:
            summary["mds"] = {
                "eigenvalues": self.embedding.eigenvalues.tolist(),
                "variance_explained": self.embedding.variance_explained.tolist(),
                "coordinates": {s: self.embedding.coordinate(s).tolist() for s in self.embedding.sample_ids},
            }
        if self.pca is not None:
            summary["pca"] = {
                "variance_explained": self.pca.variance_explained.tolist(),
                "coordinates": {s: self.pca.coordinate(s).tolist() for s in self.pca.sample_ids},
            }
        return summary


class SampleQC:
    """
    Runs the count matrix through normalization, expression filtering, leading fold-change distances and MDS
    using the parameters from config.yaml
    """

    def __init__(self, root: Path, cfg: ConfigLoader):

        self.root = Path(root)
        self.cfg = cfg

        name = cfg.get("project","name")
        self.data_dir = self.root / name

    def load(self, counts_file: Path = None, metadata_file: Path = None):
        """
        Builds the CountMatrixStore from the configured count table (or the per sample featureCounts files in the
        run directory when no table is configured) and sample metadata
        Params:
            counts_file                     optional count table overriding inputs.counts_file
            metadata_file                   optional metadata table overriding inputs.metadata_file
        Returns:
            CountMatrixStore
        """
        cfg = self.cfg
        id_field = cfg.get("inputs","sample_id_field",default="sample")
        aux = cfg.get("inputs","aux_columns",default=list(AUX_COLUMNS))

        # get raw counts
        if counts_file is None and cfg.get("inputs","counts_file") is not None:
            counts_file = cfg.get_path("inputs","counts_file",base_path=self.root,must_exist=True)
        if counts_file is not None:
            counts, genes, samples = read_count_matrix(counts_file, aux_columns=aux)
        else:
            counts, genes, samples = summarize_counts(self.data_dir)

        # get metadata
        if metadata_file is None:
            metadata_file = cfg.get_path("inputs","metadata_file",base_path=self.root,must_exist=True)
        metadata = read_sample_metadata(metadata_file, id_field=id_field)

        store = CountMatrixStore(counts, genes, samples, metadata)

        log_step("load", self.data_dir, genes=store.n_genes, samples=list(store.sample_ids),
                 library_sizes=[int(x) for x in store.library_sizes])
        print(f"Loaded {store.n_genes} genes x {store.n_samples} samples\n")

        return store

    def run(self, store: CountMatrixStore, dimensions: int = None, threads: int = None):
        """
        Runs every QC stage on store, skips distance and embeddings if the filter removes every gene
        Params:
            store                           CountMatrixStore to process
            dimensions                      optional override of mds.dimensions
            threads                         optional override of tools.qc.threads
        Returns:
            QCResult
        """
        cfg = self.cfg
        cfg.check_params()
        log_dir = self.data_dir

        # --------------------------
        # normalize
        # --------------------------

        log = cfg.get("normalize","log",default=True)
        pseudocount = cfg.get("normalize","pseudocount",default=1.0)
        normalized = normalize(store, log=log, pseudocount=pseudocount)
        log_step("normalize", log_dir, log=log, pseudocount=pseudocount if log else None)

        # --------------------------
        # filter
        # --------------------------

        threshold = cfg.get("filter","threshold")
        min_samples = cfg.get("filter","min_samples")
        mask = filter_genes(normalized, threshold, min_samples)
        log_step("filter", log_dir, threshold=threshold, min_samples=min_samples,
                 retained=mask.n_retained, removed=mask.n_removed)
        print(f"Expression filter kept {mask.n_retained} of {len(mask)} genes\n")

        alignment = collect_alignment_rates(self.data_dir) if self.data_dir.exists() else {}

        # nothing left to compare samples on, report it and stop here
        if mask.empty:
            print(f"Warning, no genes passed the expression filter (threshold={threshold}, min_samples={min_samples}), skipping distance and MDS\n")
            log_step("skip", log_dir, reason="empty filter result")
            return QCResult(store, normalized, mask, alignment=alignment)

        # --------------------------
        # distance
        # --------------------------

        top_n = cfg.get("distance","top_n",default=500)
        if threads is None:
            threads = cfg.get_threads("qc")

        # the shortfall is reported through distance.insufficient instead of the warning
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", InsufficientGenes)
            distance = pairwise_distance(normalized, mask, top_n=top_n, threads=threads)
        if distance.insufficient:
            print(f"Warning, only {distance.effective_top_n} genes retained, used all of them instead of top_n={top_n}\n")
        log_step("distance", log_dir, top_n=top_n, effective_top_n=distance.effective_top_n, threads=threads)

        # --------------------------
        # MDS
        # --------------------------

        if dimensions is None:
            dimensions = cfg.get("mds","dimensions",default=2)
        embedding = embed(distance, dimensions=dimensions)
        log_step("mds", log_dir, dimensions=dimensions, eigenvalues=embedding.eigenvalues.tolist())
        print(f"MDS complete\n")

        # --------------------------
        # PCA
        # --------------------------

        pca = None
        if cfg.get("pca","enabled",default=False):
            requested = cfg.get("pca","components",default=2)
            # cannot have more PCs than samples or retained genes
            components = min(requested, store.n_samples, mask.n_retained)
            if components < requested:
                print(f"Warning, only {components} PCs possible with {mask.n_retained} retained genes and {store.n_samples} samples, {requested} requested\n")
            pca = pca_embed(normalized, mask, components=components, scale=cfg.get("pca","scale",default=True))
            log_step("pca", log_dir, components=components, requested=requested,
                     variance_explained=pca.variance_explained.tolist())
            print(f"PCA complete\n")

        return QCResult(store, normalized, mask, distance, embedding, pca, alignment)

    def save(self, result: QCResult, out_dir: Path = None):
        """
        saves the matrices as npy files and the run summary as json to the run directory
        Params:
            result                          QCResult from run()
            out_dir                         optional directory to save to instead of the run directory
        Returns:
            Path to the directory the files were written to
        """
        out_dir = Path(out_dir) if out_dir else self.data_dir / "qc"
        out_dir.mkdir(parents=True,exist_ok=True)

        # save numpy arrays
        np.save(out_dir / "normalized_matrix.npy", result.normalized.values)
        np.save(out_dir / "filter_mask.npy", result.mask.mask)
        if result.distance is not None:
            np.save(out_dir / "distance_matrix.npy", result.distance.values)
        if result.embedding is not None:
            np.save(out_dir / "mds_coordinates.npy", result.embedding.coordinates)
        if result.pca is not None:
            np.save(out_dir / "pca_scores.npy", result.pca.coordinates)

        # save gene order so the npy rows can be matched back up
        with open(out_dir / "genes.json", "w") as f:
            json.dump({"genes": list(result.normalized.gene_ids),
                       "retained": list(result.mask.retained_ids)}, f, indent=4)

        # save summary json
        with open(out_dir / "qc_summary.json", "w") as f:
            json.dump(result.summary(), f, indent=4)

        return out_dir
