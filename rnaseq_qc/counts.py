# region Imports

import csv
import numpy as np
from pathlib import Path

from rnaseq_qc.count_matrix import SampleMetadata
from rnaseq_qc.errors import SchemaMismatch, InvalidCount
from rnaseq_qc.utils import sample_name

# endregion

# featureCounts annotation columns that sit between the gene id and the sample columns
AUX_COLUMNS = ("Chr", "Start", "End", "Strand", "Length")


def _delimiter(file: Path):
    """
    comma for .csv files, tab for everything else
    """
    return "," if Path(file).suffix.lower() == ".csv" else "\t"


def parse_count(file: Path):
    """
    Parses a single featureCounts count file and generates a summary dict
    Params:
        file                        Path to the file you want to extract to dict
    Returns:
        a dict that contains [geneID]:count key:value pairs for this file
    """

    # init output dict
    counts = {}
    # header flag
    header = False

    with open(file, "r") as f:
        for line in f:

            # skip over starting comments/header
            if line.startswith("#"):
                continue
            if not header:
                header = True
                continue
            if not line.strip():
                continue

            # split the line into parts at each tab
            parts = line.rstrip("\n").split("\t")
            try:
                counts[parts[0]] = int(parts[-1])
            except ValueError:
                raise InvalidCount(f"Could not read count {parts[-1]!r} for gene {parts[0]} in {file}")

    return counts


def read_count_matrix(file: Path, aux_columns=AUX_COLUMNS, strip_paths: bool = True):
    """
    Reads a combined count table, gene id column first, auxiliary annotation columns are dropped and every
    remaining column is one sample
    Params:
        file                        Path to the count table (tab separated, or comma separated if .csv)
        aux_columns                 header names of columns to drop before processing
        strip_paths                 if True turn bam paths in the header into sample names (ctrl1_Aligned...bam -> ctrl1)
    Returns:
        counts                      2d numpy float array rows = genes cols = samples (integrality checked by CountMatrixStore)
        gene_ids                    list of gene ids
        sample_ids                  list of sample ids from the header
    """
    file = Path(file)
    delimiter = _delimiter(file)
    aux = set(aux_columns or ())

    header = None
    gene_ids = []
    rows = []

    with open(file, "r", newline="") as f:
        # featureCounts writes quoted commands into its comment lines, only csv files use quoting
        quoting = csv.QUOTE_MINIMAL if delimiter == "," else csv.QUOTE_NONE
        reader = csv.reader(f, delimiter=delimiter, quoting=quoting)
        for parts in reader:

            # skip comments and blank lines
            if not parts or parts[0].startswith("#"):
                continue

            # first real line is the header
            if header is None:
                header = parts
                keep = [i for i, name in enumerate(header) if i > 0 and name not in aux]
                continue

            if len(parts) != len(header):
                raise SchemaMismatch(
                    f"Line for gene {parts[0]} has {len(parts)} fields but header has {len(header)} in {file}"
                )

            gene_ids.append(parts[0])
            try:
                rows.append([float(parts[i]) for i in keep])
            except ValueError:
                raise InvalidCount(f"Non-numeric count for gene {parts[0]} in {file}")

    if header is None:
        raise SchemaMismatch(f"No header found in count table {file}")

    sample_ids = [header[i] for i in keep]
    if strip_paths:
        sample_ids = [Path(s).name.split("_Aligned")[0] for s in sample_ids]

    counts = np.array(rows, dtype=float).reshape(len(gene_ids), len(sample_ids))

    return counts, gene_ids, sample_ids


def summarize_counts(data_dir: Path):
    """
    Combines every per sample featureCounts file (*_counts.txt) under data_dir into one matrix
    Params:
        data_dir                    run directory holding one subdirectory per sample
    Returns:
        counts                      2d numpy int array rows = genes cols = samples
        gene_ids                    list of gene ids in the order of the first file
        sample_ids                  list of sample names (file name before the first '_')
    """
    # generate a sorted list of all counts.txt files from data_dir
    count_files = sorted(Path(data_dir).rglob("*_counts.txt"))
    if not count_files:
        raise FileNotFoundError(f"No *_counts.txt files found in {data_dir}")

    # gene order comes from the first file
    first_counts = parse_count(count_files[0])
    gene_ids = list(first_counts.keys())
    gene_map = {g: i for i, g in enumerate(gene_ids)}

    # initialize counts matrix (rows = genes columns = samples)
    counts = np.zeros((len(gene_ids), len(count_files)), dtype=np.int64)
    sample_ids = []

    for idx, file in enumerate(count_files):

        sample_ids.append(sample_name(file))

        # get dict of this file's gene:count
        data = first_counts if idx == 0 else parse_count(file)

        # every file has to describe the same genes
        if len(data) != len(gene_map) or any(g not in gene_map for g in data):
            raise SchemaMismatch(f"Genes in {file} do not match genes in {count_files[0]}")

        for gene, value in data.items():
            counts[gene_map[gene], idx] = value

    return counts, gene_ids, sample_ids


def read_sample_metadata(file: Path, id_field: str = "sample"):
    """
    Reads one record per sample from a tab (or comma, if .csv) separated file with a header row
    Params:
        file                        Path to the metadata table
        id_field                    column holding the sample identifiers
    Returns:
        SampleMetadata in file order
    """
    file = Path(file)
    with open(file, "r", newline="") as f:
        lines = (line for line in f if line.strip() and not line.startswith("#"))
        reader = csv.DictReader(lines, delimiter=_delimiter(file))
        if reader.fieldnames is None or id_field not in reader.fieldnames:
            raise SchemaMismatch(f"Metadata file {file} has no '{id_field}' column")
        records = [{k: (v.strip() if isinstance(v, str) else v) for k, v in row.items()} for row in reader]

    return SampleMetadata(records, id_field=id_field)


def _star_value(value: str):
    """
    converts a STAR log value to float, percentages lose their '%'
    """
    value = value.strip()
    try:
        return float(value.rstrip("%"))
    except ValueError:
        return value


def parse_star_log(file: Path):
    """
    Parses a STAR Log.final.out file into a dict, only the "name | value" lines are kept
    Params:
        file                        Path to the Log.final.out file
    Returns:
        dict of {statistic name: value}, numbers as floats
    """
    stats = {}
    with open(file, "r") as f:
        for line in f:
            if "|" not in line:
                continue
            key, value = line.split("|", 1)
            stats[key.strip()] = _star_value(value)

    return stats


def collect_alignment_rates(data_dir: Path):
    """
    Collects alignment rate summaries for every sample with a STAR Log.final.out under data_dir, these are
    passed along to the QC report as is
    Params:
        data_dir                    run directory holding one subdirectory per sample
    Returns:
        dict of {sample: {"input_reads", "uniquely_mapped_pct", "multi_mapped_pct"}}
    """
    rates = {}
    for file in sorted(Path(data_dir).rglob("*Log.final.out")):

        # logs are copied as STAR_<sample>Log.final.out
        name = file.name[: -len("Log.final.out")]
        if name.startswith("STAR_"):
            name = name[len("STAR_"):]
        name = name.rstrip("_.") or file.parent.name

        stats = parse_star_log(file)
        rates[name] = {
            "input_reads": stats.get("Number of input reads"),
            "uniquely_mapped_pct": stats.get("Uniquely mapped reads %"),
            "multi_mapped_pct": stats.get("% of reads mapped to multiple loci"),
        }

    return rates
