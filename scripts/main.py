# region Imports

from pathlib import Path
import argparse,sys

# location of pipeline root dir
root_dir = Path(__file__).resolve().parent.parent
# tell python to look here for modules
sys.path.insert(0, str(root_dir))

from rnaseq_qc.config_loader import ConfigLoader
from rnaseq_qc.sample_qc import SampleQC

# endregion

def parse_args():
    """
    Accepts CLI arguments passed after calling main.py
    ex: python main.py --root /path/to/project --counts counts_matrix.txt --metadata samples.tsv
        normalizes, filters and embeds the samples in counts_matrix.txt
    """
    parser = argparse.ArgumentParser(description="Rna-seq Bulk sample QC (CPM, expression filter, MDS)")

    parser.add_argument(
        "--root",
        required=True,
        help="Path to root directory of the project, must contain config.yaml"
    )

    parser.add_argument(
        "--counts",
        required=False,
        help="Count table to use instead of inputs.counts_file (per sample *_counts.txt files are used if neither is set)"
    )

    parser.add_argument(
        "--metadata",
        required=False,
        help="Sample metadata table to use instead of inputs.metadata_file"
    )

    parser.add_argument(
        "--dimensions",
        required=False,
        type=int,
        help="Number of MDS dimensions, overrides mds.dimensions"
    )

    parser.add_argument(
        "--threads",
        required=False,
        type=int,
        help="Worker threads for the distance step, overrides tools.qc.threads"
    )

    parser.add_argument(
        "--out",
        required=False,
        help="Directory to save results in, defaults to <root>/<project name>/qc"
    )

    return parser.parse_args()

def main():

    """
    Runs sample QC on the project's count matrix
    """

    # ---------------------------------------------------
    # Parse CLI arguments and load config
    # ---------------------------------------------------

    args = parse_args()
    root = Path(args.root)
    cfg = ConfigLoader(root / "config.yaml")
    # check config formatting before loading any data
    cfg.check_bools()
    cfg.check_params()

    # ---------------------------------------------------
    # run QC
    # ---------------------------------------------------

    qc = SampleQC(root, cfg)
    store = qc.load(
        counts_file=Path(args.counts) if args.counts else None,
        metadata_file=Path(args.metadata) if args.metadata else None,
    )
    result = qc.run(store, dimensions=args.dimensions, threads=args.threads)

    # save values
    if cfg.get("project","save_files",default=True):
        out_dir = qc.save(result, Path(args.out) if args.out else None)
        print(f"QC results saved to:\n{out_dir}\n")

    if result.status == "empty":
        print("No genes passed the expression filter, lower filter.threshold or filter.min_samples in config.yaml")


if __name__ == "__main__":
    main()
