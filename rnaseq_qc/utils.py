from pathlib import Path
from datetime import datetime
import json

def log_step(step: str, log_dir: Path, **values):
    """
    Appends a record of a pipeline step to a jsonl file for easy viewing
    Params:
        step:                       step (normalize, filter, distance etc...) this record is for
        log_dir:                    directory where the log file is written
        values:                     summary values to store with the record, must be json serializable
    """
    # get timestamp
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

    # make sure log_dir exists
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True,exist_ok=True)

    # path to log file
    log_file = log_dir / "qc_log.jsonl"

    # dict of values to store
    data = {
        "step": step,
        "log_ts": timestamp,
        **values
    }

    with open(log_file, "a") as f:
        f.write(json.dumps(data) + "\n")

def remove_file_extensions(file: Path):
    """
    stems a path object until there are no more file extensions present
    Params:
        file                        Path object specifying a file that you want to find the name of without file extensions (.txt, .gz etc...)
    Returns:
        string file name without extensions
    """
    # ensure file is a Path object
    file = Path(file)

    # remove suffix while one exists
    while file.suffix:
        file = file.with_suffix("")

    return file.name

def sample_name(file: Path, marker: str = "_"):
    """
    Gets the sample name from a per sample output file, everything before the first marker
        example:                    sample_name("ctrl1_counts.txt") returns "ctrl1"
    Params:
        file                        Path to the output file
        marker                      separator that ends the sample name
    """
    name = remove_file_extensions(file)
    return name.split(marker)[0]
