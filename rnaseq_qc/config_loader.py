# region Imports

from pathlib import Path
import yaml, os

from rnaseq_qc.errors import InvalidParameter

# endregion

class ConfigLoader:
    """
    loads config.yaml and gives easy access to useful information
    """
    def __init__(self, config_file: Path):
        """
        Loads yaml file and stores it as a dictionary as self.config
        params:
            config_file:            Path to config file, usually <root>/config.yaml
        """
        self.config_path = Path(config_file)

        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file at {config_file} not found")

        with open(self.config_path, "r") as f:
            self.config = yaml.safe_load(f) or {}

    def get(self, *keys: str, default=None):
        """
        accesses nested values from config dict
        params:
            keys:                   list of keys in order of accessing for config structure
                example:            cfg.get("filter","min_samples") returns the min_samples filter parameter
        """

        value = self.config

        # iterates over all keys given going into each key subsection at each iteration
        for key in keys:

            # ensures value is a dict
            if not isinstance(value,dict):
                return default

            # resets value to the value under key, if key is a subdict name it returns that dict
            value = value.get(key, default)

        # return value queried for
        return value

    def get_threads(self, tool_name: str):
        """
        returns the number of threads used for a specified tool
        overridden by SLURM if running on HPC cluster
        params:
            tool_name:             string name of the tool, such as "qc"
        """
        # threads listed in yaml
        threads = self.get("tools", tool_name, "threads", default=1)
        # if SLURM specifies a number of threads override at runtime
        threads = int(os.environ.get("SLURM_CPUS_PER_TASK", threads))

        return threads

    def get_path(self, *keys: str, base_path: Path = None, must_exist=False):
        """
        Returns Path object for the path specified in the config within the specified base_dir
        Params:
            keys:                   list of keys to go through to find the desired path
                example:            cfg.get_path("inputs", "counts_file", base_path=root) for the count matrix
            base_path:              Path object to prepend to relative paths from the config
            must_exist:             True if the path has to exist already (input files)
        """
        value = self.get(*keys)
        if value is None:
            raise KeyError(f"No path configured for keys {keys}")
        p = Path(value)

        if base_path is not None and not p.is_absolute():
            p = Path(base_path) / p

        if must_exist and not p.exists():
            raise FileNotFoundError(f"Path {p} not found for keys {keys}")

        return p

    def check_bools(self):

        # empty list to hold improperly formatted bools
        errors = []

        # list of fields that must be boolean
        bool_fields = {
            "save_files",
            "log",
            "enabled",
            "scale"
        }

        # recursive function to enter parent dicts
        def recurse(value, path=""):
            # check each key value pair
            for k,v in value.items():
                # get string representation of current value being observed
                current_path = f"{path}.{k}" if path else k
                # if value is a dict then go another layer deeper
                if isinstance(v,dict):
                    recurse(v,current_path)
                # if not a dict, check if it is in bool_fields and if it is properly formatted as bool
                else:
                    if k in bool_fields and not isinstance(v,bool):
                        errors.append(current_path)

        # run recursive method on loaded config dict
        recurse(self.config)

        # output error/all good message
        if errors:
            raise ValueError(
                f"Invalid boolean fields found in config.yaml, reformat to True/False:\n"+
                "\n".join(f" - {e}" for e in errors)
                )
        else:
            print("All boolean fields valid, continuing pipeline")

    def check_params(self):
        """
        makes sure the parameters with no built in default are set, the filter threshold depends on the dataset so
        it has to come from the user
        """
        required = [
            ("filter","threshold"),
            ("filter","min_samples"),
        ]

        missing = [".".join(keys) for keys in required if self.get(*keys) is None]

        if missing:
            raise InvalidParameter(
                f"Required parameters missing from config.yaml:\n"+
                "\n".join(f" - {m}" for m in missing)
                )
