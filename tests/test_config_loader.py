"""
Tests for ConfigLoader.
"""

import pytest

from rnaseq_qc.config_loader import ConfigLoader
from rnaseq_qc.errors import InvalidParameter


@pytest.fixture
def write_config(tmp_path):
    def _write(text):
        path = tmp_path / "config.yaml"
        path.write_text(text)
        return ConfigLoader(path)
    return _write


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        ConfigLoader(tmp_path / "nope.yaml")


def test_nested_get(write_config):
    cfg = write_config("filter:\n  threshold: 0.5\n  min_samples: 2\n")
    assert cfg.get("filter", "threshold") == 0.5
    assert cfg.get("filter", "missing", default=3) == 3
    assert cfg.get("filter", "threshold", "deeper") is None


def test_get_threads_slurm_override(write_config, monkeypatch):
    cfg = write_config("tools:\n  qc:\n    threads: 4\n")
    monkeypatch.delenv("SLURM_CPUS_PER_TASK", raising=False)
    assert cfg.get_threads("qc") == 4
    assert cfg.get_threads("other") == 1
    monkeypatch.setenv("SLURM_CPUS_PER_TASK", "16")
    assert cfg.get_threads("qc") == 16


def test_get_path(write_config, tmp_path):
    cfg = write_config("inputs:\n  counts_file: counts.txt\n")
    assert cfg.get_path("inputs", "counts_file", base_path=tmp_path) == tmp_path / "counts.txt"
    with pytest.raises(FileNotFoundError):
        cfg.get_path("inputs", "counts_file", base_path=tmp_path, must_exist=True)
    with pytest.raises(KeyError):
        cfg.get_path("inputs", "metadata_file")


def test_check_bools(write_config):
    cfg = write_config("project:\n  save_files: yes please\nnormalize:\n  log: True\n")
    with pytest.raises(ValueError, match="project.save_files"):
        cfg.check_bools()
    write_config("normalize:\n  log: False\n").check_bools()


def test_check_params_requires_filter_values(write_config):
    cfg = write_config("filter:\n  threshold: 0.5\n")
    with pytest.raises(InvalidParameter, match="filter.min_samples"):
        cfg.check_params()
    write_config("filter:\n  threshold: 0.5\n  min_samples: 2\n").check_params()
