from pathlib import Path

import pytest

from photoface_cluster.config import ClusterConfig, parse_args
from photoface_cluster.errors import ConfigError

BASE = ["--input", "photos", "--output", "out", "--model-path", "facenet.onnx"]


def test_defaults():
    cfg = parse_args(BASE)
    assert cfg.input_dir == Path("photos")
    assert cfg.output_root == Path("out")
    assert cfg.localizer_name == "haar"
    assert cfg.embedder_name == "facenet"
    assert cfg.cluster.similarity_threshold == 0.6
    assert cfg.cluster.input_size == 160
    assert cfg.cluster.embedding_dim is None
    assert not cfg.cluster.strict_crops
    assert cfg.table_name == "clusters.parquet"
    assert cfg.command_line.startswith("photoface --input photos")


def test_cluster_options():
    cfg = parse_args(BASE + ["--similarity-threshold", "0.7", "--embedding-dim", "512", "--strict-crops"])
    assert cfg.cluster == ClusterConfig(similarity_threshold=0.7, embedding_dim=512, strict_crops=True)


def test_insightface_needs_no_model_path():
    cfg = parse_args(["--input", "a", "--output", "b", "--embedder", "insightface", "--localizer", "insightface"])
    assert cfg.model_path is None
    assert cfg.embedder_name == "insightface"


@pytest.mark.parametrize("argv", [
    ["--input", "a", "--output", "b"],
    BASE + ["--similarity-threshold", "2"],
    BASE + ["--embedding-dim", "0"],
    BASE + ["--table", "clusters.json"],
    ["--output", "b", "--model-path", "m.onnx"],
])
def test_invalid_arguments(argv):
    with pytest.raises(SystemExit):
        parse_args(argv)


def test_cluster_config_defaults():
    cfg = ClusterConfig()
    assert (cfg.similarity_threshold, cfg.embedding_dim, cfg.input_size) == (0.6, 128, 160)
    assert cfg.validate() is cfg


@pytest.mark.parametrize("kwargs", [
    {"similarity_threshold": -1.5},
    {"embedding_dim": -3},
    {"input_size": 0},
])
def test_cluster_config_validate(kwargs):
    with pytest.raises(ConfigError):
        ClusterConfig(**kwargs).validate()
