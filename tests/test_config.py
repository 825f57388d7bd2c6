"""
Tests for pipeline configuration loading and validation.
"""
import json
from pathlib import Path

import pytest
import yaml

from chemspace.errors import ParameterOutOfRangeError
from chemspace.pipeline import run_pipeline
from chemspace.pipeline_config import (
    ClusteringConfig,
    LoggingConfig,
    OutlierConfig,
    PipelineConfig,
    ReductionStageConfig,
)
from chemspace.types import ItemInput
from chemspace.utils.config import load_config_file, validate_config

EXAMPLE_CONFIG = {
    "feature_extraction_share": 40,
    "reduction": {
        "method": "tsne",
        "random_state": 7,
        "tsne": {"perplexity": 12, "iterations": 40},
    },
    "clustering": {"enabled": True, "n_clusters": 4},
    "outliers": {"enabled": True, "threshold": 2.5},
    "logging": {"level": "DEBUG", "log_file": "logs/run.log"},
}


class TestPipelineConfig:
    """Test suite for PipelineConfig."""

    def test_defaults(self):
        config = PipelineConfig()
        assert config.reduction.method == "umap"
        assert config.clustering == ClusteringConfig(
            enabled=False, n_clusters=5, max_iterations=100, random_state=None
        )
        assert config.outliers == OutlierConfig(enabled=False, threshold=3.0)
        assert config.feature_extraction_share == 50.0

    def test_from_dict(self):
        config = PipelineConfig.from_dict(EXAMPLE_CONFIG)
        assert config.feature_extraction_share == 40.0
        assert config.reduction == ReductionStageConfig(
            method="tsne", random_state=7, tsne={"perplexity": 12, "iterations": 40}
        )
        assert config.clustering.n_clusters == 4
        assert config.outliers.threshold == 2.5
        assert config.logging.log_file == Path("logs/run.log")

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "pipeline.yaml"
        path.write_text(yaml.safe_dump(EXAMPLE_CONFIG), encoding="utf-8")
        assert PipelineConfig.from_yaml(path) == PipelineConfig.from_dict(EXAMPLE_CONFIG)

    def test_from_json(self, tmp_path):
        path = tmp_path / "pipeline.json"
        path.write_text(json.dumps(EXAMPLE_CONFIG), encoding="utf-8")
        assert PipelineConfig.from_yaml(path).reduction.method == "tsne"

    def test_serialisable_round_trip(self):
        config = PipelineConfig.from_dict(EXAMPLE_CONFIG)
        serialised = config.to_serialisable_dict()
        assert serialised["logging"]["log_file"] == "logs/run.log"
        json.dumps(serialised)
        assert PipelineConfig.from_dict(serialised) == config

    def test_overrides_for(self):
        config = PipelineConfig.from_dict(EXAMPLE_CONFIG)
        assert config.reduction.overrides_for() == {"perplexity": 12, "iterations": 40}
        assert config.reduction.overrides_for("umap") is None
        assert config.reduction.overrides_for("pca") is None

    def test_numeric_logging_level(self):
        assert LoggingConfig(level="debug").numeric_level == 10

    def test_run_kwargs_drive_pipeline(self, fingerprints):
        config = PipelineConfig.from_dict(
            {
                "reduction": {"method": "umap", "random_state": 0, "umap": {"n_epochs": 10}},
                "clustering": {"enabled": True, "n_clusters": 3},
            }
        )
        result = run_pipeline([ItemInput(row) for row in fingerprints], **config.run_kwargs())
        assert result.method == "umap"
        assert result.clustering.n_clusters == 3

    @pytest.mark.parametrize(
        "raw, location",
        [
            ({"reduction": {"method": "isomap"}}, "reduction.method"),
            ({"reduction": {"tsne": {"perplexity": 70}}}, "reduction.tsne.perplexity"),
            ({"reduction": {"umap": {"min_dist": 1.0}}}, "reduction.umap.min_dist"),
            ({"clustering": {"n_clusters": 0}}, "clustering.n_clusters"),
            ({"outliers": {"threshold": 0}}, "outliers.threshold"),
            ({"logging": {"level": "LOUD"}}, "logging.level"),
        ],
    )
    def test_schema_violations(self, raw, location):
        with pytest.raises(ParameterOutOfRangeError) as excinfo:
            PipelineConfig.from_dict(raw)
        assert excinfo.value.parameter == location

    def test_unknown_section_rejected(self):
        with pytest.raises(ParameterOutOfRangeError):
            PipelineConfig.from_dict({"ghsom": {}})


class TestConfigLoader:
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config_file(tmp_path / "missing.yaml")

    def test_empty_yaml_is_empty_mapping(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config_file(path) == {}

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n", encoding="utf-8")
        with pytest.raises(ParameterOutOfRangeError):
            load_config_file(path)

    def test_unknown_extension_parsed_as_yaml(self, tmp_path):
        path = tmp_path / "pipeline.cfg"
        path.write_text("reduction:\n  method: pca\n", encoding="utf-8")
        assert load_config_file(path) == {"reduction": {"method": "pca"}}

    def test_validate_returns_config(self):
        assert validate_config({"outliers": {"enabled": True}}) == {"outliers": {"enabled": True}}
