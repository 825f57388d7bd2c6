"""Configuration file loading and schema validation for pipeline runs.

Supports both YAML and JSON configuration files with auto-detection based on
file extension. YAML is preferred since it allows comments.
"""

import json
from pathlib import Path
from typing import Any, Dict, Union

import jsonschema
import yaml

from ...errors import ParameterOutOfRangeError


_TSNE_SECTION = {
    "type": "object",
    "properties": {
        "perplexity": {"type": "number", "minimum": 5, "maximum": 50},
        "iterations": {"type": "integer", "minimum": 1},
        "learning_rate": {"type": "number", "exclusiveMinimum": 0},
    },
    "additionalProperties": False,
}

_UMAP_SECTION = {
    "type": "object",
    "properties": {
        "n_neighbors": {"type": "integer", "minimum": 2, "maximum": 100},
        "min_dist": {"type": "number", "minimum": 0, "exclusiveMaximum": 1},
        "n_epochs": {"type": "integer", "minimum": 1},
    },
    "additionalProperties": False,
}

# JSON schema for pipeline configuration validation
PIPELINE_CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "feature_extraction_share": {"type": "number", "minimum": 0, "maximum": 95},
        "reduction": {
            "type": "object",
            "properties": {
                "method": {"type": "string", "enum": ["pca", "tsne", "umap"]},
                "random_state": {"type": ["integer", "null"], "minimum": 0},
                "progress_interval": {"type": "number", "minimum": 0},
                "tsne": _TSNE_SECTION,
                "umap": _UMAP_SECTION,
            },
            "additionalProperties": False,
        },
        "clustering": {
            "type": "object",
            "properties": {
                "enabled": {"type": "boolean"},
                "n_clusters": {"type": "integer", "minimum": 1},
                "max_iterations": {"type": "integer", "minimum": 1},
                "random_state": {"type": ["integer", "null"], "minimum": 0},
            },
            "additionalProperties": False,
        },
        "outliers": {
            "type": "object",
            "properties": {
                "enabled": {"type": "boolean"},
                "threshold": {"type": "number", "exclusiveMinimum": 0},
            },
            "additionalProperties": False,
        },
        "logging": {
            "type": "object",
            "properties": {
                "level": {
                    "type": "string",
                    "enum": ["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"],
                },
                "log_file": {"type": ["string", "null"]},
                "enable_wandb": {"type": "boolean"},
                "wandb_project": {"type": ["string", "null"]},
            },
            "additionalProperties": False,
        },
    },
    "additionalProperties": False,
}


def load_config_file(path: Union[str, Path]) -> Dict[str, Any]:
    """Load configuration from file, auto-detecting format."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found at {path}")
    suffix = path.suffix.lower()

    with open(path, "r", encoding="utf-8") as f:
        if suffix in (".yaml", ".yml"):
            loaded = yaml.safe_load(f) or {}
        elif suffix == ".json":
            loaded = json.load(f)
        else:
            # Try YAML first, fall back to JSON
            content = f.read()
            try:
                loaded = yaml.safe_load(content) or {}
            except yaml.YAMLError:
                loaded = json.loads(content)

    if not isinstance(loaded, dict):
        raise ParameterOutOfRangeError(
            "config",
            type(loaded).__name__,
            f"Configuration in {path} must be a mapping at the top level",
        )
    return loaded


def validate_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Validate ``config`` against :data:`PIPELINE_CONFIG_SCHEMA`.

    Raises:
        ParameterOutOfRangeError: naming the dotted path of the first
            offending entry.
    """
    try:
        jsonschema.validate(config, PIPELINE_CONFIG_SCHEMA)
    except jsonschema.ValidationError as exc:
        location = ".".join(str(part) for part in exc.absolute_path) or "<root>"
        raise ParameterOutOfRangeError(
            location, exc.instance, f"Invalid configuration at '{location}': {exc.message}"
        ) from exc
    return config


__all__ = [
    "PIPELINE_CONFIG_SCHEMA",
    "load_config_file",
    "validate_config",
]
