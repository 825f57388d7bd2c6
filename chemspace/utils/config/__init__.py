from .config_loader import (  # noqa: F401
    PIPELINE_CONFIG_SCHEMA,
    load_config_file,
    validate_config,
)
