"""Pytest configuration and shared fixtures."""

import logging
import sys
from pathlib import Path

import numpy as np
import pytest

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Short optimisation runs keep the iterative reducers fast under test
FAST_PARAMS = {
    "pca": None,
    "tsne": {"iterations": 30},
    "umap": {"n_epochs": 20},
}


@pytest.fixture
def fast_params():
    """Per-method overrides with reduced iteration and epoch counts."""
    return {method: (dict(p) if p else None) for method, p in FAST_PARAMS.items()}


@pytest.fixture
def fingerprints():
    """Random binary fingerprint matrix (60 molecules x 32 bits)."""
    rng = np.random.RandomState(0)
    return (rng.rand(60, 32) > 0.7).astype(np.float64)


@pytest.fixture
def two_blobs():
    """Two well separated 2D blobs of 20 points each."""
    rng = np.random.RandomState(1)
    left = rng.normal(loc=(-10.0, 0.0), scale=0.5, size=(20, 2))
    right = rng.normal(loc=(10.0, 0.0), scale=0.5, size=(20, 2))
    return np.vstack([left, right])


@pytest.fixture
def restore_chemspace_logger():
    """Remove handlers and reset the level a test adds to the package logger."""
    logger = logging.getLogger("chemspace")
    handlers = list(logger.handlers)
    level = logger.level
    yield logger
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(level)
