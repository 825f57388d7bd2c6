"""Command-line entry point: fingerprint CSV in, 2D map (and preview) out."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import matplotlib
import numpy as np
import pandas as pd
from matplotlib import pyplot as plt
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from .clustering.kmeans import get_cluster_color
from .errors import ChemSpaceError, InvalidInputError
from .pipeline import run_pipeline
from .pipeline_config import PipelineConfig
from .progress import PipelineProgress
from .types import ItemInput, PipelineResult
from .utils.logging.logging_manager import WANDB_DISABLED_ENV_VAR, get_logger, setup_logging

matplotlib.use("Agg")

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")
RESERVED_COLUMNS = ("index", "is_valid", "value")

logger = get_logger("chemspace.cli")


def _coerce_method_param_value(raw: str):
    """Parse a method parameter value from the CLI."""

    lowered = raw.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        return float(raw)
    except ValueError:
        pass
    return raw


def _parse_method_params(pairs: Iterable[str]) -> Dict[str, object]:
    params: Dict[str, object] = {}
    for pair in pairs:
        if "=" not in pair:
            raise argparse.ArgumentTypeError(
                f"Invalid --method-param '{pair}'. Expected format KEY=VALUE."
            )
        key, raw_value = pair.split("=", 1)
        key = key.strip()
        if not key:
            raise argparse.ArgumentTypeError(
                "Method parameter keys must be non-empty (format KEY=VALUE)."
            )
        params[key] = _coerce_method_param_value(raw_value.strip())
    return params


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Project a fingerprint matrix to 2D and optionally cluster it.",
    )
    parser.add_argument(
        "--input-features",
        type=Path,
        required=True,
        help=(
            "CSV with one row per molecule. Numeric columns are fingerprint bits; "
            "optional 'is_valid' and 'value' columns are honoured."
        ),
    )
    parser.add_argument(
        "--method",
        type=str.lower,
        default=None,
        choices=("pca", "tsne", "umap"),
        help="Projection method (defaults to the config file, then umap).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML or JSON pipeline configuration.",
    )
    parser.add_argument(
        "--method-param",
        type=str,
        action="append",
        default=None,
        help=(
            "Reducer parameters in KEY=VALUE format (repeatable). "
            "Examples: --method-param perplexity=20 --method-param iterations=500 (t-SNE); "
            "--method-param n_neighbors=10 --method-param min_dist=0.2 (UMAP)."
        ),
    )
    parser.add_argument(
        "--n-clusters",
        type=int,
        default=None,
        help="Run k-means with this many clusters.",
    )
    parser.add_argument(
        "--outlier-threshold",
        type=float,
        default=None,
        help="Flag points whose per-axis z-score reaches this value.",
    )
    parser.add_argument(
        "--random-state",
        type=int,
        default=None,
        help="Seed for t-SNE/UMAP initialisation and k-means++.",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="CSV receiving index, is_valid, value, x, y, cluster, is_outlier.",
    )
    parser.add_argument(
        "--plot",
        type=Path,
        default=None,
        help="PNG preview of the map, coloured by cluster.",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default=None,
        choices=LOG_LEVELS,
        help="Logging verbosity for the run.",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Optional file receiving DEBUG-level logs.",
    )
    parser.add_argument(
        "--no-wandb",
        action="store_true",
        help="Disable WandB logging.",
    )
    return parser.parse_args(argv)


def _apply_cli_overrides(config: PipelineConfig, args: argparse.Namespace) -> PipelineConfig:
    if args.method is not None:
        config.reduction.method = args.method
    if args.random_state is not None:
        config.reduction.random_state = args.random_state
    if args.n_clusters is not None:
        config.clustering.enabled = True
        config.clustering.n_clusters = args.n_clusters
    if args.outlier_threshold is not None:
        config.outliers.enabled = True
        config.outliers.threshold = args.outlier_threshold
    if args.log_level is not None:
        config.logging.level = args.log_level
    if args.log_file is not None:
        config.logging.log_file = args.log_file
    return config


def load_items(path: Path) -> List[ItemInput]:
    """Read a fingerprint CSV into pipeline items.

    Rows whose ``is_valid`` column is false keep their position but carry no
    usable vector.
    """

    if not path.exists():
        raise FileNotFoundError(f"Feature matrix not found at {path}")
    df = pd.read_csv(path)
    feature_df = df.drop(
        columns=[column for column in RESERVED_COLUMNS if column in df.columns]
    ).select_dtypes(include=[np.number])
    if feature_df.shape[1] == 0:
        raise InvalidInputError(f"No numeric feature columns found in {path}")

    vectors = feature_df.to_numpy(dtype=np.float64)
    if "is_valid" in df.columns:
        valid = df["is_valid"].fillna(False).astype(bool).to_numpy()
    else:
        valid = np.ones(len(df), dtype=bool)
    if "value" in df.columns:
        values = pd.to_numeric(df["value"], errors="coerce").to_numpy(dtype=np.float64)
    else:
        values = np.full(len(df), np.nan)

    logger.info(
        "Loaded %d rows x %d feature columns from %s (%d valid)",
        len(df),
        feature_df.shape[1],
        path,
        int(valid.sum()),
    )
    return [
        ItemInput(
            vector=vectors[row] if valid[row] else None,
            is_valid=bool(valid[row]),
            value=None if np.isnan(values[row]) else float(values[row]),
        )
        for row in range(len(df))
    ]


def save_preview_plot(result: PipelineResult, path: Path) -> Path:
    """Scatter the map, coloured by cluster, with outliers marked."""

    path.parent.mkdir(parents=True, exist_ok=True)
    placed = [item for item in result.items if item.coordinates is not None]
    fig, ax = plt.subplots(figsize=(6, 5))
    try:
        if placed:
            xs = np.array([item.coordinates.x for item in placed])
            ys = np.array([item.coordinates.y for item in placed])
            colors = [
                get_cluster_color(item.cluster) if item.cluster is not None else "#1f77b4"
                for item in placed
            ]
            ax.scatter(xs, ys, c=colors, s=16, alpha=0.7)
            outlier_mask = np.array([bool(item.is_outlier) for item in placed])
            if outlier_mask.any():
                ax.scatter(
                    xs[outlier_mask],
                    ys[outlier_mask],
                    s=48,
                    facecolors="none",
                    edgecolors="black",
                    linewidths=1.0,
                    label="outlier",
                )
                ax.legend(loc="best")
        ax.set_xlabel("dim1")
        ax.set_ylabel("dim2")
        ax.set_title(f"{result.method.upper()} projection ({len(placed)} samples)")
        ax.grid(True, linestyle="--", alpha=0.3)
        fig.tight_layout()
        fig.savefig(str(path), dpi=200)
    finally:
        plt.close(fig)
    return path


def _run(config: PipelineConfig, items: List[ItemInput], params, console: Console) -> PipelineResult:
    with Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        BarColumn(),
        TimeElapsedColumn(),
        transient=True,
        console=console,
    ) as progress:
        task = progress.add_task("Loaded features", total=100.0)
        progress.update(task, completed=config.feature_extraction_share)

        def on_progress(update: PipelineProgress) -> None:
            progress.update(task, completed=update.percent, description=update.message)

        kwargs = config.run_kwargs()
        kwargs["params"] = params
        return run_pipeline(items, progress_callback=on_progress, **kwargs)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)

    # Must happen before any LoggingManager sets up WandB
    if args.no_wandb:
        os.environ[WANDB_DISABLED_ENV_VAR] = "1"

    try:
        manual_params = _parse_method_params(args.method_param or [])
    except argparse.ArgumentTypeError as exc:
        print(exc, file=sys.stderr)
        return 2

    try:
        config = PipelineConfig.from_yaml(args.config) if args.config else PipelineConfig()
    except (ChemSpaceError, FileNotFoundError) as exc:
        print(exc, file=sys.stderr)
        return 1
    config = _apply_cli_overrides(config, args)

    manager = setup_logging(
        level=config.logging.numeric_level,
        log_file=config.logging.log_file,
        enable_wandb=config.logging.enable_wandb,
        wandb_project=config.logging.wandb_project,
        wandb_config=config.to_serialisable_dict(),
    )
    params = dict(config.reduction.overrides_for() or {})
    params.update(manual_params)

    console = Console(stderr=True)
    try:
        items = load_items(args.input_features)
        result = _run(config, items, params or None, console)
    except (ChemSpaceError, FileNotFoundError) as exc:
        manager.error("Pipeline failed: %s", exc)
        manager.finish()
        return 1

    metrics = {
        "n_items": len(result.items),
        "n_valid": len(result.valid_indices),
    }
    if result.clustering is not None:
        metrics["n_clusters"] = result.clustering.n_clusters
    if result.outliers is not None:
        metrics["n_outliers"] = result.outliers.n_outliers
    manager.log_metrics(metrics)

    if args.output is not None:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        result.to_frame().to_csv(args.output, index=False)
        console.print(f"Embedding written to {args.output}")
    if args.plot is not None:
        save_preview_plot(result, args.plot)
        console.print(f"Preview plot written to {args.plot}")

    manager.finish()
    return 0


if __name__ == "__main__":
    sys.exit(main())
