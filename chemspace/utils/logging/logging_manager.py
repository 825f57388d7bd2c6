"""Unified logging facade for the chemical-space reduction pipeline."""

import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Union

try:
    import wandb

    HAS_WANDB = True
except ImportError:
    HAS_WANDB = False

# Environment variable to globally disable WandB (set by CLI --no-wandb flag)
WANDB_DISABLED_ENV_VAR = "CHEMSPACE_WANDB_DISABLED"

ROOT_LOGGER_NAME = "chemspace"


class LoggingManager:
    """Logging manager that wraps a standard logger and optional WandB run."""

    def __init__(
        self,
        name: str = ROOT_LOGGER_NAME,
        level: Optional[int] = None,
        log_file: Optional[Union[str, Path]] = None,
        enable_wandb: bool = False,
        wandb_project: Optional[str] = None,
        wandb_config: Optional[Dict[str, Any]] = None,
    ):
        """Initialize logging manager.

        Args:
            name: Logger name. Child names (``chemspace.tsne``) share the
                handlers installed on their parent.
            level: Logging level. ``None`` keeps the inherited level.
            log_file: Optional log file path
            enable_wandb: Whether to forward metrics to WandB
            wandb_project: WandB project name
            wandb_config: WandB configuration dictionary
        """
        self.name = name
        self.logger = logging.getLogger(name)
        if level is not None:
            self.logger.setLevel(level)

        # Children propagate to the package root, which owns the console handler
        is_child = name.startswith(ROOT_LOGGER_NAME + ".")
        if not is_child and not self.logger.handlers:
            self._setup_console_handler()

        if log_file:
            self._setup_file_handler(log_file)

        wandb_globally_disabled = os.environ.get(
            WANDB_DISABLED_ENV_VAR, ""
        ).lower() in (
            "true",
            "1",
            "yes",
        )
        self.enable_wandb = bool(enable_wandb) and not wandb_globally_disabled
        self.wandb_initialized = False

        if self.enable_wandb:
            if HAS_WANDB:
                self._setup_wandb(wandb_project, wandb_config)
            else:
                self.logger.warning(
                    "WandB logging requested but wandb is not installed; "
                    "install the 'tracking' extra to enable it."
                )
                self.enable_wandb = False

    def _setup_console_handler(self) -> None:
        """Set up console logging handler."""
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.DEBUG)

        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        console_handler.setFormatter(formatter)

        self.logger.addHandler(console_handler)

    def _setup_file_handler(self, log_file: Union[str, Path]) -> None:
        """Set up file logging handler.

        Args:
            log_file: Path to log file
        """
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(logging.DEBUG)

        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
        )
        file_handler.setFormatter(formatter)

        self.logger.addHandler(file_handler)

    def _setup_wandb(
        self, project: Optional[str] = None, config: Optional[Dict[str, Any]] = None
    ) -> None:
        try:
            # Reuse an active run instead of opening an empty one per component
            if wandb.run is not None:
                self.wandb_initialized = True
                self.logger.info("Reusing existing WandB run: %s", wandb.run.name)
                return

            project_name = project or "chemspace"
            wandb.init(project=project_name, config=config)

            self.wandb_initialized = True
            self.logger.info("WandB initialized for project: %s", project_name)

        except Exception as e:
            self.logger.warning("Failed to initialize WandB: %s", e)
            self.enable_wandb = False

    def info(self, message: str, *args: Any) -> None:
        self.logger.info(message, *args)

    def debug(self, message: str, *args: Any) -> None:
        self.logger.debug(message, *args)

    def warning(self, message: str, *args: Any) -> None:
        self.logger.warning(message, *args)

    def error(self, message: str, *args: Any) -> None:
        self.logger.error(message, *args)

    def log_metrics(self, metrics: Dict[str, Any], step: Optional[int] = None) -> None:
        """Log metrics to both standard logging and WandB.

        Args:
            metrics: Dictionary of metrics to log
            step: Optional step number
        """
        metrics_str = ", ".join(f"{k}: {v}" for k, v in metrics.items())
        step_str = f" (step {step})" if step is not None else ""
        self.logger.info("Metrics%s: %s", step_str, metrics_str)

        if self.enable_wandb and self.wandb_initialized:
            try:
                wandb.log(metrics, step=step)
            except Exception as e:
                self.logger.warning("Failed to log metrics to WandB: %s", e)

    def finish(self) -> None:
        """Clean up logging resources."""
        if self.enable_wandb and self.wandb_initialized:
            try:
                wandb.finish()
                self.wandb_initialized = False
            except Exception as e:
                self.logger.warning("Failed to finish WandB: %s", e)


# Global logging manager instances cache
_logger_cache: Dict[str, LoggingManager] = {}


def get_logger(name: str = ROOT_LOGGER_NAME, **kwargs: Any) -> LoggingManager:
    """Get or create logging manager for the given name.

    Args:
        name: Logger name
        **kwargs: Additional arguments for LoggingManager (only used on first call for each name)

    Returns:
        LoggingManager instance
    """
    if name.startswith(ROOT_LOGGER_NAME + ".") and ROOT_LOGGER_NAME not in _logger_cache:
        _logger_cache[ROOT_LOGGER_NAME] = LoggingManager(ROOT_LOGGER_NAME, level=logging.INFO)
    if name not in _logger_cache:
        _logger_cache[name] = LoggingManager(name, **kwargs)

    return _logger_cache[name]


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    enable_wandb: bool = False,
    wandb_project: Optional[str] = None,
    wandb_config: Optional[Dict[str, Any]] = None,
) -> LoggingManager:
    """Configure the package root logger.

    Args:
        level: Logging level
        log_file: Optional log file path
        enable_wandb: Whether to enable WandB
        wandb_project: WandB project name
        wandb_config: WandB configuration

    Returns:
        Configured LoggingManager instance
    """
    manager = LoggingManager(
        name=ROOT_LOGGER_NAME,
        level=level,
        log_file=log_file,
        enable_wandb=enable_wandb,
        wandb_project=wandb_project,
        wandb_config=wandb_config,
    )
    _logger_cache[ROOT_LOGGER_NAME] = manager
    return manager


__all__ = [
    "HAS_WANDB",
    "LoggingManager",
    "ROOT_LOGGER_NAME",
    "WANDB_DISABLED_ENV_VAR",
    "get_logger",
    "setup_logging",
]
