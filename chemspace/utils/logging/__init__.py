from .logging_manager import LoggingManager, get_logger, setup_logging  # noqa: F401
