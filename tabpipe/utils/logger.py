"""
Simple logger utility
"""
import logging
import yaml
from pathlib import Path
from typing import Optional, Union, Dict, Any

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logger(config: Union[str, Dict[str, Any]]) -> logging.Logger:
    """
    Set up logger with configuration from YAML file (or an already loaded config).

    Args:
        config: Path to the configuration YAML file, or the configuration dict

    Returns:
        Configured logger instance
    """
    # Load configuration
    if isinstance(config, (str, Path)):
        with open(config, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f) or {}

    # Get logging configuration
    logging_config = config.get('logging', {})
    level = logging_config.get('level', 'INFO')
    format_str = logging_config.get('format', DEFAULT_FORMAT)
    log_file = logging_config.get('file')

    handlers = [logging.StreamHandler()]

    if log_file:
        # Create logs directory if it doesn't exist
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    # Clear any existing handlers to avoid duplication
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=format_str,
        handlers=handlers,
        force=True
    )

    # Module loggers created before setup must now go through the root handlers
    for name, existing in logging.Logger.manager.loggerDict.items():
        if isinstance(existing, logging.Logger) and name.startswith('tabpipe'):
            existing.handlers.clear()
            existing.propagate = True

    return logging.getLogger('tabpipe')


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a simple logger.

    Args:
        name: Logger name, defaults to 'tabpipe' if None

    Returns:
        Logger instance
    """
    if name is None:
        name = 'tabpipe'

    logger = logging.getLogger(name)

    # Only add handlers if not already configured and avoid root logger duplication
    if not logger.handlers and not logging.getLogger().handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        # Disable propagation to avoid duplication with root logger
        logger.propagate = False

    return logger
