"""
Package utils per utilità condivise nella pipeline.

Contiene:
- logger: Setup e gestione del logging
- error_handling: Gerarchia delle eccezioni e validazione
- config: Configurazione di default e merge
- io: Caricamento configurazione YAML, salvataggio JSON/CSV
"""

from .logger import setup_logger, get_logger
from .error_handling import (
    PipelineError,
    DataError,
    ConfigurationError,
    SplitError,
    InvalidProportionError,
    InvalidSeedError,
    EncodingError,
    ModelError,
    ModelFitError,
    ModelPredictError,
    MetricComputationError,
    safe_execution,
    validate_dataframe,
    validate_config
)
from .config import DEFAULT_CONFIG, build_config, deep_merge
from .io import load_config, save_json, save_dataframe, ensure_dir

__all__ = [
    # Logger
    'setup_logger', 'get_logger',

    # Error handling e validation
    'PipelineError', 'DataError', 'ConfigurationError', 'SplitError',
    'InvalidProportionError', 'InvalidSeedError', 'EncodingError',
    'ModelError', 'ModelFitError', 'ModelPredictError', 'MetricComputationError',
    'safe_execution', 'validate_dataframe', 'validate_config',

    # Configurazione
    'DEFAULT_CONFIG', 'build_config', 'deep_merge',

    # I/O
    'load_config', 'save_json', 'save_dataframe', 'ensure_dir'
]
