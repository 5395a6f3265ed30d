"""
Modulo per la gestione robusta degli errori e validazione.

Gerarchia delle eccezioni della pipeline:

- PipelineError
    - DataError                 (dataset vuoto o malformato: fatale)
    - ConfigurationError        (configurazione non valida: fatale)
    - SplitError
        - InvalidProportionError
        - InvalidSeedError
    - EncodingError             (cardinalità oltre il limite: fatale)
    - ModelError                (recuperati per modello dall'harness)
        - ModelFitError
        - ModelPredictError
    - MetricComputationError    (convertito nel valore sentinella 0)
"""

import pandas as pd
from typing import Dict, Any, List, Optional, Callable
from functools import wraps
import traceback
from .logger import get_logger

logger = get_logger(__name__)


class PipelineError(Exception):
    """Eccezione base per errori della pipeline."""
    pass


class DataError(PipelineError):
    """Eccezione per dataset vuoti, malformati o incoerenti."""
    pass


class ConfigurationError(PipelineError):
    """Eccezione per errori di configurazione."""
    pass


class SplitError(PipelineError):
    """Eccezione base per parametri di split non validi."""
    pass


class InvalidProportionError(SplitError):
    """Proporzione di training fuori dall'intervallo aperto (0, 1)."""
    pass


class InvalidSeedError(SplitError):
    """Seed non intero o negativo."""
    pass


class EncodingError(PipelineError):
    """Eccezione per colonne categoriche con cardinalità eccessiva."""
    pass


class ModelError(PipelineError):
    """Eccezione base per errori di un singolo modello."""

    def __init__(self, model_name: str, message: str):
        super().__init__(f"{model_name}: {message}")
        self.model_name = model_name


class ModelFitError(ModelError):
    """Errore durante la costruzione o il fit di un modello."""
    pass


class ModelPredictError(ModelError):
    """Errore durante la predizione o il calcolo delle metriche di un modello."""
    pass


class MetricComputationError(PipelineError):
    """Metrica non definita (es. denominatore a varianza nulla)."""
    pass


def safe_execution(
    error_type: type = PipelineError,
    log_errors: bool = True,
    return_on_error: Any = None,
    reraise: bool = True
):
    """
    Decorator per l'esecuzione sicura di funzioni con gestione errori robusta.

    Args:
        error_type: Tipo di eccezione da rilanciare
        log_errors: Se True, logga gli errori
        return_on_error: Valore da restituire in caso di errore (se reraise=False)
        reraise: Se True, rilancia l'eccezione; se False, restituisce return_on_error
    """
    def decorator(func: Callable):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if log_errors:
                    logger.error(f"❌ Errore in {func.__name__}: {str(e)}")
                    logger.debug(f"Traceback completo: {traceback.format_exc()}")

                if reraise:
                    if isinstance(e, PipelineError):
                        raise
                    raise error_type(f"Errore in {func.__name__}: {str(e)}") from e
                return return_on_error
        return wrapper
    return decorator


def validate_dataframe(
    df: pd.DataFrame,
    name: str = "DataFrame",
    min_rows: int = 1,
    min_cols: int = 1,
    required_columns: Optional[List[str]] = None
) -> Dict[str, Any]:
    """
    Validazione strutturale di un DataFrame.

    Args:
        df: DataFrame da validare
        name: Nome del DataFrame per i messaggi di errore
        min_rows: Numero minimo di righe richieste
        min_cols: Numero minimo di colonne richieste
        required_columns: Lista di colonne che devono essere presenti

    Returns:
        Dictionary con risultati della validazione

    Raises:
        DataError: Se la validazione fallisce
    """
    if not isinstance(df, pd.DataFrame):
        raise DataError(f"{name} deve essere un pandas.DataFrame, ricevuto {type(df).__name__}")

    logger.debug(f"🔍 Validazione {name}: {df.shape}")

    validation_results = {
        'name': name,
        'shape': df.shape,
        'validation_passed': True,
        'errors': [],
        'stats': {}
    }

    if df.empty:
        raise DataError(f"{name} è vuoto")

    if df.shape[0] < min_rows:
        validation_results['errors'].append(f"{name} ha solo {df.shape[0]} righe (minimo: {min_rows})")

    if df.shape[1] < min_cols:
        validation_results['errors'].append(f"{name} ha solo {df.shape[1]} colonne (minimo: {min_cols})")

    duplicated = df.columns[df.columns.duplicated()].tolist()
    if duplicated:
        validation_results['errors'].append(f"{name} ha nomi di colonna ripetuti: {duplicated}")

    if required_columns:
        missing_columns = [col for col in required_columns if col not in df.columns]
        if missing_columns:
            validation_results['errors'].append(f"{name} manca delle colonne richieste: {missing_columns}")

    validation_results['stats'] = {
        'null_count': int(df.isnull().sum().sum()),
        'memory_usage_mb': df.memory_usage(deep=True).sum() / 1024 / 1024
    }

    if validation_results['errors']:
        validation_results['validation_passed'] = False
        error_summary = "; ".join(validation_results['errors'])
        raise DataError(f"Validazione {name} fallita: {error_summary}")

    return validation_results


def validate_config(
    config: Dict[str, Any],
    required_sections: Optional[List[str]] = None,
    required_fields: Optional[Dict[str, List[str]]] = None
) -> Dict[str, Any]:
    """
    Validazione configurazione.

    Args:
        config: Dictionary di configurazione
        required_sections: Sezioni obbligatorie
        required_fields: Campi obbligatori per sezione

    Returns:
        Dictionary con risultati validazione

    Raises:
        ConfigurationError: Se configurazione non valida
    """
    logger.info("⚙️  Validazione configurazione")

    validation_results = {
        'validation_passed': True,
        'errors': [],
        'sections_found': list(config.keys())
    }

    if required_sections:
        missing_sections = [section for section in required_sections if section not in config]
        if missing_sections:
            validation_results['errors'].append(f"Sezioni di configurazione mancanti: {missing_sections}")

    if required_fields:
        for section, fields in required_fields.items():
            section_config = config.get(section)
            if isinstance(section_config, dict):
                missing_fields = [field for field in fields if field not in section_config]
                if missing_fields:
                    validation_results['errors'].append(
                        f"Campi mancanti nella sezione '{section}': {missing_fields}"
                    )

    if validation_results['errors']:
        validation_results['validation_passed'] = False
        error_summary = "; ".join(validation_results['errors'])
        raise ConfigurationError(f"Configurazione non valida: {error_summary}")

    logger.info("✅ Configurazione valida")
    return validation_results
