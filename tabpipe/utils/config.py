"""
Configurazione di default della pipeline e merge con la configurazione utente.
"""

import copy
from typing import Dict, Any, Optional
from .logger import get_logger
from .error_handling import ConfigurationError, validate_config

logger = get_logger(__name__)

# Near-zero-variance: convenzioni di caret::nearZeroVar (freqCut = 95/5, uniqueCut = 10%)
NZV_CONFIG = {
    'frequency_ratio_threshold': 19.0,     # Rapporto valore più frequente / secondo
    'unique_ratio_threshold': 0.10         # Frazione massima di valori distinti
}

ENCODING_CONFIG = {
    'max_categories': 1000                 # Limite di cardinalità per colonna categorica
}

ASSOCIATION_CONFIG = {
    'bias_correction': False,              # Cramér's V corretto (Bergsma)
    'high_association_threshold': 0.95
}

SPLIT_CONFIG = {
    'proportion': 0.8,                     # Frazione di righe in training
    'seed': 42,
    'stratify': None                       # Colonna per split stratificato
}

TRAINING_CONFIG = {
    'target_column': None,
    'n_jobs': 1,                           # Worker paralleli per i modelli
    'timeout': None,                       # Secondi per modello (None = nessun limite)
    'random_state': 42,
    'compute_importance': True
}

PARTIAL_DEPENDENCE_CONFIG = {
    'features': [],                        # Nomi di feature o coppie [a, b]
    'max_grid_points': 51,
    'grid_method': 'quantile',             # 'quantile' o 'uniform'
    'sample_size': None,
    'n_jobs': 1
}

LOGGING_CONFIG = {
    'level': 'INFO',
    'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    'file': None
}

DEFAULT_CONFIG = {
    'logging': LOGGING_CONFIG,
    'preprocessing': {
        'near_zero_variance': NZV_CONFIG,
        'encoding': ENCODING_CONFIG,
        'association': ASSOCIATION_CONFIG,
        'split': SPLIT_CONFIG
    },
    'training': TRAINING_CONFIG,
    'partial_dependence': PARTIAL_DEPENDENCE_CONFIG,
    'models': []
}


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge ricorsivo di due dizionari; i valori di override prevalgono.
    Le liste vengono sostituite, non concatenate.
    """
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def build_config(user_config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Costruisce la configurazione completa a partire dai default.

    Args:
        user_config: Configurazione utente (anche parziale)

    Returns:
        Configurazione completa e validata

    Raises:
        ConfigurationError: Se i valori non sono coerenti
    """
    config = deep_merge(DEFAULT_CONFIG, user_config or {})

    validate_config(
        config,
        required_sections=['preprocessing', 'training', 'models'],
        required_fields={
            'preprocessing': ['near_zero_variance', 'encoding', 'split'],
            'training': ['target_column']
        }
    )

    nzv = config['preprocessing']['near_zero_variance']
    if float(nzv['frequency_ratio_threshold']) <= 0:
        raise ConfigurationError("frequency_ratio_threshold deve essere positivo")
    if not 0 < float(nzv['unique_ratio_threshold']) <= 1:
        raise ConfigurationError("unique_ratio_threshold deve essere in (0, 1]")

    if int(config['preprocessing']['encoding']['max_categories']) < 1:
        raise ConfigurationError("max_categories deve essere almeno 1")

    if not isinstance(config['models'], list):
        raise ConfigurationError("La sezione 'models' deve essere una lista")

    if config['partial_dependence']['grid_method'] not in ('quantile', 'uniform'):
        raise ConfigurationError(
            f"grid_method non valido: {config['partial_dependence']['grid_method']}"
        )

    return config
