"""
Funzioni di input/output: configurazione YAML, JSON e DataFrame.
"""

import json
import yaml
import numpy as np
import pandas as pd
from pathlib import Path
from typing import Dict, Any, Union
from .logger import get_logger
from .config import build_config

logger = get_logger(__name__)

PathLike = Union[str, Path]


def ensure_dir(path: PathLike) -> Path:
    """Crea la directory (e i genitori) se non esiste."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def load_config(config_path: PathLike) -> Dict[str, Any]:
    """
    Carica la configurazione YAML e la completa con i default.

    Args:
        config_path: Path al file YAML

    Returns:
        Configurazione completa

    Raises:
        FileNotFoundError: Se il file non esiste
        ConfigurationError: Se la configurazione non è valida
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"File di configurazione non trovato: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        user_config = yaml.safe_load(f) or {}

    logger.info(f"Configurazione caricata da: {config_path}")
    return build_config(user_config)


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (np.integer,)):
        return int(obj)
    if isinstance(obj, (np.floating,)):
        return float(obj)
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, pd.DataFrame):
        return obj.to_dict(orient='split')
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    raise TypeError(f"Oggetto non serializzabile in JSON: {type(obj).__name__}")


def save_json(data: Dict[str, Any], path: PathLike) -> None:
    """Salva un dizionario in JSON gestendo i tipi numpy/pandas."""
    path = Path(path)
    ensure_dir(path.parent)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False, default=_json_default)
    logger.info(f"JSON salvato: {path}")


def save_dataframe(df: pd.DataFrame, path: PathLike, index: bool = False) -> None:
    """Salva un DataFrame in CSV."""
    path = Path(path)
    ensure_dir(path.parent)
    df.to_csv(path, index=index)
    logger.info(f"DataFrame salvato: {path} {df.shape}")
