"""
Feature importance dai segnali nativi dei modelli.

- boosted trees: guadagno totale degli split (XGBoost total_gain, LightGBM gain,
  CatBoost PredictionValuesChange, GradientBoosting impurity)
- random forest: mean decrease in impurity
- lineari / elastic net / logistica: |coefficienti| su feature standardizzate

I valori sono normalizzati a 0-100 (somma 100) e ordinati in modo decrescente;
a parità di valore resta l'ordine originale delle colonne. SVM e k-NN non hanno
un segnale nativo e producono una lista vuota.
"""

from dataclasses import dataclass, asdict
from typing import List, Mapping, Optional, Sequence, Any

import numpy as np
import pandas as pd

from ..utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ImportanceRecord:
    model_name: str
    feature: str
    relative_influence: float


def normalize_importance(model_name: str, signal: Mapping[str, float]) -> List[ImportanceRecord]:
    """
    Normalizza un segnale grezzo feature -> valore in ImportanceRecord ordinati.

    Args:
        model_name: Nome del modello
        signal: Importanza grezza (non negativa) per feature, nell'ordine delle colonne

    Returns:
        Lista ordinata per relative_influence decrescente, somma 100.
        Lista vuota se il segnale è nullo.
    """
    features = list(signal)
    values = np.abs(np.array([signal[feature] for feature in features], dtype=float))

    total = values.sum()
    if not features or not np.isfinite(total) or total <= 0:
        logger.warning(f"⚠️  {model_name}: segnale di importanza nullo, nessuna importanza riportata")
        return []

    scaled = values / total * 100.0
    order = sorted(range(len(features)), key=lambda i: -scaled[i])

    records = []
    running = 0.0
    for position, i in enumerate(order):
        if position == len(order) - 1:
            # l'ultimo assorbe l'errore di arrotondamento
            value = max(0.0, 100.0 - running)
        else:
            value = float(scaled[i])
            running += value
        records.append(ImportanceRecord(model_name, features[i], value))

    return records


def extract_importance(model_name: str, adapter: Any) -> List[ImportanceRecord]:
    """
    Importanza relativa di un modello fittato.

    Args:
        model_name: Nome del modello
        adapter: ModelAdapter fittato

    Returns:
        ImportanceRecord ordinati, o lista vuota se l'algoritmo non ha un segnale nativo
    """
    signal = adapter.native_importance()
    if signal is None:
        logger.info(f"{model_name}: nessun segnale di importanza nativo ({adapter.algorithm})")
        return []

    records = normalize_importance(model_name, signal)
    if records:
        top = ', '.join(f"{r.feature} ({r.relative_influence:.1f})" for r in records[:3])
        logger.info(f"✓ Feature importance calcolata per {model_name}: {top}")
    return records


def importance_to_frame(records: Sequence[ImportanceRecord]) -> pd.DataFrame:
    """Formato lungo: una riga per (modello, feature) con il rank nel modello."""
    frame = pd.DataFrame([asdict(record) for record in records],
                         columns=['model_name', 'feature', 'relative_influence'])
    if not frame.empty:
        frame['rank'] = frame.groupby('model_name').cumcount() + 1
    return frame


def importance_table(results: Sequence[Any], features: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """
    Tabella feature x modello delle importanze, con colonna `Average`.

    Considera solo i risultati con importanza non vuota; le righe sono ordinate
    per importanza media decrescente.
    """
    records = [record for result in results for record in result.importance]
    if not records:
        logger.info("Nessuna feature importance disponibile")
        return pd.DataFrame(columns=['Average'])

    long = importance_to_frame(records)
    model_order = list(dict.fromkeys(long['model_name']))
    table = long.pivot(index='feature', columns='model_name', values='relative_influence')
    table = table.reindex(columns=model_order).fillna(0.0)

    if features is not None:
        table = table.reindex([f for f in features if f in table.index])

    table['Average'] = table[model_order].mean(axis=1)
    table = table.sort_values('Average', ascending=False, kind='stable')
    table.columns.name = None
    table.index.name = 'feature'
    return table
