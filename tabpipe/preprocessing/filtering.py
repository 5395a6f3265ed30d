"""
Filtro delle feature degeneri (costanti o near-zero-variance).

Una colonna è degenere se ha al più un valore distinto (sempre rimossa),
oppure se il rapporto di frequenza fra il valore più comune e il secondo è
almeno `frequency_ratio_threshold` E la percentuale di valori distinti è al
più `unique_ratio_threshold`. Servono entrambe le condizioni.
"""

from dataclasses import dataclass, asdict
from typing import Tuple, List, Dict, Any, Iterable, Optional

import pandas as pd

from ..dataset import Dataset
from ..utils.logger import get_logger
from ..utils.error_handling import DataError
from ..utils.config import NZV_CONFIG

logger = get_logger(__name__)


@dataclass(frozen=True)
class FeatureFlag:
    """Statistiche near-zero-variance di una colonna."""
    name: str
    is_degenerate: bool
    distinct_count: int
    distinct_ratio: float       # percentuale (0-100) di valori distinti sul totale righe
    frequency_ratio: float      # conteggio primo valore / conteggio secondo valore


def compute_feature_flag(
    series: pd.Series,
    frequency_ratio_threshold: float = NZV_CONFIG['frequency_ratio_threshold'],
    unique_ratio_threshold: float = NZV_CONFIG['unique_ratio_threshold']
) -> FeatureFlag:
    """
    Calcola il FeatureFlag di una singola colonna.

    Args:
        series: Valori della colonna (i missing non contano come valore distinto)
        frequency_ratio_threshold: Soglia sul rapporto di frequenza
        unique_ratio_threshold: Soglia (frazione) sulla percentuale di valori distinti

    Returns:
        FeatureFlag della colonna
    """
    value_counts = series.value_counts(dropna=True)
    distinct_count = int(len(value_counts))
    n_rows = len(series)

    distinct_ratio = 100.0 * distinct_count / n_rows if n_rows > 0 else 0.0

    if distinct_count < 2:
        frequency_ratio = 0.0
    else:
        frequency_ratio = float(value_counts.iloc[0]) / float(value_counts.iloc[1])

    is_constant = distinct_count <= 1
    is_near_zero_variance = (
        frequency_ratio >= frequency_ratio_threshold
        and distinct_ratio <= unique_ratio_threshold * 100.0
    )

    return FeatureFlag(
        name=series.name,
        is_degenerate=bool(is_constant or is_near_zero_variance),
        distinct_count=distinct_count,
        distinct_ratio=float(distinct_ratio),
        frequency_ratio=float(frequency_ratio)
    )


def compute_feature_flags(
    dataset: Dataset,
    frequency_ratio_threshold: float = NZV_CONFIG['frequency_ratio_threshold'],
    unique_ratio_threshold: float = NZV_CONFIG['unique_ratio_threshold']
) -> List[FeatureFlag]:
    """FeatureFlag per tutte le colonne, nell'ordine del dataset."""
    frame = dataset.frame
    return [
        compute_feature_flag(frame[col], frequency_ratio_threshold, unique_ratio_threshold)
        for col in dataset.columns
    ]


def filter_features(
    dataset: Dataset,
    frequency_ratio_threshold: float = NZV_CONFIG['frequency_ratio_threshold'],
    unique_ratio_threshold: float = NZV_CONFIG['unique_ratio_threshold'],
    exclude: Optional[Iterable[str]] = None
) -> Tuple[Dataset, List[FeatureFlag]]:
    """
    Rimuove le colonne degeneri dal dataset.

    Args:
        dataset: Dataset da filtrare
        frequency_ratio_threshold: Soglia sul rapporto di frequenza (default 19)
        unique_ratio_threshold: Soglia sulla frazione di valori distinti (default 0.10)
        exclude: Colonne da non rimuovere mai (es. il target); compaiono comunque nei flag

    Returns:
        Tuple con Dataset filtrato e FeatureFlag di TUTTE le colonne

    Raises:
        DataError: Se tutte le colonne risultano degeneri
    """
    logger.info(f"Filtro near-zero-variance (freq ratio >= {frequency_ratio_threshold}, "
                f"distinct ratio <= {unique_ratio_threshold:.1%})...")

    excluded = set(exclude or [])
    flags = compute_feature_flags(dataset, frequency_ratio_threshold, unique_ratio_threshold)

    to_remove = [flag.name for flag in flags if flag.is_degenerate and flag.name not in excluded]

    if len(to_remove) == len(dataset.columns):
        raise DataError("Tutte le colonne del dataset sono degeneri: niente da analizzare")

    if to_remove:
        logger.info(f"Rimosse {len(to_remove)} colonne degeneri: {to_remove}")
        for flag in flags:
            if flag.name in to_remove:
                logger.info(f"  {flag.name}: {flag.distinct_count} valori distinti "
                            f"({flag.distinct_ratio:.2f}%), freq ratio {flag.frequency_ratio:.2f}")
    else:
        logger.info("Nessuna colonna degenere trovata")

    kept_degenerate = [flag.name for flag in flags if flag.is_degenerate and flag.name in excluded]
    if kept_degenerate:
        logger.warning(f"⚠️  Colonne degeneri mantenute perché escluse dal filtro: {kept_degenerate}")

    return dataset.drop(to_remove), flags


def filter_features_from_config(
    dataset: Dataset,
    config: Dict[str, Any],
    exclude: Optional[Iterable[str]] = None
) -> Tuple[Dataset, List[FeatureFlag]]:
    """Come filter_features, con le soglie lette dalla sezione preprocessing.near_zero_variance."""
    nzv_config = config.get('preprocessing', {}).get('near_zero_variance', NZV_CONFIG)
    return filter_features(
        dataset,
        frequency_ratio_threshold=float(nzv_config.get('frequency_ratio_threshold',
                                                       NZV_CONFIG['frequency_ratio_threshold'])),
        unique_ratio_threshold=float(nzv_config.get('unique_ratio_threshold',
                                                    NZV_CONFIG['unique_ratio_threshold'])),
        exclude=exclude
    )


def flags_to_frame(flags: List[FeatureFlag]) -> pd.DataFrame:
    """DataFrame di audit dei FeatureFlag (una riga per colonna)."""
    return pd.DataFrame([asdict(flag) for flag in flags],
                        columns=['name', 'is_degenerate', 'distinct_count',
                                 'distinct_ratio', 'frequency_ratio'])
