"""
Partial dependence (model-agnostic) per una feature o una coppia di feature.

Per ogni punto della griglia: imposta la feature (o la coppia) su TUTTE le righe,
predice e fa la media. Per i classificatori si media la probabilità di
`target_class` (default: l'ultima classe in ordine).

Costo: O(griglia x righe) predizioni per una feature, O(griglia^2 x righe) per
una coppia. Con dataset grandi usare `sample_size` (campione riproducibile con
`seed`) e/o ridurre `grid_resolution`.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from ..dataset import Dataset, CATEGORICAL
from ..utils.logger import get_logger
from ..utils.error_handling import DataError, ConfigurationError
from ..utils.config import PARTIAL_DEPENDENCE_CONFIG

logger = get_logger(__name__)

GRID_METHODS = ('quantile', 'uniform')
PD_COLUMN = 'partial_dependence'


@dataclass(frozen=True)
class PartialDependenceCurve:
    model_name: str
    feature: str
    grid: Tuple[Any, ...]
    values: Tuple[float, ...]
    target_class: Any = None

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({self.feature: list(self.grid), PD_COLUMN: list(self.values)})


@dataclass(frozen=True)
class PartialDependenceSurface:
    """`values[i][j]` corrisponde a (grid_a[i], grid_b[j])."""
    model_name: str
    features: Tuple[str, str]
    grid_a: Tuple[Any, ...]
    grid_b: Tuple[Any, ...]
    values: Tuple[Tuple[float, ...], ...]
    target_class: Any = None

    def to_frame(self) -> pd.DataFrame:
        feature_a, feature_b = self.features
        rows = [
            {feature_a: a, feature_b: b, PD_COLUMN: self.values[i][j]}
            for i, a in enumerate(self.grid_a)
            for j, b in enumerate(self.grid_b)
        ]
        return pd.DataFrame(rows, columns=[feature_a, feature_b, PD_COLUMN])


def _sorted_levels(values: Sequence[Any]) -> List[Any]:
    try:
        return sorted(values)
    except TypeError:
        return sorted(values, key=str)


def feature_grid(
    series: pd.Series,
    column_type: str,
    max_points: int = PARTIAL_DEPENDENCE_CONFIG['max_grid_points'],
    grid_method: str = PARTIAL_DEPENDENCE_CONFIG['grid_method']
) -> List[Any]:
    """
    Griglia di valori per una feature.

    - categorica: tutti i livelli osservati, ordinati
    - numerica: tutti i valori distinti se sono al più `max_points`, altrimenti
      `max_points` quantili osservati ('quantile') o punti equispaziati ('uniform')
    """
    observed = series.dropna()
    if observed.empty:
        raise DataError(f"Feature '{series.name}' senza valori osservati")

    if column_type == CATEGORICAL:
        return _sorted_levels(observed.unique().tolist())

    values = observed.to_numpy(dtype=float)
    distinct = np.unique(values)
    if len(distinct) <= max_points:
        return distinct.tolist()

    if grid_method == 'uniform':
        return np.linspace(distinct[0], distinct[-1], max_points).tolist()

    probs = np.linspace(0.0, 1.0, max_points)
    return np.unique(np.quantile(values, probs, method='inverted_cdf')).tolist()


def _resolve_class_index(model: Any, target_class: Any) -> Tuple[Optional[int], Any]:
    if not getattr(model, 'is_classifier', False):
        return None, None

    classes = list(model.classes_)
    if target_class is None:
        return len(classes) - 1, classes[-1]
    if target_class not in classes:
        raise DataError(f"Classe '{target_class}' non presente fra le classi del modello: {classes}")
    return classes.index(target_class), target_class


def _average_prediction(model: Any, frame: pd.DataFrame, assignments: dict, class_index: Optional[int]) -> float:
    modified = frame.copy()
    for feature, value in assignments.items():
        modified[feature] = value
    if class_index is None:
        return float(np.mean(model.predict(modified)))
    return float(np.mean(model.predict_proba(modified)[:, class_index]))


def partial_dependence(
    model: Any,
    dataset: Dataset,
    features: Union[str, Sequence[str]],
    grid_resolution: Optional[int] = None,
    max_grid_points: int = PARTIAL_DEPENDENCE_CONFIG['max_grid_points'],
    grid_method: str = PARTIAL_DEPENDENCE_CONFIG['grid_method'],
    n_jobs: int = PARTIAL_DEPENDENCE_CONFIG['n_jobs'],
    target_class: Any = None,
    sample_size: Optional[int] = PARTIAL_DEPENDENCE_CONFIG['sample_size'],
    seed: int = 0,
    model_name: Optional[str] = None
) -> Union[PartialDependenceCurve, PartialDependenceSurface]:
    """
    Calcola la partial dependence di un modello fittato.

    Args:
        model: ModelAdapter fittato
        dataset: Dataset con (almeno) le feature usate nel training
        features: Nome di una feature o coppia di nomi
        grid_resolution: Numero massimo di punti per feature (sovrascrive max_grid_points)
        max_grid_points: Limite di default dei punti di griglia
        grid_method: 'quantile' o 'uniform' per le numeriche con molti valori
        n_jobs: Punti di griglia valutati in parallelo
        target_class: Classe di cui mediare la probabilità (solo classificatori)
        sample_size: Righe da campionare prima del calcolo (None = tutte)
        seed: Seed del campionamento
        model_name: Nome da riportare nel risultato

    Returns:
        PartialDependenceCurve (una feature) o PartialDependenceSurface (coppia)

    Raises:
        DataError: Feature sconosciute o non usate dal modello
        ConfigurationError: Parametri di griglia non validi
    """
    features = [features] if isinstance(features, str) else list(features)
    if len(features) not in (1, 2) or len(set(features)) != len(features):
        raise ConfigurationError(f"Servono una feature o una coppia di feature distinte, ricevuto {features}")
    if grid_method not in GRID_METHODS:
        raise ConfigurationError(f"grid_method non valido: {grid_method} (ammessi: {GRID_METHODS})")

    cap = int(grid_resolution if grid_resolution is not None else max_grid_points)
    if cap < 2:
        raise ConfigurationError(f"La griglia richiede almeno 2 punti, ricevuto {cap}")

    unknown = [f for f in features if f not in dataset]
    if unknown:
        raise DataError(f"Feature non presenti nel dataset: {unknown}")
    not_used = [f for f in features if f not in model.feature_names]
    if not_used:
        raise DataError(f"Feature non usate dal modello: {not_used}")

    model_name = model_name or model.algorithm
    class_index, resolved_class = _resolve_class_index(model, target_class)

    frame = dataset.frame[model.feature_names]
    if sample_size is not None and len(frame) > sample_size:
        rng = np.random.default_rng(seed)
        rows = np.sort(rng.choice(len(frame), size=int(sample_size), replace=False))
        frame = frame.iloc[rows].reset_index(drop=True)
        logger.info(f"Partial dependence su un campione di {sample_size} righe")

    grids = [feature_grid(dataset.column(f), dataset.column_type(f), cap, grid_method) for f in features]

    if len(features) == 1:
        points = [{features[0]: value} for value in grids[0]]
    else:
        points = [{features[0]: a, features[1]: b} for a in grids[0] for b in grids[1]]

    logger.info(f"Partial dependence {model_name} su {features}: {len(points)} punti x {len(frame)} righe")

    def evaluate(point):
        return _average_prediction(model, frame, point, class_index)

    if n_jobs and n_jobs > 1:
        with ThreadPoolExecutor(max_workers=int(n_jobs)) as executor:
            averages = list(executor.map(evaluate, points))
    else:
        averages = [evaluate(point) for point in points]

    if len(features) == 1:
        return PartialDependenceCurve(
            model_name=model_name,
            feature=features[0],
            grid=tuple(grids[0]),
            values=tuple(averages),
            target_class=resolved_class
        )

    n_b = len(grids[1])
    values = tuple(tuple(averages[i * n_b:(i + 1) * n_b]) for i in range(len(grids[0])))
    return PartialDependenceSurface(
        model_name=model_name,
        features=(features[0], features[1]),
        grid_a=tuple(grids[0]),
        grid_b=tuple(grids[1]),
        values=values,
        target_class=resolved_class
    )
