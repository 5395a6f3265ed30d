"""
Metriche di valutazione per regressione e classificazione.

NOTA SU `rsquared`: è il quadrato della correlazione di Pearson fra predetti e
osservati, NON il coefficiente di determinazione 1 - SS_res/SS_tot (che è
esposto separatamente come `r2_score`). I due coincidono solo per predittori
lineari non distorti.

I casi degeneri (varianza nulla di predetti o osservati) restituiscono 0.
"""

from typing import Dict, Any, List, Sequence

import numpy as np
import pandas as pd
from scipy.stats import binomtest
from sklearn.metrics import (
    mean_squared_error, r2_score, mean_absolute_error, cohen_kappa_score, confusion_matrix, accuracy_score
)

from ..utils.logger import get_logger
from ..utils.error_handling import MetricComputationError

logger = get_logger(__name__)

REGRESSION_METRICS = ('rmse', 'rsquared', 'mae', 'r2_score')
CLASSIFICATION_METRICS = (
    'accuracy', 'confusion_matrix', 'no_information_rate', 'accuracy_p_value',
    'kappa', 'accuracy_ci_lower', 'accuracy_ci_upper'
)


def _as_arrays(observed, predicted):
    observed = np.asarray(observed)
    predicted = np.asarray(predicted)
    if observed.shape != predicted.shape:
        raise MetricComputationError(f"Lunghezze diverse: osservati {observed.shape}, predetti {predicted.shape}")
    if observed.size == 0:
        raise MetricComputationError("Nessuna osservazione su cui calcolare le metriche")
    return observed, predicted


def _sentinel(compute, name: str) -> float:
    try:
        return compute()
    except MetricComputationError as e:
        logger.debug(f"{name}: {e}, restituito 0")
        return 0.0


# ----------------------------------------------------------------------
# Regressione
# ----------------------------------------------------------------------

def rmse(observed, predicted) -> float:
    observed, predicted = _as_arrays(observed, predicted)
    return float(np.sqrt(mean_squared_error(observed.astype(float), predicted.astype(float))))


def mae(observed, predicted) -> float:
    observed, predicted = _as_arrays(observed, predicted)
    return float(mean_absolute_error(observed.astype(float), predicted.astype(float)))


def _squared_correlation(observed, predicted) -> float:
    observed, predicted = _as_arrays(observed, predicted)
    observed = observed.astype(float)
    predicted = predicted.astype(float)

    if observed.size < 2:
        raise MetricComputationError("Servono almeno due osservazioni")
    if np.ptp(observed) == 0 or np.ptp(predicted) == 0:
        raise MetricComputationError("Varianza nulla in osservati o predetti")

    r = np.corrcoef(observed, predicted)[0, 1]
    if not np.isfinite(r):
        raise MetricComputationError("Correlazione non finita")
    return float(np.clip(r * r, 0.0, 1.0))


def rsquared(observed, predicted) -> float:
    """Quadrato della correlazione di Pearson (0 con varianza nulla)."""
    return _sentinel(lambda: _squared_correlation(observed, predicted), 'rsquared')


def coefficient_of_determination(observed, predicted) -> float:
    """R² classico 1 - SS_res/SS_tot (0 con osservati costanti)."""
    observed, predicted = _as_arrays(observed, predicted)
    if observed.size < 2 or np.ptp(observed.astype(float)) == 0:
        return 0.0
    return float(r2_score(observed.astype(float), predicted.astype(float)))


def regression_metrics(observed, predicted) -> Dict[str, float]:
    return {
        'rmse': rmse(observed, predicted),
        'rsquared': rsquared(observed, predicted),
        'mae': mae(observed, predicted),
        'r2_score': coefficient_of_determination(observed, predicted)
    }


# ----------------------------------------------------------------------
# Classificazione
# ----------------------------------------------------------------------

def _sorted_labels(values: Sequence[Any]) -> List[Any]:
    distinct = list(pd.unique(np.asarray(values, dtype=object)))
    try:
        return sorted(distinct)
    except TypeError:
        return sorted(distinct, key=str)


def confusion_matrix_frame(observed, predicted) -> pd.DataFrame:
    """
    Matrice di confusione: righe = classi osservate, colonne = classi predette,
    etichette in ordine (unione di osservate e predette).
    """
    observed, predicted = _as_arrays(observed, predicted)
    labels = _sorted_labels(np.concatenate([observed.astype(object), predicted.astype(object)]))
    counts = confusion_matrix(observed, predicted, labels=labels)

    return pd.DataFrame(
        counts,
        index=pd.Index(labels, name='observed'),
        columns=pd.Index(labels, name='predicted')
    )


def accuracy(observed, predicted) -> float:
    observed, predicted = _as_arrays(observed, predicted)
    return float(accuracy_score(observed, predicted))


def no_information_rate(observed) -> float:
    """Frequenza relativa della classe osservata più comune."""
    observed = np.asarray(observed, dtype=object)
    if observed.size == 0:
        raise MetricComputationError("Nessuna osservazione")
    counts = pd.Series(observed).value_counts()
    return float(counts.iloc[0] / observed.size)


def accuracy_p_value(n_correct: int, n_total: int, nir: float) -> float:
    """P-value del test binomiale esatto unilaterale H1: accuracy > NIR."""
    return float(binomtest(int(n_correct), int(n_total), float(nir), alternative='greater').pvalue)


def accuracy_confidence_interval(n_correct: int, n_total: int, confidence_level: float = 0.95):
    """Intervallo di confidenza esatto (Clopper-Pearson) dell'accuracy."""
    ci = binomtest(int(n_correct), int(n_total)).proportion_ci(confidence_level=confidence_level, method='exact')
    return float(ci.low), float(ci.high)


def _kappa(observed, predicted) -> float:
    kappa = cohen_kappa_score(observed.astype(str), predicted.astype(str))
    if not np.isfinite(kappa):
        raise MetricComputationError("Kappa non definita (una sola classe)")
    return float(kappa)


def classification_metrics(observed, predicted) -> Dict[str, Any]:
    observed, predicted = _as_arrays(observed, predicted)

    n_total = int(observed.size)
    n_correct = int(np.sum(observed.astype(object) == predicted.astype(object)))
    nir = no_information_rate(observed)
    ci_lower, ci_upper = accuracy_confidence_interval(n_correct, n_total)

    return {
        'accuracy': accuracy(observed, predicted),
        'confusion_matrix': confusion_matrix_frame(observed, predicted),
        'no_information_rate': nir,
        'accuracy_p_value': accuracy_p_value(n_correct, n_total, nir),
        'kappa': _sentinel(lambda: _kappa(observed, predicted), 'kappa'),
        'accuracy_ci_lower': ci_lower,
        'accuracy_ci_upper': ci_upper
    }


def compute_metrics(kind: str, observed, predicted) -> Dict[str, Any]:
    """Metriche per tipo di modello ('regression' o 'classification')."""
    if kind == 'regression':
        return regression_metrics(observed, predicted)
    if kind == 'classification':
        return classification_metrics(observed, predicted)
    raise MetricComputationError(f"Tipo di modello sconosciuto: {kind}")
