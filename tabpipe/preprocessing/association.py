"""
Matrice di associazione fra coppie di colonne.

- numerica / numerica: correlazione di Pearson su osservazioni pairwise-complete
- categorica / categorica: Cramér's V (la correlazione lineare non è definita
  per categorie non ordinate)
- coppie miste: Pearson sui codici prodotti dal CategoricalEncoder

Casi degeneri (varianza nulla, variabile costante, meno di due osservazioni
complete) valgono 0 e sono marcati `degenerate=True` invece di propagare NaN.
"""

from dataclasses import dataclass
from typing import Tuple, List, Dict, Any, Optional

import numpy as np
import pandas as pd
from scipy.stats import chi2_contingency

from ..dataset import Dataset, CATEGORICAL
from ..utils.logger import get_logger
from ..utils.error_handling import MetricComputationError, DataError
from ..utils.config import ASSOCIATION_CONFIG
from .encoding import encode_categoricals

logger = get_logger(__name__)

PEARSON = 'pearson'
CRAMERS_V = 'cramers_v'


@dataclass(frozen=True)
class AssociationEntry:
    """Associazione fra due feature. Pearson in [-1, 1], Cramér's V in [0, 1]."""
    feature_a: str
    feature_b: str
    score: float
    kind: str
    degenerate: bool = False


def _pearson_statistic(x: pd.Series, y: pd.Series) -> float:
    mask = x.notna() & y.notna()
    xv = x[mask].to_numpy(dtype=float)
    yv = y[mask].to_numpy(dtype=float)

    if len(xv) < 2:
        raise MetricComputationError("Meno di due osservazioni complete")
    if np.ptp(xv) == 0 or np.ptp(yv) == 0:
        raise MetricComputationError("Varianza nulla")

    r = np.corrcoef(xv, yv)[0, 1]
    if not np.isfinite(r):
        raise MetricComputationError("Correlazione non finita")
    return float(np.clip(r, -1.0, 1.0))


def _cramers_v_statistic(x: pd.Series, y: pd.Series, bias_correction: bool = False) -> float:
    confusion_matrix = pd.crosstab(x, y)
    n = confusion_matrix.values.sum()
    if n == 0:
        raise MetricComputationError("Tabella di contingenza vuota")

    r, k = confusion_matrix.shape
    if min(r, k) - 1 == 0:
        raise MetricComputationError("Una delle variabili è costante")

    chi2, _, _, _ = chi2_contingency(confusion_matrix, correction=False)
    phi2 = chi2 / n

    if not bias_correction:
        return float(np.clip(np.sqrt(phi2 / (min(r, k) - 1)), 0.0, 1.0))

    if n < 2:
        raise MetricComputationError("Correzione del bias richiede almeno due osservazioni")
    phi2corr = max(0, phi2 - ((k - 1) * (r - 1)) / (n - 1))
    rcorr = r - ((r - 1) ** 2) / (n - 1)
    kcorr = k - ((k - 1) ** 2) / (n - 1)
    denom = min((kcorr - 1), (rcorr - 1))
    if denom <= 0:
        raise MetricComputationError("Denominatore corretto non positivo")
    return float(np.clip(np.sqrt(phi2corr / denom), 0.0, 1.0))


def pearson_correlation(x: pd.Series, y: pd.Series) -> float:
    """
    Correlazione di Pearson su osservazioni pairwise-complete.

    Returns:
        Valore in [-1, 1]; 0 se una delle due colonne ha varianza nulla
    """
    try:
        return _pearson_statistic(x, y)
    except MetricComputationError:
        return 0.0


def cramers_v(x: pd.Series, y: pd.Series, bias_correction: bool = False) -> float:
    """
    Calcola Cramér's V tra due variabili categoriche.

    V = sqrt(chi2 / (n * (min(righe, colonne) - 1))), senza correzione di Yates.
    Con bias_correction=True usa la versione corretta di Bergsma.

    Args:
        x: Prima variabile categorica
        y: Seconda variabile categorica
        bias_correction: Applica la correzione del bias

    Returns:
        Valore di Cramér's V (0-1); 0 se una variabile è costante
    """
    try:
        return _cramers_v_statistic(x, y, bias_correction)
    except MetricComputationError:
        return 0.0


class AssociationMatrix:
    """
    Matrice simmetrica di AssociationEntry, calcolata per coppia su richiesta
    (con cache) oppure per intero con `compute()`.
    """

    def __init__(
        self,
        dataset: Dataset,
        encoded: Optional[Dataset] = None,
        bias_correction: bool = ASSOCIATION_CONFIG['bias_correction']
    ):
        """
        Args:
            dataset: Dataset misto (tipi originali)
            encoded: Versione codificata dal CategoricalEncoder, usata per le coppie miste.
                Se None viene calcolata alla prima coppia mista.
            bias_correction: Cramér's V con correzione del bias
        """
        if encoded is not None and list(encoded.columns) != list(dataset.columns):
            raise DataError("Il dataset codificato non ha le stesse colonne del dataset originale")

        self._dataset = dataset
        self._frame = dataset.frame
        self._encoded = encoded
        self._bias_correction = bias_correction
        self._positions = {col: i for i, col in enumerate(dataset.columns)}
        self._cache: Dict[Tuple[int, int], Tuple[float, str, bool]] = {}

    @property
    def features(self) -> List[str]:
        return self._dataset.columns

    def _encoded_frame(self) -> pd.DataFrame:
        if self._encoded is None:
            _, self._encoded = encode_categoricals(self._dataset)
        return self._encoded.frame

    def _compute_pair(self, a: str, b: str) -> Tuple[float, str, bool]:
        type_a = self._dataset.column_type(a)
        type_b = self._dataset.column_type(b)

        if a == b:
            return 1.0, CRAMERS_V if type_a == CATEGORICAL else PEARSON, False

        if type_a == CATEGORICAL and type_b == CATEGORICAL:
            kind = CRAMERS_V
            compute = lambda: _cramers_v_statistic(self._frame[a], self._frame[b], self._bias_correction)
        elif type_a == CATEGORICAL or type_b == CATEGORICAL:
            kind = PEARSON
            encoded = self._encoded_frame()
            compute = lambda: _pearson_statistic(encoded[a], encoded[b])
        else:
            kind = PEARSON
            compute = lambda: _pearson_statistic(self._frame[a], self._frame[b])

        try:
            return compute(), kind, False
        except MetricComputationError as e:
            logger.debug(f"Associazione degenere {a} <-> {b} ({kind}): {e}")
            return 0.0, kind, True

    def entry(self, a: str, b: str) -> AssociationEntry:
        """AssociationEntry per la coppia (a, b), calcolata alla prima richiesta."""
        if a not in self._positions or b not in self._positions:
            raise DataError(f"Feature non presenti nella matrice: {[f for f in (a, b) if f not in self._positions]}")

        i, j = self._positions[a], self._positions[b]
        key = (min(i, j), max(i, j))
        if key not in self._cache:
            first, second = self.features[key[0]], self.features[key[1]]
            self._cache[key] = self._compute_pair(first, second)

        score, kind, degenerate = self._cache[key]
        return AssociationEntry(a, b, score, kind, degenerate)

    def score(self, a: str, b: str) -> float:
        return self.entry(a, b).score

    def compute(self) -> 'AssociationMatrix':
        """Calcola tutte le coppie (triangolo superiore, diagonale inclusa)."""
        features = self.features
        logger.info(f"Calcolo matrice di associazione su {len(features)} feature...")
        for i, a in enumerate(features):
            for b in features[i:]:
                self.entry(a, b)

        n_degenerate = sum(1 for _, _, degenerate in self._cache.values() if degenerate)
        if n_degenerate:
            logger.info(f"Coppie degeneri (score 0): {n_degenerate}")
        return self

    def entries(self) -> List[AssociationEntry]:
        """Tutte le coppie ordinate (a, b) con a, b nell'ordine delle colonne."""
        self.compute()
        return [self.entry(a, b) for a in self.features for b in self.features]

    def to_frame(self) -> pd.DataFrame:
        """Matrice simmetrica degli score come DataFrame feature x feature."""
        self.compute()
        features = self.features
        values = np.array([[self.score(a, b) for b in features] for a in features], dtype=float)
        return pd.DataFrame(values, index=features, columns=features)

    def kinds_frame(self) -> pd.DataFrame:
        """Tipo di associazione (pearson / cramers_v) per ogni coppia."""
        self.compute()
        features = self.features
        return pd.DataFrame([[self.entry(a, b).kind for b in features] for a in features],
                            index=features, columns=features)

    def high_associations(
        self,
        threshold: float = ASSOCIATION_CONFIG['high_association_threshold']
    ) -> List[AssociationEntry]:
        """Coppie distinte con |score| sopra la soglia, ordinate per score decrescente."""
        self.compute()
        features = self.features
        high = []
        for i, a in enumerate(features):
            for b in features[i + 1:]:
                entry = self.entry(a, b)
                if abs(entry.score) > threshold:
                    high.append(entry)

        high.sort(key=lambda entry: abs(entry.score), reverse=True)
        if high:
            logger.info(f"Trovate {len(high)} associazioni elevate (soglia: {threshold}):")
            for entry in high:
                logger.info(f"  {entry.feature_a} <-> {entry.feature_b}: {entry.score:.3f} ({entry.kind})")
        else:
            logger.info("Nessuna associazione elevata trovata")
        return high


def compute_association_matrix(
    dataset: Dataset,
    encoded: Optional[Dataset] = None,
    config: Optional[Dict[str, Any]] = None
) -> AssociationMatrix:
    """Calcola l'intera matrice di associazione con le opzioni di configurazione."""
    association_config = (config or {}).get('preprocessing', {}).get('association', ASSOCIATION_CONFIG)
    matrix = AssociationMatrix(
        dataset,
        encoded=encoded,
        bias_correction=bool(association_config.get('bias_correction', False))
    )
    return matrix.compute()
