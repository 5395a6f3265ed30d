"""
ModelHarness: addestra e valuta una lista di ModelSpec sullo stesso Split.

Ogni modello è isolato: un errore in costruzione, fit, predizione o metriche
produce un EvaluationResult con `error` valorizzato e gli altri modelli
proseguono. I risultati tornano sempre nell'ordine delle specifiche.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Any, List, Optional, Sequence, Tuple, Mapping

import numpy as np
import pandas as pd

from ..dataset import Dataset
from ..preprocessing.splitting import Split
from ..utils.logger import get_logger
from ..utils.error_handling import DataError, ModelFitError, ModelPredictError
from ..utils.config import TRAINING_CONFIG
from .models import ModelSpec, ModelAdapter, create_adapter
from .metrics import compute_metrics
from .feature_importance import ImportanceRecord, extract_importance

logger = get_logger(__name__)

CANCELLED = 'cancelled'

# Secondi tra due controlli di timeout / annullamento di un modello in esecuzione
POLL_INTERVAL = 0.05


@dataclass(frozen=True)
class EvaluationResult:
    """Esito della valutazione di un modello; `fitted_model` solo se richiesto."""
    model_name: str
    kind: str
    # il confusion_matrix è un DataFrame: escluso dal confronto
    metrics: Mapping[str, Any] = field(default_factory=dict, compare=False)
    error: Optional[str] = None
    training_time: float = 0.0
    importance: Tuple[ImportanceRecord, ...] = ()
    fitted_model: Optional[ModelAdapter] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        object.__setattr__(self, 'metrics', MappingProxyType(dict(self.metrics or {})))
        object.__setattr__(self, 'importance', tuple(self.importance or ()))

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class _PreparedData:
    X_train: pd.DataFrame
    y_train: pd.Series
    X_test: pd.DataFrame
    y_test: pd.Series
    column_types: Mapping[str, str]


class ModelHarness:
    """
    Esegue fit / predict / metriche per ogni ModelSpec.

    Args:
        target: Colonna target
        n_jobs: Modelli valutati in parallelo (thread pool)
        timeout: Secondi massimi per modello (None = nessun limite). Ogni modello gira
            su un thread daemon: un fit che sfora (o viene annullato) continua in
            background, ma il suo risultato viene scartato.
        random_state: Seed iniettato negli algoritmi stocastici
        compute_importance: Estrae la feature importance nativa
    """

    def __init__(
        self,
        target: str,
        n_jobs: int = TRAINING_CONFIG['n_jobs'],
        timeout: Optional[float] = TRAINING_CONFIG['timeout'],
        random_state: Optional[int] = TRAINING_CONFIG['random_state'],
        compute_importance: bool = TRAINING_CONFIG['compute_importance']
    ):
        if not target:
            raise DataError("La colonna target è obbligatoria")
        self.target = target
        self.n_jobs = max(1, int(n_jobs or 1))
        self.timeout = timeout
        self.random_state = random_state
        self.compute_importance = compute_importance

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'ModelHarness':
        training_config = {**TRAINING_CONFIG, **config.get('training', {})}
        return cls(
            target=training_config['target_column'],
            n_jobs=training_config['n_jobs'],
            timeout=training_config['timeout'],
            random_state=training_config['random_state'],
            compute_importance=training_config['compute_importance']
        )

    # ------------------------------------------------------------------
    # Preparazione dati
    # ------------------------------------------------------------------

    def _xy(self, part: Dataset, name: str) -> Tuple[pd.DataFrame, pd.Series]:
        frame = part.frame
        missing = frame[self.target].isna()
        if missing.any():
            logger.warning(f"⚠️  {name}: {int(missing.sum())} righe con target mancante escluse")
            frame = frame.loc[~missing].reset_index(drop=True)
        if frame.empty:
            raise DataError(f"{name}: nessuna riga con target valido")
        return frame.drop(columns=[self.target]), frame[self.target]

    def _prepare(self, dataset: Dataset, split: Split) -> _PreparedData:
        if self.target not in dataset:
            raise DataError(f"Colonna target '{self.target}' non presente nel dataset")
        if len(dataset.columns) < 2:
            raise DataError("Il dataset non contiene feature oltre al target")
        if split.n_train == 0 or split.n_test == 0:
            raise DataError(f"Split con un insieme vuoto (train={split.n_train}, test={split.n_test})")
        if max(split.train_indices + split.test_indices) >= dataset.n_rows:
            raise DataError("Lo split non corrisponde al dataset (indici fuori intervallo)")

        X_train, y_train = self._xy(split.train(dataset), "Train set")
        X_test, y_test = self._xy(split.test(dataset), "Test set")
        column_types = {col: dataset.column_type(col) for col in X_train.columns}

        logger.info(f"Train set: {X_train.shape[0]} righe, {X_train.shape[1]} colonne")
        logger.info(f"Test set: {X_test.shape[0]} righe, {X_test.shape[1]} colonne")
        return _PreparedData(X_train, y_train, X_test, y_test, MappingProxyType(column_types))

    # ------------------------------------------------------------------
    # Valutazione singolo modello
    # ------------------------------------------------------------------

    def _failed(self, spec: ModelSpec, error: Exception, training_time: float = 0.0) -> EvaluationResult:
        logger.error(f"✗ Errore nella valutazione di {spec.name}: {str(error)}")
        return EvaluationResult(spec.name, spec.kind, error=str(error), training_time=training_time)

    def evaluate_model(self, spec: ModelSpec, data: _PreparedData, keep_model: bool = False) -> EvaluationResult:
        """Costruzione, fit, predizione, metriche e importanza di un modello."""
        start_time = time.perf_counter()
        try:
            adapter = create_adapter(spec, random_state=self.random_state)
            adapter.fit(data.X_train, data.y_train, column_types=data.column_types)
        except Exception as e:
            return self._failed(spec, ModelFitError(spec.name, str(e)), time.perf_counter() - start_time)
        training_time = time.perf_counter() - start_time

        try:
            y_pred = adapter.predict(data.X_test)
            if spec.kind == 'regression' and not np.isfinite(y_pred).all():
                logger.warning(f"⚠️  {spec.name}: {int(np.sum(~np.isfinite(y_pred)))} predizioni non valide su test set")
            metrics = compute_metrics(spec.kind, data.y_test.to_numpy(), y_pred)
        except Exception as e:
            return self._failed(spec, ModelPredictError(spec.name, str(e)), training_time)

        importance: List[ImportanceRecord] = []
        if self.compute_importance:
            try:
                importance = extract_importance(spec.name, adapter)
            except Exception as e:
                logger.warning(f"⚠️  {spec.name}: feature importance non disponibile ({str(e)})")

        if spec.kind == 'regression':
            logger.info(f"✓ {spec.name} - RMSE: {metrics['rmse']:.6f}, R² (corr²): {metrics['rsquared']:.4f} "
                        f"[{training_time:.2f}s]")
        else:
            logger.info(f"✓ {spec.name} - Accuracy: {metrics['accuracy']:.4f}, Kappa: {metrics['kappa']:.4f} "
                        f"[{training_time:.2f}s]")

        return EvaluationResult(
            model_name=spec.name,
            kind=spec.kind,
            metrics=metrics,
            training_time=training_time,
            importance=tuple(importance),
            fitted_model=adapter if keep_model else None
        )

    def _evaluate_isolated(
        self,
        spec: ModelSpec,
        data: _PreparedData,
        keep_model: bool,
        cancel_event: Optional[threading.Event] = None
    ) -> EvaluationResult:
        """
        Esegue evaluate_model su un thread daemon e lo sorveglia a intervalli brevi.

        Se scade il timeout o viene impostato `cancel_event` il risultato viene
        registrato subito e il thread abbandonato: il fit continua in background
        ma il suo esito è scartato.
        """
        holder: Dict[str, EvaluationResult] = {}

        def target():
            try:
                holder['result'] = self.evaluate_model(spec, data, keep_model)
            except Exception as e:
                holder['result'] = self._failed(spec, e)

        worker = threading.Thread(target=target, name=f"tabpipe-{spec.name}", daemon=True)
        start_time = time.perf_counter()
        worker.start()

        while True:
            worker.join(POLL_INTERVAL)
            if not worker.is_alive():
                return holder['result']

            elapsed = time.perf_counter() - start_time
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(f"⚠️  {spec.name}: annullato durante l'esecuzione dopo {elapsed:.2f}s")
                return EvaluationResult(spec.name, spec.kind, error=CANCELLED, training_time=elapsed)
            if self.timeout is not None and elapsed >= self.timeout:
                logger.error(f"✗ {spec.name}: timeout dopo {self.timeout}s")
                return EvaluationResult(spec.name, spec.kind, error=f"timeout after {self.timeout}s",
                                        training_time=float(self.timeout))

    # ------------------------------------------------------------------
    # Esecuzione
    # ------------------------------------------------------------------

    def run(
        self,
        specs: Sequence[ModelSpec],
        split: Split,
        dataset: Dataset,
        keep_models: bool = False,
        cancel_event: Optional[threading.Event] = None
    ) -> List[EvaluationResult]:
        """
        Valuta tutte le specifiche e restituisce un risultato per ciascuna, nell'ordine dato.

        Args:
            specs: Modelli da valutare
            split: Split train/test
            dataset: Dataset completo (feature + target)
            keep_models: Conserva gli adapter fittati (necessari per la partial dependence)
            cancel_event: Se impostato, i modelli non ancora avviati e quelli in corso
                risultano 'cancelled'

        Raises:
            DataError: Target assente, split vuoto o incoerente con il dataset
        """
        specs = list(specs)
        if not specs:
            logger.warning("⚠️  Nessun modello da valutare")
            return []

        logger.info(f"Valutazione di {len(specs)} modelli (n_jobs={self.n_jobs}, timeout={self.timeout})...")
        data = self._prepare(dataset, split)

        def task(spec: ModelSpec) -> EvaluationResult:
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"{spec.name}: esecuzione annullata")
                return EvaluationResult(spec.name, spec.kind, error=CANCELLED)
            return self._evaluate_isolated(spec, data, keep_models, cancel_event)

        with ThreadPoolExecutor(max_workers=min(self.n_jobs, len(specs))) as executor:
            futures = [executor.submit(task, spec) for spec in specs]
            results = [future.result() for future in futures]

        n_ok = sum(1 for result in results if result.succeeded)
        logger.info(f"✅ Valutazione completata: {n_ok}/{len(results)} modelli riusciti")
        return results


def train_and_evaluate(
    specs: Sequence[ModelSpec],
    split: Split,
    dataset: Dataset,
    config: Dict[str, Any],
    keep_models: bool = False,
    cancel_event: Optional[threading.Event] = None
) -> List[EvaluationResult]:
    """ModelHarness configurato dalla sezione `training` ed eseguito sulle specifiche."""
    harness = ModelHarness.from_config(config)
    return harness.run(specs, split, dataset, keep_models=keep_models, cancel_event=cancel_event)
