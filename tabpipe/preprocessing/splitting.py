"""
Divisione train/test riproducibile.

Lo stesso (dataset, proportion, seed, stratify) produce sempre lo stesso Split:
il generatore è locale (`numpy.random.default_rng(seed)`), mai lo stato globale.
"""

import math
from dataclasses import dataclass
from numbers import Integral
from typing import Tuple, Dict, Any, Optional, List

import numpy as np
import pandas as pd

from ..dataset import Dataset
from ..utils.logger import get_logger
from ..utils.error_handling import InvalidProportionError, InvalidSeedError, DataError
from ..utils.config import SPLIT_CONFIG

logger = get_logger(__name__)

_MISSING_CLASS = '<missing>'


@dataclass(frozen=True)
class Split:
    """Indici di riga (ordinati, disgiunti) di train e test."""
    train_indices: Tuple[int, ...]
    test_indices: Tuple[int, ...]
    seed: int
    proportion: float
    stratify_column: Optional[str] = None

    @property
    def n_train(self) -> int:
        return len(self.train_indices)

    @property
    def n_test(self) -> int:
        return len(self.test_indices)

    def train(self, dataset: Dataset) -> Dataset:
        """Righe di train del dataset."""
        return dataset.take(self.train_indices)

    def test(self, dataset: Dataset) -> Dataset:
        """Righe di test del dataset."""
        return dataset.take(self.test_indices)


def _train_size(proportion: float, size: int) -> int:
    # epsilon: 0.7 * 10 non deve diventare 6
    return int(math.floor(proportion * size + 1e-9))


def _validate_split_args(proportion: Any, seed: Any) -> None:
    if isinstance(proportion, bool) or not isinstance(proportion, (int, float)):
        raise InvalidProportionError(f"Proporzione non numerica: {proportion!r}")
    if not 0 < proportion < 1:
        raise InvalidProportionError(f"La proporzione deve essere in (0, 1), ricevuto {proportion}")

    if isinstance(seed, bool) or not isinstance(seed, Integral):
        raise InvalidSeedError(f"Il seed deve essere un intero non negativo, ricevuto {seed!r}")
    if seed < 0:
        raise InvalidSeedError(f"Il seed deve essere non negativo, ricevuto {seed}")


def _class_buckets(values: pd.Series) -> List[Tuple[str, np.ndarray]]:
    """Posizioni di riga per classe, classi in ordine lessicale; i missing sono una classe a sé."""
    labels = values.map(lambda value: _MISSING_CLASS if pd.isna(value) else str(value))
    buckets = []
    for label in sorted(labels.unique()):
        buckets.append((label, np.flatnonzero(labels.to_numpy() == label)))
    return buckets


def split_dataset(
    dataset: Dataset,
    proportion: float = SPLIT_CONFIG['proportion'],
    seed: int = SPLIT_CONFIG['seed'],
    stratify: Optional[str] = None
) -> Split:
    """
    Divide le righe del dataset in train e test.

    Args:
        dataset: Dataset da dividere
        proportion: Frazione di righe in train, in (0, 1); train = floor(proportion * n)
        seed: Seed intero non negativo
        stratify: Colonna per lo split stratificato (opzionale)

    Returns:
        Split con indici ordinati

    Raises:
        InvalidProportionError: Proporzione fuori da (0, 1)
        InvalidSeedError: Seed non intero o negativo
        DataError: Colonna di stratificazione inesistente
    """
    _validate_split_args(proportion, seed)
    n_rows = dataset.n_rows
    rng = np.random.default_rng(int(seed))

    if stratify is None:
        logger.info(f"Divisione dataset (proportion={proportion}, seed={seed})...")
        permutation = rng.permutation(n_rows)
        n_train = _train_size(proportion, n_rows)
        train_idx = permutation[:n_train]
        test_idx = permutation[n_train:]
    else:
        if stratify not in dataset:
            raise DataError(f"Colonna di stratificazione '{stratify}' non presente nel dataset")

        logger.info(f"Divisione stratificata su '{stratify}' (proportion={proportion}, seed={seed})...")
        train_parts, test_parts = [], []
        for label, positions in _class_buckets(dataset.column(stratify)):
            shuffled = positions[rng.permutation(len(positions))]
            n_train = _train_size(proportion, len(positions))
            train_parts.append(shuffled[:n_train])
            test_parts.append(shuffled[n_train:])
            logger.info(f"  {label}: {n_train} train / {len(positions) - n_train} test")

        train_idx = np.concatenate(train_parts) if train_parts else np.array([], dtype=int)
        test_idx = np.concatenate(test_parts) if test_parts else np.array([], dtype=int)

    split = Split(
        train_indices=tuple(int(i) for i in np.sort(train_idx)),
        test_indices=tuple(int(i) for i in np.sort(test_idx)),
        seed=int(seed),
        proportion=float(proportion),
        stratify_column=stratify
    )

    logger.info(f"Train set: {split.n_train} righe")
    logger.info(f"Test set: {split.n_test} righe")
    if split.n_train == 0 or split.n_test == 0:
        logger.warning(f"⚠️  Split con un insieme vuoto (train={split.n_train}, test={split.n_test})")

    return split


def class_balance(split: Split, dataset: Dataset, column: str) -> pd.DataFrame:
    """
    Distribuzione delle classi di `column` in train e test (diagnostica).

    Returns:
        DataFrame con una riga per classe e colonne train / test / train_share
    """
    values = dataset.column(column).map(lambda value: _MISSING_CLASS if pd.isna(value) else str(value))
    train_counts = values.iloc[list(split.train_indices)].value_counts()
    test_counts = values.iloc[list(split.test_indices)].value_counts()

    balance = pd.DataFrame({'train': train_counts, 'test': test_counts}).fillna(0).astype(int)
    balance = balance.sort_index()
    total = balance['train'] + balance['test']
    balance['train_share'] = (balance['train'] / total.where(total > 0)).fillna(0.0)
    return balance


def split_from_config(dataset: Dataset, config: Dict[str, Any]) -> Split:
    """Come split_dataset, con i parametri letti da preprocessing.split."""
    split_config = config.get('preprocessing', {}).get('split', SPLIT_CONFIG)
    return split_dataset(
        dataset,
        proportion=split_config.get('proportion', SPLIT_CONFIG['proportion']),
        seed=split_config.get('seed', SPLIT_CONFIG['seed']),
        stratify=split_config.get('stratify')
    )
