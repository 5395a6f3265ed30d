"""
Dataset tipizzato in memoria: colonne ordinate e nominate, ciascuna
`numeric` o `categorical`, con valori allineati per indice di riga.

Il Dataset è trattato come immutabile: ogni operazione restituisce un nuovo
oggetto e l'accesso al DataFrame sottostante avviene sempre tramite copia.
"""

from types import MappingProxyType
from typing import Dict, Any, List, Optional, Iterable, Mapping, Sequence

import numpy as np
import pandas as pd

from ..utils.logger import get_logger
from ..utils.error_handling import DataError, validate_dataframe

logger = get_logger(__name__)

NUMERIC = 'numeric'
CATEGORICAL = 'categorical'
COLUMN_TYPES = (NUMERIC, CATEGORICAL)


def infer_column_type(series: pd.Series) -> str:
    """Tipo semantico di una colonna dal suo dtype (i booleani sono categorici)."""
    if pd.api.types.is_bool_dtype(series):
        return CATEGORICAL
    if pd.api.types.is_numeric_dtype(series):
        return NUMERIC
    return CATEGORICAL


class Dataset:
    """
    Tabella tipizzata: wrapper di un DataFrame con il tipo semantico di ogni colonna.

    Invarianti: tutte le colonne hanno la stessa lunghezza, i nomi non si ripetono,
    ogni colonna ha esattamente un tipo fra `numeric` e `categorical`.
    """

    def __init__(self, frame: pd.DataFrame, column_types: Optional[Mapping[str, str]] = None):
        """
        Args:
            frame: DataFrame con i dati
            column_types: Tipo per colonna; se None viene inferito dai dtype.
                Se fornito deve coprire tutte e sole le colonne del frame.

        Raises:
            DataError: Dataset vuoto, nomi ripetuti o tipi non coerenti
        """
        validate_dataframe(frame, name="Dataset")

        frame = frame.reset_index(drop=True).copy()

        if column_types is None:
            types = {col: infer_column_type(frame[col]) for col in frame.columns}
        else:
            missing = [col for col in frame.columns if col not in column_types]
            unknown = [col for col in column_types if col not in frame.columns]
            if missing or unknown:
                raise DataError(
                    f"Tipi di colonna non coerenti con il DataFrame "
                    f"(mancanti: {missing}, sconosciuti: {unknown})"
                )
            types = {col: column_types[col] for col in frame.columns}

        invalid = {col: t for col, t in types.items() if t not in COLUMN_TYPES}
        if invalid:
            raise DataError(f"Tipi di colonna non validi: {invalid} (ammessi: {COLUMN_TYPES})")

        for col, col_type in types.items():
            if col_type == NUMERIC and infer_column_type(frame[col]) != NUMERIC:
                try:
                    frame[col] = pd.to_numeric(frame[col], errors='raise')
                except (ValueError, TypeError) as e:
                    raise DataError(f"Colonna '{col}' dichiarata numerica ma non convertibile: {e}") from e

        self._frame = frame
        self._types = MappingProxyType(types)

    # ------------------------------------------------------------------
    # Costruttori
    # ------------------------------------------------------------------

    @classmethod
    def from_dataframe(cls, frame: pd.DataFrame, column_types: Optional[Mapping[str, str]] = None) -> 'Dataset':
        return cls(frame, column_types)

    @classmethod
    def from_columns(
        cls,
        columns: Mapping[str, Sequence[Any]],
        column_types: Optional[Mapping[str, str]] = None
    ) -> 'Dataset':
        """
        Costruisce un Dataset da un mapping nome -> sequenza di valori.

        Raises:
            DataError: Se le colonne hanno lunghezze diverse
        """
        lengths = {name: len(values) for name, values in columns.items()}
        if len(set(lengths.values())) > 1:
            raise DataError(f"Colonne con lunghezze diverse: {lengths}")
        return cls(pd.DataFrame({name: list(values) for name, values in columns.items()}), column_types)

    # ------------------------------------------------------------------
    # Accesso
    # ------------------------------------------------------------------

    @property
    def frame(self) -> pd.DataFrame:
        """Copia del DataFrame sottostante."""
        return self._frame.copy()

    @property
    def columns(self) -> List[str]:
        return list(self._frame.columns)

    @property
    def column_types(self) -> Mapping[str, str]:
        return self._types

    @property
    def n_rows(self) -> int:
        return len(self._frame)

    @property
    def numeric_columns(self) -> List[str]:
        return [col for col in self.columns if self._types[col] == NUMERIC]

    @property
    def categorical_columns(self) -> List[str]:
        return [col for col in self.columns if self._types[col] == CATEGORICAL]

    def column_type(self, name: str) -> str:
        self._check_columns([name])
        return self._types[name]

    def column(self, name: str) -> pd.Series:
        """Copia dei valori di una colonna."""
        self._check_columns([name])
        return self._frame[name].copy()

    def __len__(self) -> int:
        return self.n_rows

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def __repr__(self) -> str:
        return (f"Dataset(rows={self.n_rows}, numeric={len(self.numeric_columns)}, "
                f"categorical={len(self.categorical_columns)})")

    # ------------------------------------------------------------------
    # Trasformazioni (restituiscono nuovi Dataset)
    # ------------------------------------------------------------------

    def select(self, names: Iterable[str]) -> 'Dataset':
        names = list(names)
        self._check_columns(names)
        return Dataset(self._frame[names], {name: self._types[name] for name in names})

    def drop(self, names: Iterable[str]) -> 'Dataset':
        names = set(names)
        self._check_columns(names)
        return self.select([col for col in self.columns if col not in names])

    def take(self, indices: Sequence[int]) -> 'Dataset':
        """Sottoinsieme di righe per posizione; l'indice viene rinumerato da 0."""
        indices = np.asarray(indices, dtype=int)
        if indices.size and (indices.min() < 0 or indices.max() >= self.n_rows):
            raise DataError(f"Indici di riga fuori dall'intervallo [0, {self.n_rows})")
        return Dataset(self._frame.iloc[indices], dict(self._types))

    def with_column(self, name: str, values: Sequence[Any], column_type: Optional[str] = None) -> 'Dataset':
        """Nuovo Dataset con la colonna aggiunta o sostituita."""
        if len(values) != self.n_rows:
            raise DataError(
                f"La colonna '{name}' ha {len(values)} valori, il dataset ha {self.n_rows} righe"
            )
        frame = self._frame.copy()
        frame[name] = values.to_numpy() if isinstance(values, pd.Series) else values
        types = dict(self._types)
        types[name] = column_type or infer_column_type(frame[name])
        return Dataset(frame, types)

    def _check_columns(self, names: Iterable[str]) -> None:
        missing = [name for name in names if name not in self._types]
        if missing:
            raise DataError(f"Colonne non presenti nel dataset: {missing}")
