"""
Encoding delle variabili categoriche in codici interi stabili.

L'encoding serve SOLO al calcolo delle associazioni (correlazione sui codici):
i modelli ricevono il dataset misto originale e gestiscono il proprio encoding.
"""

from types import MappingProxyType
from typing import Tuple, Dict, Any, Mapping, List

import numpy as np
import pandas as pd

from ..dataset import Dataset, NUMERIC
from ..utils.logger import get_logger
from ..utils.error_handling import EncodingError
from ..utils.config import ENCODING_CONFIG

logger = get_logger(__name__)

EncodingTable = Mapping[str, Mapping[Any, int]]


def _lexical_order(values: List[Any]) -> List[Any]:
    """Ordina i valori distinti in ordine lessicale della loro forma testuale."""
    return sorted(values, key=lambda value: str(value))


def build_encoding_table(dataset: Dataset, max_categories: int = ENCODING_CONFIG['max_categories']) -> EncodingTable:
    """
    Costruisce la tabella di encoding (codici 1..k in ordine lessicale).

    Args:
        dataset: Dataset con colonne categoriche
        max_categories: Numero massimo di valori distinti per colonna

    Returns:
        Mapping read-only colonna -> (valore -> codice)

    Raises:
        EncodingError: Se una colonna supera max_categories
    """
    table = {}
    frame = dataset.frame

    for col in dataset.categorical_columns:
        distinct = frame[col].dropna().unique().tolist()

        if len(distinct) > max_categories:
            raise EncodingError(
                f"Colonna '{col}' con {len(distinct)} valori distinti "
                f"(limite: {max_categories}); probabile testo libero"
            )

        codes = {value: code for code, value in enumerate(_lexical_order(distinct), start=1)}
        table[col] = MappingProxyType(codes)
        logger.debug(f"  {col}: {len(codes)} categorie codificate")

    return MappingProxyType(table)


def apply_encoding(dataset: Dataset, table: EncodingTable) -> Dataset:
    """
    Applica una tabella di encoding esistente; le categorie non viste diventano missing.

    Args:
        dataset: Dataset da codificare
        table: Tabella prodotta da build_encoding_table

    Returns:
        Nuovo Dataset interamente numerico
    """
    frame = dataset.frame

    for col in dataset.categorical_columns:
        if col not in table:
            raise EncodingError(f"Colonna categorica '{col}' assente dalla tabella di encoding")

        mapping = table[col]
        encoded = frame[col].map(lambda value: mapping.get(value, np.nan) if pd.notna(value) else np.nan)

        unseen = frame[col].notna() & encoded.isna()
        if unseen.any():
            logger.warning(f"⚠️  {col}: {int(unseen.sum())} valori non presenti nella tabella, codificati come missing")

        frame[col] = encoded.astype(float)

    return Dataset(frame, {col: NUMERIC for col in frame.columns})


def encode_categoricals(
    dataset: Dataset,
    max_categories: int = ENCODING_CONFIG['max_categories']
) -> Tuple[EncodingTable, Dataset]:
    """
    Codifica tutte le colonne categoriche; le numeriche passano invariate.

    Args:
        dataset: Dataset misto
        max_categories: Limite di cardinalità per colonna

    Returns:
        Tuple con EncodingTable e Dataset codificato (tutto numerico)
    """
    logger.info("Encoding variabili categoriche per il calcolo delle associazioni...")

    cat_cols = dataset.categorical_columns
    if not cat_cols:
        logger.info("Nessuna variabile categorica da encodare")

    table = build_encoding_table(dataset, max_categories)
    encoded = apply_encoding(dataset, table)

    logger.info(f"Encoding completato: {len(cat_cols)} colonne categoriche, shape {encoded.frame.shape}")
    return table, encoded


def encode_from_config(dataset: Dataset, config: Dict[str, Any]) -> Tuple[EncodingTable, Dataset]:
    """Come encode_categoricals, con il limite letto da preprocessing.encoding."""
    encoding_config = config.get('preprocessing', {}).get('encoding', ENCODING_CONFIG)
    return encode_categoricals(
        dataset,
        max_categories=int(encoding_config.get('max_categories', ENCODING_CONFIG['max_categories']))
    )
