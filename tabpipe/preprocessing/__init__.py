"""
Package preprocessing della pipeline.

Contiene:
- filtering: Filtro delle feature degeneri (near-zero-variance)
- encoding: Codici interi per le variabili categoriche
- association: Matrice di associazione (Pearson / Cramér's V)
- splitting: Divisione train/test riproducibile
"""

from .filtering import (
    FeatureFlag,
    compute_feature_flag,
    compute_feature_flags,
    filter_features,
    filter_features_from_config,
    flags_to_frame
)
from .encoding import (
    EncodingTable,
    build_encoding_table,
    apply_encoding,
    encode_categoricals,
    encode_from_config
)
from .association import (
    PEARSON,
    CRAMERS_V,
    AssociationEntry,
    AssociationMatrix,
    pearson_correlation,
    cramers_v,
    compute_association_matrix
)
from .splitting import Split, split_dataset, split_from_config, class_balance

__all__ = [
    # Filtro
    'FeatureFlag', 'compute_feature_flag', 'compute_feature_flags',
    'filter_features', 'filter_features_from_config', 'flags_to_frame',

    # Encoding
    'EncodingTable', 'build_encoding_table', 'apply_encoding',
    'encode_categoricals', 'encode_from_config',

    # Associazioni
    'PEARSON', 'CRAMERS_V', 'AssociationEntry', 'AssociationMatrix',
    'pearson_correlation', 'cramers_v', 'compute_association_matrix',

    # Split
    'Split', 'split_dataset', 'split_from_config', 'class_balance'
]
