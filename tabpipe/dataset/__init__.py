"""
Package dataset: tabella tipizzata in memoria consumata dalla pipeline.
"""

from .table import Dataset, NUMERIC, CATEGORICAL, COLUMN_TYPES, infer_column_type

__all__ = ['Dataset', 'NUMERIC', 'CATEGORICAL', 'COLUMN_TYPES', 'infer_column_type']
