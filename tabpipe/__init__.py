"""
tabpipe: preprocessing di dati tabellari e valutazione multi-modello.
"""

from .dataset import Dataset, NUMERIC, CATEGORICAL
from .pipeline import PipelineResult, run_pipeline, run_preprocessing

__version__ = '1.0.0'

__all__ = ['Dataset', 'NUMERIC', 'CATEGORICAL', 'PipelineResult', 'run_pipeline', 'run_preprocessing']
