"""
Package training: adapter dei modelli, harness di valutazione, metriche,
feature importance e partial dependence.
"""

from .models import (
    REGRESSION,
    CLASSIFICATION,
    MODEL_KINDS,
    ModelSpec,
    ModelAdapter,
    FeatureEncoder,
    ADAPTER_REGISTRY,
    register_adapter,
    available_algorithms,
    create_adapter,
    load_model_specs
)
from .metrics import (
    rmse,
    mae,
    rsquared,
    coefficient_of_determination,
    accuracy,
    confusion_matrix_frame,
    no_information_rate,
    accuracy_p_value,
    accuracy_confidence_interval,
    regression_metrics,
    classification_metrics,
    compute_metrics
)
from .train import CANCELLED, EvaluationResult, ModelHarness, train_and_evaluate
from .feature_importance import (
    ImportanceRecord,
    normalize_importance,
    extract_importance,
    importance_to_frame,
    importance_table
)
from .partial_dependence import (
    PartialDependenceCurve,
    PartialDependenceSurface,
    feature_grid,
    partial_dependence
)
from .evaluation import summarize_results, best_result, generate_evaluation_summary, format_summary_table

__all__ = [
    # Modelli
    'REGRESSION', 'CLASSIFICATION', 'MODEL_KINDS', 'ModelSpec', 'ModelAdapter', 'FeatureEncoder',
    'ADAPTER_REGISTRY', 'register_adapter', 'available_algorithms', 'create_adapter', 'load_model_specs',

    # Metriche
    'rmse', 'mae', 'rsquared', 'coefficient_of_determination', 'accuracy', 'confusion_matrix_frame',
    'no_information_rate', 'accuracy_p_value', 'accuracy_confidence_interval',
    'regression_metrics', 'classification_metrics', 'compute_metrics',

    # Harness
    'CANCELLED', 'EvaluationResult', 'ModelHarness', 'train_and_evaluate',

    # Importanza
    'ImportanceRecord', 'normalize_importance', 'extract_importance',
    'importance_to_frame', 'importance_table',

    # Partial dependence
    'PartialDependenceCurve', 'PartialDependenceSurface', 'feature_grid', 'partial_dependence',

    # Report
    'summarize_results', 'best_result', 'generate_evaluation_summary', 'format_summary_table'
]
