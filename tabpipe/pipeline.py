"""
Orchestrazione della pipeline completa:
filtro -> encoding -> associazioni -> split -> training -> importanza -> partial dependence.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Union, Tuple

import pandas as pd

from .dataset import Dataset
from .preprocessing.filtering import FeatureFlag, filter_features_from_config
from .preprocessing.encoding import EncodingTable, encode_from_config
from .preprocessing.association import AssociationMatrix, AssociationEntry, compute_association_matrix
from .preprocessing.splitting import Split, split_from_config
from .training.models import ModelSpec, load_model_specs
from .training.train import EvaluationResult, ModelHarness
from .training.feature_importance import importance_table
from .training.partial_dependence import PartialDependenceCurve, PartialDependenceSurface, partial_dependence
from .training.evaluation import summarize_results, generate_evaluation_summary
from .utils.logger import get_logger
from .utils.error_handling import safe_execution, DataError, ConfigurationError
from .utils.config import ASSOCIATION_CONFIG, PARTIAL_DEPENDENCE_CONFIG

logger = get_logger(__name__)

PartialDependenceResult = Union[PartialDependenceCurve, PartialDependenceSurface]


@dataclass
class PipelineResult:
    """Tutti gli artefatti prodotti da una esecuzione della pipeline."""
    dataset: Dataset
    feature_flags: List[FeatureFlag]
    encoding_table: EncodingTable
    associations: AssociationMatrix
    high_associations: List[AssociationEntry]
    split: Split
    results: List[EvaluationResult]
    summary: pd.DataFrame
    importance: pd.DataFrame
    partial_dependence: List[PartialDependenceResult] = field(default_factory=list)
    report: Dict[str, Any] = field(default_factory=dict)


@safe_execution(error_type=DataError)
def run_preprocessing(
    dataset: Dataset,
    config: Dict[str, Any]
) -> Tuple[Dataset, List[FeatureFlag], EncodingTable, AssociationMatrix, Split]:
    """Filtro NZV, encoding, matrice di associazione e split."""
    logger.info("=== FASE 1: PREPROCESSING ===")
    target = config['training'].get('target_column')

    filtered, flags = filter_features_from_config(dataset, config, exclude=[target] if target else None)
    table, encoded = encode_from_config(filtered, config)
    associations = compute_association_matrix(filtered, encoded=encoded, config=config)
    split = split_from_config(filtered, config)

    return filtered, flags, table, associations, split


def _partial_dependence_targets(config: Dict[str, Any]) -> List[List[str]]:
    targets = []
    for entry in config.get('partial_dependence', {}).get('features') or []:
        targets.append([entry] if isinstance(entry, str) else list(entry))
    return targets


def training_rows(dataset: Dataset, split: Split, target: str) -> Dataset:
    """Righe di training con target valorizzato: le stesse usate per il fit dei modelli."""
    train = split.train(dataset)
    valid = train.column(target).notna().to_numpy()
    if valid.all():
        return train
    return train.take([i for i, keep in enumerate(valid) if keep])


def run_partial_dependence(
    results: List[EvaluationResult],
    dataset: Dataset,
    config: Dict[str, Any]
) -> List[PartialDependenceResult]:
    """
    Partial dependence per ogni modello riuscito e ogni feature (o coppia) configurata.

    `dataset` deve contenere le righe di training (vedi training_rows).
    """
    targets = _partial_dependence_targets(config)
    if not targets:
        return []

    logger.info("=== FASE 3: PARTIAL DEPENDENCE ===")
    pd_config = {**PARTIAL_DEPENDENCE_CONFIG, **config.get('partial_dependence', {})}
    seed = config.get('preprocessing', {}).get('split', {}).get('seed', 0)

    curves = []
    for result in results:
        if not result.succeeded or result.fitted_model is None:
            continue
        for features in targets:
            try:
                curves.append(partial_dependence(
                    result.fitted_model,
                    dataset,
                    features,
                    max_grid_points=int(pd_config['max_grid_points']),
                    grid_method=pd_config['grid_method'],
                    n_jobs=int(pd_config['n_jobs'] or 1),
                    sample_size=pd_config['sample_size'],
                    seed=int(seed),
                    model_name=result.model_name
                ))
            except DataError as e:
                # es. feature rimossa dal filtro NZV
                logger.warning(f"⚠️  Partial dependence {result.model_name} su {features} saltata: {e}")
    logger.info(f"✓ Calcolate {len(curves)} partial dependence")
    return curves


def run_pipeline(
    dataset: Dataset,
    config: Dict[str, Any],
    specs: Optional[List[ModelSpec]] = None,
    cancel_event: Optional[threading.Event] = None
) -> PipelineResult:
    """
    Esegue la pipeline completa su un Dataset.

    Args:
        dataset: Dataset con feature e target
        config: Configurazione completa (vedi build_config / load_config)
        specs: Modelli da valutare; se None vengono letti dalla sezione `models`
        cancel_event: Token di annullamento passato al ModelHarness

    Returns:
        PipelineResult con tutti gli artefatti

    Raises:
        ConfigurationError: Target non configurato o assente
        DataError: Dataset non valido
    """
    target = config.get('training', {}).get('target_column')
    if not target:
        raise ConfigurationError("training.target_column non configurato")
    if target not in dataset:
        raise DataError(f"Colonna target '{target}' non presente nel dataset")

    filtered, flags, table, associations, split = run_preprocessing(dataset, config)
    threshold = config['preprocessing'].get('association', {}).get(
        'high_association_threshold', ASSOCIATION_CONFIG['high_association_threshold'])
    high = associations.high_associations(threshold)

    logger.info("=== FASE 2: TRAINING E VALUTAZIONE ===")
    specs = load_model_specs(config) if specs is None else list(specs)
    harness = ModelHarness.from_config(config)
    keep_models = bool(_partial_dependence_targets(config))
    results = harness.run(specs, split, filtered, keep_models=keep_models, cancel_event=cancel_event)

    summary = summarize_results(results)
    importance = importance_table(results)
    curves = run_partial_dependence(results, training_rows(filtered, split, target), config)
    report = generate_evaluation_summary(results, importance)

    logger.info("=== PIPELINE COMPLETATA ===")
    return PipelineResult(
        dataset=filtered,
        feature_flags=flags,
        encoding_table=table,
        associations=associations,
        high_associations=high,
        split=split,
        results=results,
        summary=summary,
        importance=importance,
        partial_dependence=curves,
        report=report
    )
