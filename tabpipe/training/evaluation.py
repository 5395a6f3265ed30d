"""
Report riassuntivo dei risultati del ModelHarness.
"""

from typing import Dict, Any, List, Optional, Sequence

import numpy as np
import pandas as pd

from ..utils.logger import get_logger
from .metrics import REGRESSION_METRICS, CLASSIFICATION_METRICS

logger = get_logger(__name__)

# Metrica di ranking per tipo: (nome, ascending)
RANKING_METRICS = {
    'regression': ('rmse', True),
    'classification': ('accuracy', False)
}

_SCALAR_METRICS = [m for m in REGRESSION_METRICS] + [m for m in CLASSIFICATION_METRICS if m != 'confusion_matrix']


def summarize_results(results: Sequence[Any]) -> pd.DataFrame:
    """
    Una riga per risultato, nell'ordine dato: metriche scalari, tempo ed errore.
    I modelli falliti compaiono con metriche NaN e la colonna Error valorizzata.
    """
    rows = []
    for result in results:
        row = {'Model': result.model_name, 'Kind': result.kind}
        for metric in _SCALAR_METRICS:
            value = result.metrics.get(metric)
            row[metric] = float(value) if value is not None else np.nan
        row['Training_Time'] = result.training_time
        row['Error'] = result.error
        rows.append(row)

    columns = ['Model', 'Kind'] + _SCALAR_METRICS + ['Training_Time', 'Error']
    summary = pd.DataFrame(rows, columns=columns)
    # colonne di metriche che nessun modello ha prodotto
    empty = [m for m in _SCALAR_METRICS if summary[m].isna().all()]
    return summary.drop(columns=empty)


def best_result(results: Sequence[Any], kind: str) -> Optional[Any]:
    """Miglior modello riuscito del tipo dato secondo la metrica di ranking."""
    metric, ascending = RANKING_METRICS[kind]
    candidates = [r for r in results if r.succeeded and r.kind == kind and metric in r.metrics]
    if not candidates:
        return None
    key = lambda r: r.metrics[metric]
    return min(candidates, key=key) if ascending else max(candidates, key=key)


def generate_evaluation_summary(
    results: Sequence[Any],
    importance_summary: Optional[pd.DataFrame] = None
) -> Dict[str, Any]:
    """
    Genera e logga un summary dell'analisi: miglior modello per tipo,
    modelli falliti, feature più importanti.
    """
    logger.info("\n" + "=" * 60)
    logger.info("SUMMARY DELL'ANALISI")
    logger.info("=" * 60)

    summary: Dict[str, Any] = {
        'total_models': len(results),
        'succeeded': [r.model_name for r in results if r.succeeded],
        'failed': {r.model_name: r.error for r in results if not r.succeeded},
        'best_models': {}
    }

    for kind, (metric, _) in RANKING_METRICS.items():
        best = best_result(results, kind)
        if best is None:
            continue
        summary['best_models'][kind] = {
            'name': best.model_name,
            metric: float(best.metrics[metric]),
            'training_time': best.training_time
        }
        logger.info(f"\n🏆 MIGLIOR MODELLO ({kind}):")
        logger.info(f"   Nome: {best.model_name}")
        logger.info(f"   {metric}: {best.metrics[metric]:.4f}")
        logger.info(f"   Training Time: {best.training_time:.2f}s")

    if summary['failed']:
        logger.warning(f"\n⚠️  Modelli falliti: {len(summary['failed'])}")
        for name, error in summary['failed'].items():
            logger.warning(f"   {name}: {error}")

    if importance_summary is not None and not importance_summary.empty and 'Average' in importance_summary.columns:
        top_features = importance_summary['Average'].sort_values(ascending=False).head(5)
        summary['top_features'] = {feature: float(value) for feature, value in top_features.items()}
        logger.info("\n🔍 TOP 5 FEATURE (importanza media):")
        for i, (feature, value) in enumerate(top_features.items(), 1):
            logger.info(f"   {i}. {feature}: {value:.2f}")

    return summary


def format_summary_table(summary: pd.DataFrame) -> str:
    """Tabella testuale dei risultati per la stampa a console."""
    if summary.empty:
        return "Nessun risultato"

    metric_columns = [c for c in summary.columns if c in _SCALAR_METRICS]
    lines: List[str] = []
    header = f"{'Model':<25} {'Kind':<15}" + ''.join(f" {c[:12]:<12}" for c in metric_columns) + f" {'Time(s)':<8}"
    lines.append("=" * len(header))
    lines.append(header)
    lines.append("=" * len(header))

    for _, row in summary.iterrows():
        if isinstance(row['Error'], str):
            lines.append(f"{row['Model']:<25} {row['Kind']:<15} ✗ {row['Error']}")
            continue
        values = ''.join(
            f" {'-':<12}" if pd.isna(row[c]) else f" {row[c]:<12.4f}" for c in metric_columns
        )
        lines.append(f"{row['Model']:<25} {row['Kind']:<15}{values} {row['Training_Time']:<8.2f}")

    return "\n".join(lines)
