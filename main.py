"""
Entry point della pipeline: legge un CSV, esegue preprocessing e valutazione
dei modelli, stampa il riepilogo.
"""

import sys
import argparse
from pathlib import Path

import pandas as pd

from tabpipe.dataset import Dataset
from tabpipe.pipeline import run_pipeline
from tabpipe.training.evaluation import format_summary_table
from tabpipe.preprocessing.filtering import flags_to_frame
from tabpipe.utils.logger import setup_logger, get_logger
from tabpipe.utils.io import load_config, ensure_dir, save_dataframe, save_json


def save_outputs(result, output_dir: Path) -> None:
    """Salva summary, importanza, flag NZV e matrice di associazione."""
    ensure_dir(output_dir)
    save_dataframe(result.summary, output_dir / "summary.csv")
    save_dataframe(flags_to_frame(result.feature_flags), output_dir / "feature_flags.csv")
    save_dataframe(result.associations.to_frame(), output_dir / "associations.csv", index=True)
    if not result.importance.empty:
        save_dataframe(result.importance, output_dir / "feature_importance.csv", index=True)
    for curve in result.partial_dependence:
        name = curve.feature if hasattr(curve, 'feature') else "_".join(curve.features)
        save_dataframe(curve.to_frame(), output_dir / "partial_dependence" / f"{curve.model_name}_{name}.csv")
    save_json(result.report, output_dir / "report.json")


def main():
    """Funzione principale della pipeline."""

    # Parse argomenti
    parser = argparse.ArgumentParser(description='Pipeline di preprocessing e valutazione multi-modello')
    parser.add_argument('--config', default='config/config.yaml',
                        help='Path al file di configurazione')
    parser.add_argument('--data', required=True,
                        help='Path al file CSV con i dati')
    parser.add_argument('--target',
                        help='Colonna target (sovrascrive training.target_column)')
    parser.add_argument('--output',
                        help='Directory in cui salvare i risultati (opzionale)')

    args = parser.parse_args()

    try:
        # Carica configurazione
        config = load_config(args.config)
        if args.target:
            config['training']['target_column'] = args.target

        # Setup logger
        logger = setup_logger(config)
        logger.info("=== AVVIO PIPELINE ===")
        logger.info(f"Configurazione caricata da: {args.config}")

        df = pd.read_csv(args.data)
        logger.info(f"Dati caricati da {args.data}: {df.shape}")
        dataset = Dataset.from_dataframe(df)

        result = run_pipeline(dataset, config)

        print("\n" + format_summary_table(result.summary))
        if not result.importance.empty:
            print("\nFeature importance (0-100):")
            print(result.importance.round(2).to_string())

        if args.output:
            save_outputs(result, Path(args.output))

        logger.info("=== PIPELINE COMPLETATA CON SUCCESSO ===")

    except Exception as e:
        logger = get_logger(__name__)
        logger.error(f"Errore nella pipeline: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
