"""
Configurazione pytest e fixtures per i test della pipeline.
"""

import pytest
import pandas as pd
import numpy as np
import tempfile
import yaml
from pathlib import Path
import sys

# Aggiungi la root del progetto al path per import
sys.path.insert(0, str(Path(__file__).parent.parent))

from tabpipe.dataset import Dataset
from tabpipe.utils.config import build_config


@pytest.fixture
def regression_frame():
    """DataFrame misto con target numerico dipendente da x1, x2 e city."""
    rng = np.random.default_rng(42)
    n_samples = 200

    x1 = rng.normal(0, 1, n_samples)
    x2 = rng.normal(5, 2, n_samples)
    city = rng.choice(['Milano', 'Roma', 'Napoli'], n_samples)
    city_effect = pd.Series(city).map({'Milano': 2.0, 'Roma': 1.0, 'Napoli': 0.0}).to_numpy()

    return pd.DataFrame({
        'x1': x1,
        'x2': x2,
        'city': city,
        'noise': rng.normal(0, 1, n_samples),
        'target': 3 * x1 + 0.5 * x2 + city_effect + rng.normal(0, 0.1, n_samples)
    })


@pytest.fixture
def regression_dataset(regression_frame):
    return Dataset.from_dataframe(regression_frame)


@pytest.fixture
def classification_frame():
    """DataFrame misto con target binario 'yes' / 'no'."""
    rng = np.random.default_rng(7)
    n_samples = 300

    x1 = rng.normal(0, 1, n_samples)
    x2 = rng.normal(0, 1, n_samples)
    color = rng.choice(['red', 'green', 'blue'], n_samples)
    score = 2 * x1 + x2 + np.where(color == 'red', 1.0, 0.0)

    return pd.DataFrame({
        'x1': x1,
        'x2': x2,
        'color': color,
        'label': np.where(score > 0.3, 'yes', 'no')
    })


@pytest.fixture
def classification_dataset(classification_frame):
    return Dataset.from_dataframe(classification_frame)


@pytest.fixture
def sample_config():
    """Configurazione di test completa (default + override)."""
    return build_config({
        'logging': {'level': 'WARNING'},
        'preprocessing': {
            'split': {'proportion': 0.75, 'seed': 123}
        },
        'training': {
            'target_column': 'target',
            'n_jobs': 2,
            'timeout': None,
            'random_state': 42
        },
        'partial_dependence': {
            'features': ['x1'],
            'max_grid_points': 10
        },
        'models': [
            {'name': 'linear', 'kind': 'regression'},
            {'name': 'random_forest', 'kind': 'regression', 'hyperparameters': {'n_estimators': 20}},
            {'name': 'knn', 'kind': 'regression', 'enabled': False}
        ]
    })


@pytest.fixture
def temp_dir():
    """Directory temporanea per test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_config_file(temp_dir):
    """File di configurazione YAML temporaneo (parziale)."""
    config_path = temp_dir / "test_config.yaml"
    user_config = {
        'logging': {'level': 'DEBUG', 'file': str(temp_dir / 'logs' / 'test.log')},
        'training': {'target_column': 'target'},
        'models': [{'name': 'linear', 'kind': 'regression'}]
    }
    with open(config_path, 'w') as f:
        yaml.dump(user_config, f)
    return str(config_path)


# Utility functions per test
def assert_dataframe_properties(df, expected_shape=None, expected_columns=None, no_nulls=None):
    """Utility per validare proprietà DataFrame."""
    if expected_shape:
        assert df.shape == expected_shape, f"Expected shape {expected_shape}, got {df.shape}"

    if expected_columns:
        assert list(df.columns) == expected_columns, f"Column mismatch"

    if no_nulls:
        null_cols = df.columns[df.isnull().any()].tolist()
        assert len(null_cols) == 0, f"Found nulls in columns: {null_cols}"
