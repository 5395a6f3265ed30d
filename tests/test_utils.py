"""
Test per i moduli utilities.
"""

import pytest
import pandas as pd
import numpy as np
import json
import logging
from pathlib import Path

from tabpipe.utils import io, logger
from tabpipe.utils.config import build_config, deep_merge, DEFAULT_CONFIG
from tabpipe.utils.error_handling import (
    safe_execution, validate_dataframe, validate_config,
    PipelineError, DataError, ConfigurationError, ModelFitError
)


@pytest.fixture
def restore_logging():
    """Ripristina il root logger dopo i test che lo configurano."""
    yield
    for handler in logging.root.handlers[:]:
        handler.close()
        logging.root.removeHandler(handler)


class TestConfig:
    """Test per il modulo tabpipe.utils.config"""

    def test_build_config_defaults(self):
        config = build_config()
        assert config['preprocessing']['split']['proportion'] == 0.8
        assert config['partial_dependence']['max_grid_points'] == 51
        assert config['models'] == []

    def test_build_config_partial_override(self, sample_config):
        assert sample_config['preprocessing']['split'] == {'proportion': 0.75, 'seed': 123, 'stratify': None}
        # i default non sovrascritti restano
        assert sample_config['preprocessing']['near_zero_variance']['frequency_ratio_threshold'] == 19.0
        assert sample_config['training']['compute_importance'] is True

    def test_deep_merge_does_not_mutate(self):
        base = {'a': {'b': 1, 'c': [1, 2]}}
        merged = deep_merge(base, {'a': {'b': 2, 'c': [3]}})

        assert merged == {'a': {'b': 2, 'c': [3]}}
        assert base == {'a': {'b': 1, 'c': [1, 2]}}

    def test_defaults_not_mutated_by_build(self):
        config = build_config()
        config['training']['n_jobs'] = 99
        assert DEFAULT_CONFIG['training']['n_jobs'] == 1

    @pytest.mark.parametrize("override", [
        {'preprocessing': {'near_zero_variance': {'frequency_ratio_threshold': 0}}},
        {'preprocessing': {'near_zero_variance': {'unique_ratio_threshold': 1.5}}},
        {'preprocessing': {'encoding': {'max_categories': 0}}},
        {'partial_dependence': {'grid_method': 'random'}},
        {'models': {'name': 'linear'}}
    ])
    def test_invalid_values(self, override):
        with pytest.raises(ConfigurationError):
            build_config(override)

    def test_validate_config_missing_sections(self):
        with pytest.raises(ConfigurationError, match="mancanti"):
            validate_config({'training': {}}, required_sections=['training', 'models'])


class TestIOUtils:
    """Test per il modulo tabpipe.utils.io"""

    def test_load_config_success(self, test_config_file):
        """La configurazione parziale viene completata con i default."""
        config = io.load_config(test_config_file)

        assert config['training']['target_column'] == 'target'
        assert config['models'] == [{'name': 'linear', 'kind': 'regression'}]
        assert config['preprocessing']['split']['seed'] == 42

    def test_load_config_file_not_found(self):
        with pytest.raises(FileNotFoundError):
            io.load_config('non_existent_config.yaml')

    def test_load_empty_config(self, temp_dir):
        path = temp_dir / "empty.yaml"
        path.write_text("")
        assert io.load_config(path)['training']['target_column'] is None

    def test_ensure_dir_creates_directory(self, temp_dir):
        test_path = temp_dir / "new_dir" / "subdir"
        io.ensure_dir(str(test_path))

        assert test_path.exists()
        assert test_path.is_dir()

    def test_save_json_numpy_types(self, temp_dir):
        path = temp_dir / "out" / "summary.json"
        io.save_json({
            'count': np.int64(3),
            'score': np.float32(0.5),
            'values': np.array([1, 2]),
            'pair': ('a', 'b')
        }, path)

        with open(path, encoding='utf-8') as f:
            data = json.load(f)
        assert data == {'count': 3, 'score': 0.5, 'values': [1, 2], 'pair': ['a', 'b']}

    def test_save_json_unsupported(self, temp_dir):
        with pytest.raises(TypeError):
            io.save_json({'obj': object()}, temp_dir / "bad.json")

    def test_save_dataframe_csv(self, temp_dir, regression_frame):
        path = temp_dir / "data" / "frame.csv"
        io.save_dataframe(regression_frame, path)

        loaded = pd.read_csv(path)
        assert loaded.shape == regression_frame.shape
        assert list(loaded.columns) == list(regression_frame.columns)


class TestLogger:
    """Test per il modulo tabpipe.utils.logger"""

    def test_get_logger(self):
        log = logger.get_logger('tabpipe.test')
        assert isinstance(log, logging.Logger)
        assert log.name == 'tabpipe.test'
        assert logger.get_logger().name == 'tabpipe'

    def test_setup_logger_from_file(self, test_config_file, temp_dir, restore_logging):
        log = logger.setup_logger(test_config_file)
        log.info("messaggio di prova")

        for handler in logging.root.handlers:
            handler.flush()

        log_file = temp_dir / 'logs' / 'test.log'
        assert log_file.exists()
        assert "messaggio di prova" in log_file.read_text(encoding='utf-8')
        assert logging.root.level == logging.DEBUG

    def test_setup_logger_from_dict(self, restore_logging):
        log = logger.setup_logger({'logging': {'level': 'WARNING'}})
        assert log.name == 'tabpipe'
        assert logging.root.level == logging.WARNING
        assert len(logging.root.handlers) == 1


class TestErrorHandling:
    """Test per il modulo tabpipe.utils.error_handling"""

    def test_safe_execution_wraps_errors(self):
        @safe_execution(error_type=DataError)
        def failing():
            raise ValueError("valore errato")

        with pytest.raises(DataError, match="valore errato") as exc_info:
            failing()
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_safe_execution_passes_pipeline_errors(self):
        @safe_execution(error_type=DataError)
        def failing():
            raise ConfigurationError("config")

        with pytest.raises(ConfigurationError):
            failing()

    def test_safe_execution_no_reraise(self):
        @safe_execution(reraise=False, return_on_error='fallback', log_errors=False)
        def failing():
            raise RuntimeError("boom")

        assert failing() == 'fallback'

    def test_model_error_message(self):
        error = ModelFitError('xgboost', 'dati non validi')
        assert str(error) == 'xgboost: dati non validi'
        assert error.model_name == 'xgboost'
        assert isinstance(error, PipelineError)

    def test_validate_dataframe(self, regression_frame):
        results = validate_dataframe(regression_frame, name="train", required_columns=['x1', 'target'])
        assert results['validation_passed']
        assert results['shape'] == (200, 5)

    def test_validate_dataframe_failures(self, regression_frame):
        with pytest.raises(DataError, match="colonne richieste"):
            validate_dataframe(regression_frame, required_columns=['price'])
        with pytest.raises(DataError):
            validate_dataframe(pd.DataFrame())
        with pytest.raises(DataError):
            validate_dataframe([1, 2, 3])
