"""
Test per i moduli training: adapter, metriche e ModelHarness.
"""

import threading
import time
import warnings

import pytest
import pandas as pd
import numpy as np
from unittest.mock import patch

from tabpipe.dataset import Dataset
from tabpipe.preprocessing.splitting import Split, split_dataset
from tabpipe.training.models import (
    ModelSpec, ADAPTER_REGISTRY, create_adapter, load_model_specs, available_algorithms,
    LinearAdapter, RandomForestAdapter, KNNAdapter
)
from tabpipe.training.metrics import (
    rmse, rsquared, coefficient_of_determination, regression_metrics, classification_metrics,
    confusion_matrix_frame, no_information_rate, compute_metrics
)
from tabpipe.training.train import ModelHarness, EvaluationResult, CANCELLED, train_and_evaluate
from tabpipe.utils.error_handling import ConfigurationError, DataError, MetricComputationError

# Iperparametri ridotti per tenere i test veloci
FAST_PARAMS = {
    'linear': {},
    'elastic_net': {},
    'random_forest': {'n_estimators': 20},
    'gradient_boosting': {'n_estimators': 20},
    'xgboost': {'n_estimators': 20},
    'lightgbm': {'n_estimators': 20, 'min_child_samples': 5},
    'catboost': {'iterations': 30},
    'svm': {},
    'knn': {'n_neighbors': 5}
}


def _xy(dataset, target):
    frame = dataset.frame
    types = {col: dataset.column_type(col) for col in dataset.columns if col != target}
    return frame.drop(columns=[target]), frame[target], types


class TestModelSpec:
    """Test per ModelSpec."""

    def test_algorithm_defaults_to_name(self):
        spec = ModelSpec('random_forest', 'regression')
        assert spec.algorithm == 'random_forest'

        named = ModelSpec('rf_deep', 'regression', {'max_depth': 20}, algorithm='random_forest')
        assert named.algorithm == 'random_forest'

    def test_hyperparameters_read_only(self):
        spec = ModelSpec('knn', 'regression', {'n_neighbors': 3})
        with pytest.raises(TypeError):
            spec.hyperparameters['n_neighbors'] = 5

    def test_invalid_kind(self):
        with pytest.raises(ConfigurationError):
            ModelSpec('knn', 'clustering')


class TestModelAdapters:
    """Test per gli adapter dei modelli."""

    def test_registry_contains_all_algorithms(self):
        assert available_algorithms() == sorted(FAST_PARAMS)

    @pytest.mark.parametrize("algorithm", sorted(FAST_PARAMS))
    def test_regression_fit_predict(self, algorithm, regression_dataset):
        X, y, types = _xy(regression_dataset, 'target')
        adapter = create_adapter(ModelSpec(algorithm, 'regression', FAST_PARAMS[algorithm]), random_state=0)
        adapter.fit(X, y, column_types=types)

        predictions = adapter.predict(X)
        assert predictions.shape == (len(X),)
        assert np.isfinite(predictions).all()

        importance = adapter.native_importance()
        if algorithm in ('svm', 'knn'):
            assert importance is None
        else:
            # Le colonne one-hot di 'city' vengono ricondotte alla feature originale
            assert list(importance) == ['x1', 'x2', 'city', 'noise']
            assert all(value >= 0 for value in importance.values())

    @pytest.mark.parametrize("algorithm", sorted(FAST_PARAMS))
    def test_classification_fit_predict(self, algorithm, classification_dataset):
        X, y, types = _xy(classification_dataset, 'label')
        adapter = create_adapter(ModelSpec(algorithm, 'classification', FAST_PARAMS[algorithm]), random_state=0)
        adapter.fit(X, y, column_types=types)

        predictions = adapter.predict(X)
        assert set(predictions) <= {'yes', 'no'}
        assert list(adapter.classes_) == ['no', 'yes']

        proba = adapter.predict_proba(X)
        assert proba.shape == (len(X), 2)
        np.testing.assert_allclose(proba.sum(axis=1), 1.0, atol=1e-6)

    def test_unseen_category_at_predict(self, regression_dataset):
        X, y, types = _xy(regression_dataset, 'target')
        adapter = create_adapter(ModelSpec('linear', 'regression')).fit(X, y, column_types=types)

        new = X.head(3).copy()
        new['city'] = 'Torino'
        assert np.isfinite(adapter.predict(new)).all()

    def test_predict_without_feature_name_warnings(self, regression_dataset):
        """Lo scaler è fittato e applicato sullo stesso formato: nessun warning in predizione."""
        X, y, types = _xy(regression_dataset, 'target')
        adapter = create_adapter(ModelSpec('knn', 'regression')).fit(X, y, column_types=types)

        with warnings.catch_warnings():
            warnings.simplefilter('error', UserWarning)
            adapter.predict(X.head(10))

    def test_linear_uses_treatment_contrasts(self, regression_dataset):
        """Regressione lineare: un livello di riferimento per categorica (Milano)."""
        X, y, types = _xy(regression_dataset, 'target')
        linear = create_adapter(ModelSpec('linear', 'regression')).fit(X, y, column_types=types)
        knn = create_adapter(ModelSpec('knn', 'regression')).fit(X, y, column_types=types)

        assert linear._encoder.output_features == ['x1', 'x2', 'noise', 'city', 'city']
        assert knn._encoder.output_features.count('city') == 3

        # effetti rispetto a Milano: Napoli -2, Roma -1
        napoli, roma = linear.estimator.coef_[3:]
        assert napoli == pytest.approx(-2.0, abs=0.1)
        assert roma == pytest.approx(-1.0, abs=0.1)

    def test_predict_before_fit(self):
        adapter = create_adapter(ModelSpec('knn', 'regression'))
        with pytest.raises(Exception, match="fittato"):
            adapter.predict(pd.DataFrame({'a': [1.0]}))

    def test_seed_injection(self):
        rf = create_adapter(ModelSpec('random_forest', 'regression'), random_state=7)
        assert rf.params['random_state'] == 7

        explicit = create_adapter(ModelSpec('random_forest', 'regression', {'random_state': 1}), random_state=7)
        assert explicit.params['random_state'] == 1

        catboost = create_adapter(ModelSpec('catboost', 'regression'), random_state=7)
        assert catboost.params['random_seed'] == 7

        assert 'random_state' not in create_adapter(ModelSpec('linear', 'regression'), random_state=7).params
        assert create_adapter(ModelSpec('linear', 'classification'), random_state=7).params['random_state'] == 7
        assert 'random_state' not in create_adapter(ModelSpec('knn', 'regression'), random_state=7).params

    def test_hyperparameters_override_defaults(self):
        adapter = create_adapter(ModelSpec('xgboost', 'regression', {'n_estimators': 5}))
        assert adapter.params['n_estimators'] == 5
        assert adapter.params['verbosity'] == 0

    def test_unknown_algorithm(self):
        with pytest.raises(ConfigurationError, match="non supportato"):
            create_adapter(ModelSpec('deep_forest', 'regression'))


class TestLoadModelSpecs:
    """Test per la lettura dei modelli dalla configurazione."""

    def test_disabled_models_skipped(self, sample_config):
        specs = load_model_specs(sample_config)
        assert [spec.name for spec in specs] == ['linear', 'random_forest']
        assert specs[1].hyperparameters['n_estimators'] == 20

    def test_algorithm_alias(self):
        specs = load_model_specs({'models': [
            {'name': 'rf_small', 'kind': 'regression', 'algorithm': 'random_forest'}
        ]})
        assert specs[0].algorithm == 'random_forest'

    def test_duplicate_names(self):
        config = {'models': [{'name': 'knn', 'kind': 'regression'}, {'name': 'knn', 'kind': 'regression'}]}
        with pytest.raises(ConfigurationError, match="duplicati"):
            load_model_specs(config)

    def test_malformed_entry(self):
        with pytest.raises(ConfigurationError):
            load_model_specs({'models': [{'name': 'knn'}]})


class TestMetrics:
    """Test per le metriche."""

    def test_rsquared_is_squared_correlation(self):
        """Predizioni traslate: correlazione perfetta ma R² classico negativo."""
        observed = np.array([1.0, 2.0, 3.0, 4.0])
        predicted = observed + 10.0

        assert rsquared(observed, predicted) == pytest.approx(1.0)
        assert coefficient_of_determination(observed, predicted) < 0

        metrics = regression_metrics(observed, predicted)
        assert metrics['rmse'] == pytest.approx(10.0)
        assert metrics['mae'] == pytest.approx(10.0)
        assert set(metrics) == {'rmse', 'rsquared', 'mae', 'r2_score'}

    def test_zero_variance_returns_sentinel(self):
        observed = np.array([1.0, 2.0, 3.0])
        assert rsquared(observed, np.array([5.0, 5.0, 5.0])) == 0.0
        assert rsquared(np.array([2.0, 2.0, 2.0]), observed) == 0.0
        assert coefficient_of_determination(np.array([2.0, 2.0, 2.0]), observed) == 0.0

    def test_rmse(self):
        assert rmse([0.0, 0.0], [3.0, 4.0]) == pytest.approx(np.sqrt(12.5))

    def test_classification_metrics(self):
        observed = np.array(['a', 'a', 'b', 'b', 'a'])
        predicted = np.array(['a', 'b', 'b', 'b', 'a'])
        metrics = classification_metrics(observed, predicted)

        assert metrics['accuracy'] == pytest.approx(0.8)
        assert metrics['no_information_rate'] == pytest.approx(0.6)
        # P(X >= 4) con X ~ Binom(5, 0.6)
        assert metrics['accuracy_p_value'] == pytest.approx(0.33696)
        assert metrics['accuracy_ci_lower'] < 0.8 < metrics['accuracy_ci_upper']
        assert -1.0 <= metrics['kappa'] <= 1.0

        cm = metrics['confusion_matrix']
        assert list(cm.index) == ['a', 'b']
        assert list(cm.columns) == ['a', 'b']
        assert cm.loc['a', 'a'] == 2 and cm.loc['a', 'b'] == 1
        assert cm.loc['b', 'a'] == 0 and cm.loc['b', 'b'] == 2

    def test_confusion_matrix_includes_predicted_only_labels(self):
        cm = confusion_matrix_frame(np.array([1, 1, 2]), np.array([1, 3, 2]))
        assert list(cm.index) == [1, 2, 3]
        assert cm.values.sum() == 3

    def test_kappa_single_class(self):
        metrics = classification_metrics(np.array(['a', 'a']), np.array(['a', 'a']))
        assert metrics['kappa'] == 0.0
        assert metrics['accuracy'] == 1.0

    def test_no_information_rate(self):
        assert no_information_rate(['x', 'y', 'y', 'y']) == pytest.approx(0.75)

    def test_unknown_kind(self):
        with pytest.raises(MetricComputationError):
            compute_metrics('ranking', [1], [1])

    def test_length_mismatch(self):
        with pytest.raises(MetricComputationError):
            compute_metrics('regression', [1.0, 2.0], [1.0])

    def test_object_arrays_from_pandas(self):
        """Etichette object (come da Series.to_numpy) accettate da matrice e accuracy."""
        observed = pd.Series(['no', 'yes', 'yes', 'no']).to_numpy()
        predicted = np.array(['no', 'yes', 'no', 'no'], dtype=object)
        metrics = classification_metrics(observed, predicted)

        assert metrics['accuracy'] == pytest.approx(0.75)
        assert metrics['confusion_matrix'].loc['yes', 'no'] == 1
        assert metrics['confusion_matrix'].to_numpy().sum() == 4


class TestEvaluationResult:
    """Test per EvaluationResult."""

    def test_succeeded_and_read_only_metrics(self):
        result = EvaluationResult('m', 'regression', metrics={'rmse': 1.0})
        assert result.succeeded
        with pytest.raises(TypeError):
            result.metrics['rmse'] = 2.0

        failed = EvaluationResult('m', 'regression', error='boom')
        assert not failed.succeeded

    def test_fitted_model_excluded_from_equality(self):
        a = EvaluationResult('m', 'regression', metrics={'rmse': 1.0}, fitted_model=object())
        b = EvaluationResult('m', 'regression', metrics={'rmse': 1.0}, fitted_model=None)
        assert a == b

    def test_classification_results_comparable(self):
        """Il confronto ignora le metriche (il confusion_matrix è un DataFrame)."""
        metrics = classification_metrics(np.array(['a', 'b']), np.array(['a', 'a']))
        a = EvaluationResult('m', 'classification', metrics=metrics)
        b = EvaluationResult('m', 'classification', metrics=dict(metrics))
        assert a == b
        assert a != EvaluationResult('m', 'classification', error=CANCELLED)


class TestModelHarness:
    """Test per il ModelHarness."""

    @pytest.fixture
    def split(self, regression_dataset):
        return split_dataset(regression_dataset, proportion=0.75, seed=42)

    @pytest.fixture
    def specs(self):
        return [
            ModelSpec('linear', 'regression'),
            ModelSpec('random_forest', 'regression', {'n_estimators': 20}),
            ModelSpec('knn', 'regression')
        ]

    def test_one_failing_model_isolated(self, regression_dataset, split, specs):
        """N specifiche di cui una fallisce sempre: N risultati, un solo errore."""
        failing = ModelSpec('broken', 'regression', algorithm='does_not_exist')
        all_specs = specs[:1] + [failing] + specs[1:]

        results = ModelHarness('target', n_jobs=2).run(all_specs, split, regression_dataset)

        assert len(results) == 4
        errors = [r for r in results if not r.succeeded]
        assert len(errors) == 1
        assert errors[0].model_name == 'broken'
        assert 'does_not_exist' in errors[0].error
        for result in results:
            if result.succeeded:
                assert np.isfinite(result.metrics['rmse'])

    def test_fit_failure_recorded(self, regression_dataset, split, specs):
        with patch.object(RandomForestAdapter, 'fit', side_effect=ValueError("fit esploso")):
            results = ModelHarness('target').run(specs, split, regression_dataset)

        assert [r.model_name for r in results] == ['linear', 'random_forest', 'knn']
        assert results[1].error == "random_forest: fit esploso"
        assert results[0].succeeded and results[2].succeeded

    def test_predict_failure_recorded(self, regression_dataset, split, specs):
        with patch.object(KNNAdapter, 'predict', side_effect=RuntimeError("predict esploso")):
            results = ModelHarness('target').run(specs, split, regression_dataset)

        assert results[2].error == "knn: predict esploso"
        assert results[2].metrics == {}

    def test_results_in_input_order(self, regression_dataset, split, specs):
        reversed_specs = list(reversed(specs))
        results = ModelHarness('target', n_jobs=3).run(reversed_specs, split, regression_dataset)
        assert [r.model_name for r in results] == [s.name for s in reversed_specs]

    def test_regression_metrics_reasonable(self, regression_dataset, split):
        results = ModelHarness('target').run([ModelSpec('linear', 'regression')], split, regression_dataset)
        metrics = results[0].metrics

        assert metrics['rsquared'] > 0.95
        assert metrics['rmse'] < 0.5
        assert results[0].training_time >= 0

    def test_importance_sums_to_100(self, regression_dataset, split, specs):
        results = ModelHarness('target').run(specs, split, regression_dataset)

        for result in results[:2]:
            values = [record.relative_influence for record in result.importance]
            assert sum(values) == pytest.approx(100.0, abs=1e-6)
            assert values == sorted(values, reverse=True)
            assert result.importance[0].feature == 'x1'
        assert results[2].importance == ()

    def test_importance_disabled(self, regression_dataset, split, specs):
        results = ModelHarness('target', compute_importance=False).run(specs, split, regression_dataset)
        assert all(r.importance == () for r in results)

    def test_keep_models(self, regression_dataset, split, specs):
        harness = ModelHarness('target')
        assert all(r.fitted_model is None for r in harness.run(specs, split, regression_dataset))

        kept = harness.run(specs, split, regression_dataset, keep_models=True)
        assert all(r.fitted_model is not None and r.fitted_model.is_fitted for r in kept)

    def test_timeout(self, regression_dataset, split, specs):
        def slow_fit(*args, **kwargs):
            time.sleep(3)

        with patch.object(LinearAdapter, 'fit', side_effect=slow_fit):
            results = ModelHarness('target', timeout=1.0).run(specs, split, regression_dataset)

        assert results[0].error.startswith('timeout')
        assert results[1].succeeded and results[2].succeeded

    def test_cancel_event(self, regression_dataset, split, specs):
        cancel = threading.Event()
        cancel.set()
        results = ModelHarness('target').run(specs, split, regression_dataset, cancel_event=cancel)

        assert len(results) == 3
        assert all(r.error == CANCELLED for r in results)

    def test_cancel_while_fit_running(self, regression_dataset, split, specs):
        """Un fit lungo già avviato non blocca la run quando viene annullata."""
        def slow_fit(*args, **kwargs):
            time.sleep(4)

        cancel = threading.Event()
        timer = threading.Timer(0.3, cancel.set)

        with patch.object(LinearAdapter, 'fit', side_effect=slow_fit):
            start = time.perf_counter()
            timer.start()
            results = ModelHarness('target', n_jobs=1, timeout=None).run(
                specs, split, regression_dataset, cancel_event=cancel
            )
            elapsed = time.perf_counter() - start
        timer.cancel()

        assert elapsed < 2.0
        assert len(results) == 3
        assert all(r.error == CANCELLED for r in results)
        assert not results[0].succeeded

    def test_deterministic_with_seed(self, regression_dataset, split):
        spec = [ModelSpec('random_forest', 'regression', {'n_estimators': 20})]
        first = ModelHarness('target', random_state=3).run(spec, split, regression_dataset)
        second = ModelHarness('target', random_state=3).run(spec, split, regression_dataset)
        assert first[0].metrics['rmse'] == second[0].metrics['rmse']

    def test_missing_target_rows_excluded(self, regression_frame):
        frame = regression_frame.copy()
        frame.loc[:9, 'target'] = np.nan
        dataset = Dataset.from_dataframe(frame)
        split = split_dataset(dataset, proportion=0.75, seed=42)

        results = ModelHarness('target').run([ModelSpec('linear', 'regression')], split, dataset)
        assert results[0].succeeded

    def test_classification_run(self, classification_dataset):
        split = split_dataset(classification_dataset, proportion=0.7, seed=1, stratify='label')
        specs = [ModelSpec('linear', 'classification'), ModelSpec('knn', 'classification')]
        results = ModelHarness('label').run(specs, split, classification_dataset)

        for result in results:
            assert result.succeeded, result.error
            assert result.metrics['accuracy'] > result.metrics['no_information_rate']
            assert isinstance(result.metrics['confusion_matrix'], pd.DataFrame)

    def test_target_not_in_dataset(self, regression_dataset, split, specs):
        with pytest.raises(DataError, match="target"):
            ModelHarness('price').run(specs, split, regression_dataset)

    def test_empty_test_split(self, regression_dataset, specs):
        split = Split(tuple(range(regression_dataset.n_rows)), (), seed=0, proportion=0.99)
        with pytest.raises(DataError, match="vuoto"):
            ModelHarness('target').run(specs, split, regression_dataset)

    def test_no_specs(self, regression_dataset, split):
        assert ModelHarness('target').run([], split, regression_dataset) == []

    def test_train_and_evaluate_from_config(self, regression_dataset, split, sample_config):
        results = train_and_evaluate(load_model_specs(sample_config), split, regression_dataset, sample_config)
        assert [r.model_name for r in results] == ['linear', 'random_forest']
        assert all(r.succeeded for r in results)
