"""
Adapter dei modelli: interfaccia uniforme sopra scikit-learn, XGBoost, LightGBM e CatBoost.

Ogni adapter riceve il dataset misto (numeriche + categoriche) e gestisce da sé
l'encoding delle feature, come faceva il vecchio wrapper per i modelli che non
supportano le categoriche:
- famiglia lineare / SVM / k-NN: one-hot delle categoriche, numeriche standardizzate
- alberi (RandomForest, GradientBoosting, XGBoost, LightGBM): encoding ordinale
- CatBoost: feature categoriche native (cat_features)

I segnali di importanza sulle colonne espanse vengono ricondotti (sommati)
alla feature originale.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Any, List, Optional, Mapping, Callable, Type

import numpy as np
import pandas as pd
from sklearn.ensemble import (
    RandomForestRegressor, RandomForestClassifier,
    GradientBoostingRegressor, GradientBoostingClassifier
)
from sklearn.linear_model import LinearRegression, LogisticRegression, ElasticNet
from sklearn.neighbors import KNeighborsRegressor, KNeighborsClassifier
from sklearn.svm import SVR, SVC
from sklearn.preprocessing import LabelEncoder, OneHotEncoder, OrdinalEncoder, StandardScaler
import xgboost as xgb
import catboost as cb
import lightgbm as lgb

from ..dataset import NUMERIC, infer_column_type
from ..utils.logger import get_logger
from ..utils.error_handling import ConfigurationError, ModelPredictError

logger = get_logger(__name__)

REGRESSION = 'regression'
CLASSIFICATION = 'classification'
MODEL_KINDS = (REGRESSION, CLASSIFICATION)

ONEHOT = 'onehot'
ORDINAL = 'ordinal'
NATIVE = 'native'

_MISSING_LEVEL = '<missing>'


@dataclass(frozen=True)
class ModelSpec:
    """
    Specifica di un modello da valutare.

    `algorithm` sceglie l'adapter; se assente coincide con `name`, così due
    specifiche possono usare lo stesso algoritmo con iperparametri diversi.
    """
    name: str
    kind: str
    hyperparameters: Mapping[str, Any] = field(default_factory=dict)
    algorithm: Optional[str] = None

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError("Il nome del modello non può essere vuoto")
        if self.kind not in MODEL_KINDS:
            raise ConfigurationError(f"Tipo di modello non valido per '{self.name}': {self.kind} (ammessi: {MODEL_KINDS})")
        object.__setattr__(self, 'hyperparameters', MappingProxyType(dict(self.hyperparameters or {})))
        object.__setattr__(self, 'algorithm', self.algorithm or self.name)


class FeatureEncoder:
    """Trasforma il DataFrame misto nella matrice attesa dallo stimatore."""

    def __init__(self, mode: str = ORDINAL, drop_first: bool = False):
        if mode not in (ONEHOT, ORDINAL, NATIVE):
            raise ConfigurationError(f"Modalità di encoding non supportata: {mode}")
        self.mode = mode
        # drop_first: contrasti di trattamento (un livello di riferimento per categorica)
        self.drop_first = drop_first
        self.numeric: List[str] = []
        self.categorical: List[str] = []
        self.output_features: List[str] = []
        self.cat_feature_indices: List[int] = []
        self._medians = None
        self._scaler = None
        self._categorical_encoder = None

    def _categorical_frame(self, X: pd.DataFrame) -> pd.DataFrame:
        cats = X[self.categorical].astype(object)
        return cats.where(cats.notna(), _MISSING_LEVEL).astype(str)

    def _numeric_frame(self, X: pd.DataFrame) -> pd.DataFrame:
        return X[self.numeric].astype(float).fillna(self._medians)

    def fit(self, X: pd.DataFrame, column_types: Mapping[str, str]) -> 'FeatureEncoder':
        columns = list(X.columns)
        self.numeric = [col for col in columns if column_types[col] == NUMERIC]
        self.categorical = [col for col in columns if column_types[col] != NUMERIC]
        self._medians = X[self.numeric].astype(float).median().fillna(0.0)

        if self.mode == NATIVE:
            self.output_features = columns
            self.cat_feature_indices = [columns.index(col) for col in self.categorical]
            return self

        if self.mode == ONEHOT:
            if self.numeric:
                self._scaler = StandardScaler().fit(self._numeric_frame(X).to_numpy())
            if self.categorical:
                self._categorical_encoder = OneHotEncoder(
                    handle_unknown='ignore', sparse_output=False, drop='first' if self.drop_first else None
                )
                self._categorical_encoder.fit(self._categorical_frame(X))
                n_dropped = 1 if self.drop_first else 0
                expanded = [col for col, levels in zip(self.categorical, self._categorical_encoder.categories_)
                            for _ in range(len(levels) - n_dropped)]
            else:
                expanded = []
        else:
            if self.categorical:
                self._categorical_encoder = OrdinalEncoder(handle_unknown='use_encoded_value', unknown_value=-1)
                self._categorical_encoder.fit(self._categorical_frame(X))
            expanded = list(self.categorical)

        self.output_features = self.numeric + expanded
        return self

    def transform(self, X: pd.DataFrame):
        if self.mode == NATIVE:
            out = X[self.output_features].copy()
            if self.numeric:
                out[self.numeric] = X[self.numeric].astype(float)
            if self.categorical:
                out[self.categorical] = self._categorical_frame(X)
            return out

        parts = []
        if self.numeric:
            numeric = self._numeric_frame(X).to_numpy()
            parts.append(self._scaler.transform(numeric) if self._scaler is not None else numeric)
        if self.categorical:
            parts.append(self._categorical_encoder.transform(self._categorical_frame(X)))
        return np.hstack(parts).astype(float)


class ModelAdapter:
    """
    Interfaccia comune: fit, predict, predict_proba (classificatori),
    native_importance (None se l'algoritmo non ha un segnale nativo).
    """

    algorithm: str = ''
    encoding: str = ORDINAL
    estimators: Dict[str, Callable[..., Any]] = {}
    default_params: Dict[str, Dict[str, Any]] = {}
    seed_param: Optional[str] = 'random_state'
    drop_first_level: bool = False

    def __init__(self, kind: str, **hyperparameters):
        if kind not in self.estimators:
            raise ConfigurationError(f"L'algoritmo '{self.algorithm}' non supporta il tipo '{kind}'")
        self.kind = kind
        self.params = {**self.default_params.get(kind, {}), **hyperparameters}
        self.estimator = None
        self.classes_ = None
        self.feature_names: List[str] = []
        self._encoder: Optional[FeatureEncoder] = None
        self._label_encoder: Optional[LabelEncoder] = None

    @classmethod
    def seed_param_for(cls, kind: str) -> Optional[str]:
        """Nome dell'iperparametro del seed per il tipo dato (None se deterministico)."""
        return cls.seed_param

    @property
    def is_classifier(self) -> bool:
        return self.kind == CLASSIFICATION

    @property
    def is_fitted(self) -> bool:
        return self.estimator is not None

    @property
    def supports_proba(self) -> bool:
        return self.is_classifier

    def _build_estimator(self):
        return self.estimators[self.kind](**self.params)

    def _fit_estimator(self, X, y) -> None:
        self.estimator.fit(X, y)

    def _raw_importance(self) -> Optional[np.ndarray]:
        return None

    def _check_fitted(self) -> None:
        if not self.is_fitted:
            raise ModelPredictError(self.algorithm, "Il modello deve essere fittato prima della predizione")

    def fit(self, X: pd.DataFrame, y, column_types: Optional[Mapping[str, str]] = None) -> 'ModelAdapter':
        """
        Adatta il modello ai dati.

        Args:
            X: Feature (DataFrame misto)
            y: Target
            column_types: Tipo per colonna; inferito dai dtype se None
        """
        self.feature_names = list(X.columns)
        types = dict(column_types) if column_types else {col: infer_column_type(X[col]) for col in X.columns}

        self._encoder = FeatureEncoder(self.encoding, drop_first=self.drop_first_level).fit(X, types)
        X_encoded = self._encoder.transform(X)

        if self.is_classifier:
            self._label_encoder = LabelEncoder()
            y_encoded = self._label_encoder.fit_transform(np.asarray(y))
            self.classes_ = self._label_encoder.classes_
        else:
            y_encoded = np.asarray(y, dtype=float)

        self.estimator = self._build_estimator()
        self._fit_estimator(X_encoded, y_encoded)
        return self

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        self._check_fitted()
        raw = np.asarray(self.estimator.predict(self._encoder.transform(X[self.feature_names]))).ravel()
        if self.is_classifier:
            return self._label_encoder.inverse_transform(raw.astype(int))
        return raw.astype(float)

    def predict_proba(self, X: pd.DataFrame) -> np.ndarray:
        """Probabilità per classe, colonne nell'ordine di `classes_`."""
        self._check_fitted()
        if not self.supports_proba:
            raise ModelPredictError(self.algorithm, "predict_proba disponibile solo per i classificatori")
        return np.asarray(self.estimator.predict_proba(self._encoder.transform(X[self.feature_names])), dtype=float)

    def native_importance(self) -> Optional[Dict[str, float]]:
        """Segnale di importanza nativo per feature originale, o None."""
        self._check_fitted()
        raw = self._raw_importance()
        if raw is None:
            return None

        raw = np.abs(np.asarray(raw, dtype=float)).ravel()
        importance = {feature: 0.0 for feature in self.feature_names}
        for feature, value in zip(self._encoder.output_features, raw):
            importance[feature] += float(value)
        return importance

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind!r}, params={self.params})"


ADAPTER_REGISTRY: Dict[str, Type[ModelAdapter]] = {}


def register_adapter(name: str):
    """Decoratore che registra un adapter sotto il nome dell'algoritmo."""
    def decorator(cls: Type[ModelAdapter]) -> Type[ModelAdapter]:
        cls.algorithm = name
        ADAPTER_REGISTRY[name] = cls
        return cls
    return decorator


class _CoefficientImportance:
    def _raw_importance(self):
        # coef_ su feature standardizzate; multi-classe: media sulle classi
        return np.abs(np.atleast_2d(self.estimator.coef_)).mean(axis=0)


class _ImpurityImportance:
    def _raw_importance(self):
        return self.estimator.feature_importances_


@register_adapter('linear')
class LinearAdapter(_CoefficientImportance, ModelAdapter):
    encoding = ONEHOT
    # senza penalità: one-hot completo + intercetta sarebbe collineare
    drop_first_level = True
    estimators = {REGRESSION: LinearRegression, CLASSIFICATION: LogisticRegression}
    default_params = {CLASSIFICATION: {'max_iter': 1000}}

    @classmethod
    def seed_param_for(cls, kind):
        return 'random_state' if kind == CLASSIFICATION else None


@register_adapter('elastic_net')
class ElasticNetAdapter(_CoefficientImportance, ModelAdapter):
    encoding = ONEHOT
    estimators = {REGRESSION: ElasticNet, CLASSIFICATION: LogisticRegression}
    default_params = {
        REGRESSION: {'alpha': 0.1, 'l1_ratio': 0.5, 'max_iter': 5000},
        CLASSIFICATION: {'penalty': 'elasticnet', 'solver': 'saga', 'l1_ratio': 0.5, 'max_iter': 5000}
    }


@register_adapter('random_forest')
class RandomForestAdapter(_ImpurityImportance, ModelAdapter):
    estimators = {REGRESSION: RandomForestRegressor, CLASSIFICATION: RandomForestClassifier}
    default_params = {
        REGRESSION: {'n_estimators': 200},
        CLASSIFICATION: {'n_estimators': 200}
    }


@register_adapter('gradient_boosting')
class GradientBoostingAdapter(_ImpurityImportance, ModelAdapter):
    estimators = {REGRESSION: GradientBoostingRegressor, CLASSIFICATION: GradientBoostingClassifier}


@register_adapter('xgboost')
class XGBoostAdapter(ModelAdapter):
    estimators = {REGRESSION: xgb.XGBRegressor, CLASSIFICATION: xgb.XGBClassifier}
    default_params = {
        REGRESSION: {'n_estimators': 200, 'verbosity': 0},
        CLASSIFICATION: {'n_estimators': 200, 'verbosity': 0}
    }

    def _raw_importance(self):
        # Guadagno totale degli split; le feature mai usate non compaiono nel booster
        scores = self.estimator.get_booster().get_score(importance_type='total_gain')
        return np.array([scores.get(f'f{i}', 0.0) for i in range(len(self._encoder.output_features))])


@register_adapter('lightgbm')
class LightGBMAdapter(ModelAdapter):
    estimators = {REGRESSION: lgb.LGBMRegressor, CLASSIFICATION: lgb.LGBMClassifier}
    default_params = {
        REGRESSION: {'n_estimators': 200, 'verbose': -1},
        CLASSIFICATION: {'n_estimators': 200, 'verbose': -1}
    }

    def _raw_importance(self):
        return self.estimator.booster_.feature_importance(importance_type='gain')


@register_adapter('catboost')
class CatBoostAdapter(ModelAdapter):
    encoding = NATIVE
    estimators = {REGRESSION: cb.CatBoostRegressor, CLASSIFICATION: cb.CatBoostClassifier}
    default_params = {
        REGRESSION: {'iterations': 300, 'logging_level': 'Silent', 'allow_writing_files': False},
        CLASSIFICATION: {'iterations': 300, 'logging_level': 'Silent', 'allow_writing_files': False}
    }
    seed_param = 'random_seed'

    def _fit_estimator(self, X, y):
        self.estimator.fit(X, y, cat_features=self._encoder.cat_feature_indices)

    def _raw_importance(self):
        return self.estimator.get_feature_importance(type='PredictionValuesChange')


@register_adapter('svm')
class SVMAdapter(ModelAdapter):
    encoding = ONEHOT
    estimators = {REGRESSION: SVR, CLASSIFICATION: SVC}
    default_params = {CLASSIFICATION: {'probability': True}}

    @classmethod
    def seed_param_for(cls, kind):
        return 'random_state' if kind == CLASSIFICATION else None


@register_adapter('knn')
class KNNAdapter(ModelAdapter):
    encoding = ONEHOT
    estimators = {REGRESSION: KNeighborsRegressor, CLASSIFICATION: KNeighborsClassifier}
    seed_param = None


def available_algorithms() -> List[str]:
    return sorted(ADAPTER_REGISTRY)


def create_adapter(spec: ModelSpec, random_state: Optional[int] = None) -> ModelAdapter:
    """
    Istanzia l'adapter per una ModelSpec.

    Il seed viene iniettato negli algoritmi stocastici solo se gli iperparametri
    non ne specificano già uno.

    Raises:
        ConfigurationError: Algoritmo non registrato o tipo non supportato
    """
    adapter_cls = ADAPTER_REGISTRY.get(spec.algorithm)
    if adapter_cls is None:
        raise ConfigurationError(
            f"Algoritmo non supportato: '{spec.algorithm}' (disponibili: {available_algorithms()})"
        )

    params = dict(spec.hyperparameters)
    seed_param = adapter_cls.seed_param_for(spec.kind)
    if random_state is not None and seed_param and seed_param not in params:
        params[seed_param] = random_state

    return adapter_cls(spec.kind, **params)


def load_model_specs(config: Dict[str, Any]) -> List[ModelSpec]:
    """
    Costruisce le ModelSpec dalla sezione `models` della configurazione.

    I modelli con `enabled: false` vengono saltati (e loggati).

    Raises:
        ConfigurationError: Voce malformata o nomi duplicati
    """
    entries = config.get('models') or []
    specs = []

    for i, entry in enumerate(entries):
        if not isinstance(entry, dict) or 'name' not in entry or 'kind' not in entry:
            raise ConfigurationError(f"Voce models[{i}] non valida: servono almeno 'name' e 'kind'")

        if not entry.get('enabled', True):
            logger.info(f"Modello '{entry['name']}' disabilitato, saltato")
            continue

        specs.append(ModelSpec(
            name=str(entry['name']),
            kind=entry['kind'],
            hyperparameters=entry.get('hyperparameters') or {},
            algorithm=entry.get('algorithm')
        ))

    names = [spec.name for spec in specs]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ConfigurationError(f"Nomi di modello duplicati: {duplicates}")

    logger.info(f"Modelli configurati: {names}")
    return specs
