"""
Model Registry
Holds the live trained model for each scenario and persists it with joblib.

A model is only ever published whole: training builds a complete TrainedModel
(network, schemas, statistics, metrics) and ``commit`` swaps it in under a lock.
Readers always see either the previous model or the new one.
"""

import os
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

import joblib
import numpy as np
import torch

from healthcast.ml_models.network import FeedForwardNetwork, NetworkSpec, NetworkTrainer, TrainingMetrics
from healthcast.services.feature_schema import FeatureSchema
from healthcast.services.normalizer import FeatureNormalizer, NormalizationStatistics
from healthcast.utils.config import MODEL_DIR
from healthcast.utils.errors import ModelNotTrainedError, TrainingFailure
from healthcast.utils.logger import get_logger

logger = get_logger(__name__)


class ModelState(str, Enum):
    UNBUILT = 'unbuilt'
    BUILT = 'built'
    FITTING = 'fitting'
    READY = 'ready'
    DISPOSED = 'disposed'


@dataclass(frozen=True)
class TrainedModel:
    """A fitted network together with everything needed to query it."""

    scenario: str
    spec: NetworkSpec
    network: FeedForwardNetwork
    feature_schema: FeatureSchema
    target_schema: FeatureSchema
    feature_stats: NormalizationStatistics
    metrics: TrainingMetrics
    target_stats: Optional[NormalizationStatistics] = None
    trained_at: datetime = field(default_factory=datetime.now)
    extras: dict = field(default_factory=dict)

    def predict(self, features: Dict[str, float]) -> np.ndarray:
        """
        Runs inference on a feature mapping and returns outputs in target units.

        Features are ordered by the stored schema and normalized with the stored
        statistics; normalized targets are mapped back before returning.
        """
        vector = self.feature_schema.vector(features)
        normalized = FeatureNormalizer(self.feature_schema).transform(vector, self.feature_stats)
        raw = NetworkTrainer.predict(self.network, normalized)
        if self.target_stats is not None:
            raw = FeatureNormalizer(self.target_schema).denormalize(raw, self.target_stats)
        return raw

    def to_artifact(self) -> dict:
        return {
            'scenario': self.scenario,
            'spec': self.spec.to_dict(),
            'state_dict': {k: v.detach().cpu().numpy() for k, v in self.network.state_dict().items()},
            'feature_schema': {'name': self.feature_schema.name, 'fields': list(self.feature_schema.fields)},
            'target_schema': {'name': self.target_schema.name, 'fields': list(self.target_schema.fields)},
            'feature_stats': self.feature_stats.to_dict(),
            'target_stats': self.target_stats.to_dict() if self.target_stats else None,
            'metrics': self.metrics.to_dict(),
            'trained_at': self.trained_at.isoformat(),
            'extras': dict(self.extras),
        }

    @classmethod
    def from_artifact(cls, artifact: dict) -> 'TrainedModel':
        spec = NetworkSpec.from_dict(artifact['spec'])
        network = FeedForwardNetwork(spec)
        network.load_state_dict({k: torch.from_numpy(np.asarray(v)) for k, v in artifact['state_dict'].items()})
        network.eval()
        target_stats = artifact.get('target_stats')
        return cls(
            scenario=artifact['scenario'],
            spec=spec,
            network=network,
            feature_schema=FeatureSchema(artifact['feature_schema']['name'], tuple(artifact['feature_schema']['fields'])),
            target_schema=FeatureSchema(artifact['target_schema']['name'], tuple(artifact['target_schema']['fields'])),
            feature_stats=NormalizationStatistics.from_dict(artifact['feature_stats']),
            target_stats=NormalizationStatistics.from_dict(target_stats) if target_stats else None,
            metrics=TrainingMetrics.from_dict(artifact['metrics']),
            trained_at=datetime.fromisoformat(artifact['trained_at']),
            extras=dict(artifact.get('extras') or {}),
        )


class ModelRegistry:
    """
    Scenario name -> live TrainedModel, plus the lifecycle state of each slot.

    Only one fit per scenario may run at a time; a second ``begin_fit`` for the
    same scenario is rejected. While a retrain is in progress the previously
    committed model keeps serving predictions.
    """

    def __init__(self, model_dir: str = None):
        self.model_dir = model_dir or MODEL_DIR
        self._lock = threading.Lock()
        self._models: Dict[str, TrainedModel] = {}
        self._states: Dict[str, ModelState] = {}

    def state(self, scenario: str) -> ModelState:
        with self._lock:
            return self._states.get(scenario, ModelState.UNBUILT)

    def get(self, scenario: str) -> Optional[TrainedModel]:
        with self._lock:
            return self._models.get(scenario)

    def require(self, scenario: str) -> TrainedModel:
        model = self.get(scenario)
        if model is None:
            raise ModelNotTrainedError(scenario)
        return model

    def begin_fit(self, scenario: str):
        with self._lock:
            if self._states.get(scenario) in (ModelState.BUILT, ModelState.FITTING):
                raise TrainingFailure(f"Model '{scenario}' is already training", {'scenario': scenario})
            self._states[scenario] = ModelState.BUILT

    def mark_fitting(self, scenario: str):
        with self._lock:
            self._states[scenario] = ModelState.FITTING

    def commit(self, scenario: str, model: TrainedModel):
        """Publishes ``model`` as the live model for ``scenario``."""
        with self._lock:
            self._models[scenario] = model
            self._states[scenario] = ModelState.READY
        logger.info(f"Model '{scenario}' is ready")

    def abort_fit(self, scenario: str):
        """Restores the slot after a failed or cancelled fit."""
        with self._lock:
            if scenario in self._models:
                self._states[scenario] = ModelState.READY
            else:
                self._states[scenario] = ModelState.UNBUILT

    def dispose(self, scenario: str):
        with self._lock:
            model = self._models.pop(scenario, None)
            self._states[scenario] = ModelState.DISPOSED
        if model is not None:
            logger.info(f"Model '{scenario}' disposed")

    def artifact_path(self, scenario: str) -> str:
        return os.path.join(self.model_dir, f"{scenario}.joblib")

    def save(self, scenario: str) -> str:
        model = self.require(scenario)
        os.makedirs(self.model_dir, exist_ok=True)
        path = self.artifact_path(scenario)
        tmp_path = path + '.tmp'
        joblib.dump(model.to_artifact(), tmp_path)
        os.replace(tmp_path, path)
        logger.info(f"Saved model '{scenario}' to {path}")
        return path

    def load(self, scenario: str) -> Optional[TrainedModel]:
        """
        Loads a persisted model and makes it live.

        Returns None when no artifact exists yet, which is the normal state
        before the first training run. A fit already in progress keeps its
        BUILT / FITTING state; only the served model changes.
        """
        path = self.artifact_path(scenario)
        if not os.path.exists(path):
            logger.info(f"No saved model for '{scenario}' at {path}")
            return None
        model = TrainedModel.from_artifact(joblib.load(path))
        with self._lock:
            self._models[scenario] = model
            if self._states.get(scenario) not in (ModelState.BUILT, ModelState.FITTING):
                self._states[scenario] = ModelState.READY
        logger.info(f"Loaded model '{scenario}' from {path}")
        return model

    def status(self) -> dict:
        with self._lock:
            scenarios = set(self._states) | set(self._models)
            return {
                name: {
                    'state': self._states.get(name, ModelState.UNBUILT).value,
                    'trained_at': self._models[name].trained_at.isoformat() if name in self._models else None,
                }
                for name in sorted(scenarios)
            }
