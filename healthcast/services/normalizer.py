"""
Feature Normalizer
Z-score normalization with statistics learned from a training set.
"""

from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

from healthcast.services.feature_schema import FeatureSchema
from healthcast.utils.config import NORMALIZATION_EPSILON
from healthcast.utils.errors import InsufficientDataError, InvalidFeatureError


@dataclass(frozen=True)
class NormalizationStatistics:
    fields: Tuple[str, ...]
    mean: Tuple[float, ...]
    std: Tuple[float, ...]

    def to_dict(self) -> dict:
        return {'fields': list(self.fields), 'mean': list(self.mean), 'std': list(self.std)}

    @classmethod
    def from_dict(cls, data: dict) -> 'NormalizationStatistics':
        return cls(
            fields=tuple(data['fields']),
            mean=tuple(float(v) for v in data['mean']),
            std=tuple(float(v) for v in data['std']),
        )


class FeatureNormalizer:
    """
    Fits per-column mean / population standard deviation and applies
    ``(x - mean) / (std + epsilon)``.

    Every transform re-checks the schema against the field names stored in the
    statistics, so a reordered vector fails loudly instead of being silently
    mis-scaled.
    """

    def __init__(self, schema: FeatureSchema, epsilon: float = None):
        self.schema = schema
        self.epsilon = NORMALIZATION_EPSILON if epsilon is None else epsilon

    def fit(self, matrix) -> NormalizationStatistics:
        data = np.asarray(matrix, dtype=np.float64)
        if data.ndim != 2 or data.shape[0] == 0:
            raise InsufficientDataError(0, 1, f"{self.schema.name}: cannot fit statistics on an empty set")
        self.schema.check_width(data.shape[1])
        if not np.all(np.isfinite(data)):
            raise InvalidFeatureError(f"{self.schema.name}: training data contains non-finite values")

        mean = data.mean(axis=0)
        std = data.std(axis=0)  # population std (ddof=0)
        return NormalizationStatistics(
            fields=self.schema.fields,
            mean=tuple(float(v) for v in mean),
            std=tuple(float(v) for v in std),
        )

    def _arrays(self, stats: NormalizationStatistics):
        self.schema.ensure_matches(stats.fields)
        return np.asarray(stats.mean), np.asarray(stats.std) + self.epsilon

    def transform(self, values: Sequence[float], stats: NormalizationStatistics) -> np.ndarray:
        """Normalizes a single vector or a 2-D matrix of rows."""
        mean, scale = self._arrays(stats)
        data = np.asarray(values, dtype=np.float64)
        self.schema.check_width(data.shape[-1])
        return (data - mean) / scale

    def denormalize(self, values: Sequence[float], stats: NormalizationStatistics) -> np.ndarray:
        mean, scale = self._arrays(stats)
        data = np.asarray(values, dtype=np.float64)
        self.schema.check_width(data.shape[-1])
        return data * scale + mean
