"""
Feature Schemas
Named, ordered field lists shared by the normalizer, the trained networks and
every caller that builds a feature vector.

A schema turns a mapping into a vector in its own field order, so callers never
depend on positional layout. Statistics and persisted models remember the field
names they were fitted with and refuse to work against a different schema.
"""

import math
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence, Tuple

import numpy as np

from healthcast.utils.errors import InvalidFeatureError


@dataclass(frozen=True)
class FeatureSchema:
    name: str
    fields: Tuple[str, ...]

    @property
    def width(self) -> int:
        return len(self.fields)

    def vector(self, values: Mapping[str, float]) -> np.ndarray:
        """Builds a vector in schema order. Missing or non-finite fields are rejected."""
        missing = [f for f in self.fields if f not in values or values[f] is None]
        if missing:
            raise InvalidFeatureError(f"{self.name}: missing fields {missing}")

        row = []
        for f in self.fields:
            try:
                value = float(values[f])
            except (TypeError, ValueError):
                raise InvalidFeatureError(f"{self.name}: field '{f}' is not numeric ({values[f]!r})")
            if not math.isfinite(value):
                raise InvalidFeatureError(f"{self.name}: field '{f}' is not finite ({value})")
            row.append(value)
        return np.asarray(row, dtype=np.float64)

    def matrix(self, rows: Iterable[Mapping[str, float]]) -> np.ndarray:
        vectors = [self.vector(r) for r in rows]
        if not vectors:
            return np.empty((0, self.width), dtype=np.float64)
        return np.vstack(vectors)

    def as_dict(self, vector: Sequence[float]) -> dict:
        self.check_width(len(vector))
        return {f: float(v) for f, v in zip(self.fields, vector)}

    def check_width(self, width: int):
        if width != self.width:
            raise InvalidFeatureError(f"{self.name}: expected {self.width} values, got {width}")

    def ensure_matches(self, fields: Sequence[str]):
        """Raises if ``fields`` differs from this schema in content or order."""
        if tuple(fields) != self.fields:
            raise InvalidFeatureError(
                f"{self.name}: field order mismatch, expected {list(self.fields)} got {list(fields)}"
            )


ADMISSION_FEATURES = FeatureSchema('admission_features', (
    'day_of_week',
    'month',
    'day_of_month',
    'is_weekend',
    'is_public_holiday',
    'last_7_days_avg',
    'last_30_days_avg',
    'same_day_last_week',
    'same_day_last_month',
    'trend',
))

ADMISSION_TARGETS = FeatureSchema('admission_targets', (
    'total_admissions',
    'emergency_admissions',
    'opd_admissions',
    'scheduled_admissions',
))

WEATHER_FEATURES = FeatureSchema('weather_features', (
    'temperature',
    'humidity',
    'rainfall',
    'wind_speed',
    'uv_index',
    'pressure',
    'dew_point',
    'weather_code',
))

GOVT_FEATURES = FeatureSchema('govt_features', (
    'temperature_avg',
    'humidity_avg',
    'rainfall_mm',
    'month',
    'population_thousands',
    'dengue_cases',
    'malaria_cases',
    'typhoid_cases',
    'influenza_cases',
    'other_cases',
))

GOVT_TARGETS = FeatureSchema('govt_targets', ('doctors_required',))


def disease_targets(disease_names: Sequence[str]) -> FeatureSchema:
    return FeatureSchema('disease_targets', tuple(disease_names))
