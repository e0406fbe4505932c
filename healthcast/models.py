"""
Domain Records
Immutable records shared by the scoring engine, the trainers and the validators.
"""

import math
from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from healthcast.utils.errors import InvalidFeatureError


def _check_finite(name, value):
    if value is None:
        return
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidFeatureError(f"{name} must be numeric, got {value!r}")
    if not math.isfinite(number):
        raise InvalidFeatureError(f"{name} must be finite, got {value!r}")


@dataclass(frozen=True)
class WeatherReading:
    """
    A single meteorological observation for a city.

    Only temperature, humidity and rainfall are mandatory. Optional fields left
    as ``None`` make the rule-based formulas skip the conditions that use them.
    """

    city: str
    temperature: float
    humidity: float
    rainfall: float = 0.0
    wind_speed: Optional[float] = None
    uv_index: Optional[float] = None
    pressure: Optional[float] = None
    dew_point: Optional[float] = None
    weather_code: Optional[int] = None
    recorded_at: Optional[datetime] = None

    def __post_init__(self):
        for name in ('temperature', 'humidity', 'rainfall', 'wind_speed',
                     'uv_index', 'pressure', 'dew_point', 'weather_code'):
            _check_finite(name, getattr(self, name))
        if not 0 <= self.humidity <= 100:
            raise InvalidFeatureError(f"humidity must lie in [0, 100], got {self.humidity}")
        if self.rainfall < 0:
            raise InvalidFeatureError(f"rainfall cannot be negative, got {self.rainfall}")

    def to_dict(self) -> dict:
        data = asdict(self)
        if self.recorded_at is not None:
            data['recorded_at'] = self.recorded_at.isoformat()
        return data


@dataclass(frozen=True)
class DiseaseDefinition:
    name: str
    specialty: str
    base_doctors_required: int
    risk_formula: Callable[[WeatherReading], float]
    description: str
    symptoms: Tuple[str, ...]
    prevention_tips: Tuple[str, ...]


@dataclass(frozen=True)
class DiseasePrediction:
    disease: str
    risk_level: float
    required_doctors: int
    specialty: str
    description: str = ''
    symptoms: Tuple[str, ...] = ()
    prevention: Tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            'disease': self.disease,
            'risk_level': self.risk_level,
            'required_doctors': self.required_doctors,
            'specialty': self.specialty,
            'description': self.description,
            'symptoms': list(self.symptoms),
            'prevention': list(self.prevention),
        }


@dataclass(frozen=True)
class TrainingExample:
    features: Tuple[float, ...]
    target: Tuple[float, ...]


class Winner(str, Enum):
    ML = 'ML Model'
    RULE_BASED = 'Rule-Based'
    TIE = 'Tie'


@dataclass(frozen=True)
class AccuracyComparison:
    ground_truth: float
    ml_prediction: float
    rule_based_prediction: float
    ml_error: float
    rule_error: float
    ml_accuracy_percent: float
    rule_accuracy_percent: float
    winner: Winner
    context: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = asdict(self)
        data['winner'] = self.winner.value
        return data


@dataclass(frozen=True)
class BatchComparisonReport:
    comparisons: List[AccuracyComparison]
    mean_ml_accuracy: float
    mean_rule_accuracy: float
    ml_wins: int
    rule_wins: int
    ties: int
    overall_winner: Winner
    failures: List[dict] = field(default_factory=list)
    mean_ml_error: float = 0.0
    mean_rule_error: float = 0.0

    @property
    def total_tests(self) -> int:
        return len(self.comparisons)

    def to_dict(self) -> dict:
        return {
            'summary': {
                'total_tests': self.total_tests,
                'mean_ml_accuracy': self.mean_ml_accuracy,
                'mean_rule_accuracy': self.mean_rule_accuracy,
                'mean_ml_error': self.mean_ml_error,
                'mean_rule_error': self.mean_rule_error,
                'ml_wins': self.ml_wins,
                'rule_wins': self.rule_wins,
                'ties': self.ties,
                'overall_winner': self.overall_winner.value,
            },
            'comparisons': [c.to_dict() for c in self.comparisons],
            'failures': list(self.failures),
        }


@dataclass(frozen=True)
class AdmissionRecord:
    """One day of hospital admissions. ``day_of_week`` uses Monday = 0."""

    date: date
    total_admissions: int
    emergency_admissions: int = 0
    opd_admissions: int = 0
    scheduled_admissions: int = 0
    is_holiday: bool = False

    def __post_init__(self):
        for name in ('total_admissions', 'emergency_admissions', 'opd_admissions', 'scheduled_admissions'):
            value = getattr(self, name)
            _check_finite(name, value)
            if value < 0:
                raise InvalidFeatureError(f"{name} cannot be negative, got {value}")

    @property
    def day_of_week(self) -> int:
        return self.date.weekday()

    @property
    def is_weekend(self) -> bool:
        return self.day_of_week >= 5

    def targets(self) -> Tuple[float, ...]:
        return (float(self.total_admissions), float(self.emergency_admissions),
                float(self.opd_admissions), float(self.scheduled_admissions))

    def to_dict(self) -> dict:
        return {
            'date': self.date.isoformat(),
            'total_admissions': self.total_admissions,
            'emergency_admissions': self.emergency_admissions,
            'opd_admissions': self.opd_admissions,
            'scheduled_admissions': self.scheduled_admissions,
            'day_of_week': self.day_of_week,
            'is_weekend': self.is_weekend,
            'is_holiday': self.is_holiday,
        }


@dataclass(frozen=True)
class AdmissionForecast:
    date: Optional[date]
    total_admissions: int
    emergency_admissions: int
    opd_admissions: int
    scheduled_admissions: int
    confidence: float
    confidence_interval: Tuple[int, int]

    def to_dict(self) -> dict:
        return {
            'date': self.date.isoformat() if self.date else None,
            'total_admissions': self.total_admissions,
            'emergency_admissions': self.emergency_admissions,
            'opd_admissions': self.opd_admissions,
            'scheduled_admissions': self.scheduled_admissions,
            'confidence': self.confidence,
            'confidence_interval': {
                'lower': self.confidence_interval[0],
                'upper': self.confidence_interval[1],
            },
        }


@dataclass(frozen=True)
class GroundTruthRecord:
    """Reference health statistics for one district and month."""

    state: str
    district: str
    pincode: str
    year: int
    month: int
    temperature_avg: float
    humidity_avg: float
    rainfall_mm: float
    dengue_cases: int
    malaria_cases: int
    typhoid_cases: int
    influenza_cases: int
    respiratory_cases: int
    gastroenteritis_cases: int
    population_thousands: float
    total_doctors: int = 0
    hospitals: int = 0
    beds_available: int = 0

    @property
    def case_counts(self) -> Dict[str, int]:
        return {
            'dengue': self.dengue_cases,
            'malaria': self.malaria_cases,
            'typhoid': self.typhoid_cases,
            'influenza': self.influenza_cases,
            'respiratory': self.respiratory_cases,
            'gastroenteritis': self.gastroenteritis_cases,
        }

    @property
    def total_cases(self) -> int:
        return sum(self.case_counts.values())

    def weather_snapshot(self) -> WeatherReading:
        return WeatherReading(
            city=self.district,
            temperature=self.temperature_avg,
            humidity=self.humidity_avg,
            rainfall=self.rainfall_mm,
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data['total_cases'] = self.total_cases
        return data
