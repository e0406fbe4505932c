"""
Scenario Orchestrators
Wires normalization, training, inference and validation for each prediction
scenario:

    AdmissionForecaster   daily admission counts from admission history
    DiseaseRiskForecaster disease probabilities from a weather reading
    GovtDataValidator     doctors required, validated against government data

Each orchestrator owns its feature/target schemas, network shape and minimum
sample count. Trained models live in a ModelRegistry, which may be shared.
"""

import math
from datetime import date, timedelta
from typing import Callable, Dict, Iterable, List

import numpy as np
import pandas as pd

from healthcast.ml_models.network import EpochProgress, NetworkSpec, NetworkTrainer, OutputKind
from healthcast.ml_models.registry import ModelRegistry, TrainedModel
from healthcast.ml_models.training import TrainingHandle
from healthcast.models import (AccuracyComparison, AdmissionForecast, AdmissionRecord,
                               BatchComparisonReport, GroundTruthRecord, WeatherReading)
from healthcast.services import accuracy, risk_formulas
from healthcast.services.feature_schema import (ADMISSION_FEATURES, ADMISSION_TARGETS, GOVT_FEATURES,
                                                GOVT_TARGETS, WEATHER_FEATURES, FeatureSchema,
                                                disease_targets)
from healthcast.services.govt_dataset import ReferenceDataset, ground_truth_doctors
from healthcast.services.history_features import (derive_training_examples, next_day_features,
                                                  sort_records)
from healthcast.services.normalizer import FeatureNormalizer
from healthcast.services.synthetic_data import generate_disease_training_data, holiday_dates
from healthcast.utils.config import (MIN_ADMISSION_SAMPLES, MIN_DISEASE_SAMPLES, MIN_GOVT_SAMPLES,
                                     NOMINAL_WEATHER, SYNTHETIC_DISEASE_SAMPLES, TRAINING_SEED)
from healthcast.utils.errors import (HealthcastError, InsufficientDataError, InvalidFeatureError,
                                     RecordNotFoundError, TrainingFailure)
from healthcast.utils.logger import get_logger, log_comparison, log_prediction, log_training

logger = get_logger(__name__)


def to_count(value: float) -> int:
    """Rounds half up and floors at zero; the single place counts are rounded."""
    return max(0, int(math.floor(value + 0.5)))


class ScenarioOrchestrator:
    """Shared train / persist / status plumbing for one scenario."""

    scenario: str = ''
    feature_schema: FeatureSchema = None
    target_schema: FeatureSchema = None
    network_spec: NetworkSpec = None
    min_samples = 1
    epochs = 100
    batch_size = 32
    validation_split = 0.2
    normalize_targets = False

    def __init__(self, registry: ModelRegistry = None, seed: int = None):
        self.registry = registry or ModelRegistry()
        self.seed = TRAINING_SEED if seed is None else seed

    # --- training ---

    def _insufficient(self, available: int) -> InsufficientDataError:
        return InsufficientDataError(available, self.min_samples)

    def _fit(self, features, targets,
             epochs: int = None,
             batch_size: int = None,
             on_epoch_end: Callable[[EpochProgress], None] = None,
             should_stop: Callable[[], bool] = None,
             extras: dict = None) -> TrainedModel:
        features = np.asarray(features, dtype=np.float64)
        targets = np.asarray(targets, dtype=np.float64)
        if len(features) < self.min_samples:
            raise self._insufficient(len(features))

        self.registry.begin_fit(self.scenario)
        try:
            feature_normalizer = FeatureNormalizer(self.feature_schema)
            feature_stats = feature_normalizer.fit(features)
            x = feature_normalizer.transform(features, feature_stats)

            target_stats = None
            y = targets
            if self.normalize_targets:
                target_normalizer = FeatureNormalizer(self.target_schema)
                target_stats = target_normalizer.fit(targets)
                y = target_normalizer.transform(targets, target_stats)

            trainer = NetworkTrainer(self.network_spec, seed=self.seed)
            network = trainer.build()
            self.registry.mark_fitting(self.scenario)
            metrics = trainer.fit(
                network, x, y,
                epochs=epochs or self.epochs,
                batch_size=batch_size or self.batch_size,
                validation_split=self.validation_split,
                min_samples=self.min_samples,
                on_epoch_end=on_epoch_end,
                should_stop=should_stop,
            )
        except RuntimeError as e:
            self.registry.abort_fit(self.scenario)
            raise TrainingFailure(f"Training backend failed: {e}", {'scenario': self.scenario}) from e
        except Exception:
            self.registry.abort_fit(self.scenario)
            raise

        extras = dict(extras or {})
        extras.update(self.describe_fit(metrics, target_stats))
        model = TrainedModel(
            scenario=self.scenario,
            spec=self.network_spec,
            network=network,
            feature_schema=self.feature_schema,
            target_schema=self.target_schema,
            feature_stats=feature_stats,
            target_stats=target_stats,
            metrics=metrics,
            extras=extras,
        )
        self.registry.commit(self.scenario, model)
        log_training(logger, self.scenario, metrics.to_dict(), len(features))
        return model

    def describe_fit(self, metrics, target_stats) -> dict:
        """Scenario-specific summary values stored with the model."""
        return {}

    def train(self, *args, **kwargs) -> TrainedModel:
        raise NotImplementedError

    def start_training(self, *args, **kwargs) -> TrainingHandle:
        """
        Runs ``train`` in a worker thread. Must be called from a running event loop.

        The returned handle streams EpochProgress events and can be cancelled;
        a cancelled run leaves the previously trained model in place.
        """
        def job(report, stop):
            return self.train(*args, on_epoch_end=report, should_stop=stop, **kwargs)
        return TrainingHandle(self.scenario, job).start()

    # --- model access ---

    @property
    def model(self) -> TrainedModel:
        return self.registry.require(self.scenario)

    @property
    def is_trained(self) -> bool:
        return self.registry.get(self.scenario) is not None

    def save(self) -> str:
        return self.registry.save(self.scenario)

    def load(self) -> bool:
        return self.registry.load(self.scenario) is not None

    def status(self) -> dict:
        model = self.registry.get(self.scenario)
        return {
            'scenario': self.scenario,
            'state': self.registry.state(self.scenario).value,
            'trained': model is not None,
            'trained_at': model.trained_at.isoformat() if model else None,
            'metrics': model.metrics.to_dict() if model else None,
            'min_samples': self.min_samples,
            'features': list(self.feature_schema.fields),
            'targets': list(self.target_schema.fields),
        }


class AdmissionForecaster(ScenarioOrchestrator):
    """
    Predicts total, emergency, OPD and scheduled admissions for a day.

    Minimum training data: 30 days of history by default (MIN_ADMISSION_SAMPLES).
    """

    scenario = 'admission'
    feature_schema = ADMISSION_FEATURES
    target_schema = ADMISSION_TARGETS
    network_spec = NetworkSpec(
        input_width=ADMISSION_FEATURES.width,
        output_width=ADMISSION_TARGETS.width,
        hidden_sizes=(64, 128, 64, 32),
        output_kind=OutputKind.NON_NEGATIVE,
        dropout=(0.2, 0.25, 0.2),
    )
    epochs = 100
    batch_size = 16
    confidence = 0.85
    interval_fraction = 0.15

    def __init__(self, registry: ModelRegistry = None, seed: int = None, min_samples: int = None):
        super().__init__(registry, seed)
        self.min_samples = MIN_ADMISSION_SAMPLES if min_samples is None else min_samples

    def _insufficient(self, available: int) -> InsufficientDataError:
        return InsufficientDataError(
            available, self.min_samples,
            f"Need at least {self.min_samples} days of data to train. Currently have {available} days.",
        )

    def train(self, records: Iterable[AdmissionRecord], epochs: int = None, batch_size: int = None,
              on_epoch_end=None, should_stop=None) -> TrainedModel:
        records = sort_records(records)
        if len(records) < self.min_samples:
            raise self._insufficient(len(records))

        # Lag features are derived on the chronological sequence; shuffling happens inside fit.
        examples = derive_training_examples(records)
        features = np.array([e.features for e in examples])
        targets = np.array([e.target for e in examples])
        return self._fit(features, targets, epochs, batch_size, on_epoch_end, should_stop,
                         extras={'first_date': records[0].date.isoformat(),
                                 'last_date': records[-1].date.isoformat()})

    def predict(self, features: Dict[str, float], forecast_date: date = None) -> AdmissionForecast:
        raw = self.model.predict(features)
        counts = [to_count(v) for v in raw]
        total = counts[0]
        forecast = AdmissionForecast(
            date=forecast_date,
            total_admissions=total,
            emergency_admissions=counts[1],
            opd_admissions=counts[2],
            scheduled_admissions=counts[3],
            confidence=self.confidence,
            confidence_interval=(to_count(total * (1 - self.interval_fraction)),
                                 to_count(total * (1 + self.interval_fraction))),
        )
        log_prediction(logger, self.scenario, f"Date: {forecast_date} | Total: {total}")
        return forecast

    def predict_from_history(self, records: Iterable[AdmissionRecord], target_date: date = None,
                             is_holiday: bool = None) -> AdmissionForecast:
        records = sort_records(records)
        if not records:
            raise InsufficientDataError(0, 1, "No historical data available to generate prediction features")
        target_date = target_date or records[-1].date + timedelta(days=1)
        if is_holiday is None:
            is_holiday = target_date in holiday_dates()
        features = next_day_features(records, target_date, is_holiday)
        return self.predict(features, target_date)

    def predict_next_days(self, records: Iterable[AdmissionRecord], days: int = 7,
                          start_date: date = None) -> List[AdmissionForecast]:
        """
        Forecasts ``days`` consecutive days.

        Each forecast is appended to the working history so later days see it
        in their lag and trend features. A ``start_date`` inside the history
        drops the records from that day on; the forecasts take their place.
        """
        if days < 1:
            raise InvalidFeatureError(f"days must be at least 1, got {days}")
        history = sort_records(records)
        if not history:
            raise InsufficientDataError(0, 1, "No historical data available to generate prediction features")
        day = start_date or history[-1].date + timedelta(days=1)
        history = [r for r in history if r.date < day]
        if not history:
            raise InsufficientDataError(0, 1, f"No admission history before {day.isoformat()}")
        holidays = holiday_dates()

        forecasts = []
        for _ in range(days):
            forecast = self.predict_from_history(history, day, day in holidays)
            forecasts.append(forecast)
            history.append(AdmissionRecord(
                date=day,
                total_admissions=forecast.total_admissions,
                emergency_admissions=forecast.emergency_admissions,
                opd_admissions=forecast.opd_admissions,
                scheduled_admissions=forecast.scheduled_admissions,
                is_holiday=day in holidays,
            ))
            day += timedelta(days=1)
        return forecasts


def weather_features(weather: WeatherReading, nominal: dict = None) -> dict:
    """Weather reading as a WEATHER_FEATURES mapping, filling optional fields with nominal values."""
    nominal = nominal or NOMINAL_WEATHER
    dew_point = weather.dew_point
    if dew_point is None:
        dew_point = weather.temperature - (100 - weather.humidity) / 5
    return {
        'temperature': weather.temperature,
        'humidity': weather.humidity,
        'rainfall': weather.rainfall,
        'wind_speed': nominal['wind_speed'] if weather.wind_speed is None else weather.wind_speed,
        'uv_index': nominal['uv_index'] if weather.uv_index is None else weather.uv_index,
        'pressure': nominal['pressure'] if weather.pressure is None else weather.pressure,
        'dew_point': dew_point,
        'weather_code': nominal['weather_code'] if weather.weather_code is None else weather.weather_code,
    }


def ml_risk_level(probability_percent: float) -> str:
    if probability_percent >= 70:
        return 'High'
    if probability_percent >= 50:
        return 'Medium'
    if probability_percent >= 30:
        return 'Low'
    return 'Minimal'


class DiseaseRiskForecaster(ScenarioOrchestrator):
    """
    Predicts a probability per catalogue disease from a weather reading.

    Real labelled data is used when at least MIN_DISEASE_SAMPLES rows are
    available; otherwise the model is trained on synthetic data.
    """

    scenario = 'disease_risk'
    feature_schema = WEATHER_FEATURES
    target_schema = disease_targets(risk_formulas.DISEASE_NAMES)
    network_spec = NetworkSpec(
        input_width=WEATHER_FEATURES.width,
        output_width=len(risk_formulas.DISEASE_NAMES),
        hidden_sizes=(32, 64, 48, 32),
        output_kind=OutputKind.PROBABILITY,
        dropout=(0.2, 0.3, 0.2),
    )
    epochs = 50
    batch_size = 32
    reporting_threshold = 25.0

    def __init__(self, registry: ModelRegistry = None, seed: int = None, min_samples: int = None):
        super().__init__(registry, seed)
        self.min_samples = MIN_DISEASE_SAMPLES if min_samples is None else min_samples

    def train(self, features: pd.DataFrame = None, labels: pd.DataFrame = None,
              num_samples: int = None, epochs: int = None, batch_size: int = None,
              on_epoch_end=None, should_stop=None) -> TrainedModel:
        """
        Args:
            features: Observed weather, one column per WEATHER_FEATURES field
            labels: Observed probabilities in [0, 1], one column per disease
            num_samples: Synthetic set size when observed data is insufficient
        """
        source = 'observed'
        if features is None or labels is None or len(features) < self.min_samples:
            available = 0 if features is None else len(features)
            num_samples = SYNTHETIC_DISEASE_SAMPLES if num_samples is None else num_samples
            logger.info(f"{available} observed samples (< {self.min_samples}); "
                        f"training on {num_samples} synthetic samples")
            features, labels = generate_disease_training_data(num_samples, seed=self.seed)
            source = 'synthetic'

        if len(features) != len(labels):
            raise InvalidFeatureError(f"{len(features)} feature rows but {len(labels)} label rows")
        x = self.feature_schema.matrix(features.to_dict(orient='records'))
        y = self.target_schema.matrix(labels.to_dict(orient='records'))
        if y.size and (y.min() < 0 or y.max() > 1):
            raise InvalidFeatureError("Disease labels must lie in [0, 1]")
        return self._fit(x, y, epochs, batch_size, on_epoch_end, should_stop,
                         extras={'data_source': source})

    def _confidence(self, model: TrainedModel) -> float:
        mae = model.metrics.validation_mae
        if mae is None:
            mae = model.metrics.final_mae
        return round(max(0.0, min(1.0, 1 - mae)), 4)

    def probabilities(self, weather: WeatherReading) -> Dict[str, float]:
        """Percent probability for every disease, in catalogue order."""
        raw = self.model.predict(weather_features(weather))
        return {name: float(np.clip(p, 0, 1) * 100) for name, p in zip(self.target_schema.fields, raw)}

    def predict(self, weather: WeatherReading) -> List[dict]:
        model = self.model
        confidence = self._confidence(model)
        predictions = [
            {
                'disease': name,
                'probability': round(p, 2),
                'risk_level': ml_risk_level(p),
                'confidence': confidence,
            }
            for name, p in self.probabilities(weather).items()
            if p > self.reporting_threshold
        ]
        predictions.sort(key=lambda p: p['probability'], reverse=True)
        log_prediction(logger, self.scenario, f"City: {weather.city} | Diseases: {len(predictions)}")
        return predictions

    def compare_with_rules(self, weather: WeatherReading) -> List[dict]:
        """ML probability next to the rule-based score for every disease, in percent."""
        ml = self.probabilities(weather)
        rules = risk_formulas.score_all(weather)
        return [
            {
                'disease': name,
                'ml_probability': round(ml[name], 2),
                'rule_probability': round(rules[name] * 100, 2),
                'difference': round(ml[name] - rules[name] * 100, 2),
            }
            for name in risk_formulas.DISEASE_NAMES
        ]


class GovtDataValidator(ScenarioOrchestrator):
    """
    Learns doctors-required from government district data and compares the
    model against the rule-based engine using the reported case loads as
    ground truth.

    Minimum training data: MIN_GOVT_SAMPLES records (default 10).
    """

    scenario = 'govt_validation'
    feature_schema = GOVT_FEATURES
    target_schema = GOVT_TARGETS
    network_spec = NetworkSpec(
        input_width=GOVT_FEATURES.width,
        output_width=GOVT_TARGETS.width,
        hidden_sizes=(64, 128, 64, 32),
        output_kind=OutputKind.LINEAR,
        dropout=(0.0, 0.2),
    )
    epochs = 100
    batch_size = 8
    normalize_targets = True

    def __init__(self, registry: ModelRegistry = None, dataset: ReferenceDataset = None,
                 cases_per_doctor: int = None, seed: int = None, min_samples: int = None):
        super().__init__(registry, seed)
        self.dataset = dataset if dataset is not None else ReferenceDataset()
        self.cases_per_doctor = cases_per_doctor
        self.min_samples = MIN_GOVT_SAMPLES if min_samples is None else min_samples

    @staticmethod
    def record_features(record: GroundTruthRecord) -> dict:
        return {
            'temperature_avg': record.temperature_avg,
            'humidity_avg': record.humidity_avg,
            'rainfall_mm': record.rainfall_mm,
            'month': record.month,
            'population_thousands': record.population_thousands,
            'dengue_cases': record.dengue_cases,
            'malaria_cases': record.malaria_cases,
            'typhoid_cases': record.typhoid_cases,
            'influenza_cases': record.influenza_cases,
            'other_cases': record.respiratory_cases + record.gastroenteritis_cases,
        }

    def ground_truth(self, record: GroundTruthRecord) -> int:
        return ground_truth_doctors(record, self.cases_per_doctor)

    def train(self, records: Iterable[GroundTruthRecord] = None, epochs: int = None,
              batch_size: int = None, on_epoch_end=None, should_stop=None) -> TrainedModel:
        records = list(records) if records is not None else list(self.dataset.records)
        if len(records) < self.min_samples:
            raise self._insufficient(len(records))

        x = self.feature_schema.matrix(self.record_features(r) for r in records)
        y = np.array([[self.ground_truth(r)] for r in records], dtype=np.float64)
        model = self._fit(x, y, epochs, batch_size, on_epoch_end, should_stop)
        logger.info(f"Doctor-requirement model accuracy: {model.extras['model_accuracy_percent']:.2f}%")
        return model

    def describe_fit(self, metrics, target_stats) -> dict:
        # MAE back in doctor units, relative to the average requirement
        scale = target_stats.std[0] + FeatureNormalizer(self.target_schema).epsilon
        mae_doctors = metrics.final_mae * scale
        mean_doctors = target_stats.mean[0]
        model_accuracy = max(0.0, 100 - mae_doctors / mean_doctors * 100) if mean_doctors else 0.0
        return {'mae_doctors': mae_doctors, 'model_accuracy_percent': model_accuracy}

    def predict(self, record: GroundTruthRecord) -> dict:
        model = self.model
        doctors = float(model.predict(self.record_features(record))[0])
        normalized = FeatureNormalizer(self.target_schema).transform([doctors], model.target_stats)[0]
        return {
            'predicted_doctors': to_count(doctors),
            'confidence': min(0.95, max(0.6, 1 - abs(float(normalized)) * 0.1)),
        }

    def rule_based_doctors(self, record: GroundTruthRecord) -> int:
        """
        Doctors the rule engine would staff for the record's weather.

        Falls back to one doctor per thousand residents when the weather
        snapshot cannot be scored.
        """
        try:
            predictions = risk_formulas.predict_diseases(record.weather_snapshot())
        except InvalidFeatureError as e:
            logger.warning(f"Rule-based scoring failed for {record.pincode}: {e.message}")
            return math.ceil(record.population_thousands)
        return risk_formulas.total_doctor_requirements(predictions)

    def validate_record(self, record: GroundTruthRecord) -> AccuracyComparison:
        prediction = self.predict(record)
        comparison = accuracy.compare(
            ground_truth=self.ground_truth(record),
            ml_prediction=prediction['predicted_doctors'],
            rule_based_prediction=self.rule_based_doctors(record),
            context={
                'pincode': record.pincode,
                'city': record.district,
                'state': record.state,
                'month': record.month,
                'weather': {
                    'temperature': record.temperature_avg,
                    'humidity': record.humidity_avg,
                    'rainfall': record.rainfall_mm,
                },
                'total_cases': record.total_cases,
                'ml_confidence': prediction['confidence'],
            },
        )
        log_comparison(logger, comparison.to_dict())
        return comparison

    def validate(self, pincode: str, month: int = None) -> AccuracyComparison:
        self.registry.require(self.scenario)
        record = self.dataset.by_pincode(pincode, month)
        if record is None:
            raise RecordNotFoundError(
                f"No government data found for pincode {pincode}. "
                f"Available pincodes: {', '.join(self.dataset.pincodes())}"
            )
        return self.validate_record(record)

    def validate_all(self, records: Iterable[GroundTruthRecord] = None) -> BatchComparisonReport:
        self.registry.require(self.scenario)
        records = list(records) if records is not None else list(self.dataset.records)
        comparisons, failures = [], []
        for record in records:
            try:
                comparisons.append(self.validate_record(record))
            except HealthcastError as e:
                logger.warning(f"Validation failed for {record.pincode}/{record.month}: {e.message}")
                failures.append({'pincode': record.pincode, 'month': record.month,
                                 'kind': e.kind, 'message': e.message})
        report = accuracy.summarize(comparisons, failures)
        logger.info(
            f"Validated {report.total_tests} records | ML {report.mean_ml_accuracy:.1f}% | "
            f"Rule {report.mean_rule_accuracy:.1f}% | Winner: {report.overall_winner.value}"
        )
        return report

    def status(self) -> dict:
        status = super().status()
        model = self.registry.get(self.scenario)
        status['model_accuracy_percent'] = model.extras.get('model_accuracy_percent') if model else None
        status['dataset_size'] = len(self.dataset)
        status['available_pincodes'] = [
            {'pincode': r.pincode, 'city': r.district, 'state': r.state, 'month': r.month}
            for r in self.dataset.records
        ]
        return status
