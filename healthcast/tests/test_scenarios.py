"""
Scenario orchestrator tests: admission forecasting, disease risk and
government-data validation.
"""

from datetime import date, timedelta

import pytest

from healthcast.models import AdmissionRecord, Winner
from healthcast.services.scenarios import (AdmissionForecaster, DiseaseRiskForecaster, GovtDataValidator,
                                           ml_risk_level, to_count, weather_features)
from healthcast.services.synthetic_data import generate_admission_history, generate_disease_training_data
from healthcast.utils.errors import (InsufficientDataError, InvalidFeatureError, ModelNotTrainedError,
                                     RecordNotFoundError)


class TestHelpers:

    @pytest.mark.parametrize('value,count', [(2.5, 3), (2.49, 2), (-0.7, 0), (0.0, 0), (118.6, 119)])
    def test_to_count(self, value, count):
        """Counts round half up and floor at zero."""
        assert to_count(value) == count

    def test_weather_features_fill_defaults(self, monsoon_weather):
        """Missing optional weather uses nominal values and derived dew point."""
        features = weather_features(monsoon_weather)
        assert features['wind_speed'] == 10
        assert features['pressure'] == 1013
        assert features['dew_point'] == pytest.approx(27 - (100 - 82) / 5)

    @pytest.mark.parametrize('p,level', [(85, 'High'), (70, 'High'), (55, 'Medium'), (30, 'Low'), (10, 'Minimal')])
    def test_ml_risk_level(self, p, level):
        """ML probabilities map to risk levels."""
        assert ml_risk_level(p) == level


class TestAdmissionForecaster:

    @pytest.fixture
    def history(self):
        return generate_admission_history(30, end_date=date(2025, 6, 1), seed=21)

    def test_thirty_days_train_and_predict(self, registry, history):
        """Thirty days train and forecast four non-negative counts."""
        forecaster = AdmissionForecaster(registry, seed=1)
        model = forecaster.train(history, epochs=100)
        assert model.metrics.epochs_trained == 100
        assert model.extras['last_date'] == '2025-05-31'

        forecast = forecaster.predict_from_history(history)
        assert forecast.date == date(2025, 6, 1)
        counts = [forecast.total_admissions, forecast.emergency_admissions,
                  forecast.opd_admissions, forecast.scheduled_admissions]
        assert all(isinstance(c, int) and c >= 0 for c in counts)
        lower, upper = forecast.confidence_interval
        assert lower <= forecast.total_admissions <= upper
        assert forecast.confidence == 0.85

    def test_twenty_nine_days_is_not_enough(self, registry, history):
        """Twenty-nine days are refused."""
        forecaster = AdmissionForecaster(registry)
        with pytest.raises(InsufficientDataError) as exc:
            forecaster.train(history[1:])
        assert exc.value.available == 29
        assert exc.value.required == 30
        assert '30 days' in exc.value.message
        assert not forecaster.is_trained

    def test_predict_before_training(self, registry, history):
        """Forecasting without a model fails."""
        with pytest.raises(ModelNotTrainedError):
            AdmissionForecaster(registry).predict_from_history(history)

    def test_next_days_roll_forward(self, registry, admission_history):
        """Multi-day forecasts cover consecutive days."""
        forecaster = AdmissionForecaster(registry, seed=2)
        forecaster.train(admission_history, epochs=5)
        forecasts = forecaster.predict_next_days(admission_history, days=3)
        start = admission_history[-1].date + timedelta(days=1)
        assert [f.date for f in forecasts] == [start + timedelta(days=i) for i in range(3)]
        with pytest.raises(InvalidFeatureError):
            forecaster.predict_next_days(admission_history, days=0)

    def test_backfilled_start_replaces_later_records(self, registry, admission_history):
        """A start date inside the history forecasts over the later records."""
        forecaster = AdmissionForecaster(registry, seed=5)
        forecaster.train(admission_history, epochs=5)
        start = admission_history[-5].date
        forecasts = forecaster.predict_next_days(admission_history, days=3, start_date=start)
        assert [f.date for f in forecasts] == [start + timedelta(days=i) for i in range(3)]

        history = admission_history[:-5]
        single = forecaster.predict_next_days(admission_history, days=1, start_date=start)[0]
        assert single == forecaster.predict_from_history(history, start)

    def test_start_before_history(self, registry, admission_history):
        """A start date before all records has no history to use."""
        forecaster = AdmissionForecaster(registry, seed=5)
        forecaster.train(admission_history, epochs=2)
        with pytest.raises(InsufficientDataError):
            forecaster.predict_next_days(admission_history, days=2, start_date=admission_history[0].date)

    def test_admission_network_shape(self):
        """Admission network layers and dropout rates."""
        assert AdmissionForecaster.network_spec.dropout == (0.2, 0.25, 0.2)
        assert AdmissionForecaster.network_spec.hidden_sizes == (64, 128, 64, 32)

    def test_explicit_features(self, registry, admission_history):
        """Incomplete explicit features are rejected."""
        forecaster = AdmissionForecaster(registry, seed=3)
        forecaster.train(admission_history, epochs=5)
        with pytest.raises(InvalidFeatureError):
            forecaster.predict({'day_of_week': 1})

    def test_unsorted_input_is_accepted(self, registry, admission_history):
        """Records are sorted before derivation."""
        forecaster = AdmissionForecaster(registry, seed=4, min_samples=10)
        model = forecaster.train(list(reversed(admission_history)), epochs=2)
        assert model.extras['first_date'] == admission_history[0].date.isoformat()

    def test_negative_counts_rejected(self):
        """Negative admission counts are rejected."""
        with pytest.raises(InvalidFeatureError):
            AdmissionRecord(date=date(2025, 1, 1), total_admissions=-1)


class TestDiseaseRiskForecaster:

    @pytest.fixture
    def forecaster(self, registry):
        forecaster = DiseaseRiskForecaster(registry, seed=9)
        forecaster.train(num_samples=300, epochs=3)
        return forecaster

    def test_synthetic_fallback(self, forecaster):
        """No observed data trains on synthetic data."""
        assert forecaster.model.extras['data_source'] == 'synthetic'

    def test_observed_data(self, registry):
        """Enough observed rows train on them directly."""
        features, labels = generate_disease_training_data(150, seed=10)
        forecaster = DiseaseRiskForecaster(registry, seed=9)
        model = forecaster.train(features, labels, epochs=2)
        assert model.extras['data_source'] == 'observed'

    def test_labels_must_be_probabilities(self, registry):
        """Labels outside [0, 1] are rejected."""
        features, labels = generate_disease_training_data(150, seed=10)
        labels.iloc[0, 0] = 1.5
        with pytest.raises(InvalidFeatureError):
            DiseaseRiskForecaster(registry).train(features, labels, epochs=1)

    def test_predictions_are_filtered_and_sorted(self, forecaster, monsoon_weather):
        """Only risks of at least 25% are reported, highest first."""
        predictions = forecaster.predict(monsoon_weather)
        probabilities = [p['probability'] for p in predictions]
        assert probabilities == sorted(probabilities, reverse=True)
        assert all(p >= 25 for p in probabilities)
        assert all(0 <= p['confidence'] <= 1 for p in predictions)

    def test_probabilities_cover_catalogue(self, forecaster, monsoon_weather):
        """Every catalogue disease gets a probability."""
        probabilities = forecaster.probabilities(monsoon_weather)
        assert len(probabilities) == 12
        assert all(0 <= p <= 100 for p in probabilities.values())

    def test_compare_with_rules(self, forecaster, monsoon_weather):
        """ML and rule probabilities line up per disease."""
        rows = forecaster.compare_with_rules(monsoon_weather)
        dengue = rows[0]
        assert dengue['disease'] == 'Dengue Fever'
        assert dengue['rule_probability'] == 100.0
        assert dengue['difference'] == pytest.approx(dengue['ml_probability'] - 100.0, abs=0.02)


class TestGovtDataValidator:

    @pytest.fixture
    def validator(self, registry):
        return GovtDataValidator(registry, seed=13)

    def test_validate_requires_model(self, validator):
        """Validation needs a trained model."""
        with pytest.raises(ModelNotTrainedError):
            validator.validate('560001')

    def test_train_reports_accuracy(self, validator):
        """Training records accuracy and MAE in doctor units."""
        model = validator.train(epochs=20)
        assert 0 <= model.extras['model_accuracy_percent'] <= 100
        assert model.extras['mae_doctors'] >= 0

    def test_validate_one_location(self, validator):
        """One location is compared against its ground truth."""
        validator.train(epochs=20)
        record = validator.dataset.by_pincode('560001', 8)
        result = validator.validate('560001', 8)
        assert result.ground_truth == validator.ground_truth(record)
        assert result.context['pincode'] == '560001'
        assert result.context['city'] == 'Bangalore Urban'
        assert result.winner in (Winner.ML, Winner.RULE_BASED, Winner.TIE)
        assert 0.6 <= result.context['ml_confidence'] <= 0.95

    def test_unknown_pincode(self, validator):
        """Unknown pincodes raise RecordNotFoundError."""
        validator.train(epochs=2)
        with pytest.raises(RecordNotFoundError):
            validator.validate('999999')

    def test_validate_all(self, validator):
        """Every reference record is compared."""
        validator.train(epochs=20)
        report = validator.validate_all()
        assert report.total_tests == 15
        assert report.ml_wins + report.rule_wins + report.ties == 15
        assert report.failures == []
        summary = report.to_dict()['summary']
        assert summary['overall_winner'] in ('ML Model', 'Rule-Based', 'Tie')

    def test_too_few_records(self, validator):
        """Fewer than ten records are refused."""
        with pytest.raises(InsufficientDataError):
            validator.train(records=validator.dataset.records[:9])

    def test_rule_based_doctors(self, validator):
        """The rule engine staffs a monsoon month."""
        record = validator.dataset.by_pincode('400001', 7)
        assert validator.rule_based_doctors(record) > 0

    def test_status(self, validator):
        """Status lists the dataset before training."""
        status = validator.status()
        assert status['trained'] is False
        assert status['dataset_size'] == 15
        assert len(status['available_pincodes']) == 15
