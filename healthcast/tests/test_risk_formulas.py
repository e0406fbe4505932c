"""
Rule-based engine tests: score ranges, thresholds, doctor counts and advisories.
"""

import math

import numpy as np
import pytest

from healthcast.models import WeatherReading
from healthcast.services import risk_formulas
from healthcast.utils.errors import InvalidFeatureError


class TestScores:

    def test_scores_stay_in_unit_interval(self):
        """Random readings always score in [0, 1]."""
        rng = np.random.default_rng(0)
        for _ in range(300):
            weather = WeatherReading(
                city='X',
                temperature=float(rng.uniform(-20, 50)),
                humidity=float(rng.uniform(0, 100)),
                rainfall=float(rng.uniform(0, 200)),
                wind_speed=float(rng.uniform(0, 60)),
                uv_index=float(rng.uniform(0, 14)),
                pressure=float(rng.uniform(960, 1050)),
                dew_point=float(rng.uniform(-20, 35)),
            )
            for name, value in risk_formulas.score_all(weather).items():
                assert 0.0 <= value <= 1.0, f"{name} out of range: {value}"

    def test_extreme_readings_are_clamped(self):
        """Extreme readings are clamped to [0, 1]."""
        scorching = WeatherReading(city='X', temperature=50, humidity=100, rainfall=500,
                                   wind_speed=0, uv_index=14, pressure=950, dew_point=35)
        freezing = WeatherReading(city='X', temperature=-30, humidity=0, rainfall=0,
                                  wind_speed=80, uv_index=0, pressure=1060, dew_point=-40)
        for weather in (scorching, freezing):
            assert all(0.0 <= v <= 1.0 for v in risk_formulas.score_all(weather).values())

    def test_monsoon_favours_dengue_over_influenza(self, monsoon_weather):
        """Warm, humid, rainy weather favours dengue over flu."""
        dengue = risk_formulas.score('Dengue Fever', monsoon_weather)
        influenza = risk_formulas.score('Influenza (Flu)', monsoon_weather)
        assert dengue > 0.6
        assert dengue > influenza
        assert dengue == pytest.approx(1.0)
        assert influenza == 0.0

    def test_winter_favours_influenza(self, winter_weather):
        """Cold, dry, high-pressure weather scores flu at 0.95."""
        assert risk_formulas.score('Influenza (Flu)', winter_weather) == pytest.approx(0.95)

    def test_missing_optional_fields_skip_their_conditions(self):
        """Unset optional fields skip their conditions."""
        bare = WeatherReading(city='X', temperature=27, humidity=82, rainfall=12)
        with_wind = WeatherReading(city='X', temperature=26, humidity=72, rainfall=3, wind_speed=5)
        without_wind = WeatherReading(city='X', temperature=26, humidity=72, rainfall=3)
        assert risk_formulas.score('Dengue Fever', bare) == pytest.approx(1.0)
        assert (risk_formulas.score('Dengue Fever', with_wind)
                - risk_formulas.score('Dengue Fever', without_wind)) == pytest.approx(0.10)

    def test_unknown_disease(self, monsoon_weather):
        """Scoring an unknown disease is rejected."""
        with pytest.raises(InvalidFeatureError):
            risk_formulas.score('Common Cold', monsoon_weather)

    def test_catalogue_has_twelve_diseases(self):
        """Catalogue holds twelve unique diseases."""
        assert len(risk_formulas.DISEASE_NAMES) == 12
        assert len(set(risk_formulas.DISEASE_NAMES)) == 12
        assert risk_formulas.DISEASE_NAMES[0] == 'Dengue Fever'


class TestPredictions:

    def test_sorted_descending(self, monsoon_weather):
        """Predictions are sorted by risk, highest first."""
        predictions = risk_formulas.predict_diseases(monsoon_weather)
        levels = [p.risk_level for p in predictions]
        assert levels == sorted(levels, reverse=True)
        assert predictions[0].disease == 'Dengue Fever'

    def test_threshold_is_exclusive(self, monsoon_weather):
        """Risks equal to the threshold are dropped."""
        scores = risk_formulas.score_all(monsoon_weather)
        threshold = sorted(set(scores.values()))[-2]
        kept = risk_formulas.predict_diseases(monsoon_weather, inclusion_threshold=threshold)
        assert all(p.risk_level > threshold for p in kept)
        assert not any(math.isclose(p.risk_level, threshold) for p in kept)

    def test_nothing_above_threshold(self):
        """A threshold of 1.0 keeps nothing."""
        mild = WeatherReading(city='X', temperature=22, humidity=50, rainfall=0,
                              wind_speed=30, uv_index=3, pressure=1013, dew_point=12)
        assert risk_formulas.predict_diseases(mild, inclusion_threshold=1.0) == []

    def test_required_doctors_rounds_up(self):
        """Doctor counts round up."""
        assert risk_formulas.required_doctors(15, 0.0) == 0
        assert risk_formulas.required_doctors(15, 1.0) == 15
        assert risk_formulas.required_doctors(15, 0.34) == 6
        assert risk_formulas.required_doctors(10, 0.01) == 1

    def test_prediction_doctors_match_base(self, monsoon_weather):
        """Doctors per prediction follow the base requirement."""
        for p in risk_formulas.predict_diseases(monsoon_weather):
            base = risk_formulas.get_definition(p.disease).base_doctors_required
            assert p.required_doctors == math.ceil(base * p.risk_level)

    def test_specialty_totals(self, monsoon_weather):
        """Specialty grouping adds up to the total."""
        predictions = risk_formulas.predict_diseases(monsoon_weather)
        grouped = risk_formulas.group_by_specialty(predictions)
        assert sum(grouped.values()) == risk_formulas.total_doctor_requirements(predictions)


class TestCategoriesAndAdvisory:

    @pytest.mark.parametrize('risk,category', [
        (0.95, 'Critical'), (0.8, 'Critical'), (0.6, 'High'), (0.45, 'Medium'), (0.1, 'Low'),
    ])
    def test_risk_category(self, risk, category):
        """Risk levels map to categories."""
        assert risk_formulas.get_risk_category(risk) == category

    def test_advisory_names_top_disease(self, monsoon_weather):
        """Advisory names the city and the top disease."""
        predictions = risk_formulas.predict_diseases(monsoon_weather)
        advisory = risk_formulas.generate_health_advisory(monsoon_weather, predictions)
        assert advisory.startswith('Health Advisory for Mumbai:')
        assert predictions[0].disease in advisory

    def test_advisory_without_risks(self, monsoon_weather):
        """No predictions gives the minimal-risk advisory."""
        assert risk_formulas.generate_health_advisory(monsoon_weather, []) == risk_formulas.NO_RISK_ADVISORY
