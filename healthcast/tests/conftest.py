import os
from datetime import date

import pytest

from healthcast.ml_models.registry import ModelRegistry
from healthcast.models import WeatherReading
from healthcast.services.synthetic_data import generate_admission_history


@pytest.fixture
def registry(tmp_path):
    """Registry persisting into a per-test directory."""
    return ModelRegistry(model_dir=os.path.join(str(tmp_path), 'models'))


@pytest.fixture
def monsoon_weather():
    return WeatherReading(city='Mumbai', temperature=27, humidity=82, rainfall=12, wind_speed=10)


@pytest.fixture
def winter_weather():
    return WeatherReading(city='Delhi', temperature=10, humidity=55, rainfall=0,
                          wind_speed=12, uv_index=2, pressure=1025)


@pytest.fixture
def admission_history():
    """Sixty days of seeded synthetic admissions ending 2025-07-01."""
    return generate_admission_history(60, end_date=date(2025, 7, 1), seed=7)
