"""
Synthetic Training Data
Generates plausible training sets when real historical records are too few.

Disease labels come from noisy, percent-scale versions of the rule-based
formulas so the network learns the same broad weather/disease relationships
without memorizing the exact thresholds. Admission histories follow weekly,
holiday and seasonal patterns typical of an urban hospital.
"""

from datetime import date, timedelta
from typing import Iterable, List, Optional

import numpy as np
import pandas as pd

from healthcast.models import AdmissionRecord
from healthcast.services.feature_schema import WEATHER_FEATURES
from healthcast.services.risk_formulas import DISEASE_NAMES
from healthcast.utils.logger import get_logger

logger = get_logger(__name__)

# Public holidays (India, 2025)
DEFAULT_HOLIDAYS = (
    '2025-01-26',  # Republic Day
    '2025-03-14',  # Holi
    '2025-03-31',  # Eid
    '2025-04-10',  # Mahavir Jayanti
    '2025-04-14',  # Ambedkar Jayanti
    '2025-04-18',  # Good Friday
    '2025-05-01',  # Labour Day
    '2025-05-12',  # Buddha Purnima
    '2025-08-15',  # Independence Day
    '2025-08-16',  # Janmashtami
    '2025-09-05',  # Ganesh Chaturthi
    '2025-10-02',  # Gandhi Jayanti
    '2025-10-21',  # Dussehra
    '2025-10-24',  # Diwali
)

LABEL_NOISE = 5.0


def _between(values, low, high):
    return (values >= low) & (values <= high)


def sample_weather(n_samples: int, rng: np.random.Generator) -> pd.DataFrame:
    """Random weather readings in WEATHER_FEATURES column order."""
    temp = rng.uniform(5, 40, n_samples)
    humidity = rng.uniform(30, 90, n_samples)
    frame = pd.DataFrame({
        'temperature': temp,
        'humidity': humidity,
        'rainfall': rng.uniform(0, 50, n_samples),
        'wind_speed': rng.uniform(0, 40, n_samples),
        'uv_index': rng.uniform(0, 11, n_samples),
        'pressure': rng.uniform(980, 1040, n_samples),
        'dew_point': temp - (100 - humidity) / 5,
        'weather_code': rng.integers(0, 100, n_samples).astype(float),
    })
    return frame[list(WEATHER_FEATURES.fields)]


def _label_scores(w: pd.DataFrame) -> dict:
    """Percent-scale (0-100+) risk per disease before noise."""
    t, h, r = w['temperature'].values, w['humidity'].values, w['rainfall'].values
    wind, uv, p = w['wind_speed'].values, w['uv_index'].values, w['pressure'].values

    dengue = (np.where(_between(t, 25, 30), 35, np.where((t >= 20) & (t < 35), 15, 0))
              + np.where(h > 80, 30, np.where(h > 60, 15, 0))
              + np.where((r > 5) & (r < 20), 25, np.where(r >= 20, 10, 0))
              + np.where(wind < 15, 10, 0)
              + np.where(_between(t, 25, 30) & (h > 80) & (r > 5), 15, 0))

    malaria_bonus = _between(t, 20, 30) & (h > 70) & (r > 10)
    malaria = (np.where(_between(t, 20, 30), 30, 0) + np.where(h > 70, 25, 0)
               + np.where(r > 10, 30, 0) + np.where(wind < 15, 15, 0)
               + np.where(malaria_bonus, 20, 0))

    influenza = (np.where(t < 15, 35, np.where(t < 20, 20, 0))
                 + np.where(h < 50, 30, np.where(h < 60, 15, 0))
                 + np.where(uv < 3, 20, 0)
                 + np.where((t < 15) & (h < 50), 20, 0))

    typhoid = (np.where(t > 25, 25, 0) + np.where(r > 20, 35, 0) + np.where(h > 70, 20, 0)
               + np.where((t > 25) & (r > 20), 20, 0))

    heat_stroke = (np.where(t > 35, 40, np.where(t > 30, 20, 0))
                   + np.where(uv > 8, 30, np.where(uv > 6, 15, 0))
                   + np.where(wind < 10, 15, 0)
                   + np.where((t > 35) & (uv > 8), 20, 0))

    respiratory = (np.where(_between(t, 10, 20), 25, 0) + np.where(_between(h, 40, 70), 25, 0)
                   + np.where(wind > 20, 25, 0)
                   + np.where(_between(t, 10, 20) & _between(h, 40, 70), 20, 0))

    pneumonia = (np.where(t < 15, 30, 0) + np.where(h > 60, 25, 0) + np.where(p < 1000, 20, 0)
                 + np.where((t < 15) & (h > 60), 25, 0))

    allergic = (np.where(_between(t, 15, 25), 30, 0) + np.where(wind > 20, 35, 0)
                + np.where(_between(h, 40, 60), 20, 0)
                + np.where(_between(t, 15, 25) & (wind > 20), 20, 0))

    asthma = (np.where((p < 1000) | (p > 1020), 30, 0) + np.where((h < 30) | (h > 80), 30, 0)
              + np.where((t < 10) | (t > 30), 25, 0))

    dehydration = (np.where(t > 30, 35, 0) + np.where(uv > 7, 30, 0) + np.where(h < 40, 20, 0)
                   + np.where((t > 30) & (uv > 7), 20, 0))

    gastro = np.where(t > 28, 35, 0) + np.where(h > 75, 30, 0) + np.where((t > 28) & (h > 75), 25, 0)

    skin = np.where(t > 25, 30, 0) + np.where(h > 80, 35, 0) + np.where((t > 25) & (h > 80), 25, 0)

    scores = (dengue, malaria, influenza, typhoid, heat_stroke, respiratory,
              pneumonia, allergic, asthma, dehydration, gastro, skin)
    return dict(zip(DISEASE_NAMES, scores))


def generate_disease_training_data(n_samples: int = 2000, seed: int = None):
    """
    Builds a synthetic weather -> disease-probability training set.

    Args:
        n_samples: Number of rows to generate
        seed: Optional seed for reproducible output

    Returns:
        (features, labels) DataFrames. Feature columns follow WEATHER_FEATURES,
        label columns follow DISEASE_NAMES, labels lie in [0, 1].
    """
    rng = np.random.default_rng(seed)
    features = sample_weather(n_samples, rng)

    labels = {}
    for name, risk in _label_scores(features).items():
        noisy = risk + rng.uniform(-LABEL_NOISE, LABEL_NOISE, n_samples)
        labels[name] = np.clip(np.minimum(noisy, 100) / 100, 0.0, 1.0)

    logger.info(f"Generated {n_samples} synthetic disease training samples")
    return features, pd.DataFrame(labels, columns=list(DISEASE_NAMES))


def generate_admission_history(days_back: int = 60,
                               end_date: date = None,
                               holidays: Iterable[str] = DEFAULT_HOLIDAYS,
                               seed: int = None) -> List[AdmissionRecord]:
    """
    Simulates ``days_back`` days of admissions ending the day before ``end_date``.

    Pattern: base 85/day, Monday +25, Friday +10, weekend -30, holiday -40,
    monsoon (Jun-Sep) +15, winter (Dec-Feb) +10, uniform integer noise of
    +/-10, floor of 20. Totals split into ~30% emergency, ~45% OPD and the
    remainder scheduled.
    """
    rng = np.random.default_rng(seed)
    end_date = end_date or date.today()
    holiday_set = set(holidays)

    records = []
    for offset in range(days_back, 0, -1):
        day = end_date - timedelta(days=offset)
        weekday = day.weekday()
        is_weekend = weekday >= 5
        is_holiday = day.isoformat() in holiday_set

        base = 85
        if weekday == 0:
            base += 25
        if is_weekend:
            base -= 30
        if is_holiday:
            base -= 40
        if weekday == 4:
            base += 10
        if 6 <= day.month <= 9:
            base += 15
        if day.month in (12, 1, 2):
            base += 10

        total = max(20, base + int(rng.integers(-10, 11)))
        emergency = int(round(total * (0.30 + rng.uniform(-0.05, 0.05))))
        opd = int(round(total * (0.45 + rng.uniform(-0.05, 0.05))))

        records.append(AdmissionRecord(
            date=day,
            total_admissions=total,
            emergency_admissions=emergency,
            opd_admissions=opd,
            scheduled_admissions=total - emergency - opd,
            is_holiday=is_holiday,
        ))
    return records


def holiday_dates(holidays: Optional[Iterable[str]] = None) -> set:
    return {date.fromisoformat(d) for d in (holidays or DEFAULT_HOLIDAYS)}
