"""
Admission History Features
Derives the admission feature vector from a chronological record sequence.

Lag and trend features look only at records strictly before the day being
described, so derivation has to run over the date-sorted, unshuffled history.
Training examples and next-day forecasts share the same window logic.
"""

from datetime import date, timedelta
from typing import Iterable, List, Sequence

import numpy as np
import pandas as pd

from healthcast.models import AdmissionRecord, TrainingExample
from healthcast.services.feature_schema import ADMISSION_FEATURES, ADMISSION_TARGETS
from healthcast.utils.errors import InsufficientDataError, InvalidFeatureError


def sort_records(records: Iterable[AdmissionRecord]) -> List[AdmissionRecord]:
    ordered = sorted(records, key=lambda r: r.date)
    for prev, cur in zip(ordered, ordered[1:]):
        if prev.date == cur.date:
            raise InvalidFeatureError(f"Duplicate admission record for {cur.date.isoformat()}")
    return ordered


def trend(window: Sequence[float]) -> float:
    """
    Relative change between the older and newer halves of ``window``,
    clamped to [-1, 1]. Windows shorter than two values have no trend.
    """
    if len(window) < 2:
        return 0.0
    split = len(window) // 2
    first_avg = float(np.mean(window[:split]))
    second_avg = float(np.mean(window[split:]))
    value = (second_avg - first_avg) / (first_avg + 1)
    return max(-1.0, min(1.0, value))


def window_features(target_date: date, prior_totals: Sequence[float], fallback: float,
                    is_holiday: bool = False) -> dict:
    """
    Feature mapping for ``target_date`` given the totals of the days before it.

    Args:
        target_date: Day being described
        prior_totals: Daily totals before target_date, oldest first
        fallback: Value used for lags the history is too short to supply
        is_holiday: Whether target_date is a public holiday

    Returns:
        Dict keyed by ADMISSION_FEATURES fields
    """
    prior = np.asarray(prior_totals, dtype=np.float64)
    last_7 = prior[-7:]
    last_30 = prior[-30:]
    weekday = target_date.weekday()
    return {
        'day_of_week': weekday,
        'month': target_date.month,
        'day_of_month': target_date.day,
        'is_weekend': 1 if weekday >= 5 else 0,
        'is_public_holiday': 1 if is_holiday else 0,
        'last_7_days_avg': float(last_7.mean()) if len(last_7) else fallback,
        'last_30_days_avg': float(last_30.mean()) if len(last_30) else fallback,
        'same_day_last_week': float(prior[-7]) if len(prior) >= 7 else fallback,
        'same_day_last_month': float(prior[-30]) if len(prior) >= 30 else fallback,
        'trend': trend(last_7),
    }


def records_to_frame(records: Iterable[AdmissionRecord]) -> pd.DataFrame:
    """Date-sorted DataFrame of records, one row per day."""
    ordered = sort_records(records)
    frame = pd.DataFrame([r.to_dict() for r in ordered])
    if not frame.empty:
        frame['date'] = pd.to_datetime(frame['date'])
    return frame


def derive_feature_table(records: Iterable[AdmissionRecord]) -> pd.DataFrame:
    """
    One row of ADMISSION_FEATURES per record, plus its date and targets.

    Lags that reach before the first record fall back to the record's own total.
    """
    ordered = sort_records(records)
    totals = [float(r.total_admissions) for r in ordered]
    rows = []
    for i, record in enumerate(ordered):
        row = window_features(record.date, totals[:i], fallback=totals[i], is_holiday=record.is_holiday)
        row['date'] = record.date
        row.update(zip(ADMISSION_TARGETS.fields, record.targets()))
        rows.append(row)
    columns = ['date'] + list(ADMISSION_FEATURES.fields) + list(ADMISSION_TARGETS.fields)
    return pd.DataFrame(rows, columns=columns)


def derive_training_examples(records: Iterable[AdmissionRecord]) -> List[TrainingExample]:
    table = derive_feature_table(records)
    features = table[list(ADMISSION_FEATURES.fields)].to_numpy(dtype=float)
    targets = table[list(ADMISSION_TARGETS.fields)].to_numpy(dtype=float)
    return [TrainingExample(tuple(map(float, f)), tuple(map(float, t))) for f, t in zip(features, targets)]


def next_day_features(records: Iterable[AdmissionRecord], target_date: date = None,
                      is_holiday: bool = False) -> dict:
    """
    Features for the day after the latest record (or ``target_date``).

    Short histories fall back to the trailing 7-day average for missing lags.
    """
    ordered = sort_records(records)
    if not ordered:
        raise InsufficientDataError(0, 1, "No historical data available to generate prediction features")
    target_date = target_date or ordered[-1].date + timedelta(days=1)
    prior = [float(r.total_admissions) for r in ordered if r.date < target_date]
    if not prior:
        raise InsufficientDataError(0, 1, f"No admission history before {target_date.isoformat()}")
    fallback = float(np.mean(prior[-7:]))
    return window_features(target_date, prior, fallback, is_holiday)


def admission_summary(records: Iterable[AdmissionRecord]) -> dict:
    frame = records_to_frame(records)
    if frame.empty:
        return {'total_days': 0, 'avg_admissions': 0, 'max_admissions': 0,
                'min_admissions': 0, 'total_admissions': 0}
    totals = frame['total_admissions']
    return {
        'total_days': int(len(frame)),
        'avg_admissions': int(round(totals.mean())),
        'max_admissions': int(totals.max()),
        'min_admissions': int(totals.min()),
        'total_admissions': int(totals.sum()),
        'first_date': frame['date'].min().date().isoformat(),
        'last_date': frame['date'].max().date().isoformat(),
    }
