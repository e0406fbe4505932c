"""
Government Health Reference Data
District-level monthly disease case counts, weather averages and healthcare
infrastructure, used as ground truth for validating doctor-requirement
predictions.

The bundled CSV follows the published NVBDCP / IDSP district summaries; a
different file with the same columns can be loaded with ``load_reference_data``.
"""

import math
import os
from typing import List, Optional

import pandas as pd

from healthcast.models import GroundTruthRecord
from healthcast.utils.config import BASE_DIR, CASES_PER_DOCTOR
from healthcast.utils.errors import InvalidFeatureError, RecordNotFoundError
from healthcast.utils.logger import get_logger

logger = get_logger(__name__)

DATA_PATH = os.path.join(BASE_DIR, 'database', 'govt_health_data.csv')

REQUIRED_COLUMNS = (
    'state', 'district', 'pincode', 'year', 'month',
    'temperature_avg', 'humidity_avg', 'rainfall_mm',
    'dengue_cases', 'malaria_cases', 'typhoid_cases',
    'influenza_cases', 'respiratory_cases', 'gastroenteritis_cases',
    'population_thousands',
)
OPTIONAL_COLUMNS = ('total_doctors', 'hospitals', 'beds_available')


def load_reference_data(path: str = DATA_PATH) -> List[GroundTruthRecord]:
    """
    Loads ground-truth records from CSV.

    Args:
        path: CSV file with REQUIRED_COLUMNS (OPTIONAL_COLUMNS default to 0)

    Returns:
        List of GroundTruthRecord in file order
    """
    if not os.path.exists(path):
        raise RecordNotFoundError(f"Reference data not found at {path}")

    df = pd.read_csv(path, dtype={'pincode': str})
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise InvalidFeatureError(f"Reference data is missing columns: {missing}")
    for column in OPTIONAL_COLUMNS:
        if column not in df.columns:
            df[column] = 0

    records = []
    for row in df.to_dict(orient='records'):
        records.append(GroundTruthRecord(
            state=row['state'],
            district=row['district'],
            pincode=str(row['pincode']),
            year=int(row['year']),
            month=int(row['month']),
            temperature_avg=float(row['temperature_avg']),
            humidity_avg=float(row['humidity_avg']),
            rainfall_mm=float(row['rainfall_mm']),
            dengue_cases=int(row['dengue_cases']),
            malaria_cases=int(row['malaria_cases']),
            typhoid_cases=int(row['typhoid_cases']),
            influenza_cases=int(row['influenza_cases']),
            respiratory_cases=int(row['respiratory_cases']),
            gastroenteritis_cases=int(row['gastroenteritis_cases']),
            population_thousands=float(row['population_thousands']),
            total_doctors=int(row['total_doctors']),
            hospitals=int(row['hospitals']),
            beds_available=int(row['beds_available']),
        ))
    logger.info(f"Loaded {len(records)} reference records from {os.path.basename(path)}")
    return records


def ground_truth_doctors(record: GroundTruthRecord, cases_per_doctor: int = None) -> int:
    """
    Doctors needed for the reported case load, never fewer than one per
    thousand residents.
    """
    capacity = CASES_PER_DOCTOR if cases_per_doctor is None else cases_per_doctor
    if capacity <= 0:
        raise InvalidFeatureError(f"cases_per_doctor must be positive, got {capacity}")
    for_cases = math.ceil(record.total_cases / capacity)
    for_population = math.ceil(record.population_thousands)
    return max(for_cases, for_population)


class ReferenceDataset:
    """In-memory view over ground-truth records with location lookups."""

    def __init__(self, records: List[GroundTruthRecord] = None):
        self.records = list(records) if records is not None else load_reference_data()

    def __len__(self):
        return len(self.records)

    def by_pincode(self, pincode: str, month: int = None) -> Optional[GroundTruthRecord]:
        """
        Record for ``pincode``, preferring the given month.

        Falls back to the last record for the pincode when the month is
        absent; returns None for an unknown pincode.
        """
        matches = [r for r in self.records if r.pincode == pincode]
        if not matches:
            return None
        if month is not None:
            for record in matches:
                if record.month == month:
                    return record
        return matches[-1]

    def by_state(self, state: str) -> List[GroundTruthRecord]:
        return [r for r in self.records if r.state.lower() == state.lower()]

    def pincodes(self) -> List[str]:
        seen = []
        for record in self.records:
            if record.pincode and record.pincode not in seen:
                seen.append(record.pincode)
        return seen

    def summary(self) -> dict:
        if not self.records:
            return {'total_records': 0}
        years = [r.year for r in self.records]
        return {
            'total_records': len(self.records),
            'states_covered': len({r.state for r in self.records}),
            'districts_covered': len({r.district for r in self.records}),
            'pincodes_covered': len(self.pincodes()),
            'year_range': {'min': min(years), 'max': max(years)},
            'total_disease_cases': sum(r.total_cases for r in self.records),
        }
