import math

import pytest

from healthcast.services.govt_dataset import ReferenceDataset, ground_truth_doctors, load_reference_data
from healthcast.utils.errors import InvalidFeatureError, RecordNotFoundError


@pytest.fixture(scope='module')
def dataset():
    return ReferenceDataset()


class TestLoading:

    def test_bundled_data(self, dataset):
        """Bundled CSV loads all records with string pincodes."""
        assert len(dataset) == 15
        assert '560001' in dataset.pincodes()
        assert all(isinstance(p, str) for p in dataset.pincodes())

    def test_missing_file(self, tmp_path):
        """A missing file raises RecordNotFoundError."""
        with pytest.raises(RecordNotFoundError):
            load_reference_data(str(tmp_path / 'absent.csv'))

    def test_missing_columns(self, tmp_path):
        """A file without required columns is rejected."""
        path = tmp_path / 'bad.csv'
        path.write_text('state,district\nKarnataka,Bangalore Urban\n')
        with pytest.raises(InvalidFeatureError):
            load_reference_data(str(path))


class TestLookups:

    def test_by_pincode_prefers_month(self, dataset):
        """Lookup returns the record for the requested month."""
        assert dataset.by_pincode('560001', 1).month == 1
        assert dataset.by_pincode('560001', 8).month == 8

    def test_by_pincode_falls_back(self, dataset):
        """Unknown month falls back; unknown pincode gives None."""
        assert dataset.by_pincode('560001', 5) is not None
        assert dataset.by_pincode('999999') is None

    def test_by_state(self, dataset):
        """State lookup is case-insensitive."""
        assert {r.district for r in dataset.by_state('maharashtra')} == {'Mumbai', 'Ratnagiri'}

    def test_summary(self, dataset):
        """Summary counts records and year range."""
        summary = dataset.summary()
        assert summary['total_records'] == 15
        assert summary['year_range'] == {'min': 2024, 'max': 2024}


class TestGroundTruth:

    def test_case_load_or_population(self, dataset):
        """Ground truth is the larger of case load and population need."""
        record = dataset.by_pincode('560001', 8)
        expected = max(math.ceil(record.total_cases / 50), math.ceil(record.population_thousands))
        assert ground_truth_doctors(record) == expected
        assert ground_truth_doctors(record, cases_per_doctor=1) == record.total_cases

    def test_invalid_capacity(self, dataset):
        """Zero or negative cases-per-doctor is rejected."""
        with pytest.raises(InvalidFeatureError):
            ground_truth_doctors(dataset.records[0], cases_per_doctor=-5)
        with pytest.raises(InvalidFeatureError):
            ground_truth_doctors(dataset.records[0], cases_per_doctor=0)
