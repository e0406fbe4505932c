"""
Normalization tests: statistics, inverse mapping and schema checks.
"""

import numpy as np
import pytest

from healthcast.services.feature_schema import FeatureSchema
from healthcast.services.normalizer import FeatureNormalizer, NormalizationStatistics
from healthcast.utils.errors import InsufficientDataError, InvalidFeatureError

SCHEMA = FeatureSchema('toy', ('x', 'y'))


@pytest.fixture
def data():
    return np.array([[1.0, 10.0], [2.0, 20.0], [3.0, 30.0], [4.0, 40.0]])


class TestFit:

    def test_population_statistics(self, data):
        """Fit stores field names, means and population std."""
        stats = FeatureNormalizer(SCHEMA).fit(data)
        assert stats.fields == ('x', 'y')
        assert stats.mean == pytest.approx((2.5, 25.0))
        assert stats.std == pytest.approx((np.std([1, 2, 3, 4]), np.std([10, 20, 30, 40])))

    def test_empty_set(self):
        """Fitting an empty set is refused."""
        with pytest.raises(InsufficientDataError):
            FeatureNormalizer(SCHEMA).fit(np.empty((0, 2)))

    def test_non_finite(self, data):
        """Non-finite training values are refused."""
        data[1, 1] = np.nan
        with pytest.raises(InvalidFeatureError):
            FeatureNormalizer(SCHEMA).fit(data)

    def test_wrong_width(self):
        """Matrices of the wrong width are refused."""
        with pytest.raises(InvalidFeatureError):
            FeatureNormalizer(SCHEMA).fit(np.ones((3, 3)))

    def test_statistics_round_trip_as_dict(self, data):
        """Statistics survive dict serialization."""
        stats = FeatureNormalizer(SCHEMA).fit(data)
        assert NormalizationStatistics.from_dict(stats.to_dict()) == stats


class TestTransform:

    def test_normalized_columns_are_centred(self, data):
        """Normalized columns have zero mean and unit std."""
        normalizer = FeatureNormalizer(SCHEMA)
        stats = normalizer.fit(data)
        normalized = normalizer.transform(data, stats)
        assert normalized.mean(axis=0) == pytest.approx([0.0, 0.0], abs=1e-9)
        assert normalized.std(axis=0) == pytest.approx([1.0, 1.0], rel=1e-5)

    def test_denormalize_inverts_transform(self, data):
        """Denormalize undoes transform."""
        normalizer = FeatureNormalizer(SCHEMA)
        stats = normalizer.fit(data)
        restored = normalizer.denormalize(normalizer.transform(data, stats), stats)
        assert np.allclose(restored, data, rtol=1e-6)

    def test_constant_column_stays_finite(self):
        """Constant columns normalize to zero, not NaN."""
        data = np.array([[5.0, 1.0], [5.0, 2.0], [5.0, 3.0]])
        normalizer = FeatureNormalizer(SCHEMA)
        stats = normalizer.fit(data)
        normalized = normalizer.transform(data, stats)
        assert np.all(np.isfinite(normalized))
        assert normalized[:, 0] == pytest.approx([0.0, 0.0, 0.0])

    def test_rejects_reordered_schema(self, data):
        """Statistics refuse a schema with different field order."""
        stats = FeatureNormalizer(SCHEMA).fit(data)
        swapped = FeatureNormalizer(FeatureSchema('toy', ('y', 'x')))
        with pytest.raises(InvalidFeatureError):
            swapped.transform(data[0], stats)

    def test_rejects_wrong_vector_length(self, data):
        """Vectors of the wrong length are refused."""
        normalizer = FeatureNormalizer(SCHEMA)
        stats = normalizer.fit(data)
        with pytest.raises(InvalidFeatureError):
            normalizer.transform([1.0, 2.0, 3.0], stats)
