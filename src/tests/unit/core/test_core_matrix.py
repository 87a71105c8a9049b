import random

import numpy
import pytest

from msfeat.core import exceptions
from msfeat.core.enums import IntensityStatistic
from msfeat.core.matrix import FeatureMatrix, create_feature_matrix, validate_feature_matrix
from msfeat.core.models import Feature, SampleInfo

from ..helpers import create_peak


def create_sample_info(k: int, group: str = "") -> SampleInfo:
    return SampleInfo(id=f"sample-{k}", order=k, group=group)


def create_feature(k: int) -> Feature:
    mz = random.uniform(100.0, 1000.0)
    rt = random.uniform(10.0, 100.0)
    return Feature(id=k, mz=mz, mz_min=mz - 0.01, mz_max=mz + 0.01, rt=rt, rt_min=rt - 5, rt_max=rt + 5, peaks=[])


class TestValidateFeatureMatrix:
    def test_create_matrix_using_samples_with_repeated_ids_raise_error(self):
        samples = [create_sample_info(1), create_sample_info(1)]
        features = [create_feature(x) for x in range(5)]
        data = numpy.random.normal(loc=100.0, size=(2, 5))
        with pytest.raises(exceptions.RepeatedIdError):
            validate_feature_matrix(samples, features, data)

    def test_create_matrix_using_features_with_repeated_id_raise_error(self):
        samples = [create_sample_info(1), create_sample_info(2)]
        features = [create_feature(x) for x in range(5)]
        features[3].id = 2
        data = numpy.random.normal(loc=100.0, size=(2, 5))
        with pytest.raises(exceptions.RepeatedIdError):
            validate_feature_matrix(samples, features, data)

    def test_create_matrix_with_non_matching_sizes_in_sample_data_raises_error(self):
        samples = [create_sample_info(1), create_sample_info(2)]
        features = [create_feature(x) for x in range(5)]
        data = numpy.random.normal(loc=100.0, size=(3, 5))
        with pytest.raises(ValueError):
            validate_feature_matrix(samples, features, data)

    def test_create_matrix_with_non_matching_sizes_in_feature_data_raises_error(self):
        samples = [create_sample_info(1), create_sample_info(2)]
        features = [create_feature(x) for x in range(5)]
        data = numpy.random.normal(loc=100.0, size=(2, 6))
        with pytest.raises(ValueError):
            validate_feature_matrix(samples, features, data)

    def test_create_matrix_without_samples_raises_error(self):
        features = [create_feature(x) for x in range(5)]
        data = numpy.random.normal(loc=100.0, size=(0, 5))
        with pytest.raises(exceptions.EmptyDataMatrix):
            validate_feature_matrix([], features, data)

    def test_create_matrix_without_features_raises_error(self):
        samples = [create_sample_info(1), create_sample_info(2)]
        data = numpy.random.normal(loc=100.0, size=(2, 0))
        with pytest.raises(exceptions.EmptyDataMatrix):
            validate_feature_matrix(samples, [], data)

    def test_create_matrix_using_non_2d_array_shape_raises_error(self):
        samples = [create_sample_info(x) for x in range(3)]
        features = [create_feature(x) for x in range(5)]
        data = numpy.random.normal(loc=100.0, size=(3))
        with pytest.raises(ValueError):
            validate_feature_matrix(samples, features, data)

    def test_create_matrix_using_non_float_array_raises_error(self):
        samples = [create_sample_info(x) for x in range(3)]
        features = [create_feature(x) for x in range(5)]
        data = numpy.ones(shape=(3, 5), dtype=int)
        with pytest.raises(ValueError):
            validate_feature_matrix(samples, features, data)


class TestFeatureMatrix:
    n_samples = 10
    n_features = 20

    def test_create_matrix_using_unsorted_samples_sorts_by_order(self):
        samples = list(reversed([create_sample_info(x) for x in range(3)]))
        features = [create_feature(x) for x in range(5)]
        data = numpy.random.normal(loc=100.0, size=(3, 5))
        matrix = FeatureMatrix(samples, features, data)

        assert matrix.list_samples() == list(reversed(samples))
        assert data is not matrix.get_data()
        assert numpy.array_equal(data[::-1], matrix.get_data())

    def test_create_matrix_using_samples_with_equal_order_keeps_input_order(self):
        samples = [SampleInfo(id=x, order=0) for x in ["c", "a", "b"]]
        features = [create_feature(x) for x in range(5)]
        data = numpy.random.normal(loc=100.0, size=(3, 5))
        matrix = FeatureMatrix(samples, features, data)
        assert [x.id for x in matrix.list_samples()] == ["c", "a", "b"]

    def test_create_matrix_using_unsorted_features_sorts_by_id(self):
        samples = [create_sample_info(x) for x in range(3)]
        features = list(reversed([create_feature(x) for x in range(5)]))
        data = numpy.random.normal(loc=100.0, size=(3, 5))
        matrix = FeatureMatrix(samples, features, data)
        assert [x.id for x in matrix.list_features()] == list(range(5))
        assert numpy.array_equal(data[:, ::-1], matrix.get_data())

    @pytest.fixture
    def samples(self):
        return [create_sample_info(k, group="QC" if k % 2 else "subject") for k in range(self.n_samples)]

    @pytest.fixture
    def features(self):
        return [create_feature(k) for k in range(self.n_features)]

    @pytest.fixture
    def matrix(self, samples, features):
        data = numpy.random.normal(loc=100.0, size=(self.n_samples, self.n_features))
        return FeatureMatrix(samples, features, data)

    def test_get_n_features(self, matrix: FeatureMatrix):
        assert matrix.get_n_features() == self.n_features

    def test_get_n_samples(self, matrix: FeatureMatrix):
        assert matrix.get_n_samples() == self.n_samples

    def test_list_samples(self, matrix: FeatureMatrix, samples):
        assert samples == matrix.list_samples()

    def test_list_features(self, matrix: FeatureMatrix, features):
        assert features == matrix.list_features()

    def test_count_missing(self, matrix: FeatureMatrix):
        assert matrix.count_missing() == 0
        matrix.get_data()[0, :3] = numpy.nan
        assert matrix.count_missing() == 3

    def test_get_feature_index(self, matrix: FeatureMatrix):
        features = matrix.list_features()
        assert matrix.get_feature_index(features[3].id, features[1].id) == [3, 1]

    def test_get_feature_index_missing_feature_raises_error(self, matrix: FeatureMatrix):
        with pytest.raises(exceptions.FeatureNotFound):
            matrix.get_feature_index(100000)

    def test_get_sample_index(self, matrix: FeatureMatrix, samples):
        assert matrix.get_sample_index(samples[2].id) == [2]

    def test_get_sample_index_missing_sample_raises_error(self, matrix: FeatureMatrix):
        with pytest.raises(exceptions.SampleNotFound):
            matrix.get_sample_index("invalid-sample-id")

    def test_has_feature(self, matrix: FeatureMatrix, features):
        assert matrix.has_feature(features[0].id)
        assert not matrix.has_feature(100000)

    def test_has_sample(self, matrix: FeatureMatrix, samples):
        assert matrix.has_sample(samples[0].id)
        assert not matrix.has_sample("invalid-sample-id")


class TestCreateFeatureMatrix:
    @pytest.fixture
    def samples(self):
        return [create_sample_info(k) for k in range(3)]

    @pytest.fixture
    def features(self):
        return [create_feature(k) for k in range(2)]

    def test_missing_values_are_nan(self, samples, features):
        peaks = [create_peak(sample_index=0, feature=0, height=10.0), create_peak(sample_index=2, feature=1)]
        matrix = create_feature_matrix(samples, features, peaks, [0, 1, 2])
        assert matrix.count_missing() == 4
        assert matrix.get_data()[0, 0] == peaks[0].area

    def test_max_statistic_uses_peak_height(self, samples, features):
        peaks = [create_peak(sample_index=1, feature=1, height=25.0)]
        matrix = create_feature_matrix(samples, features, peaks, [0, 1, 2], statistic=IntensityStatistic.MAX)
        assert matrix.get_data()[1, 1] == 25.0

    def test_rows_use_sample_indices(self, samples, features):
        peaks = [create_peak(sample_index=7, feature=0, height=10.0)]
        matrix = create_feature_matrix(samples, features, peaks, [5, 6, 7])
        assert matrix.get_data()[2, 0] == 10.0 * 5.0

    def test_peaks_from_other_samples_and_unassigned_peaks_are_ignored(self, samples, features):
        peaks = [create_peak(sample_index=10, feature=0), create_peak(sample_index=0)]
        matrix = create_feature_matrix(samples, features, peaks, [0, 1, 2])
        assert matrix.count_missing() == 6

    def test_create_matrix_without_features_raises_error(self, samples):
        with pytest.raises(exceptions.EmptyDataMatrix):
            create_feature_matrix(samples, [], [], [0, 1, 2])
