"""Feature matrix implementation."""

from __future__ import annotations

from functools import cache
from typing import Sequence

import numpy

from ..utils.numpy import FloatArray
from . import exceptions
from .enums import IntensityStatistic
from .models import Feature, Peak, SampleInfo


class FeatureMatrix:
    """Storage class for feature intensity data.

    Missing values, i.e., features without a peak in a sample, are represented as ``NaN``.

    :param samples: the list of samples in the matrix. Each sample is associated with a matrix row.
    :param features: the list of features in the matrix. Each feature is associated with a matrix column.
    :param data: A 2D numpy float array with matrix data. The number of rows and columns must match the
        `samples`  and `features` length respectively.
    :param validate: If set to ``True``, validate and sort data before creating the matrix. Rows are
        sorted by sample run order and columns by feature id.

    """

    def __init__(
        self,
        samples: Sequence[SampleInfo],
        features: Sequence[Feature],
        data: FloatArray,
        validate: bool = True,
    ):
        self._data = data
        self._samples = [x for x in samples]
        self._features = [x for x in features]
        if validate:
            self.validate()

    def get_n_features(self) -> int:
        """Retrieve the number of features in the matrix."""
        return len(self._features)

    def get_n_samples(self) -> int:
        """Retrieve the number of samples in the matrix."""
        return len(self._samples)

    def list_samples(self) -> list[SampleInfo]:
        """List all samples in the matrix."""
        return self._samples.copy()

    def list_features(self) -> list[Feature]:
        """List all features in the matrix."""
        return self._features.copy()

    def get_data(self) -> FloatArray:
        """Retrieve the matrix data in numpy format.

        Each rows in the array is associated with a sample and each column is associated with a feature.

        """
        return self._data

    def get_feature_index(self, *features: int) -> list[int]:
        """Retrieve the list of column indices associated with features.

        :raises FeatureNotFound: if a feature is not stored in the matrix

        """
        index = self._feature_index()
        for f in features:
            if f not in index:
                raise exceptions.FeatureNotFound(f)
        return [index[x] for x in features]

    def get_sample_index(self, *sample_ids: str) -> list[int]:
        """Retrieve the list of row indices associated with samples.

        :raises SampleNotFound: if a sample is not stored in the matrix

        """
        index = self._sample_index()
        for s in sample_ids:
            if s not in index:
                raise exceptions.SampleNotFound(s)
        return [index[x] for x in sample_ids]

    def has_feature(self, feature: int) -> bool:
        """Check if a feature is stored in the matrix."""
        return feature in self._feature_index()

    def has_sample(self, sample_id: str) -> bool:
        """Check if a sample is stored in the matrix."""
        return sample_id in self._sample_index()

    def count_missing(self) -> int:
        """Count the number of missing values in the matrix."""
        return int(numpy.isnan(self._data).sum())

    def validate(self) -> None:
        """Perform a sanity check and sort the matrix data."""
        validate_feature_matrix(self._samples, self._features, self._data)
        samples, data = sort_matrix_rows(self._samples, self._data)
        features, data = sort_matrix_columns(self._features, data)
        self._data = data
        self._samples = samples
        self._features = features

    @cache
    def _sample_index(self) -> dict[str, int]:
        """Map sample ids to indices in the matrix rows."""
        return {x.id: k for k, x in enumerate(self._samples)}

    @cache
    def _feature_index(self) -> dict[int, int]:
        """Map feature ids to indices in the matrix columns."""
        return {x.id: k for k, x in enumerate(self._features)}


def create_feature_matrix(
    samples: Sequence[SampleInfo],
    features: Sequence[Feature],
    peaks: Sequence[Peak],
    sample_indices: Sequence[int],
    statistic: IntensityStatistic = IntensityStatistic.INTEGRATED,
) -> FeatureMatrix:
    """Create a feature matrix from feature member peaks.

    :param samples: the samples included in the matrix
    :param features: the features included in the matrix
    :param peaks: peaks assigned to features. Peaks from other samples or features are ignored.
    :param sample_indices: the scan store index of each sample in `samples`
    :param statistic: the peak value used to fill the matrix
    :raises EmptyDataMatrix: if no samples or no features are provided

    """
    statistic = IntensityStatistic(statistic)
    data = numpy.full((len(samples), len(features)), numpy.nan)
    row_index = {index: k for k, index in enumerate(sample_indices)}
    column_index = {x.id: k for k, x in enumerate(features)}
    for peak in peaks:
        row = row_index.get(peak.sample_index)
        column = column_index.get(peak.feature)
        if row is not None and column is not None:
            data[row, column] = peak.get(statistic)
    return FeatureMatrix(samples, features, data)


def validate_feature_matrix(samples: Sequence[SampleInfo], features: Sequence[Feature], data: FloatArray) -> None:
    r"""Perform sanity check on matrix data.

    :param samples: the matrix samples
    :param features: the matrix features
    :param data: the matrix data
    :raises EmptyDataMatrix: if an empty samples or feature list is provided
    :raises ValueError: if the the data shape is not :math:`n_{samples} \times n_{features}` or if the data
        dtype is not float.
    :raises RepeatedIdError: if samples or features with repeated id are provided.

    """
    if not samples:
        raise exceptions.EmptyDataMatrix("Feature matrix must contain at least one sample.")

    if not features:
        raise exceptions.EmptyDataMatrix("Feature matrix must contain at least one feature.")

    if len(data.shape) != 2:
        raise ValueError("data must be a 2D array.")

    if data.dtype.kind != "f":
        raise ValueError("data dtype must be of floating type.")

    n_rows, n_cols = data.shape
    n_samples = len(samples)
    n_features = len(features)

    if n_samples != n_rows:
        msg = f"The number of samples ({n_samples}) does not match the number of rows in the data ({n_rows})."
        raise ValueError(msg)

    if n_features != n_cols:
        msg = f"The number of features ({n_features}) does not match the number of columns in the data ({n_cols})."
        raise ValueError(msg)

    if len({x.id for x in features}) < n_features:
        raise exceptions.RepeatedIdError("Features must have a unique id.")

    if len({x.id for x in samples}) < n_samples:
        raise exceptions.RepeatedIdError("Samples must have a unique id.")


def sort_matrix_columns(features: Sequence[Feature], data: FloatArray) -> tuple[list[Feature], FloatArray]:
    """Sort data using feature id."""
    sorted_index = [k for k, _ in sorted(enumerate(features), key=lambda x: x[1].id)]
    return [features[x] for x in sorted_index], data[:, sorted_index]


def sort_matrix_rows(samples: Sequence[SampleInfo], data: FloatArray) -> tuple[list[SampleInfo], FloatArray]:
    """Sort data using sample run order. Samples with equal order keep their relative position."""
    sorted_index = [k for k, _ in sorted(enumerate(samples), key=lambda x: x[1].order)]
    return [samples[x] for x in sorted_index], data[sorted_index]
