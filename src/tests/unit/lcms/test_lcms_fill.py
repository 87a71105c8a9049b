import numpy
import pytest

from msfeat.core.enums import AggregationMethod, RetentionTimeBasis
from msfeat.core.exceptions import IntegrationError
from msfeat.core.models import AdjustmentFunction, Feature, Sample, Scan
from msfeat.lcms import fill
from msfeat.lcms.config import GapFillingConfiguration
from msfeat.storage.memory import OnMemoryAssayStorage, OnMemoryScanStore

from ..helpers import create_peak, create_sample


def create_feature(mz: float = 200.0, rt: float = 50.0, id: int = 0) -> Feature:
    return Feature(id=id, mz=mz, mz_min=mz - 0.01, mz_max=mz + 0.01, rt=rt, rt_min=rt - 5, rt_max=rt + 5, peaks=[])


class TestComputeFillWindows:
    def test_windows_use_quartiles(self):
        peaks = [create_peak(rt=rt, rt_width=2.0) for rt in [40.0, 50.0, 60.0, 70.0, 80.0]]
        mz_range, rt_range = fill.compute_fill_windows(create_feature(), peaks)
        assert numpy.isclose(rt_range[0], 48.0)
        assert numpy.isclose(rt_range[1], 72.0)
        assert numpy.isclose(mz_range[0], 199.995)
        assert numpy.isclose(mz_range[1], 200.005)

    @pytest.mark.parametrize("n_peaks", [0, 1])
    def test_less_than_two_peaks_use_feature_extents(self, n_peaks):
        feature = create_feature()
        peaks = [create_peak()] * n_peaks
        mz_range, rt_range = fill.compute_fill_windows(feature, peaks)
        assert mz_range == (feature.mz_min, feature.mz_max)
        assert rt_range == (feature.rt_min, feature.rt_max)


class TestIntegrateWindow:
    @pytest.fixture
    def sample(self):
        return create_sample("sample", [(200.0, 50.0, 100.0)])

    def test_integrate_signal(self, sample):
        request = fill.FillRequest(create_feature(), (199.99, 200.01), (40.0, 60.0))
        peak = fill.integrate_window(
            sample.id, 2, sample.get_times(), sample.scans, request, AggregationMethod.SUM, RetentionTimeBasis.RAW
        )
        expected_area = 100.0 * 3.0 * numpy.sqrt(2 * numpy.pi)
        assert peak.is_filled
        assert peak.feature == 0
        assert peak.sample_index == 2
        assert numpy.isclose(peak.area, expected_area, rtol=0.01)
        assert numpy.isclose(peak.height, 100.0)
        assert peak.rt == 50.0

    def test_window_without_signal_has_zero_area(self, sample):
        request = fill.FillRequest(create_feature(mz=300.0), (299.99, 300.01), (40.0, 60.0))
        peak = fill.integrate_window(
            sample.id, 0, sample.get_times(), sample.scans, request, AggregationMethod.SUM, RetentionTimeBasis.RAW
        )
        assert peak.area == 0.0
        assert peak.height == 0.0

    def test_window_with_one_scan_uses_scan_spacing(self):
        scans = [Scan(time=float(k), mz=numpy.array([200.0]), spint=numpy.array([1000.0])) for k in range(10)]
        sample = Sample(id="flat", scans=scans)
        request = fill.FillRequest(create_feature(rt=5.0), (199.99, 200.01), (4.8, 5.2))
        peak = fill.integrate_window(
            sample.id, 0, sample.get_times(), sample.scans, request, AggregationMethod.SUM, RetentionTimeBasis.RAW
        )
        assert peak.rt == 5.0
        assert numpy.isclose(peak.area, 1000.0)

    def test_window_outside_sample_time_raises_error(self, sample):
        request = fill.FillRequest(create_feature(rt=500.0), (199.99, 200.01), (495.0, 505.0))
        with pytest.raises(IntegrationError):
            fill.integrate_window(
                sample.id, 0, sample.get_times(), sample.scans, request, AggregationMethod.SUM, RetentionTimeBasis.RAW
            )

    def test_inverted_window_raises_error(self, sample):
        request = fill.FillRequest(create_feature(), (199.99, 200.01), (60.0, 40.0))
        with pytest.raises(IntegrationError):
            fill.integrate_window(
                sample.id, 0, sample.get_times(), sample.scans, request, AggregationMethod.SUM, RetentionTimeBasis.RAW
            )


def test_fill_sample_create_empty_peak_on_integration_error():
    sample = create_sample("sample", [(200.0, 50.0, 100.0)])
    feature = create_feature(rt=500.0)
    requests = [fill.FillRequest(feature, (199.99, 200.01), (495.0, 505.0))]
    data = (sample.id, 0, sample.get_times(), sample.scans, requests)
    (peak, error), *_ = fill.fill_sample(data, AggregationMethod.SUM, RetentionTimeBasis.RAW)
    assert isinstance(error, IntegrationError)
    assert peak.is_filled
    assert peak.area == 0.0
    assert peak.rt_min == feature.rt_min and peak.rt_max == feature.rt_max


class TestFillMissing:
    @pytest.fixture
    def store(self):
        store = OnMemoryScanStore()
        features = [(200.0, 50.0, 100.0), (300.0, 30.0, 200.0)]
        samples = [create_sample(f"sample-{k}", features) for k in range(3)]
        samples.append(create_sample("sample-3", [(300.0, 30.0, 200.0)]))
        store.add_samples(*samples)
        return store

    @pytest.fixture
    def storage(self):
        storage = OnMemoryAssayStorage("assay")
        peaks = [create_peak(mz=200.0, rt=50.0, sample_index=k, id=k, height=100.0) for k in range(2)]
        storage.add_peaks(*peaks)
        feature = Feature(mz=200.0, mz_min=199.995, mz_max=200.005, rt=50.0, rt_min=45.0, rt_max=55.0, peaks=[0, 1])
        storage.set_features([feature], [])
        return storage

    def test_create_fill_requests(self, store: OnMemoryScanStore, storage: OnMemoryAssayStorage):
        requests = fill.create_fill_requests(store, storage, [x.id for x in store.list_samples()])
        assert [len(requests[x]) for x in sorted(requests)] == [0, 0, 1, 1]

    def test_fill_missing_values(self, store: OnMemoryScanStore, storage: OnMemoryAssayStorage):
        warnings, errors = fill.fill_missing(store, storage, GapFillingConfiguration())
        assert not errors
        assert all(not x for x in warnings.values())

        peaks = storage.fetch_peaks_by_feature(0)
        assert [x.sample_index for x in peaks] == [0, 1, 2, 3]
        filled = {x.sample_index: x for x in peaks if x.is_filled}
        assert sorted(filled) == [2, 3]
        assert filled[2].area > 0.0
        assert filled[3].area == 0.0
        for peak in filled.values():
            assert numpy.isfinite(peak.area) and peak.area >= 0.0

    def test_fill_missing_is_idempotent(self, store: OnMemoryScanStore, storage: OnMemoryAssayStorage):
        fill.fill_missing(store, storage, GapFillingConfiguration())
        expected = storage.list_peaks()
        fill.fill_missing(store, storage, GapFillingConfiguration())
        assert storage.list_peaks() == expected
        assert storage.get_feature(0).peaks == [0, 1, 2, 3]

    def test_fill_missing_does_not_modify_detected_peaks(self, store: OnMemoryScanStore, storage: OnMemoryAssayStorage):
        expected = [x.model_copy() for x in storage.list_peaks()]
        fill.fill_missing(store, storage, GapFillingConfiguration())
        assert storage.list_peaks(include_filled=False) == expected

    def test_fill_missing_in_adjusted_basis(self, store: OnMemoryScanStore, storage: OnMemoryAssayStorage):
        for sample in store.list_samples():
            store.set_adjustment(AdjustmentFunction(sample_id=sample.id, raw=[0.0, 99.0], adjusted=[0.0, 99.0]))
        warnings, errors = fill.fill_missing(store, storage, GapFillingConfiguration(), RetentionTimeBasis.ADJUSTED)
        assert not errors
        assert storage.get_n_peaks() == 4

    def test_sample_without_adjustment_is_reported_as_error(
        self, store: OnMemoryScanStore, storage: OnMemoryAssayStorage
    ):
        store.set_adjustment(AdjustmentFunction(sample_id="sample-2", raw=[0.0, 99.0], adjusted=[0.0, 99.0]))
        warnings, errors = fill.fill_missing(
            store, storage, GapFillingConfiguration(), RetentionTimeBasis.ADJUSTED, sample_ids=["sample-2", "sample-3"]
        )
        assert list(errors) == ["sample-3"]
        assert list(warnings) == ["sample-2"]
        assert storage.get_n_peaks() == 3

    def test_integration_error_is_reported_as_warning(self, store: OnMemoryScanStore):
        storage = OnMemoryAssayStorage("assay")
        storage.add_peaks(create_peak(mz=200.0, rt=500.0, sample_index=0, id=0))
        feature = Feature(mz=200.0, mz_min=199.995, mz_max=200.005, rt=500.0, rt_min=495.0, rt_max=505.0, peaks=[0])
        storage.set_features([feature], [])
        sample_ids = ["sample-0", "sample-1"]
        warnings, errors = fill.fill_missing(store, storage, GapFillingConfiguration(), sample_ids=sample_ids)
        assert not errors
        assert [feature_id for feature_id, _ in warnings["sample-1"]] == [0]
        filled = storage.fetch_peaks_by_feature(0)[1]
        assert filled.is_filled and filled.area == 0.0
