import numpy
import pytest

from msfeat.assay.executors import SequentialExecutor
from msfeat.core.enums import AggregationMethod, RetentionTimeBasis
from msfeat.core.exceptions import ConfigurationError, EmptyInputError, ProcessStatusError
from msfeat.core.models import AdjustmentFunction, Scan
from msfeat.lcms.chromatogram import aggregate_scans, extract_chromatogram, extract_chromatograms, select_scan_data
from msfeat.storage.memory import OnMemoryScanStore

from ..helpers import create_sample


class TestAggregateScans:
    @pytest.fixture
    def scans(self):
        return [
            Scan(time=0.0, mz=[100.0, 100.01, 200.0], spint=[10.0, 20.0, 30.0]),
            Scan(time=1.0, mz=[150.0], spint=[5.0]),
        ]

    def test_sum(self, scans):
        actual = aggregate_scans(scans, 99.99, 100.02, AggregationMethod.SUM)
        assert numpy.array_equal(actual, [30.0, 0.0])

    def test_max(self, scans):
        actual = aggregate_scans(scans, 99.99, 100.02, AggregationMethod.MAX)
        assert numpy.array_equal(actual, [20.0, 0.0])

    def test_window_is_closed(self, scans):
        actual = aggregate_scans(scans, 100.0, 100.0)
        assert numpy.array_equal(actual, [10.0, 0.0])


class TestExtractChromatogram:
    @pytest.fixture
    def store(self):
        store = OnMemoryScanStore()
        sample = create_sample("sample", [(200.0, 20.0, 100.0), (300.0, 30.0, 200.0)], n_scans=50)
        store.add_samples(sample)
        return store

    def test_one_point_per_scan(self, store: OnMemoryScanStore):
        chromatogram = extract_chromatogram(store, "sample", (199.99, 200.01))
        assert chromatogram.time.size == chromatogram.spint.size == 50
        assert numpy.isclose(chromatogram.time[numpy.argmax(chromatogram.spint)], 20.0)
        assert numpy.isclose(chromatogram.spint.max(), 100.0)

    def test_rt_range(self, store: OnMemoryScanStore):
        chromatogram = extract_chromatogram(store, "sample", (199.99, 200.01), rt_range=(10.0, 19.0))
        assert numpy.array_equal(chromatogram.time, numpy.arange(10.0, 20.0))

    def test_window_without_data_is_all_zero(self, store: OnMemoryScanStore):
        chromatogram = extract_chromatogram(store, "sample", (500.0, 501.0))
        assert chromatogram.time.size == 50
        assert numpy.all(chromatogram.spint == 0.0)

    def test_inverted_mz_window_raises_error(self, store: OnMemoryScanStore):
        with pytest.raises(ConfigurationError):
            extract_chromatogram(store, "sample", (201.0, 200.0))

    def test_inverted_rt_window_return_empty_chromatogram(self, store: OnMemoryScanStore):
        chromatogram = extract_chromatogram(store, "sample", (199.99, 200.01), rt_range=(20.0, 10.0))
        assert chromatogram.time.size == 0
        assert chromatogram.integrate() == 0.0

    def test_adjusted_basis_without_adjustment_raises_error(self, store: OnMemoryScanStore):
        with pytest.raises(ProcessStatusError):
            extract_chromatogram(store, "sample", (199.99, 200.01), basis=RetentionTimeBasis.ADJUSTED)

    def test_adjusted_basis_shifts_time(self, store: OnMemoryScanStore):
        store.set_adjustment(AdjustmentFunction(sample_id="sample", raw=[0.0, 49.0], adjusted=[5.0, 54.0]))
        raw = extract_chromatogram(store, "sample", (199.99, 200.01))
        adjusted = extract_chromatogram(store, "sample", (199.99, 200.01), basis=RetentionTimeBasis.ADJUSTED)
        assert adjusted.basis is RetentionTimeBasis.ADJUSTED
        assert numpy.allclose(adjusted.time, raw.time + 5.0)
        assert numpy.array_equal(adjusted.spint, raw.spint)


class TestExtractChromatograms:
    @pytest.fixture
    def store(self):
        store = OnMemoryScanStore()
        samples = [create_sample(f"sample-{k}", [(200.0, 20.0 + k, 100.0)], n_scans=50) for k in range(3)]
        store.add_samples(*samples)
        return store

    def test_extract_from_all_samples(self, store: OnMemoryScanStore):
        chromatograms = extract_chromatograms(store, (199.99, 200.01), executor=SequentialExecutor())
        assert list(chromatograms) == ["sample-0", "sample-1", "sample-2"]
        for k, chromatogram in enumerate(chromatograms.values()):
            assert numpy.isclose(chromatogram.time[numpy.argmax(chromatogram.spint)], 20.0 + k)

    def test_extract_from_subset_keeps_requested_order(self, store: OnMemoryScanStore):
        chromatograms = extract_chromatograms(store, (199.99, 200.01), sample_ids=["sample-2", "sample-0"])
        assert list(chromatograms) == ["sample-2", "sample-0"]

    def test_failed_samples_are_not_included(self, store: OnMemoryScanStore):
        store.set_adjustment(AdjustmentFunction(sample_id="sample-1", raw=[0.0, 49.0], adjusted=[0.0, 49.0]))
        chromatograms = extract_chromatograms(store, (199.99, 200.01), basis=RetentionTimeBasis.ADJUSTED)
        assert list(chromatograms) == ["sample-1"]

    def test_inverted_mz_window_raises_error(self, store: OnMemoryScanStore):
        with pytest.raises(ConfigurationError):
            extract_chromatograms(store, (201.0, 200.0))


class TestSelectScanData:
    def test_select_ranges(self):
        sample = create_sample("sample", [(200.0, 20.0, 100.0), (300.0, 30.0, 200.0)], n_scans=50)
        times, mz_list, spint_list = select_scan_data(sample, rt_range=(10.0, 14.0), mz_range=(250.0, 350.0))
        assert times.size == len(mz_list) == len(spint_list) == 5
        assert all(numpy.array_equal(x, [300.0]) for x in mz_list)

    def test_empty_time_range_raises_error(self):
        sample = create_sample("sample", [(200.0, 20.0, 100.0)], n_scans=50)
        with pytest.raises(EmptyInputError):
            select_scan_data(sample, rt_range=(100.0, 200.0))

    def test_empty_mz_range_raises_error(self):
        sample = create_sample("sample", [(200.0, 20.0, 100.0)], n_scans=50)
        with pytest.raises(EmptyInputError):
            select_scan_data(sample, mz_range=(500.0, 600.0))
