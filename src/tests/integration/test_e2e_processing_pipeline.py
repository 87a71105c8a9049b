import numpy
import pytest

from msfeat.assay.assay import Assay
from msfeat.core.enums import MSInstrument, PeakDetectionMethod, Polarity, SeparationMode
from msfeat.core.models import Sample, Scan
from msfeat.lcms.assay import create_lcms_assay
from msfeat.lcms.config import AssayConfiguration, CorrespondenceConfiguration, MatchedFilterConfiguration


def create_five_scan_sample(id: str, rt: float, mz: float, height: float) -> Sample:
    scans = list()
    for time in numpy.arange(933.0, 938.0):
        spint = height * numpy.exp(-0.5 * ((time - rt) / 2.5) ** 2)
        scans.append(Scan(time=float(time), mz=numpy.array([mz]), spint=numpy.array([spint])))
    return Sample(id=id, scans=scans)


def test_e2e_single_peak_in_short_samples():
    samples = [
        create_five_scan_sample("sample-0", 935.0, 413.120, 1000.0),
        create_five_scan_sample("sample-1", 934.5, 413.121, 900.0),
        create_five_scan_sample("sample-2", 935.5, 413.119, 1100.0),
    ]
    config = AssayConfiguration(
        detection=MatchedFilterConfiguration(bin_size=0.1, fwhm=6.0, sn_threshold=3.0),
        alignment=None,
        correspondence=CorrespondenceConfiguration(min_fraction=0.34),
        fill=None,
    )
    assay = Assay("test-e2e", config=config)
    assay.add_samples(*samples)
    matrix = assay.process()

    for sample in samples:
        peaks = assay.fetch_peaks(sample_id=sample.id)
        assert len(peaks) == 1
        assert abs(peaks[0].rt - 935.0) <= 2.0
        assert abs(peaks[0].mz - 413.12) <= 0.05

    features = assay.fetch_features()
    assert len(features) == 1
    assert len(features[0].peaks) == 3
    assert not assay.fetch_unassigned()
    assert matrix.get_data().shape == (3, 1)
    assert not numpy.any(numpy.isnan(matrix.get_data()))


@pytest.mark.parametrize("max_workers", [1, 2])
def test_e2e_lcms_assay(lcms_sample_factory, lcms_features, max_workers):
    assay = create_lcms_assay(
        "test-lcms-assay-e2e",
        instrument=MSInstrument.QTOF,
        separation=SeparationMode.UPLC,
        polarity=Polarity.POSITIVE,
        max_workers=max_workers,
    )
    assay.config.detection = MatchedFilterConfiguration(fwhm=7.0)
    samples = [lcms_sample_factory(f"sample-{k}", order=k, seed=k) for k in range(6)]
    assay.add_samples(*samples)
    matrix = assay.process()

    assert not assay.report.has_failures()
    assert matrix.get_n_samples() == 6
    assert matrix.get_n_features() == len(lcms_features)
    assert matrix.count_missing() == 0


def test_e2e_lcms_assay_centwave(lcms_sample_factory, lcms_features):
    assay = create_lcms_assay(
        "test-lcms-assay-e2e",
        instrument=MSInstrument.ORBITRAP,
        separation=SeparationMode.UPLC,
        polarity=Polarity.NEGATIVE,
        method=PeakDetectionMethod.CENTWAVE,
    )
    samples = [lcms_sample_factory(f"sample-{k}", order=k, seed=k) for k in range(4)]
    assay.add_samples(*samples)
    matrix = assay.process()
    assert matrix.get_n_features() == len(lcms_features)
