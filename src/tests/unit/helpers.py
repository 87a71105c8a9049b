"""Helpers functions for unit tests."""

from __future__ import annotations

import numpy

from msfeat.core.models import Peak, Sample, Scan
from msfeat.simulation.lcms import SimulatedLCMSDataConfiguration, SimulatedLCMSFeature, SimulatedLCMSSampleFactory


def create_peak(
    mz: float = 200.0,
    rt: float = 50.0,
    sample_index: int = 0,
    height: float = 100.0,
    id: int = -1,
    rt_width: float = 5.0,
    mz_width: float = 0.005,
    area: float | None = None,
    **kwargs,
) -> Peak:
    """Create a peak centered at `mz` and `rt`."""
    return Peak(
        mz=mz,
        mz_min=mz - mz_width,
        mz_max=mz + mz_width,
        rt=rt,
        rt_min=rt - rt_width,
        rt_max=rt + rt_width,
        area=height * rt_width if area is None else area,
        height=height,
        sample_index=sample_index,
        id=id,
        **kwargs,
    )


def create_sample(
    id: str,
    features: list[tuple[float, float, float]],
    n_scans: int = 100,
    width: float = 3.0,
    **kwargs,
) -> Sample:
    """Create a simulated sample without noise.

    :param features: tuples of m/z, retention time and intensity for each feature.
    :param kwargs: passed to the sample factory call.

    """
    config = SimulatedLCMSDataConfiguration(n_scans=n_scans)
    simulated = [SimulatedLCMSFeature(mz=mz, rt=rt, int=spint, width=width) for mz, rt, spint in features]
    factory = SimulatedLCMSSampleFactory(config=config, features=simulated)
    return factory(id, **kwargs)


def create_zero_sample(id: str, n_scans: int = 50, mz: tuple[float, ...] = (100.0, 200.0, 300.0)) -> Sample:
    """Create a sample where all intensity values are zero."""
    mz_arr = numpy.array(mz)
    scans = [Scan(time=float(k), mz=mz_arr, spint=numpy.zeros_like(mz_arr)) for k in range(n_scans)]
    return Sample(id=id, scans=scans)
