"""Utilities to simulate LC-MS data.

Provides:

SimulatedLCMSSampleFactory
    A pydantic model that creates simulated centroided samples.
SimulatedLCMSFeature
    A pydantic model that defines a chromatographic peak included in simulated samples.

"""

from __future__ import annotations

import numpy as np
import pydantic

from ..core.models import Sample, Scan
from ..utils.numpy import FloatArray1D


class SimulatedLCMSDataConfiguration(pydantic.BaseModel):
    """Store configuration of a simulated LC-MS sample."""

    mz_std: pydantic.NonNegativeFloat = 0.0
    """Additive noise added to m/z in each scan"""

    int_std: pydantic.NonNegativeFloat = 0.0
    """Additive noise added to spectral intensity on each scan"""

    n_scans: pydantic.PositiveInt = 100
    """The number of scans in the sample"""

    start_time: pydantic.NonNegativeFloat = 0.0
    """The acquisition time of the first scan"""

    time_resolution: pydantic.PositiveFloat = 1.0
    """The time spacing between scans"""

    min_int: pydantic.NonNegativeFloat = 0.0
    """Elements in a spectrum with values lower or equal than this parameter are removed"""


class SimulatedLCMSFeature(pydantic.BaseModel):
    """Store a simulated LC-MS peak information."""

    mz: pydantic.PositiveFloat
    """The feature m/z."""

    rt: pydantic.PositiveFloat
    """The feature retention time."""

    int: pydantic.PositiveFloat
    """the feature intensity."""

    width: pydantic.PositiveFloat = 3.0
    """The peak standard deviation in the time domain"""


class SimulatedLCMSSampleFactory(pydantic.BaseModel):
    """Utility that creates simulated data samples."""

    config: SimulatedLCMSDataConfiguration = SimulatedLCMSDataConfiguration()
    """The sample configuration used to simulate data."""

    features: list[SimulatedLCMSFeature] = list()
    """the list of features to include in the simulated sample."""

    def __call__(
        self,
        id: str,
        group: str = "",
        order: int = 0,
        rt_shift: float = 0.0,
        int_scale: float = 1.0,
        seed: int | None = None,
    ) -> Sample:
        """Create a new simulated sample.

        :param id: the id for the sample
        :param group: the sample group
        :param order: the sample run order
        :param rt_shift: a time shift added to all feature retention times
        :param int_scale: a factor applied to all feature intensities
        :param seed: seed used to generate noise, for reproducibility

        """
        rng = np.random.default_rng(seed)
        features = sorted(self.features, key=lambda x: x.mz)
        mz_grid = np.array([x.mz for x in features], dtype=float)
        times = self.config.start_time + self.config.time_resolution * np.arange(self.config.n_scans)

        scans = list()
        for time in times:
            mz = self._compute_mz(mz_grid, rng)
            spint = self._compute_intensity(features, float(time) - rt_shift, int_scale, rng)
            mz, spint = merge_duplicated_mz(mz, spint)
            mask = spint > self.config.min_int
            scans.append(Scan(time=float(time), mz=mz[mask], spint=spint[mask]))
        return Sample(id=id, group=group, order=order, scans=scans)

    def _compute_mz(self, mz_grid: FloatArray1D, rng: np.random.Generator) -> FloatArray1D:
        if self.config.mz_std > 0.0:
            return mz_grid + rng.normal(size=mz_grid.size, scale=self.config.mz_std)
        return mz_grid.copy()

    def _compute_intensity(
        self, features: list[SimulatedLCMSFeature], time: float, int_scale: float, rng: np.random.Generator
    ) -> FloatArray1D:
        intensity = np.array([x.int * int_scale * np.exp(-0.5 * ((time - x.rt) / x.width) ** 2) for x in features])
        if self.config.int_std > 0.0:
            intensity += rng.normal(size=intensity.size, scale=self.config.int_std)
            intensity[intensity < 0] = 0.0
        return intensity


def merge_duplicated_mz(mz: FloatArray1D, spint: FloatArray1D) -> tuple[FloatArray1D, FloatArray1D]:
    """Sort a spectrum by m/z and sum the intensity of elements with equal m/z."""
    unique_mz, index = np.unique(mz, return_inverse=True)
    merged = np.zeros(unique_mz.size, dtype=float)
    np.add.at(merged, index, spint)
    return unique_mz, merged
