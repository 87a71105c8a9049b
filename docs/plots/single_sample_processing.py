import matplotlib.pyplot as plt
from msfeat.lcms import CentWaveConfiguration, detect_peaks, extract_chromatogram
from msfeat.simulation.lcms import SimulatedLCMSSampleFactory
from msfeat.storage import OnMemoryScanStore


# sample simulation
factory_params = {
    "config": {
        "n_scans": 120,
        "int_std": 5.0,
    },
    "features": [
        {"mz": 413.12, "rt": 30.0, "int": 1000.0, "width": 4.0},
        {"mz": 413.12, "rt": 70.0, "int": 2000.0, "width": 4.0},
        {"mz": 508.25, "rt": 50.0, "int": 3000.0, "width": 4.0},
    ],
}

simulated_sample_factory = SimulatedLCMSSampleFactory(**factory_params)
sample = simulated_sample_factory(id="my_sample", seed=1234)

# peak detection
config = CentWaveConfiguration(ppm=10.0, peak_width=(4.0, 30.0), prefilter=(3, 50.0))
peaks = [x for x in detect_peaks(sample, config) if abs(x.mz - 413.12) < 0.01]

# chromatogram extraction
store = OnMemoryScanStore()
store.add_samples(sample)
chromatogram = extract_chromatogram(store, sample.id, (413.11, 413.13))

fig, ax = plt.subplots(figsize=(6, 6))
ax.plot(chromatogram.time, chromatogram.spint, label="chromatogram")
for peak in peaks:
    mask = (chromatogram.time >= peak.rt_min) & (chromatogram.time <= peak.rt_max)
    ax.fill_between(chromatogram.time[mask], chromatogram.spint[mask], alpha=0.25, label=f"peak at {peak.rt:.1f} s")
ax.set_ylabel("Intensity")
ax.set_xlabel("Retention Time")
ax.legend()
