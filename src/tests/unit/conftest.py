import pytest

from msfeat.simulation.lcms import SimulatedLCMSSampleFactory
from msfeat.storage.memory import OnMemoryScanStore


@pytest.fixture
def scan_store(lcms_sample_factory: SimulatedLCMSSampleFactory) -> OnMemoryScanStore:
    store = OnMemoryScanStore()
    for k in range(4):
        group = "QC" if k % 2 else "subject"
        store.add_samples(lcms_sample_factory(f"sample-{k}", group=group, order=k, seed=k))
    return store
