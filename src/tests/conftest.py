import pytest
from numpy.random import seed

from msfeat.simulation.lcms import SimulatedLCMSDataConfiguration, SimulatedLCMSFeature, SimulatedLCMSSampleFactory


@pytest.fixture(scope="session", autouse=True)
def random_seed():
    seed(1234)
    return


@pytest.fixture(scope="module")
def lcms_features():
    mz_list = [200.05, 350.12, 508.25]
    rt_list = [30.0, 50.0, 70.0]
    int_list = [1000.0, 2000.0, 3000.0]
    params = zip(mz_list, rt_list, int_list)
    return [SimulatedLCMSFeature(mz=mz, rt=rt, int=spint, width=3.0) for mz, rt, spint in params]


@pytest.fixture(scope="module")
def lcms_sample_factory(lcms_features):
    config = SimulatedLCMSDataConfiguration(n_scans=100, int_std=1.0)
    return SimulatedLCMSSampleFactory(config=config, features=lcms_features)
