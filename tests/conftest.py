"""
Shared fixtures for pymirror tests.
"""

import pytest

import sample_api
from pymirror.catalog import ExposureCatalog
from pymirror.server import MirrorServer
from stubs import RecordingTransport


@pytest.fixture
def catalog():
    catalog = ExposureCatalog()
    catalog.prepare_all(sample_api.double, sample_api.greet, sample_api.total,
                        sample_api.midpoint, sample_api.Calculator, sample_api.Point)
    return catalog


@pytest.fixture
def server(catalog):
    return MirrorServer(catalog)


@pytest.fixture
def transport(server):
    return RecordingTransport(server)
