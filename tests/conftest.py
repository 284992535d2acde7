# pylint: disable=missing-module-docstring,missing-function-docstring,invalid-name,unused-argument,redefined-outer-name
from unittest.mock import MagicMock

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
from shapely.geometry import Point, Polygon

import ee
from solarsat.geo.region import Region
from solarsat.ingestion.eemanager import EarthEngineManager


class EEValue:
    """Stand-in for an ee.ComputedObject whose getInfo() returns *value*."""

    def __init__(self, value):
        self.value = value

    def getInfo(self):
        return self.value


class DummyGeometry:
    def __init__(self, geo_json, *args, **kwargs):
        self.geo_json = geo_json


class DummyFeature:
    def __init__(self, geometry, properties=None):
        self.geometry = geometry
        self.properties = properties or {}


class DummyFeatureCollection:
    def __init__(self, source):
        self.source = source
        self.features = source if isinstance(source, list) else []
        self.filters = []

    def filter(self, flt):
        self.filters.append(flt)
        return self


@pytest.fixture(autouse=True)
def mock_ee(monkeypatch):
    """
    Stub Earth Engine initialization and the client-side constructors the
    package uses, so nothing reaches the real service.
    """
    monkeypatch.setattr(ee, "Initialize", lambda *args, **kwargs: None)
    monkeypatch.setattr(ee, "Authenticate", lambda *args, **kwargs: None)
    monkeypatch.setattr(ee, "ServiceAccountCredentials", lambda a, b: MagicMock())
    monkeypatch.setattr(ee.data, "setDeadline", lambda ms: None)
    monkeypatch.setattr(ee, "Geometry", DummyGeometry)
    monkeypatch.setattr(ee, "Feature", DummyFeature)
    monkeypatch.setattr(ee, "FeatureCollection", DummyFeatureCollection)
    monkeypatch.setattr(ee, "Filter", MagicMock())
    monkeypatch.setattr(ee, "Dictionary", EEValue)
    monkeypatch.setattr("time.sleep", lambda s: None)
    yield


@pytest.fixture
def ee_value():
    return EEValue


@pytest.fixture
def manager():
    """A real manager with a single retry and no request deadline."""
    return EarthEngineManager(timeout=None, max_retries=2)


@pytest.fixture
def region():
    """Unit square standing in for a state boundary."""
    geom = Polygon([(0, 0), (0, 1), (1, 1), (1, 0)])
    return Region(name="Rhode Island", geometry=geom, properties={"NAME": "Rhode Island"})


@pytest.fixture
def boundary_gdf():
    return gpd.GeoDataFrame(
        {
            "NAME": ["Rhode Island", "Connecticut"],
            "geometry": [
                Polygon([(0, 0), (0, 1), (1, 1), (1, 0)]),
                Polygon([(-2, 0), (-2, 1), (-1, 1), (-1, 0)]),
            ],
        },
        crs="EPSG:4326",
    )


def _points(n, seed, offset=0.0):
    rng = np.random.default_rng(seed)
    xs = rng.uniform(0.05, 0.45, n) + offset
    ys = rng.uniform(0.05, 0.95, n)
    return [Point(x, y) for x, y in zip(xs, ys)]


@pytest.fixture
def solar_gdf():
    return gpd.GeoDataFrame({"geometry": _points(100, 1)}, crs="EPSG:4326")


@pytest.fixture
def non_solar_gdf():
    return gpd.GeoDataFrame({"geometry": _points(50, 2, offset=0.5)}, crs="EPSG:4326")


@pytest.fixture
def samples():
    """Separable sample table: solar (1) is bright in B11/B12, non-solar (2) in B8."""
    rng = np.random.default_rng(7)
    n1, n2 = 120, 80
    frame = pd.DataFrame(
        {
            "label_id": np.arange(n1 + n2),
            "B2": np.r_[rng.normal(900, 50, n1), rng.normal(600, 50, n2)],
            "B3": np.r_[rng.normal(1000, 50, n1), rng.normal(800, 50, n2)],
            "B4": np.r_[rng.normal(1100, 50, n1), rng.normal(700, 50, n2)],
            "B8": np.r_[rng.normal(1500, 80, n1), rng.normal(3000, 80, n2)],
            "B11": np.r_[rng.normal(2500, 80, n1), rng.normal(1600, 80, n2)],
            "B12": np.r_[rng.normal(2200, 80, n1), rng.normal(900, 80, n2)],
            "landuse": np.r_[np.ones(n1, dtype=int), np.full(n2, 2)],
        }
    )
    return frame
