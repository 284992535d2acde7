"""SolarSat: random-forest mapping of solar installations from Sentinel-2."""

__version__ = "0.1.0"
