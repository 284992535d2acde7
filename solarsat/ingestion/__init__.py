"""Ingestion package: Earth Engine access, mosaics, labels and sampling."""

from .eemanager import EarthEngineManager, ee_manager
from .labels import load_labels, merge_labels
from .mosaic import COMPOSITING_RULES, ImageFetcher, Mosaic
from .sampling import Sampler, Split, split_samples
from .sensorspec import SensorSpec

__all__ = [
    "COMPOSITING_RULES",
    "EarthEngineManager",
    "ImageFetcher",
    "Mosaic",
    "Sampler",
    "SensorSpec",
    "Split",
    "ee_manager",
    "load_labels",
    "merge_labels",
    "split_samples",
]
