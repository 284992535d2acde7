"""
Module `ingestion.sensorspec` defines the SensorSpec class, which encapsulates
sensor metadata (available bands, resolution, cloud property and mask
strategy) for the image archives the fetcher can query.
"""

import json
from pathlib import Path
from typing import Optional, Sequence
import ee


class SensorSpec:
    """
    Holds metadata for an image collection (bands, collection ID, etc).
    """

    _registry: Optional[dict] = None

    def __init__(
        self,
        collection_id: str,
        bands: Sequence[str],
        native_resolution: int,
        cloud_mask_method: str = "none",
        scl_band: str = "SCL",
        scl_exclude: list[int] | None = None,
        cloud_property: str = "CLOUDY_PIXEL_PERCENTAGE",
    ):
        self.collection_id = collection_id
        self.bands = list(bands)
        self.native_resolution = native_resolution
        self.cloud_mask_method = cloud_mask_method
        self.scl_band = scl_band
        # Scene Classification codes to drop: shadow, cloud medium/high, cirrus
        self.scl_exclude = scl_exclude or []
        self.cloud_property = cloud_property

    def validate_bands(self, bands: Sequence[str]) -> list[str]:
        """Return *bands* as a list, rejecting unknown or repeated names."""
        bands = list(bands)
        if not bands:
            raise ValueError("At least one band must be requested")
        unknown = [b for b in bands if b not in self.bands]
        if unknown:
            raise ValueError(
                f"Bands {unknown} are not available in {self.collection_id}; "
                f"choose from {self.bands}"
            )
        if len(set(bands)) != len(bands):
            raise ValueError(f"Duplicate bands requested: {bands}")
        return bands

    def cloud_mask(self, img: ee.Image) -> ee.Image:
        """
        Mask cloudy pixels according to cloud_mask_method.
        Only 's2_scl' is supported; other methods return the image unchanged.
        """
        if self.cloud_mask_method.lower() != "s2_scl" or not self.scl_exclude:
            return img
        scl = img.select(self.scl_band)
        mask = None
        for code in self.scl_exclude:
            cond = scl.neq(code)
            mask = cond if mask is None else mask.And(cond)
        return img.updateMask(mask)

    @classmethod
    def _load_registry(cls) -> dict:
        """Load sensor specs from resources/sensor_specs.json."""
        if cls._registry is None:
            base = Path(__file__).resolve().parent.parent
            spec_file = base / "resources" / "sensor_specs.json"
            with open(spec_file, "r", encoding="utf-8") as f:
                cls._registry = json.load(f)
        return cls._registry

    @classmethod
    def from_collection_id(cls, collection_id: str) -> "SensorSpec":
        """
        Factory method: create a SensorSpec from a collection ID by reading the registry.
        """
        registry = cls._load_registry()
        spec = registry.get(collection_id)
        if spec is None:
            raise ValueError(
                f"Collection ID '{collection_id}' not found in sensor_specs.json"
            )
        return cls(
            collection_id=collection_id,
            bands=spec["bands"],
            native_resolution=spec["native_resolution"],
            cloud_mask_method=spec.get("cloud_mask_method", "none"),
            scl_band=spec.get("scl_band", "SCL"),
            scl_exclude=spec.get("scl_exclude"),
            cloud_property=spec.get("cloud_property", "CLOUDY_PIXEL_PERCENTAGE"),
        )
