"""Fetch scenes from an Earth Engine archive and composite them into a mosaic."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import ee

from solarsat.core.deferred import Deferred
from solarsat.core.errors import EmptyResultError
from solarsat.core.logger import Logger
from solarsat.geo.region import Region
from .eemanager import EarthEngineManager, ee_manager
from .sensorspec import SensorSpec

# ``ImageCollection.mosaic`` paints images in collection order, so the last
# image ends up on top. Each rule is the (property, ascending) sort that puts
# the preferred scene last.
COMPOSITING_RULES: Dict[str, Tuple[str | None, bool]] = {
    "most_recent": ("system:time_start", True),
    "least_recent": ("system:time_start", False),
    "least_cloudy": (None, False),  # sorted on the sensor's cloud property
}


@dataclass(frozen=True)
class Mosaic:
    """Clipped composite raster plus the provenance of its scenes."""

    image: ee.Image
    bands: Tuple[str, ...]
    region: Region
    collection_id: str
    start: str
    end: str
    compositing: str
    scene_count: int
    scenes: Deferred
    footprint_covers_region: Deferred

    def select(self, bands: Sequence[str]) -> ee.Image:
        """Return the mosaic restricted to *bands*, in that order."""
        missing = [b for b in bands if b not in self.bands]
        if missing:
            raise ValueError(f"Bands {missing} are not part of the mosaic {self.bands}")
        return self.image.select(list(bands))

    def coverage(self) -> Deferred:
        return self.footprint_covers_region


class ImageFetcher:
    """Query an image archive by date and region and build a mosaic."""

    def __init__(
        self,
        sensor: SensorSpec,
        manager: EarthEngineManager | None = None,
        compositing: str = "most_recent",
        mask_clouds: bool = False,
        logger=None,
    ) -> None:
        if compositing not in COMPOSITING_RULES:
            raise ValueError(
                f"Unknown compositing rule '{compositing}'; "
                f"choose from {sorted(COMPOSITING_RULES)}"
            )
        self.sensor = sensor
        self.ee = manager or ee_manager
        self.compositing = compositing
        self.mask_clouds = mask_clouds
        self.logger = logger or Logger.get_logger(__name__)

    def _sorted(self, coll: ee.ImageCollection) -> ee.ImageCollection:
        prop, ascending = COMPOSITING_RULES[self.compositing]
        return coll.sort(prop or self.sensor.cloud_property, ascending)

    def _scene_listing(self, coll: ee.ImageCollection) -> Deferred:
        summary = ee.Dictionary(
            {
                "id": coll.aggregate_array("system:index"),
                "time": coll.aggregate_array("system:time_start"),
                "cloud_pct": coll.aggregate_array(self.sensor.cloud_property),
            }
        )

        def _rows(info: Optional[dict]) -> List[dict]:
            info = info or {}
            ids = info.get("id", [])
            times = info.get("time", [])
            clouds = info.get("cloud_pct", [])
            rows = []
            for i, scene_id in enumerate(ids):
                millis = times[i] if i < len(times) else None
                date = (
                    datetime.fromtimestamp(millis / 1000, timezone.utc).isoformat()
                    if millis is not None
                    else None
                )
                rows.append(
                    {
                        "id": scene_id,
                        "date": date,
                        "cloud_pct": clouds[i] if i < len(clouds) else None,
                    }
                )
            return rows

        return self.ee.deferred_info(summary, "scene listing").map(_rows)

    def fetch(
        self, region: Region, start: str, end: str, bands: Sequence[str]
    ) -> Mosaic:
        """
        Composite every scene intersecting *region* between *start*
        (inclusive) and *end* (exclusive), clip to the region and keep
        *bands* in the requested order.
        """
        bands = self.sensor.validate_bands(bands)
        geom = region.ee_geometry()
        coll = self.ee.get_image_collection(
            self.sensor.collection_id,
            start,
            end,
            geom,
            cloud_mask=self.sensor.cloud_mask if self.mask_clouds else None,
        )
        count = int(
            self.ee.safe_get_info(coll.size(), description="scene count") or 0
        )
        if count == 0:
            raise EmptyResultError(
                "No scenes intersect the region in the requested date range",
                context={
                    "collection": self.sensor.collection_id,
                    "start": start,
                    "end": end,
                    "region": region.name,
                },
            )
        self.logger.info(
            "Matched %d scene(s) in %s between %s and %s",
            count,
            self.sensor.collection_id,
            start,
            end,
        )

        image = self._sorted(coll).mosaic().clip(geom).select(bands)
        covers = self.ee.deferred_info(
            coll.geometry().contains(geom, 1), "footprint coverage"
        ).map(bool)
        return Mosaic(
            image=image,
            bands=tuple(bands),
            region=region,
            collection_id=self.sensor.collection_id,
            start=start,
            end=end,
            compositing=self.compositing,
            scene_count=count,
            scenes=self._scene_listing(coll),
            footprint_covers_region=covers,
        )
