from __future__ import annotations

"""Service for the land-cover reference layer (NLCD)."""

import logging

import ee

from solarsat.geo.region import Region
from solarsat.ingestion.eemanager import EarthEngineManager, ee_manager
from .base import BaseService


class LandcoverService(BaseService):
    """Load the ``landcover`` band of the reference collection, clipped to a region."""

    NLCD_COLLECTION = "USGS/NLCD_RELEASES/2019_REL/NLCD"
    BAND = "landcover"

    def __init__(
        self,
        ee_manager_instance: EarthEngineManager = ee_manager,
        collection_id: str | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(logger)
        self.ee_manager = ee_manager_instance
        self.collection_id = collection_id or self.NLCD_COLLECTION

    def get_reference(self, region: Region, year: int | None = None) -> ee.ImageCollection:
        """Return the reference collection, optionally limited to *year*."""
        self.logger.info("Loading land-cover reference %s", self.collection_id)
        self.ee_manager.initialize()
        geom = region.ee_geometry()

        collection = ee.ImageCollection(self.collection_id)
        if year is not None:
            collection = collection.filter(ee.Filter.calendarRange(year, year, "year"))
        return collection.select(self.BAND).map(lambda img: img.clip(geom))

    def get_image(self, region: Region, year: int | None = None) -> ee.Image:
        """Single image view of the reference, as needed for export."""
        return self.get_reference(region, year).mosaic().rename(self.BAND)
