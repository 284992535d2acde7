from __future__ import annotations

"""Optional export of the mosaic, land cover, classification and labels."""

import logging
import os
import tempfile
import time
import zipfile
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Tuple

import ee
from ee import EEException
import geopandas as gpd
import requests

from solarsat.core.errors import ExternalServiceError
from solarsat.core.storage import LocalFS, StorageAdapter
from solarsat.geo.region import Region
from solarsat.ingestion.eemanager import EarthEngineManager, ee_manager
from solarsat.ingestion.mosaic import Mosaic
from solarsat.modeling.classify import FILL_VALUE, classify_raster
from solarsat.modeling.pipelines import TrainedModel
from .base import BaseService

PRODUCTS = ("landcover", "classified", "mosaic", "labels")


@dataclass
class ExportConfig:
    """Where and how products are written. Disabled unless asked for."""

    enabled: bool = False
    folder: str = "solarsat"
    crs: str = "EPSG:4326"
    products: Tuple[str, ...] = PRODUCTS
    mosaic_scale: int = 10
    landcover_scale: int = 30
    classified_scale: int = 10
    out_dir: str = "exports"
    prefix: str = field(default="RI")

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> "ExportConfig":
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in (data or {}).items() if k in known}
        if "products" in kwargs:
            unknown = [p for p in kwargs["products"] if p not in PRODUCTS]
            if unknown:
                raise ValueError(f"Unknown export products {unknown}")
            kwargs["products"] = tuple(kwargs["products"])
        return cls(**kwargs)


class Exporter(BaseService):
    """Write raster products via Earth Engine batch tasks, vectors via storage."""

    def __init__(
        self,
        config: ExportConfig | None = None,
        storage: StorageAdapter | None = None,
        ee_manager_instance: EarthEngineManager = ee_manager,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(logger)
        self.config = config or ExportConfig()
        self.storage = storage or LocalFS()
        self.ee_manager = ee_manager_instance

    def export_image(self, image: ee.Image, description: str, region: Region, scale: int):
        """Start a GeoTIFF ``Export.image.toDrive`` task and return it."""
        self.ee_manager.initialize()
        try:
            task = ee.batch.Export.image.toDrive(
                image=image,
                description=description,
                folder=self.config.folder,
                scale=scale,
                region=region.ee_geometry(),
                crs=self.config.crs,
                fileFormat="GeoTIFF",
                maxPixels=1e13,
            )
            task.start()
        except EEException as err:
            raise ExternalServiceError(
                f"Could not start export task {description}: {err}"
            ) from err
        self.logger.info(
            "Started export %s (scale=%sm, crs=%s)", description, scale, self.config.crs
        )
        return task

    def export_labels(self, labels: gpd.GeoDataFrame, description: str) -> str:
        """Write *labels* as a zipped ESRI Shapefile and return its URI."""
        with tempfile.TemporaryDirectory() as tmp:
            shp_path = os.path.join(tmp, f"{description}.shp")
            labels.to_file(shp_path, driver="ESRI Shapefile")
            zip_path = os.path.join(tmp, f"{description}.zip")
            with zipfile.ZipFile(zip_path, "w", zipfile.ZIP_DEFLATED) as zf:
                for name in sorted(os.listdir(tmp)):
                    if name.startswith(f"{description}.") and name != f"{description}.zip":
                        zf.write(os.path.join(tmp, name), arcname=name)
            with open(zip_path, "rb") as fh:
                data = fh.read()
        uri = self.storage.join(self.config.out_dir, f"{description}.zip")
        self.storage.write_bytes(uri, data)
        self.logger.info("Wrote %d labels to %s", len(labels), uri)
        return uri

    def _download(self, image: ee.Image, region: Region, scale: int) -> bytes:
        self.ee_manager.initialize()
        try:
            url = image.getDownloadURL(
                {
                    "scale": scale,
                    "region": region.ee_geometry(),
                    "crs": self.config.crs,
                    "format": "GEO_TIFF",
                }
            )
        except EEException as err:
            raise ExternalServiceError(f"Could not build download URL: {err}") from err

        attempts = max(1, self.ee_manager.max_retries)
        for attempt in range(1, attempts + 1):
            try:
                resp = requests.get(url, timeout=self.ee_manager.timeout or 60)
                resp.raise_for_status()
                return resp.content
            except requests.RequestException as err:
                if attempt < attempts:
                    self.logger.warning("Download failed (%s); retrying", err)
                    time.sleep(2 ** (attempt - 1))
                    continue
                raise ExternalServiceError(f"Download failed: {err}") from err
        raise AssertionError("unreachable")  # pragma: no cover

    def export_classified(
        self, mosaic: Mosaic, model: TrainedModel, description: str
    ) -> str:
        """
        Download the feature bands of *mosaic*, classify them locally and
        store the result as a single-band GeoTIFF.
        """
        scale = self.config.classified_scale
        # Pixels outside the region or any scene come back as FILL_VALUE
        image = mosaic.select(model.bands).unmask(FILL_VALUE)
        content = self._download(image, mosaic.region, scale)
        with tempfile.TemporaryDirectory() as tmp:
            src = os.path.join(tmp, "features.tif")
            dst = os.path.join(tmp, f"{description}.tif")
            with open(src, "wb") as fh:
                fh.write(content)
            classify_raster(
                model, src, dst, band_names=model.bands, nodata=FILL_VALUE
            )
            with open(dst, "rb") as fh:
                data = fh.read()
        uri = self.storage.join(self.config.out_dir, f"{description}.tif")
        self.storage.write_bytes(uri, data)
        self.logger.info("Wrote classified raster to %s", uri)
        return uri

    def run(
        self,
        mosaic: Mosaic,
        labels: gpd.GeoDataFrame,
        model: TrainedModel,
        landcover: ee.Image | None = None,
    ) -> Dict[str, Any]:
        """Export every configured product. Disabled exports are a no-op."""
        if not self.config.enabled:
            self.logger.info("Export disabled; skipping products")
            return {}
        prefix = self.config.prefix
        region = mosaic.region
        outputs: Dict[str, Any] = {}
        for product in self.config.products:
            if product == "landcover" and landcover is not None:
                outputs[product] = self.export_image(
                    landcover, f"{prefix}_LC", region, self.config.landcover_scale
                )
            elif product == "mosaic":
                outputs[product] = self.export_image(
                    mosaic.image, f"{prefix}_mosaic", region, self.config.mosaic_scale
                )
            elif product == "classified":
                outputs[product] = self.export_classified(
                    mosaic, model, f"RF_{prefix}"
                )
            elif product == "labels":
                outputs[product] = self.export_labels(labels, "merged")
        return outputs
