"""Apply a trained model to a multi-band GeoTIFF, block by block."""

from __future__ import annotations

import numpy as np
import pandas as pd
import rasterio

from solarsat.core.logger import Logger
from .pipelines import TrainedModel

logger = Logger.get_logger(__name__)

# Sentinel-2 L2A reflectance fill value; Earth Engine downloads masked pixels as 0
FILL_VALUE = 0


def classify_raster(
    model: TrainedModel,
    src_path: str,
    dst_path: str,
    band_names=None,
    nodata: float | None = None,
) -> str:
    """
    Classify every valid pixel of *src_path* and write a single-band uint8
    raster to *dst_path* (0 = nodata).

    *band_names* names the source bands in file order; it defaults to the
    band descriptions stored in the file. Pixels whose bands all equal
    *nodata* stay 0. *nodata* defaults to the value the file declares, else
    FILL_VALUE.
    """
    with rasterio.open(src_path) as src:
        names = list(band_names or src.descriptions)
        missing = [b for b in model.bands if b not in names]
        if missing:
            raise ValueError(f"Raster {src_path} lacks bands {missing}; has {names}")
        indexes = [names.index(b) + 1 for b in model.bands]

        meta = src.meta.copy()
        meta.update(count=1, dtype="uint8", nodata=0, driver="GTiff")
        if nodata is None:
            nodata = src.nodata if src.nodata is not None else FILL_VALUE

        with rasterio.open(dst_path, "w", **meta) as dst:
            for _, window in src.block_windows(1):
                block = src.read(indexes, window=window).astype(np.float64)
                n_bands, height, width = block.shape
                flat = block.reshape(n_bands, -1).T

                valid = np.all(np.isfinite(flat), axis=1)
                if not np.isnan(nodata):
                    valid &= ~np.all(flat == nodata, axis=1)

                preds = np.zeros(flat.shape[0], dtype=np.uint8)
                if valid.any():
                    frame = pd.DataFrame(flat[valid], columns=list(model.bands))
                    preds[valid] = model.predict(frame).to_numpy().astype(np.uint8)
                dst.write(preds.reshape(height, width), 1, window=window)
    logger.info("Wrote classified raster %s", dst_path)
    return dst_path
