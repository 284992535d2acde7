"""Load and merge the labelled solar / non-solar training samples."""

from __future__ import annotations

import os
from typing import Iterable, Sequence, Union

import ee
import geopandas as gpd
import pandas as pd
from shapely.geometry import mapping

from solarsat.core.config import ConfigManager, ConfigValidationError
from solarsat.core.errors import InvalidLabelError
from solarsat.core.logger import Logger

logger = Logger.get_logger(__name__)

LabelSource = Union[str, gpd.GeoDataFrame]


def load_labels(
    source: LabelSource,
    class_id: int,
    class_property: str = "landuse",
    manager=None,
) -> gpd.GeoDataFrame:
    """
    Load one labelled set from a GeoDataFrame, a local vector file, or an
    Earth Engine FeatureCollection asset id.

    Records that carry no *class_property* value are tagged with *class_id*.
    The result is in EPSG:4326.
    """
    if isinstance(source, gpd.GeoDataFrame):
        gdf = source.copy()
    elif os.path.exists(source):
        try:
            ConfigManager.check_input_format(source)
        except ConfigValidationError as e:
            raise InvalidLabelError(e.message, context=e.context) from e
        gdf = gpd.read_file(source)
    else:
        if manager is None:
            from solarsat.ingestion.eemanager import ee_manager as manager
        manager.initialize()
        info = manager.safe_get_info(
            ee.FeatureCollection(source), description=f"label asset {source}"
        )
        gdf = gpd.GeoDataFrame.from_features(
            (info or {}).get("features", []), crs="EPSG:4326"
        )

    if gdf.crs is None:
        gdf = gdf.set_crs(epsg=4326)
    elif gdf.crs.to_epsg() != 4326:
        gdf = gdf.to_crs(epsg=4326)

    if class_property not in gdf.columns:
        gdf[class_property] = class_id
    else:
        gdf[class_property] = gdf[class_property].fillna(class_id)
    gdf[class_property] = gdf[class_property].astype(int)
    logger.info("Loaded %d label record(s) for class %s", len(gdf), class_id)
    return gdf


def merge_labels(
    positive: gpd.GeoDataFrame,
    negative: gpd.GeoDataFrame,
    class_property: str = "landuse",
    classes: Sequence[int] = (1, 2),
) -> gpd.GeoDataFrame:
    """
    Concatenate the positive and negative sets into one collection.

    No deduplication is done, so the result always has
    ``len(positive) + len(negative)`` rows. Each row gets a ``label_id``.
    """
    for name, gdf in (("positive", positive), ("negative", negative)):
        if class_property not in gdf.columns:
            raise InvalidLabelError(
                f"Label set has no '{class_property}' attribute",
                context={"labels": name},
            )

    frames = [positive.to_crs(epsg=4326), negative.to_crs(epsg=4326)]
    merged = gpd.GeoDataFrame(
        pd.concat(frames, ignore_index=True), geometry="geometry", crs="EPSG:4326"
    )

    invalid = merged[~merged[class_property].isin(list(classes))]
    if not invalid.empty:
        raise InvalidLabelError(
            f"Found class values {sorted(invalid[class_property].unique().tolist())} "
            f"outside {list(classes)}",
            context={"class_property": class_property},
        )

    dupes = merged.geometry.to_wkb().duplicated(keep=False).sum()
    if dupes:
        logger.warning("%d label record(s) share a location with another record", dupes)

    merged["label_id"] = range(len(merged))
    logger.info(
        "Merged %d positive + %d negative labels into %d records",
        len(positive),
        len(negative),
        len(merged),
    )
    return merged


def labels_to_ee(
    labels: gpd.GeoDataFrame, properties: Iterable[str]
) -> ee.FeatureCollection:
    """Convert labels to an ee.FeatureCollection keeping only *properties*."""
    props = list(properties)
    features = [
        ee.Feature(
            ee.Geometry(mapping(row.geometry)),
            {p: _plain(row[p]) for p in props},
        )
        for _, row in labels.iterrows()
    ]
    return ee.FeatureCollection(features)


def _plain(value):
    """Convert numpy scalars to builtins so they serialize for Earth Engine."""
    return value.item() if hasattr(value, "item") else value
