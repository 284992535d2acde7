"""
Module `geo.region` defines the Region class, which holds the single
administrative boundary (Polygon/MultiPolygon) a run is clipped to, and the
selectors that resolve a region name against a boundary dataset.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Union

import ee
import geopandas as gpd
from shapely.geometry import MultiPolygon, Polygon, mapping, shape

from solarsat.core.config import ConfigManager
from solarsat.core.errors import NotFoundError
from solarsat.core.logger import Logger

logger = Logger.get_logger(__name__)


@dataclass(frozen=True)
class Region:
    """Named boundary geometry in EPSG:4326."""

    name: str
    geometry: Union[Polygon, MultiPolygon]
    properties: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_gdf(
        cls, gdf: gpd.GeoDataFrame, name: str, key: str = "NAME", source: str = "<gdf>"
    ) -> "Region":
        """
        Select the one row of *gdf* whose *key* equals *name*.
        Raises NotFoundError unless exactly one row matches.
        """
        if key not in gdf.columns:
            raise NotFoundError(
                f"Boundary dataset has no '{key}' attribute",
                context={"dataset": source, "region": name},
            )
        matches = gdf[gdf[key] == name]
        _check_single_match(len(matches), name, key, source)
        if matches.crs is not None and matches.crs.to_epsg() != 4326:
            matches = matches.to_crs(epsg=4326)
        row = matches.iloc[0]
        props = row.drop(labels="geometry").to_dict()
        return cls(name=name, geometry=row.geometry, properties=props)

    @classmethod
    def from_file(cls, path: str, name: str, key: str = "NAME") -> "Region":
        """Read a local boundary file with GeoPandas, then delegate to from_gdf."""
        ConfigManager.check_input_format(path)
        gdf = gpd.read_file(path)
        return cls.from_gdf(gdf, name, key, source=path)

    @classmethod
    def from_ee(
        cls, dataset: str, name: str, key: str = "NAME", manager=None
    ) -> "Region":
        """Filter an Earth Engine FeatureCollection such as TIGER/2018/States."""
        if manager is None:
            from solarsat.ingestion.eemanager import ee_manager as manager
        manager.initialize()
        fc = ee.FeatureCollection(dataset).filter(ee.Filter.eq(key, name))
        info = manager.safe_get_info(fc, description=f"region lookup {name!r}")
        features = (info or {}).get("features", [])
        _check_single_match(len(features), name, key, dataset)
        feat = features[0]
        return cls(
            name=name,
            geometry=shape(feat["geometry"]),
            properties=dict(feat.get("properties") or {}),
        )

    def ee_geometry(self) -> ee.Geometry:
        """Return an Earth Engine Geometry for this region."""
        return ee.Geometry(mapping(self.geometry))

    @property
    def bounds(self):
        return self.geometry.bounds


def _check_single_match(count: int, name: str, key: str, source: str) -> None:
    if count != 1:
        raise NotFoundError(
            f"Expected exactly one boundary record for {key} = {name!r}, found {count}",
            context={"dataset": source, "region": name},
        )


def resolve_region(
    boundary: Union[str, gpd.GeoDataFrame], name: str, key: str = "NAME", manager=None
) -> Region:
    """
    Resolve *name* against *boundary*: a GeoDataFrame, a local vector file,
    or otherwise an Earth Engine FeatureCollection asset id.
    """
    if isinstance(boundary, gpd.GeoDataFrame):
        region = Region.from_gdf(boundary, name, key)
    elif os.path.exists(boundary):
        region = Region.from_file(boundary, name, key)
    else:
        region = Region.from_ee(boundary, name, key, manager=manager)
    logger.info("Resolved region %s (bounds %s)", region.name, region.bounds)
    return region
