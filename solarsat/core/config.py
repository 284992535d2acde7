"""core.config
---------------

Configuration loader/manager for SolarSat. Loads workflow settings from
YAML/TOML/JSON on top of built-in defaults that reproduce the reference
Rhode Island run, and exposes them via :py:meth:`ConfigManager.get`.
"""

import copy
import os
import json
import yaml
import toml

from solarsat.core.errors import SolarSatError


class ConfigValidationError(SolarSatError):
    """Raised when configuration loading or validation fails."""


class ConfigManager:
    """
    Loads and manages workflow configuration from file or defaults.
    CLI options are layered on top with :py:meth:`update`.
    """

    # Accepted label/boundary vector file extensions
    SUPPORTED_INPUT_FORMATS: tuple[str, ...] = (
        ".shp",
        ".zip",
        ".geojson",
        ".gpkg",
        ".json",
        ".kml",
        ".gml",
    )

    COMPOSITING_RULES: tuple[str, ...] = ("most_recent", "least_recent", "least_cloudy")
    OUT_OF_BOUNDS_POLICIES: tuple[str, ...] = ("raise", "drop")

    DEFAULTS: dict = {
        "region_name": "Rhode Island",
        "boundary": "TIGER/2018/States",
        "region_key": "NAME",
        "collection": "COPERNICUS/S2_SR",
        "start": "2020-05-23",
        "end": "2020-05-25",
        "mosaic_bands": ["B2", "B3", "B4", "B8", "B11", "B12"],
        "feature_bands": ["B2", "B8", "B11", "B12"],
        "class_property": "landuse",
        "classes": [1, 2],
        "split": 0.8,
        "n_trees": 1000,
        "scale": None,  # sampling scale in metres; None means native resolution
        "seed": 42,
        "compositing": "most_recent",
        "mask_clouds": False,
        "on_out_of_bounds": "raise",
        "landcover_collection": "USGS/NLCD_RELEASES/2019_REL/NLCD",
        "timeout": 3600,
        "request_timeout": 300,
        "max_retries": 2,
        "export": {
            "enabled": False,
            "folder": "solarsat",
            "crs": "EPSG:4326",
            "products": ["landcover", "classified", "mosaic", "labels"],
            "mosaic_scale": 10,
            "landcover_scale": 30,
            "classified_scale": 10,
        },
    }

    def __init__(self, config_path=None):
        self.config = copy.deepcopy(self.DEFAULTS)
        if config_path:
            self.load(config_path)

    def load(self, path: str) -> None:
        """
        Load configuration from a file (YAML, TOML, or JSON).
        Overwrites existing keys in self.config; the ``export`` table is
        merged key by key.
        """
        ext = os.path.splitext(path)[1].lower()
        try:
            with open(path, "r", encoding="utf-8") as f:
                if ext in (".yaml", ".yml"):
                    data = yaml.safe_load(f)
                elif ext == ".toml":
                    data = toml.load(f)
                elif ext == ".json":
                    data = json.load(f)
                else:
                    raise ConfigValidationError(f"Unsupported config format: {ext}")
        except ConfigValidationError:
            raise
        except Exception as e:
            raise ConfigValidationError(
                f"Failed to load config from {path}: {e}"
            ) from e
        if not isinstance(data, dict):
            raise ConfigValidationError(f"Config file {path} did not produce a dict")
        self.update(data)

    def update(self, data: dict) -> None:
        """Overlay *data* onto the current config, skipping ``None`` values."""
        for key, value in data.items():
            if value is None:
                continue
            if key == "export" and isinstance(value, dict):
                self.config["export"].update(value)
            else:
                self.config[key] = value

    def get(self, key, default=None):
        """Retrieve a configuration value by key, or return `default` if not present."""
        return self.config.get(key, default)

    def merge(self, other: "ConfigManager") -> None:
        """
        Merge another ConfigManager into this one.
        Values in other.config override this.config.
        """
        if not isinstance(other, ConfigManager):
            raise TypeError("Can only merge ConfigManager instances")
        self.update(other.config)

    @classmethod
    def check_input_format(cls, path: str) -> None:
        """Reject local vector files whose extension GeoPandas is not expected to read."""
        ext = os.path.splitext(str(path))[1].lower()
        if ext not in cls.SUPPORTED_INPUT_FORMATS:
            raise ConfigValidationError(
                f"Unsupported vector format '{ext or path}'; "
                f"expected one of {list(cls.SUPPORTED_INPUT_FORMATS)}",
                context={"path": str(path)},
            )

    def validate(self) -> None:
        """Check cross-field constraints, raising ConfigValidationError."""
        from solarsat.ingestion.sensorspec import SensorSpec
        from solarsat.services.export import PRODUCTS

        split = self.get("split")
        if not isinstance(split, (int, float)) or not 0.0 <= split <= 1.0:
            raise ConfigValidationError(f"split must be within [0, 1], got {split!r}")

        collection = self.get("collection")
        try:
            sensor = SensorSpec.from_collection_id(collection)
        except ValueError as e:
            raise ConfigValidationError(
                f"Unknown image collection '{collection}'"
            ) from e
        mosaic_bands = list(self.get("mosaic_bands"))
        try:
            sensor.validate_bands(mosaic_bands)
        except ValueError as e:
            raise ConfigValidationError(str(e), context={"collection": collection}) from e

        unknown = [
            p for p in self.get("export", {}).get("products", []) if p not in PRODUCTS
        ]
        if unknown:
            raise ConfigValidationError(
                f"Unknown export products {unknown}; choose from {list(PRODUCTS)}"
            )

        missing = [b for b in self.get("feature_bands") if b not in mosaic_bands]
        if missing:
            raise ConfigValidationError(
                f"feature_bands {missing} are not part of mosaic_bands {mosaic_bands}"
            )

        if self.get("compositing") not in self.COMPOSITING_RULES:
            raise ConfigValidationError(
                f"Unknown compositing rule '{self.get('compositing')}'"
            )
        if self.get("on_out_of_bounds") not in self.OUT_OF_BOUNDS_POLICIES:
            raise ConfigValidationError(
                f"Unknown out-of-bounds policy '{self.get('on_out_of_bounds')}'"
            )

        classes = list(self.get("classes"))
        if len(classes) != 2 or len(set(classes)) != 2:
            raise ConfigValidationError(
                f"classes must hold two distinct values, got {classes!r}"
            )
        if int(self.get("n_trees")) < 1:
            raise ConfigValidationError("n_trees must be positive")
