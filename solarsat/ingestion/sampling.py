"""Extract mosaic pixel values at label locations and split them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import geopandas as gpd
import numpy as np
import pandas as pd

from solarsat.core.errors import OutOfBoundsError
from solarsat.core.logger import Logger
from .eemanager import EarthEngineManager, ee_manager
from .labels import labels_to_ee
from .mosaic import Mosaic

RANDOM_COLUMN = "random"


@dataclass(frozen=True)
class Split:
    """Disjoint training / validation partition of a sample table."""

    training: pd.DataFrame
    validation: pd.DataFrame
    threshold: float
    seed: Optional[int]

    def __len__(self) -> int:
        return len(self.training) + len(self.validation)


class Sampler:
    """Read band values under each label with ``Image.sampleRegions``."""

    def __init__(
        self,
        manager: EarthEngineManager | None = None,
        scale: int = 10,
        on_out_of_bounds: str = "raise",
        logger=None,
    ) -> None:
        if on_out_of_bounds not in ("raise", "drop"):
            raise ValueError(f"Unknown out-of-bounds policy '{on_out_of_bounds}'")
        self.ee = manager or ee_manager
        self.scale = scale
        self.on_out_of_bounds = on_out_of_bounds
        self.logger = logger or Logger.get_logger(__name__)

    def _handle_out_of_bounds(self, ids: List[int], reason: str) -> None:
        if not ids:
            return
        if self.on_out_of_bounds == "raise":
            raise OutOfBoundsError(
                f"{len(ids)} label(s) {reason}", label_ids=ids
            )
        self.logger.warning("Dropping %d label(s) that %s: %s", len(ids), reason, ids)

    def extract(
        self, mosaic: Mosaic, labels: gpd.GeoDataFrame, class_property: str = "landuse"
    ) -> pd.DataFrame:
        """
        Return one row per sampled pixel with columns
        ``label_id``, the mosaic bands (in mosaic order) and *class_property*.
        """
        if "label_id" not in labels.columns:
            labels = labels.assign(label_id=range(len(labels)))

        inside = labels.geometry.intersects(mosaic.region.geometry)
        outside_ids = labels.loc[~inside, "label_id"].astype(int).tolist()
        self._handle_out_of_bounds(outside_ids, "fall outside the region")
        labels = labels[inside]

        collection = labels_to_ee(labels, [class_property, "label_id"])
        samples = mosaic.image.sampleRegions(
            collection=collection,
            properties=[class_property, "label_id"],
            scale=self.scale,
            geometries=False,
        )
        info = self.ee.safe_get_info(samples, description="sampleRegions")
        rows = [f.get("properties", {}) for f in (info or {}).get("features", [])]
        columns = ["label_id", *mosaic.bands, class_property]
        table = pd.DataFrame(rows, columns=columns)

        sampled = set(table["label_id"].dropna().astype(int))
        unsampled = sorted(set(labels["label_id"].astype(int)) - sampled)
        self._handle_out_of_bounds(unsampled, "have no valid mosaic pixel")

        table = table.dropna(subset=list(mosaic.bands)).reset_index(drop=True)
        table["label_id"] = table["label_id"].astype(int)
        table[class_property] = table[class_property].astype(int)
        self.logger.info(
            "Extracted %d sample row(s) from %d label(s) at %dm",
            len(table),
            len(sampled),
            self.scale,
        )
        return table


def split_samples(
    samples: pd.DataFrame, threshold: float = 0.8, seed: Optional[int] = None
) -> Split:
    """
    Partition *samples* with one uniform [0, 1) draw per row: draws below
    *threshold* go to training, the rest to validation. The draw is stored
    in the ``random`` column; the same seed yields the same partition.
    """
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"threshold must be within [0, 1], got {threshold}")
    rng = np.random.default_rng(seed)
    table = samples.copy()
    table[RANDOM_COLUMN] = rng.random(len(table))
    is_training = table[RANDOM_COLUMN] < threshold
    return Split(
        training=table[is_training].reset_index(drop=True),
        validation=table[~is_training].reset_index(drop=True),
        threshold=threshold,
        seed=seed,
    )
