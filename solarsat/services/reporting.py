from __future__ import annotations

"""Log and persist the outcome of a classification run."""

import json
import logging
from typing import TYPE_CHECKING, Dict

import pandas as pd

from solarsat.core.logger import Logger
from solarsat.core.storage import LocalFS, StorageAdapter
from solarsat.visualization.figures import make_importance_png

if TYPE_CHECKING:  # pragma: no cover
    from solarsat.core.pipeline import PipelineResult


def log_summary(result: "PipelineResult", logger: logging.Logger | None = None) -> None:
    """Emit the scene listing, label count, importances and metrics."""
    logger = logger or Logger.get_logger(__name__)
    for scene in result.mosaic.scenes.get():
        logger.info(
            "Scene %s acquired %s (cloud %s%%)",
            scene["id"],
            scene["date"],
            scene["cloud_pct"],
        )
    if not result.mosaic.coverage().get():
        logger.warning(
            "Scene footprints do not cover all of %s; the mosaic has gaps",
            result.mosaic.region.name,
        )
    logger.info("Merged label collection: %d records", len(result.labels))
    logger.info(
        "Feature importance:\n%s", result.model.importance_table().to_string(index=False)
    )
    logger.info("Error matrix:\n%s", result.evaluation.confusion.to_string())
    logger.info("Validation overall accuracy: %.4f", result.evaluation.accuracy)
    logger.info("Validation kappa: %.4f", result.evaluation.kappa)


def write_report(
    result: "PipelineResult", out_dir: str, storage: StorageAdapter | None = None
) -> Dict[str, str]:
    """Write CSV/JSON/PNG report artifacts and return their URIs by name."""
    storage = storage or LocalFS()
    evaluation = result.evaluation
    paths: Dict[str, str] = {}

    def _put_csv(name: str, frame: pd.DataFrame, index: bool = False) -> None:
        uri = storage.join(out_dir, f"{name}.csv")
        paths[name] = storage.write_text(uri, frame.to_csv(index=index))

    _put_csv("scenes", pd.DataFrame(result.mosaic.scenes.get()))
    _put_csv("feature_importance", result.model.importance_table())
    _put_csv("confusion_matrix", evaluation.confusion, index=True)
    _put_csv("predictions", evaluation.predictions)

    metrics = {
        **evaluation.to_dict(),
        "region": result.mosaic.region.name,
        "collection": result.mosaic.collection_id,
        "start": result.mosaic.start,
        "end": result.mosaic.end,
        "compositing": result.mosaic.compositing,
        "scene_count": result.mosaic.scene_count,
        "label_count": int(len(result.labels)),
        "sample_count": int(len(result.samples)),
        "training_rows": int(len(result.split.training)),
        "split": result.split.threshold,
        "seed": result.split.seed,
        "importance": result.model.importances,
    }
    uri = storage.join(out_dir, "metrics.json")
    paths["metrics"] = storage.write_text(uri, json.dumps(metrics, indent=2))

    uri = storage.join(out_dir, "feature_importance.png")
    paths["chart"] = storage.write_bytes(
        uri, make_importance_png(result.model.importances)
    )
    return paths
