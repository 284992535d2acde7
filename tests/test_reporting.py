import json
import logging
from pathlib import Path
from types import SimpleNamespace

import pandas as pd
import pytest

from solarsat.analytics.accuracy import evaluate
from solarsat.core.deferred import Deferred
from solarsat.core.storage import LocalFS
from solarsat.ingestion.sampling import split_samples
from solarsat.modeling.pipelines import train_classifier
from solarsat.services.reporting import log_summary, write_report
from solarsat.visualization.figures import make_importance_png


@pytest.fixture
def run_result(region, samples, solar_gdf):
    split = split_samples(samples, 0.8, seed=3)
    model = train_classifier(split.training, ["B2", "B8", "B11", "B12"], n_trees=15, seed=3)
    mosaic = SimpleNamespace(
        region=region,
        collection_id="COPERNICUS/S2_SR",
        start="2020-05-23",
        end="2020-05-25",
        compositing="most_recent",
        scene_count=2,
        scenes=Deferred.of(
            [
                {"id": "S2A_1", "date": "2020-05-23T15:40:00Z", "cloud_pct": 1.2},
                {"id": "S2B_2", "date": "2020-05-24T15:40:00Z", "cloud_pct": 0.1},
            ]
        ),
        coverage=lambda: Deferred.of(False),
    )
    return SimpleNamespace(
        mosaic=mosaic,
        labels=solar_gdf,
        samples=samples,
        split=split,
        model=model,
        evaluation=evaluate(model, split.validation),
    )


def test_write_report_artifacts(tmp_path, run_result):
    paths = write_report(run_result, str(tmp_path), LocalFS())

    assert set(paths) == {
        "scenes",
        "feature_importance",
        "confusion_matrix",
        "predictions",
        "metrics",
        "chart",
    }
    scenes = pd.read_csv(paths["scenes"])
    assert list(scenes["id"]) == ["S2A_1", "S2B_2"]

    matrix = pd.read_csv(paths["confusion_matrix"], index_col=0)
    assert matrix.to_numpy().sum() == len(run_result.split.validation)

    metrics = json.loads(Path(paths["metrics"]).read_text())
    assert metrics["region"] == "Rhode Island"
    assert metrics["scene_count"] == 2
    assert metrics["seed"] == 3
    assert metrics["split"] == 0.8
    assert metrics["training_rows"] == len(run_result.split.training)
    assert set(metrics["importance"]) == {"B2", "B8", "B11", "B12"}

    assert Path(paths["chart"]).read_bytes().startswith(b"\x89PNG")


def test_log_summary_warns_on_gaps(caplog, run_result):
    logger = logging.getLogger("solarsat.test.reporting")
    with caplog.at_level(logging.INFO, logger="solarsat.test.reporting"):
        log_summary(run_result, logger)
    text = caplog.text
    assert "S2A_1" in text
    assert "do not cover" in text
    assert "Error matrix" in text
    assert "kappa" in text


def test_importance_png_is_png():
    data = make_importance_png({"B8": 0.5, "B12": 0.3, "B2": 0.2})
    assert data[:4] == b"\x89PNG"
