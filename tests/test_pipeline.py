import json
from pathlib import Path
from types import SimpleNamespace

import pytest

from solarsat.core.config import ConfigManager, ConfigValidationError
from solarsat.core.deferred import Deferred
from solarsat.core.errors import (
    EmptyResultError,
    InsufficientDataError,
    PipelineTimeoutError,
    SolarSatError,
)
from solarsat.core.pipeline import ClassificationPipeline
from solarsat.core.storage import LocalFS


@pytest.fixture
def fake_stages(monkeypatch, region, samples):
    """Replace the Earth Engine-backed stages with local fakes."""
    calls = {}

    def fake_resolve(boundary, name, key="NAME", manager=None):
        calls["region"] = (boundary, name, key)
        return region

    def fake_fetch(self, reg, start, end, bands):
        calls["fetch"] = (start, end, list(bands), self.compositing)
        return SimpleNamespace(
            region=reg,
            bands=tuple(bands),
            collection_id=self.sensor.collection_id,
            start=start,
            end=end,
            compositing=self.compositing,
            scene_count=1,
            scenes=Deferred.of([{"id": "S2A_1", "date": "2020-05-24", "cloud_pct": 0.4}]),
            coverage=lambda: Deferred.of(True),
        )

    def fake_extract(self, mosaic, labels, class_property="landuse"):
        calls["extract"] = (len(labels), self.scale)
        return samples

    monkeypatch.setattr("solarsat.core.pipeline.resolve_region", fake_resolve)
    monkeypatch.setattr("solarsat.core.pipeline.ImageFetcher.fetch", fake_fetch)
    monkeypatch.setattr("solarsat.core.pipeline.Sampler.extract", fake_extract)
    return calls


@pytest.fixture
def cfg():
    config = ConfigManager()
    config.update({"n_trees": 20, "seed": 8})
    return config


def test_pipeline_runs_end_to_end(tmp_path, fake_stages, cfg, manager, solar_gdf, non_solar_gdf):
    pipeline = ClassificationPipeline(config=cfg, manager=manager, storage=LocalFS())
    result = pipeline.run(solar_gdf, non_solar_gdf, out_dir=str(tmp_path))

    assert fake_stages["region"] == ("TIGER/2018/States", "Rhode Island", "NAME")
    assert fake_stages["fetch"] == (
        "2020-05-23",
        "2020-05-25",
        ["B2", "B3", "B4", "B8", "B11", "B12"],
        "most_recent",
    )
    assert fake_stages["extract"] == (150, 10)
    assert len(result.labels) == 150
    assert len(result.split) == len(result.samples)
    assert list(result.model.importances) == ["B2", "B8", "B11", "B12"]
    assert result.exports == {}

    metrics = json.loads(Path(tmp_path, "metrics.json").read_text())
    assert metrics["accuracy"] == pytest.approx(result.evaluation.accuracy)
    assert metrics["seed"] == 8
    assert metrics["label_count"] == 150
    for name in (
        "scenes.csv",
        "feature_importance.csv",
        "confusion_matrix.csv",
        "predictions.csv",
        "feature_importance.png",
    ):
        assert Path(tmp_path, name).exists()


def test_pipeline_is_reproducible(fake_stages, cfg, manager, solar_gdf, non_solar_gdf):
    a = ClassificationPipeline(cfg, manager).run(solar_gdf, non_solar_gdf)
    b = ClassificationPipeline(cfg, manager).run(solar_gdf, non_solar_gdf)
    assert a.model.importances == b.model.importances
    assert a.evaluation.accuracy == b.evaluation.accuracy


def test_stage_is_attached_to_errors(monkeypatch, fake_stages, cfg, manager, solar_gdf, non_solar_gdf):
    def no_scenes(self, reg, start, end, bands):
        raise EmptyResultError("No scenes", context={"start": start})

    monkeypatch.setattr("solarsat.core.pipeline.ImageFetcher.fetch", no_scenes)
    with pytest.raises(EmptyResultError) as excinfo:
        ClassificationPipeline(cfg, manager).run(solar_gdf, non_solar_gdf)
    assert excinfo.value.stage == "mosaic"
    assert excinfo.value.context["end"] == "2020-05-25"


def test_single_class_training_fails_at_training(
    monkeypatch, fake_stages, cfg, manager, samples, solar_gdf, non_solar_gdf
):
    only_solar = samples[samples["landuse"] == 1]
    monkeypatch.setattr(
        "solarsat.core.pipeline.Sampler.extract", lambda self, mosaic, labels, class_property="landuse": only_solar
    )
    with pytest.raises(InsufficientDataError) as excinfo:
        ClassificationPipeline(cfg, manager).run(solar_gdf, non_solar_gdf)
    assert excinfo.value.stage == "training"


def test_deadline_is_checked_between_stages(monkeypatch, fake_stages, cfg, manager, solar_gdf, non_solar_gdf):
    cfg.update({"timeout": 5})
    ticks = iter([0.0, 1.0, 10.0])
    clock = SimpleNamespace(monotonic=lambda: next(ticks, 99.0))
    monkeypatch.setattr("solarsat.core.pipeline.time", clock)
    with pytest.raises(PipelineTimeoutError) as excinfo:
        ClassificationPipeline(cfg, manager).run(solar_gdf, non_solar_gdf)
    assert excinfo.value.stage == "mosaic"


def test_export_enabled_runs_exporter(monkeypatch, fake_stages, cfg, manager, solar_gdf, non_solar_gdf):
    cfg.update({"export": {"enabled": True, "products": ["labels"]}})
    seen = {}

    def fake_run(self, mosaic, labels, model, landcover=None):
        seen["enabled"] = self.config.enabled
        seen["landcover"] = landcover
        return {"labels": "merged.zip"}

    monkeypatch.setattr("solarsat.core.pipeline.Exporter.run", fake_run)
    result = ClassificationPipeline(cfg, manager).run(solar_gdf, non_solar_gdf)
    assert seen == {"enabled": True, "landcover": None}
    assert result.exports == {"labels": "merged.zip"}


def test_sampling_scale_defaults_to_sensor_resolution(fake_stages, cfg, manager, solar_gdf, non_solar_gdf):
    assert cfg.get("scale") is None
    ClassificationPipeline(cfg, manager).run(solar_gdf, non_solar_gdf)
    assert fake_stages["extract"][1] == 10

    cfg.update({"scale": 30})
    ClassificationPipeline(cfg, manager).run(solar_gdf, non_solar_gdf)
    assert fake_stages["extract"][1] == 30


def test_invalid_config_fails_in_config_stage(fake_stages, cfg, manager, solar_gdf, non_solar_gdf):
    cfg.update({"mosaic_bands": ["B2", "B8", "B11", "B12", "B99"]})
    with pytest.raises(ConfigValidationError) as excinfo:
        ClassificationPipeline(cfg, manager).run(solar_gdf, non_solar_gdf)
    assert excinfo.value.stage == "config"
    assert "fetch" not in fake_stages


def test_value_errors_are_tagged_with_stage(monkeypatch, fake_stages, cfg, manager, solar_gdf, non_solar_gdf):
    def bad_bands(self, reg, start, end, bands):
        raise ValueError("Bands ['B5'] are not part of the mosaic")

    monkeypatch.setattr("solarsat.core.pipeline.ImageFetcher.fetch", bad_bands)
    with pytest.raises(SolarSatError) as excinfo:
        ClassificationPipeline(cfg, manager).run(solar_gdf, non_solar_gdf)
    assert excinfo.value.stage == "mosaic"
    assert excinfo.value.context == {"start": "2020-05-23", "end": "2020-05-25"}
    assert isinstance(excinfo.value.__cause__, ValueError)
