from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional

import geopandas as gpd
import pandas as pd

from solarsat.analytics.accuracy import EvaluationResult, evaluate
from solarsat.core.config import ConfigManager
from solarsat.core.errors import PipelineTimeoutError, SolarSatError
from solarsat.core.logger import Logger
from solarsat.core.storage import LocalFS, StorageAdapter
from solarsat.geo.region import Region, resolve_region
from solarsat.ingestion.eemanager import EarthEngineManager
from solarsat.ingestion.labels import LabelSource, load_labels, merge_labels
from solarsat.ingestion.mosaic import ImageFetcher, Mosaic
from solarsat.ingestion.sampling import Sampler, Split, split_samples
from solarsat.ingestion.sensorspec import SensorSpec
from solarsat.modeling.pipelines import TrainedModel, train_classifier
from solarsat.services.export import ExportConfig, Exporter
from solarsat.services.landcover import LandcoverService
from solarsat.services.reporting import log_summary, write_report


@dataclass
class PipelineResult:
    """Artifacts produced by one run, in stage order."""

    region: Region
    mosaic: Mosaic
    labels: gpd.GeoDataFrame
    samples: pd.DataFrame
    split: Split
    model: TrainedModel
    evaluation: EvaluationResult
    exports: Dict[str, Any] = field(default_factory=dict)
    report: Dict[str, str] = field(default_factory=dict)


@dataclass
class ClassificationPipeline:
    """Encapsulate the solar / non-solar random-forest workflow."""

    config: ConfigManager
    manager: EarthEngineManager
    storage: StorageAdapter = field(default_factory=LocalFS)
    logger: Any = None

    def __post_init__(self) -> None:
        self.logger = self.logger or Logger.get_logger(__name__)
        self._deadline: Optional[float] = None

    @contextmanager
    def _stage(self, name: str, **context) -> Iterator[None]:
        """Check the run deadline, then tag any workflow error with *name*."""
        if self._deadline is not None and time.monotonic() > self._deadline:
            raise PipelineTimeoutError(
                f"Run deadline exceeded before stage '{name}'", stage=name
            )
        self.logger.info("Stage %s started", name)
        try:
            yield
        except SolarSatError as err:
            err.stage = err.stage or name
            for key, value in context.items():
                err.context.setdefault(key, value)
            self.logger.error("Stage %s failed: %s", name, err)
            raise
        except ValueError as err:
            self.logger.error("Stage %s failed: %s", name, err)
            raise SolarSatError(str(err), stage=name, context=context) from err

    def run(
        self,
        solar: LabelSource,
        non_solar: LabelSource,
        out_dir: Optional[str] = None,
    ) -> PipelineResult:
        """Execute the full pipeline; write the report when *out_dir* is set."""
        cfg = self.config
        self._deadline = None
        with self._stage("config"):
            cfg.validate()
        timeout = cfg.get("timeout")
        self._deadline = time.monotonic() + timeout if timeout else None
        class_property = cfg.get("class_property")
        positive_class, negative_class = cfg.get("classes")

        # 1. Region
        with self._stage("region", region=cfg.get("region_name")):
            region = resolve_region(
                cfg.get("boundary"),
                cfg.get("region_name"),
                key=cfg.get("region_key"),
                manager=self.manager,
            )

        # 2. Mosaic
        with self._stage("mosaic", start=cfg.get("start"), end=cfg.get("end")):
            fetcher = ImageFetcher(
                SensorSpec.from_collection_id(cfg.get("collection")),
                manager=self.manager,
                compositing=cfg.get("compositing"),
                mask_clouds=cfg.get("mask_clouds"),
                logger=self.logger,
            )
            mosaic = fetcher.fetch(
                region, cfg.get("start"), cfg.get("end"), cfg.get("mosaic_bands")
            )

        # 3. Labels
        with self._stage("labels", solar=str(solar), non_solar=str(non_solar)):
            positive = load_labels(solar, positive_class, class_property, self.manager)
            negative = load_labels(
                non_solar, negative_class, class_property, self.manager
            )
            labels = merge_labels(
                positive, negative, class_property, classes=cfg.get("classes")
            )

        # 4. Sampling and split
        scale = cfg.get("scale") or fetcher.sensor.native_resolution
        with self._stage("sampling", scale=scale):
            sampler = Sampler(
                manager=self.manager,
                scale=scale,
                on_out_of_bounds=cfg.get("on_out_of_bounds"),
                logger=self.logger,
            )
            samples = sampler.extract(mosaic, labels, class_property)
            split = split_samples(samples, cfg.get("split"), seed=cfg.get("seed"))
            self.logger.info(
                "Split %d samples into %d training / %d validation rows",
                len(samples),
                len(split.training),
                len(split.validation),
            )

        # 5. Training
        with self._stage("training", n_trees=cfg.get("n_trees")):
            model = train_classifier(
                split.training,
                cfg.get("feature_bands"),
                class_property=class_property,
                n_trees=cfg.get("n_trees"),
                seed=cfg.get("seed"),
                classes=cfg.get("classes"),
            )

        # 6. Evaluation
        with self._stage("evaluation"):
            evaluation = evaluate(model, split.validation)

        result = PipelineResult(
            region=region,
            mosaic=mosaic,
            labels=labels,
            samples=samples,
            split=split,
            model=model,
            evaluation=evaluation,
        )

        # 7. Export
        with self._stage("export"):
            export_cfg = ExportConfig.from_dict(cfg.get("export"))
            landcover = None
            if export_cfg.enabled and "landcover" in export_cfg.products:
                landcover = LandcoverService(
                    self.manager, cfg.get("landcover_collection"), logger=self.logger
                ).get_image(region)
            exporter = Exporter(export_cfg, self.storage, self.manager, self.logger)
            result.exports = exporter.run(mosaic, labels, model, landcover=landcover)

        # 8. Reporting
        with self._stage("reporting"):
            log_summary(result, self.logger)
            if out_dir:
                result.report = write_report(result, out_dir, self.storage)
        return result
