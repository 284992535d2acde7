"""
SolarSat CLI entrypoint: commands to run the solar / non-solar classification,
list the scenes a mosaic would use, and re-score saved predictions.
"""

import os
import sys

import pandas as pd
import click  # type: ignore
from click import echo

from solarsat.analytics.accuracy import confusion_matrix, kappa, overall_accuracy
from solarsat.core.config import ConfigManager
from solarsat.core.errors import SolarSatError
from solarsat.core.logger import Logger
from solarsat.core.pipeline import ClassificationPipeline
from solarsat.core.storage import LocalFS, S3Bucket, StorageAdapter
from solarsat.geo.region import resolve_region
from solarsat.ingestion.eemanager import EarthEngineManager
from solarsat.ingestion.mosaic import ImageFetcher
from solarsat.ingestion.sensorspec import SensorSpec

logger = Logger.get_logger(__name__)


def _select_storage(kind: str) -> StorageAdapter:
    """Instantiate a storage adapter for ``kind`` ('local' or 's3')."""
    if kind == "s3":
        bucket = os.getenv("SOLARSAT_S3_BUCKET")
        if not bucket:
            raise click.BadParameter("Missing SOLARSAT_S3_BUCKET for s3 storage")
        return S3Bucket(bucket=bucket)
    return LocalFS()


def _load_config(config_path, **overrides) -> ConfigManager:
    cfg = ConfigManager(config_path)
    cfg.update(overrides)
    return cfg


def _make_manager(cfg: ConfigManager, credentials, project) -> EarthEngineManager:
    return EarthEngineManager(
        credential_path=credentials,
        project=project,
        timeout=cfg.get("request_timeout"),
        max_retries=cfg.get("max_retries"),
        logger=logger,
    )


def _fail(err: Exception) -> None:
    stage = getattr(err, "stage", None) or "run"
    echo(f"❌  {stage} failed: {err}", err=True)
    sys.exit(1)


@click.group()
def cli():
    """SolarSat: random-forest mapping of solar installations."""
    Logger.setup()


common_options = [
    click.option("--config", "config_path", type=click.Path(exists=True), default=None,
                 help="YAML/TOML/JSON config file"),
    click.option("--region", default=None, help="Boundary NAME to clip to"),
    click.option("--boundary", default=None,
                 help="Boundary dataset: local vector file or EE asset id"),
    click.option("--start", "-s", default=None, help="Start date (YYYY-MM-DD, inclusive)"),
    click.option("--end", "-e", default=None, help="End date (YYYY-MM-DD, exclusive)"),
    click.option("--credentials", type=click.Path(exists=True), default=None,
                 help="Service-account JSON for Earth Engine"),
    click.option("--project", default=None, help="Earth Engine cloud project"),
]


def with_common_options(func):
    for option in reversed(common_options):
        func = option(func)
    return func


@cli.command()
@with_common_options
@click.option("--solar", required=True, help="Solar labels: vector file or EE asset id")
@click.option("--non-solar", "non_solar", required=True,
              help="Non-solar labels: vector file or EE asset id")
@click.option("--seed", type=int, default=None, help="Random seed for split and forest")
@click.option("--split", type=float, default=None, help="Training fraction threshold")
@click.option("--trees", type=int, default=None, help="Number of trees")
@click.option("--compositing", type=click.Choice(ConfigManager.COMPOSITING_RULES),
              default=None, help="Which scene wins where scenes overlap")
@click.option("--out-dir", "-o", type=click.Path(), default="solarsat_report",
              help="Report output directory")
@click.option("--export/--no-export", default=None, help="Export products")
@click.option("--storage", type=click.Choice(["local", "s3"]), default="local",
              help="Destination store for report and exports")
def classify(
    config_path,
    region,
    boundary,
    start,
    end,
    credentials,
    project,
    solar,
    non_solar,
    seed,
    split,
    trees,
    compositing,
    out_dir,
    export,
    storage,
):
    """Train and score the solar / non-solar random forest."""
    try:
        cfg = _load_config(
            config_path,
            region_name=region,
            boundary=boundary,
            start=start,
            end=end,
            seed=seed,
            split=split,
            n_trees=trees,
            compositing=compositing,
            export={"enabled": export} if export is not None else None,
        )
        pipeline = ClassificationPipeline(
            config=cfg,
            manager=_make_manager(cfg, credentials, project),
            storage=_select_storage(storage),
            logger=logger,
        )
        result = pipeline.run(solar, non_solar, out_dir=out_dir)
    except SolarSatError as err:
        _fail(err)
        return
    echo(f"Overall accuracy: {result.evaluation.accuracy:.4f}")
    echo(f"Kappa: {result.evaluation.kappa:.4f}")
    echo(f"✅  Report written to `{out_dir}`")


@cli.command()
@with_common_options
def scenes(config_path, region, boundary, start, end, credentials, project):
    """List the scenes that would be composited for the region and dates."""
    try:
        cfg = _load_config(
            config_path, region_name=region, boundary=boundary, start=start, end=end
        )
        cfg.validate()
        manager = _make_manager(cfg, credentials, project)
        reg = resolve_region(
            cfg.get("boundary"), cfg.get("region_name"), cfg.get("region_key"), manager
        )
        fetcher = ImageFetcher(
            SensorSpec.from_collection_id(cfg.get("collection")),
            manager=manager,
            compositing=cfg.get("compositing"),
        )
        mosaic = fetcher.fetch(reg, cfg.get("start"), cfg.get("end"), cfg.get("mosaic_bands"))
        rows = mosaic.scenes.get()
    except SolarSatError as err:
        _fail(err)
        return
    for row in rows:
        echo(f"{row['id']}\t{row['date']}\t{row['cloud_pct']}")
    echo(f"{len(rows)} scene(s)")


@cli.command()
@click.argument("predictions", type=click.Path(exists=True))
@click.option("--actual", default="landuse", help="Column with reference classes")
@click.option("--predicted", default="classification", help="Column with predictions")
def evaluate(predictions, actual, predicted):
    """Recompute the error matrix, accuracy and kappa from a predictions CSV."""
    df = pd.read_csv(predictions)
    missing = [c for c in (actual, predicted) if c not in df.columns]
    if missing:
        raise click.BadParameter(f"Columns {missing} not found in {predictions}")
    codes = df[[actual, predicted]].apply(pd.to_numeric, errors="coerce")
    bad = codes.isna().any(axis=1) | (codes % 1 != 0).any(axis=1)
    if bad.any():
        rows = [int(i) + 2 for i in df.index[bad][:5]]
        raise click.BadParameter(
            f"{int(bad.sum())} row(s) of {predictions} have blank or non-integer "
            f"class codes (first at line(s) {rows})"
        )
    df = codes.astype(int)
    if df.empty:
        echo("❌  evaluation failed: no rows to score", err=True)
        sys.exit(1)
    matrix = confusion_matrix(df[actual], df[predicted])
    echo(matrix.to_string())
    echo(f"Overall accuracy: {overall_accuracy(matrix):.4f}")
    echo(f"Kappa: {kappa(matrix):.4f}")


if __name__ == "__main__":
    cli()
