"""Lightweight service-layer helpers used by the pipeline and CLI."""

from importlib import import_module

__all__ = [
    "Exporter",
    "ExportConfig",
    "LandcoverService",
    "write_report",
]


def __getattr__(name):
    if name in ("Exporter", "ExportConfig"):
        return getattr(import_module(".export", __name__), name)
    if name == "LandcoverService":
        return import_module(".landcover", __name__).LandcoverService
    if name == "write_report":
        return import_module(".reporting", __name__).write_report
    raise AttributeError(name)
