"""Exception hierarchy for the classification workflow.

Every error aborts the run. ``stage`` names the workflow step that failed and
``context`` carries the inputs of that step (date range, label source, ...),
so the operator can adjust parameters and rerun.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional


class SolarSatError(Exception):
    """Base class for all workflow errors."""

    def __init__(
        self,
        message: str,
        *,
        stage: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.context = dict(context or {})

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
        return f"{self.message} ({details})"


class NotFoundError(SolarSatError):
    """A named region did not resolve to exactly one boundary record."""


class EmptyResultError(SolarSatError):
    """A query returned nothing to work with (e.g. no scenes)."""


class EmptyValidationError(EmptyResultError):
    """The validation subset has no rows."""


class OutOfBoundsError(SolarSatError):
    """Sample locations fall outside the raster coverage."""

    def __init__(self, message: str, label_ids: Iterable[int] = (), **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.label_ids = sorted(int(i) for i in label_ids)


class InsufficientDataError(SolarSatError):
    """The training subset cannot support a two-class model."""


class InvalidLabelError(SolarSatError):
    """A label record carries a class value outside the allowed set."""


class ExternalServiceError(SolarSatError):
    """A call to Earth Engine or another remote service failed."""


class PipelineTimeoutError(SolarSatError):
    """The overall run deadline expired between stages."""
