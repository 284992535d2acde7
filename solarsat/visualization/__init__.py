"""Plotting helpers for run reports."""

from .figures import make_importance_png

__all__ = ["make_importance_png"]
