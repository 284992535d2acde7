"""Helpers to generate report figures."""

from __future__ import annotations

from io import BytesIO
from typing import Mapping

import matplotlib.pyplot as plt


def make_importance_png(
    importances: Mapping[str, float],
    title: str = "Random Forest Variable Importance",
) -> bytes:
    """Column chart of per-band importance, returned as PNG bytes."""
    fig, ax = plt.subplots(figsize=(5, 3))
    ax.bar(list(importances.keys()), list(importances.values()), color="#ffa500")
    ax.set_title(title)
    ax.set_xlabel("Bands")
    ax.set_ylabel("Importance")
    buf = BytesIO()
    fig.savefig(buf, format="png", bbox_inches="tight")
    plt.close(fig)
    return buf.getvalue()
