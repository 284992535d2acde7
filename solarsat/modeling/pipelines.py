"""Random-forest training on the sampled band table."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple

import pandas as pd
from sklearn.ensemble import RandomForestClassifier
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler

from solarsat.core.errors import InsufficientDataError
from solarsat.core.logger import Logger

logger = Logger.get_logger(__name__)


def random_forest(n_trees: int = 1000, seed: Optional[int] = None) -> Pipeline:
    """
    Simple RF pipeline: scaling + random forest.
    A fixed *seed* makes the fitted forest reproducible.
    """
    return Pipeline(
        [
            ("scaler", StandardScaler()),
            (
                "rf",
                RandomForestClassifier(
                    n_estimators=n_trees, random_state=seed, n_jobs=-1
                ),
            ),
        ]
    )


@dataclass(frozen=True)
class TrainedModel:
    """Fitted classifier together with the features it was trained on."""

    estimator: Pipeline
    bands: Tuple[str, ...]
    class_property: str
    classes: Tuple[int, ...]
    importances: Dict[str, float] = field(default_factory=dict)

    def predict(self, frame: pd.DataFrame) -> pd.Series:
        """Predict a class for every row of *frame*."""
        preds = self.estimator.predict(frame[list(self.bands)])
        return pd.Series(preds, index=frame.index, name="classification").astype(int)

    def importance_table(self) -> pd.DataFrame:
        """Band importances, most important first."""
        return (
            pd.DataFrame(
                {"band": list(self.importances), "importance": list(self.importances.values())}
            )
            .sort_values("importance", ascending=False)
            .reset_index(drop=True)
        )


def train_classifier(
    training: pd.DataFrame,
    bands: Sequence[str],
    class_property: str = "landuse",
    n_trees: int = 1000,
    seed: Optional[int] = None,
    classes: Sequence[int] = (1, 2),
) -> TrainedModel:
    """Fit a random forest on *training* using *bands* as features."""
    bands = list(bands)
    missing_cols = [c for c in [*bands, class_property] if c not in training.columns]
    if missing_cols:
        raise KeyError(f"Training table lacks columns {missing_cols}")

    present = set(training[class_property].dropna().astype(int))
    absent = [c for c in classes if c not in present]
    if training.empty or absent:
        raise InsufficientDataError(
            f"Training subset is missing class(es) {absent or list(classes)}",
            context={"rows": len(training), "class_property": class_property},
        )

    X = training[bands]
    y = training[class_property].astype(int)
    pipe = random_forest(n_trees=n_trees, seed=seed)
    pipe.fit(X, y)

    scores = pipe.named_steps["rf"].feature_importances_
    importances = {band: float(score) for band, score in zip(bands, scores)}
    logger.info(
        "Trained %d-tree random forest on %d rows (%s)", n_trees, len(training), bands
    )
    return TrainedModel(
        estimator=pipe,
        bands=tuple(bands),
        class_property=class_property,
        classes=tuple(int(c) for c in classes),
        importances=importances,
    )
