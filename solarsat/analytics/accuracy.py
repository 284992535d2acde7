"""Accuracy assessment: confusion matrix, overall accuracy and kappa."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Sequence

import numpy as np
import pandas as pd
from sklearn.metrics import confusion_matrix as _sk_confusion_matrix

from solarsat.core.errors import EmptyValidationError
from solarsat.modeling.pipelines import TrainedModel


@dataclass(frozen=True)
class EvaluationResult:
    """Validation predictions and the metrics derived from them."""

    predictions: pd.DataFrame
    confusion: pd.DataFrame
    accuracy: float
    kappa: float
    producers_accuracy: Dict[int, float]
    consumers_accuracy: Dict[int, float]

    def to_dict(self) -> dict:
        return {
            "accuracy": self.accuracy,
            "kappa": None if np.isnan(self.kappa) else self.kappa,
            "validation_rows": int(len(self.predictions)),
            "producers_accuracy": {str(k): v for k, v in self.producers_accuracy.items()},
            "consumers_accuracy": {str(k): v for k, v in self.consumers_accuracy.items()},
        }


def confusion_matrix(actual: Sequence[int], predicted: Sequence[int]) -> pd.DataFrame:
    """
    Square matrix with actual classes as rows and predicted classes as
    columns, over the union of classes that occur in either sequence.
    """
    actual = np.asarray(actual, dtype=int)
    predicted = np.asarray(predicted, dtype=int)
    labels = sorted(set(actual.tolist()) | set(predicted.tolist()))
    matrix = _sk_confusion_matrix(actual, predicted, labels=labels)
    return pd.DataFrame(
        matrix,
        index=pd.Index(labels, name="actual"),
        columns=pd.Index(labels, name="predicted"),
    )


def overall_accuracy(matrix: pd.DataFrame) -> float:
    total = matrix.to_numpy().sum()
    return float(np.trace(matrix.to_numpy()) / total) if total else float("nan")


def kappa(matrix: pd.DataFrame) -> float:
    """Cohen's kappa; NaN when chance agreement is already 1."""
    m = matrix.to_numpy().astype(float)
    total = m.sum()
    if total == 0:
        return float("nan")
    p_o = np.trace(m) / total
    p_e = float((m.sum(axis=1) * m.sum(axis=0)).sum()) / total**2
    if np.isclose(p_e, 1.0):
        return float("nan")
    return float((p_o - p_e) / (1.0 - p_e))


def _ratio(num: float, den: float) -> float:
    return float(num / den) if den else float("nan")


def evaluate(model: TrainedModel, validation: pd.DataFrame) -> EvaluationResult:
    """Classify *validation* and score the predictions against its labels."""
    if validation.empty:
        raise EmptyValidationError(
            "Validation subset is empty; lower the split threshold or add labels"
        )
    predicted = model.predict(validation)
    frame = validation.assign(classification=predicted)
    matrix = confusion_matrix(frame[model.class_property], frame["classification"])

    diag = np.diag(matrix.to_numpy())
    producers = {
        int(c): _ratio(diag[i], matrix.loc[c].sum()) for i, c in enumerate(matrix.index)
    }
    consumers = {
        int(c): _ratio(diag[i], matrix[c].sum()) for i, c in enumerate(matrix.columns)
    }
    return EvaluationResult(
        predictions=frame,
        confusion=matrix,
        accuracy=overall_accuracy(matrix),
        kappa=kappa(matrix),
        producers_accuracy=producers,
        consumers_accuracy=consumers,
    )
